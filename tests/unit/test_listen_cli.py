"""
Tests for the oscport-listen command line tool.
"""
import io
import json
import logging
import socket
import sys
import threading
import time
from datetime import datetime

import pytest
from pythonosc.udp_client import SimpleUDPClient

from oscport.cli import listen_cli
from oscport.domain.osc_packet import OSCMessage, OSCTimeTag
from oscport.utils.message import Log


@pytest.fixture(autouse=True)
def restore_logging():
    """main() points console logging at stderr and changes the level."""
    logger = Log.get_logger()
    streams = [(h, h.stream) for h in logger.handlers if isinstance(h, logging.StreamHandler)]
    level = logger.level
    yield
    for handler, stream in streams:
        handler.setStream(stream)
    Log.set_level(level)
    Log.disable_file_logging()


def free_port() -> int:
    first_socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    first_socket.bind(("127.0.0.1", 0))
    port = first_socket.getsockname()[1]
    first_socket.close()
    return port


# =============================================================================
# Parsing
# =============================================================================

class TestParser:
    """Tests for argument parsing."""

    def test_defaults(self):
        args = listen_cli.build_parser().parse_args([])

        assert args.port == 57110
        assert args.address == "0.0.0.0"
        assert args.patterns is None
        assert args.buffer_size == 1536

    def test_repeatable_pattern(self):
        args = listen_cli.build_parser().parse_args(["--pattern", "/a/*", "--pattern", "/b"])
        assert args.patterns == ["/a/*", "/b"]

    def test_settings_from_args(self):
        args = listen_cli.build_parser().parse_args(["--port", "9000", "--encoding", "latin-1", "--timeout", "0.5"])
        settings = listen_cli.settings_from_args(args)

        assert settings.listen_port == 9000
        assert settings.encoding == "latin-1"
        assert settings.receive_timeout == 0.5


# =============================================================================
# Output
# =============================================================================

class TestOutput:
    """Tests for JSON line formatting."""

    def test_message_line(self):
        received = datetime(2024, 5, 1, 12, 0, 0)
        message = OSCMessage("/synth/1/volume", (0.5, "x"), "fs")

        line = listen_cli.message_to_line(received, message)

        assert line == {
            "type": "message",
            "address": "/synth/1/volume",
            "type_tags": "fs",
            "arguments": [0.5, "x"],
            "received": "2024-05-01T12:00:00",
        }

    def test_emit_encodes_non_json_values(self):
        stream = io.StringIO()
        message = OSCMessage("/blob", (b"\x00\xff", OSCTimeTag(0, 1)), "bt")

        listen_cli._emit(listen_cli.message_to_line(datetime.now(), message), stream)

        decoded = json.loads(stream.getvalue())
        assert decoded["arguments"] == ["AP8=", 1]


# =============================================================================
# main()
# =============================================================================

class TestMain:
    """Tests for the main entry point."""

    def test_invalid_buffer_size(self):
        assert listen_cli.main(["--port", "0", "--buffer-size", "0"]) == 2

    def test_zero_timeout(self):
        assert listen_cli.main(["--port", "0", "--timeout", "0"]) == 2

    def test_invalid_pattern(self):
        assert listen_cli.main(["--port", "0", "--pattern", "/a["]) == 2

    def test_port_in_use(self):
        holder = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        holder.bind(("127.0.0.1", 0))
        try:
            port = str(holder.getsockname()[1])
            assert listen_cli.main(["--port", port, "--address", "127.0.0.1"]) == 1
        finally:
            holder.close()

    def test_stop_event_ends_main(self):
        stop = threading.Event()
        stop.set()
        assert listen_cli.main(["--port", "0", "--address", "127.0.0.1"], stop=stop) == 0

    def test_prints_matching_messages(self, monkeypatch):
        output = io.StringIO()
        monkeypatch.setattr(sys, "stdout", output)

        port = free_port()
        stop = threading.Event()
        result = []
        argv = ["--port", str(port), "--address", "127.0.0.1", "--pattern", "/synth/*", "--timeout", "0.05"]
        thread = threading.Thread(target=lambda: result.append(listen_cli.main(argv, stop=stop)))
        thread.start()

        client = SimpleUDPClient("127.0.0.1", port)
        try:
            # The listener may not be bound yet; keep sending until a line shows up
            deadline = time.monotonic() + 2.0
            while "/synth/1" not in output.getvalue() and time.monotonic() < deadline:
                client.send_message("/other", 1)
                client.send_message("/synth/1", 0.5)
                time.sleep(0.05)
        finally:
            stop.set()
            thread.join(timeout=2.0)

        assert result == [0]
        lines = [json.loads(line) for line in output.getvalue().splitlines()]
        assert lines
        assert {line["address"] for line in lines} == {"/synth/1"}
        assert lines[0]["arguments"] == [0.5]
