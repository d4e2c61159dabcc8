"""
Listen CLI - print incoming OSC messages as JSON lines.

Usage:
    oscport-listen --port 57110 --pattern "/synth/*"
    python -m oscport.cli.listen_cli --port 9000 --log-level DEBUG

Protocol (one JSON object per line, utf-8, on stdout):
    {"type": "message", "address": "/synth/1/volume", "arguments": [0.5], "received": "..."}
    {"type": "error", "message": "..."}

Logging goes to stderr so stdout stays machine readable.
"""
import argparse
import base64
import json
import sys
import threading
from datetime import datetime
from typing import Any, List, Optional

from oscport.application.port_in import OSCPortIn
from oscport.domain.address_selector import AnyAddressSelector
from oscport.domain.osc_packet import OSCMessage, OSCTimeTag
from oscport.errors import AddressPatternError, ConfigurationError, OSCPortError
from oscport.settings.port_settings import PortInSettings
from oscport.utils.message import Log


def _emit(line: dict, stream=None) -> None:
    """Print one JSON line and flush."""
    stream = stream or sys.stdout
    stream.write(json.dumps(line, default=_json_default) + "\n")
    stream.flush()


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, OSCTimeTag):
        return value.raw
    return repr(value)


def message_to_line(received: datetime, message: OSCMessage) -> dict:
    return {
        "type": "message",
        "address": message.address,
        "type_tags": message.type_tags,
        "arguments": list(message.arguments),
        "received": received.isoformat(),
    }


def build_parser() -> argparse.ArgumentParser:
    defaults = PortInSettings()
    parser = argparse.ArgumentParser(
        prog="oscport-listen",
        description="Listen for OSC over UDP and print matching messages as JSON lines."
    )
    parser.add_argument("--port", type=int, default=defaults.listen_port, help="UDP port to listen on")
    parser.add_argument("--address", default=defaults.listen_address, help="Interface to bind to")
    parser.add_argument(
        "--pattern", action="append", dest="patterns",
        help="Address pattern to print (repeatable, default: everything)"
    )
    parser.add_argument("--buffer-size", type=int, default=defaults.buffer_size, help="Receive buffer in bytes")
    parser.add_argument("--encoding", default=defaults.encoding, help="Text encoding for strings")
    parser.add_argument("--timeout", type=float, default=1.0, help="Receive timeout in seconds")
    parser.add_argument("--log-dir", default=None, help="Also write logs to this folder")
    parser.add_argument("--log-level", default="INFO", help="DEBUG, INFO, WARNING or ERROR")
    return parser


def settings_from_args(args: argparse.Namespace) -> PortInSettings:
    return PortInSettings(
        listen_port=args.port,
        listen_address=args.address,
        buffer_size=args.buffer_size,
        encoding=args.encoding,
        receive_timeout=args.timeout,
    )


def main(argv: Optional[List[str]] = None, stop: Optional[threading.Event] = None) -> int:
    """Run until Ctrl-C (or until stop is set, for embedding and tests)."""
    args = build_parser().parse_args(argv)

    Log.redirect_console(sys.stderr)
    Log.set_level(args.log_level)
    if args.log_dir:
        Log.info(f"Logging to {Log.enable_file_logging(args.log_dir)}")

    def on_error(error: Exception) -> None:
        Log.error(str(error))
        _emit({"type": "error", "message": str(error)})

    try:
        selector = AnyAddressSelector(args.patterns or ["*"])
        receiver = OSCPortIn.from_settings(settings_from_args(args), error_handler=on_error)
    except (ConfigurationError, AddressPatternError) as e:
        Log.error(f"Invalid configuration: {e}")
        return 2
    except OSCPortError as e:
        Log.error(str(e))
        return 1

    with receiver:
        receiver.add_listener(selector, lambda received, message: _emit(message_to_line(received, message)))

        receiver.start_listening()
        host, port = receiver.local_address
        Log.info(f"Listening on {host}:{port}, Ctrl-C to stop")

        try:
            # Event.wait keeps the main thread interruptible by Ctrl-C
            (stop or threading.Event()).wait()
        except KeyboardInterrupt:
            Log.info("Exiting...")

    return 0


if __name__ == "__main__":
    sys.exit(main())
