"""
Integration Tests for OSCPortIn over loopback UDP

Tests the complete receive path:
- Real sockets bound to 127.0.0.1 (port 0, the OS picks)
- python-osc clients as senders
- Pattern routing, bundles, malformed datagrams and shutdown
"""
import socket
import threading
import time

import pytest
from pythonosc.osc_bundle_builder import IMMEDIATELY, OscBundleBuilder
from pythonosc.osc_message_builder import OscMessageBuilder
from pythonosc.udp_client import SimpleUDPClient

from oscport.application.port_in import OSCPortIn
from oscport.domain.address_selector import ExactAddressSelector
from oscport.errors import OSCDecodeError


WAIT = 2.0


class Inbox:
    """Thread-safe listener that records (timestamp, message) pairs."""

    def __init__(self):
        self._lock = threading.Lock()
        self._condition = threading.Condition(self._lock)
        self.calls = []

    def __call__(self, timestamp, message):
        with self._condition:
            self.calls.append((timestamp, message))
            self._condition.notify_all()

    def wait_for(self, count: int, timeout: float = WAIT) -> bool:
        with self._condition:
            return self._condition.wait_for(lambda: len(self.calls) >= count, timeout)

    @property
    def addresses(self):
        with self._lock:
            return [m.address for _, m in self.calls]


@pytest.fixture
def errors():
    return []


@pytest.fixture
def receiver(errors):
    port = OSCPortIn.from_port(0, address="127.0.0.1", receive_timeout=0.05, error_handler=errors.append)
    yield port
    port.close()


@pytest.fixture
def client(receiver):
    host, port = receiver.local_address
    return SimpleUDPClient(host, port)


@pytest.fixture
def raw_sender(receiver):
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    yield lambda data: sock.sendto(data, receiver.local_address)
    sock.close()


class TestPatternRouting:
    """End-to-end routing by address pattern."""

    def test_wildcard_segment(self, receiver, client):
        """'/synth/*/volume' picks out volume messages from any synth."""
        volume = Inbox()
        everything = Inbox()
        receiver.add_listener("/synth/*/volume", volume)
        receiver.add_listener("*", everything)
        receiver.start_listening()

        client.send_message("/synth/1/volume", 0.5)
        client.send_message("/synth/1/pan", -0.25)
        client.send_message("/synth/2/volume", 0.75)

        assert everything.wait_for(3)
        assert volume.wait_for(2)
        assert volume.addresses == ["/synth/1/volume", "/synth/2/volume"]
        assert [m.arguments for _, m in volume.calls] == [(0.5,), (0.75,)]

    def test_exact_and_question_mark(self, receiver, client):
        """An exact '/ping' and a '/p??g' pattern both see '/ping'."""
        exact = Inbox()
        pattern = Inbox()
        receiver.add_listener(ExactAddressSelector("/ping"), exact)
        receiver.add_listener("/p??g", pattern)
        receiver.start_listening()

        client.send_message("/pong", [])
        client.send_message("/ping", [])

        assert exact.wait_for(1)
        assert pattern.wait_for(2)
        assert exact.addresses == ["/ping"]
        assert pattern.addresses == ["/pong", "/ping"]

    def test_alternation_and_class(self, receiver, client):
        inbox = Inbox()
        receiver.add_listener("/mixer/{left,right}/ch[1-4]", inbox)
        sentinel = Inbox()
        receiver.add_listener("/done", sentinel)
        receiver.start_listening()

        for address in ["/mixer/left/ch1", "/mixer/center/ch1", "/mixer/right/ch5", "/mixer/right/ch4"]:
            client.send_message(address, 1)
        client.send_message("/done", [])

        assert sentinel.wait_for(1)
        assert inbox.addresses == ["/mixer/left/ch1", "/mixer/right/ch4"]

    def test_mixed_arguments(self, receiver, client):
        inbox = Inbox()
        receiver.add_listener("/args", inbox)
        receiver.start_listening()

        client.send_message("/args", [1, 2.5, "three", b"\x04", True, None])

        assert inbox.wait_for(1)
        assert inbox.calls[0][1].arguments == (1, 2.5, "three", b"\x04", True, None)


class TestBundles:
    """Bundles sent over the wire."""

    def test_bundle_messages_share_timestamp(self, receiver, client):
        inbox = Inbox()
        receiver.add_listener("/b/*", inbox)
        receiver.start_listening()

        builder = OscBundleBuilder(IMMEDIATELY)
        for index in range(3):
            message = OscMessageBuilder(address=f"/b/{index}")
            message.add_arg(index)
            builder.add_content(message.build())
        client.send(builder.build())

        assert inbox.wait_for(3)
        assert inbox.addresses == ["/b/0", "/b/1", "/b/2"]
        assert len({timestamp for timestamp, _ in inbox.calls}) == 1


class TestResilience:
    """The loop survives bad input and failing listeners."""

    def test_malformed_datagrams_are_skipped(self, receiver, client, raw_sender, errors):
        inbox = Inbox()
        receiver.add_listener("*", inbox)
        receiver.start_listening()

        raw_sender(b"\x00\x00\x00\x00")
        raw_sender(b"/unterminated")
        raw_sender(b"#bundle\x00")
        client.send_message("/still/alive", 1)

        assert inbox.wait_for(1)
        assert inbox.addresses == ["/still/alive"]
        assert len(errors) == 3
        assert all(isinstance(e, OSCDecodeError) for e in errors)

    def test_failing_listener(self, receiver, client, errors):
        inbox = Inbox()

        def broken(timestamp, message):
            raise RuntimeError("listener bug")

        receiver.add_listener("*", broken)
        receiver.add_listener("*", inbox)
        receiver.start_listening()

        client.send_message("/one", 1)
        client.send_message("/two", 2)

        assert inbox.wait_for(2)
        assert len(errors) == 2
        assert receiver.is_running


class TestShutdown:
    """Stopping and closing a live port."""

    def test_stop_with_timeout_exits_without_traffic(self, receiver):
        receiver.start_listening()
        receiver.stop_listening()

        deadline = time.monotonic() + WAIT
        while receiver.is_running and time.monotonic() < deadline:
            time.sleep(0.01)
        assert not receiver.is_running

    def test_close_without_timeout(self, errors):
        """close() must wake a receive that would otherwise block forever."""
        port = OSCPortIn.from_port(0, address="127.0.0.1", error_handler=errors.append)
        port.start_listening()

        port.close()

        assert not port.is_running
        assert errors == []

    def test_no_delivery_after_close(self, receiver, client):
        inbox = Inbox()
        receiver.add_listener("*", inbox)
        receiver.start_listening()

        client.send_message("/before", [])
        assert inbox.wait_for(1)

        receiver.close()
        client.send_message("/after", [])

        assert not inbox.wait_for(2, timeout=0.2)
        assert inbox.addresses == ["/before"]

    def test_restart_on_same_socket(self, receiver, client):
        inbox = Inbox()
        receiver.add_listener("*", inbox)

        receiver.start_listening()
        receiver.stop_listening()
        deadline = time.monotonic() + WAIT
        while receiver.is_running and time.monotonic() < deadline:
            time.sleep(0.01)

        assert receiver.start_listening() is True
        client.send_message("/again", [])

        assert inbox.wait_for(1)
        assert inbox.addresses == ["/again"]
