"""
OSC Port In

Listens on a UDP socket, decodes each datagram and hands it to an
OSCPacketDispatcher.

Usage:
    receiver = OSCPortIn.from_port(57110)
    receiver.add_listener("/message/receiving", lambda time, message: print(message))
    receiver.start_listening()
    ...
    receiver.close()

Shutdown contract:
    stop_listening() only records the intent to stop. A loop parked in a
    receive call stays there until a datagram arrives, the receive timeout
    (if configured) expires, or the socket is closed. close() does all of
    this for you: it stops, wakes and closes the socket, then joins the loop.

Thread Safety:
- One background thread per start_listening() runs receive, decode and
  dispatch; listeners therefore run on that thread and delay the next receive
- add_listener/remove_listener are safe from any thread at any time
"""
import socket
import threading
from datetime import datetime
from typing import Optional, Tuple, Union

from oscport.application.packet_dispatcher import (
    ListenerRegistration,
    MessageListener,
    OSCPacketDispatcher,
)
from oscport.domain.address_selector import AddressSelector
from oscport.errors import (
    ErrorHandler,
    OSCDecodeError,
    PortBindError,
    ReceiveError,
)
from oscport.infrastructure.packet_converter import OSCPacketConverter
from oscport.settings.port_settings import (
    DEFAULT_BUFFER_SIZE,
    DEFAULT_ENCODING,
    PortInSettings,
)
from oscport.utils.message import Log


JOIN_TIMEOUT = 2.0


class OSCPortIn:
    """
    Inbound half of an OSC UDP transport.

    Lifecycle:
        Stopped --start_listening()--> Listening --stop_listening()--> Stopped

    is_listening reports the last requested state. is_running reports
    whether a loop thread is actually alive; the two differ while a stopped
    loop is still parked in its receive call.
    """

    def __init__(
        self,
        sock: socket.socket,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        encoding: str = DEFAULT_ENCODING,
        receive_timeout: Optional[float] = None,
        error_handler: Optional[ErrorHandler] = None,
        dispatcher: Optional[OSCPacketDispatcher] = None,
        converter: Optional[OSCPacketConverter] = None,
    ):
        """
        Wrap an already open datagram socket.

        Args:
            sock: Bound UDP socket. Owned by this port from now on; close() closes it.
            buffer_size: Receive buffer in bytes (1..65536)
            encoding: Codec for addresses and string arguments
            receive_timeout: Optional socket timeout so a stopped loop exits without new data
            error_handler: Sink for decode, listener and socket errors (logged when None)
            dispatcher: Dispatcher to use (a new one when None)
            converter: Decoder to use (a new one for encoding when None)

        Raises:
            ConfigurationError: If buffer_size, encoding or receive_timeout is invalid
        """
        _validate(buffer_size=buffer_size, encoding=encoding, receive_timeout=receive_timeout)

        self._socket = sock
        self._buffer_size = buffer_size
        self._encoding = encoding
        self._error_handler = error_handler
        self._converter = converter or OSCPacketConverter(encoding)
        self._dispatcher = dispatcher or OSCPacketDispatcher(error_handler=error_handler)

        if receive_timeout is not None:
            self._socket.settimeout(receive_timeout)

        # Guards start/stop/close; never held while receiving
        self._lifecycle_lock = threading.Lock()
        # Each loop owns its stop signal so a restart never revives an old loop
        self._stop_event: Optional[threading.Event] = None
        self._listener_thread: Optional[threading.Thread] = None
        self._closed = False

        Log.debug(f"OSCPortIn: Created on {self._describe_address()} (buffer {buffer_size} bytes, {encoding})")

    @classmethod
    def from_port(
        cls,
        port: int,
        address: str = "0.0.0.0",
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        encoding: str = DEFAULT_ENCODING,
        receive_timeout: Optional[float] = None,
        reuse_address: bool = False,
        error_handler: Optional[ErrorHandler] = None,
    ) -> "OSCPortIn":
        """
        Open and bind a new UDP socket, then wrap it.

        Raises:
            ConfigurationError: If any argument is invalid (no socket is opened)
            PortBindError: If the port is invalid or already in use
        """
        settings = PortInSettings(
            listen_port=port,
            listen_address=address,
            buffer_size=buffer_size,
            encoding=encoding,
            receive_timeout=receive_timeout,
            reuse_address=reuse_address,
        )
        return cls.from_settings(settings, error_handler=error_handler)

    @classmethod
    def from_settings(
        cls,
        settings: PortInSettings,
        error_handler: Optional[ErrorHandler] = None,
    ) -> "OSCPortIn":
        """Validate settings, bind a socket and build the port."""
        settings.raise_if_invalid()

        sock = open_udp_socket(settings.listen_address, settings.listen_port, settings.reuse_address)
        try:
            return cls(
                sock,
                buffer_size=settings.buffer_size,
                encoding=settings.encoding,
                receive_timeout=settings.receive_timeout,
                error_handler=error_handler,
            )
        except Exception:
            sock.close()
            raise

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def is_listening(self) -> bool:
        """Last requested state, not the loop thread's actual status."""
        stop_event = self._stop_event
        return stop_event is not None and not stop_event.is_set()

    @property
    def is_running(self) -> bool:
        """True while a receive loop thread is alive."""
        thread = self._listener_thread
        return thread is not None and thread.is_alive()

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def buffer_size(self) -> int:
        return self._buffer_size

    @property
    def encoding(self) -> str:
        return self._encoding

    @property
    def dispatcher(self) -> OSCPacketDispatcher:
        return self._dispatcher

    @property
    def datagram_socket(self) -> socket.socket:
        return self._socket

    @property
    def local_address(self) -> Tuple[str, int]:
        """(host, port) the socket is bound to."""
        return self._socket.getsockname()[:2]

    @property
    def listener_count(self) -> int:
        return len(self._dispatcher)

    # =========================================================================
    # Registration
    # =========================================================================

    def add_listener(
        self,
        selector: Union[str, AddressSelector],
        listener: MessageListener
    ) -> ListenerRegistration:
        """
        Register a listener for messages whose address matches selector.

        Args:
            selector: A fixed address like "/sc/mixer/volume", a pattern like
                "/??/mixer/*", or a custom AddressSelector
            listener: Called with (receive time, message) on the loop thread
        """
        return self._dispatcher.add_listener(selector, listener)

    def remove_listener(
        self,
        listener: MessageListener,
        selector: Union[str, AddressSelector, None] = None
    ) -> bool:
        return self._dispatcher.remove_listener(listener, selector)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start_listening(self) -> bool:
        """
        Start the receive loop on a background thread.

        Returns immediately. Calling it while already listening does nothing.
        After stop_listening() the previous loop may still be parked in its
        receive call; until it exits (new data, receive timeout or close())
        no new loop is started, so one socket never has two readers.

        Returns:
            True if a new loop was started, False if already listening or
            the previous loop has not exited yet

        Raises:
            ReceiveError: If the port has been closed
        """
        with self._lifecycle_lock:
            if self._closed:
                raise ReceiveError("OSCPortIn: Cannot start listening on a closed port")
            if self.is_listening:
                Log.warning("OSCPortIn: Already listening")
                return False
            if self.is_running:
                Log.warning("OSCPortIn: Previous listen loop has not exited yet")
                return False

            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._listen_loop,
                args=(stop_event,),
                daemon=True,
                name=f"OSCPortIn-{self._describe_address()}"
            )
            self._stop_event = stop_event
            self._listener_thread = thread
            thread.start()

        Log.info(f"OSCPortIn: Started listening on {self._describe_address()}")
        return True

    def stop_listening(self) -> None:
        """
        Request the receive loop to stop.

        Does not interrupt a receive already in progress; see close().
        """
        with self._lifecycle_lock:
            stop_event = self._stop_event
            if stop_event is None or stop_event.is_set():
                return
            stop_event.set()

        Log.info(f"OSCPortIn: Stopped listening on {self._describe_address()}")

    def close(self, timeout: float = JOIN_TIMEOUT) -> None:
        """
        Stop listening, close the socket and wait for the loop to exit.

        Safe to call more than once.
        """
        self.stop_listening()

        with self._lifecycle_lock:
            if self._closed:
                return
            self._closed = True
            description = self._describe_address()
            # Wake a blocked receive before closing; close() alone may not on every platform
            try:
                self._socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            self._socket.close()
            thread = self._listener_thread

        if thread is not None and thread is not threading.current_thread() and thread.is_alive():
            thread.join(timeout=timeout)
            if thread.is_alive():
                Log.warning(f"OSCPortIn: Listener thread did not exit within {timeout}s")

        Log.info(f"OSCPortIn: Closed {description}")

    def __enter__(self) -> "OSCPortIn":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # =========================================================================
    # Receive loop
    # =========================================================================

    def _listen_loop(self, stop_event: threading.Event) -> None:
        """Receive, decode, dispatch until stop_event is set (runs in background thread)."""
        buffer = bytearray(self._buffer_size)
        view = memoryview(buffer)
        sock = self._socket

        while not stop_event.is_set():
            try:
                length = sock.recv_into(view, self._buffer_size)
            except socket.timeout:
                # Expected - allows periodic checks for shutdown
                continue
            except OSError as e:
                if stop_event.is_set():
                    # Socket closed after stop_listening(): normal shutdown
                    break
                error = ReceiveError(f"OSCPortIn: Socket error on {self._describe_address()}: {e}")
                error.__cause__ = e
                self._report(error)
                break

            received = datetime.now()

            # A shutdown wakes the receive with an empty read
            if length == 0 and stop_event.is_set():
                break

            Log.debug(f"OSCPortIn: Received {length} bytes")
            self.process_datagram(view, length, received)

        Log.debug("OSCPortIn: Listen loop exited")

    def process_datagram(self, data, length: Optional[int] = None, received: Optional[datetime] = None) -> None:
        """
        Decode one datagram and dispatch it.

        Decode failures go to the error handler and never propagate.
        """
        try:
            packet = self._converter.convert(data, length)
        except OSCDecodeError as e:
            self._report(e)
            return
        except Exception as e:
            # A converter bug must not end the loop either
            error = OSCDecodeError(f"Unexpected {type(e).__name__} while decoding: {e}")
            error.__cause__ = e
            self._report(error)
            return
        self._dispatcher.dispatch_packet(packet, received)

    def _report(self, error: Exception) -> None:
        if self._error_handler is None:
            Log.error(f"OSCPortIn: {error}", exc_info=error)
            return
        try:
            self._error_handler(error)
        except Exception as handler_error:
            Log.error(f"OSCPortIn: Error handler failed: {handler_error}")

    def _describe_address(self) -> str:
        try:
            host, port = self.local_address
        except OSError:
            return "<closed socket>"
        return f"{host}:{port}"

    def __repr__(self) -> str:
        state = "listening" if self.is_listening else "stopped"
        return f"OSCPortIn({self._describe_address()}, {state})"


def _validate(buffer_size: int, encoding: str, receive_timeout: Optional[float]) -> None:
    """Reuse PortInSettings validation for the parts a caller-supplied socket still needs."""
    settings = PortInSettings(
        buffer_size=buffer_size,
        encoding=encoding,
        receive_timeout=receive_timeout,
    )
    settings.raise_if_invalid()


def open_udp_socket(address: str, port: int, reuse_address: bool = False) -> socket.socket:
    """
    Create and bind a UDP socket.

    Raises:
        PortBindError: If the socket cannot be created or bound
    """
    try:
        infos = socket.getaddrinfo(address, port, type=socket.SOCK_DGRAM)
    except (socket.gaierror, OverflowError) as e:
        raise PortBindError(address, port, str(e)) from e

    family, sock_type, proto, _, sockaddr = infos[0]
    sock = socket.socket(family, sock_type, proto)
    try:
        if reuse_address:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(sockaddr)
    except OSError as e:
        sock.close()
        raise PortBindError(address, port, str(e)) from e

    Log.debug(f"OSCPortIn: Bound UDP socket to {address}:{port}")
    return sock


