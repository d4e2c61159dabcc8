"""
Exceptions raised and reported by oscport.

Construction problems are raised to the caller. Problems found while the
receive loop is running (bad datagrams, failing listeners, socket failures)
are handed to the port's error handler instead, see ErrorHandler.
"""
from typing import Callable, Optional


class OSCPortError(Exception):
    """Base exception for oscport."""
    pass


class ConfigurationError(OSCPortError):
    """
    Invalid construction input (buffer size, encoding, timeout, port).

    Raised before any socket is opened.
    """

    def __init__(self, message: str, field_name: Optional[str] = None):
        self.message = message
        self.field_name = field_name
        full_message = f"{field_name}: {message}" if field_name and not message.startswith(field_name) else message
        super().__init__(full_message)


class PortBindError(OSCPortError):
    """Raised when a UDP socket cannot be opened or bound."""

    def __init__(self, address: str, port: int, reason: str = ""):
        self.address = address
        self.port = port
        message = f"Could not bind UDP socket to {address}:{port}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class AddressPatternError(OSCPortError, ValueError):
    """Raised for a malformed OSC address pattern."""

    def __init__(self, pattern: str, position: int, reason: str):
        self.pattern = pattern
        self.position = position
        self.reason = reason
        super().__init__(f"Invalid address pattern {pattern!r} at index {position}: {reason}")


class OSCDecodeError(OSCPortError):
    """Raised when a datagram is not a well-formed OSC packet."""

    def __init__(self, message: str, offset: Optional[int] = None):
        self.reason = message
        self.offset = offset
        if offset is not None:
            message = f"{message} (offset {offset})"
        super().__init__(message)


class ListenerError(OSCPortError):
    """Wraps an exception raised by a listener while a message was dispatched."""

    def __init__(self, address: str, listener):
        self.address = address
        self.listener = listener
        super().__init__(f"Listener {listener!r} failed for {address}")


class ReceiveError(OSCPortError):
    """Socket failure that ended a receive loop."""
    pass


# Error sink signature: receives every non-fatal and fatal runtime error
ErrorHandler = Callable[[Exception], None]
