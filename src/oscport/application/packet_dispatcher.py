"""
OSC Packet Dispatcher

Routes decoded OSC packets to the listeners whose selector matches the
message address.

Usage:
    dispatcher = OSCPacketDispatcher()

    dispatcher.add_listener("/synth/*/volume", on_volume)
    dispatcher.add_listener(ExactAddressSelector("/ping"), on_ping)

    dispatcher.dispatch_packet(packet)

Thread Safety:
- add/remove/clear may be called from any thread, including from inside a
  listener while a dispatch is running
- The registry is copy-on-write: every mutation swaps in a new tuple under a
  lock, and a dispatch iterates the tuple it read when it began
"""

from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Callable, Optional, Tuple, Union

from oscport.domain.address_selector import AddressSelector, selector_for
from oscport.domain.osc_packet import OSCBundle, OSCMessage, OSCPacket
from oscport.errors import ErrorHandler, ListenerError
from oscport.utils.message import Log


# Listener signature: (receive time, message) -> None
MessageListener = Callable[[datetime, OSCMessage], None]


@dataclass(frozen=True)
class ListenerRegistration:
    """One selector paired with one listener."""
    selector: AddressSelector
    listener: MessageListener


class OSCPacketDispatcher:
    """
    Dispatcher for routing OSC packets to listeners.

    Bundles are flattened depth first; every message is offered to every
    registration in registration order. A failing listener is reported to
    the error handler and does not stop the remaining ones.
    """

    def __init__(self, error_handler: Optional[ErrorHandler] = None):
        self._lock = Lock()
        self._registrations: Tuple[ListenerRegistration, ...] = ()
        self._error_handler = error_handler

    @property
    def registrations(self) -> Tuple[ListenerRegistration, ...]:
        """Current registry snapshot."""
        return self._registrations

    def __len__(self) -> int:
        return len(self._registrations)

    def set_error_handler(self, error_handler: Optional[ErrorHandler]) -> None:
        self._error_handler = error_handler

    def add_listener(
        self,
        selector: Union[str, AddressSelector],
        listener: MessageListener
    ) -> ListenerRegistration:
        """
        Register a listener.

        Args:
            selector: Address pattern string or AddressSelector
            listener: Called with (receive time, message) for each match

        Returns:
            The new registration
        """
        if not callable(listener):
            raise TypeError(f"Listener must be callable, got {type(listener).__name__}")

        registration = ListenerRegistration(selector=selector_for(selector), listener=listener)
        with self._lock:
            self._registrations = self._registrations + (registration,)

        Log.debug(f"OSCPacketDispatcher: Registered listener for {registration.selector!r}")
        return registration

    def remove_listener(
        self,
        listener: MessageListener,
        selector: Union[str, AddressSelector, None] = None
    ) -> bool:
        """
        Unregister a listener.

        Args:
            listener: Listener to remove
            selector: Only remove registrations with this selector (all when None)

        Returns:
            True if any registrations were removed
        """
        wanted = selector_for(selector) if selector is not None else None

        with self._lock:
            before = self._registrations
            self._registrations = tuple(
                r for r in before
                if not (r.listener == listener and (wanted is None or r.selector == wanted))
            )
            removed = len(self._registrations) < len(before)

        if not removed:
            Log.warning(f"OSCPacketDispatcher: No registration found for listener {listener!r}")
        return removed

    def clear(self) -> None:
        """Remove all registrations."""
        with self._lock:
            self._registrations = ()

    def dispatch_packet(self, packet: OSCPacket, timestamp: Optional[datetime] = None) -> None:
        """
        Deliver a packet to all matching listeners.

        Args:
            packet: Decoded message or bundle
            timestamp: Receive time handed to listeners (now when None).
                The same value is used for every message in a bundle.
        """
        if timestamp is None:
            timestamp = datetime.now()

        if isinstance(packet, OSCBundle):
            for element in packet.elements:
                self.dispatch_packet(element, timestamp)
        elif isinstance(packet, OSCMessage):
            self._dispatch_message(packet, timestamp)
        else:
            raise TypeError(f"Cannot dispatch {type(packet).__name__}")

    def _dispatch_message(self, message: OSCMessage, timestamp: datetime) -> None:
        # One read of the snapshot; mutations during this loop land in the next dispatch
        registrations = self._registrations

        for registration in registrations:
            try:
                if not registration.selector.matches(message.address):
                    continue
                registration.listener(timestamp, message)
            except Exception as e:
                error = ListenerError(message.address, registration.listener)
                error.__cause__ = e
                self._report(error)

    def _report(self, error: Exception) -> None:
        if self._error_handler is None:
            Log.error(f"OSCPacketDispatcher: {error}", exc_info=error)
            return
        try:
            self._error_handler(error)
        except Exception as handler_error:
            Log.error(f"OSCPacketDispatcher: Error handler failed: {handler_error}")
