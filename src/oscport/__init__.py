"""
oscport - inbound Open Sound Control over UDP.

Receives datagrams on a socket, decodes them into OSC messages and bundles,
and calls every listener whose address selector matches.

Usage:
    from oscport import OSCPortIn

    with OSCPortIn.from_port(57110) as receiver:
        receiver.add_listener("/synth/*/volume", on_volume)
        receiver.start_listening()
        ...
"""

__version__ = "0.1.0"

from oscport.application import (
    ListenerRegistration,
    OSCPacketDispatcher,
    OSCPortIn,
)
from oscport.domain import (
    AddressSelector,
    ExactAddressSelector,
    OSCBundle,
    OSCMessage,
    OSCTimeTag,
    PatternAddressSelector,
)
from oscport.errors import (
    AddressPatternError,
    ConfigurationError,
    ListenerError,
    OSCDecodeError,
    OSCPortError,
    PortBindError,
    ReceiveError,
)
from oscport.infrastructure import OSCPacketConverter
from oscport.settings import MAX_BUFFER_SIZE, PortInSettings

__all__ = [
    'ListenerRegistration',
    'OSCPacketDispatcher',
    'OSCPortIn',
    'AddressSelector',
    'ExactAddressSelector',
    'OSCBundle',
    'OSCMessage',
    'OSCTimeTag',
    'PatternAddressSelector',
    'AddressPatternError',
    'ConfigurationError',
    'ListenerError',
    'OSCDecodeError',
    'OSCPortError',
    'PortBindError',
    'ReceiveError',
    'OSCPacketConverter',
    'MAX_BUFFER_SIZE',
    'PortInSettings',
]
