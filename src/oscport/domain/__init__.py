"""
Domain layer for oscport.

Packet data model and address selectors. No I/O.
"""
from oscport.domain.osc_packet import (
    IMMEDIATELY,
    IMPULSE,
    OSCBundle,
    OSCColor,
    OSCMessage,
    OSCMidiMessage,
    OSCPacket,
    OSCTimeTag,
)
from oscport.domain.address_selector import (
    AddressSelector,
    AnyAddressSelector,
    ExactAddressSelector,
    PatternAddressSelector,
    selector_for,
)

__all__ = [
    'IMMEDIATELY',
    'IMPULSE',
    'OSCBundle',
    'OSCColor',
    'OSCMessage',
    'OSCMidiMessage',
    'OSCPacket',
    'OSCTimeTag',
    'AddressSelector',
    'AnyAddressSelector',
    'ExactAddressSelector',
    'PatternAddressSelector',
    'selector_for',
]
