"""
Application layer for oscport.

    OSCPacketDispatcher - routes packets to matching listeners
    OSCPortIn           - UDP receive loop feeding a dispatcher
"""
from oscport.application.packet_dispatcher import (
    ListenerRegistration,
    MessageListener,
    OSCPacketDispatcher,
)
from oscport.application.port_in import OSCPortIn, open_udp_socket

__all__ = [
    'ListenerRegistration',
    'MessageListener',
    'OSCPacketDispatcher',
    'OSCPortIn',
    'open_udp_socket',
]
