"""
Infrastructure layer for oscport.

Wire-format decoding of UDP datagrams.
"""
from oscport.infrastructure.packet_converter import OSCPacketConverter

__all__ = [
    'OSCPacketConverter',
]
