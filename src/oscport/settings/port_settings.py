"""
Port settings for inbound OSC.
"""
import codecs
from dataclasses import dataclass
from typing import Optional

from oscport.settings.base_settings import BaseSettings, validated_field


# Buffers were 1500 bytes in size, but were increased to 1536, a common MTU
DEFAULT_BUFFER_SIZE = 1536
MAX_BUFFER_SIZE = 64 * 1024

# SuperCollider's default OSC port
DEFAULT_PORT = 57110
DEFAULT_ENCODING = "utf-8"


def check_encoding(value, field_name: str) -> Optional[str]:
    """Custom validator: value must name a Python codec."""
    if not isinstance(value, str):
        return f"{field_name}: Expected a codec name, got {type(value).__name__}"
    try:
        codecs.lookup(value)
    except LookupError:
        return f"{field_name}: Unknown text encoding '{value}'"
    return None


def check_timeout(value, field_name: str) -> Optional[str]:
    """
    Custom validator: a timeout must be a positive number of seconds.

    0 would put the socket in non-blocking mode, which the receive loop
    does not use; None (checked before custom validators run) means block.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return f"{field_name}: Expected seconds as a number, got {type(value).__name__}"
    if value <= 0:
        return f"{field_name}: Value {value} must be greater than 0 (use None to block)"
    return None


def check_host(value, field_name: str) -> Optional[str]:
    if not isinstance(value, str):
        return f"{field_name}: Expected a host string, got {type(value).__name__}"
    return None


@dataclass
class PortInSettings(BaseSettings):
    """
    Configuration for an OSCPortIn.

    Attributes:
        listen_port: UDP port to bind (0 lets the OS pick one)
        listen_address: Interface to bind to
        buffer_size: Receive buffer in bytes; larger datagrams are truncated
        encoding: Codec for addresses and string arguments
        receive_timeout: Seconds (> 0) a receive may block before re-checking the
            listening flag. None blocks until data arrives or the socket closes.
        reuse_address: Set SO_REUSEADDR before binding
    """
    listen_port: int = validated_field(DEFAULT_PORT, min_value=0, max_value=65535, allow_none=False)
    listen_address: str = validated_field("0.0.0.0", allow_none=False, custom=check_host)
    buffer_size: int = validated_field(DEFAULT_BUFFER_SIZE, min_value=1, max_value=MAX_BUFFER_SIZE, allow_none=False)
    encoding: str = validated_field(DEFAULT_ENCODING, required=True, allow_none=False, custom=check_encoding)
    receive_timeout: Optional[float] = validated_field(None, custom=check_timeout)
    reuse_address: bool = False
