"""
OSC Packet Domain Model

Immutable dataclasses for decoded OSC packets.
A packet is either a message (address + arguments) or a bundle
(time tag + nested packets).
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, NamedTuple, Tuple, Union


# Seconds between the NTP epoch (1900-01-01) and the Unix epoch (1970-01-01)
NTP_UNIX_OFFSET = 2208988800
NTP_FRACTION_SCALE = 2 ** 32


@dataclass(frozen=True)
class OSCTimeTag:
    """
    64-bit NTP time tag carried by bundles and 't' arguments.

    Attributes:
        seconds: Seconds since 1900-01-01 UTC
        fraction: Fractional second in units of 1/2**32
    """
    seconds: int
    fraction: int

    @property
    def is_immediate(self) -> bool:
        """The special value 1 means "process immediately"."""
        return self.seconds == 0 and self.fraction == 1

    @property
    def raw(self) -> int:
        return (self.seconds << 32) | self.fraction

    def to_unix(self) -> float:
        return self.seconds - NTP_UNIX_OFFSET + self.fraction / NTP_FRACTION_SCALE

    def to_datetime(self) -> datetime:
        """Time tag as an aware UTC datetime (microsecond precision)."""
        epoch = datetime(1900, 1, 1, tzinfo=timezone.utc)
        return epoch + timedelta(seconds=self.seconds, microseconds=self.fraction * 1_000_000 // NTP_FRACTION_SCALE)

    @classmethod
    def from_raw(cls, value: int) -> "OSCTimeTag":
        return cls(seconds=(value >> 32) & 0xFFFFFFFF, fraction=value & 0xFFFFFFFF)

    def __repr__(self) -> str:
        if self.is_immediate:
            return "OSCTimeTag(IMMEDIATE)"
        return f"OSCTimeTag({self.seconds}, {self.fraction})"


IMMEDIATELY = OSCTimeTag(seconds=0, fraction=1)


class OSCMidiMessage(NamedTuple):
    """4-byte MIDI message ('m')."""
    port: int
    status: int
    data1: int
    data2: int


class OSCColor(NamedTuple):
    """32-bit RGBA color ('r')."""
    red: int
    green: int
    blue: int
    alpha: int


class _Impulse:
    """Argument value of the 'I' type tag. Carries no data."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "IMPULSE"


IMPULSE = _Impulse()


@dataclass(frozen=True)
class OSCMessage:
    """
    A decoded OSC message.

    Attributes:
        address: OSC address (e.g., /synth/3/volume)
        arguments: Decoded argument values in wire order
        type_tags: Type tag string without the leading comma
    """
    address: str
    arguments: Tuple[Any, ...] = ()
    type_tags: str = ""

    def __iter__(self) -> Iterator[Any]:
        return iter(self.arguments)

    def __len__(self) -> int:
        return len(self.arguments)

    def __repr__(self) -> str:
        return f"OSCMessage({self.address}, {list(self.arguments)})"


@dataclass(frozen=True)
class OSCBundle:
    """
    A decoded OSC bundle.

    The time tag is carried through untouched; nothing here schedules
    delivery against it.
    """
    timetag: OSCTimeTag
    elements: Tuple["OSCPacket", ...] = ()

    def __iter__(self) -> Iterator["OSCPacket"]:
        return iter(self.elements)

    def __len__(self) -> int:
        return len(self.elements)

    def messages(self) -> Iterator[OSCMessage]:
        """All messages in this bundle, depth first."""
        for element in self.elements:
            if isinstance(element, OSCBundle):
                yield from element.messages()
            else:
                yield element


OSCPacket = Union[OSCMessage, OSCBundle]
