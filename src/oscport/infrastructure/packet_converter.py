"""
OSC Packet Converter

Turns raw UDP datagram bytes into OSCMessage / OSCBundle objects.

Strings (including the address) are decoded with a configurable text
encoding. Fixed-width numeric arguments are read with python-osc's
osc_types helpers.

Usage:
    converter = OSCPacketConverter(encoding="utf-8")
    packet = converter.convert(buffer, length)
"""

import codecs
import struct
from typing import Any, List, Optional, Tuple, Union

from pythonosc.parsing import osc_types

from oscport.domain.osc_packet import (
    IMPULSE,
    OSCBundle,
    OSCColor,
    OSCMessage,
    OSCMidiMessage,
    OSCPacket,
    OSCTimeTag,
)
from oscport.errors import OSCDecodeError


BUNDLE_PREFIX = b"#bundle\x00"
DEFAULT_ENCODING = "utf-8"
# Outermost bundle is depth 1; a 64 KB datagram could otherwise nest ~3000 deep
MAX_BUNDLE_DEPTH = 32

_INT64 = struct.Struct(">q")
_UINT64 = struct.Struct(">Q")


def align_to_4(pos: int) -> int:
    """Align position to 4-byte boundary."""
    return (pos + 3) & ~3


class OSCPacketConverter:
    """
    Decoder for OSC 1.0/1.1 packets.

    Handles:
    - Messages: padded address, type tag string, arguments
    - Bundles: '#bundle', time tag, size-prefixed elements (nested)
    - Type tags i f s S b h t d c r m T F N I and [ ] arrays

    Any malformed input raises OSCDecodeError; nothing is silently skipped.
    """

    def __init__(self, encoding: str = DEFAULT_ENCODING):
        # Fail on unknown codecs at construction, not on the first datagram
        codecs.lookup(encoding)
        self._encoding = encoding

    @property
    def encoding(self) -> str:
        return self._encoding

    def convert(self, data: Union[bytes, bytearray, memoryview], length: Optional[int] = None) -> OSCPacket:
        """
        Decode one datagram.

        Args:
            data: Buffer holding the datagram
            length: Number of valid bytes in data (whole buffer when None)

        Returns:
            OSCMessage or OSCBundle

        Raises:
            OSCDecodeError: If the bytes are not a well-formed packet
        """
        if length is None:
            length = len(data)
        if length < 0 or length > len(data):
            raise OSCDecodeError(f"Invalid datagram length {length} for buffer of {len(data)} bytes")

        dgram = bytes(data[:length])
        if not dgram:
            raise OSCDecodeError("Empty datagram", offset=0)

        return self._decode_packet(dgram)

    # =========================================================================
    # Packets
    # =========================================================================

    def _decode_packet(self, dgram: bytes, depth: int = 0) -> OSCPacket:
        if dgram.startswith(BUNDLE_PREFIX):
            return self._decode_bundle(dgram, depth + 1)
        if dgram[:1] == b"/":
            return self._decode_message(dgram)
        raise OSCDecodeError("Packet is neither a message nor a bundle", offset=0)

    def _decode_bundle(self, dgram: bytes, depth: int = 1) -> OSCBundle:
        if depth > MAX_BUNDLE_DEPTH:
            raise OSCDecodeError(f"Bundles nested deeper than {MAX_BUNDLE_DEPTH} levels", offset=0)

        pos = len(BUNDLE_PREFIX)
        timetag, pos = self._read_timetag(dgram, pos)

        elements: List[OSCPacket] = []
        while pos < len(dgram):
            size, pos = self._read_int(dgram, pos)
            if size <= 0 or size % 4 != 0:
                raise OSCDecodeError(f"Invalid bundle element size {size}", offset=pos - 4)
            end = pos + size
            if end > len(dgram):
                raise OSCDecodeError(f"Bundle element of {size} bytes exceeds datagram", offset=pos)
            try:
                elements.append(self._decode_packet(dgram[pos:end], depth))
            except OSCDecodeError as e:
                # Report offsets relative to the outer datagram
                offset = pos + e.offset if e.offset is not None else pos
                reason = e.reason if e.reason.startswith("Bad bundle element: ") else f"Bad bundle element: {e.reason}"
                raise OSCDecodeError(reason, offset=offset) from e
            pos = end

        return OSCBundle(timetag=timetag, elements=tuple(elements))

    def _decode_message(self, dgram: bytes) -> OSCMessage:
        address, pos = self._read_string(dgram, 0)

        # Some senders omit the type tag string entirely when there are no arguments
        if pos >= len(dgram):
            return OSCMessage(address=address)

        if dgram[pos:pos + 1] != b",":
            raise OSCDecodeError("Type tag string must start with ','", offset=pos)
        type_tags, pos = self._read_string(dgram, pos)
        type_tags = type_tags[1:]

        arguments, pos = self._read_arguments(dgram, pos, type_tags)
        return OSCMessage(address=address, arguments=tuple(arguments), type_tags=type_tags)

    # =========================================================================
    # Arguments
    # =========================================================================

    def _read_arguments(self, dgram: bytes, pos: int, type_tags: str) -> Tuple[List[Any], int]:
        stack: List[List[Any]] = [[]]

        for index, tag in enumerate(type_tags):
            current = stack[-1]
            if tag == "[":
                stack.append([])
                continue
            if tag == "]":
                if len(stack) == 1:
                    raise OSCDecodeError(f"Unbalanced ']' at type tag {index}", offset=pos)
                finished = stack.pop()
                stack[-1].append(finished)
                continue

            value, pos = self._read_argument(dgram, pos, tag)
            current.append(value)

        if len(stack) != 1:
            raise OSCDecodeError("Unterminated '[' in type tags", offset=pos)
        return stack[0], pos

    def _read_argument(self, dgram: bytes, pos: int, tag: str) -> Tuple[Any, int]:
        if tag == "i":
            return self._read_int(dgram, pos)
        if tag == "f":
            return self._read_fixed(osc_types.get_float, dgram, pos, 4)
        if tag in ("s", "S"):
            return self._read_string(dgram, pos)
        if tag == "b":
            size, _ = self._read_int(dgram, pos)
            if size < 0:
                raise OSCDecodeError(f"Negative blob size {size}", offset=pos)
            return self._read_fixed(osc_types.get_blob, dgram, pos, 4 + size)
        if tag == "h":
            self._require(dgram, pos, 8)
            return _INT64.unpack_from(dgram, pos)[0], pos + 8
        if tag == "t":
            return self._read_timetag(dgram, pos)
        if tag == "d":
            return self._read_fixed(osc_types.get_double, dgram, pos, 8)
        if tag == "c":
            code, pos = self._read_int(dgram, pos)
            try:
                return chr(code), pos
            except (ValueError, OverflowError) as e:
                raise OSCDecodeError(f"Invalid char code {code}", offset=pos - 4) from e
        if tag == "r":
            self._require(dgram, pos, 4)
            return OSCColor(*dgram[pos:pos + 4]), pos + 4
        if tag == "m":
            self._require(dgram, pos, 4)
            return OSCMidiMessage(*dgram[pos:pos + 4]), pos + 4
        if tag == "T":
            return True, pos
        if tag == "F":
            return False, pos
        if tag == "N":
            return None, pos
        if tag == "I":
            return IMPULSE, pos
        raise OSCDecodeError(f"Unknown type tag {tag!r}", offset=pos)

    # =========================================================================
    # Primitives
    # =========================================================================

    def _require(self, dgram: bytes, pos: int, size: int) -> None:
        if pos + size > len(dgram):
            raise OSCDecodeError(f"Datagram too short, need {size} bytes", offset=pos)

    def _read_fixed(self, reader, dgram: bytes, pos: int, size: int) -> Tuple[Any, int]:
        # osc_types pads short floats instead of failing, so check length first
        self._require(dgram, pos, size)
        try:
            return reader(dgram, pos)
        except osc_types.ParseError as e:
            raise OSCDecodeError(str(e), offset=pos) from e

    def _read_int(self, dgram: bytes, pos: int) -> Tuple[int, int]:
        return self._read_fixed(osc_types.get_int, dgram, pos, 4)

    def _read_timetag(self, dgram: bytes, pos: int) -> Tuple[OSCTimeTag, int]:
        self._require(dgram, pos, 8)
        return OSCTimeTag.from_raw(_UINT64.unpack_from(dgram, pos)[0]), pos + 8

    def _read_string(self, dgram: bytes, pos: int) -> Tuple[str, int]:
        """Read a null-terminated, 4-byte padded string."""
        end = dgram.find(b"\x00", pos)
        if end == -1:
            raise OSCDecodeError("Unterminated string", offset=pos)
        try:
            text = dgram[pos:end].decode(self._encoding)
        except UnicodeDecodeError as e:
            raise OSCDecodeError(f"String is not valid {self._encoding}: {e.reason}", offset=pos) from e

        next_pos = align_to_4(end + 1)
        if next_pos > len(dgram):
            raise OSCDecodeError("String padding runs past end of datagram", offset=end)
        return text, next_pos
