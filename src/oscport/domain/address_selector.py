"""
Address Selectors

Decide whether a message address is eligible for a listener.

Two selectors ship with the library:
    ExactAddressSelector("/ping")            - literal, case-sensitive equality
    PatternAddressSelector("/synth/*/vol?")  - OSC address pattern

Pattern grammar (evaluated over the whole address, '/' is not special):
    ?           exactly one character
    *           any run of characters, including none
    [abc]       one character from the set; ranges like [a-z] allowed
    [!abc]      one character not in the set
    {foo,bar}   any one of the comma separated literals
    other       matches itself

Usage:
    selector = selector_for("/mixer/{left,right}/gain")
    selector.matches("/mixer/left/gain")   # True
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, auto
from typing import FrozenSet, Iterable, List, Tuple, Union

from oscport.errors import AddressPatternError


class AddressSelector(ABC):
    """Matching capability with a single operation."""

    @abstractmethod
    def matches(self, address: str) -> bool:
        """Return True if a message sent to address should be delivered."""

    def __call__(self, address: str) -> bool:
        return self.matches(address)


@dataclass(frozen=True)
class ExactAddressSelector(AddressSelector):
    """Matches one address literally. No normalization is applied."""
    address: str

    def matches(self, address: str) -> bool:
        return address == self.address

    def __repr__(self) -> str:
        return f"ExactAddressSelector({self.address!r})"


# =============================================================================
# Pattern compilation
# =============================================================================

class TokenKind(Enum):
    LITERAL = auto()
    ANY_CHAR = auto()
    ANY_RUN = auto()
    CHAR_CLASS = auto()
    ALTERNATION = auto()


@dataclass(frozen=True)
class PatternToken:
    """
    One compiled element of an address pattern.

    Only the fields relevant to the kind are populated:
        LITERAL      text
        CHAR_CLASS   chars, ranges, negated
        ALTERNATION  options
    """
    kind: TokenKind
    text: str = ""
    chars: FrozenSet[str] = frozenset()
    ranges: Tuple[Tuple[str, str], ...] = ()
    negated: bool = False
    options: Tuple[str, ...] = ()

    def accepts(self, char: str) -> bool:
        """Character class membership, honoring negation."""
        inside = char in self.chars or any(low <= char <= high for low, high in self.ranges)
        return inside != self.negated


def _parse_char_class(pattern: str, start: int) -> Tuple[PatternToken, int]:
    """Parse '[...]' starting at the '['. Returns the token and the index after ']'."""
    end = pattern.find("]", start + 1)
    if end == -1:
        raise AddressPatternError(pattern, start, "unterminated '['")

    body = pattern[start + 1:end]
    negated = body.startswith("!")
    if negated:
        body = body[1:]
    if not body:
        raise AddressPatternError(pattern, start, "empty character class")

    chars = set()
    ranges = []
    i = 0
    while i < len(body):
        # A '-' is a range operator only between two characters
        if i + 2 < len(body) and body[i + 1] == "-":
            low, high = body[i], body[i + 2]
            if low > high:
                low, high = high, low
            ranges.append((low, high))
            i += 3
        else:
            chars.add(body[i])
            i += 1

    token = PatternToken(
        kind=TokenKind.CHAR_CLASS,
        chars=frozenset(chars),
        ranges=tuple(ranges),
        negated=negated,
    )
    return token, end + 1


def _parse_alternation(pattern: str, start: int) -> Tuple[PatternToken, int]:
    """Parse '{a,b,c}' starting at the '{'. Returns the token and the index after '}'."""
    end = pattern.find("}", start + 1)
    if end == -1:
        raise AddressPatternError(pattern, start, "unterminated '{'")

    body = pattern[start + 1:end]
    if "{" in body:
        raise AddressPatternError(pattern, start + 1 + body.index("{"), "nested '{'")

    # Longest option first keeps the preferred split stable; matching is exhaustive anyway
    options = tuple(sorted(set(body.split(",")), key=lambda option: (-len(option), option)))
    return PatternToken(kind=TokenKind.ALTERNATION, options=options), end + 1


def compile_pattern(pattern: str) -> Tuple[PatternToken, ...]:
    """
    Compile an address pattern into a flat token sequence.

    Raises:
        AddressPatternError: For unterminated or empty brackets/braces
    """
    tokens: List[PatternToken] = []
    literal: List[str] = []

    def flush_literal():
        if literal:
            tokens.append(PatternToken(kind=TokenKind.LITERAL, text="".join(literal)))
            literal.clear()

    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "?":
            flush_literal()
            tokens.append(PatternToken(kind=TokenKind.ANY_CHAR))
            i += 1
        elif char == "*":
            flush_literal()
            # Consecutive stars are one star
            if not tokens or tokens[-1].kind is not TokenKind.ANY_RUN:
                tokens.append(PatternToken(kind=TokenKind.ANY_RUN))
            i += 1
        elif char == "[":
            flush_literal()
            token, i = _parse_char_class(pattern, i)
            tokens.append(token)
        elif char == "{":
            flush_literal()
            token, i = _parse_alternation(pattern, i)
            tokens.append(token)
        else:
            literal.append(char)
            i += 1

    flush_literal()
    return tuple(tokens)


def match_tokens(tokens: Tuple[PatternToken, ...], address: str) -> bool:
    """
    Match a compiled pattern against the whole address.

    Fills a table over (token index, address position) from the last token
    backwards. Cost is tokens x address length and the call depth stays
    flat however long the pattern is.
    """
    length = len(address)
    positions = range(length + 1)

    # rest[pos]: the tokens after the current one match address[pos:]
    rest = [pos == length for pos in positions]

    for token in reversed(tokens):
        kind = token.kind
        if kind is TokenKind.ANY_RUN:
            # '*' at pos succeeds if the rest matches at any later position
            current = [False] * (length + 1)
            found = False
            for pos in reversed(positions):
                found = found or rest[pos]
                current[pos] = found
        elif kind is TokenKind.LITERAL:
            size = len(token.text)
            current = [address.startswith(token.text, pos) and rest[pos + size] for pos in positions]
        elif kind is TokenKind.ANY_CHAR:
            current = [pos < length and rest[pos + 1] for pos in positions]
        elif kind is TokenKind.CHAR_CLASS:
            current = [pos < length and token.accepts(address[pos]) and rest[pos + 1] for pos in positions]
        else:
            current = [
                any(address.startswith(option, pos) and rest[pos + len(option)] for option in token.options)
                for pos in positions
            ]
        rest = current

    return rest[0]


class PatternAddressSelector(AddressSelector):
    """
    Matches addresses against an OSC address pattern.

    The pattern is compiled once at construction; a malformed pattern
    fails there rather than at dispatch time.
    """

    def __init__(self, pattern: str):
        if not isinstance(pattern, str):
            raise TypeError(f"Address pattern must be a string, got {type(pattern).__name__}")
        self._pattern = pattern
        self._tokens = compile_pattern(pattern)

    @property
    def pattern(self) -> str:
        return self._pattern

    @property
    def tokens(self) -> Tuple[PatternToken, ...]:
        return self._tokens

    @property
    def is_literal(self) -> bool:
        """True when the pattern contains no operators."""
        return all(token.kind is TokenKind.LITERAL for token in self._tokens)

    def matches(self, address: str) -> bool:
        return match_tokens(self._tokens, address)

    def __eq__(self, other) -> bool:
        if not isinstance(other, PatternAddressSelector):
            return NotImplemented
        return self._pattern == other._pattern

    def __hash__(self) -> int:
        return hash((PatternAddressSelector, self._pattern))

    def __repr__(self) -> str:
        return f"PatternAddressSelector({self._pattern!r})"


def selector_for(selector: Union[str, AddressSelector]) -> AddressSelector:
    """
    Normalize registration input.

    Strings become PatternAddressSelector (a plain address is a pattern
    without operators); selectors are returned unchanged.
    """
    if isinstance(selector, AddressSelector):
        return selector
    if isinstance(selector, str):
        return PatternAddressSelector(selector)
    raise TypeError(f"Expected an address pattern or AddressSelector, got {type(selector).__name__}")


class AnyAddressSelector(AddressSelector):
    """Matches when any of the wrapped selectors matches."""

    def __init__(self, selectors: Iterable[Union[str, AddressSelector]]):
        self._selectors = tuple(selector_for(s) for s in selectors)
        if not self._selectors:
            raise ValueError("AnyAddressSelector needs at least one selector")

    @property
    def selectors(self) -> Tuple[AddressSelector, ...]:
        return self._selectors

    def matches(self, address: str) -> bool:
        return any(selector.matches(address) for selector in self._selectors)

    def __eq__(self, other) -> bool:
        if not isinstance(other, AnyAddressSelector):
            return NotImplemented
        return self._selectors == other._selectors

    def __hash__(self) -> int:
        return hash((AnyAddressSelector, self._selectors))

    def __repr__(self) -> str:
        return f"AnyAddressSelector({list(self._selectors)!r})"
