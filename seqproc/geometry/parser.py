"""
Recursive-descent parser for geometry strings.

A geometry describes both mates of a paired-end read, e.g.::

    1{b[16]u[12]x:}2{r:}

Primitives
    ``b[8]``            fixed length (types ``b``, ``u``, ``r``, ``x``)
    ``f[ACGT]``         fixed anchor sequence, the empty ``f[]`` matches anywhere
    ``x[4-10]``         ranged length
    ``r:``              unbounded
    Every primitive accepts an optional ``<name>`` annotation after its type
    character, e.g. ``b<cell>[16]``.

Composition
    A read is one or more bounded segments optionally followed by a single
    ranged/unbounded segment, or a lone ranged/unbounded segment. A bounded
    segment is a fixed primitive or a ranged/unbounded segment immediately
    followed by an anchor sequence.
    Whitespace is allowed around bounded segments and nowhere else.

Alternatives are tried in order with backtracking; when all of them fail the
error reported is the one that got furthest into the input.
"""
from typing import Callable, List, Optional, TypeVar

import regex

from seqproc.utils.log import Rlogger, call
from .ast import (
        BoundedSegment,
        BoundedToMaybeRangedOrUnbounded,
        Fixed,
        FixedLength,
        FixedSequence,
        Label,
        Num,
        Range,
        Ranged,
        ReadDescription,
        Segment,
        SegmentComposite,
        SegmentType,
        Sequence,
        Unbounded,
        VariableLen,
        VariableLenToSequence,
)
from .errors import ArityError, GeometryParseError

__all__ = [
        'parse_geometry',
        'parse_segment',
        'READ_DESCRIPTION_COUNT',
]

logger = Rlogger().get_logger()

READ_DESCRIPTION_COUNT = 2

TYPE_CHARS = 'burx'
ANCHOR_CHAR = 'f'

INT = regex.compile(r'0|[1-9][0-9]*')
NUCLEOTIDES = regex.compile(r'[ATGC]*')
IDENT = regex.compile(r'<([A-Za-z_][A-Za-z0-9_]*)?>')
WHITESPACE = regex.compile(r'\s*')

T = TypeVar('T')


class _Mismatch(Exception):
    """Recoverable failure of one alternative"""
    def __init__(self, position: int):
        super().__init__(position)
        self.position = position


class _GeometryParser:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self._furthest = -1
        self._expected: List[str] = []
        # offset of every read description, for arity errors
        self.starts: List[int] = []

    # -- low level helpers

    def peek(self) -> Optional[str]:
        return self.text[self.pos] if self.pos < len(self.text) else None

    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def fail(self, expected: str):
        if self.pos > self._furthest:
            self._furthest = self.pos
            self._expected = [expected]
        elif self.pos == self._furthest and expected not in self._expected:
            self._expected.append(expected)
        raise _Mismatch(self.pos)

    def error(self) -> GeometryParseError:
        """Error describing the furthest failure seen so far"""
        position = max(self._furthest, 0)
        found = self.text[position] if position < len(self.text) else None
        return GeometryParseError(self.text, position, " or ".join(self._expected), found)

    def expect(self, char: str) -> None:
        if self.peek() != char:
            self.fail(repr(char))
        self.pos += 1

    def match(self, pattern, expected: str) -> str:
        m = pattern.match(self.text, self.pos)
        if m is None or m.end() == self.pos:
            self.fail(expected)
        self.pos = m.end()
        return m.group(0)

    def skip_whitespace(self) -> None:
        self.pos = WHITESPACE.match(self.text, self.pos).end()

    def attempt(self, *alternatives: Callable[[], T]) -> T:
        start = self.pos
        for alternative in alternatives:
            try:
                return alternative()
            except _Mismatch:
                self.pos = start
        raise _Mismatch(start)

    def optional(self, alternative: Callable[[], T]) -> Optional[T]:
        try:
            return self.attempt(alternative)
        except _Mismatch:
            return None

    # -- segment data

    def integer(self) -> Num:
        return Num(int(self.match(INT, "integer")))

    def nucleotides(self) -> Sequence:
        # may be empty, f[] matches anywhere
        m = NUCLEOTIDES.match(self.text, self.pos)
        self.pos = m.end()
        return Sequence(m.group(0))

    def label(self) -> Optional[Label]:
        if self.peek() != '<':
            return None
        token = self.match(IDENT, "label of the form '<name>'")
        return Label(token[1:-1])

    def segment_type(self) -> SegmentType:
        char = self.peek()
        if char is None or char not in TYPE_CHARS:
            self.fail(f"segment type (one of {', '.join(TYPE_CHARS)})")
        self.pos += 1
        return SegmentType.from_char(char)

    # -- primitives

    def fixed(self) -> FixedLength:
        segment_type = self.segment_type()
        label = self.label()
        self.expect('[')
        size = self.integer()
        self.expect(']')
        return FixedLength(segment_type, size.value, _name(label))

    def fixed_sequence(self) -> FixedSequence:
        if self.peek() != ANCHOR_CHAR:
            self.fail(f"anchor sequence '{ANCHOR_CHAR}[...]'")
        self.pos += 1
        label = self.label()
        self.expect('[')
        sequence = self.nucleotides()
        if self.peek() != ']':
            self.fail("nucleotide (A, T, G, C) or ']'")
        self.pos += 1
        return FixedSequence(SegmentType.SEQUENCE, sequence.nucleotides, _name(label))

    def ranged(self) -> Ranged:
        segment_type = self.segment_type()
        label = self.label()
        self.expect('[')
        range_start = self.pos
        lower = self.integer()
        self.expect('-')
        upper = self.integer()
        self.expect(']')
        if lower.value > upper.value:
            # not recoverable by trying another alternative
            raise GeometryParseError(
                    self.text,
                    range_start,
                    "range with lower bound <= upper bound",
                    f"{lower.value}-{upper.value}")
        return Ranged(segment_type, Range(lower.value, upper.value), _name(label))

    def unbounded(self) -> Unbounded:
        segment_type = self.segment_type()
        label = self.label()
        self.expect(':')
        return Unbounded(segment_type, _name(label))

    def variable(self) -> Segment:
        return self.attempt(self.ranged, self.unbounded)

    def primitive(self) -> Segment:
        return self.attempt(self.fixed, self.fixed_sequence, self.ranged, self.unbounded)

    # -- composition

    def bounded(self) -> BoundedSegment:
        self.skip_whitespace()
        segment = self.attempt(
                # fixed-alone first, both alternatives share a leading type char
                lambda: Fixed(self.attempt(self.fixed, self.fixed_sequence)),
                lambda: VariableLenToSequence(self.variable(), self.fixed_sequence()),
        )
        self.skip_whitespace()
        return segment

    def bounded_composite(self) -> BoundedToMaybeRangedOrUnbounded:
        bounded = [self.bounded()]
        while True:
            segment = self.optional(self.bounded)
            if segment is None:
                break
            bounded.append(segment)
        trailing = self.optional(self.variable)
        return BoundedToMaybeRangedOrUnbounded(tuple(bounded), trailing)

    def variable_composite(self) -> VariableLen:
        return VariableLen(self.variable())

    def composite(self) -> SegmentComposite:
        return self.attempt(self.bounded_composite, self.variable_composite)

    def read_description(self) -> ReadDescription:
        mate = self.integer()
        self.expect('{')
        description = self.composite()
        self.expect('}')
        return ReadDescription(mate.value, description)

    def geometry(self) -> List[ReadDescription]:
        descriptions = []
        while not self.at_end():
            self.starts.append(self.pos)
            descriptions.append(self.read_description())
        return descriptions

    def run(self, rule: Callable[[], T]) -> T:
        try:
            result = rule()
            if not self.at_end():
                self.fail("end of input")
            return result
        except _Mismatch:
            raise self.error() from None


def _name(label: Optional[Label]) -> Optional[str]:
    return None if label is None else label.name


@call
def parse_geometry(geometry: str) -> List[ReadDescription]:
    """Parse a geometry string into its two read descriptions.

    Raises:
        GeometryParseError: malformed text, reported at the furthest position
            the parser reached
        ArityError: the text holds a number of read descriptions other than two
    """
    parser = _GeometryParser(geometry)
    descriptions = parser.run(parser.geometry)
    if len(descriptions) != READ_DESCRIPTION_COUNT:
        # points at the first extra description, or at the end when one is missing
        if len(descriptions) > READ_DESCRIPTION_COUNT:
            position = parser.starts[READ_DESCRIPTION_COUNT]
        else:
            position = len(geometry)
        raise ArityError(len(descriptions), geometry, position)
    logger.debug(f"parsed {len(descriptions)} read descriptions from {geometry!r}")
    return descriptions


def parse_segment(text: str) -> Segment:
    """Parse a single primitive such as ``b[8]`` or ``f[ACGT]``"""
    parser = _GeometryParser(text)
    return parser.run(parser.primitive)
