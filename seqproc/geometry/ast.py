"""
Abstract syntax tree of a geometry string.

Every node is an immutable dataclass. The unions at the bottom of the module
(:data:`Segment`, :data:`BoundedSegment`, :data:`SegmentComposite`) are closed:
the parser never produces anything else and the compiler matches on them
exhaustively.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union

__all__ = [
        'SegmentType',
        'Num',
        'Label',
        'Sequence',
        'SegmentData',
        'Range',
        'FixedLength',
        'FixedSequence',
        'Ranged',
        'Unbounded',
        'Segment',
        'Fixed',
        'VariableLenToSequence',
        'BoundedSegment',
        'BoundedToMaybeRangedOrUnbounded',
        'VariableLen',
        'SegmentComposite',
        'ReadDescription',
]


class SegmentType(Enum):
    """Semantic role of a region. Only ``DISCARD`` is removed from the output."""
    BARCODE = 'b'
    UMI = 'u'
    SEQUENCE = 'f'
    READ = 'r'
    DISCARD = 'x'

    @classmethod
    def from_char(cls, char: str) -> "SegmentType":
        try:
            return cls(char)
        except ValueError:
            raise ValueError(f"Unexpected segment type: {char!r}. Valid types are: {[s.value for s in cls]}")

    @property
    def is_discard(self) -> bool:
        return self is SegmentType.DISCARD


@dataclass(frozen=True)
class Num:
    value: int


@dataclass(frozen=True)
class Label:
    name: str


@dataclass(frozen=True)
class Sequence:
    nucleotides: str


SegmentData = Union[Num, Label, Sequence]


@dataclass(frozen=True)
class Range:
    """Inclusive length bounds ``[lower, upper]``"""
    lower: int
    upper: int

    def __contains__(self, length: int) -> bool:
        return self.lower <= length <= self.upper


# `label` holds the optional <name> annotation. It is kept for reference only
# and never takes part in equality or compilation.

@dataclass(frozen=True)
class FixedLength:
    segment_type: SegmentType
    length: int
    label: Optional[str] = field(default=None, compare=False)


@dataclass(frozen=True)
class FixedSequence:
    segment_type: SegmentType
    sequence: str
    label: Optional[str] = field(default=None, compare=False)


@dataclass(frozen=True)
class Ranged:
    segment_type: SegmentType
    range: Range
    label: Optional[str] = field(default=None, compare=False)


@dataclass(frozen=True)
class Unbounded:
    segment_type: SegmentType
    label: Optional[str] = field(default=None, compare=False)


Segment = Union[FixedLength, FixedSequence, Ranged, Unbounded]


@dataclass(frozen=True)
class Fixed:
    """A standalone fixed-length or fixed-sequence segment"""
    segment: Segment


@dataclass(frozen=True)
class VariableLenToSequence:
    """A ranged or unbounded region whose end is found by locating ``anchor``"""
    variable: Segment
    anchor: Segment


BoundedSegment = Union[Fixed, VariableLenToSequence]


@dataclass(frozen=True)
class BoundedToMaybeRangedOrUnbounded:
    bounded: Tuple[BoundedSegment, ...]
    trailing: Optional[Segment] = None


@dataclass(frozen=True)
class VariableLen:
    segment: Segment


SegmentComposite = Union[BoundedToMaybeRangedOrUnbounded, VariableLen]


@dataclass(frozen=True)
class ReadDescription:
    mate_index: int
    description: SegmentComposite

    @property
    def mate_tag(self) -> str:
        """Field namespace of the mate, e.g. ``seq1``"""
        return f"seq{self.mate_index}"
