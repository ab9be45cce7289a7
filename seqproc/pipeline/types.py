"""
Operation descriptors handed from the compiler to an executor.

Each operation is a plain immutable record. Fields are addressed with the
label syntax ``seqN.name`` where ``N`` is the mate and ``seqN.*`` is the whole
read. A transform expression maps one source field onto derived fields, e.g.
``seq1.* -> seq1._l, seq1._r``.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, NamedTuple, Optional, Tuple, Union

__all__ = [
        'ALL_RECORDS',
        'AlignmentMode',
        'MatchType',
        'LeftEnd',
        'RightEnd',
        'EndIdx',
        'TransformExpr',
        'Cut',
        'MatchAnchor',
        'LengthInBounds',
        'Pad',
        'Trim',
        'Operation',
        'Frontier',
        'MatePlan',
        'GeometryPlan',
]

# empty selector, every record
ALL_RECORDS = ""


class AlignmentMode(Enum):
    PREFIX = 'prefix'
    LOCAL = 'local'


@dataclass(frozen=True)
class MatchType:
    """How an anchor is located in its source field.

    ``identity`` is the fraction of anchor bases that must match and
    ``overlap`` the fraction of the anchor that must be covered.
    """
    mode: AlignmentMode
    identity: float = 1.0
    overlap: float = 1.0

    def __str__(self):
        return f"{self.mode.value}(identity={self.identity}, overlap={self.overlap})"


@dataclass(frozen=True)
class LeftEnd:
    """Index counted from the left end of a field"""
    index: int


@dataclass(frozen=True)
class RightEnd:
    """Index counted from the right end of a field"""
    index: int


EndIdx = Union[LeftEnd, RightEnd]


class TransformExpr(NamedTuple):
    source: str
    targets: Tuple[str, ...]

    def __str__(self):
        return f"{self.source} -> {', '.join(self.targets)}"


@dataclass(frozen=True)
class Cut:
    transform: TransformExpr
    index: EndIdx
    selector: str = ALL_RECORDS

    def describe(self) -> str:
        return f"cut({self.transform}, {self.index})"


@dataclass(frozen=True)
class MatchAnchor:
    """Locate ``pattern`` in the source field, keep records where ``retain`` holds"""
    transform: TransformExpr
    pattern: str
    match_type: MatchType
    retain: str
    selector: str = ALL_RECORDS

    def describe(self) -> str:
        return f"match_anchor({self.transform}, {self.pattern!r}, {self.match_type}) + retain({self.retain})"


@dataclass(frozen=True)
class LengthInBounds:
    """Flag whether a field length lies in ``[minimum, maximum]`` (inclusive)"""
    transform: TransformExpr
    minimum: int
    maximum: int
    retain: str
    selector: str = ALL_RECORDS

    def describe(self) -> str:
        return f"length_in_bounds({self.transform}, [{self.minimum}, {self.maximum}]) + retain({self.retain})"


@dataclass(frozen=True)
class Pad:
    labels: Tuple[str, ...]
    length: int
    selector: str = ALL_RECORDS

    def describe(self) -> str:
        return f"pad({', '.join(self.labels)}, {self.length})"


@dataclass(frozen=True)
class Trim:
    labels: Tuple[str, ...]
    selector: str = ALL_RECORDS

    def describe(self) -> str:
        return f"trim({', '.join(self.labels)})"


Operation = Union[Cut, MatchAnchor, LengthInBounds, Pad, Trim]


@dataclass(frozen=True)
class Frontier:
    """Unconsumed remainder of one mate during compilation.

    ``depth`` counts the bounded segments consumed so far and ``offset`` is
    the byte position of the frontier while it is still known, i.e. while
    only fixed-length segments have been consumed. ``tags`` lists the field
    labels produced by the consumed segments.
    """
    mate_index: int
    depth: int = 0
    offset: Optional[int] = 0
    tags: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def mate_tag(self) -> str:
        return f"seq{self.mate_index}"

    @property
    def stem(self) -> str:
        return f"{self.mate_tag}." + "_r" * self.depth

    @property
    def source(self) -> str:
        """Label addressing everything not yet consumed"""
        return f"{self.mate_tag}.*" if self.depth == 0 else self.stem

    def field(self, suffix: str) -> str:
        """Label of a part split off the frontier, e.g. ``seq1._r_l``"""
        return f"{self.stem}_{suffix}"

    def advance(self, consumed: Optional[int], *tags: str) -> "Frontier":
        """Frontier after consuming ``consumed`` bytes (``None`` if not known up front)"""
        offset = None if self.offset is None or consumed is None else self.offset + consumed
        return Frontier(self.mate_index, self.depth + 1, offset, self.tags + tags)


@dataclass(frozen=True)
class MatePlan:
    mate_index: int
    operations: Tuple[Operation, ...]

    def __iter__(self) -> Iterator[Operation]:
        return iter(self.operations)

    def __len__(self) -> int:
        return len(self.operations)


@dataclass(frozen=True)
class GeometryPlan:
    """Compiled geometry, one operation list per mate in geometry order"""
    geometry: str
    mates: Tuple[MatePlan, ...]

    def __iter__(self) -> Iterator[Operation]:
        for mate in self.mates:
            yield from mate.operations

    def by_mate(self) -> Dict[int, MatePlan]:
        return {mate.mate_index: mate for mate in self.mates}

    def describe(self) -> str:
        lines = [f"geometry: {self.geometry}"]
        for mate in self.mates:
            lines.append(f"mate {mate.mate_index}:")
            if not mate.operations:
                lines.append("  (pass-through)")
            lines.extend(f"  {op.describe()}" for op in mate.operations)
        return "\n".join(lines)
