"""
Segment compiler: read descriptions to ordered operation lists.

The compiler walks the segments of one mate from left to right while keeping
a :class:`~seqproc.pipeline.types.Frontier`, the part of the read that has not
been assigned yet. Every bounded segment splits the frontier into a consumed
part and a new frontier; the optional trailing segment takes whatever is left.

Compilation is pure. The same description always yields the same operations.
"""
from typing import List, Optional, Sequence, Tuple, Union

from seqproc.geometry.ast import (
        BoundedSegment,
        BoundedToMaybeRangedOrUnbounded,
        Fixed,
        FixedLength,
        FixedSequence,
        Ranged,
        ReadDescription,
        Segment,
        Unbounded,
        VariableLen,
        VariableLenToSequence,
)
from seqproc.geometry.errors import ArityError, CompilationInvariantError, MateIndexError
from seqproc.geometry.parser import parse_geometry
from seqproc.utils.log import Rlogger, call
from .types import (
        AlignmentMode,
        Cut,
        Frontier,
        GeometryPlan,
        LeftEnd,
        LengthInBounds,
        MatchAnchor,
        MatchType,
        MatePlan,
        Operation,
        Pad,
        TransformExpr,
        Trim,
)

__all__ = [
        'compile_read',
        'compile_geometry',
        'MATE_INDICES',
]

logger = Rlogger().get_logger()

MATE_INDICES = (1, 2)

# anchors must be found verbatim
EXACT = dict(identity=1.0, overlap=1.0)


def validate_length(label: str, minimum: int, maximum: int) -> LengthInBounds:
    length_label = f"{label}.v_len"
    return LengthInBounds(TransformExpr(label, (length_label,)), minimum, maximum, retain=length_label)


def locate_anchor(frontier: Frontier, sequence: str, mode: AlignmentMode) -> MatchAnchor:
    """Match ``sequence`` against the frontier.

    A prefix match splits the frontier into ``{anchor, rest}``, a local match
    into ``{left, anchor, rest}`` where ``left`` is everything before the anchor.
    """
    anchor = frontier.field('anchor')
    if mode is AlignmentMode.PREFIX:
        targets: Tuple[str, ...] = (anchor, frontier.field('r'))
    else:
        targets = (frontier.field('l'), anchor, frontier.field('r'))

    return MatchAnchor(
            TransformExpr(frontier.source, targets),
            sequence,
            MatchType(mode, **EXACT),
            retain=anchor)


def compile_fixed(segment: Segment, frontier: Frontier) -> Tuple[List[Operation], Frontier]:
    if isinstance(segment, FixedLength):
        left = frontier.field('l')
        ops: List[Operation] = [
                Cut(TransformExpr(frontier.source, (left, frontier.field('r'))), LeftEnd(segment.length)),
                validate_length(left, segment.length, segment.length),
        ]
        if segment.segment_type.is_discard:
            ops.append(Trim((left,)))
            return ops, frontier.advance(segment.length)
        return ops, frontier.advance(segment.length, left)

    if isinstance(segment, FixedSequence):
        op = locate_anchor(frontier, segment.sequence, AlignmentMode.PREFIX)
        return [op], frontier.advance(len(segment.sequence), frontier.field('anchor'))

    raise CompilationInvariantError("a fixed-length or fixed-sequence segment", segment)


def compile_variable_to_anchor(
        variable: Segment,
        anchor: Segment,
        frontier: Frontier) -> Tuple[List[Operation], Frontier]:
    if not isinstance(anchor, FixedSequence):
        raise CompilationInvariantError("a fixed-sequence anchor", anchor)

    left = frontier.field('l')
    ops: List[Operation] = [locate_anchor(frontier, anchor.sequence, AlignmentMode.LOCAL)]

    if isinstance(variable, Ranged):
        ops.append(validate_length(left, variable.range.lower, variable.range.upper))
        if variable.segment_type.is_discard:
            ops.append(Trim((left,)))
        else:
            # pads to one past the validated upper bound
            ops.append(Pad((left,), variable.range.upper + 1))
    elif isinstance(variable, Unbounded):
        if variable.segment_type.is_discard:
            ops.append(Trim((left,)))
    else:
        raise CompilationInvariantError("a ranged or unbounded segment", variable)

    tags = (frontier.field('anchor'),) if variable.segment_type.is_discard else (left, frontier.field('anchor'))
    return ops, frontier.advance(None, *tags)


def compile_bounded(bounded: BoundedSegment, frontier: Frontier) -> Tuple[List[Operation], Frontier]:
    if isinstance(bounded, Fixed):
        return compile_fixed(bounded.segment, frontier)
    if isinstance(bounded, VariableLenToSequence):
        return compile_variable_to_anchor(bounded.variable, bounded.anchor, frontier)
    raise CompilationInvariantError("a bounded segment", bounded)


def compile_trailing(segment: Segment, frontier: Frontier) -> List[Operation]:
    """Operations for the variable segment that ends a read"""
    if isinstance(segment, Unbounded):
        if segment.segment_type.is_discard:
            return [Trim((frontier.source,))]
        return []

    if isinstance(segment, Ranged):
        left, right = frontier.field('l'), frontier.field('r')
        upper = segment.range.upper
        ops: List[Operation] = [
                # bounds how far the region can extend
                Cut(TransformExpr(frontier.source, (left, right)), LeftEnd(upper)),
                validate_length(left, segment.range.lower, upper),
        ]
        if segment.segment_type.is_discard:
            ops.append(Trim((left, right)))
        else:
            ops.append(Pad((left,), upper + 1))
            ops.append(Trim((right,)))
        return ops

    raise CompilationInvariantError("a ranged or unbounded segment", segment)


def compile_read(read: ReadDescription) -> Tuple[Operation, ...]:
    """Compile one mate into its ordered operations"""
    frontier = Frontier(read.mate_index)
    composite = read.description
    ops: List[Operation] = []

    if isinstance(composite, BoundedToMaybeRangedOrUnbounded):
        for bounded in composite.bounded:
            step_ops, frontier = compile_bounded(bounded, frontier)
            ops.extend(step_ops)
        if composite.trailing is not None:
            ops.extend(compile_trailing(composite.trailing, frontier))
        else:
            # nothing claims the rest of the read
            ops.append(Trim((frontier.source,)))
    elif isinstance(composite, VariableLen):
        ops.extend(compile_trailing(composite.segment, frontier))
    else:
        raise CompilationInvariantError("a segment composite", composite)

    logger.debug(f"{read.mate_tag}: {len(ops)} operations, fields {list(frontier.tags)}, frontier offset {frontier.offset}")
    for op in ops:
        logger.debug(f"  {op.describe()}")
    return tuple(ops)


@call
def compile_geometry(geometry: Union[str, Sequence[ReadDescription]], text: Optional[str] = None) -> GeometryPlan:
    """Parse (if needed) and compile both mates of a geometry.

    Args:
        geometry: geometry string or already parsed read descriptions
        text: original geometry string when descriptions are given

    Raises:
        GeometryParseError, ArityError: see :func:`~seqproc.geometry.parser.parse_geometry`
        MateIndexError: the descriptions do not name mates 1 and 2 once each
        CompilationInvariantError: defect in the compiler
    """
    if isinstance(geometry, str):
        text = geometry
        reads = parse_geometry(geometry)
    else:
        reads = list(geometry)
        if len(reads) != len(MATE_INDICES):
            raise ArityError(len(reads))

    indices = [read.mate_index for read in reads]
    if sorted(indices) != list(MATE_INDICES):
        raise MateIndexError(indices)

    mates = tuple(MatePlan(read.mate_index, compile_read(read)) for read in reads)
    return GeometryPlan(text if text is not None else "", mates)
