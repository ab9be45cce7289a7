"""
Read-processing pipeline
=========================

Compiles read descriptions into ordered field operations and runs them over
paired FASTQ files.

Components
---------

Types (:mod:`.types`)
    Operation descriptors

    - :class:`.Cut`, :class:`.MatchAnchor`, :class:`.LengthInBounds`, :class:`.Pad`, :class:`.Trim`
    - :class:`.GeometryPlan`: operations of both mates

Compiler (:mod:`.compiler`)
    - :func:`.compile_geometry`: geometry string to :class:`.GeometryPlan`
    - :func:`.compile_read`: one mate

Executor (:mod:`.executor`)
    - :class:`.PairedReadProcessor`: applies a plan to paired records
    - :class:`.FilterReport`: records dropped per operation
"""

from .types import (
        Cut,
        MatchAnchor,
        LengthInBounds,
        Pad,
        Trim,
        GeometryPlan,
)
from .compiler import compile_geometry, compile_read
from .executor import PairedReadProcessor, FilterReport, open_paired_stream, write_paired

__all__ = [
    'Cut',
    'MatchAnchor',
    'LengthInBounds',
    'Pad',
    'Trim',
    'GeometryPlan',
    'compile_geometry',
    'compile_read',
    'PairedReadProcessor',
    'FilterReport',
    'open_paired_stream',
    'write_paired',
]
