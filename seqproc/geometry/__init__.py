"""
Geometry language
=================

Parsing of geometry strings into their abstract syntax tree.

Components
---------

AST (:mod:`.ast`)
    Immutable node types

    - :class:`.SegmentType`: barcode, UMI, anchor sequence, read or discard
    - :class:`.ReadDescription`: layout of one mate

Parser (:mod:`.parser`)
    - :func:`.parse_geometry`: geometry string to two read descriptions
    - :func:`.parse_segment`: a single primitive such as ``b[8]``

Errors (:mod:`.errors`)
    - :class:`.GeometryParseError`, :class:`.ArityError`, :class:`.MateIndexError`
    - :class:`.CompilationInvariantError`
"""

from .ast import SegmentType, ReadDescription
from .errors import (
        GeometryError,
        GeometryParseError,
        ArityError,
        MateIndexError,
        CompilationInvariantError,
)
from .parser import parse_geometry, parse_segment

__all__ = [
    'SegmentType',
    'ReadDescription',
    'GeometryError',
    'GeometryParseError',
    'ArityError',
    'MateIndexError',
    'CompilationInvariantError',
    'parse_geometry',
    'parse_segment',
]
