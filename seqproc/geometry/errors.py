from typing import Any, Optional

__all__ = [
        'GeometryError',
        'GeometryParseError',
        'ArityError',
        'MateIndexError',
        'CompilationInvariantError',
]


def _pointer(geometry: str, position: int) -> str:
    """The geometry with a caret under ``position``"""
    return f"  {geometry}\n  {' ' * position}^"


class GeometryError(ValueError):
    """Base class for user-facing problems with a geometry string"""
    pass


class GeometryParseError(GeometryError):
    """Malformed geometry text.

    Args:
        geometry: the full geometry string
        position: 0-based offset of the offending character
        expected: short description of what the parser wanted there
        found: offending text, ``None`` at end of input
    """

    def __init__(self, geometry: str, position: int, expected: str, found: Optional[str] = None):
        self.geometry = geometry
        self.position = position
        self.expected = expected
        self.found = found
        super().__init__(self._render())

    def _render(self) -> str:
        found = "end of input" if self.found is None else repr(self.found)
        return f"expected {self.expected} at position {self.position}, found {found}\n" + _pointer(self.geometry, self.position)


class ArityError(GeometryError):
    """The geometry does not describe exactly two mates.

    ``position`` is the start of the first surplus description, or the end of
    the text when a description is missing. It is ``None`` for descriptions
    that were not parsed from text.
    """

    def __init__(self, count: int, geometry: Optional[str] = None, position: Optional[int] = None):
        self.count = count
        self.geometry = geometry
        self.position = position
        message = f"expected exactly 2 read descriptions, found {count}"
        if geometry is not None and position is not None:
            message = f"{message} at position {position}\n" + _pointer(geometry, position)
        super().__init__(message)


class MateIndexError(GeometryError):
    """The two read descriptions do not name mates 1 and 2"""

    def __init__(self, indices):
        self.indices = tuple(indices)
        super().__init__(f"read descriptions must name mates 1 and 2 once each, found {list(self.indices)}")


class CompilationInvariantError(RuntimeError):
    """The compiler met an AST shape the grammar should never produce.

    This is a defect in seqproc, not a problem with the user's geometry.
    """

    def __init__(self, expected: str, node: Any):
        self.expected = expected
        self.node = node
        super().__init__(f"internal invariant violated: expected {expected}, found {node!r}")
