'''
seqproc: geometry driven preprocessing of paired-end reads
'''

from .geometry import parse_geometry, GeometryError
from .pipeline import compile_geometry, PairedReadProcessor

__all__ = [
        'parse_geometry',
        'GeometryError',
        'compile_geometry',
        'PairedReadProcessor',
]

__version__ = "0.1.0"
