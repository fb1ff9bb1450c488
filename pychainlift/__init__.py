"""
pychainlift - genome coordinate liftover over UCSC chain files
"""

__version__ = '0.1.0'

from ._shared import CONFIG, FORWARD, REVERSE
from .chain import Block, Chain, build_blocks
from .engine import LiftBatch, LiftoverEngine, load
from .index import (
    BlockHit,
    ChainLookup,
    IndexedChainIndex,
    NaiveChainIndex,
    build_index,
    chains_frame,
)
from .mapper import (
    CoordinateMapper,
    MappedCoordinate,
    MappedSegment,
    QueryCoordinate,
    Unmapped,
    UnmappedReason,
    UnmappedSegment,
)
from .parse import ChainFormatError, ParseErrorKind, format_chains, parse_chains

__all__ = [
    "CONFIG",
    "FORWARD",
    "REVERSE",
    "Block",
    "BlockHit",
    "Chain",
    "ChainFormatError",
    "ChainLookup",
    "CoordinateMapper",
    "IndexedChainIndex",
    "LiftBatch",
    "LiftoverEngine",
    "MappedCoordinate",
    "MappedSegment",
    "NaiveChainIndex",
    "ParseErrorKind",
    "QueryCoordinate",
    "Unmapped",
    "UnmappedReason",
    "UnmappedSegment",
    "build_blocks",
    "build_index",
    "chains_frame",
    "format_chains",
    "load",
    "parse_chains",
]
