"""
Shared globals and utilities for pychainlift modules.

Thread-safety note:
`CONFIG` is process-global and not synchronized for concurrent mutation.
Engines read it only at construction time; built engines never consult it
again, so queries are safe to run from any number of threads.
"""

# Configuration dictionary, overridden by explicit keyword arguments
CONFIG = {
    'strategy': 'indexed',          # Default lookup strategy: 'indexed' or 'naive'
    'min_score': None,              # Drop chains scoring below this on load
    'gzip_magic_check': True,       # Transparently decompress gzip input
}

FORWARD = "+"
REVERSE = "-"
_STRANDS = (FORWARD, REVERSE)


def _check_strand(strand):
    """Validate a strand symbol and return it."""
    if strand not in _STRANDS:
        raise ValueError(f"strand must be one of {list(_STRANDS)}, got {strand!r}")
    return strand


def _flip_strand(strand):
    return REVERSE if strand == FORWARD else FORWARD
