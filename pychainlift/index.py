"""Reference-side lookup over parsed chains.

Two interchangeable strategies implement :class:`ChainLookup`:

- ``"naive"`` scans every chain on the chromosome, then every block.
- ``"indexed"`` keeps per-chromosome numpy arrays of block starts, ends and
  running-maximum ends sorted by start, so a query is two binary searches
  plus a probe of the few entries that can still overlap.

Both return identical hits in identical order: sorted by reference start,
end, chain id, block offset, with ties kept in chain input order.
"""

import logging as _logging
from typing import NamedTuple, Protocol, runtime_checkable

import numpy as np
import pandas as pd

from ._shared import CONFIG, REVERSE
from .chain import Block, Chain

_logger = _logging.getLogger(__name__)

_STRATEGIES = {"naive", "indexed"}

_EMPTY_CHAIN_COLS = [
    "chrom", "start", "end", "strand",
    "chromsrc", "startsrc", "endsrc", "strandsrc",
    "chain_id", "score",
]


class BlockHit(NamedTuple):
    """A block of a chain together with its absolute reference range."""

    start: int
    end: int
    chain: Chain
    block: Block


@runtime_checkable
class ChainLookup(Protocol):
    """Capability shared by all lookup strategies."""

    strategy: str

    @property
    def chains(self) -> tuple: ...

    @property
    def chromosomes(self) -> tuple: ...

    def blocks_at(self, chrom: str, pos: int) -> list: ...

    def blocks_overlapping(self, chrom: str, start: int, end: int) -> list: ...

    def chains_at(self, chrom: str, pos: int) -> list: ...

    def chains_overlapping(self, chrom: str, start: int, end: int) -> list: ...


def _hit_key(hit):
    return (hit.start, hit.end, hit.chain.chain_id, hit.block.ref_offset)


def _chain_key(chain):
    return (chain.ref_start, chain.ref_end, chain.chain_id)


def _group_by_chrom(chains):
    groups = {}
    for chain in chains:
        groups.setdefault(chain.ref_name, []).append(chain)
    return {chrom: tuple(group) for chrom, group in groups.items()}


def _iter_hits(chain):
    for block in chain.blocks:
        start, end = chain.block_ref_range(block)
        yield BlockHit(start, end, chain, block)


# ===================================================================
# Naive strategy
# ===================================================================

class NaiveChainIndex:
    """Linear-scan lookup, the correctness baseline for small inputs."""

    strategy = "naive"

    def __init__(self, chains):
        self._chains = tuple(chains)
        self._by_chrom = _group_by_chrom(self._chains)

    @property
    def chains(self):
        return self._chains

    @property
    def chromosomes(self):
        return tuple(sorted(self._by_chrom))

    def __len__(self):
        return len(self._chains)

    def blocks_overlapping(self, chrom, start, end):
        if end <= start:
            return []
        hits = []
        for chain in self._by_chrom.get(chrom, ()):
            for hit in _iter_hits(chain):
                if hit.start < end and hit.end > start:
                    hits.append(hit)
        hits.sort(key=_hit_key)
        return hits

    def blocks_at(self, chrom, pos):
        return self.blocks_overlapping(chrom, pos, pos + 1)

    def chains_overlapping(self, chrom, start, end):
        if end <= start:
            return []
        found = [
            chain for chain in self._by_chrom.get(chrom, ())
            if chain.ref_start < end and chain.ref_end > start
        ]
        found.sort(key=_chain_key)
        return found

    def chains_at(self, chrom, pos):
        found = [c for c in self._by_chrom.get(chrom, ()) if c.ref_span_contains(pos)]
        found.sort(key=_chain_key)
        return found


# ===================================================================
# Indexed strategy
# ===================================================================

class _SortedRanges:
    """Half-open ranges sorted by start with a running maximum of ends."""

    __slots__ = ("starts", "ends", "max_ends", "items")

    def __init__(self, ranges):
        # ranges: sequence of (start, end, item), already sorted
        self.starts = np.fromiter((r[0] for r in ranges), dtype=np.int64, count=len(ranges))
        self.ends = np.fromiter((r[1] for r in ranges), dtype=np.int64, count=len(ranges))
        self.max_ends = np.maximum.accumulate(self.ends) if len(ranges) else self.ends.copy()
        for arr in (self.starts, self.ends, self.max_ends):
            arr.flags.writeable = False
        self.items = tuple(r[2] for r in ranges)

    def __len__(self):
        return len(self.items)

    def overlapping(self, start, end):
        # Entries before `lo` all end at or before `start`; entries from
        # `hi` on all start at or after `end`.
        lo = int(np.searchsorted(self.max_ends, start, side="right"))
        hi = int(np.searchsorted(self.starts, end, side="left"))
        if lo >= hi:
            return []
        candidates = np.flatnonzero(self.ends[lo:hi] > start)
        return [self.items[lo + int(i)] for i in candidates]


class IndexedChainIndex:
    """Binary-search lookup over per-chromosome sorted block arrays."""

    strategy = "indexed"

    def __init__(self, chains):
        self._chains = tuple(chains)
        self._blocks = {}
        self._spans = {}

        for chrom, group in _group_by_chrom(self._chains).items():
            hits = [hit for chain in group for hit in _iter_hits(chain)]
            hits.sort(key=_hit_key)
            self._blocks[chrom] = _SortedRanges([(h.start, h.end, h) for h in hits])

            spans = sorted(group, key=_chain_key)
            self._spans[chrom] = _SortedRanges([(c.ref_start, c.ref_end, c) for c in spans])

            _logger.debug(
                "Indexed %s: %d chains, %d blocks", chrom, len(spans), len(hits)
            )

    @property
    def chains(self):
        return self._chains

    @property
    def chromosomes(self):
        return tuple(sorted(self._blocks))

    def __len__(self):
        return len(self._chains)

    def blocks_overlapping(self, chrom, start, end):
        ranges = self._blocks.get(chrom)
        if ranges is None or end <= start:
            return []
        return ranges.overlapping(start, end)

    def blocks_at(self, chrom, pos):
        return self.blocks_overlapping(chrom, pos, pos + 1)

    def chains_overlapping(self, chrom, start, end):
        ranges = self._spans.get(chrom)
        if ranges is None or end <= start:
            return []
        return ranges.overlapping(start, end)

    def chains_at(self, chrom, pos):
        return self.chains_overlapping(chrom, pos, pos + 1)


_INDEX_CLASSES = {
    "naive": NaiveChainIndex,
    "indexed": IndexedChainIndex,
}


def build_index(chains, strategy=None):
    """Build a :class:`ChainLookup` over *chains*.

    Parameters
    ----------
    chains : iterable of Chain
        Parsed chains.
    strategy : str, optional
        ``"indexed"`` or ``"naive"``. Defaults to ``CONFIG['strategy']``.

    Raises
    ------
    ValueError
        If *strategy* is not a known strategy name.
    """
    if strategy is None:
        strategy = CONFIG.get("strategy", "indexed")
    if strategy not in _STRATEGIES:
        raise ValueError(
            f"strategy must be one of {sorted(_STRATEGIES)}, got '{strategy}'"
        )
    return _INDEX_CLASSES[strategy](chains)


# ===================================================================
# Tabular view
# ===================================================================

def _empty_chain_df():
    return pd.DataFrame({
        c: pd.Series(
            dtype="object" if c in ("chrom", "chromsrc") else "int64"
        ) for c in _EMPTY_CHAIN_COLS
    })


def chains_frame(chains):
    """Return one row per alignment block as a pandas DataFrame.

    Columns follow the assembly conversion table layout: ``chrom``,
    ``start``, ``end``, ``strand`` describe the query side in forward
    coordinates, ``chromsrc``, ``startsrc``, ``endsrc``, ``strandsrc`` the
    reference side. Strands are encoded as 0 (``+``) and 1 (``-``).
    """
    rows = []
    for chain in chains:
        strand = 1 if chain.query_strand == REVERSE else 0
        for _block, ref_start, ref_end, query_start, query_end in chain.iter_ranges():
            rows.append({
                "chrom": chain.query_name,
                "start": query_start,
                "end": query_end,
                "strand": strand,
                "chromsrc": chain.ref_name,
                "startsrc": ref_start,
                "endsrc": ref_end,
                "strandsrc": 0,
                "chain_id": chain.chain_id,
                "score": chain.score,
            })
    if not rows:
        return _empty_chain_df()
    return pd.DataFrame(rows)[_EMPTY_CHAIN_COLS]
