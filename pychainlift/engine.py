"""Liftover engine: parse -> index -> query.

An engine is built once from chain-file contents and never mutated
afterwards, so a single instance can serve queries from many threads.
"""

import logging as _logging

import pandas as pd

from ._shared import FORWARD
from .index import build_index, chains_frame
from .mapper import CoordinateMapper, QueryCoordinate
from .parse import format_chains, parse_chains

_logger = _logging.getLogger(__name__)

_LIFTED_COLS = ["chrom", "start", "end", "strand", "intervalID", "chain_id"]


def _as_query(query):
    """Coerce ``(chrom, pos[, strand])`` tuples to QueryCoordinate."""
    if isinstance(query, QueryCoordinate):
        return query
    chrom, pos, *rest = query
    strand = rest[0] if rest else FORWARD
    return QueryCoordinate(chrom, pos, strand=strand)


class LiftBatch:
    """Lazy liftover results for a fixed sequence of queries.

    Every iteration starts over from *start*, and separate iterators do not
    share state, so a batch can be consumed repeatedly or concurrently.
    """

    def __init__(self, engine, queries, start=0):
        if start < 0:
            raise ValueError(f"start must be non-negative, got {start}")
        self._engine = engine
        self._queries = tuple(queries)
        self._start = start

    def __iter__(self):
        lift = self._engine.lift
        for i in range(self._start, len(self._queries)):
            yield lift(self._queries[i])

    def __len__(self):
        return max(len(self._queries) - self._start, 0)

    def from_offset(self, start):
        """Return a batch over the same queries resuming at *start*."""
        return LiftBatch(self._engine, self._queries, start)


class LiftoverEngine:
    """Immutable liftover handle over a set of chains.

    Parameters
    ----------
    chains : iterable of Chain
        Parsed chains (see :func:`pychainlift.parse_chains`).
    strategy : str, optional
        Lookup strategy, ``"indexed"`` or ``"naive"``. Defaults to
        ``CONFIG['strategy']``.
    """

    def __init__(self, chains, strategy=None):
        self._chains = tuple(chains)
        self._index = build_index(self._chains, strategy)
        self._mapper = CoordinateMapper(self._index)

    @classmethod
    def load(cls, chain_bytes, strategy=None, min_score=None, source=None):
        """Parse chain-file contents and build an engine.

        Raises
        ------
        ChainFormatError
            If the chain data is malformed. No engine is returned.
        ValueError
            If *strategy* is unknown.
        """
        chains = parse_chains(chain_bytes, min_score=min_score, source=source)
        engine = cls(chains, strategy=strategy)
        _logger.info(
            "Loaded %d chains (%d blocks) on %d reference chromosomes, %s lookup",
            len(engine.chains),
            sum(len(c.blocks) for c in engine.chains),
            len(engine.chromosomes),
            engine.strategy,
        )
        return engine

    def __repr__(self):
        return (
            f"LiftoverEngine(chains={len(self._chains)}, "
            f"chromosomes={len(self.chromosomes)}, strategy={self.strategy!r})"
        )

    @property
    def strategy(self):
        return self._index.strategy

    @property
    def chains(self):
        return self._chains

    @property
    def chromosomes(self):
        return self._index.chromosomes

    @property
    def index(self):
        return self._index

    # -- queries -----------------------------------------------------------

    def lift(self, query):
        """Lift a :class:`QueryCoordinate`.

        Point queries return a ``MappedCoordinate`` or ``Unmapped``; queries
        with an ``end`` return the segment list of :meth:`lift_interval`.
        """
        query = _as_query(query)
        if query.end is not None:
            return self._mapper.map_interval(query.chrom, query.pos, query.end, query.strand)
        return self._mapper.map_point(query.chrom, query.pos, query.strand)

    def lift_all(self, query):
        """Return every candidate mapping of a point query, best first."""
        query = _as_query(query)
        return self._mapper.map_all(query.chrom, query.pos, query.strand)

    def lift_interval(self, chrom, start, end, strand=FORWARD):
        return self._mapper.map_interval(chrom, start, end, strand)

    def lift_interval_all(self, chrom, start, end, strand=FORWARD):
        """Mapped pieces of ``[start, end)`` through every overlapping chain."""
        return self._mapper.map_interval_all(chrom, start, end, strand)

    def lift_many(self, queries, start=0):
        """Lazily lift *queries* in input order.

        Returns a :class:`LiftBatch`; iterate it as often as needed, or
        resume from an offset with ``start``.
        """
        return LiftBatch(self, [_as_query(q) for q in queries], start)

    def swapped(self):
        """Return an engine mapping in the opposite direction."""
        return LiftoverEngine([c.swapped() for c in self._chains], strategy=self.strategy)

    # -- tabular -----------------------------------------------------------

    def chains_frame(self):
        """Alignment blocks as an assembly conversion table DataFrame."""
        return chains_frame(self._chains)

    def to_text(self):
        """Reserialize the loaded chains in UCSC chain format."""
        return format_chains(self._chains)

    def lift_frame(self, intervals, include_metadata=False, canonic=False):
        """Lift a DataFrame of reference intervals.

        Parameters
        ----------
        intervals : pandas.DataFrame
            Must contain ``chrom``, ``start`` and ``end``. An optional
            ``strand`` column (``"+"``/``"-"``) is honored.
        include_metadata : bool, optional
            Add a ``score`` column with the score of the chain used.
        canonic : bool, optional
            Merge target pieces that abut and come from the same source
            interval and chain (e.g. across reference-only gaps).

        Returns
        -------
        pandas.DataFrame
            Columns ``chrom``, ``start``, ``end``, ``strand``,
            ``intervalID`` (0-based row position in *intervals*),
            ``chain_id`` and optionally ``score``, sorted by target
            coordinates. Unmapped pieces are omitted.
        """
        if not isinstance(intervals, pd.DataFrame):
            raise TypeError("intervals must be a DataFrame")
        missing = {"chrom", "start", "end"} - set(intervals.columns)
        if missing:
            raise ValueError(f"Missing required columns: {', '.join(sorted(missing))}")

        cols = _LIFTED_COLS + (["score"] if include_metadata else [])
        has_strand = "strand" in intervals.columns

        result_rows = []
        for interval_id, row in enumerate(intervals.itertuples(index=False)):
            strand = row.strand if has_strand else FORWARD
            for segment in self._mapper.map_interval(row.chrom, row.start, row.end, strand):
                if not segment.mapped:
                    continue
                row_dict = {
                    "chrom": segment.chrom,
                    "start": segment.start,
                    "end": segment.end,
                    "strand": segment.strand,
                    "intervalID": interval_id,
                    "chain_id": segment.chain_id,
                }
                if include_metadata:
                    row_dict["score"] = segment.score
                result_rows.append(row_dict)

        if not result_rows:
            return pd.DataFrame({
                c: pd.Series(dtype="object" if c in ("chrom", "strand") else "int64")
                for c in cols
            })

        result = pd.DataFrame(result_rows)[cols]
        if canonic:
            result = _canonic_merge(result)
        return result.sort_values(["chrom", "start", "end"]).reset_index(drop=True)


def _canonic_merge(df):
    """Merge adjacent target pieces from the same intervalID and chain_id."""
    df = df.sort_values(["intervalID", "chain_id", "chrom", "start"]).reset_index(drop=True)

    merged = []
    prev = None
    for row in df.to_dict("records"):
        if (prev is not None and
                prev["intervalID"] == row["intervalID"] and
                prev["chain_id"] == row["chain_id"] and
                prev["chrom"] == row["chrom"] and
                prev["strand"] == row["strand"] and
                prev["end"] == row["start"]):
            prev["end"] = row["end"]
        else:
            if prev is not None:
                merged.append(prev)
            prev = row
    if prev is not None:
        merged.append(prev)

    return pd.DataFrame(merged)[list(df.columns)]


def load(chain_bytes, strategy=None, min_score=None, source=None):
    """Parse chain-file contents and return a :class:`LiftoverEngine`."""
    return LiftoverEngine.load(chain_bytes, strategy=strategy, min_score=min_score, source=source)
