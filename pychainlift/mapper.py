"""Point and interval liftover against a :class:`~pychainlift.index.ChainLookup`.

Overlap policy: when several chains cover the same reference position the
chain with the highest score wins; ties go to the smallest chain id, then
to the earliest block in index order.

Gap policy: a position inside a chain's reference span but between two of
its blocks is reported as ``IN_GAP``; no coordinate is interpolated there.
"""

import enum
import heapq
from collections import defaultdict
from dataclasses import dataclass
from typing import Optional

from ._shared import FORWARD, _check_strand, _flip_strand


class UnmappedReason(str, enum.Enum):
    NO_CHAIN_COVERAGE = "no_chain_coverage"
    IN_GAP = "in_gap"


@dataclass(frozen=True)
class QueryCoordinate:
    """A 0-based reference position, or half-open interval when *end* is set."""

    chrom: str
    pos: int
    end: Optional[int] = None
    strand: str = FORWARD


@dataclass(frozen=True)
class MappedCoordinate:
    chrom: str
    pos: int
    strand: str
    chain_id: int
    score: int

    @property
    def mapped(self):
        return True


@dataclass(frozen=True)
class Unmapped:
    reason: UnmappedReason
    chain_id: Optional[int] = None

    @property
    def mapped(self):
        return False


@dataclass(frozen=True)
class MappedSegment:
    """Reference range ``[source_start, source_end)`` lifted to ``chrom:[start, end)``."""

    source_start: int
    source_end: int
    chrom: str
    start: int
    end: int
    strand: str
    chain_id: int
    score: int

    @property
    def mapped(self):
        return True

    @property
    def length(self):
        return self.source_end - self.source_start


@dataclass(frozen=True)
class UnmappedSegment:
    start: int
    end: int
    reason: UnmappedReason
    chain_id: Optional[int] = None

    @property
    def mapped(self):
        return False

    @property
    def length(self):
        return self.end - self.start


def _priority(chain):
    return (-chain.score, chain.chain_id)


def _sweep_winners(ranges, points, priority):
    """Pick the best active range for every elementary segment.

    *ranges* is a list of ``(start, end, item)`` already clipped to the
    query window, *points* the sorted segment boundaries. Returns one item
    (or None) per ``[points[i], points[i + 1])``.
    """
    starts_at = defaultdict(list)
    ends_at = defaultdict(list)
    for idx, (start, end, _item) in enumerate(ranges):
        starts_at[start].append(idx)
        ends_at[end].append(idx)

    active = set()
    heap = []
    winners = []
    for coord in points[:-1]:
        for idx in ends_at.get(coord, ()):
            active.discard(idx)
        for idx in starts_at.get(coord, ()):
            active.add(idx)
            heapq.heappush(heap, (priority(ranges[idx][2]), idx))

        while heap and heap[0][1] not in active:
            heapq.heappop(heap)
        winners.append(ranges[heap[0][1]][2] if heap else None)
    return winners


class CoordinateMapper:
    """Answer liftover queries against an immutable chain lookup."""

    def __init__(self, index):
        self.index = index

    def _mapped(self, hit, pos, strand):
        chain = hit.chain
        return MappedCoordinate(
            chrom=chain.query_name,
            pos=chain.map_position(hit.block, pos),
            strand=_flip_strand(strand) if chain.is_reverse else strand,
            chain_id=chain.chain_id,
            score=chain.score,
        )

    def map_point(self, chrom, pos, strand=FORWARD):
        """Lift a single reference position.

        Returns
        -------
        MappedCoordinate or Unmapped
            ``Unmapped(IN_GAP)`` when *pos* lies between two blocks of a
            chain, ``Unmapped(NO_CHAIN_COVERAGE)`` when no chain span
            contains it (including unknown chromosomes and negative
            positions).
        """
        _check_strand(strand)
        pos = int(pos)
        if pos < 0:
            return Unmapped(UnmappedReason.NO_CHAIN_COVERAGE)

        hits = self.index.blocks_at(chrom, pos)
        if hits:
            best = min(hits, key=lambda h: _priority(h.chain))
            return self._mapped(best, pos, strand)

        spans = self.index.chains_at(chrom, pos)
        if spans:
            return Unmapped(UnmappedReason.IN_GAP, min(spans, key=_priority).chain_id)
        return Unmapped(UnmappedReason.NO_CHAIN_COVERAGE)

    def map_all(self, chrom, pos, strand=FORWARD):
        """Return every mapping of *pos*, best chain first, without duplicates."""
        _check_strand(strand)
        pos = int(pos)
        if pos < 0:
            return []
        hits = sorted(self.index.blocks_at(chrom, pos), key=lambda h: _priority(h.chain))
        seen = set()
        results = []
        for hit in hits:
            mapped = self._mapped(hit, pos, strand)
            key = (mapped.chrom, mapped.pos, mapped.strand)
            if key not in seen:
                seen.add(key)
                results.append(mapped)
        return results

    def _segment(self, hit, a, b, strand):
        chain = hit.chain
        dest_start, dest_end = chain.map_range(hit.block, a, b)
        return MappedSegment(
            source_start=a,
            source_end=b,
            chrom=chain.query_name,
            start=dest_start,
            end=dest_end,
            strand=_flip_strand(strand) if chain.is_reverse else strand,
            chain_id=chain.chain_id,
            score=chain.score,
        )

    def map_interval(self, chrom, start, end, strand=FORWARD):
        """Lift the half-open reference interval ``[start, end)``.

        The interval is split at every block and chain-span boundary. Each
        piece is either a :class:`MappedSegment` or an
        :class:`UnmappedSegment`; adjacent pieces are merged back when they
        are contiguous on both assemblies through the same chain. Segment
        lengths always sum to ``end - start``.
        """
        _check_strand(strand)
        start, end = _interval_bounds(start, end)

        # Negative coordinates are never covered
        pieces = []
        if start < 0:
            below = UnmappedSegment(start, min(end, 0), UnmappedReason.NO_CHAIN_COVERAGE)
            pieces.append((below, None))
        lo = max(start, 0)
        if lo < end:
            pieces.extend(self._map_window(chrom, lo, end, strand))
        return _merge_pieces(pieces)

    def _map_window(self, chrom, lo, hi, strand):
        hits = self.index.blocks_overlapping(chrom, lo, hi)
        spans = self.index.chains_overlapping(chrom, lo, hi)

        block_ranges = [(max(h.start, lo), min(h.end, hi), h) for h in hits]
        span_ranges = [(max(c.ref_start, lo), min(c.ref_end, hi), c) for c in spans]

        points = {lo, hi}
        for range_start, range_end, _item in block_ranges + span_ranges:
            points.add(range_start)
            points.add(range_end)
        points = sorted(points)

        block_winners = _sweep_winners(block_ranges, points, lambda h: _priority(h.chain))
        span_winners = _sweep_winners(span_ranges, points, _priority)

        pieces = []
        for a, b, hit, span in zip(points[:-1], points[1:], block_winners, span_winners):
            if hit is not None:
                pieces.append((self._segment(hit, a, b, strand), hit.chain))
            elif span is not None:
                pieces.append((UnmappedSegment(a, b, UnmappedReason.IN_GAP, span.chain_id), None))
            else:
                pieces.append((UnmappedSegment(a, b, UnmappedReason.NO_CHAIN_COVERAGE), None))
        return pieces

    def map_interval_all(self, chrom, start, end, strand=FORWARD):
        """Lift ``[start, end)`` through every chain that aligns part of it.

        Overlapping chains do not hide each other here: each chain
        contributes its own :class:`MappedSegment` list, merged where
        contiguous, best chain first. Unaligned parts are simply absent.
        """
        _check_strand(strand)
        start, end = _interval_bounds(start, end)
        lo = max(start, 0)
        if lo >= end:
            return []

        by_chain = {}
        for hit in self.index.blocks_overlapping(chrom, lo, end):
            by_chain.setdefault(id(hit.chain), (hit.chain, []))[1].append(hit)

        results = []
        seen = set()
        for chain, hits in sorted(by_chain.values(), key=lambda item: _priority(item[0])):
            hits.sort(key=lambda h: h.start)
            pieces = [
                (self._segment(h, max(h.start, lo), min(h.end, end), strand), chain)
                for h in hits
            ]
            for segment in _merge_pieces(pieces):
                if segment not in seen:
                    seen.add(segment)
                    results.append(segment)
        return results


def _interval_bounds(start, end):
    start, end = int(start), int(end)
    if end < start:
        raise ValueError(f"interval end ({end}) is smaller than start ({start})")
    return start, end


def _contiguous(prev, prev_chain, cur, cur_chain):
    if prev.mapped != cur.mapped:
        return False
    if not cur.mapped:
        return (prev.end == cur.start and prev.reason == cur.reason
                and prev.chain_id == cur.chain_id)
    if prev_chain is not cur_chain or prev.source_end != cur.source_start:
        return False
    if cur_chain.is_reverse:
        return cur.end == prev.start
    return prev.end == cur.start


def _merge_pieces(pieces):
    merged = []
    for segment, chain in pieces:
        if merged and _contiguous(merged[-1][0], merged[-1][1], segment, chain):
            prev = merged[-1][0]
            if segment.mapped:
                if chain.is_reverse:
                    joined = MappedSegment(prev.source_start, segment.source_end, prev.chrom,
                                           segment.start, prev.end, prev.strand,
                                           prev.chain_id, prev.score)
                else:
                    joined = MappedSegment(prev.source_start, segment.source_end, prev.chrom,
                                           prev.start, segment.end, prev.strand,
                                           prev.chain_id, prev.score)
            else:
                joined = UnmappedSegment(prev.start, segment.end, prev.reason, prev.chain_id)
            merged[-1] = (joined, chain)
        else:
            merged.append((segment, chain))
    return [segment for segment, _chain in merged]
