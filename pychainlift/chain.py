"""Chain and alignment-block records.

UCSC terminology note: chain 't' fields (tName, tStart, tEnd) describe the
reference side and 'q' fields the query side. Here they are exposed as
``ref_*`` and ``query_*``. Query coordinates of a ``-`` strand chain are
recorded on the reverse-complemented query sequence; the ``*_forward``
helpers convert them back to forward coordinates.
"""

from dataclasses import dataclass

from ._shared import FORWARD, REVERSE


@dataclass(frozen=True)
class Block:
    """A maximal ungapped aligned segment of a chain.

    Attributes
    ----------
    size : int
        Length of the segment (identical on both axes).
    ref_offset : int
        Start of the segment relative to the chain's reference start.
    query_offset : int
        Start of the segment relative to the chain's recorded query start.
    dt : int
        Reference gap to the next block (0 on the final block).
    dq : int
        Query gap to the next block (0 on the final block).
    """

    size: int
    ref_offset: int
    query_offset: int
    dt: int = 0
    dq: int = 0


def build_blocks(rows):
    """Build a tuple of Blocks from ``(size, dt, dq)`` rows.

    The final row may be ``(size,)``; its gaps are taken as zero.
    """
    blocks = []
    ref_offset = 0
    query_offset = 0
    for row in rows:
        size = int(row[0])
        dt = int(row[1]) if len(row) > 1 else 0
        dq = int(row[2]) if len(row) > 2 else 0
        blocks.append(Block(size, ref_offset, query_offset, dt, dq))
        ref_offset += size + dt
        query_offset += size + dq
    return tuple(blocks)


@dataclass(frozen=True)
class Chain:
    """One alignment record between a reference and a query region."""

    score: int
    ref_name: str
    ref_size: int
    ref_strand: str
    ref_start: int
    ref_end: int
    query_name: str
    query_size: int
    query_strand: str
    query_start: int
    query_end: int
    chain_id: int
    blocks: tuple = ()

    @property
    def is_reverse(self):
        return self.query_strand == REVERSE

    def ref_span_contains(self, pos):
        return self.ref_start <= pos < self.ref_end

    def block_ref_range(self, block):
        start = self.ref_start + block.ref_offset
        return start, start + block.size

    def block_query_range(self, block):
        """Recorded (strand-relative) query range of *block*."""
        start = self.query_start + block.query_offset
        return start, start + block.size

    def block_query_forward_range(self, block):
        """Query range of *block* in forward-strand coordinates."""
        start, end = self.block_query_range(block)
        if self.is_reverse:
            return self.query_size - end, self.query_size - start
        return start, end

    def query_forward_span(self):
        if self.is_reverse:
            return self.query_size - self.query_end, self.query_size - self.query_start
        return self.query_start, self.query_end

    def map_position(self, block, pos):
        """Map a reference position inside *block* to a forward query position."""
        dest = self.query_start + block.query_offset + (pos - self.ref_start - block.ref_offset)
        if self.is_reverse:
            return self.query_size - dest - 1
        return dest

    def map_range(self, block, start, end):
        """Map a reference range inside *block* to a forward query range."""
        shift = self.query_start + block.query_offset - self.ref_start - block.ref_offset
        dest_start = start + shift
        dest_end = end + shift
        if self.is_reverse:
            return self.query_size - dest_end, self.query_size - dest_start
        return dest_start, dest_end

    def iter_ranges(self):
        """Yield ``(block, ref_start, ref_end, query_start, query_end)`` per block.

        Query coordinates are forward-strand.
        """
        for block in self.blocks:
            ref_start, ref_end = self.block_ref_range(block)
            query_start, query_end = self.block_query_forward_range(block)
            yield block, ref_start, ref_end, query_start, query_end

    def header_line(self):
        return (
            f"chain {self.score} "
            f"{self.ref_name} {self.ref_size} {self.ref_strand} {self.ref_start} {self.ref_end} "
            f"{self.query_name} {self.query_size} {self.query_strand} "
            f"{self.query_start} {self.query_end} {self.chain_id}"
        )

    def to_text(self):
        """Serialize the chain in UCSC chain format (without trailing blank line)."""
        lines = [self.header_line()]
        last = len(self.blocks) - 1
        for i, block in enumerate(self.blocks):
            if i == last:
                lines.append(f"{block.size}")
            else:
                lines.append(f"{block.size}\t{block.dt}\t{block.dq}")
        return "\n".join(lines) + "\n"

    def swapped(self):
        """Return the inverse chain, mapping query coordinates back to reference.

        A ``-`` strand chain is reversed on both axes so that the new
        reference side stays on the forward strand.
        """
        if not self.is_reverse:
            rows = [(b.size, b.dq, b.dt) for b in self.blocks]
            return Chain(
                score=self.score,
                ref_name=self.query_name,
                ref_size=self.query_size,
                ref_strand=FORWARD,
                ref_start=self.query_start,
                ref_end=self.query_end,
                query_name=self.ref_name,
                query_size=self.ref_size,
                query_strand=FORWARD,
                query_start=self.ref_start,
                query_end=self.ref_end,
                chain_id=self.chain_id,
                blocks=build_blocks(rows),
            )

        old = self.blocks
        n = len(old)
        rows = []
        for j in range(n):
            size = old[n - 1 - j].size
            if j < n - 1:
                gap_source = old[n - 2 - j]
                rows.append((size, gap_source.dq, gap_source.dt))
            else:
                rows.append((size,))
        ref_start, ref_end = self.query_forward_span()
        return Chain(
            score=self.score,
            ref_name=self.query_name,
            ref_size=self.query_size,
            ref_strand=FORWARD,
            ref_start=ref_start,
            ref_end=ref_end,
            query_name=self.ref_name,
            query_size=self.ref_size,
            query_strand=REVERSE,
            query_start=self.ref_size - self.ref_end,
            query_end=self.ref_size - self.ref_start,
            chain_id=self.chain_id,
            blocks=build_blocks(rows),
        )
