"""UCSC chain-file parsing and reserialization.

Chain format: https://genome.ucsc.edu/goldenPath/help/chain.html

    chain <score> <tName> <tSize> <tStrand> <tStart> <tEnd> <qName> <qSize> <qStrand> <qStart> <qEnd> <id>
    <size> <dt> <dq>
    ...
    <size>

Chains are separated by blank lines. Lines starting with ``#`` are
comments. Parsing is all-or-nothing: the first structural violation raises
:class:`ChainFormatError` and no chains are returned.
"""

import enum
import gzip

from ._shared import _STRANDS, CONFIG
from .chain import Chain, build_blocks

_GZIP_MAGIC = b"\x1f\x8b"
_HEADER_FIELDS = 12


class ParseErrorKind(str, enum.Enum):
    """Category of a chain-file format violation."""

    HEADER_FIELDS = "header_fields"
    BAD_NUMBER = "bad_number"
    BAD_STRAND = "bad_strand"
    BAD_RANGE = "bad_range"
    BAD_ALIGNMENT = "bad_alignment"
    MISSING_FINAL_BLOCK = "missing_final_block"
    SPAN_MISMATCH = "span_mismatch"
    INCONSISTENT_SIZE = "inconsistent_size"
    ENCODING = "encoding"


class ChainFormatError(ValueError):
    """Raised when chain-file text violates the chain grammar.

    Attributes
    ----------
    line : int
        1-based line number of the violation.
    kind : ParseErrorKind
        Category of the violation.
    """

    def __init__(self, line, kind, message, source=None):
        self.line = line
        self.kind = ParseErrorKind(kind)
        self.source = source
        prefix = f"Chain file {source}, line {line}" if source else f"line {line}"
        super().__init__(f"{prefix}: {message}")


def _iter_lines(data, source):
    """Yield ``(lineno, text)`` pairs from bytes or str input."""
    if isinstance(data, str):
        for lineno, line in enumerate(data.split("\n"), start=1):
            yield lineno, line
        return

    raw = bytes(data)
    if CONFIG.get("gzip_magic_check", True) and raw[:2] == _GZIP_MAGIC:
        try:
            raw = gzip.decompress(raw)
        except (OSError, EOFError) as exc:
            raise ChainFormatError(
                1, ParseErrorKind.ENCODING, f"invalid gzip stream ({exc})", source
            ) from exc

    for lineno, line in enumerate(raw.split(b"\n"), start=1):
        try:
            yield lineno, line.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ChainFormatError(
                lineno, ParseErrorKind.ENCODING, f"invalid UTF-8 text ({exc.reason})", source
            ) from exc


def _parse_count(token, lineno, field, source):
    """Parse a non-negative integer field."""
    if not (token.isascii() and token.isdigit()):
        raise ChainFormatError(
            lineno, ParseErrorKind.BAD_NUMBER,
            f"{field} must be a non-negative integer, got {token!r}", source,
        )
    return int(token)


def _parse_score(token, lineno, source):
    digits = token[1:] if token[:1] in ("-", "+") else token
    if not (digits.isascii() and digits.isdigit()):
        raise ChainFormatError(
            lineno, ParseErrorKind.BAD_NUMBER, f"score must be an integer, got {token!r}", source
        )
    return int(token)


def _parse_side(parts, lineno, label, known_sizes, source):
    """Parse ``name size strand start end`` for one side of a chain header."""
    name = parts[0]
    size = _parse_count(parts[1], lineno, f"{label} size", source)
    strand = parts[2]
    if strand not in _STRANDS:
        raise ChainFormatError(
            lineno, ParseErrorKind.BAD_STRAND,
            f"invalid {label} strand {strand!r}", source,
        )
    start = _parse_count(parts[3], lineno, f"{label} start", source)
    end = _parse_count(parts[4], lineno, f"{label} end", source)
    if start > end:
        raise ChainFormatError(
            lineno, ParseErrorKind.BAD_RANGE,
            f"{label} start ({start}) is greater than end ({end})", source,
        )
    if end > size:
        raise ChainFormatError(
            lineno, ParseErrorKind.BAD_RANGE,
            f"{label} end ({end}) exceeds chromosome size ({size})", source,
        )

    previous = known_sizes.setdefault(name, size)
    if previous != size:
        raise ChainFormatError(
            lineno, ParseErrorKind.INCONSISTENT_SIZE,
            f"{label} chromosome {name} size ({size}) differs from previous ({previous})",
            source,
        )
    return name, size, strand, start, end


def _parse_header(parts, lineno, ref_sizes, query_sizes, source):
    if len(parts) != _HEADER_FIELDS + 1:
        raise ChainFormatError(
            lineno, ParseErrorKind.HEADER_FIELDS,
            f"expected {_HEADER_FIELDS} fields in chain header, got {len(parts) - 1}",
            source,
        )
    score = _parse_score(parts[1], lineno, source)
    ref = _parse_side(parts[2:7], lineno, "reference", ref_sizes, source)
    query = _parse_side(parts[7:12], lineno, "query", query_sizes, source)
    chain_id = _parse_count(parts[12], lineno, "chain id", source)
    return {"line": lineno, "score": score, "ref": ref, "query": query, "chain_id": chain_id}


def _finish_chain(header, rows, final_line, last_line, source):
    """Check the block/gap totals of a chain and build it."""
    if not rows:
        raise ChainFormatError(
            header["line"], ParseErrorKind.MISSING_FINAL_BLOCK,
            "chain has no alignment lines", source,
        )
    if final_line is None:
        raise ChainFormatError(
            last_line, ParseErrorKind.MISSING_FINAL_BLOCK,
            "chain does not end with a single-field block line", source,
        )

    ref_name, ref_size, ref_strand, ref_start, ref_end = header["ref"]
    query_name, query_size, query_strand, query_start, query_end = header["query"]

    ref_total = sum(row[0] + (row[1] if len(row) == 3 else 0) for row in rows)
    query_total = sum(row[0] + (row[2] if len(row) == 3 else 0) for row in rows)
    if ref_total != ref_end - ref_start:
        raise ChainFormatError(
            final_line, ParseErrorKind.SPAN_MISMATCH,
            f"blocks and gaps cover {ref_total} reference bases but the header "
            f"on line {header['line']} declares {ref_end - ref_start}", source,
        )
    if query_total != query_end - query_start:
        raise ChainFormatError(
            final_line, ParseErrorKind.SPAN_MISMATCH,
            f"blocks and gaps cover {query_total} query bases but the header "
            f"on line {header['line']} declares {query_end - query_start}", source,
        )

    return Chain(
        score=header["score"],
        ref_name=ref_name,
        ref_size=ref_size,
        ref_strand=ref_strand,
        ref_start=ref_start,
        ref_end=ref_end,
        query_name=query_name,
        query_size=query_size,
        query_strand=query_strand,
        query_start=query_start,
        query_end=query_end,
        chain_id=header["chain_id"],
        blocks=build_blocks(rows),
    )


def parse_chains(data, min_score=None, source=None):
    """Parse UCSC chain text into a list of :class:`Chain` records.

    Parameters
    ----------
    data : bytes, bytearray, memoryview or str
        Chain-file contents. Gzip-compressed bytes are decompressed
        transparently.
    min_score : int, optional
        Drop chains scoring below this threshold. Dropped chains are still
        fully validated. Defaults to ``CONFIG['min_score']``.
    source : str, optional
        Label (usually a file name) included in error messages.

    Returns
    -------
    list of Chain
        Chains in file order.

    Raises
    ------
    ChainFormatError
        On the first structural violation; no partial result is returned.
    """
    if min_score is None:
        min_score = CONFIG.get("min_score")

    chains = []
    ref_sizes = {}
    query_sizes = {}

    header = None
    rows = []
    final_line = None
    last_line = 0

    def close():
        chain = _finish_chain(header, rows, final_line, last_line, source)
        if min_score is None or chain.score >= min_score:
            chains.append(chain)

    for lineno, raw_line in _iter_lines(data, source):
        line = raw_line.strip()

        # Blank line terminates the current chain
        if not line:
            if header is not None:
                close()
                header = None
            continue

        if line.startswith("#"):
            continue

        parts = line.split()

        if parts[0] == "chain":
            if header is not None:
                close()
            header = _parse_header(parts, lineno, ref_sizes, query_sizes, source)
            rows = []
            final_line = None
            continue

        if header is None:
            raise ChainFormatError(
                lineno, ParseErrorKind.BAD_ALIGNMENT, "alignment line outside a chain", source
            )
        if final_line is not None:
            raise ChainFormatError(
                lineno, ParseErrorKind.BAD_ALIGNMENT,
                f"alignment line after the final block on line {final_line}", source,
            )
        if len(parts) not in (1, 3):
            raise ChainFormatError(
                lineno, ParseErrorKind.BAD_ALIGNMENT,
                f"expected 1 or 3 fields in alignment line, got {len(parts)}", source,
            )

        size = _parse_count(parts[0], lineno, "block size", source)
        if size == 0:
            raise ChainFormatError(
                lineno, ParseErrorKind.BAD_ALIGNMENT, "block size must be positive", source
            )
        if len(parts) == 3:
            dt = _parse_count(parts[1], lineno, "dt", source)
            dq = _parse_count(parts[2], lineno, "dq", source)
            rows.append((size, dt, dq))
        else:
            rows.append((size,))
            final_line = lineno
        last_line = lineno

    if header is not None:
        close()

    return chains


def format_chains(chains):
    """Serialize chains back to UCSC chain text, one blank line after each."""
    return "".join(chain.to_text() + "\n" for chain in chains)
