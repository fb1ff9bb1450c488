import random
from pathlib import Path

import pytest

import pychainlift as pcl

DATA_DIR = Path(__file__).resolve().parent / "data"
CHAIN_FILE = DATA_DIR / "test.chain"

STRATEGIES = ["naive", "indexed"]


def chain_text(entries):
    """Build chain-file text from a list of (header_dict, blocks) tuples.

    header_dict keys: score, ref_chrom, ref_size, ref_strand, ref_start, ref_end,
                      q_chrom, q_size, q_strand, q_start, q_end, chain_id
    blocks: list of tuples (size,) or (size, dt, dq)
    """
    out = []
    for hdr, blocks in entries:
        out.append(
            f"chain {hdr['score']} "
            f"{hdr['ref_chrom']} {hdr['ref_size']} {hdr.get('ref_strand', '+')} "
            f"{hdr['ref_start']} {hdr['ref_end']} "
            f"{hdr['q_chrom']} {hdr['q_size']} {hdr.get('q_strand', '+')} "
            f"{hdr['q_start']} {hdr['q_end']} "
            f"{hdr['chain_id']}\n"
        )
        for blk in blocks:
            if len(blk) == 3:
                out.append(f"{blk[0]}\t{blk[1]}\t{blk[2]}\n")
            else:
                out.append(f"{blk[0]}\n")
        out.append("\n")
    return "".join(out)


def random_chain_text(seed, n_chains=12, chroms=("chrA", "chrB")):
    """Deterministic pseudo-random, well-formed chains with overlaps and ties."""
    rng = random.Random(seed)
    entries = []
    for chain_id in range(1, n_chains + 1):
        n_blocks = rng.randint(1, 5)
        blocks = []
        ref_len = 0
        q_len = 0
        for i in range(n_blocks):
            size = rng.randint(1, 20)
            if i < n_blocks - 1:
                dt, dq = rng.randint(0, 10), rng.randint(0, 10)
                blocks.append((size, dt, dq))
                ref_len += size + dt
                q_len += size + dq
            else:
                blocks.append((size,))
                ref_len += size
                q_len += size
        ref_start = rng.randint(0, 150)
        q_start = rng.randint(0, 500)
        entries.append((
            {"score": rng.choice([100, 200, 300]),
             "ref_chrom": rng.choice(chroms), "ref_size": 1000,
             "ref_start": ref_start, "ref_end": ref_start + ref_len,
             "q_chrom": rng.choice(["q1", "q2"]), "q_size": 2000,
             "q_strand": rng.choice(["+", "-"]),
             "q_start": q_start, "q_end": q_start + q_len,
             "chain_id": chain_id},
            blocks,
        ))
    return chain_text(entries)


@pytest.fixture(scope="session")
def golden_bytes():
    return CHAIN_FILE.read_bytes()


@pytest.fixture(params=STRATEGIES)
def strategy(request):
    return request.param


@pytest.fixture
def golden_engine(golden_bytes, strategy):
    return pcl.load(golden_bytes, strategy=strategy)
