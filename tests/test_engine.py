"""Tests for the LiftoverEngine composition root."""

import gzip
import logging
from concurrent.futures import ThreadPoolExecutor

import pandas as pd
import pytest

import pychainlift as pcl
from pychainlift import ChainFormatError, LiftoverEngine, QueryCoordinate, UnmappedReason

REVERSE_INVERSE = "chain 5000 chr2 80000 + 78700 79000 chr26 50000 - 49600 49900 3\n150\t50\t50\n100\n"


class TestLoad:

    def test_load_returns_engine(self, golden_bytes, strategy):
        engine = pcl.load(golden_bytes, strategy=strategy)
        assert isinstance(engine, LiftoverEngine)
        assert engine.strategy == strategy
        assert len(engine.chains) == 3
        assert engine.chromosomes == ("chr25", "chr26")
        assert repr(engine) == f"LiftoverEngine(chains=3, chromosomes=2, strategy='{strategy}')"

    def test_classmethod_and_function_agree(self, golden_bytes):
        assert LiftoverEngine.load(golden_bytes).chains == pcl.load(golden_bytes).chains

    def test_gzip_bytes(self, golden_bytes):
        engine = pcl.load(gzip.compress(golden_bytes))
        assert engine.lift(QueryCoordinate("chr25", 2100)).pos == 12100

    def test_malformed_input_raises(self):
        with pytest.raises(ChainFormatError) as info:
            pcl.load(b"chain 1 chr1 1000 + 0 10 chr1 1000 + 0 10 1\n9\n")
        assert info.value.line == 2

    def test_unknown_strategy(self, golden_bytes):
        with pytest.raises(ValueError, match="strategy must be one of"):
            pcl.load(golden_bytes, strategy="fast")

    def test_min_score(self, golden_bytes):
        engine = pcl.load(golden_bytes, min_score=100000)
        assert engine.chromosomes == ("chr25",)
        result = engine.lift(QueryCoordinate("chr26", 100))
        assert result.reason is UnmappedReason.NO_CHAIN_COVERAGE

    def test_load_logs_summary(self, golden_bytes, caplog):
        with caplog.at_level(logging.INFO, logger="pychainlift.engine"):
            pcl.load(golden_bytes)
        assert "Loaded 3 chains (6 blocks)" in caplog.text

    def test_to_text_round_trip(self, golden_engine, golden_bytes):
        assert golden_engine.to_text() == golden_bytes.decode()


class TestLift:

    def test_point(self, golden_engine):
        result = golden_engine.lift(QueryCoordinate("chr25", 10500))
        assert (result.chrom, result.pos, result.strand) == ("chrX", 5500, "+")

    def test_tuple_query(self, golden_engine):
        assert golden_engine.lift(("chr25", 2100)).pos == 12100
        assert golden_engine.lift(("chr26", 100, "-")).strand == "+"

    def test_interval_query(self, golden_engine):
        segments = golden_engine.lift(QueryCoordinate("chr25", 3200, end=3700))
        assert [s.mapped for s in segments] == [True, False, True]
        assert sum(s.length for s in segments) == 500

    def test_lift_interval(self, golden_engine):
        segments = golden_engine.lift_interval("chr25", 7990, 10010)
        assert [(s.mapped, s.length) for s in segments] == [(True, 10), (False, 2000), (True, 10)]
        assert segments[1].reason is UnmappedReason.NO_CHAIN_COVERAGE

    def test_lift_all(self, golden_engine):
        results = golden_engine.lift_all(QueryCoordinate("chr25", 2100))
        assert [r.pos for r in results] == [12100]

    def test_lift_interval_all(self, golden_engine):
        segments = golden_engine.lift_interval_all("chr25", 2400, 2600)
        assert [(s.source_start, s.source_end, s.start, s.end) for s in segments] == [
            (2400, 2500, 12400, 12500),
            (2500, 2600, 12700, 12800),
        ]
        assert golden_engine.lift_interval_all("chr25", 9000, 9500) == []


class TestLiftMany:

    QUERIES = [
        QueryCoordinate("chr25", 2100),
        QueryCoordinate("chr25", 3400),
        QueryCoordinate("chr26", 100),
        QueryCoordinate("chrUn", 1),
    ]

    def test_input_order(self, golden_engine):
        results = list(golden_engine.lift_many(self.QUERIES))
        assert results[0].pos == 12100
        assert results[1].reason is UnmappedReason.IN_GAP
        assert results[2].pos == 78999
        assert results[3].reason is UnmappedReason.NO_CHAIN_COVERAGE

    def test_lazy(self, golden_engine):
        batch = golden_engine.lift_many(self.QUERIES)
        iterator = iter(batch)
        assert next(iterator).pos == 12100
        assert len(batch) == 4

    def test_restartable(self, golden_engine):
        batch = golden_engine.lift_many(self.QUERIES)
        assert list(batch) == list(batch)

    def test_offset(self, golden_engine):
        full = list(golden_engine.lift_many(self.QUERIES))
        assert list(golden_engine.lift_many(self.QUERIES, start=2)) == full[2:]
        batch = golden_engine.lift_many(self.QUERIES)
        assert list(batch.from_offset(3)) == full[3:]
        assert len(batch.from_offset(10)) == 0
        with pytest.raises(ValueError):
            golden_engine.lift_many(self.QUERIES, start=-1)

    def test_independent_iterators(self, golden_engine):
        batch = golden_engine.lift_many(self.QUERIES)
        a, b = iter(batch), iter(batch)
        next(a)
        next(a)
        assert next(b).pos == 12100

    def test_generator_input_consumed_once(self, golden_engine):
        batch = golden_engine.lift_many(q for q in self.QUERIES)
        assert len(list(batch)) == len(list(batch)) == 4

    def test_concurrent_iteration(self, golden_engine):
        batch = golden_engine.lift_many(self.QUERIES * 50)
        expected = list(batch)
        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(lambda _: list(batch), range(8)))
        assert all(r == expected for r in results)


class TestStrandRoundTrip:

    def test_swapped_engine(self, golden_engine):
        back = golden_engine.swapped()
        assert back.strategy == golden_engine.strategy
        for chrom, positions in (("chr25", range(2000, 8000, 97)), ("chr26", range(100, 400, 7))):
            for pos in positions:
                there = golden_engine.lift(QueryCoordinate(chrom, pos))
                if not there.mapped:
                    continue
                again = back.lift(QueryCoordinate(there.chrom, there.pos, strand=there.strand))
                assert (again.chrom, again.pos, again.strand) == (chrom, pos, "+")

    def test_explicit_inverse_chain(self, golden_engine, strategy):
        inverse = pcl.load(REVERSE_INVERSE, strategy=strategy)
        there = golden_engine.lift(QueryCoordinate("chr26", 120))
        assert (there.chrom, there.pos, there.strand) == ("chr2", 78979, "-")
        again = inverse.lift(QueryCoordinate(there.chrom, there.pos, strand=there.strand))
        assert (again.chrom, again.pos, again.strand) == ("chr26", 120, "+")


class TestFrames:

    def test_chains_frame(self, golden_engine):
        frame = golden_engine.chains_frame()
        assert len(frame) == 6
        assert set(frame["chromsrc"]) == {"chr25", "chr26"}

    def test_lift_frame(self, golden_engine):
        intervals = pd.DataFrame({
            "chrom": ["chr25", "chr25", "chrUn"],
            "start": [2400, 10000, 0],
            "end": [2600, 10100, 10],
        })
        lifted = golden_engine.lift_frame(intervals)
        assert list(lifted.columns) == ["chrom", "start", "end", "strand", "intervalID", "chain_id"]
        assert lifted.values.tolist() == [
            ["chr1", 12400, 12500, "+", 0, 1],
            ["chr1", 12700, 12800, "+", 0, 1],
            ["chrX", 5000, 5100, "+", 1, 2],
        ]

    def test_lift_frame_metadata_and_strand(self, golden_engine):
        intervals = pd.DataFrame({
            "chrom": ["chr26"], "start": [150], "end": [300], "strand": ["-"],
        })
        lifted = golden_engine.lift_frame(intervals, include_metadata=True)
        assert lifted["score"].tolist() == [5000, 5000]
        assert lifted["strand"].tolist() == ["+", "+"]
        assert lifted[["start", "end"]].values.tolist() == [[78800, 78850], [78900, 78950]]

    def test_lift_frame_canonic_keeps_query_gaps(self, golden_engine):
        """dq=200 between the pieces: the target bases in between map from nothing."""
        intervals = pd.DataFrame({"chrom": ["chr25"], "start": [2400], "end": [2600]})
        lifted = golden_engine.lift_frame(intervals, canonic=True)
        assert lifted[["chrom", "start", "end"]].values.tolist() == [
            ["chr1", 12400, 12500],
            ["chr1", 12700, 12800],
        ]
        assert (lifted["end"] - lifted["start"]).sum() == 200

    def test_lift_frame_canonic_merges_adjacent(self):
        """dt=50, dq=0: the two target pieces abut and are merged."""
        engine = pcl.load("chain 100 a 1000 + 0 250 b 1000 + 0 200 7\n100\t50\t0\n100\n")
        intervals = pd.DataFrame({"chrom": ["a"], "start": [50], "end": [250]})
        assert engine.lift_frame(intervals)[["start", "end"]].values.tolist() == [
            [50, 100], [100, 200],
        ]
        lifted = engine.lift_frame(intervals, canonic=True)
        assert lifted[["chrom", "start", "end", "intervalID", "chain_id"]].values.tolist() == [
            ["b", 50, 200, 0, 7],
        ]

    def test_lift_frame_empty_result(self, golden_engine):
        intervals = pd.DataFrame({"chrom": ["chrUn"], "start": [0], "end": [10]})
        lifted = golden_engine.lift_frame(intervals, include_metadata=True)
        assert len(lifted) == 0
        assert list(lifted.columns) == ["chrom", "start", "end", "strand",
                                        "intervalID", "chain_id", "score"]

    def test_lift_frame_validation(self, golden_engine):
        with pytest.raises(TypeError):
            golden_engine.lift_frame([("chr25", 0, 10)])
        with pytest.raises(ValueError, match="Missing required columns: end"):
            golden_engine.lift_frame(pd.DataFrame({"chrom": ["chr25"], "start": [0]}))
