"""Tests for statistics aggregation: counters, percentiles, thread safety."""

import threading

import pytest

from perfcheck.statistics import (
    DescriptiveStatisticsCalculator,
    Statistics,
    StatisticsCalculator,
    nearest_rank,
)

MS = 1_000_000


class TestNearestRank:
    def test_empty(self):
        assert nearest_rank([], 95) is None

    def test_single_value(self):
        assert nearest_rank([7], 50) == 7
        assert nearest_rank([7], 99) == 7

    def test_known_ranks(self):
        values = list(range(1, 101))  # 1..100
        assert nearest_rank(values, 50) == 50
        assert nearest_rank(values, 90) == 90
        assert nearest_rank(values, 99) == 99
        assert nearest_rank(values, 100) == 100

    def test_rounds_rank_up(self):
        values = [10, 20, 30, 40]
        # ceil(0.3 * 4) = 2 -> second value
        assert nearest_rank(values, 30) == 20
        assert nearest_rank(values, 25) == 10

    def test_zero_is_minimum(self):
        assert nearest_rank([3, 5, 9], 0) == 3


class TestDescriptiveStatisticsCalculator:
    def test_satisfies_protocol(self):
        assert isinstance(DescriptiveStatisticsCalculator(), StatisticsCalculator)

    def test_empty_snapshot(self):
        stats = DescriptiveStatisticsCalculator().snapshot(elapsed_seconds=1.0)

        assert stats.total_count == 0
        assert stats.error_count == 0
        assert stats.error_percentage == 0.0
        assert stats.throughput_per_second == 0.0
        assert stats.min_latency_ms is None
        assert stats.latency_percentile(95) is None

    def test_counts_and_error_percentage(self):
        calc = DescriptiveStatisticsCalculator()
        for _ in range(3):
            calc.record(2 * MS, is_error=False)
        calc.record(5 * MS, is_error=True)

        stats = calc.snapshot(elapsed_seconds=2.0)

        assert stats.total_count == 4
        assert stats.success_count == 3
        assert stats.error_count == 1
        assert stats.error_percentage == 25.0
        assert stats.throughput_per_second == 1.5

    def test_all_errors(self):
        calc = DescriptiveStatisticsCalculator()
        for _ in range(10):
            calc.record(MS, is_error=True)

        stats = calc.snapshot(elapsed_seconds=1.0)

        assert stats.error_percentage == 100.0
        assert stats.throughput_per_second == 0.0
        assert stats.mean_latency_ms is None

    def test_latency_summary_uses_successes_only(self):
        calc = DescriptiveStatisticsCalculator()
        calc.record(1 * MS, is_error=False)
        calc.record(3 * MS, is_error=False)
        calc.record(100 * MS, is_error=True)

        stats = calc.snapshot(elapsed_seconds=1.0)

        assert stats.min_latency_ms == 1.0
        assert stats.max_latency_ms == 3.0
        assert stats.mean_latency_ms == 2.0

    def test_requested_percentiles(self):
        calc = DescriptiveStatisticsCalculator()
        for i in range(1, 101):
            calc.record(i * MS, is_error=False)

        stats = calc.snapshot(elapsed_seconds=1.0, percentiles=(50, 95, 99.9))

        assert stats.latency_percentile(50) == 50.0
        assert stats.latency_percentile(95) == 95.0
        assert stats.latency_percentile(99.9) == 100.0
        assert stats.latency_percentile(90) is None

    def test_zero_elapsed_throughput(self):
        calc = DescriptiveStatisticsCalculator()
        calc.record(MS, is_error=False)
        assert calc.snapshot(elapsed_seconds=0.0).throughput_per_second == 0.0

    def test_negative_latency_clamped(self):
        calc = DescriptiveStatisticsCalculator()
        calc.record(-5, is_error=False)
        assert calc.snapshot(elapsed_seconds=1.0).min_latency_ms == 0.0

    def test_reset(self):
        calc = DescriptiveStatisticsCalculator()
        calc.record(MS, is_error=False)
        calc.record(MS, is_error=True)

        calc.reset()
        stats = calc.snapshot(elapsed_seconds=1.0)

        assert stats.total_count == 0
        assert calc.total_count == 0
        assert calc.error_count == 0

    def test_live_counts_match_snapshot(self):
        calc = DescriptiveStatisticsCalculator()
        for i in range(5):
            calc.record(MS, is_error=(i < 2))

        stats = calc.snapshot(elapsed_seconds=1.0)

        assert calc.total_count == 5
        assert calc.error_count == 2
        assert calc.total_count == stats.success_count + stats.error_count

    def test_concurrent_records_not_lost(self):
        calc = DescriptiveStatisticsCalculator()
        threads_n = 8
        per_thread = 2_000
        barrier = threading.Barrier(threads_n)

        def worker(index):
            barrier.wait()
            for i in range(per_thread):
                calc.record(MS, is_error=(i % 4 == 0))

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(threads_n)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        stats = calc.snapshot(elapsed_seconds=1.0)
        assert stats.total_count == threads_n * per_thread
        assert stats.total_count == stats.success_count + stats.error_count
        assert stats.error_count == threads_n * (per_thread // 4)

    def test_snapshot_during_recording_is_consistent(self):
        calc = DescriptiveStatisticsCalculator()
        stop = threading.Event()

        def writer():
            while not stop.is_set():
                calc.record(MS, is_error=False)
                calc.record(MS, is_error=True)

        thread = threading.Thread(target=writer)
        thread.start()
        try:
            for _ in range(200):
                stats = calc.snapshot(elapsed_seconds=1.0)
                assert stats.total_count == stats.success_count + stats.error_count
        finally:
            stop.set()
            thread.join()


class TestStatistics:
    def test_frozen(self):
        stats = Statistics(total_count=1, success_count=1)
        with pytest.raises(Exception):
            stats.total_count = 2

    def test_to_log_dict(self):
        stats = Statistics(
            total_count=2,
            success_count=2,
            latency_percentiles_ms={95.0: 1.5, 99.5: 2.0},
        )

        data = stats.to_log_dict()

        assert data["type"] == "perfcheck.statistics.v1"
        assert data["total_count"] == 2
        assert data["latency_percentiles_ms"] == {"p95": 1.5, "p99.5": 2.0}
