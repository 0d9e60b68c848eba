import random
import unittest

from stackcheck.sampler import Sample
from stackcheck.stats import LatencyStats, percentile, summarize, summarize_latencies


def _ok(latency_ms, ordinal=1):
    return Sample(ordinal=ordinal, latency_ms=latency_ms, status_code=200, ok=True)


def _failed(latency_ms, ordinal=1):
    return Sample(ordinal=ordinal, latency_ms=latency_ms, status_code=None, ok=False, error="refused")


class SummarizeTests(unittest.TestCase):
    def test_one_to_hundred_gives_p95_of_95(self) -> None:
        samples = [_ok(ms, i) for i, ms in enumerate(range(1, 101), start=1)]
        random.Random(7).shuffle(samples)

        stats = summarize(samples)

        self.assertEqual(stats.count, 100)
        self.assertEqual(stats.min_ms, 1)
        self.assertEqual(stats.max_ms, 100)
        self.assertEqual(stats.mean_ms, 50)  # 5050 // 100
        self.assertEqual(stats.p95_ms, 95)

    def test_empty_never_raises(self) -> None:
        stats = summarize([])
        self.assertEqual(stats, LatencyStats())
        self.assertTrue(stats.empty)

    def test_failures_do_not_feed_latency(self) -> None:
        stats = summarize([_ok(10), _ok(20), _failed(5000)])
        self.assertEqual(stats.count, 2)
        self.assertEqual(stats.max_ms, 20)

    def test_only_failures_is_empty(self) -> None:
        self.assertTrue(summarize([_failed(1), _failed(2)]).empty)

    def test_single_sample(self) -> None:
        stats = summarize_latencies([42])
        self.assertEqual((stats.min_ms, stats.max_ms, stats.mean_ms, stats.p95_ms), (42, 42, 42, 42))

    def test_mean_truncates(self) -> None:
        self.assertEqual(summarize_latencies([1, 2]).mean_ms, 1)

    def test_ordering_invariants(self) -> None:
        rng = random.Random(1234)
        for _ in range(200):
            values = [rng.randint(0, 5000) for _ in range(rng.randint(1, 60))]
            stats = summarize_latencies(values)
            with self.subTest(values=values):
                self.assertLessEqual(stats.min_ms, stats.mean_ms)
                self.assertLessEqual(stats.mean_ms, stats.max_ms)
                self.assertLessEqual(stats.min_ms, stats.p95_ms)
                self.assertLessEqual(stats.p95_ms, stats.max_ms)


class PercentileTests(unittest.TestCase):
    def test_nearest_rank(self) -> None:
        values = [10, 20, 30, 40, 50, 60, 70, 80, 90, 100]
        self.assertEqual(percentile(values, 95), 100)  # ceil(9.5) = 10
        self.assertEqual(percentile(values, 50), 50)
        self.assertEqual(percentile(values, 90), 90)

    def test_rank_clamped_to_one(self) -> None:
        self.assertEqual(percentile([5, 6, 7], 0), 5)

    def test_small_sets(self) -> None:
        self.assertEqual(percentile([3, 8], 95), 8)
        self.assertEqual(percentile([3], 95), 3)

    def test_twenty_samples(self) -> None:
        values = list(range(1, 21))
        self.assertEqual(percentile(values, 95), 19)

    def test_empty(self) -> None:
        self.assertEqual(percentile([], 95), 0)


if __name__ == "__main__":
    unittest.main()
