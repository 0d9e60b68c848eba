import unittest

from stackcheck.checks.results import FailureKind
from stackcheck.models import Threshold
from stackcheck.stats import LatencyStats
from stackcheck.thresholds import effective_p95_limit, evaluate


def _stats(p95_ms, count=10):
    return LatencyStats(count=count, min_ms=1, max_ms=p95_ms, mean_ms=1, p95_ms=p95_ms)


class ThresholdEvaluationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.threshold = Threshold(max_p95_ms=200, max_error_rate=1.0, load_multiplier=1.5)

    def test_tie_fails(self) -> None:
        result = evaluate(_stats(200), 0.0, self.threshold)
        self.assertFalse(result.passed)
        self.assertEqual(result.failure_kind, FailureKind.THRESHOLD_EXCEEDED)
        self.assertIn("P95 200ms >= 200ms", result.reason)

    def test_one_below_passes(self) -> None:
        result = evaluate(_stats(199), 0.0, self.threshold)
        self.assertTrue(result.passed)
        self.assertIsNone(result.failure_kind)

    def test_concurrent_mode_scales_limit(self) -> None:
        self.assertEqual(effective_p95_limit(self.threshold, "concurrent"), 300)
        self.assertTrue(evaluate(_stats(299), 0.0, self.threshold, "concurrent").passed)
        self.assertFalse(evaluate(_stats(300), 0.0, self.threshold, "concurrent").passed)

    def test_single_mode_uses_raw_limit(self) -> None:
        self.assertEqual(effective_p95_limit(self.threshold, "single"), 200)
        self.assertFalse(evaluate(_stats(250), 0.0, self.threshold, "single").passed)

    def test_error_rate_is_strict(self) -> None:
        self.assertFalse(evaluate(_stats(10), 1.0, self.threshold).passed)
        self.assertTrue(evaluate(_stats(10), 0.99, self.threshold).passed)

    def test_both_problems_reported(self) -> None:
        result = evaluate(_stats(500), 50.0, self.threshold)
        self.assertIn("P95", result.reason)
        self.assertIn("error rate", result.reason)

    def test_no_data_fails_latency(self) -> None:
        result = evaluate(LatencyStats(), 100.0, self.threshold)
        self.assertFalse(result.passed)
        self.assertIn("no successful samples", result.reason)

    def test_error_rate_only(self) -> None:
        result = evaluate(_stats(10_000), 0.0, self.threshold, "sustained", check_latency=False)
        self.assertTrue(result.passed)


if __name__ == "__main__":
    unittest.main()
