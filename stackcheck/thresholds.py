from __future__ import annotations

from dataclasses import dataclass

from stackcheck.checks.results import FailureKind
from stackcheck.models import Threshold
from stackcheck.sampler import SampleMode
from stackcheck.stats import LatencyStats


@dataclass(frozen=True)
class ThresholdResult:
    passed: bool
    limit_ms: float
    reason: str
    failure_kind: FailureKind | None = None


def effective_p95_limit(threshold: Threshold, mode: SampleMode) -> float:
    if mode == "concurrent":
        return threshold.max_p95_ms * threshold.load_multiplier
    return threshold.max_p95_ms


def _fmt(value: float) -> str:
    return f"{value:g}"


def evaluate(
    stats: LatencyStats,
    error_rate: float,
    threshold: Threshold,
    mode: SampleMode = "single",
    check_latency: bool = True,
) -> ThresholdResult:
    """Score measured latency and error rate; both bounds are strict."""
    limit = effective_p95_limit(threshold, mode)
    if check_latency and stats.empty:
        return ThresholdResult(
            passed=False,
            limit_ms=limit,
            reason="no successful samples (error rate 100%)",
            failure_kind=FailureKind.THRESHOLD_EXCEEDED,
        )

    problems = []
    if check_latency and not stats.p95_ms < limit:
        problems.append(f"P95 {stats.p95_ms}ms >= {_fmt(limit)}ms")
    if not error_rate < threshold.max_error_rate:
        problems.append(
            f"error rate {error_rate:.2f}% >= {_fmt(threshold.max_error_rate)}%"
        )

    if problems:
        return ThresholdResult(
            passed=False,
            limit_ms=limit,
            reason="; ".join(problems),
            failure_kind=FailureKind.THRESHOLD_EXCEEDED,
        )

    parts = []
    if check_latency:
        parts.append(f"P95 {stats.p95_ms}ms < {_fmt(limit)}ms")
    parts.append(f"error rate {error_rate:.2f}% < {_fmt(threshold.max_error_rate)}%")
    return ThresholdResult(passed=True, limit_ms=limit, reason="; ".join(parts))
