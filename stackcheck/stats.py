"""Latency statistics over probe samples.

Percentiles use the nearest-rank method: the value at 1-indexed rank
``ceil(pct / 100 * n)`` (at least 1) of the ascending sort. The mean is
truncated to whole milliseconds.

An empty input yields all-zero stats; the matching 100% error rate is
reported by ``SampleSet.error_rate``, not here.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Iterable, Sequence

from stackcheck.sampler import Sample


@dataclass(frozen=True)
class LatencyStats:
    count: int = 0
    min_ms: int = 0
    max_ms: int = 0
    mean_ms: int = 0
    p95_ms: int = 0

    @property
    def empty(self) -> bool:
        return self.count == 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def percentile(sorted_values: Sequence[int], pct: float) -> int:
    if not sorted_values:
        return 0
    rank = max(1, math.ceil(pct * len(sorted_values) / 100))
    return sorted_values[min(rank, len(sorted_values)) - 1]


def summarize_latencies(latencies: Iterable[int]) -> LatencyStats:
    ordered = sorted(latencies)
    if not ordered:
        return LatencyStats()
    return LatencyStats(
        count=len(ordered),
        min_ms=ordered[0],
        max_ms=ordered[-1],
        mean_ms=sum(ordered) // len(ordered),
        p95_ms=percentile(ordered, 95),
    )


def summarize(samples: Iterable[Sample]) -> LatencyStats:
    """Reduce successful samples to min/max/mean/p95; failures are ignored."""
    return summarize_latencies(s.latency_ms for s in samples if s.ok)
