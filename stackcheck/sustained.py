from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

from stackcheck.sampler import Probe, Progress, SampleSet, SampleSink

if TYPE_CHECKING:
    from stackcheck.persistence import SampleSpool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SustainedResult:
    sample_set: SampleSet
    elapsed_s: float
    throughput_rps: float
    error_rate: float


def run_for(
    probe: Probe,
    duration_s: float,
    *,
    target: str,
    expected_status: int = 200,
    spool: Optional["SampleSpool"] = None,
    progress: Optional[Progress] = None,
    clock: Callable[[], float] = time.monotonic,
) -> SustainedResult:
    """Probe back to back until ``duration_s`` of wall-clock time has passed.

    Throughput is successful requests per elapsed second (a float).
    """
    if duration_s <= 0:
        raise ValueError("duration_s must be > 0")

    sink = SampleSink(target, "sustained", expected_status, spool=spool, progress=progress)
    start = clock()
    deadline = start + duration_s
    while clock() < deadline:
        sink.append(probe())
    elapsed = clock() - start

    sample_set = sink.to_sample_set()
    successes = len(sample_set.successes)
    throughput = successes / elapsed if elapsed > 0 else 0.0
    logger.debug(
        "sustained %s: %d requests in %.2fs (%.1f req/s)",
        target,
        sample_set.total,
        elapsed,
        throughput,
    )
    return SustainedResult(
        sample_set=sample_set,
        elapsed_s=elapsed,
        throughput_rps=throughput,
        error_rate=sample_set.error_rate,
    )
