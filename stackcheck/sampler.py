from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Literal, Optional

from stackcheck.checks.results import ProbeResult

if TYPE_CHECKING:
    from stackcheck.persistence import SampleSpool

logger = logging.getLogger(__name__)

SampleMode = Literal["single", "concurrent", "sustained"]
Probe = Callable[[], ProbeResult]
Progress = Callable[[int], None]

PROGRESS_EVERY = 20


@dataclass(frozen=True)
class Sample:
    ordinal: int
    latency_ms: int
    status_code: int | None
    ok: bool
    error: str | None = None

    @classmethod
    def from_result(cls, ordinal: int, result: ProbeResult, expected_status: int) -> "Sample":
        return cls(
            ordinal=ordinal,
            latency_ms=result.latency_ms,
            status_code=result.status_code,
            ok=result.status_code == expected_status,
            error=result.error,
        )


@dataclass(frozen=True)
class SampleSet:
    target: str
    mode: SampleMode
    samples: tuple[Sample, ...] = field(default_factory=tuple)

    @property
    def total(self) -> int:
        return len(self.samples)

    @property
    def successes(self) -> tuple[Sample, ...]:
        return tuple(s for s in self.samples if s.ok)

    @property
    def failures(self) -> tuple[Sample, ...]:
        return tuple(s for s in self.samples if not s.ok)

    @property
    def error_rate(self) -> float:
        """Failed share in percent; an empty set counts as 100."""
        if not self.samples:
            return 100.0
        return len(self.failures) * 100 / len(self.samples)


class SampleSink:
    """Append-only collector shared by sampling workers."""

    def __init__(
        self,
        target: str,
        mode: SampleMode,
        expected_status: int = 200,
        spool: Optional["SampleSpool"] = None,
        progress: Optional[Progress] = None,
    ) -> None:
        self.target = target
        self.mode = mode
        self.expected_status = expected_status
        self._samples: list[Sample] = []
        self._lock = threading.Lock()
        self._spool = spool
        self._progress = progress

    def append(self, result: ProbeResult) -> Sample:
        with self._lock:
            sample = Sample.from_result(len(self._samples) + 1, result, self.expected_status)
            self._samples.append(sample)
            done = len(self._samples)
        if self._spool is not None:
            self._spool.insert_sample(self.target, self.mode, sample)
        if self._progress is not None and done % PROGRESS_EVERY == 0:
            self._progress(done)
        return sample

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)

    def to_sample_set(self) -> SampleSet:
        with self._lock:
            return SampleSet(target=self.target, mode=self.mode, samples=tuple(self._samples))


def partition(count: int, workers: int) -> list[int]:
    """Split ``count`` into ``workers`` shares differing by at most one."""
    base, extra = divmod(count, workers)
    return [base + (1 if i < extra else 0) for i in range(workers)]


def sample(
    probe: Probe,
    count: int,
    concurrency: int = 1,
    *,
    target: str,
    expected_status: int = 200,
    spool: Optional["SampleSpool"] = None,
    progress: Optional[Progress] = None,
) -> SampleSet:
    if count < 1:
        raise ValueError("count must be >= 1")
    if concurrency < 1:
        raise ValueError("concurrency must be >= 1")

    mode: SampleMode = "single" if concurrency == 1 else "concurrent"
    sink = SampleSink(target, mode, expected_status, spool=spool, progress=progress)

    if concurrency == 1:
        for _ in range(count):
            sink.append(probe())
        return sink.to_sample_set()

    def worker(share: int) -> None:
        for _ in range(share):
            sink.append(probe())

    shares = [s for s in partition(count, concurrency) if s > 0]
    logger.debug("sampling %s: %d requests across %d workers", target, count, len(shares))
    with ThreadPoolExecutor(max_workers=len(shares), thread_name_prefix="stackcheck") as pool:
        futures = [pool.submit(worker, share) for share in shares]
        wait(futures)

    for fut in futures:
        # Surface worker bugs only after every worker has finished.
        fut.result()
    return sink.to_sample_set()
