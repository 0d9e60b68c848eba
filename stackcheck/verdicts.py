from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional

from stackcheck.checks.results import FailureKind, ProbeResult
from stackcheck.stats import LatencyStats


class Outcome(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"
    SKIP = "SKIP"


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Evaluation:
    passed: bool
    reason: str
    failure_kind: FailureKind | None = None
    security: bool = False


@dataclass(frozen=True)
class CheckVerdict:
    check_id: str
    name: str
    kind: str
    phase: str
    outcome: Outcome
    reason: str
    mandatory: bool = True
    failure_kind: FailureKind | None = None
    security: bool = False
    latency_ms: int | None = None
    stats: LatencyStats | None = None
    requests: int | None = None
    error_rate: float | None = None
    throughput_rps: float | None = None
    elapsed_s: float | None = None

    @property
    def blocking(self) -> bool:
        return self.mandatory and self.outcome is Outcome.FAIL

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.check_id,
            "name": self.name,
            "kind": self.kind,
            "phase": self.phase,
            "outcome": self.outcome.value,
            "reason": self.reason,
            "mandatory": self.mandatory,
            "failure_kind": self.failure_kind.value if self.failure_kind else None,
            "security": self.security,
            "latency_ms": self.latency_ms,
            "stats": self.stats.to_dict() if self.stats else None,
            "requests": self.requests,
            "error_rate": self.error_rate,
            "throughput_rps": self.throughput_rps,
            "elapsed_s": self.elapsed_s,
        }


def _unreachable(result: ProbeResult) -> Evaluation:
    return Evaluation(
        passed=False,
        reason=f"no response ({result.describe()})",
        failure_kind=result.failure or FailureKind.CONNECTION_ERROR,
    )


def evaluate_endpoint(
    result: ProbeResult,
    expected_status: int = 200,
    body_contains: Iterable[str] = (),
) -> Evaluation:
    if not result.responded:
        return _unreachable(result)
    if result.status_code != expected_status:
        return Evaluation(
            passed=False,
            reason=f"returned {result.status_code} (expected {expected_status})",
            failure_kind=FailureKind.UNEXPECTED_STATUS,
        )

    text = (result.body or b"").decode("utf-8", errors="replace")
    missing = [needle for needle in body_contains if needle not in text]
    if missing:
        return Evaluation(
            passed=False,
            reason="body missing " + ", ".join(repr(m) for m in missing),
            failure_kind=FailureKind.UNEXPECTED_STATUS,
        )
    return Evaluation(passed=True, reason=f"returned {result.status_code}")


_ABSENT = object()


def component_status(payload: Any, component: str) -> Any:
    """Sub-status of ``component`` in a composite health body.

    Looks under ``components`` first (Spring actuator layout), then at the
    top level. Returns ``_ABSENT`` when the component is not listed.
    """
    if not isinstance(payload, dict):
        return _ABSENT
    components = payload.get("components")
    if isinstance(components, dict) and component in components:
        entry = components[component]
    elif component in payload:
        entry = payload[component]
    else:
        return _ABSENT
    if isinstance(entry, dict):
        return entry.get("status")
    return entry


def evaluate_component(
    result: ProbeResult,
    component: str,
    expected: Optional[str] = "UP",
) -> Evaluation:
    if not result.responded:
        return _unreachable(result)
    try:
        payload = json.loads(result.body or b"")
    except ValueError:
        return Evaluation(
            passed=False,
            reason=f"health body is not JSON (HTTP {result.status_code})",
            failure_kind=FailureKind.INVALID_RESPONSE,
        )

    status = component_status(payload, component)
    if status is _ABSENT:
        return Evaluation(
            passed=False,
            reason=f"component '{component}' missing from health response",
            failure_kind=FailureKind.UNEXPECTED_STATUS,
        )
    if expected is None:
        return Evaluation(passed=True, reason=f"component '{component}' present")
    if status != expected:
        return Evaluation(
            passed=False,
            reason=f"component '{component}' is {status!r} (expected {expected!r})",
            failure_kind=FailureKind.UNEXPECTED_STATUS,
        )
    return Evaluation(passed=True, reason=f"component '{component}' is {expected}")


def evaluate_correlation(
    result: ProbeResult,
    header: str = "X-Correlation-ID",
    supplied_id: Optional[str] = None,
) -> Evaluation:
    if not result.responded:
        return _unreachable(result)

    returned = (result.headers.get(header) or "").strip()
    if supplied_id is None:
        if returned:
            return Evaluation(passed=True, reason=f"{header} generated: {returned}")
        return Evaluation(
            passed=False,
            reason=f"{header} not found in response headers",
            failure_kind=FailureKind.UNEXPECTED_STATUS,
        )

    if returned == supplied_id:
        return Evaluation(passed=True, reason=f"{header} propagated: {supplied_id}")
    return Evaluation(
        passed=False,
        reason=f"{header} not propagated (expected {supplied_id!r}, got {returned!r})",
        failure_kind=FailureKind.UNEXPECTED_STATUS,
    )


def evaluate_unreachable(result: ProbeResult) -> Evaluation:
    """Pass only when nothing answered; any answer breaks the boundary."""
    if result.unreachable:
        return Evaluation(
            passed=True,
            reason=f"not externally reachable ({result.describe()})",
        )
    return Evaluation(
        passed=False,
        reason=(
            f"SECURITY: internal-only service is externally reachable "
            f"({result.describe()}); boundary violation"
        ),
        failure_kind=FailureKind.BOUNDARY_VIOLATION,
        security=True,
    )


def evaluate_port(result: ProbeResult) -> Evaluation:
    if result.responded and result.failure is None:
        return Evaluation(passed=True, reason=f"reachable in {result.latency_ms}ms")
    if result.responded:
        return Evaluation(
            passed=False,
            reason=f"connected but {result.error}",
            failure_kind=result.failure,
        )
    return _unreachable(result)


class RunReport:
    """Ordered verdicts of one run plus the aggregate outcome."""

    def __init__(self, suite: str = "custom") -> None:
        self.suite = suite
        self.started_at = utcnow_iso()
        self.finished_at: str | None = None
        self.aborted = False
        self.abort_reason: str | None = None
        self._verdicts: list[CheckVerdict] = []

    @property
    def finalized(self) -> bool:
        return self.finished_at is not None

    @property
    def verdicts(self) -> tuple[CheckVerdict, ...]:
        return tuple(self._verdicts)

    def add(self, verdict: CheckVerdict) -> None:
        if self.finalized:
            raise RuntimeError("run report is finalized")
        self._verdicts.append(verdict)

    def abort(self, reason: str) -> None:
        self.aborted = True
        self.abort_reason = reason
        self.finalize()

    def finalize(self) -> None:
        if not self.finalized:
            self.finished_at = utcnow_iso()

    @property
    def passed(self) -> bool:
        if self.aborted:
            return False
        return not any(v.blocking for v in self._verdicts)

    @property
    def outcome(self) -> Outcome:
        return Outcome.PASS if self.passed else Outcome.FAIL

    def counts(self) -> dict[str, int]:
        out = {"passed": 0, "failed": 0, "skipped": 0}
        for v in self._verdicts:
            if v.outcome is Outcome.PASS:
                out["passed"] += 1
            elif v.outcome is Outcome.FAIL:
                out["failed"] += 1
            else:
                out["skipped"] += 1
        return out

    def by_phase(self) -> dict[str, list[CheckVerdict]]:
        grouped: dict[str, list[CheckVerdict]] = {}
        for v in self._verdicts:
            grouped.setdefault(v.phase, []).append(v)
        return grouped

    def failures(self) -> list[CheckVerdict]:
        return [v for v in self._verdicts if v.outcome is Outcome.FAIL]

    def to_dict(self) -> dict[str, Any]:
        return {
            "suite": self.suite,
            "outcome": self.outcome.value,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "aborted": self.aborted,
            "abort_reason": self.abort_reason,
            "counts": self.counts(),
            "checks": [v.to_dict() for v in self._verdicts],
        }
