from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional

from requests.structures import CaseInsensitiveDict

from stackcheck.checks.http_check import run_http
from stackcheck.checks.results import ProbeResult
from stackcheck.checks.tcp_check import run_tcp
from stackcheck.config import Settings
from stackcheck.models import (
    ComponentCheck,
    CorrelationCheck,
    Defaults,
    EndpointCheck,
    HttpTarget,
    LatencyCheck,
    Suite,
    SustainedCheck,
    TcpCheck,
    Threshold,
    UnreachableCheck,
)
from stackcheck.persistence import SampleSpool
from stackcheck.sampler import Progress, SampleSet, sample
from stackcheck.stats import summarize
from stackcheck.suite import build_target
from stackcheck.sustained import run_for
from stackcheck.thresholds import evaluate
from stackcheck.verdicts import (
    CheckVerdict,
    Evaluation,
    Outcome,
    RunReport,
    evaluate_component,
    evaluate_correlation,
    evaluate_endpoint,
    evaluate_port,
    evaluate_unreachable,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunContext:
    settings: Settings
    threshold: Threshold
    defaults: Defaults
    spool: Optional[SampleSpool] = None
    progress: Optional[Progress] = None
    wait: bool = False

    @classmethod
    def for_suite(cls, settings: Settings, suite: Suite, **kwargs: Any) -> "RunContext":
        """Explicit threshold settings beat the suite's ``thresholds``, which beat defaults."""
        threshold = settings.threshold()
        if suite.thresholds is not None:
            threshold = suite.thresholds.model_copy(update=settings.threshold_overrides())
        return cls(
            settings=settings,
            threshold=threshold,
            defaults=suite.defaults,
            **kwargs,
        )


def _verdict(
    check: Any,
    ev: Evaluation,
    unreachable: bool = False,
    **measurements: Any,
) -> CheckVerdict:
    if ev.passed:
        outcome = Outcome.PASS
        reason = ev.reason
    elif check.optional and unreachable:
        outcome = Outcome.SKIP
        reason = f"not available, skipped ({ev.reason})"
    else:
        outcome = Outcome.FAIL
        reason = ev.reason
    return CheckVerdict(
        check_id=check.id,
        name=check.title,
        kind=check.kind,
        phase=check.phase,
        outcome=outcome,
        reason=reason,
        mandatory=not check.optional,
        failure_kind=None if ev.passed else ev.failure_kind,
        security=ev.security,
        **measurements,
    )


def _threshold_for(check: LatencyCheck | SustainedCheck, base: Threshold) -> Threshold:
    update = {}
    if check.max_p95_ms is not None:
        update["max_p95_ms"] = check.max_p95_ms
    if check.max_error_rate is not None:
        update["max_error_rate"] = check.max_error_rate
    return base.model_copy(update=update) if update else base


def _no_response(sample_set: SampleSet) -> bool:
    return all(s.status_code is None for s in sample_set.samples)


def _check_endpoint(check: EndpointCheck, ctx: RunContext) -> CheckVerdict:
    target = build_target(check, ctx.defaults, keep_body=bool(check.body_contains))
    res = wait_for(target, ctx) if check.wait else run_http(target)
    ev = evaluate_endpoint(res, check.expected_status, check.body_contains)
    return _verdict(check, ev, unreachable=res.unreachable, latency_ms=res.latency_ms)


def _check_component(check: ComponentCheck, ctx: RunContext) -> CheckVerdict:
    target = build_target(check, ctx.defaults, keep_body=True)
    res = run_http(target)
    ev = evaluate_component(res, check.component, check.expected)
    return _verdict(check, ev, unreachable=res.unreachable, latency_ms=res.latency_ms)


def new_correlation_id() -> str:
    return f"stackcheck-{uuid.uuid4().hex[:12]}"


def _check_correlation(check: CorrelationCheck, ctx: RunContext) -> CheckVerdict:
    # A header preset in the check's headers is an id we supplied, not a generated one.
    supplied = check.correlation_id or CaseInsensitiveDict(check.headers).get(check.header)
    if supplied is None and check.generate_id:
        supplied = new_correlation_id()
    headers = {check.header: supplied} if supplied is not None else None

    target = build_target(check, ctx.defaults)
    res = run_http(target, headers=headers)
    ev = evaluate_correlation(res, check.header, supplied)
    return _verdict(check, ev, unreachable=res.unreachable, latency_ms=res.latency_ms)


def _check_unreachable(check: UnreachableCheck, ctx: RunContext) -> CheckVerdict:
    target = build_target(check, ctx.defaults)
    res = run_http(target)
    ev = evaluate_unreachable(res)
    if not ev.passed:
        logger.warning("%s: %s", check.id, ev.reason)
    return _verdict(check, ev, latency_ms=res.latency_ms)


def _check_tcp(check: TcpCheck, ctx: RunContext) -> CheckVerdict:
    timeout_s = check.timeout_s or ctx.defaults.timeout_s
    res = run_tcp(check.host, check.port, timeout_s=timeout_s, ping=check.ping)
    ev = evaluate_port(res)
    return _verdict(check, ev, unreachable=res.unreachable, latency_ms=res.latency_ms)


def _check_latency(check: LatencyCheck, ctx: RunContext) -> CheckVerdict:
    target = build_target(check, ctx.defaults)
    count = check.count or ctx.settings.num_requests
    concurrency = check.concurrency or ctx.settings.concurrency
    sample_set = sample(
        lambda: run_http(target),
        count,
        concurrency,
        target=check.id,
        expected_status=check.expected_status,
        spool=ctx.spool,
        progress=ctx.progress,
    )
    stats = summarize(sample_set.samples)
    threshold = _threshold_for(check, ctx.threshold)
    scored = evaluate(stats, sample_set.error_rate, threshold, sample_set.mode)

    ok = len(sample_set.successes)
    ev = Evaluation(
        passed=scored.passed,
        reason=f"{scored.reason} ({ok}/{sample_set.total} ok)",
        failure_kind=scored.failure_kind,
    )
    return _verdict(
        check,
        ev,
        unreachable=_no_response(sample_set),
        stats=stats,
        requests=sample_set.total,
        error_rate=sample_set.error_rate,
    )


def _check_sustained(check: SustainedCheck, ctx: RunContext) -> CheckVerdict:
    target = build_target(check, ctx.defaults)
    duration_s = check.duration_s or ctx.settings.sustained_duration_s
    result = run_for(
        lambda: run_http(target),
        duration_s,
        target=check.id,
        expected_status=check.expected_status,
        spool=ctx.spool,
        progress=ctx.progress,
    )
    sample_set = result.sample_set
    stats = summarize(sample_set.samples)
    threshold = _threshold_for(check, ctx.threshold)
    scored = evaluate(
        stats,
        result.error_rate,
        threshold,
        "sustained",
        check_latency=check.max_p95_ms is not None,
    )

    ev = Evaluation(
        passed=scored.passed,
        reason=(
            f"{scored.reason} ({sample_set.total} requests, "
            f"~{result.throughput_rps:.1f} req/s)"
        ),
        failure_kind=scored.failure_kind,
    )
    return _verdict(
        check,
        ev,
        unreachable=_no_response(sample_set),
        stats=stats,
        requests=sample_set.total,
        error_rate=result.error_rate,
        throughput_rps=result.throughput_rps,
        elapsed_s=result.elapsed_s,
    )


HANDLERS: dict[str, Callable[[Any, RunContext], CheckVerdict]] = {
    "endpoint": _check_endpoint,
    "component": _check_component,
    "correlation": _check_correlation,
    "unreachable": _check_unreachable,
    "tcp": _check_tcp,
    "latency": _check_latency,
    "sustained": _check_sustained,
}


def run_check(check: Any, ctx: RunContext) -> CheckVerdict:
    handler = HANDLERS[check.kind]
    logger.info("running %s (%s)", check.id, check.kind)
    verdict = handler(check, ctx)
    logger.info("%s: %s - %s", check.id, verdict.outcome.value, verdict.reason)
    return verdict


def wait_for(target: HttpTarget, ctx: RunContext) -> ProbeResult:
    """Probe ``target`` until it answers below HTTP 400, for at most ``max_wait_s``.

    Probes once when the run does not wait. Returns the last result either way.
    """
    max_wait = ctx.settings.max_wait_s if ctx.wait else 0.0
    interval = ctx.settings.wait_interval_s
    deadline = time.monotonic() + max_wait

    while True:
        res = run_http(target)
        if res.responded and res.status_code < 400:
            return res
        if time.monotonic() + interval > deadline:
            return res
        logger.info("waiting for %s (%s)", target.url, res.describe())
        time.sleep(interval)


def preflight(url: str, ctx: RunContext) -> tuple[bool, str]:
    target = HttpTarget(
        name="preflight",
        url=url,
        timeout_s=ctx.defaults.timeout_s,
        connect_timeout_s=ctx.defaults.connect_timeout_s,
    )
    res = wait_for(target, ctx)
    if res.responded and res.status_code < 400:
        return True, f"{url} is available ({res.describe()})"
    return False, f"{url} not available ({res.describe()})"


def run_suite(suite: Suite, ctx: RunContext) -> RunReport:
    report = RunReport(suite=suite.name)

    if suite.preflight_url:
        ok, reason = preflight(suite.preflight_url, ctx)
        if not ok:
            logger.warning("preflight failed, aborting run: %s", reason)
            report.add(
                CheckVerdict(
                    check_id="preflight",
                    name="Preflight",
                    kind="preflight",
                    phase="preflight",
                    outcome=Outcome.FAIL,
                    reason=reason,
                )
            )
            report.abort(reason)
            return report

    for check in suite.checks:
        report.add(run_check(check, ctx))

    report.finalize()
    return report
