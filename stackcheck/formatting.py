from __future__ import annotations

from typing import Any, Dict

import click

from stackcheck.verdicts import CheckVerdict, Outcome, RunReport

RULE = "━" * 60

COLORS = {
    Outcome.PASS: "green",
    Outcome.FAIL: "red",
    Outcome.SKIP: "yellow",
}


def _label(outcome: Outcome, color: bool) -> str:
    text = f"[{outcome.value}]"
    return click.style(text, fg=COLORS[outcome], bold=True) if color else text


def format_verdict(v: CheckVerdict, color: bool = False) -> list[str]:
    lines = [f"{_label(v.outcome, color)} {v.name}: {v.reason}"]
    if v.stats is not None and v.requests is not None:
        failed = v.requests - v.stats.count
        lines.append(f"   Requests:   {v.stats.count} successful, {failed} failed")
        if not v.stats.empty:
            lines += [
                f"   Min:        {v.stats.min_ms}ms",
                f"   Max:        {v.stats.max_ms}ms",
                f"   Mean:       {v.stats.mean_ms}ms",
                f"   P95:        {v.stats.p95_ms}ms",
            ]
    if v.throughput_rps is not None:
        lines.append(f"   Duration:   {v.elapsed_s:.1f}s")
        lines.append(f"   Rate:       ~{v.throughput_rps:.1f} req/s")
    if v.error_rate is not None:
        lines.append(f"   Error rate: {v.error_rate:.2f}%")
    return lines


def format_report(report: RunReport, color: bool = False) -> str:
    lines: list[str] = []
    for phase, verdicts in report.by_phase().items():
        lines += [RULE, f"  Phase: {phase}", RULE]
        for v in verdicts:
            lines += format_verdict(v, color=color)
        lines.append("")

    counts = report.counts()
    lines += [
        RULE,
        f"  Summary ({report.suite})",
        RULE,
        f"  Passed:  {counts['passed']}",
        f"  Failed:  {counts['failed']}",
        f"  Skipped: {counts['skipped']}",
        "",
    ]

    if report.aborted:
        lines.append(f"Run aborted: {report.abort_reason}")
    security = [v for v in report.failures() if v.security]
    for v in security:
        lines.append(f"Boundary violation: {v.name}")

    verdict = _label(report.outcome, color)
    if report.passed:
        lines.append(f"{verdict} All mandatory checks passed.")
    else:
        lines.append(f"{verdict} Some mandatory checks failed.")
    return "\n".join(lines)


def format_settings(settings: Dict[str, Any]) -> str:
    width = max(len(k) for k in settings)
    return "\n".join(f"{k.ljust(width)}  {v}" for k, v in settings.items())
