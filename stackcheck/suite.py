from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Iterable

import yaml
from pydantic import ValidationError

from stackcheck.config import Settings
from stackcheck.errors import ConfigurationError
from stackcheck.models import Defaults, HttpCheckBase, HttpTarget, Suite

logger = logging.getLogger(__name__)

# Only these fields may reference settings as {placeholder}.
TEMPLATED_FIELDS = ("url", "preflight_url", "host", "port")


def _verify_checks(s: Settings) -> list[dict[str, Any]]:
    return [
        {
            "id": "redis",
            "name": "Redis",
            "kind": "tcp",
            "phase": "infrastructure",
            "host": s.redis_host,
            "port": s.redis_port,
            "ping": True,
        },
        {
            "id": "chromadb-heartbeat",
            "name": "ChromaDB heartbeat",
            "kind": "endpoint",
            "phase": "infrastructure",
            "url": "{chromadb_url}/api/v1/heartbeat",
            "wait": True,
        },
        {
            "id": "gateway-health",
            "name": "Backend (API gateway) /actuator/health",
            "kind": "endpoint",
            "phase": "application",
            "url": "{backend_url}/actuator/health",
            "wait": True,
        },
        {
            "id": "frontend",
            "name": "Frontend",
            "kind": "endpoint",
            "phase": "application",
            "url": "{frontend_url}",
            "wait": True,
        },
        {
            "id": "internal-api-unreachable",
            "name": "Internal API not externally accessible",
            "kind": "unreachable",
            "phase": "boundary",
            "url": "{internal_api_url}/health",
        },
        {
            "id": "gateway-internal-api-up",
            "name": "Backend -> internal API connectivity",
            "kind": "component",
            "phase": "boundary",
            "url": "{backend_url}/actuator/health",
            "component": "fastapi",
            "expected": "UP",
        },
    ]


def _integration_checks(s: Settings) -> list[dict[str, Any]]:
    checks: list[dict[str, Any]] = [
        {
            "id": "gateway-health",
            "name": "Backend /actuator/health returns 200",
            "kind": "endpoint",
            "phase": "health",
            "url": "{backend_url}/actuator/health",
        },
    ]
    for component in ("db", "fastapi", "redis", "diskSpace"):
        checks.append(
            {
                "id": f"health-component-{component}",
                "name": f"Health contains '{component}' component",
                "kind": "component",
                "phase": "health",
                "url": "{backend_url}/actuator/health",
                "component": component,
                "expected": None,
            }
        )
    for check_id, name, path in (
        ("prometheus", "Prometheus endpoint", "/actuator/prometheus"),
        ("system-health", "API system health", "/api/v1/system/health"),
        ("liveness", "Liveness probe", "/api/v1/system/live"),
        ("readiness", "Readiness probe", "/api/v1/system/ready"),
    ):
        checks.append(
            {
                "id": check_id,
                "name": name,
                "kind": "endpoint",
                "phase": "health",
                "url": "{backend_url}" + path,
            }
        )
    checks += [
        {
            "id": "correlation-generated",
            "name": "Correlation ID generated",
            "kind": "correlation",
            "phase": "correlation",
            "url": "{backend_url}/actuator/health",
            "header": s.correlation_header,
        },
        {
            "id": "correlation-propagated",
            "name": "Correlation ID propagated",
            "kind": "correlation",
            "phase": "correlation",
            "url": "{backend_url}/actuator/health",
            "header": s.correlation_header,
            "generate_id": True,
        },
        {
            "id": "response-time",
            "name": "Health check response time",
            "kind": "latency",
            "phase": "performance",
            "url": "{backend_url}/actuator/health",
            "count": 1,
            "concurrency": 1,
            "max_p95_ms": s.max_response_time_ms,
        },
        {
            "id": "concurrent-smoke",
            "name": "5 concurrent health checks",
            "kind": "latency",
            "phase": "performance",
            "url": "{backend_url}/actuator/health",
            "count": 5,
            "concurrency": 5,
        },
        {
            "id": "chromadb-heartbeat",
            "name": "ChromaDB heartbeat",
            "kind": "endpoint",
            "phase": "vector-store",
            "url": "{chromadb_url}/api/v1/heartbeat",
            "optional": True,
        },
        {
            "id": "frontend",
            "name": "Frontend availability",
            "kind": "endpoint",
            "phase": "frontend",
            "url": "{frontend_url}",
            "optional": True,
        },
    ]
    return checks


def _performance_checks(s: Settings) -> list[dict[str, Any]]:
    checks: list[dict[str, Any]] = []
    for check_id, name, path in (
        ("perf-actuator-health", "Actuator health endpoint", "/actuator/health"),
        ("perf-system-health", "API system health endpoint", "/api/v1/system/health"),
        ("perf-liveness", "Liveness probe", "/api/v1/system/live"),
    ):
        checks.append(
            {
                "id": check_id,
                "name": name,
                "kind": "latency",
                "phase": "performance",
                "url": "{backend_url}" + path,
                "count": s.num_requests,
                "concurrency": 1,
            }
        )
    checks += [
        {
            "id": "perf-concurrent-load",
            "name": "Concurrent load",
            "kind": "latency",
            "phase": "performance",
            "url": "{backend_url}/actuator/health",
            "count": s.num_requests,
            "concurrency": s.concurrency,
        },
        {
            "id": "perf-sustained",
            "name": "Sustained traffic",
            "kind": "sustained",
            "phase": "performance",
            "url": "{backend_url}/actuator/health",
            "duration_s": s.sustained_duration_s,
        },
    ]
    return checks


def _verify(s: Settings) -> dict[str, Any]:
    return {"name": "verify", "checks": _verify_checks(s)}


def _integration(s: Settings) -> dict[str, Any]:
    return {"name": "integration", "checks": _integration_checks(s)}


def _performance(s: Settings) -> dict[str, Any]:
    return {
        "name": "performance",
        "preflight_url": "{backend_url}/actuator/health",
        "checks": _performance_checks(s),
    }


def _all(s: Settings) -> dict[str, Any]:
    checks: list[dict[str, Any]] = []
    seen: set[str] = set()
    for part in (_verify_checks(s), _integration_checks(s), _performance_checks(s)):
        for c in part:
            if c["id"] not in seen:
                seen.add(c["id"])
                checks.append(c)
    return {"name": "all", "checks": checks}


BUILTIN_SUITES: dict[str, Callable[[Settings], dict[str, Any]]] = {
    "all": _all,
    "verify": _verify,
    "integration": _integration,
    "performance": _performance,
}


def render_placeholders(data: Any, settings: Settings) -> Any:
    values = settings.placeholders()

    def render(key: str | None, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: render(k, v) for k, v in value.items()}
        if isinstance(value, list):
            return [render(None, v) for v in value]
        if isinstance(value, str) and key in TEMPLATED_FIELDS:
            try:
                return value.format_map(values)
            except (KeyError, IndexError, ValueError) as exc:
                raise ConfigurationError(f"bad placeholder in {key}={value!r}: {exc}") from exc
        return value

    return render(None, data)


def build_suite(data: Any, settings: Settings) -> Suite:
    if not isinstance(data, dict):
        raise ConfigurationError("suite must be a mapping at the top level")

    data = render_placeholders(data, settings)
    data.setdefault("defaults", settings.defaults().model_dump())
    try:
        suite = Suite.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid suite: {exc}") from exc

    if not suite.checks:
        raise ConfigurationError("suite defines no checks")

    # Ensure unique IDs
    seen = set()
    for c in suite.checks:
        if c.id in seen:
            raise ConfigurationError(f"Duplicate check id: {c.id}")
        seen.add(c.id)

    return suite


def load_suite(source: str, settings: Settings) -> Suite:
    """Resolve a built-in suite name or a YAML suite file."""
    if source in BUILTIN_SUITES:
        return build_suite(BUILTIN_SUITES[source](settings), settings)

    path = Path(source)
    if not path.is_file():
        raise ConfigurationError(
            f"unknown suite {source!r} (built-in: {', '.join(BUILTIN_SUITES)}; or a YAML file)"
        )
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"failed to read {path}: {exc}") from exc

    if isinstance(data, dict):
        data.setdefault("name", path.stem)
    logger.info("loaded suite from %s", path)
    return build_suite(data, settings)


def filter_phases(suite: Suite, phases: Iterable[str]) -> Suite:
    wanted = list(phases)
    if not wanted:
        return suite
    known = {c.phase for c in suite.checks}
    unknown = [p for p in wanted if p not in known]
    if unknown:
        raise ConfigurationError(
            f"unknown phase(s): {', '.join(unknown)} (suite has: {', '.join(sorted(known))})"
        )
    return suite.model_copy(update={"checks": [c for c in suite.checks if c.phase in wanted]})


def build_target(check: HttpCheckBase, defaults: Defaults, keep_body: bool = False) -> HttpTarget:
    return HttpTarget(
        name=check.id,
        url=check.url,
        method=check.method,
        headers=check.headers,
        timeout_s=check.timeout_s or defaults.timeout_s,
        connect_timeout_s=check.connect_timeout_s or defaults.connect_timeout_s,
        keep_body=keep_body,
    )


def describe_checks(suite: Suite) -> dict[str, dict]:
    """Checks keyed by id with defaults applied, as plain dicts."""
    out: dict[str, dict] = {}
    d = suite.defaults
    for c in suite.checks:
        cd = c.model_dump()
        cd["timeout_s"] = cd["timeout_s"] or d.timeout_s
        cd["connect_timeout_s"] = cd["connect_timeout_s"] or d.connect_timeout_s
        out[c.id] = cd
    return out
