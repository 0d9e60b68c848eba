from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from stackcheck.errors import ConfigurationError
from stackcheck.models import Defaults, Threshold


@dataclass(frozen=True)
class Settings:
    backend_url: str = "http://localhost:8080"
    frontend_url: str = "http://localhost:3000"
    chromadb_url: str = "http://localhost:8001"
    internal_api_url: str = "http://localhost:8000"
    redis_host: str = "localhost"
    redis_port: int = 6379
    num_requests: int = 100
    concurrency: int = 10
    p95_threshold_ms: float = 200.0
    max_response_time_ms: float = 200.0
    max_error_rate: float = 1.0
    load_multiplier: float = 1.5
    sustained_duration_s: float = 10.0
    request_timeout_s: float = 5.0
    connect_timeout_s: float = 2.0
    max_wait_s: float = 180.0
    wait_interval_s: float = 5.0
    correlation_header: str = "X-Correlation-ID"
    log_level: str = "WARNING"
    suite_path: Optional[str] = None
    # Fields set from the environment or an override rather than defaulted.
    explicit: frozenset = field(default=frozenset(), compare=False, repr=False)

    def threshold(self) -> Threshold:
        return Threshold(
            max_p95_ms=self.p95_threshold_ms,
            max_error_rate=self.max_error_rate,
            load_multiplier=self.load_multiplier,
        )

    def threshold_overrides(self) -> dict[str, float]:
        """Threshold values the user set explicitly; these beat a suite file's."""
        return {
            key: getattr(self, name)
            for name, key in THRESHOLD_FIELDS.items()
            if name in self.explicit
        }

    def defaults(self) -> Defaults:
        return Defaults(
            timeout_s=self.request_timeout_s,
            connect_timeout_s=self.connect_timeout_s,
        )

    def placeholders(self) -> dict[str, Any]:
        """Values that suite files may reference as ``{name}``."""
        return {
            "backend_url": self.backend_url.rstrip("/"),
            "frontend_url": self.frontend_url.rstrip("/"),
            "chromadb_url": self.chromadb_url.rstrip("/"),
            "internal_api_url": self.internal_api_url.rstrip("/"),
            "redis_host": self.redis_host,
            "redis_port": self.redis_port,
        }

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out.pop("explicit")
        return out


# settings field -> Threshold field
THRESHOLD_FIELDS = {
    "p95_threshold_ms": "max_p95_ms",
    "max_error_rate": "max_error_rate",
    "load_multiplier": "load_multiplier",
}

# env var -> (field, parser)
ENV_VARS: dict[str, tuple[str, type]] = {
    "BACKEND_URL": ("backend_url", str),
    "FRONTEND_URL": ("frontend_url", str),
    "CHROMADB_URL": ("chromadb_url", str),
    "FASTAPI_EXTERNAL_URL": ("internal_api_url", str),
    "REDIS_HOST": ("redis_host", str),
    "REDIS_PORT": ("redis_port", int),
    "NUM_REQUESTS": ("num_requests", int),
    "CONCURRENCY": ("concurrency", int),
    "P95_THRESHOLD_MS": ("p95_threshold_ms", float),
    "MAX_RESPONSE_TIME_MS": ("max_response_time_ms", float),
    "MAX_ERROR_RATE": ("max_error_rate", float),
    "LOAD_MULTIPLIER": ("load_multiplier", float),
    "SUSTAINED_DURATION_S": ("sustained_duration_s", float),
    "REQUEST_TIMEOUT_S": ("request_timeout_s", float),
    "CONNECT_TIMEOUT_S": ("connect_timeout_s", float),
    "MAX_WAIT_S": ("max_wait_s", float),
    "WAIT_INTERVAL_S": ("wait_interval_s", float),
    "CORRELATION_HEADER": ("correlation_header", str),
    "STACKCHECK_LOG_LEVEL": ("log_level", str),
    "STACKCHECK_SUITE": ("suite_path", str),
}

REQUIRED_TEXT = (
    "backend_url",
    "frontend_url",
    "chromadb_url",
    "internal_api_url",
    "redis_host",
    "correlation_header",
)
POSITIVE = (
    "redis_port",
    "num_requests",
    "concurrency",
    "p95_threshold_ms",
    "max_response_time_ms",
    "sustained_duration_s",
    "request_timeout_s",
    "connect_timeout_s",
    "wait_interval_s",
)


def load_settings(
    environ: Mapping[str, str] | None = None,
    use_dotenv: bool = True,
    **overrides: Any,
) -> Settings:
    """Build ``Settings`` from the environment (and ``.env``), then overrides.

    ``None`` overrides are ignored so CLI options can be passed straight in.
    """
    if environ is None:
        if use_dotenv:
            load_dotenv()
        environ = os.environ

    values: dict[str, Any] = {}
    for var, (field_name, parser) in ENV_VARS.items():
        raw = environ.get(var)
        if raw is None:
            continue
        raw = raw.strip()
        try:
            values[field_name] = parser(raw)
        except ValueError as exc:
            raise ConfigurationError(f"{var}={raw!r} is not a valid {parser.__name__}") from exc

    values.update({k: v for k, v in overrides.items() if v is not None})
    values["explicit"] = frozenset(values)
    try:
        settings = Settings(**values)
    except TypeError as exc:
        raise ConfigurationError(str(exc)) from exc
    validate_settings(settings)
    return settings


def validate_settings(settings: Settings) -> None:
    errors = []
    for name in REQUIRED_TEXT:
        if not str(getattr(settings, name) or "").strip():
            errors.append(f"{name} is required")
    for name in POSITIVE:
        if getattr(settings, name) <= 0:
            errors.append(f"{name} must be > 0")
    if not 0 <= settings.max_error_rate <= 100:
        errors.append("max_error_rate must be between 0 and 100")
    if settings.load_multiplier < 1:
        errors.append("load_multiplier must be >= 1")
    if settings.max_wait_s < 0:
        errors.append("max_wait_s must be >= 0")
    if errors:
        raise ConfigurationError("invalid configuration:\n  - " + "\n  - ".join(errors))
