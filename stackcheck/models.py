from __future__ import annotations

from typing import Annotated, Dict, List, Literal, Optional, Union
from urllib.parse import urlparse

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

CheckKind = Literal[
    "endpoint",
    "component",
    "correlation",
    "unreachable",
    "tcp",
    "latency",
    "sustained",
]


def _require_http_url(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(f"not an http(s) URL: {value!r}")
    return value


HttpUrlStr = Annotated[str, AfterValidator(_require_http_url)]


class Defaults(BaseModel):
    model_config = ConfigDict(frozen=True)

    timeout_s: float = Field(default=5.0, gt=0)
    connect_timeout_s: Optional[float] = Field(default=2.0, gt=0)


class Threshold(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_p95_ms: float = Field(default=200.0, gt=0)
    # percent, 0..100
    max_error_rate: float = Field(default=1.0, ge=0, le=100)
    load_multiplier: float = Field(default=1.5, ge=1)


class HttpTarget(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    url: HttpUrlStr
    method: str = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout_s: float = Field(default=5.0, gt=0)
    connect_timeout_s: Optional[float] = Field(default=None, gt=0)
    keep_body: bool = False


class BaseCheck(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., min_length=1)
    kind: CheckKind
    name: Optional[str] = None
    phase: str = "default"
    optional: bool = False
    timeout_s: Optional[float] = Field(default=None, gt=0)
    connect_timeout_s: Optional[float] = Field(default=None, gt=0)

    @property
    def title(self) -> str:
        return self.name or self.id


class HttpCheckBase(BaseCheck):
    url: HttpUrlStr
    method: str = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)


class EndpointCheck(HttpCheckBase):
    kind: Literal["endpoint"]
    expected_status: int = 200
    body_contains: List[str] = Field(default_factory=list)
    # With --wait, poll until the target answers below 400 before judging it.
    wait: bool = False


class ComponentCheck(HttpCheckBase):
    kind: Literal["component"]
    component: str = Field(..., min_length=1)
    # None only asserts the component is listed.
    expected: Optional[str] = "UP"


class CorrelationCheck(HttpCheckBase):
    kind: Literal["correlation"]
    header: str = "X-Correlation-ID"
    correlation_id: Optional[str] = None
    generate_id: bool = False


class UnreachableCheck(HttpCheckBase):
    kind: Literal["unreachable"]


class TcpCheck(BaseCheck):
    kind: Literal["tcp"]
    host: str = Field(..., min_length=1)
    port: int = Field(..., ge=1, le=65535)
    ping: bool = False


class LatencyCheck(HttpCheckBase):
    kind: Literal["latency"]
    expected_status: int = 200
    count: Optional[int] = Field(default=None, ge=1)
    # None follows the run's concurrency setting.
    concurrency: Optional[int] = Field(default=None, ge=1)
    max_p95_ms: Optional[float] = Field(default=None, gt=0)
    max_error_rate: Optional[float] = Field(default=None, ge=0, le=100)


class SustainedCheck(HttpCheckBase):
    kind: Literal["sustained"]
    expected_status: int = 200
    duration_s: Optional[float] = Field(default=None, gt=0)
    max_error_rate: Optional[float] = Field(default=None, ge=0, le=100)
    # Latency is only judged when set.
    max_p95_ms: Optional[float] = Field(default=None, gt=0)


Check = Annotated[
    Union[
        EndpointCheck,
        ComponentCheck,
        CorrelationCheck,
        UnreachableCheck,
        TcpCheck,
        LatencyCheck,
        SustainedCheck,
    ],
    Field(discriminator="kind"),
]


class Suite(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = "custom"
    preflight_url: Optional[HttpUrlStr] = None
    defaults: Defaults = Defaults()
    thresholds: Optional[Threshold] = None
    checks: List[Check]
