from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from requests.structures import CaseInsensitiveDict


class FailureKind(str, Enum):
    CONNECTION_ERROR = "connection_error"
    TIMEOUT = "timeout"
    INVALID_RESPONSE = "invalid_response"
    UNEXPECTED_STATUS = "unexpected_status"
    THRESHOLD_EXCEEDED = "threshold_exceeded"
    BOUNDARY_VIOLATION = "boundary_violation"


# Outcomes where nothing answered on the other end.
UNREACHABLE_KINDS = frozenset({FailureKind.CONNECTION_ERROR, FailureKind.TIMEOUT})


@dataclass(frozen=True)
class ProbeResult:
    latency_ms: int
    status_code: int | None = None
    headers: Mapping[str, str] = field(default_factory=CaseInsensitiveDict)
    body: bytes | None = None
    error: str | None = None
    failure: FailureKind | None = None

    @property
    def responded(self) -> bool:
        return self.status_code is not None

    @property
    def unreachable(self) -> bool:
        return self.failure in UNREACHABLE_KINDS

    def describe(self) -> str:
        if self.responded:
            return f"HTTP {self.status_code}"
        kind = self.failure.value if self.failure else "error"
        return f"{kind}: {self.error}" if self.error else kind
