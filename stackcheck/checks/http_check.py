from __future__ import annotations

import logging
import time
from typing import Mapping

import requests
from requests.structures import CaseInsensitiveDict

from stackcheck.checks.results import FailureKind, ProbeResult
from stackcheck.models import HttpTarget

logger = logging.getLogger(__name__)


def run_http(target: HttpTarget, headers: Mapping[str, str] | None = None) -> ProbeResult:
    """Issue one request against ``target`` and time it.

    Transport problems come back as a failed ``ProbeResult``; nothing is
    raised and nothing is retried.
    """
    request_headers = CaseInsensitiveDict(target.headers)
    if headers:
        request_headers.update(headers)
    connect_timeout = (
        target.timeout_s if target.connect_timeout_s is None else target.connect_timeout_s
    )

    start = time.perf_counter()
    try:
        r = requests.request(
            target.method,
            target.url,
            headers=request_headers or None,
            timeout=(connect_timeout, target.timeout_s),
            allow_redirects=False,
        )
        body = r.content
        latency_ms = int((time.perf_counter() - start) * 1000)
    except requests.Timeout as exc:
        return _failed(start, FailureKind.TIMEOUT, f"timed out after {target.timeout_s}s", target, exc)
    except requests.ConnectionError as exc:
        return _failed(start, FailureKind.CONNECTION_ERROR, _short(exc), target, exc)
    except requests.RequestException as exc:
        return _failed(start, FailureKind.INVALID_RESPONSE, _short(exc), target, exc)

    logger.debug("%s %s -> %s in %dms", target.method, target.url, r.status_code, latency_ms)
    return ProbeResult(
        latency_ms=latency_ms,
        status_code=r.status_code,
        headers=CaseInsensitiveDict(r.headers),
        body=body if target.keep_body else None,
    )


def _failed(
    start: float,
    kind: FailureKind,
    message: str,
    target: HttpTarget,
    exc: Exception,
) -> ProbeResult:
    latency_ms = int((time.perf_counter() - start) * 1000)
    logger.debug("%s %s failed (%s): %s", target.method, target.url, kind.value, exc)
    return ProbeResult(latency_ms=latency_ms, error=message, failure=kind)


def _short(exc: Exception) -> str:
    return f"{exc.__class__.__name__}: {exc}"[:240]
