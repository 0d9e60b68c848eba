from __future__ import annotations

import logging
import socket
import time

from stackcheck.checks.results import FailureKind, ProbeResult

logger = logging.getLogger(__name__)

PING = b"PING\r\n"
PONG = b"+PONG"


def run_tcp(host: str, port: int, timeout_s: float, ping: bool = False) -> ProbeResult:
    """Open a TCP connection; with ``ping`` also expect a Redis ``+PONG``.

    A successful connect is reported as ``status_code=0``.
    """
    start = time.perf_counter()
    try:
        with socket.create_connection((host, port), timeout=timeout_s) as sock:
            reply = b""
            if ping:
                sock.sendall(PING)
                reply = sock.recv(64)
            latency_ms = int((time.perf_counter() - start) * 1000)
    except socket.timeout:
        latency_ms = int((time.perf_counter() - start) * 1000)
        return ProbeResult(
            latency_ms=latency_ms,
            error=f"timed out after {timeout_s}s",
            failure=FailureKind.TIMEOUT,
        )
    except OSError as e:
        latency_ms = int((time.perf_counter() - start) * 1000)
        logger.debug("tcp %s:%s failed: %s", host, port, e)
        return ProbeResult(
            latency_ms=latency_ms,
            error=str(e) or e.__class__.__name__,
            failure=FailureKind.CONNECTION_ERROR,
        )

    if ping and not reply.startswith(PONG):
        snippet = reply[:40].decode("utf-8", errors="replace").strip()
        return ProbeResult(
            latency_ms=latency_ms,
            status_code=0,
            error=f"expected +PONG, got {snippet!r}",
            failure=FailureKind.INVALID_RESPONSE,
        )
    return ProbeResult(latency_ms=latency_ms, status_code=0)
