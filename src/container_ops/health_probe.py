"""Single-shot health probe against the running service graph."""

from __future__ import annotations

import logging
import time

import httpx

from src.pipeline_shared.models import ProbeResult

logger = logging.getLogger(__name__)


async def probe_health(
    url: str,
    timeout_seconds: float = 10.0,
    client: httpx.AsyncClient | None = None,
) -> ProbeResult:
    """Issue one GET against *url*.

    Never raises: a non-2xx status or a transport error is reported in
    the returned :class:`ProbeResult`.

    Args:
        url: Health endpoint URL.
        timeout_seconds: Request timeout.
        client: Optional preconfigured client (tests inject a mock
            transport here).
    """
    started = time.monotonic()
    result = ProbeResult(url=url)
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout_seconds) as own_client:
                resp = await own_client.get(url)
        else:
            resp = await client.get(url, timeout=timeout_seconds)
        result.status_code = resp.status_code
        result.healthy = resp.is_success
        if not result.healthy:
            result.error = f"status {resp.status_code}"
    except httpx.HTTPError as exc:
        result.error = f"{type(exc).__name__}: {exc}"
    result.elapsed_seconds = time.monotonic() - started
    return result
