"""Single-shot HTTP health probe for a candidate container.

``probe()`` issues exactly one bounded GET and never retries; the deployer
owns the retry loop.
"""

from __future__ import annotations

import asyncio

import httpx

from swapdeploy.logging import get_logger
from swapdeploy.models import HealthVerdict

log = get_logger("swapdeploy.health")

REASON_TIMEOUT = "timeout"
REASON_CONNECTION_ERROR = "connection_error"


def build_health_url(address: str, port: int, path: str) -> str:
    """Return ``http://address:port/path``, bracketing IPv6 literals."""
    host = f"[{address}]" if ":" in address and not address.startswith("[") else address
    if not path.startswith("/"):
        path = f"/{path}"
    return f"http://{host}:{port}{path}"


class HealthProber:
    """Probe a health endpoint once per call."""

    async def probe(self, address: str, port: int, path: str, timeout: float) -> HealthVerdict:
        """Return a healthy verdict only for a 2xx answer within *timeout*.

        httpx applies its timeout per phase and per read, so a slow response
        could outlive it; the overall deadline caps the whole request.
        """
        url = build_health_url(address, port, path)
        try:
            async with asyncio.timeout(timeout):
                async with httpx.AsyncClient(timeout=timeout) as client:
                    resp = await client.get(url)
        except (TimeoutError, httpx.TimeoutException):
            log.debug("health_probe_timeout", url=url, timeout=timeout)
            return HealthVerdict.failed(REASON_TIMEOUT)
        except httpx.RequestError as exc:
            log.debug("health_probe_connection_error", url=url, error=str(exc))
            return HealthVerdict.failed(REASON_CONNECTION_ERROR)

        if 200 <= resp.status_code < 300:
            log.debug("health_probe_ok", url=url, status=resp.status_code)
            return HealthVerdict.ok(resp.status_code)

        log.debug("health_probe_bad_status", url=url, status=resp.status_code)
        return HealthVerdict.failed(f"status_{resp.status_code}", status_code=resp.status_code)
