"""Provider health checks: ping each API before starting a debate."""

import asyncio
import logging
import time
from dataclasses import dataclass

from meeting_room.providers.base import RETRYABLE_KINDS, AIProvider, ErrorKind, classify_error, format_error

logger = logging.getLogger(__name__)

_PING_PROMPT = "Reply with the word OK only."
_PING_MAX_TOKENS = 16
_TIMEOUT_SEC = 15.0


@dataclass
class HealthStatus:
    ok: bool
    latency_sec: float
    error: str = ""
    kind: ErrorKind | None = None

    @property
    def retryable(self) -> bool:
        """Worth trying again later: the key and request were fine, the service was not."""
        return self.kind in RETRYABLE_KINDS


async def _ping(provider: AIProvider) -> HealthStatus:
    started = time.monotonic()
    try:
        await asyncio.wait_for(
            provider.generate(_PING_PROMPT, max_tokens=_PING_MAX_TOKENS),
            timeout=_TIMEOUT_SEC,
        )
    except TimeoutError:
        return HealthStatus(
            ok=False,
            latency_sec=time.monotonic() - started,
            error=f"No reply within {_TIMEOUT_SEC:.0f}s",
            kind=ErrorKind.TIMEOUT,
        )
    except Exception as exc:
        logger.debug("Health check failed for %s: %s", provider.name(), exc)
        return HealthStatus(
            ok=False,
            latency_sec=time.monotonic() - started,
            error=format_error(exc),
            kind=classify_error(exc),
        )
    return HealthStatus(ok=True, latency_sec=time.monotonic() - started)


async def run_health_checks(providers: dict[str, AIProvider]) -> dict[str, HealthStatus]:
    """Ping all providers in parallel; one HealthStatus per provider name."""
    names = list(providers)
    statuses = await asyncio.gather(*(_ping(providers[n]) for n in names))
    return dict(zip(names, statuses))
