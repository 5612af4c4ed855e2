"""Unit tests for meeting_room/healthcheck.py, no real API calls."""

import asyncio
from unittest.mock import AsyncMock

import meeting_room.healthcheck as hc
from meeting_room.healthcheck import HealthStatus, run_health_checks
from meeting_room.providers.base import ErrorKind, ProviderError
from tests.conftest import MockProvider, make_response


async def test_all_providers_pass():
    """All providers succeed -> all marked ok, no errors."""
    providers = {"claude": MockProvider("claude"), "gemini": MockProvider("gemini")}

    results = await run_health_checks(providers)

    assert list(results) == ["claude", "gemini"]
    for status in results.values():
        assert status.ok is True
        assert status.error == ""
        assert status.kind is None
        assert status.latency_sec >= 0
    assert providers["gemini"].generate.call_args.kwargs["max_tokens"] == 16


async def test_one_provider_fails():
    """A provider that raises is reported with its error kind."""
    providers = {"claude": MockProvider("claude"), "openai": MockProvider("openai")}
    providers["openai"].generate = AsyncMock(
        side_effect=ProviderError("openai", "502 Bad Gateway", ErrorKind.UNAVAILABLE)
    )

    results = await run_health_checks(providers)

    assert results["claude"].ok is True
    status = results["openai"]
    assert status.ok is False
    assert status.kind is ErrorKind.UNAVAILABLE
    assert status.retryable is True


async def test_auth_failure_gets_friendly_message():
    providers = {"gemini": MockProvider("gemini")}
    providers["gemini"].generate = AsyncMock(side_effect=ProviderError("gemini", "401", ErrorKind.AUTH))

    status = (await run_health_checks(providers))["gemini"]

    assert status.ok is False
    assert status.kind is ErrorKind.AUTH
    assert status.retryable is False
    assert status.error.startswith("API key is misconfigured")


async def test_plain_exception_is_classified():
    """SDK exceptions that are not ProviderErrors still get a kind."""
    providers = {"openai": MockProvider("openai"), "claude": MockProvider("claude")}
    providers["openai"].generate = AsyncMock(side_effect=Exception("429 rate_limit exceeded"))
    providers["claude"].generate = AsyncMock(side_effect=Exception("claude down"))

    results = await run_health_checks(providers)

    assert results["openai"].kind is ErrorKind.RATE_LIMIT
    assert results["claude"].ok is False
    assert results["claude"].kind is not None


async def test_empty_providers():
    assert await run_health_checks({}) == {}


async def test_timeout_counts_as_failure(monkeypatch):
    """A provider that hangs past the timeout is marked as a retryable timeout."""
    providers = {"slow": MockProvider("slow")}

    async def hang(*args, **kwargs):
        await asyncio.sleep(9999)
        return make_response("late")

    providers["slow"].generate = AsyncMock(side_effect=hang)
    monkeypatch.setattr(hc, "_TIMEOUT_SEC", 0.05)

    status = (await run_health_checks(providers))["slow"]

    assert status.ok is False
    assert status.kind is ErrorKind.TIMEOUT
    assert status.retryable is True
    assert status.error.startswith("No reply within")


def test_health_status_defaults():
    status = HealthStatus(ok=True, latency_sec=0.2)
    assert status.error == ""
    assert status.retryable is False
