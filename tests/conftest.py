"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration and the fake backend
client used across suites. All fixtures here are autouse unless noted.
"""

from __future__ import annotations

from contextlib import suppress
from dataclasses import dataclass, field
import logging
import os
from typing import Any

import pytest

from aicore_bridge.backends.base import BackendResponse
from aicore_bridge.backends.registry import clear_strategy_caches

MODEL_ID = "gpt-4o"

# =============================================================================
# Test Doubles
# =============================================================================


@dataclass
class FakeClient:
    """Backend client test double.

    Records every request and returns a configurable response. Use to test
    request shapes and result building without a network transport.
    """

    data: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] | None = None
    chunks: list[dict[str, Any]] = field(default_factory=list)
    error: BaseException | None = None
    requests: list[dict[str, Any]] = field(default_factory=list)
    stream_kwargs: list[dict[str, Any]] = field(default_factory=list)
    pulled: int = 0

    async def execute(self, request: Any, *, abort_signal: Any = None) -> BackendResponse:
        del abort_signal
        self.requests.append(dict(request))
        if self.error is not None:
            raise self.error
        return BackendResponse(data=self.data, headers=self.headers)

    async def execute_stream(
        self,
        request: Any,
        *,
        abort_signal: Any = None,
        stream_options: Any = None,
    ) -> Any:
        del abort_signal
        self.requests.append(dict(request))
        self.stream_kwargs.append({"stream_options": stream_options})
        for chunk in self.chunks:
            self.pulled += 1
            yield chunk
        if self.error is not None:
            raise self.error


# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_aicore_env(request, monkeypatch):
    """Ensure a clean AI Core environment for each test.

    Clears AICORE_* env vars to prevent test pollution.
    Opt-out: @pytest.mark.allow_env_pollution
    """
    if request.node.get_closest_marker("allow_env_pollution"):
        return
    for key in list(os.environ.keys()):
        if key.startswith("AICORE_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def fresh_strategy_cache():
    """Every test starts from an empty strategy cache."""
    clear_strategy_caches()
    yield
    clear_strategy_caches()


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


# =============================================================================
# Shared fixtures (opt-in)
# =============================================================================


@pytest.fixture
def model_id() -> str:
    return MODEL_ID
