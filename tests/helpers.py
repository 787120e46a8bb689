"""Test helpers (small, reusable doubles and payload builders).

Keep this file tiny and purpose-built: it exists to prevent test suites from
growing lots of one-off client subclasses as coverage expands.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from aicore_bridge.config import ProviderConfig
from aicore_bridge.model import Provider
from tests.conftest import FakeClient


@dataclass
class FakeClientFactory:
    """BackendClientFactory that records construction and hands out one client."""

    client: FakeClient = field(default_factory=FakeClient)
    calls: list[dict[str, Any]] = field(default_factory=list)

    def __call__(
        self,
        api: str,
        *,
        purpose: str,
        deployment: Any,
        destination: Any,
        module_config: Any,
    ) -> FakeClient:
        self.calls.append(
            {
                "api": api,
                "purpose": purpose,
                "deployment": dict(deployment),
                "destination": destination,
                "module_config": module_config,
            }
        )
        return self.client


@dataclass
class GateStreamClient(FakeClient):
    """FakeClient whose stream blocks after the first chunk until released.

    Useful for abort races without sleeps.
    """

    delivered_first: asyncio.Event = field(default_factory=asyncio.Event)
    release: asyncio.Event = field(default_factory=asyncio.Event)
    closed: bool = False

    async def execute_stream(
        self, request: Any, *, abort_signal: Any = None, stream_options: Any = None
    ) -> Any:
        del abort_signal, stream_options
        self.requests.append(dict(request))
        try:
            for i, chunk in enumerate(self.chunks):
                if i == 1:
                    self.delivered_first.set()
                    await self.release.wait()
                self.pulled += 1
                yield chunk
        finally:
            self.closed = True


def make_provider(
    client: FakeClient | None = None, **config_kwargs: Any
) -> tuple[Provider, FakeClientFactory]:
    factory = FakeClientFactory(client=client or FakeClient())
    return Provider(ProviderConfig(client_factory=factory, **config_kwargs)), factory


def completion(
    text: str | None = "Hello",
    *,
    finish_reason: str | None = "stop",
    tool_calls: list[dict[str, Any]] | None = None,
    usage: dict[str, Any] | None = None,
    response_id: str = "chatcmpl-1",
    model: str = "gpt-4o",
) -> dict[str, Any]:
    """OpenAI-style chat completion payload."""
    message: dict[str, Any] = {"role": "assistant", "content": text}
    if tool_calls is not None:
        message["tool_calls"] = tool_calls
    return {
        "id": response_id,
        "object": "chat.completion",
        "created": 1_700_000_000,
        "model": model,
        "choices": [{"index": 0, "message": message, "finish_reason": finish_reason}],
        "usage": usage
        if usage is not None
        else {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    }


def chunk(
    *,
    content: str | None = None,
    reasoning: str | None = None,
    tool_calls: list[dict[str, Any]] | None = None,
    finish_reason: str | None = None,
    usage: dict[str, Any] | None = None,
    response_id: str | None = "chatcmpl-1",
    model: str = "gpt-4o",
) -> dict[str, Any]:
    """OpenAI-style ``chat.completion.chunk`` payload."""
    delta: dict[str, Any] = {}
    if content is not None:
        delta["content"] = content
    if reasoning is not None:
        delta["reasoning_content"] = reasoning
    if tool_calls is not None:
        delta["tool_calls"] = tool_calls
    payload: dict[str, Any] = {
        "object": "chat.completion.chunk",
        "model": model,
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }
    if response_id is not None:
        payload["id"] = response_id
    if usage is not None:
        payload["usage"] = usage
    return payload


def tool_delta(
    index: int,
    *,
    call_id: str | None = None,
    name: str | None = None,
    arguments: str | None = None,
) -> dict[str, Any]:
    function: dict[str, Any] = {}
    if name is not None:
        function["name"] = name
    if arguments is not None:
        function["arguments"] = arguments
    out: dict[str, Any] = {"index": index, "type": "function", "function": function}
    if call_id is not None:
        out["id"] = call_id
    return out


async def collect(stream: Any) -> list[Any]:
    return [event async for event in stream]


def event_types(events: list[Any]) -> list[str]:
    return [e.type for e in events]
