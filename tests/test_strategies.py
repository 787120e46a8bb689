"""Backend strategy characterization tests.

These pin the exact request bodies, client construction arguments and result
shapes for both backends. Backend request formats are consumed externally,
so drift here is a compatibility break.
"""

from __future__ import annotations

from typing import Any

import pytest

from aicore_bridge._version import __version__
from aicore_bridge.errors import RateLimitOrTransientError
from aicore_bridge.types import (
    CallOptions,
    Message,
    OtherWarning,
    ReasoningContent,
    ResponseFormat,
    TextContent,
    ToolCallContent,
    ToolChoice,
    ToolDefinition,
    UnsupportedWarning,
)
from tests.conftest import FakeClient
from tests.helpers import completion, make_provider

pytestmark = pytest.mark.contract

PROMPT = [Message("system", "Be brief."), Message("user", "Weather in Berlin?")]
WEATHER_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {"city": {"type": "string"}},
    "required": ["city"],
}
WEATHER_TOOL = ToolDefinition("get_weather", "Current weather", WEATHER_SCHEMA)


# =============================================================================
# Orchestration
# =============================================================================


@pytest.mark.asyncio
async def test_orchestration_request_shape_and_module_config() -> None:
    client = FakeClient(
        data={"request_id": "req-1", "final_result": completion("Sunny.")},
        headers={"X-Request-ID": "req-1"},
    )
    provider, factory = make_provider(client)
    model = provider(
        "gpt-4o",
        {
            "model_version": "2024-08-06",
            "model_params": {"maxTokens": 100},
            "filtering": {"input": {"filters": []}},
            "placeholder_values": {"a": "1"},
        },
    )

    result = await model.generate(
        CallOptions(
            prompt=PROMPT,
            temperature=0.3,
            tools=[WEATHER_TOOL],
            tool_choice=ToolChoice("required"),
            provider_options={"sap-ai": {"placeholder_values": {"b": "2"}}},
        )
    )

    model_block = {
        "name": "gpt-4o",
        "params": {"max_tokens": 100, "temperature": 0.3},
        "version": "2024-08-06",
    }
    tools = [
        {
            "type": "function",
            "function": {
                "name": "get_weather",
                "description": "Current weather",
                "parameters": WEATHER_SCHEMA,
            },
        }
    ]
    assert client.requests == [
        {
            "messages": [
                {"role": "system", "content": "Be brief."},
                {"role": "user", "content": "Weather in Berlin?"},
            ],
            "model": model_block,
            "placeholder_values": {"a": "1", "b": "2"},
            "tools": tools,
            "tool_choice": "required",
            "filtering": {"input": {"filters": []}},
        }
    ]
    assert factory.calls == [
        {
            "api": "orchestration",
            "purpose": "chat",
            "deployment": {},
            "destination": None,
            "module_config": {
                "prompt_templating": {
                    "prompt": {
                        "template": [],
                        "tools": tools,
                        "tool_choice": "required",
                    },
                    "model": model_block,
                },
                "filtering": {"input": {"filters": []}},
            },
        }
    ]

    assert result.text == "Sunny."
    assert result.finish_reason.unified == "stop"
    assert result.usage.input_tokens.total == 10
    assert result.usage.output_tokens.total == 5
    assert result.warnings == ()
    assert result.request_body == client.requests[0]
    assert result.provider_metadata == {
        "sap-ai": {"finish_reason": "stop", "version": __version__, "request_id": "req-1"}
    }
    assert result.response.id == "chatcmpl-1"
    assert result.response.headers == {"x-request-id": "req-1"}


@pytest.mark.asyncio
async def test_orchestration_template_ref_and_settings_tools() -> None:
    client = FakeClient(data=completion())
    provider, factory = make_provider(client)
    settings_tool = {"type": "function", "function": {"name": "lookup"}}
    model = provider(
        "gpt-4o",
        {"prompt_template_ref": {"id": "tpl-1"}, "tools": [settings_tool]},
    )

    await model.generate(CallOptions(prompt=PROMPT))

    body = client.requests[0]
    assert body["template_ref"] == {"id": "tpl-1", "scope": "tenant"}
    assert body["tools"] == [settings_tool]
    prompt = factory.calls[0]["module_config"]["prompt_templating"]["prompt"]
    assert prompt == {"template_ref": {"id": "tpl-1", "scope": "tenant"}, "tools": [settings_tool]}


@pytest.mark.asyncio
async def test_orchestration_call_tools_override_settings_tools_with_warning() -> None:
    client = FakeClient(data=completion())
    provider, _ = make_provider(client)
    model = provider(
        "gpt-4o", {"tools": [{"type": "function", "function": {"name": "lookup"}}]}
    )

    result = await model.generate(CallOptions(prompt=PROMPT, tools=[WEATHER_TOOL]))

    assert [t["function"]["name"] for t in client.requests[0]["tools"]] == ["get_weather"]
    assert any(
        isinstance(w, OtherWarning) and "call tools take precedence" in w.message
        for w in result.warnings
    )


@pytest.mark.asyncio
async def test_orchestration_escapes_placeholders_by_default() -> None:
    client = FakeClient(data=completion())
    provider, _ = make_provider(client)
    prompt = [Message("user", "Hi {{name}}")]

    await provider("gpt-4o").generate(CallOptions(prompt=prompt))
    await provider("gpt-4o").generate(
        CallOptions(
            prompt=prompt,
            provider_options={"sap-ai": {"escape_template_placeholders": False}},
        )
    )

    assert client.requests[0]["messages"][0]["content"] == "Hi {\u200b{name}}"
    assert client.requests[1]["messages"][0]["content"] == "Hi {{name}}"


@pytest.mark.asyncio
async def test_orchestration_warns_for_seed_and_stop_sequences() -> None:
    client = FakeClient(data=completion())
    provider, _ = make_provider(client)

    result = await provider("gpt-4o").generate(
        CallOptions(prompt=PROMPT, seed=1, stop_sequences=["END"], top_k=20)
    )

    assert client.requests[0]["model"]["params"] == {"top_k": 20}
    assert result.warnings == (
        UnsupportedWarning(feature="seed"),
        UnsupportedWarning(feature="stop_sequences"),
    )


# =============================================================================
# Foundation models
# =============================================================================


@pytest.mark.asyncio
async def test_foundation_models_request_shape_and_warnings() -> None:
    client = FakeClient(data=completion('{"city": "Berlin"}'))
    provider, factory = make_provider(client, resource_group="rg-1")
    model = provider(
        "gpt-4o",
        {
            "api": "foundation-models",
            "model_version": "latest",
            "data_sources": [{"type": "azure_search"}],
        },
    )
    schema = {"type": "object", "properties": {"city": {"type": "string"}}}

    result = await model.generate(
        CallOptions(
            prompt=PROMPT,
            seed=7,
            stop_sequences=["END"],
            top_k=5,
            tool_choice=ToolChoice("tool", "get_weather"),
            response_format=ResponseFormat("json", schema=schema, name="weather"),
        )
    )

    assert client.requests == [
        {
            "messages": [
                {"role": "system", "content": "Be brief."},
                {"role": "user", "content": "Weather in Berlin?"},
            ],
            "seed": 7,
            "stop": ["END"],
            "response_format": {
                "type": "json_schema",
                "json_schema": {"name": "weather", "schema": schema},
            },
            "data_sources": [{"type": "azure_search"}],
        }
    ]
    assert factory.calls[0]["api"] == "foundation-models"
    assert factory.calls[0]["deployment"] == {
        "model_name": "gpt-4o",
        "model_version": "latest",
        "resource_group": "rg-1",
    }
    assert factory.calls[0]["module_config"] is None

    assert [type(w).__name__ for w in result.warnings] == [
        "UnsupportedWarning",
        "UnsupportedWarning",
        "OtherWarning",
    ]
    assert result.warnings[0] == UnsupportedWarning(feature="top_k")
    assert result.warnings[1].feature == "tool_choice"


@pytest.mark.asyncio
async def test_foundation_models_fixed_deployment_id_wins() -> None:
    client = FakeClient(data=completion())
    provider, factory = make_provider(client, deployment_id="d-123", resource_group="rg")

    await provider("gpt-4o", {"api": "foundation-models"}).generate(
        CallOptions(prompt=PROMPT)
    )

    assert factory.calls[0]["deployment"] == {"deployment_id": "d-123"}


@pytest.mark.asyncio
async def test_json_mode_without_schema_and_non_object_tool_schema() -> None:
    client = FakeClient(data=completion())
    provider, _ = make_provider(client)

    result = await provider("gpt-4o", {"api": "foundation-models"}).generate(
        CallOptions(
            prompt=PROMPT,
            response_format=ResponseFormat("json"),
            tools=[
                ToolDefinition("ping", input_schema={"type": "string"}),
                ToolDefinition("web_search", type="provider"),
            ],
        )
    )

    body = client.requests[0]
    assert body["response_format"] == {"type": "json_object"}
    assert body["tools"] == [
        {
            "type": "function",
            "function": {
                "name": "ping",
                "parameters": {"type": "object", "properties": {}, "required": []},
            },
        }
    ]
    dropped = [w for w in result.warnings if isinstance(w, UnsupportedWarning)]
    assert len(dropped) == 1
    assert "web_search" in (dropped[0].details or "")


# =============================================================================
# Results and failures
# =============================================================================


@pytest.mark.asyncio
async def test_tool_call_and_reasoning_content() -> None:
    payload = completion(
        None,
        finish_reason="tool_calls",
        tool_calls=[
            {
                "id": "call_1",
                "type": "function",
                "function": {"name": "get_weather", "arguments": '{"city":"Berlin"}'},
            }
        ],
        usage={
            "prompt_tokens": 20,
            "completion_tokens": 12,
            "completion_tokens_details": {"reasoning_tokens": 8},
        },
    )
    payload["choices"][0]["message"]["reasoning_content"] = "Need the weather tool."
    client = FakeClient(data=payload)
    provider, _ = make_provider(client)

    result = await provider("gpt-4o").generate(CallOptions(prompt=PROMPT))

    assert result.content == (
        ReasoningContent("Need the weather tool."),
        ToolCallContent("call_1", "get_weather", '{"city":"Berlin"}'),
    )
    assert result.finish_reason.unified == "tool-calls"
    assert result.usage.output_tokens.reasoning == 8
    assert result.usage.output_tokens.text == 4
    assert not any(isinstance(c, TextContent) for c in result.content)


@pytest.mark.asyncio
async def test_backend_failure_is_classified_with_request_context() -> None:
    cause = RuntimeError("Request failed with status code 429")
    client = FakeClient(error=cause)
    provider, _ = make_provider(client)

    with pytest.raises(RateLimitOrTransientError) as exc_info:
        await provider("gpt-4o").generate(
            CallOptions(prompt=PROMPT, temperature=0.5, tools=[WEATHER_TOOL])
        )

    err = exc_info.value
    assert err.__cause__ is cause
    assert err.status_code == 429
    assert err.operation == "generate"
    assert err.url == "sap-ai:orchestration"
    assert err.request_summary == {
        "prompt_messages": 2,
        "has_image_parts": False,
        "tools": 1,
        "temperature": 0.5,
    }
