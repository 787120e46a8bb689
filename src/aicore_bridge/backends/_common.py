"""Request and response routines shared by both chat backends."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import json
from typing import TYPE_CHECKING, Any
import uuid

from aicore_bridge._version import __version__
from aicore_bridge.backends._errors import normalize_headers
from aicore_bridge.messages import convert_messages
from aicore_bridge.params import build_model_params
from aicore_bridge.results import map_finish_reason, parse_usage
from aicore_bridge.settings import InvocationOptions, parse_invocation_options
from aicore_bridge.types import (
    GenerateResult,
    ImagePart,
    OtherWarning,
    ReasoningContent,
    ResponseInfo,
    TextContent,
    ToolCallContent,
    UnsupportedWarning,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from aicore_bridge.params import ParamMapping
    from aicore_bridge.settings import ModelSettings
    from aicore_bridge.types import (
        BackendRequest,
        CallOptions,
        CallWarning,
        Content,
        ResponseFormat,
        ToolChoice,
        ToolDefinition,
    )

_JSON_MODE_WARNING = (
    "response_format JSON mode is forwarded to the model; schema adherence "
    "depends on the deployed model."
)


@dataclass
class CommonParts:
    """Everything both backends derive the same way from one call."""

    messages: list[dict[str, Any]]
    model_params: dict[str, Any]
    invocation: InvocationOptions | None
    tool_choice: str | dict[str, Any] | None
    warnings: list[CallWarning] = field(default_factory=list)


def provider_name(provider: str) -> str:
    """``"sap-ai.chat"`` -> ``"sap-ai"``; the key used for provider options."""
    return provider.split(".", 1)[0]


def build_common_parts(
    name: str,
    settings: ModelSettings,
    options: CallOptions,
    *,
    mappings: tuple[ParamMapping, ...],
    escape: Callable[[InvocationOptions | None], bool],
) -> CommonParts:
    invocation = parse_invocation_options(
        InvocationOptions, options.provider_options, name
    )
    include_reasoning = _first_set(
        invocation.include_reasoning if invocation else None,
        settings.include_reasoning,
        default=False,
    )
    messages = convert_messages(
        options.prompt,
        escape_template_placeholders=escape(invocation),
        include_reasoning=include_reasoning,
    )
    model_params, warnings = build_model_params(
        options,
        mappings,
        provider_params=invocation.model_params if invocation else None,
        settings_params=settings.model_params,
    )
    return CommonParts(
        messages=messages,
        model_params=model_params,
        invocation=invocation,
        tool_choice=map_tool_choice(options.tool_choice),
        warnings=warnings,
    )


def _first_set(*values: bool | None, default: bool) -> bool:
    for value in values:
        if value is not None:
            return value
    return default


def map_tool_choice(choice: ToolChoice | None) -> str | dict[str, Any] | None:
    if choice is None:
        return None
    if choice.type == "tool":
        return {"type": "function", "function": {"name": choice.tool_name}}
    return choice.type


def build_tool_parameters(schema: Mapping[str, Any] | None) -> dict[str, Any]:
    """Normalise a tool input schema to an object schema.

    Non-object schemas become an empty object schema; extra keywords of an
    object schema are preserved.
    """
    if not isinstance(schema, Mapping) or schema.get("type") != "object":
        return {"type": "object", "properties": {}, "required": []}
    properties = schema.get("properties")
    required = schema.get("required")
    out = {k: v for k, v in schema.items() if k not in ("properties", "required")}
    out["type"] = "object"
    out["properties"] = dict(properties) if isinstance(properties, Mapping) else {}
    out["required"] = list(required) if isinstance(required, (list, tuple)) else []
    return out


def convert_tools(
    tools: Sequence[ToolDefinition] | None,
) -> tuple[list[dict[str, Any]] | None, list[CallWarning]]:
    """Convert function tools; provider-defined tools are dropped with a warning."""
    if not tools:
        return None, []
    converted: list[dict[str, Any]] = []
    warnings: list[CallWarning] = []
    for tool in tools:
        if tool.type != "function":
            warnings.append(
                UnsupportedWarning(
                    feature=f"tool type {tool.type!r}",
                    details=f"Tool {tool.name!r} is not a function tool and was dropped.",
                )
            )
            continue
        function: dict[str, Any] = {
            "name": tool.name,
            "parameters": build_tool_parameters(tool.input_schema),
        }
        if tool.description:
            function["description"] = tool.description
        converted.append({"type": "function", "function": function})
    return converted or None, warnings


def convert_response_format(
    response_format: ResponseFormat | None,
    settings_format: Mapping[str, Any] | None,
) -> tuple[dict[str, Any] | None, list[CallWarning]]:
    """Call-level JSON format wins; otherwise the settings format passes through."""
    if response_format is None or response_format.type != "json":
        return (dict(settings_format) if settings_format else None), []

    warnings: list[CallWarning] = [OtherWarning(_JSON_MODE_WARNING)]
    if response_format.schema is None:
        return {"type": "json_object"}, warnings
    json_schema: dict[str, Any] = {
        "name": response_format.name or "response",
        "schema": dict(response_format.schema),
    }
    if response_format.description:
        json_schema["description"] = response_format.description
    return {"type": "json_schema", "json_schema": json_schema}, warnings


def request_summary(options: CallOptions) -> dict[str, Any]:
    """Redacted description of a call for error reports; never holds prompt content."""
    summary: dict[str, Any] = {
        "prompt_messages": len(options.prompt),
        "has_image_parts": any(
            isinstance(part, ImagePart)
            or (isinstance(part, Mapping) and part.get("type") in ("image", "file"))
            for message in options.prompt
            if not isinstance(message.content, str)
            for part in message.content
        ),
        "tools": len(options.tools or ()),
    }
    for key in (
        "max_output_tokens",
        "temperature",
        "top_p",
        "top_k",
        "frequency_penalty",
        "presence_penalty",
        "seed",
    ):
        value = getattr(options, key)
        if value is not None:
            summary[key] = value
    if options.stop_sequences:
        summary["stop_sequences"] = len(options.stop_sequences)
    if options.response_format is not None:
        summary["response_format"] = options.response_format.type
    if options.tool_choice is not None:
        summary["tool_choice"] = options.tool_choice.type
    return summary


def _arguments_json(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return "{}"
    return json.dumps(value)


def build_generate_result(
    payload: Mapping[str, Any],
    *,
    headers: Mapping[str, str] | None,
    request: BackendRequest,
    provider_name: str,
    model_id: str,
) -> GenerateResult:
    """Build the canonical result from an OpenAI-style chat completion payload."""
    choices = payload.get("choices")
    choice: Mapping[str, Any] = {}
    if isinstance(choices, list) and choices and isinstance(choices[0], Mapping):
        choice = choices[0]
    message = choice.get("message")
    if not isinstance(message, Mapping):
        message = {}

    content: list[Content] = []
    reasoning = message.get("reasoning_content")
    if isinstance(reasoning, str) and reasoning:
        content.append(ReasoningContent(reasoning))
    text = message.get("content")
    if isinstance(text, str) and text:
        content.append(TextContent(text))
    for call in message.get("tool_calls") or ():
        if not isinstance(call, Mapping):
            continue
        function = call.get("function")
        if not isinstance(function, Mapping):
            function = {}
        content.append(
            ToolCallContent(
                tool_call_id=call.get("id") or f"call_{uuid.uuid4().hex}",
                tool_name=function.get("name") or "",
                input=_arguments_json(function.get("arguments")),
            )
        )

    raw_reason = choice.get("finish_reason")
    finish_reason = map_finish_reason(raw_reason if isinstance(raw_reason, str) else None)
    norm_headers = normalize_headers(headers)
    metadata: dict[str, Any] = {
        "finish_reason": finish_reason.raw,
        "version": __version__,
    }
    if norm_headers and "x-request-id" in norm_headers:
        metadata["request_id"] = norm_headers["x-request-id"]

    created = payload.get("created")
    return GenerateResult(
        content=tuple(content),
        finish_reason=finish_reason,
        usage=parse_usage(payload.get("usage")),
        warnings=request.warnings,
        provider_metadata={provider_name: metadata},
        request_body=request.body,
        response=ResponseInfo(
            id=payload.get("id") or None,
            model_id=payload.get("model") or model_id,
            timestamp=float(created) if isinstance(created, (int, float)) else None,
            headers=norm_headers,
            body={
                k: payload[k] for k in ("id", "object", "model", "usage") if k in payload
            },
        ),
    )
