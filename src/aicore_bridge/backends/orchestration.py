"""Orchestration backend: templating gateway with filtering, masking, grounding."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from aicore_bridge.backends._common import convert_response_format, convert_tools
from aicore_bridge.backends.base import ChatStrategy
from aicore_bridge.params import ORCHESTRATION_PARAM_MAPPINGS
from aicore_bridge.streaming import read_chat_completion_chunk
from aicore_bridge.types import BackendRequest, OtherWarning

if TYPE_CHECKING:
    from aicore_bridge.backends._common import CommonParts
    from aicore_bridge.backends.base import StrategyConfig
    from aicore_bridge.settings import InvocationOptions, ModelSettings
    from aicore_bridge.streaming import ChunkDelta
    from aicore_bridge.types import CallOptions, CallWarning

# Optional modules copied verbatim from settings when non-empty.
_MODULES = ("masking", "filtering", "grounding", "translation")


class OrchestrationStrategy(ChatStrategy):
    """Chat completions through the orchestration service."""

    api = "orchestration"
    url = "sap-ai:orchestration"
    param_mappings = ORCHESTRATION_PARAM_MAPPINGS
    stream_options = {"prompt_templating": {"include_usage": True}}

    def escape_placeholders(
        self, settings: ModelSettings, invocation: InvocationOptions | None
    ) -> bool:
        if invocation is not None and invocation.escape_template_placeholders is not None:
            return invocation.escape_template_placeholders
        if settings.escape_template_placeholders is not None:
            return settings.escape_template_placeholders
        return True

    def build_request(
        self,
        config: StrategyConfig,
        settings: ModelSettings,
        options: CallOptions,
        parts: CommonParts,
    ) -> BackendRequest:
        warnings: list[CallWarning] = list(parts.warnings)

        tools, tool_warnings = convert_tools(options.tools)
        warnings.extend(tool_warnings)
        if tools and settings.tools:
            warnings.append(
                OtherWarning(
                    "Both settings.tools and call tools were provided; "
                    "the call tools take precedence."
                )
            )
        elif not tools and settings.tools:
            tools = [dict(t) for t in settings.tools]

        response_format, format_warnings = convert_response_format(
            options.response_format, settings.response_format
        )
        warnings.extend(format_warnings)

        model: dict[str, Any] = {"name": config.model_id, "params": parts.model_params}
        if settings.model_version:
            model["version"] = settings.model_version

        body: dict[str, Any] = {"messages": parts.messages, "model": model}
        invocation = parts.invocation

        placeholder_values = {
            **(settings.placeholder_values or {}),
            **((invocation.placeholder_values if invocation else None) or {}),
        }
        if placeholder_values:
            body["placeholder_values"] = placeholder_values

        template_ref = (
            invocation.prompt_template_ref if invocation else None
        ) or settings.prompt_template_ref
        if template_ref is not None:
            body["template_ref"] = template_ref.to_request()
        if tools:
            body["tools"] = tools
        if parts.tool_choice is not None:
            body["tool_choice"] = parts.tool_choice
        if response_format is not None:
            body["response_format"] = response_format

        prompt: dict[str, Any] = (
            {"template_ref": body["template_ref"]}
            if "template_ref" in body
            else {"template": []}
        )
        for key in ("tools", "tool_choice", "response_format"):
            if key in body:
                prompt[key] = body[key]
        module_config: dict[str, Any] = {
            "prompt_templating": {"prompt": prompt, "model": model}
        }
        for key in _MODULES:
            value = getattr(settings, key)
            if value:
                body[key] = dict(value)
                module_config[key] = dict(value)

        return BackendRequest(
            body=body, module_config=module_config, warnings=tuple(warnings)
        )

    def read_response(self, data: Mapping[str, Any]) -> Mapping[str, Any]:
        final = data.get("final_result")
        return final if isinstance(final, Mapping) else data

    def read_chunk(self, chunk: Mapping[str, Any]) -> ChunkDelta:
        final = chunk.get("final_result")
        delta = read_chat_completion_chunk(final if isinstance(final, Mapping) else chunk)
        request_id = chunk.get("request_id")
        if delta.response_id is None and isinstance(request_id, str) and request_id:
            delta = replace(delta, response_id=request_id)
        return delta
