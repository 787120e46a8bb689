"""Foundation-models backend: direct OpenAI-compatible chat completions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from aicore_bridge.backends._common import convert_response_format, convert_tools
from aicore_bridge.backends.base import ChatStrategy
from aicore_bridge.params import FOUNDATION_MODELS_PARAM_MAPPINGS
from aicore_bridge.streaming import read_chat_completion_chunk
from aicore_bridge.types import BackendRequest, UnsupportedWarning

if TYPE_CHECKING:
    from collections.abc import Mapping

    from aicore_bridge.backends._common import CommonParts
    from aicore_bridge.backends.base import StrategyConfig
    from aicore_bridge.settings import ModelSettings
    from aicore_bridge.streaming import ChunkDelta
    from aicore_bridge.types import CallOptions, CallWarning


def build_model_deployment(
    config: StrategyConfig, model_version: str | None = None
) -> dict[str, str]:
    """A fixed deployment id wins; otherwise the model is resolved by name."""
    if config.deployment.deployment_id:
        return {"deployment_id": config.deployment.deployment_id}
    deployment = {"model_name": config.model_id}
    if model_version:
        deployment["model_version"] = model_version
    if config.deployment.resource_group:
        deployment["resource_group"] = config.deployment.resource_group
    return deployment


class FoundationModelsStrategy(ChatStrategy):
    """Chat completions against a foundation-model deployment."""

    api = "foundation-models"
    url = "sap-ai:foundation-models"
    param_mappings = FOUNDATION_MODELS_PARAM_MAPPINGS

    def deployment(
        self, config: StrategyConfig, settings: ModelSettings
    ) -> dict[str, str]:
        return build_model_deployment(config, settings.model_version)

    def build_request(
        self,
        config: StrategyConfig,
        settings: ModelSettings,
        options: CallOptions,
        parts: CommonParts,
    ) -> BackendRequest:
        warnings: list[CallWarning] = list(parts.warnings)

        if parts.tool_choice is not None and parts.tool_choice != "auto":
            warnings.append(
                UnsupportedWarning(
                    feature="tool_choice",
                    details=(
                        f"tool_choice {options.tool_choice.type!r} is not supported "
                        "by the foundation-models API; 'auto' is used."
                    ),
                )
            )

        tools, tool_warnings = convert_tools(options.tools)
        warnings.extend(tool_warnings)
        response_format, format_warnings = convert_response_format(
            options.response_format, settings.response_format
        )
        warnings.extend(format_warnings)

        body: dict[str, Any] = {"messages": parts.messages, **parts.model_params}
        if tools:
            body["tools"] = tools
        if response_format is not None:
            body["response_format"] = response_format
        if settings.data_sources:
            body["data_sources"] = [dict(s) for s in settings.data_sources]

        return BackendRequest(body=body, warnings=tuple(warnings))

    def read_chunk(self, chunk: Mapping[str, Any]) -> ChunkDelta:
        return read_chat_completion_chunk(chunk)
