"""Parameter Mapper: canonical call options to backend model parameters.

Precedence for each mapped parameter is call option, then invocation-level
model params, then settings-level model params. Absent values are omitted.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from aicore_bridge.errors import ConfigurationError
from aicore_bridge.settings import model_param_issues
from aicore_bridge.types import OtherWarning, UnsupportedWarning

if TYPE_CHECKING:
    from aicore_bridge.types import CallOptions, CallWarning

_MAX_MERGE_DEPTH = 100

# CallOptions fields that map to generation parameters.
_OPTION_FIELDS: tuple[str, ...] = (
    "max_output_tokens",
    "temperature",
    "top_p",
    "top_k",
    "frequency_penalty",
    "presence_penalty",
    "seed",
    "stop_sequences",
)

# Call-option names as the range validator spells them.
_RANGE_CHECKED: dict[str, str] = {
    "max_output_tokens": "max_tokens",
    "temperature": "temperature",
    "top_p": "top_p",
    "frequency_penalty": "frequency_penalty",
    "presence_penalty": "presence_penalty",
}


@dataclass(frozen=True)
class ParamMapping:
    """One backend parameter and where its value may come from."""

    output_key: str
    option_key: str | None = None
    #: Key in model-params mappings; dropped from the output when it differs.
    source_key: str | None = None


COMMON_PARAM_MAPPINGS: tuple[ParamMapping, ...] = (
    ParamMapping("max_tokens", option_key="max_output_tokens", source_key="maxTokens"),
    ParamMapping("temperature", option_key="temperature", source_key="temperature"),
    ParamMapping("top_p", option_key="top_p", source_key="topP"),
    ParamMapping(
        "frequency_penalty",
        option_key="frequency_penalty",
        source_key="frequencyPenalty",
    ),
    ParamMapping(
        "presence_penalty", option_key="presence_penalty", source_key="presencePenalty"
    ),
    ParamMapping("parallel_tool_calls", source_key="parallel_tool_calls"),
)

ORCHESTRATION_PARAM_MAPPINGS: tuple[ParamMapping, ...] = (
    *COMMON_PARAM_MAPPINGS,
    ParamMapping("top_k", option_key="top_k", source_key="topK"),
)

FOUNDATION_MODELS_PARAM_MAPPINGS: tuple[ParamMapping, ...] = (
    *COMMON_PARAM_MAPPINGS,
    ParamMapping("seed", option_key="seed", source_key="seed"),
    ParamMapping("stop", option_key="stop_sequences", source_key="stop"),
    ParamMapping("logprobs", source_key="logprobs"),
    ParamMapping("top_logprobs", source_key="topLogprobs"),
    ParamMapping("logit_bias", source_key="logitBias"),
    ParamMapping("user", source_key="user"),
    ParamMapping("n", source_key="n"),
)


def deep_merge(*sources: Mapping[str, Any] | None) -> dict[str, Any]:
    """Merge nested mappings left to right; later sources win.

    Inputs are never mutated. ``None`` sources are skipped. Circular structures
    and nesting deeper than 100 levels raise ConfigurationError.
    """
    result: dict[str, Any] = {}
    for source in sources:
        if source is None:
            continue
        _merge_into(result, source, depth=0, active=set())
    return result


def _merge_into(
    target: dict[str, Any], source: Mapping[str, Any], *, depth: int, active: set[int]
) -> None:
    if depth > _MAX_MERGE_DEPTH:
        raise ConfigurationError(
            f"Maximum merge depth ({_MAX_MERGE_DEPTH}) exceeded",
            hint="Model params are nested too deeply.",
        )
    if id(source) in active:
        raise ConfigurationError("Circular reference detected during deep merge")
    active.add(id(source))
    try:
        for key, value in source.items():
            if isinstance(value, Mapping):
                existing = target.get(key)
                nested: dict[str, Any] = (
                    dict(existing) if isinstance(existing, Mapping) else {}
                )
                _merge_into(nested, value, depth=depth + 1, active=active)
                target[key] = nested
            else:
                target[key] = value
    finally:
        active.discard(id(source))


def _option_value(options: CallOptions, key: str) -> Any:
    value = getattr(options, key, None)
    if key == "stop_sequences" and value is not None:
        # An empty stop list means "not set".
        return list(value) or None
    return value


def apply_parameter_overrides(
    params: dict[str, Any],
    options: CallOptions,
    provider_params: Mapping[str, Any] | None,
    settings_params: Mapping[str, Any] | None,
    mappings: tuple[ParamMapping, ...],
) -> None:
    """Resolve each mapping into *params* in place."""
    for mapping in mappings:
        value = None
        if mapping.option_key is not None:
            value = _option_value(options, mapping.option_key)
        if value is None and mapping.source_key is not None:
            if provider_params is not None:
                value = provider_params.get(mapping.source_key)
            if value is None and settings_params is not None:
                value = settings_params.get(mapping.source_key)

        if value is not None:
            params[mapping.output_key] = value
        if mapping.source_key is not None and mapping.source_key != mapping.output_key:
            params.pop(mapping.source_key, None)


def build_model_params(
    options: CallOptions,
    mappings: tuple[ParamMapping, ...],
    *,
    provider_params: Mapping[str, Any] | None = None,
    settings_params: Mapping[str, Any] | None = None,
) -> tuple[dict[str, Any], list[CallWarning]]:
    """Build the backend parameter map and the warnings for options it cannot carry."""
    params = deep_merge(settings_params, provider_params)
    apply_parameter_overrides(params, options, provider_params, settings_params, mappings)

    warnings: list[CallWarning] = []
    supported = {m.option_key for m in mappings if m.option_key is not None}
    for key in _OPTION_FIELDS:
        if key not in supported and _option_value(options, key) is not None:
            warnings.append(UnsupportedWarning(feature=key))

    checked = {
        name: _option_value(options, key)
        for key, name in _RANGE_CHECKED.items()
        if _option_value(options, key) is not None
    }
    warnings.extend(
        OtherWarning(f"{issue}. The API may reject this value.")
        for issue in model_param_issues(checked)
    )
    return params, warnings
