"""Backend resolution and feature/backend compatibility checks.

Everything here runs before a client is constructed, so a misconfigured
call never reaches the network.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from aicore_bridge.backends.base import CAPABILITIES
from aicore_bridge.errors import (
    ApiSwitchError,
    ConfigurationError,
    UnsupportedFeatureError,
)

if TYPE_CHECKING:
    from aicore_bridge.settings import InvocationOptions, ModelSettings
    from aicore_bridge.types import ApiType

log = logging.getLogger(__name__)

DEFAULT_API: ApiType = "orchestration"
VALID_APIS: tuple[ApiType, ...] = ("orchestration", "foundation-models")

# (settings field, capability flag, label used in error messages)
_EXCLUSIVE_FEATURES: tuple[tuple[str, str, str], ...] = (
    ("filtering", "filtering", "Content filtering"),
    ("masking", "masking", "Data masking"),
    ("grounding", "grounding", "Document grounding"),
    ("translation", "translation", "Translation"),
    ("tools", "backend_tools", "SAP-format tool definitions (settings.tools)"),
    ("prompt_template_ref", "prompt_templates", "Prompt template references"),
    ("placeholder_values", "placeholder_values", "Template placeholder values"),
    ("data_sources", "data_sources", "Azure On Your Data (data_sources)"),
)

_ESCAPE_LABEL = "escape_template_placeholders"


def validate_api_input(api: Any) -> None:
    """Reject anything that is not a known backend name; ``None`` is allowed."""
    if api is None:
        return
    if api not in VALID_APIS:
        raise ConfigurationError(
            f"Invalid API type: {api!r}",
            hint="Valid values: 'orchestration', 'foundation-models'.",
        )


def resolve_api(
    provider_api: ApiType | None,
    model_api: ApiType | None,
    invocation_api: ApiType | None,
) -> ApiType:
    """First set of invocation, model, provider; else the system default."""
    for api in (invocation_api, model_api, provider_api):
        if api is not None:
            validate_api_input(api)
            return api
    return DEFAULT_API


def _other(api: ApiType) -> ApiType:
    return "foundation-models" if api == "orchestration" else "orchestration"


def _is_set(value: Any) -> bool:
    return value is not None and value != {} and value != []


def _features_of(api: ApiType, settings: ModelSettings) -> list[str]:
    """Labels of settings present that only *api* honours."""
    caps = CAPABILITIES[api]
    other_caps = CAPABILITIES[_other(api)]
    return [
        label
        for field_name, flag, label in _EXCLUSIVE_FEATURES
        if _is_set(getattr(settings, field_name))
        and getattr(caps, flag)
        and not getattr(other_caps, flag)
    ]


def validate_api_switch(
    from_api: ApiType, to_api: ApiType, settings: ModelSettings
) -> None:
    """Refuse an invocation-time switch that would silently drop model settings."""
    if from_api == to_api:
        return
    conflicts = _features_of(from_api, settings)
    if conflicts:
        raise ApiSwitchError(from_api, to_api, conflicts[0])


def validate_settings(
    *,
    api: ApiType,
    model_api: ApiType,
    settings: ModelSettings,
    invocation: InvocationOptions | None = None,
) -> None:
    """Validate the effective backend against model and invocation settings.

    Raises:
        ConfigurationError: Unknown backend name.
        ApiSwitchError: Invocation switches away from a backend whose features
            the model settings use.
        UnsupportedFeatureError: A setting only the other backend honours.
    """
    validate_api_input(api)
    if invocation is not None and invocation.api is not None:
        validate_api_switch(model_api, invocation.api, settings)

    caps = CAPABILITIES[api]
    for field_name, flag, label in _EXCLUSIVE_FEATURES:
        if _is_set(getattr(settings, field_name)) and not getattr(caps, flag):
            raise UnsupportedFeatureError(label, api, _other(api))

    if invocation is not None and not caps.prompt_templates:
        if invocation.prompt_template_ref is not None:
            raise UnsupportedFeatureError("Prompt template references", api, _other(api))
        if _is_set(invocation.placeholder_values):
            raise UnsupportedFeatureError("Template placeholder values", api, _other(api))

    escape = settings.escape_template_placeholders
    if invocation is not None and invocation.escape_template_placeholders is not None:
        escape = invocation.escape_template_placeholders
    if not caps.template_escaping and escape is True:
        raise UnsupportedFeatureError(_ESCAPE_LABEL, api, _other(api))

    log.debug("Validated settings for %s API", api)
