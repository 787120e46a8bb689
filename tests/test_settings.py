"""Settings schema tests."""

from __future__ import annotations

import pytest

from aicore_bridge.errors import ConfigurationError
from aicore_bridge.settings import (
    EmbeddingSettings,
    InvocationOptions,
    ModelSettings,
    PromptTemplateRef,
    model_param_issues,
    parse_invocation_options,
    parse_settings,
)

pytestmark = pytest.mark.unit


def test_parse_settings_accepts_instance_mapping_and_none() -> None:
    settings = ModelSettings(model_version="1")

    assert parse_settings(ModelSettings, settings) is settings
    assert parse_settings(ModelSettings, {"model_version": "1"}) == settings
    assert parse_settings(ModelSettings, None) == ModelSettings()


def test_parse_settings_error_names_the_field_without_pydantic_prefix() -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        parse_settings(ModelSettings, {"model_params": {"temperature": 2.5}})

    message = str(exc_info.value)
    assert message.startswith("Invalid ModelSettings: model_params: temperature=2.5 is invalid")
    assert "Value error" not in message
    assert exc_info.value.hint is not None


@pytest.mark.parametrize(
    ("params", "count"),
    [
        ({}, 0),
        ({"maxTokens": 10, "temperature": 1.0, "custom": object()}, 0),
        ({"max_tokens": 0}, 1),
        ({"frequencyPenalty": -3, "presence_penalty": 3}, 2),
        ({"n": 0}, 1),
    ],
)
def test_model_param_issues(params: dict, count: int) -> None:
    assert len(model_param_issues(params)) == count


def test_invocation_options_are_scoped_by_provider_name() -> None:
    options = {"sap-ai": {"include_reasoning": True}, "other": {"api": "bogus"}}

    parsed = parse_invocation_options(InvocationOptions, options, "sap-ai")

    assert parsed == InvocationOptions(include_reasoning=True)
    assert parse_invocation_options(InvocationOptions, options, "missing") is None
    assert parse_invocation_options(InvocationOptions, None, "sap-ai") is None


def test_prompt_template_ref_shapes() -> None:
    by_id = PromptTemplateRef(id="tpl-1", scope="resource_group")
    by_name = PromptTemplateRef(name="greet", scenario="support", version="1.0.0")

    assert by_id.to_request() == {"id": "tpl-1", "scope": "resource_group"}
    assert by_name.to_request() == {
        "name": "greet",
        "scenario": "support",
        "version": "1.0.0",
        "scope": "tenant",
    }


@pytest.mark.parametrize(
    "raw",
    [
        {},
        {"name": "greet", "scenario": "support"},
        {"id": "tpl-1", "name": "greet"},
        {"id": "tpl-1", "scope": "global"},
    ],
)
def test_prompt_template_ref_rejects_ambiguous_shapes(raw: dict) -> None:
    with pytest.raises(ConfigurationError, match="PromptTemplateRef"):
        parse_settings(PromptTemplateRef, raw)


def test_embedding_settings_defaults_and_limits() -> None:
    assert EmbeddingSettings().max_embeddings_per_call == 2048
    with pytest.raises(ConfigurationError, match="max_embeddings_per_call"):
        parse_settings(EmbeddingSettings, {"max_embeddings_per_call": 0})
    with pytest.raises(ConfigurationError, match="type"):
        parse_settings(EmbeddingSettings, {"type": "image"})
