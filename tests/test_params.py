"""Parameter mapping and precedence tests."""

from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st
import pytest

from aicore_bridge.errors import ConfigurationError
from aicore_bridge.params import (
    FOUNDATION_MODELS_PARAM_MAPPINGS,
    ORCHESTRATION_PARAM_MAPPINGS,
    build_model_params,
    deep_merge,
)
from aicore_bridge.types import CallOptions, Message, OtherWarning, UnsupportedWarning

pytestmark = pytest.mark.unit

PROMPT = [Message("user", "Hi")]


# =============================================================================
# Precedence
# =============================================================================


def test_call_option_beats_settings_and_drops_camel_case_key() -> None:
    params, warnings = build_model_params(
        CallOptions(prompt=PROMPT, max_output_tokens=500),
        ORCHESTRATION_PARAM_MAPPINGS,
        settings_params={"maxTokens": 100, "custom_flag": "x"},
    )

    assert params == {"max_tokens": 500, "custom_flag": "x"}
    assert "maxTokens" not in params
    assert warnings == []


def test_invocation_params_beat_settings_params() -> None:
    params, _ = build_model_params(
        CallOptions(prompt=PROMPT),
        ORCHESTRATION_PARAM_MAPPINGS,
        provider_params={"temperature": 0.2},
        settings_params={"temperature": 0.9, "topP": 0.5},
    )

    assert params == {"temperature": 0.2, "top_p": 0.5}


def test_absent_values_are_omitted() -> None:
    params, warnings = build_model_params(
        CallOptions(prompt=PROMPT), FOUNDATION_MODELS_PARAM_MAPPINGS
    )
    assert params == {}
    assert warnings == []


@settings(max_examples=10, deadline=None, derandomize=True)
@given(
    option=st.integers(min_value=1, max_value=100_000),
    invocation=st.integers(min_value=1, max_value=100_000),
    model=st.integers(min_value=1, max_value=100_000),
)
def test_call_option_always_wins(option: int, invocation: int, model: int) -> None:
    params, _ = build_model_params(
        CallOptions(prompt=PROMPT, max_output_tokens=option),
        FOUNDATION_MODELS_PARAM_MAPPINGS,
        provider_params={"maxTokens": invocation},
        settings_params={"maxTokens": model},
    )
    assert params["max_tokens"] == option


# =============================================================================
# Backend mapping sets
# =============================================================================


def test_orchestration_maps_top_k_and_warns_for_seed_and_stop() -> None:
    params, warnings = build_model_params(
        CallOptions(prompt=PROMPT, top_k=40, seed=7, stop_sequences=["END"]),
        ORCHESTRATION_PARAM_MAPPINGS,
    )

    assert params == {"top_k": 40}
    assert warnings == [
        UnsupportedWarning(feature="seed"),
        UnsupportedWarning(feature="stop_sequences"),
    ]


def test_foundation_models_maps_seed_and_stop_and_warns_for_top_k() -> None:
    params, warnings = build_model_params(
        CallOptions(prompt=PROMPT, top_k=40, seed=7, stop_sequences=["END"]),
        FOUNDATION_MODELS_PARAM_MAPPINGS,
        settings_params={"logitBias": {"50256": -100}, "user": "u-1"},
    )

    assert params == {
        "seed": 7,
        "stop": ["END"],
        "logit_bias": {"50256": -100},
        "user": "u-1",
    }
    assert warnings == [UnsupportedWarning(feature="top_k")]


def test_empty_stop_list_counts_as_unset() -> None:
    params, warnings = build_model_params(
        CallOptions(prompt=PROMPT, stop_sequences=[]), ORCHESTRATION_PARAM_MAPPINGS
    )
    assert params == {}
    assert warnings == []


def test_out_of_range_option_is_forwarded_with_a_warning() -> None:
    params, warnings = build_model_params(
        CallOptions(prompt=PROMPT, temperature=3.0), ORCHESTRATION_PARAM_MAPPINGS
    )

    assert params == {"temperature": 3.0}
    assert len(warnings) == 1
    assert isinstance(warnings[0], OtherWarning)
    assert warnings[0].message.startswith("temperature=3.0 is invalid")
    assert warnings[0].message.endswith("The API may reject this value.")


# =============================================================================
# deep_merge
# =============================================================================


def test_deep_merge_merges_nested_mappings_without_mutating_inputs() -> None:
    base = {"a": {"x": 1, "y": 2}, "b": 1}
    override = {"a": {"y": 3}, "c": [1]}

    merged = deep_merge(base, None, override)

    assert merged == {"a": {"x": 1, "y": 3}, "b": 1, "c": [1]}
    assert base == {"a": {"x": 1, "y": 2}, "b": 1}
    assert override == {"a": {"y": 3}, "c": [1]}


def test_deep_merge_rejects_cycles() -> None:
    cyclic: dict = {}
    cyclic["self"] = cyclic

    with pytest.raises(ConfigurationError, match="Circular reference"):
        deep_merge(cyclic)


def test_deep_merge_rejects_excessive_depth() -> None:
    root: dict = {}
    cur = root
    for _ in range(150):
        cur["n"] = {}
        cur = cur["n"]

    with pytest.raises(ConfigurationError, match="Maximum merge depth"):
        deep_merge(root)
