"""Finish-reason and usage normalisation tests."""

from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st
import pytest

from aicore_bridge.results import map_finish_reason, merge_usage, parse_usage
from aicore_bridge.types import FinishReason, InputTokens, OutputTokens, Usage

pytestmark = pytest.mark.unit

UNIFIED = {"stop", "length", "content-filter", "tool-calls", "error", "other"}


@pytest.mark.parametrize(
    ("raw", "unified"),
    [
        ("stop", "stop"),
        ("END_TURN", "stop"),
        ("eos", "stop"),
        ("stop_sequence", "stop"),
        ("length", "length"),
        ("max_tokens", "length"),
        ("Max_Tokens_Reached", "length"),
        ("content_filter", "content-filter"),
        ("tool_calls", "tool-calls"),
        ("tool_call", "tool-calls"),
        ("function_call", "tool-calls"),
        ("error", "error"),
        ("something_new", "other"),
    ],
)
def test_finish_reason_table(raw: str, unified: str) -> None:
    assert map_finish_reason(raw) == FinishReason(unified, raw)  # type: ignore[arg-type]


@pytest.mark.parametrize("raw", [None, ""])
def test_missing_finish_reason_is_other(raw: str | None) -> None:
    assert map_finish_reason(raw).unified == "other"


@settings(max_examples=10, deadline=None, derandomize=True)
@given(raw=st.one_of(st.none(), st.text()))
def test_finish_reason_mapping_is_total(raw: str | None) -> None:
    reason = map_finish_reason(raw)
    assert reason.unified in UNIFIED
    assert reason.raw == raw


def test_parse_usage_with_cache_and_reasoning_details() -> None:
    usage = parse_usage(
        {
            "prompt_tokens": 100,
            "completion_tokens": 40,
            "total_tokens": 140,
            "prompt_tokens_details": {"cached_tokens": 30},
            "completion_tokens_details": {"reasoning_tokens": 15},
        }
    )

    assert usage == Usage(
        input_tokens=InputTokens(total=100, no_cache=70, cache_read=30),
        output_tokens=OutputTokens(total=40, text=25, reasoning=15),
    )


def test_parse_usage_without_report_leaves_fields_unknown() -> None:
    assert parse_usage(None) == Usage()
    assert parse_usage({"prompt_tokens": "ten"}) == Usage()


def test_merge_usage_keeps_the_last_reported_value_per_field() -> None:
    usage = merge_usage(Usage(), {"prompt_tokens": 10})
    usage = merge_usage(usage, {"completion_tokens": 3})
    usage = merge_usage(usage, {"prompt_tokens": 12, "completion_tokens": 5})

    assert usage.input_tokens.total == 12
    assert usage.input_tokens.no_cache == 12
    assert usage.output_tokens.total == 5
    assert usage.output_tokens.text == 5
    assert usage.output_tokens.reasoning is None
