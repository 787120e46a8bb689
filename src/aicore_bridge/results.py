"""Finish-reason and usage normalisation shared by generate and stream."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from aicore_bridge.types import FinishReason, InputTokens, OutputTokens, Usage

# Raw reasons reported by the model families behind both backends.
_FINISH_REASONS: dict[str, str] = {
    "stop": "stop",
    "end_turn": "stop",
    "eos": "stop",
    "stop_sequence": "stop",
    "length": "length",
    "max_tokens": "length",
    "max_tokens_reached": "length",
    "content_filter": "content-filter",
    "tool_calls": "tool-calls",
    "tool_call": "tool-calls",
    "function_call": "tool-calls",
    "error": "error",
}


def map_finish_reason(raw: str | None) -> FinishReason:
    """Map a backend finish reason to the unified set (case-insensitive).

    Total: unknown or missing reasons map to ``other``; the raw string is kept.
    """
    if not raw:
        return FinishReason("other", raw)
    return FinishReason(_FINISH_REASONS.get(raw.lower(), "other"), raw)  # type: ignore[arg-type]


def _int_or_none(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _usage_fields(raw: Mapping[str, Any]) -> dict[str, int | None]:
    prompt_details = raw.get("prompt_tokens_details")
    completion_details = raw.get("completion_tokens_details")
    return {
        "prompt": _int_or_none(raw.get("prompt_tokens")),
        "completion": _int_or_none(raw.get("completion_tokens")),
        "cached": _int_or_none(prompt_details.get("cached_tokens"))
        if isinstance(prompt_details, Mapping)
        else None,
        "reasoning": _int_or_none(completion_details.get("reasoning_tokens"))
        if isinstance(completion_details, Mapping)
        else None,
    }


def merge_usage(current: Usage, raw: Mapping[str, Any] | None) -> Usage:
    """Fold one raw usage report into *current*; the last reported value wins per field."""
    if not isinstance(raw, Mapping):
        return current
    fields = _usage_fields(raw)

    inp = current.input_tokens
    out = current.output_tokens
    if fields["prompt"] is not None:
        inp = replace(inp, total=fields["prompt"])
    if fields["cached"] is not None:
        inp = replace(inp, cache_read=fields["cached"])
    if fields["completion"] is not None:
        out = replace(out, total=fields["completion"])
    if fields["reasoning"] is not None:
        out = replace(out, reasoning=fields["reasoning"])

    no_cache = inp.total
    if inp.total is not None and inp.cache_read is not None:
        no_cache = inp.total - inp.cache_read
    text = out.total
    if out.total is not None and out.reasoning is not None:
        text = out.total - out.reasoning
    return Usage(
        input_tokens=replace(inp, no_cache=no_cache),
        output_tokens=replace(out, text=text),
    )


def parse_usage(raw: Mapping[str, Any] | None) -> Usage:
    """Build Usage from an OpenAI-style usage object; unreported fields stay None."""
    return merge_usage(Usage(), raw)
