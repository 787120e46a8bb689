"""Compatibility Facade: current results and events in the legacy flat shape.

Legacy consumers expect a plain finish-reason string, flat token counters
and single-message warnings. Stream events other than ``stream-start`` and
``finish`` pass through unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import TYPE_CHECKING, Any, ClassVar, Protocol

from aicore_bridge.types import (
    CompatibilityWarning,
    Finish,
    StreamStart,
    UnsupportedWarning,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable, Mapping

    from aicore_bridge.model import LanguageModel
    from aicore_bridge.types import (
        CallOptions,
        CallWarning,
        Content,
        FinishReason,
        GenerateResult,
        StreamEvent,
        Usage,
    )

log = logging.getLogger(__name__)


class WarningSink(Protocol):
    def __call__(self, message: str) -> None: ...


def logging_warning_sink(logger: logging.Logger | None = None) -> WarningSink:
    """Sink that emits each legacy warning as a log line."""
    target = logger or log

    def _sink(message: str) -> None:
        target.warning("%s", message)

    return _sink


@dataclass(frozen=True)
class LegacyUsage:
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None
    reasoning_tokens: int | None = None
    cached_input_tokens: int | None = None


@dataclass(frozen=True)
class LegacyWarning:
    message: str
    type: str = "other"


@dataclass(frozen=True)
class LegacyGenerateResult:
    content: tuple[Content, ...]
    finish_reason: str
    usage: LegacyUsage
    warnings: tuple[LegacyWarning, ...] = ()
    provider_metadata: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    request_body: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LegacyStreamStart:
    warnings: tuple[LegacyWarning, ...] = ()
    type: ClassVar[str] = "stream-start"


@dataclass(frozen=True)
class LegacyFinish:
    finish_reason: str
    usage: LegacyUsage
    provider_metadata: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    type: ClassVar[str] = "finish"


def _sum_present(*values: int | None) -> int | None:
    present = [v for v in values if v is not None]
    return sum(present) if present else None


def to_legacy_usage(usage: Usage) -> LegacyUsage:
    """Flatten nested usage; totals are only set when both sides are known."""
    inp = usage.input_tokens
    out = usage.output_tokens
    input_tokens = (
        inp.total
        if inp.total is not None
        else _sum_present(inp.no_cache, inp.cache_read, inp.cache_write)
    )
    output_tokens = (
        out.total if out.total is not None else _sum_present(out.text, out.reasoning)
    )
    total = (
        input_tokens + output_tokens
        if input_tokens is not None and output_tokens is not None
        else None
    )
    return LegacyUsage(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=total,
        reasoning_tokens=out.reasoning,
        cached_input_tokens=inp.cache_read,
    )


def to_legacy_finish_reason(finish_reason: FinishReason) -> str:
    return finish_reason.unified


def format_warning(warning: CallWarning) -> str:
    if isinstance(warning, UnsupportedWarning):
        prefix = f"Unsupported feature: {warning.feature}"
    elif isinstance(warning, CompatibilityWarning):
        prefix = f"Compatibility mode: {warning.feature}"
    else:
        return warning.message
    return f"{prefix}. {warning.details}" if warning.details else prefix


def to_legacy_warning(warning: CallWarning) -> LegacyWarning:
    return LegacyWarning(message=format_warning(warning))


def _legacy_warnings(
    warnings: Iterable[CallWarning], sink: WarningSink | None
) -> tuple[LegacyWarning, ...]:
    if sink is None:
        return tuple(to_legacy_warning(w) for w in warnings)
    for w in warnings:
        sink(format_warning(w))
    return ()


def to_legacy_result(
    result: GenerateResult, *, warning_sink: WarningSink | None = None
) -> LegacyGenerateResult:
    """Convert a GenerateResult.

    Warnings become LegacyWarning objects, or lines sent to *warning_sink*
    when one is given.
    """
    return LegacyGenerateResult(
        content=result.content,
        finish_reason=to_legacy_finish_reason(result.finish_reason),
        usage=to_legacy_usage(result.usage),
        warnings=_legacy_warnings(result.warnings, warning_sink),
        provider_metadata=result.provider_metadata,
        request_body=result.request_body,
    )


async def to_legacy_stream(
    events: AsyncIterator[StreamEvent], *, warning_sink: WarningSink | None = None
) -> AsyncIterator[Any]:
    async for event in events:
        if isinstance(event, StreamStart):
            yield LegacyStreamStart(
                warnings=_legacy_warnings(event.warnings, warning_sink)
            )
        elif isinstance(event, Finish):
            yield LegacyFinish(
                finish_reason=to_legacy_finish_reason(event.finish_reason),
                usage=to_legacy_usage(event.usage),
                provider_metadata=event.provider_metadata,
            )
        else:
            yield event


@dataclass(frozen=True)
class LegacyStreamResult:
    stream: AsyncIterator[Any]
    request_body: Mapping[str, Any] = field(default_factory=dict)


class LegacyLanguageModel:
    """Wrap a LanguageModel for consumers of the legacy result shapes."""

    def __init__(
        self, model: LanguageModel, *, warning_sink: WarningSink | None = None
    ) -> None:
        self._model = model
        self._warning_sink = warning_sink

    @property
    def model_id(self) -> str:
        return self._model.model_id

    @property
    def provider(self) -> str:
        return self._model.provider

    async def generate(self, options: CallOptions) -> LegacyGenerateResult:
        result = await self._model.generate(options)
        return to_legacy_result(result, warning_sink=self._warning_sink)

    async def stream(self, options: CallOptions) -> LegacyStreamResult:
        result = await self._model.stream(options)
        return LegacyStreamResult(
            stream=to_legacy_stream(result.stream, warning_sink=self._warning_sink),
            request_body=result.request_body,
        )
