"""Stream Transformer: backend chunks to canonical stream events.

The transformer is a pull-based async generator with exactly one consumer.
All mutable state lives in a StreamState owned by one transformer.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
import time
from typing import TYPE_CHECKING, Any
import uuid

from aicore_bridge.results import map_finish_reason, merge_usage
from aicore_bridge.types import (
    ErrorEvent,
    Finish,
    FinishReason,
    RawChunk,
    ReasoningDelta,
    ReasoningEnd,
    ReasoningStart,
    ResponseMetadata,
    StreamStart,
    TextDelta,
    TextEnd,
    TextStart,
    ToolCall,
    ToolInputDelta,
    ToolInputEnd,
    ToolInputStart,
    Usage,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Sequence

    from aicore_bridge.cancellation import AbortSignal
    from aicore_bridge.errors import UnifiedError
    from aicore_bridge.types import CallWarning, StreamEvent

_DONE = object()
_ABORTED = object()


# =============================================================================
# Chunk reading
# =============================================================================


@dataclass(frozen=True)
class ToolCallDelta:
    index: int
    id: str | None = None
    name: str | None = None
    arguments: str | None = None


@dataclass(frozen=True)
class ChunkDelta:
    """Backend-neutral view of one streamed chunk."""

    response_id: str | None = None
    model_id: str | None = None
    text: str | None = None
    reasoning: str | None = None
    tool_calls: tuple[ToolCallDelta, ...] = ()
    finish_reason: str | None = None
    usage: Mapping[str, Any] | None = None


def read_chat_completion_chunk(payload: Mapping[str, Any]) -> ChunkDelta:
    """Read an OpenAI-style ``chat.completion.chunk`` payload."""
    choices = payload.get("choices")
    choice: Mapping[str, Any] = {}
    if isinstance(choices, list) and choices and isinstance(choices[0], Mapping):
        choice = choices[0]
    delta = choice.get("delta")
    if not isinstance(delta, Mapping):
        delta = {}

    tool_calls: list[ToolCallDelta] = []
    raw_calls = delta.get("tool_calls")
    if isinstance(raw_calls, list):
        for position, raw in enumerate(raw_calls):
            if not isinstance(raw, Mapping):
                continue
            function = raw.get("function")
            if not isinstance(function, Mapping):
                function = {}
            index = raw.get("index")
            tool_calls.append(
                ToolCallDelta(
                    index=index if isinstance(index, int) else position,
                    id=raw.get("id") or None,
                    name=function.get("name") or None,
                    arguments=function.get("arguments") or None,
                )
            )

    content = delta.get("content")
    reasoning = delta.get("reasoning_content")
    finish_reason = choice.get("finish_reason")
    usage = payload.get("usage")
    return ChunkDelta(
        response_id=payload.get("id") or None,
        model_id=payload.get("model") or None,
        text=content if isinstance(content, str) and content else None,
        reasoning=reasoning if isinstance(reasoning, str) and reasoning else None,
        tool_calls=tuple(tool_calls),
        finish_reason=finish_reason if isinstance(finish_reason, str) else None,
        usage=usage if isinstance(usage, Mapping) else None,
    )


# =============================================================================
# State
# =============================================================================


class StreamIdGenerator:
    """Fresh identifiers for responses, text blocks and tool calls."""

    def response_id(self) -> str:
        return str(uuid.uuid4())

    def text_block_id(self) -> str:
        return str(uuid.uuid4())

    def tool_call_id(self) -> str:
        return f"call_{uuid.uuid4().hex}"


@dataclass
class _ToolCallBuffer:
    id: str
    name: str | None = None
    arguments: str = ""
    started: bool = False
    finished: bool = False


@dataclass
class StreamState:
    finish_reason: FinishReason = field(default_factory=lambda: FinishReason("other"))
    saw_finish_reason: bool = False
    usage: Usage = field(default_factory=Usage)
    is_first_chunk: bool = True
    response_id: str | None = None
    text_id: str | None = None
    reasoning_id: str | None = None
    tool_calls: dict[int, _ToolCallBuffer] = field(default_factory=dict)


# =============================================================================
# Transformer
# =============================================================================


class StreamTransformer:
    """Turn backend chunks into the canonical event sequence.

    Example:
        transformer = StreamTransformer(chunks, read_chunk=read_chat_completion_chunk, ...)
        async for event in transformer.events():
            ...
    """

    def __init__(
        self,
        chunks: AsyncIterator[Mapping[str, Any]],
        *,
        read_chunk: Callable[[Mapping[str, Any]], ChunkDelta],
        model_id: str,
        provider_name: str,
        classify: Callable[[BaseException], UnifiedError],
        warnings: Sequence[CallWarning] = (),
        include_raw_chunks: bool = False,
        abort_signal: AbortSignal | None = None,
        ids: StreamIdGenerator | None = None,
    ) -> None:
        self._chunks = chunks
        self._read_chunk = read_chunk
        self._model_id = model_id
        self._provider_name = provider_name
        self._classify = classify
        self._warnings = tuple(warnings)
        self._include_raw = include_raw_chunks
        self._abort_signal = abort_signal
        self._ids = ids or StreamIdGenerator()
        self._state = StreamState()
        self._consumed = False

    @property
    def _aborted(self) -> bool:
        return self._abort_signal is not None and self._abort_signal.aborted

    async def events(self) -> AsyncIterator[StreamEvent]:
        """Yield canonical events; may be iterated once."""
        if self._consumed:
            raise RuntimeError("Stream already consumed")
        self._consumed = True

        iterator = aiter(self._chunks)
        try:
            if self._aborted:
                return
            yield StreamStart(warnings=self._warnings)
            try:
                while True:
                    chunk = await self._pull(iterator)
                    if chunk is _ABORTED:
                        return
                    if chunk is _DONE:
                        break
                    for event in self._process_chunk(chunk):
                        if self._aborted:
                            return
                        yield event
                finish = self._finalize()
            except Exception as e:
                if self._aborted:
                    return
                yield ErrorEvent(error=self._classify(e))
                return
            for event in finish:
                if self._aborted:
                    return
                yield event
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _pull(self, iterator: AsyncIterator[Mapping[str, Any]]) -> Any:
        """Next chunk, or a sentinel on exhaustion or abort."""
        if self._aborted:
            return _ABORTED
        if self._abort_signal is None:
            return await anext(iterator, _DONE)

        next_task = asyncio.ensure_future(_next_or_done(iterator))
        abort_task = asyncio.ensure_future(self._abort_signal.wait())
        try:
            await asyncio.wait(
                {next_task, abort_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            abort_task.cancel()

        if not next_task.done():
            next_task.cancel()
            await asyncio.gather(next_task, return_exceptions=True)
            return _ABORTED
        if self._aborted:
            return _ABORTED
        return next_task.result()

    def _process_chunk(self, chunk: Mapping[str, Any]) -> list[StreamEvent]:
        state = self._state
        events: list[StreamEvent] = []
        if self._include_raw:
            events.append(RawChunk(raw_value=chunk))

        delta = self._read_chunk(chunk)
        if state.is_first_chunk:
            state.is_first_chunk = False
            state.response_id = delta.response_id or self._ids.response_id()
            events.append(
                ResponseMetadata(
                    id=state.response_id,
                    model_id=delta.model_id or self._model_id,
                    timestamp=time.time(),
                )
            )

        if delta.usage is not None:
            state.usage = merge_usage(state.usage, delta.usage)

        if delta.reasoning:
            events.extend(self._close_text())
            if state.reasoning_id is None:
                state.reasoning_id = self._ids.text_block_id()
                events.append(ReasoningStart(id=state.reasoning_id))
            events.append(ReasoningDelta(id=state.reasoning_id, delta=delta.reasoning))

        if delta.text:
            events.extend(self._close_reasoning())
            if state.text_id is None:
                state.text_id = self._ids.text_block_id()
                events.append(TextStart(id=state.text_id))
            events.append(TextDelta(id=state.text_id, delta=delta.text))

        for tool_delta in delta.tool_calls:
            events.extend(self._on_tool_delta(tool_delta))

        if delta.finish_reason is not None:
            state.finish_reason = map_finish_reason(delta.finish_reason)
            state.saw_finish_reason = True
            if state.finish_reason.unified == "tool-calls":
                events.extend(self._flush_tool_calls())
                events.extend(self._close_text())
                events.extend(self._close_reasoning())
        return events

    def _on_tool_delta(self, tool_delta: ToolCallDelta) -> list[StreamEvent]:
        state = self._state
        buffer = state.tool_calls.get(tool_delta.index)
        if buffer is None:
            buffer = _ToolCallBuffer(id=tool_delta.id or self._ids.tool_call_id())
            state.tool_calls[tool_delta.index] = buffer
        if buffer.finished:
            return []

        events: list[StreamEvent] = []
        if tool_delta.id and not buffer.started:
            buffer.id = tool_delta.id
        if tool_delta.name and buffer.name is None:
            buffer.name = tool_delta.name
        if tool_delta.arguments:
            buffer.arguments += tool_delta.arguments

        if not buffer.started and buffer.name is not None:
            events.extend(self._close_text())
            events.extend(self._close_reasoning())
            buffer.started = True
            events.append(ToolInputStart(id=buffer.id, tool_name=buffer.name))
            if buffer.arguments:
                events.append(ToolInputDelta(id=buffer.id, delta=buffer.arguments))
        elif buffer.started and tool_delta.arguments:
            events.append(ToolInputDelta(id=buffer.id, delta=tool_delta.arguments))
        return events

    def _flush_tool_calls(self) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for index in sorted(self._state.tool_calls):
            buffer = self._state.tool_calls[index]
            if buffer.finished:
                continue
            if not buffer.started:
                buffer.name = buffer.name or ""
                buffer.started = True
                events.append(ToolInputStart(id=buffer.id, tool_name=buffer.name))
                if buffer.arguments:
                    events.append(ToolInputDelta(id=buffer.id, delta=buffer.arguments))
            buffer.finished = True
            events.append(ToolInputEnd(id=buffer.id))
            events.append(
                ToolCall(
                    tool_call_id=buffer.id,
                    tool_name=buffer.name or "",
                    input=buffer.arguments or "{}",
                )
            )
        return events

    def _close_text(self) -> list[StreamEvent]:
        if self._state.text_id is None:
            return []
        text_id, self._state.text_id = self._state.text_id, None
        return [TextEnd(id=text_id)]

    def _close_reasoning(self) -> list[StreamEvent]:
        if self._state.reasoning_id is None:
            return []
        reasoning_id, self._state.reasoning_id = self._state.reasoning_id, None
        return [ReasoningEnd(id=reasoning_id)]

    def _finalize(self) -> list[StreamEvent]:
        state = self._state
        events = self._flush_tool_calls()
        events.extend(self._close_reasoning())
        events.extend(self._close_text())
        if not state.saw_finish_reason and state.tool_calls:
            state.finish_reason = FinishReason("tool-calls")

        metadata: dict[str, Any] = {"finish_reason": state.finish_reason.raw}
        if state.response_id is not None:
            metadata["response_id"] = state.response_id
        events.append(
            Finish(
                finish_reason=state.finish_reason,
                usage=state.usage,
                provider_metadata={self._provider_name: metadata},
            )
        )
        return events


async def _next_or_done(iterator: AsyncIterator[Mapping[str, Any]]) -> Any:
    return await anext(iterator, _DONE)
