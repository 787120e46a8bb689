"""Canonical data model shared by both backends."""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Literal, Union

if TYPE_CHECKING:
    from aicore_bridge.cancellation import AbortSignal
    from aicore_bridge.errors import UnifiedError

ApiType = Literal["orchestration", "foundation-models"]
Role = Literal["system", "user", "assistant", "tool"]
UnifiedFinishReason = Literal[
    "stop", "length", "content-filter", "tool-calls", "error", "other"
]

# =============================================================================
# Prompt
# =============================================================================


@dataclass(frozen=True)
class TextPart:
    text: str
    type: ClassVar[str] = "text"


@dataclass(frozen=True)
class ImagePart:
    """Image reference: URL string, base64 string, or raw bytes."""

    data: str | bytes
    media_type: str = "image/png"
    type: ClassVar[str] = "image"


@dataclass(frozen=True)
class ToolCallPart:
    tool_call_id: str
    tool_name: str
    input: Any
    type: ClassVar[str] = "tool-call"


@dataclass(frozen=True)
class ToolResultPart:
    tool_call_id: str
    tool_name: str
    output: Any
    type: ClassVar[str] = "tool-result"


@dataclass(frozen=True)
class ReasoningPart:
    text: str
    type: ClassVar[str] = "reasoning"


Part = Union[TextPart, ImagePart, ToolCallPart, ToolResultPart, ReasoningPart]


@dataclass(frozen=True)
class Message:
    """One conversational turn.

    System turns carry a plain string; every other role carries parts.
    """

    role: Role
    content: str | Sequence[Part | Mapping[str, Any]]


# =============================================================================
# Call options
# =============================================================================


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str | None = None
    input_schema: Mapping[str, Any] | None = None
    type: Literal["function", "provider"] = "function"


@dataclass(frozen=True)
class ToolChoice:
    type: Literal["auto", "none", "required", "tool"] = "auto"
    tool_name: str | None = None


@dataclass(frozen=True)
class ResponseFormat:
    type: Literal["text", "json"] = "text"
    schema: Mapping[str, Any] | None = None
    name: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class CallOptions:
    """Per-call canonical options. ``None`` means "not set"."""

    prompt: Sequence[Message]
    max_output_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    stop_sequences: Sequence[str] | None = None
    seed: int | None = None
    response_format: ResponseFormat | None = None
    tools: Sequence[ToolDefinition] | None = None
    tool_choice: ToolChoice | None = None
    abort_signal: AbortSignal | None = None
    #: Backend-scoped invocation options keyed by provider name.
    provider_options: Mapping[str, Mapping[str, Any]] | None = None
    include_raw_chunks: bool = False


# =============================================================================
# Warnings, finish reasons, usage
# =============================================================================


@dataclass(frozen=True)
class UnsupportedWarning:
    feature: str
    details: str | None = None
    type: ClassVar[str] = "unsupported"


@dataclass(frozen=True)
class CompatibilityWarning:
    feature: str
    details: str | None = None
    type: ClassVar[str] = "compatibility"


@dataclass(frozen=True)
class OtherWarning:
    message: str
    type: ClassVar[str] = "other"


CallWarning = Union[UnsupportedWarning, CompatibilityWarning, OtherWarning]


@dataclass(frozen=True)
class FinishReason:
    unified: UnifiedFinishReason
    raw: str | None = None


@dataclass(frozen=True)
class InputTokens:
    total: int | None = None
    no_cache: int | None = None
    cache_read: int | None = None
    cache_write: int | None = None


@dataclass(frozen=True)
class OutputTokens:
    total: int | None = None
    text: int | None = None
    reasoning: int | None = None


@dataclass(frozen=True)
class Usage:
    input_tokens: InputTokens = field(default_factory=InputTokens)
    output_tokens: OutputTokens = field(default_factory=OutputTokens)


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class TextContent:
    text: str
    type: ClassVar[str] = "text"


@dataclass(frozen=True)
class ReasoningContent:
    text: str
    type: ClassVar[str] = "reasoning"


@dataclass(frozen=True)
class ToolCallContent:
    tool_call_id: str
    tool_name: str
    input: str
    type: ClassVar[str] = "tool-call"


Content = Union[TextContent, ReasoningContent, ToolCallContent]


@dataclass(frozen=True)
class ResponseInfo:
    id: str | None = None
    model_id: str | None = None
    timestamp: float | None = None
    headers: Mapping[str, str] | None = None
    body: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class GenerateResult:
    content: tuple[Content, ...]
    finish_reason: FinishReason
    usage: Usage
    warnings: tuple[CallWarning, ...] = ()
    provider_metadata: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    request_body: Mapping[str, Any] = field(default_factory=dict)
    response: ResponseInfo = field(default_factory=ResponseInfo)

    @property
    def text(self) -> str:
        return "".join(c.text for c in self.content if isinstance(c, TextContent))


@dataclass(frozen=True)
class BackendRequest:
    """Backend-specific request, built fresh per call."""

    body: dict[str, Any]
    module_config: dict[str, Any] | None = None
    warnings: tuple[CallWarning, ...] = ()


# =============================================================================
# Stream events
# =============================================================================


@dataclass(frozen=True)
class StreamStart:
    warnings: tuple[CallWarning, ...] = ()
    type: ClassVar[str] = "stream-start"


@dataclass(frozen=True)
class ResponseMetadata:
    id: str
    model_id: str | None
    timestamp: float
    type: ClassVar[str] = "response-metadata"


@dataclass(frozen=True)
class TextStart:
    id: str
    type: ClassVar[str] = "text-start"


@dataclass(frozen=True)
class TextDelta:
    id: str
    delta: str
    type: ClassVar[str] = "text-delta"


@dataclass(frozen=True)
class TextEnd:
    id: str
    type: ClassVar[str] = "text-end"


@dataclass(frozen=True)
class ReasoningStart:
    id: str
    type: ClassVar[str] = "reasoning-start"


@dataclass(frozen=True)
class ReasoningDelta:
    id: str
    delta: str
    type: ClassVar[str] = "reasoning-delta"


@dataclass(frozen=True)
class ReasoningEnd:
    id: str
    type: ClassVar[str] = "reasoning-end"


@dataclass(frozen=True)
class ToolInputStart:
    id: str
    tool_name: str
    type: ClassVar[str] = "tool-input-start"


@dataclass(frozen=True)
class ToolInputDelta:
    id: str
    delta: str
    type: ClassVar[str] = "tool-input-delta"


@dataclass(frozen=True)
class ToolInputEnd:
    id: str
    type: ClassVar[str] = "tool-input-end"


@dataclass(frozen=True)
class ToolCall:
    tool_call_id: str
    tool_name: str
    input: str
    type: ClassVar[str] = "tool-call"


@dataclass(frozen=True)
class ToolResult:
    tool_call_id: str
    tool_name: str
    result: Any
    type: ClassVar[str] = "tool-result"


@dataclass(frozen=True)
class Finish:
    finish_reason: FinishReason
    usage: Usage
    provider_metadata: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    type: ClassVar[str] = "finish"


@dataclass(frozen=True)
class ErrorEvent:
    error: UnifiedError
    type: ClassVar[str] = "error"


@dataclass(frozen=True)
class RawChunk:
    raw_value: Any
    type: ClassVar[str] = "raw"


StreamEvent = Union[
    StreamStart,
    ResponseMetadata,
    TextStart,
    TextDelta,
    TextEnd,
    ReasoningStart,
    ReasoningDelta,
    ReasoningEnd,
    ToolInputStart,
    ToolInputDelta,
    ToolInputEnd,
    ToolCall,
    ToolResult,
    Finish,
    ErrorEvent,
    RawChunk,
]


@dataclass(frozen=True)
class StreamResult:
    stream: AsyncIterator[StreamEvent]
    request_body: Mapping[str, Any] = field(default_factory=dict)


# =============================================================================
# Embeddings
# =============================================================================


@dataclass(frozen=True)
class EmbedResult:
    embeddings: tuple[tuple[float, ...], ...]
    usage_tokens: int | None = None
    provider_metadata: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    warnings: tuple[CallWarning, ...] = ()
