"""Message Converter: canonical prompt to backend chat messages."""

from __future__ import annotations

import base64
from collections.abc import Mapping
import json
import logging
import re
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from aicore_bridge.errors import ConfigurationError
from aicore_bridge.types import (
    ImagePart,
    ReasoningPart,
    TextPart,
    ToolCallPart,
    ToolResultPart,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from aicore_bridge.types import Message, Part

log = logging.getLogger(__name__)

_ZERO_WIDTH_SPACE = "\u200b"
_PLACEHOLDER_RE = re.compile(r"\{(?=[{%#])")
_ESCAPED_RE = re.compile("\\{\u200b(?=[{%#])")

_COMMON_IMAGE_TYPES = frozenset(
    {"image/png", "image/jpeg", "image/jpg", "image/gif", "image/webp"}
)

# Parts each role may carry.
_ALLOWED_PARTS: dict[str, tuple[type, ...]] = {
    "user": (TextPart, ImagePart),
    "assistant": (TextPart, ReasoningPart, ToolCallPart),
    "tool": (ToolResultPart,),
}


def escape_template_placeholders(text: str) -> str:
    """Break ``{{``, ``{%`` and ``{#`` so the templating engine reads them literally.

    A zero-width space is inserted after the ``{``. Repeated until stable so
    runs like ``{{{`` are fully escaped.
    """
    while True:
        escaped = _PLACEHOLDER_RE.sub("{" + _ZERO_WIDTH_SPACE, text)
        if escaped == text:
            return escaped
        text = escaped


def unescape_template_placeholders(text: str) -> str:
    """Reverse escape_template_placeholders()."""
    return _ESCAPED_RE.sub("{", text)


def convert_messages(
    prompt: Sequence[Message],
    *,
    escape_template_placeholders: bool = False,
    include_reasoning: bool = False,
) -> list[dict[str, Any]]:
    """Convert canonical messages into backend chat messages.

    One canonical message can expand into several backend messages; each
    tool result becomes its own ``tool`` message.

    Raises:
        ConfigurationError: For unknown roles, unknown part types, parts not
            allowed for a role, or non-image file parts.
    """
    esc = _escape if escape_template_placeholders else _identity
    out: list[dict[str, Any]] = []
    for message in prompt:
        role = message.role
        if role == "system":
            if not isinstance(message.content, str):
                raise ConfigurationError(
                    "System message content must be a string",
                    hint="Pass the system prompt as Message('system', '...').",
                )
            out.append({"role": "system", "content": esc(message.content)})
            continue

        if role not in _ALLOWED_PARTS:
            raise ConfigurationError(f"Unsupported message role: {role!r}")
        parts = _coerce_parts(message.content, role)

        if role == "user":
            out.append(_user_message(parts, esc))
        elif role == "assistant":
            out.append(_assistant_message(parts, esc, include_reasoning))
        else:
            out.extend(_tool_messages(parts, esc))
    return out


def _identity(text: str) -> str:
    return text


def _escape(text: str) -> str:
    return escape_template_placeholders(text)


def _coerce_parts(content: Any, role: str) -> list[Part]:
    if isinstance(content, str):
        return [TextPart(content)]
    parts = [_coerce_part(p) for p in content]
    allowed = _ALLOWED_PARTS[role]
    for part in parts:
        if not isinstance(part, allowed):
            raise ConfigurationError(
                f"Part type {part.type!r} is not allowed in {role} messages"
            )
    return parts


def _coerce_part(raw: Any) -> Part:
    """Accept part dataclasses or their mapping form."""
    if isinstance(raw, (TextPart, ImagePart, ToolCallPart, ToolResultPart, ReasoningPart)):
        return raw
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"Unsupported message part: {type(raw).__name__}")

    kind = raw.get("type")
    try:
        if kind == "text":
            return TextPart(raw["text"])
        if kind == "reasoning":
            return ReasoningPart(raw["text"])
        if kind in ("image", "file"):
            return ImagePart(raw["data"], raw.get("media_type", "image/png"))
        if kind == "tool-call":
            return ToolCallPart(raw["tool_call_id"], raw["tool_name"], raw.get("input"))
        if kind == "tool-result":
            return ToolResultPart(
                raw["tool_call_id"], raw["tool_name"], raw.get("output")
            )
    except KeyError as e:
        raise ConfigurationError(
            f"Message part {kind!r} is missing field {e.args[0]!r}"
        ) from e
    raise ConfigurationError(f"Unsupported message part type: {kind!r}")


def _user_message(parts: list[Part], esc: Any) -> dict[str, Any]:
    items: list[dict[str, Any]] = []
    for part in parts:
        if isinstance(part, TextPart):
            if items and items[-1]["type"] == "text":
                items[-1]["text"] += esc(part.text)
            else:
                items.append({"type": "text", "text": esc(part.text)})
        elif isinstance(part, ImagePart):
            items.append({"type": "image_url", "image_url": {"url": _image_url(part)}})

    if len(items) == 1 and items[0]["type"] == "text":
        return {"role": "user", "content": items[0]["text"]}
    return {"role": "user", "content": items}


def _image_url(part: ImagePart) -> str:
    media_type = part.media_type.lower()
    if not media_type.startswith("image/"):
        raise ConfigurationError(
            f"Only image files are supported, got {part.media_type!r}",
            hint="Send non-image documents as text or through grounding.",
        )
    if media_type not in _COMMON_IMAGE_TYPES:
        log.warning("Image type %s may not be supported by all models", media_type)

    data = part.data
    if isinstance(data, bytes):
        return f"data:{media_type};base64,{base64.b64encode(data).decode('ascii')}"
    if data.startswith("data:") or urlparse(data).scheme in {"http", "https"}:
        return data
    return f"data:{media_type};base64,{data}"


def _assistant_message(
    parts: list[Part], esc: Any, include_reasoning: bool
) -> dict[str, Any]:
    text = ""
    tool_calls: list[dict[str, Any]] = []
    for part in parts:
        if isinstance(part, TextPart):
            text += esc(part.text)
        elif isinstance(part, ReasoningPart):
            if include_reasoning and part.text:
                text += f"<think>{esc(part.text)}</think>"
        elif isinstance(part, ToolCallPart):
            tool_calls.append(
                {
                    "id": part.tool_call_id,
                    "type": "function",
                    "function": {
                        "name": part.tool_name,
                        "arguments": _arguments_json(part.input),
                    },
                }
            )

    message: dict[str, Any] = {"role": "assistant", "content": text}
    if tool_calls:
        message["tool_calls"] = tool_calls
    return message


def _arguments_json(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _tool_messages(parts: list[Part], esc: Any) -> list[dict[str, Any]]:
    messages = []
    for part in parts:
        if isinstance(part, ToolResultPart):
            messages.append(
                {
                    "role": "tool",
                    "tool_call_id": part.tool_call_id,
                    "content": esc(json.dumps(part.output)),
                }
            )
    return messages
