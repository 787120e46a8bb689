"""Error Classifier: any backend failure to one UnifiedError.

Classification order is fixed and explicit:

1. already classified errors pass through;
2. structured error envelopes (mapping, exception attribute, HTTP body);
3. an envelope embedded as JSON in the error message;
4. an HTTP status attribute on the error or its response;
5. transport exceptions (timeouts, connection failures);
6. local configuration errors raised inside the boundary;
7. the ordered message rules (first match wins): authentication,
   deployment resolution, ``status code NNN`` in the text, then the rest;
8. a generic, non-retryable fallback.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
import json
import re
from typing import Any

import httpx

from aicore_bridge._http import is_retryable_status
from aicore_bridge.errors import (
    AbortedError,
    AuthenticationOrConfigError,
    ConfigurationError,
    GenericAPIError,
    ModelNotFoundError,
    RateLimitOrTransientError,
    UnifiedError,
    _walk_exception_chain,
)

_MAX_BODY_CHARS = 2000
_TRUNCATED_SUFFIX = "...[truncated]"

_AUTH_HINT = (
    "Check the AICORE_SERVICE_KEY credentials and the service binding "
    "of the AI Core instance."
)
_NOT_FOUND_HINT = (
    "Verify that the deployment is running and that the model name, "
    "deployment id and resource group are correct."
)
_TRANSIENT_HINT = "The service is temporarily unavailable; retry with backoff."

_MODEL_ID_PATTERNS = (
    re.compile(r"deployment[:\s]+([a-z0-9-]+)", re.IGNORECASE),
    re.compile(r"model[:\s]+([a-z0-9.\-_]+)", re.IGNORECASE),
    re.compile(r"resource[:\s]+([a-z0-9.\-_]+)", re.IGNORECASE),
)
_EMBEDDED_JSON_RE = re.compile(r"\{[\s\S]*\}")
_STATUS_CODE_RE = re.compile(r"status code (\d{3})", re.IGNORECASE)


@dataclass(frozen=True)
class ErrorContext:
    """What was being attempted when the failure happened."""

    operation: str | None = None
    url: str | None = None
    request_summary: Mapping[str, Any] | None = None
    response_headers: Mapping[str, str] | None = None


@dataclass(frozen=True)
class _MessageRule:
    category: str
    keywords: tuple[str, ...]
    error_cls: type[UnifiedError]
    retryable: bool
    status_code: int
    hint: str | None = None

    def matches(self, message: str) -> bool:
        return any(k in message for k in self.keywords)


# Ordered; the first matching rule wins. The status-code rule sits between
# the deployment and network rules, see classify_error().
_LEADING_RULES: tuple[_MessageRule, ...] = (
    _MessageRule(
        "authentication",
        (
            "authentication",
            "unauthorized",
            "aicore_service_key",
            "invalid credentials",
            "service credentials",
            "service binding",
        ),
        AuthenticationOrConfigError,
        retryable=False,
        status_code=401,
        hint=_AUTH_HINT,
    ),
    _MessageRule(
        "deployment resolution",
        ("failed to resolve deployment", "no deployment matched"),
        ModelNotFoundError,
        retryable=False,
        status_code=404,
        hint=_NOT_FOUND_HINT,
    ),
)

_TRAILING_RULES: tuple[_MessageRule, ...] = (
    _MessageRule(
        "network",
        ("econnrefused", "enotfound", "connection refused", "network", "timeout", "timed out"),
        RateLimitOrTransientError,
        retryable=True,
        status_code=503,
        hint="Network error connecting to SAP AI Core; check connectivity and retry.",
    ),
    _MessageRule(
        "destination",
        ("could not resolve destination",),
        GenericAPIError,
        retryable=False,
        status_code=400,
        hint="Check the destination name and the destination service binding.",
    ),
    _MessageRule(
        "content filter",
        ("filtered by the output filter",),
        GenericAPIError,
        retryable=False,
        status_code=400,
        hint="The response was blocked by the content filter; adjust the prompt or filter settings.",
    ),
    _MessageRule(
        "consumed stream",
        ("consumed stream",),
        GenericAPIError,
        retryable=False,
        status_code=500,
        hint="A stream can only be consumed once.",
    ),
    _MessageRule(
        "streaming",
        (
            "iterating over",
            "parse message into json",
            "received from",
            "no body",
            "invalid sse payload",
        ),
        RateLimitOrTransientError,
        retryable=True,
        status_code=500,
        hint="The stream was interrupted; retry the request.",
    ),
    _MessageRule(
        "configuration",
        (
            "configuration",
            "invalid configuration",
            "failed to load",
            "missing required",
        ),
        GenericAPIError,
        retryable=False,
        status_code=400,
        hint="Check the model settings and provider configuration.",
    ),
    _MessageRule(
        "response stream",
        ("response stream is undefined", "response stream is none"),
        GenericAPIError,
        retryable=False,
        status_code=500,
    ),
    _MessageRule(
        "response processing",
        ("response did not contain", "could not process response", "response processing"),
        RateLimitOrTransientError,
        retryable=True,
        status_code=500,
    ),
    _MessageRule(
        "deployment listing",
        ("failed to fetch the list of deployments",),
        RateLimitOrTransientError,
        retryable=True,
        status_code=503,
        hint=_TRANSIENT_HINT,
    ),
)


def classify_error(error: object, context: ErrorContext | None = None) -> UnifiedError:
    """Classify *error* into one of the four UnifiedError kinds.

    ``asyncio.CancelledError`` and AbortedError are cancellations, not
    failures, and are re-raised.
    """
    ctx = context or ErrorContext()
    if isinstance(error, UnifiedError):
        return error
    if isinstance(error, (asyncio.CancelledError, AbortedError)):
        raise error

    root = _root_cause(error) if isinstance(error, BaseException) else error
    headers = normalize_headers(ctx.response_headers)
    body: str | None = None

    response = getattr(root, "response", None)
    if isinstance(response, httpx.Response):
        headers = headers or normalize_headers(response.headers)
        body = _response_text(response)

    envelope = _structured_envelope(root)
    if envelope is not None:
        return _from_envelope(envelope, ctx, body=body, headers=headers)

    if isinstance(root, BaseException):
        message = str(root)
    else:
        message = root if isinstance(root, str) else repr(root)
    envelope = _embedded_envelope(message)
    if envelope is not None:
        return _from_envelope(envelope, ctx, body=body, headers=headers)

    common: dict[str, Any] = {
        "response_body": body,
        "response_headers": headers,
        "url": ctx.url,
        "operation": ctx.operation,
        "request_summary": ctx.request_summary,
    }
    status_code = _status_attribute(error)
    if status_code is not None:
        return _for_status(status_code, message, None, common)
    if isinstance(
        root,
        (httpx.TimeoutException, httpx.TransportError, TimeoutError, ConnectionError),
    ):
        return RateLimitOrTransientError(
            f"Network error calling SAP AI Core: {message}",
            retryable=True,
            status_code=503,
            hint=_TRANSIENT_HINT,
            **common,
        )
    if isinstance(root, ConfigurationError):
        return GenericAPIError(
            f"Invalid configuration for SAP AI Core {ctx.operation or 'request'}: {message}",
            retryable=False,
            status_code=400,
            hint=root.hint,
            **common,
        )

    lowered = message.lower()
    for rule in _LEADING_RULES:
        if rule.matches(lowered):
            return _from_rule(rule, message, common)

    status = _STATUS_CODE_RE.search(message)
    if status is not None:
        return _for_status(int(status.group(1)), message, None, common)

    for rule in _TRAILING_RULES:
        if rule.matches(lowered):
            return _from_rule(rule, message, common)

    return GenericAPIError(
        f"SAP AI Core {ctx.operation or 'request'} failed: {message}",
        retryable=False,
        status_code=500,
        **common,
    )


def _root_cause(exc: BaseException) -> BaseException:
    """Follow explicit ``raise ... from`` links to the innermost cause."""
    seen: set[int] = set()
    cur = exc
    while isinstance(cur.__cause__, BaseException) and id(cur) not in seen:
        seen.add(id(cur))
        cur = cur.__cause__
    return cur


def _status_attribute(error: object) -> int | None:
    """HTTP status carried by an error in the chain or by its response."""
    chain = _walk_exception_chain(error) if isinstance(error, BaseException) else ()
    for e in chain:
        for value in (
            getattr(e, "status_code", None),
            getattr(e, "status", None),
            getattr(getattr(e, "response", None), "status_code", None),
        ):
            if (
                isinstance(value, int)
                and not isinstance(value, bool)
                and 100 <= value <= 599
            ):
                return value
    return None


def _structured_envelope(root: object) -> Mapping[str, Any] | None:
    if isinstance(root, Mapping):
        return _as_envelope(root)
    for attr in ("body", "error_response"):
        value = getattr(root, attr, None)
        if isinstance(value, Mapping):
            envelope = _as_envelope(value)
            if envelope is not None:
                return envelope
    response = getattr(root, "response", None)
    if isinstance(response, httpx.Response):
        try:
            data = response.json()
        except (httpx.StreamError, ValueError, UnicodeDecodeError):
            return None
        if isinstance(data, Mapping):
            return _as_envelope(data)
    return None


def _embedded_envelope(message: str) -> Mapping[str, Any] | None:
    match = _EMBEDDED_JSON_RE.search(message)
    if match is None:
        return None
    try:
        data = json.loads(match.group(0))
    except ValueError:
        return None
    if not isinstance(data, Mapping):
        return None
    if "error" in data:
        return _as_envelope(data)
    if isinstance(data.get("message"), str):
        return _as_envelope({"error": data})
    return None


def _as_envelope(data: Mapping[str, Any]) -> Mapping[str, Any] | None:
    """Return the inner error object of ``{"error": {...}}`` or None."""
    inner = data.get("error")
    if isinstance(inner, list):
        inner = inner[0] if inner else None
    if not isinstance(inner, Mapping) or not isinstance(inner.get("message"), str):
        return None
    code = inner.get("code")
    if code is not None and (isinstance(code, bool) or not isinstance(code, int)):
        return None
    return inner


def _from_envelope(
    inner: Mapping[str, Any],
    ctx: ErrorContext,
    *,
    body: str | None,
    headers: dict[str, str] | None,
) -> UnifiedError:
    code = inner.get("code")
    status = code if isinstance(code, int) and 100 <= code < 600 else 500
    message = inner["message"]
    request_id = inner.get("request_id")
    location = inner.get("location")
    if body is None:
        body = _truncate(json.dumps({"error": dict(inner)}, default=str))

    details = message
    if isinstance(location, str) and location:
        details = f"{details} (location: {location})"
    if isinstance(request_id, str) and request_id:
        details = f"{details} [request_id: {request_id}]"

    common: dict[str, Any] = {
        "response_body": body,
        "response_headers": headers,
        "url": ctx.url,
        "operation": ctx.operation,
        "request_summary": ctx.request_summary,
        "request_id": request_id if isinstance(request_id, str) else None,
    }
    model_hint = location if isinstance(location, str) else None
    return _for_status(status, f"SAP AI Core error: {details}", model_hint, common)


def _for_status(
    status: int, message: str, location: str | None, common: dict[str, Any]
) -> UnifiedError:
    if status in (401, 403):
        return AuthenticationOrConfigError(
            f"Authentication failed: {message}",
            retryable=False,
            status_code=status,
            hint=_AUTH_HINT,
            **common,
        )
    if status == 404:
        return ModelNotFoundError(
            f"Model or deployment not found: {message}",
            model_id=_extract_model_id(message, location),
            retryable=False,
            status_code=status,
            hint=_NOT_FOUND_HINT,
            **common,
        )
    if status == 429:
        return RateLimitOrTransientError(
            f"Rate limit exceeded: {message}",
            retryable=True,
            status_code=status,
            hint="Reduce the request rate or retry after a delay.",
            **common,
        )
    if status >= 500:
        return RateLimitOrTransientError(
            f"Service error: {message}",
            retryable=True,
            status_code=status,
            hint=_TRANSIENT_HINT,
            **common,
        )
    return GenericAPIError(
        message,
        retryable=is_retryable_status(status),
        status_code=status,
        **common,
    )


def _from_rule(rule: _MessageRule, message: str, common: dict[str, Any]) -> UnifiedError:
    kwargs: dict[str, Any] = dict(common)
    if rule.error_cls is ModelNotFoundError:
        kwargs["model_id"] = _extract_model_id(message, None)
    return rule.error_cls(
        f"SAP AI Core {rule.category} error: {message}",
        retryable=rule.retryable,
        status_code=rule.status_code,
        hint=rule.hint,
        **kwargs,
    )


def _extract_model_id(message: str, location: str | None) -> str | None:
    for pattern in _MODEL_ID_PATTERNS:
        match = pattern.search(message)
        if match:
            return match.group(1)
    return location


def _truncate(text: str) -> str:
    if len(text) <= _MAX_BODY_CHARS:
        return text
    return text[:_MAX_BODY_CHARS] + _TRUNCATED_SUFFIX


def _response_text(response: httpx.Response) -> str | None:
    try:
        text = response.text
    except (httpx.StreamError, UnicodeDecodeError):
        return None
    return _truncate(text) if text else None


def normalize_headers(headers: Any) -> dict[str, str] | None:
    """Normalise header containers to a plain ``str -> str`` dict (lowercase keys)."""
    if headers is None:
        return None
    items = headers.items() if hasattr(headers, "items") else ()
    out: dict[str, str] = {}
    for key, value in items:
        if not isinstance(key, str):
            continue
        if isinstance(value, str):
            out[key.lower()] = value
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            out[key.lower()] = str(value)
        elif isinstance(value, (list, tuple)):
            joined = "; ".join(str(v) for v in value if isinstance(v, (str, int, float)))
            if joined:
                out[key.lower()] = joined
    return out or None
