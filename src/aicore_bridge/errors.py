"""Exception hierarchy for aicore-bridge."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar, Literal

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

ErrorKind = Literal[
    "rate_limit_or_transient",
    "authentication_or_config",
    "model_not_found",
    "generic",
]


class BridgeError(Exception):
    """Base exception for all aicore-bridge errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(BridgeError):
    """Configuration or input validation failed before any backend call."""


class UnsupportedFeatureError(ConfigurationError):
    """A setting is only honoured by the other backend."""

    def __init__(self, feature: str, api: str, suggested_api: str) -> None:
        super().__init__(
            f"{feature} is only available with {suggested_api} API "
            f"and will be ignored by {api} API.",
            hint=f"Switch to api={suggested_api!r} or remove the setting.",
        )
        self.feature = feature
        self.api = api
        self.suggested_api = suggested_api


class ApiSwitchError(ConfigurationError):
    """An invocation-time backend switch would drop model-level settings."""

    def __init__(self, from_api: str, to_api: str, conflicting_feature: str) -> None:
        super().__init__(
            f"Cannot switch from {from_api} to {to_api} API at invocation time "
            f"because {conflicting_feature} would be ignored.",
            hint=f"Create a separate model with api={to_api!r} instead.",
        )
        self.from_api = from_api
        self.to_api = to_api
        self.conflicting_feature = conflicting_feature


class TooManyEmbeddingValuesError(ConfigurationError):
    """More values were passed to embed() than one backend call accepts."""

    def __init__(self, *, model_id: str, max_per_call: int, count: int) -> None:
        super().__init__(
            f"Too many values for a single embedding call to {model_id}: "
            f"{count} > {max_per_call}",
            hint="Split the values into smaller batches.",
        )
        self.model_id = model_id
        self.max_per_call = max_per_call
        self.count = count


class AbortedError(BridgeError):
    """The caller aborted the call; not a backend failure."""


class UnifiedError(BridgeError):
    """Classified backend failure.

    Every error leaving a strategy boundary is one of the four subclasses, so
    callers can decide on retries from ``retryable`` alone.
    """

    kind: ClassVar[ErrorKind] = "generic"

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        retryable: bool = False,
        status_code: int | None = None,
        response_body: str | None = None,
        response_headers: Mapping[str, str] | None = None,
        url: str | None = None,
        operation: str | None = None,
        request_summary: Mapping[str, Any] | None = None,
        request_id: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.retryable = retryable
        self.status_code = status_code
        self.response_body = response_body
        self.response_headers = dict(response_headers) if response_headers else None
        self.url = url
        self.operation = operation
        self.request_summary = dict(request_summary) if request_summary else None
        self.request_id = request_id


class RateLimitOrTransientError(UnifiedError):
    """Rate limited or temporarily unavailable (HTTP 429, 5xx, network)."""

    kind = "rate_limit_or_transient"


class AuthenticationOrConfigError(UnifiedError):
    """Credentials, permissions or service binding rejected (HTTP 401/403)."""

    kind = "authentication_or_config"


class ModelNotFoundError(UnifiedError):
    """Model or deployment could not be resolved (HTTP 404)."""

    kind = "model_not_found"

    def __init__(self, message: str, *, model_id: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.model_id = model_id


class GenericAPIError(UnifiedError):
    """Any other backend failure."""

    kind = "generic"


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
