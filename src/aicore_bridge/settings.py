"""Model settings and invocation options (pydantic schema wall).

Settings are fixed when a model is created; invocation options arrive per call
under ``CallOptions.provider_options[<provider name>]``. Both are validated here
so that malformed input fails with ConfigurationError before any backend call.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal, TypeVar

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from aicore_bridge.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping

ApiName = Literal["orchestration", "foundation-models"]
EmbeddingType = Literal["text", "document", "query"]

_M = TypeVar("_M", bound=BaseModel)


class ModelParams(BaseModel):
    """Range checks for the well-known generation parameters.

    Unknown keys are allowed and passed through to the backend untouched.
    Both the camelCase spelling and the backend's snake_case spelling validate.
    """

    model_config = ConfigDict(extra="allow")

    max_tokens: int | None = Field(
        default=None, gt=0, validation_alias=AliasChoices("maxTokens", "max_tokens")
    )
    temperature: float | None = Field(default=None, ge=0, le=2)
    top_p: float | None = Field(
        default=None, ge=0, le=1, validation_alias=AliasChoices("topP", "top_p")
    )
    frequency_penalty: float | None = Field(
        default=None,
        ge=-2,
        le=2,
        validation_alias=AliasChoices("frequencyPenalty", "frequency_penalty"),
    )
    presence_penalty: float | None = Field(
        default=None,
        ge=-2,
        le=2,
        validation_alias=AliasChoices("presencePenalty", "presence_penalty"),
    )
    n: int | None = Field(default=None, gt=0)


class PromptTemplateRef(BaseModel):
    """Reference to a template stored in the prompt registry.

    Either ``id`` or the ``name``/``scenario``/``version`` triple identifies it.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str | None = None
    name: str | None = None
    scenario: str | None = None
    version: str | None = None
    scope: Literal["tenant", "resource_group"] = "tenant"

    @model_validator(mode="after")
    def validate_reference_shape(self) -> PromptTemplateRef:
        by_name = (self.name, self.scenario, self.version)
        if self.id is not None:
            if any(v is not None for v in by_name):
                raise ValueError("use either id or name/scenario/version, not both")
        elif not all(by_name):
            raise ValueError("id or all of name, scenario and version are required")
        return self

    def to_request(self) -> dict[str, Any]:
        if self.id is not None:
            return {"id": self.id, "scope": self.scope}
        return {
            "name": self.name,
            "scenario": self.scenario,
            "version": self.version,
            "scope": self.scope,
        }


class ModelSettings(BaseModel):
    """Settings fixed at language-model creation."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    api: ApiName | None = None
    model_version: str | None = None
    model_params: dict[str, Any] = Field(default_factory=dict)
    include_reasoning: bool | None = None
    escape_template_placeholders: bool | None = None
    #: Backend-format response format, used when a call sets none.
    response_format: dict[str, Any] | None = None
    #: Backend-format tool definitions (orchestration only).
    tools: list[dict[str, Any]] | None = None
    placeholder_values: dict[str, str] | None = None
    prompt_template_ref: PromptTemplateRef | None = None
    masking: dict[str, Any] | None = None
    filtering: dict[str, Any] | None = None
    grounding: dict[str, Any] | None = None
    translation: dict[str, Any] | None = None
    data_sources: list[dict[str, Any]] | None = None

    @field_validator("model_params")
    @classmethod
    def validate_model_params(cls, v: dict[str, Any]) -> dict[str, Any]:
        issues = model_param_issues(v)
        if issues:
            raise ValueError("; ".join(issues))
        return v


class InvocationOptions(BaseModel):
    """Per-call, backend-scoped options."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    api: ApiName | None = None
    escape_template_placeholders: bool | None = None
    include_reasoning: bool | None = None
    model_params: dict[str, Any] | None = None
    placeholder_values: dict[str, str] | None = None
    prompt_template_ref: PromptTemplateRef | None = None


class EmbeddingSettings(BaseModel):
    """Settings fixed at embedding-model creation."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    api: ApiName | None = None
    model_version: str | None = None
    model_params: dict[str, Any] = Field(default_factory=dict)
    type: EmbeddingType | None = None
    masking: dict[str, Any] | None = None
    max_embeddings_per_call: int = Field(default=2048, gt=0)


class EmbeddingInvocationOptions(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    api: ApiName | None = None
    model_params: dict[str, Any] | None = None
    type: EmbeddingType | None = None


def _first_error_message(e: ValidationError) -> str:
    err = e.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ()))
    msg = err.get("msg") or "invalid value"
    # Remove "Value error, " prefix if present (Pydantic standard wrapper)
    if msg.startswith("Value error, "):
        msg = msg[13:]
    return f"{loc}: {msg}" if loc else msg


def parse_settings(model: type[_M], value: _M | Mapping[str, Any] | None) -> _M:
    """Validate *value* against *model*, mapping failures to ConfigurationError."""
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(dict(value or {}))
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid {model.__name__}: {_first_error_message(e)}",
            hint=f"Check the fields accepted by {model.__name__}.",
        ) from e


def parse_invocation_options(
    model: type[_M],
    provider_options: Mapping[str, Mapping[str, Any]] | None,
    provider_name: str,
) -> _M | None:
    """Extract and validate the options scoped to *provider_name*, if any."""
    if not provider_options:
        return None
    raw = provider_options.get(provider_name)
    if raw is None:
        return None
    return parse_settings(model, raw)


def model_param_issues(values: Mapping[str, Any]) -> list[str]:
    """Return human-readable range violations for *values* (never raises)."""
    try:
        ModelParams.model_validate(dict(values))
    except ValidationError as e:
        issues = []
        for err in e.errors():
            key = ".".join(str(p) for p in err.get("loc", ()))
            issues.append(f"{key}={err.get('input')!r} is invalid: {err.get('msg')}")
        return issues
    return []
