"""Backend contracts and the shared strategy skeleton."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, Protocol, runtime_checkable

from aicore_bridge.backends import _common
from aicore_bridge.backends._errors import ErrorContext, classify_error
from aicore_bridge.cancellation import raise_if_aborted
from aicore_bridge.errors import AbortedError, UnifiedError
from aicore_bridge.streaming import StreamTransformer
from aicore_bridge.types import StreamResult

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from aicore_bridge.cancellation import AbortSignal
    from aicore_bridge.config import DeploymentConfig
    from aicore_bridge.params import ParamMapping
    from aicore_bridge.settings import InvocationOptions, ModelSettings
    from aicore_bridge.streaming import ChunkDelta
    from aicore_bridge.types import (
        ApiType,
        BackendRequest,
        CallOptions,
        GenerateResult,
    )

ClientPurpose = Literal["chat", "embedding"]


# =============================================================================
# External interfaces
# =============================================================================


@dataclass(frozen=True)
class BackendResponse:
    """Parsed JSON body plus response headers from one backend call."""

    data: Mapping[str, Any]
    headers: Mapping[str, str] | None = None


@runtime_checkable
class BackendClient(Protocol):
    """Network client for one backend; supplied by the caller's factory."""

    async def execute(
        self, request: Mapping[str, Any], *, abort_signal: AbortSignal | None = None
    ) -> BackendResponse:
        """Send one request and return the complete response."""
        ...

    def execute_stream(
        self,
        request: Mapping[str, Any],
        *,
        abort_signal: AbortSignal | None = None,
        stream_options: Mapping[str, Any] | None = None,
    ) -> AsyncIterator[Mapping[str, Any]]:
        """Send one request and iterate parsed stream chunks."""
        ...


class BackendClientFactory(Protocol):
    """Builds a BackendClient per call."""

    def __call__(
        self,
        api: ApiType,
        *,
        purpose: ClientPurpose,
        deployment: Mapping[str, str],
        destination: Mapping[str, Any] | None,
        module_config: Mapping[str, Any] | None,
    ) -> BackendClient: ...


@dataclass(frozen=True)
class StrategyConfig:
    """Per-model context handed to a strategy on every call."""

    model_id: str
    provider: str
    deployment: DeploymentConfig
    client_factory: BackendClientFactory
    destination: Mapping[str, Any] | None = None

    @property
    def provider_name(self) -> str:
        return _common.provider_name(self.provider)


@dataclass(frozen=True)
class BackendCapabilities:
    """Feature flags; a False flag means the setting is rejected, not ignored."""

    filtering: bool = False
    masking: bool = False
    grounding: bool = False
    translation: bool = False
    prompt_templates: bool = False
    placeholder_values: bool = False
    template_escaping: bool = False
    backend_tools: bool = False
    data_sources: bool = False


ORCHESTRATION_CAPABILITIES = BackendCapabilities(
    filtering=True,
    masking=True,
    grounding=True,
    translation=True,
    prompt_templates=True,
    placeholder_values=True,
    template_escaping=True,
    backend_tools=True,
)

FOUNDATION_MODELS_CAPABILITIES = BackendCapabilities(data_sources=True)

CAPABILITIES: dict[str, BackendCapabilities] = {
    "orchestration": ORCHESTRATION_CAPABILITIES,
    "foundation-models": FOUNDATION_MODELS_CAPABILITIES,
}


@runtime_checkable
class LanguageModelStrategy(Protocol):
    """Stateless per-backend implementation of generate/stream."""

    api: ApiType

    @property
    def capabilities(self) -> BackendCapabilities: ...

    async def generate(
        self, config: StrategyConfig, settings: ModelSettings, options: CallOptions
    ) -> GenerateResult: ...

    async def stream(
        self, config: StrategyConfig, settings: ModelSettings, options: CallOptions
    ) -> StreamResult: ...


# =============================================================================
# Shared skeleton
# =============================================================================


class ChatStrategy:
    """Shared generate/stream flow; subclasses fill in the backend hooks.

    Holds no state: everything per call lives in locals, so one instance is
    shared by every model that resolves to its backend.
    """

    api: ApiType
    url: str
    param_mappings: tuple[ParamMapping, ...]
    stream_options: Mapping[str, Any] | None = None

    @property
    def capabilities(self) -> BackendCapabilities:
        return CAPABILITIES[self.api]

    # --- hooks ---

    def escape_placeholders(
        self, settings: ModelSettings, invocation: InvocationOptions | None
    ) -> bool:
        return False

    def build_request(
        self,
        config: StrategyConfig,
        settings: ModelSettings,
        options: CallOptions,
        parts: _common.CommonParts,
    ) -> BackendRequest:
        raise NotImplementedError

    def deployment(
        self, config: StrategyConfig, settings: ModelSettings
    ) -> dict[str, str]:
        return config.deployment.as_dict()

    def read_response(self, data: Mapping[str, Any]) -> Mapping[str, Any]:
        """Return the chat-completion payload inside a backend response."""
        return data

    def read_chunk(self, chunk: Mapping[str, Any]) -> ChunkDelta:
        raise NotImplementedError

    # --- flow ---

    def _create_client(
        self, config: StrategyConfig, settings: ModelSettings, request: BackendRequest
    ) -> Any:
        return config.client_factory(
            self.api,
            purpose="chat",
            deployment=self.deployment(config, settings),
            destination=config.destination,
            module_config=request.module_config,
        )

    def _prepare(
        self, config: StrategyConfig, settings: ModelSettings, options: CallOptions
    ) -> tuple[BackendRequest, Any]:
        parts = _common.build_common_parts(
            config.provider_name,
            settings,
            options,
            mappings=self.param_mappings,
            escape=lambda invocation: self.escape_placeholders(settings, invocation),
        )
        request = self.build_request(config, settings, options, parts)
        return request, self._create_client(config, settings, request)

    def _context(self, operation: str, options: CallOptions) -> ErrorContext:
        return ErrorContext(
            operation=operation,
            url=self.url,
            request_summary=_common.request_summary(options),
        )

    async def generate(
        self, config: StrategyConfig, settings: ModelSettings, options: CallOptions
    ) -> GenerateResult:
        try:
            request, client = self._prepare(config, settings, options)
            raise_if_aborted(options.abort_signal)
            response = await client.execute(
                request.body, abort_signal=options.abort_signal
            )
            return _common.build_generate_result(
                self.read_response(response.data),
                headers=response.headers,
                request=request,
                provider_name=config.provider_name,
                model_id=config.model_id,
            )
        except AbortedError:
            raise
        except UnifiedError:
            raise
        except Exception as e:
            raise classify_error(e, self._context("generate", options)) from e

    async def stream(
        self, config: StrategyConfig, settings: ModelSettings, options: CallOptions
    ) -> StreamResult:
        context = self._context("stream", options)
        try:
            request, client = self._prepare(config, settings, options)
            raise_if_aborted(options.abort_signal)
            chunks = client.execute_stream(
                request.body,
                abort_signal=options.abort_signal,
                stream_options=self.stream_options,
            )
        except AbortedError:
            raise
        except UnifiedError:
            raise
        except Exception as e:
            raise classify_error(e, context) from e

        transformer = StreamTransformer(
            chunks,
            read_chunk=self.read_chunk,
            model_id=config.model_id,
            provider_name=config.provider_name,
            warnings=request.warnings,
            include_raw_chunks=options.include_raw_chunks,
            abort_signal=options.abort_signal,
            classify=lambda exc: classify_error(exc, context),
        )
        return StreamResult(stream=transformer.events(), request_body=request.body)
