"""Entry points: Provider, LanguageModel and EmbeddingModel."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from aicore_bridge.backends._common import provider_name
from aicore_bridge.backends.base import StrategyConfig
from aicore_bridge.backends.registry import (
    get_embedding_strategy,
    get_language_model_strategy,
)
from aicore_bridge.cancellation import raise_if_aborted
from aicore_bridge.errors import TooManyEmbeddingValuesError, UnsupportedFeatureError
from aicore_bridge.params import deep_merge
from aicore_bridge.settings import (
    EmbeddingInvocationOptions,
    EmbeddingSettings,
    InvocationOptions,
    ModelSettings,
    parse_invocation_options,
    parse_settings,
)
from aicore_bridge.validation import resolve_api, validate_api_input, validate_settings

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from aicore_bridge.cancellation import AbortSignal
    from aicore_bridge.config import ProviderConfig
    from aicore_bridge.types import (
        ApiType,
        CallOptions,
        EmbedResult,
        GenerateResult,
        StreamResult,
    )

log = logging.getLogger(__name__)


class LanguageModel:
    """Canonical generate/stream over whichever backend a call resolves to.

    Example:
        model = Provider(config).language_model("gpt-4o")
        result = await model.generate(CallOptions(prompt=[Message("user", "Hi")]))
        print(result.text)
    """

    def __init__(
        self,
        model_id: str,
        settings: ModelSettings | Mapping[str, Any] | None,
        config: ProviderConfig,
    ) -> None:
        self.model_id = model_id
        self.settings = parse_settings(ModelSettings, settings)
        self.config = config
        validate_api_input(self.settings.api)
        self._strategy_config = StrategyConfig(
            model_id=model_id,
            provider=f"{config.name}.chat",
            deployment=config.deployment,
            client_factory=config.client_factory,
            destination=config.destination,
        )

    @property
    def provider(self) -> str:
        return self._strategy_config.provider

    @property
    def model_api(self) -> ApiType:
        """Backend used when a call does not override it."""
        return resolve_api(self.config.api, self.settings.api, None)

    def _resolve(self, options: CallOptions) -> Any:
        invocation = parse_invocation_options(
            InvocationOptions, options.provider_options, provider_name(self.provider)
        )
        api = resolve_api(
            self.config.api, self.settings.api, invocation.api if invocation else None
        )
        validate_settings(
            api=api,
            model_api=self.model_api,
            settings=self.settings,
            invocation=invocation,
        )
        log.debug("Resolved %s API for model %s", api, self.model_id)
        return get_language_model_strategy(api)

    async def generate(self, options: CallOptions) -> GenerateResult:
        """Run one non-streaming completion.

        Raises:
            ConfigurationError: Invalid settings or backend/feature mismatch,
                raised before any client is built.
            AbortedError: The abort signal fired before the backend call.
            UnifiedError: Any backend failure, classified.
        """
        strategy = self._resolve(options)
        raise_if_aborted(options.abort_signal)
        return await strategy.generate(self._strategy_config, self.settings, options)

    async def stream(self, options: CallOptions) -> StreamResult:
        """Start a streaming completion; iterate ``result.stream`` once."""
        strategy = self._resolve(options)
        raise_if_aborted(options.abort_signal)
        return await strategy.stream(self._strategy_config, self.settings, options)


class EmbeddingModel:
    """Canonical embed() over either backend."""

    def __init__(
        self,
        model_id: str,
        settings: EmbeddingSettings | Mapping[str, Any] | None,
        config: ProviderConfig,
    ) -> None:
        self.model_id = model_id
        self.settings = parse_settings(EmbeddingSettings, settings)
        self.config = config
        validate_api_input(self.settings.api)
        self._strategy_config = StrategyConfig(
            model_id=model_id,
            provider=f"{config.name}.embedding",
            deployment=config.deployment,
            client_factory=config.client_factory,
            destination=config.destination,
        )

    @property
    def max_embeddings_per_call(self) -> int:
        return self.settings.max_embeddings_per_call

    async def embed(
        self,
        values: Sequence[str],
        *,
        provider_options: Mapping[str, Mapping[str, Any]] | None = None,
        abort_signal: AbortSignal | None = None,
    ) -> EmbedResult:
        if len(values) > self.max_embeddings_per_call:
            raise TooManyEmbeddingValuesError(
                model_id=self.model_id,
                max_per_call=self.max_embeddings_per_call,
                count=len(values),
            )
        invocation = parse_invocation_options(
            EmbeddingInvocationOptions,
            provider_options,
            provider_name(self._strategy_config.provider),
        )
        api = resolve_api(
            self.config.api, self.settings.api, invocation.api if invocation else None
        )
        if self.settings.masking and api != "orchestration":
            raise UnsupportedFeatureError("Data masking", api, "orchestration")
        raise_if_aborted(abort_signal)
        strategy = get_embedding_strategy(api)
        return await strategy.embed(
            self._strategy_config,
            self.settings,
            values,
            invocation=invocation,
            abort_signal=abort_signal,
        )


class Provider:
    """Creates models that share one ProviderConfig.

    ``config.default_settings`` are deep-merged under per-model settings.
    """

    def __init__(self, config: ProviderConfig) -> None:
        self.config = config
        self._default_settings = parse_settings(ModelSettings, config.default_settings)

    def __call__(
        self, model_id: str, settings: ModelSettings | Mapping[str, Any] | None = None
    ) -> LanguageModel:
        return self.language_model(model_id, settings)

    def language_model(
        self, model_id: str, settings: ModelSettings | Mapping[str, Any] | None = None
    ) -> LanguageModel:
        overrides = parse_settings(ModelSettings, settings)
        merged = deep_merge(
            self._default_settings.model_dump(exclude_none=True),
            overrides.model_dump(exclude_none=True),
        )
        return LanguageModel(model_id, merged, self.config)

    def embedding_model(
        self,
        model_id: str,
        settings: EmbeddingSettings | Mapping[str, Any] | None = None,
    ) -> EmbeddingModel:
        return EmbeddingModel(model_id, settings, self.config)
