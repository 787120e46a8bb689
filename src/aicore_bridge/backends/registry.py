"""Strategy lookup with a per-(model kind, backend) cache.

Strategies are stateless, so one instance per backend serves every model.
Construction is synchronous, so concurrent lookups cannot observe a
half-built entry.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

from aicore_bridge.backends.embeddings import (
    FoundationModelsEmbeddingStrategy,
    OrchestrationEmbeddingStrategy,
)
from aicore_bridge.backends.foundation_models import FoundationModelsStrategy
from aicore_bridge.backends.orchestration import OrchestrationStrategy
from aicore_bridge.errors import ConfigurationError

if TYPE_CHECKING:
    from aicore_bridge.backends.base import LanguageModelStrategy
    from aicore_bridge.backends.embeddings import EmbeddingStrategy
    from aicore_bridge.types import ApiType

log = logging.getLogger(__name__)

ModelKind = Literal["language", "embedding"]

_FACTORIES = {
    ("language", "orchestration"): OrchestrationStrategy,
    ("language", "foundation-models"): FoundationModelsStrategy,
    ("embedding", "orchestration"): OrchestrationEmbeddingStrategy,
    ("embedding", "foundation-models"): FoundationModelsEmbeddingStrategy,
}

_cache: dict[tuple[ModelKind, ApiType], object] = {}


def _get(kind: ModelKind, api: ApiType) -> object:
    key = (kind, api)
    strategy = _cache.get(key)
    if strategy is not None:
        return strategy
    factory = _FACTORIES.get(key)
    if factory is None:
        raise ConfigurationError(
            f"Unknown API type: {api!r}",
            hint="Valid values: 'orchestration', 'foundation-models'.",
        )
    # Cached only after successful construction; a failure is retried next time.
    strategy = factory()
    log.debug("Created %s strategy for %s", kind, api)
    _cache[key] = strategy
    return strategy


def get_language_model_strategy(api: ApiType) -> LanguageModelStrategy:
    return _get("language", api)  # type: ignore[return-value]


def get_embedding_strategy(api: ApiType) -> EmbeddingStrategy:
    return _get("embedding", api)  # type: ignore[return-value]


def clear_strategy_caches() -> None:
    _cache.clear()
