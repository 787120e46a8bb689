"""Embedding strategies for both backends."""

from __future__ import annotations

import base64
from collections.abc import Mapping
import struct
from typing import TYPE_CHECKING, Any, Protocol

from aicore_bridge.backends._errors import ErrorContext, classify_error
from aicore_bridge.backends.foundation_models import build_model_deployment
from aicore_bridge.cancellation import raise_if_aborted
from aicore_bridge.errors import AbortedError, UnifiedError
from aicore_bridge.params import deep_merge
from aicore_bridge.types import BackendRequest, EmbedResult

if TYPE_CHECKING:
    from collections.abc import Sequence

    from aicore_bridge.backends.base import StrategyConfig
    from aicore_bridge.cancellation import AbortSignal
    from aicore_bridge.settings import EmbeddingInvocationOptions, EmbeddingSettings
    from aicore_bridge.types import ApiType

# Request keys the foundation-models embedding endpoint accepts besides input.
_FM_EMBEDDING_KEYS = ("user", "encoding_format", "dimensions", "input_type")


class EmbeddingStrategy(Protocol):
    api: ApiType

    async def embed(
        self,
        config: StrategyConfig,
        settings: EmbeddingSettings,
        values: Sequence[str],
        *,
        invocation: EmbeddingInvocationOptions | None = None,
        abort_signal: AbortSignal | None = None,
    ) -> EmbedResult: ...


def decode_embedding(value: Any) -> tuple[float, ...]:
    """Float list as-is; base64 strings are little-endian float32 arrays."""
    if isinstance(value, str):
        raw = base64.b64decode(value)
        return struct.unpack(f"<{len(raw) // 4}f", raw[: len(raw) - len(raw) % 4])
    return tuple(float(v) for v in value)


def _merged_params(
    settings: EmbeddingSettings, invocation: EmbeddingInvocationOptions | None
) -> dict[str, Any]:
    return deep_merge(
        settings.model_params, invocation.model_params if invocation else None
    )


class _EmbeddingFlow:
    api: ApiType
    url: str

    def build_request(
        self,
        config: StrategyConfig,
        settings: EmbeddingSettings,
        values: Sequence[str],
        invocation: EmbeddingInvocationOptions | None,
    ) -> BackendRequest:
        raise NotImplementedError

    def deployment(
        self, config: StrategyConfig, settings: EmbeddingSettings
    ) -> dict[str, str]:
        return config.deployment.as_dict()

    def read_response(self, data: Mapping[str, Any]) -> Mapping[str, Any]:
        return data

    async def embed(
        self,
        config: StrategyConfig,
        settings: EmbeddingSettings,
        values: Sequence[str],
        *,
        invocation: EmbeddingInvocationOptions | None = None,
        abort_signal: AbortSignal | None = None,
    ) -> EmbedResult:
        try:
            request = self.build_request(config, settings, values, invocation)
            client = config.client_factory(
                self.api,
                purpose="embedding",
                deployment=self.deployment(config, settings),
                destination=config.destination,
                module_config=request.module_config,
            )
            raise_if_aborted(abort_signal)
            response = await client.execute(request.body, abort_signal=abort_signal)
            return self._build_result(self.read_response(response.data), config)
        except AbortedError:
            raise
        except UnifiedError:
            raise
        except Exception as e:
            raise classify_error(
                e,
                ErrorContext(
                    operation="embed",
                    url=self.url,
                    request_summary={"values": len(values)},
                ),
            ) from e

    def _build_result(
        self, payload: Mapping[str, Any], config: StrategyConfig
    ) -> EmbedResult:
        items = [d for d in payload.get("data") or () if isinstance(d, Mapping)]
        items.sort(key=lambda d: d.get("index", 0))
        usage = payload.get("usage")
        tokens = usage.get("total_tokens") if isinstance(usage, Mapping) else None
        metadata: dict[str, Any] = {}
        if payload.get("model"):
            metadata["model"] = payload["model"]
        return EmbedResult(
            embeddings=tuple(decode_embedding(d.get("embedding") or ()) for d in items),
            usage_tokens=tokens if isinstance(tokens, int) else None,
            provider_metadata={config.provider_name: metadata},
        )


class OrchestrationEmbeddingStrategy(_EmbeddingFlow):
    api = "orchestration"
    url = "sap-ai:orchestration:embeddings"

    def build_request(
        self,
        config: StrategyConfig,
        settings: EmbeddingSettings,
        values: Sequence[str],
        invocation: EmbeddingInvocationOptions | None,
    ) -> BackendRequest:
        model: dict[str, Any] = {"name": config.model_id}
        params = _merged_params(settings, invocation)
        if params:
            model["params"] = params
        if settings.model_version:
            model["version"] = settings.model_version
        module_config: dict[str, Any] = {"embeddings": {"model": model}}
        if settings.masking:
            module_config["masking"] = dict(settings.masking)

        embedding_type = (invocation.type if invocation else None) or settings.type
        return BackendRequest(
            body={"input": list(values), "type": embedding_type or "text"},
            module_config=module_config,
        )

    def read_response(self, data: Mapping[str, Any]) -> Mapping[str, Any]:
        final = data.get("final_result")
        return final if isinstance(final, Mapping) else data


class FoundationModelsEmbeddingStrategy(_EmbeddingFlow):
    api = "foundation-models"
    url = "sap-ai:foundation-models:embeddings"

    def deployment(
        self, config: StrategyConfig, settings: EmbeddingSettings
    ) -> dict[str, str]:
        return build_model_deployment(config, settings.model_version)

    def build_request(
        self,
        config: StrategyConfig,
        settings: EmbeddingSettings,
        values: Sequence[str],
        invocation: EmbeddingInvocationOptions | None,
    ) -> BackendRequest:
        params = _merged_params(settings, invocation)
        body: dict[str, Any] = {"input": list(values)}
        for key in _FM_EMBEDDING_KEYS:
            if params.get(key) is not None:
                body[key] = params[key]
        return BackendRequest(body=body)
