"""aicore-bridge: one canonical LLM interface over SAP AI Core.

Public API:
    - Provider: creates language and embedding models from a ProviderConfig
    - LanguageModel.generate() / LanguageModel.stream()
    - EmbeddingModel.embed()
    - LegacyLanguageModel: results in the legacy flat shape
    - classify_error(): map any failure to a UnifiedError
"""

from __future__ import annotations

import logging

from aicore_bridge._version import __version__
from aicore_bridge.backends._errors import ErrorContext, classify_error
from aicore_bridge.backends.base import (
    BackendClient,
    BackendClientFactory,
    BackendResponse,
)
from aicore_bridge.backends.registry import clear_strategy_caches
from aicore_bridge.cancellation import AbortSignal
from aicore_bridge.compat import LegacyLanguageModel, logging_warning_sink
from aicore_bridge.config import DeploymentConfig, ProviderConfig
from aicore_bridge.errors import (
    AbortedError,
    ApiSwitchError,
    AuthenticationOrConfigError,
    BridgeError,
    ConfigurationError,
    GenericAPIError,
    ModelNotFoundError,
    RateLimitOrTransientError,
    TooManyEmbeddingValuesError,
    UnifiedError,
    UnsupportedFeatureError,
)
from aicore_bridge.messages import (
    convert_messages,
    escape_template_placeholders,
    unescape_template_placeholders,
)
from aicore_bridge.model import EmbeddingModel, LanguageModel, Provider
from aicore_bridge.settings import (
    EmbeddingSettings,
    InvocationOptions,
    ModelSettings,
    PromptTemplateRef,
)
from aicore_bridge.types import (
    CallOptions,
    ImagePart,
    Message,
    ReasoningPart,
    ResponseFormat,
    TextPart,
    ToolCallPart,
    ToolChoice,
    ToolDefinition,
    ToolResultPart,
)

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("aicore_bridge").addHandler(logging.NullHandler())

__all__ = [
    # Entry points
    "Provider",
    "ProviderConfig",
    "DeploymentConfig",
    "LanguageModel",
    "EmbeddingModel",
    "LegacyLanguageModel",
    "logging_warning_sink",
    "AbortSignal",
    # Backend contract
    "BackendClient",
    "BackendClientFactory",
    "BackendResponse",
    "clear_strategy_caches",
    # Settings
    "ModelSettings",
    "InvocationOptions",
    "EmbeddingSettings",
    "PromptTemplateRef",
    # Canonical types
    "CallOptions",
    "Message",
    "TextPart",
    "ImagePart",
    "ToolCallPart",
    "ToolResultPart",
    "ReasoningPart",
    "ToolDefinition",
    "ToolChoice",
    "ResponseFormat",
    # Conversion helpers
    "convert_messages",
    "escape_template_placeholders",
    "unescape_template_placeholders",
    "classify_error",
    "ErrorContext",
    # Errors
    "BridgeError",
    "ConfigurationError",
    "UnsupportedFeatureError",
    "ApiSwitchError",
    "TooManyEmbeddingValuesError",
    "AbortedError",
    "UnifiedError",
    "RateLimitOrTransientError",
    "AuthenticationOrConfigError",
    "ModelNotFoundError",
    "GenericAPIError",
    "__version__",
]
