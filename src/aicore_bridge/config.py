"""Configuration: frozen ProviderConfig with environment fallbacks."""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import TYPE_CHECKING, Any

from dotenv import load_dotenv

from aicore_bridge.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from aicore_bridge.backends.base import BackendClientFactory
    from aicore_bridge.settings import ModelSettings
    from aicore_bridge.types import ApiType

load_dotenv()

_DEPLOYMENT_ID_ENV = "AICORE_DEPLOYMENT_ID"
_RESOURCE_GROUP_ENV = "AICORE_RESOURCE_GROUP"
_VALID_APIS = ("orchestration", "foundation-models")


@dataclass(frozen=True)
class DeploymentConfig:
    """Where requests are routed: a fixed deployment or a resource group."""

    deployment_id: str | None = None
    resource_group: str | None = None

    def as_dict(self) -> dict[str, str]:
        if self.deployment_id:
            return {"deployment_id": self.deployment_id}
        if self.resource_group:
            return {"resource_group": self.resource_group}
        return {}


@dataclass(frozen=True)
class ProviderConfig:
    """Immutable provider configuration.

    The network transport is not part of this package: ``client_factory``
    builds the backend client for each call.

    Example:
        config = ProviderConfig(client_factory=my_factory, resource_group="default")
        model = Provider(config).language_model("gpt-4o")
    """

    client_factory: BackendClientFactory
    #: Provider key used for ``CallOptions.provider_options`` lookups.
    name: str = "sap-ai"
    api: ApiType | None = None
    #: Auto-resolved from ``AICORE_DEPLOYMENT_ID`` when *None*.
    deployment_id: str | None = None
    #: Auto-resolved from ``AICORE_RESOURCE_GROUP`` when *None*.
    resource_group: str | None = None
    destination: Mapping[str, Any] | None = None
    default_settings: ModelSettings | Mapping[str, Any] | None = None

    def __post_init__(self) -> None:
        """Resolve environment fallbacks and validate."""
        if not self.name or not self.name.strip():
            raise ConfigurationError(
                "Provider name must be a non-empty string",
                hint="The name keys CallOptions.provider_options; the default is 'sap-ai'.",
            )
        if self.api is not None and self.api not in _VALID_APIS:
            raise ConfigurationError(
                f"Invalid API type: {self.api!r}",
                hint="Valid values: 'orchestration', 'foundation-models'.",
            )
        if not callable(self.client_factory):
            raise ConfigurationError(
                "client_factory must be callable",
                hint="Pass a BackendClientFactory that builds backend clients.",
            )

        if self.deployment_id is None:
            object.__setattr__(
                self, "deployment_id", os.environ.get(_DEPLOYMENT_ID_ENV) or None
            )
        if self.resource_group is None:
            object.__setattr__(
                self, "resource_group", os.environ.get(_RESOURCE_GROUP_ENV) or None
            )

    @property
    def deployment(self) -> DeploymentConfig:
        return DeploymentConfig(
            deployment_id=self.deployment_id, resource_group=self.resource_group
        )

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"ProviderConfig(name={self.name!r}, api={self.api!r}, "
            f"deployment_id={self.deployment_id!r}, "
            f"resource_group={self.resource_group!r}, "
            f"destination={'[REDACTED]' if self.destination else None})"
        )

    __repr__ = __str__
