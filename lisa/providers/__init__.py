"""AI provider processes and their registry."""

from lisa.providers.base import (
    PROVIDER_NAMES,
    AIProvider,
    ProviderConfig,
    ProviderMessage,
    ProviderNotAvailableError,
    ProviderNotFoundError,
    ProviderResponse,
    ProviderSpec,
    ProviderStateError,
    StreamEvent,
)
from lisa.providers.process import ProviderProcess
from lisa.providers.registry import (
    ProviderRegistry,
    build_default_registry,
    get_validated_provider,
    validate_provider,
)

__all__ = [
    "PROVIDER_NAMES",
    "AIProvider",
    "ProviderConfig",
    "ProviderMessage",
    "ProviderNotAvailableError",
    "ProviderNotFoundError",
    "ProviderProcess",
    "ProviderRegistry",
    "ProviderResponse",
    "ProviderSpec",
    "ProviderStateError",
    "StreamEvent",
    "build_default_registry",
    "get_validated_provider",
    "validate_provider",
]
