"""Provider registry.

Maps provider names to factories. A registry is a plain value built at
startup (see build_default_registry) and passed to whoever needs providers.
"""

from collections.abc import Callable, Iterable

import structlog

from lisa.providers.base import (
    PROVIDER_NAMES,
    AIProvider,
    ProviderConfig,
    ProviderNotAvailableError,
    ProviderNotFoundError,
)
from lisa.providers.claude import create_claude_provider
from lisa.providers.codex import create_codex_provider
from lisa.providers.copilot import create_copilot_provider
from lisa.providers.cursor import create_cursor_provider
from lisa.providers.opencode import create_opencode_provider
from lisa.providers.process import DEFAULT_RESPONSE_TIMEOUT_SECONDS

logger = structlog.get_logger(__name__)

ProviderFactory = Callable[[ProviderConfig | None], AIProvider]


class ProviderRegistry:
    """Name to factory map for AI providers."""

    def __init__(self) -> None:
        self._factories: dict[str, ProviderFactory] = {}

    def register(self, name: str, factory: ProviderFactory) -> None:
        """Register (or replace) the factory for ``name``."""
        self._factories[name] = factory

    def unregister(self, name: str) -> bool:
        """Remove a provider. Returns True if it was registered."""
        return self._factories.pop(name, None) is not None

    def has(self, name: str) -> bool:
        return name in self._factories

    def get(self, name: str, config: ProviderConfig | None = None) -> AIProvider:
        """Create a provider instance.

        Raises:
            ProviderNotFoundError: If ``name`` is not registered
        """
        factory = self._factories.get(name)
        if factory is None:
            raise ProviderNotFoundError(name)
        return factory(config)

    def list(self) -> list[str]:
        return list(self._factories)

    def clear(self) -> None:
        self._factories.clear()

    async def check_availability(self) -> dict[str, bool]:
        """Probe every registered provider's CLI."""
        results = {}
        for name in self._factories:
            results[name] = await self.get(name).is_available()
        logger.debug("Provider availability", **results)
        return results

    async def get_first_available(
        self, preferred_order: Iterable[str] | None = None
    ) -> AIProvider | None:
        """Return the first available provider, trying ``preferred_order`` first."""
        order = list(preferred_order or [])
        order += [name for name in self._factories if name not in order]
        for name in order:
            if not self.has(name):
                continue
            provider = self.get(name)
            if await provider.is_available():
                return provider
        return None


def build_default_registry(
    response_timeout: float = DEFAULT_RESPONSE_TIMEOUT_SECONDS,
) -> ProviderRegistry:
    """Create a registry with all built-in providers."""
    factories = {
        "claude": create_claude_provider,
        "codex": create_codex_provider,
        "copilot": create_copilot_provider,
        "cursor": create_cursor_provider,
        "opencode": create_opencode_provider,
    }
    registry = ProviderRegistry()
    for name in PROVIDER_NAMES:
        create = factories[name]
        registry.register(
            name,
            lambda config, create=create: create(config, response_timeout),
        )
    return registry


async def validate_provider(provider: AIProvider) -> None:
    """Raise ProviderNotAvailableError if the provider's CLI is missing."""
    if not await provider.is_available():
        command = getattr(provider, "command", provider.name)
        raise ProviderNotAvailableError(provider.name, command)


async def get_validated_provider(
    registry: ProviderRegistry,
    name: str,
    config: ProviderConfig | None = None,
) -> AIProvider:
    """Create a provider and check it is installed.

    Raises:
        ProviderNotFoundError: If ``name`` is not registered
        ProviderNotAvailableError: If the CLI is not installed
    """
    provider = registry.get(name, config)
    await validate_provider(provider)
    return provider
