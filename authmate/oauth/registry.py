"""
Provider registry.

Holds the configured ProviderConfigs and resolves them by name,
case-insensitively. Configs are read-only to every other component.
"""

import logging
from collections.abc import Iterable

from authmate.core.exceptions import ConfigurationError, UnknownProviderError
from authmate.oauth.config import ProviderConfig, get_oauth_settings


logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Case-insensitive lookup of provider configurations."""

    def __init__(self):
        self._configs: dict[str, ProviderConfig] = {}

    @classmethod
    def from_configs(cls, configs: Iterable[ProviderConfig]) -> "ProviderRegistry":
        """
        Build a registry from loaded configs.

        Raises:
            ConfigurationError: If two configs share a name (case-insensitive)
        """
        registry = cls()
        for config in configs:
            if config.key in registry:
                raise ConfigurationError(
                    f"Duplicate provider configuration: {config.name}"
                )
            registry.register(config)
        return registry

    def register(self, config: ProviderConfig) -> None:
        """Insert a config, replacing any existing one with the same name."""
        if config.key in self._configs:
            logger.info(f"Replacing provider configuration: {config.name}")
        self._configs[config.key] = config

    def resolve(self, name: str) -> ProviderConfig:
        """
        Resolve a config by name.

        Raises:
            UnknownProviderError: If no config matches
        """
        config = self._configs.get(name.lower()) if name else None
        if config is None:
            raise UnknownProviderError(name)
        return config

    def names(self) -> list[str]:
        """Configured provider names (as registered)."""
        return [config.name for config in self._configs.values()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._configs

    def __len__(self) -> int:
        return len(self._configs)


# Global registry singleton
_registry: ProviderRegistry | None = None


def get_provider_registry() -> ProviderRegistry:
    """
    Get the provider registry singleton.

    Creates the registry from OAuthSettings on first access.
    """
    global _registry
    if _registry is None:
        settings = get_oauth_settings()
        _registry = ProviderRegistry.from_configs(settings.providers)
        if not len(_registry):
            logger.warning("No OAuth providers configured")
    return _registry


def reset_provider_registry() -> None:
    """
    Reset the registry singleton.

    Useful for testing with different configurations.
    """
    global _registry
    _registry = None
