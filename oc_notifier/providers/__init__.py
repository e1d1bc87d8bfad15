"""Notification providers and the factory that builds them from config."""

import aiohttp

from ..config import (
    DiscordProviderConfig,
    MSTeamsProviderConfig,
    ProviderConfig,
    WebhookProviderConfig,
)
from ..errors import ConfigError
from .base import NotificationProvider
from .discord import DiscordProvider
from .msteams import MSTeamsProvider
from .webhook import WebhookProvider

__all__ = [
    "DiscordProvider",
    "MSTeamsProvider",
    "NotificationProvider",
    "WebhookProvider",
    "create_provider",
    "create_providers",
]


def create_provider(config: ProviderConfig, http: aiohttp.ClientSession) -> NotificationProvider:
    """Build the provider for one provider config entry."""
    if isinstance(config, DiscordProviderConfig):
        return DiscordProvider(config, http)
    if isinstance(config, MSTeamsProviderConfig):
        return MSTeamsProvider(config, http)
    if isinstance(config, WebhookProviderConfig):
        return WebhookProvider(config, http)
    raise ConfigError(f"Unknown provider type: {getattr(config, 'type', config)!r}")


def create_providers(
    configs: list[ProviderConfig], http: aiohttp.ClientSession
) -> list[NotificationProvider]:
    return [create_provider(config, http) for config in configs]
