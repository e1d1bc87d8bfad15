"""Configuration loading and validation for oc-notifier.

The configuration is a JSON file with three parts: how to reach the OpenCode
server, which notification providers to use, and notification timing.
Validation is done with pydantic; any problem is reported as a ConfigError
before a connection is attempted.
"""

import json
import logging
from pathlib import Path
from typing import Annotated, Literal, Optional, Union

from aiohttp import BasicAuth
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 3000


class OpenCodeConfig(BaseModel):
    """Connection settings for the OpenCode server."""

    model_config = ConfigDict(populate_by_name=True)

    base_url: str = Field(alias="baseUrl", min_length=1, description="OpenCode server URL")
    desktop_base_url: str = Field(
        alias="desktopBaseUrl",
        min_length=1,
        description="Base URL for OpenCode Desktop deep links",
    )
    username: Optional[str] = Field(default=None, description="Basic auth username")
    password: Optional[str] = Field(default=None, description="Basic auth password")

    @property
    def server_url(self) -> str:
        """Base URL with one trailing slash removed."""
        return self.base_url.removesuffix("/")

    def auth_headers(self) -> dict[str, str]:
        """Authorization header when both credentials are configured."""
        if self.username and self.password:
            return {"Authorization": BasicAuth(self.username, self.password).encode()}
        return {}


class DiscordProviderConfig(BaseModel):
    """Discord webhook destination."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["discord"]
    enabled: bool = False
    webhook_url: str = Field(alias="webhookUrl", min_length=1)


class MSTeamsProviderConfig(BaseModel):
    """Microsoft Teams incoming webhook destination."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["msteams"]
    enabled: bool = False
    webhook_url: str = Field(alias="webhookUrl", min_length=1)


class WebhookProviderConfig(BaseModel):
    """Generic JSON webhook destination."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["webhook"]
    enabled: bool = False
    url: str = Field(min_length=1)
    method: Literal["GET", "POST", "PUT"] = "POST"
    headers: dict[str, str] = Field(default_factory=dict)


ProviderConfig = Annotated[
    Union[DiscordProviderConfig, MSTeamsProviderConfig, WebhookProviderConfig],
    Field(discriminator="type"),
]


class Config(BaseModel):
    """Top-level oc-notifier configuration."""

    model_config = ConfigDict(populate_by_name=True)

    opencode: OpenCodeConfig
    providers: list[ProviderConfig]
    debounce_ms: float = Field(
        default=DEFAULT_DEBOUNCE_MS,
        alias="debounceMs",
        ge=0,
        description="Delay before notifying after idle; canceled if the session goes busy",
    )
    cache_session_info: bool = Field(
        default=True,
        alias="cacheSessionInfo",
        description="Memoize session metadata lookups for the lifetime of the process",
    )
    notify_on_question: bool = Field(
        default=True,
        alias="notifyOnQuestion",
        description="Also notify when a session asks a question via the question tool",
    )

    @property
    def debounce_sec(self) -> float:
        return self.debounce_ms / 1000.0


def _format_validation_error(error: ValidationError) -> str:
    """Flatten a pydantic error into one readable line per problem."""
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        problems.append(f"{location or '<root>'}: {item['msg']}")
    return "; ".join(problems)


def validate_config(data: object) -> Config:
    """Validate parsed JSON data.

    Args:
        data: Object decoded from the configuration file

    Returns:
        Validated Config

    Raises:
        ConfigError: If the data does not describe a usable configuration
    """
    if not isinstance(data, dict):
        raise ConfigError("Config must be an object")

    try:
        return Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config: {_format_validation_error(e)}") from e


def load_config(path: Path) -> Config:
    """Load and validate a configuration file.

    Args:
        path: Path to the JSON configuration file

    Returns:
        Validated Config

    Raises:
        ConfigError: If the file is missing, is not valid JSON, or fails validation
    """
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read config file {path}: {e}") from e

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Failed to parse config file as JSON: {path} ({e})") from e

    config = validate_config(data)
    logger.debug(f"Loaded config from {path} ({len(config.providers)} provider(s))")
    return config
