"""Configuration management for the Showdown client.

This module provides centralized configuration with support for:
- Environment variables (primary)
- Sensible defaults for all settings
- Type validation via Pydantic
- Easy testing through config overrides

Environment Variables:
    PS_SERVER_URL: WebSocket URL of the chat server
    PS_LOGINSERVER_URL: Base URL of the credential server (default: play.pokemonshowdown.com/api/)
    PS_CLIENT_ID: OAuth client id used for token exchanges
    PS_LOG_LEVEL: Logging level (default: INFO)
    PS_AUTO_LOGIN: Try stored credentials once connected (default: true)
    PS_SETTINGS_PATH: JSON file backing the settings blob store
    PS_AUTOJOIN: JSON list of rooms to join once connected
    PS_ASSERTION / PS_TOKEN: Credential handed over by an external login flow

Usage:
    from showdown_client.config import get_config, ClientConfig

    config = get_config()
    url = config.server_url

    # For testing, create a custom config
    test_config = ClientConfig(server_url="ws://127.0.0.1:8000", auto_login=False)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SERVER_URL = "wss://sim3.psim.us/showdown/websocket"
DEFAULT_LOGINSERVER_URL = "https://play.pokemonshowdown.com/api/"


class ClientConfig(BaseSettings):
    """Client configuration with environment variable support.

    All settings can be overridden via environment variables prefixed with PS_.
    For example, PS_SERVER_URL=ws://localhost:8000/showdown/websocket points the
    client at a local server.

    Attributes:
        server_url: WebSocket URL of the chat server
        loginserver_url: Base URL of the credential server, ends with a slash
        client_id: OAuth client id sent along with token exchanges
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        auto_login: Run the login state machine when the connection opens
        settings_path: File used by the JSON blob store
        autojoin: Rooms joined as soon as the connection opens
        message_retry_delay: Delay before re-delivering a message to a room
            that did not exist yet
        challenge_poll_interval: Poll interval while waiting for the challenge
        challenge_timeout: Give up waiting for the challenge after this many
            seconds (None waits forever)
        login_poll_interval: Poll interval of the interactive login flow
        login_timeout: Give up on the interactive login flow after this many seconds
        assertion: Assertion handed over by an external login flow
        token: Long-lived token handed over together with the assertion
    """

    model_config = SettingsConfigDict(
        env_prefix="PS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Network configuration
    server_url: str = Field(
        default=DEFAULT_SERVER_URL,
        description="WebSocket URL of the chat server",
    )
    loginserver_url: str = Field(
        default=DEFAULT_LOGINSERVER_URL,
        description="Base URL of the credential server",
    )
    client_id: str = Field(
        default="",
        description="OAuth client id for token exchanges",
    )

    # Logging configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Session behaviour
    auto_login: bool = Field(
        default=True,
        description="Run the login state machine when the connection opens",
    )
    settings_path: Path = Field(
        default=Path("~/.showdown-client.json"),
        description="File backing the settings blob store",
    )
    autojoin: list[str] = Field(
        default_factory=list,
        description="Rooms joined as soon as the connection opens",
    )

    # Timing
    message_retry_delay: float = Field(
        default=1.0,
        ge=0,
        description="Delay before re-delivering a message to a missing room (seconds)",
    )
    challenge_poll_interval: float = Field(
        default=0.5,
        gt=0,
        description="Poll interval while waiting for the challenge (seconds)",
    )
    challenge_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Maximum wait for the challenge (seconds, None waits forever)",
    )
    login_poll_interval: float = Field(
        default=0.5,
        gt=0,
        description="Poll interval of the interactive login flow (seconds)",
    )
    login_timeout: float = Field(
        default=300.0,
        gt=0,
        description="Maximum duration of the interactive login flow (seconds)",
    )

    # Credentials handed over by an external login flow
    assertion: str | None = Field(
        default=None,
        description="Assertion obtained out of band",
    )
    token: str | None = Field(
        default=None,
        description="Long-lived token obtained together with the assertion",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("loginserver_url")
    @classmethod
    def ensure_trailing_slash(cls, v: str) -> str:
        """Endpoint paths are appended to the base URL."""
        return v if v.endswith("/") else v + "/"

    def setup_logging(self) -> None:
        """Configure logging based on config settings."""
        logging.basicConfig(
            level=getattr(logging, self.log_level, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary for logging/debugging.

        Credentials are masked.

        Returns:
            Dictionary of all config values
        """
        return {
            "server_url": self.server_url,
            "loginserver_url": self.loginserver_url,
            "client_id": self.client_id,
            "log_level": self.log_level,
            "auto_login": self.auto_login,
            "settings_path": str(self.settings_path),
            "autojoin": list(self.autojoin),
            "message_retry_delay": self.message_retry_delay,
            "challenge_poll_interval": self.challenge_poll_interval,
            "challenge_timeout": self.challenge_timeout,
            "login_poll_interval": self.login_poll_interval,
            "login_timeout": self.login_timeout,
            "assertion": "***" if self.assertion else None,
            "token": "***" if self.token else None,
        }


# Module-level instance used by the entry point
_config_instance: ClientConfig | None = None


def get_config() -> ClientConfig:
    """Get the shared configuration instance.

    Creates the config on first call, caching it for subsequent calls.
    The config is loaded from environment variables and optional .env file.

    Returns:
        The ClientConfig instance

    Note:
        The engine never calls this; it receives its config explicitly.
        For testing, use set_config() or reset_config().
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = ClientConfig()
    return _config_instance


def set_config(config: ClientConfig) -> None:
    """Set the configuration instance (primarily for testing).

    Args:
        config: ClientConfig instance to share
    """
    global _config_instance
    _config_instance = config


def reset_config() -> None:
    """Reset the shared configuration.

    Forces the next get_config() call to reload from environment.
    """
    global _config_instance
    _config_instance = None
