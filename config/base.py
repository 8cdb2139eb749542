"""
Configuration interface for the slideshow engine.

Holds endpoint, credential and runtime settings with defaults, and
validates them before any client is built.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from slideshow.caption_client import DEFAULT_CAPTION_URL, DEFAULT_MODEL
from slideshow.content_client import DEFAULT_BASE_URL, DEFAULT_USER_AGENT, REQUEST_TIMEOUT
from slideshow.token_broker import DEFAULT_TOKEN_URL

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigurationError(Exception):
    """Raised when configuration values are missing or malformed."""


@dataclass
class BaseConfiguration:
    """Settings with defaults; subclasses decide where overrides come from."""

    content_base_url: str = DEFAULT_BASE_URL
    user_agent: str = DEFAULT_USER_AGENT
    token_url: str = DEFAULT_TOKEN_URL
    client_id: Optional[str] = None
    client_secret: str = ""
    refresh_token: Optional[str] = None
    access_token: Optional[str] = None

    caption_api_url: str = DEFAULT_CAPTION_URL
    caption_model: str = DEFAULT_MODEL
    caption_api_key: Optional[str] = None

    request_timeout: float = REQUEST_TIMEOUT
    shuffle: bool = False
    preferences_path: Path = field(default_factory=lambda: Path.home() / ".slideshow" / "preferences.json")
    log_level: str = "INFO"

    def validate(self) -> None:
        """
        Check the settings for obvious mistakes.

        Raises:
            ConfigurationError: listing every problem found
        """
        problems = []
        for name in ("content_base_url", "token_url", "caption_api_url"):
            parsed = urlparse(getattr(self, name))
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                problems.append(f"{name} is not a valid URL")
        if self.request_timeout <= 0:
            problems.append("request_timeout must be positive")
        if self.log_level.upper() not in LOG_LEVELS:
            problems.append(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        if self.refresh_token and not self.client_id:
            problems.append("client_id is required when a refresh token is configured")
        if problems:
            raise ConfigurationError("; ".join(problems))

    @property
    def has_content_credentials(self) -> bool:
        return bool(self.access_token or (self.refresh_token and self.client_id))
