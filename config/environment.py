"""Configuration read from ``SLIDESHOW_*`` environment variables."""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .base import BaseConfiguration, ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "SLIDESHOW_"


def _env(name: str) -> Optional[str]:
    value = os.getenv(ENV_PREFIX + name)
    if value is None or not value.strip():
        return None
    return value.strip()


@dataclass
class EnvironmentConfiguration(BaseConfiguration):

    @classmethod
    def from_env(cls, dotenv_path: Optional[Path] = None) -> "EnvironmentConfiguration":
        """
        Build configuration from the process environment.

        A ``.env`` file is loaded first; variables already set in the
        environment win.

        Raises:
            ConfigurationError: if a value cannot be parsed or fails validation
        """
        load_dotenv(dotenv_path)
        config = cls()

        for attr, name in (
            ("content_base_url", "CONTENT_BASE_URL"),
            ("user_agent", "USER_AGENT"),
            ("token_url", "TOKEN_URL"),
            ("client_id", "CLIENT_ID"),
            ("client_secret", "CLIENT_SECRET"),
            ("refresh_token", "REFRESH_TOKEN"),
            ("access_token", "ACCESS_TOKEN"),
            ("caption_api_url", "CAPTION_API_URL"),
            ("caption_model", "CAPTION_MODEL"),
            ("caption_api_key", "CAPTION_API_KEY"),
            ("log_level", "LOG_LEVEL"),
        ):
            value = _env(name)
            if value is not None:
                setattr(config, attr, value)

        timeout = _env("REQUEST_TIMEOUT")
        if timeout is not None:
            try:
                config.request_timeout = float(timeout)
            except ValueError as exc:
                raise ConfigurationError(f"{ENV_PREFIX}REQUEST_TIMEOUT must be a number, got {timeout!r}") from exc

        shuffle = _env("SHUFFLE")
        if shuffle is not None:
            config.shuffle = shuffle.lower() in ("1", "true", "yes", "on")

        prefs_path = _env("PREFERENCES_PATH")
        if prefs_path is not None:
            config.preferences_path = Path(prefs_path).expanduser()

        config.log_level = config.log_level.upper()
        config.validate()
        if not config.has_content_credentials:
            logger.warning("No content credentials configured; the slideshow will ask to connect an account")
        return config
