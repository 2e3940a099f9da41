"""
Environment configuration loader for artifact-uploader.

Loads settings from a .env file or environment variables. Credentials are not
part of this object; see artifact_uploader.utils.credentials.
"""

import os
from pathlib import Path
from typing import Optional
from dataclasses import dataclass

from dotenv import load_dotenv

from artifact_uploader.storage.errors import ConfigurationError

DEFAULT_AUTHORIZE_URL = "https://api.backblazeb2.com/b2api/v2/b2_authorize_account"

# Provider limit for one listing page
MAX_LIST_FILE_COUNT = 1000


@dataclass
class UploaderConfig:
    """Uploader environment configuration."""

    # Provider endpoint used to authorize the account
    authorize_url: str = DEFAULT_AUTHORIZE_URL

    # Retry policy
    max_attempts: int = 3
    backoff_seconds: float = 1.0

    # HTTP settings
    request_timeout_seconds: int = 300
    list_max_file_count: int = MAX_LIST_FILE_COUNT

    # Optional YAML file holding credentials and upload defaults
    config_file: Optional[str] = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be at least 1 (got {self.max_attempts})")
        if self.backoff_seconds < 0:
            raise ConfigurationError(f"backoff_seconds cannot be negative (got {self.backoff_seconds})")
        if self.request_timeout_seconds <= 0:
            raise ConfigurationError(
                f"request_timeout_seconds must be positive (got {self.request_timeout_seconds})"
            )
        # The provider refuses pages larger than its limit
        self.list_max_file_count = max(1, min(self.list_max_file_count, MAX_LIST_FILE_COUNT))

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "UploaderConfig":
        """
        Load configuration from environment variables.

        Loads the .env file first (if present), then reads from os.environ.
        Variables already set in the environment take precedence over the
        file.

        Args:
            env_file: .env path (defaults to .env in the working directory)

        Returns:
            UploaderConfig instance with loaded values

        Raises:
            ConfigurationError: If a numeric variable cannot be parsed or is out of range
        """
        env_path = env_file or Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path)

        return cls(
            authorize_url=os.getenv("UPLOADER_AUTHORIZE_URL", DEFAULT_AUTHORIZE_URL),
            max_attempts=_int_env("UPLOADER_MAX_ATTEMPTS", 3),
            backoff_seconds=_float_env("UPLOADER_BACKOFF_SECONDS", 1.0),
            request_timeout_seconds=_int_env("UPLOADER_REQUEST_TIMEOUT_SECONDS", 300),
            list_max_file_count=_int_env("UPLOADER_LIST_MAX_FILE_COUNT", MAX_LIST_FILE_COUNT),
            config_file=os.getenv("UPLOADER_CONFIG_FILE") or None,
        )


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer (got {raw!r})") from None


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number (got {raw!r})") from None


# Global config instance (lazy-loaded)
_config: Optional[UploaderConfig] = None


def get_config() -> UploaderConfig:
    """
    Get or create uploader configuration singleton.

    Returns:
        UploaderConfig instance loaded from environment

    Example:
        >>> config = get_config()
        >>> print(config.max_attempts)
        3
    """
    global _config
    if _config is None:
        _config = UploaderConfig.from_env()
    return _config
