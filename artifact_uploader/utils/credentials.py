"""
Credential provider for the object-storage account.

Resolves the application key pair from, in order:
    1. Environment variables (UPLOADER_KEY_ID / UPLOADER_APPLICATION_KEY)
    2. The `credentials` section of the YAML config file

Environment values override the config file so CI jobs can inject their own
keys without touching the file.

Security Principles:
    - Never log secret values
    - Credentials are resolved once per provider and never persisted

Usage:
    from artifact_uploader.utils.credentials import CredentialProvider

    provider = CredentialProvider(config_file="uploader.yaml")
    credentials = provider.get_credentials()
"""

import os
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Union

import yaml

from artifact_uploader.storage.errors import ConfigurationError, CredentialsNotFoundError
from artifact_uploader.storage.models import Credentials
from artifact_uploader.utils.config_loader import load_config
from artifact_uploader.utils.logging import get_logger

# Module-level logger
logger = get_logger(__name__)

KEY_ID_ENV = "UPLOADER_KEY_ID"
APPLICATION_KEY_ENV = "UPLOADER_APPLICATION_KEY"


class CredentialSource(str, Enum):
    """
    Where a key pair was found.

    Values:
        ENVIRONMENT: Read from environment variables
        CONFIG_FILE: Read from the YAML config file
    """

    ENVIRONMENT = "environment"
    CONFIG_FILE = "config_file"


class CredentialProvider:
    """
    Resolves account credentials once and caches them.

    Example:
        >>> provider = CredentialProvider()
        >>> credentials = provider.get_credentials()
        >>> provider.source
        <CredentialSource.ENVIRONMENT: 'environment'>
    """

    def __init__(self, config_file: Optional[Union[str, Path]] = None) -> None:
        """
        Initialize credential provider.

        Args:
            config_file: Optional YAML config file consulted after the environment
        """
        self.config_file = Path(config_file) if config_file else None
        self.source: Optional[CredentialSource] = None
        self._cached: Optional[Credentials] = None

    def get_credentials(self) -> Credentials:
        """
        Return the account credentials.

        Returns:
            Credentials with a non-empty key id and application key

        Raises:
            CredentialsNotFoundError: If no backend supplies both values
        """
        if self._cached is not None:
            return self._cached

        key_id, application_key = self._from_environment()
        if key_id and application_key:
            self.source = CredentialSource.ENVIRONMENT
        else:
            key_id, application_key = self._from_config_file()
            if key_id and application_key:
                self.source = CredentialSource.CONFIG_FILE

        if not (key_id and application_key):
            error_msg = (
                f"Could not get keys: set {KEY_ID_ENV} and {APPLICATION_KEY_ENV}"
                + (f" or add a credentials section to {self.config_file}" if self.config_file else "")
            )
            logger.error(error_msg)
            raise CredentialsNotFoundError(error_msg)

        logger.info(f"Credentials for key id {key_id} loaded from {self.source.value}")
        self._cached = Credentials(key_id=key_id, application_key=application_key)
        return self._cached

    def clear_cache(self) -> None:
        """Forget the cached key pair so the next call re-reads every backend."""
        self._cached = None
        self.source = None

    def _from_environment(self) -> Tuple[str, str]:
        return os.getenv(KEY_ID_ENV, "").strip(), os.getenv(APPLICATION_KEY_ENV, "").strip()

    def _from_config_file(self) -> Tuple[str, str]:
        if self.config_file is None or not self.config_file.exists():
            return "", ""

        try:
            section = load_config(self.config_file).get("credentials") or {}
        except (yaml.YAMLError, ValueError, OSError) as e:
            error_msg = f"Could not read credentials from {self.config_file}: {e}"
            logger.error(error_msg)
            raise ConfigurationError(error_msg) from e

        if not isinstance(section, dict):
            logger.warning(f"Ignoring malformed credentials section in {self.config_file}")
            return "", ""

        return (
            str(section.get("key_id") or "").strip(),
            str(section.get("application_key") or "").strip(),
        )
