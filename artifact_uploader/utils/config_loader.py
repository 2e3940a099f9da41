"""
YAML configuration file loader and validator.

The uploader config file holds the account credentials (when they are not
supplied through the environment) and per-pipeline upload defaults.

Example config file (uploader.yaml):
    ```yaml
    version: "1.0"

    credentials:
      key_id: 0012ab34cd56ef7000000000a
      application_key: K001xxxxxxxxxxxxxxxxxxxxxxxxxxx

    upload:
      subdirectory: benchmarks/
      max_attempts: 3
      backoff_seconds: 1.0
    ```

Usage:
    >>> from artifact_uploader.utils.config_loader import load_config, validate_config
    >>> config = load_config("uploader.yaml")
    >>> errors = validate_config(config)
    >>> if not errors:
    ...     print(config["upload"]["subdirectory"])
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from artifact_uploader.utils.logging import get_logger

logger = get_logger(__name__)


# Supported config versions
SUPPORTED_VERSIONS = ["1.0"]

# Keys accepted in each section
CREDENTIAL_FIELDS = ["key_id", "application_key"]
UPLOAD_FIELDS = ["subdirectory", "max_attempts", "backoff_seconds"]


@dataclass
class ConfigError:
    """Validation error in configuration file."""

    field: str
    message: str
    value: Optional[Any] = None

    def __str__(self) -> str:
        """Format error message."""
        if self.value is not None:
            return f"{self.field}: {self.message} (got: {self.value})"
        return f"{self.field}: {self.message}"


def load_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Dictionary containing parsed configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If the path is not a file, is empty, or is not a mapping
        yaml.YAMLError: If YAML is malformed
    """
    path = Path(config_path)
    logger.info(f"Loading configuration from: {path}")

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    if not path.is_file():
        raise ValueError(f"Configuration path is not a file: {path}")

    try:
        with open(path, "r") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML: {e}")
        raise

    if config is None:
        raise ValueError("Configuration file is empty")

    if not isinstance(config, dict):
        raise ValueError(f"Configuration file must contain a mapping, got {type(config).__name__}")

    logger.info(f"Configuration loaded (version {config.get('version', 'unknown')})")
    return dict(config)


def validate_config(config: Dict[str, Any]) -> List[ConfigError]:
    """
    Validate configuration against expected schema.

    Args:
        config: Configuration dictionary to validate

    Returns:
        List of validation errors (empty if valid)

    Example:
        >>> errors = validate_config({"version": "1.0"})
        >>> errors
        []
    """
    errors: List[ConfigError] = []

    if "version" not in config:
        errors.append(ConfigError("version", "Missing required field"))
    elif str(config["version"]) not in SUPPORTED_VERSIONS:
        errors.append(
            ConfigError(
                "version",
                f"Unsupported version (supported: {SUPPORTED_VERSIONS})",
                config["version"],
            )
        )

    if "credentials" in config:
        errors.extend(_validate_credentials(config["credentials"]))

    if "upload" in config:
        errors.extend(_validate_upload(config["upload"]))

    for key in config:
        if key not in ("version", "credentials", "upload"):
            errors.append(ConfigError(key, "Unknown top-level field"))

    if errors:
        logger.warning(f"Configuration validation failed with {len(errors)} errors")
    else:
        logger.info("Configuration validation passed")

    return errors


def _validate_credentials(section: Any) -> List[ConfigError]:
    """Validate the credentials section."""
    errors: List[ConfigError] = []

    if not isinstance(section, dict):
        errors.append(ConfigError("credentials", "Must be a mapping", type(section).__name__))
        return errors

    for field in CREDENTIAL_FIELDS:
        if field not in section:
            errors.append(ConfigError(f"credentials.{field}", "Missing required field"))
        elif not isinstance(section[field], str) or not section[field].strip():
            # Never echo credential values back
            errors.append(ConfigError(f"credentials.{field}", "Must be a non-empty string"))

    return errors


def _validate_upload(section: Any) -> List[ConfigError]:
    """Validate the upload section."""
    errors: List[ConfigError] = []

    if not isinstance(section, dict):
        errors.append(ConfigError("upload", "Must be a mapping", type(section).__name__))
        return errors

    for key in section:
        if key not in UPLOAD_FIELDS:
            errors.append(ConfigError(f"upload.{key}", "Unknown field"))

    if "subdirectory" in section and not isinstance(section["subdirectory"], str):
        errors.append(
            ConfigError(
                "upload.subdirectory", "Must be a string", type(section["subdirectory"]).__name__
            )
        )

    if "max_attempts" in section:
        attempts = section["max_attempts"]
        if isinstance(attempts, bool) or not isinstance(attempts, int):
            errors.append(
                ConfigError("upload.max_attempts", "Must be an integer", type(attempts).__name__)
            )
        elif attempts < 1:
            errors.append(ConfigError("upload.max_attempts", "Must be at least 1", attempts))

    if "backoff_seconds" in section:
        backoff = section["backoff_seconds"]
        if isinstance(backoff, bool) or not isinstance(backoff, (int, float)):
            errors.append(
                ConfigError("upload.backoff_seconds", "Must be a number", type(backoff).__name__)
            )
        elif backoff < 0:
            errors.append(ConfigError("upload.backoff_seconds", "Cannot be negative", backoff))

    return errors


def get_config_example() -> str:
    """
    Get an example configuration template.

    Returns:
        YAML template string
    """
    return """version: "1.0"

credentials:
  key_id: your-key-id
  application_key: your-application-key

upload:
  subdirectory: benchmarks/
  max_attempts: 3
  backoff_seconds: 1.0
"""
