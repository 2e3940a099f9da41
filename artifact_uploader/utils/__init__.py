"""
Utility modules for the artifact uploader.

This package provides shared utilities used across the upload engine:
- logging: Structured logging with entry/exit decorators
- config / config_loader: Environment and YAML configuration
- credentials: Account key resolution
- retry: Attempt budget and backoff
- metrics: Prometheus collectors
"""

from artifact_uploader.utils.logging import get_logger, log_function_call

__all__ = ["get_logger", "log_function_call"]
