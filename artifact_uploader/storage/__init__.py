"""
Object-storage provider layer.

Provides the REST client, the wire records it exchanges, and the error
envelope / exception taxonomy shared with the uploader.
"""

from .client import StorageClient, encode_file_name
from .errors import (
    ConfigurationError,
    CredentialsNotFoundError,
    ErrorEnvelope,
    ErrorKind,
    InternalFaultError,
    InvalidInputError,
    ProviderError,
    RetryBudgetExhaustedError,
    UnrecoverableUploadError,
    UnsupportedContentTypeError,
    UploaderError,
)
from .models import (
    AuthSession,
    Credentials,
    ListingEntry,
    UploadFileResponse,
    UploadUrlLease,
)

__all__ = [
    "StorageClient",
    "encode_file_name",
    "ConfigurationError",
    "CredentialsNotFoundError",
    "ErrorEnvelope",
    "ErrorKind",
    "InternalFaultError",
    "InvalidInputError",
    "ProviderError",
    "RetryBudgetExhaustedError",
    "UnrecoverableUploadError",
    "UnsupportedContentTypeError",
    "UploaderError",
    "AuthSession",
    "Credentials",
    "ListingEntry",
    "UploadFileResponse",
    "UploadUrlLease",
]
