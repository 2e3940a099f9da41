"""
Provider error envelope and uploader exception hierarchy.

Every failed provider call is decoded into an ErrorEnvelope (numeric status,
symbolic kind, human message). The orchestrator consumes envelopes immediately
to pick its next state; the exceptions below carry them to wherever a run
terminates.

Taxonomy:
    - Transport: no response received (status 0, kind SEND_ERROR)
    - Protocol: non-200 response decoded from the body
    - Unrecoverable: 400s, denied auth, missing capability, usage cap
    - Recoverable: 401 token problems, 408, 503
    - Internal fault: a status/kind pair the state machine treats as impossible
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """
    Symbolic error codes reported by the provider.

    The two upper-case members never come from the provider: SEND_ERROR is
    synthesized when a request gets no response, KEYS_NOT_PRESENT when no
    credentials were available to authorize with. UNKNOWN stands for any code
    string outside this set and for bodies that could not be decoded.
    """

    SEND_ERROR = "SEND_ERROR"
    KEYS_NOT_PRESENT = "KEYS_NOT_PRESENT"
    BAD_REQUEST = "bad_request"
    INVALID_BUCKET_ID = "invalid_bucket_id"
    OUT_OF_RANGE = "out_of_range"
    UNAUTHORIZED = "unauthorized"
    UNSUPPORTED = "unsupported"
    BAD_AUTH_TOKEN = "bad_auth_token"
    EXPIRED_AUTH_TOKEN = "expired_auth_token"
    CAP_EXCEEDED = "cap_exceeded"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    REQUEST_TIMEOUT = "request_timeout"
    SERVICE_UNAVAILABLE = "service_unavailable"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_code(cls, code: Optional[str]) -> "ErrorKind":
        """Map a provider code string to a member, UNKNOWN when unrecognized."""
        try:
            return cls(code)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class ErrorEnvelope:
    """
    Decoded failure payload of a provider call.

    Attributes:
        status: HTTP status code (0 when no response was received)
        kind: Symbolic error kind
        message: Human readable message from the provider
    """

    status: int
    kind: ErrorKind
    message: str = ""

    @classmethod
    def from_json(cls, status: int, payload: Any) -> "ErrorEnvelope":
        """
        Decode a `{status, code, message}` body.

        The HTTP status wins over a missing or malformed body status so that
        transition logic always sees the status the transport reported.
        """
        if not isinstance(payload, dict):
            return cls(status=status, kind=ErrorKind.UNKNOWN, message=str(payload or ""))

        body_status = payload.get("status")
        return cls(
            status=body_status if isinstance(body_status, int) else status,
            kind=ErrorKind.from_code(payload.get("code")),
            message=str(payload.get("message", "")),
        )

    @classmethod
    def send_error(cls, message: str) -> "ErrorEnvelope":
        """Envelope for a request that received no response."""
        return cls(status=0, kind=ErrorKind.SEND_ERROR, message=message)

    @property
    def is_transport(self) -> bool:
        return self.kind is ErrorKind.SEND_ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "code": self.kind.value, "message": self.message}

    def __str__(self) -> str:
        return f"{self.status} {self.kind.value}: {self.message}"


# ============================================================================
# Exceptions
# ============================================================================

class UploaderError(Exception):
    """Base class for every error an upload run can end with."""


class InvalidInputError(UploaderError):
    """An input path is missing, is not a regular file, or cannot be read."""


class ConfigurationError(UploaderError, ValueError):
    """An environment setting or config file is malformed."""


class CredentialsNotFoundError(UploaderError):
    """No key id / application key could be resolved from any backend."""


class ProviderError(UploaderError):
    """A provider call failed; carries the decoded envelope."""

    def __init__(self, envelope: ErrorEnvelope, operation: str = "") -> None:
        self.envelope = envelope
        self.operation = operation
        prefix = f"{operation} failed: " if operation else ""
        super().__init__(f"{prefix}{envelope}")


class UnrecoverableUploadError(UploaderError):
    """The provider rejected the run in a way retrying cannot fix."""

    def __init__(self, message: str, envelope: Optional[ErrorEnvelope] = None) -> None:
        self.envelope = envelope
        super().__init__(message)


class UnsupportedContentTypeError(UnrecoverableUploadError):
    """A file extension has no content type in the whitelist."""

    def __init__(self, file_path: str, extension: str) -> None:
        self.file_path = file_path
        self.extension = extension
        super().__init__(
            f"Unsupported content type: no content type defined for extension "
            f"'{extension}' ({file_path})"
        )


class RetryBudgetExhaustedError(UploaderError):
    """The global attempt budget ran out before every file was accounted for."""

    def __init__(self, attempts: int, last_envelope: Optional[ErrorEnvelope] = None) -> None:
        self.attempts = attempts
        self.last_envelope = last_envelope
        message = f"Exhausted upload attempts after {attempts} recoverable errors"
        if last_envelope is not None:
            message += f" (last error: {last_envelope})"
        super().__init__(message)


class InternalFaultError(UploaderError):
    """
    The state machine received a status/kind pair it treats as impossible.

    Raised instead of aborting the process so callers and tests can observe it.
    """

    def __init__(self, state: str, envelope: ErrorEnvelope) -> None:
        self.state = state
        self.envelope = envelope
        super().__init__(f"Internal error: impossible response in {state}: {envelope}")
