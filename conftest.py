"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
from prometheus_client import CollectorRegistry

# Add project root to path for imports
project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from artifact_uploader.storage.errors import ErrorEnvelope, ErrorKind, ProviderError  # noqa: E402
from artifact_uploader.storage.models import (  # noqa: E402
    AuthSession,
    Credentials,
    ListingEntry,
    UploadFileResponse,
    UploadUrlLease,
)
from artifact_uploader.utils.metrics import UploaderMetrics  # noqa: E402

DOWNLOAD_URL = "https://f000.example-storage.com"
BUCKET_NAME = "bench-artifacts"


def make_session(token: str = "token-1") -> AuthSession:
    return AuthSession(
        account_id="acct-1",
        authorization_token=token,
        download_url=DOWNLOAD_URL,
        api_url="https://api000.example-storage.com",
        bucket_id="bucket-1",
        bucket_name=BUCKET_NAME,
        capabilities=["listFiles", "writeFiles"],
    )


def make_lease(token: str = "upload-token-1") -> UploadUrlLease:
    return UploadUrlLease(
        bucket_id="bucket-1",
        upload_url="https://pod-000.example-storage.com/upload/bucket-1",
        authorization_token=token,
    )


def envelope(status: int, kind: ErrorKind, message: str = "") -> ErrorEnvelope:
    return ErrorEnvelope(status=status, kind=kind, message=message or kind.value)


class ScriptedClient:
    """
    Stand-in for StorageClient that replays scripted results.

    Each queue holds results for successive calls; an ErrorEnvelope entry is
    raised as ProviderError and a None entry means the default success value,
    which is also returned once a queue runs dry.
    """

    def __init__(
        self,
        authorize: Optional[List[Any]] = None,
        listing: Optional[List[Any]] = None,
        upload_urls: Optional[List[Any]] = None,
        uploads: Optional[List[Any]] = None,
        existing: Optional[List[ListingEntry]] = None,
        reachable: Optional[List[str]] = None,
    ) -> None:
        self.queues: Dict[str, List[Any]] = {
            "authorize": list(authorize or []),
            "list_file_names": list(listing or []),
            "get_upload_url": list(upload_urls or []),
            "upload_file": list(uploads or []),
        }
        self.existing = list(existing or [])
        # None means every URL is reachable
        self.reachable = None if reachable is None else set(reachable)
        self.calls: Dict[str, List[Any]] = {name: [] for name in self.queues}
        self.calls["probe"] = []
        self.closed = False

    def _next(self, operation: str, default: Any) -> Any:
        queue = self.queues[operation]
        result = queue.pop(0) if queue else None
        if result is None:
            result = default
        if isinstance(result, ErrorEnvelope):
            raise ProviderError(result, operation)
        return result

    def authorize(self, credentials: Credentials) -> AuthSession:
        self.calls["authorize"].append(credentials)
        return self._next("authorize", make_session(f"token-{len(self.calls['authorize'])}"))

    def list_file_names(self, session: AuthSession, prefix: str) -> List[ListingEntry]:
        self.calls["list_file_names"].append((session, prefix))
        return self._next("list_file_names", self.existing)

    def get_upload_url(self, session: AuthSession) -> UploadUrlLease:
        self.calls["get_upload_url"].append(session)
        return self._next("get_upload_url", make_lease(f"upload-token-{len(self.calls['get_upload_url'])}"))

    def upload_file(
        self,
        lease: UploadUrlLease,
        relative_key: str,
        content_type: str,
        content_hash: str,
        data: bytes,
    ) -> UploadFileResponse:
        self.calls["upload_file"].append(
            {
                "lease": lease,
                "relative_key": relative_key,
                "content_type": content_type,
                "content_hash": content_hash,
                "size": len(data),
            }
        )
        default = UploadFileResponse(
            account_id="acct-1",
            action="upload",
            bucket_id=lease.bucket_id,
            content_length=len(data),
            content_hash=content_hash,
            file_id=f"file-{len(self.calls['upload_file'])}",
            file_name=relative_key,
        )
        return self._next("upload_file", default)

    def probe(self, url: str) -> bool:
        self.calls["probe"].append(url)
        return self.reachable is None or url in self.reachable

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def metrics() -> UploaderMetrics:
    """Metrics bound to a private registry so tests never collide."""
    return UploaderMetrics(registry=CollectorRegistry())


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(key_id="key-id-1", application_key="secret-app-key")


@pytest.fixture
def artifact_dir(tmp_path: Path) -> Path:
    """Directory with two benchmark artifacts."""
    (tmp_path / "run-1.zip").write_bytes(b"PK\x03\x04 benchmark archive one")
    (tmp_path / "run-1.txt").write_text("ticks: 1000\nmean_ms: 4.2\n")
    return tmp_path
