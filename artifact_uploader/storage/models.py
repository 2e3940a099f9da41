"""
Wire-level records exchanged with the object-storage provider.

Field names follow Python conventions; `from_json` / `to_json` translate to and
from the provider's camelCase JSON.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(frozen=True)
class Credentials:
    """
    Key pair used to authorize an account.

    Attributes:
        key_id: Application key id
        application_key: Application key secret (kept out of repr)
    """

    key_id: str
    application_key: str = field(repr=False)

    @property
    def is_complete(self) -> bool:
        return bool(self.key_id) and bool(self.application_key)


@dataclass
class AuthSession:
    """
    Result of a successful account authorization.

    A session is never patched: when the provider invalidates it the
    orchestrator marks it dirty and replaces it with a fresh one.

    Attributes:
        account_id: Provider account id
        authorization_token: Bearer token for API calls (kept out of repr)
        download_url: Base URL for public downloads
        api_url: Base URL for API calls
        bucket_id: Id of the bucket the key is restricted to
        bucket_name: Name of that bucket
        capabilities: Capabilities granted to the key
        dirty: Set once the session is known to be stale
    """

    account_id: str
    authorization_token: str = field(repr=False)
    download_url: str
    api_url: str
    bucket_id: str
    bucket_name: str
    capabilities: List[str] = field(default_factory=list)
    dirty: bool = False

    @classmethod
    def from_json(cls, payload: Dict[str, Any]) -> "AuthSession":
        allowed = payload["allowed"]
        return cls(
            account_id=payload["accountId"],
            authorization_token=payload["authorizationToken"],
            download_url=payload["downloadUrl"].rstrip("/"),
            api_url=payload["apiUrl"].rstrip("/"),
            bucket_id=allowed["bucketId"],
            bucket_name=allowed["bucketName"],
            capabilities=list(allowed.get("capabilities", [])),
        )

    def public_url(self, relative_key: str) -> str:
        """
        Public download URL of an object.

        No object id is involved, so only the most recently uploaded object at
        a key is reachable through it.
        """
        return f"{self.download_url}/file/{self.bucket_name}/{relative_key}"


@dataclass(frozen=True)
class ListingEntry:
    """An existing remote object: key and recorded content hash."""

    file_name: str
    content_hash: str


@dataclass(frozen=True)
class UploadFileResponse:
    """Object record returned by a listing page or by a successful upload."""

    account_id: str
    action: str
    bucket_id: str
    content_length: int
    content_hash: str
    file_id: str
    file_name: str

    @classmethod
    def from_json(cls, payload: Dict[str, Any]) -> "UploadFileResponse":
        return cls(
            account_id=payload.get("accountId", ""),
            action=payload.get("action", ""),
            bucket_id=payload.get("bucketId", ""),
            content_length=int(payload.get("contentLength", 0)),
            content_hash=payload.get("contentHash", ""),
            file_id=payload.get("fileId", ""),
            file_name=payload["fileName"],
        )

    def to_listing_entry(self) -> ListingEntry:
        return ListingEntry(file_name=self.file_name, content_hash=self.content_hash)


@dataclass(frozen=True)
class UploadUrlLease:
    """
    Upload endpoint and token scoped to one bucket.

    Reusable for any number of uploads until the provider rejects it.
    """

    bucket_id: str
    upload_url: str
    authorization_token: str = field(repr=False)

    @classmethod
    def from_json(cls, payload: Dict[str, Any]) -> "UploadUrlLease":
        return cls(
            bucket_id=payload["bucketId"],
            upload_url=payload["uploadUrl"],
            authorization_token=payload["authorizationToken"],
        )
