"""
HTTP client for the object-storage provider REST API.

One method per provider call. Each returns the decoded record on HTTP 200 and
raises ProviderError carrying an ErrorEnvelope otherwise; a request that gets
no response raises with a synthesized SEND_ERROR envelope (status 0). No
method retries: retry policy belongs to the orchestrator.

Example usage:
    >>> from artifact_uploader.storage.client import StorageClient
    >>> client = StorageClient()
    >>> session = client.authorize(credentials)
    >>> existing = client.list_file_names(session, prefix="benchmarks/")
    >>> lease = client.get_upload_url(session)
"""

from typing import Any, Callable, List, Optional, TypeVar
from urllib.parse import quote

import requests

from artifact_uploader.storage.errors import ErrorEnvelope, ErrorKind, ProviderError
from artifact_uploader.storage.models import (
    AuthSession,
    Credentials,
    ListingEntry,
    UploadFileResponse,
    UploadUrlLease,
)
from artifact_uploader.utils.config import DEFAULT_AUTHORIZE_URL, MAX_LIST_FILE_COUNT
from artifact_uploader.utils.logging import get_logger

# Module logger
logger = get_logger(__name__)

T = TypeVar("T")

LIST_FILE_NAMES_PATH = "/list_objects"
GET_UPLOAD_URL_PATH = "/get_upload_url"

FILE_NAME_HEADER = "X-Object-File-Name"
CONTENT_HASH_HEADER = "X-Object-Content-Hash"

# Printable ASCII left as-is in the file name header; controls, non-ASCII
# bytes, space, double quote, angle brackets and backtick are escaped.
_FILE_NAME_SAFE_CHARS = "".join(
    chr(code) for code in range(0x21, 0x7F) if chr(code) not in '"<>`'
)


def encode_file_name(relative_key: str) -> str:
    """
    Percent-encode an object key for the file name header.

    Example:
        >>> encode_file_name("Spa ce/new file.txt")
        'Spa%20ce/new%20file.txt'
    """
    return quote(relative_key, safe=_FILE_NAME_SAFE_CHARS)


class StorageClient:
    """
    Thin wrapper over requests.Session for the provider's endpoints.

    Attributes:
        authorize_url: Account authorization endpoint
        timeout: Per-request timeout in seconds
        list_max_file_count: Page size for listings (provider maximum 1000)
    """

    def __init__(
        self,
        authorize_url: str = DEFAULT_AUTHORIZE_URL,
        http: Optional[requests.Session] = None,
        timeout: float = 300,
        list_max_file_count: int = MAX_LIST_FILE_COUNT,
    ) -> None:
        self.authorize_url = authorize_url
        self.http = http if http is not None else requests.Session()
        self.timeout = timeout
        self.list_max_file_count = max(1, min(list_max_file_count, MAX_LIST_FILE_COUNT))

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> "StorageClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Provider calls
    # ------------------------------------------------------------------

    def authorize(self, credentials: Credentials) -> AuthSession:
        """
        Authorize the account and open a session.

        Args:
            credentials: Key id and application key

        Returns:
            AuthSession for the bucket the key is restricted to

        Raises:
            ProviderError: KEYS_NOT_PRESENT for empty credentials, SEND_ERROR
                when no response arrives, the decoded envelope otherwise
        """
        operation = "authorize"
        if not credentials.is_complete:
            raise ProviderError(
                ErrorEnvelope(0, ErrorKind.KEYS_NOT_PRESENT, "Key id or application key is empty"),
                operation,
            )

        logger.debug(f"Authorizing key id {credentials.key_id}")
        response = self._send(
            operation,
            "GET",
            self.authorize_url,
            auth=(credentials.key_id, credentials.application_key),
        )
        session = self._decode(operation, response, AuthSession.from_json)
        logger.info(
            f"Authorized account {session.account_id} for bucket {session.bucket_name} "
            f"(capabilities: {', '.join(session.capabilities) or 'none'})"
        )
        return session

    def list_file_names(self, session: AuthSession, prefix: str) -> List[ListingEntry]:
        """
        List existing objects whose key starts with prefix.

        Only the first page is read; with more objects than the page size under
        the prefix some existing objects are not returned.
        """
        operation = "list_file_names"
        body = {
            "bucketId": session.bucket_id,
            "maxFileCount": self.list_max_file_count,
            "prefix": prefix,
        }
        response = self._send(
            operation,
            "POST",
            session.api_url + LIST_FILE_NAMES_PATH,
            headers={"Authorization": session.authorization_token},
            json=body,
        )
        files = self._decode(
            operation,
            response,
            lambda payload: [
                UploadFileResponse.from_json(item).to_listing_entry() for item in payload["files"]
            ],
        )
        if len(files) >= self.list_max_file_count:
            logger.warning(
                f"Listing for prefix '{prefix}' returned a full page of {len(files)} objects; "
                f"objects beyond the first page are not checked for duplicates"
            )
        logger.info(f"Found {len(files)} existing objects under prefix '{prefix}'")
        return files

    def get_upload_url(self, session: AuthSession) -> UploadUrlLease:
        """Request an upload endpoint and token for the session's bucket."""
        operation = "get_upload_url"
        response = self._send(
            operation,
            "POST",
            session.api_url + GET_UPLOAD_URL_PATH,
            headers={"Authorization": session.authorization_token},
            json={"bucketId": session.bucket_id},
        )
        lease = self._decode(operation, response, UploadUrlLease.from_json)
        logger.info(f"Acquired upload URL for bucket {lease.bucket_id}")
        return lease

    def upload_file(
        self,
        lease: UploadUrlLease,
        relative_key: str,
        content_type: str,
        content_hash: str,
        data: bytes,
    ) -> UploadFileResponse:
        """
        Send one object's bytes to a leased upload endpoint.

        Args:
            lease: Upload URL and token
            relative_key: Object key (subdirectory + file name)
            content_type: MIME type of the object
            content_hash: SHA-1 hex digest of data
            data: Object bytes

        Returns:
            Record of the stored object
        """
        operation = "upload_file"
        headers = {
            "Authorization": lease.authorization_token,
            FILE_NAME_HEADER: encode_file_name(relative_key),
            "Content-Type": content_type,
            "Content-Length": str(len(data)),
            CONTENT_HASH_HEADER: content_hash,
        }
        response = self._send(operation, "POST", lease.upload_url, headers=headers, data=data)
        return self._decode(operation, response, UploadFileResponse.from_json)

    def probe(self, url: str) -> bool:
        """
        Check whether a public URL is reachable.

        Returns False on any non-200 status or transport failure.
        """
        try:
            response = self.http.head(url, timeout=self.timeout, allow_redirects=True)
        except requests.RequestException as e:
            logger.warning(f"Reachability probe failed for {url}: {e}")
            return False
        return response.status_code == 200

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _send(self, operation: str, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            return self.http.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.warning(f"{operation}: no response from {url}: {e}")
            raise ProviderError(ErrorEnvelope.send_error(str(e)), operation) from e

    def _decode(
        self,
        operation: str,
        response: requests.Response,
        parse: Callable[[Any], T],
    ) -> T:
        if response.status_code == 200:
            try:
                return parse(response.json())
            except (ValueError, KeyError, TypeError) as e:
                # A 200 with an unexpected body is not something retrying can fix
                raise ProviderError(
                    ErrorEnvelope(200, ErrorKind.UNKNOWN, f"Malformed success body: {e}"),
                    operation,
                ) from e

        try:
            payload = response.json()
        except ValueError:
            payload = response.text
        envelope = ErrorEnvelope.from_json(response.status_code, payload)
        logger.debug(f"{operation} returned {envelope}")
        raise ProviderError(envelope, operation)
