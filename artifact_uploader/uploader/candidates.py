"""
Upload candidates: one per input file.

A candidate pairs a local file with its content hash and the object key it will
be stored under. The key is derived once from (subdirectory, file name) and
never changes; dedup fills in the public URL and `already_uploaded`, and a
successful transfer fills in `upload_result`.
"""

import hashlib
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from artifact_uploader.storage.errors import InvalidInputError, UnsupportedContentTypeError
from artifact_uploader.storage.models import UploadFileResponse
from artifact_uploader.utils.logging import get_logger

# Module logger
logger = get_logger(__name__)

HASH_CHUNK_BYTES = 64 * 1024

# Extensions the uploader knows a content type for; "" is a file with no extension
CONTENT_TYPES: Dict[str, str] = {
    ".zip": "application/zip",
    ".txt": "text/plain",
    ".log": "text/plain",
    ".csv": "text/csv",
    ".json": "application/json",
    "": "text/plain",
}


def compute_content_hash(file_path: Union[str, Path]) -> str:
    """Return the SHA-1 hex digest of a file's bytes."""
    digest = hashlib.sha1()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(HASH_CHUNK_BYTES), b""):
            digest.update(chunk)
    return digest.hexdigest()


def normalize_subdirectory(subdirectory: str, sep: Optional[str] = None) -> str:
    """Translate a local path separator in a subdirectory to the "/" used by object keys."""
    sep = sep or os.sep
    if sep == "/":
        return subdirectory
    return subdirectory.replace(sep, "/")


def relative_key(subdirectory: str, filename: str) -> str:
    """
    Build the object key for a file under a subdirectory.

    Object keys always use forward slashes; a local path separator in the
    subdirectory is translated and a trailing separator is not doubled.

    Example:
        >>> relative_key("", "a.zip")
        'a.zip'
        >>> relative_key("maps", "a.zip")
        'maps/a.zip'
        >>> relative_key("maps/", "a.zip")
        'maps/a.zip'
    """
    if not subdirectory:
        return filename
    prefix = normalize_subdirectory(subdirectory)
    return f"{prefix.rstrip('/')}/{filename}"


def resolve_content_type(file_path: Union[str, Path]) -> str:
    """
    Look up the content type for a file from its extension.

    Raises:
        UnsupportedContentTypeError: If the extension is not in CONTENT_TYPES
    """
    extension = Path(file_path).suffix.lower()
    try:
        return CONTENT_TYPES[extension]
    except KeyError:
        raise UnsupportedContentTypeError(str(file_path), extension) from None


@dataclass
class UploadCandidate:
    """
    A local file scheduled for upload.

    Attributes:
        file_path: Local path of the file
        content_hash: SHA-1 hex digest of the file bytes
        public_url: URL the object is (or will be) downloadable from
        already_uploaded: True when an identical object exists at the same key
        upload_result: Provider record after a successful upload
    """

    file_path: Path
    content_hash: str
    _relative_key: str = field(repr=False)
    public_url: str = ""
    already_uploaded: bool = False
    upload_result: Optional[UploadFileResponse] = None

    @property
    def relative_key(self) -> str:
        return self._relative_key

    @property
    def accounted_for(self) -> bool:
        """True once the file exists remotely, by dedup or by upload."""
        return self.already_uploaded or self.upload_result is not None

    @property
    def size_bytes(self) -> int:
        return self.file_path.stat().st_size

    def __repr__(self) -> str:
        return (
            f"UploadCandidate(file_path={str(self.file_path)!r}, key={self._relative_key!r}, "
            f"already_uploaded={self.already_uploaded}, uploaded={self.upload_result is not None})"
        )


def validate_input_paths(file_paths: Sequence[Union[str, Path]]) -> List[Path]:
    """
    Check every input path before any network activity.

    Raises:
        InvalidInputError: If a path does not exist or is not a regular file
    """
    paths = []
    for file_path in file_paths:
        path = Path(file_path)
        if not path.exists():
            raise InvalidInputError(f"File does not exist: {file_path}")
        if not path.is_file():
            raise InvalidInputError(f"Cannot upload a folder: {file_path}")
        paths.append(path)
    return paths


def _hash_or_reject(path: Path) -> str:
    try:
        return compute_content_hash(path)
    except OSError as e:
        raise InvalidInputError(f"Cannot read file: {path} ({e})") from e


def collect_candidates(
    subdirectory: str, file_paths: Sequence[Union[str, Path]]
) -> List[UploadCandidate]:
    """
    Create one candidate per input file, in input order.

    Args:
        subdirectory: Object key prefix ("" for the bucket root)
        file_paths: Local files to upload

    Returns:
        Candidates with hash and key computed
    """
    candidates = []
    for path in validate_input_paths(file_paths):
        candidate = UploadCandidate(
            file_path=path,
            content_hash=_hash_or_reject(path),
            _relative_key=relative_key(subdirectory, path.name),
        )
        logger.debug(f"Candidate {candidate.relative_key} sha1={candidate.content_hash}")
        candidates.append(candidate)
    return candidates
