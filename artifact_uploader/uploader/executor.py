"""
Single-file upload to a leased endpoint.
"""

from typing import Optional

from artifact_uploader.storage.client import StorageClient
from artifact_uploader.storage.errors import InvalidInputError, ProviderError
from artifact_uploader.storage.models import UploadFileResponse, UploadUrlLease
from artifact_uploader.uploader.candidates import UploadCandidate, resolve_content_type
from artifact_uploader.utils.logging import get_logger
from artifact_uploader.utils.metrics import UploaderMetrics, get_metrics

# Module logger
logger = get_logger(__name__)


class UploadExecutor:
    """
    Streams one candidate's bytes to the provider.

    The content type is resolved before the file is read, so an unsupported
    extension fails without a request being sent.
    """

    def __init__(self, client: StorageClient, metrics: Optional[UploaderMetrics] = None) -> None:
        self.client = client
        self.metrics = metrics if metrics is not None else get_metrics()

    def upload(self, lease: UploadUrlLease, candidate: UploadCandidate) -> UploadFileResponse:
        """
        Upload one file.

        Args:
            lease: Upload endpoint and token
            candidate: File to send

        Returns:
            Provider record of the stored object

        Raises:
            UnsupportedContentTypeError: If the extension has no content type
            InvalidInputError: If the file vanished or became unreadable
            ProviderError: If the provider rejects the upload or does not answer
        """
        content_type = resolve_content_type(candidate.file_path)
        try:
            data = candidate.file_path.read_bytes()
        except OSError as e:
            raise InvalidInputError(f"Cannot read file: {candidate.file_path} ({e})") from e

        logger.info(f"Uploading {candidate.file_path} -> {candidate.relative_key} ({len(data)} bytes)")

        try:
            with self.metrics.track_upload():
                result = self.client.upload_file(
                    lease,
                    relative_key=candidate.relative_key,
                    content_type=content_type,
                    content_hash=candidate.content_hash,
                    data=data,
                )
        except ProviderError:
            self.metrics.record_upload_failure()
            raise

        self.metrics.record_upload_success(bytes_uploaded=len(data))
        logger.info(f"Upload successful: {candidate.public_url or candidate.relative_key}")
        return result
