"""
Content-hash deduplication against existing remote objects.

A candidate counts as already uploaded only when its public URL answers and
the listing records the same content hash for its key. A reachable object
with a different hash is overwritten by the upload.
"""

from typing import Dict, List, Optional, Sequence

from artifact_uploader.storage.client import StorageClient
from artifact_uploader.storage.models import AuthSession, ListingEntry
from artifact_uploader.uploader.candidates import UploadCandidate
from artifact_uploader.utils.logging import get_logger
from artifact_uploader.utils.metrics import UploaderMetrics, get_metrics

logger = get_logger(__name__)


class DedupChecker:
    """Marks candidates whose exact content already exists remotely."""

    def __init__(self, client: StorageClient, metrics: Optional[UploaderMetrics] = None) -> None:
        self.client = client
        self.metrics = metrics if metrics is not None else get_metrics()

    def check(
        self,
        session: AuthSession,
        candidates: List[UploadCandidate],
        listing: Sequence[ListingEntry],
    ) -> int:
        """
        Resolve public URLs and flag duplicates in place.

        Never raises for probe failures; an unreachable URL just leaves the
        candidate pending. Candidates already uploaded during this run are
        left alone.

        Returns:
            Number of candidates marked already uploaded by this pass
        """
        known_hashes: Dict[str, str] = {entry.file_name: entry.content_hash for entry in listing}
        skipped = 0

        for candidate in candidates:
            candidate.public_url = session.public_url(candidate.relative_key)
            if candidate.accounted_for:
                continue

            remote_hash = known_hashes.get(candidate.relative_key)
            if remote_hash is None:
                continue

            if not self.client.probe(candidate.public_url):
                logger.debug(f"{candidate.public_url} not reachable, will upload")
                continue

            if remote_hash == candidate.content_hash:
                candidate.already_uploaded = True
                skipped += 1
                self.metrics.record_dedup_skip()
                logger.info(f"Skipping {candidate.relative_key}: identical object already uploaded")
            else:
                logger.info(
                    f"{candidate.relative_key} exists with a different hash, it will be overwritten"
                )

        return skipped
