"""
Upload engine.

Turns local files into candidates, deduplicates them against existing remote
objects by content hash, and drives the bounded-retry state machine that
uploads whatever is left.
"""

from .candidates import (
    CONTENT_TYPES,
    UploadCandidate,
    collect_candidates,
    compute_content_hash,
    normalize_subdirectory,
    relative_key,
    resolve_content_type,
)
from .dedup import DedupChecker
from .executor import UploadExecutor
from .orchestrator import UploadOrchestrator, UploadOutcome, upload_files
from .transitions import Action, Transition, UploadState, next_transition

__all__ = [
    "CONTENT_TYPES",
    "UploadCandidate",
    "collect_candidates",
    "compute_content_hash",
    "normalize_subdirectory",
    "relative_key",
    "resolve_content_type",
    "DedupChecker",
    "UploadExecutor",
    "UploadOrchestrator",
    "UploadOutcome",
    "upload_files",
    "Action",
    "Transition",
    "UploadState",
    "next_transition",
]
