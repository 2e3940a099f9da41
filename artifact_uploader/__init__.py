"""
Artifact Uploader

Uploads pipeline output files (benchmark artifacts) to an object-storage
bucket and returns a public URL for each one. Files whose content already
exists at the same key are not transferred again, and transient auth and
service failures are retried within a fixed attempt budget.

Packages:
- storage: Provider REST client, wire records and error taxonomy
- uploader: Candidates, dedup, transition policy and orchestrator
- utils: Logging, configuration, credentials, retry budget and metrics
"""

__version__ = "0.1.0"

from artifact_uploader.uploader import UploadOutcome, upload_files

__all__ = ["UploadOutcome", "upload_files", "__version__"]
