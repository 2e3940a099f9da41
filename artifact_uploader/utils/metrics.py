"""
Prometheus metrics for upload runs.

Metrics Provided:
    - uploader_runs_total: Counter of finished runs by outcome
    - uploader_upload_requests_total: Counter of file uploads by status
    - uploader_upload_bytes_total: Counter of uploaded bytes
    - uploader_upload_duration_seconds: Histogram of single-file upload latency
    - uploader_dedup_skipped_total: Counter of files skipped by dedup
    - uploader_provider_errors_total: Counter of provider error envelopes
    - uploader_state_transitions_total: Counter of state machine states entered

Usage:
    from artifact_uploader.utils.metrics import get_metrics

    metrics = get_metrics()
    with metrics.track_upload():
        executor.upload(lease, candidate)
    metrics.record_upload_success(bytes_uploaded=1024)

    # Start metrics server:
    python -m artifact_uploader.utils.metrics --port 9090
"""

import os
from contextlib import nullcontext
from typing import Any, Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    start_http_server,
)

from artifact_uploader.utils.logging import get_logger

# Module-level logger
logger = get_logger(__name__)


class UploaderMetrics:
    """
    Prometheus collectors for the uploader.

    Example:
        >>> from prometheus_client import CollectorRegistry
        >>> metrics = UploaderMetrics(registry=CollectorRegistry())
        >>> metrics.record_dedup_skip()
    """

    def __init__(self, enabled: bool = True, registry: Optional[CollectorRegistry] = None) -> None:
        """
        Initialize metrics collectors.

        Args:
            enabled: Whether metrics collection is enabled
            registry: Custom Prometheus registry (uses default if None)
        """
        self.enabled = enabled
        self.registry = registry if registry is not None else REGISTRY

        if not self.enabled:
            logger.debug("Metrics collection disabled")
            return

        self.runs = Counter(
            name="uploader_runs_total",
            documentation="Finished upload runs",
            labelnames=["outcome"],  # success, failed, internal_error
            registry=self.registry,
        )

        self.upload_requests = Counter(
            name="uploader_upload_requests_total",
            documentation="Single-file upload requests",
            labelnames=["status"],  # success, failure
            registry=self.registry,
        )

        self.upload_bytes = Counter(
            name="uploader_upload_bytes_total",
            documentation="Total bytes uploaded",
            registry=self.registry,
        )

        self.upload_duration = Histogram(
            name="uploader_upload_duration_seconds",
            documentation="Time spent uploading one file",
            buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
            registry=self.registry,
        )

        self.dedup_skipped = Counter(
            name="uploader_dedup_skipped_total",
            documentation="Files skipped because an identical object already exists",
            registry=self.registry,
        )

        self.provider_errors = Counter(
            name="uploader_provider_errors_total",
            documentation="Error envelopes returned by the provider",
            labelnames=["operation", "status"],
            registry=self.registry,
        )

        self.state_transitions = Counter(
            name="uploader_state_transitions_total",
            documentation="Upload state machine states entered",
            labelnames=["state"],
            registry=self.registry,
        )

    def track_upload(self) -> Any:
        """Context manager timing one file upload."""
        if not self.enabled:
            return nullcontext()
        return self.upload_duration.time()

    def record_run(self, outcome: str) -> None:
        if not self.enabled:
            return
        self.runs.labels(outcome=outcome).inc()

    def record_upload_success(self, bytes_uploaded: int) -> None:
        if not self.enabled:
            return
        self.upload_requests.labels(status="success").inc()
        self.upload_bytes.inc(bytes_uploaded)

    def record_upload_failure(self) -> None:
        if not self.enabled:
            return
        self.upload_requests.labels(status="failure").inc()

    def record_dedup_skip(self) -> None:
        if not self.enabled:
            return
        self.dedup_skipped.inc()

    def record_provider_error(self, operation: str, status: int) -> None:
        """
        Record a provider error envelope.

        Args:
            operation: Provider call (authorize, list_file_names, get_upload_url, upload_file)
            status: HTTP status, 0 for transport failures
        """
        if not self.enabled:
            return
        self.provider_errors.labels(operation=operation, status=str(status)).inc()

    def record_state(self, state: str) -> None:
        if not self.enabled:
            return
        self.state_transitions.labels(state=state).inc()


# ============================================================================
# Global Metrics Instance
# ============================================================================

_metrics_instance: Optional[UploaderMetrics] = None


def get_metrics() -> UploaderMetrics:
    """
    Get global metrics instance (singleton).

    Collection can be switched off with METRICS_ENABLED=false.

    Returns:
        Global UploaderMetrics instance
    """
    global _metrics_instance

    if _metrics_instance is None:
        enabled = os.getenv("METRICS_ENABLED", "true").lower() == "true"
        _metrics_instance = UploaderMetrics(enabled=enabled)

    return _metrics_instance


def start_metrics_server(port: int = 9090, addr: str = "0.0.0.0") -> None:
    """
    Start Prometheus metrics HTTP server in a daemon thread.

    Args:
        port: Port to listen on (default: 9090)
        addr: Address to bind to (default: 0.0.0.0 - all interfaces)
    """
    logger.info(f"Starting Prometheus metrics server on {addr}:{port}")
    start_http_server(port=port, addr=addr)
    logger.info(f"Metrics server running at http://{addr}:{port}/metrics")


if __name__ == "__main__":
    import argparse
    import signal

    parser = argparse.ArgumentParser(description="artifact-uploader metrics server")
    parser.add_argument("--port", type=int, default=9090, help="Metrics server port (default: 9090)")
    parser.add_argument(
        "--addr", type=str, default="0.0.0.0", help="Address to bind to (default: 0.0.0.0)"
    )
    args = parser.parse_args()

    get_metrics()
    start_metrics_server(port=args.port, addr=args.addr)
    signal.pause()
