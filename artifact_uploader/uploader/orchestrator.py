"""
Upload orchestrator: the bounded-retry state machine.

Sequences authorization, listing, dedup, upload URL acquisition and the
uploads themselves, applying the policy in transitions.py to every provider
error. One global attempt budget covers the whole run.

Example usage:
    >>> from artifact_uploader.uploader import upload_files
    >>> outcome = upload_files("benchmarks/", ["/tmp/out/run-1.zip", "/tmp/out/run-1.txt"])
    >>> if outcome.success:
    ...     for path, url in outcome.urls:
    ...         print(f"{path} -> {url}")
    ... else:
    ...     print(f"Upload failed: {outcome.error_message}")
"""

import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from artifact_uploader.storage.client import StorageClient
from artifact_uploader.storage.errors import (
    ErrorEnvelope,
    ErrorKind,
    InternalFaultError,
    ProviderError,
    RetryBudgetExhaustedError,
    UnrecoverableUploadError,
    UploaderError,
)
from artifact_uploader.storage.models import AuthSession, Credentials, ListingEntry, UploadUrlLease
from artifact_uploader.uploader.candidates import UploadCandidate, collect_candidates, normalize_subdirectory
from artifact_uploader.uploader.dedup import DedupChecker
from artifact_uploader.uploader.executor import UploadExecutor
from artifact_uploader.uploader.transitions import Action, UploadState, next_transition
from artifact_uploader.utils.config import UploaderConfig, get_config
from artifact_uploader.utils.credentials import CredentialProvider
from artifact_uploader.utils.logging import get_logger, log_function_call, set_correlation_id
from artifact_uploader.utils.metrics import UploaderMetrics, get_metrics
from artifact_uploader.utils.retry import BackoffPolicy, RetryBudget

# Module logger
logger = get_logger(__name__)


@dataclass
class UploadOutcome:
    """
    Result of an upload run.

    Attributes:
        success: Whether every file is available remotely
        urls: (local path, public URL) pairs in input order (empty on failure)
        error_message: Terminal error description (None if successful)
        error_type: Exception class name of the terminal error
        attempts: Recoverable errors consumed from the budget
        duration_seconds: Wall time of the run
    """

    success: bool
    urls: List[Tuple[str, str]] = field(default_factory=list)
    error_message: Optional[str] = None
    error_type: Optional[str] = None
    attempts: int = 0
    duration_seconds: float = 0.0

    def as_dict(self) -> Dict[str, str]:
        return dict(self.urls)


class UploadOrchestrator:
    """
    Runs one upload of a candidate set to completion or failure.

    The orchestrator exclusively owns the candidates, the auth session and the
    upload URL lease for the duration of run(); nothing is shared between
    instances.
    """

    def __init__(
        self,
        credentials: Credentials,
        subdirectory: str,
        candidates: List[UploadCandidate],
        client: StorageClient,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        sleeper: Callable[[float], None] = time.sleep,
        metrics: Optional[UploaderMetrics] = None,
    ) -> None:
        self.credentials = credentials
        self.subdirectory = subdirectory
        self.prefix = normalize_subdirectory(subdirectory)
        self.candidates = candidates
        self.client = client
        self.metrics = metrics if metrics is not None else get_metrics()
        self.budget = RetryBudget(max_attempts=max_attempts)
        self.backoff = BackoffPolicy(delay_seconds=backoff_seconds, sleeper=sleeper)
        self.dedup = DedupChecker(client, metrics=self.metrics)
        self.executor = UploadExecutor(client, metrics=self.metrics)

        self.state = UploadState.GET_AUTH
        self.session: Optional[AuthSession] = None
        self.lease: Optional[UploadUrlLease] = None
        self.listing: List[ListingEntry] = []
        self.last_envelope: Optional[ErrorEnvelope] = None

        self._steps: Dict[UploadState, Callable[[], None]] = {
            UploadState.GET_AUTH: self._get_auth,
            UploadState.LIST_EXISTING: self._list_existing,
            UploadState.CHECK_DEDUP: self._check_dedup,
            UploadState.GET_UPLOAD_URL: self._get_upload_url,
            UploadState.UPLOAD_ALL: self._upload_all,
        }

    @property
    def finished(self) -> bool:
        return all(candidate.accounted_for for candidate in self.candidates)

    def run(self) -> List[Tuple[Path, str]]:
        """
        Drive the state machine until every candidate is accounted for.

        Returns:
            (local path, public URL) for every candidate, in input order

        Raises:
            UnrecoverableUploadError: On a 400, denied auth, missing capability,
                exceeded usage cap or unsupported content type
            RetryBudgetExhaustedError: When the attempt budget runs out
            InternalFaultError: On a status/kind the policy treats as impossible
        """
        while True:
            if self.finished:
                self._enter(UploadState.DONE)
                return [(c.file_path, c.public_url) for c in self.candidates]

            if self.budget.exhausted:
                self._enter(UploadState.FAILED)
                error = RetryBudgetExhaustedError(self.budget.attempts, self.last_envelope)
                logger.error(str(error))
                raise error

            current = self.state
            envelope = None
            try:
                self._steps[current]()
            except ProviderError as e:
                envelope = e.envelope
                self.last_envelope = envelope
                self.metrics.record_provider_error(e.operation or current.value, envelope.status)
                logger.warning(f"Provider error in {current.value}: {envelope}")

            self._apply(current, envelope)

    def _apply(self, current: UploadState, envelope: Optional[ErrorEnvelope]) -> None:
        transition = next_transition(current, envelope)

        if transition.action is Action.ABORT:
            self._enter(UploadState.FAILED)
            logger.error(transition.message)
            raise UnrecoverableUploadError(transition.message, envelope)

        if transition.action is Action.INTERNAL_FAULT:
            self._enter(UploadState.FAILED)
            error = InternalFaultError(current.value, envelope)
            logger.error(str(error))
            raise error

        if transition.action is Action.RETRY:
            self.budget.consume(f"{envelope} in {current.value}")
            if transition.invalidate_session and self.session is not None:
                self.session.dirty = True
            if transition.discard_lease:
                self.lease = None
            if transition.backoff:
                self.backoff.sleep()

        self._enter(transition.next_state)

    def _enter(self, state: UploadState) -> None:
        if state is not self.state:
            logger.info(f"Upload state {self.state.value} -> {state.value}")
        self.state = state
        self.metrics.record_state(state.value)

    # ------------------------------------------------------------------
    # Steps (I/O only, no policy)
    # ------------------------------------------------------------------

    def _get_auth(self) -> None:
        self.session = self.client.authorize(self.credentials)

    def _list_existing(self) -> None:
        self.listing = self.client.list_file_names(self._require_session(), self.prefix)

    def _check_dedup(self) -> None:
        skipped = self.dedup.check(self._require_session(), self.candidates, self.listing)
        pending = sum(1 for c in self.candidates if not c.accounted_for)
        logger.info(f"{skipped} file(s) already uploaded, {pending} to upload")

    def _get_upload_url(self) -> None:
        self.lease = self.client.get_upload_url(self._require_session())

    def _upload_all(self) -> None:
        if self.lease is None:
            raise InternalFaultError(
                self.state.value,
                ErrorEnvelope(0, ErrorKind.UNKNOWN, "No upload URL lease held"),
            )
        for candidate in self.candidates:
            if candidate.accounted_for:
                continue
            candidate.upload_result = self.executor.upload(self.lease, candidate)

    def _require_session(self) -> AuthSession:
        if self.session is None or self.session.dirty:
            raise InternalFaultError(
                self.state.value,
                ErrorEnvelope(0, ErrorKind.UNKNOWN, "No valid auth session held"),
            )
        return self.session


@log_function_call
def upload_files(
    subdirectory: str,
    file_paths: Sequence[Union[str, Path]],
    credentials: Optional[Credentials] = None,
    config: Optional[UploaderConfig] = None,
    client: Optional[StorageClient] = None,
    sleeper: Callable[[float], None] = time.sleep,
    metrics: Optional[UploaderMetrics] = None,
) -> UploadOutcome:
    """
    Upload files under a subdirectory and return their public URLs.

    Input paths are checked before any network activity. Files whose exact
    content already exists at the same key are not uploaded again.

    Args:
        subdirectory: Object key prefix ("" for the bucket root)
        file_paths: Local files to upload
        credentials: Key pair (resolved by CredentialProvider if None)
        config: Uploader settings (loaded from the environment if None)
        client: Provider client (created from config if None)
        sleeper: Wait function used for backoff
        metrics: Metrics collectors (global instance if None)

    Returns:
        UploadOutcome with the path/URL pairs or the terminal error
    """
    start_time = time.time()
    set_correlation_id(f"upload-{uuid.uuid4().hex[:12]}")
    metrics = metrics if metrics is not None else get_metrics()

    orchestrator: Optional[UploadOrchestrator] = None
    owns_client = client is None
    try:
        config = config or get_config()
        candidates = collect_candidates(subdirectory, file_paths)
        if not candidates:
            return UploadOutcome(success=True, duration_seconds=time.time() - start_time)

        if credentials is None:
            credentials = CredentialProvider(config.config_file).get_credentials()

        if client is None:
            client = StorageClient(
                authorize_url=config.authorize_url,
                timeout=config.request_timeout_seconds,
                list_max_file_count=config.list_max_file_count,
            )

        orchestrator = UploadOrchestrator(
            credentials=credentials,
            subdirectory=subdirectory,
            candidates=candidates,
            client=client,
            max_attempts=config.max_attempts,
            backoff_seconds=config.backoff_seconds,
            sleeper=sleeper,
            metrics=metrics,
        )
        pairs = orchestrator.run()

    except UploaderError as e:
        outcome = "internal_error" if isinstance(e, InternalFaultError) else "failed"
        metrics.record_run(outcome)
        return UploadOutcome(
            success=False,
            error_message=str(e),
            error_type=type(e).__name__,
            attempts=orchestrator.budget.attempts if orchestrator else 0,
            duration_seconds=time.time() - start_time,
        )
    finally:
        if owns_client and client is not None:
            client.close()

    metrics.record_run("success")
    duration = time.time() - start_time
    logger.info(f"Upload run complete: {len(pairs)} file(s) available in {duration:.2f}s")
    return UploadOutcome(
        success=True,
        urls=[(str(path), url) for path, url in pairs],
        attempts=orchestrator.budget.attempts,
        duration_seconds=duration,
    )
