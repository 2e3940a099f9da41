"""
Transition policy of the upload state machine.

`next_transition(state, envelope)` is a pure function: given the state whose
step just ran and the error envelope it produced (None on success), it says
which state comes next and what the orchestrator must do on the way there.
No I/O happens here, so the whole policy can be checked against synthetic
envelopes.

    GET_AUTH -> LIST_EXISTING -> CHECK_DEDUP -> GET_UPLOAD_URL -> UPLOAD_ALL -> DONE
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from artifact_uploader.storage.errors import ErrorEnvelope, ErrorKind


class UploadState(str, Enum):
    """States of one upload run."""

    GET_AUTH = "GET_AUTH"
    LIST_EXISTING = "LIST_EXISTING"
    CHECK_DEDUP = "CHECK_DEDUP"
    GET_UPLOAD_URL = "GET_UPLOAD_URL"
    UPLOAD_ALL = "UPLOAD_ALL"
    DONE = "DONE"
    FAILED = "FAILED"


class Action(str, Enum):
    """
    What the orchestrator does with a transition.

    Values:
        ADVANCE: Step succeeded, move on
        RETRY: Recoverable error, consume one attempt and go to next_state
        ABORT: Unrecoverable error, end the run with message
        INTERNAL_FAULT: Impossible status/kind, end the run as an internal error
    """

    ADVANCE = "advance"
    RETRY = "retry"
    ABORT = "abort"
    INTERNAL_FAULT = "internal_fault"


@dataclass(frozen=True)
class Transition:
    """
    Outcome of the policy for one step.

    Attributes:
        action: What to do
        next_state: State to enter (FAILED for ABORT / INTERNAL_FAULT)
        backoff: Whether to sleep one backoff period first
        invalidate_session: Whether the auth session is stale
        discard_lease: Whether the upload URL lease is stale
        message: Terminal message for ABORT
    """

    action: Action
    next_state: UploadState
    backoff: bool = False
    invalidate_session: bool = False
    discard_lease: bool = False
    message: str = ""


_SUCCESSOR: Dict[UploadState, UploadState] = {
    UploadState.GET_AUTH: UploadState.LIST_EXISTING,
    UploadState.LIST_EXISTING: UploadState.CHECK_DEDUP,
    UploadState.CHECK_DEDUP: UploadState.GET_UPLOAD_URL,
    UploadState.GET_UPLOAD_URL: UploadState.UPLOAD_ALL,
    UploadState.UPLOAD_ALL: UploadState.DONE,
}


def _retry(
    state: UploadState,
    backoff: bool = False,
    invalidate_session: bool = False,
    discard_lease: bool = False,
) -> Transition:
    return Transition(
        action=Action.RETRY,
        next_state=state,
        backoff=backoff,
        invalidate_session=invalidate_session,
        discard_lease=discard_lease,
    )


def _reauthorize() -> Transition:
    return _retry(UploadState.GET_AUTH, invalidate_session=True, discard_lease=True)


def _abort(message: str) -> Transition:
    return Transition(action=Action.ABORT, next_state=UploadState.FAILED, message=message)


_INTERNAL_FAULT = Transition(action=Action.INTERNAL_FAULT, next_state=UploadState.FAILED)


def next_transition(state: UploadState, envelope: Optional[ErrorEnvelope] = None) -> Transition:
    """
    Decide the next step of the state machine.

    Args:
        state: State whose step just ran
        envelope: Error from that step, None if it succeeded

    Returns:
        Transition to apply

    Raises:
        ValueError: If state is terminal
    """
    if state in (UploadState.DONE, UploadState.FAILED):
        raise ValueError(f"No transition out of terminal state {state.value}")

    if envelope is None:
        return Transition(action=Action.ADVANCE, next_state=_SUCCESSOR[state])

    if state is UploadState.GET_AUTH:
        return _from_get_auth(envelope)
    if state is UploadState.LIST_EXISTING:
        return _from_list_existing(envelope)
    if state is UploadState.GET_UPLOAD_URL:
        return _from_get_upload_url(envelope)
    if state is UploadState.UPLOAD_ALL:
        return _from_upload_all(envelope)

    # CHECK_DEDUP is local and best-effort: it never yields an envelope
    return _INTERNAL_FAULT


def _from_get_auth(envelope: ErrorEnvelope) -> Transition:
    if envelope.is_transport:
        return _retry(UploadState.GET_AUTH)
    if envelope.kind is ErrorKind.KEYS_NOT_PRESENT:
        return _abort(f"Failed to authenticate: credentials not present ({envelope.message})")
    if envelope.status == 503:
        return _retry(UploadState.GET_AUTH, backoff=True)
    if envelope.status in (400, 401, 403):
        return _abort(f"Failed to authenticate: authorization denied ({envelope})")
    return _INTERNAL_FAULT


def _from_list_existing(envelope: ErrorEnvelope) -> Transition:
    if envelope.is_transport:
        return _retry(UploadState.LIST_EXISTING)
    if envelope.status == 400:
        return _abort(f"Unrecoverable error listing existing objects ({envelope})")
    if envelope.status == 401:
        return _reauthorize()
    if envelope.status == 503:
        return _retry(UploadState.LIST_EXISTING, backoff=True)
    return _INTERNAL_FAULT


def _from_get_upload_url(envelope: ErrorEnvelope) -> Transition:
    if envelope.is_transport:
        return _retry(UploadState.GET_UPLOAD_URL)
    if envelope.status == 400:
        return _abort(f"Unrecoverable error requesting an upload URL ({envelope})")
    if envelope.status == 401:
        return _reauthorize()
    if envelope.status == 503:
        return _retry(
            UploadState.GET_AUTH, backoff=True, invalidate_session=True, discard_lease=True
        )
    return _INTERNAL_FAULT


def _from_upload_all(envelope: ErrorEnvelope) -> Transition:
    if envelope.is_transport:
        # Refresh the listing so anything that landed before the failure is deduplicated
        return _retry(UploadState.LIST_EXISTING, discard_lease=True)
    if envelope.status == 400:
        return _abort(f"Unrecoverable uploading error ({envelope})")
    if envelope.status == 401:
        if envelope.kind is ErrorKind.UNAUTHORIZED:
            return _abort("API key does not allow uploading files")
        if envelope.kind in (ErrorKind.BAD_AUTH_TOKEN, ErrorKind.EXPIRED_AUTH_TOKEN):
            return _retry(UploadState.GET_UPLOAD_URL, discard_lease=True)
        return _INTERNAL_FAULT
    if envelope.status == 403:
        return _abort("Usage cap exceeded, cannot upload")
    if envelope.status == 408:
        return _retry(UploadState.UPLOAD_ALL, backoff=True)
    if envelope.status == 503:
        return _retry(UploadState.GET_UPLOAD_URL, discard_lease=True)
    return _INTERNAL_FAULT
