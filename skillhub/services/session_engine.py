# skillhub/services/session_engine.py
"""
Session negotiation state machine.

Pure decision logic for the bilateral skill-exchange lifecycle. Nothing in
this module touches the database: every function takes a snapshot of the
current state plus the acting user and returns a ``Transition`` describing
the field updates to apply (and the preconditions those updates are
conditional on), or raises a ``SessionFlowError`` subclass.

Session status graph:

    pending ──accept──► active ──completion approved──► completed
       │                   │
       └──reject──► rejected └──cancellation agreed/finalized──► canceled

rejected, completed and canceled are terminal.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Type

from skillhub.models.session import (
    CancellationResolution,
    CancellationResponse,
    CompletionStatus,
    CounterOfferStatus,
    SessionStatus,
)
from skillhub.services.errors import (
    ActionNotAllowedError,
    DuplicateRequestError,
    InvalidRequestError,
    InvalidStateError,
    NotParticipantError,
    RecordNotFoundError,
)

ALLOWED_STATUS_TRANSITIONS = {
    SessionStatus.PENDING: {SessionStatus.ACTIVE, SessionStatus.REJECTED},
    SessionStatus.ACTIVE: {SessionStatus.COMPLETED, SessionStatus.CANCELED},
    SessionStatus.COMPLETED: set(),
    SessionStatus.CANCELED: set(),
    SessionStatus.REJECTED: set(),
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in ALLOWED_STATUS_TRANSITIONS.items() if not targets
)

DEFAULT_COMPLETION_REJECTION_REASON = "Completion request rejected"


class SessionAction(str, enum.Enum):
    ACCEPT = "accept"
    REJECT = "reject"


class CompletionAction(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


class CancellationAction(str, enum.Enum):
    AGREE = "agree"
    DISPUTE = "dispute"
    FINALIZE = "finalize"


def parse_action(action_cls: Type[enum.Enum], raw: Optional[str]):
    """Coerce a client supplied action string into ``action_cls``."""
    try:
        return action_cls((raw or "").strip().lower())
    except ValueError:
        allowed = ", ".join(member.value for member in action_cls)
        raise InvalidRequestError(f"Action must be one of: {allowed}")


@dataclass(frozen=True)
class SessionSnapshot:
    """The fields of a session every decision depends on."""
    id: int
    user_a_id: int
    user_b_id: int
    status: str
    is_accepted: Optional[bool]

    @classmethod
    def of(cls, session) -> "SessionSnapshot":
        return cls(
            id=session.id,
            user_a_id=session.user_a_id,
            user_b_id=session.user_b_id,
            status=session.status,
            is_accepted=session.is_accepted,
        )

    def is_participant(self, user_id: int) -> bool:
        return user_id in (self.user_a_id, self.user_b_id)

    def other_party(self, user_id: int) -> int:
        return self.user_b_id if self.user_a_id == user_id else self.user_a_id

    @property
    def is_undecided(self) -> bool:
        return self.status == SessionStatus.PENDING and self.is_accepted is None


@dataclass(frozen=True)
class SessionEvent:
    """A notification the caller should dispatch once the transition commits."""
    recipient_id: int
    event_type: str
    extra: Optional[str] = None


@dataclass
class Transition:
    """
    Field updates produced by a decision.

    ``session_expected`` / ``record_expected`` are the column values the
    persistence layer must still observe for the update to apply.
    """
    message: str
    session_updates: Dict[str, Any] = field(default_factory=dict)
    session_expected: Dict[str, Any] = field(default_factory=dict)
    record_updates: Dict[str, Any] = field(default_factory=dict)
    record_expected: Dict[str, Any] = field(default_factory=dict)
    events: List[SessionEvent] = field(default_factory=list)

    @property
    def new_status(self) -> Optional[str]:
        return self.session_updates.get("status")


def assert_status_transition(current: str, target: str) -> None:
    """Raise ``InvalidStateError`` unless ``current -> target`` is an edge of the graph."""
    try:
        allowed = ALLOWED_STATUS_TRANSITIONS[SessionStatus(current)]
    except ValueError:
        raise InvalidStateError(f"Unknown session status '{current}'")
    if SessionStatus(target) not in allowed:
        raise InvalidStateError(f"Session cannot move from {current} to {target}")


def _status_change(snapshot: SessionSnapshot, target: SessionStatus, **extra) -> Dict[str, Any]:
    assert_status_transition(snapshot.status, target.value)
    return {"status": target.value, **extra}


def _require_participant(snapshot: SessionSnapshot, actor_id: int) -> None:
    if not snapshot.is_participant(actor_id):
        raise NotParticipantError("User is not part of this session")


def _require_active(snapshot: SessionSnapshot, what: str) -> None:
    if snapshot.status != SessionStatus.ACTIVE:
        raise InvalidStateError(f"Session must be active to {what}")


# ======================
# CREATE / DELETE
# ======================
def check_new_session(
    proposer_id: int,
    counterpart_id: int,
    *,
    outgoing_pending: int,
    limit: int,
) -> None:
    if proposer_id == counterpart_id:
        raise InvalidRequestError("Cannot create session with yourself")
    if outgoing_pending >= limit:
        raise DuplicateRequestError(
            f"You cannot have more than {limit} pending session requests at a time"
        )


def check_deletion(snapshot: SessionSnapshot, actor_id: int) -> None:
    _require_participant(snapshot, actor_id)
    if actor_id != snapshot.user_a_id:
        raise ActionNotAllowedError("Only the user who proposed the session can delete it")
    if not snapshot.is_undecided:
        raise InvalidStateError("Only pending session requests can be deleted")


# ======================
# ACCEPT / REJECT
# ======================
def _decision_updates(snapshot: SessionSnapshot, accepted: bool) -> Dict[str, Any]:
    if accepted:
        return _status_change(snapshot, SessionStatus.ACTIVE, is_accepted=True)
    return _status_change(snapshot, SessionStatus.REJECTED, is_accepted=False)


def session_transition(snapshot: SessionSnapshot, action: SessionAction, actor_id: int) -> Transition:
    """Direct accept/reject of a pending proposal by the counterpart."""
    _require_participant(snapshot, actor_id)
    if actor_id == snapshot.user_a_id:
        raise ActionNotAllowedError("You cannot respond to a session you proposed")
    if snapshot.is_accepted is not None:
        decided = "accepted" if snapshot.is_accepted else "rejected"
        raise InvalidStateError(f"Session is already {decided}")
    if snapshot.status != SessionStatus.PENDING:
        raise InvalidStateError(f"Session is already {snapshot.status}")

    accepted = action == SessionAction.ACCEPT
    return Transition(
        message="Session accepted successfully" if accepted else "Session rejected",
        session_updates=_decision_updates(snapshot, accepted),
        session_expected={"status": SessionStatus.PENDING.value, "is_accepted": None},
        events=[
            SessionEvent(
                recipient_id=snapshot.user_a_id,
                event_type="session_accepted" if accepted else "session_rejected",
            )
        ],
    )


# ======================
# COUNTER-OFFERS
# ======================
def check_counter_offer(snapshot: SessionSnapshot, actor_id: int, *, has_pending_offer: bool) -> None:
    _require_participant(snapshot, actor_id)
    if not snapshot.is_undecided:
        raise InvalidStateError(
            "Cannot create counter offer for a session that has already been responded to"
        )
    if has_pending_offer:
        raise DuplicateRequestError("There is already a pending counter offer for this session")


def counter_offer_transition(
    snapshot: SessionSnapshot,
    *,
    offered_by_id: int,
    offer_status: str,
    action: SessionAction,
    actor_id: int,
    now: datetime,
    terms: Optional[Dict[str, Any]] = None,
) -> Transition:
    """
    Accept or reject a counter-offer.

    Accepting moves the parent session exactly like a direct accept and copies
    ``terms`` onto it. Rejecting closes only the counter-offer; the parent
    stays pending and open to another offer or a direct decision.
    """
    _require_participant(snapshot, actor_id)
    if actor_id == offered_by_id:
        raise ActionNotAllowedError("You cannot respond to your own counter offer")
    if offer_status != CounterOfferStatus.PENDING:
        raise InvalidStateError(f"Counter offer is already {offer_status}")
    if not snapshot.is_undecided:
        raise InvalidStateError(f"Session is already {snapshot.status}")

    record_expected = {"status": CounterOfferStatus.PENDING.value}
    if action == SessionAction.REJECT:
        return Transition(
            message="Counter offer rejected",
            record_updates={"status": CounterOfferStatus.REJECTED.value, "responded_at": now},
            record_expected=record_expected,
            events=[SessionEvent(recipient_id=offered_by_id, event_type="counter_offer_rejected")],
        )

    updates = _decision_updates(snapshot, True)
    updates.update(terms or {})
    return Transition(
        message="Counter offer accepted successfully",
        session_updates=updates,
        session_expected={"status": SessionStatus.PENDING.value, "is_accepted": None},
        record_updates={"status": CounterOfferStatus.ACCEPTED.value, "responded_at": now},
        record_expected=record_expected,
        events=[SessionEvent(recipient_id=offered_by_id, event_type="counter_offer_accepted")],
    )


# ======================
# COMPLETION HANDSHAKE
# ======================
def check_completion_request(snapshot: SessionSnapshot, actor_id: int, *, has_pending_from_actor: bool) -> None:
    _require_participant(snapshot, actor_id)
    _require_active(snapshot, "request completion")
    if has_pending_from_actor:
        raise DuplicateRequestError("You already have a pending completion request for this session")


def completion_transition(
    snapshot: SessionSnapshot,
    *,
    action: CompletionAction,
    actor_id: int,
    has_pending_from_other: bool,
    now: datetime,
    rejection_reason: Optional[str] = None,
) -> Transition:
    """Approve or reject the other participant's pending completion request(s)."""
    _require_participant(snapshot, actor_id)
    requester_id = snapshot.other_party(actor_id)
    if not has_pending_from_other:
        raise RecordNotFoundError("No pending completion requests found")
    _require_active(snapshot, "respond to a completion request")

    record_expected = {"status": CompletionStatus.PENDING.value, "requested_by_id": requester_id}
    if action == CompletionAction.APPROVE:
        return Transition(
            message="Session completed successfully",
            session_updates=_status_change(snapshot, SessionStatus.COMPLETED),
            session_expected={"status": SessionStatus.ACTIVE.value},
            record_updates={
                "status": CompletionStatus.APPROVED.value,
                "approved_by_id": actor_id,
                "approved_at": now,
            },
            record_expected=record_expected,
            events=[SessionEvent(recipient_id=requester_id, event_type="completion_approved")],
        )

    reason = (rejection_reason or "").strip() or DEFAULT_COMPLETION_REJECTION_REASON
    return Transition(
        message="Session completion request rejected",
        # Status stays active; only the request rows change.
        session_expected={"status": SessionStatus.ACTIVE.value},
        record_updates={
            "status": CompletionStatus.REJECTED.value,
            "rejected_by_id": actor_id,
            "rejected_at": now,
            "rejection_reason": reason,
        },
        record_expected=record_expected,
        events=[SessionEvent(recipient_id=requester_id, event_type="completion_rejected", extra=reason)],
    )


# ======================
# CANCELLATION HANDSHAKE
# ======================
def check_cancellation_request(
    snapshot: SessionSnapshot,
    actor_id: int,
    *,
    has_pending_request: bool,
    reason: Optional[str],
    description: Optional[str],
) -> None:
    if not (reason or "").strip() or not (description or "").strip():
        raise InvalidRequestError("Reason and description are required")
    _require_participant(snapshot, actor_id)
    _require_active(snapshot, "request cancellation")
    if has_pending_request:
        raise DuplicateRequestError("There is already a pending cancellation request for this session")


def cancellation_transition(
    snapshot: SessionSnapshot,
    *,
    initiator_id: int,
    response_status: str,
    resolution: str,
    action: CancellationAction,
    actor_id: int,
    now: datetime,
    response_description: Optional[str] = None,
    response_evidence_files: Optional[List[str]] = None,
    work_completion_percentage: Optional[int] = None,
    final_note: Optional[str] = None,
) -> Transition:
    """
    Respond to (agree/dispute) or finalize a pending cancellation request.

    The responder is always derived from the request's initiator, never from
    who acted last.
    """
    _require_participant(snapshot, actor_id)
    if resolution != CancellationResolution.PENDING:
        raise RecordNotFoundError("No pending cancellation request found")

    responder_id = snapshot.other_party(initiator_id)
    record_expected = {
        "resolution": CancellationResolution.PENDING.value,
        "response_status": response_status,
    }

    if action == CancellationAction.FINALIZE:
        if actor_id != initiator_id:
            raise ActionNotAllowedError("Only the initiator can finalize the cancellation")
        if response_status != CancellationResponse.DISPUTED:
            raise InvalidStateError("A cancellation can only be finalized after it has been disputed")
        _require_active(snapshot, "finalize a cancellation")
        return Transition(
            message="Cancellation request finalized successfully",
            session_updates=_status_change(snapshot, SessionStatus.CANCELED),
            session_expected={"status": SessionStatus.ACTIVE.value},
            record_updates={
                "final_note": final_note,
                "resolution": CancellationResolution.CANCELED.value,
                "resolved_date": now,
            },
            record_expected=record_expected,
            events=[SessionEvent(recipient_id=responder_id, event_type="cancellation_finalized")],
        )

    if actor_id != responder_id:
        raise ActionNotAllowedError("User is not authorized to respond to this cancellation request")
    if work_completion_percentage is not None and not 0 <= work_completion_percentage <= 100:
        raise InvalidRequestError("work_completion_percentage must be between 0 and 100")

    response_fields = {
        "response_date": now,
        "response_description": response_description,
        "response_evidence_files": list(response_evidence_files or []),
        "work_completion_percentage": work_completion_percentage,
    }

    if action == CancellationAction.DISPUTE:
        if response_status != CancellationResponse.PENDING:
            raise InvalidStateError(f"Cancellation request is already {response_status}")
        _require_active(snapshot, "dispute a cancellation")
        return Transition(
            message="Cancellation request disputed successfully",
            session_expected={"status": SessionStatus.ACTIVE.value},
            record_updates={"response_status": CancellationResponse.DISPUTED.value, **response_fields},
            record_expected=record_expected,
            events=[SessionEvent(recipient_id=initiator_id, event_type="cancellation_disputed")],
        )

    # agree: allowed straight away or after the responder first disputed
    _require_active(snapshot, "agree to a cancellation")
    return Transition(
        message="Cancellation request accepted successfully",
        session_updates=_status_change(snapshot, SessionStatus.CANCELED),
        session_expected={"status": SessionStatus.ACTIVE.value},
        record_updates={
            "response_status": CancellationResponse.AGREED.value,
            "resolution": CancellationResolution.CANCELED.value,
            "resolved_date": now,
            **response_fields,
        },
        record_expected=record_expected,
        events=[SessionEvent(recipient_id=initiator_id, event_type="cancellation_agreed")],
    )


# ======================
# DERIVED SUMMARY
# ======================
@dataclass(frozen=True)
class CompletionSummary:
    requested_by: Optional[int] = None
    requested_at: Optional[datetime] = None
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[int] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None


def summarize_completion(requests) -> CompletionSummary:
    """
    Derive the session-level completion fields from its CompletionRequest rows.

    Approval hides any earlier rejection and keeps its request as the
    requested one. A newer pending request hides the rejection it follows.
    """
    newest = {}
    for request in sorted(requests, key=lambda r: r.id):
        newest[request.status] = request

    pending = newest.get(CompletionStatus.PENDING.value)
    approved = newest.get(CompletionStatus.APPROVED.value)
    rejected = newest.get(CompletionStatus.REJECTED.value)
    # the approved request stays the one that was requested
    requested = approved or pending
    if approved is not None or (rejected is not None and pending is not None and pending.id > rejected.id):
        rejected = None

    return CompletionSummary(
        requested_by=requested.requested_by_id if requested else None,
        requested_at=requested.created_at if requested else None,
        approved_by=approved.approved_by_id if approved else None,
        approved_at=approved.approved_at if approved else None,
        rejected_by=rejected.rejected_by_id if rejected else None,
        rejected_at=rejected.rejected_at if rejected else None,
        rejection_reason=rejected.rejection_reason if rejected else None,
    )
