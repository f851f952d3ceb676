# skillhub/services/session_service.py
"""
Session Negotiation Service

Applies the decisions of ``session_engine`` to the database. Every
state-changing operation follows the same shape:

1. fresh read of the session (and the satellite request involved)
2. pure decision from ``session_engine`` (raises on bad actor / bad state)
3. conditional UPDATE ... WHERE <expected state>; zero matched rows means a
   concurrent request won and the whole unit of work is rolled back
4. commit, then best-effort notification and cache invalidation
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from skillhub import models
from skillhub.config import settings
from skillhub.models.skill import OFFERED_SKILL_TYPES
from skillhub.services import cache_service, notification_service
from skillhub.services import session_engine as engine
from skillhub.services.errors import (
    ConcurrentUpdateError,
    DuplicateRequestError,
    InvalidRequestError,
    InvalidStateError,
    NotParticipantError,
    RecordNotFoundError,
)

logger = logging.getLogger(__name__)

SessionStatus = models.SessionStatus


class SessionPolicy:
    """Negotiation policy configuration."""
    MAX_PENDING_OUTGOING = settings.MAX_PENDING_OUTGOING_SESSIONS
    DEFAULT_DURATION_DAYS = settings.DEFAULT_SESSION_DURATION_DAYS


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the TIMESTAMP columns."""
    return datetime.now(UTC).replace(tzinfo=None)


# =====================================
# READ HELPERS
# =====================================

def get_session(db: Session, session_id: int) -> models.Session:
    session = db.query(models.Session).filter(models.Session.id == session_id).first()
    if not session:
        raise RecordNotFoundError("Session not found")
    return session


def get_session_for_participant(db: Session, session_id: int, user_id: int) -> models.Session:
    session = get_session(db, session_id)
    if not session.is_participant(user_id):
        raise NotParticipantError("User is not part of this session")
    return session


def list_user_sessions(db: Session, user_id: int, status: Optional[str] = None) -> List[models.Session]:
    query = db.query(models.Session).filter(
        or_(models.Session.user_a_id == user_id, models.Session.user_b_id == user_id)
    )
    if status:
        query = query.filter(models.Session.status == status)
    return query.order_by(models.Session.created_at.desc(), models.Session.id.desc()).all()


def list_sessions_between(db: Session, user_id: int, other_user_id: int) -> List[models.Session]:
    return db.query(models.Session).filter(
        or_(
            and_(models.Session.user_a_id == user_id, models.Session.user_b_id == other_user_id),
            and_(models.Session.user_a_id == other_user_id, models.Session.user_b_id == user_id),
        )
    ).order_by(models.Session.created_at.desc(), models.Session.id.desc()).all()


def count_outgoing_pending(db: Session, user_id: int) -> int:
    return db.query(models.Session).filter(
        models.Session.user_a_id == user_id,
        models.Session.status == SessionStatus.PENDING.value,
        models.Session.is_accepted.is_(None),
    ).count()


def _has_pending(db: Session, model, *criteria, column: str = "status") -> bool:
    return db.query(model.id).filter(
        *criteria,
        getattr(model, column) == "pending",
    ).first() is not None


def _require_offered_skill(db: Session, user_id: int, skill_id: int, owner_label: str) -> None:
    offered = db.query(models.UserSkill.id).filter(
        models.UserSkill.user_id == user_id,
        models.UserSkill.skill_id == skill_id,
        models.UserSkill.skill_type.in_(OFFERED_SKILL_TYPES),
    ).first()
    if not offered:
        raise InvalidRequestError(f"Selected skill is not offered by the {owner_label}")


def _validate_terms(
    description_a: Optional[str],
    description_b: Optional[str],
    start_date: Optional[datetime],
    expected_end_date: Optional[datetime],
) -> None:
    if not (description_a or "").strip() or not (description_b or "").strip():
        raise InvalidRequestError("Both service descriptions are required")
    if start_date is None:
        raise InvalidRequestError("start_date is required")
    if expected_end_date is not None and expected_end_date <= start_date:
        raise InvalidRequestError("expected_end_date must be after start_date")


# =====================================
# WRITE HELPERS
# =====================================

def _update_where(db: Session, model, criteria: Iterable, expected: Dict[str, Any], updates: Dict[str, Any]) -> int:
    """Single conditional UPDATE; returns the number of rows that still matched."""
    query = db.query(model).filter(*criteria)
    for column, value in expected.items():
        attribute = getattr(model, column)
        query = query.filter(attribute.is_(None) if value is None else attribute == value)
    return query.update(updates, synchronize_session=False)


def _apply_transition(
    db: Session,
    session_id: int,
    transition: engine.Transition,
    *,
    record_model=None,
    record_criteria: Iterable = (),
) -> int:
    record_rows = 0
    if transition.record_updates:
        record_rows = _update_where(
            db, record_model, record_criteria, transition.record_expected, transition.record_updates
        )
        if record_rows == 0:
            db.rollback()
            raise ConcurrentUpdateError(
                "This request was already resolved by another action; reload and try again"
            )

    if transition.session_updates or transition.session_expected:
        rows = _update_where(
            db,
            models.Session,
            [models.Session.id == session_id],
            transition.session_expected,
            {**transition.session_updates, "updated_at": utcnow()},
        )
        if rows == 0:
            db.rollback()
            raise ConcurrentUpdateError("Session was updated by another request; reload and try again")
    return record_rows


def _flush_new(db: Session, record, duplicate_message: str) -> None:
    db.add(record)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise DuplicateRequestError(duplicate_message)


def _on_activated(
    db: Session,
    snapshot: engine.SessionSnapshot,
    start_date: datetime,
    expected_end_date: Optional[datetime],
) -> None:
    """Create both participants' progress rows and close leftover counter-offers."""
    due_date = expected_end_date or start_date + timedelta(days=SessionPolicy.DEFAULT_DURATION_DAYS)
    for user_id in (snapshot.user_a_id, snapshot.user_b_id):
        db.add(models.SessionProgress(
            session_id=snapshot.id,
            user_id=user_id,
            start_date=start_date,
            due_date=due_date,
            completion_percentage=0,
            status=models.ProgressStatus.NOT_STARTED.value,
            notes="",
        ))
    _supersede_counter_offers(db, snapshot.id)


def _supersede_counter_offers(db: Session, session_id: int) -> int:
    return _update_where(
        db,
        models.CounterOffer,
        [models.CounterOffer.session_id == session_id],
        {"status": models.CounterOfferStatus.PENDING.value},
        {"status": models.CounterOfferStatus.SUPERSEDED.value, "responded_at": utcnow()},
    )


def _supersede_completion_requests(db: Session, session_id: int) -> int:
    return _update_where(
        db,
        models.CompletionRequest,
        [models.CompletionRequest.session_id == session_id],
        {"status": models.CompletionStatus.PENDING.value},
        {"status": models.CompletionStatus.SUPERSEDED.value},
    )


def _commit_and_announce(
    db: Session,
    snapshot: engine.SessionSnapshot,
    actor: models.User,
    transition: engine.Transition,
) -> None:
    db.commit()
    if transition.new_status:
        logger.info(
            "Session %s: %s -> %s (actor=%s)",
            snapshot.id,
            snapshot.status,
            transition.new_status,
            actor.id,
        )
    else:
        logger.info("Session %s: %s (actor=%s)", snapshot.id, transition.message, actor.id)

    notification_service.notify_session_events(
        db, actor=actor, session_id=snapshot.id, events=transition.events
    )
    cache_service.invalidate_users_caches(snapshot.user_a_id, snapshot.user_b_id)


# =====================================
# CREATE / RESPOND / DELETE
# =====================================

def create_session(
    db: Session,
    proposer: models.User,
    *,
    counterpart_id: int,
    skill_a_id: int,
    description_a: str,
    skill_b_id: int,
    description_b: str,
    start_date: datetime,
    expected_end_date: Optional[datetime] = None,
) -> models.Session:
    """Propose a skill exchange from ``proposer`` (user A) to ``counterpart_id`` (user B)."""
    if proposer.id == counterpart_id:
        raise InvalidRequestError("Cannot create session with yourself")
    _validate_terms(description_a, description_b, start_date, expected_end_date)

    counterpart = db.query(models.User).filter(models.User.id == counterpart_id).first()
    if not counterpart or not counterpart.is_active:
        raise RecordNotFoundError("User not found")

    _require_offered_skill(db, proposer.id, skill_a_id, "proposing user")
    _require_offered_skill(db, counterpart_id, skill_b_id, "requested user")

    # Serializes concurrent proposals from the same user (no-op on SQLite).
    db.query(models.User.id).filter(models.User.id == proposer.id).with_for_update().first()
    engine.check_new_session(
        proposer.id,
        counterpart_id,
        outgoing_pending=count_outgoing_pending(db, proposer.id),
        limit=SessionPolicy.MAX_PENDING_OUTGOING,
    )

    session = models.Session(
        user_a_id=proposer.id,
        user_b_id=counterpart_id,
        skill_a_id=skill_a_id,
        description_a=description_a.strip(),
        skill_b_id=skill_b_id,
        description_b=description_b.strip(),
        start_date=start_date,
        expected_end_date=expected_end_date,
        is_accepted=None,
        is_amended=False,
        status=SessionStatus.PENDING.value,
    )
    db.add(session)
    db.flush()

    snapshot = engine.SessionSnapshot.of(session)
    transition = engine.Transition(
        message="Session created successfully",
        events=[engine.SessionEvent(recipient_id=counterpart_id, event_type="session_requested")],
    )
    _commit_and_announce(db, snapshot, proposer, transition)
    db.refresh(session)
    return session


def respond_to_session(db: Session, actor: models.User, session_id: int, action: str) -> Tuple[models.Session, str]:
    """Accept or reject a pending session as its counterpart."""
    decision = engine.parse_action(engine.SessionAction, action)
    session = get_session(db, session_id)
    snapshot = engine.SessionSnapshot.of(session)
    start_date, expected_end_date = session.start_date, session.expected_end_date

    transition = engine.session_transition(snapshot, decision, actor.id)
    _apply_transition(db, snapshot.id, transition)
    if transition.new_status == SessionStatus.ACTIVE:
        _on_activated(db, snapshot, start_date, expected_end_date)
    else:
        _supersede_counter_offers(db, snapshot.id)

    _commit_and_announce(db, snapshot, actor, transition)
    db.refresh(session)
    return session, transition.message


def delete_session(db: Session, actor: models.User, session_id: int) -> None:
    """Delete a still-undecided proposal; only its proposer may do so."""
    session = get_session(db, session_id)
    snapshot = engine.SessionSnapshot.of(session)
    engine.check_deletion(snapshot, actor.id)

    db.query(models.CounterOffer).filter(
        models.CounterOffer.session_id == snapshot.id
    ).delete(synchronize_session=False)
    db.query(models.Notification).filter(
        models.Notification.session_id == snapshot.id
    ).update({"session_id": None}, synchronize_session=False)
    deleted = db.query(models.Session).filter(
        models.Session.id == snapshot.id,
        models.Session.user_a_id == actor.id,
        models.Session.status == SessionStatus.PENDING.value,
        models.Session.is_accepted.is_(None),
    ).delete(synchronize_session=False)
    if deleted == 0:
        db.rollback()
        raise ConcurrentUpdateError("Session was updated by another request; reload and try again")

    db.commit()
    db.expunge(session)
    logger.info("Session %s deleted by proposer %s", snapshot.id, actor.id)
    cache_service.invalidate_users_caches(snapshot.user_a_id, snapshot.user_b_id)


# =====================================
# COUNTER-OFFERS
# =====================================

def create_counter_offer(
    db: Session,
    actor: models.User,
    session_id: int,
    *,
    skill_a_id: int,
    description_a: str,
    skill_b_id: int,
    description_b: str,
    start_date: datetime,
    message: str,
    expected_end_date: Optional[datetime] = None,
) -> models.CounterOffer:
    if not (message or "").strip():
        raise InvalidRequestError("A counter offer message is required")
    _validate_terms(description_a, description_b, start_date, expected_end_date)

    session = get_session(db, session_id)
    snapshot = engine.SessionSnapshot.of(session)
    engine.check_counter_offer(
        snapshot,
        actor.id,
        has_pending_offer=_has_pending(db, models.CounterOffer, models.CounterOffer.session_id == snapshot.id),
    )
    _require_offered_skill(db, snapshot.user_a_id, skill_a_id, "proposing user")
    _require_offered_skill(db, snapshot.user_b_id, skill_b_id, "requested user")

    offer = models.CounterOffer(
        session_id=snapshot.id,
        offered_by_id=actor.id,
        skill_a_id=skill_a_id,
        description_a=description_a.strip(),
        skill_b_id=skill_b_id,
        description_b=description_b.strip(),
        start_date=start_date,
        expected_end_date=expected_end_date,
        message=message.strip(),
        status=models.CounterOfferStatus.PENDING.value,
    )
    _flush_new(db, offer, "There is already a pending counter offer for this session")

    transition = engine.Transition(
        message="Counter offer created successfully",
        session_updates={"is_amended": True},
        session_expected={"status": SessionStatus.PENDING.value, "is_accepted": None},
        events=[engine.SessionEvent(
            recipient_id=snapshot.other_party(actor.id),
            event_type="counter_offer_received",
        )],
    )
    _apply_transition(db, snapshot.id, transition)
    _commit_and_announce(db, snapshot, actor, transition)
    db.refresh(offer)
    return offer


def list_counter_offers(db: Session, session_id: int) -> List[models.CounterOffer]:
    return db.query(models.CounterOffer).filter(
        models.CounterOffer.session_id == session_id
    ).order_by(models.CounterOffer.id.desc()).all()


def respond_to_counter_offer(
    db: Session,
    actor: models.User,
    counter_offer_id: int,
    action: str,
) -> Tuple[models.CounterOffer, str]:
    decision = engine.parse_action(engine.SessionAction, action)
    offer = db.query(models.CounterOffer).filter(models.CounterOffer.id == counter_offer_id).first()
    if not offer:
        raise RecordNotFoundError("Counter offer not found")
    session = get_session(db, offer.session_id)
    snapshot = engine.SessionSnapshot.of(session)

    terms = {
        "skill_a_id": offer.skill_a_id,
        "description_a": offer.description_a,
        "skill_b_id": offer.skill_b_id,
        "description_b": offer.description_b,
        "start_date": offer.start_date,
        "expected_end_date": offer.expected_end_date,
        "is_amended": True,
    }
    transition = engine.counter_offer_transition(
        snapshot,
        offered_by_id=offer.offered_by_id,
        offer_status=offer.status,
        action=decision,
        actor_id=actor.id,
        now=utcnow(),
        terms=terms,
    )
    _apply_transition(
        db,
        snapshot.id,
        transition,
        record_model=models.CounterOffer,
        record_criteria=[models.CounterOffer.id == offer.id],
    )
    if transition.new_status == SessionStatus.ACTIVE:
        _on_activated(db, snapshot, offer.start_date, offer.expected_end_date)

    _commit_and_announce(db, snapshot, actor, transition)
    db.refresh(offer)
    return offer, transition.message


# =====================================
# COMPLETION HANDSHAKE
# =====================================

def request_completion(db: Session, actor: models.User, session_id: int) -> models.CompletionRequest:
    session = get_session(db, session_id)
    snapshot = engine.SessionSnapshot.of(session)
    engine.check_completion_request(
        snapshot,
        actor.id,
        has_pending_from_actor=_has_pending(
            db,
            models.CompletionRequest,
            models.CompletionRequest.session_id == snapshot.id,
            models.CompletionRequest.requested_by_id == actor.id,
        ),
    )

    completion = models.CompletionRequest(
        session_id=snapshot.id,
        requested_by_id=actor.id,
        status=models.CompletionStatus.PENDING.value,
    )
    _flush_new(db, completion, "You already have a pending completion request for this session")

    transition = engine.Transition(
        message="Session completion requested successfully",
        session_expected={"status": SessionStatus.ACTIVE.value},
        events=[engine.SessionEvent(
            recipient_id=snapshot.other_party(actor.id),
            event_type="completion_requested",
        )],
    )
    _apply_transition(db, snapshot.id, transition)
    _commit_and_announce(db, snapshot, actor, transition)
    db.refresh(completion)
    return completion


def respond_to_completion(
    db: Session,
    actor: models.User,
    session_id: int,
    action: str,
    rejection_reason: Optional[str] = None,
) -> Tuple[models.Session, str, int]:
    """Approve or reject the other participant's pending completion request(s)."""
    decision = engine.parse_action(engine.CompletionAction, action)
    session = get_session(db, session_id)
    snapshot = engine.SessionSnapshot.of(session)
    requester_id = snapshot.other_party(actor.id)

    transition = engine.completion_transition(
        snapshot,
        action=decision,
        actor_id=actor.id,
        has_pending_from_other=_has_pending(
            db,
            models.CompletionRequest,
            models.CompletionRequest.session_id == snapshot.id,
            models.CompletionRequest.requested_by_id == requester_id,
        ),
        now=utcnow(),
        rejection_reason=rejection_reason,
    )
    updated = _apply_transition(
        db,
        snapshot.id,
        transition,
        record_model=models.CompletionRequest,
        record_criteria=[models.CompletionRequest.session_id == snapshot.id],
    )
    if transition.new_status == SessionStatus.COMPLETED.value:
        # the approver's own pending request closes with the session
        _supersede_completion_requests(db, snapshot.id)
    _commit_and_announce(db, snapshot, actor, transition)
    db.refresh(session)
    return session, transition.message, updated


def list_completion_requests(
    db: Session,
    session_id: int,
    user_id: Optional[int] = None,
) -> List[models.CompletionRequest]:
    query = db.query(models.CompletionRequest).filter(models.CompletionRequest.session_id == session_id)
    if user_id is not None:
        query = query.filter(models.CompletionRequest.requested_by_id == user_id)
    return query.order_by(models.CompletionRequest.id.desc()).all()


# =====================================
# CANCELLATION HANDSHAKE
# =====================================

def request_cancellation(
    db: Session,
    actor: models.User,
    session_id: int,
    *,
    reason: str,
    description: str,
    evidence_files: Optional[List[str]] = None,
) -> models.CancellationRequest:
    """File a provisional cancellation; the session stays active until it is resolved."""
    session = get_session(db, session_id)
    snapshot = engine.SessionSnapshot.of(session)
    engine.check_cancellation_request(
        snapshot,
        actor.id,
        has_pending_request=_has_pending(
            db,
            models.CancellationRequest,
            models.CancellationRequest.session_id == snapshot.id,
            column="resolution",
        ),
        reason=reason,
        description=description,
    )

    cancellation = models.CancellationRequest(
        session_id=snapshot.id,
        initiator_id=actor.id,
        reason=reason.strip(),
        description=description.strip(),
        evidence_files=list(evidence_files or []),
        response_status=models.CancellationResponse.PENDING.value,
        resolution=models.CancellationResolution.PENDING.value,
    )
    _flush_new(db, cancellation, "There is already a pending cancellation request for this session")

    transition = engine.Transition(
        message="Cancellation request submitted successfully",
        session_expected={"status": SessionStatus.ACTIVE.value},
        events=[engine.SessionEvent(
            recipient_id=snapshot.other_party(actor.id),
            event_type="cancellation_requested",
            extra=cancellation.reason,
        )],
    )
    _apply_transition(db, snapshot.id, transition)
    _commit_and_announce(db, snapshot, actor, transition)
    db.refresh(cancellation)
    return cancellation


def get_latest_cancellation(db: Session, session_id: int) -> Optional[models.CancellationRequest]:
    return db.query(models.CancellationRequest).filter(
        models.CancellationRequest.session_id == session_id
    ).order_by(models.CancellationRequest.id.desc()).first()


def respond_to_cancellation(
    db: Session,
    actor: models.User,
    session_id: int,
    action: str,
    *,
    response_description: Optional[str] = None,
    response_evidence_files: Optional[List[str]] = None,
    work_completion_percentage: Optional[int] = None,
    final_note: Optional[str] = None,
) -> Tuple[models.CancellationRequest, str]:
    """Agree to, dispute, or (as initiator, after a dispute) finalize a pending cancellation."""
    decision = engine.parse_action(engine.CancellationAction, action)
    session = get_session(db, session_id)
    snapshot = engine.SessionSnapshot.of(session)

    cancellation = db.query(models.CancellationRequest).filter(
        models.CancellationRequest.session_id == snapshot.id,
        models.CancellationRequest.resolution == models.CancellationResolution.PENDING.value,
    ).first()
    if not cancellation:
        raise RecordNotFoundError("No pending cancellation request found")

    transition = engine.cancellation_transition(
        snapshot,
        initiator_id=cancellation.initiator_id,
        response_status=cancellation.response_status,
        resolution=cancellation.resolution,
        action=decision,
        actor_id=actor.id,
        now=utcnow(),
        response_description=response_description,
        response_evidence_files=response_evidence_files,
        work_completion_percentage=work_completion_percentage,
        final_note=final_note,
    )
    _apply_transition(
        db,
        snapshot.id,
        transition,
        record_model=models.CancellationRequest,
        record_criteria=[models.CancellationRequest.id == cancellation.id],
    )
    _commit_and_announce(db, snapshot, actor, transition)
    db.refresh(cancellation)
    return cancellation, transition.message


# =====================================
# PROGRESS
# =====================================

def list_progress(db: Session, session_id: int) -> List[models.SessionProgress]:
    return db.query(models.SessionProgress).filter(
        models.SessionProgress.session_id == session_id
    ).order_by(models.SessionProgress.id).all()


def update_progress(
    db: Session,
    actor: models.User,
    session_id: int,
    *,
    completion_percentage: Optional[int] = None,
    status: Optional[str] = None,
    notes: Optional[str] = None,
) -> models.SessionProgress:
    """Update the acting participant's own progress row on an active session."""
    session = get_session_for_participant(db, session_id, actor.id)
    if session.status != SessionStatus.ACTIVE:
        raise InvalidStateError("Progress can only be updated on active sessions")

    progress = db.query(models.SessionProgress).filter(
        models.SessionProgress.session_id == session.id,
        models.SessionProgress.user_id == actor.id,
    ).first()
    if not progress:
        raise RecordNotFoundError("Session progress not found")

    if completion_percentage is not None:
        if not 0 <= completion_percentage <= 100:
            raise InvalidRequestError("completion_percentage must be between 0 and 100")
        progress.completion_percentage = completion_percentage
    if status is not None:
        try:
            progress.status = models.ProgressStatus(status).value
        except ValueError:
            allowed = ", ".join(member.value for member in models.ProgressStatus)
            raise InvalidRequestError(f"status must be one of: {allowed}")
    elif completion_percentage is not None:
        if completion_percentage == 100:
            progress.status = models.ProgressStatus.COMPLETED.value
        elif completion_percentage > 0:
            progress.status = models.ProgressStatus.IN_PROGRESS.value
    if notes is not None:
        progress.notes = notes

    snapshot = engine.SessionSnapshot.of(session)
    transition = engine.Transition(
        message="Progress updated successfully",
        events=[engine.SessionEvent(
            recipient_id=snapshot.other_party(actor.id),
            event_type="progress_updated",
            extra=str(progress.completion_percentage),
        )],
    )
    _commit_and_announce(db, snapshot, actor, transition)
    db.refresh(progress)
    return progress
