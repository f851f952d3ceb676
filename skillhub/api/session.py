# skillhub/api/session.py
"""
Session API: proposals, direct accept/reject, deletion and counter-offers.

Completion, cancellation and progress live in their own routers under the
same ``/sessions`` prefix.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from skillhub import models, schemas
from skillhub.api.common import dump, flow_errors, serialize_session
from skillhub.database import get_db
from skillhub.services import session_service
from skillhub.services.cache_service import session_view_cache
from skillhub.utils.security import get_current_user

router = APIRouter(prefix="/sessions", tags=["sessions"])


# ======================
# SESSION LISTING
# ======================
@router.get("/my")
def get_my_sessions(
    status: Optional[str] = Query(None),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """All sessions where the current user is A or B, newest first."""
    view_key = ("my", status)
    cached = session_view_cache.get(current_user.id, view_key)
    if cached is not None:
        return cached

    generation = session_view_cache.generation(current_user.id)
    sessions = session_service.list_user_sessions(db, current_user.id, status=status)
    payload = {
        "success": True,
        "message": "Sessions retrieved successfully",
        "sessions": [serialize_session(s) for s in sessions],
    }
    session_view_cache.set(current_user.id, view_key, payload, generation=generation)
    return payload


@router.get("/between/{other_user_id}")
def get_sessions_between(
    other_user_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    sessions = session_service.list_sessions_between(db, current_user.id, other_user_id)
    result = []
    for s in sessions:
        item = serialize_session(s)
        item["counter_offers"] = [
            dump(schemas.CounterOfferOut, offer)
            for offer in session_service.list_counter_offers(db, s.id)
        ]
        result.append(item)
    return {"success": True, "message": "Sessions retrieved successfully", "sessions": result}


# ======================
# CREATE SESSION REQUEST
# ======================
@router.post("/", status_code=201)
def create_session(
    payload: schemas.SessionCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    with flow_errors():
        session = session_service.create_session(
            db,
            current_user,
            counterpart_id=payload.user_b_id,
            skill_a_id=payload.skill_a_id,
            description_a=payload.description_a,
            skill_b_id=payload.skill_b_id,
            description_b=payload.description_b,
            start_date=payload.start_date,
            expected_end_date=payload.expected_end_date,
        )
    return {
        "success": True,
        "message": "Session created successfully",
        "session": serialize_session(session),
    }


# ======================
# COUNTER-OFFER RESPONSE
# ======================
@router.patch("/counter-offers/{counter_offer_id}")
def respond_to_counter_offer(
    counter_offer_id: int,
    payload: schemas.CounterOfferRespond,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    with flow_errors():
        offer, message = session_service.respond_to_counter_offer(
            db, current_user, counter_offer_id, payload.action
        )
    return {
        "success": True,
        "message": message,
        "counter_offer": dump(schemas.CounterOfferOut, offer),
        "session": serialize_session(session_service.get_session(db, offer.session_id)),
    }


# ======================
# SINGLE SESSION
# ======================
@router.get("/{session_id}")
def get_session(
    session_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    with flow_errors():
        session = session_service.get_session_for_participant(db, session_id, current_user.id)
    return {
        "success": True,
        "message": "Session retrieved successfully",
        "session": serialize_session(session),
    }


@router.patch("/{session_id}/respond")
def respond_to_session(
    session_id: int,
    payload: schemas.SessionRespond,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Accept or reject a pending request; only the receiving user may answer."""
    with flow_errors():
        session, message = session_service.respond_to_session(
            db, current_user, session_id, payload.action
        )
    return {"success": True, "message": message, "session": serialize_session(session)}


@router.delete("/{session_id}")
def delete_session(
    session_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    with flow_errors():
        session_service.delete_session(db, current_user, session_id)
    return {"success": True, "message": "Session deleted successfully"}


# ======================
# COUNTER-OFFERS
# ======================
@router.post("/{session_id}/counter-offers", status_code=201)
def create_counter_offer(
    session_id: int,
    payload: schemas.CounterOfferCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    with flow_errors():
        offer = session_service.create_counter_offer(
            db,
            current_user,
            session_id,
            skill_a_id=payload.skill_a_id,
            description_a=payload.description_a,
            skill_b_id=payload.skill_b_id,
            description_b=payload.description_b,
            start_date=payload.start_date,
            expected_end_date=payload.expected_end_date,
            message=payload.message,
        )
    return {
        "success": True,
        "message": "Counter offer created successfully",
        "counter_offer": dump(schemas.CounterOfferOut, offer),
    }


@router.get("/{session_id}/counter-offers")
def list_counter_offers(
    session_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    with flow_errors():
        session_service.get_session_for_participant(db, session_id, current_user.id)
    offers = session_service.list_counter_offers(db, session_id)
    return {
        "success": True,
        "message": "Counter offers retrieved successfully",
        "counter_offers": [dump(schemas.CounterOfferOut, o) for o in offers],
    }
