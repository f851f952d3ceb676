# skillhub/api/cancellation.py
"""Cancellation handshake: request, agree / dispute, finalize."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from skillhub import models, schemas
from skillhub.api.common import dump, flow_errors, serialize_session
from skillhub.database import get_db
from skillhub.services import session_service
from skillhub.utils.security import get_current_user

router = APIRouter(prefix="/sessions", tags=["session cancellation"])


@router.post("/{session_id}/cancel", status_code=201)
def request_cancellation(
    session_id: int,
    payload: schemas.CancellationCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """File a cancellation request; the session stays active until it is resolved."""
    with flow_errors():
        cancellation = session_service.request_cancellation(
            db,
            current_user,
            session_id,
            reason=payload.reason,
            description=payload.description,
            evidence_files=payload.evidence_files,
        )
    return {
        "success": True,
        "message": "Cancellation request submitted successfully",
        "cancellation_request": dump(schemas.CancellationRequestOut, cancellation),
    }


@router.get("/{session_id}/cancel")
def get_cancellation(
    session_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    with flow_errors():
        session_service.get_session_for_participant(db, session_id, current_user.id)
    cancellation = session_service.get_latest_cancellation(db, session_id)
    if not cancellation:
        raise HTTPException(status_code=404, detail="No cancellation request found")
    return {
        "success": True,
        "message": "Cancellation request retrieved successfully",
        "cancellation_request": dump(schemas.CancellationRequestOut, cancellation),
    }


@router.patch("/{session_id}/cancel")
def respond_to_cancellation(
    session_id: int,
    payload: schemas.CancellationRespond,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    with flow_errors():
        cancellation, message = session_service.respond_to_cancellation(
            db,
            current_user,
            session_id,
            payload.action,
            response_description=payload.response_description,
            response_evidence_files=payload.response_evidence_files,
            work_completion_percentage=payload.work_completion_percentage,
            final_note=payload.final_note,
        )
    return {
        "success": True,
        "message": message,
        "cancellation_request": dump(schemas.CancellationRequestOut, cancellation),
        "session": serialize_session(session_service.get_session(db, session_id)),
    }
