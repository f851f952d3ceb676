# skillhub/api/completion.py
"""Bilateral completion handshake for active sessions."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from skillhub import models, schemas
from skillhub.api.common import dump, flow_errors, serialize_session
from skillhub.database import get_db
from skillhub.services import session_service
from skillhub.utils.security import get_current_user

router = APIRouter(prefix="/sessions/completion-new", tags=["session completion"])


@router.post("", status_code=201)
def request_completion(
    payload: schemas.CompletionCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    with flow_errors():
        completion = session_service.request_completion(db, current_user, payload.session_id)
    return {
        "success": True,
        "message": "Session completion requested successfully",
        "completion_request": dump(schemas.CompletionRequestOut, completion),
    }


@router.patch("")
@router.put("")  # older clients
def respond_to_completion(
    payload: schemas.CompletionRespond,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Approve or reject the other participant's pending completion request."""
    with flow_errors():
        session, message, updated = session_service.respond_to_completion(
            db,
            current_user,
            payload.session_id,
            payload.action,
            rejection_reason=payload.rejection_reason,
        )
    return {
        "success": True,
        "message": message,
        "updated_requests": updated,
        "session": serialize_session(session),
    }


@router.get("")
def list_completion_requests(
    session_id: int = Query(...),
    user_id: Optional[int] = Query(None),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    with flow_errors():
        session = session_service.get_session_for_participant(db, session_id, current_user.id)
    requests = session_service.list_completion_requests(db, session.id, user_id=user_id)
    return {
        "success": True,
        "message": "Completion requests retrieved successfully",
        "completion_requests": [dump(schemas.CompletionRequestOut, r) for r in requests],
    }
