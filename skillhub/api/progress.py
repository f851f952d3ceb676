from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from skillhub import models, schemas
from skillhub.api.common import dump, flow_errors
from skillhub.database import get_db
from skillhub.services import session_service
from skillhub.utils.security import get_current_user

router = APIRouter(prefix="/sessions", tags=["session progress"])


@router.get("/{session_id}/progress")
def get_progress(
    session_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    with flow_errors():
        session_service.get_session_for_participant(db, session_id, current_user.id)
    return {
        "success": True,
        "message": "Progress retrieved successfully",
        "progress": [dump(schemas.ProgressOut, p) for p in session_service.list_progress(db, session_id)],
    }


@router.patch("/{session_id}/progress")
def update_progress(
    session_id: int,
    payload: schemas.ProgressUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    with flow_errors():
        progress = session_service.update_progress(
            db,
            current_user,
            session_id,
            completion_percentage=payload.completion_percentage,
            status=payload.status,
            notes=payload.notes,
        )
    return {
        "success": True,
        "message": "Progress updated successfully",
        "progress": dump(schemas.ProgressOut, progress),
    }
