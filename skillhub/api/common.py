# skillhub/api/common.py
"""Helpers shared by the session routers."""

from contextlib import contextmanager
from dataclasses import asdict
from typing import Any, Dict

from fastapi import HTTPException

from skillhub import models, schemas
from skillhub.services.errors import SessionFlowError
from skillhub.services.session_engine import summarize_completion


@contextmanager
def flow_errors():
    """Re-raise service errors as ``HTTPException`` with the matching status."""
    try:
        yield
    except SessionFlowError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc


def serialize_session(session: models.Session) -> Dict[str, Any]:
    summary = summarize_completion(session.completion_requests)
    detail = schemas.SessionDetail.model_validate(session)
    detail.user_a_name = session.user_a.name if session.user_a else None
    detail.user_b_name = session.user_b.name if session.user_b else None
    detail.skill_a_title = session.skill_a.title if session.skill_a else None
    detail.skill_b_title = session.skill_b.title if session.skill_b else None
    detail.completion = schemas.CompletionSummaryOut(**asdict(summary))
    return detail.model_dump(mode="json")


def dump(schema, record) -> Dict[str, Any]:
    return schema.model_validate(record).model_dump(mode="json")
