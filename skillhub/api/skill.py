from typing import List, Optional

from fastapi import APIRouter, Depends, Form, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from skillhub import models, schemas
from skillhub.database import get_db
from skillhub.utils.security import get_current_user

router = APIRouter(prefix="/skills", tags=["Skills"])

VALID_SKILL_TYPES = {"teach", "learn"}
SKILL_TYPE_ALIASES = {
    "teach": "teach",
    "learn": "learn",
    "offer": "teach",
    "need": "learn",
}


def normalize_skill_type(raw: Optional[str]) -> Optional[str]:
    if raw is None:
        return None
    return SKILL_TYPE_ALIASES.get(raw.strip().lower())


def get_or_create_skill(db: Session, title: str, description: Optional[str], category: str) -> models.Skill:
    """Skills are shared by title (case-insensitive); the first writer sets description/category."""
    skill = db.query(models.Skill).filter(func.lower(models.Skill.title) == title.lower()).first()
    if skill:
        return skill
    skill = models.Skill(title=title, description=description, category=category or "General")
    db.add(skill)
    db.flush()
    return skill


# ======================
# POST: Add skill to the current user (offered "teach" or wanted "learn")
# ======================
@router.post("/", status_code=201)
def add_skill(
    title: str = Form(...),
    description: Optional[str] = Form(None),
    category: str = Form("General"),
    proficiency_level: str = Form("Beginner"),
    tags: List[str] = Form([]),
    skill_type: Optional[str] = Form("teach"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    requested_type = normalize_skill_type(skill_type)
    if requested_type not in VALID_SKILL_TYPES:
        raise HTTPException(400, "skill_type must be one of: teach, learn, offer, need")

    title = (title or "").strip()
    if not title:
        raise HTTPException(400, "Skill title is required")

    skill = get_or_create_skill(db, title, description, category)
    link = db.query(models.UserSkill).filter(
        models.UserSkill.user_id == current_user.id,
        models.UserSkill.skill_id == skill.id,
        models.UserSkill.skill_type == requested_type,
    ).first()
    if link:
        raise HTTPException(400, "Skill already added")

    link = models.UserSkill(
        user_id=current_user.id,
        skill_id=skill.id,
        skill_type=requested_type,
        proficiency_level=proficiency_level,
        tags=[t.strip() for t in tags if t and t.strip()],
    )
    db.add(link)
    db.commit()
    db.refresh(link)

    return {
        "success": True,
        "message": "Skill added successfully",
        "user_skill": schemas.UserSkill.model_validate(link).model_dump(mode="json"),
    }


# ======================
# GET: Current user's skills
# ======================
@router.get("/my")
def get_my_skills(
    skill_type: Optional[str] = None,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(models.UserSkill).filter(models.UserSkill.user_id == current_user.id)
    if skill_type:
        normalized = normalize_skill_type(skill_type)
        if normalized is None:
            raise HTTPException(400, "skill_type must be one of: teach, learn, offer, need")
        aliases = [raw for raw, canonical in SKILL_TYPE_ALIASES.items() if canonical == normalized]
        query = query.filter(models.UserSkill.skill_type.in_(aliases))

    return {
        "success": True,
        "message": "Skills retrieved successfully",
        "skills": [
            schemas.UserSkill.model_validate(link).model_dump(mode="json")
            for link in query.order_by(models.UserSkill.id).all()
        ],
    }
