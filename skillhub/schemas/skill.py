from pydantic import BaseModel, ConfigDict
from typing import Optional, List

# ======================
# SKILL SCHEMAS
# ======================

class SkillBase(BaseModel):
    title: str
    description: Optional[str] = None
    category: Optional[str] = "General"


class Skill(SkillBase):
    id: int

    model_config = ConfigDict(from_attributes=True)


# ======================
# USER_SKILL SCHEMAS
# ======================

class UserSkill(BaseModel):
    id: int
    user_id: int
    skill_id: int
    skill_type: str
    proficiency_level: Optional[str] = None
    tags: Optional[List[str]] = None
    skill: Skill

    model_config = ConfigDict(from_attributes=True)
