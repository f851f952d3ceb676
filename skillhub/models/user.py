from sqlalchemy import Column, Integer, String, Boolean, TIMESTAMP, func
from sqlalchemy.orm import relationship
from skillhub.database import Base


# ---------------- USER (AUTH TABLE) ----------------
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="student")
    is_active = Column(Boolean, default=True)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, onupdate=func.now())

    user_skills = relationship("UserSkill", back_populates="user", cascade="all, delete-orphan")
    # Sessions are addressed by role in the exchange: A proposes, B responds.
    proposed_sessions = relationship("Session", foreign_keys="Session.user_a_id", back_populates="user_a")
    received_sessions = relationship("Session", foreign_keys="Session.user_b_id", back_populates="user_b")
