import enum

from sqlalchemy import Column, Integer, String, Text, ForeignKey, TIMESTAMP, UniqueConstraint, func
from sqlalchemy.orm import relationship
from skillhub.database import Base


class ProgressStatus(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class SessionProgress(Base):
    __tablename__ = "session_progress"
    __table_args__ = (
        UniqueConstraint("session_id", "user_id", name="uq_session_progress_user"),
    )

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    start_date = Column(TIMESTAMP)
    due_date = Column(TIMESTAMP)
    completion_percentage = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=ProgressStatus.NOT_STARTED.value)
    notes = Column(Text, default="")
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    session = relationship("Session", back_populates="progress")
    user = relationship("User")
