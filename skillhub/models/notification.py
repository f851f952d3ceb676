from sqlalchemy import Column, Index, Integer, String, Boolean, ForeignKey, TIMESTAMP, func
from sqlalchemy.orm import relationship
from skillhub.database import Base


class Notification(Base):
    """One inbox entry per session event and recipient."""
    __tablename__ = "notifications"
    __table_args__ = (
        # inbox listing and unread badge
        Index("ix_notifications_inbox", "recipient_id", "is_read", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    recipient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    actor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    # Nulled when a pending session is deleted; the message text stays readable.
    session_id = Column(Integer, ForeignKey("sessions.id", ondelete="SET NULL"), index=True)
    event_type = Column(String(50), nullable=False)
    message = Column(String(500), nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now())

    recipient = relationship("User", foreign_keys=[recipient_id])
    actor = relationship("User", foreign_keys=[actor_id])
    session = relationship("Session", passive_deletes=True)
