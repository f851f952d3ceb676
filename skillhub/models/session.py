# skillhub/models/session.py
import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    TIMESTAMP,
    func,
    text,
)
from sqlalchemy.orm import relationship
from skillhub.database import Base


class SessionStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELED = "canceled"
    REJECTED = "rejected"


class CounterOfferStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    # Closed because the parent session was decided directly.
    SUPERSEDED = "superseded"


class CompletionStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUPERSEDED = "superseded"


class CancellationResponse(str, enum.Enum):
    PENDING = "pending"
    AGREED = "agreed"
    DISPUTED = "disputed"


class CancellationResolution(str, enum.Enum):
    PENDING = "pending"
    CANCELED = "canceled"


def _pending_only(column: str = "status"):
    clause = f"{column} = 'pending'"
    return {"postgresql_where": text(clause), "sqlite_where": text(clause)}


class Session(Base):
    __tablename__ = "sessions"
    __table_args__ = (
        CheckConstraint("user_a_id <> user_b_id", name="ck_sessions_distinct_parties"),
    )

    id = Column(Integer, primary_key=True, index=True)
    # user_a proposed the exchange, user_b is the counterpart
    user_a_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    user_b_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    skill_a_id = Column(Integer, ForeignKey("skills.id"), nullable=False)
    description_a = Column(Text, nullable=False)
    skill_b_id = Column(Integer, ForeignKey("skills.id"), nullable=False)
    description_b = Column(Text, nullable=False)
    start_date = Column(TIMESTAMP, nullable=False)
    expected_end_date = Column(TIMESTAMP)
    is_accepted = Column(Boolean, nullable=True, default=None)
    is_amended = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default=SessionStatus.PENDING.value, index=True)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, onupdate=func.now())

    # Relationships
    user_a = relationship("User", foreign_keys=[user_a_id], back_populates="proposed_sessions")
    user_b = relationship("User", foreign_keys=[user_b_id], back_populates="received_sessions")
    skill_a = relationship("Skill", foreign_keys=[skill_a_id])
    skill_b = relationship("Skill", foreign_keys=[skill_b_id])
    counter_offers = relationship(
        "CounterOffer",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="CounterOffer.id",
    )
    completion_requests = relationship(
        "CompletionRequest",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="CompletionRequest.id",
    )
    cancellation_requests = relationship(
        "CancellationRequest",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="CancellationRequest.id",
    )
    progress = relationship("SessionProgress", back_populates="session", cascade="all, delete-orphan")

    def other_party(self, user_id: int) -> int:
        """Return the participant that is not ``user_id``."""
        return self.user_b_id if self.user_a_id == user_id else self.user_a_id

    def is_participant(self, user_id: int) -> bool:
        return user_id in (self.user_a_id, self.user_b_id)


class CounterOffer(Base):
    __tablename__ = "session_counter_offers"
    __table_args__ = (
        Index("uq_counter_offer_one_pending", "session_id", unique=True, **_pending_only()),
    )

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    offered_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    skill_a_id = Column(Integer, ForeignKey("skills.id"), nullable=False)
    description_a = Column(Text, nullable=False)
    skill_b_id = Column(Integer, ForeignKey("skills.id"), nullable=False)
    description_b = Column(Text, nullable=False)
    start_date = Column(TIMESTAMP, nullable=False)
    expected_end_date = Column(TIMESTAMP)
    message = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=CounterOfferStatus.PENDING.value)
    created_at = Column(TIMESTAMP, server_default=func.now())
    responded_at = Column(TIMESTAMP)

    session = relationship("Session", back_populates="counter_offers")
    offered_by = relationship("User", foreign_keys=[offered_by_id])
    skill_a = relationship("Skill", foreign_keys=[skill_a_id])
    skill_b = relationship("Skill", foreign_keys=[skill_b_id])


class CompletionRequest(Base):
    __tablename__ = "session_completion_requests"
    __table_args__ = (
        Index(
            "uq_completion_one_pending_per_user",
            "session_id",
            "requested_by_id",
            unique=True,
            **_pending_only(),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    requested_by_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=CompletionStatus.PENDING.value)
    approved_by_id = Column(Integer, ForeignKey("users.id"))
    approved_at = Column(TIMESTAMP)
    rejected_by_id = Column(Integer, ForeignKey("users.id"))
    rejected_at = Column(TIMESTAMP)
    rejection_reason = Column(String(500))
    created_at = Column(TIMESTAMP, server_default=func.now())

    session = relationship("Session", back_populates="completion_requests")
    requested_by = relationship("User", foreign_keys=[requested_by_id])


class CancellationRequest(Base):
    __tablename__ = "session_cancellation_requests"
    __table_args__ = (
        Index("uq_cancellation_one_pending", "session_id", unique=True, **_pending_only("resolution")),
    )

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    initiator_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    reason = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    evidence_files = Column(JSON, default=list)
    response_status = Column(String(20), nullable=False, default=CancellationResponse.PENDING.value)
    response_description = Column(Text)
    response_evidence_files = Column(JSON, default=list)
    work_completion_percentage = Column(Integer)
    response_date = Column(TIMESTAMP)
    resolution = Column(String(20), nullable=False, default=CancellationResolution.PENDING.value)
    final_note = Column(Text)
    resolved_date = Column(TIMESTAMP)
    created_at = Column(TIMESTAMP, server_default=func.now())

    session = relationship("Session", back_populates="cancellation_requests")
    initiator = relationship("User", foreign_keys=[initiator_id])
