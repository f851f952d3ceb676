# skillhub/models/__init__.py
# Import models in dependency order
from .user import User
from .skill import Skill, UserSkill
from .session import (
    Session,
    CounterOffer,
    CompletionRequest,
    CancellationRequest,
    SessionStatus,
    CounterOfferStatus,
    CompletionStatus,
    CancellationResponse,
    CancellationResolution,
)
from .progress import SessionProgress, ProgressStatus
from .notification import Notification

__all__ = [
    "User",
    "Skill",
    "UserSkill",
    "Session",
    "CounterOffer",
    "CompletionRequest",
    "CancellationRequest",
    "SessionStatus",
    "CounterOfferStatus",
    "CompletionStatus",
    "CancellationResponse",
    "CancellationResolution",
    "SessionProgress",
    "ProgressStatus",
    "Notification",
]
