# skillhub/schemas/__init__.py

# Auth schemas
from .auth import Token, TokenData, LoginRequest

# Skill schemas
from .skill import Skill, UserSkill

# Session schemas
from .session import (
    SessionCreate,
    SessionRespond,
    CounterOfferCreate,
    CounterOfferRespond,
    CompletionCreate,
    CompletionRespond,
    CancellationCreate,
    CancellationRespond,
    ProgressUpdate,
    SessionOut,
    SessionDetail,
    CompletionSummaryOut,
    CounterOfferOut,
    CompletionRequestOut,
    CancellationRequestOut,
    ProgressOut,
)

__all__ = [
    "Token",
    "TokenData",
    "LoginRequest",
    "Skill",
    "UserSkill",
    "SessionCreate",
    "SessionRespond",
    "CounterOfferCreate",
    "CounterOfferRespond",
    "CompletionCreate",
    "CompletionRespond",
    "CancellationCreate",
    "CancellationRespond",
    "ProgressUpdate",
    "SessionOut",
    "SessionDetail",
    "CompletionSummaryOut",
    "CounterOfferOut",
    "CompletionRequestOut",
    "CancellationRequestOut",
    "ProgressOut",
]
