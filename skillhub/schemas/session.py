from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime

# ======================
# SESSION REQUEST MODELS
# ======================

class SessionTerms(BaseModel):
    skill_a_id: int
    description_a: str
    skill_b_id: int
    description_b: str
    start_date: datetime
    expected_end_date: Optional[datetime] = None


class SessionCreate(SessionTerms):
    """Proposal from the current user (user A) to ``user_b_id``."""
    user_b_id: int


class SessionRespond(BaseModel):
    action: str  # "accept" or "reject"


class CounterOfferCreate(SessionTerms):
    message: str


class CounterOfferRespond(BaseModel):
    action: str  # "accept" or "reject"


# ======================
# COMPLETION / CANCELLATION
# ======================

class CompletionCreate(BaseModel):
    session_id: int


class CompletionRespond(BaseModel):
    session_id: int
    action: str  # "approve" or "reject"
    rejection_reason: Optional[str] = None


class CancellationCreate(BaseModel):
    reason: str
    description: str
    evidence_files: List[str] = Field(default_factory=list)


class CancellationRespond(BaseModel):
    action: str  # "agree", "dispute" or "finalize"
    response_description: Optional[str] = None
    response_evidence_files: List[str] = Field(default_factory=list)
    work_completion_percentage: Optional[int] = None
    final_note: Optional[str] = None


class ProgressUpdate(BaseModel):
    completion_percentage: Optional[int] = None
    status: Optional[str] = None
    notes: Optional[str] = None


# ======================
# RESPONSE MODELS
# ======================

class CompletionSummaryOut(BaseModel):
    requested_by: Optional[int] = None
    requested_at: Optional[datetime] = None
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[int] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SessionOut(BaseModel):
    id: int
    user_a_id: int
    user_b_id: int
    skill_a_id: int
    description_a: str
    skill_b_id: int
    description_b: str
    start_date: datetime
    expected_end_date: Optional[datetime] = None
    is_accepted: Optional[bool] = None
    is_amended: bool = False
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SessionDetail(SessionOut):
    """Session plus participant names and the derived completion summary."""
    user_a_name: Optional[str] = None
    user_b_name: Optional[str] = None
    skill_a_title: Optional[str] = None
    skill_b_title: Optional[str] = None
    completion: CompletionSummaryOut = Field(default_factory=CompletionSummaryOut)


class CounterOfferOut(BaseModel):
    id: int
    session_id: int
    offered_by_id: int
    skill_a_id: int
    description_a: str
    skill_b_id: int
    description_b: str
    start_date: datetime
    expected_end_date: Optional[datetime] = None
    message: str
    status: str
    created_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CompletionRequestOut(BaseModel):
    id: int
    session_id: int
    requested_by_id: int
    status: str
    approved_by_id: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejected_by_id: Optional[int] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CancellationRequestOut(BaseModel):
    id: int
    session_id: int
    initiator_id: int
    reason: str
    description: str
    evidence_files: List[str] = Field(default_factory=list)
    response_status: str
    response_description: Optional[str] = None
    response_evidence_files: List[str] = Field(default_factory=list)
    work_completion_percentage: Optional[int] = None
    response_date: Optional[datetime] = None
    resolution: str
    final_note: Optional[str] = None
    resolved_date: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ProgressOut(BaseModel):
    id: int
    session_id: int
    user_id: int
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    completion_percentage: int
    status: str
    notes: Optional[str] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
