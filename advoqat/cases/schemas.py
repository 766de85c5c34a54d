from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime
from advoqat.models import CaseStatus, CasePriority, CaseDocumentStatus, ProfessionalKind

# Base schemas
class CaseBase(BaseModel):
    title: str
    description: str
    expertise_area: Optional[str] = None
    priority: Optional[CasePriority] = None
    jurisdiction: Optional[str] = None
    case_type: Optional[str] = None
    client_notes: Optional[str] = None

class CaseResponse(CaseBase):
    id: int
    client_id: int
    assignee_kind: Optional[ProfessionalKind] = None
    assignee_id: Optional[int] = None
    freelancer_id: Optional[int] = None
    barrister_id: Optional[int] = None
    status: CaseStatus

    # Documents
    case_summary_url: Optional[str] = None
    document_status: Optional[CaseDocumentStatus] = None
    annotated_document_url: Optional[str] = None
    annotation_notes: Optional[str] = None
    additional_documents: Optional[List[Any]] = None

    decline_reason: Optional[str] = None
    assigned_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    declined_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# Request schemas
class CaseStatusUpdate(BaseModel):
    status: str
    reason: Optional[str] = None

class CaseAssign(BaseModel):
    freelancer_id: Optional[str] = None
    barrister_id: Optional[str] = None

class CaseBroadcast(BaseModel):
    expertise_area: Optional[str] = None

class CaseDecline(BaseModel):
    reason: Optional[str] = None

# Response wrappers
class BroadcastResponse(BaseModel):
    case_id: int
    notified: int

class CaseStats(BaseModel):
    pending: int = 0
    active: int = 0
    completed: int = 0
    declined: int = 0
    total: int = 0

class ProfessionalSummary(BaseModel):
    user_id: int
    name: str
    email: str
    expertise_areas: Optional[List[str]] = None
    performance_score: Optional[float] = None
    feedback_count: Optional[int] = None
    is_available: Optional[bool] = None
    chat_fee: Optional[int] = None
    video_fee: Optional[int] = None
    voice_fee: Optional[int] = None

    class Config:
        from_attributes = True

def stats_response(stats: Dict[str, int]) -> CaseStats:
    return CaseStats(**stats)
