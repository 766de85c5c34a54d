from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from advoqat.models import (
    ConsultationStatus, ConsultationType, ConsultationPaymentStatus, ProfessionalKind
)

class ConsultationBook(BaseModel):
    professional_id: str
    professional_type: Optional[str] = None
    client_id: Optional[str] = None
    scheduled_at: datetime
    consultation_type: str
    case_id: Optional[int] = None
    duration: Optional[int] = Field(None, gt=0, le=480)
    notes: Optional[str] = None

class ConsultationUpdate(BaseModel):
    action: str
    new_time: Optional[datetime] = None
    reason: Optional[str] = None

class ConsultationStart(BaseModel):
    meeting_link: Optional[str] = None

class ConsultationEnd(BaseModel):
    notes: Optional[str] = None
    outcome: Optional[str] = None

class FeedbackCreate(BaseModel):
    rating: int
    comment: Optional[str] = Field(None, max_length=2000)

class ConsultationResponse(BaseModel):
    id: int
    case_id: Optional[int] = None
    client_id: int
    professional_kind: ProfessionalKind
    professional_id: int
    consultation_type: ConsultationType
    scheduled_at: datetime
    duration: Optional[int] = None
    notes: Optional[str] = None
    meeting_link: Optional[str] = None
    status: ConsultationStatus
    outcome: Optional[str] = None
    cancellation_reason: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    consultation_fee: int = 0
    platform_fee: int = 0
    total_fee: int = 0
    payment_status: Optional[ConsultationPaymentStatus] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class FeedbackResponse(BaseModel):
    id: int
    consultation_id: int
    rating: int
    comments: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
