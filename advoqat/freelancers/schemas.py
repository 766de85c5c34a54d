from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from advoqat.models import VerificationStatus, WithdrawalStatus

class FreelancerBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., min_length=1, max_length=20)
    experience: int = Field(..., ge=0)
    expertise_areas: List[str] = []
    chat_fee: Optional[int] = Field(None, ge=0)
    video_fee: Optional[int] = Field(None, ge=0)
    voice_fee: Optional[int] = Field(None, ge=0)

class FreelancerRegister(FreelancerBase):
    email: Optional[str] = None
    id_card_url: Optional[str] = None
    bar_certificate_url: Optional[str] = None
    additional_documents: Optional[List[str]] = None

class FreelancerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    experience: Optional[int] = Field(None, ge=0)
    expertise_areas: Optional[List[str]] = None
    chat_fee: Optional[int] = Field(None, ge=0)
    video_fee: Optional[int] = Field(None, ge=0)
    voice_fee: Optional[int] = Field(None, ge=0)

class CredentialsUpdate(BaseModel):
    id_card_url: Optional[str] = None
    bar_certificate_url: Optional[str] = None
    additional_documents: Optional[List[str]] = None

class AvailabilityUpdate(BaseModel):
    is_available: bool

class FreelancerResponse(FreelancerBase):
    id: int
    user_id: int
    email: str
    id_card_url: Optional[str] = None
    bar_certificate_url: Optional[str] = None
    additional_documents: Optional[List[str]] = None
    verification_status: VerificationStatus
    verification_notes: Optional[str] = None
    is_available: bool = False
    performance_score: Optional[float] = None
    feedback_count: Optional[int] = None
    total_earnings: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class RatingResponse(BaseModel):
    performanceScore: float
    feedbackCount: int

class EarningsResponse(BaseModel):
    totalEarnings: int
    pendingWithdrawals: int
    availableBalance: int
    completedCases: int

class WithdrawalRequest(BaseModel):
    amount: int
    method: str = Field(..., min_length=1, max_length=50)

class WithdrawalResponse(BaseModel):
    id: int
    user_id: int
    amount: int
    method: str
    status: WithdrawalStatus
    requested_at: Optional[datetime] = None

    class Config:
        from_attributes = True
