from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from advoqat.models import BarristerStatus, OnboardingStage

class EligibilityAnswers(BaseModel):
    has_practising_certificate: bool = False
    is_public_access_registered: bool = False
    has_public_access_training: bool = False
    has_bmif_insurance: bool = False
    in_good_standing: bool = False

class BarristerRegister(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=100)
    password: str
    phone: Optional[str] = None
    year_of_call: int
    bsb_number: str
    agree_to_terms: bool = False
    eligibility: EligibilityAnswers
    supervisor_details: Optional[Dict[str, Any]] = None
    expertise_areas: List[str] = []

class ProfessionalInfo(BaseModel):
    chambers_name: str
    practice_address: str
    pricing_model: str
    hourly_rate: Optional[int] = None
    biography: Optional[str] = None
    languages: Optional[List[str]] = None
    areas_of_practice: Optional[List[str]] = None

class BarristerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = None
    chambers_name: Optional[str] = None
    practice_address: Optional[str] = None
    biography: Optional[str] = None
    languages: Optional[List[str]] = None
    expertise_areas: Optional[List[str]] = None
    hourly_rate: Optional[int] = Field(None, ge=0)
    chat_fee: Optional[int] = Field(None, ge=0)
    video_fee: Optional[int] = Field(None, ge=0)
    voice_fee: Optional[int] = Field(None, ge=0)

class BarristerResponse(BaseModel):
    id: int
    user_id: int
    name: str
    email: str
    phone: Optional[str] = None
    year_of_call: Optional[int] = None
    bsb_number: Optional[str] = None
    expertise_areas: Optional[List[str]] = None

    practising_certificate_url: Optional[str] = None
    public_access_accreditation_url: Optional[str] = None
    bmif_insurance_url: Optional[str] = None
    qualified_person_document_url: Optional[str] = None
    qualified_person_name: Optional[str] = None
    qualified_person_email: Optional[str] = None

    chambers_name: Optional[str] = None
    practice_address: Optional[str] = None
    pricing_model: Optional[str] = None
    biography: Optional[str] = None
    languages: Optional[List[str]] = None
    hourly_rate: Optional[int] = None
    chat_fee: Optional[int] = None
    video_fee: Optional[int] = None
    voice_fee: Optional[int] = None

    status: BarristerStatus
    stage: OnboardingStage
    verification_notes: Optional[str] = None
    is_available: bool = False
    total_earnings: Optional[int] = None
    performance_score: Optional[float] = None
    feedback_count: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class BarristerRegistrationResponse(BaseModel):
    barrister: BarristerResponse
    access_token: str
    token_type: str = "bearer"

class DashboardResponse(BaseModel):
    status: str
    stage: str
    isAvailable: bool
    totalEarnings: int
    performanceScore: float
    cases: Dict[str, int]
    upcomingConsultations: int
    unreadNotifications: int
