from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime
from advoqat.models import PaymentStatus, ServiceType

class CheckoutRequest(BaseModel):
    consultation_id: Optional[int] = None
    document_id: Optional[int] = None

class CheckoutResponse(BaseModel):
    sessionId: str
    url: Optional[str] = None
    paymentId: int

class SessionVerification(BaseModel):
    sessionId: str
    paid: bool
    paymentStatus: Optional[str] = None
    metadata: Dict[str, Any] = {}

class WebhookResult(BaseModel):
    status: str

class PaymentResponse(BaseModel):
    id: int
    user_id: int
    consultation_id: Optional[int] = None
    document_id: Optional[int] = None
    case_id: Optional[int] = None
    stripe_session_id: Optional[str] = None
    amount: int
    currency: Optional[str] = None
    payment_method: Optional[str] = None
    status: PaymentStatus
    service_type: ServiceType
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class PaymentHistory(BaseModel):
    payments: List[PaymentResponse]
    total: int
    page: int
    limit: int

class PaymentSummary(BaseModel):
    totalPayments: int
    successfulPayments: int
    failedPayments: int
    totalSpent: int
    totalEarned: int
    consultationPayments: int
    documentPayments: int
