import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request

from advoqat.auth.dependencies import get_current_user
from advoqat.dependencies import get_payment_service
from advoqat.models import User
from advoqat.payments.schemas import (
    CheckoutRequest, CheckoutResponse, PaymentHistory, PaymentSummary, SessionVerification, WebhookResult
)
from advoqat.services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["Payments"])

@router.post("/create-checkout-session", response_model=CheckoutResponse)
def create_checkout_session(
    checkout: CheckoutRequest,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """Start a Stripe checkout for a consultation or a generated document."""
    return service.create_checkout_session(current_user, checkout.consultation_id, checkout.document_id)

@router.get("/verify-session/{session_id}", response_model=SessionVerification)
def verify_session(
    session_id: str,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return service.verify_session(session_id)

@router.post("/webhook", response_model=WebhookResult)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    service: PaymentService = Depends(get_payment_service),
):
    # Signature is computed over the raw body, so it must not be parsed first
    payload = await request.body()
    return service.handle_webhook(payload, stripe_signature)

@router.get("/history", response_model=PaymentHistory)
def payment_history(
    status: Optional[str] = None,
    service_type: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    payments, total = service.list_payments(current_user, status, service_type, page, limit)
    return PaymentHistory(payments=payments, total=total, page=page, limit=limit)

@router.get("/summary", response_model=PaymentSummary)
def payment_summary(
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return service.payment_summary(current_user)
