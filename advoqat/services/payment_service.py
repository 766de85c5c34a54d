"""
Stripe checkout, webhook reconciliation and the payment ledger.

Every call to Stripe carries an explicit timeout and an idempotency key.
Webhook events are reconciled by checkout session id (or payment intent id
for failures), so a replayed event finds its row already settled and does
nothing.
"""
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import stripe
from sqlalchemy import func
from sqlalchemy.orm import Session

from advoqat.config import (
    FRONTEND_URL, STRIPE_CURRENCY, STRIPE_SECRET_KEY, STRIPE_TIMEOUT_SECONDS,
    STRIPE_WEBHOOK_SECRET
)
from advoqat.errors import (
    AuthorizationError, ConflictError, NotFoundError, UpstreamError, ValidationError
)
from advoqat.models import (
    Consultation, ConsultationPaymentStatus, ConsultationStatus, DocumentPaymentStatus,
    GeneratedDocument, Payment, PaymentStatus, ServiceType, User, Withdrawal, WithdrawalStatus
)
from advoqat.services.assignment_service import get_profile, professional_kind_of
from advoqat.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


class StripeGateway:
    """Thin wrapper over the Stripe SDK calls the platform makes."""

    def __init__(
        self,
        api_key: str = STRIPE_SECRET_KEY,
        webhook_secret: str = STRIPE_WEBHOOK_SECRET,
        timeout: int = STRIPE_TIMEOUT_SECONDS,
    ):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.timeout = timeout

    def _configure(self):
        if not self.api_key:
            raise UpstreamError("Payment service not configured")
        stripe.api_key = self.api_key
        stripe.max_network_retries = 2
        stripe.default_http_client = stripe.new_default_http_client(timeout=self.timeout)

    def create_checkout_session(self, amount: int, product_name: str, description: str,
                                metadata: Dict[str, str], customer_email: str, idempotency_key: str):
        self._configure()
        try:
            return stripe.checkout.Session.create(
                mode="payment",
                payment_method_types=["card"],
                customer_email=customer_email,
                line_items=[{
                    "price_data": {
                        "currency": STRIPE_CURRENCY,
                        "product_data": {"name": product_name, "description": description},
                        "unit_amount": amount,
                    },
                    "quantity": 1,
                }],
                metadata=metadata,
                payment_intent_data={"metadata": metadata},
                success_url=f"{FRONTEND_URL}/payment/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{FRONTEND_URL}/payment/cancel",
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout creation failed: {e}")
            raise UpstreamError(f"Payment provider error: {e.user_message or str(e)}") from e

    def retrieve_session(self, session_id: str):
        self._configure()
        try:
            return stripe.checkout.Session.retrieve(session_id)
        except stripe.InvalidRequestError as e:
            raise NotFoundError("Checkout session not found") from e
        except stripe.StripeError as e:
            logger.error(f"Stripe session lookup failed for {session_id}: {e}")
            raise UpstreamError(f"Payment provider error: {e.user_message or str(e)}") from e

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify the signature and return the event as plain JSON."""
        if not self.webhook_secret:
            raise UpstreamError("Webhook secret not configured")
        try:
            stripe.Webhook.construct_event(payload, signature or "", self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning(f"Rejected Stripe webhook: {e}")
            raise ValidationError("Invalid webhook signature")
        return json.loads(payload)


def get_stripe_gateway() -> StripeGateway:
    return StripeGateway()


def _int_or_none(value) -> Optional[int]:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


class PaymentService:
    def __init__(self, db: Session, gateway: Optional[StripeGateway] = None,
                 notifications: Optional[NotificationService] = None):
        self.db = db
        self.gateway = gateway or StripeGateway()
        self.notifications = notifications or NotificationService(db)

    # =====================================================
    # CHECKOUT
    # =====================================================

    def create_checkout_session(self, user: User, consultation_id: Optional[int] = None,
                                document_id: Optional[int] = None) -> Dict[str, Any]:
        if (consultation_id is None) == (document_id is None):
            raise ValidationError("Provide either consultationId or documentId")

        metadata = {"userId": str(user.id)}
        if consultation_id is not None:
            consultation = self.db.get(Consultation, consultation_id)
            if consultation is None or consultation.client_id != user.id:
                raise NotFoundError("Consultation not found")
            if consultation.payment_status == ConsultationPaymentStatus.PAID:
                raise ConflictError("Consultation is already paid")
            if consultation.status == ConsultationStatus.CANCELLED:
                raise ConflictError("Consultation is cancelled")
            amount = consultation.total_fee or 0
            service_type = ServiceType.CONSULTATION
            product_name = f"{consultation.consultation_type.value.capitalize()} consultation"
            description = f"Consultation on {consultation.scheduled_at:%Y-%m-%d %H:%M} UTC"
            metadata["consultationId"] = str(consultation.id)
            key = f"checkout-consultation-{consultation.id}-user-{user.id}"
        else:
            document = self.db.get(GeneratedDocument, document_id)
            if document is None or document.user_id != user.id:
                raise NotFoundError("Document not found")
            if document.payment_status == DocumentPaymentStatus.PAID:
                raise ConflictError("Document is already paid")
            amount = document.document_fee or 0
            service_type = ServiceType.DOCUMENT_DOWNLOAD
            product_name = document.template_name
            description = f"Download of {document.template_name}"
            metadata["documentId"] = str(document.id)
            key = f"checkout-document-{document.id}-user-{user.id}"

        if amount <= 0:
            raise ValidationError("Nothing to pay for this item")

        session = self.gateway.create_checkout_session(
            amount=amount,
            product_name=product_name,
            description=description,
            metadata=metadata,
            customer_email=user.email,
            idempotency_key=key,
        )

        payment = self.db.query(Payment).filter(Payment.stripe_session_id == session.id).first()
        if payment is None:
            payment = Payment(
                user_id=user.id,
                consultation_id=consultation_id,
                document_id=document_id,
                stripe_session_id=session.id,
                amount=amount,
                currency=STRIPE_CURRENCY,
                payment_method="card",
                status=PaymentStatus.PENDING,
                service_type=service_type,
                description=description,
                payment_metadata=dict(metadata, idempotencyKey=key),
            )
            self.db.add(payment)
        if document_id is not None:
            document.payment_session_id = session.id
        self.db.commit()
        logger.info(f"Checkout session {session.id} created for user {user.id} ({service_type.value}, {amount})")
        return {"sessionId": session.id, "url": session.url, "paymentId": payment.id}

    def verify_session(self, session_id: str) -> Dict[str, Any]:
        session = self.gateway.retrieve_session(session_id)
        return {
            "sessionId": session.id,
            "paid": session.payment_status == "paid",
            "paymentStatus": session.payment_status,
            "metadata": dict(session.metadata or {}),
        }

    # =====================================================
    # WEBHOOK
    # =====================================================

    def handle_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, str]:
        event = self.gateway.construct_event(payload, signature)
        return self.process_event(event)

    def process_event(self, event: Dict[str, Any]) -> Dict[str, str]:
        event_type = event.get("type", "")
        data_obj = event.get("data", {}).get("object", {})
        if event_type == "checkout.session.completed":
            return {"status": self._handle_checkout_completed(data_obj)}
        if event_type == "payment_intent.payment_failed":
            return {"status": self._handle_payment_failed(data_obj)}
        logger.debug(f"Unhandled Stripe event: {event_type}")
        return {"status": "ignored"}

    def _handle_checkout_completed(self, session: Dict[str, Any]) -> str:
        session_id = session.get("id")
        metadata = session.get("metadata") or {}
        consultation_id = _int_or_none(metadata.get("consultationId"))
        document_id = _int_or_none(metadata.get("documentId"))
        user_id = _int_or_none(metadata.get("userId"))
        if not session_id or user_id is None:
            logger.error(f"Checkout session {session_id} has no usable userId in metadata")
            return "ignored"
        if consultation_id is None and document_id is None:
            logger.error(f"Checkout session {session_id} has no consultationId or documentId")
            return "ignored"

        payment = self.db.query(Payment).filter(Payment.stripe_session_id == session_id).first()
        if payment is not None and payment.status == PaymentStatus.COMPLETED:
            logger.info(f"Checkout session {session_id} already reconciled")
            return "already_processed"

        amount = session.get("amount_total")
        if payment is None:
            payment = Payment(
                user_id=user_id,
                consultation_id=consultation_id,
                document_id=document_id,
                stripe_session_id=session_id,
                amount=amount or 0,
                currency=session.get("currency") or STRIPE_CURRENCY,
                payment_method="card",
                service_type=ServiceType.CONSULTATION if consultation_id else ServiceType.DOCUMENT_DOWNLOAD,
                payment_metadata=metadata,
            )
            self.db.add(payment)
        payment.status = PaymentStatus.COMPLETED
        payment.stripe_payment_intent_id = session.get("payment_intent")
        if amount is not None:
            payment.amount = amount

        if consultation_id is not None:
            consultation = self.db.get(Consultation, consultation_id)
            if consultation is not None:
                consultation.payment_status = ConsultationPaymentStatus.PAID
                consultation.payment_id = session_id
        if document_id is not None:
            document = self.db.get(GeneratedDocument, document_id)
            if document is not None:
                document.payment_status = DocumentPaymentStatus.PAID
                document.payment_session_id = session_id
                document.paid_at = datetime.utcnow()

        self.notifications.notify(
            user_id,
            "payment_completed",
            "Payment Received",
            "Your payment was successful.",
            {"sessionId": session_id, "amount": payment.amount},
        )
        self.db.commit()
        logger.info(f"Checkout session {session_id} completed for user {user_id}")
        return "processed"

    def _handle_payment_failed(self, intent: Dict[str, Any]) -> str:
        intent_id = intent.get("id")
        metadata = intent.get("metadata") or {}
        consultation_id = _int_or_none(metadata.get("consultationId"))
        document_id = _int_or_none(metadata.get("documentId"))
        user_id = _int_or_none(metadata.get("userId"))
        if not intent_id or user_id is None:
            logger.error(f"Payment intent {intent_id} has no usable userId in metadata")
            return "ignored"

        existing = (
            self.db.query(Payment)
            .filter(Payment.stripe_payment_intent_id == intent_id, Payment.status == PaymentStatus.FAILED)
            .first()
        )
        if existing is not None:
            return "already_processed"

        query = self.db.query(Payment).filter(
            Payment.user_id == user_id,
            Payment.status == PaymentStatus.PENDING,
        )
        if consultation_id is not None:
            query = query.filter(Payment.consultation_id == consultation_id)
        else:
            query = query.filter(Payment.document_id == document_id)
        payment = query.order_by(Payment.id.desc()).first()
        if payment is None:
            payment = Payment(
                user_id=user_id,
                consultation_id=consultation_id,
                document_id=document_id,
                amount=intent.get("amount") or 0,
                currency=intent.get("currency") or STRIPE_CURRENCY,
                payment_method="card",
                service_type=ServiceType.CONSULTATION if consultation_id else ServiceType.DOCUMENT_DOWNLOAD,
                payment_metadata=metadata,
            )
            self.db.add(payment)
        payment.status = PaymentStatus.FAILED
        payment.stripe_payment_intent_id = intent_id

        if consultation_id is not None:
            consultation = self.db.get(Consultation, consultation_id)
            if consultation is not None and consultation.payment_status != ConsultationPaymentStatus.PAID:
                consultation.payment_status = ConsultationPaymentStatus.FAILED
        if document_id is not None:
            document = self.db.get(GeneratedDocument, document_id)
            if document is not None and document.payment_status != DocumentPaymentStatus.PAID:
                document.payment_status = DocumentPaymentStatus.FAILED

        self.notifications.notify(
            user_id,
            "payment_failed",
            "Payment Failed",
            "Your payment could not be completed. Please try again.",
            {"paymentIntentId": intent_id},
        )
        self.db.commit()
        logger.warning(f"Payment intent {intent_id} failed for user {user_id}")
        return "processed"

    # =====================================================
    # HISTORY
    # =====================================================

    def list_payments(self, user: User, status: Optional[str] = None, service_type: Optional[str] = None,
                      page: int = 1, limit: int = 20) -> Tuple[List[Payment], int]:
        query = self.db.query(Payment).filter(Payment.user_id == user.id)
        if status:
            try:
                query = query.filter(Payment.status == PaymentStatus(status))
            except ValueError:
                raise ValidationError(f"Invalid payment status '{status}'")
        if service_type:
            try:
                query = query.filter(Payment.service_type == ServiceType(service_type))
            except ValueError:
                raise ValidationError(f"Invalid service type '{service_type}'")
        total = query.count()
        rows = (
            query.order_by(Payment.created_at.desc(), Payment.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return rows, total

    def payment_summary(self, user: User) -> Dict[str, int]:
        payments = self.db.query(Payment).filter(Payment.user_id == user.id).all()
        completed = [p for p in payments if p.status == PaymentStatus.COMPLETED]
        return {
            "totalPayments": len(payments),
            "successfulPayments": len(completed),
            "failedPayments": sum(1 for p in payments if p.status == PaymentStatus.FAILED),
            "totalSpent": sum(p.amount for p in completed if p.service_type != ServiceType.CASE_COMPLETION),
            "totalEarned": sum(p.amount for p in completed if p.service_type == ServiceType.CASE_COMPLETION),
            "consultationPayments": sum(1 for p in payments if p.service_type == ServiceType.CONSULTATION),
            "documentPayments": sum(1 for p in payments if p.service_type == ServiceType.DOCUMENT_DOWNLOAD),
        }

    # =====================================================
    # EARNINGS & WITHDRAWALS
    # =====================================================

    def _reserved(self, user_id: int) -> int:
        reserved = (
            self.db.query(func.coalesce(func.sum(Withdrawal.amount), 0))
            .filter(
                Withdrawal.user_id == user_id,
                Withdrawal.status.in_([WithdrawalStatus.PENDING, WithdrawalStatus.APPROVED]),
            )
            .scalar()
        )
        return int(reserved or 0)

    def earnings(self, user: User) -> Dict[str, int]:
        kind = professional_kind_of(user)
        if kind is None:
            raise AuthorizationError("Only professionals have earnings")
        profile = get_profile(self.db, kind, user.id)
        total = profile.total_earnings or 0
        reserved = self._reserved(user.id)
        completed_cases = (
            self.db.query(Payment)
            .filter(
                Payment.user_id == user.id,
                Payment.service_type == ServiceType.CASE_COMPLETION,
                Payment.status == PaymentStatus.COMPLETED,
            )
            .count()
        )
        return {
            "totalEarnings": total,
            "pendingWithdrawals": reserved,
            "availableBalance": total - reserved,
            "completedCases": completed_cases,
        }

    def request_withdrawal(self, user: User, amount, method: str) -> Withdrawal:
        kind = professional_kind_of(user)
        if kind is None:
            raise AuthorizationError("Only professionals can request withdrawals")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError("Withdrawal amount must be a positive whole number of minor units")
        if not (method or "").strip():
            raise ValidationError("Withdrawal method is required")

        profile = get_profile(self.db, kind, user.id)
        available = (profile.total_earnings or 0) - self._reserved(user.id)
        if amount > available:
            raise ValidationError(f"Insufficient earnings: {available} available")

        withdrawal = Withdrawal(user_id=user.id, amount=amount, method=method.strip(), status=WithdrawalStatus.PENDING)
        self.db.add(withdrawal)
        self.notifications.notify_admins(
            "withdrawal_requested",
            "Withdrawal Requested",
            f"{user.name or user.email} requested a withdrawal of {amount}",
            {"userId": user.id, "amount": amount},
        )
        self.db.commit()
        self.db.refresh(withdrawal)
        logger.info(f"Withdrawal {withdrawal.id} of {amount} requested by user {user.id}")
        return withdrawal
