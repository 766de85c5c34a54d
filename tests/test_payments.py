import json
from datetime import datetime

import pytest

from advoqat.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from advoqat.models import (
    ConsultationPaymentStatus, Notification, Payment, PaymentStatus, ServiceType, Withdrawal
)
from advoqat.services.consultation_service import ConsultationScheduler
from advoqat.services.payment_service import PaymentService
from advoqat.services.pricing import PricingPolicy

from conftest import auth_headers, make_freelancer, make_user

SLOT = datetime(2030, 5, 1, 10, 0)


@pytest.fixture
def service(db, gateway):
    return PaymentService(db, gateway=gateway)


@pytest.fixture
def booked(db):
    """A client with an unpaid 5500 video consultation."""
    fl = make_freelancer(db, "fl@example.com")
    client_user = make_user(db, "client@example.com")
    scheduler = ConsultationScheduler(db, pricing=PricingPolicy(platform_fee_percent=10))
    consultation = scheduler.book(client_user.id, fl.id, SLOT, "video")
    return client_user, consultation


def completed_event(session_id, metadata, amount=5500):
    return {
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": session_id,
            "payment_intent": "pi_123",
            "amount_total": amount,
            "currency": "usd",
            "metadata": metadata,
        }},
    }

# =====================================================
# CHECKOUT
# =====================================================

def test_checkout_creates_a_pending_payment(db, service, gateway, booked):
    client_user, consultation = booked
    result = service.create_checkout_session(client_user, consultation_id=consultation.id)

    key = f"checkout-consultation-{consultation.id}-user-{client_user.id}"
    assert result["sessionId"] == f"cs_test_{key}"
    assert gateway.created[0]["amount"] == 5500
    assert gateway.created[0]["metadata"] == {"userId": str(client_user.id), "consultationId": str(consultation.id)}

    payment = db.get(Payment, result["paymentId"])
    assert payment.status == PaymentStatus.PENDING
    assert payment.service_type == ServiceType.CONSULTATION
    assert payment.payment_metadata["idempotencyKey"] == key


def test_repeated_checkout_reuses_the_payment_row(db, service, booked):
    client_user, consultation = booked
    first = service.create_checkout_session(client_user, consultation_id=consultation.id)
    second = service.create_checkout_session(client_user, consultation_id=consultation.id)
    assert first == second
    assert db.query(Payment).count() == 1


def test_checkout_needs_exactly_one_item(service, booked):
    client_user, consultation = booked
    with pytest.raises(ValidationError):
        service.create_checkout_session(client_user)
    with pytest.raises(ValidationError):
        service.create_checkout_session(client_user, consultation_id=consultation.id, document_id=1)


def test_checkout_for_someone_elses_consultation(db, service, booked):
    _, consultation = booked
    stranger = make_user(db, "stranger@example.com")
    with pytest.raises(NotFoundError):
        service.create_checkout_session(stranger, consultation_id=consultation.id)

# =====================================================
# WEBHOOK
# =====================================================

def test_completed_checkout_marks_everything_paid(db, service, booked):
    client_user, consultation = booked
    checkout = service.create_checkout_session(client_user, consultation_id=consultation.id)
    metadata = {"userId": str(client_user.id), "consultationId": str(consultation.id)}

    result = service.process_event(completed_event(checkout["sessionId"], metadata))

    assert result == {"status": "processed"}
    payment = db.get(Payment, checkout["paymentId"])
    assert payment.status == PaymentStatus.COMPLETED
    assert payment.stripe_payment_intent_id == "pi_123"
    db.refresh(consultation)
    assert consultation.payment_status == ConsultationPaymentStatus.PAID
    assert db.query(Notification).filter(Notification.type == "payment_completed").count() == 1


def test_replayed_event_is_a_no_op(db, service, booked):
    client_user, consultation = booked
    checkout = service.create_checkout_session(client_user, consultation_id=consultation.id)
    event = completed_event(checkout["sessionId"], {"userId": str(client_user.id), "consultationId": str(consultation.id)})

    service.process_event(event)
    assert service.process_event(event) == {"status": "already_processed"}
    assert db.query(Payment).count() == 1
    assert db.query(Notification).filter(Notification.type == "payment_completed").count() == 1


def test_event_without_user_is_ignored(db, service):
    event = completed_event("cs_orphan", {"consultationId": "4"})
    assert service.process_event(event) == {"status": "ignored"}
    assert db.query(Payment).count() == 0


def test_unknown_event_type_is_ignored(service):
    assert service.process_event({"type": "customer.created", "data": {"object": {}}}) == {"status": "ignored"}


def test_failed_payment_intent(db, service, booked):
    client_user, consultation = booked
    checkout = service.create_checkout_session(client_user, consultation_id=consultation.id)
    event = {
        "type": "payment_intent.payment_failed",
        "data": {"object": {
            "id": "pi_failed",
            "amount": 5500,
            "metadata": {"userId": str(client_user.id), "consultationId": str(consultation.id)},
        }},
    }

    assert service.process_event(event) == {"status": "processed"}
    assert service.process_event(event) == {"status": "already_processed"}
    assert db.get(Payment, checkout["paymentId"]).status == PaymentStatus.FAILED
    db.refresh(consultation)
    assert consultation.payment_status == ConsultationPaymentStatus.FAILED


def test_paid_consultation_cannot_be_checked_out_again(db, service, booked):
    client_user, consultation = booked
    checkout = service.create_checkout_session(client_user, consultation_id=consultation.id)
    service.process_event(completed_event(
        checkout["sessionId"], {"userId": str(client_user.id), "consultationId": str(consultation.id)}
    ))
    with pytest.raises(ConflictError):
        service.create_checkout_session(client_user, consultation_id=consultation.id)

# =====================================================
# EARNINGS & WITHDRAWALS
# =====================================================

def test_withdrawal_reserves_earnings(db, service):
    fl = make_freelancer(db, "fl@example.com", earnings=10000)

    withdrawal = service.request_withdrawal(fl, 6000, "bank_transfer")
    assert withdrawal.amount == 6000

    earnings = service.earnings(fl)
    assert earnings == {
        "totalEarnings": 10000,
        "pendingWithdrawals": 6000,
        "availableBalance": 4000,
        "completedCases": 0,
    }
    with pytest.raises(ValidationError, match="Insufficient earnings"):
        service.request_withdrawal(fl, 5000, "bank_transfer")


@pytest.mark.parametrize("amount", [0, -5, 10.5, True])
def test_withdrawal_amount_must_be_positive_int(db, service, amount):
    fl = make_freelancer(db, "fl@example.com", earnings=10000)
    with pytest.raises(ValidationError):
        service.request_withdrawal(fl, amount, "bank_transfer")
    assert db.query(Withdrawal).count() == 0


def test_clients_have_no_earnings(db, service):
    client_user = make_user(db, "client@example.com")
    with pytest.raises(AuthorizationError):
        service.earnings(client_user)
    with pytest.raises(AuthorizationError):
        service.request_withdrawal(client_user, 100, "bank_transfer")

# =====================================================
# HTTP SURFACE
# =====================================================

def test_webhook_over_http(client, db, booked):
    client_user, consultation = booked
    checkout = client.post(
        "/api/payments/create-checkout-session",
        json={"consultation_id": consultation.id},
        headers=auth_headers(client_user),
    )
    assert checkout.status_code == 200
    body = json.dumps(completed_event(
        checkout.json()["sessionId"], {"userId": str(client_user.id), "consultationId": str(consultation.id)}
    ))

    rejected = client.post("/api/payments/webhook", content=body, headers={"Stripe-Signature": "forged"})
    assert rejected.status_code == 400
    assert rejected.json() == {"code": "validation_error", "message": "Invalid webhook signature"}

    accepted = client.post("/api/payments/webhook", content=body, headers={"Stripe-Signature": "valid-signature"})
    replay = client.post("/api/payments/webhook", content=body, headers={"Stripe-Signature": "valid-signature"})
    assert accepted.json() == {"status": "processed"}
    assert replay.json() == {"status": "already_processed"}

    summary = client.get("/api/payments/summary", headers=auth_headers(client_user)).json()
    assert summary["successfulPayments"] == 1
    assert summary["totalSpent"] == 5500

    history = client.get("/api/payments/history?status=completed", headers=auth_headers(client_user)).json()
    assert history["total"] == 1
    assert history["payments"][0]["service_type"] == "consultation"


def test_history_rejects_unknown_status(client, db):
    user = make_user(db, "client@example.com")
    response = client.get("/api/payments/history?status=bogus", headers=auth_headers(user))
    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"


def test_freelancer_withdrawal_over_http(client, db):
    fl = make_freelancer(db, "fl@example.com", earnings=3000)
    ok = client.post("/api/freelancers/withdraw", json={"amount": 2000, "method": "paypal"}, headers=auth_headers(fl))
    too_much = client.post("/api/freelancers/withdraw", json={"amount": 2000, "method": "paypal"}, headers=auth_headers(fl))
    assert ok.status_code == 201
    assert too_much.status_code == 400
    assert client.get("/api/freelancers/earnings", headers=auth_headers(fl)).json()["availableBalance"] == 1000


def test_verify_session(client, db):
    user = make_user(db, "client@example.com")
    response = client.get("/api/payments/verify-session/cs_test_abc", headers=auth_headers(user))
    assert response.json()["paid"] is True
