import json
import os
from datetime import timedelta
from types import SimpleNamespace

# Keep the application's own engine off disk while the test suite imports it
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from advoqat.auth.utils import create_access_token
from advoqat.database import Base, get_db
from advoqat.errors import UpstreamError, ValidationError
from advoqat.models import (
    Barrister, BarristerStatus, Freelancer, OnboardingStage, User, UserRole, VerificationStatus
)
from advoqat.services.assistant_service import AssistantReply, get_legal_assistant
from advoqat.services.document_service import get_document_generator
from advoqat.services.email_service import get_email_client
from advoqat.services.payment_service import get_stripe_gateway
from advoqat.services.pricing import PricingPolicy, get_pricing
from advoqat.services.storage import get_storage
from main import app


class FakeStorage:
    def __init__(self):
        self.uploads = []

    def upload(self, payload, folder):
        self.uploads.append((folder, payload.filename))
        return f"https://files.test/{folder}/{payload.filename}"


class FailingStorage:
    def upload(self, payload, folder):
        raise UpstreamError("Document storage failed: bucket unreachable")


class FakeEmailClient:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, to, subject, html):
        if self.fail:
            raise UpstreamError("Email provider rejected message: boom")
        self.sent.append((to, subject))
        return f"msg_{len(self.sent)}"


class FakeGateway:
    def __init__(self):
        self.created = []

    def create_checkout_session(self, amount, product_name, description, metadata, customer_email,
                                idempotency_key):
        self.created.append({"amount": amount, "metadata": metadata, "idempotency_key": idempotency_key})
        session_id = f"cs_test_{idempotency_key}"
        return SimpleNamespace(id=session_id, url=f"https://checkout.test/{session_id}")

    def retrieve_session(self, session_id):
        return SimpleNamespace(id=session_id, payment_status="paid", metadata={"userId": "1"})

    def construct_event(self, payload, signature):
        if signature != "valid-signature":
            raise ValidationError("Invalid webhook signature")
        return json.loads(payload)


class FakeGenerator:
    def __init__(self):
        self.calls = []

    def draft(self, template, form_data):
        self.calls.append((template["name"], form_data))
        return f"{template['name']}\n\n1. Parties\n" + "\n".join(f"{k}: {v}" for k, v in form_data.items())


class FakeAssistant:
    model = "fake-legal-model"

    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def reply(self, history, legal_area="general"):
        self.calls.append((legal_area, list(history)))
        if self.fail:
            raise UpstreamError("AI service error: rate limited")
        return AssistantReply(f"Answer {len(self.calls)} on {legal_area}", 42, self.model)

    def stream(self, history, legal_area="general"):
        self.calls.append((legal_area, list(history)))
        if self.fail:
            raise UpstreamError("AI service error: rate limited")
        yield "Streamed "
        yield "answer"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def email_client():
    return FakeEmailClient()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def assistant():
    return FakeAssistant()


@pytest.fixture
def pricing():
    return PricingPolicy(case_completion_fee=15000, document_fee=1000, platform_fee_percent=0)


@pytest.fixture
def client(engine, storage, email_client, gateway, generator, pricing, assistant):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_email_client] = lambda: email_client
    app.dependency_overrides[get_stripe_gateway] = lambda: gateway
    app.dependency_overrides[get_document_generator] = lambda: generator
    app.dependency_overrides[get_pricing] = lambda: pricing
    app.dependency_overrides[get_legal_assistant] = lambda: assistant
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()

# =====================================================
# DATA HELPERS
# =====================================================

def make_user(db, email, role=UserRole.USER, name=None):
    user = User(email=email, name=name or email.split("@")[0].title(), role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_freelancer(db, email, expertise=("family law",), approved=True, available=True, score=0.0, earnings=0):
    user = make_user(db, email, role=UserRole.FREELANCER)
    profile = Freelancer(
        user_id=user.id,
        name=user.name,
        email=email,
        phone="07000000000",
        experience=5,
        expertise_areas=list(expertise),
        verification_status=VerificationStatus.APPROVED if approved else VerificationStatus.PENDING,
        is_available=available,
        performance_score=score,
        total_earnings=earnings,
        chat_fee=2000,
        video_fee=5000,
        voice_fee=3000,
    )
    db.add(profile)
    db.commit()
    db.refresh(user)
    return user


def make_barrister(db, email, expertise=("commercial law",), approved=True, available=True,
                   stage=OnboardingStage.COMPLETED):
    user = make_user(db, email, role=UserRole.BARRISTER)
    profile = Barrister(
        user_id=user.id,
        name=user.name,
        email=email,
        year_of_call=2010,
        bsb_number="BSB123",
        expertise_areas=list(expertise),
        status=BarristerStatus.APPROVED if approved else BarristerStatus.PENDING_VERIFICATION,
        stage=stage,
        is_available=available,
        chat_fee=4000,
        video_fee=9000,
        voice_fee=6000,
    )
    db.add(profile)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user):
    token = create_access_token(
        data={"sub": user.email, "role": user.role.value},
        expires_delta=timedelta(minutes=30),
    )
    return {"Authorization": f"Bearer {token}"}
