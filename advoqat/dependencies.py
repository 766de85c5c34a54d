"""Service factories and access checks shared by the routers."""
from fastapi import BackgroundTasks, Depends
from sqlalchemy.orm import Session

from advoqat.database import get_db
from advoqat.errors import AuthorizationError
from advoqat.models import User, UserRole
from advoqat.services.assistant_service import ChatService, LegalAssistant, get_legal_assistant
from advoqat.services.case_service import CaseService
from advoqat.services.consultation_service import ConsultationScheduler
from advoqat.services.document_service import DocumentGenerator, DocumentService, get_document_generator
from advoqat.services.email_service import EmailClient
from advoqat.services.freelancer_service import FreelancerService
from advoqat.services.identity import UserRef, require_user
from advoqat.services.notification_service import NotificationService, drain_outbox
from advoqat.services.onboarding_service import OnboardingService
from advoqat.services.payment_service import PaymentService, StripeGateway, get_stripe_gateway
from advoqat.services.pricing import PricingPolicy, get_pricing
from advoqat.services.storage import ObjectStorage, get_storage

ADMIN_ROLES = (UserRole.ADMIN, UserRole.SUPER_ADMIN)


def ensure_self_or_admin(db: Session, ref: UserRef, current_user: User, label: str = "User") -> User:
    user = require_user(db, ref, label=label)
    if user.id != current_user.id and current_user.role not in ADMIN_ROLES:
        raise AuthorizationError("You can only access your own records")
    return user


def schedule_outbox_drain(background_tasks: BackgroundTasks, db: Session, email_client: EmailClient):
    background_tasks.add_task(drain_outbox, db.get_bind(), email_client)


def get_case_service(
    db: Session = Depends(get_db),
    pricing: PricingPolicy = Depends(get_pricing),
    storage: ObjectStorage = Depends(get_storage),
) -> CaseService:
    return CaseService(db, pricing=pricing, storage=storage)


def get_consultation_scheduler(
    db: Session = Depends(get_db),
    pricing: PricingPolicy = Depends(get_pricing),
) -> ConsultationScheduler:
    return ConsultationScheduler(db, pricing=pricing)


def get_notification_service(db: Session = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


def get_freelancer_service(db: Session = Depends(get_db)) -> FreelancerService:
    return FreelancerService(db)


def get_onboarding_service(
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
) -> OnboardingService:
    return OnboardingService(db, storage=storage)


def get_payment_service(
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> PaymentService:
    return PaymentService(db, gateway=gateway)


def get_document_service(
    db: Session = Depends(get_db),
    generator: DocumentGenerator = Depends(get_document_generator),
    pricing: PricingPolicy = Depends(get_pricing),
) -> DocumentService:
    return DocumentService(db, generator=generator, pricing=pricing)


def get_chat_service(
    db: Session = Depends(get_db),
    assistant: LegalAssistant = Depends(get_legal_assistant),
) -> ChatService:
    return ChatService(db, assistant=assistant)
