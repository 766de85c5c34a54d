"""
Public Access Barrister onboarding.

Stages run eligibility_check -> document_upload_completed ->
professional_information -> review -> completed and never move backwards.
The verification status is decided by an admin once the barrister has
submitted for review; INCOMPLETE sends the application back without
rewinding the stage.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from advoqat.auth.utils import get_password_hash
from advoqat.errors import (
    ConflictError, InvalidTransitionError, NotAvailableError, NotFoundError, UpstreamError,
    ValidationError
)
from advoqat.models import (
    Barrister, BarristerStatus, Consultation, ConsultationStatus, OnboardingStage,
    User, UserRole
)
from advoqat.services.email_service import (
    barrister_review_email, barrister_welcome_email, document_upload_confirmation_email
)
from advoqat.services.identity import UserRef, resolve_user
from advoqat.services.notification_service import NotificationService
from advoqat.services.state_machines import ONBOARDING
from advoqat.services.storage import FilePayload, ObjectStorage

logger = logging.getLogger(__name__)

ELIGIBILITY_QUESTIONS = (
    "has_practising_certificate",
    "is_public_access_registered",
    "has_public_access_training",
    "has_bmif_insurance",
    "in_good_standing",
)

REQUIRED_DOCUMENTS = {
    "practising_certificate": "practising_certificate_url",
    "public_access_accreditation": "public_access_accreditation_url",
    "bmif_insurance": "bmif_insurance_url",
}
OPTIONAL_DOCUMENTS = {
    "qualified_person_document": "qualified_person_document_url",
}

PRICING_MODELS = ("hourly", "fixed_fee", "package")

PROFILE_FIELDS = (
    "name", "phone", "chambers_name", "practice_address", "biography", "languages",
    "expertise_areas", "hourly_rate", "chat_fee", "video_fee", "voice_fee",
)


def years_since_call(year_of_call: int) -> int:
    return datetime.utcnow().year - year_of_call


class OnboardingService:
    def __init__(
        self,
        db: Session,
        notifications: Optional[NotificationService] = None,
        storage: Optional[ObjectStorage] = None,
    ):
        self.db = db
        self.notifications = notifications or NotificationService(db)
        self.storage = storage

    def get(self, ref: UserRef) -> Barrister:
        user = resolve_user(self.db, ref)
        profile = user.barrister if user else None
        if profile is None:
            raise NotFoundError("Barrister not found")
        return profile

    def _set_stage(self, profile: Barrister, target: OnboardingStage):
        profile.stage = ONBOARDING.advance(profile.stage, target)
        profile.user.onboarding_stage = profile.stage.value

    # =====================================================
    # STAGE 1: ACCOUNT + ELIGIBILITY
    # =====================================================

    def register(self, data: Dict[str, Any]) -> Barrister:
        email = (data.get("email") or "").strip().lower()
        if not email or not data.get("name") or not data.get("password"):
            raise ValidationError("Missing required fields: email, name, password")
        if len(data["password"]) < 6:
            raise ValidationError("Password must be at least 6 characters long")
        year_of_call = data.get("year_of_call")
        if not year_of_call or not data.get("bsb_number"):
            raise ValidationError("Year of call and BSB number are required")
        if year_of_call > datetime.utcnow().year:
            raise ValidationError("Year of call cannot be in the future")
        if not data.get("agree_to_terms"):
            raise ValidationError("You must agree to join Advoqat as a Public Access Barrister")

        answers = data.get("eligibility") or {}
        if not all(answers.get(question) is True for question in ELIGIBILITY_QUESTIONS):
            raise ValidationError("All eligibility criteria must be met")
        supervisor_details = data.get("supervisor_details")
        if years_since_call(year_of_call) < 3 and not supervisor_details:
            raise ValidationError("Supervisor details are required if you are under 3 years' call")

        existing = self.db.query(User).filter(User.email == email).first()
        if existing is not None and existing.barrister is not None:
            raise ConflictError("A barrister account already exists for this email")
        if existing is not None:
            # unauthenticated route: never adopt an existing account
            raise ConflictError("Email already registered")
        user = User(email=email)
        self.db.add(user)
        user.name = data["name"]
        user.phone = data.get("phone")
        user.password_hash = get_password_hash(data["password"])
        user.role = UserRole.BARRISTER
        user.profile_status = "pending"
        user.onboarding_stage = OnboardingStage.ELIGIBILITY_CHECK.value

        eligibility = {question: answers.get(question) for question in ELIGIBILITY_QUESTIONS}
        eligibility["supervisor_details"] = supervisor_details
        profile = Barrister(
            user=user,
            name=data["name"],
            email=email,
            phone=data.get("phone"),
            year_of_call=year_of_call,
            bsb_number=data["bsb_number"],
            expertise_areas=list(data.get("expertise_areas") or []),
            eligibility_answers=eligibility,
            status=BarristerStatus.PENDING_VERIFICATION,
            stage=OnboardingStage.ELIGIBILITY_CHECK,
            is_available=False,
        )
        self.db.add(profile)

        subject, html = barrister_welcome_email(user.name)
        self.notifications.queue_email(email, subject, html, "barrister_welcome")
        self.db.commit()
        self.db.refresh(profile)
        logger.info(f"Barrister account registered for user {user.id}")
        return profile

    # =====================================================
    # STAGE 2: DOCUMENTS
    # =====================================================

    def upload_documents(
        self,
        user: User,
        files: Dict[str, FilePayload],
        qualified_person_name: Optional[str] = None,
        qualified_person_email: Optional[str] = None,
    ) -> Barrister:
        profile = self.get(user.id)
        missing = [name for name in REQUIRED_DOCUMENTS if files.get(name) is None]
        if missing:
            raise ValidationError(f"Missing required documents: {', '.join(missing)}")
        if profile.stage == OnboardingStage.COMPLETED:
            raise InvalidTransitionError("Onboarding is already completed")
        if self.storage is None:
            raise UpstreamError("Object storage is not configured")

        for name, column in {**REQUIRED_DOCUMENTS, **OPTIONAL_DOCUMENTS}.items():
            payload = files.get(name)
            if payload is not None:
                setattr(profile, column, self.storage.upload(payload, folder=f"barristers/{user.id}/{name}"))
        if qualified_person_name:
            profile.qualified_person_name = qualified_person_name
        if qualified_person_email:
            profile.qualified_person_email = qualified_person_email.lower()

        self._set_stage(profile, OnboardingStage.DOCUMENT_UPLOAD_COMPLETED)

        subject, html = document_upload_confirmation_email(profile.name)
        self.notifications.queue_email(profile.email, subject, html, "barrister_documents_received")
        self.notifications.notify_admins(
            "barrister_documents_uploaded",
            "Barrister Documents Uploaded",
            f"{profile.name} uploaded verification documents",
            {"userId": user.id},
        )
        self.db.commit()
        self.db.refresh(profile)
        logger.info(f"Barrister {user.id} uploaded onboarding documents")
        return profile

    # =====================================================
    # STAGE 3: PROFESSIONAL INFORMATION
    # =====================================================

    def save_professional_info(self, user: User, info: Dict[str, Any]) -> Barrister:
        profile = self.get(user.id)
        ONBOARDING.require_stage(profile.stage, OnboardingStage.DOCUMENT_UPLOAD_COMPLETED)

        if not info.get("chambers_name") or not info.get("practice_address"):
            raise ValidationError("Chambers name and practice address are required")
        pricing_model = info.get("pricing_model")
        if pricing_model not in PRICING_MODELS:
            raise ValidationError("Valid pricing model is required (hourly, fixed_fee, or package)")
        hourly_rate = info.get("hourly_rate")
        if pricing_model == "hourly" and (not hourly_rate or hourly_rate <= 0):
            raise ValidationError("Hourly rate is required and must be greater than 0")

        profile.chambers_name = info["chambers_name"]
        profile.practice_address = info["practice_address"]
        profile.pricing_model = pricing_model
        profile.hourly_rate = hourly_rate
        for field in ("biography", "languages"):
            if info.get(field) is not None:
                setattr(profile, field, info[field])
        if info.get("areas_of_practice"):
            profile.expertise_areas = list(info["areas_of_practice"])

        self._set_stage(profile, OnboardingStage.PROFESSIONAL_INFORMATION)
        self.db.commit()
        self.db.refresh(profile)
        return profile

    # =====================================================
    # STAGE 4: REVIEW
    # =====================================================

    def submit_for_review(self, user: User) -> Barrister:
        profile = self.get(user.id)
        ONBOARDING.require_stage(profile.stage, OnboardingStage.PROFESSIONAL_INFORMATION)
        if profile.status == BarristerStatus.INCOMPLETE:
            profile.status = ONBOARDING.ensure_status(profile.status, BarristerStatus.PENDING_VERIFICATION)
        self._set_stage(profile, OnboardingStage.REVIEW)
        self.notifications.notify_admins(
            "barrister_review_requested",
            "Barrister Ready for Review",
            f"{profile.name} has submitted their application for review",
            {"userId": user.id},
        )
        self.db.commit()
        self.db.refresh(profile)
        return profile

    def review(self, ref: UserRef, decision: str, notes: Optional[str] = None) -> Barrister:
        """Admin decision. Approval needs a submitted application; rejection does not."""
        profile = self.get(ref)
        target = ONBOARDING.ensure_status(profile.status, decision)
        if target == BarristerStatus.APPROVED:
            ONBOARDING.require_stage(profile.stage, OnboardingStage.REVIEW)
            self._set_stage(profile, OnboardingStage.COMPLETED)
        if target == BarristerStatus.REJECTED:
            profile.is_available = False

        profile.status = target
        profile.verification_notes = notes
        profile.user.profile_status = target.value.lower()

        subject, html = barrister_review_email(profile.name, target.value, notes)
        self.notifications.queue_email(profile.email, subject, html, "barrister_review")
        self.notifications.notify(
            profile.user_id, "barrister_review", subject, subject,
            {"status": target.value, "notes": notes},
        )
        self.db.commit()
        self.db.refresh(profile)
        logger.info(f"Barrister {profile.user_id} reviewed: {target.value}")
        return profile

    # =====================================================
    # PROFILE & DASHBOARD
    # =====================================================

    def update_profile(self, user: User, data: Dict[str, Any]) -> Barrister:
        profile = self.get(user.id)
        for field in PROFILE_FIELDS:
            if data.get(field) is not None:
                setattr(profile, field, data[field])
        self.db.commit()
        self.db.refresh(profile)
        return profile

    def set_availability(self, user: User, is_available: bool) -> Barrister:
        profile = self.get(user.id)
        if is_available and not profile.is_verified:
            raise NotAvailableError("Only approved barristers can take work")
        profile.is_available = bool(is_available)
        self.db.commit()
        self.db.refresh(profile)
        return profile

    def dashboard(self, user: User, case_stats: Dict[str, int], unread_notifications: int) -> Dict[str, Any]:
        profile = self.get(user.id)
        upcoming = (
            self.db.query(Consultation)
            .filter(
                Consultation.professional_id == user.id,
                Consultation.status.in_([
                    ConsultationStatus.SCHEDULED, ConsultationStatus.RESCHEDULED, ConsultationStatus.CONFIRMED,
                ]),
                Consultation.scheduled_at >= datetime.utcnow(),
            )
            .count()
        )
        return {
            "status": profile.status.value,
            "stage": profile.stage.value,
            "isAvailable": bool(profile.is_available),
            "totalEarnings": profile.total_earnings or 0,
            "performanceScore": profile.performance_score or 0.0,
            "cases": case_stats,
            "upcomingConsultations": upcoming,
            "unreadNotifications": unread_notifications,
        }
