import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from advoqat.errors import ConflictError, NotAvailableError, NotFoundError, ValidationError
from advoqat.models import Freelancer, User, UserRole, VerificationStatus
from advoqat.services.assignment_service import expertise_matches
from advoqat.services.identity import UserRef, resolve_user
from advoqat.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("name", "phone", "experience", "expertise_areas", "chat_fee", "video_fee", "voice_fee")
CREDENTIAL_FIELDS = ("id_card_url", "bar_certificate_url", "additional_documents")


class FreelancerService:
    def __init__(self, db: Session, notifications: Optional[NotificationService] = None):
        self.db = db
        self.notifications = notifications or NotificationService(db)

    def get(self, ref: UserRef) -> Freelancer:
        user = resolve_user(self.db, ref)
        profile = user.freelancer if user else None
        if profile is None:
            raise NotFoundError("Freelancer not found")
        return profile

    def register(self, user: User, data: Dict[str, Any]) -> Freelancer:
        if user.freelancer is not None:
            raise ConflictError("Freelancer profile already exists")
        if user.barrister is not None:
            raise ConflictError("User is already registered as a barrister")
        missing = [field for field in ("name", "phone", "experience") if data.get(field) in (None, "")]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        email = (data.get("email") or user.email).lower()
        if self.db.query(Freelancer).filter(Freelancer.email == email).first():
            raise ConflictError("A freelancer with this email already exists")

        profile = Freelancer(
            user_id=user.id,
            name=data["name"],
            email=email,
            phone=data["phone"],
            experience=data["experience"],
            expertise_areas=list(data.get("expertise_areas") or []),
            id_card_url=data.get("id_card_url"),
            bar_certificate_url=data.get("bar_certificate_url"),
            additional_documents=list(data.get("additional_documents") or []),
            verification_status=VerificationStatus.PENDING,
            is_available=False,
            chat_fee=data.get("chat_fee") or 0,
            video_fee=data.get("video_fee") or 0,
            voice_fee=data.get("voice_fee") or 0,
        )
        self.db.add(profile)
        if user.role not in (UserRole.ADMIN, UserRole.SUPER_ADMIN):
            user.role = UserRole.FREELANCER
        self.notifications.notify_admins(
            "freelancer_registered",
            "New Freelancer Registration",
            f"{profile.name} registered as a freelancer and is awaiting verification",
            {"userId": user.id},
        )
        self.db.commit()
        self.db.refresh(profile)
        logger.info(f"Freelancer profile created for user {user.id}")
        return profile

    def list_all(self) -> List[Freelancer]:
        return self.db.query(Freelancer).order_by(Freelancer.created_at.desc(), Freelancer.id.desc()).all()

    def search(self, expertise_area: Optional[str] = None, available_only: bool = False) -> List[Freelancer]:
        query = self.db.query(Freelancer).filter(Freelancer.verification_status == VerificationStatus.APPROVED)
        if available_only:
            query = query.filter(Freelancer.is_available.is_(True))
        rows = query.order_by(Freelancer.performance_score.desc(), Freelancer.id).all()
        return [row for row in rows if expertise_matches(row.expertise_areas, expertise_area)]

    def update_profile(self, user: User, data: Dict[str, Any]) -> Freelancer:
        profile = self.get(user.id)
        for field in PROFILE_FIELDS:
            if data.get(field) is not None:
                setattr(profile, field, data[field])
        self.db.commit()
        self.db.refresh(profile)
        return profile

    def update_credentials(self, user: User, data: Dict[str, Any]) -> Freelancer:
        profile = self.get(user.id)
        for field in CREDENTIAL_FIELDS:
            if data.get(field) is not None:
                setattr(profile, field, data[field])
        # New credentials need another look from an admin
        if profile.verification_status == VerificationStatus.REJECTED:
            profile.verification_status = VerificationStatus.PENDING
        self.db.commit()
        self.db.refresh(profile)
        return profile

    def set_availability(self, user: User, is_available: bool) -> Freelancer:
        profile = self.get(user.id)
        if is_available and not profile.is_verified:
            raise NotAvailableError("Only approved freelancers can take work")
        profile.is_available = bool(is_available)
        self.db.commit()
        self.db.refresh(profile)
        logger.info(f"Freelancer {user.id} availability set to {profile.is_available}")
        return profile

    def ratings(self, ref: UserRef) -> Dict[str, Any]:
        profile = self.get(ref)
        return {"performanceScore": profile.performance_score or 0.0, "feedbackCount": profile.feedback_count or 0}

    def verify(self, ref: UserRef, status: str, notes: Optional[str] = None) -> Freelancer:
        """Admin decision on a freelancer's credentials."""
        try:
            decision = VerificationStatus(status)
        except ValueError:
            raise ValidationError("Status must be 'approved' or 'rejected'")
        if decision == VerificationStatus.PENDING:
            raise ValidationError("Status must be 'approved' or 'rejected'")

        profile = self.get(ref)
        profile.verification_status = decision
        profile.verification_notes = notes
        if decision == VerificationStatus.REJECTED:
            profile.is_available = False

        title = "Profile Approved" if decision == VerificationStatus.APPROVED else "Profile Rejected"
        message = (
            "Your freelancer profile has been approved. You can now set yourself as available."
            if decision == VerificationStatus.APPROVED
            else "Your freelancer profile was not approved."
        )
        self.notifications.notify(
            profile.user_id, "freelancer_verification", title, message,
            {"status": decision.value, "notes": notes},
        )
        self.db.commit()
        self.db.refresh(profile)
        logger.info(f"Freelancer {profile.user_id} verification set to {decision.value}")
        return profile
