"""
Binding cases to exactly one professional.

A case is either assigned directly (client picked a lawyer, or an admin
reassigned it) or left open and broadcast to every eligible professional,
in which case the first one to claim it wins.
"""
import logging
from datetime import datetime
from typing import List, Optional, Tuple, Union

from sqlalchemy.orm import Session

from advoqat.errors import (
    AuthorizationError, ConflictError, InvalidTransitionError, NotAvailableError,
    NotFoundError, ValidationError
)
from advoqat.models import (
    Barrister, BarristerStatus, Case, CaseStatus, Freelancer, ProfessionalKind,
    User, VerificationStatus
)
from advoqat.services.email_service import case_assigned_email, case_status_email
from advoqat.services.identity import UserRef, require_user, resolve_user
from advoqat.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

Profile = Union[Freelancer, Barrister]

PROFILE_MODELS = {
    ProfessionalKind.FREELANCER: Freelancer,
    ProfessionalKind.BARRISTER: Barrister,
}


def parse_kind(kind) -> ProfessionalKind:
    if isinstance(kind, ProfessionalKind):
        return kind
    try:
        return ProfessionalKind(str(kind).lower())
    except ValueError:
        raise ValidationError(f"Invalid professional type '{kind}'. Allowed: freelancer, barrister")


def expertise_matches(areas, expertise_area: Optional[str]) -> bool:
    if not expertise_area:
        return True
    wanted = expertise_area.strip().lower()
    return any(str(area).strip().lower() == wanted for area in (areas or []))


def is_eligible(profile: Optional[Profile]) -> bool:
    """Approved and currently taking work."""
    return bool(profile is not None and profile.is_verified and profile.is_available)


def get_profile(db: Session, kind, user_id: int) -> Optional[Profile]:
    model = PROFILE_MODELS[parse_kind(kind)]
    return db.query(model).filter(model.user_id == user_id).first()


def load_professional(db: Session, kind, ref: UserRef) -> Tuple[User, Profile]:
    """Resolve ``ref`` to a user carrying a ``kind`` profile or raise NotFoundError."""
    kind = parse_kind(kind)
    label = kind.value.capitalize()
    user = resolve_user(db, ref)
    profile = get_profile(db, kind, user.id) if user else None
    if profile is None:
        raise NotFoundError(f"{label} not found")
    return user, profile


def professional_kind_of(user: User) -> Optional[ProfessionalKind]:
    if user.freelancer is not None:
        return ProfessionalKind.FREELANCER
    if user.barrister is not None:
        return ProfessionalKind.BARRISTER
    return None


class AssignmentResolver:
    def __init__(self, db: Session, notifications: Optional[NotificationService] = None):
        self.db = db
        self.notifications = notifications or NotificationService(db)

    # -------------------------------------------------
    # Matching
    # -------------------------------------------------

    def available_freelancers(self, expertise_area: Optional[str] = None) -> List[Freelancer]:
        rows = (
            self.db.query(Freelancer)
            .filter(
                Freelancer.verification_status == VerificationStatus.APPROVED,
                Freelancer.is_available.is_(True),
            )
            .order_by(Freelancer.performance_score.desc(), Freelancer.total_earnings.asc(), Freelancer.id)
            .all()
        )
        return [row for row in rows if expertise_matches(row.expertise_areas, expertise_area)]

    def available_barristers(self, expertise_area: Optional[str] = None) -> List[Barrister]:
        rows = (
            self.db.query(Barrister)
            .filter(
                Barrister.status == BarristerStatus.APPROVED,
                Barrister.is_available.is_(True),
            )
            .order_by(Barrister.performance_score.desc(), Barrister.id)
            .all()
        )
        return [row for row in rows if expertise_matches(row.expertise_areas, expertise_area)]

    def best_freelancer_for(self, expertise_area: Optional[str]) -> Optional[Freelancer]:
        """Highest performance score first, least earned breaks ties."""
        if not expertise_area:
            return None
        matches = self.available_freelancers(expertise_area)
        return matches[0] if matches else None

    def require_eligible(self, kind, ref: UserRef, error_cls=NotAvailableError) -> Tuple[User, Profile]:
        kind = parse_kind(kind)
        user, profile = load_professional(self.db, kind, ref)
        if not profile.is_verified:
            raise error_cls(f"{kind.value.capitalize()} is not approved")
        if not profile.is_available:
            raise error_cls(f"{kind.value.capitalize()} is not available")
        return user, profile

    # -------------------------------------------------
    # Direct assignment
    # -------------------------------------------------

    def assign(self, case_id: int, freelancer_id: Optional[UserRef] = None,
               barrister_id: Optional[UserRef] = None) -> Case:
        if freelancer_id is not None and barrister_id is not None:
            raise ConflictError("A case can be assigned to a freelancer or a barrister, not both")
        if freelancer_id is not None:
            return self.assign_direct(case_id, freelancer_id, ProfessionalKind.FREELANCER)
        if barrister_id is not None:
            return self.assign_direct(case_id, barrister_id, ProfessionalKind.BARRISTER)
        raise ValidationError("Either freelancerId or barristerId is required")

    def assign_direct(self, case_id: int, professional_ref: UserRef, kind) -> Case:
        kind = parse_kind(kind)
        case = self.db.get(Case, case_id)
        if case is None:
            raise NotFoundError("Case not found")
        if case.status != CaseStatus.PENDING:
            raise InvalidTransitionError(f"Only pending cases can be assigned; case is {case.status.value}")

        user, profile = self.require_eligible(kind, professional_ref)

        now = datetime.utcnow()
        updated = (
            self.db.query(Case)
            .filter(Case.id == case_id, Case.status == CaseStatus.PENDING)
            .update(
                {"assignee_kind": kind, "assignee_id": user.id, "assigned_at": now, "updated_at": now},
                synchronize_session=False,
            )
        )
        if not updated:
            self.db.rollback()
            raise ConflictError("Case changed while it was being assigned")

        self.db.refresh(case)
        self.announce_assignment(case, user)
        self.db.commit()
        self.db.refresh(case)
        logger.info(f"Case {case.id} assigned to {kind.value} {user.id}")
        return case

    def announce_assignment(self, case: Case, professional: User):
        self.notifications.notify(
            professional.id,
            "case_assigned",
            "New Case Assigned",
            f"You have been assigned a new case: {case.title}",
            {"caseId": case.id, "clientId": case.client_id},
        )
        subject, html = case_assigned_email(professional.name, case.title)
        self.notifications.queue_email(professional.email, subject, html, "case_assigned")

    # -------------------------------------------------
    # Open marketplace
    # -------------------------------------------------

    def broadcast_availability(self, case_id: int, expertise_area: Optional[str] = None) -> int:
        """Notify every eligible professional about an open case; returns deliveries."""
        case = self.db.get(Case, case_id)
        if case is None:
            raise NotFoundError("Case not found")
        if case.status != CaseStatus.PENDING or case.assignee_id is not None:
            raise InvalidTransitionError(f"Only open cases can be broadcast; case {case.id} is {case.status.value}")
        if expertise_area is None:
            expertise_area = case.expertise_area

        recipients = [p.user_id for p in self.available_freelancers(expertise_area)]
        recipients += [p.user_id for p in self.available_barristers(expertise_area)]

        delivered = 0
        failed = 0
        for user_id in recipients:
            try:
                notification = self.notifications.notify(
                    user_id,
                    "case_available",
                    "New Case Available",
                    f"A new {expertise_area or 'general'} case is available: {case.title}",
                    {"caseId": case.id, "expertiseArea": expertise_area},
                )
            except Exception as e:
                logger.error(f"Broadcast of case {case.id} to user {user_id} failed: {e}")
                notification = None
            if notification is None:
                failed += 1
            else:
                delivered += 1

        self.db.commit()
        if failed:
            logger.warning(f"Case {case.id} broadcast reached {delivered}/{len(recipients)} professionals")
        else:
            logger.info(f"Case {case.id} broadcast to {delivered} professionals")
        return delivered

    def accept_open_case(self, case_id: int, actor: User) -> Case:
        """Claim an open case. Exactly one concurrent claimer succeeds."""
        kind = professional_kind_of(actor)
        if kind is None:
            raise AuthorizationError("Only freelancers and barristers can accept cases")
        profile = get_profile(self.db, kind, actor.id)
        if not is_eligible(profile):
            raise NotAvailableError(f"{kind.value.capitalize()} is not approved or not available")

        now = datetime.utcnow()
        claimed = (
            self.db.query(Case)
            .filter(
                Case.id == case_id,
                Case.status == CaseStatus.PENDING,
                Case.assignee_id.is_(None),
            )
            .update(
                {
                    "assignee_kind": kind,
                    "assignee_id": actor.id,
                    "status": CaseStatus.ACTIVE,
                    "assigned_at": now,
                    "accepted_at": now,
                    "updated_at": now,
                },
                synchronize_session=False,
            )
        )
        if not claimed:
            self.db.rollback()
            if self.db.get(Case, case_id) is None:
                raise NotFoundError("Case not found")
            raise ConflictError("Case is no longer open")

        case = self.db.get(Case, case_id)
        self.db.refresh(case)
        client = case.client
        self.notifications.notify(
            case.client_id,
            "case_accepted",
            "Case Accepted",
            f"Your case \"{case.title}\" has been accepted",
            {"caseId": case.id, "professionalId": actor.id, "professionalKind": kind.value},
        )
        subject, html = case_status_email(client.name if client else None, case.title, CaseStatus.ACTIVE.value)
        self.notifications.queue_email(client.email if client else None, subject, html, "case_accepted")
        self.db.commit()
        self.db.refresh(case)
        logger.info(f"Open case {case.id} claimed by {kind.value} {actor.id}")
        return case


def require_professional_user(db: Session, kind, ref: UserRef) -> User:
    user = require_user(db, ref, label=parse_kind(kind).value.capitalize())
    if get_profile(db, kind, user.id) is None:
        raise NotFoundError(f"{parse_kind(kind).value.capitalize()} not found")
    return user
