"""
Consultation booking and the session lifecycle.

Consultations reference a case but move independently of it; the only
coupling is that booking the assigned professional activates a pending case.
"""
import calendar
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from advoqat.config import DEFAULT_CONSULTATION_MINUTES, MEETING_BASE_URL
from advoqat.errors import (
    ConflictError, InvalidTransitionError, NotAvailableError, NotFoundError, ValidationError
)
from advoqat.models import (
    Case, CaseStatus, Consultation, ConsultationFeedback, ConsultationStatus,
    ConsultationType
)
from advoqat.services.assignment_service import (
    get_profile, load_professional, parse_kind, professional_kind_of, require_professional_user
)
from advoqat.services.case_service import CaseService
from advoqat.services.identity import UserRef, require_user, resolve_user
from advoqat.services.notification_service import NotificationService
from advoqat.services.pricing import PricingPolicy
from advoqat.services.state_machines import (
    CONSULTATION_STATES, FEEDBACK_ELIGIBLE_STATUSES
)

logger = logging.getLogger(__name__)

ACTIONS = ("cancel", "reschedule")

MAX_CONSULTATION_MINUTES = 480


def to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def meeting_link(professional_id: int, client_id: int, scheduled_at: datetime) -> str:
    """Deterministic room reference for a session."""
    timestamp = calendar.timegm(to_utc_naive(scheduled_at).timetuple())
    return f"{MEETING_BASE_URL.rstrip('/')}/{professional_id}-{client_id}-{timestamp}"


def parse_consultation_type(value) -> ConsultationType:
    try:
        return ConsultationType(str(value).lower())
    except ValueError:
        allowed = ", ".join(member.value for member in ConsultationType)
        raise ValidationError(f"Invalid consultation type '{value}'. Allowed: {allowed}")


class ConsultationScheduler:
    def __init__(
        self,
        db: Session,
        notifications: Optional[NotificationService] = None,
        pricing: Optional[PricingPolicy] = None,
    ):
        self.db = db
        self.notifications = notifications or NotificationService(db)
        self.pricing = pricing or PricingPolicy()

    # =====================================================
    # BOOKING
    # =====================================================

    def book(
        self,
        client_ref: UserRef,
        professional_ref: UserRef,
        scheduled_at: Optional[datetime],
        consultation_type,
        kind=None,
        case_id: Optional[int] = None,
        duration: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Consultation:
        consultation_type = parse_consultation_type(consultation_type)
        if scheduled_at is None:
            raise ValidationError("scheduledAt is required")
        scheduled_at = to_utc_naive(scheduled_at)
        duration = duration or DEFAULT_CONSULTATION_MINUTES
        if duration <= 0 or duration > MAX_CONSULTATION_MINUTES:
            raise ValidationError(f"Duration must be between 1 and {MAX_CONSULTATION_MINUTES} minutes")

        client = require_user(self.db, client_ref, label="Client")
        if kind is None:
            user = resolve_user(self.db, professional_ref)
            kind = professional_kind_of(user) if user else None
            if kind is None:
                raise NotFoundError("Professional not found")
        kind = parse_kind(kind)
        professional, profile = load_professional(self.db, kind, professional_ref)
        if not profile.is_verified or not profile.is_available:
            raise NotAvailableError(f"{kind.value.capitalize()} is not available for consultations")

        case = None
        if case_id is not None:
            case = self.db.get(Case, case_id)
            if case is None or case.client_id != client.id:
                raise NotFoundError("Case not found")

        self._ensure_slot_free(professional.id, scheduled_at, duration)

        fees = self.pricing.consultation_fees(profile, consultation_type, duration)
        consultation = Consultation(
            case_id=case.id if case else None,
            client_id=client.id,
            professional_kind=kind,
            professional_id=professional.id,
            consultation_type=consultation_type,
            scheduled_at=scheduled_at,
            duration=duration,
            notes=notes,
            status=ConsultationStatus.SCHEDULED,
            consultation_fee=fees.consultation_fee,
            platform_fee=fees.platform_fee,
            total_fee=fees.total_fee,
        )
        if consultation_type == ConsultationType.VIDEO:
            consultation.meeting_link = meeting_link(professional.id, client.id, scheduled_at)

        self.db.add(consultation)
        self.db.flush()

        if case is not None and case.status == CaseStatus.PENDING and case.assignee_id == professional.id:
            CaseService(self.db, self.notifications, self.pricing).apply_transition(case, CaseStatus.ACTIVE)
            logger.info(f"Case {case.id} activated by consultation {consultation.id}")

        self.notifications.notify(
            professional.id,
            "consultation_booked",
            "New Consultation Booked",
            f"{client.name or client.email} booked a {consultation_type.value} consultation "
            f"for {scheduled_at:%Y-%m-%d %H:%M} UTC",
            {"consultationId": consultation.id, "clientId": client.id, "caseId": consultation.case_id},
        )
        self.db.commit()
        self.db.refresh(consultation)
        logger.info(f"Consultation {consultation.id} booked with {kind.value} {professional.id}")
        return consultation

    def _ensure_slot_free(self, professional_id: int, scheduled_at: datetime, duration: int,
                          exclude_id: Optional[int] = None):
        """Refuse a session whose window overlaps another live booking of the same professional."""
        ends_at = scheduled_at + timedelta(minutes=duration)
        query = self.db.query(Consultation).filter(
            Consultation.professional_id == professional_id,
            Consultation.scheduled_at < ends_at,
            Consultation.scheduled_at > scheduled_at - timedelta(minutes=MAX_CONSULTATION_MINUTES),
            Consultation.status != ConsultationStatus.CANCELLED,
        )
        if exclude_id is not None:
            query = query.filter(Consultation.id != exclude_id)
        for other in query.all():
            other_ends_at = other.scheduled_at + timedelta(minutes=other.duration or DEFAULT_CONSULTATION_MINUTES)
            if other_ends_at > scheduled_at:
                raise ConflictError(
                    f"The professional already has a consultation from "
                    f"{other.scheduled_at:%Y-%m-%d %H:%M} to {other_ends_at:%H:%M} UTC"
                )

    # =====================================================
    # LIFECYCLE
    # =====================================================

    def update_status(self, consultation_id: int, action: str, new_time: Optional[datetime] = None,
                      reason: Optional[str] = None) -> Consultation:
        if action not in ACTIONS:
            raise ValidationError(f"Invalid action '{action}'. Allowed: {', '.join(ACTIONS)}")
        consultation = self.get(consultation_id)

        if action == "cancel":
            consultation.status = CONSULTATION_STATES.ensure(consultation.status, ConsultationStatus.CANCELLED)
            consultation.cancellation_reason = reason
            event, title = "consultation_cancelled", "Consultation Cancelled"
            message = f"The consultation on {consultation.scheduled_at:%Y-%m-%d %H:%M} UTC was cancelled"
        else:
            if new_time is None:
                raise ValidationError("A new time is required to reschedule")
            target = CONSULTATION_STATES.ensure(consultation.status, ConsultationStatus.RESCHEDULED)
            new_time = to_utc_naive(new_time)
            self._ensure_slot_free(
                consultation.professional_id, new_time,
                consultation.duration or DEFAULT_CONSULTATION_MINUTES, exclude_id=consultation.id
            )
            consultation.status = target
            consultation.scheduled_at = new_time
            if consultation.consultation_type == ConsultationType.VIDEO:
                consultation.meeting_link = meeting_link(
                    consultation.professional_id, consultation.client_id, new_time
                )
            event, title = "consultation_rescheduled", "Consultation Rescheduled"
            message = f"The consultation has been moved to {new_time:%Y-%m-%d %H:%M} UTC"

        payload = {"consultationId": consultation.id}
        if reason:
            payload["reason"] = reason
        for user_id in (consultation.client_id, consultation.professional_id):
            self.notifications.notify(user_id, event, title, message, payload)

        self.db.commit()
        self.db.refresh(consultation)
        logger.info(f"Consultation {consultation.id} {action} -> {consultation.status.value}")
        return consultation

    def confirm(self, consultation_id: int) -> Consultation:
        consultation = self.get(consultation_id)
        consultation.status = CONSULTATION_STATES.ensure(consultation.status, ConsultationStatus.CONFIRMED)
        self.notifications.notify(
            consultation.client_id,
            "consultation_confirmed",
            "Consultation Confirmed",
            f"Your consultation on {consultation.scheduled_at:%Y-%m-%d %H:%M} UTC is confirmed",
            {"consultationId": consultation.id},
        )
        self.db.commit()
        self.db.refresh(consultation)
        return consultation

    def start(self, consultation_id: int, link: Optional[str] = None) -> Consultation:
        consultation = self.get(consultation_id)
        consultation.status = CONSULTATION_STATES.ensure(consultation.status, ConsultationStatus.IN_PROGRESS)
        consultation.started_at = datetime.utcnow()
        if link:
            consultation.meeting_link = link
        elif not consultation.meeting_link and consultation.consultation_type != ConsultationType.CHAT:
            consultation.meeting_link = meeting_link(
                consultation.professional_id, consultation.client_id, consultation.scheduled_at
            )
        self.db.commit()
        self.db.refresh(consultation)
        return consultation

    def end(self, consultation_id: int, notes: Optional[str] = None, outcome: Optional[str] = None) -> Consultation:
        consultation = self.get(consultation_id)
        consultation.status = CONSULTATION_STATES.ensure(consultation.status, ConsultationStatus.COMPLETED)
        consultation.ended_at = datetime.utcnow()
        if notes:
            consultation.notes = notes
        if outcome:
            consultation.outcome = outcome
        self.notifications.notify(
            consultation.client_id,
            "consultation_completed",
            "Consultation Completed",
            "Your consultation has ended. Let us know how it went.",
            {"consultationId": consultation.id},
        )
        self.db.commit()
        self.db.refresh(consultation)
        return consultation

    def mark_no_show(self, consultation_id: int) -> Consultation:
        consultation = self.get(consultation_id)
        consultation.status = CONSULTATION_STATES.ensure(consultation.status, ConsultationStatus.NO_SHOW)
        self.db.commit()
        self.db.refresh(consultation)
        return consultation

    def submit_feedback(self, consultation_id: int, rating: int, comment: Optional[str] = None) -> ConsultationFeedback:
        """Record the client's rating and fold it into the professional's running average."""
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError("Rating must be a whole number between 1 and 5")
        consultation = self.get(consultation_id)
        if consultation.status not in FEEDBACK_ELIGIBLE_STATUSES:
            raise InvalidTransitionError(
                f"Feedback can only be left for confirmed or completed consultations; "
                f"this one is {consultation.status.value}"
            )
        existing = (
            self.db.query(ConsultationFeedback)
            .filter(ConsultationFeedback.consultation_id == consultation.id)
            .first()
        )
        if existing is not None:
            raise ConflictError("Feedback already submitted for this consultation")

        feedback = ConsultationFeedback(consultation_id=consultation.id, rating=rating, comments=comment)
        self.db.add(feedback)

        profile = get_profile(self.db, consultation.professional_kind, consultation.professional_id)
        if profile is not None:
            count = profile.feedback_count or 0
            score = profile.performance_score or 0.0
            profile.performance_score = round((score * count + rating) / (count + 1), 2)
            profile.feedback_count = count + 1
        else:
            logger.warning(f"No profile to rate for consultation {consultation.id}")

        self.db.commit()
        self.db.refresh(feedback)
        return feedback

    # =====================================================
    # QUERIES
    # =====================================================

    def get(self, consultation_id: int) -> Consultation:
        consultation = self.db.get(Consultation, consultation_id)
        if consultation is None:
            raise NotFoundError("Consultation not found")
        return consultation

    def _scope(self, user_ref: UserRef, role: str):
        if role == "client":
            user = require_user(self.db, user_ref, label="Client")
            return self.db.query(Consultation).filter(Consultation.client_id == user.id)
        kind = parse_kind(role)
        user = require_professional_user(self.db, kind, user_ref)
        return self.db.query(Consultation).filter(
            Consultation.professional_kind == kind,
            Consultation.professional_id == user.id,
        )

    def list_for_user(self, user_ref: UserRef, role: str, status: Optional[str] = None) -> List[Consultation]:
        query = self._scope(user_ref, role)
        if status:
            query = query.filter(Consultation.status == CONSULTATION_STATES.parse(status))
        return query.order_by(Consultation.scheduled_at.desc(), Consultation.id.desc()).all()

    def stats(self, user_ref: UserRef, role: str) -> Dict[str, int]:
        base_query = self._scope(user_ref, role)
        rows = (
            base_query.with_entities(Consultation.status, func.count(Consultation.id))
            .group_by(Consultation.status)
            .all()
        )
        stats = {status.value: 0 for status in ConsultationStatus}
        for status, count in rows:
            stats[ConsultationStatus(status).value] = count
        stats["total"] = sum(stats.values())
        stats["upcoming"] = base_query.filter(
            Consultation.status.in_([
                ConsultationStatus.SCHEDULED, ConsultationStatus.RESCHEDULED, ConsultationStatus.CONFIRMED,
            ]),
            Consultation.scheduled_at >= datetime.utcnow(),
        ).count()
        return stats
