import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from advoqat.config import STRIPE_CURRENCY
from advoqat.errors import (
    AssignmentError, AuthorizationError, ConflictError, InvalidTransitionError, NotFoundError,
    UpstreamError, ValidationError
)
from advoqat.models import (
    Case, CaseDocumentStatus, CasePriority, CaseStatus, Payment, PaymentStatus,
    ProfessionalKind, ServiceType, User, UserRole
)
from advoqat.services.assignment_service import (
    AssignmentResolver, get_profile, parse_kind, require_professional_user
)
from advoqat.services.email_service import case_status_email
from advoqat.services.identity import UserRef, require_user
from advoqat.services.notification_service import NotificationService
from advoqat.services.pricing import PricingPolicy
from advoqat.services.state_machines import CASE_STATES
from advoqat.services.storage import FilePayload, ObjectStorage

logger = logging.getLogger(__name__)

ADMIN_ROLES = (UserRole.ADMIN, UserRole.SUPER_ADMIN)

CASE_ATTRIBUTES = ("expertise_area", "priority", "jurisdiction", "case_type", "client_notes")

STATUS_TIMESTAMPS = {
    CaseStatus.ACTIVE: "accepted_at",
    CaseStatus.DECLINED: "declined_at",
    CaseStatus.COMPLETED: "completed_at",
}

STATUS_NOTIFICATIONS = {
    CaseStatus.ACTIVE: ("case_accepted", "Case Accepted", "Your case \"{title}\" has been accepted"),
    CaseStatus.DECLINED: ("case_declined", "Case Declined", "Your case \"{title}\" has been declined"),
    CaseStatus.COMPLETED: ("case_completed", "Case Completed", "Your case \"{title}\" has been completed"),
}


def is_admin(user: Optional[User]) -> bool:
    return user is not None and user.role in ADMIN_ROLES


def completion_payment_key(case_id: int) -> str:
    return f"case-completion-{case_id}"


class CaseService:
    def __init__(
        self,
        db: Session,
        notifications: Optional[NotificationService] = None,
        pricing: Optional[PricingPolicy] = None,
        storage: Optional[ObjectStorage] = None,
    ):
        self.db = db
        self.notifications = notifications or NotificationService(db)
        self.pricing = pricing or PricingPolicy()
        self.storage = storage
        self.assignments = AssignmentResolver(db, self.notifications)

    # =====================================================
    # CREATION
    # =====================================================

    def create_case(
        self,
        client_ref: UserRef,
        title: str,
        description: str,
        attrs: Optional[Dict[str, Any]] = None,
        freelancer_id: Optional[UserRef] = None,
        barrister_id: Optional[UserRef] = None,
        document: Optional[FilePayload] = None,
        auto_match: bool = False,
    ) -> Case:
        """Persist a pending case, assigning it when a professional is named.

        With no named professional the case stays unassigned and is broadcast,
        unless ``auto_match`` asks for the best available freelancer instead.

        The document, if any, is stored after the case row is committed; a
        storage failure leaves the case in place with ``document_status``
        set to ``upload_failed``.
        """
        if not client_ref or not (title or "").strip() or not (description or "").strip():
            raise ValidationError("Missing required fields: clientId, title, description")
        if freelancer_id is not None and barrister_id is not None:
            raise ConflictError("A case can be assigned to a freelancer or a barrister, not both")

        client = require_user(self.db, client_ref, label="Client")
        attrs = {key: value for key, value in (attrs or {}).items() if key in CASE_ATTRIBUTES and value is not None}
        if "priority" in attrs:
            try:
                attrs["priority"] = CasePriority(str(attrs["priority"]).lower())
            except ValueError:
                raise ValidationError(f"Invalid priority '{attrs['priority']}'")

        assignee = None
        assignee_kind = None
        if freelancer_id is not None:
            assignee, _ = self.assignments.require_eligible(
                ProfessionalKind.FREELANCER, freelancer_id, error_cls=AssignmentError
            )
            assignee_kind = ProfessionalKind.FREELANCER
        elif barrister_id is not None:
            assignee, _ = self.assignments.require_eligible(
                ProfessionalKind.BARRISTER, barrister_id, error_cls=AssignmentError
            )
            assignee_kind = ProfessionalKind.BARRISTER
        elif auto_match:
            match = self.assignments.best_freelancer_for(attrs.get("expertise_area"))
            if match is not None:
                assignee = match.user
                assignee_kind = ProfessionalKind.FREELANCER
                logger.info(f"Auto-matched freelancer {assignee.id} for '{attrs.get('expertise_area')}'")

        case = Case(
            client_id=client.id,
            title=title.strip(),
            description=description.strip(),
            status=CaseStatus.PENDING,
            document_status=CaseDocumentStatus.NONE,
            additional_documents=[],
            **attrs
        )
        if assignee is not None:
            case.assignee_kind = assignee_kind
            case.assignee_id = assignee.id
            case.assigned_at = datetime.utcnow()

        self.db.add(case)
        self.db.flush()
        if assignee is not None:
            self.assignments.announce_assignment(case, assignee)
        self.db.commit()
        self.db.refresh(case)
        logger.info(f"Case {case.id} created for client {client.id}")

        if document is not None:
            self._store_case_summary(case, document)

        if assignee is None:
            self.assignments.broadcast_availability(case.id, case.expertise_area)
            self.db.refresh(case)
        return case

    def _store_case_summary(self, case: Case, document: FilePayload):
        if self.storage is None:
            logger.error(f"No object storage configured; document for case {case.id} not stored")
            case.document_status = CaseDocumentStatus.UPLOAD_FAILED
        else:
            try:
                case.case_summary_url = self.storage.upload(document, folder=f"cases/{case.id}")
                case.document_status = CaseDocumentStatus.UPLOADED
            except UpstreamError as e:
                logger.error(f"Document upload for case {case.id} failed: {e.message}")
                case.document_status = CaseDocumentStatus.UPLOAD_FAILED
        self.db.commit()
        self.db.refresh(case)

    # =====================================================
    # STATUS TRANSITIONS
    # =====================================================

    def transition_status(
        self,
        case_id: int,
        new_status,
        actor: Optional[User],
        meta: Optional[Dict[str, Any]] = None,
    ) -> Case:
        meta = meta or {}
        target = CASE_STATES.parse(new_status)
        case = self.get_case(case_id)

        if not is_admin(actor) and (actor is None or case.assignee_id != actor.id):
            raise AuthorizationError("Only the assigned professional can update this case")
        expected_kind = meta.get("kind")
        if expected_kind is not None and not is_admin(actor) and case.assignee_kind != parse_kind(expected_kind):
            raise AuthorizationError(f"Case is not assigned to a {parse_kind(expected_kind).value}")

        current = case.status
        self.apply_transition(case, target, meta.get("reason"))

        self.db.commit()
        self.db.refresh(case)
        logger.info(f"Case {case.id} moved {current.value} -> {target.value} by user {actor.id if actor else None}")
        return case

    def apply_transition(self, case: Case, target: CaseStatus, reason: Optional[str] = None) -> Case:
        """Guarded status change plus its side effects, left for the caller to commit."""
        current = case.status
        CASE_STATES.ensure(current, target)
        if target in (CaseStatus.ACTIVE, CaseStatus.COMPLETED) and case.assignee_id is None:
            raise InvalidTransitionError(f"Case {case.id} has no assigned professional to move it to {target.value}")

        now = datetime.utcnow()
        values = {"status": target, STATUS_TIMESTAMPS[target]: now, "updated_at": now}
        if target == CaseStatus.DECLINED and reason:
            values["decline_reason"] = reason

        updated = (
            self.db.query(Case)
            .filter(Case.id == case.id, Case.status == current)
            .update(values, synchronize_session=False)
        )
        if not updated:
            self.db.rollback()
            raise ConflictError("Case status changed concurrently; reload and retry")
        self.db.refresh(case)

        self._notify_client(case, target, reason)
        if target == CaseStatus.COMPLETED:
            self._record_completion(case)
        return case

    def _notify_client(self, case: Case, status: CaseStatus, reason: Optional[str] = None):
        type_, title, template = STATUS_NOTIFICATIONS[status]
        payload = {"caseId": case.id, "status": status.value}
        if reason:
            payload["reason"] = reason
        self.notifications.notify(case.client_id, type_, title, template.format(title=case.title), payload)
        client = case.client
        if client is not None:
            subject, html = case_status_email(client.name, case.title, status.value, reason)
            self.notifications.queue_email(client.email, subject, html, type_)

    def _record_completion(self, case: Case):
        key = completion_payment_key(case.id)
        if self.db.query(Payment).filter(Payment.idempotency_key == key).first():
            logger.warning(f"Completion of case {case.id} already credited, skipping")
            return

        amount = self.pricing.case_completion_fee(case)
        profile = get_profile(self.db, case.assignee_kind, case.assignee_id)
        if profile is not None:
            profile.total_earnings = (profile.total_earnings or 0) + amount
        else:
            logger.error(f"Case {case.id} completed with no {case.assignee_kind.value} profile to credit")

        self.db.add(Payment(
            user_id=case.assignee_id,
            case_id=case.id,
            idempotency_key=key,
            amount=amount,
            currency=STRIPE_CURRENCY,
            payment_method="internal",
            status=PaymentStatus.COMPLETED,
            service_type=ServiceType.CASE_COMPLETION,
            description=f"Case completion: {case.title}",
            payment_metadata={"caseId": case.id, "professionalKind": case.assignee_kind.value},
        ))

    # =====================================================
    # DOCUMENTS
    # =====================================================

    def upload_case_document(self, case_id: int, actor: User, document: FilePayload,
                             document_type: str = "original") -> Case:
        case = self.get_case(case_id)
        if document_type not in ("original", "annotated"):
            raise ValidationError("document_type must be 'original' or 'annotated'")
        if self.storage is None:
            raise UpstreamError("Object storage is not configured")

        if document_type == "annotated":
            self._require_assignee(case, actor)
            case.annotated_document_url = self.storage.upload(document, folder=f"cases/{case.id}/annotated")
        else:
            if not is_admin(actor) and actor.id != case.client_id:
                raise AuthorizationError("Only the client can replace the case document")
            try:
                case.case_summary_url = self.storage.upload(document, folder=f"cases/{case.id}")
            except UpstreamError:
                case.document_status = CaseDocumentStatus.UPLOAD_FAILED
                self.db.commit()
                raise
            case.document_status = CaseDocumentStatus.UPLOADED

        self.db.commit()
        self.db.refresh(case)
        return case

    def annotate_document(self, case_id: int, actor: User, notes: Optional[str] = None,
                          document: Optional[FilePayload] = None, document_url: Optional[str] = None) -> Case:
        case = self.get_case(case_id)
        self._require_assignee(case, actor)
        if document is None and not document_url and not notes:
            raise ValidationError("Provide an annotated document or annotation notes")

        if document is not None:
            if self.storage is None:
                raise UpstreamError("Object storage is not configured")
            case.annotated_document_url = self.storage.upload(document, folder=f"cases/{case.id}/annotated")
        elif document_url:
            case.annotated_document_url = document_url
        if notes:
            case.annotation_notes = notes

        self.notifications.notify(
            case.client_id,
            "case_document_annotated",
            "Case Document Annotated",
            f"Your lawyer has annotated the document for \"{case.title}\"",
            {"caseId": case.id},
        )
        self.db.commit()
        self.db.refresh(case)
        return case

    def _require_assignee(self, case: Case, actor: User):
        if not is_admin(actor) and (actor is None or case.assignee_id != actor.id):
            raise AuthorizationError("Only the assigned professional can do this")

    # =====================================================
    # QUERIES
    # =====================================================

    def get_case(self, case_id: int) -> Case:
        case = self.db.get(Case, case_id)
        if case is None:
            raise NotFoundError("Case not found")
        return case

    def get_case_for_user(self, case_id: int, user: User) -> Case:
        case = self.get_case(case_id)
        if is_admin(user) or user.id in (case.client_id, case.assignee_id):
            return case
        is_open = case.status == CaseStatus.PENDING and case.assignee_id is None
        if is_open and user.role in (UserRole.FREELANCER, UserRole.BARRISTER):
            return case
        raise AuthorizationError("You do not have access to this case")

    def list_client_cases(self, client_ref: UserRef) -> List[Case]:
        client = require_user(self.db, client_ref, label="Client")
        return (
            self.db.query(Case)
            .filter(Case.client_id == client.id)
            .order_by(desc(Case.created_at), desc(Case.id))
            .all()
        )

    def list_professional_cases(self, kind, user_ref: UserRef, status: Optional[str] = None) -> List[Case]:
        kind = parse_kind(kind)
        user = require_professional_user(self.db, kind, user_ref)
        query = self.db.query(Case).filter(Case.assignee_kind == kind, Case.assignee_id == user.id)
        if status:
            query = query.filter(Case.status == CASE_STATES.parse(status))
        return query.order_by(desc(Case.created_at), desc(Case.id)).all()

    def list_available_cases(self, expertise_area: Optional[str] = None) -> List[Case]:
        query = self.db.query(Case).filter(Case.status == CaseStatus.PENDING, Case.assignee_id.is_(None))
        if expertise_area:
            query = query.filter(func.lower(Case.expertise_area) == expertise_area.strip().lower())
        return query.order_by(desc(Case.created_at), desc(Case.id)).all()

    def case_stats(self, user_kind: str, user_ref: UserRef) -> Dict[str, int]:
        if user_kind == "client":
            user = require_user(self.db, user_ref, label="Client")
            base_query = self.db.query(Case).filter(Case.client_id == user.id)
        else:
            kind = parse_kind(user_kind)
            user = require_professional_user(self.db, kind, user_ref)
            base_query = self.db.query(Case).filter(Case.assignee_kind == kind, Case.assignee_id == user.id)

        status_stats = base_query.with_entities(Case.status, func.count(Case.id)).group_by(Case.status).all()

        stats = {status.value: 0 for status in CaseStatus}
        for status, count in status_stats:
            stats[CaseStatus(status).value] = count
        stats["total"] = sum(stats.values())
        return stats
