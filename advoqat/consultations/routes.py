import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from advoqat.auth.dependencies import get_current_user
from advoqat.consultations.schemas import (
    ConsultationBook, ConsultationEnd, ConsultationResponse, ConsultationStart, ConsultationUpdate,
    FeedbackCreate, FeedbackResponse
)
from advoqat.database import get_db
from advoqat.dependencies import ADMIN_ROLES, ensure_self_or_admin, get_consultation_scheduler
from advoqat.errors import AuthorizationError, ValidationError
from advoqat.models import Consultation, User
from advoqat.services.consultation_service import ConsultationScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/consultations", tags=["Consultations"])

USER_TYPES = ("client", "freelancer", "barrister")


def _load(scheduler: ConsultationScheduler, consultation_id: int, user: User,
          professional_only: bool = False, client_only: bool = False) -> Consultation:
    consultation = scheduler.get(consultation_id)
    if user.role in ADMIN_ROLES:
        return consultation
    if professional_only:
        allowed = user.id == consultation.professional_id
    elif client_only:
        allowed = user.id == consultation.client_id
    else:
        allowed = user.id in (consultation.client_id, consultation.professional_id)
    if not allowed:
        raise AuthorizationError("You do not have access to this consultation")
    return consultation

# =====================================================
# BOOKING
# =====================================================

@router.post("/book", response_model=ConsultationResponse, status_code=status.HTTP_201_CREATED)
def book_consultation(
    booking: ConsultationBook,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    scheduler: ConsultationScheduler = Depends(get_consultation_scheduler),
):
    client = current_user
    if booking.client_id:
        client = ensure_self_or_admin(db, booking.client_id, current_user, label="Client")
    return scheduler.book(
        client.id,
        booking.professional_id,
        booking.scheduled_at,
        booking.consultation_type,
        kind=booking.professional_type,
        case_id=booking.case_id,
        duration=booking.duration,
        notes=booking.notes,
    )

# =====================================================
# LISTINGS
# =====================================================

@router.get("/{user_type}/{ref}/stats", response_model=Dict[str, int])
def get_consultation_stats(
    user_type: str,
    ref: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    scheduler: ConsultationScheduler = Depends(get_consultation_scheduler),
):
    if user_type not in USER_TYPES:
        raise ValidationError("user_type must be client, freelancer or barrister")
    user = ensure_self_or_admin(db, ref, current_user)
    return scheduler.stats(user.id, user_type)

@router.get("/{user_type}/{ref}", response_model=List[ConsultationResponse])
def list_consultations(
    user_type: str,
    ref: str,
    status: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    scheduler: ConsultationScheduler = Depends(get_consultation_scheduler),
):
    if user_type not in USER_TYPES:
        raise ValidationError("user_type must be client, freelancer or barrister")
    user = ensure_self_or_admin(db, ref, current_user)
    return scheduler.list_for_user(user.id, user_type, status)

@router.get("/{consultation_id}", response_model=ConsultationResponse)
def get_consultation(
    consultation_id: int,
    current_user: User = Depends(get_current_user),
    scheduler: ConsultationScheduler = Depends(get_consultation_scheduler),
):
    return _load(scheduler, consultation_id, current_user)

# =====================================================
# LIFECYCLE
# =====================================================

@router.patch("/{consultation_id}", response_model=ConsultationResponse)
def update_consultation(
    consultation_id: int,
    update: ConsultationUpdate,
    current_user: User = Depends(get_current_user),
    scheduler: ConsultationScheduler = Depends(get_consultation_scheduler),
):
    """Cancel or reschedule; either participant may do this."""
    _load(scheduler, consultation_id, current_user)
    return scheduler.update_status(consultation_id, update.action, update.new_time, update.reason)

@router.post("/{consultation_id}/confirm", response_model=ConsultationResponse)
def confirm_consultation(
    consultation_id: int,
    current_user: User = Depends(get_current_user),
    scheduler: ConsultationScheduler = Depends(get_consultation_scheduler),
):
    _load(scheduler, consultation_id, current_user, professional_only=True)
    return scheduler.confirm(consultation_id)

@router.post("/{consultation_id}/start", response_model=ConsultationResponse)
def start_consultation(
    consultation_id: int,
    start: Optional[ConsultationStart] = None,
    current_user: User = Depends(get_current_user),
    scheduler: ConsultationScheduler = Depends(get_consultation_scheduler),
):
    _load(scheduler, consultation_id, current_user, professional_only=True)
    return scheduler.start(consultation_id, start.meeting_link if start else None)

@router.post("/{consultation_id}/end", response_model=ConsultationResponse)
def end_consultation(
    consultation_id: int,
    end: Optional[ConsultationEnd] = None,
    current_user: User = Depends(get_current_user),
    scheduler: ConsultationScheduler = Depends(get_consultation_scheduler),
):
    _load(scheduler, consultation_id, current_user, professional_only=True)
    end = end or ConsultationEnd()
    return scheduler.end(consultation_id, end.notes, end.outcome)

@router.post("/{consultation_id}/no-show", response_model=ConsultationResponse)
def mark_no_show(
    consultation_id: int,
    current_user: User = Depends(get_current_user),
    scheduler: ConsultationScheduler = Depends(get_consultation_scheduler),
):
    _load(scheduler, consultation_id, current_user, professional_only=True)
    return scheduler.mark_no_show(consultation_id)

@router.post("/{consultation_id}/feedback", response_model=FeedbackResponse, status_code=status.HTTP_201_CREATED)
def submit_feedback(
    consultation_id: int,
    feedback: FeedbackCreate,
    current_user: User = Depends(get_current_user),
    scheduler: ConsultationScheduler = Depends(get_consultation_scheduler),
):
    """Rate a consultation; the professional's average is updated in the same commit."""
    _load(scheduler, consultation_id, current_user, client_only=True)
    return scheduler.submit_feedback(consultation_id, feedback.rating, feedback.comment)
