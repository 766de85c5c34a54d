from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session
from typing import Dict, List, Optional

from advoqat.auth.dependencies import require_admin
from advoqat.auth.schemas import UserResponse
from advoqat.barristers.schemas import BarristerResponse
from advoqat.database import get_db
from advoqat.dependencies import (
    get_freelancer_service, get_onboarding_service, schedule_outbox_drain
)
from advoqat.freelancers.schemas import FreelancerResponse
from advoqat.models import Barrister, BarristerStatus, OnboardingStage, User, UserRole
from advoqat.services.email_service import EmailClient, get_email_client
from advoqat.services.freelancer_service import FreelancerService
from advoqat.services.notification_service import OutboxDispatcher
from advoqat.services.onboarding_service import OnboardingService

router = APIRouter(prefix="/admin", tags=["Admin Tools"])


class VerificationDecision(BaseModel):
    status: str
    notes: Optional[str] = None


class ReviewDecision(BaseModel):
    decision: str
    notes: Optional[str] = None


@router.get("/users", response_model=List[UserResponse])
def get_all_users(
    role: Optional[UserRole] = Query(None),
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db)
):
    query = db.query(User)
    if role is not None:
        query = query.filter(User.role == role)
    return query.order_by(User.id).all()

@router.patch("/freelancers/{ref}/verify", response_model=FreelancerResponse)
def verify_freelancer(
    ref: str,
    decision: VerificationDecision,
    current_user: User = Depends(require_admin()),
    service: FreelancerService = Depends(get_freelancer_service),
):
    return service.verify(ref, decision.status, decision.notes)

@router.get("/barristers/pending", response_model=List[BarristerResponse])
def get_pending_reviews(
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db)
):
    """Applications submitted for review and still undecided."""
    return (
        db.query(Barrister)
        .filter(
            Barrister.stage == OnboardingStage.REVIEW,
            Barrister.status.in_([BarristerStatus.PENDING_VERIFICATION, BarristerStatus.INCOMPLETE]),
        )
        .order_by(Barrister.updated_at)
        .all()
    )

@router.patch("/barristers/{ref}/review", response_model=BarristerResponse)
def review_barrister(
    ref: str,
    decision: ReviewDecision,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db),
    service: OnboardingService = Depends(get_onboarding_service),
    email_client: EmailClient = Depends(get_email_client),
):
    profile = service.review(ref, decision.decision, decision.notes)
    schedule_outbox_drain(background_tasks, db, email_client)
    return profile

@router.post("/outbox/drain", response_model=Dict[str, int])
def drain_email_outbox(
    limit: int = Query(50, ge=1, le=500),
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db),
    email_client: EmailClient = Depends(get_email_client),
):
    """Send pending emails now instead of waiting for the next request."""
    return OutboxDispatcher(db, email_client).dispatch_pending(limit)
