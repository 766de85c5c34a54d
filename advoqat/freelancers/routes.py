import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session

from advoqat.auth.dependencies import get_current_user, require_admin, require_role
from advoqat.cases.schemas import CaseDecline, CaseResponse
from advoqat.database import get_db
from advoqat.dependencies import (
    get_case_service, get_freelancer_service, get_payment_service, schedule_outbox_drain
)
from advoqat.freelancers.schemas import (
    AvailabilityUpdate, CredentialsUpdate, EarningsResponse, FreelancerRegister, FreelancerResponse,
    FreelancerUpdate, RatingResponse, WithdrawalRequest, WithdrawalResponse
)
from advoqat.models import CaseStatus, ProfessionalKind, User, UserRole
from advoqat.services.case_service import CaseService
from advoqat.services.email_service import EmailClient, get_email_client
from advoqat.services.freelancer_service import FreelancerService
from advoqat.services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/freelancers", tags=["Freelancers"])

require_freelancer = require_role([UserRole.FREELANCER])

# =====================================================
# REGISTRATION & PROFILE
# =====================================================

@router.post("/register", response_model=FreelancerResponse, status_code=status.HTTP_201_CREATED)
def register_freelancer(
    registration: FreelancerRegister,
    current_user: User = Depends(get_current_user),
    service: FreelancerService = Depends(get_freelancer_service),
):
    """Create a freelancer profile for the signed-in user; it starts unverified."""
    return service.register(current_user, registration.model_dump())

@router.get("/", response_model=List[FreelancerResponse])
def list_freelancers(
    current_user: User = Depends(require_admin()),
    service: FreelancerService = Depends(get_freelancer_service),
):
    return service.list_all()

@router.get("/search", response_model=List[FreelancerResponse])
def search_freelancers(
    expertise_area: Optional[str] = Query(None),
    available_only: bool = Query(False),
    current_user: User = Depends(get_current_user),
    service: FreelancerService = Depends(get_freelancer_service),
):
    return service.search(expertise_area, available_only)

@router.put("/profile", response_model=FreelancerResponse)
def update_freelancer_profile(
    update: FreelancerUpdate,
    current_user: User = Depends(require_freelancer),
    service: FreelancerService = Depends(get_freelancer_service),
):
    return service.update_profile(current_user, update.model_dump(exclude_unset=True))

@router.put("/credentials", response_model=FreelancerResponse)
def update_freelancer_credentials(
    credentials: CredentialsUpdate,
    current_user: User = Depends(require_freelancer),
    service: FreelancerService = Depends(get_freelancer_service),
):
    return service.update_credentials(current_user, credentials.model_dump(exclude_unset=True))

@router.patch("/availability", response_model=FreelancerResponse)
def set_freelancer_availability(
    availability: AvailabilityUpdate,
    current_user: User = Depends(require_freelancer),
    service: FreelancerService = Depends(get_freelancer_service),
):
    return service.set_availability(current_user, availability.is_available)

# =====================================================
# EARNINGS
# =====================================================

@router.get("/earnings", response_model=EarningsResponse)
def get_freelancer_earnings(
    current_user: User = Depends(require_freelancer),
    payments: PaymentService = Depends(get_payment_service),
):
    return payments.earnings(current_user)

@router.post("/withdraw", response_model=WithdrawalResponse, status_code=status.HTTP_201_CREATED)
def request_withdrawal(
    withdrawal: WithdrawalRequest,
    current_user: User = Depends(require_freelancer),
    payments: PaymentService = Depends(get_payment_service),
):
    return payments.request_withdrawal(current_user, withdrawal.amount, withdrawal.method)

# =====================================================
# ASSIGNED CASES
# =====================================================

def _move_case(service: CaseService, case_id: int, target: CaseStatus, user: User, reason=None):
    return service.transition_status(case_id, target, user, {"kind": ProfessionalKind.FREELANCER, "reason": reason})

@router.post("/cases/{case_id}/accept", response_model=CaseResponse)
def accept_case(
    case_id: int,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_freelancer),
    db: Session = Depends(get_db),
    service: CaseService = Depends(get_case_service),
    email_client: EmailClient = Depends(get_email_client),
):
    case = _move_case(service, case_id, CaseStatus.ACTIVE, current_user)
    schedule_outbox_drain(background_tasks, db, email_client)
    return case

@router.post("/cases/{case_id}/decline", response_model=CaseResponse)
def decline_case(
    case_id: int,
    background_tasks: BackgroundTasks,
    decline: Optional[CaseDecline] = None,
    current_user: User = Depends(require_freelancer),
    db: Session = Depends(get_db),
    service: CaseService = Depends(get_case_service),
    email_client: EmailClient = Depends(get_email_client),
):
    reason = decline.reason if decline else None
    case = _move_case(service, case_id, CaseStatus.DECLINED, current_user, reason)
    schedule_outbox_drain(background_tasks, db, email_client)
    return case

@router.post("/cases/{case_id}/complete", response_model=CaseResponse)
def complete_case(
    case_id: int,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_freelancer),
    db: Session = Depends(get_db),
    service: CaseService = Depends(get_case_service),
    email_client: EmailClient = Depends(get_email_client),
):
    """Complete an active case; the completion fee is credited once."""
    case = _move_case(service, case_id, CaseStatus.COMPLETED, current_user)
    schedule_outbox_drain(background_tasks, db, email_client)
    return case

# =====================================================
# PUBLIC LOOKUPS
# =====================================================

@router.get("/{ref}/ratings", response_model=RatingResponse)
def get_freelancer_ratings(
    ref: str,
    current_user: User = Depends(get_current_user),
    service: FreelancerService = Depends(get_freelancer_service),
):
    return service.ratings(ref)

@router.get("/{ref}", response_model=FreelancerResponse)
def get_freelancer(
    ref: str,
    current_user: User = Depends(get_current_user),
    service: FreelancerService = Depends(get_freelancer_service),
):
    return service.get(ref)
