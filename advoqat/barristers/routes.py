import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile, status
from sqlalchemy.orm import Session

from advoqat.auth.dependencies import get_current_user, require_role
from advoqat.auth.routes import issue_token
from advoqat.barristers.schemas import (
    BarristerRegister, BarristerRegistrationResponse, BarristerResponse, BarristerUpdate,
    DashboardResponse, ProfessionalInfo
)
from advoqat.cases.schemas import CaseDecline, CaseResponse
from advoqat.database import get_db
from advoqat.dependencies import (
    get_case_service, get_notification_service, get_onboarding_service, schedule_outbox_drain
)
from advoqat.freelancers.schemas import AvailabilityUpdate
from advoqat.models import CaseStatus, ProfessionalKind, User, UserRole
from advoqat.services.case_service import CaseService
from advoqat.services.email_service import EmailClient, get_email_client
from advoqat.services.notification_service import NotificationService
from advoqat.services.onboarding_service import OnboardingService
from advoqat.services.storage import read_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/barristers", tags=["Barristers"])

require_barrister = require_role([UserRole.BARRISTER])

# =====================================================
# ONBOARDING
# =====================================================

@router.post("/register", response_model=BarristerRegistrationResponse, status_code=status.HTTP_201_CREATED)
def register_barrister(
    registration: BarristerRegister,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    service: OnboardingService = Depends(get_onboarding_service),
    email_client: EmailClient = Depends(get_email_client),
):
    """Stage 1: account and eligibility check in one step."""
    profile = service.register(registration.model_dump())
    schedule_outbox_drain(background_tasks, db, email_client)
    return {"barrister": profile, **issue_token(profile.user)}

@router.post("/documents", response_model=BarristerResponse)
async def upload_onboarding_documents(
    background_tasks: BackgroundTasks,
    practising_certificate: Optional[UploadFile] = File(None),
    public_access_accreditation: Optional[UploadFile] = File(None),
    bmif_insurance: Optional[UploadFile] = File(None),
    qualified_person_document: Optional[UploadFile] = File(None),
    qualified_person_name: Optional[str] = Form(None),
    qualified_person_email: Optional[str] = Form(None),
    current_user: User = Depends(require_barrister),
    db: Session = Depends(get_db),
    service: OnboardingService = Depends(get_onboarding_service),
    email_client: EmailClient = Depends(get_email_client),
):
    """Stage 2: verification documents."""
    uploads = {
        "practising_certificate": practising_certificate,
        "public_access_accreditation": public_access_accreditation,
        "bmif_insurance": bmif_insurance,
        "qualified_person_document": qualified_person_document,
    }
    files = {}
    for name, upload in uploads.items():
        if upload is not None and upload.filename:
            files[name] = await read_upload(upload)

    profile = service.upload_documents(
        current_user, files,
        qualified_person_name=qualified_person_name,
        qualified_person_email=qualified_person_email,
    )
    schedule_outbox_drain(background_tasks, db, email_client)
    return profile

@router.post("/professional-info", response_model=BarristerResponse)
def save_professional_info(
    info: ProfessionalInfo,
    current_user: User = Depends(require_barrister),
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Stage 3: chambers, pricing and practice areas."""
    return service.save_professional_info(current_user, info.model_dump())

@router.post("/submit", response_model=BarristerResponse)
def submit_for_review(
    current_user: User = Depends(require_barrister),
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Stage 4: hand the application to an admin."""
    return service.submit_for_review(current_user)

# =====================================================
# PROFILE & DASHBOARD
# =====================================================

@router.get("/profile", response_model=BarristerResponse)
def get_own_profile(
    current_user: User = Depends(require_barrister),
    service: OnboardingService = Depends(get_onboarding_service),
):
    return service.get(current_user.id)

@router.put("/profile", response_model=BarristerResponse)
def update_own_profile(
    update: BarristerUpdate,
    current_user: User = Depends(require_barrister),
    service: OnboardingService = Depends(get_onboarding_service),
):
    return service.update_profile(current_user, update.model_dump(exclude_unset=True))

@router.patch("/availability", response_model=BarristerResponse)
def set_barrister_availability(
    availability: AvailabilityUpdate,
    current_user: User = Depends(require_barrister),
    service: OnboardingService = Depends(get_onboarding_service),
):
    return service.set_availability(current_user, availability.is_available)

@router.get("/dashboard", response_model=DashboardResponse)
def get_dashboard(
    current_user: User = Depends(require_barrister),
    service: OnboardingService = Depends(get_onboarding_service),
    cases: CaseService = Depends(get_case_service),
    notifications: NotificationService = Depends(get_notification_service),
):
    return service.dashboard(
        current_user,
        case_stats=cases.case_stats("barrister", current_user.id),
        unread_notifications=notifications.unread_count(current_user.id),
    )

# =====================================================
# ASSIGNED CASES
# =====================================================

def _move_case(service: CaseService, case_id: int, target: CaseStatus, user: User, reason=None):
    return service.transition_status(case_id, target, user, {"kind": ProfessionalKind.BARRISTER, "reason": reason})

@router.post("/cases/{case_id}/accept", response_model=CaseResponse)
def accept_case(
    case_id: int,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_barrister),
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
    current_user: User = Depends(require_barrister),
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
    current_user: User = Depends(require_barrister),
    db: Session = Depends(get_db),
    service: CaseService = Depends(get_case_service),
    email_client: EmailClient = Depends(get_email_client),
):
    case = _move_case(service, case_id, CaseStatus.COMPLETED, current_user)
    schedule_outbox_drain(background_tasks, db, email_client)
    return case

@router.get("/{ref}", response_model=BarristerResponse)
def get_barrister(
    ref: str,
    current_user: User = Depends(get_current_user),
    service: OnboardingService = Depends(get_onboarding_service),
):
    return service.get(ref)
