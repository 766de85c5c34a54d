import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.orm import Session

from advoqat.auth.dependencies import get_current_user, require_admin, require_professional
from advoqat.cases.schemas import (
    BroadcastResponse, CaseAssign, CaseBroadcast, CaseResponse, CaseStats,
    CaseStatusUpdate, ProfessionalSummary, stats_response
)
from advoqat.database import get_db
from advoqat.dependencies import (
    ensure_self_or_admin, get_case_service, schedule_outbox_drain
)
from advoqat.errors import ValidationError
from advoqat.models import User
from advoqat.services.case_service import CaseService
from advoqat.services.email_service import EmailClient, get_email_client
from advoqat.services.storage import read_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cases", tags=["Cases"])

# =====================================================
# CASE CREATION
# =====================================================

@router.post("/", response_model=CaseResponse, status_code=status.HTTP_201_CREATED)
async def create_case(
    background_tasks: BackgroundTasks,
    title: str = Form(...),
    description: str = Form(...),
    client_id: Optional[str] = Form(None),
    expertise_area: Optional[str] = Form(None),
    priority: Optional[str] = Form(None),
    jurisdiction: Optional[str] = Form(None),
    case_type: Optional[str] = Form(None),
    client_notes: Optional[str] = Form(None),
    freelancer_id: Optional[str] = Form(None),
    barrister_id: Optional[str] = Form(None),
    auto_match: bool = Form(False),
    document: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: CaseService = Depends(get_case_service),
    email_client: EmailClient = Depends(get_email_client),
):
    """Create a case, optionally with a case summary document attached."""
    client = current_user
    if client_id:
        client = ensure_self_or_admin(db, client_id, current_user, label="Client")

    payload = None
    if document is not None and document.filename:
        payload = await read_upload(document)

    case = service.create_case(
        client.id,
        title,
        description,
        attrs={
            "expertise_area": expertise_area,
            "priority": priority,
            "jurisdiction": jurisdiction,
            "case_type": case_type,
            "client_notes": client_notes,
        },
        freelancer_id=freelancer_id or None,
        barrister_id=barrister_id or None,
        document=payload,
        auto_match=auto_match,
    )
    schedule_outbox_drain(background_tasks, db, email_client)
    return case

# =====================================================
# LISTINGS
# =====================================================

@router.get("/client/{client_ref}", response_model=List[CaseResponse])
def list_client_cases(
    client_ref: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: CaseService = Depends(get_case_service),
):
    client = ensure_self_or_admin(db, client_ref, current_user, label="Client")
    return service.list_client_cases(client.id)

@router.get("/freelancer/{ref}", response_model=List[CaseResponse])
def list_freelancer_cases(
    ref: str,
    status: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: CaseService = Depends(get_case_service),
):
    user = ensure_self_or_admin(db, ref, current_user, label="Freelancer")
    return service.list_professional_cases("freelancer", user.id, status)

@router.get("/barrister/{ref}", response_model=List[CaseResponse])
def list_barrister_cases(
    ref: str,
    status: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: CaseService = Depends(get_case_service),
):
    user = ensure_self_or_admin(db, ref, current_user, label="Barrister")
    return service.list_professional_cases("barrister", user.id, status)

@router.get("/available", response_model=List[CaseResponse])
def list_available_cases(
    expertise_area: Optional[str] = Query(None),
    current_user: User = Depends(require_professional()),
    service: CaseService = Depends(get_case_service),
):
    """Open cases nobody has claimed yet."""
    return service.list_available_cases(expertise_area)

@router.get("/freelancers/available", response_model=List[ProfessionalSummary])
def list_available_freelancers(
    expertise_area: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: CaseService = Depends(get_case_service),
):
    return service.assignments.available_freelancers(expertise_area)

@router.get("/barristers/available", response_model=List[ProfessionalSummary])
def list_available_barristers(
    expertise_area: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: CaseService = Depends(get_case_service),
):
    return service.assignments.available_barristers(expertise_area)

@router.get("/stats/{user_type}/{ref}", response_model=CaseStats)
def get_case_stats(
    user_type: str,
    ref: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: CaseService = Depends(get_case_service),
):
    if user_type not in ("client", "freelancer", "barrister"):
        raise ValidationError("user_type must be client, freelancer or barrister")
    user = ensure_self_or_admin(db, ref, current_user)
    return stats_response(service.case_stats(user_type, user.id))

# =====================================================
# ASSIGNMENT
# =====================================================

@router.post("/assign/{case_id}", response_model=CaseResponse)
def assign_case(
    case_id: int,
    assignment: CaseAssign,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db),
    service: CaseService = Depends(get_case_service),
    email_client: EmailClient = Depends(get_email_client),
):
    """Assign an open case to exactly one freelancer or barrister."""
    case = service.assignments.assign(case_id, assignment.freelancer_id, assignment.barrister_id)
    schedule_outbox_drain(background_tasks, db, email_client)
    return case

@router.post("/{case_id}/accept", response_model=CaseResponse)
def accept_open_case(
    case_id: int,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_professional()),
    db: Session = Depends(get_db),
    service: CaseService = Depends(get_case_service),
    email_client: EmailClient = Depends(get_email_client),
):
    """Claim an unassigned case. Only the first claimer wins."""
    case = service.assignments.accept_open_case(case_id, current_user)
    schedule_outbox_drain(background_tasks, db, email_client)
    return case

@router.post("/{case_id}/broadcast", response_model=BroadcastResponse)
def broadcast_case(
    case_id: int,
    broadcast: Optional[CaseBroadcast] = None,
    current_user: User = Depends(get_current_user),
    service: CaseService = Depends(get_case_service),
):
    case = service.get_case_for_user(case_id, current_user)
    area = broadcast.expertise_area if broadcast and broadcast.expertise_area else case.expertise_area
    notified = service.assignments.broadcast_availability(case.id, area)
    return BroadcastResponse(case_id=case.id, notified=notified)

# =====================================================
# STATUS
# =====================================================

@router.patch("/{case_id}/status", response_model=CaseResponse)
def update_case_status(
    case_id: int,
    status_update: CaseStatusUpdate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: CaseService = Depends(get_case_service),
    email_client: EmailClient = Depends(get_email_client),
):
    case = service.transition_status(
        case_id, status_update.status, current_user, {"reason": status_update.reason}
    )
    schedule_outbox_drain(background_tasks, db, email_client)
    return case

# =====================================================
# DOCUMENTS
# =====================================================

@router.post("/{case_id}/document", response_model=CaseResponse)
async def upload_case_document(
    case_id: int,
    document: UploadFile = File(...),
    document_type: str = Form("original"),
    current_user: User = Depends(get_current_user),
    service: CaseService = Depends(get_case_service),
):
    payload = await read_upload(document)
    return service.upload_case_document(case_id, current_user, payload, document_type)

@router.post("/{case_id}/annotate", response_model=CaseResponse)
async def annotate_case_document(
    case_id: int,
    notes: Optional[str] = Form(None),
    document_url: Optional[str] = Form(None),
    document: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    service: CaseService = Depends(get_case_service),
):
    """Attach the assignee's annotated copy and/or notes to a case."""
    payload = None
    if document is not None and document.filename:
        payload = await read_upload(document)
    return service.annotate_document(case_id, current_user, notes=notes, document=payload, document_url=document_url)

@router.get("/{case_id}", response_model=CaseResponse)
def get_case(
    case_id: int,
    current_user: User = Depends(get_current_user),
    service: CaseService = Depends(get_case_service),
):
    return service.get_case_for_user(case_id, current_user)
