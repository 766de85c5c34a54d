import pytest

from advoqat.errors import (
    AssignmentError, AuthorizationError, ConflictError, InvalidTransitionError, NotAvailableError,
    ValidationError
)
from advoqat.models import (
    CaseDocumentStatus, CaseStatus, EmailOutbox, Notification, Payment, ProfessionalKind, ServiceType,
    UserRole
)
from advoqat.services.case_service import CaseService
from advoqat.services.pricing import PricingPolicy
from advoqat.services.storage import FilePayload

from conftest import FailingStorage, FakeStorage, auth_headers, make_barrister, make_freelancer, make_user


def summary_pdf():
    return FilePayload(filename="summary.pdf", content_type="application/pdf", content=b"%PDF-1.4 test")


@pytest.fixture
def service(db):
    return CaseService(db, pricing=PricingPolicy(case_completion_fee=15000), storage=FakeStorage())


@pytest.fixture
def client_user(db):
    return make_user(db, "client@example.com")

# =====================================================
# CREATION & MATCHING
# =====================================================

def test_auto_match_picks_highest_scored_available_freelancer(db, service, client_user):
    make_freelancer(db, "low@example.com", score=3.0)
    best = make_freelancer(db, "best@example.com", score=4.8)
    make_freelancer(db, "offline@example.com", score=5.0, available=False)
    make_freelancer(db, "unvetted@example.com", score=5.0, approved=False)
    make_freelancer(db, "other@example.com", expertise=("tax",), score=5.0)

    case = service.create_case(client_user.id, "Custody", "Need help", {"expertise_area": "Family Law"}, auto_match=True)

    assert case.status == CaseStatus.PENDING
    assert case.assignee_kind == ProfessionalKind.FREELANCER
    assert case.assignee_id == best.id
    assert case.freelancer_id == best.id
    assert case.barrister_id is None
    assert case.assigned_at is not None


def test_auto_match_tie_goes_to_lowest_earnings(db, service, client_user):
    make_freelancer(db, "rich@example.com", score=4.0, earnings=90000)
    modest = make_freelancer(db, "modest@example.com", score=4.0, earnings=1000)

    case = service.create_case(client_user.id, "Divorce", "Details", {"expertise_area": "family law"}, auto_match=True)

    assert case.assignee_id == modest.id


def test_case_without_assignee_stays_unassigned(db, service, client_user):
    make_freelancer(db, "fl@example.com", expertise=("family law",), score=5.0)

    case = service.create_case(client_user.id, "Custody", "Need help", {"expertise_area": "family law"})
    db.expire_all()
    stored = service.get_case(case.id)

    assert stored.freelancer_id is None
    assert stored.barrister_id is None
    assert stored.assigned_at is None
    assert db.query(Notification).filter(Notification.type == "case_available").count() == 1


def test_unmatched_case_stays_open_and_is_broadcast(db, service, client_user):
    barrister = make_barrister(db, "bar@example.com", expertise=("tax",))
    make_freelancer(db, "fl@example.com", expertise=("family law",))

    case = service.create_case(client_user.id, "HMRC enquiry", "Details", {"expertise_area": "tax"})

    assert case.assignee_id is None
    assert case.assigned_at is None
    notes = db.query(Notification).filter(Notification.type == "case_available").all()
    assert [n.user_id for n in notes] == [barrister.id]


def test_explicit_unavailable_freelancer_is_an_assignment_error(db, service, client_user):
    busy = make_freelancer(db, "busy@example.com", available=False)
    with pytest.raises(AssignmentError):
        service.create_case(client_user.id, "Title", "Body", freelancer_id=busy.id)


def test_explicit_barrister_must_be_approved(db, service, client_user):
    pending = make_barrister(db, "new@example.com", approved=False)
    with pytest.raises(AssignmentError) as exc:
        service.create_case(client_user.id, "Title", "Body", barrister_id=pending.id)
    assert isinstance(exc.value, NotAvailableError)


def test_both_assignees_is_a_conflict(db, service, client_user):
    fl = make_freelancer(db, "fl@example.com")
    bar = make_barrister(db, "bar@example.com")
    with pytest.raises(ConflictError):
        service.create_case(client_user.id, "Title", "Body", freelancer_id=fl.id, barrister_id=bar.id)


def test_missing_fields_are_rejected(service, client_user):
    with pytest.raises(ValidationError):
        service.create_case(client_user.id, "  ", "Body")


def test_explicit_assignment_notifies_and_queues_email(db, service, client_user):
    bar = make_barrister(db, "bar@example.com")
    case = service.create_case(client_user.id, "Lease dispute", "Body", barrister_id=bar.email)

    assert case.assignee_kind == ProfessionalKind.BARRISTER
    assert db.query(Notification).filter_by(user_id=bar.id, type="case_assigned").count() == 1
    assert db.query(EmailOutbox).filter_by(recipient=bar.email, event_type="case_assigned").count() == 1

# =====================================================
# DOCUMENTS
# =====================================================

def test_document_is_stored_after_the_case(db, service, client_user):
    case = service.create_case(client_user.id, "Title", "Body", document=summary_pdf())
    assert case.document_status == CaseDocumentStatus.UPLOADED
    assert case.case_summary_url == f"https://files.test/cases/{case.id}/summary.pdf"


def test_failed_upload_keeps_the_case(db, client_user):
    service = CaseService(db, storage=FailingStorage())
    case = service.create_case(client_user.id, "Title", "Body", document=summary_pdf())
    assert case.id is not None
    assert case.document_status == CaseDocumentStatus.UPLOAD_FAILED
    assert case.case_summary_url is None

# =====================================================
# TRANSITIONS
# =====================================================

def assigned_case(db, service, client_user, email="fl@example.com"):
    fl = make_freelancer(db, email)
    case = service.create_case(client_user.id, "Title", "Body", freelancer_id=fl.id)
    return case, fl


def test_assignee_accepts_then_completes(db, service, client_user):
    case, fl = assigned_case(db, service, client_user)

    case = service.transition_status(case.id, "active", fl)
    assert case.status == CaseStatus.ACTIVE
    assert case.accepted_at is not None

    case = service.transition_status(case.id, CaseStatus.COMPLETED, fl)
    assert case.status == CaseStatus.COMPLETED
    assert case.completed_at is not None
    assert fl.freelancer.total_earnings == 15000


def test_completion_is_credited_once(db, service, client_user):
    case, fl = assigned_case(db, service, client_user)
    service.transition_status(case.id, "active", fl)
    service.transition_status(case.id, "completed", fl)

    with pytest.raises(InvalidTransitionError):
        service.transition_status(case.id, "completed", fl)
    # A replayed completion side effect is also a no-op
    service._record_completion(case)
    db.commit()

    db.refresh(fl.freelancer)
    assert fl.freelancer.total_earnings == 15000
    payments = db.query(Payment).filter_by(case_id=case.id, service_type=ServiceType.CASE_COMPLETION).all()
    assert len(payments) == 1
    assert payments[0].idempotency_key == f"case-completion-{case.id}"


def test_status_change_notifies_client_and_queues_email(db, service, client_user):
    case, fl = assigned_case(db, service, client_user)
    case = service.transition_status(case.id, "declined", fl, {"reason": "Conflict of interest"})

    note = db.query(Notification).filter_by(user_id=client_user.id, type="case_declined").one()
    assert note.data["reason"] == "Conflict of interest"
    assert db.query(EmailOutbox).filter_by(recipient=client_user.email, event_type="case_declined").count() == 1
    db.refresh(case)
    assert case.decline_reason == "Conflict of interest"
    assert case.declined_at is not None


def test_only_the_assignee_can_transition(db, service, client_user):
    case, _ = assigned_case(db, service, client_user)
    stranger = make_freelancer(db, "stranger@example.com")
    with pytest.raises(AuthorizationError):
        service.transition_status(case.id, "active", stranger)
    with pytest.raises(AuthorizationError):
        service.transition_status(case.id, "active", client_user)


def test_admin_may_transition(db, service, client_user):
    case, _ = assigned_case(db, service, client_user)
    admin = make_user(db, "admin@example.com", role=UserRole.ADMIN)
    assert service.transition_status(case.id, "declined", admin).status == CaseStatus.DECLINED


def test_admin_cannot_activate_an_unassigned_case(db, service, client_user):
    case = service.create_case(client_user.id, "Open", "Body")
    admin = make_user(db, "admin@example.com", role=UserRole.ADMIN)

    with pytest.raises(InvalidTransitionError, match="no assigned professional"):
        service.transition_status(case.id, "active", admin)

    db.expire_all()
    assert service.get_case(case.id).status == CaseStatus.PENDING
    assert db.query(Payment).count() == 0


def test_illegal_edges_and_unknown_statuses(db, service, client_user):
    case, fl = assigned_case(db, service, client_user)
    with pytest.raises(InvalidTransitionError):
        service.transition_status(case.id, "completed", fl)
    with pytest.raises(ValidationError):
        service.transition_status(case.id, "archived", fl)


def test_kind_guard_rejects_wrong_professional_route(db, service, client_user):
    case, fl = assigned_case(db, service, client_user)
    with pytest.raises(AuthorizationError):
        service.transition_status(case.id, "active", fl, {"kind": "barrister"})

# =====================================================
# OPEN MARKETPLACE
# =====================================================

def test_open_case_claim_has_a_single_winner(db, service, client_user):
    case = service.create_case(client_user.id, "Open", "Body")
    first = make_freelancer(db, "first@example.com")
    second = make_barrister(db, "second@example.com")

    claimed = service.assignments.accept_open_case(case.id, first)
    assert claimed.status == CaseStatus.ACTIVE
    assert claimed.assignee_id == first.id
    assert claimed.assigned_at is not None and claimed.accepted_at is not None

    with pytest.raises(ConflictError, match="no longer open"):
        service.assignments.accept_open_case(case.id, second)


def test_clients_cannot_claim_cases(db, service, client_user):
    case = service.create_case(client_user.id, "Open", "Body")
    with pytest.raises(AuthorizationError):
        service.assignments.accept_open_case(case.id, client_user)


def test_assign_requires_exactly_one_professional(db, service, client_user):
    case = service.create_case(client_user.id, "Open", "Body")
    with pytest.raises(ValidationError):
        service.assignments.assign(case.id)
    with pytest.raises(ConflictError):
        service.assignments.assign(case.id, freelancer_id=1, barrister_id=2)


def test_assign_rejects_cases_that_are_not_pending(db, service, client_user):
    case, fl = assigned_case(db, service, client_user)
    service.transition_status(case.id, "declined", fl)
    other = make_freelancer(db, "other@example.com")
    with pytest.raises(InvalidTransitionError):
        service.assignments.assign(case.id, freelancer_id=other.id)


def test_broadcast_without_area_reaches_everyone_available(db, service, client_user):
    case = service.create_case(client_user.id, "Open", "Body")
    make_freelancer(db, "a@example.com", expertise=("tax",))
    make_barrister(db, "b@example.com", expertise=("crime",))
    make_freelancer(db, "c@example.com", available=False)
    assert service.assignments.broadcast_availability(case.id, "") == 2


def test_only_open_cases_can_be_broadcast(db, service, client_user):
    case, fl = assigned_case(db, service, client_user)
    make_freelancer(db, "other@example.com")
    with pytest.raises(InvalidTransitionError):
        service.assignments.broadcast_availability(case.id)

    service.transition_status(case.id, "active", fl)
    with pytest.raises(InvalidTransitionError):
        service.assignments.broadcast_availability(case.id)
    assert db.query(Notification).filter(Notification.type == "case_available").count() == 0

# =====================================================
# QUERIES
# =====================================================

def test_stats_count_every_status(db, service, client_user):
    case, fl = assigned_case(db, service, client_user)
    service.create_case(client_user.id, "Second", "Body")
    service.transition_status(case.id, "active", fl)

    stats = service.case_stats("client", client_user.id)
    assert stats == {"pending": 1, "active": 1, "completed": 0, "declined": 0, "total": 2}
    assert service.case_stats("freelancer", fl.email)["active"] == 1


def test_available_cases_are_pending_and_unassigned(db, service, client_user):
    assigned_case(db, service, client_user)
    open_case = service.create_case(client_user.id, "Open", "Body", {"expertise_area": "Tax"})
    assert [c.id for c in service.list_available_cases("tax")] == [open_case.id]


def test_case_visibility(db, service, client_user):
    case, fl = assigned_case(db, service, client_user)
    outsider = make_user(db, "outsider@example.com")
    assert service.get_case_for_user(case.id, fl).id == case.id
    assert service.get_case_for_user(case.id, client_user).id == case.id
    with pytest.raises(AuthorizationError):
        service.get_case_for_user(case.id, outsider)

# =====================================================
# HTTP SURFACE
# =====================================================

def test_create_case_over_http_with_document(client, db, storage, email_client):
    user = make_user(db, "client@example.com")
    fl = make_freelancer(db, "fl@example.com")

    response = client.post(
        "/api/cases/",
        data={"title": "Custody", "description": "Need help", "freelancer_id": str(fl.id)},
        files={"document": ("summary.pdf", b"%PDF-1.4", "application/pdf")},
        headers=auth_headers(user),
    )

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["status"] == "pending"
    assert body["freelancer_id"] == fl.id
    assert body["document_status"] == "uploaded"
    assert storage.uploads == [(f"cases/{body['id']}", "summary.pdf")]
    # Assignment email drained after the response
    assert email_client.sent == [(fl.email, "A new case has been assigned to you")]


def test_invalid_transition_error_shape(client, db):
    user = make_user(db, "client@example.com")
    fl = make_freelancer(db, "fl@example.com")
    created = client.post(
        "/api/cases/",
        data={"title": "T", "description": "D", "freelancer_id": str(fl.id)},
        headers=auth_headers(user),
    ).json()

    response = client.patch(
        f"/api/cases/{created['id']}/status", json={"status": "completed"}, headers=auth_headers(fl)
    )

    assert response.status_code == 409
    assert response.json()["code"] == "invalid_transition"
    assert "message" in response.json()


def test_freelancer_routes_complete_a_case(client, db):
    user = make_user(db, "client@example.com")
    fl = make_freelancer(db, "fl@example.com")
    case_id = client.post(
        "/api/cases/", data={"title": "T", "description": "D", "freelancer_id": str(fl.id)},
        headers=auth_headers(user),
    ).json()["id"]

    assert client.post(f"/api/freelancers/cases/{case_id}/accept", headers=auth_headers(fl)).status_code == 200
    response = client.post(f"/api/freelancers/cases/{case_id}/complete", headers=auth_headers(fl))

    assert response.status_code == 200
    assert response.json()["status"] == "completed"
    earnings = client.get("/api/freelancers/earnings", headers=auth_headers(fl)).json()
    assert earnings["totalEarnings"] == 15000
    assert earnings["completedCases"] == 1


def test_open_case_accept_over_http(client, db):
    user = make_user(db, "client@example.com")
    winner = make_freelancer(db, "winner@example.com")
    loser = make_barrister(db, "loser@example.com")
    case_id = client.post(
        "/api/cases/", data={"title": "T", "description": "D"}, headers=auth_headers(user)
    ).json()["id"]

    assert client.post(f"/api/cases/{case_id}/accept", headers=auth_headers(winner)).status_code == 200
    response = client.post(f"/api/cases/{case_id}/accept", headers=auth_headers(loser))
    assert response.status_code == 409
    assert response.json() == {"code": "conflict", "message": "Case is no longer open"}


def test_client_cannot_list_someone_elses_cases(client, db):
    alice = make_user(db, "alice@example.com")
    bob = make_user(db, "bob@example.com")
    response = client.get(f"/api/cases/client/{alice.id}", headers=auth_headers(bob))
    assert response.status_code == 403
    assert response.json()["code"] == "forbidden"


def test_missing_case_is_not_found(client, db):
    user = make_user(db, "client@example.com")
    response = client.get("/api/cases/999", headers=auth_headers(user))
    assert response.status_code == 404
    assert response.json() == {"code": "not_found", "message": "Case not found"}


def test_case_created_over_http_is_unassigned_unless_matching_is_requested(client, db):
    user = make_user(db, "client@example.com")
    fl = make_freelancer(db, "fl@example.com", expertise=("family law",))
    form = {"title": "Custody", "description": "Need help", "expertise_area": "family law"}

    plain = client.post("/api/cases/", data=form, headers=auth_headers(user)).json()
    assert plain["freelancer_id"] is None
    assert plain["barrister_id"] is None

    matched = client.post("/api/cases/", data=dict(form, auto_match="true"), headers=auth_headers(user)).json()
    assert matched["freelancer_id"] == fl.id
