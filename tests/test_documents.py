import json

import pytest

from advoqat.errors import ConflictError, NotFoundError, ValidationError
from advoqat.models import DocumentPaymentStatus
from advoqat.services.document_service import DocumentService, TEMPLATES

from conftest import auth_headers, make_user

NDA_FIELDS = {
    "disclosing_party": "Acme Ltd",
    "receiving_party": "Beta LLP",
    "purpose": "Merger talks",
    "duration_months": 24,
}


@pytest.fixture
def service(db, generator, pricing):
    return DocumentService(db, generator=generator, pricing=pricing)


def test_generate_stores_a_pending_document(db, service, generator):
    user = make_user(db, "ada@example.com")
    document = service.generate(user, "nda", dict(NDA_FIELDS, notes=""))

    assert document.template_name == TEMPLATES["nda"]["name"]
    assert document.document_fee == 1000
    assert document.payment_status == DocumentPaymentStatus.PENDING
    # Blank values never reach the generator
    assert generator.calls == [("Non-Disclosure Agreement", NDA_FIELDS)]


def test_missing_fields_are_listed(db, service, generator):
    user = make_user(db, "ada@example.com")
    with pytest.raises(ValidationError, match="purpose, duration_months"):
        service.generate(user, "nda", {"disclosing_party": "A", "receiving_party": "B"})
    assert generator.calls == []


def test_unknown_template(db, service):
    user = make_user(db, "ada@example.com")
    with pytest.raises(NotFoundError):
        service.generate(user, "prenup", {})


def test_download_requires_payment(db, service):
    user = make_user(db, "ada@example.com")
    document = service.generate(user, "nda", NDA_FIELDS)
    with pytest.raises(ConflictError):
        service.download(user, document.id)

    document.payment_status = DocumentPaymentStatus.PAID
    db.commit()
    assert service.download(user, document.id).download_count == 1
    assert service.download(user, document.id).download_count == 2


def test_documents_are_private_and_soft_deleted(db, service):
    owner = make_user(db, "owner@example.com")
    other = make_user(db, "other@example.com")
    document = service.generate(owner, "nda", NDA_FIELDS)

    with pytest.raises(NotFoundError):
        service.get(other, document.id)

    service.delete(owner, document.id)
    assert service.list_for_user(owner) == []
    with pytest.raises(NotFoundError):
        service.get(owner, document.id)

# =====================================================
# HTTP SURFACE
# =====================================================

def test_templates_are_public(client):
    response = client.get("/api/documents/templates")
    assert response.status_code == 200
    ids = [template["id"] for template in response.json()]
    assert ids == list(TEMPLATES)


def test_pay_then_download_over_http(client, db):
    user = make_user(db, "ada@example.com")
    headers = auth_headers(user)

    created = client.post("/api/documents/generate", json={"template_id": "nda", "form_data": NDA_FIELDS}, headers=headers)
    assert created.status_code == 201
    document_id = created.json()["id"]

    blocked = client.get(f"/api/documents/{document_id}/download", headers=headers)
    assert blocked.status_code == 409
    assert blocked.json()["code"] == "conflict"

    checkout = client.post("/api/payments/create-checkout-session", json={"document_id": document_id}, headers=headers).json()
    event = {
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": checkout["sessionId"],
            "amount_total": 1000,
            "metadata": {"userId": str(user.id), "documentId": str(document_id)},
        }},
    }
    client.post("/api/payments/webhook", content=json.dumps(event), headers={"Stripe-Signature": "valid-signature"})

    downloaded = client.get(f"/api/documents/{document_id}/download", headers=headers)
    assert downloaded.status_code == 200
    assert downloaded.json()["download_count"] == 1
    assert downloaded.json()["generated_document"].startswith("Non-Disclosure Agreement")

    listed = client.get("/api/documents/", headers=headers).json()
    assert listed[0]["payment_status"] == "paid"


def test_generate_validation_error_shape(client, db):
    user = make_user(db, "ada@example.com")
    response = client.post(
        "/api/documents/generate",
        json={"template_id": "nda", "form_data": {}},
        headers=auth_headers(user),
    )
    assert response.status_code == 400
    assert response.json() == {
        "code": "validation_error",
        "message": "Missing required fields: disclosing_party, receiving_party, purpose, duration_months",
    }


def test_delete_over_http(client, db):
    user = make_user(db, "ada@example.com")
    headers = auth_headers(user)
    document_id = client.post(
        "/api/documents/generate", json={"template_id": "nda", "form_data": NDA_FIELDS}, headers=headers
    ).json()["id"]
    assert client.delete(f"/api/documents/{document_id}", headers=headers).status_code == 204
    assert client.get(f"/api/documents/{document_id}", headers=headers).status_code == 404
