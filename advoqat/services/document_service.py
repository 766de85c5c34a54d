"""
AI-drafted legal documents, paid per download.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import openai
from sqlalchemy.orm import Session

from advoqat.config import OPENAI_API_KEY, OPENAI_MODEL, OPENAI_TIMEOUT_SECONDS
from advoqat.errors import ConflictError, NotFoundError, UpstreamError, ValidationError
from advoqat.models import (
    DocumentPaymentStatus, GeneratedDocument, GeneratedDocumentStatus, User
)
from advoqat.services.pricing import PricingPolicy

logger = logging.getLogger(__name__)

TEMPLATES = {
    "nda": {
        "name": "Non-Disclosure Agreement",
        "document_type": "contract",
        "description": "Mutual or one-way confidentiality agreement between two parties.",
        "required_fields": ["disclosing_party", "receiving_party", "purpose", "duration_months"],
    },
    "tenancy_agreement": {
        "name": "Assured Shorthold Tenancy Agreement",
        "document_type": "contract",
        "description": "Residential tenancy between a landlord and tenant.",
        "required_fields": ["landlord_name", "tenant_name", "property_address", "monthly_rent", "start_date"],
    },
    "letter_before_action": {
        "name": "Letter Before Action",
        "document_type": "letter",
        "description": "Formal pre-action letter setting out a claim and a deadline to respond.",
        "required_fields": ["sender_name", "recipient_name", "claim_summary", "amount_claimed", "response_days"],
    },
    "power_of_attorney": {
        "name": "General Power of Attorney",
        "document_type": "deed",
        "description": "Authority for an attorney to act on the donor's behalf.",
        "required_fields": ["donor_name", "attorney_name", "scope"],
    },
    "employment_contract": {
        "name": "Employment Contract",
        "document_type": "contract",
        "description": "Written statement of employment particulars.",
        "required_fields": ["employer_name", "employee_name", "job_title", "salary", "start_date"],
    },
}

SYSTEM_PROMPT = (
    "You are an experienced solicitor in England and Wales drafting legal documents. "
    "Produce a complete, professionally formatted document using only the details supplied. "
    "Use clear headings and numbered clauses. Where a detail is missing, insert a bracketed "
    "placeholder rather than inventing it. Do not add commentary before or after the document."
)


class DocumentGenerator:
    """Chat-completions call that drafts one document."""

    def __init__(self, api_key: str = OPENAI_API_KEY, model: str = OPENAI_MODEL,
                 timeout: float = OPENAI_TIMEOUT_SECONDS):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    def draft(self, template: Dict[str, Any], form_data: Dict[str, Any]) -> str:
        if not self.api_key:
            raise UpstreamError("AI service not configured")
        details = "\n".join(f"- {key.replace('_', ' ')}: {value}" for key, value in form_data.items())
        client = openai.OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=1)
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": f"Draft a {template['name']}.\n\nDetails:\n{details}"},
                ],
                max_tokens=2000,
                temperature=0.2,
            )
        except openai.APIError as e:
            logger.error(f"OpenAI API error: {str(e)}")
            raise UpstreamError(f"AI service error: {str(e)}") from e

        content = response.choices[0].message.content
        if not content:
            raise UpstreamError("AI service returned an empty document")
        return content


def get_document_generator() -> DocumentGenerator:
    return DocumentGenerator()


def list_templates() -> List[Dict[str, Any]]:
    return [{"id": template_id, **template} for template_id, template in TEMPLATES.items()]


class DocumentService:
    def __init__(self, db: Session, generator: Optional[DocumentGenerator] = None,
                 pricing: Optional[PricingPolicy] = None):
        self.db = db
        self.generator = generator or DocumentGenerator()
        self.pricing = pricing or PricingPolicy()

    def generate(self, user: User, template_id: str, form_data: Dict[str, Any]) -> GeneratedDocument:
        template = TEMPLATES.get(template_id)
        if template is None:
            raise NotFoundError(f"Template '{template_id}' not found")
        form_data = {key: value for key, value in (form_data or {}).items() if value not in (None, "")}
        missing = [field for field in template["required_fields"] if field not in form_data]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        content = self.generator.draft(template, form_data)

        document = GeneratedDocument(
            user_id=user.id,
            template_id=template_id,
            template_name=template["name"],
            form_data=form_data,
            generated_document=content,
            document_type=template["document_type"],
            document_fee=self.pricing.document_fee(template_id),
            payment_status=DocumentPaymentStatus.PENDING,
            status=GeneratedDocumentStatus.ACTIVE,
        )
        self.db.add(document)
        self.db.commit()
        self.db.refresh(document)
        logger.info(f"Generated {template_id} document {document.id} for user {user.id}")
        return document

    def list_for_user(self, user: User) -> List[GeneratedDocument]:
        return (
            self.db.query(GeneratedDocument)
            .filter(
                GeneratedDocument.user_id == user.id,
                GeneratedDocument.status != GeneratedDocumentStatus.DELETED,
            )
            .order_by(GeneratedDocument.created_at.desc(), GeneratedDocument.id.desc())
            .all()
        )

    def get(self, user: User, document_id: int) -> GeneratedDocument:
        document = self.db.get(GeneratedDocument, document_id)
        if (
            document is None
            or document.user_id != user.id
            or document.status == GeneratedDocumentStatus.DELETED
        ):
            raise NotFoundError("Document not found")
        return document

    def download(self, user: User, document_id: int) -> GeneratedDocument:
        document = self.get(user, document_id)
        if document.payment_status != DocumentPaymentStatus.PAID:
            raise ConflictError("Payment required before this document can be downloaded")
        document.download_count = (document.download_count or 0) + 1
        self.db.commit()
        self.db.refresh(document)
        return document

    def delete(self, user: User, document_id: int):
        document = self.get(user, document_id)
        document.status = GeneratedDocumentStatus.DELETED
        document.updated_at = datetime.utcnow()
        self.db.commit()
