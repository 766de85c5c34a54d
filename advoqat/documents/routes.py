from fastapi import APIRouter, Depends, status
from typing import List

from advoqat.auth.dependencies import get_current_user
from advoqat.dependencies import get_document_service
from advoqat.documents.schemas import (
    DocumentDownload, DocumentGenerate, DocumentListResponse, DocumentResponse, TemplateResponse
)
from advoqat.models import User
from advoqat.services.document_service import DocumentService, list_templates

router = APIRouter(prefix="/api/documents", tags=["Documents"])

# =====================================================
# TEMPLATES & GENERATION
# =====================================================

@router.get("/templates", response_model=List[TemplateResponse])
def get_templates():
    return list_templates()

@router.post("/generate", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
def generate_document(
    request: DocumentGenerate,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    """Draft a document from a template. It must be paid for before download."""
    return service.generate(current_user, request.template_id, request.form_data)

# =====================================================
# USER DOCUMENTS
# =====================================================

@router.get("/", response_model=List[DocumentListResponse])
def list_documents(
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    return service.list_for_user(current_user)

@router.get("/{document_id}", response_model=DocumentResponse)
def get_document(
    document_id: int,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    return service.get(current_user, document_id)

@router.get("/{document_id}/download", response_model=DocumentDownload)
def download_document(
    document_id: int,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    return service.download(current_user, document_id)

@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_document(
    document_id: int,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    service.delete(current_user, document_id)
