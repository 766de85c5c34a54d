from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from advoqat.models import DocumentPaymentStatus, GeneratedDocumentStatus

class TemplateResponse(BaseModel):
    id: str
    name: str
    document_type: str
    description: str
    required_fields: List[str]

class DocumentGenerate(BaseModel):
    template_id: str = Field(..., min_length=1, max_length=50)
    form_data: Dict[str, Any] = {}

class DocumentBase(BaseModel):
    id: int
    template_id: str
    template_name: str
    document_type: str
    document_fee: int
    payment_status: DocumentPaymentStatus
    status: GeneratedDocumentStatus
    download_count: int = 0
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class DocumentListResponse(DocumentBase):
    pass

class DocumentResponse(DocumentBase):
    form_data: Dict[str, Any]

class DocumentDownload(BaseModel):
    id: int
    template_name: str
    generated_document: str
    download_count: int

    class Config:
        from_attributes = True
