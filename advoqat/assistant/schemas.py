from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from advoqat.models import ChatRole, ChatSessionStatus

# Request schemas
class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=4000)
    session_id: Optional[int] = None
    legal_area: Optional[str] = Field(default=None, description="Legal area of focus; detected from the message when omitted")

class SessionRename(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)

# Response schemas
class ChatMessageResponse(BaseModel):
    id: int
    role: ChatRole
    content: str
    tokens_used: Optional[int] = None
    model_used: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ChatReply(BaseModel):
    session_id: int
    session_title: str
    primary_topic: Optional[str] = None
    response: str
    tokens_used: Optional[int] = None
    model_used: Optional[str] = None
    disclaimer: str

class ChatSessionSummary(BaseModel):
    id: int
    title: str
    category: Optional[str] = None
    primary_topic: Optional[str] = None
    status: ChatSessionStatus
    message_count: int = 0
    last_message_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ChatSessionDetail(BaseModel):
    id: int
    title: str
    category: Optional[str] = None
    primary_topic: Optional[str] = None
    status: ChatSessionStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    messages: List[ChatMessageResponse] = []

    class Config:
        from_attributes = True

class LegalArea(BaseModel):
    id: str
    keywords: List[str]
