import logging
from typing import List

from fastapi import APIRouter, Depends, status
from fastapi.responses import StreamingResponse

from advoqat.assistant.schemas import (
    ChatReply, ChatRequest, ChatSessionDetail, ChatSessionSummary, LegalArea, SessionRename
)
from advoqat.auth.dependencies import get_current_user
from advoqat.dependencies import get_chat_service
from advoqat.models import User
from advoqat.services.assistant_service import DISCLAIMER, ChatService, legal_areas

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["AI Legal Assistant"])

# =====================================================
# CHAT
# =====================================================

@router.post("/chat", response_model=ChatReply)
def send_message(
    request: ChatRequest,
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    """Ask the assistant; starts a new session when no session_id is given."""
    session, answer = service.send_message(current_user, request.message, request.session_id, request.legal_area)
    return ChatReply(
        session_id=session.id,
        session_title=session.title,
        primary_topic=session.primary_topic,
        response=answer.content,
        tokens_used=answer.tokens_used,
        model_used=answer.model_used,
        disclaimer=DISCLAIMER,
    )

@router.post("/chat/stream")
def stream_message(
    request: ChatRequest,
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    """Same as /chat, delivered as server-sent events."""
    events = service.stream_message(current_user, request.message, request.session_id, request.legal_area)
    return StreamingResponse(
        events,
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )

@router.get("/legal-areas", response_model=List[LegalArea])
def get_legal_areas():
    return legal_areas()

# =====================================================
# SESSIONS
# =====================================================

@router.get("/sessions", response_model=List[ChatSessionSummary])
def list_sessions(
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    return service.list_sessions(current_user)

@router.get("/sessions/{session_id}", response_model=ChatSessionDetail)
def get_session(
    session_id: int,
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    return service.get_session(current_user, session_id)

@router.put("/sessions/{session_id}", response_model=ChatSessionDetail)
def rename_session(
    session_id: int,
    rename: SessionRename,
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    return service.rename_session(current_user, session_id, rename.title)

@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_session(
    session_id: int,
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    service.delete_session(current_user, session_id)
