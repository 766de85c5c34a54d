"""
AI legal assistant: persistent chat sessions over the OpenAI chat completions API.

Each turn stores the user's question, sends the recent history with a
topic-specific system prompt, and stores the reply. Streaming turns send
the reply as server-sent events and store it once the stream finishes.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Tuple

import openai
from sqlalchemy import func
from sqlalchemy.orm import Session

from advoqat.config import ASSISTANT_HISTORY_LIMIT, OPENAI_API_KEY, OPENAI_MODEL, OPENAI_TIMEOUT_SECONDS
from advoqat.errors import NotFoundError, UpstreamError, ValidationError
from advoqat.models import ChatMessage, ChatRole, ChatSession, ChatSessionStatus, User

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4000
TITLE_LENGTH = 50
DEFAULT_CATEGORY = "Legal Consultation"

DISCLAIMER = (
    "This information is for educational purposes only and should not be considered legal advice. "
    "For specific legal matters, please consult a qualified solicitor or barrister."
)

# Enhanced legal contexts and system prompts
LEGAL_CONTEXTS = {
    "general": {
        "system_prompt": """You are Advoqat's legal assistant, with broad knowledge of the law of England and Wales.
        Always:
        1. Provide accurate, helpful legal information based on general legal principles
        2. Be clear about limitations and when professional legal counsel is needed
        3. Use clear, understandable language while maintaining legal accuracy
        4. Give general guidance on specific situations and recommend a consultation with a lawyer""",
        "keywords": ["legal guidance", "rights", "court"],
    },
    "family_law": {
        "system_prompt": """You are a family law specialist covering:
        - Divorce, dissolution and financial remedies
        - Child arrangements, custody and maintenance
        - Domestic abuse and protection orders
        - Wills, probate and inheritance disputes

        Provide sensitive, practical guidance on family legal matters.""",
        "keywords": ["divorce", "custody", "child", "marriage", "inheritance", "probate"],
    },
    "employment_law": {
        "system_prompt": """You are an employment law specialist with expertise in:
        - Unfair and wrongful dismissal
        - Discrimination and the Equality Act 2010
        - Contracts of employment, redundancy and settlement agreements
        - Employment tribunal procedure

        Provide practical advice on workplace disputes and compliance.""",
        "keywords": ["employer", "dismissal", "redundancy", "workplace", "discrimination", "tribunal"],
    },
    "property_law": {
        "system_prompt": """You are a property law specialist covering:
        - Residential and commercial tenancies
        - Landlord and tenant disputes, deposits and possession claims
        - Conveyancing, boundaries and easements
        - Leasehold and service charges

        Provide guidance on ownership, tenancies and property disputes.""",
        "keywords": ["landlord", "tenant", "tenancy", "lease", "eviction", "property", "deposit"],
    },
    "commercial_law": {
        "system_prompt": """You are a commercial law expert specialising in:
        - Company formation, directors' duties and shareholder disputes
        - Commercial contracts, breach and remedies
        - Insolvency and debt recovery
        - Consumer protection and competition

        Focus on practical business law guidance and regulatory compliance.""",
        "keywords": ["company", "contract", "business", "shareholder", "director", "invoice"],
    },
    "criminal_law": {
        "system_prompt": """You are a criminal law expert specialising in:
        - Police interviews, arrest and charge
        - Bail, sentencing and appeals
        - Magistrates' and Crown Court procedure
        - Rights of suspects and defendants

        Focus on procedure and the person's rights at each stage.""",
        "keywords": ["arrest", "police", "criminal", "bail", "charged", "sentence"],
    },
    "immigration_law": {
        "system_prompt": """You are an immigration law specialist covering:
        - Visa applications, extensions and refusals
        - Settlement and citizenship
        - Asylum and human rights claims
        - Sponsor licences and right-to-work checks

        Explain the routes available and the evidence usually required.""",
        "keywords": ["visa", "immigration", "asylum", "citizenship", "settlement", "home office"],
    },
}


def get_legal_context(legal_area: Optional[str]) -> Dict[str, Any]:
    """Get appropriate legal context based on area of law"""
    return LEGAL_CONTEXTS.get((legal_area or "general").lower(), LEGAL_CONTEXTS["general"])


def detect_topic(message: str) -> str:
    text = message.lower()
    for area, context in LEGAL_CONTEXTS.items():
        if area != "general" and any(keyword in text for keyword in context["keywords"]):
            return area
    return "general"


def enhance_legal_prompt(legal_area: str) -> str:
    """System prompt for one legal area, ending with the mandatory disclaimer."""
    context = get_legal_context(legal_area)
    return f"""{context['system_prompt']}

CURRENT QUERY CONTEXT:
Legal Area: {legal_area}
Keywords to focus on: {', '.join(context['keywords'])}

IMPORTANT: Always include this disclaimer in your responses:
"{DISCLAIMER}"
"""


def legal_areas() -> List[Dict[str, Any]]:
    return [{"id": area, "keywords": context["keywords"]} for area, context in LEGAL_CONTEXTS.items()]


def sse(event: Dict[str, Any]) -> str:
    return f"data: {json.dumps(event)}\n\n"


@dataclass
class AssistantReply:
    content: str
    tokens_used: Optional[int]
    model_used: str


class LegalAssistant:
    """Chat-completions client for the legal assistant."""

    def __init__(self, api_key: str = OPENAI_API_KEY, model: str = OPENAI_MODEL,
                 timeout: float = OPENAI_TIMEOUT_SECONDS):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    def _client(self):
        if not self.api_key:
            raise UpstreamError("AI service not configured")
        return openai.OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=1)

    def _messages(self, history: List[Dict[str, str]], legal_area: str) -> List[Dict[str, str]]:
        return [{"role": "system", "content": enhance_legal_prompt(legal_area)}] + history

    def reply(self, history: List[Dict[str, str]], legal_area: str = "general") -> AssistantReply:
        client = self._client()
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=self._messages(history, legal_area),
                max_tokens=1000,
                temperature=0.3,  # Lower temperature for more accurate legal information
                top_p=0.9,
            )
        except openai.APIError as e:
            logger.error(f"OpenAI API error: {str(e)}")
            raise UpstreamError(f"AI service error: {str(e)}") from e

        content = response.choices[0].message.content
        if not content:
            raise UpstreamError("AI service returned an empty reply")
        usage = response.usage
        return AssistantReply(content, usage.total_tokens if usage else None, self.model)

    def stream(self, history: List[Dict[str, str]], legal_area: str = "general") -> Iterator[str]:
        client = self._client()
        try:
            chunks = client.chat.completions.create(
                model=self.model,
                messages=self._messages(history, legal_area),
                max_tokens=1000,
                temperature=0.3,
                top_p=0.9,
                stream=True,
            )
            for chunk in chunks:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except openai.APIError as e:
            logger.error(f"OpenAI streaming error: {str(e)}")
            raise UpstreamError(f"AI service error: {str(e)}") from e


def get_legal_assistant() -> LegalAssistant:
    return LegalAssistant()


class ChatService:
    def __init__(self, db: Session, assistant: Optional[LegalAssistant] = None):
        self.db = db
        self.assistant = assistant or LegalAssistant()

    # =====================================================
    # CHAT TURNS
    # =====================================================

    def send_message(self, user: User, message: str, session_id: Optional[int] = None,
                     legal_area: Optional[str] = None) -> Tuple[ChatSession, ChatMessage]:
        session = self._start_turn(user, message, session_id, legal_area)
        try:
            reply = self.assistant.reply(self._history(session.id), session.primary_topic)
        except UpstreamError:
            self.db.rollback()
            raise

        answer = ChatMessage(
            session_id=session.id,
            role=ChatRole.ASSISTANT,
            content=reply.content,
            tokens_used=reply.tokens_used,
            model_used=reply.model_used,
        )
        self.db.add(answer)
        session.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(session)
        self.db.refresh(answer)
        logger.info(f"Legal query processed - Session: {session.id}, Area: {session.primary_topic}")
        return session, answer

    def stream_message(self, user: User, message: str, session_id: Optional[int] = None,
                       legal_area: Optional[str] = None) -> Iterator[str]:
        """Store the question now; return the event stream that delivers and stores the answer.

        The request's session is closed by the time the stream is consumed,
        so the answer is written through a fresh session on the same bind.
        """
        session = self._start_turn(user, message, session_id, legal_area)
        self.db.commit()
        history = self._history(session.id)
        return self._stream_events(
            self.db.get_bind(), session.id, session.title, history, session.primary_topic
        )

    def _stream_events(self, bind, session_id: int, title: str, history: List[Dict[str, str]],
                       legal_area: str) -> Iterator[str]:
        yield sse({"type": "session", "sessionId": session_id, "sessionTitle": title})
        parts = []
        try:
            for delta in self.assistant.stream(history, legal_area):
                parts.append(delta)
                yield sse({"type": "delta", "content": delta})
        except UpstreamError as e:
            logger.warning(f"Streaming reply for session {session_id} aborted: {e.message}")
            yield sse({"type": "error", "message": e.message})
            return

        content = "".join(parts)
        if not content:
            yield sse({"type": "error", "message": "AI service returned an empty reply"})
            return

        db = Session(bind=bind)
        try:
            answer = ChatMessage(
                session_id=session_id,
                role=ChatRole.ASSISTANT,
                content=content,
                model_used=self.assistant.model,
            )
            db.add(answer)
            db.query(ChatSession).filter(ChatSession.id == session_id).update(
                {"updated_at": datetime.utcnow()}, synchronize_session=False
            )
            db.commit()
            answer_id = answer.id
        finally:
            db.close()
        yield sse({"type": "done", "messageId": answer_id, "modelUsed": self.assistant.model})

    def _start_turn(self, user: User, message: str, session_id: Optional[int],
                    legal_area: Optional[str]) -> ChatSession:
        message = (message or "").strip()
        if not message:
            raise ValidationError("Message is required")
        if len(message) > MAX_MESSAGE_LENGTH:
            raise ValidationError(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")
        if legal_area is not None and legal_area.lower() not in LEGAL_CONTEXTS:
            raise ValidationError(f"Unknown legal area '{legal_area}'")

        if session_id is not None:
            session = self.get_session(user, session_id)
            if legal_area:
                session.primary_topic = legal_area.lower()
        else:
            title = message if len(message) <= TITLE_LENGTH else message[:TITLE_LENGTH] + "..."
            session = ChatSession(
                user_id=user.id,
                title=title,
                category=DEFAULT_CATEGORY,
                primary_topic=(legal_area or detect_topic(message)).lower(),
                status=ChatSessionStatus.ACTIVE,
            )
            self.db.add(session)
            self.db.flush()

        self.db.add(ChatMessage(session_id=session.id, role=ChatRole.USER, content=message))
        self.db.flush()
        return session

    def _history(self, session_id: int) -> List[Dict[str, str]]:
        recent = (
            self.db.query(ChatMessage)
            .filter(ChatMessage.session_id == session_id)
            .order_by(ChatMessage.id.desc())
            .limit(ASSISTANT_HISTORY_LIMIT)
            .all()
        )
        return [{"role": m.role.value, "content": m.content} for m in reversed(recent)]

    # =====================================================
    # SESSIONS
    # =====================================================

    def list_sessions(self, user: User) -> List[Dict[str, Any]]:
        rows = (
            self.db.query(
                ChatSession,
                func.count(ChatMessage.id),
                func.max(ChatMessage.created_at),
            )
            .outerjoin(ChatMessage, ChatMessage.session_id == ChatSession.id)
            .filter(ChatSession.user_id == user.id, ChatSession.status != ChatSessionStatus.DELETED)
            .group_by(ChatSession.id)
            .order_by(ChatSession.updated_at.desc(), ChatSession.id.desc())
            .all()
        )
        return [
            {
                "id": session.id,
                "title": session.title,
                "category": session.category,
                "primary_topic": session.primary_topic,
                "status": session.status,
                "message_count": count,
                "last_message_at": last_message_at,
                "created_at": session.created_at,
                "updated_at": session.updated_at,
            }
            for session, count, last_message_at in rows
        ]

    def get_session(self, user: User, session_id: int) -> ChatSession:
        session = self.db.get(ChatSession, session_id)
        if session is None or session.user_id != user.id or session.status == ChatSessionStatus.DELETED:
            raise NotFoundError("Session not found")
        return session

    def rename_session(self, user: User, session_id: int, title: str) -> ChatSession:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title is required")
        session = self.get_session(user, session_id)
        session.title = title[:255]
        self.db.commit()
        self.db.refresh(session)
        return session

    def delete_session(self, user: User, session_id: int):
        session = self.get_session(user, session_id)
        session.status = ChatSessionStatus.DELETED
        session.updated_at = datetime.utcnow()
        self.db.commit()
        logger.info(f"Chat session {session.id} deleted by user {user.id}")
