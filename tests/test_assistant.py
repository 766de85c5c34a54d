import json

import pytest

from advoqat.errors import NotFoundError, UpstreamError, ValidationError
from advoqat.models import ChatMessage, ChatRole, ChatSession, ChatSessionStatus
from advoqat.services import assistant_service
from advoqat.services.assistant_service import ChatService, detect_topic

from conftest import FakeAssistant, auth_headers, make_user


def events(body):
    return [json.loads(chunk[len("data: "):]) for chunk in body.split("\n\n") if chunk.strip()]


@pytest.fixture
def service(db, assistant):
    return ChatService(db, assistant=assistant)


@pytest.fixture
def user(db):
    return make_user(db, "ada@example.com")

# =====================================================
# CHAT TURNS
# =====================================================

def test_first_message_opens_a_session(db, service, assistant, user):
    question = "My landlord has kept my whole deposit after I moved out, what can I do?"
    session, answer = service.send_message(user, question)

    assert session.title == question[:50] + "..."
    assert session.category == "Legal Consultation"
    assert session.primary_topic == "property_law"
    assert answer.role == ChatRole.ASSISTANT
    assert answer.content == "Answer 1 on property_law"
    assert answer.tokens_used == 42
    assert answer.model_used == "fake-legal-model"
    assert assistant.calls == [("property_law", [{"role": "user", "content": question}])]
    assert db.query(ChatMessage).filter_by(session_id=session.id).count() == 2


def test_follow_up_sends_the_conversation_so_far(service, assistant, user):
    session, _ = service.send_message(user, "My employer dismissed me while on sick leave")
    same, _ = service.send_message(user, "And what about redundancy?", session_id=session.id)

    assert same.id == session.id
    assert same.title == "My employer dismissed me while on sick leave"
    area, history = assistant.calls[-1]
    assert area == "employment_law"
    assert [m["role"] for m in history] == ["user", "assistant", "user"]
    assert history[-1]["content"] == "And what about redundancy?"


def test_explicit_legal_area_overrides_detection(service, user):
    session, _ = service.send_message(user, "Quick question", legal_area="Immigration_Law")
    assert session.primary_topic == "immigration_law"
    assert detect_topic("Quick question") == "general"


def test_history_is_capped(monkeypatch, service, assistant, user):
    monkeypatch.setattr(assistant_service, "ASSISTANT_HISTORY_LIMIT", 3)
    session, _ = service.send_message(user, "first")
    service.send_message(user, "second", session_id=session.id)
    service.send_message(user, "third", session_id=session.id)

    history = assistant.calls[-1][1]
    assert len(history) == 3
    assert history[-1] == {"role": "user", "content": "third"}


def test_failed_reply_stores_nothing(db, user):
    service = ChatService(db, assistant=FakeAssistant(fail=True))
    with pytest.raises(UpstreamError):
        service.send_message(user, "Is my contract enforceable?")
    assert db.query(ChatSession).count() == 0
    assert db.query(ChatMessage).count() == 0


@pytest.mark.parametrize("message, legal_area", [
    ("   ", None),
    ("x" * 4001, None),
    ("Hello", "maritime_law"),
])
def test_message_validation(service, user, message, legal_area):
    with pytest.raises(ValidationError):
        service.send_message(user, message, legal_area=legal_area)

# =====================================================
# STREAMING
# =====================================================

def test_stream_delivers_and_stores_the_answer(db, service, user):
    stream = service.stream_message(user, "I was arrested last night, do I need a lawyer?")
    received = events("".join(stream))

    assert [e["type"] for e in received] == ["session", "delta", "delta", "done"]
    assert "".join(e["content"] for e in received if e["type"] == "delta") == "Streamed answer"

    db.expire_all()
    session = db.get(ChatSession, received[0]["sessionId"])
    assert session.primary_topic == "criminal_law"
    assert [(m.role, m.content) for m in session.messages][-1] == (ChatRole.ASSISTANT, "Streamed answer")
    assert received[-1]["messageId"] == session.messages[-1].id


def test_stream_failure_is_reported_in_band(db, user):
    service = ChatService(db, assistant=FakeAssistant(fail=True))
    received = events("".join(service.stream_message(user, "Hello")))

    assert [e["type"] for e in received] == ["session", "error"]
    db.expire_all()
    assert [m.role for m in db.query(ChatMessage).all()] == [ChatRole.USER]


def test_stream_validates_before_streaming(service, user):
    with pytest.raises(ValidationError):
        service.stream_message(user, "")

# =====================================================
# SESSIONS
# =====================================================

def test_list_rename_and_delete_sessions(db, service, user):
    first, _ = service.send_message(user, "first question")
    second, _ = service.send_message(user, "second question")
    service.send_message(user, "follow up", session_id=first.id)

    listed = {s["id"]: s for s in service.list_sessions(user)}
    assert listed[first.id]["message_count"] == 4
    assert listed[second.id]["message_count"] == 2
    assert listed[first.id]["last_message_at"] is not None

    assert service.rename_session(user, first.id, "  Tenancy dispute ").title == "Tenancy dispute"
    with pytest.raises(ValidationError):
        service.rename_session(user, first.id, " ")

    service.delete_session(user, second.id)
    assert db.get(ChatSession, second.id).status == ChatSessionStatus.DELETED
    assert [s["id"] for s in service.list_sessions(user)] == [first.id]
    with pytest.raises(NotFoundError):
        service.get_session(user, second.id)
    with pytest.raises(NotFoundError):
        service.send_message(user, "still there?", session_id=second.id)


def test_sessions_are_private(db, service, user):
    session, _ = service.send_message(user, "private question")
    other = make_user(db, "eve@example.com")

    with pytest.raises(NotFoundError):
        service.get_session(other, session.id)
    with pytest.raises(NotFoundError):
        service.send_message(other, "let me in", session_id=session.id)
    with pytest.raises(NotFoundError):
        service.rename_session(other, session.id, "mine now")
    with pytest.raises(NotFoundError):
        service.delete_session(other, session.id)
    assert service.list_sessions(other) == []

# =====================================================
# HTTP SURFACE
# =====================================================

def test_chat_over_http(client, db):
    user = make_user(db, "ada@example.com")
    headers = auth_headers(user)

    reply = client.post("/api/ai/chat", json={"message": "How do I get a divorce?"}, headers=headers)
    assert reply.status_code == 200, reply.text
    body = reply.json()
    assert body["primary_topic"] == "family_law"
    assert body["response"] == "Answer 1 on family_law"
    assert "not be considered legal advice" in body["disclaimer"]
    session_id = body["session_id"]

    sessions = client.get("/api/ai/sessions", headers=headers).json()
    assert [(s["id"], s["message_count"]) for s in sessions] == [(session_id, 2)]

    detail = client.get(f"/api/ai/sessions/{session_id}", headers=headers).json()
    assert [m["role"] for m in detail["messages"]] == ["user", "assistant"]

    renamed = client.put(f"/api/ai/sessions/{session_id}", json={"title": "Divorce"}, headers=headers)
    assert renamed.json()["title"] == "Divorce"

    assert client.delete(f"/api/ai/sessions/{session_id}", headers=headers).status_code == 204
    missing = client.get(f"/api/ai/sessions/{session_id}", headers=headers)
    assert missing.status_code == 404
    assert missing.json()["code"] == "not_found"


def test_stream_over_http(client, db):
    user = make_user(db, "ada@example.com")
    response = client.post("/api/ai/chat/stream", json={"message": "Visa refused"}, headers=auth_headers(user))

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    received = events(response.text)
    assert received[0]["type"] == "session"
    assert received[-1]["type"] == "done"


def test_upstream_failure_over_http(client, db, assistant):
    assistant.fail = True
    user = make_user(db, "ada@example.com")
    response = client.post("/api/ai/chat", json={"message": "Hello"}, headers=auth_headers(user))
    assert response.status_code == 502
    assert response.json()["code"] == "upstream_error"


def test_other_users_session_is_not_found_over_http(client, db):
    owner = make_user(db, "ada@example.com")
    other = make_user(db, "eve@example.com")
    session_id = client.post(
        "/api/ai/chat", json={"message": "Hello"}, headers=auth_headers(owner)
    ).json()["session_id"]

    assert client.get(f"/api/ai/sessions/{session_id}", headers=auth_headers(other)).status_code == 404


def test_legal_areas_are_public(client):
    areas = client.get("/api/ai/legal-areas").json()
    assert "general" in [a["id"] for a in areas]
    assert all(a["keywords"] for a in areas)


def test_chat_requires_a_token(client):
    assert client.post("/api/ai/chat", json={"message": "Hello"}).status_code in (401, 403)
