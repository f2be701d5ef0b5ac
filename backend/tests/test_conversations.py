from __future__ import annotations

import pytest

from foresight.core.security import RequestContext
from foresight.errors import ConversationClosedError, NotFoundError, PermissionDeniedError
from foresight.models import AIConversationStatus
from foresight.schemas.conversations import ConversationMessage
from foresight.services import ai_conversations as svc

from _helpers import auth_headers, unwrap


def _ctx(user):
    return RequestContext.for_user(user)


def test_make_title_truncates_long_first_message():
    assert svc.make_title("  Rates in Q3  ") == "Rates in Q3"
    long = "x" * 80
    title = svc.make_title(long)
    assert len(title) == 60
    assert title.endswith("...")
    assert svc.make_title("   ") == "New conversation"


def test_create_and_append(db, member):
    conv = svc.create_conversation(db, _ctx(member), "Help me forecast CPI")
    assert conv.status == AIConversationStatus.IN_PROGRESS
    assert [m.role for m in conv.messages] == ["user"]

    svc.append_turn(
        db,
        conv.id,
        [ConversationMessage(role="assistant", content="Sure, which month?")],
        tokens=42,
    )
    svc.append_turn(db, conv.id, [ConversationMessage(role="user", content="May")], tokens=-5)
    db.expire_all()
    refreshed = svc.get_conversation(db, conv.id)
    assert refreshed.token_count == 42
    assert [m.content for m in refreshed.messages] == [
        "Help me forecast CPI",
        "Sure, which month?",
        "May",
    ]
    assert svc.get_message_count(db, conv.id) == 3
    assert refreshed.transcript.version == 1


def test_access_is_owner_only(db, member, colleague):
    conv = svc.create_conversation(db, _ctx(member), "mine")
    with pytest.raises(PermissionDeniedError):
        svc.get_user_conversation(db, _ctx(colleague), conv.id)
    with pytest.raises(NotFoundError):
        svc.get_user_conversation(db, _ctx(member), conv.id + 100)


def test_completed_conversation_cannot_be_abandoned(db, member, binary_forecast):
    conv = svc.create_conversation(db, _ctx(member), "done soon")
    svc.complete_conversation(db, conv.id, binary_forecast.id)
    with pytest.raises(ConversationClosedError) as exc:
        svc.abandon_conversation(db, _ctx(member), conv.id)
    assert str(exc.value) == svc.COMPLETED_MESSAGE


def test_list_and_detail_over_http(client, db, member, colleague):
    first = svc.create_conversation(db, _ctx(member), "first")
    second = svc.create_conversation(db, _ctx(member), "second")
    svc.create_conversation(db, _ctx(colleague), "not yours")

    h = auth_headers(member)
    rows = unwrap(client.get("/api/conversations", headers=h).json())
    assert {r["id"] for r in rows} == {first.id, second.id}
    assert all(r["message_count"] == 1 for r in rows)
    assert rows[0]["status"] == "IN_PROGRESS"

    detail = unwrap(client.get(f"/api/conversations/{first.id}", headers=h).json())
    assert detail["messages"][0]["content"] == "first"
    assert detail["messages"][0]["role"] == "user"


def test_http_errors(client, db, member, colleague):
    conv = svc.create_conversation(db, _ctx(member), "private")
    assert client.get("/api/conversations/9999", headers=auth_headers(member)).status_code == 404
    assert client.get(f"/api/conversations/{conv.id}", headers=auth_headers(colleague)).status_code == 403


def test_abandon_over_http(client, db, member):
    conv = svc.create_conversation(db, _ctx(member), "never mind")
    r = client.post(f"/api/conversations/{conv.id}/abandon", headers=auth_headers(member))
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "ABANDONED"
