from datetime import datetime, timedelta, timezone

import pytest

from panthers.domain.chat import (
	ChatPolicyError,
	ChatService,
	Message,
	MessageStatus,
	can_edit,
	can_recall,
	minutes_left_to_edit,
	minutes_left_to_recall,
)
from panthers.infra.retry import RetryPolicy

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _message(age_seconds: float, sender="u1", **overrides):
	row = {
		"id": "m1",
		"chat_id": "c1",
		"sender_id": sender,
		"content": "hello",
		"created_at": (NOW - timedelta(seconds=age_seconds)).isoformat(),
	}
	row.update(overrides)
	return Message.from_row(row)


def test_windows_are_measured_from_creation():
	fresh = _message(60)
	assert can_edit(fresh, "u1", NOW)
	assert can_recall(fresh, "u1", NOW)
	assert minutes_left_to_recall(fresh, NOW) == 1
	assert minutes_left_to_edit(fresh, NOW) == 14

	older = _message(5 * 60)
	assert can_edit(older, "u1", NOW)
	assert not can_recall(older, "u1", NOW)
	assert minutes_left_to_recall(older, NOW) == 0

	stale = _message(15 * 60)
	assert not can_edit(stale, "u1", NOW)


def test_only_the_sender_may_edit_and_recalled_is_final():
	assert not can_edit(_message(10), "u2", NOW)
	recalled = _message(10, is_recalled=True)
	assert recalled.status is MessageStatus.RECALLED
	assert not can_edit(recalled, "u1", NOW)
	assert recalled.to_dict()["content"] == ""
	assert _message(10, is_edited=True).status is MessageStatus.EDITED


def _service(backend_client):
	return ChatService(backend_client, retry_policy=RetryPolicy(max_retries=0), clock=lambda: NOW)


@pytest.mark.asyncio
async def test_non_participant_cannot_send(backend, backend_client):
	backend.table("chat_participants", [])
	with pytest.raises(ChatPolicyError) as excinfo:
		await _service(backend_client).send("c1", "u9", "hi")
	assert excinfo.value.code == "not_participant"
	assert excinfo.value.status_code == 403
	assert backend.calls("POST", "/rest/v1/messages") == []


@pytest.mark.asyncio
async def test_empty_and_oversized_messages_are_rejected(backend_client):
	service = _service(backend_client)
	with pytest.raises(ChatPolicyError) as empty:
		await service.send("c1", "u1", "   ")
	assert empty.value.code == "empty_message"
	with pytest.raises(ChatPolicyError) as long:
		await service.send("c1", "u1", "x" * 5001)
	assert long.value.code == "message_too_long"


@pytest.mark.asyncio
async def test_edit_after_window_is_refused(backend, backend_client):
	old = (NOW - timedelta(minutes=20)).isoformat()
	backend.table("messages", [{"id": "m1", "chat_id": "c1", "sender_id": "u1", "content": "hi", "created_at": old}])
	with pytest.raises(ChatPolicyError) as excinfo:
		await _service(backend_client).edit("m1", "u1", "edited")
	assert excinfo.value.code == "edit_window_closed"
	assert backend.calls("PATCH", "/rest/v1/messages") == []


@pytest.mark.asyncio
async def test_recall_by_other_user_is_forbidden(backend, backend_client):
	backend.table("messages", [{"id": "m1", "chat_id": "c1", "sender_id": "u1", "content": "hi", "created_at": NOW.isoformat()}])
	with pytest.raises(ChatPolicyError) as excinfo:
		await _service(backend_client).recall("m1", "u2")
	assert excinfo.value.code == "not_sender"


@pytest.mark.asyncio
async def test_messages_come_back_oldest_first(backend, backend_client):
	backend.table("chat_participants", [{"id": "cp1"}])
	backend.table(
		"messages",
		[
			{"id": "m2", "chat_id": "c1", "sender_id": "u1", "content": "second", "created_at": NOW.isoformat()},
			{"id": "m1", "chat_id": "c1", "sender_id": "u2", "content": "first", "created_at": (NOW - timedelta(minutes=1)).isoformat()},
		],
	)
	messages = await _service(backend_client).messages("c1", "u1", limit=2)
	assert [m.id for m in messages] == ["m1", "m2"]
	request = backend.calls("GET", "/rest/v1/messages")[0]
	assert request.url.params["order"] == "created_at.desc"


@pytest.mark.asyncio
async def test_create_direct_chat_needs_exactly_one_other_participant(backend, backend_client):
	backend.table("chats", [{"id": "c1", "name": "Chat", "chat_type": "direct"}], method="POST")
	backend.table("chat_participants", [], method="POST")
	service = _service(backend_client)
	with pytest.raises(ChatPolicyError):
		await service.create_chat("u1", name=None, chat_type="direct", participants=["u2", "u3"])
	chat = await service.create_chat("u1", name=None, chat_type="direct", participants=["u2", "u1"])
	assert chat.participants == ("u1", "u2")
	rows = backend.body(backend.calls("POST", "/rest/v1/chat_participants")[0])
	assert rows[0]["role"] == "admin"


@pytest.mark.asyncio
async def test_operator_shaped_message_id_edits_only_that_id(backend, backend_client):
	fresh = {"id": "m1", "chat_id": "c1", "sender_id": "u1", "content": "hi", "created_at": NOW.isoformat()}
	backend.table("messages", [fresh])
	backend.table("messages", [dict(fresh, content="edited", is_edited=True)], method="PATCH")
	await _service(backend_client).edit("in.(m1,m-old)", "u1", "edited")
	lookup = backend.calls("GET", "/rest/v1/messages")[0]
	assert lookup.url.params["id"] == "eq.in.(m1,m-old)"
	update = backend.calls("PATCH", "/rest/v1/messages")[0]
	assert update.url.params["id"] == "eq.in.(m1,m-old)"
	assert update.url.params["sender_id"] == "eq.u1"


@pytest.mark.asyncio
async def test_message_cursor_uses_less_than(backend, backend_client):
	backend.table("chat_participants", [{"id": "cp1"}])
	backend.table("messages", [])
	await _service(backend_client).messages("c1", "u1", before="2024-05-01T11:00:00+00:00")
	request = backend.calls("GET", "/rest/v1/messages")[0]
	assert request.url.params["created_at"] == "lt.2024-05-01T11:00:00+00:00"
