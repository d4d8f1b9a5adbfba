"""Chat reads and writes against the backend's chat tables."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from panthers.domain.chat import policy
from panthers.domain.chat.models import Chat, ChatType, Message
from panthers.domain.chat.policy import ChatPolicyError
from panthers.infra.backend import BackendClient, Op
from panthers.infra.retry import RetryPolicy, retry_async

LOGGER = logging.getLogger(__name__)

MESSAGE_PAGE_SIZE = 50
MAX_MESSAGE_LENGTH = 4000


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


class ChatService:
	def __init__(
		self,
		client: BackendClient,
		*,
		retry_policy: Optional[RetryPolicy] = None,
		clock: Callable[[], datetime] = _utcnow,
	) -> None:
		self.client = client
		self.retry_policy = retry_policy or RetryPolicy.from_settings()
		self._clock = clock

	async def _read(self, fn):
		return await retry_async(fn, self.retry_policy)

	async def _ensure_participant(self, chat_id: str, user_id: str) -> None:
		row = await self._read(
			lambda: self.client.maybe_single(
				"chat_participants",
				columns="id",
				filters={"chat_id": chat_id, "user_id": user_id},
			)
		)
		if row is None:
			raise ChatPolicyError("not_participant", status_code=403)

	async def list_chats(self, user_id: str, *, include_archived: bool = False) -> list[Chat]:
		memberships = await self._read(
			lambda: self.client.select("chat_participants", columns="chat_id", filters={"user_id": user_id})
		)
		chat_ids = sorted({str(row["chat_id"]) for row in memberships if row.get("chat_id")})
		if not chat_ids:
			return []
		filters: dict[str, object] = {"id": chat_ids}
		if not include_archived:
			filters["is_archived"] = False
		rows = await self._read(
			lambda: self.client.select(
				"chats",
				columns="*,chat_participants(user_id)",
				filters=filters,
				order="updated_at.desc",
			)
		)
		return [Chat.from_row(row) for row in rows]

	async def create_chat(
		self,
		creator_id: str,
		*,
		name: Optional[str],
		chat_type: str = ChatType.GROUP.value,
		participants: Iterable[str] = (),
		team_id: Optional[str] = None,
	) -> Chat:
		kind = ChatType(chat_type)
		members = [member for member in dict.fromkeys(participants) if member and member != creator_id]
		if kind is ChatType.DIRECT and len(members) != 1:
			raise ChatPolicyError("direct_chat_needs_one_participant", status_code=422)
		created = await self.client.insert(
			"chats",
			{
				"name": name or f"Chat {int(self._clock().timestamp() * 1000)}",
				"chat_type": kind.value,
				"created_by": creator_id,
				"team_id": team_id,
			},
		)
		chat_row = created[0]
		rows = [{"chat_id": chat_row["id"], "user_id": creator_id, "role": "admin"}]
		rows.extend({"chat_id": chat_row["id"], "user_id": member, "role": "member"} for member in members)
		await self.client.insert("chat_participants", rows, returning=False)
		LOGGER.info("chat_created", extra={"chat_id": chat_row["id"], "participants": len(rows)})
		chat_row = dict(chat_row, chat_participants=[{"user_id": row["user_id"]} for row in rows])
		return Chat.from_row(chat_row)

	async def messages(
		self,
		chat_id: str,
		user_id: str,
		*,
		limit: int = MESSAGE_PAGE_SIZE,
		before: Optional[str] = None,
	) -> list[Message]:
		"""Newest page of messages, returned oldest first."""
		await self._ensure_participant(chat_id, user_id)
		filters: dict[str, object] = {"chat_id": chat_id}
		if before:
			filters["created_at"] = Op("lt", before)
		rows = await self._read(
			lambda: self.client.select(
				"messages",
				columns="*,message_reactions(id,emoji,user_id,created_at)",
				filters=filters,
				order="created_at.desc",
				limit=max(1, min(limit, 200)),
			)
		)
		return [Message.from_row(row) for row in reversed(rows)]

	async def send(
		self,
		chat_id: str,
		sender_id: str,
		content: str,
		*,
		message_type: str = "text",
		media_url: Optional[str] = None,
	) -> Message:
		body = (content or "").strip()
		if not body and not media_url:
			raise ChatPolicyError("empty_message", status_code=422)
		if len(body) > MAX_MESSAGE_LENGTH:
			raise ChatPolicyError("message_too_long", status_code=422)
		await self._ensure_participant(chat_id, sender_id)
		rows = await self.client.insert(
			"messages",
			{
				"chat_id": chat_id,
				"sender_id": sender_id,
				"content": body,
				"message_type": message_type,
				"media_url": media_url,
			},
		)
		message = Message.from_row(rows[0])
		LOGGER.info("chat_message_sent", extra={"chat_id": chat_id, "message_id": message.id})
		return message

	async def _load_message(self, message_id: str) -> Message:
		row = await self._read(lambda: self.client.select("messages", filters={"id": message_id}, single=True))
		return Message.from_row(row)

	async def edit(self, message_id: str, user_id: str, content: str) -> Message:
		body = (content or "").strip()
		if not body:
			raise ChatPolicyError("empty_message", status_code=422)
		message = await self._load_message(message_id)
		now = self._clock()
		policy.ensure_can_edit(message, user_id, now)
		rows = await self.client.update(
			"messages",
			{"content": body, "is_edited": True, "edited_at": now.isoformat()},
			filters={"id": message_id, "sender_id": user_id},
		)
		return Message.from_row(rows[0]) if rows else message

	async def recall(self, message_id: str, user_id: str) -> Message:
		message = await self._load_message(message_id)
		policy.ensure_can_recall(message, user_id, self._clock())
		rows = await self.client.update(
			"messages",
			{"is_recalled": True},
			filters={"id": message_id, "sender_id": user_id},
		)
		LOGGER.info("chat_message_recalled", extra={"message_id": message_id})
		return Message.from_row(rows[0]) if rows else message

	async def archive(self, chat_id: str, user_id: str, *, archived: bool = True) -> Chat:
		await self._ensure_participant(chat_id, user_id)
		rows = await self.client.update("chats", {"is_archived": archived}, filters={"id": chat_id})
		if not rows:
			raise ChatPolicyError("chat_not_found", status_code=404)
		return Chat.from_row(rows[0])
