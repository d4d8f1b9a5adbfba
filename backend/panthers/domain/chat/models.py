"""Domain models for team chats."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Tuple


class MessageStatus(str, enum.Enum):
	SENT = "sent"
	EDITED = "edited"
	RECALLED = "recalled"


class ChatType(str, enum.Enum):
	DIRECT = "direct"
	GROUP = "group"
	TEAM = "team"


def parse_timestamp(value: Any) -> Optional[datetime]:
	if value is None or value == "":
		return None
	if isinstance(value, datetime):
		parsed = value
	else:
		parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
	if parsed.tzinfo is None:
		parsed = parsed.replace(tzinfo=timezone.utc)
	return parsed


@dataclass(slots=True)
class Chat:
	id: str
	name: str
	chat_type: str
	created_by: Optional[str] = None
	is_archived: bool = False
	team_id: Optional[str] = None
	participants: Tuple[str, ...] = ()
	updated_at: Optional[datetime] = None

	@classmethod
	def from_row(cls, row: Mapping[str, Any]) -> "Chat":
		members = row.get("chat_participants") or []
		return cls(
			id=str(row["id"]),
			name=str(row.get("name") or ""),
			chat_type=str(row.get("chat_type") or ChatType.GROUP.value),
			created_by=row.get("created_by"),
			is_archived=bool(row.get("is_archived")),
			team_id=row.get("team_id"),
			participants=tuple(str(member["user_id"]) for member in members if member.get("user_id")),
			updated_at=parse_timestamp(row.get("updated_at")),
		)

	def is_participant(self, user_id: str) -> bool:
		return user_id in self.participants

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"name": self.name,
			"chat_type": self.chat_type,
			"created_by": self.created_by,
			"is_archived": self.is_archived,
			"team_id": self.team_id,
			"participants": list(self.participants),
			"updated_at": self.updated_at.isoformat() if self.updated_at else None,
		}


@dataclass(slots=True)
class Message:
	id: str
	chat_id: str
	sender_id: str
	content: str
	created_at: datetime
	status: MessageStatus = MessageStatus.SENT
	edited_at: Optional[datetime] = None
	message_type: str = "text"
	media_url: Optional[str] = None
	reactions: list[dict] = field(default_factory=list)

	@classmethod
	def from_row(cls, row: Mapping[str, Any]) -> "Message":
		if row.get("is_recalled"):
			status = MessageStatus.RECALLED
		elif row.get("is_edited"):
			status = MessageStatus.EDITED
		else:
			status = MessageStatus(row.get("status") or MessageStatus.SENT.value)
		created_at = parse_timestamp(row.get("created_at")) or datetime.now(timezone.utc)
		return cls(
			id=str(row["id"]),
			chat_id=str(row["chat_id"]),
			sender_id=str(row["sender_id"]),
			content=str(row.get("content") or ""),
			created_at=created_at,
			status=status,
			edited_at=parse_timestamp(row.get("edited_at")),
			message_type=str(row.get("message_type") or "text"),
			media_url=row.get("media_url"),
			reactions=list(row.get("message_reactions") or []),
		)

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"chat_id": self.chat_id,
			"sender_id": self.sender_id,
			# Recalled content is never handed back out.
			"content": "" if self.status is MessageStatus.RECALLED else self.content,
			"status": self.status.value,
			"created_at": self.created_at.isoformat(),
			"edited_at": self.edited_at.isoformat() if self.edited_at else None,
			"message_type": self.message_type,
			"media_url": self.media_url,
			"reactions": list(self.reactions),
		}
