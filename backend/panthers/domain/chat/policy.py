"""Edit and recall windows for chat messages, measured from ``created_at``."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional

from panthers.domain.chat.models import Message, MessageStatus
from panthers.settings import settings


class ChatPolicyError(RuntimeError):
	def __init__(self, code: str, *, status_code: int = 400, message: str | None = None) -> None:
		super().__init__(message or code)
		self.code = code
		self.status_code = status_code
		self.detail = message or code


def _now(now: Optional[datetime]) -> datetime:
	return now or datetime.now(timezone.utc)


def message_age_seconds(message: Message, now: Optional[datetime] = None) -> float:
	return (_now(now) - message.created_at).total_seconds()


def can_edit(message: Message, user_id: str, now: Optional[datetime] = None) -> bool:
	if message.sender_id != user_id or message.status is MessageStatus.RECALLED:
		return False
	return message_age_seconds(message, now) < settings.chat_edit_window_seconds


def can_recall(message: Message, user_id: str, now: Optional[datetime] = None) -> bool:
	if message.sender_id != user_id or message.status is MessageStatus.RECALLED:
		return False
	return message_age_seconds(message, now) < settings.chat_recall_window_seconds


def _minutes_left(window_seconds: float, message: Message, now: Optional[datetime]) -> int:
	remaining = window_seconds - message_age_seconds(message, now)
	return max(0, math.ceil(remaining / 60))


def minutes_left_to_edit(message: Message, now: Optional[datetime] = None) -> int:
	return _minutes_left(settings.chat_edit_window_seconds, message, now)


def minutes_left_to_recall(message: Message, now: Optional[datetime] = None) -> int:
	return _minutes_left(settings.chat_recall_window_seconds, message, now)


def ensure_can_edit(message: Message, user_id: str, now: Optional[datetime] = None) -> None:
	if message.sender_id != user_id:
		raise ChatPolicyError("not_sender", status_code=403)
	if not can_edit(message, user_id, now):
		raise ChatPolicyError("edit_window_closed", status_code=409)


def ensure_can_recall(message: Message, user_id: str, now: Optional[datetime] = None) -> None:
	if message.sender_id != user_id:
		raise ChatPolicyError("not_sender", status_code=403)
	if not can_recall(message, user_id, now):
		raise ChatPolicyError("recall_window_closed", status_code=409)
