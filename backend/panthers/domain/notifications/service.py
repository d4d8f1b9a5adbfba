"""Per-user notification preferences."""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel

from panthers.infra.backend import BackendClient

TABLE = "notification_preferences"


class NotificationPreferences(BaseModel):
	email_enabled: bool = True
	push_enabled: bool = True
	chat_messages: bool = True
	schedule_changes: bool = True
	membership_alerts: bool = True
	health_alerts: bool = True


class PreferencesUpdate(BaseModel):
	email_enabled: bool | None = None
	push_enabled: bool | None = None
	chat_messages: bool | None = None
	schedule_changes: bool | None = None
	membership_alerts: bool | None = None
	health_alerts: bool | None = None


def _from_row(row: Mapping[str, Any] | None) -> NotificationPreferences:
	if not row:
		return NotificationPreferences()
	known = {key: row[key] for key in NotificationPreferences.model_fields if row.get(key) is not None}
	return NotificationPreferences(**known)


async def get_preferences(client: BackendClient, user_id: str) -> NotificationPreferences:
	row = await client.maybe_single(TABLE, filters={"user_id": user_id})
	return _from_row(row)


async def update_preferences(client: BackendClient, user_id: str, update: PreferencesUpdate) -> NotificationPreferences:
	changes = update.model_dump(exclude_none=True)
	existing = await client.maybe_single(TABLE, filters={"user_id": user_id})
	if existing is None:
		merged = NotificationPreferences(**changes).model_dump()
		rows = await client.insert(TABLE, {"user_id": user_id, **merged})
	elif changes:
		rows = await client.update(TABLE, changes, filters={"user_id": user_id})
	else:
		rows = [existing]
	return _from_row(rows[0] if rows else None)
