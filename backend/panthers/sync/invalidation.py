"""Drop cached request reads when the tables behind them change.

Writes made through this service already invalidate what they touch; this
covers changes made elsewhere (another instance, the admin console, triggers).
A row that names the affected key narrows the drop, otherwise every entry
for that table goes.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from panthers.infra.cache import TTLCache
from panthers.infra.feed import ChangeEvent, ChangeFeed, ChangeFilter, Subscription

LOGGER = logging.getLogger(__name__)


def _field(event: ChangeEvent, column: str) -> Optional[str]:
	for row in (event.record, event.old_record):
		if row and row.get(column):
			return str(row[column])
	return None


def _attendance(event: ChangeEvent) -> list[str]:
	event_id = _field(event, "event_id")
	# Credit balances move with attendance.
	return [f"attendance:{event_id}:" if event_id else "attendance:", "membership:"]


def _memberships(event: ChangeEvent) -> list[str]:
	user_id = _field(event, "user_id")
	return [f"membership:{user_id}:" if user_id else "membership:"]


def _grades(event: ChangeEvent) -> list[str]:
	event_id = _field(event, "event_id")
	player_id = _field(event, "player_id")
	if event_id and player_id:
		return [f"grades:{event_id}:{player_id}:"]
	return ["grades:"]


def _schedules(_event: ChangeEvent) -> list[str]:
	return ["schedule:"]


PATTERNS: dict[str, Callable[[ChangeEvent], list[str]]] = {
	"attendance": _attendance,
	"player_memberships": _memberships,
	"player_grades": _grades,
	"schedules": _schedules,
}


class RequestCacheInvalidator:
	def __init__(self, cache: TTLCache, feed: ChangeFeed) -> None:
		self.cache = cache
		self.feed = feed
		self._subscriptions: list[Subscription] = []

	async def start(self) -> None:
		for table in PATTERNS:
			try:
				self._subscriptions.append(await self.feed.subscribe(ChangeFilter(table), self._on_event))
			except Exception:
				LOGGER.warning("request_cache_subscribe_failed", extra={"table": table}, exc_info=True)

	def patterns_for(self, event: ChangeEvent) -> list[str]:
		resolver = PATTERNS.get(event.table)
		return resolver(event) if resolver else []

	async def _on_event(self, event: ChangeEvent) -> None:
		dropped = sum(self.cache.invalidate(pattern) for pattern in self.patterns_for(event))
		LOGGER.debug("request_cache_invalidated", extra={"table": event.table, "entries": dropped})

	async def close(self) -> None:
		subscriptions, self._subscriptions = self._subscriptions, []
		for sub in subscriptions:
			await sub.close()
