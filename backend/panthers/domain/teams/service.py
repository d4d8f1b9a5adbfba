"""Team directory backed by the shared teams cache.

Rosters change rarely, so listings are cached for five minutes per reader.
Any change to ``teams``, ``player_teams`` or ``players`` drops every cached
listing.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from panthers.infra.backend import BackendClient
from panthers.infra.cache import TTLCache, scoped_key
from panthers.infra.errors import BackendError
from panthers.infra.feed import ChangeEvent, ChangeFeed, ChangeFilter, Subscription
from panthers.infra.retry import RetryPolicy, retry_async

LOGGER = logging.getLogger(__name__)

WATCHED_TABLES = ("teams", "player_teams", "players")


@dataclass(slots=True)
class Team:
	id: str
	name: str
	age_group: Optional[str] = None
	season: Optional[str] = None
	coach_id: Optional[str] = None
	coach_name: Optional[str] = None
	player_count: int = 0
	created_at: Optional[str] = None

	def to_dict(self) -> dict[str, Any]:
		return {
			"id": self.id,
			"name": self.name,
			"age_group": self.age_group,
			"season": self.season,
			"coach_id": self.coach_id,
			"coach_name": self.coach_name,
			"player_count": self.player_count,
			"created_at": self.created_at,
		}


def teams_cache_key(filters: Optional[Mapping[str, Any]] = None) -> str:
	return "teams:" + json.dumps(dict(filters or {}), sort_keys=True, default=str)


class TeamDirectory:
	def __init__(
		self,
		client: BackendClient,
		cache: TTLCache,
		*,
		retry_policy: Optional[RetryPolicy] = None,
	) -> None:
		self.client = client
		self.cache = cache
		self.retry_policy = retry_policy or RetryPolicy.from_settings()
		self._subscriptions: list[Subscription] = []

	def with_client(self, client: BackendClient) -> "TeamDirectory":
		return TeamDirectory(client, self.cache, retry_policy=self.retry_policy)

	async def list(self, filters: Optional[Mapping[str, Any]] = None) -> list[Team]:
		key = scoped_key(self.client.cache_scope, teams_cache_key(filters))
		return await self.cache.get_or_load(key, lambda: self._load(filters))

	async def _load(self, filters: Optional[Mapping[str, Any]]) -> list[Team]:
		rows = await retry_async(
			lambda: self.client.select("teams", filters=dict(filters or {}), order="created_at.desc"),
			self.retry_policy,
		)
		if not rows:
			return []
		team_ids = [row["id"] for row in rows]
		coach_ids = sorted({row["coach_id"] for row in rows if row.get("coach_id")})

		# Coach names and counts are decoration; a failure leaves them blank.
		coaches: dict[str, str] = {}
		if coach_ids:
			try:
				profiles = await self.client.select("profiles", columns="id,full_name", filters={"id": coach_ids})
				coaches = {str(p["id"]): p.get("full_name") or "" for p in profiles}
			except BackendError as exc:
				LOGGER.warning("team_coaches_unavailable", extra={"kind": exc.kind.value})
		counts: dict[str, int] = {}
		try:
			assignments = await self.client.select(
				"player_teams",
				columns="team_id",
				filters={"team_id": team_ids, "is_active": True},
			)
			for assignment in assignments:
				team_id = str(assignment.get("team_id") or "")
				if team_id:
					counts[team_id] = counts.get(team_id, 0) + 1
		except BackendError as exc:
			LOGGER.warning("team_counts_unavailable", extra={"kind": exc.kind.value})

		return [
			Team(
				id=str(row["id"]),
				name=str(row.get("name") or ""),
				age_group=row.get("age_group"),
				season=row.get("season"),
				coach_id=row.get("coach_id"),
				coach_name=coaches.get(str(row.get("coach_id"))) if row.get("coach_id") else None,
				player_count=counts.get(str(row["id"]), 0),
				created_at=row.get("created_at"),
			)
			for row in rows
		]

	def invalidate(self) -> int:
		return self.cache.invalidate("teams:")

	async def _on_change(self, event: ChangeEvent) -> None:
		dropped = self.invalidate()
		LOGGER.debug("teams_cache_invalidated", extra={"table": event.table, "entries": dropped})

	async def watch(self, feed: ChangeFeed) -> None:
		for table in WATCHED_TABLES:
			try:
				self._subscriptions.append(await feed.subscribe(ChangeFilter(table), self._on_change))
			except Exception:
				LOGGER.warning("teams_watch_subscribe_failed", extra={"table": table}, exc_info=True)

	async def close(self) -> None:
		subscriptions, self._subscriptions = self._subscriptions, []
		for sub in subscriptions:
			await sub.close()
