"""Schedule reads: filtered listings, a player's upcoming events, live views.

Listings with explicit filters are cached per reader in the request cache
under ``schedule:`` keys; any ``schedules`` change drops them. "Upcoming"
depends on the current time and is always read fresh.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional, Sequence

from panthers.domain.schedule.models import ACTIVE_STATUS, ScheduleEvent, ScheduleFilters
from panthers.infra.backend import BackendClient
from panthers.infra.cache import TTLCache, scoped_key
from panthers.infra.feed import ChangeFeed, ChangeFilter
from panthers.infra.retry import RetryableQuery, RetryPolicy, retry_async
from panthers.settings import settings
from panthers.sync.live import SKIP, LiveQuery

LOGGER = logging.getLogger(__name__)

SCHEDULES_TABLE = "schedules"


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


def schedule_cache_key(filters: ScheduleFilters, limit: Optional[int]) -> str:
	return f"schedule:{filters.cache_fragment()}:{limit}"


class ScheduleService:
	def __init__(
		self,
		client: BackendClient,
		cache: Optional[TTLCache] = None,
		*,
		retry_policy: Optional[RetryPolicy] = None,
		clock: Callable[[], datetime] = _utcnow,
	) -> None:
		self.client = client
		self.cache = cache
		self.retry_policy = retry_policy or RetryPolicy.from_settings()
		self.clock = clock

	async def _select(self, filters: ScheduleFilters, limit: Optional[int]) -> list[ScheduleEvent]:
		rows = await self.client.select(
			SCHEDULES_TABLE,
			filters=filters.to_query(),
			order="start_time.asc",
			limit=limit,
		)
		return [ScheduleEvent.from_row(row) for row in rows]

	async def list_events(self, filters: Optional[ScheduleFilters] = None, *, limit: Optional[int] = None) -> list[ScheduleEvent]:
		filters = filters or ScheduleFilters()

		async def _load() -> list[ScheduleEvent]:
			return await retry_async(lambda: self._select(filters, limit), self.retry_policy)

		if self.cache is None:
			return await _load()
		key = scoped_key(self.client.cache_scope, schedule_cache_key(filters, limit))
		return await self.cache.get_or_load(key, _load)

	def upcoming_filters(self, team_ids: Iterable[str] = ()) -> ScheduleFilters:
		return ScheduleFilters(team_ids=tuple(team_ids), starts_after=self.clock(), status=ACTIVE_STATUS)

	async def _select_upcoming(self, team_ids: Sequence[str], limit: Optional[int]) -> list[ScheduleEvent]:
		return await self._select(self.upcoming_filters(team_ids), limit or settings.schedule_upcoming_limit)

	async def upcoming(self, team_ids: Iterable[str] = (), *, limit: Optional[int] = None) -> list[ScheduleEvent]:
		teams = tuple(team_ids)
		return await retry_async(lambda: self._select_upcoming(teams, limit), self.retry_policy)

	async def player_team_ids(self, player_id: str) -> list[str]:
		rows = await retry_async(
			lambda: self.client.select(
				"player_teams",
				columns="team_id",
				filters={"player_id": player_id, "is_active": True},
			),
			self.retry_policy,
		)
		return sorted({str(row["team_id"]) for row in rows if row.get("team_id")})

	async def player_schedule(self, player_id: str, *, limit: Optional[int] = None) -> list[ScheduleEvent]:
		"""Upcoming events for every team the player is active on; none without a team."""
		team_ids = await self.player_team_ids(player_id)
		if not team_ids:
			LOGGER.debug("player_schedule_without_teams", extra={"player_id": player_id})
			return []
		return await self.upcoming(team_ids, limit=limit)

	def live_upcoming(
		self,
		feed: ChangeFeed,
		team_ids: Iterable[str] = (),
		*,
		limit: Optional[int] = None,
		on_update: Optional[Callable[[list[ScheduleEvent]], Any]] = None,
		on_error: Optional[Callable[[BaseException], Any]] = None,
		debounce: float = 0.0,
	) -> "LiveSchedule":
		return LiveSchedule(
			self,
			feed,
			tuple(team_ids),
			limit=limit,
			on_update=on_update,
			on_error=on_error,
			debounce=debounce,
		)


class LiveSchedule:
	"""Upcoming events kept fresh by ``schedules`` changes.

	Every refresh goes through one :class:`RetryableQuery`, so a change that
	lands while an earlier fetch is still backing off supersedes it and only
	the newest result is published.
	"""

	def __init__(
		self,
		service: ScheduleService,
		feed: ChangeFeed,
		team_ids: Sequence[str],
		*,
		limit: Optional[int] = None,
		on_update: Optional[Callable[[list[ScheduleEvent]], Any]] = None,
		on_error: Optional[Callable[[BaseException], Any]] = None,
		debounce: float = 0.0,
	) -> None:
		self.team_ids = tuple(team_ids)
		self.query: RetryableQuery[list[ScheduleEvent]] = RetryableQuery(
			lambda: service._select_upcoming(self.team_ids, limit),
			service.retry_policy,
			on_error=on_error,
		)
		self.live: LiveQuery[list[ScheduleEvent]] = LiveQuery(
			self._fetch,
			feed,
			[ChangeFilter(SCHEDULES_TABLE)],
			debounce=debounce,
			name="schedule",
			on_update=on_update,
		)

	async def _fetch(self) -> Any:
		events = await self.query.refetch()
		if self.query.loading:
			return SKIP
		if self.query.error is not None:
			raise self.query.error
		return list(events or [])

	@property
	def data(self) -> Optional[list[ScheduleEvent]]:
		return self.live.data

	@property
	def error(self) -> Optional[BaseException]:
		return self.live.error

	@property
	def version(self) -> int:
		return self.live.version

	@property
	def retry_label(self) -> Optional[str]:
		return self.query.retry_label

	async def start(self) -> None:
		await self.live.start()

	async def refresh(self) -> Optional[list[ScheduleEvent]]:
		return await self.live.refresh()

	async def wait_idle(self) -> None:
		await self.live.wait_idle()

	async def close(self) -> None:
		await self.live.close()
		self.query.cancel()

	async def __aenter__(self) -> "LiveSchedule":
		await self.start()
		return self

	async def __aexit__(self, *exc_info) -> None:
		await self.close()
