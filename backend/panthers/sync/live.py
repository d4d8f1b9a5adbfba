"""Live queries: an initial fetch kept fresh by change-feed notifications.

Any notification for a watched table re-runs the whole fetch. No patches are
applied, so there is no merge logic; the price is a full reload per event.
Responses are sequence-numbered and a response older than the one already
applied is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Generic, Iterable, Optional, TypeVar

from panthers.infra.feed import ChangeEvent, ChangeFeed, ChangeFilter, Subscription
from panthers.obs import metrics as obs_metrics

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

# Returned by a fetch whose result was superseded and must not be applied.
SKIP: Any = object()


class LiveQuery(Generic[T]):
	def __init__(
		self,
		fetch: Callable[[], Awaitable[T]],
		feed: ChangeFeed,
		filters: Iterable[ChangeFilter],
		*,
		debounce: float = 0.0,
		name: str = "live",
		on_update: Optional[Callable[[T], Any]] = None,
	) -> None:
		self._fetch = fetch
		self._feed = feed
		unique: dict[str, ChangeFilter] = {}
		for change_filter in filters:
			unique.setdefault(change_filter.key, change_filter)
		self._filters = list(unique.values())
		self._debounce = debounce
		self._on_update = on_update
		self.name = name
		self._subscriptions: list[Subscription] = []
		self._pending: Optional[asyncio.Task] = None
		self._requested = 0
		self._applied = 0
		self._closed = False
		self.data: Optional[T] = None
		self.error: Optional[BaseException] = None
		self.loading = False

	@property
	def version(self) -> int:
		return self._applied

	@property
	def subscription_count(self) -> int:
		return len(self._subscriptions)

	@property
	def closed(self) -> bool:
		return self._closed

	async def __aenter__(self) -> "LiveQuery[T]":
		await self.start()
		return self

	async def __aexit__(self, *exc_info) -> None:
		await self.close()

	async def start(self) -> None:
		await self.refresh()
		for change_filter in self._filters:
			try:
				sub = await self._feed.subscribe(change_filter, self._on_event)
			except Exception:
				# No reconnect: this query silently becomes fetch-once for that filter.
				LOGGER.warning("live_subscribe_failed", extra={"query": self.name, "filter": change_filter.key}, exc_info=True)
				continue
			self._subscriptions.append(sub)

	async def refresh(self) -> Optional[T]:
		if self._closed:
			return self.data
		self._requested += 1
		seq = self._requested
		self.loading = True
		try:
			result = await self._fetch()
		except asyncio.CancelledError:
			raise
		except Exception as exc:
			if seq > self._applied and not self._closed:
				self.error = exc
				self.loading = seq < self._requested
			obs_metrics.FEED_REFRESHES.labels(outcome="error").inc()
			LOGGER.warning("live_refresh_failed", extra={"query": self.name, "error": repr(exc)})
			return self.data
		if result is SKIP or seq < self._applied or self._closed:
			obs_metrics.FEED_REFRESHES.labels(outcome="stale").inc()
			return self.data
		self._applied = seq
		self.data = result
		self.error = None
		self.loading = seq < self._requested
		obs_metrics.FEED_REFRESHES.labels(outcome="ok").inc()
		if self._on_update is not None:
			outcome = self._on_update(result)
			if asyncio.iscoroutine(outcome):
				await outcome
		return result

	async def _on_event(self, event: ChangeEvent) -> None:
		if self._closed:
			return
		if self._debounce <= 0:
			await self.refresh()
			return
		if self._pending is not None and not self._pending.done():
			self._pending.cancel()
		self._pending = asyncio.create_task(self._debounced_refresh())

	async def _debounced_refresh(self) -> None:
		await asyncio.sleep(self._debounce)
		await self.refresh()

	async def wait_idle(self) -> None:
		while True:
			pending = self._pending
			if pending is None or pending.done():
				return
			await asyncio.wait({pending})

	async def close(self) -> None:
		if self._closed:
			return
		self._closed = True
		if self._pending is not None and not self._pending.done():
			self._pending.cancel()
		subscriptions, self._subscriptions = self._subscriptions, []
		for sub in subscriptions:
			await sub.close()
