"""In-process TTL caches for slowly changing reads (roles, team rosters).

Entries are advisory: a cache never re-validates against the backend, so every
write path that changes server state must invalidate the keys it affects.
"""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Hashable, Optional

from panthers.obs import metrics as obs_metrics
from panthers.settings import settings

Clock = Callable[[], float]
Loader = Callable[[], Awaitable[Any]]

DEFAULT_TTL_SECONDS = 5 * 60


@dataclass(slots=True)
class CacheEntry:
	value: Any
	stored_at: float
	expires_at: float


class _Flight:
	__slots__ = ("lock", "users")

	def __init__(self) -> None:
		self.lock = asyncio.Lock()
		self.users = 0


def scoped_key(scope: str, key: str) -> str:
	"""Prefix ``key`` with the reader's identity.

	Rows read under a caller's token reflect that caller's row-level security,
	so they are only ever served back to the same scope. Substring
	invalidation on ``key`` still reaches every scope.
	"""
	return f"{scope}|{key}"


class TTLCache:
	"""Key/value cache with per-entry expiry and optional insertion-order cap."""

	def __init__(
		self,
		*,
		name: str = "default",
		default_ttl: float = DEFAULT_TTL_SECONDS,
		max_entries: Optional[int] = None,
		clock: Clock = time.monotonic,
	) -> None:
		self.name = name
		self.default_ttl = default_ttl
		self.max_entries = max_entries
		self._clock = clock
		self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
		self._inflight: dict[str, _Flight] = {}

	def __len__(self) -> int:
		return len(self._entries)

	def __contains__(self, key: Hashable) -> bool:
		entry = self._entries.get(str(key))
		return entry is not None and self._clock() < entry.expires_at

	def get(self, key: str, default: Any = None) -> Any:
		entry = self._entries.get(key)
		if entry is None:
			obs_metrics.CACHE_MISSES.labels(cache=self.name).inc()
			return default
		if self._clock() >= entry.expires_at:
			del self._entries[key]
			obs_metrics.CACHE_MISSES.labels(cache=self.name).inc()
			return default
		obs_metrics.CACHE_HITS.labels(cache=self.name).inc()
		return entry.value

	def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
		now = self._clock()
		lifetime = self.default_ttl if ttl is None else ttl
		if key in self._entries:
			del self._entries[key]
		elif self.max_entries is not None and len(self._entries) >= self.max_entries:
			self._entries.popitem(last=False)
			obs_metrics.CACHE_EVICTIONS.labels(cache=self.name).inc()
		self._entries[key] = CacheEntry(value=value, stored_at=now, expires_at=now + lifetime)

	def invalidate(self, pattern: Optional[str] = None) -> int:
		"""Drop everything, or every key containing ``pattern``."""
		if pattern is None:
			count = len(self._entries)
			self._entries.clear()
			return count
		doomed = [key for key in self._entries if pattern in key]
		for key in doomed:
			del self._entries[key]
		return len(doomed)

	def purge_expired(self) -> int:
		now = self._clock()
		doomed = [key for key, entry in self._entries.items() if now >= entry.expires_at]
		for key in doomed:
			del self._entries[key]
		return len(doomed)

	async def get_or_load(self, key: str, loader: Loader, *, ttl: Optional[float] = None) -> Any:
		"""Read-through with one concurrent loader per key."""
		cached = self.get(key, _MISSING)
		if cached is not _MISSING:
			return cached
		flight = self._inflight.get(key)
		if flight is None:
			flight = self._inflight[key] = _Flight()
		flight.users += 1
		try:
			async with flight.lock:
				cached = self.get(key, _MISSING)
				if cached is not _MISSING:
					return cached
				value = await loader()
				self.set(key, value, ttl)
				return value
		finally:
			flight.users -= 1
			if not flight.users and self._inflight.get(key) is flight:
				del self._inflight[key]


_MISSING = object()


class CacheRegistry:
	"""Process-wide caches handed to services through dependency injection."""

	def __init__(self, *, clock: Clock = time.monotonic) -> None:
		self.roles = TTLCache(name="roles", default_ttl=settings.role_cache_ttl_seconds, clock=clock)
		self.teams = TTLCache(
			name="teams",
			default_ttl=settings.teams_cache_ttl_seconds,
			max_entries=settings.teams_cache_max_entries,
			clock=clock,
		)
		self.requests = TTLCache(name="requests", default_ttl=settings.request_cache_ttl_seconds, clock=clock)

	def invalidate_all(self) -> None:
		self.roles.invalidate()
		self.teams.invalidate()
		self.requests.invalidate()
