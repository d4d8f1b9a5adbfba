"""Change-feed transports.

A subscription is scoped to one table and optionally one column value. Events
carry no diff contract: subscribers are expected to refetch. The backend's
database webhooks are ingested by the API and published here.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Protocol

from panthers.obs import metrics as obs_metrics

LOGGER = logging.getLogger(__name__)

EVENT_TYPES = ("INSERT", "UPDATE", "DELETE")

Callback = Callable[["ChangeEvent"], Awaitable[None] | None]


@dataclass(slots=True)
class ChangeEvent:
	table: str
	type: str
	record: Optional[dict[str, Any]] = None
	old_record: Optional[dict[str, Any]] = None
	schema: str = "public"

	@classmethod
	def from_payload(cls, payload: dict[str, Any]) -> "ChangeEvent":
		event_type = str(payload.get("type") or payload.get("eventType") or "").upper()
		if event_type not in EVENT_TYPES:
			raise ValueError(f"unsupported change type: {event_type!r}")
		table = str(payload.get("table") or "").strip()
		if not table:
			raise ValueError("change payload missing table")
		return cls(
			table=table,
			type=event_type,
			record=payload.get("record") or payload.get("new"),
			old_record=payload.get("old_record") or payload.get("old"),
			schema=str(payload.get("schema") or "public"),
		)

	def to_payload(self) -> dict[str, Any]:
		return {
			"type": self.type,
			"table": self.table,
			"schema": self.schema,
			"record": self.record,
			"old_record": self.old_record,
		}


@dataclass(frozen=True)
class ChangeFilter:
	table: str
	column: Optional[str] = None
	value: Any = None
	event: str = "*"

	@property
	def key(self) -> str:
		if self.column is None:
			return f"{self.table}:{self.event}"
		return f"{self.table}:{self.event}:{self.column}={self.value}"

	def matches(self, event: ChangeEvent) -> bool:
		if event.table != self.table:
			return False
		if self.event != "*" and event.type != self.event:
			return False
		if self.column is None:
			return True
		# Deletes only carry the old row
		for row in (event.record, event.old_record):
			if row and str(row.get(self.column)) == str(self.value):
				return True
		return False


class Subscription(Protocol):
	@property
	def closed(self) -> bool:
		...

	async def close(self) -> None:
		...


class ChangeFeed(Protocol):
	async def subscribe(self, change_filter: ChangeFilter, callback: Callback) -> Subscription:
		...

	async def publish(self, event: ChangeEvent) -> int:
		...


async def _deliver(callback: Callback, event: ChangeEvent) -> None:
	obs_metrics.FEED_EVENTS.labels(table=event.table, type=event.type).inc()
	try:
		result = callback(event)
		if asyncio.iscoroutine(result):
			await result
	except Exception:
		LOGGER.exception("change_callback_failed", extra={"table": event.table, "type": event.type})


@dataclass(eq=False)
class _MemorySubscription:
	feed: "MemoryChangeFeed"
	change_filter: ChangeFilter
	callback: Callback
	_closed: bool = field(default=False)

	@property
	def closed(self) -> bool:
		return self._closed

	async def close(self) -> None:
		if self._closed:
			return
		self._closed = True
		self.feed._remove(self)


class MemoryChangeFeed:
	"""In-process feed; also the default when no Redis is configured."""

	def __init__(self) -> None:
		self._subscriptions: list[_MemorySubscription] = []

	@property
	def subscriber_count(self) -> int:
		return len(self._subscriptions)

	async def subscribe(self, change_filter: ChangeFilter, callback: Callback) -> _MemorySubscription:
		sub = _MemorySubscription(self, change_filter, callback)
		self._subscriptions.append(sub)
		return sub

	def _remove(self, sub: _MemorySubscription) -> None:
		if sub in self._subscriptions:
			self._subscriptions.remove(sub)

	async def publish(self, event: ChangeEvent) -> int:
		targets = [sub for sub in list(self._subscriptions) if sub.change_filter.matches(event)]
		for sub in targets:
			if not sub.closed:
				await _deliver(sub.callback, event)
		return len(targets)


class _RedisSubscription:
	def __init__(self, pubsub, task: asyncio.Task) -> None:
		self._pubsub = pubsub
		self._task = task
		self._closed = False

	@property
	def closed(self) -> bool:
		return self._closed

	async def close(self) -> None:
		if self._closed:
			return
		self._closed = True
		self._task.cancel()
		try:
			await self._task
		except asyncio.CancelledError:
			pass
		await self._pubsub.aclose()


class RedisChangeFeed:
	"""Fan-out across hub processes through one Redis pub/sub channel per table."""

	def __init__(self, redis, *, prefix: str = "changes:", poll_timeout: float = 1.0) -> None:
		self._redis = redis
		self._prefix = prefix
		self._poll_timeout = poll_timeout

	def channel(self, table: str) -> str:
		return f"{self._prefix}{table}"

	async def publish(self, event: ChangeEvent) -> int:
		payload = json.dumps(event.to_payload(), default=str)
		return int(await self._redis.publish(self.channel(event.table), payload))

	async def subscribe(self, change_filter: ChangeFilter, callback: Callback) -> _RedisSubscription:
		pubsub = self._redis.pubsub()
		await pubsub.subscribe(self.channel(change_filter.table))
		task = asyncio.create_task(self._reader(pubsub, change_filter, callback), name=f"feed:{change_filter.key}")
		return _RedisSubscription(pubsub, task)

	async def _reader(self, pubsub, change_filter: ChangeFilter, callback: Callback) -> None:
		while True:
			message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=self._poll_timeout)
			if not message:
				continue
			data = message.get("data")
			if isinstance(data, bytes):
				data = data.decode("utf-8")
			try:
				event = ChangeEvent.from_payload(json.loads(data))
			except (TypeError, ValueError):
				LOGGER.warning("change_payload_invalid", extra={"channel": message.get("channel")})
				continue
			if change_filter.matches(event):
				await _deliver(callback, event)
