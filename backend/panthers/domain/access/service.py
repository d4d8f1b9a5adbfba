"""Access resolution, approval decisions, and role-cache upkeep."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from panthers.domain.access.models import ApprovalStatus, UserAccess
from panthers.infra.backend import BackendClient
from panthers.infra.cache import TTLCache
from panthers.infra.errors import BackendError, ErrorKind
from panthers.infra.feed import ChangeEvent, ChangeFeed, ChangeFilter, Subscription
from panthers.infra.gateway import GatewayResult, ProcedureGateway
from panthers.settings import settings

LOGGER = logging.getLogger(__name__)


def access_cache_key(user_id: str) -> str:
	return f"access:{user_id}:"


class AccessService:
	def __init__(self, gateway: ProcedureGateway, cache: TTLCache) -> None:
		self.gateway = gateway
		self.cache = cache

	@property
	def client(self) -> BackendClient:
		return self.gateway.client

	async def get_access(self, user_id: str, *, force: bool = False) -> UserAccess:
		key = access_cache_key(user_id)
		if force:
			self.cache.invalidate(key)

		async def _load() -> UserAccess:
			data = await self.gateway.fetch("get_user_auth_data_secure", {"target_user_id": user_id})
			return UserAccess.from_auth_data(user_id, data)

		return await self.cache.get_or_load(key, _load)

	async def approve_user(
		self,
		target_user_id: str,
		decision: str | ApprovalStatus,
		reason: Optional[str] = None,
	) -> GatewayResult[Any]:
		try:
			status = ApprovalStatus(decision)
		except ValueError:
			status = None
		if status not in (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED):
			return GatewayResult(ok=False, error=BackendError(ErrorKind.VALIDATION, "approval_decision must be 'approved' or 'rejected'"))
		params: dict[str, Any] = {"target_user_id": target_user_id, "approval_decision": status.value}
		if reason:
			params["rejection_reason"] = reason
		result = await self.gateway.mutate("rpc_approve_user_secure", params)
		if result.ok:
			self.cache.invalidate(access_cache_key(target_user_id))
			LOGGER.info("user_approval_recorded", extra={"target_user_id": target_user_id, "decision": status.value})
		return result

	async def list_pending(self, *, limit: int = 100) -> list[dict]:
		return await self.client.select(
			"profiles",
			columns="id,full_name,created_at,approval_status",
			filters={"approval_status": ApprovalStatus.PENDING.value},
			order="created_at.asc",
			limit=limit,
		)


class AccessWatcher:
	"""Drop cached access for users whose roles or profile changed.

	Bursts of notifications are collected and applied once after the debounce
	window.
	"""

	def __init__(self, cache: TTLCache, feed: ChangeFeed, *, debounce: Optional[float] = None) -> None:
		self.cache = cache
		self.feed = feed
		self.debounce = settings.refresh_debounce_seconds if debounce is None else debounce
		self._dirty: set[str] = set()
		self._pending: Optional[asyncio.Task] = None
		self._subscriptions: list[Subscription] = []

	async def start(self) -> None:
		for table in ("user_roles", "profiles"):
			try:
				self._subscriptions.append(await self.feed.subscribe(ChangeFilter(table), self._on_event))
			except Exception:
				LOGGER.warning("access_watch_subscribe_failed", extra={"table": table}, exc_info=True)

	@staticmethod
	def _user_id(event: ChangeEvent) -> Optional[str]:
		column = "id" if event.table == "profiles" else "user_id"
		for row in (event.record, event.old_record):
			if row and row.get(column):
				return str(row[column])
		return None

	async def _on_event(self, event: ChangeEvent) -> None:
		user_id = self._user_id(event)
		if not user_id:
			return
		self._dirty.add(user_id)
		if self._pending is not None and not self._pending.done():
			self._pending.cancel()
		self._pending = asyncio.create_task(self._flush_later())

	async def _flush_later(self) -> None:
		await asyncio.sleep(self.debounce)
		self.flush()

	def flush(self) -> int:
		dirty, self._dirty = self._dirty, set()
		for user_id in dirty:
			self.cache.invalidate(access_cache_key(user_id))
		return len(dirty)

	async def close(self) -> None:
		if self._pending is not None and not self._pending.done():
			self._pending.cancel()
		subscriptions, self._subscriptions = self._subscriptions, []
		for sub in subscriptions:
			await sub.close()
