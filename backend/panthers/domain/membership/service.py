"""Membership reads and assignment (user-id keyed flow)."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional

from panthers.domain.membership.models import MembershipSummary, MembershipType
from panthers.infra.cache import TTLCache, scoped_key
from panthers.infra.gateway import GatewayResult, ProcedureGateway
from panthers.infra.retry import retry_async

LOGGER = logging.getLogger(__name__)


def membership_cache_key(user_id: str) -> str:
	return f"membership:{user_id}:"


def _iso(value: date | str | None) -> Optional[str]:
	if value is None or value == "":
		return None
	if isinstance(value, date):
		return value.isoformat()
	return str(value)


class MembershipService:
	def __init__(self, gateway: ProcedureGateway, cache: Optional[TTLCache] = None) -> None:
		self.gateway = gateway
		self.cache = cache

	async def summary(self, user_id: str, *, force: bool = False) -> Optional[MembershipSummary]:
		async def _load() -> Optional[MembershipSummary]:
			data = await self.gateway.fetch("fn_get_membership_summary_v2", {"target_user_id": user_id})
			if isinstance(data, list):
				data = data[0] if data else None
			return MembershipSummary.from_payload(data) if data else None

		if self.cache is None:
			return await _load()
		key = scoped_key(self.gateway.client.cache_scope, membership_cache_key(user_id))
		if force:
			self.cache.invalidate(key)
		return await self.cache.get_or_load(key, _load)

	async def list_types(self) -> list[MembershipType]:
		rows = await retry_async(
			lambda: self.gateway.client.select("membership_types", filters={"is_active": True}, order="name"),
			self.gateway.retry_policy,
		)
		return [MembershipType.from_row(row) for row in rows]

	async def assign(
		self,
		user_id: str,
		membership_type_id: str,
		start_date: date | str,
		*,
		end_date: date | str | None = None,
		override_class_count: Optional[int] = None,
		auto_deactivate: bool = True,
		notes: Optional[str] = None,
	) -> GatewayResult[Any]:
		params: dict[str, Any] = {
			"p_user_id": user_id,
			"p_membership_type_id": membership_type_id,
			"p_start_date": _iso(start_date),
			"p_end_date": _iso(end_date),
			"p_override_class_count": override_class_count or None,
			"p_auto_deactivate": auto_deactivate,
			"p_notes": notes or None,
		}
		result = await self.gateway.mutate("rpc_assign_membership_v2", params)
		if result.ok:
			if self.cache is not None:
				self.cache.invalidate(membership_cache_key(user_id))
			LOGGER.info("membership_assigned", extra={"target_user_id": user_id, "membership_type_id": membership_type_id})
		return result

	async def transactions(self, user_id: str, *, limit: int = 50) -> list[dict]:
		return await retry_async(
			lambda: self.gateway.client.select(
				"membership_transactions",
				columns="*,membership:membership_id(membership_type:membership_type_id(name))",
				filters={"user_id": user_id},
				order="created_at.desc",
				limit=limit,
			),
			self.gateway.retry_policy,
		)
