"""Daily check-ins, the dashboard health summary, and health alerts."""

from __future__ import annotations

import logging
from typing import Any, Optional

from panthers.domain.functions.client import FunctionsClient
from panthers.domain.health.schemas import CheckIn, HealthAlert
from panthers.infra.gateway import ProcedureGateway
from panthers.infra.retry import retry_async

LOGGER = logging.getLogger(__name__)

CHECKINS_TABLE = "daily_health_checkins"


class HealthService:
	def __init__(self, gateway: ProcedureGateway, functions: Optional[FunctionsClient] = None) -> None:
		self.gateway = gateway
		self.functions = functions or FunctionsClient(gateway.client)

	async def submit(self, checkin: CheckIn) -> dict:
		rows = await self.gateway.client.insert(CHECKINS_TABLE, checkin.to_record())
		LOGGER.info("health_checkin_submitted", extra={"player_id": checkin.player_id, "date": checkin.check_in_date.isoformat()})
		return rows[0] if rows else checkin.to_record()

	async def history(self, player_id: str, *, limit: int = 30) -> list[dict]:
		return await retry_async(
			lambda: self.gateway.client.select(
				CHECKINS_TABLE,
				filters={"player_id": player_id},
				order="check_in_date.desc",
				limit=limit,
			),
			self.gateway.retry_policy,
		)

	async def system_health(self) -> Any:
		return await self.gateway.fetch("rpc_dashboard_health")

	async def send_health_alert(self, alert: HealthAlert) -> Any:
		return await self.functions.send_health_alert(alert.to_body())
