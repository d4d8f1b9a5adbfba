"""Membership maintenance sweep.

Deactivates players whose membership ran out, then sends one notification
per (membership, threshold) pair. Sent alerts are recorded in
``membership_alerts_sent`` so a rerun never notifies twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

from panthers.domain.membership.models import AllocationType
from panthers.infra.errors import BackendError
from panthers.infra.gateway import ProcedureGateway
from panthers.obs import metrics as obs_metrics

LOGGER = logging.getLogger(__name__)

USAGE_VIEW = "vw_player_membership_usage_secure"
ALERTS_SENT_TABLE = "membership_alerts_sent"
MAINTENANCE_FUNCTION = "membership-maintenance"


@dataclass(frozen=True)
class AlertThreshold:
	code: str
	title: str
	message: str
	allocation_type: AllocationType
	column: str
	value: int

	@property
	def priority(self) -> str:
		return "high" if "0" in self.code else "normal"

	def matches(self, usage: Mapping[str, Any]) -> bool:
		if AllocationType.parse(usage.get("allocation_type")) is not self.allocation_type:
			return False
		observed = usage.get(self.column)
		return observed is not None and int(observed) == self.value


THRESHOLDS: tuple[AlertThreshold, ...] = (
	AlertThreshold(
		"REMAINING_3",
		"Only 3 Classes Remaining",
		"You have 3 classes left in your membership. Consider renewing soon!",
		AllocationType.CLASS_COUNT, "remaining_classes", 3,
	),
	AlertThreshold(
		"REMAINING_1",
		"Only 1 Class Remaining",
		"You have only 1 class left in your membership. Please renew to continue.",
		AllocationType.CLASS_COUNT, "remaining_classes", 1,
	),
	AlertThreshold(
		"REMAINING_0",
		"Membership Used Up",
		"Your membership has been fully used. Please renew to continue attending classes.",
		AllocationType.CLASS_COUNT, "remaining_classes", 0,
	),
	AlertThreshold(
		"DATE_7D",
		"Membership Expires in 7 Days",
		"Your membership will expire in 7 days. Please renew to continue.",
		AllocationType.DATE_RANGE, "days_left", 7,
	),
	AlertThreshold(
		"DATE_3D",
		"Membership Expires in 3 Days",
		"Your membership will expire in 3 days. Please renew immediately.",
		AllocationType.DATE_RANGE, "days_left", 3,
	),
	AlertThreshold(
		"DATE_1D",
		"Membership Expires Tomorrow",
		"Your membership expires tomorrow. Please renew now to avoid interruption.",
		AllocationType.DATE_RANGE, "days_left", 1,
	),
	AlertThreshold(
		"DATE_0D",
		"Membership Expired",
		"Your membership has expired. Please renew to continue attending classes.",
		AllocationType.DATE_RANGE, "days_left", 0,
	),
)


def alerts_for(usage: Mapping[str, Any]) -> list[AlertThreshold]:
	return [threshold for threshold in THRESHOLDS if threshold.matches(usage)]


@dataclass
class MaintenanceReport:
	deactivated_players: int = 0
	alerts_sent: int = 0
	memberships_processed: int = 0
	notifications: list[dict[str, str]] = field(default_factory=list)
	timestamp: str = ""

	def to_dict(self) -> dict[str, Any]:
		return {
			"success": True,
			"timestamp": self.timestamp,
			"deactivated_players": self.deactivated_players,
			"alerts_sent": self.alerts_sent,
			"notifications_sent": list(self.notifications),
			"memberships_processed": self.memberships_processed,
		}


def _notification_params(usage: Mapping[str, Any], threshold: AlertThreshold) -> dict[str, Any]:
	return {
		"target_user_id": usage.get("player_id"),
		"notification_type": "membership_alert",
		"notification_title": threshold.title,
		"notification_message": threshold.message,
		"notification_data": {
			"membership_id": usage.get("membership_id"),
			"alert_code": threshold.code,
			"player_name": usage.get("player_name"),
			"membership_type": usage.get("membership_type_name"),
		},
		"notification_priority": threshold.priority,
		"entity_type": "membership",
		"entity_id": usage.get("membership_id"),
	}


async def run_maintenance(
	gateway: ProcedureGateway,
	*,
	now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
) -> MaintenanceReport:
	"""Run one sweep with a service-role gateway.

	A failed deactivation is logged and the alert pass still runs; a failed
	usage read aborts the sweep.
	"""
	client = gateway.client
	report = MaintenanceReport(timestamp=now().isoformat())

	deactivation = await gateway.mutate("fn_auto_deactivate_players")
	if deactivation.ok:
		data = deactivation.data or {}
		report.deactivated_players = int(data.get("deactivated_count") or 0) if isinstance(data, Mapping) else 0
	else:
		LOGGER.error("membership_deactivation_failed", extra={"error": repr(deactivation.error)})

	usage_rows = await client.select(USAGE_VIEW)
	report.memberships_processed = len(usage_rows)

	for usage in usage_rows:
		for threshold in alerts_for(usage):
			membership_id = usage.get("membership_id")
			existing = await client.maybe_single(
				ALERTS_SENT_TABLE,
				columns="id",
				filters={"player_membership_id": membership_id, "alert_code": threshold.code},
			)
			if existing:
				continue
			created = await gateway.mutate("create_notification", _notification_params(usage, threshold))
			if not created.ok:
				LOGGER.warning(
					"membership_alert_failed",
					extra={"membership_id": membership_id, "alert_code": threshold.code, "error": repr(created.error)},
				)
				continue
			await client.insert(
				ALERTS_SENT_TABLE,
				{"player_membership_id": membership_id, "alert_code": threshold.code},
				returning=False,
			)
			report.alerts_sent += 1
			report.notifications.append(
				{"player_name": str(usage.get("player_name") or ""), "alert_type": threshold.code, "message": threshold.title}
			)
			obs_metrics.MEMBERSHIP_ALERTS.labels(code=threshold.code).inc()

	LOGGER.info(
		"membership_maintenance_completed",
		extra={
			"deactivated_players": report.deactivated_players,
			"alerts_sent": report.alerts_sent,
			"memberships_processed": report.memberships_processed,
		},
	)
	return report


async def trigger_remote_sweep(gateway: ProcedureGateway) -> Optional[dict[str, Any]]:
	"""Ask the hosted function to run the same sweep; raises on failure."""
	try:
		return await gateway.client.invoke_function(MAINTENANCE_FUNCTION)
	except BackendError as exc:
		LOGGER.warning("membership_remote_sweep_failed", extra={"kind": exc.kind.value, "detail": exc.detail})
		raise
