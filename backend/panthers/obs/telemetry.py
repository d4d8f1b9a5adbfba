"""Error and performance telemetry shipped to the ``error-tracking`` function.

A ``critical`` error also emails the on-call address through
``send-notification``. Telemetry never raises into the caller.
"""

from __future__ import annotations

import html
import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from panthers.infra.backend import BackendClient
from panthers.infra.errors import BackendError
from panthers.settings import settings

LOGGER = logging.getLogger(__name__)

SEVERITIES = ("low", "medium", "high", "critical")


def _timestamp() -> str:
	return datetime.now(timezone.utc).isoformat()


def _critical_email(event: Mapping[str, Any]) -> str:
	parts = [
		"<h3>Critical Error Detected</h3>",
		f"<p><strong>Message:</strong> {html.escape(str(event.get('message', '')))}</p>",
		f"<p><strong>URL:</strong> {html.escape(str(event.get('url', '')))}</p>",
		f"<p><strong>User:</strong> {html.escape(str(event.get('userId') or 'Anonymous'))} "
		f"({html.escape(str(event.get('userRole') or 'Unknown role'))})</p>",
		f"<p><strong>Time:</strong> {event.get('timestamp')}</p>",
	]
	if event.get("stack"):
		parts.append(f"<p><strong>Stack:</strong><br><pre>{html.escape(str(event['stack']))}</pre></p>")
	return "\n".join(parts)


async def report_error(
	client: BackendClient,
	message: str,
	*,
	severity: str = "medium",
	url: str = "",
	stack: Optional[str] = None,
	user_id: Optional[str] = None,
	user_role: Optional[str] = None,
	context: Optional[Mapping[str, Any]] = None,
) -> bool:
	if severity not in SEVERITIES:
		severity = "medium"
	event = {
		"message": message,
		"stack": stack,
		"url": url,
		"userAgent": settings.service_name,
		"userId": user_id,
		"userRole": user_role,
		"timestamp": _timestamp(),
		"severity": severity,
		"context": dict(context or {}),
	}
	delivered = True
	try:
		await client.invoke_function("error-tracking", {"type": "error", "data": event})
	except BackendError as exc:
		delivered = False
		LOGGER.warning("telemetry_error_report_failed", extra={"kind": exc.kind.value})
	if severity == "critical":
		try:
			await client.invoke_function(
				"send-notification",
				{
					"to": settings.critical_alert_recipient,
					"subject": "Critical Error Alert - Panthers Basketball",
					"message": _critical_email(event),
					"type": "alert",
				},
			)
		except BackendError as exc:
			delivered = False
			LOGGER.error("telemetry_critical_email_failed", extra={"kind": exc.kind.value})
	return delivered


async def report_performance(
	client: BackendClient,
	metric: str,
	value: float,
	*,
	url: str = "",
	user_id: Optional[str] = None,
	context: Optional[Mapping[str, Any]] = None,
) -> bool:
	event = {
		"metric": metric,
		"value": value,
		"url": url,
		"userId": user_id,
		"timestamp": _timestamp(),
		"context": dict(context or {}),
	}
	try:
		await client.invoke_function("error-tracking", {"type": "performance", "data": event})
	except BackendError as exc:
		LOGGER.warning("telemetry_performance_report_failed", extra={"kind": exc.kind.value})
		return False
	return True
