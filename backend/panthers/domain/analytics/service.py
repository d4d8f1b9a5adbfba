"""Activity logging into ``analytics_events``."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from panthers.infra.backend import BackendClient
from panthers.infra.errors import BackendError

LOGGER = logging.getLogger(__name__)


async def log_activity(
	client: BackendClient,
	event_type: str,
	user_id: Optional[str],
	data: Optional[Mapping[str, Any]] = None,
) -> bool:
	"""Record one analytics event; failures are logged and reported as False."""
	try:
		await client.insert(
			"analytics_events",
			{
				"event_type": event_type,
				"user_id": user_id,
				"event_data": dict(data or {}),
				"created_at": datetime.now(timezone.utc).isoformat(),
			},
			returning=False,
		)
	except BackendError as exc:
		LOGGER.warning("analytics_event_failed", extra={"event_type": event_type, "kind": exc.kind.value})
		return False
	return True
