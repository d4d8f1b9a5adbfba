"""Schedule listings and a server-sent-events stream of upcoming events."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from panthers.api.deps import STAFF_ROLES, ensure_self_or_roles, get_client, get_hub, require_access
from panthers.domain.access.models import UserAccess
from panthers.domain.schedule.models import ScheduleEvent, ScheduleFilters
from panthers.domain.schedule.service import ScheduleService
from panthers.hub import Hub
from panthers.infra.backend import BackendClient
from panthers.infra.errors import BackendError
from panthers.settings import settings

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/schedules", tags=["schedules"])


def get_schedule_service(
	hub: Hub = Depends(get_hub),
	client: BackendClient = Depends(get_client),
) -> ScheduleService:
	return ScheduleService(client, hub.caches.requests, retry_policy=hub.retry_policy)


def _items(events: list[ScheduleEvent]) -> dict:
	return {"items": [event.to_dict() for event in events]}


@router.get("")
async def list_schedule(
	event_type: Optional[str] = Query(default=None),
	team_id: List[str] = Query(default=[]),
	start: Optional[datetime] = Query(default=None),
	end: Optional[datetime] = Query(default=None),
	status: Optional[str] = Query(default=None),
	limit: Optional[int] = Query(default=None, ge=1, le=500),
	_: UserAccess = Depends(require_access()),
	service: ScheduleService = Depends(get_schedule_service),
) -> dict:
	filters = ScheduleFilters(
		event_type=event_type,
		team_ids=tuple(team_id),
		starts_after=start,
		starts_before=end,
		status=status,
	)
	return _items(await service.list_events(filters, limit=limit))


@router.get("/upcoming")
async def upcoming_schedule(
	team_id: List[str] = Query(default=[]),
	limit: Optional[int] = Query(default=None, ge=1, le=100),
	_: UserAccess = Depends(require_access()),
	service: ScheduleService = Depends(get_schedule_service),
) -> dict:
	return _items(await service.upcoming(team_id, limit=limit))


@router.get("/players/{player_id}")
async def player_schedule(
	player_id: str,
	limit: Optional[int] = Query(default=None, ge=1, le=100),
	access: UserAccess = Depends(require_access()),
	service: ScheduleService = Depends(get_schedule_service),
) -> dict:
	ensure_self_or_roles(access, player_id, *STAFF_ROLES)
	return _items(await service.player_schedule(player_id, limit=limit))


def _sse(event: str, payload: Any) -> str:
	return f"event: {event}\ndata: {json.dumps(payload, default=str)}\n\n"


def _error_payload(exc: BaseException) -> dict:
	if isinstance(exc, BackendError):
		return {"kind": exc.kind.value, "message": str(exc)}
	return {"kind": "unknown", "message": "schedule refresh failed"}


@router.get("/stream")
async def stream_schedule(
	team_id: List[str] = Query(default=[]),
	max_updates: Optional[int] = Query(default=None, ge=1),
	_: UserAccess = Depends(require_access()),
	hub: Hub = Depends(get_hub),
	service: ScheduleService = Depends(get_schedule_service),
) -> StreamingResponse:
	"""Push the upcoming schedule now and again after every ``schedules`` change.

	A fetch that exhausts its retries is reported as an ``error`` event; the
	stream stays open and the next change tries again.
	"""
	queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()
	live = service.live_upcoming(
		hub.feed,
		team_id,
		on_update=lambda events: queue.put_nowait(("schedule", _items(events))),
		on_error=lambda exc: queue.put_nowait(("error", _error_payload(exc))),
		debounce=settings.refresh_debounce_seconds,
	)
	await live.start()

	async def _events():
		sent = 0
		try:
			while max_updates is None or sent < max_updates:
				try:
					kind, payload = await asyncio.wait_for(queue.get(), timeout=settings.schedule_stream_keepalive_seconds)
				except asyncio.TimeoutError:
					yield ": keepalive\n\n"
					continue
				yield _sse(kind, payload)
				sent += 1
		finally:
			await live.close()
			LOGGER.info("schedule_stream_closed", extra={"updates": sent, "teams": len(live.team_ids)})

	return StreamingResponse(_events(), media_type="text/event-stream", headers={"Cache-Control": "no-cache"})
