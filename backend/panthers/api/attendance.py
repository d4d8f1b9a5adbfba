"""Attendance endpoints: batch save and reads."""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from panthers.api.deps import STAFF_ROLES, ensure_self_or_roles, get_gateway, get_hub, require_access
from panthers.domain.access.models import Role, UserAccess
from panthers.domain.attendance.service import AttendanceService
from panthers.hub import Hub
from panthers.infra.gateway import ProcedureGateway

router = APIRouter(prefix="/attendance", tags=["attendance"])

MARKING_ROLES = (Role.SUPER_ADMIN, Role.STAFF, Role.COACH)

Status = Literal["present", "absent", "late", "excused"]


class AttendanceRecord(BaseModel):
	event_id: str = Field(..., min_length=1)
	team_id: str = Field(..., min_length=1)
	player_id: str = Field(..., min_length=1)
	status: Status
	notes: Optional[str] = Field(default=None, max_length=1000)


class AttendanceBatchRequest(BaseModel):
	records: List[AttendanceRecord] = Field(..., min_length=1)
	previous: Dict[str, Optional[Status]] = Field(default_factory=dict)


def get_attendance_service(
	hub: Hub = Depends(get_hub),
	gateway: ProcedureGateway = Depends(get_gateway),
) -> AttendanceService:
	return AttendanceService(gateway, hub.caches.requests)


@router.post("/batch")
async def save_attendance_batch(
	payload: AttendanceBatchRequest,
	_: UserAccess = Depends(require_access(*MARKING_ROLES)),
	service: AttendanceService = Depends(get_attendance_service),
) -> dict:
	outcome = await service.save_batch(
		[record.model_dump() for record in payload.records],
		previous=payload.previous,
	)
	data = outcome.result.unwrap()
	return {
		"ok": True,
		"saved": len(outcome.marks),
		"projected_deltas": outcome.projected_deltas,
		"message": outcome.summary(),
		"data": data,
	}


@router.get("/events/{event_id}")
async def event_attendance(
	event_id: str,
	_: UserAccess = Depends(require_access()),
	service: AttendanceService = Depends(get_attendance_service),
) -> dict:
	marks = await service.list_for_event(event_id)
	return {"items": [dict(mark.to_record()) for mark in marks]}


@router.get("/players/{player_id}")
async def player_attendance(
	player_id: str,
	limit: int = Query(default=50, ge=1, le=200),
	access: UserAccess = Depends(require_access()),
	service: AttendanceService = Depends(get_attendance_service),
) -> dict:
	ensure_self_or_roles(access, player_id, *STAFF_ROLES, Role.MEDICAL.value)
	return {"items": await service.player_history(player_id, limit=limit)}
