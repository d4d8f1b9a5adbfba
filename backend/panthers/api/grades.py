"""Player grading endpoints."""

from __future__ import annotations

from typing import List, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from panthers.api.deps import get_gateway, get_hub, require_access
from panthers.domain.access.models import Role, UserAccess
from panthers.domain.grading.models import GradeItem
from panthers.domain.grading.service import GradingService
from panthers.hub import Hub
from panthers.infra.errors import BackendError, ErrorKind
from panthers.infra.gateway import ProcedureGateway

router = APIRouter(prefix="/grades", tags=["grades"])

GRADING_ROLES = (Role.SUPER_ADMIN, Role.STAFF, Role.COACH)


class GradeItemIn(BaseModel):
	metric_id: str = Field(..., min_length=1)
	score: float = Field(..., ge=0, le=10)
	priority: Literal["low", "medium", "high"] = "medium"


class SaveGradesRequest(BaseModel):
	items: List[GradeItemIn] = Field(..., min_length=1)


def get_grading_service(
	hub: Hub = Depends(get_hub),
	gateway: ProcedureGateway = Depends(get_gateway),
) -> GradingService:
	return GradingService(gateway, hub.caches.requests)


@router.get("/metrics")
async def grading_metrics(
	_: UserAccess = Depends(require_access()),
	service: GradingService = Depends(get_grading_service),
) -> dict:
	metrics = await service.metrics()
	return {"items": [{"id": m.id, "name": m.name, "weight": m.weight} for m in metrics]}


@router.get("/{event_id}/{player_id}")
async def load_grades(
	event_id: str,
	player_id: str,
	_: UserAccess = Depends(require_access()),
	service: GradingService = Depends(get_grading_service),
) -> dict:
	grade = await service.load(event_id, player_id)
	return {"grade": grade.to_dict() if grade else None}


@router.put("/{event_id}/{player_id}")
async def save_grades(
	event_id: str,
	player_id: str,
	payload: SaveGradesRequest,
	_: UserAccess = Depends(require_access(*GRADING_ROLES)),
	service: GradingService = Depends(get_grading_service),
) -> dict:
	metrics = await service.metrics()
	items = [GradeItem(metric_id=item.metric_id, score=item.score, priority=item.priority) for item in payload.items]
	outcome = await service.save(event_id, player_id, items, metrics=metrics)
	if not outcome.ok:
		raise outcome.error or BackendError(ErrorKind.UNKNOWN, "Failed to save grades")
	assert outcome.grade is not None
	return {"grade": outcome.grade.to_dict()}
