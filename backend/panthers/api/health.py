"""Daily health check-ins, system health and health alerts."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from panthers.api.deps import STAFF_ROLES, ensure_self_or_roles, get_gateway, get_hub, require_access
from panthers.domain.access.models import Role, UserAccess
from panthers.domain.health.schemas import CheckIn, HealthAlert
from panthers.domain.health.service import HealthService
from panthers.hub import Hub
from panthers.infra.gateway import ProcedureGateway

router = APIRouter(prefix="/health", tags=["health"])

MEDICAL_ROLES = (*STAFF_ROLES, Role.MEDICAL.value)


def get_health_service(
	hub: Hub = Depends(get_hub),
	gateway: ProcedureGateway = Depends(get_gateway),
) -> HealthService:
	return HealthService(gateway, hub.functions.with_client(gateway.client))


@router.post("/checkins", status_code=status.HTTP_201_CREATED)
async def submit_checkin(
	payload: CheckIn,
	access: UserAccess = Depends(require_access()),
	service: HealthService = Depends(get_health_service),
) -> dict:
	ensure_self_or_roles(access, payload.player_id, *MEDICAL_ROLES)
	return {"checkin": await service.submit(payload)}


@router.get("/checkins/{player_id}")
async def checkin_history(
	player_id: str,
	limit: int = Query(default=30, ge=1, le=365),
	access: UserAccess = Depends(require_access()),
	service: HealthService = Depends(get_health_service),
) -> dict:
	ensure_self_or_roles(access, player_id, *MEDICAL_ROLES)
	return {"items": await service.history(player_id, limit=limit)}


@router.get("/system")
async def system_health(
	_: UserAccess = Depends(require_access(Role.SUPER_ADMIN, Role.STAFF)),
	service: HealthService = Depends(get_health_service),
) -> dict:
	return {"health": await service.system_health()}


@router.post("/alerts", status_code=status.HTTP_202_ACCEPTED)
async def send_health_alert(
	payload: HealthAlert,
	_: UserAccess = Depends(require_access(*MEDICAL_ROLES)),
	service: HealthService = Depends(get_health_service),
) -> dict:
	return {"ok": True, "result": await service.send_health_alert(payload)}
