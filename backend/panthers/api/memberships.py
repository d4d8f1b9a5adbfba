"""Membership endpoints (user-id keyed)."""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from panthers.api.deps import ensure_self_or_roles, get_gateway, get_hub, require_access
from panthers.domain.access.models import Role, UserAccess
from panthers.domain.membership import maintenance
from panthers.domain.membership.service import MembershipService
from panthers.hub import Hub
from panthers.infra.gateway import ProcedureGateway

router = APIRouter(prefix="/memberships", tags=["memberships"])

MANAGER_ROLES = (Role.SUPER_ADMIN, Role.STAFF)


class AssignMembershipRequest(BaseModel):
	user_id: str = Field(..., min_length=1)
	membership_type_id: str = Field(..., min_length=1)
	start_date: date
	end_date: Optional[date] = None
	override_class_count: Optional[int] = Field(default=None, ge=1)
	auto_deactivate: bool = True
	notes: Optional[str] = Field(default=None, max_length=1000)


def get_membership_service(
	hub: Hub = Depends(get_hub),
	gateway: ProcedureGateway = Depends(get_gateway),
) -> MembershipService:
	return MembershipService(gateway, hub.caches.requests)


@router.get("/types")
async def membership_types(
	_: UserAccess = Depends(require_access()),
	service: MembershipService = Depends(get_membership_service),
) -> dict:
	types = await service.list_types()
	return {"items": [item.to_dict() for item in types]}


@router.get("/{user_id}/summary")
async def membership_summary(
	user_id: str,
	refresh: bool = Query(default=False),
	access: UserAccess = Depends(require_access()),
	service: MembershipService = Depends(get_membership_service),
) -> dict:
	ensure_self_or_roles(access, user_id, Role.STAFF.value, Role.COACH.value, Role.PARENT.value)
	summary = await service.summary(user_id, force=refresh)
	return {"membership": summary.to_dict() if summary else None}


@router.get("/{user_id}/transactions")
async def membership_transactions(
	user_id: str,
	limit: int = Query(default=50, ge=1, le=200),
	access: UserAccess = Depends(require_access()),
	service: MembershipService = Depends(get_membership_service),
) -> dict:
	ensure_self_or_roles(access, user_id, Role.STAFF.value)
	return {"items": await service.transactions(user_id, limit=limit)}


@router.post("/assign")
async def assign_membership(
	payload: AssignMembershipRequest,
	_: UserAccess = Depends(require_access(*MANAGER_ROLES)),
	service: MembershipService = Depends(get_membership_service),
) -> dict:
	result = await service.assign(
		payload.user_id,
		payload.membership_type_id,
		payload.start_date,
		end_date=payload.end_date,
		override_class_count=payload.override_class_count,
		auto_deactivate=payload.auto_deactivate,
		notes=payload.notes,
	)
	return {"ok": True, "membership_id": result.unwrap()}


@router.post("/maintenance")
async def run_membership_maintenance(
	_: UserAccess = Depends(require_access(Role.SUPER_ADMIN)),
	hub: Hub = Depends(get_hub),
	gateway: ProcedureGateway = Depends(get_gateway),
) -> dict:
	"""Run the sweep here with the service key, or defer to the hosted function."""
	service_gateway = hub.service_gateway()
	if service_gateway is None:
		return {"mode": "remote", "result": await maintenance.trigger_remote_sweep(gateway)}
	report = await maintenance.run_maintenance(service_gateway)
	hub.caches.requests.invalidate("membership:")
	return {"mode": "local", "result": report.to_dict()}
