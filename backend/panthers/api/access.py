"""Access state for the signed-in user and approval decisions."""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from panthers.api.deps import get_access_service, require_access
from panthers.domain.access.models import Role, UserAccess, evaluate
from panthers.domain.access.service import AccessService
from panthers.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/access", tags=["access"])

ADMIN_ROLES = (Role.SUPER_ADMIN, Role.STAFF)


class ApprovalRequest(BaseModel):
	target_user_id: str = Field(..., min_length=1)
	decision: Literal["approved", "rejected"]
	reason: Optional[str] = Field(default=None, max_length=500)


@router.get("/me")
async def access_me(
	refresh: bool = Query(default=False),
	user: AuthenticatedUser = Depends(get_current_user),
	service: AccessService = Depends(get_access_service),
) -> dict:
	"""Current access plus the gate decision, without enforcing it."""
	access = await service.get_access(user.id, force=refresh)
	payload = access.to_dict()
	payload["decision"] = evaluate(access).value
	return payload


@router.get("/pending")
async def pending_users(
	limit: int = Query(default=100, ge=1, le=500),
	_: UserAccess = Depends(require_access(*ADMIN_ROLES)),
	service: AccessService = Depends(get_access_service),
) -> dict:
	return {"items": await service.list_pending(limit=limit)}


@router.post("/approvals")
async def decide_approval(
	payload: ApprovalRequest,
	_: UserAccess = Depends(require_access(*ADMIN_ROLES)),
	service: AccessService = Depends(get_access_service),
) -> dict:
	result = await service.approve_user(payload.target_user_id, payload.decision, payload.reason)
	return {"ok": True, "data": result.unwrap()}
