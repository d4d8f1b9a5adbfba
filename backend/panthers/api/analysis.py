"""Video analysis calls and activity events."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from panthers.api.deps import STAFF_ROLES, ensure_self_or_roles, get_client, get_hub, require_access
from panthers.domain.access.models import Role, UserAccess
from panthers.domain.analytics.service import log_activity
from panthers.domain.functions.client import FunctionsClient
from panthers.hub import Hub
from panthers.infra.backend import BackendClient

router = APIRouter(tags=["analysis"])


class ShotAnalysisRequest(BaseModel):
	player_id: str = Field(..., min_length=1)
	video_data: str = Field(..., min_length=1)


class TechniqueAnalysisRequest(BaseModel):
	video_url: str = Field(..., min_length=1, max_length=2048)
	player_id: Optional[str] = None
	evaluation_id: Optional[str] = None


class ActivityEvent(BaseModel):
	event_type: str = Field(..., min_length=1, max_length=120)
	data: Dict[str, Any] = Field(default_factory=dict)


def get_functions(
	hub: Hub = Depends(get_hub),
	client: BackendClient = Depends(get_client),
) -> FunctionsClient:
	return hub.functions.with_client(client)


@router.post("/analysis/shot")
async def analyze_shot(
	payload: ShotAnalysisRequest,
	access: UserAccess = Depends(require_access()),
	functions: FunctionsClient = Depends(get_functions),
) -> dict:
	ensure_self_or_roles(access, payload.player_id, *STAFF_ROLES)
	return {"result": await functions.analyze_video_shot(payload.player_id, payload.video_data)}


@router.post("/analysis/technique")
async def analyze_technique(
	payload: TechniqueAnalysisRequest,
	_: UserAccess = Depends(require_access(Role.SUPER_ADMIN, *STAFF_ROLES)),
	functions: FunctionsClient = Depends(get_functions),
) -> dict:
	result = await functions.analyze_video_technique(
		payload.video_url,
		player_id=payload.player_id,
		evaluation_id=payload.evaluation_id,
	)
	return {"result": result}


@router.post("/analytics/events", status_code=status.HTTP_202_ACCEPTED)
async def record_activity(
	payload: ActivityEvent,
	access: UserAccess = Depends(require_access()),
	client: BackendClient = Depends(get_client),
	functions: FunctionsClient = Depends(get_functions),
) -> dict:
	functions.spawn(log_activity(client, payload.event_type, access.user_id, payload.data), name="log_activity")
	return {"accepted": True}
