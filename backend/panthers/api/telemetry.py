"""Client-side error and performance reports."""

from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from panthers.api.deps import get_hub
from panthers.hub import Hub
from panthers.infra.auth import AuthenticatedUser, get_current_user
from panthers.obs import telemetry

router = APIRouter(prefix="/telemetry", tags=["telemetry"])


class ErrorReport(BaseModel):
	message: str = Field(..., min_length=1, max_length=2000)
	severity: Literal["low", "medium", "high", "critical"] = "medium"
	url: str = Field(default="", max_length=2048)
	stack: Optional[str] = Field(default=None, max_length=20000)
	user_role: Optional[str] = None
	context: Dict[str, Any] = Field(default_factory=dict)


class PerformanceReport(BaseModel):
	metric: str = Field(..., min_length=1, max_length=120)
	value: float
	url: str = Field(default="", max_length=2048)
	context: Dict[str, Any] = Field(default_factory=dict)


@router.post("/errors", status_code=status.HTTP_202_ACCEPTED)
async def report_error(
	payload: ErrorReport,
	hub: Hub = Depends(get_hub),
	user: AuthenticatedUser = Depends(get_current_user),
) -> dict:
	delivered = await telemetry.report_error(
		hub.client_for(user.access_token, user.id),
		payload.message,
		severity=payload.severity,
		url=payload.url,
		stack=payload.stack,
		user_id=user.id,
		user_role=payload.user_role,
		context=payload.context,
	)
	return {"delivered": delivered}


@router.post("/performance", status_code=status.HTTP_202_ACCEPTED)
async def report_performance(
	payload: PerformanceReport,
	hub: Hub = Depends(get_hub),
	user: AuthenticatedUser = Depends(get_current_user),
) -> dict:
	delivered = await telemetry.report_performance(
		hub.client_for(user.access_token, user.id),
		payload.metric,
		payload.value,
		url=payload.url,
		user_id=user.id,
		context=payload.context,
	)
	return {"delivered": delivered}
