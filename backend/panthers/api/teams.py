"""Team directory listing."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from panthers.api.deps import get_client, get_hub, require_access
from panthers.domain.access.models import UserAccess
from panthers.hub import Hub
from panthers.infra.backend import BackendClient

router = APIRouter(prefix="/teams", tags=["teams"])


@router.get("")
async def list_teams(
	season: Optional[str] = Query(default=None),
	age_group: Optional[str] = Query(default=None),
	coach_id: Optional[str] = Query(default=None),
	_: UserAccess = Depends(require_access()),
	hub: Hub = Depends(get_hub),
	client: BackendClient = Depends(get_client),
) -> dict:
	filters = {
		key: value
		for key, value in (("season", season), ("age_group", age_group), ("coach_id", coach_id))
		if value
	}
	teams = await hub.teams.with_client(client).list(filters)
	return {"items": [team.to_dict() for team in teams]}
