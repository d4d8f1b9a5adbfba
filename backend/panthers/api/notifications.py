"""Notification preference endpoints for the signed-in user."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from panthers.api.deps import get_client, require_access
from panthers.domain.access.models import UserAccess
from panthers.domain.notifications.service import (
	NotificationPreferences,
	PreferencesUpdate,
	get_preferences,
	update_preferences,
)
from panthers.infra.backend import BackendClient

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/preferences", response_model=NotificationPreferences)
async def read_preferences(
	access: UserAccess = Depends(require_access()),
	client: BackendClient = Depends(get_client),
) -> NotificationPreferences:
	return await get_preferences(client, access.user_id)


@router.patch("/preferences", response_model=NotificationPreferences)
async def patch_preferences(
	payload: PreferencesUpdate,
	access: UserAccess = Depends(require_access()),
	client: BackendClient = Depends(get_client),
) -> NotificationPreferences:
	return await update_preferences(client, access.user_id, payload)
