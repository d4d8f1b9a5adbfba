"""Inbound database change webhook feeding the change feed."""

from __future__ import annotations

import hmac
import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, status

from panthers.api.deps import get_hub
from panthers.hub import Hub
from panthers.infra.feed import ChangeEvent
from panthers.settings import settings

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/hooks", tags=["hooks"])


async def require_webhook_secret(
	x_webhook_secret: Optional[str] = Header(default=None, alias="X-Webhook-Secret"),
) -> None:
	expected = settings.change_feed_webhook_secret
	if not expected:
		return
	if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, expected):
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="invalid_webhook_secret")


@router.post("/changes", status_code=status.HTTP_202_ACCEPTED)
async def receive_change(
	payload: dict[str, Any] = Body(...),
	_: None = Depends(require_webhook_secret),
	hub: Hub = Depends(get_hub),
) -> dict:
	try:
		event = ChangeEvent.from_payload(payload)
	except ValueError as exc:
		raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
	delivered = await hub.feed.publish(event)
	LOGGER.info("change_received", extra={"table": event.table, "type": event.type, "delivered": delivered})
	return {"accepted": True, "delivered": delivered}
