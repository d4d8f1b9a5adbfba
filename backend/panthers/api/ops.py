"""Liveness, readiness and Prometheus metrics."""

from __future__ import annotations

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from panthers.api.deps import get_hub
from panthers.hub import Hub
from panthers.infra.feed import RedisChangeFeed
from panthers.infra.redis import redis_client
from panthers.settings import settings

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["ops"])


def _presented_token(x_admin_token: Optional[str], authorization: Optional[str]) -> str:
	if x_admin_token:
		return x_admin_token
	scheme, _, credential = (authorization or "").partition(" ")
	return credential if scheme.lower() == "bearer" else ""


async def require_metrics_access(
	x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	expected = settings.obs_admin_token
	if not expected:
		return
	if not hmac.compare_digest(_presented_token(x_admin_token, authorization), expected):
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="forbidden")


@router.get("/healthz")
async def healthz() -> dict[str, str]:
	return {"status": "ok", "service": settings.service_name}


@router.get("/readyz")
async def readyz(hub: Hub = Depends(get_hub)) -> JSONResponse:
	"""Ready once the change feed transport answers; the memory feed always does."""
	checks = {"change_feed": settings.change_feed_backend}
	if isinstance(hub.feed, RedisChangeFeed):
		try:
			await redis_client.ping()
		except Exception as exc:  # noqa: BLE001
			LOGGER.warning("readiness_redis_failed", extra={"error": str(exc)})
			checks["redis"] = "down"
			return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"status": "degraded", **checks})
		checks["redis"] = "ok"
	return JSONResponse(content={"status": "ok", **checks})


@router.get("/metrics")
async def prometheus_metrics(_: None = Depends(require_metrics_access)) -> Response:
	return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
