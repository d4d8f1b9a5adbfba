"""Request id, latency metrics and one access-log line per request."""

from __future__ import annotations

import time
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from panthers.obs import logging as obs_logging
from panthers.obs import metrics

REQUEST_ID_HEADER = "X-Request-Id"

_ACCESS_LOG = obs_logging.get_logger("panthers.http")


def _route_template(request: Request) -> str:
	"""Matched route path (``/chats/{chat_id}/messages``), falling back to the raw path."""
	route = request.scope.get("route")
	return getattr(route, "path", None) or request.url.path


def _incoming_request_id(request: Request) -> str:
	candidate = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
	if candidate and len(candidate) <= 128:
		return candidate
	return uuid4().hex


class ObservabilityMiddleware(BaseHTTPMiddleware):
	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		request_id = _incoming_request_id(request)
		request.state.request_id = request_id
		started = time.perf_counter()
		status_code = 500
		with obs_logging.log_context(request_id=request_id, route=request.url.path):
			try:
				response = await call_next(request)
				status_code = response.status_code
			except Exception:
				_ACCESS_LOG.exception("http_request_error", extra={"method": request.method})
				raise
			finally:
				elapsed = time.perf_counter() - started
				template = _route_template(request)
				metrics.observe_request(template, request.method, status_code, elapsed)
				_ACCESS_LOG.info(
					"http_request",
					extra={
						"method": request.method,
						"status": status_code,
						"route": template,
						"latency_ms": round(elapsed * 1000, 3),
					},
				)
		response.headers.setdefault(REQUEST_ID_HEADER, request_id)
		return response


def install(app) -> None:
	app.add_middleware(ObservabilityMiddleware)
