"""Global error handlers ensuring request_id is included in JSON responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from panthers.api.deps import AccessDenied
from panthers.domain.access.models import AccessDecision
from panthers.domain.chat.policy import ChatPolicyError
from panthers.infra.errors import BackendError, ErrorKind, describe
from panthers.obs import logging as obs_logging

LOGGER = logging.getLogger(__name__)

BACKEND_STATUS = {
    ErrorKind.PERMISSION: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION: 422,
    ErrorKind.NETWORK: 502,
    ErrorKind.UNKNOWN: 500,
}


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or obs_logging.current_request_id()


def backend_error_payload(exc: BackendError, request_id: str) -> dict:
    presentation = describe(exc)
    payload = {
        "detail": exc.detail,
        "kind": exc.kind.value,
        "headline": presentation.headline,
        "display": presentation.display,
        "request_id": request_id,
    }
    if exc.code:
        payload["code"] = exc.code
    return payload


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        payload = {"detail": exc.detail, "request_id": _request_id(request)}
        return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        payload = {"detail": "validation_error", "errors": exc.errors(), "request_id": _request_id(request)}
        return JSONResponse(status_code=422, content=payload)

    @app.exception_handler(BackendError)
    async def backend_exc_handler(request: Request, exc: BackendError):  # type: ignore[override]
        status_code = BACKEND_STATUS[exc.kind]
        if status_code >= 500:
            LOGGER.error("backend_error_unhandled", extra={"kind": exc.kind.value, "code": exc.code})
        return JSONResponse(status_code=status_code, content=backend_error_payload(exc, _request_id(request)))

    @app.exception_handler(AccessDenied)
    async def access_denied_handler(request: Request, exc: AccessDenied):  # type: ignore[override]
        status_code = 401 if exc.decision is AccessDecision.UNAUTHENTICATED else 403
        payload = {
            "detail": exc.decision.value,
            "state": exc.decision.value,
            "required_roles": list(exc.required),
            "request_id": _request_id(request),
        }
        return JSONResponse(status_code=status_code, content=payload)

    @app.exception_handler(ChatPolicyError)
    async def chat_policy_handler(request: Request, exc: ChatPolicyError):  # type: ignore[override]
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.code, "request_id": _request_id(request)})
