"""Authentication helpers for FastAPI endpoints.

Access tokens are issued by the managed backend's auth service (HS256, signed
with the project JWT secret). The raw token is kept so calls made on behalf of
the user are evaluated under row-level security as that user.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from panthers.obs import logging as obs_logging
from panthers.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	email: Optional[str] = None
	access_token: Optional[str] = None
	session_id: Optional[str] = None


_bearer_scheme = HTTPBearer(auto_error=False)


def decode_access(token: str) -> dict[str, object]:
	"""Decode and validate a backend access token.

	Raises jwt.InvalidTokenError subclasses on failure.
	"""
	return jwt.decode(
		token,
		settings.backend_jwt_secret,
		algorithms=["HS256"],
		audience=settings.backend_jwt_audience,
		leeway=5,
		options={"require": ["exp", "sub"]},
	)


def verify_access_jwt(token: str) -> AuthenticatedUser:
	try:
		payload = decode_access(token)
	except jwt.InvalidTokenError:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token") from None
	sub = str(payload.get("sub") or "").strip()
	if not sub:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
	email = payload.get("email")
	session_id = payload.get("session_id")
	return AuthenticatedUser(
		id=sub,
		email=str(email) if email else None,
		access_token=token,
		session_id=str(session_id) if session_id else None,
	)


async def get_current_user(
	request: Request,
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user.

	In development a bare X-User-Id header is accepted for local tools; every
	other environment requires a valid bearer token.
	"""
	user: Optional[AuthenticatedUser] = None
	if credentials and credentials.scheme.lower() == "bearer":
		user = verify_access_jwt(credentials.credentials)
	elif settings.is_dev() and x_user_id:
		user = AuthenticatedUser(id=x_user_id.strip())
	if user is None:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_token")
	request.state.user_id = user.id
	obs_logging.bind_context(user_id=user.id)
	return user
