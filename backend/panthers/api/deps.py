"""FastAPI dependencies wiring request-scoped services onto the shared hub."""

from __future__ import annotations

from typing import Callable

from fastapi import Depends, Request

from panthers.domain.access.models import AccessDecision, Role, UserAccess, evaluate
from panthers.domain.access.service import AccessService
from panthers.hub import Hub
from panthers.infra.auth import AuthenticatedUser, get_current_user
from panthers.infra.backend import BackendClient
from panthers.infra.gateway import ProcedureGateway


class AccessDenied(Exception):
	"""Raised when the approval gate or a role check blocks a request."""

	def __init__(self, decision: AccessDecision, *, required: tuple[str, ...] = ()) -> None:
		super().__init__(decision.value)
		self.decision = decision
		self.required = required


STAFF_ROLES = (Role.STAFF.value, Role.COACH.value)


def get_hub(request: Request) -> Hub:
	return request.app.state.hub


def get_client(
	hub: Hub = Depends(get_hub),
	user: AuthenticatedUser = Depends(get_current_user),
) -> BackendClient:
	return hub.client_for(user.access_token, user.id)


def get_gateway(
	hub: Hub = Depends(get_hub),
	user: AuthenticatedUser = Depends(get_current_user),
) -> ProcedureGateway:
	return hub.gateway_for(user.access_token, user.id)


def get_access_service(
	hub: Hub = Depends(get_hub),
	gateway: ProcedureGateway = Depends(get_gateway),
) -> AccessService:
	return AccessService(gateway, hub.caches.roles)


async def get_user_access(
	user: AuthenticatedUser = Depends(get_current_user),
	service: AccessService = Depends(get_access_service),
) -> UserAccess:
	return await service.get_access(user.id)


def require_access(*roles: str | Role) -> Callable[..., UserAccess]:
	"""Dependency factory: approved users holding one of ``roles`` (any role when empty)."""
	required = tuple(role.value if isinstance(role, Role) else str(role) for role in roles)

	async def _dependency(access: UserAccess = Depends(get_user_access)) -> UserAccess:
		decision = evaluate(access, required)
		if decision is not AccessDecision.GRANTED:
			raise AccessDenied(decision, required=required)
		return access

	return _dependency


def ensure_self_or_roles(access: UserAccess, user_id: str, *roles: str) -> None:
	"""Allow acting on one's own records, otherwise require a listed role."""
	if access.user_id == user_id:
		return
	decision = evaluate(access, roles or STAFF_ROLES)
	if decision is not AccessDecision.GRANTED:
		raise AccessDenied(decision, required=tuple(roles or STAFF_ROLES))
