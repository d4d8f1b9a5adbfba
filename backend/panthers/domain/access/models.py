"""Role and approval models.

Approval is checked before roles. ``super_admin`` skips role checks but not
the approval check.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Tuple


class ApprovalStatus(str, enum.Enum):
	PENDING = "pending"
	APPROVED = "approved"
	REJECTED = "rejected"


class Role(str, enum.Enum):
	SUPER_ADMIN = "super_admin"
	STAFF = "staff"
	COACH = "coach"
	PLAYER = "player"
	PARENT = "parent"
	MEDICAL = "medical"
	PARTNER = "partner"


class AccessDecision(str, enum.Enum):
	GRANTED = "granted"
	UNAUTHENTICATED = "unauthenticated"
	PENDING = "pending"
	REJECTED = "rejected"
	DENIED = "denied"


_TRANSITIONS = {
	ApprovalStatus.PENDING: {ApprovalStatus.APPROVED, ApprovalStatus.REJECTED},
	ApprovalStatus.APPROVED: set(),
	ApprovalStatus.REJECTED: set(),
}


def can_transition(current: ApprovalStatus, target: ApprovalStatus) -> bool:
	return target in _TRANSITIONS[ApprovalStatus(current)]


def _parse_status(raw: Any, approved_flag: Any = None) -> ApprovalStatus:
	if raw:
		try:
			return ApprovalStatus(str(raw).lower())
		except ValueError:
			return ApprovalStatus.PENDING
	if approved_flag is True:
		return ApprovalStatus.APPROVED
	return ApprovalStatus.PENDING


@dataclass(slots=True)
class UserAccess:
	user_id: str
	approval_status: ApprovalStatus
	roles: Tuple[str, ...] = ()
	primary_role: str = Role.PLAYER.value
	team_ids: Tuple[str, ...] = ()
	profile: dict[str, Any] = field(default_factory=dict)

	@classmethod
	def from_auth_data(cls, user_id: str, data: Optional[Mapping[str, Any]]) -> "UserAccess":
		"""Build from the ``get_user_auth_data_secure`` payload (camelCase keys)."""
		data = data or {}
		profile = dict(data.get("profile") or {})
		roles_raw = data.get("roles") or []
		roles = tuple(str(role) for role in roles_raw if role) if isinstance(roles_raw, (list, tuple)) else ()
		primary = data.get("primaryRole") if isinstance(data.get("primaryRole"), str) else None
		team_ids_raw = data.get("teamIds") or []
		team_ids = tuple(str(t) for t in team_ids_raw) if isinstance(team_ids_raw, (list, tuple)) else ()
		status = _parse_status(
			data.get("approvalStatus") or profile.get("approval_status"),
			data.get("isApproved"),
		)
		return cls(
			user_id=str(user_id),
			approval_status=status,
			roles=roles,
			primary_role=primary or (roles[0] if roles else Role.PLAYER.value),
			team_ids=team_ids,
			profile=profile,
		)

	@property
	def is_approved(self) -> bool:
		return self.approval_status is ApprovalStatus.APPROVED

	@property
	def is_super_admin(self) -> bool:
		return Role.SUPER_ADMIN.value in self.roles

	def has_role(self, role: str | Role) -> bool:
		value = role.value if isinstance(role, Role) else role
		return value in self.roles

	def to_dict(self) -> dict[str, Any]:
		return {
			"user_id": self.user_id,
			"approval_status": self.approval_status.value,
			"roles": list(self.roles),
			"primary_role": self.primary_role,
			"team_ids": list(self.team_ids),
			"is_super_admin": self.is_super_admin,
		}


def evaluate(access: Optional[UserAccess], required_roles: Iterable[str | Role] = ()) -> AccessDecision:
	"""Decide whether protected content may render.

	Anything other than GRANTED must render a blocking screen, never partial content.
	"""
	if access is None:
		return AccessDecision.UNAUTHENTICATED
	if access.approval_status is ApprovalStatus.PENDING:
		return AccessDecision.PENDING
	if access.approval_status is ApprovalStatus.REJECTED:
		return AccessDecision.REJECTED
	required = [role.value if isinstance(role, Role) else str(role) for role in required_roles]
	if not required or access.is_super_admin:
		return AccessDecision.GRANTED
	if any(access.has_role(role) for role in required):
		return AccessDecision.GRANTED
	return AccessDecision.DENIED
