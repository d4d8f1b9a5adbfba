"""Membership allocations as the backend reports them."""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Mapping, Optional


class AllocationType(str, enum.Enum):
	CLASS_COUNT = "CLASS_COUNT"
	UNLIMITED = "UNLIMITED"
	DATE_RANGE = "DATE_RANGE"

	@classmethod
	def parse(cls, raw: Any) -> "AllocationType":
		try:
			return cls(str(raw or "").upper())
		except ValueError:
			return cls.CLASS_COUNT


def _as_int(value: Any) -> Optional[int]:
	if value is None or value == "":
		return None
	return int(value)


def _as_date(value: Any) -> Optional[date]:
	if not value:
		return None
	if isinstance(value, date):
		return value
	return date.fromisoformat(str(value)[:10])


@dataclass(slots=True)
class MembershipType:
	id: str
	name: str
	allocation_type: AllocationType
	allocated_classes: Optional[int] = None
	description: Optional[str] = None
	price: Optional[float] = None
	currency: Optional[str] = None
	duration_days: Optional[int] = None
	is_active: bool = True

	@classmethod
	def from_row(cls, row: Mapping[str, Any]) -> "MembershipType":
		price = row.get("price")
		return cls(
			id=str(row["id"]),
			name=str(row.get("name") or ""),
			allocation_type=AllocationType.parse(row.get("allocation_type")),
			allocated_classes=_as_int(row.get("allocated_classes")),
			description=row.get("description"),
			price=float(price) if price is not None else None,
			currency=row.get("currency"),
			duration_days=_as_int(row.get("duration_days")),
			is_active=bool(row.get("is_active", True)),
		)

	def to_dict(self) -> dict[str, Any]:
		return {
			"id": self.id,
			"name": self.name,
			"allocation_type": self.allocation_type.value,
			"allocated_classes": self.allocated_classes,
			"description": self.description,
			"price": self.price,
			"currency": self.currency,
			"duration_days": self.duration_days,
			"is_active": self.is_active,
		}


@dataclass(slots=True)
class MembershipSummary:
	"""One user's current membership from ``fn_get_membership_summary_v2``.

	``remaining`` is derived locally as ``max(allocated - used, 0)``; the
	backend value is kept in ``reported_remaining`` for comparison only.
	"""

	membership_id: str
	user_id: str
	allocation_type: AllocationType
	allocated_classes: Optional[int]
	used_classes: int
	start_date: Optional[date] = None
	end_date: Optional[date] = None
	status: str = "active"
	membership_type_name: str = ""
	player_name: str = ""
	days_left: Optional[int] = None
	should_deactivate: bool = False
	is_expired: bool = False
	reported_remaining: Optional[int] = None

	@classmethod
	def from_payload(cls, data: Mapping[str, Any]) -> "MembershipSummary":
		return cls(
			membership_id=str(data.get("membership_id") or ""),
			user_id=str(data.get("user_id") or ""),
			allocation_type=AllocationType.parse(data.get("allocation_type")),
			allocated_classes=_as_int(data.get("allocated_classes")),
			used_classes=_as_int(data.get("used_classes")) or 0,
			start_date=_as_date(data.get("start_date")),
			end_date=_as_date(data.get("end_date")),
			status=str(data.get("status") or "active"),
			membership_type_name=str(data.get("membership_type_name") or ""),
			player_name=str(data.get("player_name") or ""),
			days_left=_as_int(data.get("days_left")),
			should_deactivate=bool(data.get("should_deactivate")),
			is_expired=bool(data.get("is_expired")),
			reported_remaining=_as_int(data.get("remaining_classes")),
		)

	@property
	def remaining(self) -> Optional[int]:
		if self.allocation_type is not AllocationType.CLASS_COUNT or self.allocated_classes is None:
			return None
		return max(self.allocated_classes - self.used_classes, 0)

	@property
	def is_exhausted(self) -> bool:
		if self.allocation_type is AllocationType.CLASS_COUNT:
			return self.remaining == 0
		if self.allocation_type is AllocationType.DATE_RANGE:
			return self.is_expired or (self.days_left is not None and self.days_left < 0)
		return False

	def project(self, delta: int) -> "MembershipSummary":
		"""Apply an advisory credit delta (``-1`` consumes a class).

		Usage never drops below zero; the backend's own deduction remains
		the authoritative one.
		"""
		if self.allocation_type is not AllocationType.CLASS_COUNT:
			return self
		return replace(self, used_classes=max(self.used_classes - delta, 0))

	def to_dict(self) -> dict[str, Any]:
		return {
			"membership_id": self.membership_id,
			"user_id": self.user_id,
			"allocation_type": self.allocation_type.value,
			"allocated_classes": self.allocated_classes,
			"used_classes": self.used_classes,
			"remaining_classes": self.remaining,
			"start_date": self.start_date.isoformat() if self.start_date else None,
			"end_date": self.end_date.isoformat() if self.end_date else None,
			"status": self.status,
			"membership_type_name": self.membership_type_name,
			"days_left": self.days_left,
			"is_exhausted": self.is_exhausted,
		}
