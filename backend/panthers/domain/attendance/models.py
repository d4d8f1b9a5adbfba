"""Attendance marks and their advisory credit projection."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Mapping, Optional


class AttendanceStatus(str, enum.Enum):
	PRESENT = "present"
	ABSENT = "absent"
	LATE = "late"
	EXCUSED = "excused"


# Only a present mark consumes a membership class.
CONSUMING_STATUSES = frozenset({AttendanceStatus.PRESENT})


def slot_key(player_id: str, event_id: str) -> str:
	"""Flat ``player:event`` key used for previous statuses and projected deltas."""
	return f"{player_id}:{event_id}"


@dataclass(slots=True)
class AttendanceMark:
	event_id: str
	team_id: str
	player_id: str
	status: AttendanceStatus
	notes: Optional[str] = None

	@property
	def key(self) -> tuple[str, str]:
		return (self.player_id, self.event_id)

	@property
	def slot(self) -> str:
		return slot_key(self.player_id, self.event_id)

	def to_record(self) -> dict[str, Any]:
		return {
			"event_id": self.event_id,
			"team_id": self.team_id,
			"player_id": self.player_id,
			"status": self.status.value,
			"notes": self.notes or None,
		}

	@classmethod
	def from_row(cls, row: Mapping[str, Any]) -> "AttendanceMark":
		return cls(
			event_id=str(row.get("event_id") or row.get("schedule_id")),
			team_id=str(row.get("team_id") or ""),
			player_id=str(row["player_id"]),
			status=AttendanceStatus(row["status"]),
			notes=row.get("notes"),
		)


def validate_mark(raw: Mapping[str, Any]) -> list[str]:
	"""Presence and enum checks only; the backend owns every other rule."""
	errors: list[str] = []
	for name in ("event_id", "team_id", "player_id"):
		if not raw.get(name):
			errors.append(f"{name} is required")
	status = raw.get("status")
	if status not in {s.value for s in AttendanceStatus}:
		errors.append("status must be one of present, absent, late, excused")
	return errors


def consumes_credit(status: Optional[AttendanceStatus | str]) -> bool:
	if status is None:
		return False
	return AttendanceStatus(status) in CONSUMING_STATUSES


def credit_delta(previous: Optional[AttendanceStatus | str], new: AttendanceStatus | str) -> int:
	"""Net change in remaining credits for one (player, event) transition.

	The effect is computed from the transition, so toggling
	present -> absent -> present nets out to a single deduction.
	"""
	before = consumes_credit(previous)
	after = consumes_credit(new)
	if before == after:
		return 0
	return -1 if after else 1
