"""Schedule events as read from the ``schedules`` table."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional

from panthers.infra.backend import Op

ACTIVE_STATUS = "active"


@dataclass(slots=True)
class ScheduleEvent:
	id: str
	title: str
	event_type: str
	start_time: str
	end_time: Optional[str] = None
	location: Optional[str] = None
	opponent: Optional[str] = None
	description: Optional[str] = None
	team_ids: list[str] = field(default_factory=list)
	status: Optional[str] = None

	@classmethod
	def from_row(cls, row: Mapping[str, Any]) -> "ScheduleEvent":
		return cls(
			id=str(row["id"]),
			title=str(row.get("title") or ""),
			event_type=str(row.get("event_type") or ""),
			start_time=str(row.get("start_time") or ""),
			end_time=row.get("end_time"),
			location=row.get("location"),
			opponent=row.get("opponent"),
			description=row.get("description"),
			team_ids=[str(team_id) for team_id in row.get("team_ids") or []],
			status=row.get("status"),
		)

	def to_dict(self) -> dict[str, Any]:
		return {
			"id": self.id,
			"title": self.title,
			"event_type": self.event_type,
			"start_time": self.start_time,
			"end_time": self.end_time,
			"location": self.location,
			"opponent": self.opponent,
			"description": self.description,
			"team_ids": list(self.team_ids),
			"status": self.status,
		}


@dataclass(frozen=True)
class ScheduleFilters:
	event_type: Optional[str] = None
	team_ids: tuple[str, ...] = ()
	starts_after: Optional[datetime] = None
	starts_before: Optional[datetime] = None
	status: Optional[str] = None

	def to_query(self) -> dict[str, Any]:
		"""Backend filters; several teams match events shared with any of them."""
		query: dict[str, Any] = {}
		if self.event_type:
			query["event_type"] = self.event_type
		if len(self.team_ids) == 1:
			query["team_ids"] = Op("cs", list(self.team_ids))
		elif self.team_ids:
			query["team_ids"] = Op("ov", list(self.team_ids))
		window = []
		if self.starts_after is not None:
			window.append(Op("gte", self.starts_after.isoformat()))
		if self.starts_before is not None:
			window.append(Op("lte", self.starts_before.isoformat()))
		if window:
			query["start_time"] = window
		if self.status:
			query["status"] = self.status
		return query

	def cache_fragment(self) -> str:
		return json.dumps(
			{
				"event_type": self.event_type,
				"team_ids": sorted(self.team_ids),
				"after": self.starts_after.isoformat() if self.starts_after else None,
				"before": self.starts_before.isoformat() if self.starts_before else None,
				"status": self.status,
			},
			sort_keys=True,
		)
