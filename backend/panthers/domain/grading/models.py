"""Player grade models and the provisional overall score."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping, Optional

PRIORITIES = ("low", "medium", "high")
DEFAULT_PRIORITY = "medium"
DEFAULT_SCORE = 5


@dataclass(slots=True)
class Metric:
	id: str
	name: str
	weight: float = 1.0
	is_active: bool = True

	@classmethod
	def from_row(cls, row: Mapping[str, Any]) -> "Metric":
		weight = row.get("weight")
		return cls(
			id=str(row["id"]),
			name=str(row.get("name") or ""),
			weight=1.0 if weight is None else float(weight),
			is_active=bool(row.get("is_active", True)),
		)


@dataclass(slots=True)
class GradeItem:
	metric_id: str
	score: float
	priority: str = DEFAULT_PRIORITY

	def to_param(self) -> dict[str, Any]:
		return {"metric_id": self.metric_id, "score": self.score, "priority": self.priority or DEFAULT_PRIORITY}

	@classmethod
	def from_row(cls, row: Mapping[str, Any]) -> "GradeItem":
		return cls(
			metric_id=str(row["metric_id"]),
			score=float(row["score"]),
			priority=row.get("priority") or DEFAULT_PRIORITY,
		)


def validate_items(items: Iterable[GradeItem]) -> list[str]:
	errors: list[str] = []
	for item in items:
		if not item.metric_id:
			errors.append("metric_id is required")
		if item.priority not in PRIORITIES:
			errors.append(f"{item.metric_id}: priority must be one of {', '.join(PRIORITIES)}")
	return errors


def provisional_overall(items: Iterable[GradeItem], metrics: Iterable[Metric] = ()) -> Optional[float]:
	"""Weighted mean of the scored metrics, rounded to two places.

	Unknown metrics weigh 1; a zero-weight metric is recorded but does not
	move the mean. Returns ``None`` when nothing is scored or every weight is
	0. This mirrors the backend formula for immediate feedback and is never
	stored.
	"""
	weights = {metric.id: metric.weight for metric in metrics}
	total = 0.0
	total_weight = 0.0
	for item in items:
		weight = weights.get(item.metric_id)
		if weight is None:
			weight = 1.0
		total += item.score * weight
		total_weight += weight
	if total_weight <= 0:
		return None
	return round(total / total_weight, 2)


@dataclass(slots=True)
class PlayerGrade:
	event_id: str
	player_id: str
	items: list[GradeItem] = field(default_factory=list)
	overall: Optional[float] = None
	# False while ``overall`` is the local estimate; True once the backend answered.
	confirmed: bool = False
	grade_id: Optional[str] = None

	def confirm(self, overall: Optional[float], grade_id: Optional[str] = None) -> "PlayerGrade":
		return replace(self, overall=overall, confirmed=True, grade_id=grade_id or self.grade_id)

	def to_dict(self) -> dict[str, Any]:
		return {
			"event_id": self.event_id,
			"player_id": self.player_id,
			"grade_id": self.grade_id,
			"items": [item.to_param() for item in self.items],
			"overall": self.overall,
			"confirmed": self.confirmed,
		}
