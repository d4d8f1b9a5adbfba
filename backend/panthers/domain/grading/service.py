"""Grade saving with a provisional overall that the backend always overwrites."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from panthers.domain.grading.models import GradeItem, Metric, PlayerGrade, provisional_overall, validate_items
from panthers.infra.cache import TTLCache, scoped_key
from panthers.infra.errors import BackendError, ErrorKind
from panthers.infra.gateway import ProcedureGateway
from panthers.infra.retry import retry_async

LOGGER = logging.getLogger(__name__)


def grade_cache_key(event_id: str, player_id: str) -> str:
	return f"grades:{event_id}:{player_id}:"


def _remote_overall(data: Any) -> tuple[Optional[float], Optional[str]]:
	row = data[0] if isinstance(data, list) and data else data
	if not isinstance(row, Mapping):
		return None, None
	overall = row.get("overall")
	grade_id = row.get("grade_id") or row.get("id")
	return (float(overall) if overall is not None else None), (str(grade_id) if grade_id else None)


@dataclass
class GradeSaveResult:
	ok: bool
	grade: Optional[PlayerGrade]
	error: Optional[BackendError] = None


class GradingService:
	def __init__(self, gateway: ProcedureGateway, cache: Optional[TTLCache] = None) -> None:
		self.gateway = gateway
		self.cache = cache

	async def metrics(self) -> list[Metric]:
		rows = await retry_async(
			lambda: self.gateway.client.select("grading_metrics", filters={"is_active": True}, order="name"),
			self.gateway.retry_policy,
		)
		return [Metric.from_row(row) for row in rows]

	async def save(
		self,
		event_id: str,
		player_id: str,
		items: Iterable[GradeItem],
		*,
		metrics: Optional[Iterable[Metric]] = None,
	) -> GradeSaveResult:
		"""Save scores with one ``rpc_save_player_grades`` call.

		On success the backend's overall replaces the local estimate. On
		failure the estimate is dropped and the last confirmed grade, if one
		is cached, is returned instead.
		"""
		items = list(items)
		key = scoped_key(self.gateway.client.cache_scope, grade_cache_key(event_id, player_id))
		last_confirmed = self.cache.get(key) if self.cache is not None else None
		problems = validate_items(items)
		if not items:
			problems.append("at least one grade item is required")
		if problems:
			return GradeSaveResult(ok=False, grade=last_confirmed, error=BackendError(ErrorKind.VALIDATION, "; ".join(problems)))

		provisional = PlayerGrade(
			event_id=event_id,
			player_id=player_id,
			items=items,
			overall=provisional_overall(items, metrics or ()),
			confirmed=False,
		)
		result = await self.gateway.mutate(
			"rpc_save_player_grades",
			{"p_event_id": event_id, "p_player_id": player_id, "p_items": [item.to_param() for item in items]},
		)
		if not result.ok:
			return GradeSaveResult(ok=False, grade=last_confirmed, error=result.error)

		overall, grade_id = _remote_overall(result.data)
		confirmed = provisional.confirm(overall, grade_id)
		if provisional.overall is not None and overall is not None and abs(provisional.overall - overall) > 0.01:
			LOGGER.info(
				"grade_overall_mismatch",
				extra={"event_id": event_id, "player_id": player_id, "local": provisional.overall, "remote": overall},
			)
		if self.cache is not None:
			self.cache.set(key, confirmed)
		return GradeSaveResult(ok=True, grade=confirmed)

	async def load(self, event_id: str, player_id: str) -> Optional[PlayerGrade]:
		client = self.gateway.client
		header = await retry_async(
			lambda: client.maybe_single("player_grades", filters={"event_id": event_id, "player_id": player_id}),
			self.gateway.retry_policy,
		)
		if header is None:
			return None
		rows = await retry_async(
			lambda: client.select("player_grade_items", filters={"grade_id": header["id"]}),
			self.gateway.retry_policy,
		)
		overall = header.get("overall")
		grade = PlayerGrade(
			event_id=event_id,
			player_id=player_id,
			items=[GradeItem.from_row(row) for row in rows],
			overall=float(overall) if overall is not None else None,
			confirmed=True,
			grade_id=str(header["id"]),
		)
		if self.cache is not None:
			self.cache.set(scoped_key(client.cache_scope, grade_cache_key(event_id, player_id)), grade)
		return grade
