"""Attendance saving and reads."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from panthers.domain.attendance.models import AttendanceMark, AttendanceStatus, credit_delta, validate_mark
from panthers.infra.cache import TTLCache, scoped_key
from panthers.infra.errors import BackendError, ErrorKind
from panthers.infra.gateway import GatewayResult, ProcedureGateway
from panthers.infra.retry import retry_async

LOGGER = logging.getLogger(__name__)


@dataclass
class AttendanceSaveResult:
	result: GatewayResult[Any]
	marks: list[AttendanceMark] = field(default_factory=list)
	# Keyed by ``player:event``. Advisory only: the backend applies the real
	# deduction idempotently.
	projected_deltas: dict[str, int] = field(default_factory=dict)

	@property
	def ok(self) -> bool:
		return self.result.ok

	@property
	def deductions(self) -> int:
		return sum(1 for delta in self.projected_deltas.values() if delta < 0)

	@property
	def refunds(self) -> int:
		return sum(1 for delta in self.projected_deltas.values() if delta > 0)

	def summary(self) -> str:
		if not self.ok:
			return str(self.result.error) if self.result.error else "Failed to save attendance."
		parts = [f"Attendance saved for {len(self.marks)} record(s)."]
		if self.deductions:
			parts.append(f"{self.deductions} class(es) deducted.")
		if self.refunds:
			parts.append(f"{self.refunds} class(es) returned.")
		return " ".join(parts)


def _coerce(mark: AttendanceMark | Mapping[str, Any]) -> AttendanceMark:
	if isinstance(mark, AttendanceMark):
		return mark
	problems = validate_mark(mark)
	if problems:
		raise BackendError(ErrorKind.VALIDATION, "; ".join(problems))
	return AttendanceMark(
		event_id=str(mark["event_id"]),
		team_id=str(mark["team_id"]),
		player_id=str(mark["player_id"]),
		status=AttendanceStatus(mark["status"]),
		notes=mark.get("notes") or None,
	)


def collapse(marks: Iterable[AttendanceMark]) -> list[AttendanceMark]:
	"""One mark per (player, event); the last one in the batch wins."""
	latest: dict[tuple[str, str], AttendanceMark] = {}
	for mark in marks:
		latest.pop(mark.key, None)
		latest[mark.key] = mark
	return list(latest.values())


class AttendanceService:
	def __init__(self, gateway: ProcedureGateway, cache: Optional[TTLCache] = None) -> None:
		self.gateway = gateway
		self.cache = cache

	async def save_batch(
		self,
		marks: Iterable[AttendanceMark | Mapping[str, Any]],
		*,
		previous: Optional[Mapping[str, AttendanceStatus | str | None]] = None,
	) -> AttendanceSaveResult:
		"""Save every mark with a single ``rpc_save_attendance_batch`` call.

		``previous`` maps ``player:event`` (see :func:`slot_key`) to the status the
		caller last saw, and only feeds the projected credit deltas.
		"""
		try:
			batch = collapse(_coerce(mark) for mark in marks)
		except BackendError as exc:
			return AttendanceSaveResult(result=GatewayResult(ok=False, error=exc))
		if not batch:
			error = BackendError(ErrorKind.VALIDATION, "at least one attendance record is required")
			return AttendanceSaveResult(result=GatewayResult(ok=False, error=error))
		result = await self.gateway.mutate(
			"rpc_save_attendance_batch",
			{"p_records": [mark.to_record() for mark in batch]},
		)
		if not result.ok:
			return AttendanceSaveResult(result=result, marks=batch)
		if self.cache is not None:
			for event_id in {mark.event_id for mark in batch}:
				self.cache.invalidate(f"attendance:{event_id}:")
			self.cache.invalidate("membership:")
		seen = previous or {}
		deltas = {mark.slot: credit_delta(seen.get(mark.slot), mark.status) for mark in batch}
		LOGGER.info("attendance_saved", extra={"records": len(batch), "events": len({m.event_id for m in batch})})
		return AttendanceSaveResult(result=result, marks=batch, projected_deltas={k: v for k, v in deltas.items() if v})

	async def list_for_event(self, event_id: str) -> list[AttendanceMark]:
		async def _load() -> list[AttendanceMark]:
			rows = await retry_async(
				lambda: self.gateway.client.select("attendance", filters={"event_id": event_id}),
				self.gateway.retry_policy,
			)
			return [AttendanceMark.from_row(row) for row in rows]

		if self.cache is None:
			return await _load()
		return await self.cache.get_or_load(scoped_key(self.gateway.client.cache_scope, f"attendance:{event_id}:"), _load)

	async def player_history(self, player_id: str, *, limit: int = 50) -> list[dict]:
		return await retry_async(
			lambda: self.gateway.client.select(
				"attendance",
				filters={"player_id": player_id},
				order="created_at.desc",
				limit=limit,
			),
			self.gateway.retry_policy,
		)
