"""Remote procedure gateway.

Every stateful intent is exactly one call to a named procedure in the managed
backend. The gateway checks argument presence and shape, never business rules,
and never retries a procedure that mutates state.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Generic, Mapping, Optional, TypeVar

from panthers.infra.backend import BackendClient
from panthers.infra.errors import BackendError, ErrorKind
from panthers.infra.retry import RetryPolicy, retry_async
from panthers.obs import metrics as obs_metrics
from panthers.obs.logging import log_context

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Procedure:
	name: str
	required: tuple[str, ...] = ()
	optional: tuple[str, ...] = ()
	mutates: bool = True

	def check(self, params: Mapping[str, Any]) -> None:
		missing = [name for name in self.required if params.get(name) is None]
		if missing:
			raise BackendError(ErrorKind.VALIDATION, f"{self.name}: missing required argument(s) {', '.join(missing)}")
		allowed = set(self.required) | set(self.optional)
		unexpected = sorted(set(params) - allowed)
		if unexpected:
			raise BackendError(ErrorKind.VALIDATION, f"{self.name}: unexpected argument(s) {', '.join(unexpected)}")


PROCEDURES: dict[str, Procedure] = {
	proc.name: proc
	for proc in (
		Procedure("rpc_save_attendance_batch", required=("p_records",)),
		Procedure(
			"rpc_assign_membership_v2",
			required=("p_user_id", "p_membership_type_id", "p_start_date", "p_auto_deactivate"),
			optional=("p_end_date", "p_override_class_count", "p_notes"),
		),
		Procedure("rpc_approve_user_secure", required=("target_user_id", "approval_decision"), optional=("rejection_reason",)),
		Procedure("rpc_save_player_grades", required=("p_event_id", "p_player_id", "p_items")),
		Procedure("fn_auto_deactivate_players"),
		Procedure(
			"create_notification",
			required=("target_user_id", "notification_type", "notification_title", "notification_message"),
			optional=("notification_data", "notification_priority", "entity_type", "entity_id"),
		),
		Procedure("get_user_auth_data_secure", required=("target_user_id",), mutates=False),
		Procedure("fn_get_membership_summary_v2", required=("target_user_id",), mutates=False),
		Procedure("rpc_dashboard_health", mutates=False),
	)
}


def procedure(name: str) -> Procedure:
	try:
		return PROCEDURES[name]
	except KeyError:
		raise BackendError(ErrorKind.VALIDATION, f"unknown procedure: {name}") from None


@dataclass
class GatewayResult(Generic[T]):
	"""Outcome of one intent, ready for a success/failure UI state."""

	ok: bool
	data: Optional[T] = None
	error: Optional[BackendError] = field(default=None)

	def unwrap(self) -> T:
		if not self.ok:
			assert self.error is not None
			raise self.error
		return self.data  # type: ignore[return-value]


class ProcedureGateway:
	def __init__(self, client: BackendClient, *, retry_policy: Optional[RetryPolicy] = None) -> None:
		self.client = client
		self.retry_policy = retry_policy or RetryPolicy.from_settings()

	def for_client(self, client: BackendClient) -> "ProcedureGateway":
		return ProcedureGateway(client, retry_policy=self.retry_policy)

	async def _invoke(self, proc: Procedure, params: Mapping[str, Any]) -> Any:
		start = time.perf_counter()
		try:
			with log_context(procedure=proc.name):
				data = await self.client.rpc(proc.name, params)
		except BackendError as exc:
			obs_metrics.RPC_CALLS.labels(procedure=proc.name, outcome=exc.kind.value).inc()
			raise
		finally:
			obs_metrics.RPC_LATENCY.labels(procedure=proc.name).observe(time.perf_counter() - start)
		obs_metrics.RPC_CALLS.labels(procedure=proc.name, outcome="ok").inc()
		return data

	async def mutate(self, name: str, params: Optional[Mapping[str, Any]] = None) -> GatewayResult[Any]:
		"""Issue a state-changing procedure exactly once."""
		params = dict(params or {})
		try:
			proc = procedure(name)
			if not proc.mutates:
				raise BackendError(ErrorKind.VALIDATION, f"{name} is read-only; use fetch()")
			proc.check(params)
			data = await self._invoke(proc, params)
		except BackendError as exc:
			LOGGER.warning("procedure_failed", extra={"procedure": name, "kind": exc.kind.value, "detail": exc.detail})
			return GatewayResult(ok=False, error=exc)
		LOGGER.info("procedure_ok", extra={"procedure": name})
		return GatewayResult(ok=True, data=data)

	async def fetch(self, name: str, params: Optional[Mapping[str, Any]] = None, *, policy: Optional[RetryPolicy] = None) -> Any:
		"""Run a read-only procedure through the retry wrapper; raises on failure."""
		params = dict(params or {})
		proc = procedure(name)
		if proc.mutates:
			raise BackendError(ErrorKind.VALIDATION, f"{name} mutates state and cannot be retried; use mutate()")
		proc.check(params)
		return await retry_async(lambda: self._invoke(proc, params), policy or self.retry_policy)
