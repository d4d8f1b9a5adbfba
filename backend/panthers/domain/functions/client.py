"""Calls to the backend's hosted serverless functions.

Every call can be awaited for its result, or handed to :meth:`spawn` as a
fire-and-forget task whose failure is logged and otherwise ignored.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Mapping, Optional

from panthers.infra.backend import BackendClient
from panthers.infra.errors import BackendError

LOGGER = logging.getLogger(__name__)


class FunctionsClient:
	def __init__(self, client: BackendClient) -> None:
		self.client = client
		self._tasks: set[asyncio.Task] = set()

	def with_client(self, client: BackendClient) -> "FunctionsClient":
		clone = FunctionsClient(client)
		clone._tasks = self._tasks
		return clone

	async def invoke(self, name: str, body: Optional[Mapping[str, Any]] = None) -> Any:
		try:
			return await self.client.invoke_function(name, body)
		except BackendError as exc:
			LOGGER.warning("function_failed", extra={"function": name, "kind": exc.kind.value, "detail": exc.detail})
			raise

	async def analyze_video_shot(self, player_id: str, video_data: str) -> Any:
		return await self.invoke("analyze-video-shot", {"playerId": player_id, "videoData": video_data})

	async def analyze_video_technique(
		self,
		video_url: str,
		*,
		player_id: Optional[str] = None,
		evaluation_id: Optional[str] = None,
	) -> Any:
		body: dict[str, Any] = {"videoUrl": video_url}
		if player_id:
			body["playerId"] = player_id
		if evaluation_id:
			body["evaluationId"] = evaluation_id
		return await self.invoke("analyze-video-technique", body)

	async def run_membership_maintenance(self) -> Any:
		return await self.invoke("membership-maintenance")

	async def send_health_alert(self, body: Mapping[str, Any]) -> Any:
		return await self.invoke("send-health-alert", body)

	async def send_notification(self, to: str, subject: str, message: str, *, kind: str = "alert") -> Any:
		return await self.invoke("send-notification", {"to": to, "subject": subject, "message": message, "type": kind})

	async def track(self, event_type: str, data: Mapping[str, Any]) -> Any:
		if event_type not in ("error", "performance"):
			raise ValueError(f"unsupported telemetry type: {event_type!r}")
		return await self.invoke("error-tracking", {"type": event_type, "data": dict(data)})

	def spawn(self, call: Awaitable[Any], *, name: str = "function-call") -> asyncio.Task:
		"""Run ``call`` in the background; the task is held until it finishes."""
		task = asyncio.ensure_future(call)
		self._tasks.add(task)
		task.add_done_callback(lambda done: self._finished(done, name))
		return task

	def _finished(self, task: asyncio.Task, name: str) -> None:
		self._tasks.discard(task)
		if task.cancelled():
			return
		exc = task.exception()
		if exc is not None:
			LOGGER.warning("background_function_failed", extra={"task": name, "error": repr(exc)})

	@property
	def pending(self) -> int:
		return len(self._tasks)

	async def drain(self) -> None:
		if self._tasks:
			await asyncio.gather(*list(self._tasks), return_exceptions=True)
