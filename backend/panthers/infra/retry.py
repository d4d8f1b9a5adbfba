"""Retry-with-backoff for read-only backend calls.

Delays grow as ``base_delay * multiplier ** attempt`` with no jitter, so many
clients failing together will also retry together.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from panthers.infra.errors import is_retryable
from panthers.obs import metrics as obs_metrics
from panthers.settings import settings

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

RetryCallback = Callable[[int, int, BaseException], Any]
Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryPolicy:
	max_retries: int = 3
	base_delay: float = 1.0
	multiplier: float = 2.0
	should_retry: Callable[[BaseException], bool] = field(default=is_retryable)

	@classmethod
	def from_settings(cls) -> "RetryPolicy":
		return cls(
			max_retries=settings.retry_max_retries,
			base_delay=settings.retry_base_delay_seconds,
			multiplier=settings.retry_backoff_multiplier,
		)

	def delay_for(self, attempt: int) -> float:
		return self.base_delay * (self.multiplier ** attempt)


async def retry_async(
	fn: Callable[[], Awaitable[T]],
	policy: Optional[RetryPolicy] = None,
	*,
	on_retry: Optional[RetryCallback] = None,
	sleep: Sleep = asyncio.sleep,
) -> T:
	"""Run ``fn`` until it succeeds, fails permanently, or retries run out.

	Makes at most ``policy.max_retries + 1`` attempts. ``on_retry`` is called
	with ``(retry_number, max_retries, error)`` before each wait.
	"""
	policy = policy or RetryPolicy()
	attempt = 0
	while True:
		try:
			return await fn()
		except asyncio.CancelledError:
			raise
		except Exception as exc:
			if attempt >= policy.max_retries or not policy.should_retry(exc):
				if attempt:
					obs_metrics.RETRY_EXHAUSTED.inc()
				raise
			delay = policy.delay_for(attempt)
			attempt += 1
			obs_metrics.RETRY_ATTEMPTS.inc()
			LOGGER.info(
				"retry_scheduled",
				extra={"attempt": attempt, "max_retries": policy.max_retries, "delay_s": delay, "error": repr(exc)},
			)
			if on_retry is not None:
				result = on_retry(attempt, policy.max_retries, exc)
				if asyncio.iscoroutine(result):
					await result
			await sleep(delay)


class RetryableQuery(Generic[T]):
	"""Stateful wrapper a view can poll: data, error, and retry progress.

	A new :meth:`refetch` supersedes the request in flight. Superseded or
	cancelled requests never touch ``data``/``error`` and never report errors.
	"""

	def __init__(
		self,
		fn: Callable[[], Awaitable[T]],
		policy: Optional[RetryPolicy] = None,
		*,
		stale_after: float = 300.0,
		on_error: Optional[Callable[[BaseException], Any]] = None,
		sleep: Sleep = asyncio.sleep,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		self._fn = fn
		self._policy = policy or RetryPolicy()
		self._stale_after = stale_after
		self._on_error = on_error
		self._sleep = sleep
		self._clock = clock
		self._task: Optional[asyncio.Task] = None
		self._generation = 0
		self.data: Optional[T] = None
		self.error: Optional[BaseException] = None
		self.loading = False
		self.retry_count = 0
		self.last_fetch: Optional[float] = None

	@property
	def is_stale(self) -> bool:
		if self.last_fetch is None:
			return True
		return self._clock() - self.last_fetch > self._stale_after

	@property
	def retry_label(self) -> Optional[str]:
		if not self.retry_count or not self.loading:
			return None
		return f"retrying ({self.retry_count}/{self._policy.max_retries})"

	def _on_retry(self, generation: int) -> RetryCallback:
		def _record(attempt: int, _max: int, _error: BaseException) -> None:
			if generation == self._generation:
				self.retry_count = attempt
		return _record

	async def _run(self, generation: int) -> None:
		try:
			result = await retry_async(
				self._fn,
				self._policy,
				on_retry=self._on_retry(generation),
				sleep=self._sleep,
			)
		except asyncio.CancelledError:
			raise
		except Exception as exc:
			if generation != self._generation:
				return
			self.error = exc
			self.loading = False
			if self._on_error is not None:
				self._on_error(exc)
			return
		if generation != self._generation:
			return
		self.data = result
		self.error = None
		self.retry_count = 0
		self.last_fetch = self._clock()
		self.loading = False

	def start(self) -> asyncio.Task:
		"""Launch a fetch in the background, superseding any in flight."""
		self.cancel()
		self._generation += 1
		self.loading = True
		self.error = None
		self.retry_count = 0
		self._task = asyncio.create_task(self._run(self._generation))
		return self._task

	async def refetch(self) -> Optional[T]:
		task = self.start()
		try:
			await task
		except asyncio.CancelledError:
			# Superseded by a newer refetch; only our own cancellation propagates.
			if self._task is task:
				raise
		return self.data

	def cancel(self) -> None:
		task = self._task
		self._task = None
		if task is not None and not task.done():
			self._generation += 1
			task.cancel()
			self.loading = False
