import asyncio

import pytest

from panthers.infra.errors import BackendError, ErrorKind
from panthers.infra.retry import RetryableQuery, RetryPolicy, retry_async


class Flaky:
	def __init__(self, failures: int, kind: ErrorKind = ErrorKind.NETWORK, result="ok"):
		self.failures = failures
		self.kind = kind
		self.result = result
		self.calls = 0

	async def __call__(self):
		self.calls += 1
		if self.calls <= self.failures:
			raise BackendError(self.kind, f"failure {self.calls}")
		return self.result


class SleepRecorder:
	def __init__(self):
		self.delays: list[float] = []

	async def __call__(self, delay: float) -> None:
		self.delays.append(delay)


def test_delays_grow_exponentially_without_jitter():
	policy = RetryPolicy(max_retries=3, base_delay=1.0, multiplier=2.0)
	assert [policy.delay_for(i) for i in range(3)] == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_retries_transient_failures_then_succeeds():
	fn = Flaky(failures=2)
	sleep = SleepRecorder()
	seen = []
	result = await retry_async(
		fn,
		RetryPolicy(max_retries=3, base_delay=1.0),
		on_retry=lambda attempt, limit, error: seen.append((attempt, limit)),
		sleep=sleep,
	)
	assert result == "ok"
	assert fn.calls == 3
	assert sleep.delays == [1.0, 2.0]
	assert seen == [(1, 3), (2, 3)]


@pytest.mark.asyncio
async def test_gives_up_after_max_retries_plus_one_attempts():
	fn = Flaky(failures=10)
	sleep = SleepRecorder()
	with pytest.raises(BackendError):
		await retry_async(fn, RetryPolicy(max_retries=3, base_delay=1.0), sleep=sleep)
	assert fn.calls == 4
	assert sleep.delays == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_permission_errors_are_not_retried():
	fn = Flaky(failures=1, kind=ErrorKind.PERMISSION)
	sleep = SleepRecorder()
	with pytest.raises(BackendError):
		await retry_async(fn, RetryPolicy(max_retries=3), sleep=sleep)
	assert fn.calls == 1
	assert sleep.delays == []


@pytest.mark.asyncio
async def test_retryable_query_tracks_state():
	fn = Flaky(failures=1, result=[1, 2])
	query = RetryableQuery(fn, RetryPolicy(max_retries=2, base_delay=0.0), sleep=SleepRecorder())
	assert query.is_stale
	data = await query.refetch()
	assert data == [1, 2]
	assert query.error is None
	assert query.retry_count == 0
	assert not query.loading
	assert not query.is_stale


@pytest.mark.asyncio
async def test_retryable_query_reports_final_error_once():
	errors = []
	query = RetryableQuery(
		Flaky(failures=10),
		RetryPolicy(max_retries=1, base_delay=0.0),
		on_error=errors.append,
		sleep=SleepRecorder(),
	)
	await query.refetch()
	assert isinstance(query.error, BackendError)
	assert len(errors) == 1
	assert query.data is None


@pytest.mark.asyncio
async def test_superseded_request_never_writes_results():
	release = asyncio.Event()
	values = iter(["old", "new"])

	async def fetch():
		value = next(values)
		if value == "old":
			await release.wait()
		return value

	query = RetryableQuery(fetch, RetryPolicy(max_retries=0))
	first = query.start()
	await asyncio.sleep(0)
	await query.refetch()
	release.set()
	await asyncio.gather(first, return_exceptions=True)
	assert query.data == "new"
