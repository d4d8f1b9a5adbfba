import asyncio

import pytest

from panthers.infra.feed import ChangeEvent, ChangeFilter, MemoryChangeFeed, RedisChangeFeed
from panthers.sync.live import SKIP, LiveQuery


def _event(table="attendance", event_type="UPDATE", **record):
	return ChangeEvent(table=table, type=event_type, record=record or None)


def test_from_payload_accepts_webhook_and_realtime_shapes():
	webhook = ChangeEvent.from_payload({"type": "insert", "table": "teams", "record": {"id": "t1"}})
	assert webhook.type == "INSERT"
	realtime = ChangeEvent.from_payload({"eventType": "DELETE", "table": "teams", "old": {"id": "t1"}})
	assert realtime.old_record == {"id": "t1"}
	with pytest.raises(ValueError):
		ChangeEvent.from_payload({"type": "TRUNCATE", "table": "teams"})
	with pytest.raises(ValueError):
		ChangeEvent.from_payload({"type": "INSERT"})


def test_filter_matches_column_on_old_row_for_deletes():
	change_filter = ChangeFilter("attendance", column="event_id", value="e1")
	assert change_filter.matches(_event(event_id="e1"))
	assert not change_filter.matches(_event(event_id="e2"))
	deleted = ChangeEvent(table="attendance", type="DELETE", old_record={"event_id": "e1"})
	assert change_filter.matches(deleted)
	assert not ChangeFilter("attendance", event="INSERT").matches(_event(event_id="e1"))


@pytest.mark.asyncio
async def test_memory_feed_delivers_to_matching_subscribers():
	feed = MemoryChangeFeed()
	received = []
	sub = await feed.subscribe(ChangeFilter("teams"), received.append)
	await feed.subscribe(ChangeFilter("players"), lambda event: None)
	assert await feed.publish(_event(table="teams", id="t1")) == 1
	assert [event.table for event in received] == ["teams"]
	await sub.close()
	assert feed.subscriber_count == 1


@pytest.mark.asyncio
async def test_callback_failure_does_not_break_delivery():
	feed = MemoryChangeFeed()
	received = []

	def broken(event):
		raise RuntimeError("boom")

	await feed.subscribe(ChangeFilter("teams"), broken)
	await feed.subscribe(ChangeFilter("teams"), received.append)
	await feed.publish(_event(table="teams"))
	assert len(received) == 1


@pytest.mark.asyncio
async def test_live_query_refetches_on_every_notification():
	feed = MemoryChangeFeed()
	calls = 0

	async def fetch():
		nonlocal calls
		calls += 1
		return calls

	async with LiveQuery(fetch, feed, [ChangeFilter("attendance"), ChangeFilter("attendance")]) as query:
		assert query.data == 1
		assert query.subscription_count == 1
		await feed.publish(_event())
		await feed.publish(_event())
		assert query.data == 3
	assert query.closed
	assert feed.subscriber_count == 0
	await feed.publish(_event())
	assert calls == 3


@pytest.mark.asyncio
async def test_older_response_never_overwrites_newer_one():
	feed = MemoryChangeFeed()
	gates = {1: asyncio.Event(), 2: asyncio.Event()}
	counter = 0

	async def fetch():
		nonlocal counter
		counter += 1
		seq = counter
		await gates[seq].wait()
		return f"v{seq}"

	query = LiveQuery(fetch, feed, [ChangeFilter("teams")])
	slow = asyncio.create_task(query.refresh())
	fast = asyncio.create_task(query.refresh())
	await asyncio.sleep(0)
	gates[2].set()
	await fast
	gates[1].set()
	await slow
	assert query.data == "v2"
	assert query.version == 2


@pytest.mark.asyncio
async def test_debounced_notifications_collapse_into_one_refresh():
	feed = MemoryChangeFeed()
	calls = 0

	async def fetch():
		nonlocal calls
		calls += 1
		return calls

	query = LiveQuery(fetch, feed, [ChangeFilter("teams")], debounce=0.01)
	await query.start()
	for _ in range(5):
		await feed.publish(_event(table="teams"))
	await query.wait_idle()
	assert calls == 2
	await query.close()


@pytest.mark.asyncio
async def test_subscribe_failure_degrades_to_fetch_once():
	class BrokenFeed(MemoryChangeFeed):
		async def subscribe(self, change_filter, callback):
			raise ConnectionError("feed unavailable")

	async def fetch():
		return "rows"

	query = LiveQuery(fetch, BrokenFeed(), [ChangeFilter("teams")])
	await query.start()
	assert query.data == "rows"
	assert query.subscription_count == 0


@pytest.mark.asyncio
async def test_fetch_error_is_kept_with_previous_data():
	feed = MemoryChangeFeed()
	results = iter(["first"])

	async def fetch():
		try:
			return next(results)
		except StopIteration:
			raise RuntimeError("backend down") from None

	query = LiveQuery(fetch, feed, [ChangeFilter("teams")])
	await query.start()
	await feed.publish(_event(table="teams"))
	assert query.data == "first"
	assert isinstance(query.error, RuntimeError)
	await query.close()


@pytest.mark.asyncio
async def test_skipped_result_is_not_applied():
	feed = MemoryChangeFeed()
	results = iter(["first", SKIP])
	updates = []

	async def fetch():
		return next(results)

	query = LiveQuery(fetch, feed, [ChangeFilter("teams")], on_update=updates.append)
	await query.start()
	await feed.publish(_event(table="teams"))
	assert query.data == "first"
	assert query.version == 1
	assert updates == ["first"]
	await query.close()


@pytest.mark.asyncio
async def test_redis_feed_fans_out_through_pubsub(fake_redis):
	feed = RedisChangeFeed(fake_redis, prefix="test-changes:", poll_timeout=0.01)
	received = asyncio.Queue()
	sub = await feed.subscribe(ChangeFilter("teams"), received.put)
	try:
		await feed.publish(_event(table="teams", id="t1"))
		event = await asyncio.wait_for(received.get(), timeout=2)
		assert event.table == "teams"
		assert event.record == {"id": "t1"}
	finally:
		await sub.close()
	assert sub.closed
