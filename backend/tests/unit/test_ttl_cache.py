import asyncio

import pytest

from panthers.infra.cache import CacheRegistry, TTLCache, scoped_key


class FakeClock:
	def __init__(self, now: float = 1000.0):
		self.now = now

	def __call__(self) -> float:
		return self.now


def test_entries_expire_after_ttl():
	clock = FakeClock()
	cache = TTLCache(default_ttl=300, clock=clock)
	cache.set("teams:all", ["a"])
	clock.now += 299
	assert cache.get("teams:all") == ["a"]
	clock.now += 2
	assert cache.get("teams:all") is None
	assert len(cache) == 0


def test_oldest_entry_is_evicted_at_capacity():
	cache = TTLCache(max_entries=2, clock=FakeClock())
	cache.set("a", 1)
	cache.set("b", 2)
	cache.set("a", 10)
	cache.set("c", 3)
	assert "b" not in cache
	assert cache.get("a") == 10
	assert cache.get("c") == 3


def test_invalidate_by_substring():
	cache = TTLCache(clock=FakeClock())
	cache.set("membership:u1:", 1)
	cache.set("membership:u2:", 2)
	cache.set("teams:{}", 3)
	assert cache.invalidate("membership:") == 2
	assert cache.get("teams:{}") == 3
	assert cache.invalidate() == 1


def test_scoped_keys_stay_reachable_by_substring_invalidation():
	cache = TTLCache(clock=FakeClock())
	cache.set(scoped_key("user:coach", "attendance:e1:"), ["roster"])
	cache.set(scoped_key("user:p2", "attendance:e1:"), ["own row"])
	assert cache.get(scoped_key("user:p2", "attendance:e1:")) == ["own row"]
	assert cache.invalidate("attendance:e1:") == 2


@pytest.mark.asyncio
async def test_get_or_load_runs_one_loader_per_key():
	cache = TTLCache(clock=FakeClock())
	calls = 0

	async def loader():
		nonlocal calls
		calls += 1
		await asyncio.sleep(0)
		return "value"

	results = await asyncio.gather(*(cache.get_or_load("k", loader) for _ in range(5)))
	assert results == ["value"] * 5
	assert calls == 1
	assert cache._inflight == {}


@pytest.mark.asyncio
async def test_loader_bookkeeping_is_released_after_failure():
	cache = TTLCache(clock=FakeClock())

	async def failing():
		raise RuntimeError("backend down")

	for key in ("a", "b", "c"):
		with pytest.raises(RuntimeError):
			await cache.get_or_load(key, failing)
	assert cache._inflight == {}
	assert await cache.get_or_load("a", lambda: asyncio.sleep(0, result="ok")) == "ok"
	assert cache._inflight == {}


def test_registry_uses_configured_lifetimes():
	clock = FakeClock()
	registry = CacheRegistry(clock=clock)
	registry.roles.set("access:u1:", "x")
	registry.teams.set("teams:{}", "y")
	clock.now += 31
	assert registry.roles.get("access:u1:") is None
	assert registry.teams.get("teams:{}") == "y"
	registry.invalidate_all()
	assert len(registry.teams) == 0
