import pytest

from panthers.domain.teams.service import TeamDirectory, teams_cache_key
from panthers.infra.cache import TTLCache, scoped_key
from panthers.infra.feed import ChangeEvent, MemoryChangeFeed
from panthers.infra.retry import RetryPolicy


def _seed(backend):
	backend.table(
		"teams",
		[
			{"id": "t1", "name": "U14 Boys", "coach_id": "c1", "season": "2024"},
			{"id": "t2", "name": "U16 Girls", "coach_id": None, "season": "2024"},
		],
	)
	backend.table("profiles", [{"id": "c1", "full_name": "Coach Carter"}])
	backend.table("player_teams", [{"team_id": "t1"}, {"team_id": "t1"}, {"team_id": "t2"}])


@pytest.mark.asyncio
async def test_listing_joins_coach_names_and_counts(backend, backend_client):
	_seed(backend)
	directory = TeamDirectory(backend_client, TTLCache(), retry_policy=RetryPolicy(max_retries=0))
	teams = await directory.list({"season": "2024"})
	assert [(t.name, t.coach_name, t.player_count) for t in teams] == [
		("U14 Boys", "Coach Carter", 2),
		("U16 Girls", None, 1),
	]
	await directory.list({"season": "2024"})
	assert len(backend.calls("GET", "/rest/v1/teams")) == 1


@pytest.mark.asyncio
async def test_decoration_failures_leave_fields_blank(backend, backend_client):
	_seed(backend)
	backend.table("profiles", {"message": "permission denied", "code": "42501"}, status=403)
	directory = TeamDirectory(backend_client, TTLCache(), retry_policy=RetryPolicy(max_retries=0))
	teams = await directory.list()
	assert teams[0].coach_name is None
	assert teams[0].player_count == 2


@pytest.mark.asyncio
async def test_roster_change_drops_cached_listings(backend, backend_client):
	_seed(backend)
	cache = TTLCache()
	feed = MemoryChangeFeed()
	directory = TeamDirectory(backend_client, cache, retry_policy=RetryPolicy(max_retries=0))
	await directory.watch(feed)
	await directory.list()
	assert scoped_key(backend_client.cache_scope, teams_cache_key()) in cache
	await feed.publish(ChangeEvent(table="player_teams", type="INSERT", record={"team_id": "t1"}))
	assert scoped_key(backend_client.cache_scope, teams_cache_key()) not in cache
	await directory.close()
	assert feed.subscriber_count == 0
