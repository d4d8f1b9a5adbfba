import json

import pytest

HEADERS = {"X-User-Id": "p1"}


def _event(event_id, teams=("t1",)):
	return {
		"id": event_id,
		"title": "Practice",
		"event_type": "practice",
		"start_time": "2030-01-05T17:00:00+00:00",
		"team_ids": list(teams),
		"status": "active",
	}


def _sse_events(text):
	events = []
	for block in text.strip().split("\n\n"):
		fields = dict(line.split(": ", 1) for line in block.splitlines() if not line.startswith(":"))
		if fields:
			events.append((fields["event"], json.loads(fields["data"])))
	return events


@pytest.mark.asyncio
async def test_schedule_listing_filters_by_team(api_client, backend, grant):
	grant("player")
	backend.table("schedules", [_event("s1")])
	response = await api_client.get("/schedules", headers=HEADERS, params={"team_id": "t1", "event_type": "practice"})
	assert response.status_code == 200
	assert [item["id"] for item in response.json()["items"]] == ["s1"]
	params = backend.calls("GET", "/rest/v1/schedules")[0].url.params
	assert params["team_ids"] == "cs.{t1}"
	assert params["event_type"] == "eq.practice"


@pytest.mark.asyncio
async def test_listing_is_refetched_after_schedules_change(api_client, backend, grant):
	grant("player")
	backend.table("schedules", [_event("s1")])
	await api_client.get("/schedules", headers=HEADERS)
	await api_client.get("/schedules", headers=HEADERS)
	assert len(backend.calls("GET", "/rest/v1/schedules")) == 1
	await api_client.post("/hooks/changes", json={"type": "UPDATE", "table": "schedules", "record": {"id": "s1"}})
	await api_client.get("/schedules", headers=HEADERS)
	assert len(backend.calls("GET", "/rest/v1/schedules")) == 2


@pytest.mark.asyncio
async def test_players_read_only_their_own_schedule(api_client, backend, grant):
	grant("player")
	backend.table("player_teams", [{"team_id": "t1"}])
	backend.table("schedules", [_event("s1")])
	own = await api_client.get("/schedules/players/p1", headers=HEADERS)
	assert own.status_code == 200
	assert [item["id"] for item in own.json()["items"]] == ["s1"]
	other = await api_client.get("/schedules/players/p2", headers=HEADERS)
	assert other.status_code == 403


@pytest.mark.asyncio
async def test_coaches_read_any_players_schedule(api_client, backend, grant):
	grant("coach")
	backend.table("player_teams", [])
	response = await api_client.get("/schedules/players/p2", headers={"X-User-Id": "coach-1"})
	assert response.status_code == 200
	assert response.json() == {"items": []}


@pytest.mark.asyncio
async def test_stream_sends_the_current_schedule(api_client, backend, grant, hub):
	grant("player")
	backend.table("schedules", [_event("s1")])
	subscribers = hub.feed.subscriber_count
	response = await api_client.get("/schedules/stream", headers=HEADERS, params={"team_id": "t1", "max_updates": 1})
	assert response.status_code == 200
	assert response.headers["content-type"].startswith("text/event-stream")
	events = _sse_events(response.text)
	assert [kind for kind, _ in events] == ["schedule"]
	assert [(item["id"], item["team_ids"]) for item in events[0][1]["items"]] == [("s1", ["t1"])]
	assert hub.feed.subscriber_count == subscribers


@pytest.mark.asyncio
async def test_stream_reports_a_failed_fetch(api_client, backend, grant):
	grant("player")
	backend.table("schedules", {"message": "permission denied", "code": "42501"}, status=403)
	response = await api_client.get("/schedules/stream", headers=HEADERS, params={"max_updates": 1})
	assert response.status_code == 200
	kind, payload = _sse_events(response.text)[0]
	assert kind == "error"
	assert payload["kind"] == "permission"
