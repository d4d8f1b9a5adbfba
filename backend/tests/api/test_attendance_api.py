import pytest

HEADERS = {"X-User-Id": "coach-1"}


def _record(player, status):
	return {"event_id": "e1", "team_id": "t1", "player_id": player, "status": status}


@pytest.mark.asyncio
async def test_batch_save_reports_projected_credits(api_client, backend, grant):
	grant("coach")
	backend.rpc("rpc_save_attendance_batch", {"saved": 2})
	response = await api_client.post(
		"/attendance/batch",
		headers=HEADERS,
		json={
			"records": [_record("p1", "present"), _record("p2", "excused")],
			"previous": {"p2:e1": "present"},
		},
	)
	assert response.status_code == 200
	body = response.json()
	assert body["saved"] == 2
	assert body["projected_deltas"] == {"p1:e1": -1, "p2:e1": 1}
	assert len(backend.rpc_calls("rpc_save_attendance_batch")) == 1


@pytest.mark.asyncio
async def test_players_cannot_mark_attendance(api_client, backend, grant):
	grant("player")
	response = await api_client.post(
		"/attendance/batch",
		headers=HEADERS,
		json={"records": [_record("p1", "present")]},
	)
	assert response.status_code == 403
	assert backend.rpc_calls("rpc_save_attendance_batch") == []


@pytest.mark.asyncio
async def test_unknown_status_is_a_validation_error(api_client, grant):
	grant("coach")
	response = await api_client.post(
		"/attendance/batch",
		headers=HEADERS,
		json={"records": [_record("p1", "sick")]},
	)
	assert response.status_code == 422
	assert response.json()["detail"] == "validation_error"


@pytest.mark.asyncio
async def test_player_reads_own_history_only(api_client, backend, grant):
	grant("player")
	backend.table("attendance", [_record("coach-1", "present")])
	own = await api_client.get("/attendance/players/coach-1", headers=HEADERS)
	assert own.status_code == 200
	assert len(own.json()["items"]) == 1
	other = await api_client.get("/attendance/players/p2", headers=HEADERS)
	assert other.status_code == 403


@pytest.mark.asyncio
async def test_event_roster_is_not_shared_between_users(api_client, backend, grant):
	grant("coach")
	backend.table("attendance", [_record("p1", "present")])
	first = await api_client.get("/attendance/events/e1", headers=HEADERS)
	again = await api_client.get("/attendance/events/e1", headers=HEADERS)
	other = await api_client.get("/attendance/events/e1", headers={"X-User-Id": "p2"})
	assert first.status_code == again.status_code == other.status_code == 200
	assert len(backend.calls("GET", "/rest/v1/attendance")) == 2
