import pytest

from panthers.domain.membership import maintenance

HEADERS = {"X-User-Id": "admin-1"}


@pytest.mark.asyncio
async def test_summary_for_self(api_client, backend, grant):
	grant("player")
	backend.rpc(
		"fn_get_membership_summary_v2",
		{"membership_id": "m1", "user_id": "admin-1", "allocation_type": "CLASS_COUNT", "allocated_classes": 10, "used_classes": 10},
	)
	response = await api_client.get("/memberships/admin-1/summary", headers=HEADERS)
	assert response.status_code == 200
	membership = response.json()["membership"]
	assert membership["remaining_classes"] == 0
	assert membership["is_exhausted"] is True


@pytest.mark.asyncio
async def test_assign_requires_manager(api_client, backend, grant):
	grant("coach")
	response = await api_client.post(
		"/memberships/assign",
		headers=HEADERS,
		json={"user_id": "u2", "membership_type_id": "type-1", "start_date": "2024-05-01"},
	)
	assert response.status_code == 403


@pytest.mark.asyncio
async def test_assign_returns_membership_id(api_client, backend, grant):
	grant("staff")
	backend.rpc("rpc_assign_membership_v2", "m-new")
	response = await api_client.post(
		"/memberships/assign",
		headers=HEADERS,
		json={"user_id": "u2", "membership_type_id": "type-1", "start_date": "2024-05-01", "notes": "paid cash"},
	)
	assert response.status_code == 200
	assert response.json() == {"ok": True, "membership_id": "m-new"}


@pytest.mark.asyncio
async def test_maintenance_defers_to_hosted_function_without_service_key(api_client, backend, grant):
	grant("super_admin")
	backend.function(maintenance.MAINTENANCE_FUNCTION, {"success": True, "alerts_sent": 0})
	response = await api_client.post("/memberships/maintenance", headers=HEADERS)
	assert response.status_code == 200
	assert response.json()["mode"] == "remote"
