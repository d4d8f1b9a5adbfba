import httpx
import pytest

from panthers.infra.errors import BackendError, ErrorKind


@pytest.mark.asyncio
async def test_mutation_is_sent_exactly_once_even_on_network_failure(backend, gateway):
	backend.rpc("rpc_save_player_grades", {"message": "upstream"}, status=503)
	result = await gateway.mutate(
		"rpc_save_player_grades",
		{"p_event_id": "e1", "p_player_id": "p1", "p_items": []},
	)
	assert not result.ok
	assert result.error.kind is ErrorKind.NETWORK
	assert len(backend.rpc_calls("rpc_save_player_grades")) == 1


@pytest.mark.asyncio
async def test_missing_arguments_fail_without_a_round_trip(backend, gateway):
	result = await gateway.mutate("rpc_assign_membership_v2", {"p_user_id": "u1"})
	assert not result.ok
	assert result.error.kind is ErrorKind.VALIDATION
	assert "p_membership_type_id" in result.error.detail
	assert backend.requests == []


@pytest.mark.asyncio
async def test_unknown_and_unexpected_arguments_are_rejected(gateway):
	unknown = await gateway.mutate("rpc_drop_everything")
	assert unknown.error.kind is ErrorKind.VALIDATION
	extra = await gateway.mutate("rpc_save_attendance_batch", {"p_records": [], "p_force": True})
	assert "p_force" in extra.error.detail


@pytest.mark.asyncio
async def test_unwrap_raises_the_typed_error(backend, gateway):
	backend.rpc("rpc_approve_user_secure", {"message": "permission denied", "code": "42501"}, status=403)
	result = await gateway.mutate("rpc_approve_user_secure", {"target_user_id": "u2", "approval_decision": "approved"})
	with pytest.raises(BackendError) as excinfo:
		result.unwrap()
	assert excinfo.value.kind is ErrorKind.PERMISSION


@pytest.mark.asyncio
async def test_fetch_retries_read_only_procedures(backend, gateway):
	responses = iter([httpx.Response(503, json={"message": "busy"}), httpx.Response(200, json={"status": "ok"})])
	backend.rpc("rpc_dashboard_health", handler=lambda request: next(responses))
	assert await gateway.fetch("rpc_dashboard_health") == {"status": "ok"}
	assert len(backend.rpc_calls("rpc_dashboard_health")) == 2


@pytest.mark.asyncio
async def test_fetch_refuses_mutating_procedures(gateway):
	with pytest.raises(BackendError) as excinfo:
		await gateway.fetch("rpc_save_attendance_batch", {"p_records": []})
	assert excinfo.value.kind is ErrorKind.VALIDATION
	result = await gateway.mutate("rpc_dashboard_health")
	assert not result.ok
