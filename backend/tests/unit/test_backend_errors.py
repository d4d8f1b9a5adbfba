import httpx
import pytest

from panthers.infra import errors
from panthers.infra.backend import Op, build_params, encode_filter
from panthers.infra.errors import BackendError, ErrorKind, classify, describe, is_retryable


def test_classify_prefers_code_over_status_and_message():
	assert classify(status=400, code="42501", message="bad input") is ErrorKind.PERMISSION
	assert classify(status=500, code="PGRST116") is ErrorKind.NOT_FOUND
	assert classify(status=500, code="23505") is ErrorKind.VALIDATION


def test_classify_falls_back_to_status_then_message():
	assert classify(status=401) is ErrorKind.PERMISSION
	assert classify(status=503) is ErrorKind.NETWORK
	assert classify(message="Failed to fetch") is ErrorKind.NETWORK
	assert classify(message="new row violates row-level security policy") is ErrorKind.PERMISSION
	assert classify(message="boom") is ErrorKind.UNKNOWN


def test_from_response_keeps_code_and_hint():
	response = httpx.Response(
		409,
		json={"message": "duplicate key", "code": "23505", "hint": "already saved"},
		request=httpx.Request("POST", "http://backend.test/rest/v1/rpc/x"),
	)
	error = errors.from_response(response)
	assert error.kind is ErrorKind.VALIDATION
	assert error.code == "23505"
	assert error.hint == "already saved"
	assert error.status == 409


def test_describe_passes_validation_detail_through():
	presentation = describe(BackendError(ErrorKind.VALIDATION, "start_date is required"))
	assert presentation.message == "start_date is required"
	assert presentation.display == "toast"
	assert describe(RuntimeError("x")).kind is ErrorKind.UNKNOWN
	assert describe(BackendError(ErrorKind.PERMISSION, "nope")).display == "blocking"


def test_only_transient_errors_are_retryable():
	assert is_retryable(BackendError(ErrorKind.NETWORK, "down"))
	assert is_retryable(BackendError(ErrorKind.UNKNOWN, "?"))
	assert not is_retryable(BackendError(ErrorKind.PERMISSION, "no"))
	assert not is_retryable(BackendError(ErrorKind.VALIDATION, "bad"))
	assert not is_retryable(ValueError("x"))


def test_encode_filter_operators():
	assert encode_filter("abc") == "eq.abc"
	assert encode_filter(True) == "eq.true"
	assert encode_filter(None) == "is.null"
	assert encode_filter(["a", "b"]) == "in.(a,b)"
	assert encode_filter(Op("lt", "2024-01-01")) == "lt.2024-01-01"
	assert encode_filter(Op("in", ["a", "b"])) == "in.(a,b)"


def test_operator_shaped_strings_are_compared_for_equality():
	assert encode_filter("in.(m1,m2,m3)") == "eq.in.(m1,m2,m3)"
	assert encode_filter("neq.u1") == "eq.neq.u1"
	assert encode_filter("not.is.null") == "eq.not.is.null"


def test_in_list_members_with_reserved_characters_are_quoted():
	assert encode_filter(["a,b", "c"]) == 'in.("a,b",c)'
	assert encode_filter(["say \"hi\""]) == 'in.("say \\"hi\\"")'
	assert encode_filter(["2024-01-01T10:00:00"]) == 'in.("2024-01-01T10:00:00")'


def test_array_operators_and_repeated_columns():
	assert encode_filter(Op("cs", ["t1"])) == "cs.{t1}"
	assert encode_filter(Op("ov", ["t1", "t 2"])) == 'ov.{t1,"t 2"}'
	params = build_params(filters={"start_time": [Op("gte", "2024-05-01"), Op("lte", "2024-05-31")]})
	assert params == [("select", "*"), ("start_time", "gte.2024-05-01"), ("start_time", "lte.2024-05-31")]


def test_unknown_operator_is_rejected():
	with pytest.raises(ValueError):
		Op("not", "x")


def test_build_params_orders_select_first():
	params = build_params(columns="id", filters={"team_id": "t1"}, order="name", limit=5)
	assert params == [("select", "id"), ("team_id", "eq.t1"), ("order", "name"), ("limit", "5")]


@pytest.mark.asyncio
async def test_client_sends_token_and_maps_errors(backend, backend_client):
	backend.table("teams", {"message": "permission denied for table teams", "code": "42501"}, status=403)
	scoped = backend_client.with_token("user-jwt")
	with pytest.raises(BackendError) as excinfo:
		await scoped.select("teams")
	assert excinfo.value.kind is ErrorKind.PERMISSION
	request = backend.calls("GET", "/rest/v1/teams")[0]
	assert request.headers["Authorization"] == "Bearer user-jwt"
	assert request.headers["apikey"] == "anon-key"


@pytest.mark.asyncio
async def test_cache_scope_follows_the_reader(backend_client):
	assert backend_client.with_token("jwt-a", subject="u1").cache_scope == "user:u1"
	assert backend_client.with_token("jwt-a").cache_scope != backend_client.with_token("jwt-b").cache_scope
	assert backend_client.with_api_key("service-key").cache_scope != backend_client.cache_scope
	assert backend_client.with_token(None).cache_scope == backend_client.cache_scope


@pytest.mark.asyncio
async def test_transport_failure_is_network_error(backend, backend_client):
	def _refuse(request):
		raise httpx.ConnectError("connection refused", request=request)

	backend.table("teams", handler=_refuse)
	with pytest.raises(BackendError) as excinfo:
		await backend_client.select("teams")
	assert excinfo.value.kind is ErrorKind.NETWORK


@pytest.mark.asyncio
async def test_single_select_without_rows_is_not_found(backend, backend_client):
	backend.table("messages", [])
	with pytest.raises(BackendError) as excinfo:
		await backend_client.select("messages", filters={"id": "m1"}, single=True)
	assert excinfo.value.kind is ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_update_requires_filters(backend_client):
	with pytest.raises(BackendError) as excinfo:
		await backend_client.update("messages", {"content": "x"}, filters={})
	assert excinfo.value.kind is ErrorKind.VALIDATION
