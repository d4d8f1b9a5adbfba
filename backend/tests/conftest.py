import json
import sys
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from panthers.hub import Hub
from panthers.infra.backend import BackendClient
from panthers.infra.feed import MemoryChangeFeed
from panthers.infra.gateway import ProcedureGateway
from panthers.infra.retry import RetryPolicy
from panthers.main import create_app
from panthers.settings import settings


class FakeBackend:
	"""Routes requests made through ``httpx.MockTransport`` to canned responses."""

	def __init__(self) -> None:
		self.routes: dict[tuple[str, str], object] = {}
		self.requests: list[httpx.Request] = []

	def on(self, method: str, path: str, payload=None, *, status: int = 200, handler=None) -> None:
		if handler is None:
			def handler(_request, payload=payload, status=status):
				return httpx.Response(status, json=payload)
		self.routes[(method.upper(), path)] = handler

	def rpc(self, name: str, payload=None, *, status: int = 200, handler=None) -> None:
		self.on("POST", f"/rest/v1/rpc/{name}", payload, status=status, handler=handler)

	def table(self, name: str, rows=None, *, method: str = "GET", status: int = 200, handler=None) -> None:
		self.on(method, f"/rest/v1/{name}", rows if rows is not None else [], status=status, handler=handler)

	def function(self, name: str, payload=None, *, status: int = 200, handler=None) -> None:
		self.on("POST", f"/functions/v1/{name}", payload, status=status, handler=handler)

	def calls(self, method: str, path: str) -> list[httpx.Request]:
		return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

	def rpc_calls(self, name: str) -> list[httpx.Request]:
		return self.calls("POST", f"/rest/v1/rpc/{name}")

	@staticmethod
	def body(request: httpx.Request):
		return json.loads(request.content or b"null")

	def __call__(self, request: httpx.Request) -> httpx.Response:
		self.requests.append(request)
		handler = self.routes.get((request.method, request.url.path))
		if handler is None:
			return httpx.Response(404, json={"message": "relation not found", "code": "PGRST205"})
		return handler(request)


def auth_payload(*roles: str, status: str = "approved") -> dict:
	return {
		"profile": {"approval_status": status},
		"roles": list(roles),
		"primaryRole": roles[0] if roles else None,
		"teamIds": ["team-1"],
		"approvalStatus": status,
	}


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from panthers.infra.redis import redis_client, set_redis_client
	original = redis_client._client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Dev mode lets API tests authenticate with a bare X-User-Id header."""
	original_env = settings.environment
	original_secret = settings.change_feed_webhook_secret
	original_token = settings.obs_admin_token
	settings.environment = "dev"
	settings.change_feed_webhook_secret = None
	settings.obs_admin_token = None
	try:
		yield
	finally:
		settings.environment = original_env
		settings.change_feed_webhook_secret = original_secret
		settings.obs_admin_token = original_token


@pytest.fixture
def backend():
	return FakeBackend()


@pytest.fixture
def fast_retry():
	return RetryPolicy(max_retries=2, base_delay=0.0)


@pytest_asyncio.fixture
async def backend_client(backend):
	http = httpx.AsyncClient(base_url="http://backend.test", transport=httpx.MockTransport(backend))
	client = BackendClient(http, api_key="anon-key")
	try:
		yield client
	finally:
		await client.aclose()


@pytest.fixture
def gateway(backend_client, fast_retry):
	return ProcedureGateway(backend_client, retry_policy=fast_retry)


@pytest_asyncio.fixture
async def hub(backend_client, fast_retry):
	instance = Hub(client=backend_client, feed=MemoryChangeFeed(), retry_policy=fast_retry)
	await instance.start()
	try:
		yield instance
	finally:
		await instance.access_watcher.close()
		await instance.invalidator.close()
		await instance.teams.close()
		await instance.functions.drain()


@pytest.fixture
def grant(backend):
	"""Make every user resolve to the given roles and approval status."""
	def _grant(*roles: str, status: str = "approved") -> None:
		backend.rpc("get_user_auth_data_secure", auth_payload(*roles, status=status))
	return _grant


@pytest_asyncio.fixture
async def api_client(hub):
	app = create_app()
	app.state.hub = hub
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
