"""Process-wide collaborators built once at startup and shared through ``app.state``."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

import httpx

from panthers.domain.access.service import AccessWatcher
from panthers.domain.functions.client import FunctionsClient
from panthers.domain.teams.service import TeamDirectory
from panthers.infra.backend import BackendClient
from panthers.infra.cache import CacheRegistry
from panthers.infra.feed import ChangeFeed, MemoryChangeFeed, RedisChangeFeed
from panthers.infra.gateway import ProcedureGateway
from panthers.infra.redis import redis_client
from panthers.infra.retry import RetryPolicy
from panthers.settings import settings
from panthers.sync.invalidation import RequestCacheInvalidator

LOGGER = logging.getLogger(__name__)


def build_feed() -> ChangeFeed:
	if settings.change_feed_backend == "redis":
		return RedisChangeFeed(redis_client, prefix=settings.change_feed_channel_prefix)
	return MemoryChangeFeed()


@dataclass
class Hub:
	client: BackendClient
	feed: ChangeFeed
	caches: CacheRegistry = field(default_factory=CacheRegistry)
	retry_policy: RetryPolicy = field(default_factory=RetryPolicy.from_settings)
	service_client: Optional[BackendClient] = None
	functions: FunctionsClient = field(init=False)
	teams: TeamDirectory = field(init=False)
	access_watcher: AccessWatcher = field(init=False)
	invalidator: RequestCacheInvalidator = field(init=False)

	def __post_init__(self) -> None:
		self.functions = FunctionsClient(self.client)
		self.teams = TeamDirectory(self.client, self.caches.teams, retry_policy=self.retry_policy)
		self.access_watcher = AccessWatcher(self.caches.roles, self.feed)
		self.invalidator = RequestCacheInvalidator(self.caches.requests, self.feed)

	@classmethod
	def from_settings(cls, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> "Hub":
		client = BackendClient.from_settings(transport=transport)
		service_client = None
		if settings.backend_service_key:
			service_client = client.with_api_key(settings.backend_service_key)
		return cls(client=client, feed=build_feed(), service_client=service_client)

	def client_for(self, access_token: Optional[str], subject: Optional[str] = None) -> BackendClient:
		return self.client.with_token(access_token, subject=subject)

	def gateway_for(self, access_token: Optional[str], subject: Optional[str] = None) -> ProcedureGateway:
		return ProcedureGateway(self.client_for(access_token, subject), retry_policy=self.retry_policy)

	def service_gateway(self) -> Optional[ProcedureGateway]:
		if self.service_client is None:
			return None
		return ProcedureGateway(self.service_client, retry_policy=self.retry_policy)

	async def start(self) -> None:
		await self.teams.watch(self.feed)
		await self.access_watcher.start()
		await self.invalidator.start()

	async def close(self) -> None:
		await self.access_watcher.close()
		await self.invalidator.close()
		await self.teams.close()
		await self.functions.drain()
		await self.client.aclose()
		if isinstance(self.feed, RedisChangeFeed):
			await redis_client.close()
		LOGGER.info("hub_closed")
