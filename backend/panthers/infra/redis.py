"""Shared Redis handle for the change feed.

``redis_client`` is a proxy bound at import time; the client behind it is built
from ``REDIS_URL`` on first use and can be replaced (fakeredis in tests).
"""

from __future__ import annotations

from typing import Optional

import redis.asyncio as redis

from panthers.settings import settings


class RedisProxy:
	def __init__(self, client: Optional[redis.Redis] = None) -> None:
		self._client: Optional[redis.Redis] = client

	@property
	def client(self) -> redis.Redis:
		if self._client is None:
			self._client = redis.from_url(settings.redis_url, decode_responses=True)
		return self._client

	def set_client(self, client: Optional[redis.Redis]) -> None:
		self._client = client

	async def close(self) -> None:
		if self._client is not None:
			await self._client.aclose()
			self._client = None

	def __getattr__(self, item):
		return getattr(self.client, item)


redis_client = RedisProxy()


def set_redis_client(client: Optional[redis.Redis]) -> None:
	redis_client.set_client(client)
