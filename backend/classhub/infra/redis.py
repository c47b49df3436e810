"""Shared redis.asyncio client.

Modules import ``redis_client`` once; the connection behind it is created on first
use from ``settings.redis_url`` and can be replaced at runtime (fakeredis in tests).
"""

from __future__ import annotations

from typing import Optional

import redis.asyncio as redis

from classhub.settings import settings


class RedisProxy:
	"""Forwards attribute access to the current client, creating it lazily."""

	def __init__(self, url: str) -> None:
		self._url = url
		self._client: Optional[redis.Redis] = None

	@property
	def client(self) -> redis.Redis:
		if self._client is None:
			self._client = redis.from_url(self._url, decode_responses=True)
		return self._client

	def set_client(self, client: Optional[redis.Redis]) -> None:
		self._client = client

	async def close(self) -> None:
		client, self._client = self._client, None
		if client is not None:
			await client.aclose()

	def __getattr__(self, item: str):
		return getattr(self.client, item)


redis_client = RedisProxy(settings.redis_url)


def set_redis_client(client: Optional[redis.Redis]) -> None:
	redis_client.set_client(client)


async def close_redis() -> None:
	await redis_client.close()
