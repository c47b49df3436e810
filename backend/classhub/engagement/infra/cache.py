"""Redis read-through cache keyed by (entity, user).

Every key has a companion generation counter. ``invalidate`` bumps it before
deleting the value, and a fill only writes when the generation it read before
calling the loader is still current. A load that started before a commit can
therefore never re-populate the value that commit's eviction removed.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Optional

from redis.exceptions import RedisError, WatchError

from classhub.infra.locks import KeyedLockMap
from classhub.infra.redis import RedisProxy, redis_client
from classhub.obs import metrics as obs_metrics
from classhub.settings import settings

_LOG = logging.getLogger(__name__)

UNREAD_COUNT = "notifications:unread_count"

# generation counters outlive any in-flight load by a wide margin
_GENERATION_SECONDS = 3600

Loader = Callable[[], Awaitable[Any]]


class ReadThroughCache:
	"""JSON values under ``classhub:cache:{entity}:{user_id}`` with a TTL.

	Redis failures are logged and the loader result is returned directly.
	"""

	def __init__(
		self,
		redis: RedisProxy | None = None,
		*,
		namespace: str = "classhub:cache:",
		ttl_seconds: int | None = None,
		locks: KeyedLockMap | None = None,
	) -> None:
		self.redis = redis or redis_client
		self.namespace = namespace
		self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.cache_ttl_seconds
		self.locks = locks or KeyedLockMap(shards=16)

	def key(self, entity: str, user_id: str) -> str:
		return f"{self.namespace}{entity}:{user_id}"

	def generation_key(self, entity: str, user_id: str) -> str:
		return f"{self.namespace}gen:{entity}:{user_id}"

	async def _get(self, key: str, entity: str) -> Any | None:
		try:
			raw = await self.redis.get(key)
		except RedisError:
			obs_metrics.cache_lookup(entity, "error")
			_LOG.warning("cache.get_failed", extra={"key": key}, exc_info=True)
			return None
		if raw is None:
			return None
		try:
			return json.loads(raw)
		except (TypeError, ValueError):
			return None

	async def _generation(self, gen_key: str) -> Optional[str]:
		try:
			return await self.redis.get(gen_key)
		except RedisError:
			_LOG.warning("cache.generation_failed", extra={"key": gen_key}, exc_info=True)
			return None

	async def _fill(self, key: str, gen_key: str, seen: Optional[str], value: Any) -> bool:
		"""Store ``value`` unless the key was invalidated since ``seen`` was read."""
		try:
			async with self.redis.pipeline(transaction=True) as pipe:
				await pipe.watch(gen_key)
				if await pipe.get(gen_key) != seen:
					return False
				pipe.multi()
				pipe.set(key, json.dumps(value), ex=self.ttl_seconds)
				await pipe.execute()
		except WatchError:
			return False
		except RedisError:
			_LOG.warning("cache.set_failed", extra={"key": key}, exc_info=True)
			return False
		return True

	async def get_or_load(self, entity: str, user_id: str, loader: Loader) -> Any:
		key = self.key(entity, user_id)
		cached = await self._get(key, entity)
		if cached is not None:
			obs_metrics.cache_lookup(entity, "hit")
			return cached
		async with self.locks.hold(key):
			cached = await self._get(key, entity)
			if cached is not None:
				obs_metrics.cache_lookup(entity, "hit")
				return cached
			obs_metrics.cache_lookup(entity, "miss")
			gen_key = self.generation_key(entity, user_id)
			seen = await self._generation(gen_key)
			value = await loader()
			if not await self._fill(key, gen_key, seen, value):
				_LOG.debug("cache.fill_skipped", extra={"key": key})
			return value

	async def invalidate(self, entity: str, user_id: str) -> None:
		key = self.key(entity, user_id)
		gen_key = self.generation_key(entity, user_id)
		try:
			async with self.redis.pipeline(transaction=True) as pipe:
				pipe.incr(gen_key)
				pipe.expire(gen_key, _GENERATION_SECONDS)
				pipe.delete(key)
				await pipe.execute()
		except RedisError:
			_LOG.warning("cache.invalidate_failed", extra={"key": key}, exc_info=True)

	async def invalidate_unread_count(self, user_id: str) -> None:
		await self.invalidate(UNREAD_COUNT, user_id)


__all__ = ["ReadThroughCache", "UNREAD_COUNT"]
