"""Replay of toggle responses keyed by a client supplied ``Idempotency-Key``.

A key is claimed in Redis before the toggle runs, so a retry that arrives while the
first attempt is still in flight is refused instead of toggling a second time. Once
the toggle commits, the claim is replaced by the response and kept for
``settings.idempotency_ttl_seconds``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from hashlib import sha256
from typing import Any, Awaitable, Callable, Optional, TypeVar

from classhub.engagement.domain.exceptions import IdempotencyConflict
from classhub.infra.redis import RedisProxy, redis_client
from classhub.obs import metrics as obs_metrics
from classhub.settings import settings

_LOG = logging.getLogger(__name__)

T = TypeVar("T")

KEY_PREFIX = "classhub:idemp"
# upper bound on how long a crashed attempt keeps its key claimed
_CLAIM_SECONDS = 30


def fingerprint(**fields: Any) -> str:
	"""Stable digest of the operation a key was first used for."""
	canonical = json.dumps(fields, sort_keys=True, separators=(",", ":"), default=str)
	return sha256(canonical.encode()).hexdigest()


def redis_key(user_id: str, key: str) -> str:
	return f"{KEY_PREFIX}:{user_id}:{key}"


@dataclass(slots=True)
class _Entry:
	fingerprint: str
	done: bool
	response: Any = None

	def dumps(self) -> str:
		return json.dumps({"fp": self.fingerprint, "done": self.done, "response": self.response})

	@classmethod
	def loads(cls, raw: str) -> "_Entry":
		data = json.loads(raw)
		return cls(fingerprint=data.get("fp", ""), done=bool(data.get("done")), response=data.get("response"))


class IdempotentReplay:
	def __init__(self, *, redis: RedisProxy | None = None, ttl_seconds: int | None = None) -> None:
		self.redis = redis or redis_client
		self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.idempotency_ttl_seconds

	async def run(
		self,
		*,
		user_id: str,
		key: Optional[str],
		operation: str,
		producer: Callable[[], Awaitable[T]],
		encode: Callable[[T], Any],
		decode: Callable[[Any], T],
	) -> T:
		if not key:
			return await producer()

		name = redis_key(user_id, key)
		claim = _Entry(fingerprint=operation, done=False)
		if not await self.redis.set(name, claim.dumps(), ex=_CLAIM_SECONDS, nx=True):
			raw = await self.redis.get(name)
			if raw is not None:
				return self._replay(_Entry.loads(raw), operation, decode, key)
			# the previous claim expired between SET and GET
			await self.redis.set(name, claim.dumps(), ex=_CLAIM_SECONDS)

		obs_metrics.idempotency_lookup("miss")
		try:
			result = await producer()
		except BaseException:
			await self.redis.delete(name)
			raise
		done = _Entry(fingerprint=operation, done=True, response=encode(result))
		await self.redis.set(name, done.dumps(), ex=self.ttl_seconds)
		return result

	@staticmethod
	def _replay(entry: _Entry, operation: str, decode: Callable[[Any], T], key: str) -> T:
		if entry.fingerprint != operation:
			obs_metrics.idempotency_lookup("conflict")
			raise IdempotencyConflict()
		if not entry.done:
			obs_metrics.idempotency_lookup("in_flight")
			_LOG.info("idempotency.in_flight", extra={"idempotency_key": key})
			raise IdempotencyConflict("idempotency_in_progress")
		obs_metrics.idempotency_lookup("replay")
		return decode(entry.response)


__all__ = ["IdempotentReplay", "KEY_PREFIX", "fingerprint", "redis_key"]
