"""Keyed asyncio locks, sharded by key hash.

Each key gets its own ``asyncio.Lock`` while at least one task holds or waits for
it; idle entries are dropped so the map only grows with concurrent keys.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Hashable

from classhub.obs import metrics as obs_metrics


@dataclass(slots=True)
class _Entry:
	lock: asyncio.Lock = field(default_factory=asyncio.Lock)
	refs: int = 0


class KeyedLockMap:
	"""Mutual exclusion per key; different keys never block each other."""

	def __init__(self, *, shards: int = 64) -> None:
		self._shards: list[dict[Hashable, _Entry]] = [{} for _ in range(max(1, shards))]

	def _shard(self, key: Hashable) -> dict[Hashable, _Entry]:
		return self._shards[hash(key) % len(self._shards)]

	@asynccontextmanager
	async def hold(self, key: Hashable) -> AsyncIterator[None]:
		shard = self._shard(key)
		entry = shard.get(key)
		if entry is None:
			entry = shard[key] = _Entry()
		entry.refs += 1
		started = time.perf_counter()
		try:
			async with entry.lock:
				obs_metrics.observe_lock_wait(time.perf_counter() - started)
				yield
		finally:
			entry.refs -= 1
			if entry.refs == 0 and shard.get(key) is entry:
				del shard[key]

	def size(self) -> int:
		return sum(len(shard) for shard in self._shards)

	def is_held(self, key: Hashable) -> bool:
		entry = self._shard(key).get(key)
		return entry is not None and entry.lock.locked()


__all__ = ["KeyedLockMap"]
