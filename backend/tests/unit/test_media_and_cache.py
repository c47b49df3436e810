import asyncio
from pathlib import Path

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from classhub.engagement.domain.exceptions import InvalidInputError
from classhub.engagement.infra.cache import UNREAD_COUNT, ReadThroughCache
from classhub.engagement.infra.media import MediaStore


@pytest.mark.asyncio
async def test_media_save_and_remove(tmp_path):
	store = MediaStore(str(tmp_path), max_bytes=16)

	stored = await store.save("user/../../etc", "notes.TXT", b"hello")

	path = Path(stored.path)
	assert path.read_bytes() == b"hello"
	assert path.suffix == ".txt"
	assert store.root in path.parents
	assert stored.size_bytes == 5

	await store.remove(stored.path)
	assert not path.exists()


@pytest.mark.asyncio
async def test_media_rejects_empty_and_oversized(tmp_path):
	store = MediaStore(str(tmp_path), max_bytes=4)

	with pytest.raises(InvalidInputError):
		await store.save("u", "a.png", b"")
	with pytest.raises(InvalidInputError):
		await store.save("u", "a.png", b"12345")


@pytest.mark.asyncio
async def test_media_remove_ignores_paths_outside_root(tmp_path):
	outside = tmp_path / "outside.txt"
	outside.write_text("keep")
	store = MediaStore(str(tmp_path / "media"))

	await store.remove(str(outside))

	assert outside.exists()


@pytest.mark.asyncio
async def test_cache_loads_once_until_invalidated(fake_redis):
	cache = ReadThroughCache(ttl_seconds=30)
	loads = 0

	async def _loader() -> int:
		nonlocal loads
		loads += 1
		return 4

	assert await cache.get_or_load(UNREAD_COUNT, "frank", _loader) == 4
	assert await cache.get_or_load(UNREAD_COUNT, "frank", _loader) == 4
	assert loads == 1
	key = "classhub:cache:notifications:unread_count:frank"
	assert 0 < await fake_redis.ttl(key) <= 30

	await cache.invalidate_unread_count("frank")
	assert await fake_redis.get(key) is None


@pytest.mark.asyncio
async def test_cache_falls_back_to_loader_when_redis_fails():
	class DownRedis:
		async def get(self, key):
			raise RedisConnectionError("down")

		async def set(self, *args, **kwargs):
			raise RedisConnectionError("down")

		async def delete(self, key):
			raise RedisConnectionError("down")

		def pipeline(self, transaction=True):
			raise RedisConnectionError("down")

	cache = ReadThroughCache(DownRedis())

	async def _loader() -> int:
		return 2

	assert await cache.get_or_load(UNREAD_COUNT, "frank", _loader) == 2
	await cache.invalidate_unread_count("frank")


@pytest.mark.asyncio
async def test_invalidation_during_load_discards_the_fill(fake_redis):
	cache = ReadThroughCache(ttl_seconds=60)
	read = asyncio.Event()
	resume = asyncio.Event()

	async def _slow_loader() -> int:
		read.set()
		await resume.wait()
		return 4

	load = asyncio.create_task(cache.get_or_load(UNREAD_COUNT, "frank", _slow_loader))
	await read.wait()
	await cache.invalidate_unread_count("frank")
	resume.set()

	assert await load == 4
	assert await fake_redis.get(cache.key(UNREAD_COUNT, "frank")) is None

	async def _fresh() -> int:
		return 0

	assert await cache.get_or_load(UNREAD_COUNT, "frank", _fresh) == 0
	assert await fake_redis.get(cache.key(UNREAD_COUNT, "frank")) == "0"


@pytest.mark.asyncio
async def test_concurrent_misses_share_one_load(fake_redis):
	cache = ReadThroughCache(ttl_seconds=60)
	started = asyncio.Event()
	resume = asyncio.Event()
	loads = 0

	async def _loader() -> int:
		nonlocal loads
		loads += 1
		started.set()
		await resume.wait()
		return 3

	first = asyncio.create_task(cache.get_or_load(UNREAD_COUNT, "frank", _loader))
	await started.wait()
	waiters = [asyncio.create_task(cache.get_or_load(UNREAD_COUNT, "frank", _loader)) for _ in range(3)]
	await asyncio.sleep(0)
	resume.set()
	late = await cache.get_or_load(UNREAD_COUNT, "frank", _loader)

	assert await asyncio.gather(first, *waiters) == [3, 3, 3, 3]
	assert late == 3
	assert loads == 1
	assert cache.locks.size() == 0
