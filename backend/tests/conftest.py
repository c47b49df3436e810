import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from classhub.engagement import container
from classhub.engagement.infra.cache import ReadThroughCache
from classhub.engagement.infra.media import MediaStore
from classhub.engagement.realtime.dispatcher import Dispatcher
from classhub.infra import postgres
from classhub.infra.locks import KeyedLockMap
from classhub.main import app
from classhub.settings import settings

from classhub_testkit import FakeUserDirectory, InMemoryStore, RecordingBroker


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from classhub.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Ensure a consistent test environment.

	API and socket tests authenticate via X-User-Id/X-User-Roles headers, which are
	only accepted in dev mode. The maintenance scheduler stays off, and the ASGI
	test client runs no lifespan, so tests drain the dispatcher explicitly.
	"""
	original_env = settings.environment
	original_workers = settings.workers_enabled
	settings.environment = "dev"
	settings.workers_enabled = False
	try:
		yield
	finally:
		settings.environment = original_env
		settings.workers_enabled = original_workers


@pytest.fixture
def users():
	return FakeUserDirectory(
		{
			"author": "Ada Author",
			"reader": "Rex Reader",
			"teacher": "Tess Teacher",
			"alice": "Alice Liddell",
			"bob": "Bob Builder",
			"eve": "Eve Evans",
			"mallory": "Mallory Moss",
		}
	)


@pytest.fixture
def engagement(tmp_path, users):
	"""Wire the service container to in-memory collaborators for one test."""
	original = SimpleNamespace(
		store=container.get_store(),
		users=container.get_users(),
		dispatcher=container.get_dispatcher(),
		cache=container.get_cache(),
	)
	store = InMemoryStore()
	broker = RecordingBroker()
	dispatcher = Dispatcher(broker=broker, timeout=0.2)
	cache = ReadThroughCache()
	media = MediaStore(str(tmp_path / "media"), max_bytes=1024)
	container.configure(
		store=store,
		users=users,
		dispatcher=dispatcher,
		cache=cache,
		media=media,
		locks=KeyedLockMap(shards=8),
	)
	try:
		yield SimpleNamespace(
			store=store,
			users=users,
			broker=broker,
			dispatcher=dispatcher,
			cache=cache,
			media=media,
			posts=container.get_post_service(),
			toggles=container.get_toggle_engine(),
			notifications=container.get_notification_service(),
			chats=container.get_chat_service(),
			groups=container.get_group_service(),
			composer=container.get_composer(),
		)
	finally:
		container.configure(
			store=original.store,
			users=original.users,
			dispatcher=original.dispatcher,
			cache=original.cache,
		)


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
