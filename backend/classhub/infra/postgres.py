"""Process-wide asyncpg pool."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import asyncpg

from classhub.settings import settings

_LOG = logging.getLogger(__name__)

_pool: Optional[asyncpg.pool.Pool] = None
_pool_lock = asyncio.Lock()


async def _create_pool() -> asyncpg.pool.Pool:
	pool = await asyncpg.create_pool(
		dsn=settings.postgres_url,
		min_size=settings.postgres_min_pool_size,
		max_size=settings.postgres_max_pool_size,
		command_timeout=settings.store_timeout_seconds,
		server_settings={"application_name": settings.service_name, "timezone": "UTC"},
	)
	_LOG.info(
		"postgres.pool_ready",
		extra={"min_size": settings.postgres_min_pool_size, "max_size": settings.postgres_max_pool_size},
	)
	return pool


async def init_pool() -> asyncpg.pool.Pool:
	"""Create the pool once; concurrent first callers share the same pool."""
	global _pool
	async with _pool_lock:
		if _pool is None:
			_pool = await _create_pool()
	return _pool


def set_pool(pool: Optional[asyncpg.pool.Pool]) -> None:
	global _pool
	_pool = pool


async def get_pool() -> asyncpg.pool.Pool:
	return _pool if _pool is not None else await init_pool()


async def close_pool() -> None:
	global _pool
	pool, _pool = _pool, None
	if pool is not None:
		await pool.close()
