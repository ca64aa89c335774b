"""AsyncPG pool management and transaction scopes for the backend."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import asyncpg

from teake.settings import settings

_pool: Optional[asyncpg.pool.Pool] = None


async def init_pool() -> asyncpg.pool.Pool:
	global _pool
	if _pool is None:
		_pool = await asyncpg.create_pool(
			dsn=settings.postgres_url,
			min_size=settings.postgres_min_pool_size,
			max_size=settings.postgres_max_pool_size,
			ssl="require" if settings.postgres_ssl else "disable",
		)
	return _pool


def set_pool(pool: Optional[asyncpg.pool.Pool]) -> None:
	global _pool
	_pool = pool


async def get_pool() -> asyncpg.pool.Pool:
	if _pool is None:
		await init_pool()
	assert _pool is not None
	return _pool


async def close_pool() -> None:
	global _pool
	if _pool is not None:
		await _pool.close()
		_pool = None


@asynccontextmanager
async def transaction(pool=None) -> AsyncIterator[asyncpg.Connection]:
	"""Yield a connection bound to one transaction.

	The transaction commits when the block exits normally and rolls back on any
	exception; the connection returns to the pool on every exit path.
	"""
	if pool is None:
		pool = await get_pool()
	async with pool.acquire() as conn:
		async with conn.transaction():
			yield conn
