"""Apply the SQL files shipped in ``teake/migrations`` in version order."""

from __future__ import annotations

import logging
import pathlib
from typing import List, Optional

import asyncpg

from teake.infra.postgres import close_pool, get_pool

logger = logging.getLogger(__name__)

# Package data: see [tool.setuptools.package-data] in pyproject.toml.
MIGRATIONS_DIR = pathlib.Path(__file__).resolve().parents[1] / "migrations"


async def apply_migrations(pool=None, directory: Optional[pathlib.Path] = None) -> List[str]:
	"""Run every migration not yet recorded in ``schema_migrations``.

	Each file runs in its own transaction together with its bookkeeping row.
	Returns the versions applied by this call.
	"""
	pool = pool or await get_pool()
	paths = sorted((directory or MIGRATIONS_DIR).glob("*.sql"))
	applied_now: List[str] = []
	async with pool.acquire() as conn:
		await conn.execute(
			"""
			CREATE TABLE IF NOT EXISTS schema_migrations (
				version TEXT PRIMARY KEY,
				applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
			)
			"""
		)
		applied = {row["version"] for row in await conn.fetch("SELECT version FROM schema_migrations")}
		for path in paths:
			version = path.name.split("_", 1)[0]
			if version in applied:
				continue
			await _apply(conn, version, path.read_text())
			logger.info("migration_applied", extra={"version": version, "file": path.name})
			applied_now.append(version)
	return applied_now


async def _apply(conn: asyncpg.Connection, version: str, sql: str) -> None:
	async with conn.transaction():
		await conn.execute(sql)
		await conn.execute("INSERT INTO schema_migrations (version) VALUES ($1)", version)


async def _main() -> None:
	try:
		applied = await apply_migrations()
	finally:
		await close_pool()
	print(f"Applied {len(applied)} migration(s): {', '.join(applied) or 'none'}")


if __name__ == "__main__":
	import asyncio

	asyncio.run(_main())
