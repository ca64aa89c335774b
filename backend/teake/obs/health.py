"""Liveness and readiness probes."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Dict, Optional, Tuple

from teake.infra import postgres
from teake.infra.migrations import MIGRATIONS_DIR
from teake.obs import metrics

LOGGER = logging.getLogger(__name__)


def expected_schema_version() -> Optional[str]:
	"""Version prefix of the newest migration file shipped with the code."""
	versions = sorted(path.name.split("_", 1)[0] for path in MIGRATIONS_DIR.glob("*.sql"))
	return versions[-1] if versions else None


async def _database_status(timeout: float = 0.5) -> Tuple[Dict[str, Any], Any]:
	try:
		pool = await postgres.get_pool()
	except Exception as exc:
		metrics.mark_postgres(False)
		LOGGER.warning("postgres_unavailable", exc_info=True)
		return {"ok": False, "error": str(exc)}, None

	start = perf_counter()
	try:
		async with pool.acquire() as conn:
			await asyncio.wait_for(conn.execute("SELECT 1"), timeout=timeout)
	except Exception as exc:
		metrics.mark_postgres(False)
		LOGGER.warning("postgres_ping_failed", exc_info=True)
		return {"ok": False, "error": str(exc)}, None
	latency = perf_counter() - start
	metrics.mark_postgres(True, latency_seconds=latency)
	return {"ok": True, "latency_ms": round(latency * 1000, 2)}, pool


async def _schema_status(pool) -> Dict[str, Any]:
	"""Whether the database has every migration this build ships."""
	if pool is None:
		return {"ok": False, "error": "pool_unavailable"}
	required = expected_schema_version()
	try:
		async with pool.acquire() as conn:
			current = await conn.fetchval("SELECT max(version) FROM schema_migrations")
	except Exception as exc:
		LOGGER.warning("schema_version_unreadable", exc_info=True)
		return {"ok": False, "error": str(exc), "required": required}
	if current is None:
		return {"ok": False, "error": "no_migrations", "required": required}
	current = str(current)
	return {"ok": required is None or current >= required, "version": current, "required": required}


async def liveness() -> Dict[str, Any]:
	return {"status": "ok", "message": "TeaKE backend is running"}


async def readiness() -> Tuple[int, Dict[str, Any]]:
	database, pool = await _database_status()
	schema = await _schema_status(pool)
	ok = bool(database.get("ok")) and bool(schema.get("ok"))
	return (
		200 if ok else 503,
		{
			"status": "ok" if ok else "degraded",
			"checks": {"postgres": database, "schema": schema},
		},
	)
