import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

# Settings require a signing key at import time.
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-teake-tests-only")

from teake.infra import postgres
from teake.main import app
from teake.settings import settings


class FakeTransaction:
	def __init__(self, conn: "FakeConnection") -> None:
		self._conn = conn

	async def __aenter__(self) -> "FakeTransaction":
		self._conn.events.append("begin")
		return self

	async def __aexit__(self, exc_type, exc, tb) -> bool:
		self._conn.events.append("rollback" if exc_type else "commit")
		return False


class FakeConnection:
	"""Fake asyncpg connection answering queries by substring match.

	Handlers are tried in registration order; the first whose pattern occurs in
	the query wins. ``rows`` and ``value`` may be callables taking
	``(query, args)``.
	"""

	def __init__(self) -> None:
		self.calls: List[tuple[str, str, tuple]] = []
		self.events: List[str] = []
		self._handlers: List[Dict[str, Any]] = []

	def on(
		self,
		pattern: str,
		*,
		rows: Any = None,
		value: Any = None,
		error: Optional[BaseException] = None,
		once: bool = False,
	) -> "FakeConnection":
		self._handlers.append({"pattern": pattern, "rows": rows, "value": value, "error": error, "once": once})
		return self

	def _handle(self, method: str, query: str, args: tuple) -> Optional[Dict[str, Any]]:
		self.calls.append((method, query, args))
		self.events.append(method)
		for handler in list(self._handlers):
			if handler["pattern"] in query:
				if handler["once"]:
					self._handlers.remove(handler)
				if handler["error"] is not None:
					raise handler["error"]
				return handler
		return None

	@staticmethod
	def _resolve(value: Any, query: str, args: tuple) -> Any:
		if callable(value):
			return value(query, args)
		return value

	async def fetch(self, query: str, *args: Any) -> List[Any]:
		handler = self._handle("fetch", query, args)
		rows = self._resolve(handler["rows"], query, args) if handler else None
		return list(rows or [])

	async def fetchrow(self, query: str, *args: Any) -> Optional[Any]:
		handler = self._handle("fetchrow", query, args)
		rows = self._resolve(handler["rows"], query, args) if handler else None
		if isinstance(rows, dict):
			return rows
		return rows[0] if rows else None

	async def fetchval(self, query: str, *args: Any) -> Any:
		handler = self._handle("fetchval", query, args)
		return self._resolve(handler["value"], query, args) if handler else None

	async def execute(self, query: str, *args: Any) -> str:
		self._handle("execute", query, args)
		return "OK"

	def transaction(self) -> FakeTransaction:
		return FakeTransaction(self)

	def queries(self, method: Optional[str] = None) -> List[str]:
		return [query for called, query, _ in self.calls if method is None or called == method]

	def find(self, pattern: str) -> List[tuple[str, str, tuple]]:
		return [call for call in self.calls if pattern in call[1]]


class FakePool:
	def __init__(self, conn: FakeConnection) -> None:
		self._conn = conn
		self.acquired = 0

	def acquire(self) -> "FakePool":
		return self

	async def __aenter__(self) -> FakeConnection:
		self.acquired += 1
		return self._conn

	async def __aexit__(self, *args: Any) -> None:
		return None


@pytest.fixture
def fake_conn() -> FakeConnection:
	return FakeConnection()


@pytest.fixture
def fake_pool(fake_conn: FakeConnection) -> FakePool:
	return FakePool(fake_conn)


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Ensure a consistent test environment.

	API tests authenticate via the X-User-Id header, which is only accepted in
	dev mode.
	"""
	original_env = settings.environment
	original_admins = settings.admin_emails
	settings.environment = "dev"
	settings.admin_emails = ("admin@example.com",)
	try:
		yield
	finally:
		settings.environment = original_env
		settings.admin_emails = original_admins


@pytest.fixture
def override():
	"""Register FastAPI dependency overrides, cleared after the test."""

	def _set(dependency, replacement) -> None:
		app.dependency_overrides[dependency] = replacement

	try:
		yield _set
	finally:
		app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
