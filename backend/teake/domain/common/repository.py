"""Generic single-table CRUD repository over asyncpg."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, ClassVar, Generic, List, Mapping, Optional, Sequence, TypeVar

import asyncpg

from teake.domain.common.errors import repository_operation
from teake.domain.common.query import SqlParams, where_clause
from teake.infra.postgres import get_pool

ModelT = TypeVar("ModelT")


class BaseRepository(Generic[ModelT]):
	"""CRUD over ``table`` keyed by ``id_column``.

	Absence is never an error here: ``find_by_id`` and ``update`` return None
	and ``delete`` returns False when no row matched.
	"""

	table: ClassVar[str]
	id_column: ClassVar[str] = "id"
	columns: ClassVar[Sequence[str]] = ()

	def __init__(self, pool: Any = None) -> None:
		self._pool = pool

	def _to_model(self, record: Mapping[str, Any]) -> ModelT:
		raise NotImplementedError

	async def _get_pool(self):
		if self._pool is not None:
			return self._pool
		return await get_pool()

	@asynccontextmanager
	async def _connection(self, conn: Optional[asyncpg.Connection] = None) -> AsyncIterator[asyncpg.Connection]:
		if conn is not None:
			yield conn
			return
		pool = await self._get_pool()
		async with pool.acquire() as acquired:
			yield acquired

	async def _gather(self, *operations: Callable[[asyncpg.Connection], Awaitable[Any]]) -> List[Any]:
		"""Run independent reads concurrently, each on its own pooled connection.

		The reads do not share a transaction, so the results are not a
		point-in-time snapshot.
		"""
		pool = await self._get_pool()

		async def _run(operation):
			async with pool.acquire() as conn:
				return await operation(conn)

		return list(await asyncio.gather(*(_run(operation) for operation in operations)))

	def _writable(self, data: Mapping[str, Any]) -> dict[str, Any]:
		return {key: value for key, value in data.items() if key in self.columns}

	@repository_operation
	async def find_by_id(self, id: str, *, conn: Optional[asyncpg.Connection] = None) -> Optional[ModelT]:
		async with self._connection(conn) as c:
			record = await c.fetchrow(
				f"SELECT * FROM {self.table} WHERE {self.id_column} = $1 LIMIT 1",
				id,
			)
		return self._to_model(record) if record else None

	@repository_operation
	async def create(self, data: Mapping[str, Any], *, conn: Optional[asyncpg.Connection] = None) -> ModelT:
		values = self._writable(data)
		params = SqlParams()
		placeholders = [params.add(value) for value in values.values()]
		query = (
			f"INSERT INTO {self.table} ({', '.join(values)}) "
			f"VALUES ({', '.join(placeholders)}) RETURNING *"
		)
		async with self._connection(conn) as c:
			record = await c.fetchrow(query, *params.values)
		return self._to_model(record)

	@repository_operation
	async def update(
		self,
		id: str,
		data: Mapping[str, Any],
		*,
		conn: Optional[asyncpg.Connection] = None,
	) -> Optional[ModelT]:
		values = self._writable(data)
		if not values:
			return await self.find_by_id(id, conn=conn)
		params = SqlParams()
		assignments = [f"{column} = {params.add(value)}" for column, value in values.items()]
		query = (
			f"UPDATE {self.table} SET {', '.join(assignments)} "
			f"WHERE {self.id_column} = {params.add(id)} RETURNING *"
		)
		async with self._connection(conn) as c:
			record = await c.fetchrow(query, *params.values)
		return self._to_model(record) if record else None

	@repository_operation
	async def delete(self, id: str, *, conn: Optional[asyncpg.Connection] = None) -> bool:
		async with self._connection(conn) as c:
			rows = await c.fetch(
				f"DELETE FROM {self.table} WHERE {self.id_column} = $1 RETURNING {self.id_column}",
				id,
			)
		return len(rows) > 0

	@repository_operation
	async def find_many(
		self,
		where: Optional[str] = None,
		params: Optional[SqlParams] = None,
		*,
		conn: Optional[asyncpg.Connection] = None,
	) -> List[ModelT]:
		bindings = params.values if params is not None else []
		async with self._connection(conn) as c:
			records = await c.fetch(f"SELECT * FROM {self.table}{where_clause(where)}", *bindings)
		return [self._to_model(record) for record in records]

	@repository_operation
	async def count(
		self,
		where: Optional[str] = None,
		params: Optional[SqlParams] = None,
		*,
		conn: Optional[asyncpg.Connection] = None,
	) -> int:
		bindings = params.values if params is not None else []
		async with self._connection(conn) as c:
			value = await c.fetchval(f"SELECT count(*) FROM {self.table}{where_clause(where)}", *bindings)
		return int(value or 0)

	async def _exists(self, c: asyncpg.Connection, table: str, id: str) -> bool:
		record = await c.fetchrow(f"SELECT id FROM {table} WHERE id = $1 LIMIT 1", id)
		return record is not None


def count_from(record: Optional[Mapping[str, Any]], key: str = "count") -> int:
	if not record:
		return 0
	value = record.get(key) if hasattr(record, "get") else record[key]
	return int(value or 0)


def average_from(value: Any) -> float:
	return float(value) if value is not None else 0.0
