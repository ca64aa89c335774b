"""Repository for guy-related database operations."""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

import asyncpg

from teake.domain.comments.repo import CommentRepository
from teake.domain.common import query as q
from teake.domain.common.errors import NotFoundError, ValidationError, repository_operation
from teake.domain.common.query import PaginatedResult, SqlParams, TextSearchFilter
from teake.domain.common.repository import BaseRepository, average_from
from teake.domain.common.validation import validate_age, validate_phone, validate_required, validate_uuid
from teake.domain.guys.models import Guy, GuyStats, LocationCount
from teake.domain.stories.models import Story
from teake.domain.stories.repo import StoryRepository
from teake.infra import postgres

logger = logging.getLogger(__name__)

_SEARCH_COLUMNS = ("name", "phone", "location", "socials")


class GuyRepository(BaseRepository[Guy]):
	table = "guys"
	columns = ("id", "name", "phone", "socials", "location", "age", "created_by_user_id")

	def __init__(
		self,
		pool: Any = None,
		stories: Optional[StoryRepository] = None,
		comments: Optional[CommentRepository] = None,
	) -> None:
		super().__init__(pool)
		self._comments = comments or CommentRepository(pool)
		self._stories = stories or StoryRepository(pool, comments=self._comments)

	def _to_model(self, record: Mapping[str, Any]) -> Guy:
		return Guy.from_record(record)

	@repository_operation
	async def create(self, data: Mapping[str, Any], *, conn: Optional[asyncpg.Connection] = None) -> Guy:
		validate_required(data, ["id", "name", "created_by_user_id"])
		if data.get("phone"):
			validate_phone(data["phone"])
		validate_age(data.get("age"))
		validate_uuid(data["created_by_user_id"], "created_by_user_id")
		async with self._connection(conn) as c:
			if not await self._exists(c, "users", data["created_by_user_id"]):
				raise ValidationError("Creating user does not exist", "created_by_user_id")
			return await super().create(data, conn=c)

	@repository_operation
	async def update_profile(self, id: str, updates: Mapping[str, Any]) -> Guy:
		validate_uuid(id)
		if updates.get("phone"):
			validate_phone(updates["phone"])
		validate_age(updates.get("age"))
		allowed = {key: value for key, value in updates.items() if key not in ("id", "created_by_user_id")}
		guy = await self.update(id, allowed)
		if guy is None:
			raise NotFoundError("Guy", id)
		return guy

	async def _paginated(
		self,
		condition: Optional[str],
		params: SqlParams,
		filter: TextSearchFilter,
	) -> PaginatedResult[Guy]:
		page = filter.pagination(default_limit=10)
		where = q.where_clause(condition)
		async with self._connection() as conn:
			total = await conn.fetchval(f"SELECT count(*) FROM guys{where}", *params.values)
			limit_ph = params.add(page.limit)
			offset_ph = params.add(page.offset)
			records = await conn.fetch(
				f"SELECT * FROM guys{where} ORDER BY created_at DESC LIMIT {limit_ph} OFFSET {offset_ph}",
				*params.values,
			)
		return q.create_paginated_result(
			[Guy.from_record(record) for record in records],
			int(total or 0),
			page.page,
			page.limit,
		)

	@repository_operation
	async def search_guys(self, term: str, filter: Optional[TextSearchFilter] = None) -> PaginatedResult[Guy]:
		filter = filter or TextSearchFilter()
		params = SqlParams()
		return await self._paginated(q.text_search_any(params, _SEARCH_COLUMNS, term), params, filter)

	@repository_operation
	async def find_by_created_by_user_id(
		self,
		user_id: str,
		filter: Optional[TextSearchFilter] = None,
	) -> PaginatedResult[Guy]:
		validate_uuid(user_id, "created_by_user_id")
		filter = filter or TextSearchFilter()
		params = SqlParams()
		condition = q.combine_and(
			q.exact_match(params, "created_by_user_id", user_id),
			q.text_search_any(params, _SEARCH_COLUMNS, filter.search) if filter.search else None,
		)
		return await self._paginated(condition, params, filter)

	@repository_operation
	async def find_by_location(self, location: str, filter: Optional[TextSearchFilter] = None) -> PaginatedResult[Guy]:
		filter = filter or TextSearchFilter()
		params = SqlParams()
		return await self._paginated(q.text_search(params, "location", location), params, filter)

	@repository_operation
	async def find_by_age_range(
		self,
		min_age: Optional[int] = None,
		max_age: Optional[int] = None,
		filter: Optional[TextSearchFilter] = None,
	) -> PaginatedResult[Guy]:
		filter = filter or TextSearchFilter()
		params = SqlParams()
		return await self._paginated(q.value_range(params, "age", min_age, max_age), params, filter)

	@repository_operation
	async def find_with_stories(self, guy_id: str) -> Optional[dict]:
		"""The guy and his stories newest first, or None when he does not exist."""
		validate_uuid(guy_id)
		guy = await self.find_by_id(guy_id)
		if guy is None:
			return None
		async with self._connection() as conn:
			records = await conn.fetch(
				"SELECT * FROM stories WHERE guy_id = $1 ORDER BY created_at DESC",
				guy_id,
			)
		return {"guy": guy, "stories": [Story.from_record(record) for record in records]}

	@repository_operation
	async def find_guys_with_story_counts(self, filter: Optional[TextSearchFilter] = None) -> PaginatedResult[Guy]:
		filter = filter or TextSearchFilter()
		params = SqlParams()
		condition = None
		if filter.search:
			condition = q.text_search_any(params, [f"g.{column}" for column in _SEARCH_COLUMNS], filter.search)
		page = filter.pagination(default_limit=10)
		where = q.where_clause(condition)
		async with self._connection() as conn:
			total = await conn.fetchval(f"SELECT count(*) FROM guys g{where}", *params.values)
			limit_ph = params.add(page.limit)
			offset_ph = params.add(page.offset)
			records = await conn.fetch(
				"SELECT g.*, count(s.id) AS story_count FROM guys g "
				f"LEFT JOIN stories s ON s.guy_id = g.id{where} "
				f"GROUP BY g.id ORDER BY g.created_at DESC LIMIT {limit_ph} OFFSET {offset_ph}",
				*params.values,
			)
		return q.create_paginated_result(
			[Guy.from_record(record) for record in records],
			int(total or 0),
			page.page,
			page.limit,
		)

	@repository_operation
	async def find_popular_guys(self, limit: int = 10) -> List[Guy]:
		"""Guys with at least one story, most discussed first."""
		async with self._connection() as conn:
			records = await conn.fetch(
				"SELECT g.*, count(s.id) AS story_count FROM guys g "
				"LEFT JOIN stories s ON s.guy_id = g.id "
				"GROUP BY g.id HAVING count(s.id) > 0 "
				"ORDER BY count(s.id) DESC, g.created_at DESC LIMIT $1",
				q.clamp(limit, 1, 50),
			)
		return [Guy.from_record(record) for record in records]

	@repository_operation
	async def get_guy_stats(self) -> GuyStats:
		total, with_stories, average_age, locations = await self._gather(
			lambda c: c.fetchval("SELECT count(*) FROM guys"),
			lambda c: c.fetchval("SELECT count(DISTINCT g.id) FROM guys g JOIN stories s ON s.guy_id = g.id"),
			lambda c: c.fetchval("SELECT avg(age) FROM guys WHERE age IS NOT NULL"),
			lambda c: c.fetch(
				"SELECT location, count(*) AS count FROM guys "
				"WHERE location IS NOT NULL AND location <> '' "
				"GROUP BY location ORDER BY count(*) DESC LIMIT 5"
			),
		)
		return GuyStats(
			total=int(total or 0),
			with_stories=int(with_stories or 0),
			average_age=average_from(average_age),
			top_locations=[
				LocationCount(location=record["location"] or "", count=int(record["count"]))
				for record in locations
			],
		)

	@repository_operation
	async def is_owner(self, guy_id: str, user_id: str) -> bool:
		validate_uuid(guy_id)
		validate_uuid(user_id, "user_id")
		async with self._connection() as conn:
			record = await conn.fetchrow(
				"SELECT id FROM guys WHERE id = $1 AND created_by_user_id = $2 LIMIT 1",
				guy_id,
				user_id,
			)
		return record is not None

	@repository_operation
	async def delete_with_stories(self, id: str) -> bool:
		"""Delete a guy, his stories and their comments in one transaction.

		Returns whether the guy row was removed. A failure at any step rolls the
		whole cascade back.
		"""
		validate_uuid(id)
		async with postgres.transaction(await self._get_pool()) as tx:
			story_ids = await self._stories.find_ids_by_guy_id(id, conn=tx)
			removed_comments = await self._comments.delete_by_story_ids(story_ids, conn=tx)
			removed_stories = await self._stories.delete_by_guy_id(id, conn=tx)
			deleted = await self.delete(id, conn=tx)
		logger.info(
			"guy_deleted",
			extra={"guy_id": id, "deleted": deleted, "stories": removed_stories, "comments": removed_comments},
		)
		return deleted
