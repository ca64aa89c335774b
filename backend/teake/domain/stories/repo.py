"""Repository for story-related database operations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Mapping, Optional

import asyncpg

from teake.domain.comments.repo import CommentRepository
from teake.domain.common import query as q
from teake.domain.common.errors import NotFoundError, ValidationError, repository_operation
from teake.domain.common.query import DateRangeFilter, PaginatedResult, SqlParams, TextSearchFilter
from teake.domain.common.repository import BaseRepository, average_from
from teake.domain.common.validation import validate_required, validate_text, validate_uuid
from teake.domain.guys.models import GUY_COLUMNS
from teake.domain.identity.models import USER_COLUMNS
from teake.domain.stories.models import MAX_STORY_LENGTH, TAG_TYPES, Story, StoryStats
from teake.infra import postgres
from teake.settings import settings

logger = logging.getLogger(__name__)

_FEED_FROM = (
	"FROM stories s "
	"JOIN guys g ON g.id = s.guy_id "
	"JOIN users u ON u.id = s.user_id"
)
_FEED_SELECT = (
	"SELECT s.*, "
	"(SELECT count(*) FROM comments c WHERE c.story_id = s.id) AS comment_count, "
	f"{q.prefixed_columns('g', GUY_COLUMNS, 'g_')}, "
	f"{q.prefixed_columns('u', USER_COLUMNS, 'u_')} "
	f"{_FEED_FROM}"
)


@dataclass(slots=True)
class StoryFilter(DateRangeFilter):
	tag_type: Optional[str] = None
	guy_id: Optional[str] = None
	user_id: Optional[str] = None


def _validate_story_text(text: Any) -> None:
	validate_text(text, field="text", max_length=MAX_STORY_LENGTH, label="Story text")


def _validate_tags(tags: Any) -> None:
	if tags is None:
		return
	if isinstance(tags, str) or any(tag not in TAG_TYPES for tag in tags):
		raise ValidationError(f"Tags must be drawn from {', '.join(TAG_TYPES)}", "tags")


def _validate_tag_type(tag_type: str) -> None:
	if tag_type not in TAG_TYPES:
		raise ValidationError("Invalid tag type", "tag_type")


class StoryRepository(BaseRepository[Story]):
	table = "stories"
	columns = ("id", "guy_id", "user_id", "text", "tags", "image_url", "anonymous", "nickname")

	def __init__(self, pool: Any = None, comments: Optional[CommentRepository] = None) -> None:
		super().__init__(pool)
		self._comments = comments or CommentRepository(pool)

	def _to_model(self, record: Mapping[str, Any]) -> Story:
		return Story.from_record(record)

	@repository_operation
	async def create(self, data: Mapping[str, Any], *, conn: Optional[asyncpg.Connection] = None) -> Story:
		validate_required(data, ["id", "text", "guy_id", "user_id"])
		validate_uuid(data["guy_id"], "guy_id")
		validate_uuid(data["user_id"], "user_id")
		_validate_story_text(data["text"])
		_validate_tags(data.get("tags"))
		values = dict(data)
		values["tags"] = list(values.get("tags") or [])
		async with self._connection(conn) as c:
			if not await self._exists(c, "guys", values["guy_id"]):
				raise ValidationError("Guy does not exist", "guy_id")
			if not await self._exists(c, "users", values["user_id"]):
				raise ValidationError("Creating user does not exist", "user_id")
			return await super().create(values, conn=c)

	@repository_operation
	async def update_story(self, id: str, updates: Mapping[str, Any]) -> Story:
		validate_uuid(id)
		if "text" in updates:
			_validate_story_text(updates["text"])
		if "tags" in updates:
			_validate_tags(updates["tags"])
		allowed = {
			key: value
			for key, value in updates.items()
			if key in ("text", "tags", "image_url", "anonymous", "nickname")
		}
		story = await self.update(id, allowed)
		if story is None:
			raise NotFoundError("Story", id)
		return story

	@repository_operation
	async def fetch_stories_feed(self, filter: Optional[StoryFilter] = None) -> PaginatedResult[Story]:
		"""Newest-first feed joined with each story's guy and author.

		Stories whose guy or author no longer resolves are left out. Every item
		carries its comment count.
		"""
		filter = filter or StoryFilter()
		if filter.tag_type:
			_validate_tag_type(filter.tag_type)
		if filter.guy_id:
			validate_uuid(filter.guy_id, "guy_id")
		if filter.user_id:
			validate_uuid(filter.user_id, "user_id")

		params = SqlParams()
		condition = q.combine_and(
			q.text_search_any(params, ("s.text", "g.name", "u.nickname"), filter.search) if filter.search else None,
			f"{params.add(filter.tag_type)} = ANY(s.tags)" if filter.tag_type else None,
			q.exact_match(params, "s.guy_id", filter.guy_id) if filter.guy_id else None,
			q.exact_match(params, "s.user_id", filter.user_id) if filter.user_id else None,
			q.date_range(params, "s.created_at", filter.start_date, filter.end_date),
		)
		page = filter.pagination(default_limit=10)
		where = q.where_clause(condition)
		direction = filter.sort_order or "desc"
		async with self._connection() as conn:
			total = await conn.fetchval(f"SELECT count(*) {_FEED_FROM}{where}", *params.values)
			limit_ph = params.add(page.limit)
			offset_ph = params.add(page.offset)
			records = await conn.fetch(
				f"{_FEED_SELECT}{where} ORDER BY {q.order_by('s.created_at', direction)} "
				f"LIMIT {limit_ph} OFFSET {offset_ph}",
				*params.values,
			)
		return q.create_paginated_result(
			[Story.from_feed_record(record) for record in records],
			int(total or 0),
			page.page,
			page.limit,
		)

	async def _paginated(
		self,
		condition: Optional[str],
		params: SqlParams,
		filter: TextSearchFilter,
	) -> PaginatedResult[Story]:
		page = filter.pagination(default_limit=10)
		where = q.where_clause(condition)
		async with self._connection() as conn:
			total = await conn.fetchval(f"SELECT count(*) FROM stories{where}", *params.values)
			limit_ph = params.add(page.limit)
			offset_ph = params.add(page.offset)
			records = await conn.fetch(
				f"SELECT * FROM stories{where} ORDER BY created_at DESC LIMIT {limit_ph} OFFSET {offset_ph}",
				*params.values,
			)
		return q.create_paginated_result(
			[Story.from_record(record) for record in records],
			int(total or 0),
			page.page,
			page.limit,
		)

	@repository_operation
	async def find_by_guy_id(self, guy_id: str, filter: Optional[TextSearchFilter] = None) -> PaginatedResult[Story]:
		validate_uuid(guy_id, "guy_id")
		filter = filter or TextSearchFilter()
		params = SqlParams()
		condition = q.combine_and(
			q.exact_match(params, "guy_id", guy_id),
			q.text_search(params, "text", filter.search) if filter.search else None,
		)
		return await self._paginated(condition, params, filter)

	@repository_operation
	async def find_by_user_id(self, user_id: str, filter: Optional[TextSearchFilter] = None) -> PaginatedResult[Story]:
		validate_uuid(user_id, "user_id")
		filter = filter or TextSearchFilter()
		params = SqlParams()
		condition = q.combine_and(
			q.exact_match(params, "user_id", user_id),
			q.text_search(params, "text", filter.search) if filter.search else None,
		)
		return await self._paginated(condition, params, filter)

	@repository_operation
	async def find_by_tag_type(self, tag_type: str, filter: Optional[TextSearchFilter] = None) -> PaginatedResult[Story]:
		_validate_tag_type(tag_type)
		filter = filter or TextSearchFilter()
		params = SqlParams()
		condition = q.combine_and(
			f"{params.add(tag_type)} = ANY(tags)",
			q.text_search(params, "text", filter.search) if filter.search else None,
		)
		return await self._paginated(condition, params, filter)

	@repository_operation
	async def get_trending_stories(self, limit: int = 10) -> List[Story]:
		"""Stories of the trending window ranked by how many comments they drew."""
		since = datetime.now(timezone.utc) - timedelta(days=settings.trending_window_days)
		async with self._connection() as conn:
			records = await conn.fetch(
				"SELECT s.*, count(c.id) AS comment_count FROM stories s "
				"LEFT JOIN comments c ON c.story_id = s.id "
				"WHERE s.created_at >= $1 "
				"GROUP BY s.id ORDER BY count(c.id) DESC, s.created_at DESC LIMIT $2",
				since,
				q.clamp(limit, 1, 50),
			)
		return [Story.from_record(record) for record in records]

	@repository_operation
	async def get_story_stats(self) -> StoryStats:
		by_tag = "SELECT count(*) FROM stories WHERE $1 = ANY(tags)"
		total, positive, negative, neutral, with_images, average = await self._gather(
			lambda c: c.fetchval("SELECT count(*) FROM stories"),
			lambda c: c.fetchval(by_tag, "good_vibes"),
			lambda c: c.fetchval(by_tag, "red_flag"),
			lambda c: c.fetchval(by_tag, "unsure"),
			lambda c: c.fetchval("SELECT count(*) FROM stories WHERE image_url IS NOT NULL"),
			lambda c: c.fetchval(
				"SELECT avg(comment_count) FROM ("
				"SELECT count(c.id) AS comment_count FROM stories s "
				"LEFT JOIN comments c ON c.story_id = s.id GROUP BY s.id"
				") AS story_comments"
			),
		)
		return StoryStats(
			total=int(total or 0),
			positive=int(positive or 0),
			negative=int(negative or 0),
			neutral=int(neutral or 0),
			with_images=int(with_images or 0),
			average_comments_per_story=average_from(average),
		)

	@repository_operation
	async def is_owner(self, story_id: str, user_id: str) -> bool:
		validate_uuid(story_id, "story_id")
		validate_uuid(user_id, "user_id")
		async with self._connection() as conn:
			record = await conn.fetchrow(
				"SELECT id FROM stories WHERE id = $1 AND user_id = $2 LIMIT 1",
				story_id,
				user_id,
			)
		return record is not None

	@repository_operation
	async def delete_with_comments(self, id: str) -> bool:
		"""Delete a story and its comments in one transaction."""
		validate_uuid(id)
		async with postgres.transaction(await self._get_pool()) as tx:
			removed_comments = await self._comments.delete_by_story_ids([id], conn=tx)
			deleted = await self.delete(id, conn=tx)
		logger.info("story_deleted", extra={"story_id": id, "deleted": deleted, "comments": removed_comments})
		return deleted

	@repository_operation
	async def bulk_delete(self, ids: Iterable[str]) -> int:
		"""Delete stories and their comments in one transaction; returns stories removed."""
		story_ids = list(ids)
		for story_id in story_ids:
			validate_uuid(story_id)
		if not story_ids:
			return 0
		async with postgres.transaction(await self._get_pool()) as tx:
			removed_comments = await self._comments.delete_by_story_ids(story_ids, conn=tx)
			rows = await tx.fetch("DELETE FROM stories WHERE id = ANY($1) RETURNING id", story_ids)
		logger.info("stories_bulk_deleted", extra={"count": len(rows), "comments": removed_comments})
		return len(rows)

	@repository_operation
	async def delete_by_guy_id(self, guy_id: str, *, conn: Optional[asyncpg.Connection] = None) -> int:
		"""Delete a guy's stories; callers own the comment cleanup and the transaction."""
		async with self._connection(conn) as c:
			rows = await c.fetch("DELETE FROM stories WHERE guy_id = $1 RETURNING id", guy_id)
		return len(rows)

	@repository_operation
	async def find_ids_by_guy_id(self, guy_id: str, *, conn: Optional[asyncpg.Connection] = None) -> List[str]:
		async with self._connection(conn) as c:
			records = await c.fetch("SELECT id FROM stories WHERE guy_id = $1", guy_id)
		return [str(record["id"]) for record in records]
