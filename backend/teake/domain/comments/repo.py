"""Repository for comment-related database operations."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

import asyncpg

from teake.domain.comments.models import MAX_COMMENT_LENGTH, Comment, CommentStats, TopCommenter
from teake.domain.common import query as q
from teake.domain.common.errors import NotFoundError, ValidationError, repository_operation
from teake.domain.common.query import DateRangeFilter, PaginatedResult, SqlParams, TextSearchFilter
from teake.domain.common.repository import BaseRepository, average_from
from teake.domain.common.validation import normalize_uuid, validate_required, validate_text, validate_uuid
from teake.domain.identity.models import USER_COLUMNS
from teake.domain.stories.models import STORY_COLUMNS

logger = logging.getLogger(__name__)

_DETAIL_FROM = (
	"FROM comments c "
	"JOIN users u ON u.id = c.user_id "
	"JOIN stories s ON s.id = c.story_id"
)
_DETAIL_SELECT = (
	"SELECT c.*, "
	f"{q.prefixed_columns('u', USER_COLUMNS, 'u_')}, "
	f"{q.prefixed_columns('s', STORY_COLUMNS, 's_')} "
	f"{_DETAIL_FROM}"
)


def _validate_comment_text(text: Any) -> None:
	validate_text(text, field="text", max_length=MAX_COMMENT_LENGTH, label="Comment content")


class CommentRepository(BaseRepository[Comment]):
	table = "comments"
	columns = ("id", "story_id", "user_id", "text", "anonymous", "nickname")

	def _to_model(self, record: Mapping[str, Any]) -> Comment:
		return Comment.from_record(record)

	@repository_operation
	async def create(self, data: Mapping[str, Any], *, conn: Optional[asyncpg.Connection] = None) -> Comment:
		validate_required(data, ["id", "text", "story_id", "user_id"])
		validate_uuid(data["story_id"], "story_id")
		validate_uuid(data["user_id"], "user_id")
		_validate_comment_text(data["text"])
		async with self._connection(conn) as c:
			if not await self._exists(c, "stories", data["story_id"]):
				raise ValidationError("Story does not exist", "story_id")
			if not await self._exists(c, "users", data["user_id"]):
				raise ValidationError("Creating user does not exist", "user_id")
			return await super().create(data, conn=c)

	@repository_operation
	async def update_comment(self, id: str, updates: Mapping[str, Any]) -> Comment:
		validate_uuid(id)
		if "text" in updates:
			_validate_comment_text(updates["text"])
		allowed = {key: value for key, value in updates.items() if key in ("text", "anonymous", "nickname")}
		comment = await self.update(id, allowed)
		if comment is None:
			raise NotFoundError("Comment", id)
		return comment

	async def _detail_page(
		self,
		condition: Optional[str],
		params: SqlParams,
		filter: TextSearchFilter,
		*,
		default_limit: int,
		direction: q.SortOrder,
	) -> PaginatedResult[Comment]:
		page = filter.pagination(default_limit=default_limit)
		where = q.where_clause(condition)
		async with self._connection() as conn:
			total = await conn.fetchval(f"SELECT count(*) {_DETAIL_FROM}{where}", *params.values)
			limit_ph = params.add(page.limit)
			offset_ph = params.add(page.offset)
			records = await conn.fetch(
				f"{_DETAIL_SELECT}{where} ORDER BY {q.order_by('c.created_at', direction)} "
				f"LIMIT {limit_ph} OFFSET {offset_ph}",
				*params.values,
			)
		return q.create_paginated_result(
			[Comment.from_detail_record(record) for record in records],
			int(total or 0),
			page.page,
			page.limit,
		)

	@repository_operation
	async def find_by_story_id(
		self,
		story_id: str,
		filter: Optional[TextSearchFilter] = None,
	) -> PaginatedResult[Comment]:
		"""Comments of one story, oldest first unless ``sort_order`` says otherwise.

		Comments whose author or story no longer resolves are left out.
		"""
		validate_uuid(story_id, "story_id")
		filter = filter or TextSearchFilter()
		params = SqlParams()
		condition = q.combine_and(
			q.exact_match(params, "c.story_id", story_id),
			q.text_search_any(params, ("c.text", "u.nickname"), filter.search) if filter.search else None,
		)
		return await self._detail_page(
			condition,
			params,
			filter,
			default_limit=20,
			direction=filter.sort_order or "asc",
		)

	@repository_operation
	async def find_by_user_id(
		self,
		user_id: str,
		filter: Optional[DateRangeFilter] = None,
	) -> PaginatedResult[Comment]:
		validate_uuid(user_id, "user_id")
		filter = filter or DateRangeFilter()
		params = SqlParams()
		condition = q.combine_and(
			q.exact_match(params, "c.user_id", user_id),
			q.text_search(params, "c.text", filter.search) if filter.search else None,
			q.date_range(params, "c.created_at", filter.start_date, filter.end_date),
		)
		return await self._detail_page(condition, params, filter, default_limit=10, direction="desc")

	@repository_operation
	async def search_comments(
		self,
		term: str,
		filter: Optional[DateRangeFilter] = None,
	) -> PaginatedResult[Comment]:
		filter = filter or DateRangeFilter()
		params = SqlParams()
		condition = q.combine_and(
			q.text_search_any(params, ("c.text", "u.nickname"), term),
			q.date_range(params, "c.created_at", filter.start_date, filter.end_date),
		)
		return await self._detail_page(condition, params, filter, default_limit=10, direction="desc")

	@repository_operation
	async def get_recent_comments(self, limit: int = 10) -> List[Comment]:
		async with self._connection() as conn:
			records = await conn.fetch(
				f"{_DETAIL_SELECT} ORDER BY c.created_at DESC LIMIT $1",
				q.clamp(limit, 1, 50),
			)
		return [Comment.from_detail_record(record) for record in records]

	@repository_operation
	async def get_comment_count_by_story_id(self, story_id: str) -> int:
		validate_uuid(story_id, "story_id")
		return await self.count("story_id = $1", SqlParams(story_id))

	@repository_operation
	async def get_comment_counts_by_story_ids(self, story_ids: Iterable[str]) -> Dict[str, int]:
		"""Comment count per requested story; stories without comments map to 0."""
		ids = list(story_ids)
		canonical = [normalize_uuid(story_id, "story_id") for story_id in ids]
		if not ids:
			return {}
		async with self._connection() as conn:
			records = await conn.fetch(
				"SELECT story_id, count(*) AS count FROM comments WHERE story_id = ANY($1) GROUP BY story_id",
				canonical,
			)
		counts = {str(record["story_id"]): int(record["count"]) for record in records}
		return {story_id: counts.get(key, 0) for story_id, key in zip(ids, canonical)}

	@repository_operation
	async def get_comment_stats(self) -> CommentStats:
		today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
		total, today_count, average, top = await self._gather(
			lambda c: c.fetchval("SELECT count(*) FROM comments"),
			lambda c: c.fetchval("SELECT count(*) FROM comments WHERE created_at >= $1", today),
			lambda c: c.fetchval(
				"SELECT avg(comment_count) FROM ("
				"SELECT count(c.id) AS comment_count FROM stories s "
				"LEFT JOIN comments c ON c.story_id = s.id GROUP BY s.id"
				") AS story_comments"
			),
			lambda c: c.fetch(
				"SELECT u.id AS user_id, u.nickname, count(c.id) AS comment_count "
				"FROM comments c JOIN users u ON u.id = c.user_id "
				"GROUP BY u.id, u.nickname ORDER BY count(c.id) DESC LIMIT 5"
			),
		)
		return CommentStats(
			total=int(total or 0),
			today_count=int(today_count or 0),
			average_per_story=average_from(average),
			top_commenters=[
				TopCommenter(
					user_id=str(record["user_id"]),
					nickname=record["nickname"],
					comment_count=int(record["comment_count"]),
				)
				for record in top
			],
		)

	@repository_operation
	async def is_owner(self, comment_id: str, user_id: str) -> bool:
		validate_uuid(comment_id, "comment_id")
		validate_uuid(user_id, "user_id")
		async with self._connection() as conn:
			record = await conn.fetchrow(
				"SELECT id FROM comments WHERE id = $1 AND user_id = $2 LIMIT 1",
				comment_id,
				user_id,
			)
		return record is not None

	@repository_operation
	async def bulk_delete(self, ids: Iterable[str], *, conn: Optional[asyncpg.Connection] = None) -> int:
		comment_ids = list(ids)
		for comment_id in comment_ids:
			validate_uuid(comment_id)
		if not comment_ids:
			return 0
		async with self._connection(conn) as c:
			rows = await c.fetch("DELETE FROM comments WHERE id = ANY($1) RETURNING id", comment_ids)
		return len(rows)

	@repository_operation
	async def delete_by_story_id(self, story_id: str, *, conn: Optional[asyncpg.Connection] = None) -> int:
		validate_uuid(story_id, "story_id")
		return await self.delete_by_story_ids([story_id], conn=conn)

	@repository_operation
	async def delete_by_story_ids(self, story_ids: Iterable[str], *, conn: Optional[asyncpg.Connection] = None) -> int:
		"""Remove every comment of the given stories.

		Cascades pass their transaction connection as ``conn`` so this step
		commits or rolls back with the rest of the cascade.
		"""
		ids = list(story_ids)
		if not ids:
			return 0
		async with self._connection(conn) as c:
			rows = await c.fetch("DELETE FROM comments WHERE story_id = ANY($1) RETURNING id", ids)
		return len(rows)
