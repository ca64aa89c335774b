"""Repository for direct messages and conversation summaries."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, List, Mapping, Optional

import asyncpg

from teake.domain.chat.models import (
	MAX_MESSAGE_LENGTH,
	ConversationSummary,
	LastMessage,
	Message,
	MessageStats,
)
from teake.domain.common import query as q
from teake.domain.common.errors import ValidationError, repository_operation
from teake.domain.common.query import DateRangeFilter, PaginatedResult, SqlParams, TextSearchFilter
from teake.domain.common.repository import BaseRepository, average_from
from teake.domain.common.validation import normalize_uuid, validate_required, validate_text, validate_uuid
from teake.domain.identity.models import USER_COLUMNS
from teake.settings import settings

logger = logging.getLogger(__name__)

_HISTORY_FROM = (
	"FROM messages m "
	"JOIN users sender ON sender.id = m.sender_id "
	"JOIN users receiver ON receiver.id = m.receiver_id"
)
_HISTORY_SELECT = (
	"SELECT m.*, "
	f"{q.prefixed_columns('sender', USER_COLUMNS, 'sender_user_')}, "
	f"{q.prefixed_columns('receiver', USER_COLUMNS, 'receiver_user_')} "
	f"{_HISTORY_FROM}"
)

# Pair key shared by both directions of a conversation.
_PAIR_KEY = "least(sender_id, receiver_id) || ':' || greatest(sender_id, receiver_id)"


@dataclass(slots=True)
class MessageFilter(DateRangeFilter):
	include_expired: bool = False


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


def _involving(params: SqlParams, user_id: str, now: datetime) -> tuple[str, str]:
	"""Counterparty expression and predicate for the user's active messages."""
	user_ph = params.add(user_id)
	other = f"CASE WHEN m.sender_id = {user_ph} THEN m.receiver_id ELSE m.sender_id END"
	condition = q.combine_and(
		f"(m.sender_id = {user_ph} OR m.receiver_id = {user_ph})",
		q.active_message(params, "m.expires_at", now),
	)
	return other, condition or ""


class MessageRepository(BaseRepository[Message]):
	table = "messages"
	columns = ("id", "sender_id", "receiver_id", "text", "expires_at")

	def _to_model(self, record: Mapping[str, Any]) -> Message:
		return Message.from_record(record)

	@repository_operation
	async def send_message(self, data: Mapping[str, Any], *, conn: Optional[asyncpg.Connection] = None) -> Message:
		"""Insert a message after checking both parties.

		Messages expire ``message_ttl_days`` after sending unless an explicit
		``expires_at`` is given.
		"""
		validate_required(data, ["id", "text", "sender_id", "receiver_id"])
		sender_id = normalize_uuid(data["sender_id"], "sender_id")
		receiver_id = normalize_uuid(data["receiver_id"], "receiver_id")
		if sender_id == receiver_id:
			raise ValidationError("Cannot send message to yourself", "receiver_id")
		validate_text(data["text"], field="text", max_length=MAX_MESSAGE_LENGTH, label="Message text")
		values = {**data, "sender_id": sender_id, "receiver_id": receiver_id}
		if not values.get("expires_at"):
			values["expires_at"] = _utcnow() + timedelta(days=settings.message_ttl_days)
		async with self._connection(conn) as c:
			if not await self._exists(c, "users", values["sender_id"]):
				raise ValidationError("Sender does not exist", "sender_id")
			if not await self._exists(c, "users", values["receiver_id"]):
				raise ValidationError("Receiver does not exist", "receiver_id")
			return await self.create(values, conn=c)

	@repository_operation
	async def fetch_chat_history(
		self,
		user_id: str,
		other_user_id: str,
		filter: Optional[MessageFilter] = None,
	) -> PaginatedResult[Message]:
		"""Messages between two users in either direction, newest first."""
		validate_uuid(user_id, "user_id")
		validate_uuid(other_user_id, "other_user_id")
		filter = filter or MessageFilter()
		params = SqlParams()
		first = params.add(user_id)
		second = params.add(other_user_id)
		condition = q.combine_and(
			f"((m.sender_id = {first} AND m.receiver_id = {second}) "
			f"OR (m.sender_id = {second} AND m.receiver_id = {first}))",
			None if filter.include_expired else q.active_message(params, "m.expires_at", _utcnow()),
			q.date_range(params, "m.created_at", filter.start_date, filter.end_date),
		)
		page = filter.pagination(default_limit=50)
		where = q.where_clause(condition)
		async with self._connection() as conn:
			total = await conn.fetchval(f"SELECT count(*) {_HISTORY_FROM}{where}", *params.values)
			limit_ph = params.add(page.limit)
			offset_ph = params.add(page.offset)
			records = await conn.fetch(
				f"{_HISTORY_SELECT}{where} ORDER BY m.created_at DESC, m.id DESC "
				f"LIMIT {limit_ph} OFFSET {offset_ph}",
				*params.values,
			)
		return q.create_paginated_result(
			[Message.from_history_record(record) for record in records],
			int(total or 0),
			page.page,
			page.limit,
		)

	@repository_operation
	async def fetch_conversations(
		self,
		user_id: str,
		filter: Optional[TextSearchFilter] = None,
	) -> PaginatedResult[ConversationSummary]:
		"""One summary per counterparty the user has active messages with.

		Pagination applies to counterparties, not messages. The page is built in
		three statements: the counterparty total, the page of counterparties, and
		one aggregate over that page giving each pair's last message, total and
		received ("unread") count. There are no read receipts, so unread means
		received from the counterparty.
		"""
		user_id = normalize_uuid(user_id, "user_id")
		filter = filter or TextSearchFilter()
		page = filter.pagination(default_limit=20)
		now = _utcnow()

		params = SqlParams()
		other, involving = _involving(params, user_id, now)
		counterparts = (
			f"WITH counterparts AS ("
			f"SELECT {other} AS other_user_id, max(m.created_at) AS last_at "
			f"FROM messages m WHERE {involving} GROUP BY 1"
			f") "
		)
		where = q.where_clause(q.text_search(params, "u.nickname", filter.search) if filter.search else None)
		from_counterparts = f"FROM counterparts c JOIN users u ON u.id = c.other_user_id{where}"

		async with self._connection() as conn:
			total = await conn.fetchval(f"{counterparts}SELECT count(*) {from_counterparts}", *params.values)
			limit_ph = params.add(page.limit)
			offset_ph = params.add(page.offset)
			page_records = await conn.fetch(
				f"{counterparts}SELECT c.other_user_id {from_counterparts} "
				f"ORDER BY c.last_at DESC, c.other_user_id LIMIT {limit_ph} OFFSET {offset_ph}",
				*params.values,
			)
			other_ids = [str(record["other_user_id"]) for record in page_records]
			summaries = await self._summaries(conn, user_id, other_ids, now) if other_ids else []

		return q.create_paginated_result(summaries, int(total or 0), page.page, page.limit)

	async def _summaries(
		self,
		conn: asyncpg.Connection,
		user_id: str,
		other_ids: List[str],
		now: datetime,
	) -> List[ConversationSummary]:
		params = SqlParams()
		other, involving = _involving(params, user_id, now)
		ids_ph = params.add(other_ids)
		records = await conn.fetch(
			f"WITH convo AS (SELECT m.*, {other} AS other_user_id FROM messages m WHERE {involving}) "
			"SELECT agg.other_user_id, agg.total_messages, agg.unread_count, "
			"u.nickname AS other_user_nickname, "
			"latest.id AS last_id, latest.text AS last_text, "
			"latest.created_at AS last_created_at, latest.sender_id AS last_sender_id "
			"FROM ("
			"SELECT other_user_id, count(*) AS total_messages, "
			"count(*) FILTER (WHERE sender_id = other_user_id) AS unread_count "
			f"FROM convo WHERE other_user_id = ANY({ids_ph}) GROUP BY other_user_id"
			") agg "
			"JOIN users u ON u.id = agg.other_user_id "
			"JOIN LATERAL ("
			"SELECT id, text, created_at, sender_id FROM convo "
			"WHERE convo.other_user_id = agg.other_user_id "
			"ORDER BY convo.created_at DESC, convo.id DESC LIMIT 1"
			") latest ON true",
			*params.values,
		)
		summaries = [
			ConversationSummary(
				other_user_id=str(record["other_user_id"]),
				other_user_nickname=record["other_user_nickname"],
				last_message=LastMessage(
					id=str(record["last_id"]),
					content=record["last_text"],
					created_at=record["last_created_at"],
					is_from_current_user=str(record["last_sender_id"]) == user_id,
				),
				unread_count=int(record["unread_count"]),
				total_messages=int(record["total_messages"]),
			)
			for record in records
		]
		summaries.sort(key=lambda summary: summary.last_message.created_at, reverse=True)
		return summaries

	@repository_operation
	async def delete_message(self, message_id: str, user_id: str) -> bool:
		"""Only the sender may delete; anything else returns False."""
		validate_uuid(message_id, "message_id")
		validate_uuid(user_id, "user_id")
		async with self._connection() as conn:
			rows = await conn.fetch(
				"DELETE FROM messages WHERE id = $1 AND sender_id = $2 RETURNING id",
				message_id,
				user_id,
			)
		return len(rows) > 0

	@repository_operation
	async def cleanup_expired_messages(self) -> int:
		async with self._connection() as conn:
			rows = await conn.fetch(
				"DELETE FROM messages WHERE expires_at IS NOT NULL AND expires_at < $1 RETURNING id",
				_utcnow(),
			)
		return len(rows)

	@repository_operation
	async def get_message_stats(self) -> MessageStats:
		now = _utcnow()
		today = now.replace(hour=0, minute=0, second=0, microsecond=0)
		total, today_count, active, expired, average = await self._gather(
			lambda c: c.fetchval("SELECT count(*) FROM messages"),
			lambda c: c.fetchval("SELECT count(*) FROM messages WHERE created_at >= $1", today),
			lambda c: c.fetchval(
				f"SELECT count(DISTINCT {_PAIR_KEY}) FROM messages WHERE expires_at IS NULL OR expires_at > $1",
				now,
			),
			lambda c: c.fetchval(
				"SELECT count(*) FROM messages WHERE expires_at IS NOT NULL AND expires_at < $1",
				now,
			),
			lambda c: c.fetchval(
				f"SELECT avg(message_count) FROM (SELECT count(*) AS message_count FROM messages GROUP BY {_PAIR_KEY}) "
				"AS conversation_counts"
			),
		)
		return MessageStats(
			total=int(total or 0),
			today_count=int(today_count or 0),
			active_conversations=int(active or 0),
			expired_messages=int(expired or 0),
			average_messages_per_conversation=average_from(average),
		)

	@repository_operation
	async def is_participant(self, message_id: str, user_id: str) -> bool:
		validate_uuid(message_id, "message_id")
		validate_uuid(user_id, "user_id")
		async with self._connection() as conn:
			record = await conn.fetchrow(
				"SELECT id FROM messages WHERE id = $1 AND (sender_id = $2 OR receiver_id = $2) LIMIT 1",
				message_id,
				user_id,
			)
		return record is not None

	@repository_operation
	async def mark_conversation_as_read(self, user_id: str, other_user_id: str) -> int:
		"""Count of active messages received from ``other_user_id``.

		Nothing is written: messages carry no read state.
		"""
		validate_uuid(user_id, "user_id")
		validate_uuid(other_user_id, "other_user_id")
		async with self._connection() as conn:
			value = await conn.fetchval(
				"SELECT count(*) FROM messages "
				"WHERE sender_id = $1 AND receiver_id = $2 AND (expires_at IS NULL OR expires_at > $3)",
				other_user_id,
				user_id,
				_utcnow(),
			)
		return int(value or 0)

	@repository_operation
	async def get_unread_message_count(self, user_id: str) -> int:
		validate_uuid(user_id, "user_id")
		async with self._connection() as conn:
			value = await conn.fetchval(
				"SELECT count(*) FROM messages WHERE receiver_id = $1 AND (expires_at IS NULL OR expires_at > $2)",
				user_id,
				_utcnow(),
			)
		return int(value or 0)
