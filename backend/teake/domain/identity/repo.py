"""Repository for user-related database operations."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional

from teake.domain.common import query as q
from teake.domain.common.errors import NotFoundError, ValidationError, repository_operation
from teake.domain.common.query import PaginatedResult, SqlParams, TextSearchFilter
from teake.domain.common.repository import BaseRepository
from teake.domain.common.validation import (
	normalize_uuid,
	validate_email,
	validate_phone,
	validate_required,
	validate_uuid,
)
from teake.domain.identity import policy
from teake.domain.identity.models import VERIFICATION_STATUSES, User, UserStats, verification_fields

logger = logging.getLogger(__name__)

_SEARCH_COLUMNS = ("nickname", "email", "phone")


def _check_status(status: str) -> None:
	if status not in VERIFICATION_STATUSES:
		raise ValidationError("Invalid verification status", "verification_status")


class UserRepository(BaseRepository[User]):
	table = "users"
	columns = (
		"id",
		"email",
		"phone",
		"nickname",
		"verified",
		"verification_status",
		"id_image_url",
		"id_type",
		"rejection_reason",
		"verified_at",
	)

	def _to_model(self, record: Mapping[str, Any]) -> User:
		return User.from_record(record)

	@repository_operation
	async def find_by_email(self, email: str) -> Optional[User]:
		validate_email(email)
		async with self._connection() as conn:
			record = await conn.fetchrow("SELECT * FROM users WHERE email = $1 LIMIT 1", email)
		return User.from_record(record) if record else None

	@repository_operation
	async def find_by_phone(self, phone: str) -> Optional[User]:
		validate_phone(phone)
		async with self._connection() as conn:
			record = await conn.fetchrow("SELECT * FROM users WHERE phone = $1 LIMIT 1", phone)
		return User.from_record(record) if record else None

	@repository_operation
	async def create(self, data: Mapping[str, Any], *, conn=None) -> User:
		"""Insert a user after checking email/phone are free.

		The unique constraints stay in place as a backstop for races between the
		lookup and the insert; those surface as ``DuplicateError``.
		"""
		validate_required(data, ["id"])
		email = data.get("email")
		if email:
			validate_email(email)
			if await self.find_by_email(email):
				raise ValidationError("User with this email already exists", "email")
		phone = data.get("phone")
		if phone:
			validate_phone(phone)
			if await self.find_by_phone(phone):
				raise ValidationError("User with this phone number already exists", "phone")
		return await super().create(data, conn=conn)

	@repository_operation
	async def update_profile(self, id: str, updates: Mapping[str, Any]) -> User:
		id = normalize_uuid(id)
		email = updates.get("email")
		if email:
			validate_email(email)
			existing = await self.find_by_email(email)
			if existing and existing.id != id:
				raise ValidationError("User with this email already exists", "email")
		phone = updates.get("phone")
		if phone:
			validate_phone(phone)
			existing = await self.find_by_phone(phone)
			if existing and existing.id != id:
				raise ValidationError("User with this phone number already exists", "phone")
		# Verification columns only move through update_verification_status.
		allowed = {
			key: value
			for key, value in updates.items()
			if key not in ("id", "verified", "verification_status", "verified_at", "rejection_reason")
		}
		user = await self.update(id, allowed)
		if user is None:
			raise NotFoundError("User", id)
		return user

	@repository_operation
	async def update_verification_status(
		self,
		id: str,
		status: str,
		rejection_reason: Optional[str] = None,
	) -> User:
		validate_uuid(id)
		_check_status(status)
		fields = verification_fields(status, rejection_reason, datetime.now(timezone.utc))
		user = await self.update(id, fields)
		if user is None:
			raise NotFoundError("User", id)
		logger.info("verification_status_updated", extra={"user_id": id, "status": status})
		return user

	@repository_operation
	async def bulk_update_verification_status(
		self,
		ids: Iterable[str],
		status: str,
		rejection_reason: Optional[str] = None,
	) -> List[User]:
		user_ids = list(ids)
		for user_id in user_ids:
			validate_uuid(user_id)
		_check_status(status)
		if not user_ids:
			return []
		fields = verification_fields(status, rejection_reason, datetime.now(timezone.utc))
		params = SqlParams()
		assignments = [f"{column} = {params.add(value)}" for column, value in fields.items()]
		query = (
			f"UPDATE users SET {', '.join(assignments)} "
			f"WHERE {q.in_list(params, 'id', user_ids)} RETURNING *"
		)
		async with self._connection() as conn:
			records = await conn.fetch(query, *params.values)
		logger.info("verification_status_bulk_updated", extra={"count": len(records), "status": status})
		return [User.from_record(record) for record in records]

	async def _paginated(
		self,
		condition: Optional[str],
		params: SqlParams,
		filter: TextSearchFilter,
	) -> PaginatedResult[User]:
		page = filter.pagination(default_limit=10)
		where = q.where_clause(condition)
		async with self._connection() as conn:
			total = await conn.fetchval(f"SELECT count(*) FROM users{where}", *params.values)
			limit_ph = params.add(page.limit)
			offset_ph = params.add(page.offset)
			records = await conn.fetch(
				f"SELECT * FROM users{where} ORDER BY created_at ASC LIMIT {limit_ph} OFFSET {offset_ph}",
				*params.values,
			)
		return q.create_paginated_result(
			[User.from_record(record) for record in records],
			int(total or 0),
			page.page,
			page.limit,
		)

	@repository_operation
	async def find_by_verification_status(
		self,
		status: str,
		filter: Optional[TextSearchFilter] = None,
	) -> PaginatedResult[User]:
		_check_status(status)
		filter = filter or TextSearchFilter()
		params = SqlParams()
		condition = q.combine_and(
			q.exact_match(params, "verification_status", status),
			q.text_search_any(params, _SEARCH_COLUMNS, filter.search) if filter.search else None,
		)
		return await self._paginated(condition, params, filter)

	async def find_verified_users(self, filter: Optional[TextSearchFilter] = None) -> PaginatedResult[User]:
		return await self.find_by_verification_status("approved", filter)

	async def find_pending_verification_users(self, filter: Optional[TextSearchFilter] = None) -> PaginatedResult[User]:
		return await self.find_by_verification_status("pending", filter)

	@repository_operation
	async def search_users(self, term: str, filter: Optional[TextSearchFilter] = None) -> PaginatedResult[User]:
		filter = filter or TextSearchFilter()
		params = SqlParams()
		condition = q.text_search_any(params, _SEARCH_COLUMNS, term)
		return await self._paginated(condition, params, filter)

	@repository_operation
	async def is_admin(self, user_id: str) -> bool:
		user = await self.find_by_id(user_id)
		if user is None:
			return False
		return policy.is_admin_email(user.email)

	@repository_operation
	async def get_user_stats(self) -> UserStats:
		by_status = "SELECT count(*) FROM users WHERE verification_status = $1"
		total, verified, pending, rejected = await self._gather(
			lambda c: c.fetchval("SELECT count(*) FROM users"),
			lambda c: c.fetchval(by_status, "approved"),
			lambda c: c.fetchval(by_status, "pending"),
			lambda c: c.fetchval(by_status, "rejected"),
		)
		return UserStats(
			total=int(total or 0),
			verified=int(verified or 0),
			pending=int(pending or 0),
			rejected=int(rejected or 0),
		)
