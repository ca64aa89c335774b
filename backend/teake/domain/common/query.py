"""Composable SQL predicate fragments, filters and pagination.

Fragments are plain SQL strings whose values are bound through a shared
``SqlParams`` instance, so placeholders stay numbered ``$1..$n`` in the order
the fragments were built.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, List, Literal, Optional, Sequence, TypeVar

from pydantic import BaseModel

T = TypeVar("T")

SortOrder = Literal["asc", "desc"]

MAX_PAGE_SIZE = 100


class SqlParams:
	"""Positional bind values for one asyncpg statement."""

	def __init__(self, *initial: Any) -> None:
		self.values: List[Any] = []
		for value in initial:
			self.add(value)

	def add(self, value: Any) -> str:
		self.values.append(value)
		return f"${len(self.values)}"

	def __len__(self) -> int:
		return len(self.values)


def escape_like(term: str) -> str:
	return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def text_search(params: SqlParams, column: str, term: str) -> str:
	"""Case-insensitive substring match."""
	return f"{column} ILIKE {params.add(f'%{escape_like(term)}%')}"


def text_search_any(params: SqlParams, columns: Sequence[str], term: str) -> Optional[str]:
	"""OR of case-insensitive substring matches sharing one bind value."""
	if not columns:
		return None
	placeholder = params.add(f"%{escape_like(term)}%")
	return combine_or(*(f"{column} ILIKE {placeholder}" for column in columns))


def exact_match(params: SqlParams, column: str, value: Any) -> str:
	return f"{column} = {params.add(value)}"


def value_range(params: SqlParams, column: str, minimum: Any = None, maximum: Any = None) -> Optional[str]:
	"""Inclusive range; either bound may be omitted."""
	conditions = []
	if minimum is not None:
		conditions.append(f"{column} >= {params.add(minimum)}")
	if maximum is not None:
		conditions.append(f"{column} <= {params.add(maximum)}")
	return combine_and(*conditions)


def date_range(
	params: SqlParams,
	column: str,
	start: Optional[datetime] = None,
	end: Optional[datetime] = None,
) -> Optional[str]:
	return value_range(params, column, start, end)


def in_list(params: SqlParams, column: str, values: Optional[Sequence[Any]]) -> Optional[str]:
	"""``column = ANY(values)``; an empty list adds no constraint."""
	if not values:
		return None
	return f"{column} = ANY({params.add(list(values))})"


def null_check(column: str, is_null: bool) -> str:
	return f"{column} IS NULL" if is_null else f"{column} IS NOT NULL"


def active_message(params: SqlParams, column: str, now: datetime) -> str:
	"""A message is active while its expiry is unset or in the future."""
	return f"({column} IS NULL OR {column} > {params.add(now)})"


def combine_and(*conditions: Optional[str]) -> Optional[str]:
	return _combine(" AND ", conditions)


def combine_or(*conditions: Optional[str]) -> Optional[str]:
	return _combine(" OR ", conditions)


def _combine(joiner: str, conditions: Sequence[Optional[str]]) -> Optional[str]:
	valid = [condition for condition in conditions if condition]
	if not valid:
		return None
	if len(valid) == 1:
		return valid[0]
	return "(" + joiner.join(valid) + ")"


def prefixed_columns(alias: str, columns: Sequence[str], prefix: str) -> str:
	"""``alias.col AS <prefix>col`` for each column, for flattening joined rows."""
	return ", ".join(f"{alias}.{column} AS {prefix}{column}" for column in columns)


def where_clause(condition: Optional[str]) -> str:
	return f" WHERE {condition}" if condition else ""


def order_by(column: str, direction: SortOrder = "asc") -> str:
	return f"{column} {'DESC' if direction == 'desc' else 'ASC'}"


@dataclass(slots=True, frozen=True)
class Pagination:
	page: int
	limit: int
	offset: int


def paginate(page: Optional[int] = 1, limit: Optional[int] = 10, *, max_limit: int = MAX_PAGE_SIZE) -> Pagination:
	"""Clamp ``limit`` to [1, max_limit] and derive a non-negative offset."""
	page = max(int(page or 1), 1)
	limit = 10 if limit is None else int(limit)
	limit = min(max(limit, 1), max_limit)
	return Pagination(page=page, limit=limit, offset=max((page - 1) * limit, 0))


def clamp(value: int, lower: int, upper: int) -> int:
	return min(max(value, lower), upper)


@dataclass(slots=True)
class PageFilter:
	page: int = 1
	limit: Optional[int] = None
	sort_order: Optional[SortOrder] = None

	def pagination(self, default_limit: int) -> Pagination:
		return paginate(self.page, self.limit if self.limit is not None else default_limit)


@dataclass(slots=True)
class TextSearchFilter(PageFilter):
	search: Optional[str] = None


@dataclass(slots=True)
class DateRangeFilter(TextSearchFilter):
	start_date: Optional[datetime] = None
	end_date: Optional[datetime] = None


class PaginationMeta(BaseModel):
	page: int
	limit: int
	total: int
	total_pages: int
	has_next: bool
	has_prev: bool


class PaginatedResult(BaseModel, Generic[T]):
	data: List[T]
	pagination: PaginationMeta

	model_config = {"arbitrary_types_allowed": True}


def create_paginated_result(data: Sequence[T], total: int, page: int, limit: int) -> PaginatedResult[T]:
	total_pages = -(-total // limit) if limit > 0 else 0
	return PaginatedResult(
		data=list(data),
		pagination=PaginationMeta(
			page=page,
			limit=limit,
			total=total,
			total_pages=total_pages,
			has_next=page * limit < total,
			has_prev=page > 1,
		),
	)
