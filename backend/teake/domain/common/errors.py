"""Repository error taxonomy and database error translation.

Every failure raised out of a repository is a ``RepositoryError`` whose ``kind``
says how the HTTP boundary should treat it. The subclasses below only pin the
kind so call sites can catch e.g. ``ValidationError`` directly.
"""

from __future__ import annotations

import asyncio
import enum
import functools
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

import asyncpg

from teake.obs import logging as obs_logging
from teake.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(str, enum.Enum):
	VALIDATION = "validation"
	NOT_FOUND = "not_found"
	DUPLICATE = "duplicate"
	FOREIGN_KEY = "foreign_key"
	CONNECTION = "connection"
	TABLE_NOT_FOUND = "table_not_found"
	COLUMN_NOT_FOUND = "column_not_found"
	DATABASE = "database"
	UNKNOWN = "unknown"


class RepositoryError(Exception):
	"""Classified repository failure carrying the original cause."""

	kind: ErrorKind = ErrorKind.UNKNOWN

	def __init__(
		self,
		message: str,
		*,
		kind: ErrorKind | None = None,
		field: Optional[str] = None,
		context: Optional[str] = None,
		code: Optional[str] = None,
		cause: Optional[BaseException] = None,
	) -> None:
		super().__init__(message)
		self.message = message
		if kind is not None:
			self.kind = kind
		self.field = field
		self.context = context
		self.code = code
		self.cause = cause

	def to_dict(self) -> dict[str, Any]:
		payload: dict[str, Any] = {"kind": self.kind.value, "message": self.message}
		if self.field:
			payload["field"] = self.field
		if self.context:
			payload["context"] = self.context
		if self.code:
			payload["code"] = self.code
		return payload


class ValidationError(RepositoryError):
	kind = ErrorKind.VALIDATION

	def __init__(self, message: str, field: Optional[str] = None, **kwargs: Any) -> None:
		super().__init__(message, field=field, **kwargs)


class NotFoundError(RepositoryError):
	kind = ErrorKind.NOT_FOUND

	def __init__(self, resource: str, id: Optional[str] = None, **kwargs: Any) -> None:
		message = f"{resource} with id '{id}' not found" if id else f"{resource} not found"
		super().__init__(message, **kwargs)
		self.resource = resource


class DuplicateError(RepositoryError):
	kind = ErrorKind.DUPLICATE

	def __init__(self, resource: str, field: Optional[str] = None, **kwargs: Any) -> None:
		message = (
			f"{resource} with this {field} already exists" if field else f"{resource} already exists"
		)
		super().__init__(message, field=field, **kwargs)


class ForeignKeyError(RepositoryError):
	kind = ErrorKind.FOREIGN_KEY

	def __init__(self, resource: str, referenced: str = "referenced record", **kwargs: Any) -> None:
		super().__init__(
			f"Cannot create/update {resource}: referenced {referenced} does not exist",
			**kwargs,
		)


_CONNECTION_ERRORS = (
	asyncpg.PostgresConnectionError,
	asyncpg.InterfaceError,
	ConnectionError,
	OSError,
	asyncio.TimeoutError,
)


def translate_error(exc: BaseException, context: str) -> RepositoryError:
	"""Classify ``exc`` into the repository error taxonomy.

	Already-classified errors pass through untouched so that validation raised
	inside a repository method keeps its field.
	"""
	if isinstance(exc, RepositoryError):
		return exc

	code = getattr(exc, "sqlstate", None)
	detail = str(exc) or exc.__class__.__name__
	if code == "23505":
		error: RepositoryError = DuplicateError(
			_resource_name(context), field=_constraint_field(exc), code=code, context=context, cause=exc
		)
	elif code == "23503":
		error = ForeignKeyError(_resource_name(context), code=code, context=context, cause=exc)
	elif code == "23502":
		error = ValidationError(
			"Required field is missing", getattr(exc, "column_name", None), code=code, context=context, cause=exc
		)
	elif code == "23514":
		error = ValidationError("Invalid data provided", code=code, context=context, cause=exc)
	elif code == "42P01":
		error = RepositoryError(
			f"Table does not exist in {context}", kind=ErrorKind.TABLE_NOT_FOUND, code=code, context=context, cause=exc
		)
	elif code == "42703":
		error = RepositoryError(
			f"Column does not exist in {context}", kind=ErrorKind.COLUMN_NOT_FOUND, code=code, context=context, cause=exc
		)
	elif code and code.startswith("08"):
		error = RepositoryError(
			f"Database connection failed in {context}", kind=ErrorKind.CONNECTION, code=code, context=context, cause=exc
		)
	elif code:
		error = RepositoryError(
			f"Database operation failed in {context}: {detail}",
			kind=ErrorKind.DATABASE,
			code=code,
			context=context,
			cause=exc,
		)
	elif isinstance(exc, _CONNECTION_ERRORS):
		error = RepositoryError(
			f"Database connection failed in {context}", kind=ErrorKind.CONNECTION, context=context, cause=exc
		)
	else:
		error = RepositoryError(
			f"Operation failed in {context}: {detail}", kind=ErrorKind.UNKNOWN, context=context, cause=exc
		)

	obs_metrics.inc_repository_error(context, error.kind.value)
	if error.kind in (ErrorKind.DUPLICATE, ErrorKind.FOREIGN_KEY, ErrorKind.VALIDATION):
		logger.warning("repository_integrity_error", extra={"context": context, "kind": error.kind.value, "code": code})
	else:
		logger.error(
			"repository_error",
			extra={"context": context, "kind": error.kind.value, "code": code},
			exc_info=(type(exc), exc, exc.__traceback__),
		)
	return error


def _resource_name(context: str) -> str:
	"""``"UserRepository.create"`` -> ``"User"``."""
	owner = context.split(".", 1)[0]
	resource = owner.removesuffix("Repository")
	return resource if resource and resource != owner else "Record"


def _constraint_field(exc: BaseException) -> Optional[str]:
	constraint = getattr(exc, "constraint_name", None) or ""
	for field in ("email", "phone"):
		if field in constraint:
			return field
	return None


def repository_operation(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
	"""Route every failure of a repository method through ``translate_error``.

	The context label is ``<RepositoryClass>.<method>`` of the bound instance;
	log lines emitted during the call carry it as ``operation``.
	"""

	@functools.wraps(func)
	async def wrapper(self, *args: Any, **kwargs: Any) -> T:
		context = f"{type(self).__name__}.{func.__name__}"
		with obs_logging.operation_scope(context):
			try:
				return await func(self, *args, **kwargs)
			except RepositoryError:
				raise
			except Exception as exc:
				raise translate_error(exc, context) from exc

	return wrapper
