"""JSON logging with request and repository-operation context.

Context fields live in ``ContextVar``s so that concurrent requests never see
each other's ids. The formatter merges them with the ``extra`` of each record,
redacting user content (story/comment/message text, contact details, ID images).
"""

from __future__ import annotations

import json
import logging
import random
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from teake.settings import settings

_LOGGER_NAME = "teake"

# Output key -> context variable.
_CONTEXT: Dict[str, ContextVar[Optional[str]]] = {
	"request_id": ContextVar("teake_request_id", default=None),
	"route": ContextVar("teake_route", default=None),
	"user_id": ContextVar("teake_user_id", default=None),
	"ip": ContextVar("teake_client_ip", default=None),
	"operation": ContextVar("teake_operation", default=None),
}

_REDACTED_PARTS = frozenset(
	{"email", "phone", "text", "content", "token", "secret", "authorization", "password", "image"}
)
_MAX_STRING = 256
_MAX_ITEMS = 10

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def bind_context(**fields: Optional[str]) -> Dict[str, Token]:
	"""Set context fields (``request_id``, ``route``, ``user_id``, ``ip``, ``operation``).

	``None`` values are skipped. Returns tokens for :func:`reset_context`.
	"""
	tokens: Dict[str, Token] = {}
	for key, value in fields.items():
		if value is not None:
			tokens[key] = _CONTEXT[key].set(value)
	return tokens


def reset_context(tokens: Dict[str, Token]) -> None:
	for key, token in tokens.items():
		_CONTEXT[key].reset(token)


@contextmanager
def operation_scope(label: str) -> Iterator[None]:
	"""Tag log lines emitted inside a repository call with its operation label.

	Nested calls keep the outermost label, so a cascade logs under the method
	that started it.
	"""
	if _CONTEXT["operation"].get() is not None:
		yield
		return
	tokens = bind_context(operation=label)
	try:
		yield
	finally:
		reset_context(tokens)


def current_request_id() -> Optional[str]:
	return _CONTEXT["request_id"].get()


def _scrub(key: str, value: Any) -> Any:
	if _REDACTED_PARTS.intersection(key.lower().split("_")):
		return "[redacted]"
	if isinstance(value, str) and len(value) > _MAX_STRING:
		return value[:_MAX_STRING] + "…"
	if isinstance(value, dict):
		items = list(value.items())
		return {str(k): _scrub(str(k), v) for k, v in items[:_MAX_ITEMS]}
	if isinstance(value, (list, tuple, set)):
		items = list(value)
		trimmed = [_scrub(key, item) for item in items[:_MAX_ITEMS]]
		if len(items) > _MAX_ITEMS:
			trimmed.append(f"+{len(items) - _MAX_ITEMS} more")
		return trimmed
	if isinstance(value, datetime):
		return value.isoformat()
	return value


class JSONLogFormatter(logging.Formatter):
	"""One JSON object per line: base fields, bound context, then ``extra``."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (match logging api)
		payload: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"msg": record.getMessage(),
			"logger": record.name,
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		for key, variable in _CONTEXT.items():
			value = variable.get()
			if value:
				payload[key] = value
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		for key, value in record.__dict__.items():
			if key not in _RECORD_ATTRS:
				payload[key] = _scrub(key, value)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Randomly sample info-level logs, keep warnings/errors."""

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO:
			return True
		rate = max(0.0, min(1.0, settings.obs_log_sampling_rate_info))
		return rate >= 1.0 or random.random() < rate


def configure_logging() -> logging.Logger:
	"""Route the root logger through a single JSON handler."""
	root = logging.getLogger()
	root.handlers.clear()
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root.addHandler(handler)
	root.setLevel(settings.obs_log_level)
	return logging.getLogger(_LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _LOGGER_NAME)
