"""Input validation helpers shared by the repositories."""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping

from email_validator import EmailNotValidError, validate_email as _validate_email_address

from teake.domain.common.errors import ValidationError

_PHONE_RE = re.compile(r"^\+?[\d\s\-()]{10,}$")
_UUID_RE = re.compile(
	r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
	re.IGNORECASE,
)


def validate_required(data: Mapping[str, Any], fields: Iterable[str]) -> None:
	"""Raise on the first field that is missing, None or an empty string."""
	for field in fields:
		value = data.get(field)
		if value is None or value == "":
			raise ValidationError(f"{field} is required", field)


def validate_email(email: str) -> None:
	try:
		_validate_email_address(email, check_deliverability=False)
	except EmailNotValidError:
		raise ValidationError("Invalid email format", "email") from None


def validate_phone(phone: str) -> None:
	if not _PHONE_RE.match(phone or ""):
		raise ValidationError("Invalid phone number format", "phone")


def is_valid_uuid(value: Any) -> bool:
	return isinstance(value, str) and bool(_UUID_RE.match(value))


def validate_uuid(value: Any, field: str = "id") -> None:
	if not is_valid_uuid(value):
		raise ValidationError(f"Invalid UUID format for {field}", field)


def normalize_uuid(value: Any, field: str = "id") -> str:
	"""Validate ``value`` and return it in Postgres' lower-case text form.

	Ids read back from the database are always lower case, so anything compared
	against them as a string goes through here first.
	"""
	validate_uuid(value, field)
	return value.lower()


def validate_text(text: Any, *, field: str = "text", max_length: int, label: str) -> None:
	"""Reject blank text and text longer than ``max_length`` characters."""
	if text is None:
		return
	if len(text) > max_length:
		raise ValidationError(f"{label} cannot exceed {max_length} characters", field)
	if not text.strip():
		raise ValidationError(f"{label} cannot be empty", field)


def validate_age(age: Any) -> None:
	if age is None:
		return
	if isinstance(age, bool) or not isinstance(age, int) or age < 0 or age > 150:
		raise ValidationError("Age must be between 0 and 150", "age")
