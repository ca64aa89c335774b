"""Identity policies: admin membership and the verification gate."""

from __future__ import annotations

from typing import Iterable, Optional

from teake.domain.identity.models import User
from teake.settings import settings


class IdentityPolicyError(Exception):
	"""Raised when a user may not perform an action."""

	reason: str = "forbidden"

	def __init__(self, reason: str | None = None) -> None:
		super().__init__(reason or self.reason)
		if reason:
			self.reason = reason


def is_admin_email(email: Optional[str], admin_emails: Optional[Iterable[str]] = None) -> bool:
	if not email:
		return False
	allowed = settings.admin_emails if admin_emails is None else admin_emails
	normalised = email.strip().lower()
	return any(normalised == candidate.strip().lower() for candidate in allowed)


def ensure_verified(user: Optional[User]) -> User:
	"""Only approved users may post stories or send messages."""
	if user is None:
		raise IdentityPolicyError("user_not_found")
	if user.verification_status == "pending":
		raise IdentityPolicyError("verification_pending")
	if user.verification_status == "rejected":
		raise IdentityPolicyError("verification_rejected")
	if not user.is_approved:
		raise IdentityPolicyError("verification_required")
	return user
