"""Domain models for user accounts."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal, Mapping, Optional

VerificationStatus = Literal["pending", "approved", "rejected"]
IdType = Literal["school_id", "national_id"]

VERIFICATION_STATUSES: tuple[str, ...] = ("pending", "approved", "rejected")
ID_TYPES: tuple[str, ...] = ("school_id", "national_id")

USER_COLUMNS: tuple[str, ...] = (
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
	"created_at",
)


@dataclass(slots=True)
class User:
	id: str
	email: Optional[str] = None
	phone: Optional[str] = None
	nickname: Optional[str] = None
	verified: bool = False
	verification_status: str = "pending"
	id_image_url: Optional[str] = None
	id_type: Optional[str] = None
	rejection_reason: Optional[str] = None
	verified_at: Optional[datetime] = None
	created_at: Optional[datetime] = None

	@classmethod
	def from_record(cls, record: Mapping[str, Any], prefix: str = "") -> "User":
		return cls(
			id=str(record[f"{prefix}id"]),
			email=record.get(f"{prefix}email"),
			phone=record.get(f"{prefix}phone"),
			nickname=record.get(f"{prefix}nickname"),
			verified=bool(record.get(f"{prefix}verified")),
			verification_status=record.get(f"{prefix}verification_status") or "pending",
			id_image_url=record.get(f"{prefix}id_image_url"),
			id_type=record.get(f"{prefix}id_type"),
			rejection_reason=record.get(f"{prefix}rejection_reason"),
			verified_at=record.get(f"{prefix}verified_at"),
			created_at=record.get(f"{prefix}created_at"),
		)

	@property
	def is_approved(self) -> bool:
		return self.verification_status == "approved"

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"email": self.email,
			"phone": self.phone,
			"nickname": self.nickname,
			"verified": self.verified,
			"verification_status": self.verification_status,
			"id_image_url": self.id_image_url,
			"id_type": self.id_type,
			"rejection_reason": self.rejection_reason,
			"verified_at": self.verified_at.isoformat() if self.verified_at else None,
			"created_at": self.created_at.isoformat() if self.created_at else None,
		}


@dataclass(slots=True)
class UserStats:
	total: int
	verified: int
	pending: int
	rejected: int


def verification_fields(
	status: str,
	rejection_reason: Optional[str],
	now: datetime,
) -> dict[str, Any]:
	"""Columns implied by a verification status.

	``verified`` holds exactly when approved; ``verified_at`` is only set when
	approved and ``rejection_reason`` only when rejected.
	"""
	return {
		"verification_status": status,
		"verified": status == "approved",
		"verified_at": now if status == "approved" else None,
		"rejection_reason": rejection_reason if status == "rejected" else None,
	}
