"""Domain models for stories."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Literal, Mapping, Optional

from teake.domain.guys.models import Guy
from teake.domain.identity.models import User

TagType = Literal["red_flag", "good_vibes", "unsure"]
TAG_TYPES: tuple[str, ...] = ("red_flag", "good_vibes", "unsure")

MAX_STORY_LENGTH = 1000

STORY_COLUMNS: tuple[str, ...] = (
	"id",
	"guy_id",
	"user_id",
	"text",
	"tags",
	"image_url",
	"anonymous",
	"nickname",
	"created_at",
)


@dataclass(slots=True)
class Story:
	id: str
	guy_id: str
	user_id: str
	text: str
	tags: List[str]
	image_url: Optional[str] = None
	anonymous: bool = False
	nickname: Optional[str] = None
	created_at: Optional[datetime] = None
	comment_count: Optional[int] = None
	guy: Optional[Guy] = None
	user: Optional[User] = None

	@classmethod
	def from_record(cls, record: Mapping[str, Any], prefix: str = "") -> "Story":
		comment_count = record.get("comment_count") if not prefix else None
		return cls(
			id=str(record[f"{prefix}id"]),
			guy_id=str(record[f"{prefix}guy_id"]),
			user_id=str(record[f"{prefix}user_id"]),
			text=record[f"{prefix}text"],
			tags=list(record.get(f"{prefix}tags") or []),
			image_url=record.get(f"{prefix}image_url"),
			anonymous=bool(record.get(f"{prefix}anonymous")),
			nickname=record.get(f"{prefix}nickname"),
			created_at=record.get(f"{prefix}created_at"),
			comment_count=int(comment_count) if comment_count is not None else None,
		)

	@classmethod
	def from_feed_record(cls, record: Mapping[str, Any]) -> "Story":
		story = cls.from_record(record)
		story.guy = Guy.from_record(record, prefix="g_")
		story.user = User.from_record(record, prefix="u_")
		return story

	def to_dict(self) -> dict:
		payload: dict[str, Any] = {
			"id": self.id,
			"guy_id": self.guy_id,
			"user_id": None if self.anonymous else self.user_id,
			"text": self.text,
			"tags": list(self.tags),
			"image_url": self.image_url,
			"anonymous": self.anonymous,
			"nickname": self.nickname,
			"created_at": self.created_at.isoformat() if self.created_at else None,
		}
		if self.comment_count is not None:
			payload["comment_count"] = self.comment_count
		if self.guy is not None:
			payload["guy"] = self.guy.to_dict()
		if self.user is not None and not self.anonymous:
			payload["user"] = {"id": self.user.id, "nickname": self.user.nickname}
		return payload


@dataclass(slots=True)
class StoryStats:
	total: int
	positive: int
	negative: int
	neutral: int
	with_images: int
	average_comments_per_story: float
