"""Domain models for comments."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Mapping, Optional

from teake.domain.identity.models import User
from teake.domain.stories.models import Story

MAX_COMMENT_LENGTH = 500


@dataclass(slots=True)
class Comment:
	id: str
	story_id: str
	user_id: str
	text: str
	anonymous: bool = False
	nickname: Optional[str] = None
	created_at: Optional[datetime] = None
	user: Optional[User] = None
	story: Optional[Story] = None

	@classmethod
	def from_record(cls, record: Mapping[str, Any]) -> "Comment":
		return cls(
			id=str(record["id"]),
			story_id=str(record["story_id"]),
			user_id=str(record["user_id"]),
			text=record["text"],
			anonymous=bool(record.get("anonymous")),
			nickname=record.get("nickname"),
			created_at=record.get("created_at"),
		)

	@classmethod
	def from_detail_record(cls, record: Mapping[str, Any]) -> "Comment":
		comment = cls.from_record(record)
		comment.user = User.from_record(record, prefix="u_")
		comment.story = Story.from_record(record, prefix="s_")
		return comment

	def to_dict(self) -> dict:
		payload: dict[str, Any] = {
			"id": self.id,
			"story_id": self.story_id,
			"user_id": None if self.anonymous else self.user_id,
			"text": self.text,
			"anonymous": self.anonymous,
			"nickname": self.nickname,
			"created_at": self.created_at.isoformat() if self.created_at else None,
		}
		if self.user is not None and not self.anonymous:
			payload["user"] = {"id": self.user.id, "nickname": self.user.nickname}
		return payload


@dataclass(slots=True)
class TopCommenter:
	user_id: str
	nickname: Optional[str]
	comment_count: int


@dataclass(slots=True)
class CommentStats:
	total: int
	today_count: int
	average_per_story: float
	top_commenters: List[TopCommenter] = field(default_factory=list)
