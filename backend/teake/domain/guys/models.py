"""Domain models for guy profiles."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Mapping, Optional

MIN_AGE = 0
MAX_AGE = 150

GUY_COLUMNS: tuple[str, ...] = (
	"id",
	"name",
	"phone",
	"socials",
	"location",
	"age",
	"created_by_user_id",
	"created_at",
)


@dataclass(slots=True)
class Guy:
	id: str
	name: Optional[str] = None
	phone: Optional[str] = None
	socials: Optional[str] = None
	location: Optional[str] = None
	age: Optional[int] = None
	created_by_user_id: Optional[str] = None
	created_at: Optional[datetime] = None
	story_count: Optional[int] = None

	@classmethod
	def from_record(cls, record: Mapping[str, Any], prefix: str = "") -> "Guy":
		story_count = record.get("story_count") if not prefix else None
		creator = record.get(f"{prefix}created_by_user_id")
		return cls(
			id=str(record[f"{prefix}id"]),
			name=record.get(f"{prefix}name"),
			phone=record.get(f"{prefix}phone"),
			socials=record.get(f"{prefix}socials"),
			location=record.get(f"{prefix}location"),
			age=record.get(f"{prefix}age"),
			created_by_user_id=str(creator) if creator is not None else None,
			created_at=record.get(f"{prefix}created_at"),
			story_count=int(story_count) if story_count is not None else None,
		)

	def to_dict(self) -> dict:
		payload = {
			"id": self.id,
			"name": self.name,
			"phone": self.phone,
			"socials": self.socials,
			"location": self.location,
			"age": self.age,
			"created_by_user_id": self.created_by_user_id,
			"created_at": self.created_at.isoformat() if self.created_at else None,
		}
		if self.story_count is not None:
			payload["story_count"] = self.story_count
		return payload


@dataclass(slots=True)
class LocationCount:
	location: str
	count: int


@dataclass(slots=True)
class GuyStats:
	total: int
	with_stories: int
	average_age: float
	top_locations: List[LocationCount] = field(default_factory=list)
