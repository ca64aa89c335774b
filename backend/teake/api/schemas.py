"""Pydantic request schemas and the JSON response envelope."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field

from teake.domain.chat.models import MAX_MESSAGE_LENGTH
from teake.domain.comments.models import MAX_COMMENT_LENGTH
from teake.domain.common.query import PaginatedResult
from teake.domain.guys.models import MAX_AGE, MIN_AGE
from teake.domain.stories.models import MAX_STORY_LENGTH, TagType


class CreateStoryRequest(BaseModel):
	guy_id: str
	text: str = Field(..., min_length=1, max_length=MAX_STORY_LENGTH)
	tags: List[TagType] = Field(default_factory=list)
	image_url: Optional[str] = None
	anonymous: bool = False


class CreateCommentRequest(BaseModel):
	text: str = Field(..., min_length=1, max_length=MAX_COMMENT_LENGTH)
	anonymous: bool = False


class CreateGuyRequest(BaseModel):
	name: str = Field(..., min_length=1)
	phone: Optional[str] = None
	socials: Optional[str] = None
	location: Optional[str] = None
	age: Optional[int] = Field(default=None, ge=MIN_AGE, le=MAX_AGE)


class SendMessageRequest(BaseModel):
	receiver_id: str
	text: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)
	expires_at: Optional[datetime] = None


class VerificationDecisionRequest(BaseModel):
	status: Literal["pending", "approved", "rejected"]
	rejection_reason: Optional[str] = None


class BulkVerificationRequest(VerificationDecisionRequest):
	user_ids: List[str] = Field(..., min_length=1, max_length=100)


def to_json(item: Any) -> Any:
	to_dict = getattr(item, "to_dict", None)
	if callable(to_dict):
		return to_dict()
	return item


def envelope(data: Any = None, **extra: Any) -> dict[str, Any]:
	"""``{"success": true, "data": ...}`` plus any extra top-level keys."""
	payload: dict[str, Any] = {"success": True}
	if data is not None:
		payload["data"] = [to_json(item) for item in data] if isinstance(data, list) else to_json(data)
	payload.update(extra)
	return payload


def paginated(result: PaginatedResult) -> dict[str, Any]:
	return envelope(list(result.data), pagination=result.pagination.model_dump())
