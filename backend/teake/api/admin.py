"""Admin endpoints: verification review, platform stats and message purge."""

from __future__ import annotations

from dataclasses import asdict
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from teake.api.deps import (
	comment_repository,
	get_admin_user,
	guy_repository,
	message_repository,
	story_repository,
	user_repository,
)
from teake.api.schemas import BulkVerificationRequest, VerificationDecisionRequest, envelope, paginated
from teake.domain.chat.repo import MessageRepository
from teake.domain.comments.repo import CommentRepository
from teake.domain.common.query import TextSearchFilter
from teake.domain.guys.repo import GuyRepository
from teake.domain.identity.models import User
from teake.domain.identity.repo import UserRepository
from teake.domain.stories.repo import StoryRepository
from teake.maintenance.retention import purge_expired_messages
from teake.obs import metrics as obs_metrics

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/users")
async def list_users(
	status: Literal["pending", "approved", "rejected"] = Query(default="pending"),
	search: Optional[str] = Query(default=None),
	page: int = Query(default=1),
	limit: int = Query(default=10),
	_: User = Depends(get_admin_user),
	users: UserRepository = Depends(user_repository),
) -> dict:
	result = await users.find_by_verification_status(status, TextSearchFilter(page=page, limit=limit, search=search))
	return paginated(result)


@router.post("/users/verification/bulk")
async def bulk_decide_verification(
	payload: BulkVerificationRequest,
	_: User = Depends(get_admin_user),
	users: UserRepository = Depends(user_repository),
) -> dict:
	updated = await users.bulk_update_verification_status(payload.user_ids, payload.status, payload.rejection_reason)
	obs_metrics.inc_verification_decision(payload.status, len(updated))
	return envelope(updated, updated_count=len(updated))


@router.post("/users/{user_id}/verification")
async def decide_verification(
	user_id: str,
	payload: VerificationDecisionRequest,
	_: User = Depends(get_admin_user),
	users: UserRepository = Depends(user_repository),
) -> dict:
	user = await users.update_verification_status(user_id, payload.status, payload.rejection_reason)
	obs_metrics.inc_verification_decision(payload.status)
	return envelope(user)


@router.get("/stats")
async def platform_stats(
	_: User = Depends(get_admin_user),
	users: UserRepository = Depends(user_repository),
	guys: GuyRepository = Depends(guy_repository),
	stories: StoryRepository = Depends(story_repository),
	comments: CommentRepository = Depends(comment_repository),
	messages: MessageRepository = Depends(message_repository),
) -> dict:
	return envelope(
		{
			"users": asdict(await users.get_user_stats()),
			"guys": asdict(await guys.get_guy_stats()),
			"stories": asdict(await stories.get_story_stats()),
			"comments": asdict(await comments.get_comment_stats()),
			"messages": asdict(await messages.get_message_stats()),
		}
	)


@router.post("/messages/cleanup")
async def cleanup_messages(
	_: User = Depends(get_admin_user),
	messages: MessageRepository = Depends(message_repository),
) -> dict:
	return envelope(await purge_expired_messages(messages))
