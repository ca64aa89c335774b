"""Story feed, story posting and comment threads."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from teake.api.deps import comment_repository, get_verified_user, story_repository
from teake.api.schemas import CreateCommentRequest, CreateStoryRequest, envelope, paginated
from teake.domain.comments.repo import CommentRepository
from teake.domain.common.query import TextSearchFilter
from teake.domain.identity.models import User
from teake.domain.stories.repo import StoryFilter, StoryRepository
from teake.infra.auth import AuthenticatedUser, get_current_user
from teake.obs import metrics as obs_metrics

router = APIRouter(prefix="/stories", tags=["stories"])


@router.get("")
async def stories_feed(
	page: int = Query(default=1),
	limit: int = Query(default=10),
	search: Optional[str] = Query(default=None),
	tag_type: Optional[str] = Query(default=None),
	guy_id: Optional[str] = Query(default=None),
	user_id: Optional[str] = Query(default=None),
	start_date: Optional[datetime] = Query(default=None),
	end_date: Optional[datetime] = Query(default=None),
	sort_order: Literal["asc", "desc"] = Query(default="desc"),
	_: AuthenticatedUser = Depends(get_current_user),
	stories: StoryRepository = Depends(story_repository),
) -> dict:
	result = await stories.fetch_stories_feed(
		StoryFilter(
			page=page,
			limit=limit,
			sort_order=sort_order,
			search=search,
			start_date=start_date,
			end_date=end_date,
			tag_type=tag_type,
			guy_id=guy_id,
			user_id=user_id,
		)
	)
	return paginated(result)


@router.get("/trending")
async def trending_stories(
	limit: int = Query(default=10),
	_: AuthenticatedUser = Depends(get_current_user),
	stories: StoryRepository = Depends(story_repository),
) -> dict:
	return envelope(await stories.get_trending_stories(limit))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_story(
	payload: CreateStoryRequest,
	author: User = Depends(get_verified_user),
	stories: StoryRepository = Depends(story_repository),
) -> dict:
	story = await stories.create(
		{
			"id": str(uuid.uuid4()),
			"guy_id": payload.guy_id,
			"user_id": author.id,
			"text": payload.text,
			"tags": list(payload.tags),
			"image_url": payload.image_url,
			"anonymous": payload.anonymous,
			"nickname": None if payload.anonymous else author.nickname,
		}
	)
	obs_metrics.inc_story_created()
	return envelope(story)


@router.delete("/{story_id}")
async def delete_story(
	story_id: str,
	user: AuthenticatedUser = Depends(get_current_user),
	stories: StoryRepository = Depends(story_repository),
) -> dict:
	if not await stories.is_owner(story_id, user.id):
		raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="not_owner")
	if not await stories.delete_with_comments(story_id):
		raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="story_not_found")
	return envelope(deleted=True)


@router.get("/{story_id}/comments")
async def list_comments(
	story_id: str,
	page: int = Query(default=1),
	limit: int = Query(default=20),
	search: Optional[str] = Query(default=None),
	sort_order: Literal["asc", "desc"] = Query(default="asc"),
	_: AuthenticatedUser = Depends(get_current_user),
	comments: CommentRepository = Depends(comment_repository),
) -> dict:
	result = await comments.find_by_story_id(
		story_id,
		TextSearchFilter(page=page, limit=limit, sort_order=sort_order, search=search),
	)
	return paginated(result)


@router.post("/{story_id}/comments", status_code=status.HTTP_201_CREATED)
async def create_comment(
	story_id: str,
	payload: CreateCommentRequest,
	author: User = Depends(get_verified_user),
	comments: CommentRepository = Depends(comment_repository),
) -> dict:
	comment = await comments.create(
		{
			"id": str(uuid.uuid4()),
			"story_id": story_id,
			"user_id": author.id,
			"text": payload.text,
			"anonymous": payload.anonymous,
			"nickname": None if payload.anonymous else author.nickname,
		}
	)
	return envelope(comment)
