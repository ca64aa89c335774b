"""FastAPI dependencies: repository providers and account gates."""

from __future__ import annotations

from fastapi import Depends, HTTPException, status

from teake.domain.chat.repo import MessageRepository
from teake.domain.comments.repo import CommentRepository
from teake.domain.guys.repo import GuyRepository
from teake.domain.identity import policy
from teake.domain.identity.models import User
from teake.domain.identity.repo import UserRepository
from teake.domain.stories.repo import StoryRepository
from teake.infra.auth import AuthenticatedUser, get_current_user


def user_repository() -> UserRepository:
	return UserRepository()


def guy_repository() -> GuyRepository:
	return GuyRepository()


def story_repository() -> StoryRepository:
	return StoryRepository()


def comment_repository() -> CommentRepository:
	return CommentRepository()


def message_repository() -> MessageRepository:
	return MessageRepository()


async def get_verified_user(
	user: AuthenticatedUser = Depends(get_current_user),
	users: UserRepository = Depends(user_repository),
) -> User:
	"""The caller's account, which must have an approved verification."""
	return policy.ensure_verified(await users.find_by_id(user.id))


async def get_admin_user(
	user: AuthenticatedUser = Depends(get_current_user),
	users: UserRepository = Depends(user_repository),
) -> User:
	account = await users.find_by_id(user.id)
	if account is None or not policy.is_admin_email(account.email):
		raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="insufficient_role")
	return account
