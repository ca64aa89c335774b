import uuid
from unittest.mock import AsyncMock

import pytest

from teake.api import deps
from teake.domain.chat.repo import MessageRepository
from teake.domain.comments.repo import CommentRepository
from teake.domain.guys.repo import GuyRepository
from teake.domain.identity.models import User
from teake.domain.identity.repo import UserRepository
from teake.domain.stories.repo import StoryRepository

CALLER_ID = str(uuid.uuid4())


@pytest.fixture
def caller_headers():
	return {"X-User-Id": CALLER_ID}


@pytest.fixture
def caller():
	return User(
		id=CALLER_ID,
		email="caller@example.com",
		nickname="tea",
		verified=True,
		verification_status="approved",
	)


@pytest.fixture
def users(override, caller):
	repo = AsyncMock(spec=UserRepository)
	repo.find_by_id.return_value = caller
	override(deps.user_repository, lambda: repo)
	return repo


@pytest.fixture
def guys(override):
	repo = AsyncMock(spec=GuyRepository)
	override(deps.guy_repository, lambda: repo)
	return repo


@pytest.fixture
def stories(override):
	repo = AsyncMock(spec=StoryRepository)
	override(deps.story_repository, lambda: repo)
	return repo


@pytest.fixture
def comments(override):
	repo = AsyncMock(spec=CommentRepository)
	override(deps.comment_repository, lambda: repo)
	return repo


@pytest.fixture
def messages(override):
	repo = AsyncMock(spec=MessageRepository)
	override(deps.message_repository, lambda: repo)
	return repo
