import uuid

import pytest
from httpx import AsyncClient

from teake.domain.common.errors import DuplicateError, ErrorKind, RepositoryError, ValidationError
from teake.domain.common.query import create_paginated_result
from teake.domain.stories.models import Story
from teake.infra.auth import AuthenticatedUser, get_current_user
from teake.settings import settings

GUY_ID = str(uuid.uuid4())


def _story(**overrides) -> Story:
	values = {
		"id": str(uuid.uuid4()),
		"guy_id": GUY_ID,
		"user_id": str(uuid.uuid4()),
		"text": "met him at a cafe",
		"tags": ["good_vibes"],
	}
	values.update(overrides)
	return Story(**values)


@pytest.mark.asyncio
async def test_requests_without_identity_are_rejected(api_client: AsyncClient, stories):
	response = await api_client.get("/stories")
	assert response.status_code == 401
	assert response.json()["error"] == "invalid_token"
	stories.fetch_stories_feed.assert_not_called()


@pytest.mark.asyncio
async def test_feed_returns_envelope_with_pagination(api_client: AsyncClient, caller_headers, stories):
	stories.fetch_stories_feed.return_value = create_paginated_result([_story(comment_count=2)], 1, 1, 10)

	response = await api_client.get("/stories?tag_type=good_vibes", headers=caller_headers)

	assert response.status_code == 200
	body = response.json()
	assert body["success"] is True
	assert body["data"][0]["comment_count"] == 2
	assert body["pagination"]["total"] == 1
	(filter,), _ = stories.fetch_stories_feed.call_args
	assert filter.tag_type == "good_vibes"
	assert filter.sort_order == "desc"


@pytest.mark.asyncio
async def test_pending_user_cannot_post(api_client: AsyncClient, caller_headers, caller, users, stories):
	caller.verification_status = "pending"
	caller.verified = False

	response = await api_client.post(
		"/stories",
		json={"guy_id": GUY_ID, "text": "hello", "tags": ["red_flag"]},
		headers=caller_headers,
	)

	assert response.status_code == 403
	body = response.json()
	assert body == {"success": False, "error": "verification_pending", "request_id": body["request_id"]}
	assert response.headers["X-Request-Id"] == body["request_id"]
	stories.create.assert_not_called()


@pytest.mark.asyncio
async def test_approved_user_posts_story(api_client: AsyncClient, caller_headers, caller, users, stories):
	stories.create.side_effect = lambda data: _story(
		id=data["id"], user_id=data["user_id"], nickname=data["nickname"], tags=data["tags"]
	)

	response = await api_client.post(
		"/stories",
		json={"guy_id": GUY_ID, "text": "hello", "tags": ["red_flag"]},
		headers=caller_headers,
	)

	assert response.status_code == 201
	data = response.json()["data"]
	assert data["user_id"] == caller.id
	assert data["nickname"] == "tea"
	assert data["tags"] == ["red_flag"]


@pytest.mark.asyncio
async def test_anonymous_story_hides_author(api_client: AsyncClient, caller_headers, users, stories):
	stories.create.side_effect = lambda data: _story(
		user_id=data["user_id"], anonymous=data["anonymous"], nickname=data["nickname"]
	)

	response = await api_client.post(
		"/stories",
		json={"guy_id": GUY_ID, "text": "hello", "anonymous": True},
		headers=caller_headers,
	)

	data = response.json()["data"]
	assert data["user_id"] is None
	assert data["nickname"] is None


@pytest.mark.asyncio
async def test_unknown_tag_is_a_request_validation_error(api_client: AsyncClient, caller_headers, users, stories):
	response = await api_client.post(
		"/stories",
		json={"guy_id": GUY_ID, "text": "hello", "tags": ["green_flag"]},
		headers=caller_headers,
	)

	assert response.status_code == 400
	body = response.json()
	assert body["error"] == "validation_error"
	assert body["field"] == "tags.0"


@pytest.mark.asyncio
async def test_repository_validation_maps_to_400_with_field(api_client: AsyncClient, caller_headers, users, stories):
	stories.create.side_effect = ValidationError("Guy does not exist", "guy_id")

	response = await api_client.post("/stories", json={"guy_id": GUY_ID, "text": "hello"}, headers=caller_headers)

	assert response.status_code == 400
	body = response.json()
	assert body["error"] == "Guy does not exist"
	assert body["field"] == "guy_id"
	assert body["kind"] == "validation"


@pytest.mark.asyncio
async def test_duplicate_maps_to_409(api_client: AsyncClient, caller_headers, users, stories):
	stories.create.side_effect = DuplicateError("StoryRepository.create")

	response = await api_client.post("/stories", json={"guy_id": GUY_ID, "text": "hello"}, headers=caller_headers)

	assert response.status_code == 409
	assert response.json()["kind"] == "duplicate"


@pytest.mark.asyncio
async def test_internal_errors_hide_detail_in_production(api_client: AsyncClient, override, stories):
	settings.environment = "production"
	override(get_current_user, lambda: AuthenticatedUser(id=str(uuid.uuid4())))
	stories.get_trending_stories.side_effect = RepositoryError(
		"Database connection failed in StoryRepository.get_trending_stories",
		kind=ErrorKind.CONNECTION,
	)

	response = await api_client.get("/stories/trending")

	assert response.status_code == 500
	body = response.json()
	assert body["error"] == "Internal server error"
	assert "debug" not in body


@pytest.mark.asyncio
async def test_internal_errors_carry_debug_in_dev(api_client: AsyncClient, caller_headers, stories):
	stories.get_trending_stories.side_effect = RepositoryError("boom", kind=ErrorKind.DATABASE, code="XX000")

	response = await api_client.get("/stories/trending", headers=caller_headers)

	assert response.status_code == 500
	body = response.json()
	assert body["error"] == "boom"
	assert body["debug"]["code"] == "XX000"


@pytest.mark.asyncio
async def test_delete_story_requires_ownership(api_client: AsyncClient, caller_headers, stories):
	stories.is_owner.return_value = False

	response = await api_client.delete(f"/stories/{uuid.uuid4()}", headers=caller_headers)

	assert response.status_code == 403
	assert response.json()["error"] == "not_owner"
	stories.delete_with_comments.assert_not_called()


@pytest.mark.asyncio
async def test_delete_story_by_owner(api_client: AsyncClient, caller_headers, stories):
	stories.is_owner.return_value = True
	stories.delete_with_comments.return_value = True

	response = await api_client.delete(f"/stories/{uuid.uuid4()}", headers=caller_headers)

	assert response.status_code == 200
	assert response.json() == {"success": True, "deleted": True}


@pytest.mark.asyncio
async def test_comments_default_to_oldest_first(api_client: AsyncClient, caller_headers, comments):
	comments.find_by_story_id.return_value = create_paginated_result([], 0, 1, 20)
	story_id = str(uuid.uuid4())

	response = await api_client.get(f"/stories/{story_id}/comments", headers=caller_headers)

	assert response.status_code == 200
	(called_story, filter), _ = comments.find_by_story_id.call_args
	assert called_story == story_id
	assert filter.sort_order == "asc"
	assert filter.limit == 20


@pytest.mark.asyncio
async def test_rejected_user_cannot_comment(api_client: AsyncClient, caller_headers, caller, users, comments):
	caller.verification_status = "rejected"

	response = await api_client.post(f"/stories/{uuid.uuid4()}/comments", json={"text": "hi"}, headers=caller_headers)

	assert response.status_code == 403
	assert response.json()["error"] == "verification_rejected"
	comments.create.assert_not_called()
