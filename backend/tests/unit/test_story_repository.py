"""StoryRepository: feed composition, tag handling and transactional deletes."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import pytest

from teake.domain.common.errors import RepositoryError, ValidationError
from teake.domain.stories.repo import StoryFilter, StoryRepository
from teake.settings import settings

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def story_row(**overrides):
	row = {
		"id": str(uuid.uuid4()),
		"guy_id": str(uuid.uuid4()),
		"user_id": str(uuid.uuid4()),
		"text": "met him at a cafe",
		"tags": ["good_vibes"],
		"image_url": None,
		"anonymous": False,
		"nickname": "tea",
		"created_at": NOW,
	}
	row.update(overrides)
	return row


def feed_row(**overrides):
	row = story_row(**overrides)
	row["comment_count"] = overrides.get("comment_count", 0)
	row.update(
		{
			"g_id": row["guy_id"],
			"g_name": "Sam",
			"g_created_by_user_id": row["user_id"],
			"u_id": row["user_id"],
			"u_nickname": "tea",
			"u_verification_status": "approved",
			"u_verified": True,
		}
	)
	return row


def _new_story(**overrides):
	data = {
		"id": str(uuid.uuid4()),
		"guy_id": str(uuid.uuid4()),
		"user_id": str(uuid.uuid4()),
		"text": "hello",
		"tags": ["red_flag"],
	}
	data.update(overrides)
	return data


@pytest.mark.asyncio
async def test_create_rejects_unknown_tag(fake_pool, fake_conn):
	with pytest.raises(ValidationError) as excinfo:
		await StoryRepository(fake_pool).create(_new_story(tags=["red_flag", "green_flag"]))
	assert excinfo.value.field == "tags"
	assert fake_conn.calls == []


@pytest.mark.asyncio
async def test_create_rejects_text_over_limit(fake_pool, fake_conn):
	with pytest.raises(ValidationError) as excinfo:
		await StoryRepository(fake_pool).create(_new_story(text="x" * 1001))
	assert excinfo.value.field == "text"


@pytest.mark.asyncio
async def test_create_accepts_text_at_limit(fake_pool, fake_conn):
	data = _new_story(text="x" * 1000)
	fake_conn.on("SELECT id FROM guys", rows=[{"id": data["guy_id"]}])
	fake_conn.on("SELECT id FROM users", rows=[{"id": data["user_id"]}])
	fake_conn.on("INSERT INTO stories", rows=lambda query, args: [story_row(id=data["id"], text=data["text"])])

	story = await StoryRepository(fake_pool).create(data)

	assert len(story.text) == 1000


@pytest.mark.asyncio
async def test_create_requires_existing_guy(fake_pool, fake_conn):
	with pytest.raises(ValidationError) as excinfo:
		await StoryRepository(fake_pool).create(_new_story())
	assert excinfo.value.field == "guy_id"
	assert fake_conn.find("INSERT INTO stories") == []


@pytest.mark.asyncio
async def test_feed_joins_guy_and_author_and_counts_comments(fake_pool, fake_conn):
	fake_conn.on("SELECT count(*) FROM stories s", value=1)
	fake_conn.on("SELECT s.*", rows=[feed_row(comment_count=3)])

	result = await StoryRepository(fake_pool).fetch_stories_feed()

	(story,) = result.data
	assert story.comment_count == 3
	assert story.guy.name == "Sam"
	assert story.user.nickname == "tea"
	(select,) = fake_conn.find("SELECT s.*")
	assert "JOIN guys g ON g.id = s.guy_id" in select[1]
	assert "JOIN users u ON u.id = s.user_id" in select[1]
	assert "ORDER BY s.created_at DESC" in select[1]
	# default page size of the feed
	assert select[2][-2:] == (10, 0)


@pytest.mark.asyncio
async def test_feed_filters_by_tag_and_search(fake_pool, fake_conn):
	fake_conn.on("SELECT count(*) FROM stories s", value=0)

	await StoryRepository(fake_pool).fetch_stories_feed(
		StoryFilter(search="cafe", tag_type="red_flag", sort_order="asc", limit=500)
	)

	(select,) = fake_conn.find("SELECT s.*")
	assert "s.text ILIKE $1 OR g.name ILIKE $1 OR u.nickname ILIKE $1" in select[1]
	assert "$2 = ANY(s.tags)" in select[1]
	assert "ORDER BY s.created_at ASC" in select[1]
	assert select[2] == ("%cafe%", "red_flag", 100, 0)


@pytest.mark.asyncio
async def test_feed_rejects_unknown_tag_filter(fake_pool, fake_conn):
	with pytest.raises(ValidationError) as excinfo:
		await StoryRepository(fake_pool).fetch_stories_feed(StoryFilter(tag_type="green_flag"))
	assert excinfo.value.field == "tag_type"
	assert fake_conn.calls == []


@pytest.mark.asyncio
async def test_trending_uses_window_and_clamps_limit(fake_pool, fake_conn):
	fake_conn.on("LEFT JOIN comments", rows=[story_row(comment_count=9)])

	stories = await StoryRepository(fake_pool).get_trending_stories(limit=99)

	assert stories[0].comment_count == 9
	(call,) = fake_conn.find("LEFT JOIN comments")
	since, limit = call[2]
	assert limit == 50
	age = datetime.now(timezone.utc) - since
	assert abs(age.total_seconds() - settings.trending_window_days * 86400) < 60
	assert "ORDER BY count(c.id) DESC" in call[1]


@pytest.mark.asyncio
async def test_delete_with_comments_removes_comments_first(fake_pool, fake_conn):
	story_id = str(uuid.uuid4())
	fake_conn.on("DELETE FROM comments", rows=[{"id": str(uuid.uuid4())}])
	fake_conn.on("DELETE FROM stories", rows=[{"id": story_id}])

	assert await StoryRepository(fake_pool).delete_with_comments(story_id) is True

	assert fake_conn.events == ["begin", "fetch", "fetch", "commit"]
	assert fake_conn.queries()[0].startswith("DELETE FROM comments")
	assert fake_conn.queries()[1].startswith("DELETE FROM stories")


@pytest.mark.asyncio
async def test_delete_with_comments_rolls_back_on_failure(fake_pool, fake_conn):
	fake_conn.on("DELETE FROM comments", rows=[{"id": str(uuid.uuid4())}])
	fake_conn.on("DELETE FROM stories", error=ConnectionResetError("gone"))

	with pytest.raises(RepositoryError):
		await StoryRepository(fake_pool).delete_with_comments(str(uuid.uuid4()))

	assert fake_conn.events[-1] == "rollback"


@pytest.mark.asyncio
async def test_bulk_delete_empty_is_a_no_op(fake_pool, fake_conn):
	assert await StoryRepository(fake_pool).bulk_delete([]) == 0
	assert fake_conn.calls == []


@pytest.mark.asyncio
async def test_bulk_delete_counts_stories(fake_pool, fake_conn):
	ids = [str(uuid.uuid4()) for _ in range(2)]
	fake_conn.on("DELETE FROM comments", rows=[])
	fake_conn.on("DELETE FROM stories", rows=[{"id": story_id} for story_id in ids])

	assert await StoryRepository(fake_pool).bulk_delete(ids) == 2
	assert fake_conn.events[-1] == "commit"


@pytest.mark.asyncio
async def test_find_by_tag_type_validates_tag(fake_pool, fake_conn):
	with pytest.raises(ValidationError):
		await StoryRepository(fake_pool).find_by_tag_type("nope")


@pytest.mark.asyncio
async def test_get_story_stats(fake_pool, fake_conn):
	fake_conn.on("ANY(tags)", value=lambda query, args: {"good_vibes": 4, "red_flag": 2, "unsure": 1}[args[0]])
	fake_conn.on("image_url IS NOT NULL", value=3)
	fake_conn.on("avg(comment_count)", value=1.5)
	fake_conn.on("SELECT count(*) FROM stories", value=7)

	stats = await StoryRepository(fake_pool).get_story_stats()

	assert (stats.total, stats.positive, stats.negative, stats.neutral) == (7, 4, 2, 1)
	assert stats.with_images == 3
	assert stats.average_comments_per_story == 1.5
