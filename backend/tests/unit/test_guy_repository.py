"""GuyRepository behaviour, including the guy -> stories -> comments cascade."""

from __future__ import annotations

import uuid

import pytest

from teake.domain.common.errors import ErrorKind, RepositoryError, ValidationError
from teake.domain.common.query import SqlParams, TextSearchFilter
from teake.domain.guys.repo import GuyRepository


def guy_row(**overrides):
	row = {
		"id": str(uuid.uuid4()),
		"name": "Sam",
		"phone": None,
		"socials": None,
		"location": "Montreal",
		"age": 30,
		"created_by_user_id": str(uuid.uuid4()),
		"created_at": None,
	}
	row.update(overrides)
	return row


def _new_guy(**overrides):
	data = {"id": str(uuid.uuid4()), "name": "Sam", "created_by_user_id": str(uuid.uuid4())}
	data.update(overrides)
	return data


@pytest.mark.asyncio
@pytest.mark.parametrize("age", [-1, 151, 200])
async def test_create_rejects_out_of_range_age(fake_pool, fake_conn, age):
	with pytest.raises(ValidationError) as excinfo:
		await GuyRepository(fake_pool).create(_new_guy(age=age))
	assert excinfo.value.field == "age"
	assert fake_conn.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("age", [0, 150])
async def test_create_accepts_age_bounds(fake_pool, fake_conn, age):
	data = _new_guy(age=age)
	fake_conn.on("SELECT id FROM users", rows=[{"id": data["created_by_user_id"]}])
	fake_conn.on("INSERT INTO guys", rows=lambda query, args: [guy_row(id=data["id"], age=age)])

	guy = await GuyRepository(fake_pool).create(data)

	assert guy.age == age
	assert len(fake_conn.find("INSERT INTO guys")) == 1


@pytest.mark.asyncio
async def test_create_requires_existing_creator(fake_pool, fake_conn):
	fake_conn.on("SELECT id FROM users", rows=[])

	with pytest.raises(ValidationError) as excinfo:
		await GuyRepository(fake_pool).create(_new_guy())

	assert excinfo.value.field == "created_by_user_id"
	assert fake_conn.find("INSERT INTO guys") == []


@pytest.mark.asyncio
async def test_create_requires_name(fake_pool, fake_conn):
	with pytest.raises(ValidationError) as excinfo:
		await GuyRepository(fake_pool).create(_new_guy(name=""))
	assert excinfo.value.field == "name"


@pytest.mark.asyncio
async def test_delete_with_stories_runs_cascade_in_one_transaction(fake_pool, fake_conn):
	guy_id = str(uuid.uuid4())
	story_ids = [str(uuid.uuid4()), str(uuid.uuid4())]
	fake_conn.on("SELECT id FROM stories WHERE guy_id", rows=[{"id": story_id} for story_id in story_ids])
	fake_conn.on("DELETE FROM comments", rows=[{"id": str(uuid.uuid4())} for _ in range(3)])
	fake_conn.on("DELETE FROM stories", rows=[{"id": story_id} for story_id in story_ids])
	fake_conn.on("DELETE FROM guys", rows=[{"id": guy_id}])

	deleted = await GuyRepository(fake_pool).delete_with_stories(guy_id)

	assert deleted is True
	assert fake_conn.events[0] == "begin"
	assert fake_conn.events[-1] == "commit"
	statements = [query.split(" WHERE ")[0] for query in fake_conn.queries()]
	assert statements == [
		"SELECT id FROM stories",
		"DELETE FROM comments",
		"DELETE FROM stories",
		"DELETE FROM guys",
	]
	(comment_delete,) = fake_conn.find("DELETE FROM comments")
	assert comment_delete[2] == (story_ids,)


@pytest.mark.asyncio
async def test_delete_with_stories_rolls_back_when_a_step_fails(fake_pool, fake_conn):
	guy_id = str(uuid.uuid4())
	fake_conn.on("SELECT id FROM stories WHERE guy_id", rows=[{"id": str(uuid.uuid4())}])
	fake_conn.on("DELETE FROM comments", rows=[])
	fake_conn.on("DELETE FROM stories", error=RuntimeError("disk full"))

	with pytest.raises(RepositoryError) as excinfo:
		await GuyRepository(fake_pool).delete_with_stories(guy_id)

	assert excinfo.value.kind is ErrorKind.UNKNOWN
	assert "rollback" in fake_conn.events
	assert "commit" not in fake_conn.events
	assert fake_conn.find("DELETE FROM guys") == []


@pytest.mark.asyncio
async def test_delete_with_stories_missing_guy_returns_false(fake_pool, fake_conn):
	fake_conn.on("DELETE FROM guys", rows=[])

	assert await GuyRepository(fake_pool).delete_with_stories(str(uuid.uuid4())) is False
	# No stories means no comment delete is issued at all.
	assert fake_conn.find("DELETE FROM comments") == []
	assert fake_conn.events[-1] == "commit"


@pytest.mark.asyncio
async def test_find_popular_guys_clamps_limit(fake_pool, fake_conn):
	fake_conn.on("HAVING count(s.id) > 0", rows=[guy_row(story_count=4), guy_row(story_count=2)])
	repo = GuyRepository(fake_pool)

	guys = await repo.find_popular_guys(limit=500)
	await repo.find_popular_guys(limit=0)

	assert [guy.story_count for guy in guys] == [4, 2]
	limits = [call[2][0] for call in fake_conn.find("HAVING count(s.id) > 0")]
	assert limits == [50, 1]


@pytest.mark.asyncio
async def test_find_with_stories_returns_none_for_missing_guy(fake_pool, fake_conn):
	assert await GuyRepository(fake_pool).find_with_stories(str(uuid.uuid4())) is None
	assert fake_conn.find("FROM stories") == []


@pytest.mark.asyncio
async def test_find_with_stories_orders_newest_first(fake_pool, fake_conn):
	guy = guy_row()
	fake_conn.on("SELECT * FROM guys WHERE id", rows=[guy])
	fake_conn.on(
		"SELECT * FROM stories WHERE guy_id",
		rows=[
			{"id": str(uuid.uuid4()), "guy_id": guy["id"], "user_id": str(uuid.uuid4()), "text": "hi", "tags": ["unsure"]},
		],
	)

	result = await GuyRepository(fake_pool).find_with_stories(guy["id"])

	assert result["guy"].id == guy["id"]
	assert [story.tags for story in result["stories"]] == [["unsure"]]
	(call,) = fake_conn.find("SELECT * FROM stories")
	assert "ORDER BY created_at DESC" in call[1]


@pytest.mark.asyncio
async def test_search_guys_matches_every_text_column(fake_pool, fake_conn):
	fake_conn.on("SELECT count(*) FROM guys", value=1)
	fake_conn.on("SELECT * FROM guys", rows=[guy_row()])

	result = await GuyRepository(fake_pool).search_guys("sa_m")

	assert result.pagination.total == 1
	(select,) = fake_conn.find("SELECT * FROM guys")
	for column in ("name", "phone", "location", "socials"):
		assert f"{column} ILIKE $1" in select[1]
	assert select[2][0] == "%sa\\_m%"
	assert "ORDER BY created_at DESC" in select[1]


@pytest.mark.asyncio
async def test_find_by_age_range_is_inclusive(fake_pool, fake_conn):
	fake_conn.on("SELECT count(*) FROM guys", value=0)

	await GuyRepository(fake_pool).find_by_age_range(18, 30)

	(select,) = fake_conn.find("SELECT * FROM guys")
	assert "age >= $1" in select[1]
	assert "age <= $2" in select[1]
	assert select[2][:2] == (18, 30)


@pytest.mark.asyncio
async def test_get_guy_stats(fake_pool, fake_conn):
	fake_conn.on("GROUP BY location", rows=[{"location": "Montreal", "count": 3}])
	fake_conn.on("avg(age)", value=27.5)
	fake_conn.on("JOIN stories", value=2)
	fake_conn.on("SELECT count(*) FROM guys", value=5)

	stats = await GuyRepository(fake_pool).get_guy_stats()

	assert (stats.total, stats.with_stories, stats.average_age) == (5, 2, 27.5)
	assert [(item.location, item.count) for item in stats.top_locations] == [("Montreal", 3)]


@pytest.mark.asyncio
async def test_story_counts_join_stories_and_count_guys_not_rows(fake_pool, fake_conn):
	busy, quiet = guy_row(name="Sam", story_count=3), guy_row(name="Samir", story_count=0)
	fake_conn.on("SELECT count(*) FROM guys g", value=2)
	fake_conn.on("AS story_count", rows=[busy, quiet])

	result = await GuyRepository(fake_pool).find_guys_with_story_counts(TextSearchFilter(search="sam"))

	assert [guy.story_count for guy in result.data] == [3, 0]
	assert result.pagination.total == 2
	(total_call,) = fake_conn.find("SELECT count(*) FROM guys g")
	assert "JOIN" not in total_call[1]
	assert "g.name ILIKE $1" in total_call[1]
	assert "g.socials ILIKE $1" in total_call[1]
	(page_call,) = fake_conn.find("AS story_count")
	assert "LEFT JOIN stories s ON s.guy_id = g.id" in page_call[1]
	assert "GROUP BY g.id" in page_call[1]
	assert page_call[2] == ("%sam%", 10, 0)


@pytest.mark.asyncio
async def test_find_many_with_and_without_predicate(fake_pool, fake_conn):
	fake_conn.on("SELECT * FROM guys", rows=[guy_row(location="Laval")])
	repo = GuyRepository(fake_pool)

	everyone = await repo.find_many()
	in_laval = await repo.find_many("location = $1", SqlParams("Laval"))

	assert [guy.location for guy in everyone] == ["Laval"]
	assert len(in_laval) == 1
	first, second = fake_conn.find("SELECT * FROM guys")
	assert first[1] == "SELECT * FROM guys" and first[2] == ()
	assert second[1] == "SELECT * FROM guys WHERE location = $1"
	assert second[2] == ("Laval",)
