from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from mediashelf.errors import ValidationError
from mediashelf.models.tables import Book, User
from mediashelf.services.query_builder import _coerce, apply_list_query, build_list_query


# ── Building ─────────────────────────────────────────────────────

def test_reserved_params_are_not_filters():
    query = build_list_query({"page": "2", "sort": "title", "limit": "5", "fields": "title", "q": "dune"})
    assert query.conditions == []
    assert query.search_terms == ["dune"]
    assert query.sort == [("title", False)]
    assert query.fields == ["title"]
    assert (query.page, query.limit, query.skip) == (2, 5, 5)


def test_defaults():
    query = build_list_query({})
    assert query.sort == [("created_at", True)]
    assert query.page == 1
    assert query.limit == 100


def test_bad_pagination_falls_back_to_defaults():
    query = build_list_query({"page": "abc", "limit": "-3"})
    assert query.page == 1
    assert query.limit == 100


def test_limit_is_capped():
    assert build_list_query({"limit": "10000"}).limit == 500


def test_comma_list_and_repeated_keys_are_conjunctive():
    by_comma = build_list_query({"category": "Fiction,History"})
    by_repeat = build_list_query({"category": ["Fiction", "History"]})
    for query in (by_comma, by_repeat):
        [condition] = query.conditions
        assert condition.op == "all"
        assert condition.values == ("Fiction", "History")


def test_range_operators():
    query = build_list_query({"page_count[gte]": "300", "average_rating[lt]": "8"})
    ops = {(c.field, c.op, c.values) for c in query.conditions}
    assert ops == {("page_count", "gte", ("300",)), ("average_rating", "lt", ("8",))}


def test_multi_field_sort():
    query = build_list_query({"sort": "-average_rating,title"})
    assert query.sort == [("average_rating", True), ("title", False)]


def test_projection_keeps_id_and_hydrated_keys():
    query = build_list_query({"fields": "title"})
    record = {"id": "x", "title": "Dune", "authors": ["Frank Herbert"], "user": {"id": "u"}}
    assert query.project(record, Book) == {"id": "x", "title": "Dune", "user": {"id": "u"}}


# ── Applying ─────────────────────────────────────────────────────

def test_unknown_field_is_rejected():
    with pytest.raises(ValidationError):
        apply_list_query(select(Book), Book, build_list_query({"nope": "1"}))


def test_hidden_field_is_not_filterable():
    with pytest.raises(ValidationError):
        apply_list_query(select(User), User, build_list_query({"password_hash": "x"}))


@pytest.mark.parametrize("params", [{"email": "alice@example.com"}, {"role": "admin"}, {"sort": "email"}])
def test_private_user_fields_are_not_queryable(params):
    with pytest.raises(ValidationError):
        apply_list_query(select(User), User, build_list_query(params))


def test_naive_timestamps_are_read_as_utc():
    column = Book.__table__.c.created_at
    assert _coerce(column, "2024-03-01T12:00:00") == datetime(2024, 3, 1, 12, tzinfo=timezone.utc)
    assert _coerce(column, "2024-03-01").tzinfo is timezone.utc
    assert _coerce(column, "2024-03-01T12:00:00+02:00").utcoffset().total_seconds() == 7200


def test_uncoercible_value_is_rejected():
    with pytest.raises(ValidationError):
        apply_list_query(select(Book), Book, build_list_query({"page_count[gte]": "lots"}))


def test_text_search_needs_searchable_columns():
    with pytest.raises(ValidationError):
        apply_list_query(select(User), User, build_list_query({"q": "x"}), search_fields=("title",))


async def _seed_books(db):
    db.add_all([
        Book(google_books_id="a", title="Harry Potter and the Goblet of Fire", categories=["Fiction", "Fantasy"], page_count=636),
        Book(google_books_id="b", title="A History of Fire", subtitle="Potter's Kilns", categories=["History"], page_count=220),
        Book(google_books_id="c", title="Fiction and History", categories=["Fiction", "History"], page_count=310),
        Book(google_books_id="d", title="100% Pure", categories=["Fiction"], page_count=90),
    ])
    await db.flush()


async def _titles(db, params, **kwargs):
    result = await db.execute(apply_list_query(select(Book), Book, build_list_query(params), **kwargs))
    return [b.title for b in result.scalars().all()]


async def test_array_filter_requires_every_value(db):
    await _seed_books(db)
    assert await _titles(db, {"category": "Fiction,History"}) == ["Fiction and History"]
    assert sorted(await _titles(db, {"categories": "Fiction"})) == [
        "100% Pure", "Fiction and History", "Harry Potter and the Goblet of Fire",
    ]


async def test_range_filter_and_sort(db):
    await _seed_books(db)
    assert await _titles(db, {"page_count[gte]": "300", "sort": "page_count"}) == [
        "Fiction and History", "Harry Potter and the Goblet of Fire",
    ]


async def test_every_search_term_must_match_one_field(db):
    await _seed_books(db)
    assert await _titles(db, {"q": "potter HARRY"}) == ["Harry Potter and the Goblet of Fire"]
    # "fire" is in the title and "potter" in the subtitle, but not both in one field
    assert await _titles(db, {"q": "fire potter's"}) == []
    assert await _titles(db, {"q": "potter's kilns"}) == ["A History of Fire"]


async def test_like_wildcards_are_literal(db):
    await _seed_books(db)
    assert await _titles(db, {"q": "100%"}) == ["100% Pure"]
    assert await _titles(db, {"q": "%"}) == ["100% Pure"]


async def test_pagination_is_stable_with_equal_timestamps(db):
    await _seed_books(db)
    page_one = await _titles(db, {"sort": "-created_at", "limit": "2", "page": "1"})
    page_two = await _titles(db, {"sort": "-created_at", "limit": "2", "page": "2"})
    assert len(set(page_one) | set(page_two)) == 4


async def test_timestamp_range_filter(db):
    db.add_all([
        Book(google_books_id="old", title="Old", created_at=datetime(2023, 6, 1, tzinfo=timezone.utc)),
        Book(google_books_id="new", title="New", created_at=datetime(2024, 6, 1, tzinfo=timezone.utc)),
    ])
    await db.flush()
    assert await _titles(db, {"created_at[gte]": "2024-01-01"}) == ["New"]
    assert await _titles(db, {"created_at[lt]": "2024-01-01T00:00:00+00:00"}) == ["Old"]
