import pytest

from mediashelf.errors import NotFoundError, PermissionDenied, ValidationError
from mediashelf.models.tables import ItemKind


async def _social_graph(services, make_user):
    alice, bob, carol = await make_user("alice"), await make_user("bob"), await make_user("carol")
    await services.follows.follow(alice.id, bob.id)
    await services.reviews.create_review(bob.id, ItemKind.MOVIE, "603", 9, "Whoa.")
    await services.reviews.create_review(carol.id, ItemKind.BOOK, "zyTCAlFPjgYC", 6)
    movies = await services.lists.default_list(alice.id, ItemKind.MOVIE)
    await services.library.add_to_list(alice.id, movies.id, ItemKind.MOVIE, "550")
    return alice, bob, carol


async def test_feeds_are_newest_first(services, make_user):
    alice, bob, carol = await _social_graph(services, make_user)

    everything, _ = await services.activities.global_feed({})
    assert [a.type for a in everything] == [
        "LIBRARY_ENTRY_CREATED", "REVIEW_CREATED", "REVIEW_CREATED", "FOLLOW_CREATED",
    ]
    assert [a.user_id for a in everything] == [alice.id, carol.id, bob.id, alice.id]


async def test_social_feed_is_self_plus_followed(services, make_user):
    alice, bob, carol = await _social_graph(services, make_user)

    social, _ = await services.activities.social_feed(alice.id, {})
    assert {a.user_id for a in social} == {alice.id, bob.id}

    personal, _ = await services.activities.personal_feed(carol.id, {})
    assert [a.user_id for a in personal] == [carol.id]


async def test_feed_accepts_list_query_params(services, make_user):
    await _social_graph(services, make_user)
    reviews, query = await services.activities.global_feed({"type": "REVIEW_CREATED", "limit": "1"})
    assert len(reviews) == 1
    assert query.limit == 1


async def test_hydration_embeds_actor_subject_and_item(services, make_user):
    alice, bob, _ = await _social_graph(services, make_user)
    social, _ = await services.activities.social_feed(alice.id, {})

    records = {r["type"]: r for r in await services.activities.hydrate(social)}

    review = records["REVIEW_CREATED"]
    assert review["user"]["username"] == "bob"
    assert review["subject"]["rating"] == 9
    assert review["subject"]["item"]["title"] == "The Matrix"
    assert review["subject"]["user"]["username"] == "bob"

    follow = records["FOLLOW_CREATED"]
    assert follow["subject"]["follower"]["username"] == "alice"
    assert follow["subject"]["following"]["username"] == "bob"

    entry = records["LIBRARY_ENTRY_CREATED"]
    assert entry["subject"]["item"]["title"] == "Fight Club"
    assert entry["likes_count"] == 0
    assert "password_hash" not in entry["user"]


async def test_hydration_tolerates_deleted_subject(services, make_user):
    user = await make_user()
    review = await services.reviews.create_review(user.id, ItemKind.BOOK, "zyTCAlFPjgYC", 6)
    await services.reviews.delete_review(review.id, user.id)

    activities, _ = await services.activities.personal_feed(user.id, {})
    [record] = await services.activities.hydrate(activities)
    assert record["subject"] is None


async def test_like_toggles(services, make_user):
    alice, bob, _ = await _social_graph(services, make_user)
    [activity, *_] = (await services.activities.personal_feed(bob.id, {}))[0]

    await services.activities.toggle_like(activity.id, alice.id)
    assert activity.likes == [alice.id]
    await services.activities.toggle_like(activity.id, alice.id)
    assert activity.likes == []


async def test_comments(services, make_user):
    alice, bob, carol = await _social_graph(services, make_user)
    [activity, *_] = (await services.activities.personal_feed(bob.id, {}))[0]

    with pytest.raises(ValidationError):
        await services.activities.add_comment(activity.id, alice.id, "   ")

    await services.activities.add_comment(activity.id, alice.id, "Agreed!")
    [comment] = activity.comments
    assert comment["text"] == "Agreed!"

    [record] = await services.activities.hydrate([activity])
    assert record["comments_count"] == 1
    assert record["comments"][0]["user"]["username"] == "alice"

    with pytest.raises(PermissionDenied):
        await services.activities.delete_comment(activity.id, comment["id"], carol.id, "user")
    with pytest.raises(NotFoundError):
        await services.activities.delete_comment(activity.id, "nope", alice.id, "user")

    await services.activities.delete_comment(activity.id, comment["id"], carol.id, "admin")
    assert activity.comments == []
