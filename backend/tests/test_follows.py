import pytest
from sqlalchemy import select

from mediashelf.errors import ConflictError, NotFoundError, ValidationError
from mediashelf.ids import new_object_id
from mediashelf.models.tables import Activity, ActivityType


async def test_follow_records_edge_and_activity(services, make_user, db):
    alice, bob = await make_user("alice"), await make_user("bob")

    edge = await services.follows.follow(alice.id, bob.id)

    [activity] = (await db.execute(select(Activity))).scalars().all()
    assert activity.type == ActivityType.FOLLOW_CREATED.value
    assert activity.subject_id == edge.id
    assert [u.username for u in await services.follows.followers(bob.id)] == ["alice"]
    assert [u.username for u in await services.follows.following(alice.id)] == ["bob"]
    assert await services.follows.stats(bob.id) == {"followers_count": 1, "following_count": 0}


async def test_follow_rules(services, make_user):
    alice, bob = await make_user("alice"), await make_user("bob")
    with pytest.raises(ValidationError):
        await services.follows.follow(alice.id, alice.id)
    with pytest.raises(NotFoundError):
        await services.follows.follow(alice.id, new_object_id())

    await services.follows.follow(alice.id, bob.id)
    with pytest.raises(ConflictError):
        await services.follows.follow(alice.id, bob.id)


async def test_cannot_follow_deactivated_user(services, make_user):
    alice, bob = await make_user("alice"), await make_user("bob")
    await services.users.deactivate(bob.id, "correct-horse")
    with pytest.raises(NotFoundError):
        await services.follows.follow(alice.id, bob.id)


async def test_unfollow(services, make_user):
    alice, bob = await make_user("alice"), await make_user("bob")
    with pytest.raises(NotFoundError):
        await services.follows.unfollow(alice.id, bob.id)

    await services.follows.follow(alice.id, bob.id)
    await services.follows.unfollow(alice.id, bob.id)
    assert await services.follows.followers(bob.id) == []


async def test_stats_leave_out_deactivated_users(services, make_user):
    alice, bob, carol = await make_user("alice"), await make_user("bob"), await make_user("carol")
    await services.follows.follow(alice.id, bob.id)
    await services.follows.follow(carol.id, bob.id)
    await services.follows.follow(bob.id, carol.id)

    await services.users.deactivate(carol.id, "correct-horse")

    assert await services.follows.stats(bob.id) == {"followers_count": 1, "following_count": 0}
    assert len(await services.follows.followers(bob.id)) == 1
