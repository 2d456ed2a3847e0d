"""Follow graph between users."""

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mediashelf.errors import ConflictError, NotFoundError, ValidationError
from mediashelf.models.tables import ActivityType, Follow, SubjectKind, User, user_visibility
from mediashelf.services.activity import ActivityService

logger = logging.getLogger(__name__)


class FollowService:
    def __init__(self, db: AsyncSession, activities: ActivityService):
        self.db = db
        self.activities = activities

    async def _require_user(self, user_id: str, message: str) -> User:
        result = await self.db.execute(select(User).where(User.id == user_id, user_visibility()))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError(message)
        return user

    async def _find_edge(self, follower_id: str, following_id: str):
        result = await self.db.execute(
            select(Follow).where(Follow.follower_id == follower_id, Follow.following_id == following_id)
        )
        return result.scalar_one_or_none()

    async def follow(self, follower_id: str, following_id: str) -> Follow:
        if follower_id == following_id:
            raise ValidationError("You cannot follow yourself.")
        await self._require_user(following_id, "User to follow not found.")

        if await self._find_edge(follower_id, following_id) is not None:
            raise ConflictError("You are already following this user.")

        edge = Follow(follower_id=follower_id, following_id=following_id)
        try:
            async with self.db.begin_nested():
                self.db.add(edge)
        except IntegrityError:
            raise ConflictError("You are already following this user.")

        await self.activities.record(follower_id, ActivityType.FOLLOW_CREATED, SubjectKind.FOLLOW, edge.id)
        logger.info(f"User {follower_id} now follows {following_id}")
        return edge

    async def unfollow(self, follower_id: str, following_id: str) -> None:
        await self._require_user(following_id, "User to unfollow not found.")
        edge = await self._find_edge(follower_id, following_id)
        if edge is None:
            raise NotFoundError("You are not following this user.")
        await self.db.delete(edge)
        await self.db.flush()

    async def followers(self, user_id: str) -> list[User]:
        """Active users following ``user_id``, most recent first."""
        result = await self.db.execute(
            select(User)
            .join(Follow, Follow.follower_id == User.id)
            .where(Follow.following_id == user_id, user_visibility())
            .order_by(Follow.created_at.desc(), Follow.id.desc())
        )
        return list(result.scalars().all())

    async def following(self, user_id: str) -> list[User]:
        result = await self.db.execute(
            select(User)
            .join(Follow, Follow.following_id == User.id)
            .where(Follow.follower_id == user_id, user_visibility())
            .order_by(Follow.created_at.desc(), Follow.id.desc())
        )
        return list(result.scalars().all())

    async def stats(self, user_id: str) -> dict:
        """Counts agree with ``followers``/``following``: deactivated users are left out."""
        followers = await self.db.scalar(
            select(func.count(Follow.id))
            .join(User, Follow.follower_id == User.id)
            .where(Follow.following_id == user_id, user_visibility())
        )
        following = await self.db.scalar(
            select(func.count(Follow.id))
            .join(User, Follow.following_id == User.id)
            .where(Follow.follower_id == user_id, user_visibility())
        )
        return {"followers_count": followers or 0, "following_count": following or 0}
