"""Activity log and feeds.

Review, library-entry and follow creation each append one activity that
points back at its subject through a (subject_model, subject_id) tag. Feeds
read the log newest-first through the generic list-query builder and are
hydrated in batches: one query per referenced collection, not per row.
"""

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mediashelf.errors import NotFoundError, PermissionDenied, ValidationError
from mediashelf.ids import new_object_id
from mediashelf.models.tables import (
    Activity, ActivityType, Follow, ItemKind, Role, SubjectKind, User,
    ITEM_MODELS, SUBJECT_MODELS, user_visibility,
)
from mediashelf.services.query_builder import ListQuery, ParamValue, apply_list_query, build_list_query

logger = logging.getLogger(__name__)

# Public profile columns embedded wherever a user is referenced
USER_SUMMARY_FIELDS = ("id", "username", "avatar_url")
ITEM_SUMMARY_FIELDS = ("id", "title", "cover_image", "poster_path")


def user_summary(user: Optional[User]) -> Optional[dict]:
    if user is None:
        return None
    return {f: getattr(user, f) for f in USER_SUMMARY_FIELDS}


def public_profile(user: Optional[User]) -> Optional[dict]:
    """What anyone may see of another user's profile."""
    if user is None:
        return None
    return {**user_summary(user), "bio": user.bio, "created_at": user.created_at}


def item_summary(item) -> Optional[dict]:
    if item is None:
        return None
    return {f: getattr(item, f) for f in ITEM_SUMMARY_FIELDS if hasattr(item, f)}


class ActivityService:
    """Writes activities and assembles personal, social and global feeds."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ── Writes ───────────────────────────────────────────────────

    async def record(
        self,
        actor_id: str,
        activity_type: ActivityType,
        subject_kind: SubjectKind,
        subject_id: str,
    ) -> Activity:
        activity = Activity(
            user_id=actor_id,
            type=activity_type.value,
            subject_model=subject_kind.value,
            subject_id=subject_id,
            likes=[],
            comments=[],
        )
        self.db.add(activity)
        await self.db.flush()
        logger.debug(f"Activity {activity_type.value} recorded for user {actor_id}")
        return activity

    async def get_activity(self, activity_id: str) -> Activity:
        activity = await self.db.get(Activity, activity_id)
        if activity is None:
            raise NotFoundError("No activity found with that ID.")
        return activity

    async def toggle_like(self, activity_id: str, user_id: str) -> Activity:
        """Like if not yet liked, otherwise unlike."""
        activity = await self.get_activity(activity_id)
        likes = list(activity.likes or [])
        if user_id in likes:
            likes.remove(user_id)
        else:
            likes.append(user_id)
        # Reassign so the JSON column is marked dirty
        activity.likes = likes
        await self.db.flush()
        return activity

    async def add_comment(self, activity_id: str, user_id: str, text: str) -> Activity:
        text = (text or "").strip()
        if not text:
            raise ValidationError("Comment text cannot be empty.")
        activity = await self.get_activity(activity_id)
        activity.comments = [
            *(activity.comments or []),
            {
                "id": new_object_id(),
                "user_id": user_id,
                "text": text,
                "created_at": datetime.now(timezone.utc).isoformat(),
            },
        ]
        await self.db.flush()
        return activity

    async def delete_comment(self, activity_id: str, comment_id: str, user_id: str, role: str) -> Activity:
        """Remove a comment; only its author or an admin may do so."""
        activity = await self.get_activity(activity_id)
        comments = list(activity.comments or [])
        comment = next((c for c in comments if c.get("id") == comment_id), None)
        if comment is None:
            raise NotFoundError("No comment found with that ID.")
        if comment.get("user_id") != user_id and role != Role.ADMIN.value:
            raise PermissionDenied("You do not have permission to delete this comment.")
        activity.comments = [c for c in comments if c.get("id") != comment_id]
        await self.db.flush()
        return activity

    # ── Feeds ────────────────────────────────────────────────────

    async def personal_feed(self, user_id: str, params: Mapping[str, ParamValue]) -> tuple[list[Activity], ListQuery]:
        return await self._feed(params, actor_ids=[user_id])

    async def social_feed(self, user_id: str, params: Mapping[str, ParamValue]) -> tuple[list[Activity], ListQuery]:
        """The user's own activities plus those of everyone they follow."""
        result = await self.db.execute(select(Follow.following_id).where(Follow.follower_id == user_id))
        actor_ids = [user_id, *result.scalars().all()]
        return await self._feed(params, actor_ids=actor_ids)

    async def global_feed(self, params: Mapping[str, ParamValue]) -> tuple[list[Activity], ListQuery]:
        return await self._feed(params)

    async def _feed(self, params: Mapping[str, ParamValue], actor_ids: Optional[list[str]] = None):
        query = build_list_query(params)
        stmt = select(Activity)
        if actor_ids is not None:
            stmt = stmt.where(Activity.user_id.in_(actor_ids))
        stmt = apply_list_query(stmt, Activity, query)
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), query

    # ── Hydration ────────────────────────────────────────────────

    async def hydrate(self, activities: list[Activity]) -> list[dict]:
        """Serialize activities with actor, subject and subject item embedded."""
        subject_ids: dict[SubjectKind, set[str]] = defaultdict(set)
        for a in activities:
            subject_ids[SubjectKind(a.subject_model)].add(a.subject_id)

        subjects: dict[tuple[str, str], object] = {}
        for kind, ids in subject_ids.items():
            model = SUBJECT_MODELS[kind]
            result = await self.db.execute(select(model).where(model.id.in_(ids)))
            for row in result.scalars().all():
                subjects[(kind.value, row.id)] = row

        item_ids: dict[ItemKind, set[str]] = defaultdict(set)
        user_ids: set[str] = set()
        for a in activities:
            user_ids.add(a.user_id)
            user_ids.update(c.get("user_id") for c in a.comments or [])
        for subject in subjects.values():
            if isinstance(subject, Follow):
                user_ids.update((subject.follower_id, subject.following_id))
            else:
                item_ids[ItemKind(subject.item_model)].add(subject.item_id)
                user_ids.add(subject.user_id)

        items: dict[str, object] = {}
        for kind, ids in item_ids.items():
            model = ITEM_MODELS[kind]
            result = await self.db.execute(select(model).where(model.id.in_(ids)))
            items.update({row.id: row for row in result.scalars().all()})

        users: dict[str, User] = {}
        if user_ids:
            result = await self.db.execute(
                select(User).where(User.id.in_(user_ids), user_visibility(include_inactive=True))
            )
            users = {u.id: u for u in result.scalars().all()}

        hydrated = []
        for a in activities:
            record = a.to_dict()
            record["user"] = user_summary(users.get(a.user_id))
            record["likes_count"] = len(a.likes or [])
            record["comments_count"] = len(a.comments or [])
            record["comments"] = [
                {**c, "user": user_summary(users.get(c.get("user_id")))} for c in a.comments or []
            ]

            subject = subjects.get((a.subject_model, a.subject_id))
            subject_record = subject.to_dict() if subject is not None else None
            if isinstance(subject, Follow):
                subject_record["follower"] = user_summary(users.get(subject.follower_id))
                subject_record["following"] = user_summary(users.get(subject.following_id))
            elif subject is not None:
                subject_record["item"] = item_summary(items.get(subject.item_id))
                subject_record["user"] = user_summary(users.get(subject.user_id))
            record["subject"] = subject_record
            hydrated.append(record)
        return hydrated
