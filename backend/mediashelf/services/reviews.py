"""Reviews of books and movies.

Creating a review also files the item into the reviewer's default list as
finished, records an activity and refreshes the item's rating summary.
"""

import logging
from typing import Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mediashelf.errors import ConflictError, NotFoundError, PermissionDenied, ValidationError
from mediashelf.models.tables import (
    ActivityType, FINISHED_STATUS, ItemKind, Review, Role, SubjectKind, User, user_visibility,
)
from mediashelf.services.activity import ActivityService, item_summary, user_summary
from mediashelf.services.catalog import CatalogRegistry
from mediashelf.services.library import LibraryService
from mediashelf.services.query_builder import ListQuery, ParamValue, apply_list_query, build_list_query
from mediashelf.services.ratings import RatingAggregator

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 10


def validate_rating(rating) -> int:
    if rating is None:
        raise ValidationError("A rating is required.")
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValidationError("Rating must be a whole number.")
    if not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError(f"Rating must be between {MIN_RATING} and {MAX_RATING}.")
    return rating


class ReviewService:
    def __init__(
        self,
        db: AsyncSession,
        catalog: CatalogRegistry,
        library: LibraryService,
        activities: ActivityService,
        ratings: RatingAggregator,
    ):
        self.db = db
        self.catalog = catalog
        self.library = library
        self.activities = activities
        self.ratings = ratings

    async def create_review(
        self,
        user_id: str,
        kind: ItemKind,
        identifier: str,
        rating: int,
        text: Optional[str] = None,
    ) -> Review:
        rating = validate_rating(rating)
        item = await self.catalog.ensure_exists(kind, identifier)

        existing = await self.db.execute(
            select(Review.id).where(Review.user_id == user_id, Review.item_id == item.id)
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError("You have already reviewed this item.")

        review = Review(user_id=user_id, item_id=item.id, item_model=kind.value, rating=rating, text=text)
        try:
            async with self.db.begin_nested():
                self.db.add(review)
        except IntegrityError:
            raise ConflictError("You have already reviewed this item.")

        await self.library.file_into_default_list(user_id, kind, item.id, FINISHED_STATUS[kind])
        await self.activities.record(user_id, ActivityType.REVIEW_CREATED, SubjectKind.REVIEW, review.id)
        await self.ratings.recompute(item.id, kind)
        logger.info(f"Review {review.id} created by {user_id} for {kind.value} {item.id}")
        return review

    async def list_reviews(self, params: Mapping[str, ParamValue]) -> tuple[list[Review], ListQuery]:
        query = build_list_query(params)
        stmt = apply_list_query(select(Review), Review, query, search_fields=("text",))
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), query

    async def reviews_for_item(
        self,
        kind: ItemKind,
        identifier: str,
        params: Mapping[str, ParamValue],
    ) -> tuple[list[Review], ListQuery]:
        """Reviews of one item; an item that was never cached has none."""
        query = build_list_query(params)
        item = await self.catalog[kind].find_local(identifier)
        if item is None:
            return [], query
        stmt = select(Review).where(Review.item_id == item.id, Review.item_model == kind.value)
        result = await self.db.execute(apply_list_query(stmt, Review, query, search_fields=("text",)))
        return list(result.scalars().all()), query

    async def get_review(self, review_id: str) -> Review:
        review = await self.db.get(Review, review_id)
        if review is None:
            raise NotFoundError("No review found with that ID.")
        return review

    async def _owned_review(self, review_id: str, user_id: str, role: Optional[str] = None) -> Review:
        review = await self.get_review(review_id)
        if review.user_id != user_id and role != Role.ADMIN.value:
            raise PermissionDenied("You do not have permission to modify this review.")
        return review

    async def update_review(
        self,
        review_id: str,
        user_id: str,
        rating: Optional[int] = None,
        text: Optional[str] = None,
        role: Optional[str] = None,
    ) -> Review:
        review = await self._owned_review(review_id, user_id, role)
        if rating is not None:
            review.rating = validate_rating(rating)
        if text is not None:
            review.text = text
        await self.db.flush()
        await self.ratings.recompute(review.item_id, ItemKind(review.item_model))
        return review

    async def delete_review(self, review_id: str, user_id: str, role: Optional[str] = None) -> None:
        review = await self._owned_review(review_id, user_id, role)
        item_id, kind = review.item_id, ItemKind(review.item_model)
        await self.db.delete(review)
        await self.db.flush()
        await self.ratings.recompute(item_id, kind)

    async def hydrate(self, reviews: list[Review]) -> list[dict]:
        """Serialize reviews with reviewer and item summaries embedded."""
        user_ids = {r.user_id for r in reviews}
        users: dict[str, User] = {}
        if user_ids:
            result = await self.db.execute(
                select(User).where(User.id.in_(user_ids), user_visibility(include_inactive=True))
            )
            users = {u.id: u for u in result.scalars().all()}

        items: dict[str, object] = {}
        for kind in ItemKind:
            items.update(await self.catalog.find_many(kind, [r.item_id for r in reviews if r.item_model == kind.value]))

        return [
            {**r.to_dict(), "user": user_summary(users.get(r.user_id)), "item": item_summary(items.get(r.item_id))}
            for r in reviews
        ]
