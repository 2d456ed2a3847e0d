"""Denormalized rating summary for books and movies.

``average_rating`` / ``ratings_count`` on an item are derived from its
reviews and recomputed after every review write. The summary is best
effort: a failed recompute is logged and never fails the review write.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mediashelf.models.tables import ITEM_MODELS, ItemKind, Review

logger = logging.getLogger(__name__)


class RatingAggregator:
    """Recomputes an item's rating summary from its reviews."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def recompute(self, item_id: str, kind: ItemKind) -> None:
        try:
            # Savepoint: a failure here must not poison the review's transaction
            async with self.db.begin_nested():
                count, average = await self._aggregate(item_id, kind)
                item = await self.db.get(ITEM_MODELS[kind], item_id)
                if item is None:
                    logger.warning(f"Rating recompute skipped: {kind.value} {item_id} not found")
                    return
                item.ratings_count = count
                item.average_rating = average if count else 0
        except SQLAlchemyError as e:
            logger.error(f"Rating recompute failed for {kind.value} {item_id}: {e}")

    async def _aggregate(self, item_id: str, kind: ItemKind) -> tuple[int, float]:
        result = await self.db.execute(
            select(func.count(Review.id), func.avg(Review.rating)).where(
                Review.item_id == item_id,
                Review.item_model == kind.value,
            )
        )
        count, average = result.one()
        return int(count or 0), float(average or 0)
