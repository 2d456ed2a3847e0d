"""Library entries: items filed into a user's lists with a reading/watching status."""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mediashelf.errors import ConflictError, NotFoundError, ValidationError
from mediashelf.models.tables import (
    ActivityType, DEFAULT_STATUS, EntryStatus, ItemKind, LibraryEntry, STATUSES_BY_KIND, SubjectKind,
)
from mediashelf.services.activity import ActivityService, item_summary
from mediashelf.services.catalog import CatalogRegistry
from mediashelf.services.lists import UserListService

logger = logging.getLogger(__name__)


def validate_status(kind: ItemKind, status: Optional[str]) -> EntryStatus:
    """Resolve a status for ``kind``; missing means the kind's default."""
    if status is None:
        return DEFAULT_STATUS[kind]
    allowed = STATUSES_BY_KIND[kind]
    if status not in {s.value for s in allowed}:
        raise ValidationError(
            f"Invalid status '{status}' for a {kind.value.lower()}. "
            f"Allowed: {', '.join(s.value for s in allowed)}."
        )
    return EntryStatus(status)


class LibraryService:
    def __init__(
        self,
        db: AsyncSession,
        catalog: CatalogRegistry,
        lists: UserListService,
        activities: ActivityService,
    ):
        self.db = db
        self.catalog = catalog
        self.lists = lists
        self.activities = activities

    async def _find_entry(self, user_id: str, list_id: str, item_id: str) -> Optional[LibraryEntry]:
        result = await self.db.execute(
            select(LibraryEntry).where(
                LibraryEntry.user_id == user_id,
                LibraryEntry.list_id == list_id,
                LibraryEntry.item_id == item_id,
            )
        )
        return result.scalar_one_or_none()

    async def add_to_list(
        self,
        user_id: str,
        list_id: str,
        kind: ItemKind,
        identifier: str,
        status: Optional[str] = None,
    ) -> tuple[LibraryEntry, bool]:
        """File an item into one of the user's lists.

        ``identifier`` may be a local id or an external catalog id; the item
        is cached locally first. Re-adding an item already in the list only
        updates its status. Returns ``(entry, created)``.
        """
        user_list = await self.lists.get_owned_list(list_id, user_id)
        if user_list.type != kind.value:
            raise ValidationError(f"This list only accepts items of type {user_list.type}.")
        entry_status = validate_status(kind, status)

        item = await self.catalog.ensure_exists(kind, identifier)

        existing = await self._find_entry(user_id, list_id, item.id)
        if existing is not None:
            if status is not None:
                existing.status = entry_status.value
                await self.db.flush()
            return existing, False

        entry = LibraryEntry(
            user_id=user_id,
            list_id=list_id,
            item_id=item.id,
            item_model=kind.value,
            status=entry_status.value,
            added_at=datetime.now(timezone.utc),
        )
        try:
            async with self.db.begin_nested():
                self.db.add(entry)
        except IntegrityError:
            raise ConflictError("This item is already in the list.")

        await self.activities.record(user_id, ActivityType.LIBRARY_ENTRY_CREATED, SubjectKind.LIBRARY_ENTRY, entry.id)
        logger.info(f"{kind.value} {item.id} added to list {list_id} by {user_id}")
        return entry, True

    async def file_into_default_list(self, user_id: str, kind: ItemKind, item_id: str, status: EntryStatus) -> None:
        """Put an item in the user's default list, creating or updating the entry."""
        user_list = await self.lists.default_list(user_id, kind)
        if user_list is None:
            logger.warning(f"User {user_id} has no default {kind.value} list")
            return
        existing = await self._find_entry(user_id, user_list.id, item_id)
        if existing is not None:
            existing.status = status.value
            await self.db.flush()
            return
        self.db.add(LibraryEntry(
            user_id=user_id,
            list_id=user_list.id,
            item_id=item_id,
            item_model=kind.value,
            status=status.value,
            added_at=datetime.now(timezone.utc),
        ))
        await self.db.flush()

    async def entries_for_list(
        self,
        list_id: str,
        viewer_id: Optional[str] = None,
        viewer_role: Optional[str] = None,
    ) -> list[dict]:
        """Entries of a list with their items embedded, newest first."""
        await self.lists.get_list(list_id, viewer_id, viewer_role)
        result = await self.db.execute(
            select(LibraryEntry)
            .where(LibraryEntry.list_id == list_id)
            .order_by(LibraryEntry.added_at.desc(), LibraryEntry.id.desc())
        )
        entries = list(result.scalars().all())

        items: dict[str, object] = {}
        for kind in ItemKind:
            ids = [e.item_id for e in entries if e.item_model == kind.value]
            items.update(await self.catalog.find_many(kind, ids))

        return [{**e.to_dict(), "item": item_summary(items.get(e.item_id))} for e in entries]

    async def _owned_entry(self, entry_id: str, user_id: str) -> LibraryEntry:
        entry = await self.db.get(LibraryEntry, entry_id)
        if entry is None or entry.user_id != user_id:
            raise NotFoundError("Entry not found or you do not have permission to modify it.")
        return entry

    async def update_status(self, entry_id: str, user_id: str, status: str) -> LibraryEntry:
        entry = await self._owned_entry(entry_id, user_id)
        if status is None:
            raise ValidationError("A status is required.")
        entry.status = validate_status(ItemKind(entry.item_model), status).value
        await self.db.flush()
        return entry

    async def remove_from_list(self, entry_id: str, user_id: str) -> None:
        entry = await self._owned_entry(entry_id, user_id)
        await self.db.delete(entry)
        await self.db.flush()
