"""User lists: the two default lists plus custom, optionally public lists."""

import logging
from typing import Mapping, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mediashelf.errors import ConflictError, NotFoundError, PermissionDenied, ValidationError
from mediashelf.models.tables import ItemKind, LibraryEntry, Role, UserList
from mediashelf.services.query_builder import ListQuery, ParamValue, apply_list_query, build_list_query

logger = logging.getLogger(__name__)

DEFAULT_LISTS: dict[ItemKind, tuple[str, str]] = {
    ItemKind.BOOK: ("My Books", "My personal collection of books."),
    ItemKind.MOVIE: ("My Movies", "My personal collection of movies."),
}
RESERVED_LIST_NAMES = frozenset(name for name, _ in DEFAULT_LISTS.values())


def _parse_kind(value: str) -> ItemKind:
    try:
        return ItemKind(value)
    except ValueError:
        raise ValidationError(f"List type must be one of: {', '.join(k.value for k in ItemKind)}.")


class UserListService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_default_lists(self, user_id: str) -> list[UserList]:
        lists = [
            UserList(user_id=user_id, name=name, description=description, type=kind.value, is_public=False)
            for kind, (name, description) in DEFAULT_LISTS.items()
        ]
        self.db.add_all(lists)
        await self.db.flush()
        return lists

    async def default_list(self, user_id: str, kind: ItemKind) -> Optional[UserList]:
        name, _ = DEFAULT_LISTS[kind]
        result = await self.db.execute(select(UserList).where(UserList.user_id == user_id, UserList.name == name))
        return result.scalar_one_or_none()

    async def create_list(
        self,
        user_id: str,
        name: str,
        list_type: str,
        description: Optional[str] = None,
        is_public: bool = False,
    ) -> UserList:
        name = (name or "").strip()
        if not name:
            raise ValidationError("List name is required.")
        if name in RESERVED_LIST_NAMES:
            raise ValidationError("Cannot create a custom list with a reserved name.")

        user_list = UserList(
            user_id=user_id,
            name=name,
            description=description,
            is_public=is_public,
            type=_parse_kind(list_type).value,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(user_list)
        except IntegrityError:
            raise ConflictError("You already have a list with that name.")
        return user_list

    async def lists_for_owner(self, user_id: str) -> list[UserList]:
        result = await self.db.execute(
            select(UserList).where(UserList.user_id == user_id).order_by(UserList.created_at.desc(), UserList.id.desc())
        )
        return list(result.scalars().all())

    async def public_lists(self, params: Mapping[str, ParamValue]) -> tuple[list[UserList], ListQuery]:
        """Discover public lists; the public filter cannot be overridden."""
        query = build_list_query(params)
        stmt = select(UserList).where(UserList.is_public.is_(True))
        result = await self.db.execute(apply_list_query(stmt, UserList, query, search_fields=("name",)))
        return list(result.scalars().all()), query

    async def public_lists_for_user(self, user_id: str) -> list[UserList]:
        result = await self.db.execute(
            select(UserList)
            .where(UserList.user_id == user_id, UserList.is_public.is_(True))
            .order_by(UserList.created_at.desc(), UserList.id.desc())
        )
        return list(result.scalars().all())

    async def get_list(self, list_id: str, viewer_id: Optional[str] = None, viewer_role: Optional[str] = None) -> UserList:
        """Fetch a list; private lists are visible to their owner and admins only."""
        user_list = await self.db.get(UserList, list_id)
        if user_list is None:
            raise NotFoundError("No list found with that ID.")
        if not user_list.is_public and viewer_id != user_list.user_id and viewer_role != Role.ADMIN.value:
            raise PermissionDenied("You do not have permission to view this list.")
        return user_list

    async def get_owned_list(self, list_id: str, owner_id: str) -> UserList:
        user_list = await self.db.get(UserList, list_id)
        if user_list is None or user_list.user_id != owner_id:
            raise NotFoundError("List not found or you do not have permission to modify it.")
        return user_list

    async def update_list(
        self,
        list_id: str,
        owner_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        is_public: Optional[bool] = None,
    ) -> UserList:
        user_list = await self.get_owned_list(list_id, owner_id)
        if name is not None and name.strip() != user_list.name:
            name = name.strip()
            if user_list.name in RESERVED_LIST_NAMES:
                raise ValidationError("The default lists cannot be renamed.")
            if not name:
                raise ValidationError("List name is required.")
            if name in RESERVED_LIST_NAMES:
                raise ValidationError("Cannot rename a list to a reserved name.")
            user_list.name = name
        if description is not None:
            user_list.description = description
        if is_public is not None:
            user_list.is_public = is_public
        try:
            async with self.db.begin_nested():
                await self.db.flush()
        except IntegrityError:
            raise ConflictError("You already have a list with that name.")
        return user_list

    async def delete_list(self, list_id: str, owner_id: str) -> None:
        """Delete a custom list together with its entries."""
        user_list = await self.get_owned_list(list_id, owner_id)
        if user_list.name in RESERVED_LIST_NAMES:
            raise ValidationError("The default lists cannot be deleted.")
        await self.db.execute(delete(LibraryEntry).where(LibraryEntry.list_id == list_id))
        await self.db.delete(user_list)
        await self.db.flush()
        logger.info(f"List {list_id} deleted by {owner_id}")
