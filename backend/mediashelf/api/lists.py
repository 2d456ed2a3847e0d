"""List endpoints: the caller's lists, public discovery and list management."""

from typing import Optional

from fastapi import APIRouter, Depends, status

from mediashelf.api.deps import Services, get_current_user, get_optional_user, get_services, query_params, success
from mediashelf.models.tables import User, UserList
from mediashelf.schemas import ListCreate, ListUpdate

router = APIRouter(prefix="/lists")


@router.get("")
async def public_lists(params: dict = Depends(query_params), services: Services = Depends(get_services)):
    lists, query = await services.lists.public_lists(params)
    records = [query.project(lst.to_dict(), UserList) for lst in lists]
    return success(records, **query.meta(len(records)))


@router.get("/me")
async def my_lists(user: User = Depends(get_current_user), services: Services = Depends(get_services)):
    lists = await services.lists.lists_for_owner(user.id)
    return success([lst.to_dict() for lst in lists])


@router.get("/user/{user_id}")
async def user_public_lists(user_id: str, services: Services = Depends(get_services)):
    await services.users.get_user(user_id)
    lists = await services.lists.public_lists_for_user(user_id)
    return success([lst.to_dict() for lst in lists])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_list(
    body: ListCreate,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    user_list = await services.lists.create_list(user.id, body.name, body.type, body.description, body.is_public)
    return success(user_list.to_dict())


@router.get("/{list_id}")
async def get_list(
    list_id: str,
    user: Optional[User] = Depends(get_optional_user),
    services: Services = Depends(get_services),
):
    """A list with its entries; private lists need their owner's token."""
    viewer_id, viewer_role = (user.id, user.role) if user else (None, None)
    user_list = await services.lists.get_list(list_id, viewer_id, viewer_role)
    entries = await services.library.entries_for_list(list_id, viewer_id, viewer_role)
    return success({**user_list.to_dict(), "entries": entries})


@router.patch("/{list_id}")
async def update_list(
    list_id: str,
    body: ListUpdate,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    user_list = await services.lists.update_list(list_id, user.id, body.name, body.description, body.is_public)
    return success(user_list.to_dict())


@router.delete("/{list_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_list(
    list_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    await services.lists.delete_list(list_id, user.id)
