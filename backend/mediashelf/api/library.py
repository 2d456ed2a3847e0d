"""Library entry endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Response, status

from mediashelf.api.deps import Services, get_current_user, get_optional_user, get_services, success
from mediashelf.models.tables import User
from mediashelf.schemas import LibraryAdd, LibraryUpdate

router = APIRouter(prefix="/library")


@router.post("")
async def add_to_list(
    body: LibraryAdd,
    response: Response,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Add an item (local or provider id) to a list; re-adding updates the status."""
    entry, created = await services.library.add_to_list(
        user.id, body.list_id, body.item_type, body.item_id, body.status,
    )
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return success(entry.to_dict())


@router.get("/list/{list_id}")
async def list_entries(
    list_id: str,
    user: Optional[User] = Depends(get_optional_user),
    services: Services = Depends(get_services),
):
    viewer_id, viewer_role = (user.id, user.role) if user else (None, None)
    entries = await services.library.entries_for_list(list_id, viewer_id, viewer_role)
    return success(entries, count=len(entries))


@router.patch("/{entry_id}")
async def update_entry(
    entry_id: str,
    body: LibraryUpdate,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    entry = await services.library.update_status(entry_id, user.id, body.status)
    return success(entry.to_dict())


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_entry(
    entry_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    await services.library.remove_from_list(entry_id, user.id)
