"""User profile and account endpoints.

Other users' profiles are public projections; email and role are only
returned to their owner.
"""

from fastapi import APIRouter, Depends, status

from mediashelf.api.deps import (
    Services, get_current_user, get_services, query_params, require_admin, success,
)
from mediashelf.errors import ValidationError
from mediashelf.models.tables import User
from mediashelf.schemas import AccountDelete, AdminUserUpdate, PasswordChange, ProfileUpdate
from mediashelf.security import create_access_token
from mediashelf.services.activity import public_profile

router = APIRouter(prefix="/users")


@router.get("")
async def list_users(params: dict = Depends(query_params), services: Services = Depends(get_services)):
    users, query = await services.users.list_users(params)
    records = [query.project(public_profile(u), User) for u in users]
    return success(records, **query.meta(len(records)))


@router.get("/me")
async def get_me(user: User = Depends(get_current_user)):
    return success(user.to_dict())


@router.patch("/me")
async def update_me(
    body: ProfileUpdate,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    updated = await services.users.update_profile(user.id, body.username, body.email, body.avatar_url, body.bio)
    return success(updated.to_dict())


@router.patch("/me/password")
async def change_password(
    body: PasswordChange,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Change the password; older tokens stop working, a fresh one is returned."""
    updated = await services.users.change_password(user.id, body.current_password, body.new_password)
    return success(updated.to_dict(), token=create_access_token(updated.id, updated.role))


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
async def delete_me(
    body: AccountDelete,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    await services.users.deactivate(user.id, body.password)


@router.get("/{user_id}")
async def get_user(user_id: str, services: Services = Depends(get_services)):
    user = await services.users.get_user(user_id)
    return success(public_profile(user))


@router.patch("/{user_id}")
async def admin_update_user(
    user_id: str,
    body: AdminUserUpdate,
    admin: User = Depends(require_admin),
    services: Services = Depends(get_services),
):
    if body.password is not None:
        raise ValidationError("This route is not for password updates.")
    updated = await services.users.admin_update_user(
        user_id, body.username, body.email, body.avatar_url, body.bio, body.role, body.active,
    )
    return success(updated.to_dict())


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def admin_delete_user(
    user_id: str,
    admin: User = Depends(require_admin),
    services: Services = Depends(get_services),
):
    await services.users.delete_user(user_id)
