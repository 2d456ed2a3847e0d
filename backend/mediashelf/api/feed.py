"""Activity feeds, likes and comments."""

from fastapi import APIRouter, Depends, status

from mediashelf.api.deps import Services, get_current_user, get_services, query_params, success
from mediashelf.models.tables import Activity, User
from mediashelf.schemas import CommentCreate

router = APIRouter(prefix="/feed")


async def _page(services: Services, found) -> dict:
    activities, query = found
    records = [query.project(a, Activity) for a in await services.activities.hydrate(activities)]
    return success(records, **query.meta(len(records)))


async def _single(services: Services, activity: Activity) -> dict:
    [record] = await services.activities.hydrate([activity])
    return success(record)


@router.get("")
async def global_feed(params: dict = Depends(query_params), services: Services = Depends(get_services)):
    return await _page(services, await services.activities.global_feed(params))


@router.get("/me")
async def my_feed(
    params: dict = Depends(query_params),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return await _page(services, await services.activities.personal_feed(user.id, params))


@router.get("/social")
async def social_feed(
    params: dict = Depends(query_params),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """The caller's activity and that of everyone they follow."""
    return await _page(services, await services.activities.social_feed(user.id, params))


@router.get("/users/{user_id}")
async def user_feed(user_id: str, params: dict = Depends(query_params), services: Services = Depends(get_services)):
    await services.users.get_user(user_id)
    return await _page(services, await services.activities.personal_feed(user_id, params))


@router.post("/{activity_id}/like")
async def toggle_like(
    activity_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return await _single(services, await services.activities.toggle_like(activity_id, user.id))


@router.post("/{activity_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(
    activity_id: str,
    body: CommentCreate,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return await _single(services, await services.activities.add_comment(activity_id, user.id, body.text))


@router.delete("/{activity_id}/comments/{comment_id}")
async def delete_comment(
    activity_id: str,
    comment_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    activity = await services.activities.delete_comment(activity_id, comment_id, user.id, user.role)
    return await _single(services, activity)
