"""Follow graph endpoints, mounted under /users."""

from fastapi import APIRouter, Depends, status

from mediashelf.api.deps import Services, get_current_user, get_services, success
from mediashelf.models.tables import User
from mediashelf.services.activity import user_summary

router = APIRouter(prefix="/users")


@router.get("/me/followers")
async def my_followers(user: User = Depends(get_current_user), services: Services = Depends(get_services)):
    followers = await services.follows.followers(user.id)
    return success([user_summary(u) for u in followers], count=len(followers))


@router.get("/me/following")
async def my_following(user: User = Depends(get_current_user), services: Services = Depends(get_services)):
    following = await services.follows.following(user.id)
    return success([user_summary(u) for u in following], count=len(following))


@router.post("/{user_id}/follow", status_code=status.HTTP_201_CREATED)
async def follow(user_id: str, user: User = Depends(get_current_user), services: Services = Depends(get_services)):
    edge = await services.follows.follow(user.id, user_id)
    return success(edge.to_dict())


@router.delete("/{user_id}/follow", status_code=status.HTTP_204_NO_CONTENT)
async def unfollow(user_id: str, user: User = Depends(get_current_user), services: Services = Depends(get_services)):
    await services.follows.unfollow(user.id, user_id)


@router.get("/{user_id}/followers")
async def followers(user_id: str, services: Services = Depends(get_services)):
    await services.users.get_user(user_id)
    users = await services.follows.followers(user_id)
    return success([user_summary(u) for u in users], count=len(users))


@router.get("/{user_id}/following")
async def following(user_id: str, services: Services = Depends(get_services)):
    await services.users.get_user(user_id)
    users = await services.follows.following(user_id)
    return success([user_summary(u) for u in users], count=len(users))


@router.get("/{user_id}/follow-stats")
async def follow_stats(user_id: str, services: Services = Depends(get_services)):
    await services.users.get_user(user_id)
    return success(await services.follows.stats(user_id))
