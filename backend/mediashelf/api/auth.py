"""Registration, login and logout."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status

from mediashelf.api.deps import Services, get_current_user, get_services, oauth2_scheme, success
from mediashelf.models.tables import User
from mediashelf.schemas import LoginRequest, RegisterRequest
from mediashelf.security import create_access_token, decode_access_token

router = APIRouter(prefix="/auth")


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, services: Services = Depends(get_services)):
    user = await services.users.register(body.username, body.email, body.password)
    token = create_access_token(user.id, user.role)
    return success({"user": user.to_dict()}, token=token)


@router.post("/login")
async def login(body: LoginRequest, services: Services = Depends(get_services)):
    user = await services.users.authenticate(body.email, body.password)
    token = create_access_token(user.id, user.role)
    return success({"user": user.to_dict()}, token=token)


@router.post("/logout")
async def logout(
    token: str = Depends(oauth2_scheme),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Invalidate the presented token; other sessions keep working."""
    expires_at = datetime.fromtimestamp(decode_access_token(token)["exp"], timezone.utc)
    await services.users.revoke_token(token, expires_at)
    return success(None, message="Logged out successfully.")
