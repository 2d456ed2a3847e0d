"""Shared FastAPI dependencies: services, adapters, the acting user and query params."""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from mediashelf.clients.base import ICatalogAdapter
from mediashelf.clients.google_books import GoogleBooksClient
from mediashelf.clients.tmdb import GenreCache, TmdbClient
from mediashelf.config import settings
from mediashelf.database import get_db
from mediashelf.errors import AuthenticationError, NotFoundError, PermissionDenied
from mediashelf.models.tables import ItemKind, Role, User
from mediashelf.security import decode_access_token, issued_before
from mediashelf.services.activity import ActivityService
from mediashelf.services.catalog import CatalogRegistry
from mediashelf.services.follows import FollowService
from mediashelf.services.library import LibraryService
from mediashelf.services.lists import UserListService
from mediashelf.services.query_builder import ParamValue
from mediashelf.services.ratings import RatingAggregator
from mediashelf.services.reviews import ReviewService
from mediashelf.services.users import UserService

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)

# Process-wide: the genre table is loaded once and shared by every request
genre_cache = GenreCache()
_adapters: dict[ItemKind, ICatalogAdapter] = {}


def get_adapters() -> dict[ItemKind, ICatalogAdapter]:
    if not _adapters:
        _adapters[ItemKind.BOOK] = GoogleBooksClient(
            base_url=settings.google_books_api_url,
            api_key=settings.google_books_api_key,
            timeout=settings.upstream_timeout_seconds,
        )
        _adapters[ItemKind.MOVIE] = TmdbClient(
            api_key=settings.tmdb_api_key or "",
            base_url=settings.tmdb_api_url,
            language=settings.tmdb_language,
            genre_cache=genre_cache,
            timeout=settings.upstream_timeout_seconds,
        )
    return _adapters


class Services:
    """Service stack bound to one request's session."""

    def __init__(self, db: AsyncSession, adapters: dict[ItemKind, ICatalogAdapter]):
        self.db = db
        self.catalog = CatalogRegistry(db, adapters)
        self.activities = ActivityService(db)
        self.ratings = RatingAggregator(db)
        self.lists = UserListService(db)
        self.library = LibraryService(db, self.catalog, self.lists, self.activities)
        self.reviews = ReviewService(db, self.catalog, self.library, self.activities, self.ratings)
        self.follows = FollowService(db, self.activities)
        self.users = UserService(db, self.lists, self.ratings)


def get_services(
    db: AsyncSession = Depends(get_db),
    adapters: dict[ItemKind, ICatalogAdapter] = Depends(get_adapters),
) -> Services:
    return Services(db, adapters)


async def get_optional_user(
    token: Optional[str] = Depends(oauth2_scheme),
    services: Services = Depends(get_services),
) -> Optional[User]:
    """The user behind the bearer token, or None for anonymous requests."""
    if not token:
        return None
    payload = decode_access_token(token)
    if await services.users.is_token_revoked(token):
        raise AuthenticationError("This token has been invalidated. Please log in again.")
    try:
        user = await services.users.get_user(payload["sub"])
    except NotFoundError:
        raise AuthenticationError("The user belonging to this token no longer exists.")
    if issued_before(payload, user.password_changed_at):
        raise AuthenticationError("User recently changed password. Please log in again.")
    return user


async def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    if user is None:
        raise AuthenticationError("You are not logged in. Please log in to get access.")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != Role.ADMIN.value:
        raise PermissionDenied("You do not have permission to perform this action.")
    return user


def query_params(request: Request) -> dict[str, ParamValue]:
    """Query string as a mapping; repeated keys keep every value."""
    params: dict[str, ParamValue] = {}
    for key in request.query_params.keys():
        values = request.query_params.getlist(key)
        params[key] = values[0] if len(values) == 1 else values
    return params


def success(data, **extra) -> dict:
    return {"status": "success", **extra, "data": data}
