"""Accounts: registration, login, profiles, logout and deletion.

Users delete their own account softly (it is deactivated and hidden);
administrators can delete one for good, together with everything it owns.
Logged-out tokens are remembered by hash until they would have expired.
"""

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mediashelf.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from mediashelf.models.tables import (
    Activity, Follow, ItemKind, LibraryEntry, Review, RevokedToken, Role, SubjectKind, User, UserList,
    user_visibility,
)
from mediashelf.security import hash_password, verify_password
from mediashelf.services.lists import UserListService
from mediashelf.services.query_builder import ListQuery, ParamValue, apply_list_query, build_list_query
from mediashelf.services.ratings import RatingAggregator

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def _validate_password(password: Optional[str]) -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")
    return password


def _token_hash(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def _normalize(value: Optional[str], label: str) -> str:
    value = (value or "").strip().lower()
    if not value:
        raise ValidationError(f"{label} is required.")
    return value


class UserService:
    def __init__(self, db: AsyncSession, lists: UserListService, ratings: RatingAggregator):
        self.db = db
        self.lists = lists
        self.ratings = ratings

    async def _ensure_unique(self, username: Optional[str], email: Optional[str], exclude_id: Optional[str] = None):
        clauses = []
        if username:
            clauses.append(User.username == username)
        if email:
            clauses.append(User.email == email)
        if not clauses:
            return
        stmt = select(User.id).where(or_(*clauses))
        if exclude_id:
            stmt = stmt.where(User.id != exclude_id)
        if (await self.db.execute(stmt)).first() is not None:
            raise ConflictError("That username or email is already in use.")

    async def register(self, username: str, email: str, password: str) -> User:
        username = _normalize(username, "Username")
        email = _normalize(email, "Email")
        if "@" not in email:
            raise ValidationError("Please provide a valid email address.")
        password = _validate_password(password)

        await self._ensure_unique(username, email)
        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password),
            role=Role.USER.value,
            active=True,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(user)
        except IntegrityError:
            raise ConflictError("That username or email is already in use.")

        await self.lists.create_default_lists(user.id)
        logger.info(f"User {user.id} registered as {username}")
        return user

    async def authenticate(self, email: str, password: str) -> User:
        email = (email or "").strip().lower()
        if not email or not password:
            raise ValidationError("Please provide email and password.")
        result = await self.db.execute(select(User).where(User.email == email, user_visibility()))
        user = result.scalar_one_or_none()
        if user is None or not verify_password(password, user.password_hash):
            raise AuthenticationError("Incorrect email or password.")
        return user

    async def get_user(self, user_id: str, include_inactive: bool = False) -> User:
        result = await self.db.execute(select(User).where(User.id == user_id, user_visibility(include_inactive)))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("No user found with that ID.")
        return user

    async def list_users(
        self,
        params: Mapping[str, ParamValue],
        include_inactive: bool = False,
    ) -> tuple[list[User], ListQuery]:
        query = build_list_query(params)
        stmt = select(User).where(user_visibility(include_inactive))
        result = await self.db.execute(apply_list_query(stmt, User, query, search_fields=("username",)))
        return list(result.scalars().all()), query

    async def update_profile(
        self,
        user_id: str,
        username: Optional[str] = None,
        email: Optional[str] = None,
        avatar_url: Optional[str] = None,
        bio: Optional[str] = None,
    ) -> User:
        """Update public profile fields; passwords go through ``change_password``."""
        user = await self.get_user(user_id)
        username = _normalize(username, "Username") if username is not None else None
        email = _normalize(email, "Email") if email is not None else None
        await self._ensure_unique(username, email, exclude_id=user_id)

        if username is not None:
            user.username = username
        if email is not None:
            user.email = email
        if avatar_url is not None:
            user.avatar_url = avatar_url
        if bio is not None:
            user.bio = bio
        try:
            async with self.db.begin_nested():
                await self.db.flush()
        except IntegrityError:
            raise ConflictError("That username or email is already in use.")
        return user

    async def change_password(self, user_id: str, current_password: str, new_password: str) -> User:
        user = await self.get_user(user_id)
        if not verify_password(current_password or "", user.password_hash):
            raise AuthenticationError("Your current password is wrong.")
        user.password_hash = hash_password(_validate_password(new_password))
        # Back-dated so a token minted right after the change stays valid
        user.password_changed_at = datetime.now(timezone.utc) - timedelta(seconds=1)
        await self.db.flush()
        logger.info(f"User {user_id} changed their password")
        return user

    async def deactivate(self, user_id: str, password: str) -> None:
        """Soft-delete the caller's own account once they confirm their password."""
        user = await self.get_user(user_id)
        if not verify_password(password or "", user.password_hash):
            raise AuthenticationError("Your password is incorrect.")
        user.active = False
        await self.db.flush()
        logger.info(f"User {user_id} deactivated")

    # ── Administration ───────────────────────────────────────────

    async def admin_update_user(
        self,
        user_id: str,
        username: Optional[str] = None,
        email: Optional[str] = None,
        avatar_url: Optional[str] = None,
        bio: Optional[str] = None,
        role: Optional[str] = None,
        active: Optional[bool] = None,
    ) -> User:
        """Edit any account, deactivated ones included. Passwords are not editable here."""
        user = await self.get_user(user_id, include_inactive=True)
        if role is not None:
            try:
                role = Role(role).value
            except ValueError:
                raise ValidationError(f"Role must be one of: {', '.join(r.value for r in Role)}.")
        username = _normalize(username, "Username") if username is not None else None
        email = _normalize(email, "Email") if email is not None else None
        await self._ensure_unique(username, email, exclude_id=user_id)

        for name, value in (
            ("username", username), ("email", email), ("avatar_url", avatar_url),
            ("bio", bio), ("role", role), ("active", active),
        ):
            if value is not None:
                setattr(user, name, value)
        try:
            async with self.db.begin_nested():
                await self.db.flush()
        except IntegrityError:
            raise ConflictError("That username or email is already in use.")
        logger.info(f"User {user_id} updated by an administrator")
        return user

    async def delete_user(self, user_id: str) -> None:
        """Remove an account and everything it owns, then refresh affected ratings."""
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("No user found with that ID to delete.")

        reviewed = (await self.db.execute(
            select(Review.item_id, Review.item_model).where(Review.user_id == user_id)
        )).all()
        follow_ids = (await self.db.execute(
            select(Follow.id).where(or_(Follow.follower_id == user_id, Follow.following_id == user_id))
        )).scalars().all()

        await self.db.execute(delete(Activity).where(or_(
            Activity.user_id == user_id,
            (Activity.subject_model == SubjectKind.FOLLOW.value) & Activity.subject_id.in_(follow_ids),
        )))
        await self.db.execute(delete(Follow).where(Follow.id.in_(follow_ids)))
        await self.db.execute(delete(LibraryEntry).where(LibraryEntry.user_id == user_id))
        await self.db.execute(delete(UserList).where(UserList.user_id == user_id))
        await self.db.execute(delete(Review).where(Review.user_id == user_id))
        await self.db.delete(user)
        await self.db.flush()

        for item_id, item_model in reviewed:
            await self.ratings.recompute(item_id, ItemKind(item_model))
        logger.info(f"User {user_id} deleted with {len(reviewed)} reviews")

    # ── Token revocation ─────────────────────────────────────────

    async def revoke_token(self, token: str, expires_at: datetime) -> None:
        """Blacklist a token until its own expiry; revoking twice is harmless."""
        if await self.is_token_revoked(token):
            return
        try:
            async with self.db.begin_nested():
                self.db.add(RevokedToken(token_hash=_token_hash(token), expires_at=expires_at))
        except IntegrityError:
            logger.debug("Token was already revoked")
        await self.db.execute(
            delete(RevokedToken).where(RevokedToken.expires_at <= datetime.now(timezone.utc))
        )

    async def is_token_revoked(self, token: str) -> bool:
        result = await self.db.execute(
            select(RevokedToken.id).where(
                RevokedToken.token_hash == _token_hash(token),
                RevokedToken.expires_at > datetime.now(timezone.utc),
            )
        )
        return result.first() is not None
