"""SQLAlchemy ORM models — all database tables."""

import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Integer, Float, String, Text, Boolean, DateTime, JSON,
    ForeignKey, Index, UniqueConstraint, true,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from mediashelf.database import Base
from mediashelf.ids import new_object_id

# JSON arrays stand in for document arrays; JSONB gives containment on Postgres
JsonArray = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _id_column() -> Mapped[str]:
    return mapped_column(String(24), primary_key=True, default=new_object_id)


def _created_at() -> Mapped[datetime]:
    return mapped_column(DateTime(timezone=True), default=utcnow, index=True)


def _updated_at() -> Mapped[datetime]:
    return mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


# ── Tags ─────────────────────────────────────────────────────────

class ItemKind(str, enum.Enum):
    BOOK = "Book"
    MOVIE = "Movie"


class SubjectKind(str, enum.Enum):
    REVIEW = "Review"
    LIBRARY_ENTRY = "LibraryEntry"
    FOLLOW = "Follow"


class ActivityType(str, enum.Enum):
    REVIEW_CREATED = "REVIEW_CREATED"
    LIBRARY_ENTRY_CREATED = "LIBRARY_ENTRY_CREATED"
    FOLLOW_CREATED = "FOLLOW_CREATED"


class EntryStatus(str, enum.Enum):
    READ = "READ"
    READING = "READING"
    WANT_TO_READ = "WANT_TO_READ"
    WATCHED = "WATCHED"
    WATCHING = "WATCHING"
    WANT_TO_WATCH = "WANT_TO_WATCH"


STATUSES_BY_KIND: dict[ItemKind, tuple[EntryStatus, ...]] = {
    ItemKind.BOOK: (EntryStatus.READ, EntryStatus.READING, EntryStatus.WANT_TO_READ),
    ItemKind.MOVIE: (EntryStatus.WATCHED, EntryStatus.WATCHING, EntryStatus.WANT_TO_WATCH),
}

DEFAULT_STATUS: dict[ItemKind, EntryStatus] = {
    ItemKind.BOOK: EntryStatus.WANT_TO_READ,
    ItemKind.MOVIE: EntryStatus.WANT_TO_WATCH,
}

# Status written when a review auto-files the item into the default list
FINISHED_STATUS: dict[ItemKind, EntryStatus] = {
    ItemKind.BOOK: EntryStatus.READ,
    ItemKind.MOVIE: EntryStatus.WATCHED,
}


class Role(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


# ── Users ────────────────────────────────────────────────────────

class User(Base):
    __tablename__ = "users"
    __hidden_fields__ = frozenset({"password_hash", "active", "password_changed_at"})
    __private_fields__ = frozenset({"email", "role"})

    id: Mapped[str] = _id_column()
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(300), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(10), default=Role.USER.value)  # user | admin
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500))
    bio: Mapped[Optional[str]] = mapped_column(Text)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    password_changed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


def user_visibility(include_inactive: bool = False):
    """Predicate every user query applies; soft-deleted users are opt-in."""
    if include_inactive:
        return true()
    return User.active.is_(True)


class RevokedToken(Base):
    """Access tokens invalidated by logout, kept until they would expire anyway."""

    __tablename__ = "revoked_tokens"

    id: Mapped[str] = _id_column()
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)  # sha256 hex
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    created_at: Mapped[datetime] = _created_at()


# ── Catalog items ────────────────────────────────────────────────

class Book(Base):
    __tablename__ = "books"
    __external_id__ = "google_books_id"
    __filter_aliases__ = {"category": "categories", "author": "authors"}

    id: Mapped[str] = _id_column()
    google_books_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    subtitle: Mapped[Optional[str]] = mapped_column(String(500))
    authors: Mapped[list] = mapped_column(JsonArray, default=list)
    publisher: Mapped[Optional[str]] = mapped_column(String(300))
    published_date: Mapped[Optional[str]] = mapped_column(String(20))
    description: Mapped[Optional[str]] = mapped_column(Text)
    page_count: Mapped[Optional[int]] = mapped_column(Integer)
    categories: Mapped[list] = mapped_column(JsonArray, default=list)
    cover_image: Mapped[Optional[str]] = mapped_column(String(500))
    industry_identifiers: Mapped[list] = mapped_column(JsonArray, default=list)
    average_rating: Mapped[float] = mapped_column(Float, default=0)
    ratings_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class Movie(Base):
    __tablename__ = "movies"
    __external_id__ = "tmdb_id"
    __filter_aliases__ = {"genre": "genres"}

    id: Mapped[str] = _id_column()
    tmdb_id: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    overview: Mapped[Optional[str]] = mapped_column(Text)
    poster_path: Mapped[Optional[str]] = mapped_column(String(200))
    backdrop_path: Mapped[Optional[str]] = mapped_column(String(200))
    release_date: Mapped[Optional[str]] = mapped_column(String(20))
    genres: Mapped[list] = mapped_column(JsonArray, default=list)
    average_rating: Mapped[float] = mapped_column(Float, default=0)
    ratings_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


ITEM_MODELS: dict[ItemKind, type[Base]] = {
    ItemKind.BOOK: Book,
    ItemKind.MOVIE: Movie,
}


# ── Lists & library ──────────────────────────────────────────────

class UserList(Base):
    __tablename__ = "user_lists"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_user_lists_user_name"),
    )

    id: Mapped[str] = _id_column()
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500))
    is_public: Mapped[bool] = mapped_column(Boolean, default=False)
    type: Mapped[str] = mapped_column(String(10), nullable=False)  # Book | Movie
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class LibraryEntry(Base):
    __tablename__ = "library_entries"
    __table_args__ = (
        UniqueConstraint("user_id", "list_id", "item_id", name="uq_library_entries_user_list_item"),
    )

    id: Mapped[str] = _id_column()
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    list_id: Mapped[str] = mapped_column(ForeignKey("user_lists.id", ondelete="CASCADE"), index=True)
    item_id: Mapped[str] = mapped_column(String(24), nullable=False)
    item_model: Mapped[str] = mapped_column(String(10), nullable=False)  # Book | Movie
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


# ── Reviews ──────────────────────────────────────────────────────

class Review(Base):
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("user_id", "item_id", name="uq_reviews_user_item"),
        Index("idx_reviews_item", "item_id", "item_model"),
    )

    id: Mapped[str] = _id_column()
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    item_id: Mapped[str] = mapped_column(String(24), nullable=False)
    item_model: Mapped[str] = mapped_column(String(10), nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    text: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


# ── Social graph ─────────────────────────────────────────────────

class Follow(Base):
    __tablename__ = "follows"
    __table_args__ = (
        UniqueConstraint("follower_id", "following_id", name="uq_follows_pair"),
    )

    id: Mapped[str] = _id_column()
    follower_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    following_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class Activity(Base):
    __tablename__ = "activities"
    __table_args__ = (
        Index("idx_activities_user_created", "user_id", "created_at"),
    )

    id: Mapped[str] = _id_column()
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(24), nullable=False)
    subject_model: Mapped[str] = mapped_column(String(20), nullable=False)  # Review | LibraryEntry | Follow
    likes: Mapped[list] = mapped_column(JsonArray, default=list)      # user ids
    comments: Mapped[list] = mapped_column(JsonArray, default=list)   # [{id, user_id, text, created_at}]
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


SUBJECT_MODELS: dict[SubjectKind, type[Base]] = {
    SubjectKind.REVIEW: Review,
    SubjectKind.LIBRARY_ENTRY: LibraryEntry,
    SubjectKind.FOLLOW: Follow,
}
