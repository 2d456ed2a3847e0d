"""Re-export all SQLAlchemy models for Alembic and import convenience."""

from mediashelf.models.tables import (  # noqa: F401
    ItemKind, SubjectKind, ActivityType, EntryStatus, Role,
    STATUSES_BY_KIND, DEFAULT_STATUS, FINISHED_STATUS,
    User, user_visibility, RevokedToken,
    Book, Movie, ITEM_MODELS,
    UserList, LibraryEntry, Review,
    Follow, Activity, SUBJECT_MODELS,
)
