"""Async database engine and session management."""

from typing import Any, ClassVar

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from mediashelf.config import settings


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine; pool sizing only applies to server databases."""
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=echo)
    return create_async_engine(
        url,
        echo=echo,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
    )


engine = build_engine(settings.database_url, echo=settings.debug)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""

    # Columns never returned to clients
    __hidden_fields__: ClassVar[frozenset[str]] = frozenset()

    # Returned to their owner only; never usable in list filters, sorts or projections
    __private_fields__: ClassVar[frozenset[str]] = frozenset()

    # Query-string names accepted in place of column names
    __filter_aliases__: ClassVar[dict[str, str]] = {}

    def to_dict(self) -> dict[str, Any]:
        return {
            attr.key: getattr(self, attr.key)
            for attr in self.__mapper__.column_attrs
            if attr.key not in self.__hidden_fields__
        }


async def init_db():
    """Create all tables. In production, use Alembic migrations instead."""
    from mediashelf import models  # noqa: F401  (registers mappers)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncSession:
    """FastAPI dependency — yields an async DB session."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
