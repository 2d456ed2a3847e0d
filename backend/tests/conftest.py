"""Shared fixtures: a throwaway SQLite database and in-memory catalog adapters."""

from typing import Optional

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from mediashelf import models  # noqa: F401  (registers mappers)
from mediashelf.api.deps import Services
from mediashelf.clients.base import ICatalogAdapter, SearchPage
from mediashelf.database import Base
from mediashelf.models.tables import ItemKind

BOOKS = [
    {
        "google_books_id": "zyTCAlFPjgYC",
        "title": "Dune",
        "subtitle": "The Desert Planet",
        "authors": ["Frank Herbert"],
        "publisher": "Ace",
        "published_date": "1990-09-01",
        "description": "Arrakis.",
        "page_count": 535,
        "categories": ["Fiction", "Science Fiction"],
        "cover_image": "http://books.example/dune.jpg",
        "industry_identifiers": [],
    },
    {
        "google_books_id": "pD6arNyKyi8C",
        "title": "The Hobbit",
        "subtitle": None,
        "authors": ["J. R. R. Tolkien"],
        "publisher": "HarperCollins",
        "published_date": "2009-04-20",
        "description": "There and back again.",
        "page_count": 310,
        "categories": ["Fiction", "Fantasy"],
        "cover_image": None,
        "industry_identifiers": [],
    },
]

MOVIES = [
    {
        "tmdb_id": "603",
        "title": "The Matrix",
        "overview": "A hacker learns the truth.",
        "poster_path": "/matrix.jpg",
        "backdrop_path": None,
        "release_date": "1999-03-31",
        "genres": ["Action", "Science Fiction"],
    },
    {
        "tmdb_id": "550",
        "title": "Fight Club",
        "overview": "Soap.",
        "poster_path": "/fightclub.jpg",
        "backdrop_path": None,
        "release_date": "1999-10-15",
        "genres": ["Drama"],
    },
]


class FakeCatalogAdapter(ICatalogAdapter):
    """In-memory provider that records every call it receives."""

    def __init__(self, kind: ItemKind, provider: str, external_field: str, records: list[dict]):
        super().__init__()
        self.kind = kind
        self.provider = provider
        self.records = {r[external_field]: r for r in records}
        self.search_calls: list[str] = []
        self.get_calls: list[str] = []

    async def search(self, query: str, page: int = 1, page_size: int = 20) -> SearchPage:
        self.search_calls.append(query)
        results = [dict(r) for r in self.records.values() if query.lower() in r["title"].lower()]
        return SearchPage(results=results, page=page, total_results=len(results), total_pages=1 if results else 0)

    async def get_by_id(self, external_id: str) -> Optional[dict]:
        self.get_calls.append(external_id)
        record = self.records.get(external_id)
        return dict(record) if record is not None else None

    async def test_connection(self) -> bool:
        return True


def _enable_savepoints(engine):
    # pysqlite's implicit transaction handling breaks SAVEPOINT; issue BEGIN ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'mediashelf.db'}")
    _enable_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def book_adapter():
    return FakeCatalogAdapter(ItemKind.BOOK, "Google Books", "google_books_id", BOOKS)


@pytest.fixture
def movie_adapter():
    return FakeCatalogAdapter(ItemKind.MOVIE, "TMDB", "tmdb_id", MOVIES)


@pytest.fixture
def adapters(book_adapter, movie_adapter):
    return {ItemKind.BOOK: book_adapter, ItemKind.MOVIE: movie_adapter}


@pytest.fixture
def services(db, adapters):
    return Services(db, adapters)


@pytest.fixture
def make_user(services):
    counter = {"n": 0}

    async def _make(username: Optional[str] = None, password: str = "correct-horse"):
        counter["n"] += 1
        username = username or f"reader{counter['n']}"
        return await services.users.register(username, f"{username}@example.com", password)

    return _make
