"""TMDB client — movie search, details and the genre taxonomy.

Search results only carry genre ids, so the id → name map is fetched once
and kept in a ``GenreCache`` for the life of the process.
"""

import logging
from typing import Awaitable, Callable, Optional

import httpx

from mediashelf.clients.base import ICatalogAdapter, SearchPage
from mediashelf.errors import ValidationError
from mediashelf.models.tables import ItemKind

logger = logging.getLogger(__name__)


class GenreCache:
    """Lazily populated genre id → name map. Never expires.

    Concurrent first use may load twice; the second load overwrites the
    first with identical data.
    """

    def __init__(self, genres: Optional[dict[int, str]] = None):
        self._genres = genres

    @property
    def loaded(self) -> bool:
        return self._genres is not None

    async def get(self, loader: Callable[[], Awaitable[dict[int, str]]]) -> dict[int, str]:
        if self._genres is None:
            self._genres = await loader()
            logger.info(f"TMDB genre map cached ({len(self._genres)} genres)")
        return self._genres

    def reset(self) -> None:
        self._genres = None


class TmdbClient(ICatalogAdapter):
    """The Movie Database API v3 client."""

    kind = ItemKind.MOVIE
    provider = "TMDB"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.themoviedb.org/3",
        language: str = "en-US",
        genre_cache: Optional[GenreCache] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout=timeout, transport=transport)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.language = language
        self.genre_cache = genre_cache if genre_cache is not None else GenreCache()
        # Detect auth mode: JWT (v4 bearer) vs plain key (v3 query param)
        self._is_bearer = api_key.startswith("eyJ")

    async def _get(self, path: str, params: dict | None = None, allow_not_found: bool = False) -> httpx.Response:
        """Make authenticated GET request to TMDB.

        v4 bearer tokens work with v3 endpoints via Authorization header.
        """
        all_params = {"language": self.language, **(params or {})}
        headers = {}

        if self._is_bearer:
            headers["Authorization"] = f"Bearer {self.api_key}"
        else:
            all_params["api_key"] = self.api_key

        return await self._request(f"{self.base_url}{path}", all_params, headers, allow_not_found=allow_not_found)

    # ── Search ───────────────────────────────────────────────────

    async def search(self, query: str, page: int = 1, page_size: int = 20) -> SearchPage:
        """Search for movies by title.

        TMDB pages are fixed at 20 results; ``page_size`` is accepted for
        interface parity and ignored.
        """
        if not query:
            raise ValidationError("Search query cannot be empty.")

        data = (await self._get("/search/movie", {"query": query, "page": max(page, 1)})).json()
        genres = await self.genre_cache.get(self.get_movie_genres)

        return SearchPage(
            results=[self._normalize_movie(m, genres) for m in data.get("results", [])],
            page=data.get("page", page),
            total_results=data.get("total_results", 0),
            total_pages=data.get("total_pages", 0),
        )

    # ── Movie details ────────────────────────────────────────────

    async def get_by_id(self, external_id: str) -> Optional[dict]:
        resp = await self._get(f"/movie/{external_id}", allow_not_found=True)
        if resp.status_code == 404:
            return None
        return self._normalize_movie(resp.json())

    # ── Genre lists ──────────────────────────────────────────────

    async def get_movie_genres(self) -> dict[int, str]:
        """Get {id: name} mapping for movie genres."""
        data = (await self._get("/genre/movie/list")).json()
        return {g["id"]: g["name"] for g in data.get("genres", [])}

    # ── Test connection ──────────────────────────────────────────

    async def test_connection(self) -> bool:
        """Test TMDB API key validity."""
        try:
            await self._get("/configuration")
            return True
        except Exception:
            return False

    # ── Normalization helpers ────────────────────────────────────

    @staticmethod
    def _normalize_movie(data: dict, genre_names: Optional[dict[int, str]] = None) -> dict:
        """Normalize a TMDB movie (search hit or full details) into our schema.

        Detail payloads embed ``genres`` as objects; search hits only carry
        ``genre_ids``, resolved through ``genre_names``.
        """
        if "genres" in data:
            genres = [g["name"] for g in data.get("genres") or [] if g.get("name")]
        else:
            lookup = genre_names or {}
            genres = [lookup[g] for g in data.get("genre_ids") or [] if g in lookup]

        return {
            "tmdb_id": str(data["id"]),
            "title": data.get("title", ""),
            "overview": data.get("overview"),
            "poster_path": data.get("poster_path"),
            "backdrop_path": data.get("backdrop_path"),
            "release_date": data.get("release_date") or None,
            "genres": genres,
        }
