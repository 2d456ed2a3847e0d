"""Google Books client — volume search and detail lookup.

Volumes are normalized into the ``books`` table schema. Category strings
such as "Fiction / Science Fiction" are split into a flat, de-duplicated
tag list on ingestion.
"""

import logging
import math
from typing import Optional

import httpx

from mediashelf.clients.base import ICatalogAdapter, SearchPage
from mediashelf.models.tables import ItemKind

logger = logging.getLogger(__name__)


def flatten_categories(raw: Optional[list[str]]) -> list[str]:
    """Split hierarchical category strings into unique tags, first-seen order."""
    tags: dict[str, None] = {}
    for category in raw or []:
        for tag in category.split("/"):
            tag = tag.strip()
            if tag:
                tags.setdefault(tag, None)
    return list(tags)


class GoogleBooksClient(ICatalogAdapter):
    """Google Books API v1 client."""

    kind = ItemKind.BOOK
    provider = "Google Books"

    def __init__(
        self,
        base_url: str = "https://www.googleapis.com/books/v1/volumes",
        api_key: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout=timeout, transport=transport)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key

    def _params(self, **extra) -> dict:
        params = {"printType": "books", **extra}
        if self.api_key:
            params["key"] = self.api_key
        return params

    # ── Search ───────────────────────────────────────────────────

    async def search(self, query: str, page: int = 1, page_size: int = 20) -> SearchPage:
        """Title search, one page at a time.

        The volumes endpoint occasionally returns an empty page even though
        ``totalItems`` is positive and smaller than ``maxResults``. In that
        case the request is retried once with ``maxResults`` clamped to the
        reported total.
        """
        page = max(page, 1)
        params = self._params(
            q=f"intitle:{query}",
            startIndex=(page - 1) * page_size,
            maxResults=page_size,
        )
        data = (await self._request(self.base_url, params)).json()

        total = data.get("totalItems", 0) or 0
        if not data.get("items") and 0 < total < page_size:
            logger.warning(f"Google Books pagination boundary hit for '{query}', retrying with maxResults={total}")
            data = (await self._request(self.base_url, {**params, "maxResults": total})).json()
            total = data.get("totalItems", total) or total

        return SearchPage(
            results=[self._normalize_volume(item) for item in data.get("items") or []],
            page=page,
            total_results=total,
            total_pages=math.ceil(total / page_size) if page_size else 0,
        )

    # ── Volume details ───────────────────────────────────────────

    async def get_by_id(self, external_id: str) -> Optional[dict]:
        resp = await self._request(f"{self.base_url}/{external_id}", self._params(), allow_not_found=True)
        if resp.status_code == 404:
            return None
        return self._normalize_volume(resp.json())

    # ── Test connection ──────────────────────────────────────────

    async def test_connection(self) -> bool:
        try:
            await self.search("test", page_size=1)
            return True
        except Exception:
            return False

    # ── Normalization helpers ────────────────────────────────────

    @staticmethod
    def _normalize_volume(item: dict) -> dict:
        """Normalize a Google Books volume into our books schema."""
        info = item.get("volumeInfo", {})
        images = info.get("imageLinks") or {}
        return {
            "google_books_id": item["id"],
            "title": info.get("title", ""),
            "subtitle": info.get("subtitle"),
            "authors": info.get("authors") or [],
            "publisher": info.get("publisher"),
            "published_date": info.get("publishedDate"),
            "description": info.get("description"),
            "page_count": info.get("pageCount"),
            "categories": flatten_categories(info.get("categories")),
            "cover_image": images.get("thumbnail"),
            "industry_identifiers": info.get("industryIdentifiers") or [],
        }
