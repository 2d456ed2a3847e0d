"""Abstract interface for upstream catalog providers.

Each provider normalizes its own search/detail payloads into the column
names of the local item table, so a fetched record can be persisted as-is.
Google Books backs books, TMDB backs movies.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

import httpx

from mediashelf.errors import UpstreamError
from mediashelf.models.tables import ItemKind

logger = logging.getLogger(__name__)


# ── Data Transfer Objects ────────────────────────────────────────

@dataclass
class SearchPage:
    """One page of normalized upstream search results."""
    results: list[dict] = field(default_factory=list)
    page: int = 1
    total_results: int = 0
    total_pages: int = 0


# ── Abstract Interface ───────────────────────────────────────────

class ICatalogAdapter(ABC):
    """Interface for third-party catalogs (Google Books, TMDB)."""

    kind: ItemKind
    provider: str

    def __init__(self, timeout: float = 15.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        # Injected in tests; None means a real network transport
        self._transport = transport

    @abstractmethod
    async def search(self, query: str, page: int = 1, page_size: int = 20) -> SearchPage:
        """Search the provider. Results carry no local ids."""
        ...

    @abstractmethod
    async def get_by_id(self, external_id: str) -> Optional[dict]:
        """Fetch one normalized item, or None if the provider has no such id."""
        ...

    @abstractmethod
    async def test_connection(self) -> bool:
        """Test if the provider is reachable and the credentials work."""
        ...

    # ── Shared HTTP plumbing ─────────────────────────────────────

    async def _request(
        self,
        url: str,
        params: dict | None = None,
        headers: dict | None = None,
        allow_not_found: bool = False,
    ) -> httpx.Response:
        """GET ``url``; transport failures and non-2xx become UpstreamError.

        With ``allow_not_found`` a 404 is returned untouched so detail lookups
        can tell "no such id" apart from a provider failure.
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(url, params=params, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"{self.provider} request to {url} failed: {e}")
            raise UpstreamError(f"Could not reach {self.provider}.", provider=self.provider) from e

        if resp.status_code == 404 and allow_not_found:
            return resp
        if resp.is_error:
            logger.warning(f"{self.provider} answered {resp.status_code} for {url}")
            raise UpstreamError(
                f"{self.provider} request failed with status {resp.status_code}.",
                status_code=resp.status_code,
                provider=self.provider,
            )
        return resp
