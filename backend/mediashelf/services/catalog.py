"""Catalog service — get-or-create resolution and hybrid search.

Books and movies live upstream (Google Books, TMDB) and are copied into the
local database the first time anything references them. The local row is
the cache-of-record: it never expires and carries the denormalized rating
summary. Search goes upstream and only *annotates* results with local ids;
it never writes.
"""

import logging
from typing import Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mediashelf.clients.base import ICatalogAdapter
from mediashelf.config import settings
from mediashelf.errors import NotFoundError, ValidationError
from mediashelf.ids import is_local_id, normalize_local_id
from mediashelf.models.tables import ITEM_MODELS, ItemKind
from mediashelf.services.query_builder import ListQuery, ParamValue, apply_list_query, build_list_query

logger = logging.getLogger(__name__)


class CatalogService:
    """Resolver and search merger for one item kind."""

    def __init__(self, db: AsyncSession, kind: ItemKind, adapter: ICatalogAdapter):
        self.db = db
        self.kind = kind
        self.adapter = adapter
        self.model = ITEM_MODELS[kind]
        self.external_field = self.model.__external_id__

    @property
    def _external_column(self):
        return getattr(self.model, self.external_field)

    # ── Get-or-create ────────────────────────────────────────────

    async def ensure_exists(self, identifier: str):
        """Return the local record for a local id or an external catalog id.

        External ids are served from the local copy when present; otherwise
        the item is fetched upstream and persisted (one write on a miss,
        none on a hit).
        """
        if is_local_id(identifier):
            item = await self.db.get(self.model, normalize_local_id(identifier))
            if item is None:
                raise NotFoundError(f"No {self.kind.value.lower()} found with that ID in our database.")
            return item

        item = await self.find_by_external_id(identifier)
        if item is not None:
            return item

        logger.info(f"{self.kind.value} {identifier} not cached, fetching from {self.adapter.provider}")
        data = await self.adapter.get_by_id(identifier)
        if data is None:
            raise NotFoundError(f"No {self.kind.value.lower()} found with that ID on {self.adapter.provider}.")

        return await self._persist(identifier, data)

    async def get_details(self, identifier: str):
        return await self.ensure_exists(identifier)

    async def _persist(self, identifier: str, data: dict):
        """Insert a fetched item; a concurrent insert of the same id wins.

        Two first references can both miss the cache. The unique constraint
        on the external id rejects the second insert, which then returns the
        row the first one wrote.
        """
        item = self.model(**data)
        try:
            async with self.db.begin_nested():
                self.db.add(item)
        except IntegrityError:
            existing = await self.find_by_external_id(data.get(self.external_field, identifier))
            if existing is None:
                raise
            logger.info(f"{self.kind.value} {identifier} was cached concurrently, using existing row")
            return existing
        return item

    async def find_local(self, identifier: str):
        """Look up a cached item by either id kind without going upstream."""
        if is_local_id(identifier):
            return await self.db.get(self.model, normalize_local_id(identifier))
        return await self.find_by_external_id(identifier)

    async def find_by_external_id(self, external_id: str):
        result = await self.db.execute(select(self.model).where(self._external_column == external_id))
        return result.scalar_one_or_none()

    async def find_by_external_ids(self, external_ids: list[str]) -> list:
        if not external_ids:
            return []
        result = await self.db.execute(select(self.model).where(self._external_column.in_(external_ids)))
        return list(result.scalars().all())

    # ── Hybrid search ────────────────────────────────────────────

    async def search(self, query: Optional[str], page: int = 1, page_size: Optional[int] = None) -> dict:
        """Upstream search annotated with local cache presence.

        Each result gets ``is_enriched`` and ``detail_page_id``: the local id
        when the item is already cached, else the external id, which the
        detail endpoint accepts just the same.
        """
        if not query or not query.strip():
            raise ValidationError("A search query (q) is required.")

        found = await self.adapter.search(query.strip(), page, page_size or settings.search_page_size)
        if not found.results:
            return {
                "results": [],
                "page": found.page,
                "total_results": found.total_results,
                "total_pages": found.total_pages,
            }

        external_ids = [r[self.external_field] for r in found.results]
        cached = {
            getattr(item, self.external_field): item
            for item in await self.find_by_external_ids(external_ids)
        }

        results = []
        for result in found.results:
            local = cached.get(result[self.external_field])
            results.append({
                **result,
                "is_enriched": local is not None,
                "detail_page_id": local.id if local is not None else result[self.external_field],
            })

        return {
            "results": results,
            "page": found.page,
            "total_results": found.total_results,
            "total_pages": found.total_pages,
        }

    # ── Local discovery ──────────────────────────────────────────

    async def list_items(self, params: Mapping[str, ParamValue]) -> tuple[list, ListQuery]:
        """Browse locally cached items with the generic query parameters."""
        query = build_list_query(params)
        stmt = apply_list_query(select(self.model), self.model, query)
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), query


class CatalogRegistry:
    """Per-request lookup of the catalog service for an item kind."""

    def __init__(self, db: AsyncSession, adapters: Mapping[ItemKind, ICatalogAdapter]):
        self.db = db
        self.adapters = adapters
        self._services: dict[ItemKind, CatalogService] = {}

    def __getitem__(self, kind: ItemKind) -> CatalogService:
        if kind not in self._services:
            self._services[kind] = CatalogService(self.db, kind, self.adapters[kind])
        return self._services[kind]

    async def ensure_exists(self, kind: ItemKind, identifier: str):
        return await self[kind].ensure_exists(identifier)

    async def find_many(self, kind: ItemKind, ids: list[str]) -> dict[str, object]:
        """Batch-load local items by primary key, keyed by id."""
        if not ids:
            return {}
        model = ITEM_MODELS[kind]
        result = await self.db.execute(select(model).where(model.id.in_(set(ids))))
        return {item.id: item for item in result.scalars().all()}
