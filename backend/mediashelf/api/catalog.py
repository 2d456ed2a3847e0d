"""Book and movie endpoints: upstream search, local discovery, details and reviews.

Both kinds expose the same routes, so the router is built per kind. Books
additionally get a top-five shortcut over the local catalog.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from mediashelf.api.deps import Services, get_services, query_params, success
from mediashelf.models.tables import ITEM_MODELS, ItemKind, Review

# Preset list query behind /books/top-5
TOP_BOOKS_PARAMS = {
    "limit": "5",
    "sort": "-average_rating,-ratings_count",
    "fields": "title,cover_image,average_rating,published_date,authors",
}


def build_router(kind: ItemKind, prefix: str) -> APIRouter:
    router = APIRouter(prefix=prefix)
    model = ITEM_MODELS[kind]

    @router.get("/search")
    async def search(
        q: Optional[str] = None,
        page: int = Query(1, ge=1),
        services: Services = Depends(get_services),
    ):
        """Search the upstream catalog; results say whether they are cached locally."""
        return success(await services.catalog[kind].search(q, page))

    @router.get("")
    async def list_items(
        params: dict = Depends(query_params),
        services: Services = Depends(get_services),
    ):
        items, query = await services.catalog[kind].list_items(params)
        records = [query.project(item.to_dict(), model) for item in items]
        return success(records, **query.meta(len(records)))

    if kind is ItemKind.BOOK:
        @router.get("/top-5")
        async def top_items(
            params: dict = Depends(query_params),
            services: Services = Depends(get_services),
        ):
            """Best-rated cached books; other list parameters still filter."""
            items, query = await services.catalog[kind].list_items({**params, **TOP_BOOKS_PARAMS})
            records = [query.project(item.to_dict(), model) for item in items]
            return success(records, **query.meta(len(records)))

    @router.get("/{identifier}")
    async def get_details(identifier: str, services: Services = Depends(get_services)):
        """Accepts a local id or a provider id; the latter is cached on first use."""
        item = await services.catalog[kind].get_details(identifier)
        return success(item.to_dict())

    @router.get("/{identifier}/reviews")
    async def item_reviews(
        identifier: str,
        params: dict = Depends(query_params),
        services: Services = Depends(get_services),
    ):
        reviews, query = await services.reviews.reviews_for_item(kind, identifier, params)
        records = [query.project(r, Review) for r in await services.reviews.hydrate(reviews)]
        return success(records, **query.meta(len(records)))

    return router


books_router = build_router(ItemKind.BOOK, "/books")
movies_router = build_router(ItemKind.MOVIE, "/movies")
