"""Probe the upstream catalogs on startup and report status."""

import logging
from typing import Mapping

from mediashelf.clients.base import ICatalogAdapter
from mediashelf.config import Settings
from mediashelf.models.tables import ItemKind

logger = logging.getLogger(__name__)

_CONFIGURED = {
    ItemKind.BOOK: lambda s: s.has_google_books,
    ItemKind.MOVIE: lambda s: s.has_tmdb,
}


async def probe_all(settings: Settings, adapters: Mapping[ItemKind, ICatalogAdapter]) -> dict:
    """Check reachability of every catalog provider. Returns status dict."""
    results = {}
    for kind, adapter in adapters.items():
        key = adapter.provider.lower().replace(" ", "_")
        if not _CONFIGURED[kind](settings):
            results[key] = {"status": "not_configured"}
            continue
        ok = await adapter.test_connection()
        results[key] = {"status": "ok" if ok else "unreachable"}
        if not ok:
            logger.warning(f"{adapter.provider} is not reachable; {kind.value.lower()} lookups will fail")
    return results
