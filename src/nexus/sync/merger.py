"""
Merging of cached and registry search results.

Local results always come first. The registry is consulted only when the
cache cannot fill the requested page, duplicates are dropped in favour of the
local candidate, and new registry hits are cached in the background.
"""

import asyncio
import logging
from typing import Iterable

from nexus.cache.store import CacheStore
from nexus.errors import UpstreamError
from nexus.ingestion.base_adapter import BaseRegistryAdapter
from nexus.schemas.records import CandidateSource, SearchCandidate, SearchResult, SourcePreference
from nexus.sync.normalize import validate_limit, validate_page, validate_search_term

logger = logging.getLogger(__name__)


def merge_candidates(
    local: Iterable[SearchCandidate],
    remote: Iterable[SearchCandidate],
    limit: int,
) -> list[SearchCandidate]:
    """
    Concatenate local then remote, keep the first candidate per company
    number and truncate to limit.
    """
    seen: set[str] = set()
    merged: list[SearchCandidate] = []
    for candidate in list(local) + list(remote):
        if candidate.company_number in seen:
            continue
        seen.add(candidate.company_number)
        merged.append(candidate)
        if len(merged) >= limit:
            break
    return merged


class ResultMerger:
    """Search across the cache store and the registry."""

    def __init__(self, store: CacheStore, adapter: BaseRegistryAdapter):
        self.store = store
        self.adapter = adapter
        self._pending: set[asyncio.Task] = set()

    async def search(
        self,
        term: str,
        limit: int = 20,
        source: SourcePreference = SourcePreference.BOTH,
        page: int = 1,
    ) -> SearchResult:
        """
        Search companies by name or number.

        Pages are limit-sized slices of the merged list. Both sources are
        asked for everything up to the end of the requested page plus one
        candidate, which tells whether another page exists.

        Raises:
            ValidationError: empty or overlong term, limit or page below 1
            UpstreamError: registry failed with source=registry
        """
        term = validate_search_term(term)
        limit = validate_limit(limit)
        page = validate_page(page)
        source = SourcePreference(source)
        offset = (page - 1) * limit
        window = offset + limit

        local: list[SearchCandidate] = []
        remote: list[SearchCandidate] = []
        errors: list[str] = []

        if source in (SourcePreference.LOCAL, SourcePreference.BOTH):
            local = await self.store.search(term, window + 1)

        if source == SourcePreference.REGISTRY:
            remote = await self.adapter.search(term, window + 1)
        elif source == SourcePreference.BOTH and len(local) < window:
            try:
                remote = await self.adapter.search(term, window + 1)
            except UpstreamError as e:
                logger.warning(f"Registry search failed for {term!r}, serving cached results: {e}")
                errors.append(f"registry: {e.message}")

        merged = merge_candidates(local, remote, window + 1)
        candidates = merged[offset:window]
        self._schedule_write_back(
            [c for c in candidates if c.source == CandidateSource.REGISTRY]
        )

        sources = {
            CandidateSource.LOCAL.value: sum(1 for c in candidates if c.source == CandidateSource.LOCAL),
            CandidateSource.REGISTRY.value: sum(
                1 for c in candidates if c.source == CandidateSource.REGISTRY
            ),
        }
        return SearchResult(
            query=term,
            limit=limit,
            page=page,
            source=source,
            candidates=candidates,
            total=len(candidates),
            has_more=len(merged) > window,
            sources=sources,
            errors=errors,
        )

    def _schedule_write_back(self, candidates: list[SearchCandidate]) -> None:
        if not candidates:
            return
        task = asyncio.create_task(self._write_back(candidates))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write_back(self, candidates: list[SearchCandidate]) -> None:
        try:
            cached = await self.store.cache_candidates(candidates)
            logger.debug(f"Cached {cached} registry search candidates")
        except Exception as e:
            logger.error(f"Failed to cache registry search candidates: {e!r}")

    @property
    def pending_write_backs(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for all scheduled write-backs to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
