"""Composite index: fuses a primary and an optional secondary index.

Typical use is a lexical primary plus an embedding-backed secondary. Writes
fan out to every backend; a failure on any backend propagates to the caller.
Searches are merged with weighted reciprocal rank fusion (RRF): each backend
contributes ``weight / (k + rank)`` per document, rank being the document's
1-based position in that backend's own result list.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass, replace

from ..config import FusionConfig, default_fusion_config
from ..core.interfaces import TraceIndex
from ..core.models import IndexedDocument, SearchQuery, SearchResult

logger = logging.getLogger(__name__)

_UNRANKED = sys.maxsize


@dataclass
class _RankedHit:
    document: IndexedDocument
    fused_score: float = 0.0
    primary_rank: int = _UNRANKED
    secondary_rank: int = _UNRANKED


class CompositeTraceIndex:
    """Weighted-RRF composite over one or two TraceIndex backends.

    With no secondary configured this is a transparent passthrough to the
    primary (scores included).
    """

    def __init__(
        self,
        primary: TraceIndex,
        secondary: TraceIndex | None = None,
        config: FusionConfig | None = None,
    ):
        self.primary = primary
        self.secondary = secondary
        self.config = config or default_fusion_config()

    async def upsert(self, document: IndexedDocument) -> None:
        await self.primary.upsert(document)
        if self.secondary is not None:
            await self.secondary.upsert(document)

    async def upsert_many(self, documents: list[IndexedDocument]) -> None:
        await self.primary.upsert_many(documents)
        if self.secondary is not None:
            await self.secondary.upsert_many(documents)

    async def search(self, query: SearchQuery) -> list[SearchResult]:
        if self.secondary is None:
            return await self.primary.search(query)

        fanout = replace(query, limit=max(query.limit, self.config.min_fanout))
        primary_results, secondary_results = await asyncio.gather(
            self.primary.search(fanout),
            self.secondary.search(fanout),
        )
        logger.debug(
            "Fusing %d primary and %d secondary hits",
            len(primary_results),
            len(secondary_results),
        )
        return self.fuse(primary_results, secondary_results, query.limit)

    def fuse(
        self,
        primary_results: list[SearchResult],
        secondary_results: list[SearchResult],
        limit: int,
    ) -> list[SearchResult]:
        """Merge two ranked lists. Pure function of its inputs and the config."""
        k = self.config.k
        hits: dict[str, _RankedHit] = {}

        for rank, result in enumerate(primary_results, start=1):
            hit = hits.setdefault(result.document.id, _RankedHit(document=result.document))
            hit.fused_score += self.config.primary_weight / (k + rank)
            hit.primary_rank = min(hit.primary_rank, rank)

        for rank, result in enumerate(secondary_results, start=1):
            hit = hits.setdefault(result.document.id, _RankedHit(document=result.document))
            hit.fused_score += self.config.secondary_weight / (k + rank)
            hit.secondary_rank = min(hit.secondary_rank, rank)

        ordered = sorted(
            hits.values(),
            key=lambda h: (-h.fused_score, h.primary_rank, h.secondary_rank, h.document.id),
        )
        return [SearchResult(document=h.document, score=h.fused_score) for h in ordered[:limit]]
