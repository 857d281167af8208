"""Collaborator contracts for the learning loop.

These are structural protocols: any object with matching methods can be
plugged in (an embedding-backed index, a Postgres store, a cross-encoder
reranker). The contracts are intentionally small.

Design Principles:
- Stores own durability: ``append`` returns only once the event is durable.
- Indexes are insert-or-replace by document id, last write wins.
- Rerankers may reorder and truncate, never add documents.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models import (
    IndexedDocument,
    MinedArtifact,
    SearchQuery,
    SearchResult,
    TraceEvent,
    TraceQuery,
)


@runtime_checkable
class TraceStore(Protocol):
    """Durable, append-only event storage."""

    async def append(self, event: TraceEvent) -> None: ...

    async def append_many(self, events: list[TraceEvent]) -> None: ...

    async def query(self, query: TraceQuery | None = None) -> list[TraceEvent]:
        """Return matching events ordered by (timestamp, id)."""
        ...


@runtime_checkable
class TraceIndex(Protocol):
    """Searchable document index."""

    async def upsert(self, document: IndexedDocument) -> None: ...

    async def upsert_many(self, documents: list[IndexedDocument]) -> None: ...

    async def search(self, query: SearchQuery) -> list[SearchResult]: ...


@runtime_checkable
class TraceMiner(Protocol):
    """Streaming pattern miner fed one event at a time."""

    async def ingest(self, event: TraceEvent) -> None: ...

    async def mine(self, limit: int | None = None) -> list[MinedArtifact]: ...


@runtime_checkable
class DocumentBuilder(Protocol):
    """Projects a trace event into zero or more searchable documents."""

    def build(self, event: TraceEvent) -> list[IndexedDocument]: ...


@runtime_checkable
class ResultReranker(Protocol):
    """Reordering strategy applied to base retrieval results.

    Implementations must only reorder and/or truncate ``results``. The
    learning loop drops any returned document that was not in the input.
    """

    async def rerank(self, query: SearchQuery, results: list[SearchResult]) -> list[SearchResult]: ...
