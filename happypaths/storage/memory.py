"""In-memory trace store for tests and ephemeral loops."""

from __future__ import annotations

from ..core.models import TraceEvent, TraceQuery


class InMemoryTraceStore:
    """TraceStore holding events in a list. Nothing survives the process."""

    def __init__(self) -> None:
        self._events: list[TraceEvent] = []

    def __len__(self) -> int:
        return len(self._events)

    async def append(self, event: TraceEvent) -> None:
        self._events.append(event)

    async def append_many(self, events: list[TraceEvent]) -> None:
        self._events.extend(events)

    async def query(self, query: TraceQuery | None = None) -> list[TraceEvent]:
        return select_events(self._events, query)


def select_events(events: list[TraceEvent], query: TraceQuery | None) -> list[TraceEvent]:
    """Filter, order by (timestamp, id) and cap events per ``query``."""
    query = query or TraceQuery()
    matched = sorted((e for e in events if query.matches(e)), key=lambda e: e.sort_key)
    if query.limit is not None:
        return matched[: max(0, query.limit)]
    return matched
