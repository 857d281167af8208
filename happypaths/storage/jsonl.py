"""JSONL trace store: one append-only file per session.

Layout:
    <data_dir>/sessions/<session_id>.jsonl

Each line is one event in its JSON wire form. Appends are flushed and
fsync'd before the coroutine returns, so an acknowledged event survives a
crash. File I/O runs in a worker thread to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections import defaultdict
from pathlib import Path

from ..core.models import TraceEvent, TraceQuery
from ..errors import MalformedEventError
from .keys import assert_safe_session_id
from .memory import select_events

logger = logging.getLogger(__name__)


class JSONLTraceStore:
    """Durable TraceStore backed by per-session JSONL files.

    Characteristics:
    - Creates ``sessions/`` on first append
    - Session ids are validated before any path is built from them
    - Unreadable lines are logged and skipped on query

    Args:
        data_dir: Root directory for the store.
    """

    def __init__(self, data_dir: str | Path) -> None:
        self._root = Path(data_dir)
        self._sessions_dir = self._root / "sessions"
        self._lock = asyncio.Lock()

    @property
    def data_dir(self) -> Path:
        return self._root

    async def append(self, event: TraceEvent) -> None:
        await self.append_many([event])

    async def append_many(self, events: list[TraceEvent]) -> None:
        if not events:
            return
        by_session: dict[str, list[str]] = defaultdict(list)
        for event in events:
            assert_safe_session_id(event.session_id)
            by_session[event.session_id].append(json.dumps(event.to_dict(), sort_keys=True))

        async with self._lock:
            await asyncio.to_thread(self._write, by_session)

    async def query(self, query: TraceQuery | None = None) -> list[TraceEvent]:
        if query is not None and query.session_id is not None:
            paths = [self._session_path(query.session_id)]
        else:
            paths = None
        events = await asyncio.to_thread(self._read, paths)
        return select_events(events, query)

    # -------------------------------------------------------------------------

    def _session_path(self, session_id: str) -> Path:
        return self._sessions_dir / f"{assert_safe_session_id(session_id)}.jsonl"

    def _write(self, lines_by_session: dict[str, list[str]]) -> None:
        self._sessions_dir.mkdir(parents=True, exist_ok=True)
        for session_id, lines in lines_by_session.items():
            path = self._session_path(session_id)
            with open(path, "a", encoding="utf-8") as f:
                f.write("".join(f"{line}\n" for line in lines))
                f.flush()
                os.fsync(f.fileno())

    def _read(self, paths: list[Path] | None) -> list[TraceEvent]:
        if paths is None:
            if not self._sessions_dir.exists():
                return []
            paths = sorted(self._sessions_dir.glob("*.jsonl"))

        events: list[TraceEvent] = []
        for path in paths:
            if not path.exists():
                continue
            with open(path, encoding="utf-8") as f:
                for line_number, line in enumerate(f, start=1):
                    if not line.strip():
                        continue
                    try:
                        events.append(TraceEvent.from_dict(json.loads(line)))
                    except (json.JSONDecodeError, MalformedEventError) as e:
                        logger.warning(
                            "Skipping unreadable trace line %s:%d: %s", path, line_number, e
                        )
        return events
