"""Tests for the local JSONL-backed learning loop wiring."""

import pytest

from happypaths.core.models import Scope, SearchQuery, TraceEvent, parse_payload
from happypaths.index.composite import CompositeTraceIndex
from happypaths.local import create_local_learning_loop, initialize_local_learning_loop
from happypaths.storage.jsonl import JSONLTraceStore


def _event(event_id: str, command: str, output: str, is_error: bool, second: int) -> TraceEvent:
    return TraceEvent(
        id=event_id,
        timestamp=f"2026-03-01T00:00:{second:02d}.000Z",
        session_id="s1",
        harness="pi",
        scope=Scope.PERSONAL,
        type="tool_result",
        payload=parse_payload(
            "tool_result", {"command": command, "output": output, "isError": is_error}
        ),
    )


class TestLocalLoop:
    def test_wiring(self, tmp_path):
        loop = create_local_learning_loop(tmp_path)
        assert isinstance(loop.store, JSONLTraceStore)
        assert loop.store.data_dir == tmp_path
        assert isinstance(loop.index, CompositeTraceIndex)
        assert loop.index.secondary is None

    @pytest.mark.asyncio
    async def test_state_survives_restart(self, tmp_path):
        first = create_local_learning_loop(tmp_path)
        await first.ingest(_event("f", "cargo build", "error[E0425]: cannot find value", True, 1))
        await first.ingest(_event("s", "cargo build --features full", "Finished", False, 2))

        restarted, bootstrap = await initialize_local_learning_loop(tmp_path)
        assert bootstrap.event_count == 2

        artifacts = await restarted.mine()
        assert [a.evidence_event_ids for a in artifacts] == [["f", "s"]]
        hits = await restarted.retrieve(SearchQuery(text="cannot find value"))
        assert hits[0].document.source_event_id == "f"
