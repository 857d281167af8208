"""Tests for the streaming wrong-turn miner."""

import pytest

from happypaths.config import MinerConfig
from happypaths.core.miner import WrongTurnMiner, arc_confidence
from happypaths.core.models import Scope, TraceEvent, parse_payload

_clock = iter(range(1, 1000))


def _result(
    event_id: str,
    command: str = "",
    output: str = "ok",
    is_error: bool | None = False,
    session_id: str = "s1",
    **extra,
) -> TraceEvent:
    raw = {"toolName": "bash", "output": output, **extra}
    if is_error is not None:
        raw["isError"] = is_error
    if command:
        raw["command"] = command
    return TraceEvent(
        id=event_id,
        timestamp=f"2026-03-01T00:00:00.{next(_clock):03d}Z",
        session_id=session_id,
        harness="pi",
        scope=Scope.PERSONAL,
        type="tool_result",
        payload=parse_payload("tool_result", raw),
    )


async def _ingest(miner: WrongTurnMiner, events: list[TraceEvent]) -> None:
    for event in events:
        await miner.ingest(event)


def _lint_arc(prefix: str, session_id: str) -> list[TraceEvent]:
    return [
        _result(f"{prefix}-f", "npm run lint", "Error: lint failed", True, session_id),
        _result(f"{prefix}-s", "npm run lint --fix", "ok", False, session_id),
    ]


class TestArcDetection:
    @pytest.mark.asyncio
    async def test_failure_then_differing_success(self):
        miner = WrongTurnMiner()
        await _ingest(miner, _lint_arc("a", "s1"))

        artifacts = await miner.mine()
        assert len(artifacts) == 1
        artifact = artifacts[0]
        assert artifact.kind == "wrong_turn_fix"
        assert artifact.evidence_event_ids == ["a-f", "a-s"]
        assert artifact.support_count == 1
        assert artifact.support_session_count == 1
        assert artifact.cross_session_support is False
        assert artifact.confidence == pytest.approx(0.45)
        assert artifact.summary == 'When you hit "npm run lint", prefer "npm run lint --fix".'

    @pytest.mark.asyncio
    async def test_bare_retry_is_not_an_arc(self):
        miner = WrongTurnMiner()
        await _ingest(
            miner,
            [
                _result("f", "npm test", "Error: flaky", True),
                _result("s", "npm test", "ok"),
            ],
        )
        assert await miner.mine() == []

    @pytest.mark.asyncio
    async def test_different_family_is_not_an_arc(self):
        miner = WrongTurnMiner()
        await _ingest(
            miner,
            [
                _result("f", "npm run lint", "Error: lint failed", True),
                _result("s", "git status", "clean"),
            ],
        )
        assert await miner.mine() == []

    @pytest.mark.asyncio
    async def test_sessions_do_not_mix(self):
        miner = WrongTurnMiner()
        await _ingest(
            miner,
            [
                _result("f", "npm run lint", "Error: lint failed", True, session_id="s1"),
                _result("s", "npm run lint --fix", "ok", session_id="s2"),
            ],
        )
        assert await miner.mine() == []

    @pytest.mark.asyncio
    async def test_commandless_events_group_by_error_and_tool(self):
        miner = WrongTurnMiner()
        await _ingest(
            miner,
            [
                _result(
                    "f",
                    output="Error: old_string not found in file",
                    is_error=True,
                    path="a.py",
                    oldString="x",
                ),
                _result("s", output="applied", path="a.py", oldString="y"),
            ],
        )
        artifacts = await miner.mine()
        assert [a.evidence_event_ids for a in artifacts] == [["f", "s"]]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "failing,fixed",
        [
            ("npx eslint src/app.tsx", "npx eslint --fix src/app.tsx"),
            ("pytest tests/test_api.py", "pytest -p no:cacheprovider tests/test_api.py"),
        ],
    )
    async def test_flag_inserted_before_argument(self, failing, fixed):
        miner = WrongTurnMiner()
        await _ingest(
            miner,
            [
                _result("f", failing, "Error: command failed", True),
                _result("s", fixed, "ok"),
            ],
        )
        artifacts = await miner.mine()
        assert [a.evidence_event_ids for a in artifacts] == [["f", "s"]]


class TestLookahead:
    @pytest.mark.asyncio
    async def test_success_within_window(self):
        miner = WrongTurnMiner(MinerConfig(lookahead_results=3))
        events = [_result("f", "npm run lint", "Error: lint failed", True)]
        events += [_result(f"noise-{i}", "ls", "a b") for i in range(2)]
        events.append(_result("s", "npm run lint --fix"))
        await _ingest(miner, events)
        assert len(await miner.mine()) == 1

    @pytest.mark.asyncio
    async def test_success_after_window_expires(self):
        miner = WrongTurnMiner(MinerConfig(lookahead_results=3))
        events = [_result("f", "npm run lint", "Error: lint failed", True)]
        events += [_result(f"noise-{i}", "ls", "a b") for i in range(3)]
        events.append(_result("s", "npm run lint --fix"))
        await _ingest(miner, events)
        assert await miner.mine() == []

    @pytest.mark.asyncio
    async def test_unknown_outcome_results_use_up_window(self):
        miner = WrongTurnMiner(MinerConfig(lookahead_results=3))
        events = [_result("f", "npm run lint", "Error: lint failed", True)]
        events += [_result(f"pending-{i}", "ls", "a b", None) for i in range(3)]
        events.append(_result("s", "npm run lint --fix"))
        await _ingest(miner, events)
        assert await miner.mine() == []


class TestCorroboration:
    @pytest.mark.asyncio
    async def test_cross_session_raises_confidence(self):
        single = WrongTurnMiner()
        await _ingest(single, _lint_arc("a", "s1") + _lint_arc("b", "s1"))
        same_session = (await single.mine())[0]

        cross = WrongTurnMiner()
        await _ingest(cross, _lint_arc("a", "s1") + _lint_arc("b", "s2"))
        artifacts = await cross.mine()

        assert len(artifacts) == 1
        corroborated = artifacts[0]
        assert corroborated.support_count == 2
        assert corroborated.support_session_count == 2
        assert corroborated.cross_session_support is True
        assert corroborated.evidence_event_ids == ["a-f", "a-s"]
        assert corroborated.confidence > same_session.confidence

    @pytest.mark.asyncio
    async def test_one_success_closing_two_failures_counts_once(self):
        miner = WrongTurnMiner()
        await _ingest(
            miner,
            [
                _result("f1", "npm run lint", "Error: lint failed", True),
                _result("f2", "npm run lint", "Error: lint failed", True),
                _result("s", "npm run lint --fix"),
            ],
        )
        artifacts = await miner.mine()
        assert len(artifacts) == 1
        assert artifacts[0].support_count == 1
        assert artifacts[0].evidence_event_ids == ["f1", "s"]

    @pytest.mark.asyncio
    async def test_similar_fingerprints_collapse_across_sessions(self):
        miner = WrongTurnMiner()
        for session_id, config_file in (
            ("s1", "webpack.config.production.js"),
            ("s2", "webpack.config.productionx.js"),
        ):
            failing = f"npx webpack --config {config_file}"
            await _ingest(
                miner,
                [
                    _result(f"{session_id}-f", failing, "Error: build failed", True, session_id),
                    _result(
                        f"{session_id}-s",
                        f"{failing} --mode production --progress --color",
                        "compiled",
                        False,
                        session_id,
                    ),
                ],
            )

        artifacts = await miner.mine()
        assert len(artifacts) == 1
        assert artifacts[0].support_count == 2
        assert artifacts[0].support_session_count == 2
        assert artifacts[0].evidence_event_ids == ["s1-f", "s1-s"]

    def test_confidence_is_monotone_and_capped(self):
        values = [arc_confidence(s, min(s, 3)) for s in range(1, 12)]
        assert values == sorted(values)
        assert values[-1] == pytest.approx(0.9)
        assert arc_confidence(1, 2) > arc_confidence(1, 1)


class TestRobustness:
    @pytest.mark.asyncio
    async def test_malformed_events_are_skipped(self):
        miner = WrongTurnMiner()
        unstructured = TraceEvent(
            id="u",
            timestamp="2026-03-01T00:00:00.000Z",
            session_id="s1",
            harness="pi",
            scope=Scope.PERSONAL,
            type="tool_result",
            payload=parse_payload("tool_result", {"command": 42}),
        )
        nameless = _result("", "npm run lint", "Error: lint failed", True)
        await _ingest(miner, [unstructured, nameless, *_lint_arc("a", "s1")])

        assert miner.events_skipped == 2
        assert len(await miner.mine()) == 1

    @pytest.mark.asyncio
    async def test_mine_orders_by_confidence_and_limits(self):
        miner = WrongTurnMiner()
        await _ingest(miner, _lint_arc("a", "s1") + _lint_arc("b", "s2"))
        await _ingest(
            miner,
            [
                _result("t-f", "cargo build", "error[E0425]: cannot find value", True, "s3"),
                _result("t-s", "cargo build --features full", "Finished", False, "s3"),
            ],
        )
        artifacts = await miner.mine()
        assert [a.support_session_count for a in artifacts] == [2, 1]
        assert len(await miner.mine(limit=1)) == 1
