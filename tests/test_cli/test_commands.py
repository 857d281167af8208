"""Tests for the happypaths CLI commands."""

import asyncio
import json

from click.testing import CliRunner

from happypaths.cli import main
from happypaths.core.models import TraceEvent
from happypaths.storage.jsonl import JSONLTraceStore

_BAD_FLAG = "npm run lint -- --badflag"


def _wire(event_id, session_id, timestamp, command, output, failed, latency_ms, tokens):
    return {
        "id": event_id,
        "timestamp": timestamp,
        "sessionId": session_id,
        "harness": "pi",
        "scope": "personal",
        "type": "tool_result",
        "payload": {"command": command, "output": output, "isError": failed},
        "metrics": {
            "outcome": "failure" if failed else "success",
            "latencyMs": latency_ms,
            "tokens": {"inputUncached": tokens},
        },
    }


def _paired_sessions() -> list[dict]:
    error = "error: unknown option '--badflag'"
    return [
        _wire("a-f1", "session-a", "2026-03-01T00:00:01.000Z", _BAD_FLAG, error, True, 4000, 140),
        _wire("a-f2", "session-a", "2026-03-01T00:00:08.000Z", _BAD_FLAG, error, True, 3000, 125),
        _wire("a-s1", "session-a", "2026-03-01T00:00:13.000Z", "npm run lint --fix", "ok", False, 2000, 95),
        _wire("b-f1", "session-b", "2026-03-02T00:00:01.000Z", _BAD_FLAG, error, True, 1000, 100),
        _wire("b-s1", "session-b", "2026-03-02T00:00:04.000Z", "npm run lint --fix", "ok", False, 1500, 82),
    ]  # fmt: skip


def _write_events(path, events):
    path.write_text("".join(json.dumps(e) + "\n" for e in events), encoding="utf-8")
    return path


def _seed_store(data_dir):
    events = [TraceEvent.from_dict(e) for e in _paired_sessions()]
    asyncio.run(JSONLTraceStore(data_dir).append_many(events))


class TestGateCommand:
    def test_passes_with_enough_pairs(self, tmp_path):
        events_file = _write_events(tmp_path / "events.jsonl", _paired_sessions())
        result = CliRunner().invoke(main, ["gate", str(events_file), "--min-pairs", "1"])

        assert result.exit_code == 0, result.output
        assert "Pairs: 1" in result.output
        assert "Gate: PASS" in result.output

    def test_fails_below_min_pairs(self, tmp_path):
        events_file = _write_events(tmp_path / "events.jsonl", _paired_sessions())
        result = CliRunner().invoke(main, ["gate", str(events_file)])

        assert result.exit_code == 1
        assert "Gate: FAIL" in result.output
        assert "  - pair count 1 < 3" in result.output

    def test_json_report(self, tmp_path):
        events_file = _write_events(tmp_path / "events.jsonl", _paired_sessions())
        result = CliRunner().invoke(
            main, ["gate", str(events_file), "--min-pairs", "1", "--json", "--samples", "50"]
        )
        assert result.exit_code == 0, result.output
        report = json.loads(result.output.split("Gate: PASS")[0])
        assert report["aggregate"]["total_pairs"] == 1
        assert report["trustSummary"]["sample_count"] == 50

    def test_skips_unreadable_lines(self, tmp_path):
        events_file = tmp_path / "events.jsonl"
        _write_events(events_file, _paired_sessions())
        with open(events_file, "a", encoding="utf-8") as f:
            f.write("not json\n")
        result = CliRunner().invoke(main, ["gate", str(events_file), "--min-pairs", "1"])
        assert result.exit_code == 0, result.output

    def test_invalid_option_is_usage_error(self, tmp_path):
        events_file = _write_events(tmp_path / "events.jsonl", _paired_sessions())
        result = CliRunner().invoke(main, ["gate", str(events_file), "--min-coverage", "2"])
        assert result.exit_code == 2
        assert "min_judgeable_coverage" in result.output


class TestLearnCommands:
    def test_mine_lists_artifacts(self, tmp_path):
        _seed_store(tmp_path)
        result = CliRunner().invoke(main, ["mine", "--data-dir", str(tmp_path)])

        assert result.exit_code == 0, result.output
        assert 'prefer "npm run lint --fix"' in result.output
        assert "cross-session" in result.output

    def test_suggest_prints_playbook(self, tmp_path):
        _seed_store(tmp_path)
        result = CliRunner().invoke(
            main, ["suggest", "unknown option badflag", "--data-dir", str(tmp_path)]
        )

        assert result.exit_code == 0, result.output
        assert "Loaded 5 events" in result.output
        assert "Prior run used" in result.output
        assert "- Action:" in result.output

    def test_empty_store(self, tmp_path):
        runner = CliRunner()
        assert "No wrong-turn fixes mined yet." in runner.invoke(
            main, ["mine", "--data-dir", str(tmp_path)]
        ).output
        assert "No suggestions." in runner.invoke(
            main, ["suggest", "lint", "--data-dir", str(tmp_path)]
        ).output

    def test_version(self):
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "happypaths" in result.output
