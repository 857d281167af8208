"""Tests for classifier calibration and dual-review planning."""

import pytest

from happypaths.core.models import TraceEvent
from happypaths.errors import ConfigurationError
from happypaths.gate.calibration import (
    CalibrationRow,
    ManualLabel,
    PredictedLabel,
    build_calibration_rows,
    build_dual_review_plan,
    summarize_trajectory_calibration,
)
from happypaths.gate.classifier import TrajectoryIssueKind as Kind
from happypaths.gate.episodes import extract_trajectory_outcome_episodes


def _row(
    row_id: str,
    predicted_kind: Kind,
    predicted_harmful: bool,
    manual_kind: Kind | None = None,
    manual_harmful: bool | None = None,
) -> CalibrationRow:
    return CalibrationRow(
        id=row_id,
        episode_id="episode-1",
        family_signature="npm run lint",
        session_id="session-1",
        started_at="2026-03-01T00:00:00.000Z",
        predicted=PredictedLabel(
            issue_kind=predicted_kind,
            harmful=predicted_harmful,
            confidence=0.9,
            abstained=predicted_kind is Kind.UNKNOWN_FAILURE,
        ),
        manual_label=ManualLabel(issue_kind=manual_kind, harmful=manual_harmful),
    )


class TestCalibrationRows:
    def test_one_row_per_classified_failure(self):
        events = [
            TraceEvent.from_dict(
                {
                    "id": event_id,
                    "timestamp": f"2026-03-01T00:00:0{i}.000Z",
                    "sessionId": "session-1",
                    "harness": "pi",
                    "scope": "personal",
                    "type": "tool_result",
                    "payload": {"command": command, "output": output, "isError": failed},
                }
            )
            for i, (event_id, command, output, failed) in enumerate(
                [
                    ("f1", "npm run lint -- --bad", "error: unknown option '--bad'", True),
                    ("f2", "mytool apply", "boom", True),
                    ("s1", "npm run lint", "ok", False),
                ]
            )
        ]
        episodes = extract_trajectory_outcome_episodes(events)
        rows = build_calibration_rows(episodes)

        assert [row.id for row in rows] == [f"{episodes[0].id}:f1", f"{episodes[0].id}:f2"]
        assert rows[0].predicted.issue_kind is Kind.COMMAND_MISMATCH
        assert rows[1].predicted.abstained is True
        assert all(row.manual_label.empty for row in rows)


class TestSummary:
    def test_abstained_rows_stay_out_of_harmful_confusion(self):
        rows = [
            _row("r1", Kind.COMMAND_MISMATCH, True, Kind.COMMAND_MISMATCH, True),
            _row("r2", Kind.BENIGN_PROBE, False, Kind.BENIGN_PROBE, False),
            _row("r3", Kind.MISSING_CONTEXT, True, Kind.BENIGN_PROBE, False),
            _row("r4", Kind.UNKNOWN_FAILURE, False, Kind.ENVIRONMENT_MISMATCH, True),
            _row("r5", Kind.COMMAND_MISMATCH, True, Kind.COMMAND_MISMATCH),
            _row("r6", Kind.COMMAND_MISMATCH, True),
        ]
        summary = summarize_trajectory_calibration(rows)

        assert summary.total_rows == 6
        assert summary.fully_labeled_rows == 4
        assert summary.partially_labeled_rows == 1
        assert summary.unlabeled_rows == 1

        harmful = summary.harmful
        assert (harmful.true_positive, harmful.false_positive) == (1, 1)
        assert (harmful.false_negative, harmful.true_negative) == (0, 1)

        assert summary.abstain.predicted_abstain_count == 1
        assert summary.abstain.abstained_harmful_count == 1
        assert summary.abstain.judgeable_coverage == pytest.approx(0.75)
        assert summary.issue_kind_accuracy == pytest.approx(0.5)
        assert summary.confusion_matrix[Kind.MISSING_CONTEXT][Kind.BENIGN_PROBE] == 1

    def test_per_class_metrics(self):
        rows = [
            _row("r1", Kind.COMMAND_MISMATCH, True, Kind.COMMAND_MISMATCH, True),
            _row("r2", Kind.COMMAND_MISMATCH, True, Kind.MISSING_CONTEXT, True),
        ]
        summary = summarize_trajectory_calibration(rows)
        by_kind = {m.issue_kind: m for m in summary.issue_kind_per_class}

        assert by_kind[Kind.COMMAND_MISMATCH].precision == pytest.approx(0.5)
        assert by_kind[Kind.COMMAND_MISMATCH].recall == pytest.approx(1.0)
        assert by_kind[Kind.MISSING_CONTEXT].recall == 0.0

    def test_empty_rows(self):
        summary = summarize_trajectory_calibration([])
        assert summary.label_coverage == 0.0
        assert summary.harmful.precision == 0.0


class TestDualReviewPlan:
    def _rows(self, n: int) -> list[CalibrationRow]:
        return [_row(f"row-{i:02d}", Kind.COMMAND_MISMATCH, True) for i in range(n)]

    def test_overlap_rows_go_to_both_reviewers(self):
        plan = build_dual_review_plan(self._rows(10), overlap_ratio=0.2, seed=7)

        assert plan.total_rows == 10
        assert plan.overlap_count == 2
        both = [row_id for row_id, reviewers in plan.assignments.items() if len(reviewers) == 2]
        assert len(both) == 2
        assert all(len(reviewers) >= 1 for reviewers in plan.assignments.values())
        assert plan.reviewer_a.assigned_count + plan.reviewer_b.assigned_count == 12
        assert plan.reviewer_a.assigned_count == 6

    def test_seeded_and_deterministic(self):
        rows = self._rows(20)
        assert build_dual_review_plan(rows, seed=3) == build_dual_review_plan(rows, seed=3)

    def test_same_reviewer_rejected(self):
        with pytest.raises(ConfigurationError):
            build_dual_review_plan(self._rows(3), reviewer_a_id="alex", reviewer_b_id=" alex ")

    def test_duplicate_row_ids_rejected(self):
        rows = self._rows(3) + self._rows(1)
        with pytest.raises(ConfigurationError, match="duplicate"):
            build_dual_review_plan(rows)

    @pytest.mark.parametrize("ratio", [-0.1, 0.95])
    def test_overlap_ratio_bounds(self, ratio):
        with pytest.raises(ConfigurationError):
            build_dual_review_plan(self._rows(3), overlap_ratio=ratio)
