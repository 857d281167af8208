"""Classifier calibration against manual labels, and dual-review planning.

Calibration rows pair each classified failure with a (initially empty)
manual label. Once reviewers fill labels in, the summary reports per-kind
precision/recall/F1 and a harmful-vs-harmless confusion matrix. Predictions
that abstained are kept out of the harmful confusion counts; they lower
judgeable coverage instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from ..errors import ConfigurationError
from .classifier import ISSUE_KINDS, TrajectoryIssueKind
from .episodes import TrajectoryOutcomeEpisode

_DEFAULT_OVERLAP_RATIO = 0.2
_MAX_OVERLAP_RATIO = 0.9


@dataclass(frozen=True)
class PredictedLabel:
    issue_kind: TrajectoryIssueKind
    harmful: bool
    confidence: float
    abstained: bool
    reason: str = ""


@dataclass
class ManualLabel:
    issue_kind: TrajectoryIssueKind | None = None
    harmful: bool | None = None
    notes: str = ""

    @property
    def complete(self) -> bool:
        return self.issue_kind is not None and self.harmful is not None

    @property
    def empty(self) -> bool:
        return self.issue_kind is None and self.harmful is None


@dataclass
class CalibrationRow:
    id: str
    episode_id: str
    family_signature: str
    session_id: str
    started_at: str
    predicted: PredictedLabel
    manual_label: ManualLabel = field(default_factory=ManualLabel)


def build_calibration_rows(episodes: list[TrajectoryOutcomeEpisode]) -> list[CalibrationRow]:
    """One unlabelled row per classified failure, in episode order."""
    rows: list[CalibrationRow] = []
    for episode in episodes:
        for issue in episode.issues:
            rows.append(
                CalibrationRow(
                    id=f"{episode.id}:{issue.event_id}",
                    episode_id=episode.id,
                    family_signature=episode.family_signature,
                    session_id=episode.session_id,
                    started_at=episode.started_at,
                    predicted=PredictedLabel(
                        issue_kind=issue.kind,
                        harmful=issue.harmful,
                        confidence=issue.confidence,
                        abstained=issue.abstained,
                        reason=issue.reason,
                    ),
                )
            )
    return rows


# =============================================================================
# Summary
# =============================================================================


@dataclass(frozen=True)
class IssueKindMetrics:
    issue_kind: TrajectoryIssueKind
    support: int
    predicted: int
    true_positive: int
    false_positive: int
    false_negative: int
    precision: float
    recall: float
    f1: float


@dataclass(frozen=True)
class HarmfulConfusion:
    true_positive: int = 0
    false_positive: int = 0
    false_negative: int = 0
    true_negative: int = 0

    @property
    def support_positive(self) -> int:
        return self.true_positive + self.false_negative

    @property
    def support_negative(self) -> int:
        return self.false_positive + self.true_negative

    @property
    def precision(self) -> float:
        return _safe_divide(self.true_positive, self.true_positive + self.false_positive)

    @property
    def recall(self) -> float:
        return _safe_divide(self.true_positive, self.true_positive + self.false_negative)

    @property
    def f1(self) -> float:
        return _f1(self.precision, self.recall)

    @property
    def accuracy(self) -> float:
        total = self.support_positive + self.support_negative
        return _safe_divide(self.true_positive + self.true_negative, total)


@dataclass(frozen=True)
class AbstainSummary:
    predicted_abstain_count: int
    predicted_abstain_rate: float
    judgeable_coverage: float
    abstained_harmful_count: int
    abstained_harmful_rate: float


@dataclass(frozen=True)
class CalibrationSummary:
    total_rows: int
    fully_labeled_rows: int
    partially_labeled_rows: int
    unlabeled_rows: int
    label_coverage: float
    issue_kind_accuracy: float
    issue_kind_macro_f1: float
    issue_kind_weighted_f1: float
    issue_kind_per_class: list[IssueKindMetrics]
    confusion_matrix: dict[TrajectoryIssueKind, dict[TrajectoryIssueKind, int]]
    harmful: HarmfulConfusion
    abstain: AbstainSummary


def _safe_divide(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0


def _f1(precision: float, recall: float) -> float:
    return _safe_divide(2 * precision * recall, precision + recall)


def _is_abstained(predicted: PredictedLabel) -> bool:
    return predicted.abstained or predicted.issue_kind is TrajectoryIssueKind.UNKNOWN_FAILURE


def summarize_trajectory_calibration(rows: list[CalibrationRow]) -> CalibrationSummary:
    # confusion[predicted][manual]
    confusion = {p: {m: 0 for m in ISSUE_KINDS} for p in ISSUE_KINDS}
    full = partial = unlabeled = correct = 0
    abstained = abstained_harmful = harmful_support = 0
    tp = fp = fn = tn = 0

    for row in rows:
        label = row.manual_label
        if label.empty:
            unlabeled += 1
            continue
        if not label.complete:
            partial += 1
            continue

        full += 1
        confusion[row.predicted.issue_kind][label.issue_kind] += 1
        if row.predicted.issue_kind is label.issue_kind:
            correct += 1

        if label.harmful:
            harmful_support += 1

        if _is_abstained(row.predicted):
            abstained += 1
            if label.harmful:
                abstained_harmful += 1
            continue

        if label.harmful:
            if row.predicted.harmful:
                tp += 1
            else:
                fn += 1
        elif row.predicted.harmful:
            fp += 1
        else:
            tn += 1

    per_class: list[IssueKindMetrics] = []
    for kind in ISSUE_KINDS:
        true_positive = confusion[kind][kind]
        predicted = sum(confusion[kind].values())
        support = sum(confusion[other][kind] for other in ISSUE_KINDS)
        precision = _safe_divide(true_positive, predicted)
        recall = _safe_divide(true_positive, support)
        per_class.append(
            IssueKindMetrics(
                issue_kind=kind,
                support=support,
                predicted=predicted,
                true_positive=true_positive,
                false_positive=predicted - true_positive,
                false_negative=support - true_positive,
                precision=precision,
                recall=recall,
                f1=_f1(precision, recall),
            )
        )

    active = [m for m in per_class if m.support > 0 or m.predicted > 0]
    total_support = sum(m.support for m in per_class)

    return CalibrationSummary(
        total_rows=len(rows),
        fully_labeled_rows=full,
        partially_labeled_rows=partial,
        unlabeled_rows=unlabeled,
        label_coverage=_safe_divide(full, len(rows)),
        issue_kind_accuracy=_safe_divide(correct, full),
        issue_kind_macro_f1=_safe_divide(sum(m.f1 for m in active), len(active)),
        issue_kind_weighted_f1=_safe_divide(
            sum(m.f1 * m.support for m in per_class), total_support
        ),
        issue_kind_per_class=per_class,
        confusion_matrix=confusion,
        harmful=HarmfulConfusion(
            true_positive=tp, false_positive=fp, false_negative=fn, true_negative=tn
        ),
        abstain=AbstainSummary(
            predicted_abstain_count=abstained,
            predicted_abstain_rate=_safe_divide(abstained, full),
            judgeable_coverage=_safe_divide(full - abstained, full),
            abstained_harmful_count=abstained_harmful,
            abstained_harmful_rate=_safe_divide(abstained_harmful, harmful_support),
        ),
    )


# =============================================================================
# Dual review
# =============================================================================


@dataclass(frozen=True)
class ReviewerAssignment:
    reviewer_id: str
    row_ids: list[str]
    overlap_count: int

    @property
    def assigned_count(self) -> int:
        return len(self.row_ids)


@dataclass(frozen=True)
class DualReviewPlan:
    overlap_ratio: float
    seed: int
    total_rows: int
    overlap_count: int
    reviewer_a: ReviewerAssignment
    reviewer_b: ReviewerAssignment
    assignments: dict[str, list[str]]  # row id → reviewer ids


def build_dual_review_plan(
    rows: list[CalibrationRow],
    reviewer_a_id: str = "reviewer_a",
    reviewer_b_id: str = "reviewer_b",
    overlap_ratio: float = _DEFAULT_OVERLAP_RATIO,
    seed: int = 31,
) -> DualReviewPlan:
    """Split rows between two reviewers with a seeded, shared overlap sample.

    Overlap rows go to both reviewers (for agreement measurement); the rest
    alternate between them.
    """
    reviewer_a_id = reviewer_a_id.strip()
    reviewer_b_id = reviewer_b_id.strip()
    if not reviewer_a_id or not reviewer_b_id:
        raise ConfigurationError("reviewer ids must be non-empty")
    if reviewer_a_id == reviewer_b_id:
        raise ConfigurationError("reviewer ids must be distinct for dual review")
    if not 0.0 <= overlap_ratio <= _MAX_OVERLAP_RATIO:
        raise ConfigurationError(
            f"overlap_ratio must be within [0, {_MAX_OVERLAP_RATIO}], got {overlap_ratio}"
        )

    row_ids = sorted(row.id for row in rows)
    duplicates = {row_id for row_id, next_id in zip(row_ids, row_ids[1:]) if row_id == next_id}
    if duplicates:
        raise ConfigurationError(f"duplicate calibration row ids: {sorted(duplicates)}")

    order = np.random.default_rng(seed).permutation(len(row_ids))
    shuffled = [row_ids[i] for i in order]
    overlap_count = min(len(shuffled), round(len(shuffled) * overlap_ratio))
    overlap = set(shuffled[:overlap_count])
    remainder = shuffled[overlap_count:]

    a_rows = overlap | set(remainder[0::2])
    b_rows = overlap | set(remainder[1::2])

    assignments: dict[str, list[str]] = {}
    for row_id in row_ids:
        assignments[row_id] = [
            reviewer
            for reviewer, assigned in ((reviewer_a_id, a_rows), (reviewer_b_id, b_rows))
            if row_id in assigned
        ]

    return DualReviewPlan(
        overlap_ratio=overlap_ratio,
        seed=seed,
        total_rows=len(row_ids),
        overlap_count=overlap_count,
        reviewer_a=ReviewerAssignment(
            reviewer_a_id, [r for r in row_ids if r in a_rows], overlap_count
        ),
        reviewer_b=ReviewerAssignment(
            reviewer_b_id, [r for r in row_ids if r in b_rows], overlap_count
        ),
        assignments=assignments,
    )
