"""Trajectory outcome gate: does surfacing hints reduce harmful retries?"""

from .calibration import (
    CalibrationRow,
    build_calibration_rows,
    build_dual_review_plan,
    summarize_trajectory_calibration,
)
from .classifier import TrajectoryIssue, TrajectoryIssueKind, classify_trajectory_issue
from .episodes import (
    RunOutcome,
    TrajectoryOutcomeEpisode,
    extract_trajectory_outcome_episodes,
)
from .outcome import (
    TrajectoryOutcomeReport,
    aggregate_pairs,
    build_trajectory_outcome_pairs,
    evaluate_gate,
    evaluate_trajectory_outcome_gate,
    relative_reduction,
    summarize_trust,
)

__all__ = [
    "CalibrationRow",
    "RunOutcome",
    "TrajectoryIssue",
    "TrajectoryIssueKind",
    "TrajectoryOutcomeEpisode",
    "TrajectoryOutcomeReport",
    "aggregate_pairs",
    "build_calibration_rows",
    "build_dual_review_plan",
    "build_trajectory_outcome_pairs",
    "classify_trajectory_issue",
    "evaluate_gate",
    "evaluate_trajectory_outcome_gate",
    "extract_trajectory_outcome_episodes",
    "relative_reduction",
    "summarize_trust",
]
