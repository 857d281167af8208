"""Episode extraction: failure-to-success spans within a session.

An episode starts at a failing tool result and ends at the next successful
one in the same session. Everything in between is part of the episode and
contributes retries, wall time and tokens. Episodes from different sessions
are comparable when they share a family signature.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime

from ..core.models import TokenUsage, TraceEvent
from ..core.signatures import (
    extract_error_signatures,
    normalize_command_signature,
    normalize_text,
)
from .classifier import TrajectoryIssue, TrajectoryIssueKind, classify_trajectory_issue

logger = logging.getLogger(__name__)

_MAX_FAMILY_SIGNATURE_LENGTH = 240


@dataclass(frozen=True)
class RunOutcome:
    """Resource usage of one episode."""

    retries: int = 0
    wall_time_ms: float = 0.0
    tokens: TokenUsage = field(default_factory=TokenUsage)
    cost_usd: float = 0.0
    success: bool = False


@dataclass(frozen=True)
class EpisodeIssueSummary:
    total_failures: int = 0
    harmful_failures: int = 0
    benign_probe_failures: int = 0
    transient_external_failures: int = 0
    command_mismatch_failures: int = 0
    environment_mismatch_failures: int = 0
    missing_context_failures: int = 0
    unknown_failures: int = 0

    @property
    def abstained_failures(self) -> int:
        return self.unknown_failures

    @property
    def judgeable_failures(self) -> int:
        return max(0, self.total_failures - self.abstained_failures)

    @property
    def benign_failures(self) -> int:
        return self.benign_probe_failures + self.transient_external_failures


@dataclass(frozen=True)
class TrajectoryOutcomeEpisode:
    id: str
    family_signature: str
    description: str
    session_id: str
    started_at: str
    ended_at: str
    outcome: RunOutcome
    issues: tuple[TrajectoryIssue, ...] = ()
    issue_summary: EpisodeIssueSummary = field(default_factory=EpisodeIssueSummary)

    @property
    def token_count(self) -> int:
        return self.outcome.tokens.total

    @property
    def token_proxy(self) -> float:
        return self.outcome.tokens.proxy


def summarize_issues(issues: list[TrajectoryIssue]) -> EpisodeIssueSummary:
    counts = {kind: 0 for kind in TrajectoryIssueKind}
    for issue in issues:
        counts[issue.kind] += 1
    return EpisodeIssueSummary(
        total_failures=len(issues),
        harmful_failures=sum(1 for issue in issues if issue.harmful),
        benign_probe_failures=counts[TrajectoryIssueKind.BENIGN_PROBE],
        transient_external_failures=counts[TrajectoryIssueKind.TRANSIENT_EXTERNAL],
        command_mismatch_failures=counts[TrajectoryIssueKind.COMMAND_MISMATCH],
        environment_mismatch_failures=counts[TrajectoryIssueKind.ENVIRONMENT_MISMATCH],
        missing_context_failures=counts[TrajectoryIssueKind.MISSING_CONTEXT],
        unknown_failures=counts[TrajectoryIssueKind.UNKNOWN_FAILURE],
    )


def _parse_timestamp(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _timestamp_span_ms(events: list[TraceEvent]) -> float:
    start = _parse_timestamp(events[0].timestamp)
    end = _parse_timestamp(events[-1].timestamp)
    if start is None or end is None:
        return 0.0
    return max(0.0, (end - start).total_seconds() * 1000)


def derive_run_outcome(events: list[TraceEvent]) -> RunOutcome:
    """Sum retries, latency, tokens and cost over an episode's events.

    Wall time is the summed latency; when no event recorded a latency it
    falls back to the span between the first and last timestamps.
    """
    if not events:
        return RunOutcome()

    tokens = TokenUsage()
    cost = 0.0
    latency = 0.0
    has_latency = False
    for event in events:
        if event.metrics is None:
            continue
        tokens = tokens + event.metrics.tokens
        cost += event.metrics.cost_usd
        if event.metrics.latency_ms is not None:
            latency += event.metrics.latency_ms
            has_latency = True

    return RunOutcome(
        retries=sum(1 for event in events if event.is_failure),
        wall_time_ms=latency if has_latency else _timestamp_span_ms(events),
        tokens=tokens,
        cost_usd=cost,
        success=events[-1].is_success,
    )


def family_signature(failure: TraceEvent) -> str:
    command = normalize_command_signature(failure.command)
    errors = extract_error_signatures(failure.output, limit=1)
    signature = normalize_text(f"{command} {errors[0] if errors else ''}")
    if signature:
        return signature[:_MAX_FAMILY_SIGNATURE_LENGTH]

    first_line = _first_line(failure.output)
    return normalize_text(first_line or "recovery")[:_MAX_FAMILY_SIGNATURE_LENGTH]


def _first_line(text: str) -> str:
    stripped = text.strip()
    return stripped.splitlines()[0].strip() if stripped else ""


def episode_description(failure: TraceEvent) -> str:
    summary = _first_line(failure.output) or failure.command or "recovery"
    return f"Recover from {summary}"


def extract_trajectory_outcome_episodes(
    events: list[TraceEvent],
) -> list[TrajectoryOutcomeEpisode]:
    """Split each session into failure-to-success episodes, ordered by start time.

    A failure with no later success in its session opens no episode.
    """
    by_session: dict[str, list[TraceEvent]] = defaultdict(list)
    for event in events:
        by_session[event.session_id].append(event)

    episodes: list[TrajectoryOutcomeEpisode] = []
    for session_id, session_events in by_session.items():
        ordered = sorted(session_events, key=lambda e: e.sort_key)
        index = 0
        while index < len(ordered):
            failure = ordered[index]
            if not failure.is_failure:
                index += 1
                continue

            success_index = next(
                (i for i in range(index + 1, len(ordered)) if ordered[i].is_success),
                None,
            )
            if success_index is None:
                logger.debug("Session %s ends without recovering from %s", session_id, failure.id)
                break

            span = ordered[index : success_index + 1]
            issues = [issue for issue in map(classify_trajectory_issue, span) if issue]
            episodes.append(
                TrajectoryOutcomeEpisode(
                    id=f"{session_id}-trajectory-episode-{len(episodes) + 1}",
                    family_signature=family_signature(failure),
                    description=episode_description(failure),
                    session_id=session_id,
                    started_at=failure.timestamp,
                    ended_at=ordered[success_index].timestamp,
                    outcome=derive_run_outcome(span),
                    issues=tuple(issues),
                    issue_summary=summarize_issues(issues),
                )
            )
            index = success_index + 1

    return sorted(episodes, key=lambda e: e.started_at)
