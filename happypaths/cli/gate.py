"""CLI command for the trajectory outcome gate."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click

from ..config import TrajectoryOutcomeThresholds, TrustOptions
from ..core.models import TraceEvent
from ..errors import ConfigurationError, MalformedEventError
from .main import main

logger = logging.getLogger(__name__)


def load_events(path: Path) -> list[TraceEvent]:
    """Read a JSONL event file, skipping (and logging) unreadable lines."""
    events: list[TraceEvent] = []
    with open(path, encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                events.append(TraceEvent.from_dict(json.loads(line)))
            except (json.JSONDecodeError, MalformedEventError) as e:
                logger.warning("Skipping %s:%d: %s", path, line_number, e)
    return events


@main.command()
@click.argument("events_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--min-pairs", type=int, default=3, show_default=True, help="Minimum paired episodes.")
@click.option(
    "--min-coverage",
    type=float,
    default=0.6,
    show_default=True,
    help="Minimum fraction of failures the classifier did not abstain on.",
)
@click.option("--seed", type=int, default=31, show_default=True, help="Bootstrap seed.")
@click.option("--samples", type=int, default=2000, show_default=True, help="Bootstrap samples.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the report as JSON.")
def gate(
    events_file: Path,
    min_pairs: int,
    min_coverage: float,
    seed: int,
    samples: int,
    as_json: bool,
) -> None:
    """Evaluate whether hints reduced harmful retries across paired episodes.

    Exits with status 1 when any threshold is unmet.

    \b
    Examples:
        happypaths gate traces.jsonl
        happypaths gate traces.jsonl --min-pairs 1 --json
    """
    from ..gate.episodes import extract_trajectory_outcome_episodes
    from ..gate.outcome import evaluate_trajectory_outcome_gate

    try:
        thresholds = TrajectoryOutcomeThresholds(
            min_pair_count=min_pairs, min_judgeable_coverage=min_coverage
        )
        trust = TrustOptions(bootstrap_samples=samples, seed=seed)
    except ConfigurationError as e:
        raise click.UsageError(str(e)) from e

    episodes = extract_trajectory_outcome_episodes(load_events(events_file))
    report = evaluate_trajectory_outcome_gate(episodes, thresholds=thresholds, trust=trust)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2, default=str))
    else:
        aggregate = report.aggregate
        trust_summary = report.trust_summary
        click.echo(f"Episodes: {len(report.episodes)}  |  Pairs: {aggregate.total_pairs}")
        click.echo(
            f"Harmful retries: {aggregate.total_harmful_retries_off} -> "
            f"{aggregate.total_harmful_retries_on} "
            f"({aggregate.relative_harmful_retry_reduction:.1%} reduction)"
        )
        click.echo(
            f"Wall time: {aggregate.total_wall_time_off_ms:.0f}ms -> "
            f"{aggregate.total_wall_time_on_ms:.0f}ms "
            f"({aggregate.relative_wall_time_reduction:.1%} reduction)"
        )
        click.echo(
            f"Tokens: {aggregate.total_token_count_off} -> {aggregate.total_token_count_on} "
            f"({aggregate.relative_token_count_reduction:.1%} reduction)"
        )
        click.echo(
            f"Judgeable coverage: off {aggregate.judgeable_coverage_off:.1%}  "
            f"on {aggregate.judgeable_coverage_on:.1%}"
        )
        interval = trust_summary.harmful_retry_reduction
        click.echo(
            f"Harmful retry reduction {trust_summary.confidence_level:.0%} interval: "
            f"[{interval.low:.3f}, {interval.high:.3f}] (median {interval.median:.3f})"
        )

    if report.gate_result.passed:
        click.echo("Gate: PASS")
        return

    click.echo("Gate: FAIL")
    for failure in report.gate_result.failures:
        click.echo(f"  - {failure}")
    sys.exit(1)
