"""Trajectory outcome gate: paired off/on comparison of recovery episodes.

Episodes of the same family, seen in time order, form (off, on) pairs: the
earlier run had no hint, the later one could have used what was learned.
The gate sums harmful retries, wall time and tokens across pairs, puts a
paired-bootstrap interval around each relative reduction, and checks the
point estimates against thresholds.

Unmet thresholds are reported as failure strings, never raised.

Usage:
    episodes = extract_trajectory_outcome_episodes(events)
    report = evaluate_trajectory_outcome_gate(episodes)
    if not report.gate_result.passed:
        print("\\n".join(report.gate_result.failures))
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from typing import Any

import numpy as np

from ..config import (
    PairingOptions,
    TrajectoryOutcomeThresholds,
    TrustOptions,
    default_pairing_options,
    default_thresholds,
    default_trust_options,
)
from .episodes import TrajectoryOutcomeEpisode

logger = logging.getLogger(__name__)

_FNV_OFFSET_BASIS = 2166136261
_FNV_PRIME = 16777619


# =============================================================================
# Result types
# =============================================================================


@dataclass(frozen=True)
class TrajectoryOutcomePair:
    id: str
    family_signature: str
    description: str
    off: TrajectoryOutcomeEpisode
    on: TrajectoryOutcomeEpisode
    wall_time_ratio: float
    token_count_ratio: float

    @property
    def quality_score(self) -> float:
        """1 for identical-sized runs, approaching 0 as they diverge."""
        if not math.isfinite(self.wall_time_ratio) or not math.isfinite(self.token_count_ratio):
            return 0.0
        penalty = abs(math.log2(self.wall_time_ratio)) + abs(math.log2(self.token_count_ratio))
        return 1 / (1 + penalty)


@dataclass
class PairingDiagnostics:
    families_seen: int = 0
    families_eligible: int = 0
    candidate_transitions: int = 0
    dropped_same_session: int = 0
    dropped_outlier_ratio: int = 0
    pairs_built: int = 0


@dataclass(frozen=True)
class TrajectoryOutcomeAggregate:
    total_pairs: int = 0
    total_retries_off: int = 0
    total_retries_on: int = 0
    total_harmful_retries_off: int = 0
    total_harmful_retries_on: int = 0
    total_benign_retries_off: int = 0
    total_benign_retries_on: int = 0
    total_abstained_retries_off: int = 0
    total_abstained_retries_on: int = 0
    harmful_retry_rate_off: float = 0.0
    harmful_retry_rate_on: float = 0.0
    judgeable_coverage_off: float = 1.0
    judgeable_coverage_on: float = 1.0
    recovery_success_rate_off: float = 0.0
    recovery_success_rate_on: float = 0.0
    total_wall_time_off_ms: float = 0.0
    total_wall_time_on_ms: float = 0.0
    total_token_count_off: int = 0
    total_token_count_on: int = 0
    total_token_proxy_off: float = 0.0
    total_token_proxy_on: float = 0.0
    total_cost_off_usd: float = 0.0
    total_cost_on_usd: float = 0.0
    relative_harmful_retry_reduction: float = 0.0
    relative_wall_time_reduction: float = 0.0
    relative_token_count_reduction: float = 0.0
    relative_token_proxy_reduction: float = 0.0
    absolute_recovery_success_rate_delta: float = 0.0


@dataclass(frozen=True)
class Interval:
    low: float = 0.0
    median: float = 0.0
    high: float = 0.0


@dataclass(frozen=True)
class TrustSummary:
    sample_count: int
    confidence_level: float
    harmful_retry_reduction: Interval = field(default_factory=Interval)
    wall_time_reduction: Interval = field(default_factory=Interval)
    token_count_reduction: Interval = field(default_factory=Interval)
    token_proxy_reduction: Interval = field(default_factory=Interval)
    expected_harmful_retries_avoided: Interval = field(default_factory=Interval)
    method: str = "paired_bootstrap"


@dataclass(frozen=True)
class GateResult:
    passed: bool
    failures: list[str]


@dataclass(frozen=True)
class TrajectoryOutcomeReport:
    thresholds: TrajectoryOutcomeThresholds
    pairing: PairingOptions
    pairing_diagnostics: PairingDiagnostics
    episodes: list[TrajectoryOutcomeEpisode]
    pairs: list[TrajectoryOutcomePair]
    aggregate: TrajectoryOutcomeAggregate
    trust_summary: TrustSummary
    gate_result: GateResult

    def to_dict(self) -> dict[str, Any]:
        """Summary view for JSON output (episodes and pairs as counts/ids)."""
        return {
            "thresholds": asdict(self.thresholds),
            "pairing": asdict(self.pairing),
            "pairingDiagnostics": asdict(self.pairing_diagnostics),
            "episodeCount": len(self.episodes),
            "pairs": [
                {
                    "id": pair.id,
                    "familySignature": pair.family_signature,
                    "offEpisodeId": pair.off.id,
                    "onEpisodeId": pair.on.id,
                    "qualityScore": pair.quality_score,
                }
                for pair in self.pairs
            ],
            "aggregate": asdict(self.aggregate),
            "trustSummary": asdict(self.trust_summary),
            "gateResult": asdict(self.gate_result),
        }


# =============================================================================
# Pairing
# =============================================================================


def _positive_ratio(left: float, right: float) -> float:
    if left == 0 and right == 0:
        return 1.0
    if left <= 0 or right <= 0:
        return math.inf
    return max(left, right) / min(left, right)


def build_pairs_with_diagnostics(
    episodes: list[TrajectoryOutcomeEpisode],
    options: PairingOptions | None = None,
) -> tuple[list[TrajectoryOutcomePair], PairingDiagnostics]:
    options = options or default_pairing_options()
    by_family: dict[str, list[TrajectoryOutcomeEpisode]] = defaultdict(list)
    for episode in episodes:
        by_family[episode.family_signature].append(episode)

    diagnostics = PairingDiagnostics(families_seen=len(by_family))
    pairs: list[TrajectoryOutcomePair] = []

    for family, family_episodes in by_family.items():
        if len(family_episodes) < options.min_occurrences_per_family:
            continue
        diagnostics.families_eligible += 1

        ordered = sorted(family_episodes, key=lambda e: e.started_at)
        for off, on in zip(ordered, ordered[1:]):
            diagnostics.candidate_transitions += 1

            if options.require_cross_session and off.session_id == on.session_id:
                diagnostics.dropped_same_session += 1
                continue

            wall_time_ratio = _positive_ratio(off.outcome.wall_time_ms, on.outcome.wall_time_ms)
            token_count_ratio = _positive_ratio(off.token_count, on.token_count)
            if (
                wall_time_ratio > options.max_wall_time_ratio
                or token_count_ratio > options.max_token_count_ratio
            ):
                diagnostics.dropped_outlier_ratio += 1
                continue

            pairs.append(
                TrajectoryOutcomePair(
                    id=f"{family}-trajectory-pair-{len(pairs) + 1}",
                    family_signature=family,
                    description=off.description,
                    off=off,
                    on=on,
                    wall_time_ratio=wall_time_ratio,
                    token_count_ratio=token_count_ratio,
                )
            )

    pairs.sort(key=lambda p: p.on.started_at)
    diagnostics.pairs_built = len(pairs)
    logger.debug("Pairing diagnostics: %s", diagnostics)
    return pairs, diagnostics


def build_trajectory_outcome_pairs(
    episodes: list[TrajectoryOutcomeEpisode],
    options: PairingOptions | None = None,
) -> list[TrajectoryOutcomePair]:
    return build_pairs_with_diagnostics(episodes, options)[0]


# =============================================================================
# Aggregation
# =============================================================================


def relative_reduction(off: float, on: float) -> float:
    """(off - on) / off; 0 when both are 0; -1 when off is 0 but on is not."""
    if off <= 0:
        return 0.0 if on <= 0 else -1.0
    return (off - on) / off


def _rate(count: float, total: float, empty: float = 0.0) -> float:
    return count / total if total > 0 else empty


def aggregate_pairs(pairs: list[TrajectoryOutcomePair]) -> TrajectoryOutcomeAggregate:
    n = len(pairs)
    retries_off = sum(p.off.outcome.retries for p in pairs)
    retries_on = sum(p.on.outcome.retries for p in pairs)
    harmful_off = sum(p.off.issue_summary.harmful_failures for p in pairs)
    harmful_on = sum(p.on.issue_summary.harmful_failures for p in pairs)
    abstained_off = sum(p.off.issue_summary.abstained_failures for p in pairs)
    abstained_on = sum(p.on.issue_summary.abstained_failures for p in pairs)
    wall_off = sum(p.off.outcome.wall_time_ms for p in pairs)
    wall_on = sum(p.on.outcome.wall_time_ms for p in pairs)
    tokens_off = sum(p.off.token_count for p in pairs)
    tokens_on = sum(p.on.token_count for p in pairs)
    proxy_off = sum(p.off.token_proxy for p in pairs)
    proxy_on = sum(p.on.token_proxy for p in pairs)
    success_rate_off = _rate(sum(1 for p in pairs if p.off.outcome.success), n)
    success_rate_on = _rate(sum(1 for p in pairs if p.on.outcome.success), n)

    return TrajectoryOutcomeAggregate(
        total_pairs=n,
        total_retries_off=retries_off,
        total_retries_on=retries_on,
        total_harmful_retries_off=harmful_off,
        total_harmful_retries_on=harmful_on,
        total_benign_retries_off=sum(p.off.issue_summary.benign_failures for p in pairs),
        total_benign_retries_on=sum(p.on.issue_summary.benign_failures for p in pairs),
        total_abstained_retries_off=abstained_off,
        total_abstained_retries_on=abstained_on,
        harmful_retry_rate_off=_rate(harmful_off, n),
        harmful_retry_rate_on=_rate(harmful_on, n),
        judgeable_coverage_off=_rate(max(0, retries_off - abstained_off), retries_off, 1.0),
        judgeable_coverage_on=_rate(max(0, retries_on - abstained_on), retries_on, 1.0),
        recovery_success_rate_off=success_rate_off,
        recovery_success_rate_on=success_rate_on,
        total_wall_time_off_ms=wall_off,
        total_wall_time_on_ms=wall_on,
        total_token_count_off=tokens_off,
        total_token_count_on=tokens_on,
        total_token_proxy_off=proxy_off,
        total_token_proxy_on=proxy_on,
        total_cost_off_usd=sum(p.off.outcome.cost_usd for p in pairs),
        total_cost_on_usd=sum(p.on.outcome.cost_usd for p in pairs),
        relative_harmful_retry_reduction=relative_reduction(harmful_off, harmful_on),
        relative_wall_time_reduction=relative_reduction(wall_off, wall_on),
        relative_token_count_reduction=relative_reduction(tokens_off, tokens_on),
        relative_token_proxy_reduction=relative_reduction(proxy_off, proxy_on),
        absolute_recovery_success_rate_delta=success_rate_on - success_rate_off,
    )


# =============================================================================
# Bootstrap confidence intervals
# =============================================================================


def fnv1a32(text: str, seed: int = _FNV_OFFSET_BASIS) -> int:
    """32-bit FNV-1a over the UTF-16 code units of ``text``."""
    value = seed
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        value ^= data[i] | (data[i + 1] << 8)
        value = (value * _FNV_PRIME) & 0xFFFFFFFF
    return value


def _pairs_hash(pairs: list[TrajectoryOutcomePair]) -> int:
    value = _FNV_OFFSET_BASIS
    for pair in pairs:
        value = fnv1a32(f"{pair.id}|{pair.off.id}|{pair.on.id}", seed=value)
    return value


def _relative_reductions(off: np.ndarray, on: np.ndarray) -> np.ndarray:
    """Vectorized relative_reduction over bootstrap samples."""
    reductions = np.zeros(off.shape, dtype=float)
    positive = off > 0
    reductions[positive] = (off[positive] - on[positive]) / off[positive]
    reductions[~positive & (on > 0)] = -1.0
    return reductions


def _interval(values: np.ndarray, confidence_level: float) -> Interval:
    if values.size == 0:
        return Interval()
    tail = (1 - confidence_level) / 2
    low, median, high = np.quantile(values, [tail, 0.5, 1 - tail])
    return Interval(low=float(low), median=float(median), high=float(high))


def summarize_trust(
    pairs: list[TrajectoryOutcomePair],
    options: TrustOptions | None = None,
) -> TrustSummary:
    """Paired bootstrap over pairs. Deterministic for (pairs, seed, sample count)."""
    options = options or default_trust_options()
    if not pairs:
        return TrustSummary(
            sample_count=options.bootstrap_samples,
            confidence_level=options.confidence_level,
        )

    def column(values: list[float]) -> np.ndarray:
        return np.asarray(values, dtype=float)

    harmful_off = column([p.off.issue_summary.harmful_failures for p in pairs])
    harmful_on = column([p.on.issue_summary.harmful_failures for p in pairs])
    wall_off = column([p.off.outcome.wall_time_ms for p in pairs])
    wall_on = column([p.on.outcome.wall_time_ms for p in pairs])
    tokens_off = column([p.off.token_count for p in pairs])
    tokens_on = column([p.on.token_count for p in pairs])
    proxy_off = column([p.off.token_proxy for p in pairs])
    proxy_on = column([p.on.token_proxy for p in pairs])

    rng = np.random.default_rng((options.seed ^ _pairs_hash(pairs)) & 0xFFFFFFFF)
    samples = rng.integers(0, len(pairs), size=(options.bootstrap_samples, len(pairs)))

    def resampled(off: np.ndarray, on: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        return off[samples].sum(axis=1), on[samples].sum(axis=1)

    level = options.confidence_level
    harmful = resampled(harmful_off, harmful_on)
    return TrustSummary(
        sample_count=options.bootstrap_samples,
        confidence_level=level,
        harmful_retry_reduction=_interval(_relative_reductions(*harmful), level),
        wall_time_reduction=_interval(_relative_reductions(*resampled(wall_off, wall_on)), level),
        token_count_reduction=_interval(
            _relative_reductions(*resampled(tokens_off, tokens_on)), level
        ),
        token_proxy_reduction=_interval(
            _relative_reductions(*resampled(proxy_off, proxy_on)), level
        ),
        expected_harmful_retries_avoided=_interval(harmful[0] - harmful[1], level),
    )


# =============================================================================
# Gate
# =============================================================================


def evaluate_gate(
    aggregate: TrajectoryOutcomeAggregate,
    thresholds: TrajectoryOutcomeThresholds | None = None,
) -> GateResult:
    t = thresholds or default_thresholds()
    failures: list[str] = []

    if aggregate.total_pairs < t.min_pair_count:
        failures.append(f"pair count {aggregate.total_pairs} < {t.min_pair_count}")

    checks = [
        (
            "harmful retry reduction",
            aggregate.relative_harmful_retry_reduction,
            t.min_relative_harmful_retry_reduction,
        ),
        (
            "wall-time reduction",
            aggregate.relative_wall_time_reduction,
            t.min_relative_wall_time_reduction,
        ),
        (
            "token-count reduction",
            aggregate.relative_token_count_reduction,
            t.min_relative_token_count_reduction,
        ),
        (
            "recovery success on",
            aggregate.recovery_success_rate_on,
            t.min_recovery_success_rate_on,
        ),
    ]
    for label, value, minimum in checks:
        if value < minimum:
            failures.append(f"{label} {value:.3f} < {minimum:.3f}")

    success_drop = aggregate.recovery_success_rate_off - aggregate.recovery_success_rate_on
    if success_drop > t.max_recovery_success_rate_drop:
        failures.append(
            f"recovery success drop {success_drop:.3f} > {t.max_recovery_success_rate_drop:.3f}"
        )

    for label, coverage in (
        ("judgeable coverage off", aggregate.judgeable_coverage_off),
        ("judgeable coverage on", aggregate.judgeable_coverage_on),
    ):
        if coverage < t.min_judgeable_coverage:
            failures.append(f"{label} {coverage:.3f} < {t.min_judgeable_coverage:.3f}")

    return GateResult(passed=not failures, failures=failures)


def evaluate_trajectory_outcome_gate(
    episodes: list[TrajectoryOutcomeEpisode],
    thresholds: TrajectoryOutcomeThresholds | None = None,
    pairing: PairingOptions | None = None,
    trust: TrustOptions | None = None,
) -> TrajectoryOutcomeReport:
    """Pair, aggregate, bootstrap and gate in one call."""
    thresholds = thresholds or default_thresholds()
    pairing = pairing or default_pairing_options()
    pairs, diagnostics = build_pairs_with_diagnostics(episodes, pairing)
    aggregate = aggregate_pairs(pairs)
    gate_result = evaluate_gate(aggregate, thresholds)

    logger.info(
        "Trajectory outcome gate: %d episodes, %d pairs, passed=%s",
        len(episodes),
        len(pairs),
        gate_result.passed,
    )
    return TrajectoryOutcomeReport(
        thresholds=thresholds,
        pairing=pairing,
        pairing_diagnostics=diagnostics,
        episodes=episodes,
        pairs=pairs,
        aggregate=aggregate,
        trust_summary=summarize_trust(pairs, trust),
        gate_result=gate_result,
    )
