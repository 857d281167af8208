"""Central configuration for happypaths.

Every tunable lives in a dataclass here, with its default documented next to
it. Components take a config object at construction and never read module
globals, so two loops in one process can run with different settings.

Usage:
    from happypaths.config import default_fusion_config, FusionConfig

    fusion = default_fusion_config()
    strict = FusionConfig(k=0, primary_weight=1.0, secondary_weight=1.0)

    # Or use environment variables to override at runtime:
    # HAPPYPATHS_DATA_DIR=/var/lib/happy-paths
    # HAPPYPATHS_MIN_SUGGESTION_CONFIDENCE=0.3

Invalid values raise ConfigurationError immediately; nothing is clamped or
silently defaulted.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ConfigurationError


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def _require_unit_interval(name: str, value: float) -> None:
    if not math.isfinite(value) or not 0.0 <= value <= 1.0:
        raise ConfigurationError(f"{name} must be within [0, 1], got {value}")


def _require_positive_weight(name: str, value: float) -> None:
    if not isinstance(value, (int, float)) or not math.isfinite(value) or value <= 0:
        raise ConfigurationError(f"{name} must be a finite positive number, got: {value}")


# =============================================================================
# Retrieval
# =============================================================================


@dataclass(frozen=True)
class LexicalIndexConfig:
    """BM25 parameters for InMemoryLexicalIndex.

    Attributes:
        k1: Term-frequency saturation. Higher values let repeated terms keep
            adding score for longer.
        b: Length normalization strength (0 = none, 1 = full).
        max_query_terms: Cap on distinct query terms. When a query is longer,
            75% of the cap is taken from its head and the rest from its tail.
    """

    k1: float = 1.2
    b: float = 0.75
    max_query_terms: int = 128

    def __post_init__(self) -> None:
        if not math.isfinite(self.k1) or self.k1 < 0:
            raise ConfigurationError(f"k1 must be a finite non-negative number, got {self.k1}")
        _require_unit_interval("b", self.b)
        if self.max_query_terms < 1:
            raise ConfigurationError(f"max_query_terms must be >= 1, got {self.max_query_terms}")


@dataclass(frozen=True)
class FusionConfig:
    """Weighted reciprocal rank fusion for CompositeTraceIndex.

    Each backend contributes ``weight / (k + rank)`` per document, rank being
    1-based within that backend's own results. ``k=0`` is pure reciprocal rank.
    """

    k: float = 60.0
    primary_weight: float = 1.25
    secondary_weight: float = 1.0
    min_fanout: int = 20

    def __post_init__(self) -> None:
        if not math.isfinite(self.k) or self.k < 0:
            raise ConfigurationError(f"Fusion k must be a finite non-negative number, got {self.k}")
        _require_positive_weight("primary_weight", self.primary_weight)
        _require_positive_weight("secondary_weight", self.secondary_weight)
        if self.min_fanout < 1:
            raise ConfigurationError(f"min_fanout must be >= 1, got {self.min_fanout}")


# =============================================================================
# Mining and suggestions
# =============================================================================


@dataclass(frozen=True)
class MinerConfig:
    """Wrong-turn mining parameters.

    Attributes:
        lookahead_results: How many later tool results in the same session may
            close an open failure.
        near_dup_threshold: Similarity at which two arc fingerprints collapse
            into one artifact.
        retry_similarity_threshold: Similarity at which a "fix" is considered
            a bare retry of the failing command.
    """

    lookahead_results: int = 6
    near_dup_threshold: float = 0.9
    retry_similarity_threshold: float = 0.95

    def __post_init__(self) -> None:
        if self.lookahead_results < 1:
            raise ConfigurationError(
                f"lookahead_results must be >= 1, got {self.lookahead_results}"
            )
        for name in ("near_dup_threshold", "retry_similarity_threshold"):
            value = getattr(self, name)
            if not math.isfinite(value) or not 0.0 < value <= 1.0:
                raise ConfigurationError(f"{name} must be within (0, 1], got {value}")


@dataclass(frozen=True)
class SuggestConfig:
    """LearningLoop.suggest parameters.

    A hit's confidence is ``0.95 * score / top_score``, relative to the best
    hit of the same query, so it behaves the same for BM25 and fused scores.
    """

    min_confidence: float = field(
        default_factory=lambda: _env_float("HAPPYPATHS_MIN_SUGGESTION_CONFIDENCE", 0.2)
    )
    max_suggestions: int = 5
    mined_artifact_limit: int = 50

    def __post_init__(self) -> None:
        _require_unit_interval("min_confidence", self.min_confidence)
        if self.max_suggestions < 1:
            raise ConfigurationError(f"max_suggestions must be >= 1, got {self.max_suggestions}")


# =============================================================================
# Trajectory outcome gate
# =============================================================================


@dataclass(frozen=True)
class TrajectoryOutcomeThresholds:
    """Pass/fail thresholds for the trajectory outcome gate.

    Relative reductions may be negative (a threshold of -1 accepts any
    regression); rates and coverage are fractions in [0, 1].
    """

    min_pair_count: int = 3
    min_relative_harmful_retry_reduction: float = 0.2
    min_relative_wall_time_reduction: float = 0.1
    min_relative_token_count_reduction: float = 0.1
    min_recovery_success_rate_on: float = 0.9
    max_recovery_success_rate_drop: float = 0.0
    min_judgeable_coverage: float = 0.6

    def __post_init__(self) -> None:
        if self.min_pair_count < 0:
            raise ConfigurationError(f"min_pair_count must be >= 0, got {self.min_pair_count}")
        for name in (
            "min_relative_harmful_retry_reduction",
            "min_relative_wall_time_reduction",
            "min_relative_token_count_reduction",
        ):
            value = getattr(self, name)
            if not math.isfinite(value) or not -1.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be within [-1, 1], got {value}")
        _require_unit_interval("min_recovery_success_rate_on", self.min_recovery_success_rate_on)
        _require_unit_interval(
            "max_recovery_success_rate_drop", self.max_recovery_success_rate_drop
        )
        _require_unit_interval("min_judgeable_coverage", self.min_judgeable_coverage)


@dataclass(frozen=True)
class PairingOptions:
    """How episodes are paired across sessions into (off, on) comparisons."""

    min_occurrences_per_family: int = 2
    require_cross_session: bool = True
    max_wall_time_ratio: float = 4.0
    max_token_count_ratio: float = 4.0

    def __post_init__(self) -> None:
        if self.min_occurrences_per_family < 2:
            raise ConfigurationError(
                f"min_occurrences_per_family must be >= 2, got {self.min_occurrences_per_family}"
            )
        for name in ("max_wall_time_ratio", "max_token_count_ratio"):
            value = getattr(self, name)
            if math.isnan(value) or value < 1:
                raise ConfigurationError(f"{name} must be >= 1, got {value}")


@dataclass(frozen=True)
class TrustOptions:
    """Paired bootstrap settings. Results are deterministic for a given seed."""

    bootstrap_samples: int = 2000
    confidence_level: float = 0.95
    seed: int = 31

    def __post_init__(self) -> None:
        if self.bootstrap_samples < 1:
            raise ConfigurationError(
                f"bootstrap_samples must be >= 1, got {self.bootstrap_samples}"
            )
        if not math.isfinite(self.confidence_level) or not 0.0 < self.confidence_level < 1.0:
            raise ConfigurationError(
                f"confidence_level must be within (0, 1), got {self.confidence_level}"
            )


# =============================================================================
# Local wiring
# =============================================================================


@dataclass(frozen=True)
class LocalLoopConfig:
    """Where the local JSONL trace store keeps its files."""

    data_dir: Path = field(
        default_factory=lambda: Path(os.environ.get("HAPPYPATHS_DATA_DIR", ".happy-paths"))
    )


# Default providers. Each call returns a fresh, validated instance.
def default_lexical_index_config() -> LexicalIndexConfig:
    return LexicalIndexConfig()


def default_fusion_config() -> FusionConfig:
    return FusionConfig()


def default_miner_config() -> MinerConfig:
    return MinerConfig()


def default_suggest_config() -> SuggestConfig:
    return SuggestConfig()


def default_thresholds() -> TrajectoryOutcomeThresholds:
    return TrajectoryOutcomeThresholds()


def default_pairing_options() -> PairingOptions:
    return PairingOptions()


def default_trust_options() -> TrustOptions:
    return TrustOptions()


def default_local_loop_config() -> LocalLoopConfig:
    return LocalLoopConfig()
