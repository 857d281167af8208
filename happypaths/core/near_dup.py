"""Near-duplicate detection for short texts (commands, error lines, fingerprints).

Similarity is the Jaccard index of character 3-gram shingles over normalized
text. It is symmetric and deterministic, and tolerant of small edits such as
an added flag or a changed temp path, which is what collapsing repeated
wrong-turn arcs needs.
"""

from __future__ import annotations

from ..errors import ConfigurationError
from .signatures import normalize_text

_SHINGLE_SIZE = 3
DEFAULT_THRESHOLD = 0.9


def _shingles(text: str) -> set[str]:
    if len(text) < _SHINGLE_SIZE:
        return set(text.split())
    return {text[i : i + _SHINGLE_SIZE] for i in range(len(text) - _SHINGLE_SIZE + 1)}


def similarity(left: str, right: str) -> float:
    """Jaccard similarity of the two texts' shingle sets, in [0, 1]."""
    a = normalize_text(left)
    b = normalize_text(right)
    if a == b:
        return 1.0

    shingles_a = _shingles(a)
    shingles_b = _shingles(b)
    if not shingles_a or not shingles_b:
        return 0.0

    intersection = len(shingles_a & shingles_b)
    union = len(shingles_a | shingles_b)
    return intersection / union if union else 0.0


def are_near_duplicate(left: str, right: str, threshold: float = DEFAULT_THRESHOLD) -> bool:
    if not 0.0 < threshold <= 1.0:
        raise ConfigurationError(f"threshold must be within (0, 1], got {threshold}")
    return similarity(left, right) >= threshold
