"""Rule-based classification of failing tool results.

Each failure is labelled with an issue kind and whether retrying it is
harmful (avoidable with prior context) or benign (expected uncertainty).
Rules are checked in order and the first match wins; anything unmatched is
an abstention (``unknown_failure``), which the gate counts against coverage
rather than guessing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from ..core.models import TraceEvent
from ..core.signatures import normalize_text


class TrajectoryIssueKind(str, Enum):
    """Why a tool result failed."""

    BENIGN_PROBE = "benign_probe"
    TRANSIENT_EXTERNAL = "transient_external"
    COMMAND_MISMATCH = "command_mismatch"
    ENVIRONMENT_MISMATCH = "environment_mismatch"
    MISSING_CONTEXT = "missing_context"
    UNKNOWN_FAILURE = "unknown_failure"


ISSUE_KINDS: tuple[TrajectoryIssueKind, ...] = tuple(TrajectoryIssueKind)


@dataclass(frozen=True)
class TrajectoryIssue:
    event_id: str
    kind: TrajectoryIssueKind
    harmful: bool
    confidence: float
    reason: str

    @property
    def abstained(self) -> bool:
        return self.kind is TrajectoryIssueKind.UNKNOWN_FAILURE


_PROBE_COMMAND_RE = re.compile(
    r"\b(curl|wget|http|fetch|rg|ripgrep|grep|find|ls|stat|test)\b", re.I
)

_PROBE_FAILURE_RE = re.compile(
    r"\b404\b|not found|no matches? found|no results?\b"
    r"|cannot access .*no such file or directory|does not exist|command exited with code 1",
    re.I,
)

# (pattern, kind, harmful, confidence, reason); the probe rule sits between
# the first and second entries because it also looks at the command.
_TRANSIENT_RULE = (
    re.compile(
        r"timed out|timeout|connection reset|connection refused|temporarily unavailable"
        r"|rate limit|\b429\b|\b50[234]\b|bad gateway|network is unreachable"
        r"|tls handshake|upstream (?:connect )?error"
        r"|traceback \(most recent call last\):? http error \d{3}",
        re.I,
    ),
    TrajectoryIssueKind.TRANSIENT_EXTERNAL,
    False,
    0.84,
    "Transient external dependency failure (timeout/network/rate limit).",
)

_RULES: list[tuple[re.Pattern, TrajectoryIssueKind, bool, float, str]] = [
    (
        re.compile(
            r"unknown option|unrecognized option|invalid option|invalid argument|usage:\s"
            r"|did you mean .*--|run the command again with --",
            re.I,
        ),
        TrajectoryIssueKind.COMMAND_MISMATCH,
        True,
        0.9,
        "Command/options mismatch likely avoidable with prior context.",
    ),
    (
        re.compile(
            r"permission denied|command not found|executable file not found"
            r"|cannot find module|module not found|no module named|missing dependency"
            r"|denied by policy|externally-managed-environment",
            re.I,
        ),
        TrajectoryIssueKind.ENVIRONMENT_MISMATCH,
        True,
        0.86,
        "Environment/dependency mismatch likely avoidable with recovered fix path.",
    ),
    (
        re.compile(
            r"undefined variable|is not defined|cannot read properties of undefined"
            r"|null pointer|keyerror|attributeerror|typeerror"
            r"|no such file or directory|not a directory"
            r"|is not mergeable|policy prohibits"
            r"|\b403\b|permission_denied|forbidden",
            re.I,
        ),
        TrajectoryIssueKind.MISSING_CONTEXT,
        True,
        0.78,
        "Likely missing context/state for this step.",
    ),
]

_ABSTAIN_CONFIDENCE = 0.35


def _is_probe_failure(command: str, output: str) -> bool:
    if not _PROBE_COMMAND_RE.search(command):
        return False
    return not output or bool(_PROBE_FAILURE_RE.search(output))


def classify_trajectory_issue(event: TraceEvent) -> TrajectoryIssue | None:
    """Classify a failing tool result. Returns None for anything else."""
    if not event.is_failure:
        return None

    command = normalize_text(event.command)
    output = normalize_text(event.output)
    combined = f"{command}\n{output}"

    pattern, kind, harmful, confidence, reason = _TRANSIENT_RULE
    if pattern.search(combined):
        return TrajectoryIssue(event.id, kind, harmful, confidence, reason)

    if _is_probe_failure(command, output):
        return TrajectoryIssue(
            event.id,
            TrajectoryIssueKind.BENIGN_PROBE,
            False,
            0.82,
            "Likely exploratory probe failure (expected uncertainty).",
        )

    for pattern, kind, harmful, confidence, reason in _RULES:
        if pattern.search(combined):
            return TrajectoryIssue(event.id, kind, harmful, confidence, reason)

    return TrajectoryIssue(
        event.id,
        TrajectoryIssueKind.UNKNOWN_FAILURE,
        False,
        _ABSTAIN_CONFIDENCE,
        "Abstain: insufficient confidence to classify failure as harmful or benign.",
    )
