"""Wrong-turn miner: streaming detection of failure-to-success arcs.

The core insight (same as offline failure learning): don't just catalog
failures, find what SUCCEEDED after each one in the same operation family.
The pair (failing attempt, differing successful attempt) is the learning.

Events are consumed one at a time. Each session keeps a short list of open
failures; every later tool result in that session either closes a matching
failure (recording an arc) or uses up one slot of its look-ahead window.

Arcs that share a fingerprint, or whose fingerprints are near-duplicates,
strengthen one artifact instead of minting new ones. Support from a second
distinct session marks the artifact as cross-session corroborated and raises
its confidence.

Callers must feed each session's events in non-decreasing timestamp order;
out-of-order ingestion can pair the wrong attempts.
"""

from __future__ import annotations

import hashlib
import logging
from collections import defaultdict
from dataclasses import dataclass, field

from ..config import MinerConfig, default_miner_config
from .models import MinedArtifact, ToolResultPayload, TraceEvent, to_text
from .near_dup import are_near_duplicate
from .signatures import (
    command_family,
    extract_error_signatures,
    normalize_command_signature,
    normalize_text,
)

logger = logging.getLogger(__name__)

_TEXT_SIGNATURE_LENGTH = 120
_MAX_CONFIDENCE = 0.9
_BASE_CONFIDENCE = 0.45

# Payload keys that describe what happened rather than what was attempted
_RESULT_KEYS = frozenset(
    {"output", "stderr", "stdout", "text", "content", "error", "message", "isError"}
)


@dataclass
class _OpenFailure:
    event: TraceEvent
    signature: str
    error_signature: str
    tool_name: str
    remaining: int


@dataclass
class _ArtifactState:
    id: str
    fingerprint: str
    failure_signature: str
    success_signature: str
    evidence_event_ids: list[str]
    support_count: int = 0
    session_ids: set[str] = field(default_factory=set)
    confidence: float = 0.0


def arc_confidence(support_count: int, support_session_count: int) -> float:
    """Confidence from corroboration. Strictly increases with the second session."""
    support_weight = min(1.0, max(0, support_count - 1) / 4)
    session_weight = min(1.0, max(0, support_session_count - 1) / 2)
    return min(_MAX_CONFIDENCE, _BASE_CONFIDENCE + support_weight * 0.2 + session_weight * 0.25)


def failure_signature(event: TraceEvent) -> str:
    """Command signature, else first error line, else the head of the output."""
    from_command = normalize_command_signature(event.command)
    if from_command:
        return from_command
    errors = extract_error_signatures(event.output, limit=1)
    if errors:
        return errors[0]
    return normalize_text(event.output)[:_TEXT_SIGNATURE_LENGTH]


def success_signature(event: TraceEvent) -> str:
    from_command = normalize_command_signature(event.command)
    if from_command:
        return from_command
    return normalize_text(event.output)[:_TEXT_SIGNATURE_LENGTH]


def _attempt_text(event: TraceEvent) -> str:
    """What was attempted, without the result."""
    if event.command.strip():
        return event.command.strip()
    return to_text({k: v for k, v in event.payload.raw.items() if k not in _RESULT_KEYS})


def _artifact_id(fingerprint: str) -> str:
    return f"wrong-turn-{hashlib.sha256(fingerprint.encode('utf-8')).hexdigest()[:16]}"


class WrongTurnMiner:
    """Streaming TraceMiner producing ``wrong_turn_fix`` artifacts."""

    def __init__(self, config: MinerConfig | None = None):
        self.config = config or default_miner_config()
        self._open: dict[str, list[_OpenFailure]] = defaultdict(list)
        self._artifacts: dict[str, _ArtifactState] = {}  # fingerprint → state
        self.events_seen = 0
        self.events_skipped = 0

    async def ingest(self, event: TraceEvent) -> None:
        self.ingest_sync(event)

    def ingest_sync(self, event: TraceEvent) -> None:
        self.events_seen += 1
        if not event.id or not event.session_id:
            self.events_skipped += 1
            logger.debug("Skipping event without id/session: %r", event)
            return

        if not isinstance(event.payload, ToolResultPayload):
            if event.type == "tool_result":
                self.events_skipped += 1
                logger.debug("Skipping tool_result %s with unstructured payload", event.id)
            return

        open_failures = self._open[event.session_id]
        for failure in open_failures:
            failure.remaining -= 1

        if event.is_success:
            self._close_failures(event, event.payload, open_failures)

        open_failures[:] = [f for f in open_failures if f.remaining > 0]

        if event.is_failure:
            signature = failure_signature(event)
            if not signature:
                self.events_skipped += 1
                logger.debug("Skipping failure %s with no command or output", event.id)
                return
            errors = extract_error_signatures(event.output, limit=1)
            open_failures.append(
                _OpenFailure(
                    event=event,
                    signature=signature,
                    error_signature=errors[0] if errors else "",
                    tool_name=event.payload.tool_name,
                    remaining=self.config.lookahead_results,
                )
            )

    async def mine(self, limit: int | None = 50) -> list[MinedArtifact]:
        artifacts = [self._snapshot(state) for state in self._artifacts.values()]
        artifacts.sort(
            key=lambda a: (
                -a.confidence,
                -a.support_session_count,
                -a.support_count,
                a.id,
            )
        )
        return artifacts if limit is None else artifacts[:limit]

    # -------------------------------------------------------------------------

    def _close_failures(
        self,
        success: TraceEvent,
        payload: ToolResultPayload,
        open_failures: list[_OpenFailure],
    ) -> None:
        success_sig = success_signature(success)
        if not success_sig:
            return

        credited: set[str] = set()
        for failure in open_failures:
            if not self._same_family(failure, success, payload):
                continue
            if self._is_bare_retry(failure, success):
                continue

            state = self._resolve_artifact(failure, success, success_sig)
            failure.remaining = 0  # closed
            if state.id in credited:
                continue
            credited.add(state.id)

            state.support_count += 1
            state.session_ids.add(success.session_id)
            state.confidence = max(
                state.confidence, arc_confidence(state.support_count, len(state.session_ids))
            )

    def _resolve_artifact(
        self, failure: _OpenFailure, success: TraceEvent, success_sig: str
    ) -> _ArtifactState:
        fingerprint = f"{failure.signature} => {success_sig}"
        state = self._artifacts.get(fingerprint)
        if state is not None:
            return state

        for existing in self._artifacts.values():
            if are_near_duplicate(
                existing.fingerprint, fingerprint, self.config.near_dup_threshold
            ):
                return existing

        state = _ArtifactState(
            id=_artifact_id(fingerprint),
            fingerprint=fingerprint,
            failure_signature=failure.signature,
            success_signature=success_sig,
            evidence_event_ids=[failure.event.id, success.id],
        )
        self._artifacts[fingerprint] = state
        return state

    def _same_family(
        self, failure: _OpenFailure, success: TraceEvent, success_payload: ToolResultPayload
    ) -> bool:
        failure_command = failure.event.command
        if failure_command.strip() and success.command.strip():
            return command_family(failure_command) == command_family(success.command)

        # No command on one side: group by error signature within the same tool
        return (
            bool(failure.error_signature)
            and failure.tool_name == success_payload.tool_name
        )

    def _is_bare_retry(self, failure: _OpenFailure, success: TraceEvent) -> bool:
        failure_attempt = _attempt_text(failure.event)
        success_attempt = _attempt_text(success)
        if failure_attempt == success_attempt:
            return True
        if failure.event.command.strip() and success.command.strip():
            return are_near_duplicate(
                failure_attempt, success_attempt, self.config.retry_similarity_threshold
            )
        return False

    def _snapshot(self, state: _ArtifactState) -> MinedArtifact:
        session_count = len(state.session_ids)
        return MinedArtifact(
            id=state.id,
            summary=(
                f'When you hit "{state.failure_signature}", prefer "{state.success_signature}".'
            ),
            confidence=state.confidence,
            evidence_event_ids=list(state.evidence_event_ids),
            metadata={
                "failureSignature": state.failure_signature,
                "successSignature": state.success_signature,
                "supportCount": state.support_count,
                "supportSessionCount": session_count,
                "crossSessionSupport": session_count >= 2,
            },
        )
