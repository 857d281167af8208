"""Data models for happypaths: the trace event and everything derived from it.

A TraceEvent is one observed agent/tool interaction. Everything else in the
package is derived from a stream of these: searchable documents, mined
wrong-turn artifacts, suggestions, and trajectory episodes.

Payloads arrive loosely typed from many harnesses. They are normalized once,
at parse time, into a closed set of variants keyed by the event type:

    tool_call    → ToolCallPayload
    tool_result  → ToolResultPayload
    anything else (or wrongly typed fields) → UnstructuredPayload

Consumers dispatch on the variant class instead of probing dict keys.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from ..errors import MalformedEventError

MetadataValue = Union[str, int, float, bool, None]

# Payload keys checked in order for the human-readable output of a tool result
_OUTPUT_KEYS = ("output", "stderr", "stdout", "text", "content", "error", "message")


# =============================================================================
# Enumerations
# =============================================================================


class Scope(str, Enum):
    """Visibility of a trace event."""

    PERSONAL = "personal"
    TEAM = "team"
    PUBLIC = "public"


class Outcome(str, Enum):
    """Outcome recorded in an event's metrics."""

    SUCCESS = "success"
    FAILURE = "failure"


class EventType(str, Enum):
    """Event types with a structured payload variant."""

    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"


# =============================================================================
# Metrics
# =============================================================================


@dataclass(frozen=True)
class TokenUsage:
    input_uncached: int = 0
    input_cached: int = 0
    output: int = 0
    thinking: int = 0
    cache_write: int = 0

    @property
    def total(self) -> int:
        return (
            self.input_uncached
            + self.input_cached
            + self.output
            + self.thinking
            + self.cache_write
        )

    @property
    def proxy(self) -> float:
        """Cost-weighted token count: cached input is billed at a tenth."""
        return (
            self.input_uncached
            + self.output
            + self.thinking
            + self.cache_write
            + 0.1 * self.input_cached
        )

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            input_uncached=self.input_uncached + other.input_uncached,
            input_cached=self.input_cached + other.input_cached,
            output=self.output + other.output,
            thinking=self.thinking + other.thinking,
            cache_write=self.cache_write + other.cache_write,
        )

    @classmethod
    def from_dict(cls, data: Any) -> TokenUsage:
        if not isinstance(data, dict):
            return cls()
        return cls(
            input_uncached=_as_int(data.get("inputUncached")),
            input_cached=_as_int(data.get("inputCached")),
            output=_as_int(data.get("output")),
            thinking=_as_int(data.get("thinking")),
            cache_write=_as_int(data.get("cacheWrite")),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "inputUncached": self.input_uncached,
            "inputCached": self.input_cached,
            "output": self.output,
            "thinking": self.thinking,
            "cacheWrite": self.cache_write,
        }


@dataclass(frozen=True)
class EventMetrics:
    """Optional measurements attached to an event."""

    outcome: Outcome | None = None
    latency_ms: float | None = None
    tokens: TokenUsage = field(default_factory=TokenUsage)
    cost_usd: float = 0.0

    @classmethod
    def from_dict(cls, data: Any) -> EventMetrics | None:
        if not isinstance(data, dict):
            return None
        outcome_raw = data.get("outcome")
        try:
            outcome = Outcome(outcome_raw) if outcome_raw is not None else None
        except ValueError:
            outcome = None
        latency = data.get("latencyMs")
        cost = data.get("costUsd")
        return cls(
            outcome=outcome,
            latency_ms=float(latency) if _is_number(latency) else None,
            tokens=TokenUsage.from_dict(data.get("tokens")),
            cost_usd=float(cost) if _is_number(cost) else 0.0,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"tokens": self.tokens.to_dict(), "costUsd": self.cost_usd}
        if self.outcome is not None:
            data["outcome"] = self.outcome.value
        if self.latency_ms is not None:
            data["latencyMs"] = self.latency_ms
        return data


# =============================================================================
# Payload variants
# =============================================================================


@dataclass(frozen=True)
class ToolCallPayload:
    """An agent's request to run a tool."""

    raw: dict[str, Any]
    tool_name: str = ""
    command: str = ""

    def text(self) -> str:
        return self.command or to_text(self.raw)


@dataclass(frozen=True)
class ToolResultPayload:
    """The result of a tool run. ``is_error`` is None when the harness did not say."""

    raw: dict[str, Any]
    tool_name: str = ""
    command: str = ""
    output: str = ""
    is_error: bool | None = None

    def text(self) -> str:
        return self.output or to_text(self.raw)


@dataclass(frozen=True)
class UnstructuredPayload:
    """Fallback for event types without a structured variant."""

    raw: dict[str, Any]

    def text(self) -> str:
        return to_text(self.raw)


Payload = Union[ToolCallPayload, ToolResultPayload, UnstructuredPayload]


def parse_payload(event_type: str, raw: Any) -> Payload:
    """Normalize a raw payload mapping into its variant for ``event_type``."""
    if not isinstance(raw, dict):
        return UnstructuredPayload(raw={} if raw is None else {"value": raw})

    tool_name = raw.get("toolName", "")
    command = raw.get("command", "")
    if not isinstance(tool_name, str) or not isinstance(command, str):
        return UnstructuredPayload(raw=raw)

    if event_type == EventType.TOOL_CALL.value:
        return ToolCallPayload(raw=raw, tool_name=tool_name, command=command)

    if event_type == EventType.TOOL_RESULT.value:
        is_error = raw.get("isError")
        if is_error is not None and not isinstance(is_error, bool):
            return UnstructuredPayload(raw=raw)
        output = next((raw[k] for k in _OUTPUT_KEYS if isinstance(raw.get(k), str)), "")
        return ToolResultPayload(
            raw=raw,
            tool_name=tool_name,
            command=command,
            output=output,
            is_error=is_error,
        )

    return UnstructuredPayload(raw=raw)


# =============================================================================
# Trace Event
# =============================================================================


@dataclass(frozen=True)
class TraceEvent:
    """One observed agent/tool interaction. Immutable once appended."""

    id: str
    timestamp: str  # ISO-8601, UTC
    session_id: str
    harness: str
    scope: Scope
    type: str
    payload: Payload
    metrics: EventMetrics | None = None
    agent_id: str | None = None
    actor_id: str | None = None
    tags: tuple[str, ...] = ()

    @property
    def sort_key(self) -> tuple[str, str]:
        return (self.timestamp, self.id)

    @property
    def is_failure(self) -> bool:
        """A tool result that failed, by metrics outcome or explicit error flag."""
        if not isinstance(self.payload, ToolResultPayload):
            return False
        if self.metrics is not None and self.metrics.outcome is Outcome.FAILURE:
            return True
        return self.payload.is_error is True

    @property
    def is_success(self) -> bool:
        if not isinstance(self.payload, ToolResultPayload):
            return False
        if self.metrics is not None and self.metrics.outcome is Outcome.SUCCESS:
            return True
        return self.payload.is_error is False

    @property
    def command(self) -> str:
        if isinstance(self.payload, (ToolCallPayload, ToolResultPayload)):
            return self.payload.command
        return ""

    @property
    def output(self) -> str:
        if isinstance(self.payload, ToolResultPayload):
            return self.payload.output
        return ""

    @classmethod
    def from_dict(cls, data: Any) -> TraceEvent:
        """Parse the wire/JSON form. Raises MalformedEventError on bad records."""
        if not isinstance(data, dict):
            raise MalformedEventError(f"Trace event must be an object, got {type(data).__name__}")

        for key in ("id", "timestamp", "sessionId", "type"):
            value = data.get(key)
            if not isinstance(value, str) or not value.strip():
                raise MalformedEventError(f"Trace event field '{key}' is missing or empty")

        try:
            scope = Scope(data.get("scope", Scope.PERSONAL.value))
        except ValueError as e:
            raise MalformedEventError(f"Invalid scope: {data.get('scope')!r}") from e

        tags = data.get("tags") or ()
        return cls(
            id=data["id"],
            timestamp=data["timestamp"],
            session_id=data["sessionId"],
            harness=str(data.get("harness") or "unknown"),
            scope=scope,
            type=data["type"],
            payload=parse_payload(data["type"], data.get("payload")),
            metrics=EventMetrics.from_dict(data.get("metrics")),
            agent_id=data.get("agentId"),
            actor_id=data.get("actorId"),
            tags=tuple(str(t) for t in tags) if isinstance(tags, (list, tuple)) else (),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "sessionId": self.session_id,
            "harness": self.harness,
            "scope": self.scope.value,
            "type": self.type,
            "payload": self.payload.raw,
        }
        if self.metrics is not None:
            data["metrics"] = self.metrics.to_dict()
        if self.agent_id:
            data["agentId"] = self.agent_id
        if self.actor_id:
            data["actorId"] = self.actor_id
        if self.tags:
            data["tags"] = list(self.tags)
        return data


@dataclass(frozen=True)
class TraceQuery:
    """Filter for TraceStore.query. All fields are optional and combine with AND."""

    session_id: str | None = None
    event_types: tuple[str, ...] = ()
    harness: str | None = None
    scope: Scope | None = None
    since: str | None = None  # inclusive ISO timestamp
    until: str | None = None  # exclusive ISO timestamp
    limit: int | None = None

    def matches(self, event: TraceEvent) -> bool:
        if self.session_id is not None and event.session_id != self.session_id:
            return False
        if self.event_types and event.type not in self.event_types:
            return False
        if self.harness is not None and event.harness != self.harness:
            return False
        if self.scope is not None and event.scope is not self.scope:
            return False
        if self.since is not None and event.timestamp < self.since:
            return False
        if self.until is not None and event.timestamp >= self.until:
            return False
        return True


# =============================================================================
# Index / retrieval models
# =============================================================================


@dataclass(frozen=True)
class IndexedDocument:
    """A searchable projection of a trace event.

    ``source_event_id`` is a back-reference; many documents may point at the
    same event.
    """

    id: str
    source_event_id: str
    text: str
    metadata: dict[str, MetadataValue] = field(default_factory=dict)


@dataclass(frozen=True)
class SearchQuery:
    text: str
    limit: int = 10
    filters: dict[str, MetadataValue] = field(default_factory=dict)


@dataclass(frozen=True)
class SearchResult:
    """A hit. ``score`` is only comparable within one backend/fusion setup."""

    document: IndexedDocument
    score: float


# =============================================================================
# Learning output models
# =============================================================================


@dataclass
class MinedArtifact:
    """A reusable wrong-turn fix learned from one or more failure→success arcs.

    Created on first detection, strengthened as matching arcs are observed,
    never deleted.
    """

    id: str
    summary: str
    confidence: float
    evidence_event_ids: list[str]  # [failure_id, success_id] of the first arc
    metadata: dict[str, MetadataValue] = field(default_factory=dict)
    kind: str = "wrong_turn_fix"

    @property
    def support_count(self) -> int:
        return int(self.metadata.get("supportCount") or 0)

    @property
    def support_session_count(self) -> int:
        return int(self.metadata.get("supportSessionCount") or 0)

    @property
    def cross_session_support(self) -> bool:
        return bool(self.metadata.get("crossSessionSupport"))


@dataclass
class LearningSuggestion:
    """A hint rendered for the agent from retrieval hits above the confidence floor."""

    id: str
    title: str
    rationale: str
    confidence: float
    evidence_event_ids: list[str]
    playbook_markdown: str


# =============================================================================
# Helpers
# =============================================================================


def to_text(value: Any) -> str:
    """Render any payload value as text (JSON for containers)."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float, bool)):
        return str(value)
    try:
        return json.dumps(value, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return "[unserializable-payload]"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_int(value: Any) -> int:
    return int(value) if _is_number(value) else 0
