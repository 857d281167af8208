"""Trace model, document building, mining and the learning loop."""

from .documents import DefaultDocumentBuilder
from .interfaces import DocumentBuilder, ResultReranker, TraceIndex, TraceMiner, TraceStore
from .loop import BootstrapResult, LearningLoop
from .miner import WrongTurnMiner
from .models import (
    EventMetrics,
    IndexedDocument,
    LearningSuggestion,
    MinedArtifact,
    Outcome,
    Scope,
    SearchQuery,
    SearchResult,
    TokenUsage,
    ToolCallPayload,
    ToolResultPayload,
    TraceEvent,
    TraceQuery,
    UnstructuredPayload,
)
from .near_dup import are_near_duplicate, similarity

__all__ = [
    "BootstrapResult",
    "DefaultDocumentBuilder",
    "DocumentBuilder",
    "EventMetrics",
    "IndexedDocument",
    "LearningLoop",
    "LearningSuggestion",
    "MinedArtifact",
    "Outcome",
    "ResultReranker",
    "Scope",
    "SearchQuery",
    "SearchResult",
    "TokenUsage",
    "ToolCallPayload",
    "ToolResultPayload",
    "TraceEvent",
    "TraceIndex",
    "TraceMiner",
    "TraceQuery",
    "TraceStore",
    "UnstructuredPayload",
    "WrongTurnMiner",
    "are_near_duplicate",
    "similarity",
]
