"""happypaths: learn from agent wrong turns, and prove the hints help.

Architecture:
    TraceEvent stream  →  LearningLoop
                          ├── TraceStore      (durable events)
                          ├── TraceIndex      (BM25, optionally RRF-fused)
                          └── WrongTurnMiner  (failure → differing success arcs)

    episodes  →  trajectory outcome gate (paired off/on, bootstrap intervals)
"""

__version__ = "0.1.0"

from .config import (
    FusionConfig,
    LexicalIndexConfig,
    LocalLoopConfig,
    MinerConfig,
    PairingOptions,
    SuggestConfig,
    TrajectoryOutcomeThresholds,
    TrustOptions,
)
from .core import (
    BootstrapResult,
    DefaultDocumentBuilder,
    IndexedDocument,
    LearningLoop,
    LearningSuggestion,
    MinedArtifact,
    Scope,
    SearchQuery,
    SearchResult,
    TraceEvent,
    TraceQuery,
    WrongTurnMiner,
)
from .errors import (
    ConfigurationError,
    HappyPathsError,
    MalformedEventError,
    UnsafeIdentifierError,
)
from .index import CompositeTraceIndex, InMemoryLexicalIndex
from .local import create_local_learning_loop, initialize_local_learning_loop
from .storage import InMemoryTraceStore, JSONLTraceStore

__all__ = [
    "__version__",
    # Config
    "FusionConfig",
    "LexicalIndexConfig",
    "LocalLoopConfig",
    "MinerConfig",
    "PairingOptions",
    "SuggestConfig",
    "TrajectoryOutcomeThresholds",
    "TrustOptions",
    # Core
    "BootstrapResult",
    "DefaultDocumentBuilder",
    "IndexedDocument",
    "LearningLoop",
    "LearningSuggestion",
    "MinedArtifact",
    "Scope",
    "SearchQuery",
    "SearchResult",
    "TraceEvent",
    "TraceQuery",
    "WrongTurnMiner",
    # Errors
    "ConfigurationError",
    "HappyPathsError",
    "MalformedEventError",
    "UnsafeIdentifierError",
    # Index / storage
    "CompositeTraceIndex",
    "InMemoryLexicalIndex",
    "InMemoryTraceStore",
    "JSONLTraceStore",
    "create_local_learning_loop",
    "initialize_local_learning_loop",
]
