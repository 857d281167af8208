"""Local wiring: a JSONL-backed learning loop for a single machine.

Usage:
    loop, bootstrap = await initialize_local_learning_loop()
    hints = await loop.suggest(SearchQuery(text="cannot find module"))
"""

from __future__ import annotations

import logging
from pathlib import Path

from .config import (
    FusionConfig,
    LocalLoopConfig,
    MinerConfig,
    SuggestConfig,
    default_local_loop_config,
)
from .core.interfaces import ResultReranker, TraceIndex
from .core.loop import BootstrapResult, LearningLoop
from .core.miner import WrongTurnMiner
from .index.composite import CompositeTraceIndex
from .index.lexical import InMemoryLexicalIndex
from .storage.jsonl import JSONLTraceStore

logger = logging.getLogger(__name__)


def create_local_learning_loop(
    data_dir: str | Path | None = None,
    secondary_index: TraceIndex | None = None,
    reranker: ResultReranker | None = None,
    fusion: FusionConfig | None = None,
    miner: MinerConfig | None = None,
    suggest: SuggestConfig | None = None,
) -> LearningLoop:
    """Build a loop over ``<data_dir>/sessions/*.jsonl`` without replaying it.

    With a ``secondary_index`` (e.g. an embedding backend) retrieval fuses
    both rankings; otherwise the lexical index is used directly.
    """
    config = LocalLoopConfig(data_dir=Path(data_dir)) if data_dir else default_local_loop_config()
    index = CompositeTraceIndex(
        primary=InMemoryLexicalIndex(),
        secondary=secondary_index,
        config=fusion,
    )
    return LearningLoop(
        store=JSONLTraceStore(config.data_dir),
        index=index,
        miner=WrongTurnMiner(miner),
        reranker=reranker,
        config=suggest,
    )


async def initialize_local_learning_loop(
    data_dir: str | Path | None = None,
    **kwargs,
) -> tuple[LearningLoop, BootstrapResult]:
    """Build a local loop and rebuild its index and miner from the store."""
    loop = create_local_learning_loop(data_dir, **kwargs)
    result = await loop.bootstrap_from_store()
    logger.debug("Local learning loop ready at %s", data_dir or "default data dir")
    return loop, result
