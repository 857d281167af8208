"""Learning loop: store + index + miner behind ingest/retrieve/suggest.

Usage:
    loop = LearningLoop(store=InMemoryTraceStore(), index=InMemoryLexicalIndex(),
                        miner=WrongTurnMiner())
    await loop.ingest(event)
    hints = await loop.suggest(SearchQuery(text="lint failed"))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..config import SuggestConfig, default_suggest_config
from .documents import DefaultDocumentBuilder
from .interfaces import DocumentBuilder, ResultReranker, TraceIndex, TraceMiner, TraceStore
from .models import (
    LearningSuggestion,
    MinedArtifact,
    SearchQuery,
    SearchResult,
    TraceEvent,
    TraceQuery,
)

logger = logging.getLogger(__name__)

_MAX_HIT_CONFIDENCE = 0.95
_ACTION_PREVIEW_LENGTH = 220


@dataclass(frozen=True)
class BootstrapResult:
    """Counts from one bootstrap_from_store() replay."""

    event_count: int
    document_count: int


class LearningLoop:
    """Orchestrates ingest, retrieval and suggestion over pluggable collaborators.

    The index and miner are in-memory state owned by this loop; after a
    restart call ``bootstrap_from_store()`` once to rebuild them from the
    durable store.
    """

    def __init__(
        self,
        store: TraceStore,
        index: TraceIndex,
        miner: TraceMiner | None = None,
        document_builder: DocumentBuilder | None = None,
        reranker: ResultReranker | None = None,
        config: SuggestConfig | None = None,
    ):
        self.store = store
        self.index = index
        self.miner = miner
        self.document_builder = document_builder or DefaultDocumentBuilder()
        self.reranker = reranker
        self.config = config or default_suggest_config()
        self._bootstrapped = False
        self._processed_ids: set[str] = set()

    async def ingest(self, event: TraceEvent) -> None:
        """Persist the event, then index its documents, then feed the miner.

        Documents are fully indexed before this returns.
        """
        await self.store.append(event)
        await self._process(event)

    async def bootstrap_from_store(
        self, query: TraceQuery | None = None, force: bool = False
    ) -> BootstrapResult:
        """Replay stored events through indexing and mining, once.

        Events are sorted by (timestamp, id) before replay. Events this loop
        already processed, through ``ingest()`` or an earlier replay, are
        skipped and not counted. Only an unfiltered replay marks the loop as
        bootstrapped; after that, later calls report zero counts unless
        ``force`` is set, which replays events not yet processed.
        """
        if self._bootstrapped and not force:
            return BootstrapResult(event_count=0, document_count=0)

        stored = await self.store.query(query)
        events = sorted(
            (e for e in stored if e.id not in self._processed_ids), key=lambda e: e.sort_key
        )
        document_count = 0
        for event in events:
            document_count += await self._process(event)

        if query is None:
            self._bootstrapped = True
        logger.info(
            "Bootstrapped learning loop from store: %d events, %d documents",
            len(events),
            document_count,
        )
        return BootstrapResult(event_count=len(events), document_count=document_count)

    async def retrieve(self, query: SearchQuery) -> list[SearchResult]:
        results = await self.index.search(query)
        if self.reranker is None:
            return results[: query.limit]

        reranked = await self.reranker.rerank(query, results)
        # Reranking may reorder or drop, never add
        allowed = {r.document.id for r in results}
        seen: set[str] = set()
        filtered: list[SearchResult] = []
        for result in reranked:
            doc_id = result.document.id
            if doc_id in allowed and doc_id not in seen:
                seen.add(doc_id)
                filtered.append(result)
        return filtered[: query.limit]

    async def mine(self, limit: int = 20) -> list[MinedArtifact]:
        if self.miner is None:
            return []
        return await self.miner.mine(limit)

    async def suggest(self, query: SearchQuery) -> list[LearningSuggestion]:
        """One suggestion per distinct source event, above the confidence floor."""
        hits = self._best_hit_per_event(await self.retrieve(query))
        if not hits:
            return []

        top_score = hits[0].score
        artifacts = await self._artifacts_by_event()

        suggestions: list[LearningSuggestion] = []
        for hit in hits:
            confidence = _hit_confidence(hit.score, top_score)
            if confidence < self.config.min_confidence:
                continue
            artifact = artifacts.get(hit.document.source_event_id)
            suggestions.append(_render_suggestion(len(suggestions), hit, confidence, artifact))
            if len(suggestions) >= self.config.max_suggestions:
                break
        return suggestions

    # -------------------------------------------------------------------------

    async def _process(self, event: TraceEvent) -> int:
        if event.id:
            self._processed_ids.add(event.id)
        documents = self.document_builder.build(event)
        if documents:
            await self.index.upsert_many(documents)
        if self.miner is not None:
            await self.miner.ingest(event)
        return len(documents)

    async def _artifacts_by_event(self) -> dict[str, MinedArtifact]:
        if self.miner is None:
            return {}
        by_event: dict[str, MinedArtifact] = {}
        for artifact in await self.miner.mine(self.config.mined_artifact_limit):
            for event_id in artifact.evidence_event_ids:
                by_event.setdefault(event_id, artifact)
        return by_event

    @staticmethod
    def _best_hit_per_event(results: list[SearchResult]) -> list[SearchResult]:
        best: dict[str, SearchResult] = {}
        for result in results:
            source = result.document.source_event_id
            if source not in best or result.score > best[source].score:
                best[source] = result
        return sorted(best.values(), key=lambda r: -r.score)


def _hit_confidence(score: float, top_score: float) -> float:
    if top_score <= 0:
        return 0.0
    return max(0.0, min(_MAX_HIT_CONFIDENCE, _MAX_HIT_CONFIDENCE * score / top_score))


def _hit_action(hit: SearchResult) -> str:
    command = hit.document.metadata.get("command")
    if isinstance(command, str) and command.strip():
        return command.strip().splitlines()[0]
    lines = hit.document.text.strip().splitlines()
    return lines[0][:_ACTION_PREVIEW_LENGTH] if lines else ""


def _render_suggestion(
    position: int,
    hit: SearchResult,
    confidence: float,
    artifact: MinedArtifact | None,
) -> LearningSuggestion:
    evidence = [hit.document.source_event_id]

    if artifact is not None:
        success = str(artifact.metadata.get("successSignature", ""))
        failure = str(artifact.metadata.get("failureSignature", ""))
        action = success or _hit_action(hit)
        rationale = (
            f"Prior run used `{action}` after `{failure}` failed "
            f"(seen {artifact.support_count}x across "
            f"{artifact.support_session_count} session(s))."
        )
        title = "Learned wrong-turn correction"
        evidence = list(dict.fromkeys(evidence + artifact.evidence_event_ids))
    else:
        action = _hit_action(hit)
        rationale = f"Prior run used `{action}` in a similar situation."
        title = "Related prior trace"

    playbook = "\n".join(
        [
            f"- Action: {action}",
            f"- Evidence: {', '.join(evidence)}",
            "- Validate with tests before applying.",
        ]
    )
    return LearningSuggestion(
        id=f"suggestion-{position}-{hit.document.id}",
        title=title,
        rationale=rationale,
        confidence=confidence,
        evidence_event_ids=evidence,
        playbook_markdown=playbook,
    )
