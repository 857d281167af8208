"""In-memory lexical index with BM25 scoring.

BM25 saturates per-term frequency and normalizes by document length, so a
short document matching every query term outranks a long one that repeats a
single term many times. Metadata filters are exact-match and are applied
before scoring.
"""

from __future__ import annotations

import math
import re
from collections import Counter

from ..config import LexicalIndexConfig, default_lexical_index_config
from ..core.models import IndexedDocument, MetadataValue, SearchQuery, SearchResult

_TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9_]+")
_MIN_TOKEN_LENGTH = 2
_QUERY_TERM_HEAD_PORTION = 0.75

STOPWORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "but", "by", "for", "from",
        "has", "have", "he", "in", "is", "it", "its", "of", "on", "or", "she",
        "that", "the", "their", "then", "there", "these", "they", "this", "to",
        "was", "were", "will", "with",
    }
)  # fmt: skip


def tokenize(text: str) -> list[str]:
    """Lowercase, split on non-alphanumerics, drop short tokens and stopwords."""
    return [
        token
        for token in _TOKEN_SPLIT_RE.split(text.lower())
        if len(token) >= _MIN_TOKEN_LENGTH and token not in STOPWORDS
    ]


def bounded_query_terms(terms: list[str], max_terms: int) -> list[str]:
    """Deduplicate and cap query terms, keeping both head and tail of the query.

    Later terms tend to carry the specific signal (the error text pasted
    after a generic preamble), so the tail is preserved when capping.
    """
    unique = list(dict.fromkeys(terms))
    if len(unique) <= max_terms:
        return unique

    head_limit = max(1, math.floor(max_terms * _QUERY_TERM_HEAD_PORTION))
    tail_limit = max(0, max_terms - head_limit)
    head = unique[:head_limit]
    if tail_limit == 0:
        return head

    seen = set(head)
    tail: list[str] = []
    for term in reversed(unique):
        if len(tail) >= tail_limit:
            break
        if term not in seen:
            seen.add(term)
            tail.append(term)
    tail.reverse()
    return head + tail


def metadata_matches(
    metadata: dict[str, MetadataValue], filters: dict[str, MetadataValue]
) -> bool:
    for key, value in filters.items():
        if key not in metadata or metadata[key] != value:
            return False
    return True


class InMemoryLexicalIndex:
    """BM25 index over IndexedDocuments. Upsert is insert-or-replace by id.

    Results are ordered by descending score; ties keep document insertion
    order (a replaced document keeps its original position).
    """

    def __init__(self, config: LexicalIndexConfig | None = None):
        self.config = config or default_lexical_index_config()
        self._documents: dict[str, IndexedDocument] = {}
        self._term_counts: dict[str, Counter[str]] = {}
        self._postings: dict[str, set[str]] = {}
        self._lengths: dict[str, int] = {}
        self._total_length = 0

    @property
    def size(self) -> int:
        return len(self._documents)

    async def upsert(self, document: IndexedDocument) -> None:
        self._upsert(document)

    async def upsert_many(self, documents: list[IndexedDocument]) -> None:
        for document in documents:
            self._upsert(document)

    async def search(self, query: SearchQuery) -> list[SearchResult]:
        return self.search_sync(query)

    def search_sync(self, query: SearchQuery) -> list[SearchResult]:
        """Synchronous search; scoring never suspends."""
        terms = bounded_query_terms(tokenize(query.text), self.config.max_query_terms)
        if not terms or not self._documents or query.limit <= 0:
            return []

        total_docs = len(self._documents)
        avg_length = max(self._total_length / total_docs, 1.0)
        k1, b = self.config.k1, self.config.b

        scores: dict[str, float] = {}
        for term in terms:
            doc_ids = self._postings.get(term)
            if not doc_ids:
                continue
            df = len(doc_ids)
            idf = math.log(1 + (total_docs - df + 0.5) / (df + 0.5))
            for doc_id in doc_ids:
                document = self._documents[doc_id]
                if query.filters and not metadata_matches(document.metadata, query.filters):
                    continue
                counts = self._term_counts[doc_id]
                tf = counts[term]
                norm = 1 - b + b * self._lengths[doc_id] / avg_length
                weight = tf * (k1 + 1) / (tf + k1 * norm)
                scores[doc_id] = scores.get(doc_id, 0.0) + idf * weight

        # Iterate in insertion order so the stable sort breaks ties by it
        results = [
            SearchResult(document=document, score=scores[doc_id])
            for doc_id, document in self._documents.items()
            if doc_id in scores
        ]
        results.sort(key=lambda r: -r.score)
        return results[: query.limit]

    def _upsert(self, document: IndexedDocument) -> None:
        if document.id in self._documents:
            self._remove_postings(document.id)

        counts = Counter(tokenize(document.text))
        self._documents[document.id] = document
        self._term_counts[document.id] = counts
        self._lengths[document.id] = sum(counts.values())
        self._total_length += self._lengths[document.id]
        for term in counts:
            self._postings.setdefault(term, set()).add(document.id)

    def _remove_postings(self, doc_id: str) -> None:
        counts = self._term_counts.pop(doc_id, Counter())
        self._total_length = max(0, self._total_length - self._lengths.pop(doc_id, 0))
        for term in counts:
            doc_ids = self._postings.get(term)
            if doc_ids is None:
                continue
            doc_ids.discard(doc_id)
            if not doc_ids:
                del self._postings[term]
