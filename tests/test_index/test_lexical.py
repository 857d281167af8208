"""Tests for the BM25 lexical index."""

import pytest

from happypaths.config import LexicalIndexConfig
from happypaths.core.models import IndexedDocument, SearchQuery
from happypaths.index.lexical import InMemoryLexicalIndex, bounded_query_terms, tokenize


def _doc(doc_id: str, text: str, **metadata) -> IndexedDocument:
    return IndexedDocument(id=doc_id, source_event_id=doc_id.split(":")[0], text=text, metadata=metadata)


async def _index(*docs: IndexedDocument, config: LexicalIndexConfig | None = None):
    index = InMemoryLexicalIndex(config)
    await index.upsert_many(list(docs))
    return index


class TestTokenize:
    def test_lowercases_and_drops_stopwords(self):
        assert tokenize("The Lint FAILED in src/app.ts") == ["lint", "failed", "src", "app", "ts"]

    def test_drops_single_characters(self):
        assert tokenize("a b cd") == ["cd"]


class TestBoundedQueryTerms:
    def test_short_query_is_deduplicated(self):
        assert bounded_query_terms(["lint", "lint", "failed"], 8) == ["lint", "failed"]

    def test_long_query_keeps_head_and_tail(self):
        terms = [f"t{i}" for i in range(20)]
        bounded = bounded_query_terms(terms, 8)
        assert len(bounded) == 8
        assert bounded[:6] == terms[:6]
        assert bounded[6:] == ["t18", "t19"]


class TestSearch:
    @pytest.mark.asyncio
    async def test_fuller_match_beats_repetition(self):
        index = await _index(
            _doc("a:base", "lint lint lint lint lint lint lint lint output from the build"),
            _doc("b:base", "lint failed"),
        )
        results = await index.search(SearchQuery(text="lint failed"))
        assert [r.document.id for r in results][0] == "b:base"

    @pytest.mark.asyncio
    async def test_scores_descend(self):
        index = await _index(
            _doc("a:base", "npm run lint failed with errors"),
            _doc("b:base", "npm install succeeded"),
            _doc("c:base", "lint"),
        )
        results = await index.search(SearchQuery(text="npm lint failed"))
        scores = [r.score for r in results]
        assert scores == sorted(scores, reverse=True)
        assert all(score > 0 for score in scores)

    @pytest.mark.asyncio
    async def test_ties_keep_insertion_order(self):
        index = await _index(_doc("z:base", "lint failed"), _doc("a:base", "lint failed"))
        results = await index.search(SearchQuery(text="lint"))
        assert [r.document.id for r in results] == ["z:base", "a:base"]

    @pytest.mark.asyncio
    async def test_metadata_filters_are_exact(self):
        index = await _index(
            _doc("a:base", "lint failed", harness="pi"),
            _doc("b:base", "lint failed", harness="other"),
            _doc("c:base", "lint failed"),
        )
        results = await index.search(SearchQuery(text="lint", filters={"harness": "pi"}))
        assert [r.document.id for r in results] == ["a:base"]

    @pytest.mark.asyncio
    async def test_empty_or_stopword_query(self):
        index = await _index(_doc("a:base", "lint failed"))
        assert await index.search(SearchQuery(text="")) == []
        assert await index.search(SearchQuery(text="the and of")) == []

    @pytest.mark.asyncio
    async def test_limit(self):
        index = await _index(*[_doc(f"d{i}:base", "lint failed") for i in range(5)])
        assert len(await index.search(SearchQuery(text="lint", limit=2))) == 2
        assert await index.search(SearchQuery(text="lint", limit=0)) == []


class TestUpsert:
    @pytest.mark.asyncio
    async def test_upsert_replaces_by_id(self):
        index = await _index(_doc("a:base", "lint failed"))
        await index.upsert(_doc("a:base", "cargo build succeeded"))

        assert index.size == 1
        assert await index.search(SearchQuery(text="lint")) == []
        results = await index.search(SearchQuery(text="cargo"))
        assert results[0].document.text == "cargo build succeeded"

    @pytest.mark.asyncio
    async def test_replaced_document_keeps_position(self):
        index = await _index(_doc("a:base", "lint"), _doc("b:base", "lint"))
        await index.upsert(_doc("a:base", "lint"))
        results = await index.search(SearchQuery(text="lint"))
        assert [r.document.id for r in results] == ["a:base", "b:base"]

    @pytest.mark.asyncio
    async def test_query_term_cap_is_honoured(self):
        index = await _index(
            _doc("head:base", "alpha"),
            _doc("tail:base", "omega"),
            config=LexicalIndexConfig(max_query_terms=1),
        )
        results = await index.search(SearchQuery(text="alpha beta gamma omega"))
        assert [r.document.id for r in results] == ["head:base"]
