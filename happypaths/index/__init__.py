"""Search backends: BM25 lexical index and the RRF composite."""

from .composite import CompositeTraceIndex
from .lexical import InMemoryLexicalIndex

__all__ = ["CompositeTraceIndex", "InMemoryLexicalIndex"]
