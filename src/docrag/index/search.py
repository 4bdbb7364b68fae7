"""Lexical and vector ranking over the corpus."""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Literal, Sequence

import numpy as np

from docrag.errors import ProviderError
from docrag.index.context import CONTEXT_BREADTH, assemble_context
from docrag.models import Chunk, Embedding
from docrag.utils.text import query_terms, simple_stem

if TYPE_CHECKING:
    from docrag.embedding.encoder import EmbeddingProvider
    from docrag.index.corpus import CorpusManager

LOGGER = logging.getLogger(__name__)

SearchMode = Literal["lexical", "vector"]

WHOLE_WORD_POINTS = 3.0
SUBSTRING_POINTS = 1.0
STEM_PREFIX_POINTS = 1.5
DISTINCT_TERM_BONUS = 0.5
LONG_CHUNK_BONUS = 0.2
LONG_CHUNK_CHARS = 200


@dataclass(slots=True)
class SearchResult:
    chunk: Chunk
    score: float

    @property
    def content(self) -> str:
        return self.chunk.content

    @property
    def document_name(self) -> str:
        return self.chunk.document_name


def _lexical_score(content: str, terms: Sequence[str]) -> float:
    text = content.lower()
    score = 0.0
    matched_terms = 0

    for term in terms:
        escaped = re.escape(term)
        score += len(re.findall(rf"\b{escaped}\b", text)) * WHOLE_WORD_POINTS
        if term in text:
            score += SUBSTRING_POINTS

        stem = simple_stem(term)
        if len(stem) > 2:
            score += len(re.findall(rf"\b{re.escape(stem)}", text)) * STEM_PREFIX_POINTS

        if term in text or stem in text:
            matched_terms += 1

    score += matched_terms * DISTINCT_TERM_BONUS
    if len(content) > LONG_CHUNK_CHARS:
        score += LONG_CHUNK_BONUS
    return score


def lexical_search(chunks: Sequence[Chunk], query: str, *, top_k: int = 5) -> List[SearchResult]:
    """Rank chunks by keyword heuristics; no embeddings needed.

    Whole-word hits weigh most, then stem-prefix hits, then plain substring
    presence. Chunks that score zero are left out. Ties keep corpus order.
    """
    if not chunks or not query or not query.strip():
        return []

    terms = query_terms(query)
    if not terms:
        LOGGER.debug("No meaningful terms in query %r", query)
        return []

    results = []
    for chunk in chunks:
        score = _lexical_score(chunk.content, terms)
        if score > 0:
            results.append(SearchResult(chunk=chunk, score=score))

    # sorted() is stable, so equal scores keep their corpus order
    results = sorted(results, key=lambda result: result.score, reverse=True)
    LOGGER.debug("Lexical search matched %s of %s chunks", len(results), len(chunks))
    return results[: max(top_k, 0)]


def cosine_similarity(a: Embedding, b: Embedding) -> float:
    """Cosine similarity that is 0.0 for zero, missing or mismatched vectors."""
    if a is None or b is None:
        return 0.0
    left = np.asarray(a, dtype="float64").ravel()
    right = np.asarray(b, dtype="float64").ravel()
    if left.size == 0 or left.shape != right.shape:
        return 0.0

    norm = float(np.linalg.norm(left)) * float(np.linalg.norm(right))
    if norm == 0.0 or not np.isfinite(norm):
        return 0.0
    return float(np.dot(left, right) / norm)


def vector_search(
    chunks: Sequence[Chunk],
    query_embedding: Embedding,
    embeddings: Sequence[Embedding],
    *,
    top_k: int = 5,
) -> List[SearchResult]:
    """Rank chunks by cosine similarity of their embedding to the query embedding.

    Chunk ``i`` is compared with ``embeddings[i]``; a chunk past the end of
    ``embeddings`` scores 0.0 and a chunk carrying the fallback marker
    (``None``) is lexical-only and left out.
    """
    if not chunks or query_embedding is None or np.asarray(query_embedding).size == 0:
        return []

    results = []
    for index, chunk in enumerate(chunks):
        vector = embeddings[index] if index < len(embeddings) else None
        if vector is None and index < len(embeddings):
            continue
        results.append(SearchResult(chunk=chunk, score=cosine_similarity(query_embedding, vector)))

    results = sorted(results, key=lambda result: result.score, reverse=True)
    return results[: max(top_k, 0)]


class Searcher:
    """High-level API to query a corpus and build generation context."""

    def __init__(
        self,
        corpus: CorpusManager,
        embedder: EmbeddingProvider | None = None,
        *,
        query_timeout: float = 30.0,
    ) -> None:
        self.corpus = corpus
        self.embedder = embedder
        self.query_timeout = query_timeout
        self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="docrag-query")

    def close(self) -> None:
        """Release the query worker without waiting on a call still in flight."""
        self._pool.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "Searcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def search(self, query: str, *, top_k: int = 5, mode: SearchMode = "lexical") -> List[SearchResult]:
        if mode == "lexical":
            return self.corpus.search_lexical(query, top_k=top_k)

        if not query or not query.strip() or self.embedder is None:
            return []
        future = self._pool.submit(self.embedder.embed, query)
        try:
            query_embedding = future.result(timeout=self.query_timeout)
        except FutureTimeout:
            LOGGER.error("Query embedding exceeded %.1fs", self.query_timeout)
            return []
        except ProviderError as exc:
            LOGGER.error("Query embedding failed: %s", exc)
            return []
        return self.corpus.search_vector(query_embedding, top_k=top_k)

    def context(self, query: str, *, max_length: int = 3000, mode: SearchMode = "lexical") -> str:
        """Assemble the attributed context passage for ``query``."""
        if not query or not query.strip():
            return ""
        results = self.search(query, top_k=CONTEXT_BREADTH, mode=mode)
        context = assemble_context(results, max_length=max_length)
        LOGGER.info("Context: %s characters from %s ranked chunks", len(context), len(results))
        return context
