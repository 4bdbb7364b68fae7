"""In-memory corpus and the bounded indexing pipeline."""

from __future__ import annotations

import logging
import math
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Sequence, Tuple

import numpy as np

from docrag.config import IndexLimits
from docrag.embedding.encoder import EmbeddingProvider
from docrag.errors import CapacityError, IndexTimeoutError, IntegrityError, ValidationError
from docrag.index.chunker import DEFAULT_CHUNK_SIZE, DEFAULT_OVERLAP, chunk_text
from docrag.index.search import SearchResult, lexical_search, vector_search
from docrag.models import (
    Chunk,
    CorpusSnapshot,
    CorpusStats,
    Document,
    Embedding,
    total_characters,
)

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class IndexStats:
    indexed: int = 0
    failed: int = 0
    chunks: int = 0
    embeddings: int = 0
    fallback_embeddings: int = 0
    failures: Dict[str, str] = field(default_factory=dict)
    embedding_failures: List[int] = field(default_factory=list)
    elapsed: float = 0.0

    def mark_indexed(self, chunk_count: int) -> None:
        self.indexed += 1
        self.chunks += chunk_count

    def mark_failed(self, document: Document, reason: str) -> None:
        self.failed += 1
        self.failures[document.id] = reason


class CorpusManager:
    """Owns documents, chunks and embeddings and rebuilds the index on demand.

    Mutations (``add_documents``, ``remove_document``, ``index``, ``clear`` and
    the replace accessors) are serialized by a writer lock. Readers never
    lock: they grab the current :class:`CorpusSnapshot`, whose chunk and
    embedding tuples are always published together with equal lengths.
    """

    def __init__(
        self,
        limits: IndexLimits | None = None,
        embedder: EmbeddingProvider | None = None,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        overlap: int = DEFAULT_OVERLAP,
    ) -> None:
        self.limits = limits or IndexLimits()
        self.embedder = embedder
        self.chunk_size = chunk_size
        self.overlap = overlap
        self._write_lock = threading.Lock()
        self._snapshot = CorpusSnapshot()

    # -- snapshot accessors -------------------------------------------------

    def snapshot(self) -> CorpusSnapshot:
        return self._snapshot

    def get_documents(self) -> List[Document]:
        return list(self._snapshot.documents)

    def get_chunks(self) -> List[Chunk]:
        return list(self._snapshot.chunks)

    def get_embeddings(self) -> List[Embedding]:
        return list(self._snapshot.embeddings)

    def replace_documents(self, documents: Sequence[Document]) -> None:
        """Swap the document registry, dropping index entries of vanished documents."""
        documents = tuple(documents)
        _ensure_unique_ids(documents)
        with self._write_lock:
            current = self._snapshot
            known = {doc.id for doc in documents}
            keep = [i for i, chunk in enumerate(current.chunks) if chunk.document_id in known]
            self._publish(
                documents,
                [current.chunks[i] for i in keep],
                [current.embeddings[i] for i in keep],
            )

    def replace_index(self, chunks: Sequence[Chunk], embeddings: Sequence[Embedding]) -> None:
        """Swap chunks and embeddings as one pair."""
        with self._write_lock:
            documents = self._snapshot.documents
            _ensure_parents(documents, chunks)
            self._publish(documents, chunks, embeddings)

    def restore(self, snapshot: CorpusSnapshot) -> None:
        """Replace the whole corpus, e.g. from a persisted snapshot."""
        _ensure_unique_ids(snapshot.documents)
        _ensure_parents(snapshot.documents, snapshot.chunks)
        with self._write_lock:
            self._publish(snapshot.documents, snapshot.chunks, snapshot.embeddings)

    def _publish(
        self,
        documents: Iterable[Document],
        chunks: Iterable[Chunk],
        embeddings: Iterable[Embedding],
    ) -> None:
        snapshot = CorpusSnapshot(tuple(documents), tuple(chunks), tuple(embeddings))
        if len(snapshot.chunks) != len(snapshot.embeddings):
            raise IntegrityError(
                f"{len(snapshot.chunks)} chunks but {len(snapshot.embeddings)} embeddings"
            )
        self._snapshot = snapshot

    # -- document lifecycle -------------------------------------------------

    def add_documents(self, documents: Sequence[Document]) -> List[Document]:
        """Admit a batch of documents whole, or not at all.

        Errored and empty documents are filtered out first. Raises
        :class:`CapacityError` if the batch would push the registry past the
        total character ceiling and :class:`ValidationError` on duplicate ids.
        """
        valid = [doc for doc in documents if doc.is_usable]
        if len(valid) != len(documents):
            LOGGER.info("Ignoring %s errored or empty documents", len(documents) - len(valid))

        with self._write_lock:
            current = self._snapshot
            _ensure_unique_ids(tuple(current.documents) + tuple(valid))

            current_chars = total_characters(current.documents)
            incoming_chars = total_characters(valid)
            if current_chars + incoming_chars > self.limits.max_total_chars:
                raise CapacityError(
                    f"Cannot add {len(valid)} documents ({incoming_chars:,} chars): "
                    f"corpus holds {current_chars:,} of {self.limits.max_total_chars:,}"
                )

            self._publish(current.documents + tuple(valid), current.chunks, current.embeddings)

        LOGGER.info("Added %s documents (%s characters)", len(valid), incoming_chars)
        return valid

    def remove_document(self, document_id: str) -> bool:
        """Remove a document together with its chunks and their embeddings."""
        with self._write_lock:
            current = self._snapshot
            if not any(doc.id == document_id for doc in current.documents):
                return False

            keep = [i for i, chunk in enumerate(current.chunks) if chunk.document_id != document_id]
            self._publish(
                (doc for doc in current.documents if doc.id != document_id),
                [current.chunks[i] for i in keep],
                [current.embeddings[i] for i in keep],
            )
            removed = len(current.chunks) - len(keep)

        LOGGER.info("Removed document %s and %s chunks", document_id, removed)
        return True

    def clear(self) -> None:
        with self._write_lock:
            self._publish((), (), ())
        LOGGER.info("Corpus cleared")

    # -- indexing -----------------------------------------------------------

    def index(self) -> IndexStats:
        """Rebuild chunks and embeddings from scratch for every document.

        Per-document and per-sub-batch failures are recorded in the returned
        stats. A blown deadline raises :class:`IndexTimeoutError`; on that or
        any other fatal error the chunks and embeddings are left empty.
        """
        with self._write_lock:
            started = time.monotonic()
            deadline = started + self.limits.index_timeout
            documents = self._snapshot.documents
            self._publish(documents, (), ())

            stats = IndexStats()
            try:
                chunks = self._chunk_documents(documents, deadline, stats)
                embeddings = self._embed_chunks(chunks, deadline, stats)
                self._publish(_with_status(documents, stats), chunks, embeddings)
            except Exception:
                LOGGER.error("Indexing failed, resetting chunks and embeddings")
                self._publish(_with_status(documents, None), (), ())
                raise

            stats.elapsed = time.monotonic() - started

        LOGGER.info(
            "Indexed %s documents (%s failed): %s chunks, %s embeddings in %.2fs",
            stats.indexed,
            stats.failed,
            stats.chunks,
            stats.embeddings,
            stats.elapsed,
        )
        return stats

    def _skip_reason(self, document: Document) -> str | None:
        if document.error:
            return f"Document error: {document.error}"
        if not document.text or not document.text.strip():
            return "Empty content"
        if len(document.text) > self.limits.max_document_chars:
            return (
                f"Document too large ({len(document.text):,} chars > "
                f"{self.limits.max_document_chars:,})"
            )
        return None

    def _chunk_documents(
        self, documents: Sequence[Document], deadline: float, stats: IndexStats
    ) -> List[Chunk]:
        chunks: List[Chunk] = []
        chunk_limit_reached = False
        batch_size = max(self.limits.document_batch_size, 1)
        total_batches = math.ceil(len(documents) / batch_size)
        pool = ThreadPoolExecutor(
            max_workers=max(self.limits.chunk_workers, 1), thread_name_prefix="docrag-chunk"
        )
        try:
            for number, offset in enumerate(range(0, len(documents), batch_size), start=1):
                _check_deadline(deadline, "document chunking")
                LOGGER.info("Chunking document batch %s/%s", number, total_batches)

                pending: List[Tuple[Document, Future]] = []
                for document in documents[offset : offset + batch_size]:
                    reason = self._skip_reason(document)
                    if reason:
                        LOGGER.warning("Skipping %s: %s", document.name, reason)
                        stats.mark_failed(document, reason)
                        continue
                    future = pool.submit(
                        chunk_text,
                        document.text,
                        document.id,
                        document.name,
                        chunk_size=self.chunk_size,
                        overlap=self.overlap,
                    )
                    pending.append((document, future))

                for document, future in pending:
                    try:
                        document_chunks = future.result(timeout=_remaining(deadline))
                    except FutureTimeout as exc:
                        raise IndexTimeoutError("Indexing timed out during document chunking") from exc
                    except Exception as exc:
                        LOGGER.error("Failed to chunk %s: %s", document.name, exc)
                        stats.mark_failed(document, str(exc))
                        continue

                    if chunk_limit_reached or len(chunks) + len(document_chunks) > self.limits.max_chunks:
                        chunk_limit_reached = True
                        LOGGER.warning(
                            "Chunk limit %s reached, not indexing %s", self.limits.max_chunks, document.name
                        )
                        stats.mark_failed(document, "Chunk limit reached")
                        continue

                    chunks.extend(document_chunks)
                    stats.mark_indexed(len(document_chunks))
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        return chunks

    def _embed_chunks(
        self, chunks: Sequence[Chunk], deadline: float, stats: IndexStats
    ) -> List[Embedding]:
        if not chunks:
            return []
        if self.embedder is None:
            LOGGER.info("No embedding provider configured, %s chunks are lexical-only", len(chunks))
            stats.fallback_embeddings = len(chunks)
            return [None] * len(chunks)

        embeddings: List[Embedding] = []
        batch_size = max(self.limits.embedding_batch_size, 1)
        total_batches = math.ceil(len(chunks) / batch_size)
        # A single worker keeps calls ordered while letting us wait with a deadline
        pool = _embedding_pool()
        number = 0
        try:
            while len(embeddings) < len(chunks):
                _check_deadline(deadline, "embedding generation")
                capacity = self.limits.max_embeddings - stats.embeddings
                if capacity <= 0:
                    LOGGER.warning(
                        "Embedding limit %s reached, remaining chunks are lexical-only",
                        self.limits.max_embeddings,
                    )
                    break
                number += 1
                if number > 1 and self.limits.embedding_delay > 0:
                    time.sleep(min(self.limits.embedding_delay, _remaining(deadline)))

                position = len(embeddings)
                batch = chunks[position : position + min(batch_size, capacity)]
                LOGGER.info("Embedding batch %s/%s (%s chunks)", number, total_batches, len(batch))
                vectors, stalled = self._embed_batch(pool, [chunk.content for chunk in batch], deadline)
                if stalled:
                    # The stuck call keeps its thread; later batches get a fresh worker
                    pool.shutdown(wait=False, cancel_futures=True)
                    pool = _embedding_pool()
                if vectors is None:
                    stats.embedding_failures.append(number)
                    stats.fallback_embeddings += len(batch)
                    embeddings.extend([None] * len(batch))
                    continue

                embeddings.extend(vectors)
                stats.embeddings += len(vectors)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        missing = len(chunks) - len(embeddings)
        if missing:
            stats.fallback_embeddings += missing
            embeddings.extend([None] * missing)
        return embeddings

    def _embed_batch(
        self, pool: ThreadPoolExecutor, texts: List[str], deadline: float
    ) -> Tuple[List[np.ndarray] | None, bool]:
        """Embed one sub-batch.

        Returns the vectors, or ``None`` when the call failed, and whether the
        call is still running past its per-call timeout.
        """
        remaining = _remaining(deadline)
        timeout = min(self.limits.embedding_call_timeout, remaining)
        future = pool.submit(self.embedder.embed_batch, texts)
        try:
            vectors = future.result(timeout=timeout)
        except FutureTimeout as exc:
            future.cancel()
            if remaining <= self.limits.embedding_call_timeout or _remaining(deadline) <= 0:
                raise IndexTimeoutError("Indexing timed out during embedding generation") from exc
            LOGGER.error("Embedding call exceeded %.1fs", timeout)
            return None, True
        except Exception as exc:
            LOGGER.error("Embedding batch failed: %s", exc)
            return None, False

        if vectors is None or len(vectors) != len(texts):
            LOGGER.error(
                "Embedding provider returned %s vectors for %s texts",
                0 if vectors is None else len(vectors),
                len(texts),
            )
            return None, False
        return [np.asarray(vector, dtype="float32") for vector in vectors], False

    # -- queries ------------------------------------------------------------

    def search_lexical(self, query: str, *, top_k: int = 5) -> List[SearchResult]:
        return lexical_search(self._snapshot.chunks, query, top_k=top_k)

    def search_vector(self, query_embedding: Embedding, *, top_k: int = 5) -> List[SearchResult]:
        snapshot = self._snapshot
        return vector_search(snapshot.chunks, query_embedding, snapshot.embeddings, top_k=top_k)

    def is_available(self) -> bool:
        snapshot = self._snapshot
        return bool(snapshot.chunks) and snapshot.embedded_count > 0

    def stats(self) -> CorpusStats:
        snapshot = self._snapshot
        return CorpusStats(
            total_documents=len(snapshot.documents),
            indexed_documents=sum(1 for doc in snapshot.documents if doc.indexed),
            total_chunks=len(snapshot.chunks),
            total_embeddings=snapshot.embedded_count,
            total_characters=total_characters(snapshot.documents),
        )

    def debug_info(self) -> Dict[str, Any]:
        snapshot = self._snapshot
        return {
            "chunks": [
                {
                    "id": chunk.id,
                    "document_name": chunk.document_name,
                    "content_length": len(chunk.content),
                    "content_preview": chunk.content[:100] + "...",
                }
                for chunk in snapshot.chunks
            ],
            "documents": [
                {
                    "id": doc.id,
                    "name": doc.name,
                    "indexed": doc.indexed,
                    "error": doc.error or doc.index_error,
                    "content_length": len(doc.text),
                }
                for doc in snapshot.documents
            ],
        }


def _embedding_pool() -> ThreadPoolExecutor:
    return ThreadPoolExecutor(max_workers=1, thread_name_prefix="docrag-embed")


def _remaining(deadline: float) -> float:
    return max(deadline - time.monotonic(), 0.0)


def _check_deadline(deadline: float, stage: str) -> None:
    if time.monotonic() > deadline:
        raise IndexTimeoutError(f"Indexing timed out during {stage}")


def _ensure_unique_ids(documents: Sequence[Document]) -> None:
    seen = set()
    for doc in documents:
        if doc.id in seen:
            raise ValidationError(f"Duplicate document id: {doc.id}")
        seen.add(doc.id)


def _ensure_parents(documents: Sequence[Document], chunks: Sequence[Chunk]) -> None:
    known = {doc.id for doc in documents}
    orphans = {chunk.document_id for chunk in chunks if chunk.document_id not in known}
    if orphans:
        raise IntegrityError(f"Chunks reference unknown documents: {sorted(orphans)}")


def _with_status(documents: Sequence[Document], stats: IndexStats | None) -> List[Document]:
    """Copy documents with the outcome of an index run; ``None`` means nothing got indexed."""
    updated = []
    for doc in documents:
        if stats is None:
            updated.append(replace(doc, indexed=False, index_error="Indexing aborted"))
        elif doc.id in stats.failures:
            updated.append(replace(doc, indexed=False, index_error=stats.failures[doc.id]))
        else:
            updated.append(replace(doc, indexed=True, index_error=None))
    return updated
