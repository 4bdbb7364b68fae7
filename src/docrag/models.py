"""Core DocRAG data models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

Embedding = Optional[np.ndarray]


@dataclass(slots=True)
class Document:
    """Plain-text document handed over by the document source."""

    id: str
    name: str
    text: str
    character_count: int
    size_bytes: int
    error: str | None = None
    indexed: bool = False
    index_error: str | None = None

    @classmethod
    def from_text(cls, doc_id: str, name: str, text: str) -> "Document":
        return cls(
            id=doc_id,
            name=name,
            text=text,
            character_count=len(text),
            size_bytes=len(text.encode("utf-8")),
        )

    @property
    def is_usable(self) -> bool:
        return not self.error and bool(self.text) and bool(self.text.strip())


@dataclass(frozen=True, slots=True)
class Chunk:
    """Span of a document's text, the unit of retrieval."""

    id: str
    document_id: str
    document_name: str
    content: str
    start: int
    end: int


@dataclass(frozen=True, slots=True)
class CorpusSnapshot:
    """Consistent read-only view of the corpus.

    ``embeddings[i]`` describes ``chunks[i]``; a ``None`` entry marks a chunk
    without a usable embedding, which only takes part in lexical search.
    """

    documents: tuple[Document, ...] = ()
    chunks: tuple[Chunk, ...] = ()
    embeddings: tuple[Embedding, ...] = ()

    @property
    def embedded_count(self) -> int:
        return sum(1 for vector in self.embeddings if vector is not None)


@dataclass(slots=True)
class CorpusStats:
    total_documents: int
    indexed_documents: int
    total_chunks: int
    total_embeddings: int
    total_characters: int


def total_characters(documents: Sequence[Document]) -> int:
    return sum(doc.character_count for doc in documents)
