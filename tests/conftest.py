"""Shared fixtures for DocRAG tests."""

from __future__ import annotations

from typing import List, Sequence

import numpy as np
import pytest

from docrag.errors import ProviderError
from docrag.models import Document


class FakeEmbedder:
    """Deterministic embedder: ``[ord(first char), len(text)]`` per text.

    The vector identifies the chunk it was made for, which lets tests check
    positional alignment after mutations.
    """

    def __init__(self, fail_on_calls: Sequence[int] = ()) -> None:
        self.calls: List[List[str]] = []
        self.fail_on_calls = set(fail_on_calls)

    def embed(self, text: str) -> np.ndarray:
        return np.array([ord(text[0]) if text else 0, len(text)], dtype="float32")

    def embed_batch(self, texts: Sequence[str]) -> List[np.ndarray]:
        self.calls.append(list(texts))
        if len(self.calls) in self.fail_on_calls:
            raise ProviderError("provider unavailable")
        return [self.embed(text) for text in texts]


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def failing_embedder_factory():
    return FakeEmbedder


@pytest.fixture
def ten_chunk_documents() -> List[Document]:
    """Three documents that chunk into 3, 3 and 4 chunks with default settings."""
    return [
        Document.from_text("a", "alpha.txt", "A" * 1000),
        Document.from_text("b", "bravo.txt", "B" * 1000),
        Document.from_text("c", "charlie.txt", "C" * 1700),
    ]
