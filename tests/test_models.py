"""Tests for data models."""

from __future__ import annotations

import dataclasses

import numpy as np
import pytest

from docrag.models import Chunk, CorpusSnapshot, Document, total_characters


class TestDocument:
    """Test Document dataclass."""

    def test_from_text(self) -> None:
        doc = Document.from_text("d1", "notes.txt", "héllo")

        assert doc.character_count == 5
        assert doc.size_bytes == 6
        assert doc.error is None
        assert doc.indexed is False
        assert doc.index_error is None

    def test_is_usable(self) -> None:
        assert Document.from_text("d1", "a.txt", "text").is_usable

    @pytest.mark.parametrize("text", ["", "   \n\t"])
    def test_blank_not_usable(self, text: str) -> None:
        assert not Document.from_text("d1", "a.txt", text).is_usable

    def test_errored_not_usable(self) -> None:
        doc = Document.from_text("d1", "a.txt", "text")
        doc.error = "Failed"
        assert not doc.is_usable

    def test_slots(self) -> None:
        doc = Document.from_text("d1", "a.txt", "text")
        with pytest.raises(AttributeError):
            doc.unknown = "value"  # type: ignore[attr-defined]


class TestChunk:
    """Test Chunk dataclass."""

    def test_frozen(self) -> None:
        chunk = Chunk(id="d1-0", document_id="d1", document_name="a.txt", content="x", start=0, end=1)
        with pytest.raises(dataclasses.FrozenInstanceError):
            chunk.content = "y"  # type: ignore[misc]


class TestCorpusSnapshot:
    """Test CorpusSnapshot."""

    def test_empty(self) -> None:
        snapshot = CorpusSnapshot()
        assert snapshot.documents == ()
        assert snapshot.embedded_count == 0

    def test_embedded_count_skips_fallback(self) -> None:
        snapshot = CorpusSnapshot(embeddings=(np.ones(2), None, np.zeros(2)))
        assert snapshot.embedded_count == 2


def test_total_characters() -> None:
    docs = [Document.from_text("a", "a.txt", "abc"), Document.from_text("b", "b.txt", "de")]
    assert total_characters(docs) == 5
    assert total_characters([]) == 0
