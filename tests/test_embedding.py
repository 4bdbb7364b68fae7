"""Tests for the sentence-transformers embedding provider."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from docrag.embedding.encoder import DEFAULT_MODEL, EmbeddingConfig, EmbeddingModel
from docrag.errors import ProviderError


@pytest.fixture
def mock_transformer():
    with patch("docrag.embedding.encoder.SentenceTransformer") as mock_cls:
        model = MagicMock()
        model.get_sentence_embedding_dimension.return_value = 3
        model.encode.side_effect = lambda sentences, **kwargs: np.arange(
            len(sentences) * 3, dtype="float64"
        ).reshape(len(sentences), 3)
        mock_cls.return_value = model
        yield mock_cls


class TestEmbeddingConfig:
    """Test EmbeddingConfig defaults."""

    def test_defaults(self) -> None:
        config = EmbeddingConfig()
        assert config.model_name == DEFAULT_MODEL
        assert config.batch_size == 16
        assert config.normalize is True
        assert config.device is None


class TestEmbeddingModel:
    """Test EmbeddingModel wrapper."""

    def test_loads_model(self, mock_transformer: MagicMock) -> None:
        model = EmbeddingModel(EmbeddingConfig(model_name="custom", device="cpu"))

        mock_transformer.assert_called_once_with("custom", device="cpu")
        assert model.dimension == 3

    def test_load_failure_raises_provider_error(self) -> None:
        with patch("docrag.embedding.encoder.SentenceTransformer", side_effect=OSError("no model")):
            with pytest.raises(ProviderError, match="Unable to load"):
                EmbeddingModel()

    def test_embed_batch_one_vector_per_text(self, mock_transformer: MagicMock) -> None:
        model = EmbeddingModel()

        vectors = model.embed_batch(["one", "two"])

        assert len(vectors) == 2
        assert all(vector.dtype == np.float32 for vector in vectors)
        np.testing.assert_array_equal(vectors[1], [3, 4, 5])

    def test_embed_batch_passes_settings(self, mock_transformer: MagicMock) -> None:
        model = EmbeddingModel(EmbeddingConfig(batch_size=4, normalize=False))

        model.embed_batch(["text"])

        kwargs = mock_transformer.return_value.encode.call_args.kwargs
        assert kwargs["batch_size"] == 4
        assert kwargs["normalize_embeddings"] is False
        assert kwargs["show_progress_bar"] is False

    def test_embed_batch_empty(self, mock_transformer: MagicMock) -> None:
        model = EmbeddingModel()

        assert model.embed_batch([]) == []
        mock_transformer.return_value.encode.assert_not_called()

    def test_embed_single(self, mock_transformer: MagicMock) -> None:
        vector = EmbeddingModel().embed("query")
        assert vector.shape == (3,)

    def test_encode_failure_raises_provider_error(self, mock_transformer: MagicMock) -> None:
        mock_transformer.return_value.encode.side_effect = RuntimeError("CUDA out of memory")
        model = EmbeddingModel()

        with pytest.raises(ProviderError, match="Embedding generation failed"):
            model.embed_batch(["text"])
