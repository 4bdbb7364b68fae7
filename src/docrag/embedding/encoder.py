"""Embedding provider contract and the sentence-transformers implementation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Protocol, Sequence

import numpy as np
from sentence_transformers import SentenceTransformer

from docrag.errors import ProviderError

DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"

logger = logging.getLogger(__name__)


class EmbeddingProvider(Protocol):
    """What the corpus manager needs from an embedding service.

    ``embed_batch`` returns one vector per input text, in input order.
    Implementations raise :class:`ProviderError` on failure.
    """

    def embed(self, text: str) -> np.ndarray: ...

    def embed_batch(self, texts: Sequence[str]) -> List[np.ndarray]: ...


@dataclass(slots=True)
class EmbeddingConfig:
    model_name: str = DEFAULT_MODEL
    batch_size: int = 16
    normalize: bool = True
    device: str | None = None


class EmbeddingModel:
    """Thin wrapper around `SentenceTransformer` for query and chunk embeddings."""

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self.config = config or EmbeddingConfig()
        try:
            self._model = SentenceTransformer(self.config.model_name, device=self.config.device)
        except Exception as exc:
            raise ProviderError(f"Unable to load embedding model {self.config.model_name}: {exc}") from exc

        self.dimension = int(self._model.get_sentence_embedding_dimension())
        logger.info(f"Loaded embedding model {self.config.model_name} (dimension {self.dimension})")

    def _encode(self, sentences: List[str]) -> np.ndarray:
        try:
            embeddings = self._model.encode(
                sentences,
                batch_size=self.config.batch_size,
                show_progress_bar=False,
                convert_to_numpy=True,
                normalize_embeddings=self.config.normalize,
            )
        except Exception as exc:
            raise ProviderError(f"Embedding generation failed: {exc}") from exc
        return embeddings.astype("float32", copy=False)

    def embed_batch(self, texts: Sequence[str]) -> List[np.ndarray]:
        """Return one float32 vector per input text, in input order."""
        sentences = list(texts)
        if not sentences:
            return []
        return list(self._encode(sentences))

    def embed(self, text: str) -> np.ndarray:
        """Convenience wrapper for single-text embedding."""
        return self._encode([text])[0]
