"""Application configuration defaults."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path

from docrag.embedding.encoder import DEFAULT_MODEL

DEFAULT_GENERATION_MODEL = "gpt-4o-mini"


def _get_default_db_path() -> Path:
    """Get the default corpus store path based on platform and execution context."""
    user_db = Path.home() / "Documents" / "DocRAG" / "docrag.db"

    if getattr(sys, "frozen", False):
        return user_db

    # When running from source, prefer local data/ if it exists
    local_db = Path("data/docrag.db")
    if local_db.exists():
        return local_db

    return user_db


@dataclass(slots=True)
class IndexLimits:
    """Ceilings, batch sizes and deadlines applied by the indexing pipeline."""

    max_total_chars: int = 10_000_000
    max_document_chars: int = 500_000
    max_chunks: int = 10_000
    max_embeddings: int = 4_000
    document_batch_size: int = 5
    embedding_batch_size: int = 100
    chunk_workers: int = 4
    embedding_delay: float = 0.1
    embedding_call_timeout: float = 30.0
    index_timeout: float = 60.0


@dataclass(slots=True)
class AppConfig:
    db_path: Path | None = None
    model_name: str = DEFAULT_MODEL
    chunk_size: int = 800
    overlap: int = 150
    context_length: int = 3000
    generation_model: str = DEFAULT_GENERATION_MODEL
    generation_timeout: float = 60.0
    limits: IndexLimits = field(default_factory=IndexLimits)

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = _get_default_db_path()

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path
