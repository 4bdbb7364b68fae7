"""Exception hierarchy for DocRAG."""

from __future__ import annotations


class DocRagError(Exception):
    """Base class for all DocRAG failures."""


class ValidationError(DocRagError, ValueError):
    """Malformed input such as an invalid chunk configuration or duplicate ids."""


class CapacityError(DocRagError):
    """A character, chunk, embedding or document-size ceiling was exceeded."""


class IndexTimeoutError(DocRagError, TimeoutError):
    """The wall-clock deadline for indexing or embedding passed."""


class ProviderError(DocRagError):
    """An embedding or generation provider call failed."""


class IntegrityError(DocRagError):
    """Chunk and embedding lists lost their positional correspondence."""
