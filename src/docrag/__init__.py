"""DocRAG - bounded document chunking, indexing and retrieval."""

__version__ = "0.1.0"
