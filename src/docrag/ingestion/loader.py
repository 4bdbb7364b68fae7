"""Turn files on disk into plain-text documents.

PDFs go through PyMuPDF (fitz); text and markdown files are read as UTF-8.
Failures never raise: the returned document carries an ``error`` instead,
and the corpus manager refuses errored documents.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, List, Sequence

import fitz  # PyMuPDF

from docrag.models import Document
from docrag.utils.files import document_id_for, iter_document_paths
from docrag.utils.text import normalize_whitespace

LOGGER = logging.getLogger(__name__)


def iter_pdf_pages(path: Path) -> Iterator[str]:
    """Yield normalized text page by page."""
    doc = fitz.open(path)
    try:
        for index in range(len(doc)):
            try:
                text = doc[index].get_text() or ""
            except Exception as exc:
                LOGGER.warning("Failed to read page %s in %s: %s", index, path, exc)
                continue
            normalized = normalize_whitespace(text.splitlines())
            if normalized:
                yield normalized
    finally:
        doc.close()


def read_text(path: Path) -> str:
    if path.suffix.lower() == ".pdf":
        return "\n".join(iter_pdf_pages(path))
    return path.read_text(encoding="utf-8", errors="replace")


def load_document(path: Path) -> Document:
    """Load one file as a :class:`Document`, recording any failure on it."""
    doc_id = document_id_for(path)
    try:
        text = read_text(path)
    except Exception as exc:
        LOGGER.error("Failed to read %s: %s", path, exc)
        return Document(
            id=doc_id,
            name=path.name,
            text="",
            character_count=0,
            size_bytes=path.stat().st_size if path.exists() else 0,
            error=str(exc),
        )

    document = Document(
        id=doc_id,
        name=path.name,
        text=text,
        character_count=len(text),
        size_bytes=path.stat().st_size,
    )
    if not text.strip():
        document.error = "No text extracted"
    return document


def load_documents(paths: Sequence[Path]) -> List[Document]:
    return [load_document(path) for path in iter_document_paths(paths)]
