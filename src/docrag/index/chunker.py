"""Sentence-aware overlapping chunker."""

from __future__ import annotations

import logging
import math
from typing import List

from docrag.models import Chunk

LOGGER = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 800
DEFAULT_OVERLAP = 150

# How far around the naive edge we look for a natural break
BOUNDARY_WINDOW = 100
# Shorter spans are treated as noise
MIN_CHUNK_CHARS = 50
BOUNDARY_MARKS = (".", "?", "!", "\n")


def _snap_boundary(text: str, start: int, end: int) -> int:
    """Move ``end`` just past the nearest sentence mark or newline, if one is close.

    The search never reaches back before ``start`` so a snapped window is
    never empty.
    """
    search_from = max(end - BOUNDARY_WINDOW, start)
    for mark in BOUNDARY_MARKS:
        position = text.find(mark, search_from)
        if position != -1 and position < end + BOUNDARY_WINDOW:
            return position + 1
    return end


def chunk_text(
    text: str,
    document_id: str,
    document_name: str,
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_OVERLAP,
) -> List[Chunk]:
    """Split a document's text into overlapping chunks.

    Windows of ``chunk_size`` characters are snapped to sentence punctuation
    or line breaks when one lies within 100 characters of the naive edge.
    Consecutive windows share roughly ``overlap`` characters. The loop is
    bounded, so pathological input returns the chunks built so far instead
    of spinning.
    """
    if not text or not text.strip():
        LOGGER.debug("Empty text for document %s", document_name)
        return []

    if chunk_size <= 0 or overlap < 0:
        LOGGER.error(
            "Invalid chunking parameters: chunk_size=%s, overlap=%s", chunk_size, overlap
        )
        return []

    if overlap >= chunk_size:
        adjusted = int(chunk_size * 0.2)
        LOGGER.warning(
            "Overlap %s is not smaller than chunk size %s, using %s", overlap, chunk_size, adjusted
        )
        overlap = adjusted

    length = len(text)
    max_iterations = math.ceil(length / (chunk_size - overlap)) + 100
    chunks: List[Chunk] = []
    start = 0
    iterations = 0

    while start < length:
        if iterations >= max_iterations:
            LOGGER.error(
                "Reached %s chunking iterations for %s, returning %s chunks",
                max_iterations,
                document_name,
                len(chunks),
            )
            break
        iterations += 1

        end = min(start + chunk_size, length)
        actual_end = _snap_boundary(text, start, end) if end < length else end

        content = text[start:actual_end].strip()
        if len(content) > MIN_CHUNK_CHARS:
            chunks.append(
                Chunk(
                    id=f"{document_id}-{start}",
                    document_id=document_id,
                    document_name=document_name,
                    content=content,
                    start=start,
                    end=actual_end,
                )
            )

        next_start = actual_end - overlap
        if next_start <= start:
            # Snapping collapsed the window; jump to its end to keep moving
            next_start = actual_end
        start = next_start

    LOGGER.debug("Created %s chunks for %s in %s iterations", len(chunks), document_name, iterations)
    return chunks
