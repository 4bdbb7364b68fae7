"""Bounded, source-attributed context assembly."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from docrag.index.search import SearchResult

# Results fetched for context, independent of any display top_k
CONTEXT_BREADTH = 6
SEPARATOR = "\n\n"


def format_piece(document_name: str, content: str) -> str:
    return f"[From: {document_name}]\n{content}"


def assemble_context(results: Sequence[SearchResult], *, max_length: int) -> str:
    """Join ranked results into one passage no longer than ``max_length``.

    Results are taken in rank order and whole; the first one that would not
    fit ends the passage, so an oversized top result yields ``""``.
    """
    pieces: list[str] = []
    length = 0
    for result in results:
        piece = format_piece(result.chunk.document_name, result.chunk.content)
        added = len(piece) + (len(SEPARATOR) if pieces else 0)
        if length + added > max_length:
            break
        pieces.append(piece)
        length += added
    return SEPARATOR.join(pieces)
