"""Text helpers shared by ingestion and lexical search."""

from __future__ import annotations

import re
from typing import Iterable, List

_STEM_SUFFIX = re.compile(r"(ing|ed|s)$")


def normalize_whitespace(lines: Iterable[str]) -> str:
    """Strip lines, drop blank ones and join the rest with newlines."""
    return "\n".join(line.strip() for line in lines if line.strip())


def query_terms(query: str, *, min_length: int = 3) -> List[str]:
    """Lowercase and whitespace-split a query, keeping tokens of ``min_length`` or more."""
    if not query:
        return []
    return [token for token in query.lower().split() if len(token) >= min_length]


def simple_stem(word: str) -> str:
    """Strip one trailing ``ing``, ``ed`` or ``s``."""
    return _STEM_SUFFIX.sub("", word, count=1)
