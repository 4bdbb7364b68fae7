"""Answer generation on top of assembled context."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from openai import OpenAI
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from docrag.errors import ProviderError
from docrag.index.search import SearchMode, Searcher

LOGGER = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a retrieval-augmented assistant. Answer using only the provided context. "
    "If the context does not contain the answer, say that you do not know. "
    "Cite the source document names shown in [From: ...] markers."
)


class TextGenerator(Protocol):
    def generate(self, prompt: str) -> str: ...


class OpenAIGenerator:
    """Chat-completion generator with a bounded client timeout and retries."""

    def __init__(
        self,
        model: str,
        *,
        timeout: float = 60.0,
        api_key: str | None = None,
        base_url: str | None = None,
    ) -> None:
        self.model = model
        self._client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)

    @retry(
        retry=retry_if_exception_type(ProviderError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def generate(self, prompt: str) -> str:
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.2,
            )
        except Exception as exc:
            LOGGER.warning("Generation call failed: %s", exc)
            raise ProviderError(f"Generation failed: {exc}") from exc
        return (response.choices[0].message.content or "").strip()


def build_prompt(context: str, query: str) -> str:
    return f"# Context\n{context}\n\n# Question\n{query}\n\n# Answer"


@dataclass(slots=True)
class Answer:
    answer: str
    context: str


class AnswerGenerator:
    """Retrieves context for a query and hands it to a text generator."""

    def __init__(
        self,
        searcher: Searcher,
        generator: TextGenerator,
        *,
        max_context_length: int = 3000,
        mode: SearchMode = "lexical",
    ) -> None:
        self.searcher = searcher
        self.generator = generator
        self.max_context_length = max_context_length
        self.mode = mode

    def rag_answer(self, query: str) -> Answer:
        """Answer ``query`` from the corpus.

        Raises :class:`ProviderError` when nothing is indexed, when no context
        matches, or when generation fails.
        """
        corpus = self.searcher.corpus
        if self.mode == "vector" and not corpus.is_available():
            raise ProviderError("No indexed content with embeddings available")
        if not corpus.get_chunks():
            raise ProviderError("No indexed content available")

        context = self.searcher.context(query, max_length=self.max_context_length, mode=self.mode)
        if not context:
            raise ProviderError("No relevant context found")

        answer = self.generator.generate(build_prompt(context, query))
        return Answer(answer=answer, context=context)
