"""Tests for retrieval-augmented answer generation."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from docrag.config import IndexLimits
from docrag.errors import ProviderError
from docrag.generation.answer import (
    SYSTEM_PROMPT,
    AnswerGenerator,
    OpenAIGenerator,
    build_prompt,
)
from docrag.index.corpus import CorpusManager
from docrag.index.search import Searcher
from docrag.models import Document


def chat_response(text):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = text
    return response


@pytest.fixture
def mock_openai():
    with patch("docrag.generation.answer.OpenAI") as mock_cls:
        yield mock_cls


class TestOpenAIGenerator:
    """Test OpenAIGenerator."""

    def test_client_configuration(self, mock_openai: MagicMock) -> None:
        OpenAIGenerator("gpt-test", timeout=12.0, api_key="key")

        kwargs = mock_openai.call_args.kwargs
        assert kwargs["timeout"] == 12.0
        assert kwargs["max_retries"] == 0
        assert kwargs["api_key"] == "key"

    def test_generate(self, mock_openai: MagicMock) -> None:
        client = mock_openai.return_value
        client.chat.completions.create.return_value = chat_response("  The answer.  ")

        answer = OpenAIGenerator("gpt-test").generate("prompt")

        assert answer == "The answer."
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-test"
        assert kwargs["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}
        assert kwargs["messages"][1] == {"role": "user", "content": "prompt"}

    def test_empty_content(self, mock_openai: MagicMock) -> None:
        mock_openai.return_value.chat.completions.create.return_value = chat_response(None)
        assert OpenAIGenerator("gpt-test").generate("prompt") == ""

    @patch("time.sleep")
    def test_retries_then_succeeds(self, mock_sleep: MagicMock, mock_openai: MagicMock) -> None:
        create = mock_openai.return_value.chat.completions.create
        create.side_effect = [RuntimeError("rate limited"), chat_response("ok")]

        assert OpenAIGenerator("gpt-test").generate("prompt") == "ok"
        assert create.call_count == 2

    @patch("time.sleep")
    def test_gives_up_after_three_attempts(self, mock_sleep: MagicMock, mock_openai: MagicMock) -> None:
        create = mock_openai.return_value.chat.completions.create
        create.side_effect = RuntimeError("down")

        with pytest.raises(ProviderError, match="Generation failed"):
            OpenAIGenerator("gpt-test").generate("prompt")
        assert create.call_count == 3


def test_build_prompt() -> None:
    prompt = build_prompt("[From: a.txt]\nFacts", "What?")
    assert prompt.index("Facts") < prompt.index("What?")
    assert prompt.endswith("# Answer")


class TestAnswerGenerator:
    """Test AnswerGenerator.rag_answer."""

    @pytest.fixture
    def corpus(self, fake_embedder) -> CorpusManager:
        corpus = CorpusManager(IndexLimits(embedding_delay=0.0), fake_embedder)
        corpus.add_documents(
            [Document.from_text("ml", "ml.txt", "Neural networks learn representations from data. " * 3)]
        )
        corpus.index()
        return corpus

    def test_rag_answer(self, corpus: CorpusManager) -> None:
        generator = MagicMock()
        generator.generate.return_value = "They learn representations."

        result = AnswerGenerator(Searcher(corpus), generator).rag_answer("neural networks")

        assert result.answer == "They learn representations."
        assert result.context.startswith("[From: ml.txt]\n")
        prompt = generator.generate.call_args.args[0]
        assert result.context in prompt
        assert "neural networks" in prompt

    def test_context_too_small_for_any_chunk(self, corpus: CorpusManager) -> None:
        generator = MagicMock()
        generator.generate.return_value = "answer"

        with pytest.raises(ProviderError, match="No relevant context"):
            AnswerGenerator(Searcher(corpus), generator, max_context_length=10).rag_answer("neural")
        generator.generate.assert_not_called()

    def test_nothing_indexed(self) -> None:
        generator = MagicMock()
        with pytest.raises(ProviderError, match="No indexed content"):
            AnswerGenerator(Searcher(CorpusManager()), generator).rag_answer("anything")

    def test_no_matching_context(self, corpus: CorpusManager) -> None:
        generator = MagicMock()
        with pytest.raises(ProviderError, match="No relevant context"):
            AnswerGenerator(Searcher(corpus), generator).rag_answer("quantum chromodynamics")
        generator.generate.assert_not_called()

    def test_vector_mode_requires_embeddings(self, fake_embedder) -> None:
        corpus = CorpusManager(IndexLimits(embedding_delay=0.0))
        corpus.add_documents([Document.from_text("d", "d.txt", "Some lexical only text here. " * 3)])
        corpus.index()

        with pytest.raises(ProviderError, match="embeddings"):
            AnswerGenerator(Searcher(corpus, fake_embedder), MagicMock(), mode="vector").rag_answer("text")
