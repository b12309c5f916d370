"""Tests for the confidence gate, citation handling and chat composers."""

from __future__ import annotations

from unittest.mock import MagicMock

import httpx
import pytest
from anthropic import APIConnectionError

from talknotes.errors import UpstreamServiceError
from talknotes.ingestion.models import StoredChunk
from talknotes.retrieval.generation import (
    NOT_COVERED_ANSWER,
    UNCLEAR_ANSWER,
    ChatAnswer,
    ClaudeChatComposer,
    OfflineChatComposer,
    SessionContext,
    answer_question,
    build_system_prompt,
    build_user_prompt,
    normalize_citations,
)
from talknotes.retrieval.search import Retrieval, ScoredChunk


def _scored(chunk_id: str, text: str, score: float = 0.5) -> ScoredChunk:
    chunk = StoredChunk(id=chunk_id, session_id="s1", content=text, start_time=10.0, end_time=20.0)
    return ScoredChunk(chunk=chunk, score=score)


def _tool_response(payload) -> MagicMock:
    response = MagicMock()
    block = MagicMock()
    block.type = "tool_use"
    block.name = "answer_with_citations"
    block.input = payload
    response.content = [block]
    return response


CONTEXT = SessionContext(title="Vector Search 101", topic_context="databases", language="en")


# ---------------------------------------------------------------------------
# Confidence gate
# ---------------------------------------------------------------------------


class TestAnswerQuestionGate:
    def test_below_floor_returns_fixed_answer_without_model(self) -> None:
        composer = MagicMock()
        retrieval = Retrieval(chunks=[_scored("c1", "text", 0.1499)], top_score=0.1499)
        answer = answer_question("q", CONTEXT, [], retrieval, composer)
        assert answer.answer == NOT_COVERED_ANSWER
        assert answer.citations == []
        composer.compose.assert_not_called()

    def test_exactly_floor_passes(self) -> None:
        composer = MagicMock()
        composer.compose.return_value = ChatAnswer(answer="grounded")
        retrieval = Retrieval(chunks=[_scored("c1", "text", 0.15)], top_score=0.15)
        answer = answer_question("q", CONTEXT, [], retrieval, composer)
        assert answer.answer == "grounded"
        composer.compose.assert_called_once()

    def test_no_chunks_is_rejected(self) -> None:
        composer = MagicMock()
        answer = answer_question("q", CONTEXT, [], Retrieval(), composer)
        assert answer.answer == NOT_COVERED_ANSWER
        assert answer.language == "en"
        composer.compose.assert_not_called()


# ---------------------------------------------------------------------------
# Prompts and citations
# ---------------------------------------------------------------------------


class TestPrompts:
    def test_system_prompt_language_lines(self) -> None:
        prompt = build_system_prompt("de", "en")
        assert "Respond in language: de." in prompt
        assert "original transcript language (en)" in prompt

    def test_system_prompt_same_language(self) -> None:
        assert "original transcript language" not in build_system_prompt("en", "en")

    def test_user_prompt_sections(self) -> None:
        context = SessionContext(
            title="Vector Search 101",
            topic_context="databases",
            speaker_metadata=[{"name": "Ada", "role": "host"}],
        )
        prompt = build_user_prompt("What is HNSW?", context, [("user", "hi")], [_scored("c1", "Graph index.")])
        assert "Title: Vector Search 101" in prompt
        assert "Session context: databases" in prompt
        assert '"name": "Ada"' in prompt
        assert "Chat history:\nUser: hi" in prompt
        assert "[c1|10-20] Graph index." in prompt
        assert prompt.endswith("Question:\nWhat is HNSW?")


class TestNormalizeCitations:
    def test_unknown_ids_dropped(self) -> None:
        chunks = [_scored("c1", "first"), _scored("c2", "second")]
        citations = normalize_citations(
            [{"chunk_id": "c2", "quote": "sec"}, {"chunk_id": "nope", "quote": "x"}], chunks
        )
        assert [c.chunk_id for c in citations] == ["c2"]
        assert citations[0].text == "sec"
        assert (citations[0].start_time_seconds, citations[0].end_time_seconds) == (10.0, 20.0)

    def test_safety_net_cites_top_chunk(self) -> None:
        chunks = [_scored("c1", "first"), _scored("c2", "second")]
        citations = normalize_citations([{"chunk_id": "missing"}], chunks)
        assert [c.chunk_id for c in citations] == ["c1"]
        assert citations[0].text == "first"

    def test_quote_capped(self) -> None:
        citations = normalize_citations([{"chunk_id": "c1"}], [_scored("c1", "x" * 1000)])
        assert len(citations[0].text) == 320

    def test_no_chunks_no_citations(self) -> None:
        assert normalize_citations("garbage", []) == []


# ---------------------------------------------------------------------------
# Composers
# ---------------------------------------------------------------------------


class TestClaudeChatComposer:
    def test_parses_tool_answer(self) -> None:
        client = MagicMock()
        client.messages.create.return_value = _tool_response(
            {"answer": "HNSW is a graph index.", "citations": [{"chunk_id": "c1", "quote": "Graph index."}]}
        )
        composer = ClaudeChatComposer(api_key="test", model="claude-test", client=client)

        answer = composer.compose("What is HNSW?", CONTEXT, [], [_scored("c1", "Graph index.")])

        assert answer.answer == "HNSW is a graph index."
        assert [c.chunk_id for c in answer.citations] == ["c1"]
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["tool_choice"] == {"type": "tool", "name": "answer_with_citations"}
        assert kwargs["model"] == "claude-test"

    def test_string_tool_input(self) -> None:
        client = MagicMock()
        client.messages.create.return_value = _tool_response('{"answer": "Yes.", "citations": []}')
        composer = ClaudeChatComposer(api_key="test", model="claude-test", client=client)
        answer = composer.compose("q", CONTEXT, [], [_scored("c1", "text")])
        assert answer.answer == "Yes."
        assert [c.chunk_id for c in answer.citations] == ["c1"]

    def test_unparseable_response_becomes_clarifying_answer(self) -> None:
        client = MagicMock()
        text_block = MagicMock()
        text_block.type = "text"
        client.messages.create.return_value = MagicMock(content=[text_block])
        composer = ClaudeChatComposer(api_key="test", model="claude-test", client=client)

        answer = composer.compose("q", CONTEXT, [], [_scored("c1", "text")])

        assert answer.answer == UNCLEAR_ANSWER
        assert [c.chunk_id for c in answer.citations] == ["c1"]

    def test_empty_answer_becomes_clarifying_answer(self) -> None:
        client = MagicMock()
        client.messages.create.return_value = _tool_response({"answer": "  ", "citations": []})
        composer = ClaudeChatComposer(api_key="test", model="claude-test", client=client)
        assert composer.compose("q", CONTEXT, [], [_scored("c1", "t")]).answer == UNCLEAR_ANSWER

    def test_transport_error_is_upstream_failure(self) -> None:
        client = MagicMock()
        client.messages.create.side_effect = APIConnectionError(
            request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        )
        composer = ClaudeChatComposer(api_key="test", model="claude-test", client=client)
        with pytest.raises(UpstreamServiceError):
            composer.compose("q", CONTEXT, [], [_scored("c1", "t")])


class TestOfflineChatComposer:
    def test_echoes_top_chunk_excerpt(self) -> None:
        text = "A" * 200
        answer = OfflineChatComposer().compose("q", CONTEXT, [], [_scored("c1", text), _scored("c2", "other")])
        assert answer.answer == f"From what was discussed, the session highlights: {'A' * 160}..."
        assert [c.chunk_id for c in answer.citations] == ["c1"]
        assert answer.language == "en"
