"""Grounded answer generation with chunk citations and a confidence gate."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from typing import Any, Protocol

from anthropic import Anthropic, APIError

from talknotes.errors import UpstreamServiceError
from talknotes.retrieval.search import Retrieval, ScoredChunk

logger = logging.getLogger(__name__)

NOT_COVERED_ANSWER = (
    "That was not covered in this session. What part of the talk should I focus on, "
    "or do you want related background instead?"
)
UNCLEAR_ANSWER = "This was not clearly covered in the session. What specific part should I focus on?"

MAX_QUOTE_CHARS = 320
OFFLINE_EXCERPT_CHARS = 160

ANSWER_TOOL: dict[str, Any] = {
    "name": "answer_with_citations",
    "description": "Return the answer to the user's question and the transcript chunks that support it.",
    "input_schema": {
        "type": "object",
        "properties": {
            "answer": {"type": "string"},
            "citations": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "chunk_id": {"type": "string", "description": "Id of a supplied transcript chunk."},
                        "quote": {"type": "string", "description": "Supporting excerpt from that chunk."},
                    },
                    "required": ["chunk_id"],
                },
            },
        },
        "required": ["answer", "citations"],
    },
}


@dataclass
class Citation:
    chunk_id: str
    start_time_seconds: float
    end_time_seconds: float
    text: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ChatAnswer:
    answer: str
    citations: list[Citation] = field(default_factory=list)
    language: str | None = None


@dataclass
class SessionContext:
    """What the composer knows about the session besides its chunks."""

    title: str | None = None
    topic_context: str | None = None
    speaker_metadata: Any = None
    transcript_language: str | None = None
    language: str = "en"


class ChatComposer(Protocol):
    def compose(
        self,
        question: str,
        context: SessionContext,
        chat_history: Sequence[tuple[str, str]],
        chunks: Sequence[ScoredChunk],
    ) -> ChatAnswer: ...


def is_low_confidence(retrieval: Retrieval, floor: float = 0.15) -> bool:
    """True when the answer must not be generated from these chunks."""
    return not retrieval.chunks or retrieval.top_score < floor


def build_system_prompt(language: str | None, transcript_language: str | None) -> str:
    lines = [
        "You are the session itself. Answer only using the provided transcript chunks.",
        "If the answer is not covered, say so explicitly and ask a follow-up question.",
        "Be concise by default; expand only if asked.",
    ]
    if language:
        lines.append(f"Respond in language: {language}.")
    if transcript_language and language and transcript_language != language:
        lines.append(f"Citations can remain in the original transcript language ({transcript_language}).")
    lines.append("Use the answer_with_citations tool to return the answer and the chunk ids you relied on.")
    return " ".join(lines)


def _format_time(value: float | None) -> str:
    if value is None:
        return "NA"
    return f"{value:g}"


def build_user_prompt(
    question: str,
    context: SessionContext,
    chat_history: Sequence[tuple[str, str]],
    chunks: Sequence[ScoredChunk],
) -> str:
    sections: list[str] = []
    context_lines: list[str] = []
    if context.title:
        context_lines.append(f"Title: {context.title}")
    if context.topic_context:
        context_lines.append(f"Session context: {context.topic_context}")
    if context.speaker_metadata:
        context_lines.append(f"Speaker metadata: {json.dumps(context.speaker_metadata)}")
    if context_lines:
        sections.append("\n".join(context_lines))

    history = "\n".join(
        f"{'Assistant' if role == 'assistant' else 'User'}: {content}" for role, content in chat_history
    )
    if history:
        sections.append(f"Chat history:\n{history}")

    chunk_lines = "\n".join(
        f"[{s.chunk.id}|{_format_time(s.chunk.start_time)}-{_format_time(s.chunk.end_time)}] {s.chunk.content}"
        for s in chunks
    )
    sections.append(f"Transcript chunks:\n{chunk_lines}")
    sections.append(f"Question:\n{question}")
    return "\n\n".join(sections)


def _citation_for(scored: ScoredChunk, quote: str | None = None) -> Citation:
    chunk = scored.chunk
    return Citation(
        chunk_id=chunk.id,
        start_time_seconds=chunk.start_time,
        end_time_seconds=chunk.end_time,
        text=str(quote or chunk.content)[:MAX_QUOTE_CHARS],
    )


def normalize_citations(raw: Any, chunks: Sequence[ScoredChunk]) -> list[Citation]:
    """Keep citations that point at supplied chunks.

    If none survive and chunks were supplied, cite the top-ranked chunk.
    """
    by_id = {s.chunk.id: s for s in chunks}
    citations: list[Citation] = []
    for item in raw if isinstance(raw, list) else []:
        if not isinstance(item, dict):
            continue
        scored = by_id.get(str(item.get("chunk_id") or ""))
        if scored is None:
            continue
        quote = item.get("quote")
        citations.append(_citation_for(scored, str(quote) if quote else None))
    if not citations and chunks:
        citations.append(_citation_for(chunks[0]))
    return citations


class ClaudeChatComposer:
    """Answer from retrieved chunks using Claude's forced tool use."""

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float = 120.0,
        client: Anthropic | None = None,
    ) -> None:
        self._model = model
        self._client = client or Anthropic(api_key=api_key, timeout=timeout, max_retries=0)

    def compose(
        self,
        question: str,
        context: SessionContext,
        chat_history: Sequence[tuple[str, str]],
        chunks: Sequence[ScoredChunk],
    ) -> ChatAnswer:
        try:
            response = self._client.messages.create(
                model=self._model,
                max_tokens=1024,
                temperature=0.2,
                system=build_system_prompt(context.language, context.transcript_language),
                tools=[ANSWER_TOOL],
                tool_choice={"type": "tool", "name": ANSWER_TOOL["name"]},
                messages=[
                    {"role": "user", "content": build_user_prompt(question, context, chat_history, chunks)}
                ],
            )
        except APIError as exc:
            raise UpstreamServiceError(f"Chat completion failed: {exc}") from exc

        data = self._parse_tool_response(response)
        answer = str(data.get("answer") or "").strip()
        return ChatAnswer(
            answer=answer or UNCLEAR_ANSWER,
            citations=normalize_citations(data.get("citations"), chunks),
            language=context.language,
        )

    def _parse_tool_response(self, response: Any) -> dict[str, Any]:
        """Pull the tool input out of the response; ``{}`` if it is unusable."""
        for block in response.content:
            if block.type == "tool_use" and block.name == ANSWER_TOOL["name"]:
                data = block.input
                if isinstance(data, str):
                    try:
                        data = json.loads(data)
                    except ValueError:
                        logger.warning("Chat tool input was not valid JSON")
                        return {}
                return data if isinstance(data, dict) else {}
        logger.warning("Chat response had no %s tool call", ANSWER_TOOL["name"])
        return {}


class OfflineChatComposer:
    """Echo an excerpt of the top chunk; used when no LLM is configured."""

    def compose(
        self,
        question: str,
        context: SessionContext,
        chat_history: Sequence[tuple[str, str]],
        chunks: Sequence[ScoredChunk],
    ) -> ChatAnswer:
        if not chunks:
            return ChatAnswer(answer=NOT_COVERED_ANSWER, language=context.language)
        top = chunks[0]
        return ChatAnswer(
            answer=f"From what was discussed, the session highlights: {top.chunk.content[:OFFLINE_EXCERPT_CHARS]}...",
            citations=[_citation_for(top)],
            language=context.language,
        )


def answer_question(
    question: str,
    context: SessionContext,
    chat_history: Sequence[tuple[str, str]],
    retrieval: Retrieval,
    composer: ChatComposer,
    confidence_floor: float = 0.15,
) -> ChatAnswer:
    """Answer *question*, or return the fixed non-answer below the confidence floor.

    The composer is never called when the gate rejects.
    """
    if is_low_confidence(retrieval, confidence_floor):
        logger.info("Top score %.3f below %.2f; not answering", retrieval.top_score, confidence_floor)
        return ChatAnswer(answer=NOT_COVERED_ANSWER, citations=[], language=context.language)
    return composer.compose(question, context, chat_history, retrieval.chunks)
