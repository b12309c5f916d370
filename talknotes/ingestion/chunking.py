"""Token-bounded chunking of ordered transcript segments."""

from __future__ import annotations

import math
from collections.abc import Iterable

from talknotes.ingestion.models import Chunk, TranscriptSegment

TOKENS_PER_WORD = 1.3


def estimate_tokens(text: str) -> int:
    """Rough token estimate: ``ceil(word_count * 1.3)``; 0 for empty text."""
    if not text:
        return 0
    return math.ceil(len(text.split()) * TOKENS_PER_WORD)


def chunk_segments(
    segments: Iterable[TranscriptSegment],
    max_tokens: int = 700,
    min_tokens: int = 200,
) -> list[Chunk]:
    """Greedily group consecutive segments into token-bounded chunks.

    A buffer is flushed before adding a segment only when the segment would
    push it over *max_tokens* and the buffer already holds at least
    *min_tokens*.  Whitespace-only segments are skipped entirely.  Chunk
    boundaries always fall on segment boundaries.

    Args:
        segments: Transcript segments in playback order.
        max_tokens: Soft upper bound on a chunk's estimated tokens.
        min_tokens: A buffer smaller than this is never flushed early.

    Returns:
        List of :class:`Chunk` instances with sequential ``chunk_index``.
    """
    chunks: list[Chunk] = []
    texts: list[str] = []
    speakers: set[str | None] = set()
    buffer_tokens = 0
    start: float | None = None
    end: float | None = None

    def flush() -> None:
        nonlocal texts, speakers, buffer_tokens, start, end
        if texts:
            content = " ".join(texts).strip()
            if content:
                chunks.append(
                    Chunk(
                        content=content,
                        start_time=start or 0.0,
                        end_time=end if end is not None else (start or 0.0),
                        # Only tag a speaker when the whole chunk is one voice
                        speaker=next(iter(speakers)) if len(speakers) == 1 else None,
                        chunk_index=len(chunks),
                    )
                )
        texts = []
        speakers = set()
        buffer_tokens = 0
        start = None
        end = None

    for segment in segments:
        text = (segment.text or "").strip()
        if not text:
            continue

        seg_tokens = estimate_tokens(text)
        if buffer_tokens + seg_tokens > max_tokens and buffer_tokens >= min_tokens:
            flush()

        if start is None:
            start = float(segment.start_time or 0.0)
        end = float(segment.end_time if segment.end_time is not None else start)

        texts.append(text)
        speakers.add(segment.speaker)
        buffer_tokens += seg_tokens

    flush()
    return chunks


def build_query_text(question: str, chat_history: Iterable[tuple[str, str]] = ()) -> str:
    """Prefix the question with recent chat turns so follow-ups retrieve well.

    Args:
        question: The new question.
        chat_history: ``(role, content)`` pairs, oldest first.
    """
    lines = [
        f"{'Assistant' if role == 'assistant' else 'User'}: {content}"
        for role, content in chat_history
    ]
    history_text = "\n".join(lines)
    return "\n".join(part for part in (history_text, question) if part)
