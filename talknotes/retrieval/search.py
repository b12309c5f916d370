"""Exhaustive cosine-similarity retrieval over one session's chunks."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from talknotes.ingestion.chunking import build_query_text
from talknotes.ingestion.embeddings import HASHED_MODEL_ID, EmbeddingProvider, hashed_embedding
from talknotes.ingestion.models import StoredChunk

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float] | None, b: Sequence[float] | None) -> float:
    """Cosine similarity; 0.0 for empty, mismatched-length or zero-norm vectors."""
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


@dataclass
class ScoredChunk:
    chunk: StoredChunk
    score: float


@dataclass
class Retrieval:
    """Ranked chunks for one question plus the score used for gating."""

    chunks: list[ScoredChunk] = field(default_factory=list)
    top_score: float = 0.0


def rank_chunks(
    chunks: Iterable[StoredChunk],
    query_embedding: Sequence[float],
    limit: int = 8,
) -> list[ScoredChunk]:
    """Score every chunk against the query and keep the best *limit*.

    The sort is stable, so equal scores keep their stored order.
    """
    scored = [ScoredChunk(chunk=c, score=cosine_similarity(query_embedding, c.embedding)) for c in chunks]
    scored.sort(key=lambda s: s.score, reverse=True)
    return scored[: max(limit, 0)]


def embed_query(query: str, chunks: Sequence[StoredChunk], provider: EmbeddingProvider) -> list[float]:
    """Embed *query* in the same space as the stored chunks.

    Chunks indexed with the hashed fallback are searched with a hashed query
    vector, whatever the current provider is.
    """
    if chunks and all(c.embedding_model == HASHED_MODEL_ID for c in chunks):
        return hashed_embedding(query)
    result = provider.embed([query])
    return result.vectors[0] if result.vectors else []


def retrieve_relevant_chunks(
    chunks: Sequence[StoredChunk],
    question: str,
    chat_history: Iterable[tuple[str, str]],
    provider: EmbeddingProvider,
    limit: int = 8,
) -> Retrieval:
    """Rank a session's chunks for *question*, folding in recent chat turns.

    Args:
        chunks: Every stored chunk of the session.
        question: The user's question.
        chat_history: ``(role, content)`` pairs, oldest first.
        provider: Embedding provider used when chunks are not hashed.
        limit: Maximum number of chunks to return.

    Returns:
        The ranked chunks and the top score (0.0 when there are none).
    """
    if not chunks:
        return Retrieval()
    query = build_query_text(question, chat_history)
    ranked = rank_chunks(chunks, embed_query(query, chunks, provider), limit=limit)
    top_score = ranked[0].score if ranked else 0.0
    logger.debug("Ranked %d chunks; top score %.3f", len(ranked), top_score)
    return Retrieval(chunks=ranked, top_score=top_score)
