"""Data models for the ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class TranscriptSegment:
    """Uniform representation of a transcript segment (times in seconds)."""

    text: str
    start_time: float = 0.0
    end_time: float = 0.0
    speaker: str | None = None


@dataclass
class Chunk:
    """A chunk ready for embedding and storage."""

    content: str
    start_time: float = 0.0
    end_time: float = 0.0
    speaker: str | None = None
    chunk_index: int = 0


@dataclass
class StoredChunk:
    """A chunk as read back from the chunk table, embedding decoded."""

    id: str
    session_id: str
    content: str
    start_time: float
    end_time: float
    speaker: str | None = None
    embedding: list[float] | None = None
    embedding_model: str | None = None
    chunk_index: int = 0


@dataclass
class IndexResult:
    """Outcome of one (re)indexing pass."""

    chunks_indexed: int
    embedding_model: str | None = None
