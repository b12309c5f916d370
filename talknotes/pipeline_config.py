"""Pipeline configuration: strategy enums and PipelineConfig dataclass."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class EmbeddingStrategy(str, Enum):
    """Available embedding strategies for chunk indexing and queries."""

    AUTO = "auto"
    OPENAI = "openai"
    HASHED = "hashed"


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable thresholds for the chunk/retrieve/answer pipeline.

    These values are fixed for behavioural compatibility: stored chunk sets
    and chat transcripts produced with other values are not comparable.
    """

    max_chunk_tokens: int = 700
    min_chunk_tokens: int = 200
    retrieval_limit: int = 8
    confidence_floor: float = 0.15
    chat_history_limit: int = 6
    highlight_count: int = 3
