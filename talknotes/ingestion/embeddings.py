"""Embedding providers: OpenAI text-embedding-3-small and a hashed fallback."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Protocol

from openai import OpenAI

from talknotes.config import Settings
from talknotes.pipeline_config import EmbeddingStrategy

logger = logging.getLogger(__name__)

HASHED_EMBEDDING_DIM = 128
HASHED_MODEL_ID = "hashed-bow-128"


@dataclass
class EmbeddingResult:
    """Vectors for a batch of texts plus the model that produced all of them."""

    vectors: list[list[float]] = field(default_factory=list)
    model: str = HASHED_MODEL_ID


class EmbeddingProvider(Protocol):
    """Anything that turns a batch of texts into vectors."""

    model: str

    def embed(self, texts: list[str]) -> EmbeddingResult: ...


def _hash_token(token: str) -> int:
    """Polynomial (x31) string hash with signed 32-bit wraparound."""
    value = 0
    for char in token:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return abs(value)


def hashed_embedding(text: str, dim: int = HASHED_EMBEDDING_DIM) -> list[float]:
    """Bag-of-words hash embedding, L2-normalised (zero norm treated as 1)."""
    vector = [0.0] * dim
    for token in str(text or "").lower().split():
        vector[_hash_token(token) % dim] += 1.0
    norm = math.sqrt(sum(v * v for v in vector)) or 1.0
    return [v / norm for v in vector]


class HashedEmbeddingProvider:
    """Deterministic, offline embedding provider."""

    model = HASHED_MODEL_ID

    def embed(self, texts: list[str]) -> EmbeddingResult:
        return EmbeddingResult(vectors=[hashed_embedding(t) for t in texts], model=self.model)


class OpenAIEmbeddingProvider:
    """Embed texts using the OpenAI embeddings API."""

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        timeout: float = 60.0,
        client: OpenAI | None = None,
    ) -> None:
        self.model = model
        self._client = client or OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    def embed(self, texts: list[str]) -> EmbeddingResult:
        """Embed *texts*; an empty batch short-circuits without a request.

        Returns:
            One vector per input text, tagged with the OpenAI model name.
        """
        if not texts:
            return EmbeddingResult(vectors=[], model=self.model)
        response = self._client.embeddings.create(input=texts, model=self.model)
        return EmbeddingResult(
            vectors=[item.embedding for item in response.data if item.embedding],
            model=self.model,
        )


class FallbackEmbeddingProvider:
    """Use *primary*, dropping to *fallback* on any error or short response.

    A batch is never split across providers: either every vector comes from
    the primary or every vector comes from the fallback.
    """

    def __init__(self, primary: EmbeddingProvider, fallback: EmbeddingProvider) -> None:
        self.primary = primary
        self.fallback = fallback
        self.model = primary.model

    def embed(self, texts: list[str]) -> EmbeddingResult:
        if not texts:
            return EmbeddingResult(vectors=[], model=self.primary.model)
        try:
            result = self.primary.embed(texts)
        except Exception:
            logger.warning(
                "Embedding via %s failed; falling back to %s",
                self.primary.model,
                self.fallback.model,
                exc_info=True,
            )
            return self.fallback.embed(texts)

        if len(result.vectors) != len(texts):
            logger.warning(
                "Embedding via %s returned %d vectors for %d texts; falling back to %s",
                self.primary.model,
                len(result.vectors),
                len(texts),
                self.fallback.model,
            )
            return self.fallback.embed(texts)
        return result


def get_embedding_provider(
    settings: Settings,
    strategy: str | EmbeddingStrategy | None = None,
) -> EmbeddingProvider:
    """Select the embedding provider once, at startup.

    ``auto`` picks OpenAI when an API key is configured and the hashed
    provider otherwise.  The OpenAI provider is always wrapped so that a
    failing call degrades to hashed vectors instead of raising.
    """
    strategy = EmbeddingStrategy(strategy or settings.embedding_strategy)

    if strategy is EmbeddingStrategy.HASHED:
        return HashedEmbeddingProvider()
    if strategy is EmbeddingStrategy.AUTO and not settings.openai_api_key:
        logger.info("OPENAI_API_KEY not set; using %s embeddings", HASHED_MODEL_ID)
        return HashedEmbeddingProvider()

    return FallbackEmbeddingProvider(
        OpenAIEmbeddingProvider(
            api_key=settings.openai_api_key,
            model=settings.embedding_model,
            timeout=settings.embedding_timeout_seconds,
        ),
        HashedEmbeddingProvider(),
    )
