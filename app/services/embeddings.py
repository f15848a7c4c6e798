"""OpenAI embedding client."""

from __future__ import annotations

from typing import List, Optional, Sequence

from openai import OpenAI, OpenAIError

from app.config.logger import app_logger
from app.config.settings import settings
from app.services.exceptions import EmbeddingFailure

_openai_client: OpenAI | None = None


def get_openai_client() -> OpenAI:
    """Return a singleton OpenAI client."""
    global _openai_client
    if _openai_client is None:
        if not settings.OPENAI_API_KEY:
            raise ValueError("OPENAI_API_KEY must be configured")
        _openai_client = OpenAI(
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.REQUEST_TIMEOUT_SECONDS,
        )
        app_logger.info("OpenAI client initialized")
    return _openai_client


def embed_texts(texts: Sequence[str], model: Optional[str] = None) -> List[List[float]]:
    """Create embeddings for a list of texts, in input order."""
    if not texts:
        return []
    client = get_openai_client()
    try:
        response = client.embeddings.create(
            model=model or settings.OPENAI_EMBEDDING_MODEL,
            input=list(texts),
        )
    except OpenAIError as exc:
        raise EmbeddingFailure(f"Embedding request failed: {exc}") from exc
    data = sorted(response.data, key=lambda item: item.index)
    return [item.embedding for item in data]


def embed_chunks(
    texts: Sequence[str],
    model: Optional[str] = None,
    batch_size: Optional[int] = None,
) -> List[List[float]]:
    """Embed every text in ``batch_size`` requests; any failed batch fails the whole call."""
    batch_size = batch_size or settings.EMBEDDING_BATCH_SIZE
    vectors: List[List[float]] = []
    for i in range(0, len(texts), batch_size):
        batch = texts[i : i + batch_size]
        embedded = embed_texts(batch, model=model)
        if len(embedded) != len(batch):
            raise EmbeddingFailure(
                f"Embedding provider returned {len(embedded)} vectors for {len(batch)} inputs"
            )
        vectors.extend(embedded)
    return vectors
