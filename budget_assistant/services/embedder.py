# =============================================================================
# Embedding Service — OpenAI-Compatible Embeddings
# =============================================================================
#
# Used on both sides of the embedding scorer:
#   - offline: scripts/embed_corpus.py calls embed_batch() over every chunk
#   - online:  EmbeddingScorer calls embed_query() once per question
#
# The same model (and dimensions) MUST be used on both sides. Vectors from
# different models live in unrelated spaces; comparing them yields numbers
# that look like similarities but mean nothing.
#
# DESIGN DECISION: Sync SDK client. Online callers wrap embed_query() in
# asyncio.to_thread() plus a timeout, which keeps this module identical for
# the offline script and the FastAPI request path.
#
# DESIGN DECISION: No retry logic here. Failures surface to the scorer,
# which reports ScoringUnavailable; the orchestrator owns the fallback policy.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Sequence

from openai import OpenAI

from budget_assistant.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Embedding Client — Lazy Singleton
# ---------------------------------------------------------------------------
# Lazy so that importing this module never requires an API key; the lexical
# scorer deployment never touches it.
# ---------------------------------------------------------------------------

_client: OpenAI | None = None


def _get_client() -> OpenAI:
    """Lazily initialize and cache the embedding client."""
    global _client
    if _client is None:
        resolved_key = settings.openai_api_key or settings.llm_api_key
        if not resolved_key:
            raise ValueError(
                "No API key configured for embeddings. "
                "Set OPENAI_API_KEY or LLM_API_KEY in .env"
            )

        client_kwargs: dict = {
            "api_key": resolved_key,
            "timeout": settings.embedding_timeout_seconds,
        }
        if settings.embedding_base_url:
            client_kwargs["base_url"] = settings.embedding_base_url

        _client = OpenAI(**client_kwargs)

        logger.info(
            "Initialized embedding client (model=%s, base_url=%s)",
            settings.embedding_model,
            settings.embedding_base_url or "https://api.openai.com/v1",
        )
    return _client


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def embed_batch(
    texts: Sequence[str],
    batch_size: int | None = None,
) -> list[list[float]]:
    """
    Embed many texts, returning vectors in the same order as the input.

    Args:
        texts: Chunk texts to embed.
        batch_size: Texts per API call. Defaults to
            settings.embedding_batch_size.

    Raises:
        ValueError: If no API key is configured.
        openai.APIError: If the API call fails.
    """
    if not texts:
        return []

    client = _get_client()
    _batch_size = batch_size or settings.embedding_batch_size

    all_embeddings: list[list[float]] = [[] for _ in texts]

    for start in range(0, len(texts), _batch_size):
        batch = list(texts[start : start + _batch_size])
        logger.info(
            "Embedding texts %d–%d of %d (model=%s)",
            start + 1,
            min(start + _batch_size, len(texts)),
            len(texts),
            settings.embedding_model,
        )

        create_kwargs: dict = {
            "model": settings.embedding_model,
            "input": batch,
        }
        if settings.embedding_dimensions:
            create_kwargs["dimensions"] = settings.embedding_dimensions

        response = client.embeddings.create(**create_kwargs)

        # Place by response index, not arrival order
        for item in response.data:
            all_embeddings[start + item.index] = item.embedding

    return all_embeddings


def embed_query(text: str) -> list[float]:
    """Embed a single question for the online embedding scorer."""
    return embed_batch([text], batch_size=1)[0]
