# =============================================================================
# Relevance Scoring — Pluggable Strategy Protocol
# =============================================================================
#
# Assigns a relevance score to every evidence chunk for a query. Two
# interchangeable strategies sit behind one protocol, selected by
# configuration (settings.scorer_type) rather than by editing the pipeline:
#
#   RelevanceScorer (Protocol)
#   ├── LexicalScorer   — distinct query words contained in the chunk text
#   │                     deterministic, no external calls, score >= 0
#   └── EmbeddingScorer — cosine similarity of query vs. chunk embeddings
#                         one embedding API call per query, score in [-1, 1]
#
# DESIGN DECISION: Cosine similarity, not raw dot product. Both vectors are
# L2-normalised before the dot product, so corpora embedded with models that
# do not return unit vectors still rank by angle rather than by magnitude.
# Higher is always better; L2 distance is not used anywhere.
#
# DESIGN DECISION: Scorers never fall back. If the embedding call fails or
# times out the scorer raises ScoringUnavailable and the caller decides
# whether to degrade to lexical scoring or report the error.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import math
import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

from budget_assistant.config import settings
from budget_assistant.errors import ScoringUnavailable
from budget_assistant.services.corpus import EvidenceChunk

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"\w+")


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScoredChunk:
    """An evidence chunk with its relevance score for one query."""

    chunk: EvidenceChunk
    score: float

    @property
    def id(self) -> int:
        return self.chunk.id

    @property
    def text(self) -> str:
        return self.chunk.text

    @property
    def source_label(self) -> str | None:
        return self.chunk.source_label


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class RelevanceScorer(Protocol):
    """
    Protocol for relevance scoring strategies.

    `default_min_score` is the threshold used when the deployment does not
    configure one; scores from different strategies are not comparable.
    """

    name: str
    default_min_score: float

    async def score_chunks(
        self,
        query: str,
        chunks: Sequence[EvidenceChunk],
    ) -> list[ScoredChunk]:
        """Score every chunk, returning results in the input order."""
        ...


# ---------------------------------------------------------------------------
# Implementation 1: Lexical overlap
# ---------------------------------------------------------------------------


def tokenize(query: str, stop_words: Iterable[str] = ()) -> list[str]:
    """
    Distinct lowercase words longer than two characters, in first-seen
    order, excluding stop words.
    """
    stop = {w.lower() for w in stop_words}
    tokens: list[str] = []
    for word in _WORD_RE.findall(query.lower()):
        if len(word) > 2 and word not in stop and word not in tokens:
            tokens.append(word)
    return tokens


class LexicalScorer:
    """
    Score = number of distinct query tokens that occur as substrings of the
    chunk text (case-insensitive).
    """

    name = "lexical"
    default_min_score = 1.0

    def __init__(self, stop_words: Iterable[str] | None = None) -> None:
        self._stop_words = frozenset(
            w.lower() for w in (
                settings.lexical_stop_words if stop_words is None else stop_words
            )
        )

    def tokens(self, query: str) -> list[str]:
        return tokenize(query, self._stop_words)

    def score(self, query: str, chunk: EvidenceChunk) -> float:
        return self._score_tokens(self.tokens(query), chunk)

    async def score_chunks(
        self,
        query: str,
        chunks: Sequence[EvidenceChunk],
    ) -> list[ScoredChunk]:
        tokens = self.tokens(query)
        logger.debug("Lexical tokens for query: %s", tokens)
        return [
            ScoredChunk(chunk=chunk, score=self._score_tokens(tokens, chunk))
            for chunk in chunks
        ]

    @staticmethod
    def _score_tokens(tokens: Sequence[str], chunk: EvidenceChunk) -> float:
        haystack = chunk.text.lower()
        return float(sum(1 for token in tokens if token in haystack))


# ---------------------------------------------------------------------------
# Implementation 2: Embedding similarity
# ---------------------------------------------------------------------------


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two equal-length vectors. A zero vector has no
    direction and scores 0.0 against anything.
    """
    if len(a) != len(b):
        raise ValueError(
            f"Vector dimensions differ: {len(a)} vs {len(b)}"
        )
    norm_a = math.sqrt(math.fsum(x * x for x in a))
    norm_b = math.sqrt(math.fsum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return math.fsum(x * y for x, y in zip(a, b)) / (norm_a * norm_b)


class EmbeddingScorer:
    """
    Cosine similarity between the query embedding and each chunk's
    precomputed embedding.

    Args:
        embed_fn: Blocking callable text -> vector. Defaults to the
            configured OpenAI-compatible embedder.
        timeout: Seconds allowed for the query embedding call.
    """

    name = "embedding"
    default_min_score = 0.03

    def __init__(
        self,
        embed_fn: Callable[[str], Sequence[float]] | None = None,
        timeout: float | None = None,
    ) -> None:
        if embed_fn is None:
            from budget_assistant.services.embedder import embed_query
            embed_fn = embed_query
        self._embed_fn = embed_fn
        self._timeout = (
            settings.embedding_timeout_seconds if timeout is None else timeout
        )

    async def embed(self, query: str) -> list[float]:
        """Embed the query, translating every failure to ScoringUnavailable."""
        try:
            vector = await asyncio.wait_for(
                asyncio.to_thread(self._embed_fn, query),
                timeout=self._timeout,
            )
        except TimeoutError as e:
            logger.warning(
                "Query embedding timed out after %.1fs", self._timeout,
            )
            raise ScoringUnavailable(
                f"Embedding call timed out after {self._timeout}s"
            ) from e
        except Exception as e:
            logger.warning("Query embedding failed: %s", e)
            raise ScoringUnavailable(f"Embedding call failed: {e}") from e

        if not vector:
            raise ScoringUnavailable("Embedding call returned an empty vector")
        return list(vector)

    async def score_chunks(
        self,
        query: str,
        chunks: Sequence[EvidenceChunk],
    ) -> list[ScoredChunk]:
        query_vector = await self.embed(query)

        scored: list[ScoredChunk] = []
        for chunk in chunks:
            if chunk.embedding is None:
                raise ScoringUnavailable(
                    f"Chunk {chunk.id} has no embedding; run "
                    "scripts/embed_corpus.py before using the embedding scorer"
                )
            if len(chunk.embedding) != len(query_vector):
                raise ScoringUnavailable(
                    f"Chunk {chunk.id} embedding has {len(chunk.embedding)} "
                    f"dimensions but the query has {len(query_vector)}; "
                    "corpus and queries must use the same embedding model"
                )
            scored.append(ScoredChunk(
                chunk=chunk,
                score=cosine_similarity(query_vector, chunk.embedding),
            ))
        return scored


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------


def get_scorer(
    override_type: str | None = None,
) -> LexicalScorer | EmbeddingScorer:
    """
    Return the configured relevance scorer.

    Reads `scorer_type` from settings:
    - "lexical" → LexicalScorer (default, no external calls)
    - "embedding" → EmbeddingScorer (needs an embedded corpus and API key)
    """
    scorer_type = override_type or settings.scorer_type

    if scorer_type == "embedding":
        return EmbeddingScorer()
    if scorer_type != "lexical":
        raise ValueError(
            f"Unknown scorer type '{scorer_type}'. "
            "Supported types: ['embedding', 'lexical']"
        )
    return LexicalScorer()
