# =============================================================================
# Retrieval Pipeline — Threshold, Rank, Cap
# =============================================================================
#
# Turns per-chunk scores into a bounded, ordered evidence set:
#
#   1. SCORE    — the configured scorer scores every chunk
#   2. FILTER   — drop chunks with score < min_score (equal is kept)
#   3. RANK     — score descending, ties by ascending chunk id
#   4. TOP-K    — keep the first top_k
#   5. CONTEXT  — join texts with a blank line, truncate at max_context_chars
#
# Zero survivors is a normal result (empty chunks, empty context, count 0),
# not an error; the sufficiency gate decides what to do with it.
#
# DESIGN DECISION: Plain async function over a pure ranking core. Only step 1
# can suspend (embedding call); steps 2–5 are pure and tested directly.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from budget_assistant.config import settings
from budget_assistant.services.corpus import EvidenceChunk
from budget_assistant.services.scoring import RelevanceScorer, ScoredChunk

logger = logging.getLogger(__name__)

CONTEXT_SEPARATOR = "\n\n"


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RetrievalResult:
    """
    Evidence retained for one query.

    `chunks` are ordered by score descending; `evidence_count` always equals
    len(chunks). `context_text` may be shorter than the joined chunk texts
    when it hit the configured cap.
    """

    chunks: tuple[ScoredChunk, ...]
    context_text: str
    evidence_count: int
    min_score: float
    scorer_name: str

    @classmethod
    def empty(cls, min_score: float, scorer_name: str) -> RetrievalResult:
        return cls(
            chunks=(),
            context_text="",
            evidence_count=0,
            min_score=min_score,
            scorer_name=scorer_name,
        )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def retrieve(
    query: str,
    chunks: Sequence[EvidenceChunk],
    scorer: RelevanceScorer,
    min_score: float | None = None,
    top_k: int | None = None,
    max_context_chars: int | None = None,
) -> RetrievalResult:
    """
    Score, filter, rank and cap the corpus for one query.

    Args:
        query: The validated, trimmed question.
        chunks: Every chunk in the corpus index.
        scorer: Relevance strategy.
        min_score: Threshold; defaults to settings.retrieval_min_score, then
            to the scorer's own default.
        top_k: Chunks to keep; defaults to settings.retrieval_top_k.
        max_context_chars: Context cap; defaults to settings.max_context_chars.

    Raises:
        ScoringUnavailable: Propagated unchanged from the scorer.
    """
    threshold = _resolve_min_score(min_score, scorer)
    k = settings.retrieval_top_k if top_k is None else top_k
    cap = settings.max_context_chars if max_context_chars is None else max_context_chars

    scored = await scorer.score_chunks(query, chunks)
    ranked = rank_chunks(scored, threshold, k)
    context = build_context(ranked, cap)

    logger.info(
        "Retrieval (%s): %d/%d chunks >= %.3f, kept %d, context %d chars",
        scorer.name,
        sum(1 for s in scored if s.score >= threshold),
        len(scored),
        threshold,
        len(ranked),
        len(context),
    )

    return RetrievalResult(
        chunks=tuple(ranked),
        context_text=context,
        evidence_count=len(ranked),
        min_score=threshold,
        scorer_name=scorer.name,
    )


def rank_chunks(
    scored: Sequence[ScoredChunk],
    min_score: float,
    top_k: int,
) -> list[ScoredChunk]:
    """Filter by threshold, sort by (-score, id), keep the first top_k."""
    if top_k <= 0:
        return []
    kept = [s for s in scored if s.score >= min_score]
    kept.sort(key=lambda s: (-s.score, s.id))
    return kept[:top_k]


def build_context(ranked: Sequence[ScoredChunk], max_chars: int) -> str:
    """Join chunk texts in ranked order; truncate the tail at max_chars."""
    context = CONTEXT_SEPARATOR.join(s.text for s in ranked)
    if max_chars >= 0 and len(context) > max_chars:
        context = context[:max_chars]
    return context


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _resolve_min_score(
    min_score: float | None,
    scorer: RelevanceScorer,
) -> float:
    if min_score is not None:
        return min_score
    if settings.retrieval_min_score is not None:
        return settings.retrieval_min_score
    return scorer.default_min_score
