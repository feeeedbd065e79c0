# =============================================================================
# API Dependencies — Corpus Index, Scorer, LLM
# =============================================================================
#
# FastAPI dependencies that hand the shared collaborators to route handlers.
# Each one is a seam for tests via app.dependency_overrides.
#
# DESIGN DECISION: The corpus index lives on app.state (set by the lifespan
# in main.py) and is passed by reference to every request. A request that
# arrives before it is READY gets an explicit 503, never an empty corpus.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from budget_assistant.services.corpus import CorpusIndex
from budget_assistant.services.llm import LLMProvider
from budget_assistant.services.scoring import RelevanceScorer, get_scorer

logger = logging.getLogger(__name__)

NOT_READY_DETAIL = "Corpus index not ready"


def get_corpus_index(request: Request) -> CorpusIndex:
    """
    Return the shared corpus index.

    Raises:
        HTTPException 503: The index is missing or not READY.
    """
    index: CorpusIndex | None = getattr(request.app.state, "corpus_index", None)
    if index is None or not index.is_ready:
        state = index.state.value if index is not None else "missing"
        logger.warning("Request rejected: corpus index is %s", state)
        raise HTTPException(status_code=503, detail=NOT_READY_DETAIL)
    return index


def get_report_scorer() -> RelevanceScorer:
    return get_scorer()


def get_llm() -> LLMProvider | None:
    # None defers to the configured provider, built only when a report
    # actually reaches the generation step.
    return None
