# =============================================================================
# Ask API — Budget Report Endpoint
# =============================================================================
#
# POST /ask runs the evidence-gated report pipeline for one question.
#
# FLOW:
#   1. Validate the request body (Pydantic) and the query (InvalidQuery)
#   2. Run the report graph (retrieve → gate → generate/fallback → assemble)
#   3. Return the structured report plus its markdown rendering
#
# Error handling:
#   - Blank question                    → 400
#   - Corpus not loaded yet             → 503
#   - Scorer unavailable, no fallback   → 503
#   - No evidence / generation failure  → 200 with the no-evidence report
# =============================================================================

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, HTTPException

from budget_assistant.agents.orchestrator import generate_report
from budget_assistant.api.deps import (
    NOT_READY_DETAIL,
    get_corpus_index,
    get_llm,
    get_report_scorer,
)
from budget_assistant.errors import IndexNotReady, InvalidQuery, ScoringUnavailable
from budget_assistant.models.requests import AskRequest
from budget_assistant.models.responses import ReportResponse
from budget_assistant.services.corpus import CorpusIndex
from budget_assistant.services.llm import LLMProvider
from budget_assistant.services.scoring import RelevanceScorer

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Budget Report"])


@router.post(
    "/ask",
    response_model=ReportResponse,
    summary="Generate a Budget 2025 report for a question",
)
async def ask_endpoint(
    request: AskRequest,
    index: CorpusIndex = Depends(get_corpus_index),
    scorer: RelevanceScorer = Depends(get_report_scorer),
    llm: LLMProvider | None = Depends(get_llm),
) -> ReportResponse:
    start_time = time.monotonic()

    try:
        report = await generate_report(
            query=request.question,
            index=index,
            scorer=scorer,
            llm=llm,
        )
    except InvalidQuery as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except IndexNotReady as e:
        raise HTTPException(status_code=503, detail=NOT_READY_DETAIL) from e
    except ScoringUnavailable as e:
        logger.error("Scoring unavailable: %s", e)
        raise HTTPException(
            status_code=503,
            detail=f"Relevance scoring unavailable: {e}",
        ) from e

    logger.info(
        "Report %s (%s) served in %d ms",
        report.footer.registration_id,
        report.outcome.value,
        int((time.monotonic() - start_time) * 1000),
    )
    return ReportResponse.from_document(report)
