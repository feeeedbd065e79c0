# =============================================================================
# LangGraph Orchestrator — Evidence-Gated Report Pipeline
# =============================================================================
#
# Wires retrieval, the sufficiency gate, generation and assembly into a
# LangGraph StateGraph:
#
#   START ──▶ retrieve ──┬─ SUFFICIENT ───▶ generate ──┬─ ok ────▶ assemble ──▶ END
#                        │                             └─ failed ─┐
#                        └─ INSUFFICIENT ─────────────────────────┴▶ insufficient ──▶ END
#
# Both terminal nodes write a complete ReportDocument into the state, so the
# caller always gets the same shape back.
#
# DESIGN DECISION: The gate is a conditional edge over evaluate_sufficiency().
# The decision lives in one pure function (agents/gate.py) that is tested
# without the graph; the graph only routes on its result.
#
# DESIGN DECISION: Scorer and LLM travel in the state. Tests inject fakes
# per call; production resolves the configured singletons. No checkpointer
# is configured, so non-serialisable objects in the state are fine.
#
# DESIGN DECISION: ScoringUnavailable is handled here, by the caller of the
# scorer, not inside it. With scoring_fallback_to_lexical enabled the whole
# graph is re-run with the lexical scorer; otherwise the error propagates.
# =============================================================================

from __future__ import annotations

import logging
from typing import Any

from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

from budget_assistant.agents.assembler import (
    ReportDocument,
    ReportOutcome,
    build_insufficient_report,
    build_sufficient_report,
)
from budget_assistant.agents.gate import Sufficiency, evaluate_sufficiency
from budget_assistant.agents.retriever import RetrievalResult, retrieve
from budget_assistant.agents.writer import write_sections
from budget_assistant.config import settings
from budget_assistant.errors import GenerationFailure, InvalidQuery, ScoringUnavailable
from budget_assistant.services.corpus import CorpusIndex, EvidenceChunk
from budget_assistant.services.llm import LLMProvider, get_llm_provider
from budget_assistant.services.scoring import (
    LexicalScorer,
    RelevanceScorer,
    get_scorer,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# State Schema
# ---------------------------------------------------------------------------


class ReportState(TypedDict, total=False):
    """
    State flowing through the report graph. total=False so each node only
    returns the keys it sets.
    """

    # --- Input ---
    query: str
    chunks: tuple[EvidenceChunk, ...]
    scorer: RelevanceScorer
    llm: LLMProvider | None

    # --- Intermediate ---
    retrieval: RetrievalResult
    sufficiency: Sufficiency
    generated: dict[str, str] | None
    generation_error: str | None

    # --- Output ---
    report: ReportDocument


# ---------------------------------------------------------------------------
# Node Functions
# ---------------------------------------------------------------------------


async def retrieve_node(state: ReportState) -> dict:
    result = await retrieve(
        query=state["query"],
        chunks=state["chunks"],
        scorer=state["scorer"],
    )
    sufficiency = evaluate_sufficiency(result)
    logger.info(
        "Sufficiency gate: %s (%d chunks)",
        sufficiency.value, result.evidence_count,
    )
    return {"retrieval": result, "sufficiency": sufficiency}


async def generate_node(state: ReportState) -> dict:
    try:
        llm = state.get("llm") or get_llm_provider()
    except ValueError as e:
        # Missing API key: logged loudly, but the request still gets a report
        logger.error("Generation provider unavailable: %s", e)
        return {"generated": None, "generation_error": str(e)}

    try:
        generated = await write_sections(
            query=state["query"],
            retrieval=state["retrieval"],
            llm=llm,
        )
    except GenerationFailure as e:
        logger.warning("Falling back to no-evidence template: %s", e)
        return {"generated": None, "generation_error": str(e)}

    return {"generated": generated, "generation_error": None}


async def assemble_node(state: ReportState) -> dict:
    report = build_sufficient_report(
        query=state["query"],
        retrieval=state["retrieval"],
        generated=state["generated"] or {},
    )
    return {"report": report}


async def insufficient_node(state: ReportState) -> dict:
    outcome = (
        ReportOutcome.INSUFFICIENT
        if state["sufficiency"] is Sufficiency.INSUFFICIENT
        else ReportOutcome.GENERATION_FAILED
    )
    report = build_insufficient_report(
        query=state["query"],
        evidence_count=state["retrieval"].evidence_count,
        outcome=outcome,
    )
    return {"report": report}


def route_after_retrieve(state: ReportState) -> str:
    if state["sufficiency"] is Sufficiency.SUFFICIENT:
        return "generate"
    return "insufficient"


def route_after_generate(state: ReportState) -> str:
    return "assemble" if state.get("generated") else "insufficient"


# ---------------------------------------------------------------------------
# Graph Assembly
# ---------------------------------------------------------------------------

_builder = StateGraph(ReportState)
_builder.add_node("retrieve", retrieve_node)
_builder.add_node("generate", generate_node)
_builder.add_node("assemble", assemble_node)
_builder.add_node("insufficient", insufficient_node)

_builder.add_edge(START, "retrieve")
_builder.add_conditional_edges(
    "retrieve",
    route_after_retrieve,
    {"generate": "generate", "insufficient": "insufficient"},
)
_builder.add_conditional_edges(
    "generate",
    route_after_generate,
    {"assemble": "assemble", "insufficient": "insufficient"},
)
_builder.add_edge("assemble", END)
_builder.add_edge("insufficient", END)

graph = _builder.compile()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


MAX_QUERY_CHARS = 2000


def validate_query(query: Any) -> str:
    """
    Return the trimmed query.

    Raises:
        InvalidQuery: If the query is not a string, is blank, or is longer
            than MAX_QUERY_CHARS.
    """
    if not isinstance(query, str):
        raise InvalidQuery("Query must be a string")
    cleaned = query.strip()
    if not cleaned:
        raise InvalidQuery("Query must not be empty")
    if len(cleaned) > MAX_QUERY_CHARS:
        raise InvalidQuery(f"Query must be at most {MAX_QUERY_CHARS} characters")
    return cleaned


async def generate_report(
    query: Any,
    index: CorpusIndex,
    scorer: RelevanceScorer | None = None,
    llm: LLMProvider | None = None,
    fallback_to_lexical: bool | None = None,
) -> ReportDocument:
    """
    Answer a question with a complete ReportDocument.

    Args:
        query: The user's question (validated before any retrieval work).
        index: The shared, loaded corpus index.
        scorer: Relevance strategy; defaults to the configured scorer.
        llm: Generation provider; defaults to the configured singleton,
            resolved only if the gate reaches the generate step.
        fallback_to_lexical: Re-run with the lexical scorer when the scorer
            is unavailable. Defaults to settings.scoring_fallback_to_lexical.

    Raises:
        InvalidQuery: Empty or non-string query.
        IndexNotReady: The corpus has not finished loading.
        ScoringUnavailable: Scoring failed and no fallback applied.
    """
    cleaned = validate_query(query)
    chunks = index.chunks
    active_scorer = scorer or get_scorer()
    degrade = (
        settings.scoring_fallback_to_lexical
        if fallback_to_lexical is None
        else fallback_to_lexical
    )

    logger.info(
        "Report requested: query='%s', scorer=%s, corpus=%d chunks",
        cleaned[:80], active_scorer.name, len(chunks),
    )

    try:
        return await _run_graph(cleaned, chunks, active_scorer, llm)
    except ScoringUnavailable as e:
        if not degrade or active_scorer.name == LexicalScorer.name:
            raise
        logger.warning(
            "Scorer '%s' unavailable (%s); retrying with lexical scorer",
            active_scorer.name, e,
        )
        return await _run_graph(cleaned, chunks, LexicalScorer(), llm)


async def _run_graph(
    query: str,
    chunks: tuple[EvidenceChunk, ...],
    scorer: RelevanceScorer,
    llm: LLMProvider | None,
) -> ReportDocument:
    initial_state: ReportState = {
        "query": query,
        "chunks": chunks,
        "scorer": scorer,
        "llm": llm,
    }
    result = await graph.ainvoke(initial_state)
    return result["report"]
