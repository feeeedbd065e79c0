# =============================================================================
# Sufficiency Gate
# =============================================================================
#
# The single decision point between the two report outcomes:
#
#   INSUFFICIENT — no chunk survived retrieval, or the context is blank.
#                  Templated "no relevant information" report, no LLM call.
#   SUFFICIENT   — everything else. Interior sections are generated from
#                  the retrieved context.
# =============================================================================

from __future__ import annotations

import enum

from budget_assistant.agents.retriever import RetrievalResult


class Sufficiency(str, enum.Enum):
    SUFFICIENT = "sufficient"
    INSUFFICIENT = "insufficient"


def evaluate_sufficiency(result: RetrievalResult) -> Sufficiency:
    if result.evidence_count == 0 or not result.context_text.strip():
        return Sufficiency.INSUFFICIENT
    return Sufficiency.SUFFICIENT
