# =============================================================================
# Error Taxonomy
# =============================================================================
#
#   BudgetAssistantError
#   ├── CorpusLoadError     — startup: corpus file missing or malformed (fatal)
#   ├── IndexNotReady       — request arrived before the corpus finished loading
#   ├── InvalidQuery        — empty or non-string query, rejected up front
#   ├── ScoringUnavailable  — embedding call failed / timed out (recoverable)
#   └── GenerationFailure   — LLM call failed / timed out / unusable output
#
# Only CorpusLoadError is process-fatal. The others are scoped to a single
# request and never touch the shared index.
# =============================================================================

from __future__ import annotations


class BudgetAssistantError(Exception):
    """Base class for all errors raised by the assistant."""


class CorpusLoadError(BudgetAssistantError):
    """The evidence corpus could not be loaded."""


class IndexNotReady(BudgetAssistantError):
    """The corpus index has not (successfully) finished loading."""


class InvalidQuery(BudgetAssistantError):
    """The query is empty or not a string."""


class ScoringUnavailable(BudgetAssistantError):
    """The relevance scorer could not score this query."""


class GenerationFailure(BudgetAssistantError):
    """The generation capability failed or returned unusable content."""
