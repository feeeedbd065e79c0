# =============================================================================
# Report Writer — Grounded Generation of the Narrative Sections
# =============================================================================
#
# Called only on the SUFFICIENT path. Sends the question and the retrieved
# context to the LLM and gets back the four interior sections of the report
# as a JSON object keyed by heading.
#
# GROUNDING CONTRACT (in the system prompt):
#   - answer ONLY from the supplied context
#   - say explicitly when the context does not cover something
#   - never introduce facts, figures or dates that are not in the context
#
# FAILURE POLICY: one attempt = one completion under a hard timeout. An
# attempt fails on provider error, timeout, empty content, invalid JSON or a
# missing/blank section. Up to settings.generation_max_attempts attempts are
# made (default 2, i.e. one retry); after that GenerationFailure is raised
# and the orchestrator substitutes the no-evidence template.
#
# asyncio.CancelledError is deliberately not caught: a cancelled request
# cancels the in-flight completion and produces no report at all.
# =============================================================================

from __future__ import annotations

import asyncio
import json
import logging

from budget_assistant.agents.assembler import GENERATED_HEADINGS
from budget_assistant.agents.retriever import RetrievalResult
from budget_assistant.config import settings
from budget_assistant.errors import GenerationFailure
from budget_assistant.services.llm import LLMProvider

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = (
    "You are a public-finance analyst writing a briefing on the UK Budget "
    "2025 documents. You must answer ONLY from the context supplied in the "
    "user message.\n\n"
    "Rules:\n"
    "- Use only information present in the supplied context\n"
    "- If the context does not contain information needed for a section, "
    "state explicitly: 'The Budget documents provided do not cover this.'\n"
    "- Never introduce facts, figures, dates or policies that are not in "
    "the context, even if you believe them to be true\n"
    "- Quote monetary amounts and thresholds exactly as written\n"
    "- Write plain prose; no markdown headings\n\n"
    "Respond with ONLY a valid JSON object (no code fences, no commentary) "
    "whose keys are exactly: "
    + ", ".join(f'"{h}"' for h in GENERATED_HEADINGS)
    + ". Each value is the text of that section as a string."
)


def build_user_message(query: str, retrieval: RetrievalResult) -> str:
    return (
        f"Question: {query}\n\n"
        f"Context ({retrieval.evidence_count} excerpts from the Budget 2025 "
        f"documents):\n\n{retrieval.context_text}"
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def write_sections(
    query: str,
    retrieval: RetrievalResult,
    llm: LLMProvider,
    timeout: float | None = None,
    max_attempts: int | None = None,
) -> dict[str, str]:
    """
    Generate the interior report sections from the retrieved context.

    Returns:
        Mapping of each heading in GENERATED_HEADINGS to non-blank text.

    Raises:
        GenerationFailure: When every attempt failed.
    """
    attempts = max(
        1,
        settings.generation_max_attempts if max_attempts is None else max_attempts,
    )
    limit = settings.generation_timeout_seconds if timeout is None else timeout
    user_message = build_user_message(query, retrieval)

    last_error: GenerationFailure | None = None
    for attempt in range(1, attempts + 1):
        try:
            sections = await _attempt(user_message, llm, limit)
        except GenerationFailure as e:
            last_error = e
            logger.warning(
                "Generation attempt %d/%d failed: %s", attempt, attempts, e,
            )
            continue

        logger.info("Generation succeeded on attempt %d/%d", attempt, attempts)
        return sections

    raise GenerationFailure(
        f"Generation failed after {attempts} attempt(s): {last_error}"
    ) from last_error


def parse_sections(content: str) -> dict[str, str]:
    """
    Parse the model output into heading → text.

    Accepts a bare JSON object, one wrapped in ```json fences, or one nested
    under a "sections" key.

    Raises:
        GenerationFailure: On empty, non-JSON or incomplete output.
    """
    text = _strip_code_fence(content)
    if not text:
        raise GenerationFailure("Generation returned empty content")

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise GenerationFailure(f"Generation output is not valid JSON: {e}") from e

    if isinstance(data, dict) and isinstance(data.get("sections"), dict):
        data = data["sections"]
    if not isinstance(data, dict):
        raise GenerationFailure("Generation output is not a JSON object")

    sections: dict[str, str] = {}
    for heading in GENERATED_HEADINGS:
        value = data.get(heading)
        if not isinstance(value, str) or not value.strip():
            raise GenerationFailure(
                f"Generated section '{heading}' is missing or empty"
            )
        sections[heading] = value.strip()
    return sections


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


async def _attempt(
    user_message: str,
    llm: LLMProvider,
    timeout: float,
) -> dict[str, str]:
    try:
        response = await asyncio.wait_for(
            llm.complete(
                messages=[{"role": "user", "content": user_message}],
                system=SYSTEM_PROMPT,
            ),
            timeout=timeout,
        )
    except TimeoutError as e:
        raise GenerationFailure(f"Generation timed out after {timeout}s") from e
    except Exception as e:
        raise GenerationFailure(f"LLM call failed: {e}") from e

    logger.info(
        "Writer response: model=%s, tokens=%d+%d",
        response.model, response.input_tokens, response.output_tokens,
    )
    return parse_sections(response.content)


def _strip_code_fence(content: str | None) -> str:
    text = (content or "").strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()
