# =============================================================================
# Report Assembler — Fixed Template, Citations, Audit Footer
# =============================================================================
#
# Every answer is a ReportDocument with the same seven numbered sections,
# whichever path produced it:
#
#   1. Question                  — the restated query            (local)
#   2. Summary                   ┐
#   3. Key Budget Measures       │ generated from retrieved context,
#   4. Impact Analysis           │ or the no-evidence statement
#   5. Practical Considerations  ┘
#   6. Evidence Basis            — what the report rests on      (local)
#   7. Sources                   — one citation per chunk        (local)
#   + AuditFooter                — timestamp, registration id, evidence count
#
# Only sections 2–5 ever contain model output. The footer is built from the
# clock and the retrieval count alone, so generated text cannot alter it.
#
# DESIGN DECISION: Frozen dataclasses for the document. Renderers (HTTP
# JSON, markdown, PDF/DOCX/email downstream) receive one uniform shape and
# cannot mutate it on the way out.
# =============================================================================

from __future__ import annotations

import enum
import logging
import secrets
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime

from budget_assistant.agents.retriever import RetrievalResult
from budget_assistant.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Template
# ---------------------------------------------------------------------------

QUESTION_HEADING = "Question"
EVIDENCE_HEADING = "Evidence Basis"
SOURCES_HEADING = "Sources"

GENERATED_HEADINGS: tuple[str, ...] = (
    "Summary",
    "Key Budget Measures",
    "Impact Analysis",
    "Practical Considerations",
)

REPORT_HEADINGS: tuple[str, ...] = (
    QUESTION_HEADING,
    *GENERATED_HEADINGS,
    EVIDENCE_HEADING,
    SOURCES_HEADING,
)

NO_EVIDENCE_STATEMENT = (
    "No relevant information was found in the Budget 2025 documents "
    "for this question."
)
UNKNOWN_SOURCE = "Unknown source"


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


class ReportOutcome(str, enum.Enum):
    SUFFICIENT = "sufficient"
    INSUFFICIENT = "insufficient"
    GENERATION_FAILED = "generation_failed"


@dataclass(frozen=True)
class ReportSection:
    number: int
    heading: str
    body: str | tuple[str, ...]


@dataclass(frozen=True)
class AuditFooter:
    timestamp_iso: str
    registration_id: str
    evidence_count: int


@dataclass(frozen=True)
class ReportDocument:
    """A complete report: numbered sections plus the audit footer."""

    title: str
    query: str
    sections: tuple[ReportSection, ...]
    footer: AuditFooter
    outcome: ReportOutcome

    def section(self, heading: str) -> ReportSection:
        for section in self.sections:
            if section.heading == heading:
                return section
        raise KeyError(heading)

    @property
    def citations(self) -> tuple[str, ...]:
        body = self.sections[-1].body
        return body if isinstance(body, tuple) else ()


# ---------------------------------------------------------------------------
# Registration ID & Footer
# ---------------------------------------------------------------------------


def new_nonce() -> str:
    """Four random upper-case hex characters."""
    return secrets.token_hex(2).upper()


def make_registration_id(on: date, nonce: str, evidence_count: int) -> str:
    """
    Traceability token `YYMMDD-XXXX-Ennn`.

    Deterministic for its inputs; uniqueness comes only from the nonce.
    """
    return f"{on:%y%m%d}-{nonce.upper()}-E{evidence_count:03d}"


def build_audit_footer(
    evidence_count: int,
    now: datetime | None = None,
    nonce: str | None = None,
) -> AuditFooter:
    moment = now or datetime.now(UTC)
    return AuditFooter(
        timestamp_iso=moment.isoformat(),
        registration_id=make_registration_id(
            moment.date(), nonce or new_nonce(), evidence_count,
        ),
        evidence_count=evidence_count,
    )


# ---------------------------------------------------------------------------
# Citations
# ---------------------------------------------------------------------------


def build_citations(retrieval: RetrievalResult) -> tuple[str, ...]:
    """One entry per retained chunk, in ranked order."""
    return tuple(
        f"[{i}] {scored.source_label or UNKNOWN_SOURCE}"
        for i, scored in enumerate(retrieval.chunks, 1)
    )


# ---------------------------------------------------------------------------
# Report Builders
# ---------------------------------------------------------------------------


def build_insufficient_report(
    query: str,
    evidence_count: int = 0,
    outcome: ReportOutcome = ReportOutcome.INSUFFICIENT,
    now: datetime | None = None,
    nonce: str | None = None,
) -> ReportDocument:
    """
    The "no evidence" template: section 1 echoes the query, every other
    section carries the fixed no-information statement.

    `evidence_count` is recorded in the footer as-is; it is non-zero when
    this template replaces a report whose generation failed.
    """
    bodies = {heading: NO_EVIDENCE_STATEMENT for heading in REPORT_HEADINGS}
    bodies[QUESTION_HEADING] = query
    return _build(
        query=query,
        bodies=bodies,
        footer=build_audit_footer(evidence_count, now=now, nonce=nonce),
        outcome=outcome,
    )


def build_sufficient_report(
    query: str,
    retrieval: RetrievalResult,
    generated: Mapping[str, str],
    now: datetime | None = None,
    nonce: str | None = None,
) -> ReportDocument:
    """
    Fill the template with generated interior sections and locally built
    question, evidence basis, sources and footer.

    Raises:
        ValueError: If `generated` lacks one of GENERATED_HEADINGS.
    """
    missing = [h for h in GENERATED_HEADINGS if not generated.get(h, "").strip()]
    if missing:
        raise ValueError(f"Generated sections missing: {missing}")

    bodies: dict[str, str | tuple[str, ...]] = {
        heading: generated[heading].strip() for heading in GENERATED_HEADINGS
    }
    bodies[QUESTION_HEADING] = query
    bodies[EVIDENCE_HEADING] = _describe_evidence(retrieval)
    bodies[SOURCES_HEADING] = build_citations(retrieval)

    return _build(
        query=query,
        bodies=bodies,
        footer=build_audit_footer(retrieval.evidence_count, now=now, nonce=nonce),
        outcome=ReportOutcome.SUFFICIENT,
    )


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _build(
    query: str,
    bodies: Mapping[str, str | tuple[str, ...]],
    footer: AuditFooter,
    outcome: ReportOutcome,
) -> ReportDocument:
    sections = tuple(
        ReportSection(number=i, heading=heading, body=bodies[heading])
        for i, heading in enumerate(REPORT_HEADINGS, 1)
    )
    logger.info(
        "Assembled %s report %s (%d evidence chunks)",
        outcome.value, footer.registration_id, footer.evidence_count,
    )
    return ReportDocument(
        title=settings.report_title,
        query=query,
        sections=sections,
        footer=footer,
        outcome=outcome,
    )


def _describe_evidence(retrieval: RetrievalResult) -> str:
    n = retrieval.evidence_count
    plural = "excerpt" if n == 1 else "excerpts"
    return (
        f"This report is based on {n} {plural} from the Budget 2025 "
        f"documents, ranked by {retrieval.scorer_name} relevance "
        f"(minimum score {retrieval.min_score:g}). Sections "
        f"2–{1 + len(GENERATED_HEADINGS)} were written only from these "
        "excerpts."
    )
