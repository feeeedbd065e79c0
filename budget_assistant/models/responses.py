# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# Wire shape of a ReportDocument. Kept separate from the internal frozen
# dataclasses so the JSON contract can evolve without touching the pipeline.
# Chunk embeddings never leave the process.
# =============================================================================

from __future__ import annotations

from pydantic import BaseModel, Field

from budget_assistant.agents.assembler import ReportDocument
from budget_assistant.services.renderer import render_markdown


class HealthResponse(BaseModel):
    """Response for GET /health."""

    status: str = "ok"
    version: str
    service: str
    corpus_state: str = Field(description="not_loaded, loading, ready, failed")
    chunk_count: int | None = Field(
        default=None, description="Chunks in the corpus once ready",
    )


class ReportSectionResponse(BaseModel):
    number: int
    heading: str
    body: str | list[str]


class AuditFooterResponse(BaseModel):
    timestamp_iso: str
    registration_id: str
    evidence_count: int


class ReportResponse(BaseModel):
    """
    Response for POST /ask: the structured report plus a markdown rendering.
    """

    title: str
    question: str = Field(description="The restated question")
    outcome: str = Field(
        description="sufficient, insufficient or generation_failed",
    )
    sections: list[ReportSectionResponse]
    footer: AuditFooterResponse
    evidence_count: int
    report_text: str = Field(description="Markdown rendering of the report")

    @classmethod
    def from_document(cls, report: ReportDocument) -> ReportResponse:
        return cls(
            title=report.title,
            question=report.query,
            outcome=report.outcome.value,
            sections=[
                ReportSectionResponse(
                    number=s.number,
                    heading=s.heading,
                    body=list(s.body) if isinstance(s.body, tuple) else s.body,
                )
                for s in report.sections
            ],
            footer=AuditFooterResponse(
                timestamp_iso=report.footer.timestamp_iso,
                registration_id=report.footer.registration_id,
                evidence_count=report.footer.evidence_count,
            ),
            evidence_count=report.footer.evidence_count,
            report_text=render_markdown(report),
        )
