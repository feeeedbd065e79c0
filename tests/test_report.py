# =============================================================================
# Unit Tests — Sufficiency Gate, Report Writer, Report Assembler
# =============================================================================
#
# Uses AsyncMock LLM providers; no API keys or network calls.
# =============================================================================

from __future__ import annotations

import asyncio
import json
from datetime import UTC, date, datetime
from unittest.mock import AsyncMock

import pytest

from budget_assistant.agents.assembler import (
    GENERATED_HEADINGS,
    NO_EVIDENCE_STATEMENT,
    REPORT_HEADINGS,
    SOURCES_HEADING,
    UNKNOWN_SOURCE,
    ReportOutcome,
    build_citations,
    build_insufficient_report,
    build_sufficient_report,
    make_registration_id,
    new_nonce,
)
from budget_assistant.agents.gate import Sufficiency, evaluate_sufficiency
from budget_assistant.agents.retriever import RetrievalResult
from budget_assistant.agents.writer import (
    SYSTEM_PROMPT,
    parse_sections,
    write_sections,
)
from budget_assistant.errors import GenerationFailure
from budget_assistant.services.corpus import EvidenceChunk
from budget_assistant.services.llm import LLMResponse
from budget_assistant.services.renderer import render_markdown
from budget_assistant.services.scoring import ScoredChunk


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


FIXED_NOW = datetime(2025, 11, 28, 20, 0, tzinfo=UTC)


def _retrieval(labels: list[str | None], context: str | None = None) -> RetrievalResult:
    chunks = tuple(
        ScoredChunk(
            chunk=EvidenceChunk(id=i, text=f"text {i}", source_label=label),
            score=float(len(labels) - i),
        )
        for i, label in enumerate(labels)
    )
    return RetrievalResult(
        chunks=chunks,
        context_text=context if context is not None else "\n\n".join(c.text for c in chunks),
        evidence_count=len(chunks),
        min_score=1.0,
        scorer_name="lexical",
    )


def _generated_json(**overrides: str) -> str:
    sections = {h: f"{h} text." for h in GENERATED_HEADINGS}
    sections.update(overrides)
    return json.dumps(sections)


def _llm_returning(*contents: str) -> AsyncMock:
    mock_llm = AsyncMock()
    mock_llm.complete.side_effect = [
        LLMResponse(content=c, model="test-model", input_tokens=10, output_tokens=5)
        for c in contents
    ]
    return mock_llm


# ---------------------------------------------------------------------------
# Test: Sufficiency Gate
# ---------------------------------------------------------------------------


class TestSufficiencyGate:
    """Tests for the two-outcome gate."""

    def test_zero_evidence_is_insufficient(self):
        result = RetrievalResult.empty(min_score=1.0, scorer_name="lexical")
        assert evaluate_sufficiency(result) is Sufficiency.INSUFFICIENT

    def test_whitespace_context_is_insufficient(self):
        result = _retrieval(["Red Book"], context="  \n\n ")
        assert evaluate_sufficiency(result) is Sufficiency.INSUFFICIENT

    def test_evidence_is_sufficient(self):
        assert evaluate_sufficiency(_retrieval(["Red Book"])) is Sufficiency.SUFFICIENT


# ---------------------------------------------------------------------------
# Test: Registration ID & Footer
# ---------------------------------------------------------------------------


class TestRegistrationId:
    """Tests for the traceability token."""

    def test_format(self):
        assert make_registration_id(date(2025, 11, 28), "a1f3", 4) == "251128-A1F3-E004"

    def test_deterministic_for_inputs(self):
        first = make_registration_id(date(2026, 1, 2), "00FF", 12)
        second = make_registration_id(date(2026, 1, 2), "00FF", 12)
        assert first == second == "260102-00FF-E012"

    def test_nonce_shape(self):
        nonce = new_nonce()
        assert len(nonce) == 4
        assert nonce == nonce.upper()
        int(nonce, 16)


# ---------------------------------------------------------------------------
# Test: Assembler
# ---------------------------------------------------------------------------


class TestInsufficientReport:
    """Tests for the no-evidence template."""

    def test_template_shape(self):
        report = build_insufficient_report("Inheritance tax?", now=FIXED_NOW, nonce="ABCD")
        assert [s.heading for s in report.sections] == list(REPORT_HEADINGS)
        assert [s.number for s in report.sections] == list(range(1, len(REPORT_HEADINGS) + 1))
        assert report.sections[0].body == "Inheritance tax?"
        assert all(s.body == NO_EVIDENCE_STATEMENT for s in report.sections[1:])
        assert report.outcome is ReportOutcome.INSUFFICIENT

    def test_footer(self):
        report = build_insufficient_report("q", now=FIXED_NOW, nonce="ABCD")
        assert report.footer.evidence_count == 0
        assert report.footer.timestamp_iso == "2025-11-28T20:00:00+00:00"
        assert report.footer.registration_id == "251128-ABCD-E000"

    def test_reproducible(self):
        first = build_insufficient_report("q", now=FIXED_NOW, nonce="ABCD")
        second = build_insufficient_report("q", now=FIXED_NOW, nonce="ABCD")
        assert first == second

    def test_generation_failed_keeps_evidence_count(self):
        report = build_insufficient_report(
            "q", evidence_count=3, outcome=ReportOutcome.GENERATION_FAILED,
        )
        assert report.footer.evidence_count == 3
        assert report.outcome is ReportOutcome.GENERATION_FAILED


class TestSufficientReport:
    """Tests for the generated report assembly."""

    def test_sections_filled_in_order(self):
        retrieval = _retrieval(["Red Book", None])
        generated = {h: f"{h} body" for h in GENERATED_HEADINGS}
        report = build_sufficient_report("VAT threshold", retrieval, generated, now=FIXED_NOW)

        assert [s.heading for s in report.sections] == list(REPORT_HEADINGS)
        assert report.sections[0].body == "VAT threshold"
        for heading in GENERATED_HEADINGS:
            assert report.section(heading).body == f"{heading} body"
        assert report.sections[-1].heading == SOURCES_HEADING
        assert report.outcome is ReportOutcome.SUFFICIENT

    def test_citations_follow_ranked_order(self):
        retrieval = _retrieval(["Red Book", None, "Policy Paper"])
        assert build_citations(retrieval) == (
            "[1] Red Book",
            f"[2] {UNKNOWN_SOURCE}",
            "[3] Policy Paper",
        )

    def test_citations_idempotent(self):
        retrieval = _retrieval(["B", "A", "C"])
        generated = {h: "x" for h in GENERATED_HEADINGS}
        first = build_sufficient_report("q", retrieval, generated)
        second = build_sufficient_report("q", retrieval, generated)
        assert first.citations == second.citations == ("[1] B", "[2] A", "[3] C")

    def test_footer_count_matches_retrieval(self):
        retrieval = _retrieval(["A", "B", "C", "D"])
        generated = {h: "Evidence count: 99" for h in GENERATED_HEADINGS}
        report = build_sufficient_report("q", retrieval, generated, nonce="0000")
        assert report.footer.evidence_count == 4
        assert report.footer.registration_id.endswith("-0000-E004")

    def test_missing_generated_section_rejected(self):
        with pytest.raises(ValueError):
            build_sufficient_report("q", _retrieval(["A"]), {"Summary": "only one"})

    def test_markdown_rendering(self):
        retrieval = _retrieval(["Red Book"])
        generated = {h: f"{h} body" for h in GENERATED_HEADINGS}
        report = build_sufficient_report("VAT?", retrieval, generated, now=FIXED_NOW, nonce="ABCD")
        text = render_markdown(report)
        assert "## 1. Question" in text
        assert "- [1] Red Book" in text
        assert "Registration 251128-ABCD-E001" in text


# ---------------------------------------------------------------------------
# Test: Writer
# ---------------------------------------------------------------------------


class TestParseSections:
    """Tests for LLM output parsing."""

    def test_plain_json(self):
        sections = parse_sections(_generated_json())
        assert list(sections) == list(GENERATED_HEADINGS)

    def test_code_fenced_json(self):
        sections = parse_sections(f"```json\n{_generated_json()}\n```")
        assert sections["Summary"] == "Summary text."

    def test_nested_sections_key(self):
        nested = json.dumps({"sections": json.loads(_generated_json())})
        assert parse_sections(nested)["Impact Analysis"] == "Impact Analysis text."

    def test_empty_content(self):
        with pytest.raises(GenerationFailure, match="empty"):
            parse_sections("   ")

    def test_not_json(self):
        with pytest.raises(GenerationFailure, match="JSON"):
            parse_sections("The VAT threshold rises.")

    def test_blank_section(self):
        with pytest.raises(GenerationFailure, match="Summary"):
            parse_sections(_generated_json(Summary="  "))


class TestWriteSections:
    """Tests for grounded generation with retry."""

    def test_success_first_attempt(self):
        mock_llm = _llm_returning(_generated_json())
        sections = _run(write_sections("VAT?", _retrieval(["A"]), mock_llm, max_attempts=2))
        assert sections["Summary"] == "Summary text."
        mock_llm.complete.assert_called_once()

    def test_grounding_prompt_and_context_sent(self):
        mock_llm = _llm_returning(_generated_json())
        retrieval = _retrieval(["A"], context="VAT threshold raised to £95,000")
        _run(write_sections("VAT?", retrieval, mock_llm))

        call_kwargs = mock_llm.complete.call_args.kwargs
        assert call_kwargs["system"] == SYSTEM_PROMPT
        assert "ONLY from the context" in call_kwargs["system"]
        assert "do not cover this" in call_kwargs["system"]
        assert "Never introduce facts" in call_kwargs["system"]
        user_message = call_kwargs["messages"][0]["content"]
        assert "VAT threshold raised to £95,000" in user_message
        assert "Question: VAT?" in user_message

    def test_retries_once_then_succeeds(self):
        mock_llm = _llm_returning("", _generated_json())
        sections = _run(write_sections("q", _retrieval(["A"]), mock_llm, max_attempts=2))
        assert sections["Summary"] == "Summary text."
        assert mock_llm.complete.call_count == 2

    def test_fails_after_max_attempts(self):
        mock_llm = _llm_returning("not json", "still not json", _generated_json())
        with pytest.raises(GenerationFailure, match="2 attempt"):
            _run(write_sections("q", _retrieval(["A"]), mock_llm, max_attempts=2))
        assert mock_llm.complete.call_count == 2

    def test_provider_error_is_generation_failure(self):
        mock_llm = AsyncMock()
        mock_llm.complete.side_effect = RuntimeError("502 from provider")
        with pytest.raises(GenerationFailure):
            _run(write_sections("q", _retrieval(["A"]), mock_llm, max_attempts=1))

    def test_timeout_is_generation_failure(self):
        async def _hang(**kwargs):
            await asyncio.sleep(10)

        mock_llm = AsyncMock()
        mock_llm.complete.side_effect = _hang
        with pytest.raises(GenerationFailure, match="timed out"):
            _run(write_sections(
                "q", _retrieval(["A"]), mock_llm, timeout=0.01, max_attempts=1,
            ))
