# =============================================================================
# Integration Tests — Report Graph
# =============================================================================
#
# Runs the compiled LangGraph pipeline end to end over in-memory corpora.
# LLM providers are AsyncMocks; the embedding scorer gets a fake embed
# function. No API keys or network calls.
# =============================================================================

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from budget_assistant.agents import orchestrator, writer
from budget_assistant.agents.assembler import (
    GENERATED_HEADINGS,
    NO_EVIDENCE_STATEMENT,
    REPORT_HEADINGS,
    ReportOutcome,
)
from budget_assistant.agents.gate import Sufficiency
from budget_assistant.agents.orchestrator import (
    MAX_QUERY_CHARS,
    generate_report,
    route_after_generate,
    route_after_retrieve,
    validate_query,
)
from budget_assistant.errors import IndexNotReady, InvalidQuery, ScoringUnavailable
from budget_assistant.services.corpus import CorpusIndex, EvidenceChunk
from budget_assistant.services.llm import LLMResponse
from budget_assistant.services.scoring import EmbeddingScorer, LexicalScorer


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


SCENARIO_INDEX = CorpusIndex.from_chunks([
    EvidenceChunk(id=0, text="VAT threshold raised to £95,000", source_label="Red Book"),
    EvidenceChunk(id=1, text="Fuel duty frozen", source_label="Red Book"),
    EvidenceChunk(id=2, text="Corporation tax unchanged"),
])


def _mock_llm(content: str | None = None) -> AsyncMock:
    if content is None:
        content = json.dumps({h: f"{h}: the VAT threshold rises to £95,000." for h in GENERATED_HEADINGS})
    mock_llm = AsyncMock()
    mock_llm.complete.return_value = LLMResponse(
        content=content, model="test-model", input_tokens=100, output_tokens=50,
    )
    return mock_llm


# ---------------------------------------------------------------------------
# Test: Query Validation
# ---------------------------------------------------------------------------


class TestValidateQuery:
    """Tests for input validation before any retrieval."""

    def test_strips_whitespace(self):
        assert validate_query("  VAT threshold \n") == "VAT threshold"

    def test_blank_rejected(self):
        with pytest.raises(InvalidQuery):
            validate_query("   ")

    def test_non_string_rejected(self):
        with pytest.raises(InvalidQuery):
            validate_query(None)

    def test_overlong_rejected(self):
        with pytest.raises(InvalidQuery, match="at most"):
            validate_query("x" * (MAX_QUERY_CHARS + 1))

    def test_length_measured_after_trimming(self):
        padded = "  " + "x" * MAX_QUERY_CHARS + "  "
        assert len(validate_query(padded)) == MAX_QUERY_CHARS


# ---------------------------------------------------------------------------
# Test: Routing
# ---------------------------------------------------------------------------


class TestRouting:
    """Tests for the conditional edges."""

    def test_sufficient_goes_to_generate(self):
        assert route_after_retrieve({"sufficiency": Sufficiency.SUFFICIENT}) == "generate"

    def test_insufficient_skips_generation(self):
        assert route_after_retrieve({"sufficiency": Sufficiency.INSUFFICIENT}) == "insufficient"

    def test_generated_goes_to_assemble(self):
        assert route_after_generate({"generated": {"Summary": "x"}}) == "assemble"

    def test_failed_generation_goes_to_template(self):
        assert route_after_generate({"generated": None}) == "insufficient"


# ---------------------------------------------------------------------------
# Test: generate_report()
# ---------------------------------------------------------------------------


class TestGenerateReport:
    """End-to-end runs of the report graph."""

    def test_vat_question_produces_sufficient_report(self):
        mock_llm = _mock_llm()
        report = _run(generate_report(
            "VAT threshold", SCENARIO_INDEX, scorer=LexicalScorer(), llm=mock_llm,
        ))

        assert report.outcome is ReportOutcome.SUFFICIENT
        assert [s.heading for s in report.sections] == list(REPORT_HEADINGS)
        assert report.sections[0].body == "VAT threshold"
        assert report.citations == ("[1] Red Book",)
        assert report.footer.evidence_count == 1
        assert report.footer.registration_id.endswith("-E001")
        mock_llm.complete.assert_called_once()

    def test_context_reaches_llm(self):
        mock_llm = _mock_llm()
        _run(generate_report(
            "VAT threshold", SCENARIO_INDEX, scorer=LexicalScorer(), llm=mock_llm,
        ))
        user_message = mock_llm.complete.call_args.kwargs["messages"][0]["content"]
        assert "VAT threshold raised to £95,000" in user_message
        assert "Fuel duty frozen" not in user_message

    def test_no_evidence_skips_generation(self):
        mock_llm = _mock_llm()
        report = _run(generate_report(
            "inheritance tax", SCENARIO_INDEX, scorer=LexicalScorer(), llm=mock_llm,
        ))

        assert report.outcome is ReportOutcome.INSUFFICIENT
        assert report.sections[0].body == "inheritance tax"
        assert all(s.body == NO_EVIDENCE_STATEMENT for s in report.sections[1:])
        assert report.footer.evidence_count == 0
        mock_llm.complete.assert_not_called()

    def test_empty_corpus_is_insufficient(self):
        mock_llm = _mock_llm()
        report = _run(generate_report(
            "VAT threshold", CorpusIndex.from_chunks([]),
            scorer=LexicalScorer(), llm=mock_llm,
        ))
        assert report.outcome is ReportOutcome.INSUFFICIENT
        mock_llm.complete.assert_not_called()

    def test_generation_failure_falls_back_to_template(self):
        mock_llm = AsyncMock()
        mock_llm.complete.side_effect = RuntimeError("provider down")
        report = _run(generate_report(
            "VAT threshold", SCENARIO_INDEX, scorer=LexicalScorer(), llm=mock_llm,
        ))

        assert report.outcome is ReportOutcome.GENERATION_FAILED
        assert all(s.body == NO_EVIDENCE_STATEMENT for s in report.sections[1:])
        assert report.footer.evidence_count == 1
        assert mock_llm.complete.call_count == 2

    def test_generation_timeout_falls_back(self):
        async def _hang(**kwargs):
            await asyncio.sleep(10)

        mock_llm = AsyncMock()
        mock_llm.complete.side_effect = _hang
        with patch.object(writer.settings, "generation_timeout_seconds", 0.01):
            report = _run(generate_report(
                "VAT threshold", SCENARIO_INDEX, scorer=LexicalScorer(), llm=mock_llm,
            ))
        assert report.outcome is ReportOutcome.GENERATION_FAILED

    def test_missing_llm_key_falls_back(self):
        with patch.object(
            orchestrator, "get_llm_provider",
            side_effect=ValueError("LLM_API_KEY is required"),
        ):
            report = _run(generate_report(
                "VAT threshold", SCENARIO_INDEX, scorer=LexicalScorer(), llm=None,
            ))
        assert report.outcome is ReportOutcome.GENERATION_FAILED

    def test_generated_text_cannot_change_footer(self):
        content = json.dumps({h: "Evidence chunks: 42. Registration 000000-ZZZZ-E042" for h in GENERATED_HEADINGS})
        report = _run(generate_report(
            "VAT threshold", SCENARIO_INDEX,
            scorer=LexicalScorer(), llm=_mock_llm(content),
        ))
        assert report.footer.evidence_count == 1
        assert report.footer.registration_id.endswith("-E001")

    def test_blank_query_rejected_before_retrieval(self):
        scorer = AsyncMock()
        scorer.name = "mock"
        with pytest.raises(InvalidQuery):
            _run(generate_report("  ", SCENARIO_INDEX, scorer=scorer, llm=_mock_llm()))
        scorer.score_chunks.assert_not_called()

    def test_index_not_ready(self):
        with pytest.raises(IndexNotReady):
            _run(generate_report(
                "VAT threshold", CorpusIndex(), scorer=LexicalScorer(), llm=_mock_llm(),
            ))

    def test_uses_configured_scorer_by_default(self):
        with patch.object(orchestrator, "get_scorer", return_value=LexicalScorer()) as factory:
            report = _run(generate_report("fuel duty", SCENARIO_INDEX, llm=_mock_llm()))
        factory.assert_called_once()
        assert report.citations == ("[1] Red Book",)


# ---------------------------------------------------------------------------
# Test: Scorer Degradation
# ---------------------------------------------------------------------------


def _broken_embed(text):
    raise ConnectionError("embedding API down")


class TestScorerFallback:
    """Tests for degrading from embedding to lexical scoring."""

    def test_embedding_failure_degrades_to_lexical(self):
        report = _run(generate_report(
            "VAT threshold", SCENARIO_INDEX,
            scorer=EmbeddingScorer(embed_fn=_broken_embed),
            llm=_mock_llm(),
            fallback_to_lexical=True,
        ))
        assert report.outcome is ReportOutcome.SUFFICIENT
        assert "lexical" in report.section("Evidence Basis").body

    def test_embedding_failure_propagates_without_fallback(self):
        with pytest.raises(ScoringUnavailable):
            _run(generate_report(
                "VAT threshold", SCENARIO_INDEX,
                scorer=EmbeddingScorer(embed_fn=_broken_embed),
                llm=_mock_llm(),
                fallback_to_lexical=False,
            ))

    def test_fallback_setting_read_when_not_passed(self):
        with patch.object(orchestrator.settings, "scoring_fallback_to_lexical", False):
            with pytest.raises(ScoringUnavailable):
                _run(generate_report(
                    "VAT threshold", SCENARIO_INDEX,
                    scorer=EmbeddingScorer(embed_fn=_broken_embed),
                    llm=_mock_llm(),
                ))

    def test_embedding_scorer_end_to_end(self):
        index = CorpusIndex.from_chunks([
            EvidenceChunk(id=0, text="VAT", source_label="Red Book", embedding=(1.0, 0.0)),
            EvidenceChunk(id=1, text="Fuel", source_label="Policy Paper", embedding=(0.0, 1.0)),
        ])
        report = _run(generate_report(
            "VAT threshold", index,
            scorer=EmbeddingScorer(embed_fn=lambda text: [1.0, 0.1]),
            llm=_mock_llm(),
        ))
        assert report.outcome is ReportOutcome.SUFFICIENT
        assert report.citations == ("[1] Red Book", "[2] Policy Paper")


# ---------------------------------------------------------------------------
# Test: Cancellation
# ---------------------------------------------------------------------------


class TestCancellation:
    """A cancelled request cancels its generation call and returns nothing."""

    def test_cancel_during_generation_propagates(self):
        started = asyncio.Event()
        finished = []

        async def _slow_complete(**kwargs):
            started.set()
            await asyncio.sleep(10)
            finished.append(True)

        mock_llm = AsyncMock()
        mock_llm.complete.side_effect = _slow_complete

        async def _cancel_mid_generation():
            task = asyncio.create_task(generate_report(
                "VAT threshold", SCENARIO_INDEX, scorer=LexicalScorer(), llm=mock_llm,
            ))
            await asyncio.wait_for(started.wait(), timeout=5)
            task.cancel()
            return await task

        with pytest.raises(asyncio.CancelledError):
            _run(_cancel_mid_generation())
        assert finished == []
        # not retried as a generation failure
        mock_llm.complete.assert_called_once()

