"""
Orchestrator Tests — The Pipeline End to End

Covers:
  1. Boundary gate (blocks even clean text, asks for regeneration)
  2. Passed / Rephrased / Blocked paths
  3. No-leak: released text re-passes Layers 2 and 3
  4. Fail-closed on internal errors
  5. Logging never carries matched text or response content
  6. Regeneration loop
"""

from __future__ import annotations

import logging

import pytest

from careguard.boundary import BOUNDARY_FALLBACK_MESSAGE
from careguard.config import Settings
from careguard.logging import JSONFormatter
from careguard.orchestrator import FilterOrchestrator, filter_response, sanitize_input
from careguard.registry import get_registry
from careguard.rephrase import (
    ALARM_FALLBACK_MESSAGE,
    GENERIC_FALLBACK_MESSAGE,
    PRESCRIPTIVE_FALLBACK_MESSAGE,
)
from careguard.types import (
    Blocked,
    BoundaryTag,
    CandidateResponse,
    Citation,
    OutcomeKind,
    Passed,
    QueryType,
    Rephrased,
    ViolationCategory,
)


@pytest.fixture
def orchestrator():
    return FilterOrchestrator()


def _candidate(text, tag=BoundaryTag.UNDERSTANDING, **kwargs):
    return CandidateResponse(text=text, boundary_check=tag, **kwargs)


CLEAN = "Your records show a prescription for metformin 500mg, written by Dr. Patel."


# ============================================================
# BOUNDARY GATE
# ============================================================

class TestBoundaryGate:

    def test_out_of_bounds_blocks_clean_text(self, orchestrator):
        result = orchestrator.filter_response(_candidate(CLEAN, BoundaryTag.OUT_OF_BOUNDS))
        assert isinstance(result.outcome, Blocked)
        assert result.outcome.regenerate is True
        assert result.text == BOUNDARY_FALLBACK_MESSAGE
        assert result.outcome.violations[0].category == ViolationCategory.BOUNDARY_VIOLATION

    def test_out_of_bounds_never_rephrased(self, orchestrator):
        result = orchestrator.filter_response(
            _candidate("You have diabetes.", BoundaryTag.OUT_OF_BOUNDS),
        )
        assert result.outcome.kind == OutcomeKind.BLOCKED
        assert result.outcome.regenerate is True


# ============================================================
# OUTCOMES
# ============================================================

class TestPassed:

    def test_clean_text_unchanged(self, orchestrator):
        citation = Citation(document_id="d1", document_title="Prescription")
        result = orchestrator.filter_response(_candidate(
            CLEAN, citations=(citation,), confidence=0.9, query_type=QueryType.FACTUAL,
        ))
        assert isinstance(result.outcome, Passed)
        assert result.text == CLEAN
        assert result.citations == (citation,)
        assert result.confidence == 0.9
        assert result.query_type == QueryType.FACTUAL
        assert result.outcome.violations == []

    def test_grounded_report_passes(self, orchestrator):
        text = "Your documents show that Dr. Chen diagnosed hypertension on 2024-01-15."
        assert isinstance(orchestrator.filter_response(_candidate(text)).outcome, Passed)


class TestRephrased:

    def test_you_have_diabetes(self, orchestrator):
        result = orchestrator.filter_response(_candidate("You have diabetes."))
        assert isinstance(result.outcome, Rephrased)
        assert result.text == "Your documents mention diabetes."
        categories = {v.category for v in result.outcome.original_violations}
        assert ViolationCategory.DIAGNOSTIC_LANGUAGE in categories
        assert ViolationCategory.UNGROUNDED_CLAIM in categories
        assert result.outcome.diff_spans

    @pytest.mark.parametrize("text", [
        "You have diabetes.",
        "You should stop taking aspirin.",
        "This level is dangerous.",
        "Your cholesterol is high.",
        "Honestly, I recommend rest.",
        "You have asthma. This is dangerous.",
    ])
    def test_released_text_is_clean(self, orchestrator, text):
        result = orchestrator.filter_response(_candidate(text))
        assert result.outcome.kind in (OutcomeKind.PASSED, OutcomeKind.REPHRASED)
        assert orchestrator.scan(result.text) == []

    def test_you_have_questions_is_rewritten(self, orchestrator):
        # Known false positive: any "you have <word>" trips the diagnostic group
        result = orchestrator.filter_response(
            _candidate("If you have questions, ask your doctor."),
        )
        assert isinstance(result.outcome, Rephrased)
        assert result.text == "If your documents mention questions, ask your doctor."
        assert {v.category for v in result.outcome.original_violations} == {
            ViolationCategory.DIAGNOSTIC_LANGUAGE, ViolationCategory.UNGROUNDED_CLAIM,
        }


class TestBlocked:

    def test_unrewritable_alarm_gets_calm_fallback(self, orchestrator):
        result = orchestrator.filter_response(_candidate("There is an emergency."))
        assert isinstance(result.outcome, Blocked)
        assert result.outcome.regenerate is False
        assert result.text == ALARM_FALLBACK_MESSAGE
        lowered = result.text.lower()
        for word in ("dangerous", "immediately", "emergency"):
            assert word not in lowered
        assert "healthcare provider" in lowered or "documents" in lowered

    def test_remaining_violations_after_rewrite(self, orchestrator):
        # "Call emergency services" is rewritable, the bare "emergency" is not
        result = orchestrator.filter_response(
            _candidate("Call emergency services, it is an emergency."),
        )
        assert isinstance(result.outcome, Blocked)
        assert result.text == ALARM_FALLBACK_MESSAGE
        assert all(v.category == ViolationCategory.ALARM_LANGUAGE
                   for v in result.outcome.remaining_violations)

    def test_too_many_violations_not_rephrased(self):
        orch = FilterOrchestrator(settings=Settings(MAX_REPHRASABLE_VIOLATIONS=1))
        result = orch.filter_response(_candidate("You should stop taking it. I recommend rest."))
        assert isinstance(result.outcome, Blocked)
        assert result.text == PRESCRIPTIVE_FALLBACK_MESSAGE
        assert len(result.outcome.violations) == 2

    def test_default_cap_blocks_four_violations(self, orchestrator):
        # Each sentence is rewritable on its own
        text = "You should stop taking aspirin. I recommend rest. You have asthma."
        result = orchestrator.filter_response(_candidate(text))
        assert isinstance(result.outcome, Blocked)
        assert len(result.outcome.violations) == 4
        assert result.text == PRESCRIPTIVE_FALLBACK_MESSAGE

    def test_default_cap_allows_three_violations(self, orchestrator):
        result = orchestrator.filter_response(_candidate("You have asthma. This is dangerous."))
        assert isinstance(result.outcome, Rephrased)
        assert len(result.outcome.original_violations) == 3

    def test_blocked_text_never_contains_original(self, orchestrator):
        result = orchestrator.filter_response(_candidate("There is an emergency."))
        assert "There is an emergency" not in result.text


# ============================================================
# FAIL CLOSED
# ============================================================

class TestFailClosed:

    def test_internal_error_blocks(self, orchestrator, monkeypatch):
        def boom(text):
            raise RuntimeError("regex engine failure on: You have cancer")

        monkeypatch.setattr(orchestrator.keywords, "scan", boom)
        result = orchestrator.filter_response(_candidate(CLEAN))
        assert isinstance(result.outcome, Blocked)
        assert result.text == GENERIC_FALLBACK_MESSAGE
        assert result.outcome.regenerate is False

    def test_rephrase_error_blocks(self, orchestrator, monkeypatch):
        def boom(text, violations):
            raise ValueError("bad template")

        monkeypatch.setattr(orchestrator.rephraser, "rephrase", boom)
        result = orchestrator.filter_response(_candidate("You have diabetes."))
        assert result.outcome.kind == OutcomeKind.BLOCKED
        assert result.text == GENERIC_FALLBACK_MESSAGE

    def test_error_log_has_type_only(self, orchestrator, monkeypatch, caplog):
        def boom(text):
            raise RuntimeError("You have cancer")

        monkeypatch.setattr(orchestrator.grounding, "check", boom)
        caplog.set_level(logging.INFO, logger="careguard")
        orchestrator.filter_response(_candidate(CLEAN))

        errors = [r for r in caplog.records if r.levelno >= logging.ERROR]
        assert errors
        assert errors[0].error_type == "RuntimeError"
        for record in caplog.records:
            assert "cancer" not in JSONFormatter().format(record)

    def test_malformed_candidate_blocks(self, orchestrator):
        result = orchestrator.filter_response(
            {"text": "You have cancer.", "boundary_check": "understanding"},
        )
        assert isinstance(result.outcome, Blocked)
        assert result.text == GENERIC_FALLBACK_MESSAGE
        assert result.citations == ()
        assert result.confidence == 0.0
        assert result.query_type == QueryType.GENERAL
        assert result.boundary_check == BoundaryTag.OUT_OF_BOUNDS

    def test_internal_error_keeps_pass_through_fields(self, orchestrator, monkeypatch):
        def boom(text):
            raise RuntimeError("scan failed")

        monkeypatch.setattr(orchestrator.keywords, "scan", boom)
        citation = Citation(document_id="d1", document_title="Lab report")
        result = orchestrator.filter_response(
            _candidate(CLEAN, citations=(citation,), confidence=0.8),
        )
        assert isinstance(result.outcome, Blocked)
        assert result.citations == (citation,)
        assert result.confidence == 0.8


# ============================================================
# LOGGING CONTRACT
# ============================================================

class TestLoggingContract:

    def test_no_matched_text_in_logs(self, orchestrator, caplog):
        caplog.set_level(logging.INFO, logger="careguard")
        orchestrator.filter_response(_candidate("You have diabetes. This is dangerous."))

        assert caplog.records
        for record in caplog.records:
            line = JSONFormatter().format(record)
            assert "diabetes" not in line
            assert "dangerous" not in line
            assert "You have" not in line

    def test_outcome_fields_logged(self, orchestrator, caplog):
        caplog.set_level(logging.INFO, logger="careguard")
        orchestrator.filter_response(_candidate("You have diabetes."))

        record = next(r for r in caplog.records if r.getMessage() == "Filter complete")
        assert record.outcome == "rephrased"
        assert record.violation_count == 2
        assert record.categories == {"diagnostic_language": 1, "ungrounded_claim": 1}
        assert record.layers == ["keyword_scan", "reporting_vs_stating"]

    def test_formatter_drops_unlisted_extras(self):
        record = logging.LogRecord("careguard.test", logging.INFO, __file__, 1, "msg", None, None)
        record.matched_text = "You have diabetes"
        record.outcome = "passed"
        line = JSONFormatter().format(record)
        assert "diabetes" not in line
        assert '"outcome": "passed"' in line


# ============================================================
# REGENERATION
# ============================================================

class TestRegeneration:

    def test_regenerates_after_boundary_block(self, orchestrator):
        candidates = iter([
            _candidate(CLEAN, BoundaryTag.OUT_OF_BOUNDS),
            _candidate(CLEAN, BoundaryTag.UNDERSTANDING),
        ])
        calls = []

        def generate():
            calls.append(1)
            return next(candidates)

        result = orchestrator.filter_with_regeneration(generate)
        assert isinstance(result.outcome, Passed)
        assert len(calls) == 2

    def test_gives_up_after_configured_attempts(self):
        orch = FilterOrchestrator(settings=Settings(MAX_BOUNDARY_REGENERATION_ATTEMPTS=2))
        calls = []

        def generate():
            calls.append(1)
            return _candidate(CLEAN, BoundaryTag.OUT_OF_BOUNDS)

        result = orch.filter_with_regeneration(generate)
        assert len(calls) == 3
        assert result.outcome.regenerate is True
        assert result.text == BOUNDARY_FALLBACK_MESSAGE

    def test_content_block_does_not_regenerate(self, orchestrator):
        calls = []

        def generate():
            calls.append(1)
            return _candidate("There is an emergency.")

        result = orchestrator.filter_with_regeneration(generate)
        assert len(calls) == 1
        assert result.outcome.kind == OutcomeKind.BLOCKED


# ============================================================
# MODULE-LEVEL CONVENIENCE
# ============================================================

class TestConvenience:

    def test_filter_response(self):
        assert filter_response(_candidate(CLEAN)).text == CLEAN

    def test_sanitize_input(self):
        result = sanitize_input("What does my report\u200b say?")
        assert result.text == "What does my report say?"

    def test_shares_registry(self, orchestrator):
        assert orchestrator.registry is get_registry()
