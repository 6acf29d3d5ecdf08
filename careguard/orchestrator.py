"""
Filter Orchestrator — Fail-Closed Safety Pipeline

Chains the layers for every candidate response:

  1. Layer 1 (boundary)     -> Blocked, regenerate=True
  2. Layers 2 + 3           -> Passed when clean
  3. Too many violations    -> Blocked, no rewrite attempted
  4. Rephrase once, re-run Layers 2 + 3
       clean                -> Rephrased
       still flagged        -> Blocked (calm fallback by severity)
       no rule applied      -> Blocked

Any unexpected error inside the flow resolves to Blocked with the
generic fallback. Nothing unverified is ever released.

Only outcome, categories, layers, counts, error types and durations
are logged. Violation spans and response text never are.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from careguard.boundary import BOUNDARY_FALLBACK_MESSAGE, BoundaryValidator
from careguard.config import Settings, settings as default_settings
from careguard.grounding import GroundingChecker
from careguard.keywords import KeywordScanner
from careguard.registry import PatternRegistry, get_registry
from careguard.rephrase import (
    GENERIC_FALLBACK_MESSAGE,
    RephraseEngine,
    compute_diff_spans,
    select_fallback_message,
)
from careguard.sanitizer import InputSanitizer
from careguard.types import (
    Blocked,
    BoundaryTag,
    CandidateResponse,
    FilteredResponse,
    FilterOutcome,
    Passed,
    QueryType,
    Rephrased,
    SanitizedInput,
    Violation,
    category_counts,
)

logger = logging.getLogger(__name__)


class FilterOrchestrator:
    """
    Owns one instance of every layer, all sharing a single registry.

    Constructing the orchestrator builds the registry if none is
    passed in; a RegistryError raised there is fatal and propagates.
    """

    def __init__(
        self,
        registry: Optional[PatternRegistry] = None,
        settings: Optional[Settings] = None,
    ):
        self.registry = registry or get_registry()
        self.settings = settings or default_settings

        self.boundary = BoundaryValidator()
        self.keywords = KeywordScanner(self.registry)
        self.grounding = GroundingChecker(self.registry)
        self.rephraser = RephraseEngine(self.registry)
        self.sanitizer = InputSanitizer(self.registry, self.settings.REDACTION_MARKER)

    # ------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------

    def scan(self, text: str) -> list[Violation]:
        """Run Layers 2 and 3 and merge their violations by offset."""
        merged = self.keywords.scan(text) + self.grounding.check(text)
        return sorted(merged, key=lambda v: (v.offset, -v.length))

    # ------------------------------------------------------------
    # Filtering
    # ------------------------------------------------------------

    def filter_response(self, candidate: CandidateResponse) -> FilteredResponse:
        start = time.perf_counter()
        try:
            outcome, text = self._run_layers(candidate)
            result = FilteredResponse(
                text=text,
                citations=candidate.citations,
                confidence=candidate.confidence,
                query_type=candidate.query_type,
                boundary_check=candidate.boundary_check,
                outcome=outcome,
            )
        except Exception as e:
            logger.error(
                "Filter raised, blocking response",
                extra={"error_type": type(e).__name__},
            )
            result = _blocked_on_error(candidate)

        self._log_outcome(result.outcome, start)
        return result

    def _run_layers(self, candidate: CandidateResponse) -> tuple[FilterOutcome, str]:
        # --- Layer 1 ---
        boundary = self.boundary.check(candidate)
        if boundary:
            return Blocked(
                remaining_violations=tuple(boundary),
                fallback_message=BOUNDARY_FALLBACK_MESSAGE,
                regenerate=True,
            ), BOUNDARY_FALLBACK_MESSAGE

        # --- Layers 2 + 3 ---
        violations = self.scan(candidate.text)
        if not violations:
            return Passed(), candidate.text

        fallback = select_fallback_message(violations)
        if len(violations) > self.settings.MAX_REPHRASABLE_VIOLATIONS:
            return Blocked(tuple(violations), fallback), fallback

        # --- Rephrase, then reverify ---
        rewritten = self.rephraser.rephrase(candidate.text, violations)
        if rewritten is None:
            return Blocked(tuple(violations), fallback), fallback

        remaining = self.scan(rewritten)
        if remaining:
            return Blocked(tuple(remaining), fallback), fallback

        return Rephrased(
            original_violations=tuple(violations),
            diff_spans=tuple(compute_diff_spans(candidate.text, rewritten)),
        ), rewritten

    def filter_with_regeneration(
        self, generate: Callable[[], CandidateResponse],
    ) -> FilteredResponse:
        """
        Filter generate()'s candidate, asking for a new one after each
        boundary block, up to the configured number of extra attempts.

        Returns the first result that is not a boundary block, or the
        last boundary block once attempts run out.
        """
        attempts = 1 + max(0, self.settings.MAX_BOUNDARY_REGENERATION_ATTEMPTS)
        result = None
        for attempt in range(1, attempts + 1):
            result = self.filter_response(generate())
            outcome = result.outcome
            if not (isinstance(outcome, Blocked) and outcome.regenerate):
                return result
            logger.info("Boundary block, regenerating", extra={"attempt": attempt})
        return result

    # ------------------------------------------------------------
    # Input
    # ------------------------------------------------------------

    def sanitize_input(self, raw: str) -> SanitizedInput:
        return self.sanitizer.sanitize(raw, max_length=self.settings.MAX_INPUT_LENGTH)

    # ------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------

    @staticmethod
    def _log_outcome(outcome: FilterOutcome, start: float) -> None:
        violations = outcome.violations
        logger.info(
            "Filter complete",
            extra={
                "outcome": outcome.kind.value,
                "violation_count": len(violations),
                "categories": category_counts(violations),
                "layers": sorted({v.layer.value for v in violations}),
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )


def _blocked_on_error(candidate) -> FilteredResponse:
    """Generic block. Pass-through fields survive only from a well-formed candidate."""
    if isinstance(candidate, CandidateResponse):
        return FilteredResponse(
            text=GENERIC_FALLBACK_MESSAGE,
            citations=candidate.citations,
            confidence=candidate.confidence,
            query_type=candidate.query_type,
            boundary_check=candidate.boundary_check,
            outcome=Blocked(fallback_message=GENERIC_FALLBACK_MESSAGE),
        )
    return FilteredResponse(
        text=GENERIC_FALLBACK_MESSAGE,
        citations=(),
        confidence=0.0,
        query_type=QueryType.GENERAL,
        boundary_check=BoundaryTag.OUT_OF_BOUNDS,
        outcome=Blocked(fallback_message=GENERIC_FALLBACK_MESSAGE),
    )


# ============================================================
# MODULE-LEVEL CONVENIENCE
# ============================================================

_default: Optional[FilterOrchestrator] = None
_default_lock = threading.Lock()


def get_orchestrator() -> FilterOrchestrator:
    global _default
    if _default is None:
        with _default_lock:
            if _default is None:
                _default = FilterOrchestrator()
    return _default


def filter_response(candidate: CandidateResponse) -> FilteredResponse:
    return get_orchestrator().filter_response(candidate)


def sanitize_input(raw: str) -> SanitizedInput:
    return get_orchestrator().sanitize_input(raw)
