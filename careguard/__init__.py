"""
CareGuard — Fail-Closed Output Safety for Patient-Facing Text

Three deterministic layers sit between a generator and the patient:
Layer 1 checks the self-reported boundary tag, Layer 2 scans for
diagnostic, prescriptive and alarm language, and Layer 3 separates
reporting ("your records show") from stating ("you have"). Flagged
responses get one rule-based rewrite and are re-checked before release.

Public API:
  - FilterOrchestrator:  Runs the full pipeline (fail-closed)
  - filter_response:     Filter one candidate with the default orchestrator
  - sanitize_input:      Clean a patient query before prompting
  - wrap_query_for_prompt: Delimit a sanitized query for the prompt
  - prepare_candidate:   Raw model output -> CandidateResponse
  - get_registry:        The shared, immutable pattern registry

Usage:
    from careguard import CandidateResponse, BoundaryTag, filter_response
    result = filter_response(CandidateResponse("...", BoundaryTag.UNDERSTANDING))
"""

__version__ = "1.0.0"

from careguard.types import (
    BoundaryTag,
    QueryType,
    Citation,
    CandidateResponse,
    FilterLayer,
    ViolationCategory,
    Violation,
    OutcomeKind,
    FilterOutcome,
    Passed,
    Rephrased,
    Blocked,
    FilteredResponse,
    InputModificationKind,
    InputModification,
    SanitizedInput,
    SafetyError,
    RegistryError,
    SanitizationError,
    RephraseError,
)
from careguard.registry import PatternRegistry, get_registry
from careguard.boundary import BoundaryValidator, parse_boundary_check
from careguard.keywords import KeywordScanner, deduplicate_violations
from careguard.grounding import GroundingChecker, split_into_sentences
from careguard.rephrase import RephraseEngine, select_fallback_message
from careguard.sanitizer import InputSanitizer, wrap_query_for_prompt
from careguard.output_cleanup import prepare_candidate, sanitize_llm_output, is_likely_truncated
from careguard.orchestrator import FilterOrchestrator, filter_response, sanitize_input

__all__ = [
    "BoundaryTag",
    "QueryType",
    "Citation",
    "CandidateResponse",
    "FilterLayer",
    "ViolationCategory",
    "Violation",
    "OutcomeKind",
    "FilterOutcome",
    "Passed",
    "Rephrased",
    "Blocked",
    "FilteredResponse",
    "InputModificationKind",
    "InputModification",
    "SanitizedInput",
    "SafetyError",
    "RegistryError",
    "SanitizationError",
    "RephraseError",
    "PatternRegistry",
    "get_registry",
    "BoundaryValidator",
    "parse_boundary_check",
    "KeywordScanner",
    "deduplicate_violations",
    "GroundingChecker",
    "split_into_sentences",
    "RephraseEngine",
    "select_fallback_message",
    "InputSanitizer",
    "wrap_query_for_prompt",
    "prepare_candidate",
    "sanitize_llm_output",
    "is_likely_truncated",
    "FilterOrchestrator",
    "filter_response",
    "sanitize_input",
]
