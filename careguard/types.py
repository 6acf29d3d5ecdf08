"""
Core Types — Data Model for the Safety Pipeline

Everything that flows between the filter layers is defined here:
  - CandidateResponse:  what the generator hands us (immutable)
  - Violation:          what a layer reports (ephemeral, never persisted)
  - FilterOutcome:      Passed | Rephrased | Blocked (what the caller gets)
  - SanitizedInput:     cleaned patient query + audit trail of modifications

Violations carry the matched span so the rephrase engine can rewrite it,
but the span is deliberately kept out of repr() and out of every log sink.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


# ============================================================
# ENUMS
# ============================================================

class BoundaryTag(str, Enum):
    """Self-reported scope emitted by the generator on its first line."""
    UNDERSTANDING = "understanding"
    AWARENESS = "awareness"
    PREPARATION = "preparation"
    OUT_OF_BOUNDS = "out_of_bounds"


class QueryType(str, Enum):
    """Upstream intent classification. Passed through untouched."""
    FACTUAL = "factual"
    EXPLORATORY = "exploratory"
    SYMPTOM = "symptom"
    TIMELINE = "timeline"
    GENERAL = "general"


class FilterLayer(str, Enum):
    BOUNDARY_CHECK = "boundary_check"
    KEYWORD_SCAN = "keyword_scan"
    REPORTING_VS_STATING = "reporting_vs_stating"


class ViolationCategory(str, Enum):
    BOUNDARY_VIOLATION = "boundary_violation"
    DIAGNOSTIC_LANGUAGE = "diagnostic_language"
    PRESCRIPTIVE_LANGUAGE = "prescriptive_language"
    ALARM_LANGUAGE = "alarm_language"
    UNGROUNDED_CLAIM = "ungrounded_claim"


class OutcomeKind(str, Enum):
    PASSED = "passed"
    REPHRASED = "rephrased"
    BLOCKED = "blocked"


class InputModificationKind(str, Enum):
    INVISIBLE_UNICODE_REMOVED = "invisible_unicode_removed"
    CONTROL_CHARACTER_REMOVED = "control_character_removed"
    INJECTION_PATTERN_REMOVED = "injection_pattern_removed"
    EXCESSIVE_LENGTH_TRUNCATED = "excessive_length_truncated"


# ============================================================
# CANDIDATE (from the generation collaborator)
# ============================================================

@dataclass(frozen=True)
class Citation:
    """A source citation linking a response claim to a document."""
    document_id: str
    document_title: str
    chunk_text: str = ""
    relevance_score: float = 0.0
    document_date: Optional[str] = None
    professional_name: Optional[str] = None


@dataclass(frozen=True)
class CandidateResponse:
    """A generated response awaiting safety filtering."""
    text: str
    boundary_check: BoundaryTag
    citations: tuple[Citation, ...] = ()
    confidence: float = 0.0
    query_type: QueryType = QueryType.GENERAL


# ============================================================
# VIOLATIONS
# ============================================================

@dataclass(frozen=True)
class Violation:
    """A single safety violation raised by one of the filter layers."""
    layer: FilterLayer
    category: ViolationCategory
    matched_text: str = field(repr=False)  # Never logged
    offset: int                            # str index into the scanned text
    length: int
    reason: str                            # Pattern description, no user content

    @property
    def end(self) -> int:
        return self.offset + self.length


def category_counts(violations: list[Violation]) -> dict[str, int]:
    """Count violations per category. Safe to log."""
    counts: dict[str, int] = {}
    for v in violations:
        counts[v.category.value] = counts.get(v.category.value, 0) + 1
    return counts


# ============================================================
# FILTER OUTCOME (tagged variant)
# ============================================================

@dataclass(frozen=True)
class FilterOutcome:
    """Base for the three outcome variants. Never instantiated directly."""

    @property
    def kind(self) -> OutcomeKind:
        raise NotImplementedError

    @property
    def violations(self) -> list[Violation]:
        return []


@dataclass(frozen=True)
class Passed(FilterOutcome):
    """Response passed every layer without modification."""

    @property
    def kind(self) -> OutcomeKind:
        return OutcomeKind.PASSED


@dataclass(frozen=True)
class Rephrased(FilterOutcome):
    """Response had violations and was rewritten into a clean form."""
    original_violations: tuple[Violation, ...] = ()
    diff_spans: tuple[dict, ...] = ()

    @property
    def kind(self) -> OutcomeKind:
        return OutcomeKind.REPHRASED

    @property
    def violations(self) -> list[Violation]:
        return list(self.original_violations)


@dataclass(frozen=True)
class Blocked(FilterOutcome):
    """Response withheld. The fallback message is shown instead."""
    remaining_violations: tuple[Violation, ...] = ()
    fallback_message: str = ""
    # True only for Layer 1 failures: the generator should try again
    regenerate: bool = False

    @property
    def kind(self) -> OutcomeKind:
        return OutcomeKind.BLOCKED

    @property
    def violations(self) -> list[Violation]:
        return list(self.remaining_violations)


@dataclass(frozen=True)
class FilteredResponse:
    """What the display collaborator receives."""
    text: str
    citations: tuple[Citation, ...]
    confidence: float
    query_type: QueryType
    boundary_check: BoundaryTag
    outcome: FilterOutcome


# ============================================================
# INPUT SANITIZATION
# ============================================================

@dataclass(frozen=True)
class InputModification:
    """A modification made during sanitization. Never holds removed text."""
    kind: InputModificationKind
    description: str


@dataclass(frozen=True)
class SanitizedInput:
    text: str
    was_modified: bool
    modifications: tuple[InputModification, ...] = ()


# ============================================================
# ERRORS
# ============================================================

class SafetyError(Exception):
    """Base class for safety pipeline errors."""


class RegistryError(SafetyError):
    """Pattern registry could not be built. Fatal: nothing may be served."""


class SanitizationError(SafetyError):
    """Input sanitization failed."""


class RephraseError(SafetyError):
    """Rephrase engine hit an internal error (not 'no rule applies')."""
