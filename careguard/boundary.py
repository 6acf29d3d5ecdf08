"""
Layer 1 — Boundary Validation

The generator classifies its own output on the first line:

    BOUNDARY_CHECK: understanding | awareness | preparation | out_of_bounds

Anything other than one of the three safe scopes is a boundary
violation. The response is blocked outright and the generator is
asked to try again; boundary violations are never rephrased.
"""

from __future__ import annotations

import re

from careguard.types import (
    BoundaryTag,
    CandidateResponse,
    FilterLayer,
    Violation,
    ViolationCategory,
)

ALLOWED_TAGS = frozenset({
    BoundaryTag.UNDERSTANDING,
    BoundaryTag.AWARENESS,
    BoundaryTag.PREPARATION,
})

BOUNDARY_FALLBACK_MESSAGE = (
    "I can help you understand what your medical documents say. "
    "Could you rephrase your question about your documents?"
)

_BOUNDARY_LINE = re.compile(r"^\s*BOUNDARY_CHECK:[ \t]*([^\r\n]*?)[ \t]*(?:\r?\n|$)", re.IGNORECASE)


def parse_boundary_check(raw: str) -> tuple[BoundaryTag, str]:
    """
    Split the boundary tag off raw generator output.

    A missing line or an unrecognised value maps to OUT_OF_BOUNDS so
    the response fails closed at Layer 1. When the line is missing the
    text is returned unchanged.
    """
    m = _BOUNDARY_LINE.match(raw)
    if not m:
        return BoundaryTag.OUT_OF_BOUNDS, raw

    value = m.group(1).strip().lower()
    try:
        tag = BoundaryTag(value)
    except ValueError:
        tag = BoundaryTag.OUT_OF_BOUNDS
    return tag, raw[m.end():].strip()


class BoundaryValidator:
    """Layer 1: reject candidates whose tag is outside the safe scopes."""

    def check(self, candidate: CandidateResponse) -> list[Violation]:
        if candidate.boundary_check in ALLOWED_TAGS:
            return []
        return [
            Violation(
                layer=FilterLayer.BOUNDARY_CHECK,
                category=ViolationCategory.BOUNDARY_VIOLATION,
                matched_text="",
                offset=0,
                length=0,
                reason=f"Boundary tag '{candidate.boundary_check.value}' is outside the allowed scopes",
            )
        ]
