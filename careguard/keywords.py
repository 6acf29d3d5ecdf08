"""
Layer 2 — Keyword Scan

Scans the whole response against the diagnostic, prescriptive and
alarm groups. Every match in every group is collected, then nested
matches are collapsed so one phrase is reported once:

    "you should stop taking" (prescriptive)
        contains "stop taking"   -> dropped

The scanner knows nothing about sentences or attribution. Deciding
whether a health statement is grounded is Layer 3's job.
"""

from __future__ import annotations

from careguard.registry import PatternRegistry
from careguard.types import FilterLayer, Violation


def deduplicate_violations(violations: list[Violation]) -> list[Violation]:
    """
    Drop every violation fully contained in an earlier kept one.

    Sorted by (offset asc, length desc), so at a shared offset the
    longest span wins. Partial overlaps are both kept.
    """
    ordered = sorted(violations, key=lambda v: (v.offset, -v.length))
    kept: list[Violation] = []
    for v in ordered:
        if any(k.offset <= v.offset and v.end <= k.end for k in kept):
            continue
        kept.append(v)
    return kept


class KeywordScanner:
    """Layer 2: regex classification over the full response text."""

    def __init__(self, registry: PatternRegistry):
        self._registry = registry

    def scan(self, text: str) -> list[Violation]:
        found = []
        for group in self._registry.keyword_groups:
            for pattern in group:
                for m in pattern.regex.finditer(text):
                    found.append(Violation(
                        layer=FilterLayer.KEYWORD_SCAN,
                        category=pattern.category,
                        matched_text=m.group(0),
                        offset=m.start(),
                        length=m.end() - m.start(),
                        reason=pattern.description,
                    ))
        return deduplicate_violations(found)
