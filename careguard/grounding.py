"""
Layer 3 — Reporting vs. Stating

The response may *report* what the patient's documents say; it may
not *state* health facts about the patient on its own authority.

    "Your records show you have type 2 diabetes."   -> reporting (ok)
    "You have type 2 diabetes."                      -> stating   (violation)

The check is scoped to sentences: an ungrounded-pattern match is a
violation only when no grounded pattern (document, professional,
passive or dated attribution, or a [Doc: id] marker) matches in the
same sentence.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from careguard.registry import PatternRegistry
from careguard.types import FilterLayer, Violation, ViolationCategory

# Sentence-final punctuation followed by whitespace and an uppercase letter
_SENTENCE_BREAK = re.compile(r"[.!?](?=\s+[A-Z])")

# Abbreviations that end in a period without ending the sentence.
# Must start at a word boundary so "accept." is not read as "pt."
_ABBREVIATION = re.compile(
    r"(?<![\w.])(?:Dr|Mr|Mrs|Ms|Prof|Jr|Sr|St|vs|etc|e\.g|i\.e|approx|dept|est|avg|"
    r"max|min|vol|no|pt)\.$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Sentence:
    text: str
    offset: int  # index of the first non-blank character in the source text


def _emit(segment: str, base: int, out: list[Sentence]) -> None:
    stripped = segment.strip()
    if stripped:
        lead = len(segment) - len(segment.lstrip())
        out.append(Sentence(text=stripped, offset=base + lead))


def split_into_sentences(text: str) -> list[Sentence]:
    """Split text into trimmed sentences with offsets into the original."""
    sentences: list[Sentence] = []
    line_start = 0

    for line in text.split("\n"):
        seg_start = 0
        for m in _SENTENCE_BREAK.finditer(line):
            if _ABBREVIATION.search(line, seg_start, m.end()):
                continue
            _emit(line[seg_start:m.end()], line_start + seg_start, sentences)
            seg_start = m.end()
        _emit(line[seg_start:], line_start + seg_start, sentences)
        line_start += len(line) + 1

    return sentences


class GroundingChecker:
    """Layer 3: flag health statements with no same-sentence attribution."""

    def __init__(self, registry: PatternRegistry):
        self._registry = registry

    def is_grounded(self, sentence: str) -> bool:
        return any(p.regex.search(sentence) for p in self._registry.grounded)

    def check(self, text: str) -> list[Violation]:
        violations = []
        for sentence in split_into_sentences(text):
            candidates = [
                (pattern, m)
                for pattern in self._registry.ungrounded
                for m in pattern.regex.finditer(sentence.text)
            ]
            if not candidates or self.is_grounded(sentence.text):
                continue

            for pattern, m in candidates:
                violations.append(Violation(
                    layer=FilterLayer.REPORTING_VS_STATING,
                    category=ViolationCategory.UNGROUNDED_CLAIM,
                    matched_text=m.group(0),
                    offset=sentence.offset + m.start(),
                    length=m.end() - m.start(),
                    reason=pattern.description,
                ))

        violations.sort(key=lambda v: (v.offset, -v.length))
        return violations
