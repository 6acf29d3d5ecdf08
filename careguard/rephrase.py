"""
Rephrase Engine — Deterministic Rewrite of Flagged Spans

Turns a flagged response into a safe one without a second model call:

    "You have diabetes."          -> "Your documents mention diabetes."
    "You should stop taking it."  -> "You might want to discuss with your
                                      doctor whether to stop taking it."

One pass, no retries. Violations are handled from the end of the text
backwards so earlier offsets stay valid, longer spans first when two
share an offset, and at most one rewrite per offset. The caller must
re-run Layers 2 and 3 on the result before trusting it.

When no rule fires for any violation the engine returns None. It
never hands back a half-rewritten text on that path.
"""

from __future__ import annotations

import re
from typing import Optional

import diff_match_patch as dmp_module

from careguard.registry import PatternRegistry
from careguard.types import RephraseError, Violation, ViolationCategory

# Singleton diff engine
_dmp = dmp_module.diff_match_patch()

_PRONOUN_I = re.compile(r"I\b")


# ============================================================
# FALLBACK MESSAGES
# ============================================================

ALARM_FALLBACK_MESSAGE = (
    "I can help you understand what your medical documents say. "
    "For questions about how you are feeling, your healthcare provider "
    "is the best person to talk to."
)

PRESCRIPTIVE_FALLBACK_MESSAGE = (
    "I can help you understand your documents, but I'm not able to recommend "
    "treatments or actions. Your healthcare provider can help with that. "
    "Would you like me to help you prepare a question for your next appointment?"
)

DIAGNOSTIC_FALLBACK_MESSAGE = (
    "I can share what your documents say, but I'm not able to make diagnoses. "
    "Would you like me to explain what your documents mention?"
)

GENERIC_FALLBACK_MESSAGE = (
    "I can help you understand your medical documents. "
    "Could you rephrase your question about your documents?"
)

# Highest priority first
_FALLBACK_PRIORITY = (
    ({ViolationCategory.ALARM_LANGUAGE}, ALARM_FALLBACK_MESSAGE),
    ({ViolationCategory.PRESCRIPTIVE_LANGUAGE}, PRESCRIPTIVE_FALLBACK_MESSAGE),
    ({ViolationCategory.DIAGNOSTIC_LANGUAGE, ViolationCategory.UNGROUNDED_CLAIM},
     DIAGNOSTIC_FALLBACK_MESSAGE),
)


def select_fallback_message(violations: list[Violation]) -> str:
    """Pick the calm replacement message for the most severe category present."""
    present = {v.category for v in violations}
    for categories, message in _FALLBACK_PRIORITY:
        if present & categories:
            return message
    return GENERIC_FALLBACK_MESSAGE


# ============================================================
# DIFF SPANS
# ============================================================

def compute_diff_spans(original: str, rewritten: str) -> list[dict]:
    """
    Compute deterministic text diffs between original and rewritten.

    Returns spans with type (equal/delete/insert), text, and positions
    in whichever of the two strings the span belongs to.
    """
    diffs = _dmp.diff_main(original, rewritten)
    _dmp.diff_cleanupSemantic(diffs)

    spans = []
    orig_pos = 0
    new_pos = 0

    for op, text in diffs:
        if op == 0:  # EQUAL
            spans.append({
                "type": "equal",
                "text": text,
                "orig_start": orig_pos,
                "orig_end": orig_pos + len(text),
                "new_start": new_pos,
                "new_end": new_pos + len(text),
            })
            orig_pos += len(text)
            new_pos += len(text)
        elif op == -1:  # DELETE
            spans.append({
                "type": "delete",
                "text": text,
                "orig_start": orig_pos,
                "orig_end": orig_pos + len(text),
            })
            orig_pos += len(text)
        elif op == 1:  # INSERT
            spans.append({
                "type": "insert",
                "text": text,
                "new_start": new_pos,
                "new_end": new_pos + len(text),
            })
            new_pos += len(text)

    return spans


# ============================================================
# ENGINE
# ============================================================

def _starts_sentence(text: str, pos: int) -> bool:
    before = text[:pos].rstrip(" \t")
    return not before or before[-1] in ".!?:\n"


def _match_case(original: str, replacement: str, at_sentence_start: bool) -> str:
    if not replacement or not original[:1].isupper():
        return replacement
    # "I" is always uppercase, so it only signals capitalisation at a sentence start
    if _PRONOUN_I.match(original) and not at_sentence_start:
        return replacement
    return replacement[0].upper() + replacement[1:]


class RephraseEngine:
    """Applies category rewrite rules at each violation's offset."""

    def __init__(self, registry: PatternRegistry):
        self._registry = registry

    def rephrase(self, text: str, violations: list[Violation]) -> Optional[str]:
        result = text
        rewritten_at: set[int] = set()

        for v in sorted(violations, key=lambda v: (-v.offset, -v.length)):
            if v.offset in rewritten_at:
                continue
            for rule in self._registry.rules_for(v.category):
                m = rule.regex.match(result, v.offset)
                if not m:
                    continue
                try:
                    expanded = m.expand(rule.template)
                except (re.error, IndexError) as e:
                    raise RephraseError(f"Rule {rule.id} failed to expand") from e
                replacement = _match_case(
                    m.group(0), expanded, _starts_sentence(result, m.start()),
                )
                result = result[:m.start()] + replacement + result[m.end():]
                rewritten_at.add(v.offset)
                break

        if not rewritten_at:
            return None
        return result
