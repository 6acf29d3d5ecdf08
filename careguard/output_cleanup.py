"""
Output Cleanup — Raw Model Output to CandidateResponse

Runs on raw generator output before the safety filter:
  1. Strip model artifacts (thinking-tag prefix, stray <unusedN> tokens)
  2. Split off the BOUNDARY_CHECK line
  3. Append a disclaimer when the text looks cut off
"""

from __future__ import annotations

import re

from careguard.boundary import parse_boundary_check
from careguard.types import CandidateResponse, Citation, QueryType

TRUNCATION_DISCLAIMER = (
    "This response may be incomplete. For comprehensive information about "
    "this topic, please consult your healthcare provider."
)

_THINKING_PREFIX = re.compile(r"^.*?<unused\d+>thought\n", re.DOTALL)
_UNUSED_TOKEN = re.compile(r"<unused\d+>")

_TERMINAL_CHARS = frozenset('.!?:")]')
_SHORT_LIST_ITEM = 20


def sanitize_llm_output(raw: str) -> str:
    text = _THINKING_PREFIX.sub("", raw, count=1)
    text = _UNUSED_TOKEN.sub("", text)
    return text.strip()


def is_likely_truncated(text: str) -> bool:
    """
    Heuristic: no terminal punctuation, or the text ends on a very
    short list item ("- Metf").
    """
    trimmed = text.strip()
    if not trimmed:
        return False

    if trimmed[-1] not in _TERMINAL_CHARS:
        return True

    last_line = trimmed.splitlines()[-1].strip()
    return last_line.startswith(("-", "*")) and len(last_line) < _SHORT_LIST_ITEM


def prepare_candidate(
    raw: str,
    citations: tuple[Citation, ...] = (),
    confidence: float = 0.0,
    query_type: QueryType = QueryType.GENERAL,
) -> CandidateResponse:
    """Clean raw output, read its boundary tag and build the candidate."""
    cleaned = sanitize_llm_output(raw)
    tag, text = parse_boundary_check(cleaned)

    if is_likely_truncated(text):
        text = f"{text}\n\n{TRUNCATION_DISCLAIMER}"

    return CandidateResponse(
        text=text,
        boundary_check=tag,
        citations=tuple(citations),
        confidence=confidence,
        query_type=query_type,
    )
