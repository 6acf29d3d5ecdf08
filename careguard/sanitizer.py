"""
Input Sanitizer — Adversarial Cleanup of Patient Queries

Runs before a query is embedded in a prompt. Four steps, always in
this order:
  1. Strip invisible / zero-width / bidi-control code points
  2. Strip control characters (newline and tab survive)
  3. Replace prompt-injection phrases with the redaction marker
  4. Truncate to the length limit at a whitespace boundary

Every step that changes the text records an InputModification. The
modification says what kind of change was made and how much, never
what was removed.
"""

from __future__ import annotations

import logging
import unicodedata
from typing import Optional

from careguard.config import settings
from careguard.registry import PatternRegistry
from careguard.types import (
    InputModification,
    InputModificationKind,
    SanitizationError,
    SanitizedInput,
)

logger = logging.getLogger(__name__)

# Zero-width, bidi embedding/override/isolate, word joiners, BOM,
# soft hyphen, grapheme joiner, Arabic letter mark, Mongolian vowel separator
_INVISIBLE_RANGES = (
    (0x200B, 0x200F),
    (0x202A, 0x202E),
    (0x2060, 0x2064),
    (0x2066, 0x2069),
    (0xFEFF, 0xFEFF),
    (0x00AD, 0x00AD),
    (0x034F, 0x034F),
    (0x061C, 0x061C),
    (0x180E, 0x180E),
)

_KEPT_CONTROLS = frozenset("\n\t")


def _is_invisible(ch: str) -> bool:
    cp = ord(ch)
    if any(lo <= cp <= hi for lo, hi in _INVISIBLE_RANGES):
        return True
    return unicodedata.category(ch) == "Cf"


def _is_stripped_control(ch: str) -> bool:
    return ch not in _KEPT_CONTROLS and unicodedata.category(ch) == "Cc"


def wrap_query_for_prompt(text: str) -> str:
    """Delimit a sanitized query so the prompt can refer to it as data."""
    return f"<PATIENT_QUERY>\n{text}\n</PATIENT_QUERY>"


class InputSanitizer:

    def __init__(self, registry: PatternRegistry, redaction_marker: Optional[str] = None):
        self._registry = registry
        self._marker = redaction_marker or settings.REDACTION_MARKER

    def sanitize(self, raw: str, max_length: Optional[int] = None) -> SanitizedInput:
        if not isinstance(raw, str):
            raise SanitizationError(f"Expected str input, got {type(raw).__name__}")
        limit = max_length if max_length is not None else settings.MAX_INPUT_LENGTH
        if limit <= 0:
            raise SanitizationError("max_length must be positive")

        text = raw
        mods: list[InputModification] = []

        # 1. Invisible code points
        cleaned = "".join(ch for ch in text if not _is_invisible(ch))
        if cleaned != text:
            mods.append(InputModification(
                kind=InputModificationKind.INVISIBLE_UNICODE_REMOVED,
                description=f"Removed {len(text) - len(cleaned)} invisible or zero-width characters",
            ))
            text = cleaned

        # 2. Control characters
        cleaned = "".join(ch for ch in text if not _is_stripped_control(ch))
        if cleaned != text:
            mods.append(InputModification(
                kind=InputModificationKind.CONTROL_CHARACTER_REMOVED,
                description=f"Removed {len(text) - len(cleaned)} control characters",
            ))
            text = cleaned

        # 3. Injection phrases
        hits = []
        for pattern in self._registry.injection:
            text, n = pattern.regex.subn(lambda _: self._marker, text)
            if n:
                hits.append((pattern.id, n))
        if hits:
            total = sum(n for _, n in hits)
            ids = ", ".join(pid for pid, _ in hits)
            mods.append(InputModification(
                kind=InputModificationKind.INJECTION_PATTERN_REMOVED,
                description=f"Replaced {total} injection phrase(s): {ids}",
            ))

        # 4. Length
        if len(text) > limit:
            original_len = len(text)
            cut = text[:limit]
            boundary = max(cut.rfind(" "), cut.rfind("\n"), cut.rfind("\t"))
            if boundary > 0:
                cut = cut[:boundary]
            text = cut.rstrip()
            mods.append(InputModification(
                kind=InputModificationKind.EXCESSIVE_LENGTH_TRUNCATED,
                description=f"Truncated from {original_len} to {len(text)} characters",
            ))

        if mods:
            logger.info(
                "Input sanitized",
                extra={"modification_kinds": [m.kind.value for m in mods]},
            )

        return SanitizedInput(text=text, was_modified=bool(mods), modifications=tuple(mods))
