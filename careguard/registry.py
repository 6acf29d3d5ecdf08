"""
Pattern Registry — Immutable Detection and Rewrite Tables

This module defines every regex the safety pipeline uses:
  1. Keyword groups (Layer 2): diagnostic, prescriptive, alarm
  2. Grounding groups (Layer 3): ungrounded claims, grounded attributions
  3. Injection group (input sanitizer)
  4. Rephrase rules, keyed by violation category

The tables below are plain data. PatternRegistry.build() compiles
and validates them once; the resulting registry holds only frozen
dataclasses, tuples and compiled patterns, and is shared read-only
by every component on every thread.

A malformed pattern, a rewrite template referencing a group its
pattern does not define, or a violation category with no rule entry
is a RegistryError. That error is fatal: a partially built registry
could silently under-filter, so nothing may be served without one.
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional

from careguard.types import RegistryError, ViolationCategory

_FLAGS = re.IGNORECASE
_REWRITE_FLAGS = re.IGNORECASE | re.MULTILINE


# ============================================================
# DATA STRUCTURES
# ============================================================

@dataclass(frozen=True)
class SafetyPattern:
    """A compiled detection pattern with its violation metadata."""
    id: str
    category: ViolationCategory
    description: str
    regex: re.Pattern


@dataclass(frozen=True)
class AttributionPattern:
    """A pattern with no violation category (grounded or injection)."""
    id: str
    description: str
    regex: re.Pattern


@dataclass(frozen=True)
class RephraseRule:
    """A deterministic rewrite: pattern -> replacement template."""
    id: str
    category: ViolationCategory
    regex: re.Pattern
    template: str  # re expansion syntax, named groups: \g<subject>


# ============================================================
# LAYER 2: KEYWORD GROUPS
# ============================================================

DIAGNOSTIC_PATTERNS: tuple[tuple[str, str, str], ...] = (
    ("DX_YOU_HAVE",
     r"\byou\s+have\s+(?:a\s+)?(?:been\s+)?(?:diagnosed\s+with\s+)?[a-z]",
     "Direct diagnosis: 'you have [condition]'"),
    ("DX_SUFFERING_FROM",
     r"\byou\s+are\s+suffering\s+from\b",
     "Direct diagnosis: 'you are suffering from'"),
    ("DX_SPECULATIVE",
     r"\byou\s+(?:likely|probably|possibly)\s+have\b",
     "Speculative diagnosis: 'you likely/probably have'"),
    ("DX_INDIRECT",
     r"\bthis\s+(?:means|indicates|suggests|confirms)\s+(?:that\s+)?you\s+have\b",
     "Indirect diagnosis: 'this means you have'"),
    ("DX_DIAGNOSED",
     r"\byou\s+(?:are|have\s+been)\s+diagnosed\b",
     "Diagnosis claim without document attribution"),
    ("DX_LABEL",
     r"\byou(?:'re|\s+are)\s+(?:a\s+)?(?:diabetic|hypertensive|anemic|asthmatic)\b",
     "Direct label: 'you are diabetic'"),
    ("DX_CONDITION_IS",
     r"\byour\s+condition\s+is\b",
     "Condition assertion: 'your condition is'"),
    ("DX_APPEAR_TO_HAVE",
     r"\byou\s+(?:appear|seem)\s+to\s+have\b",
     "Implied diagnosis: 'you appear to have'"),
)

PRESCRIPTIVE_PATTERNS: tuple[tuple[str, str, str], ...] = (
    ("RX_YOU_SHOULD",
     r"\byou\s+should\s+(?:take|stop|start|increase|decrease|change|switch|discontinue|avoid|reduce)\b",
     "Direct prescription: 'you should [take/stop/...]'"),
    ("RX_I_RECOMMEND",
     r"\bI\s+recommend\b",
     "Direct recommendation: 'I recommend'"),
    ("RX_I_SUGGEST",
     r"\bI\s+(?:would\s+)?(?:suggest|advise)\b",
     "Advisory language: 'I suggest/advise'"),
    ("RX_NEED_TO",
     r"\byou\s+(?:need|must|have)\s+to\s+(?:take|stop|start|see|visit|go|call|increase|decrease)\b",
     "Imperative prescription: 'you need to [action]'"),
    ("RX_DO_NOT",
     r"\bdo\s+not\s+(?:take|stop|eat|drink|use|skip)\b",
     "Prohibition: 'do not [action]'"),
    ("RX_TRY",
     r"\btry\s+(?:taking|using|adding|reducing)\b",
     "Soft prescription: 'try taking/using'"),
    ("RX_BEST_TREATMENT",
     r"\bthe\s+(?:best|recommended)\s+(?:treatment|course\s+of\s+action|approach)\s+(?:is|would\s+be)\b",
     "Treatment recommendation: 'the best treatment is'"),
    ("RX_CONSIDER",
     r"\bconsider\s+(?:taking|stopping|increasing|decreasing|switching)\b",
     "Soft prescription: 'consider taking/stopping'"),
)

ALARM_PATTERNS: tuple[tuple[str, str, str], ...] = (
    ("AL_DANGER_WORD",
     r"\b(?:dangerous|life[- ]threatening|fatal|deadly|lethal)\b",
     "Alarm word: dangerous/life-threatening/fatal"),
    ("AL_URGENCY_WORD",
     r"\b(?:emergency|urgent(?:ly)?|immediately|right\s+away|right\s+now)\b",
     "Urgency word: emergency/immediately/urgently"),
    ("AL_URGENT_DIRECTIVE",
     r"\b(?:immediately|urgently)\s+(?:go|call|visit|see|seek|get)\b",
     "Urgent directive: 'immediately go/call'"),
    ("AL_CALL_EMERGENCY",
     r"\bcall\s+(?:911|emergency(?:\s+services)?|an\s+ambulance|your\s+doctor\s+(?:immediately|right\s+away|now))\b",
     "Emergency call directive: 'call 911/emergency'"),
    ("AL_GO_TO_ER",
     r"\bgo\s+to\s+(?:the\s+)?(?:emergency(?:\s+room|\s+department)?|ER|hospital|A&E)\b",
     "ER directive: 'go to the emergency/hospital'"),
    ("AL_SEEK_CARE",
     r"\bseek\s+(?:immediate|emergency|urgent)\s+(?:medical\s+)?(?:help|attention|care)\b",
     "Seek care directive: 'seek immediate medical help'"),
    ("AL_DECLARATION",
     r"\bthis\s+(?:is|could\s+be)\s+(?:a\s+|an\s+)?(?:medical\s+)?emergency\b",
     "Emergency declaration: 'this is an emergency'"),
    ("AL_DO_NOT_WAIT",
     r"\bdo\s+not\s+(?:wait|delay|ignore)\b",
     "Urgency pressure: 'do not wait/delay'"),
)


# ============================================================
# LAYER 3: GROUNDING GROUPS
# ============================================================

UNGROUNDED_PATTERNS: tuple[tuple[str, str, str], ...] = (
    ("UG_YOU_HAVE",
     r"\byou\s+have\s+(?:a\s+)?[a-z]",
     "Ungrounded: 'you have [condition]' without document reference"),
    ("UG_LABEL",
     r"\byou(?:'re|\s+are)\s+(?:a\s+)?(?:diabetic|hypertensive|anemic|asthmatic|allergic|"
     r"obese|overweight|immunocompromised)\b",
     "Ungrounded label: 'you are [medical label]'"),
    ("UG_EXPERIENCING",
     r"\byou(?:'ve|\s+have)\s+been\s+(?:experiencing|having|showing)\b",
     "Ungrounded observation: 'you have been experiencing'"),
    ("UG_METRIC_JUDGMENT",
     r"\byour\s+(?:blood\s+pressure|cholesterol|glucose|sugar|levels?|count|heart\s+rate|"
     r"weight|BMI)\s+(?:is|are)\s+(?:high|low|elevated|abnormal|concerning|worrying|critical)\b",
     "Ungrounded value judgment: 'your [metric] is [judgment]'"),
    ("UG_DIAGNOSED_AS",
     r"\byou\s+(?:are|have\s+been)\s+(?:diagnosed|labell?ed|classified)\s+(?:with|as)\b",
     "Ungrounded diagnosis: 'you are diagnosed/labeled as'"),
)

GROUNDED_PATTERNS: tuple[tuple[str, str], ...] = (
    ("GR_DOCUMENT",
     r"\byour\s+(?:documents?|records?|reports?|results?|files?|lab\s+results?|test\s+results?|"
     r"medical\s+records?)\s+(?:show|indicate|mention|state|note|reveal|suggest|describe|"
     r"include|contain|list|record|reference)s?\b"),
    ("GR_PROFESSIONAL",
     r"\b(?:Dr\.?\s+\w+|your\s+(?:doctor|physician|specialist|cardiologist|GP|practitioner|"
     r"healthcare\s+provider))\s+(?:noted|wrote|documented|recorded|diagnosed|prescribed|"
     r"mentioned|indicated|observed|stated|reported)\b"),
    ("GR_PASSIVE",
     r"\b(?:according\s+to|based\s+on|as\s+(?:noted|stated|documented|recorded|mentioned)\s+in)"
     r"\s+(?:your|the)\s+(?:documents?|records?|reports?|results?|files?|prescription|"
     r"discharge\s+summary|clinical\s+notes?)\b"),
    ("GR_CITATION",
     r"\[Doc:\s*[a-f0-9-]+"),
    ("GR_DATED",
     r"\b(?:in|on|from)\s+(?:your|the)\s+(?:January|February|March|April|May|June|July|"
     r"August|September|October|November|December|\d{4}|\d{1,2}/\d{1,2})"),
)


# ============================================================
# INPUT SANITIZER: INJECTION GROUP
# ============================================================

INJECTION_PATTERNS: tuple[tuple[str, str], ...] = (
    ("INJ_IGNORE_PREVIOUS",
     r"\bignore\s+(?:all\s+)?(?:the\s+)?(?:previous|above|prior)\s+(?:instructions?|rules?|prompts?)"),
    ("INJ_FORGET",
     r"\bforget\s+(?:everything|all\s+(?:previous|prior)|your\s+(?:previous\s+|prior\s+)?"
     r"(?:instructions?|rules?|prompts?))"),
    ("INJ_NEW_INSTRUCTIONS",
     r"\bnew\s+instructions?\s*:"),
    ("INJ_ROLE_OVERRIDE",
     r"\byou\s+are\s+now\s+(?:a|an)\s+"),
    ("INJ_SYSTEM_TAG",
     r"\bsystem\s*:"),
    ("INJ_ASSISTANT_TAG",
     r"\bassistant\s*:"),
    ("INJ_LLAMA_SYS",
     r"<<\s*/?SYS\s*>>"),
    ("INJ_INST",
     r"\[/?INST\]"),
    ("INJ_CHATML",
     r"<\|(?:im_start|im_end|system|user|assistant)\|>"),
    ("INJ_WRAPPER_SPOOF",
     r"</?\s*PATIENT_QUERY\s*>"),
    ("INJ_DAN_MODE",
     r"\b(?:DAN|do\s+anything\s+now)\s+mode\b"),
    ("INJ_OVERRIDE_SAFETY",
     r"\boverride\s+(?:your\s+|the\s+)?safety\b"),
    ("INJ_PRETEND_DOCTOR",
     r"\bpretend\s+(?:you\s+are|to\s+be)\s+(?:a|an|my)\s+(?:doctor|physician|medical)"),
    ("INJ_ACT_AS_DOCTOR",
     r"\bact\s+as\s+(?:a|an|my)\s+(?:doctor|physician|medical)"),
)


# ============================================================
# REPHRASE RULES
# ============================================================

# Lazy span up to the next clause punctuation or end of line
_SUBJECT = r"(?P<subject>[\w \t'-]+?)(?P<end>[.!?,;]|$)"

_DIAGNOSED_WITH = r"\byou\s+(?:are|have\s+been)\s+diagnosed\s+with\s+" + _SUBJECT
_EXPERIENCING = r"\byou(?:'ve|\s+have)\s+been\s+(?P<verb>experiencing|having|showing)\s+" + _SUBJECT
_YOU_HAVE = r"\byou\s+have\s+(?!been\b|to\b)" + _SUBJECT

REPHRASE_RULES: dict[ViolationCategory, tuple[tuple[str, str, str], ...]] = {
    # --- Diagnostic -> document-attributed ---
    ViolationCategory.DIAGNOSTIC_LANGUAGE: (
        ("RW_DX_DIAGNOSED_WITH", _DIAGNOSED_WITH,
         r"your documents mention a diagnosis of \g<subject>\g<end>"),
        ("RW_DX_EXPERIENCING", _EXPERIENCING,
         r"your documents describe \g<verb> \g<subject>\g<end>"),
        ("RW_DX_SPECULATIVE",
         r"\byou\s+(?:likely|probably|possibly)\s+have\s+" + _SUBJECT,
         r"your documents may refer to \g<subject>\g<end>"),
        ("RW_DX_SUFFERING_FROM",
         r"\byou\s+are\s+suffering\s+from\s+" + _SUBJECT,
         r"your records reference \g<subject>\g<end>"),
        ("RW_DX_APPEAR_TO_HAVE",
         r"\byou\s+(?:appear|seem)\s+to\s+have\s+" + _SUBJECT,
         r"your documents reference \g<subject>\g<end>"),
        ("RW_DX_INDIRECT",
         r"\bthis\s+(?:means|indicates|suggests|confirms)\s+(?:that\s+)?you\s+have\s+" + _SUBJECT,
         r"this may relate to what your documents say about \g<subject>\g<end>"),
        ("RW_DX_LABEL",
         r"\byou(?:'re|\s+are)\s+(?:a\s+)?(?P<label>diabetic|hypertensive|anemic|asthmatic)\b",
         r"your records indicate a diagnosis related to being \g<label>"),
        ("RW_DX_YOU_HAVE", _YOU_HAVE,
         r"your documents mention \g<subject>\g<end>"),
    ),

    # --- Prescriptive -> suggestion to discuss ---
    ViolationCategory.PRESCRIPTIVE_LANGUAGE: (
        ("RW_RX_YOU_SHOULD",
         r"\byou\s+should\s+(?P<action>take|stop|start|increase|decrease|change|switch|"
         r"discontinue|avoid|reduce)\s+" + _SUBJECT,
         r"you might want to discuss with your doctor whether to \g<action> \g<subject>\g<end>"),
        ("RW_RX_I_RECOMMEND",
         r"\bI\s+recommend\s+" + _SUBJECT,
         r"you may want to ask your healthcare provider about \g<subject>\g<end>"),
        ("RW_RX_I_SUGGEST",
         r"\bI\s+(?:would\s+)?(?:suggest|advise)\s+" + _SUBJECT,
         r"it might be worth asking your doctor about \g<subject>\g<end>"),
        ("RW_RX_NEED_TO",
         r"\byou\s+(?:need|must|have)\s+to\s+(?P<action>take|stop|start|see|visit|go|call|"
         r"increase|decrease)\s+" + _SUBJECT,
         r"you may want to talk with your healthcare provider about whether to "
         r"\g<action> \g<subject>\g<end>"),
        ("RW_RX_DO_NOT",
         r"\bdo\s+not\s+(?P<action>take|stop|eat|drink|use|skip)\s+" + _SUBJECT,
         r"you might want to ask your doctor before deciding to \g<action> \g<subject>\g<end>"),
        ("RW_RX_TRY",
         r"\btry\s+(?P<action>taking|using|adding|reducing)\s+" + _SUBJECT,
         r"you could ask your doctor about \g<action> \g<subject>\g<end>"),
        ("RW_RX_CONSIDER",
         r"\bconsider\s+(?P<action>taking|stopping|increasing|decreasing|switching)\s+" + _SUBJECT,
         r"you could ask your doctor about \g<action> \g<subject>\g<end>"),
        ("RW_RX_BEST_TREATMENT",
         r"\bthe\s+(?:best|recommended)\s+(?:treatment|course\s+of\s+action|approach)\s+"
         r"(?:is|would\s+be)\b",
         "one option your healthcare provider could discuss is"),
    ),

    # --- Alarm -> calm preparatory framing ---
    ViolationCategory.ALARM_LANGUAGE: (
        ("RW_AL_URGENT_DIRECTIVE",
         r"\b(?:immediately|urgently)\s+(?P<action>go|call|visit|see|seek|get)\b",
         r"it may be helpful to \g<action>"),
        ("RW_AL_DECLARATION",
         r"\bthis\s+(?:is|could\s+be)\s+(?:a\s+|an\s+)?(?:medical\s+)?emergency\b",
         "this is something you may want to discuss with your healthcare provider soon"),
        ("RW_AL_SEEK_CARE",
         r"\bseek\s+(?:immediate|emergency|urgent)\s+(?:medical\s+)?(?:help|attention|care)\b",
         "consider reaching out to your healthcare provider"),
        ("RW_AL_CALL_DOCTOR_NOW",
         r"\bcall\s+your\s+doctor\s+(?:immediately|right\s+away|now)\b",
         "consider contacting your doctor"),
        ("RW_AL_CALL_EMERGENCY",
         r"\bcall\s+(?:911|emergency(?:\s+services)?|an\s+ambulance)\b",
         "consider contacting your healthcare provider"),
        ("RW_AL_GO_TO_ER",
         r"\bgo\s+to\s+(?:the\s+)?(?:emergency(?:\s+room|\s+department)?|ER|hospital|A&E)\b",
         "consider visiting your healthcare provider"),
        ("RW_AL_DANGEROUS",
         r"\bdangerous\b",
         "notable"),
        ("RW_AL_SEVERE_WORD",
         r"\b(?:life[- ]threatening|fatal|deadly|lethal)\b",
         "significant"),
        ("RW_AL_DO_NOT_WAIT",
         r"\bdo\s+not\s+(?:wait|delay|ignore)\b",
         "it may be worth bringing this up"),
        ("RW_AL_TIMING_WORD",
         r"\b(?:immediately|urgently|right\s+away|right\s+now)\b",
         "soon"),
        ("RW_AL_URGENT",
         r"\burgent\b",
         "timely"),
    ),

    # --- Ungrounded -> document-attributed ---
    ViolationCategory.UNGROUNDED_CLAIM: (
        ("RW_UG_METRIC_JUDGMENT",
         r"\byour\s+(?P<metric>blood\s+pressure|cholesterol|glucose|sugar|levels?|count|"
         r"heart\s+rate|weight|BMI)\s+(?P<verb>is|are)\s+(?P<judgment>high|low|elevated|"
         r"abnormal|concerning|worrying|critical)\b",
         r"your documents note that your \g<metric> \g<verb> \g<judgment>"),
        ("RW_UG_DIAGNOSED_WITH", _DIAGNOSED_WITH,
         r"your documents mention a diagnosis of \g<subject>\g<end>"),
        ("RW_UG_LABELED_AS",
         r"\byou\s+(?:are|have\s+been)\s+(?:diagnosed|labell?ed|classified)\s+as\s+" + _SUBJECT,
         r"your records describe \g<subject>\g<end>"),
        ("RW_UG_EXPERIENCING", _EXPERIENCING,
         r"your documents describe \g<verb> \g<subject>\g<end>"),
        ("RW_UG_LABEL",
         r"\byou(?:'re|\s+are)\s+(?:a\s+)?(?P<label>diabetic|hypertensive|anemic|asthmatic|"
         r"allergic|obese|overweight|immunocompromised)\b",
         r"your records mention being \g<label>"),
        ("RW_UG_YOU_HAVE", _YOU_HAVE,
         r"your documents mention \g<subject>\g<end>"),
    ),

    # Out-of-bounds responses are regenerated upstream, never rewritten
    ViolationCategory.BOUNDARY_VIOLATION: (),
}

_TEMPLATE_GROUP = re.compile(r"\\g<(\w+)>")


# ============================================================
# REGISTRY
# ============================================================

def _compile(pattern_id: str, source: str, flags: int = _FLAGS) -> re.Pattern:
    try:
        return re.compile(source, flags)
    except re.error as e:
        raise RegistryError(f"Pattern {pattern_id} failed to compile: {e}") from e


def _safety_group(
    entries: tuple[tuple[str, str, str], ...], category: ViolationCategory,
) -> tuple[SafetyPattern, ...]:
    if not entries:
        raise RegistryError(f"Pattern group for {category.value} is empty")
    return tuple(
        SafetyPattern(id=pid, category=category, description=desc, regex=_compile(pid, src))
        for pid, src, desc in entries
    )


def _attribution_group(
    entries: tuple[tuple[str, str], ...], description: str,
) -> tuple[AttributionPattern, ...]:
    if not entries:
        raise RegistryError(f"Pattern group '{description}' is empty")
    return tuple(
        AttributionPattern(id=pid, description=description, regex=_compile(pid, src))
        for pid, src in entries
    )


def _rule_table(
    entries: Mapping[ViolationCategory, tuple[tuple[str, str, str], ...]],
) -> Mapping[ViolationCategory, tuple[RephraseRule, ...]]:
    missing = [c.value for c in ViolationCategory if c not in entries]
    if missing:
        raise RegistryError(f"No rephrase rule entry for categories: {', '.join(missing)}")

    table: dict[ViolationCategory, tuple[RephraseRule, ...]] = {}
    for category, rules in entries.items():
        compiled = []
        for rid, src, template in rules:
            regex = _compile(rid, src, _REWRITE_FLAGS)
            unknown = set(_TEMPLATE_GROUP.findall(template)) - set(regex.groupindex)
            if unknown:
                raise RegistryError(
                    f"Rule {rid} template references undefined groups: {sorted(unknown)}"
                )
            compiled.append(RephraseRule(id=rid, category=category, regex=regex, template=template))
        table[category] = tuple(compiled)
    return MappingProxyType(table)


@dataclass(frozen=True)
class PatternRegistry:
    """
    The compiled, validated pattern set.

    Built once and never mutated. Construct with build(); the default
    arguments are the tables defined in this module.
    """
    diagnostic: tuple[SafetyPattern, ...]
    prescriptive: tuple[SafetyPattern, ...]
    alarm: tuple[SafetyPattern, ...]
    ungrounded: tuple[SafetyPattern, ...]
    grounded: tuple[AttributionPattern, ...]
    injection: tuple[AttributionPattern, ...]
    rephrase_rules: Mapping[ViolationCategory, tuple[RephraseRule, ...]]

    @classmethod
    def build(
        cls,
        diagnostic=DIAGNOSTIC_PATTERNS,
        prescriptive=PRESCRIPTIVE_PATTERNS,
        alarm=ALARM_PATTERNS,
        ungrounded=UNGROUNDED_PATTERNS,
        grounded=GROUNDED_PATTERNS,
        injection=INJECTION_PATTERNS,
        rephrase_rules=REPHRASE_RULES,
    ) -> "PatternRegistry":
        """Compile and validate every table. Raises RegistryError."""
        return cls(
            diagnostic=_safety_group(diagnostic, ViolationCategory.DIAGNOSTIC_LANGUAGE),
            prescriptive=_safety_group(prescriptive, ViolationCategory.PRESCRIPTIVE_LANGUAGE),
            alarm=_safety_group(alarm, ViolationCategory.ALARM_LANGUAGE),
            ungrounded=_safety_group(ungrounded, ViolationCategory.UNGROUNDED_CLAIM),
            grounded=_attribution_group(grounded, "Document or professional attribution"),
            injection=_attribution_group(injection, "Prompt injection phrase"),
            rephrase_rules=_rule_table(rephrase_rules),
        )

    @property
    def keyword_groups(self) -> tuple[tuple[SafetyPattern, ...], ...]:
        return (self.diagnostic, self.prescriptive, self.alarm)

    def rules_for(self, category: ViolationCategory) -> tuple[RephraseRule, ...]:
        return self.rephrase_rules[category]

    @property
    def pattern_count(self) -> int:
        return (
            sum(len(g) for g in self.keyword_groups)
            + len(self.ungrounded) + len(self.grounded) + len(self.injection)
        )

    @property
    def rule_count(self) -> int:
        return sum(len(rules) for rules in self.rephrase_rules.values())

    def describe(self) -> list[dict]:
        """
        Return the detection surface without regex source.

        Used by the GET /patterns endpoint.
        """
        entries = []
        labelled = [("keyword", g) for g in self.keyword_groups] + [("ungrounded", self.ungrounded)]
        for label, group in labelled:
            for p in group:
                entries.append({
                    "id": p.id,
                    "group": label,
                    "category": p.category.value,
                    "description": p.description,
                })
        for p in self.grounded:
            entries.append({
                "id": p.id, "group": "grounded", "category": None,
                "description": p.description,
            })
        for p in self.injection:
            entries.append({
                "id": p.id, "group": "injection", "category": None,
                "description": p.description,
            })
        return entries


# ============================================================
# PROCESS-WIDE INSTANCE
# ============================================================

_registry: Optional[PatternRegistry] = None
_registry_lock = threading.Lock()


def get_registry() -> PatternRegistry:
    """Return the shared registry, building it on first use."""
    global _registry
    if _registry is None:
        with _registry_lock:
            if _registry is None:
                _registry = PatternRegistry.build()
    return _registry
