"""
Tests for the Pattern Registry — if a table is wrong, every layer is wrong.

Covers compilation, validation failures (all fatal), immutability,
and the shared process-wide instance.
"""

import dataclasses

import pytest

from careguard.registry import (
    DIAGNOSTIC_PATTERNS,
    REPHRASE_RULES,
    PatternRegistry,
    get_registry,
)
from careguard.types import RegistryError, ViolationCategory


@pytest.fixture(scope="module")
def registry():
    return PatternRegistry.build()


class TestBuild:
    """The default tables compile into a complete registry."""

    def test_keyword_groups_have_at_least_eight_patterns(self, registry):
        for group in registry.keyword_groups:
            assert len(group) >= 8

    def test_groups_carry_their_category(self, registry):
        assert all(p.category == ViolationCategory.DIAGNOSTIC_LANGUAGE for p in registry.diagnostic)
        assert all(p.category == ViolationCategory.PRESCRIPTIVE_LANGUAGE for p in registry.prescriptive)
        assert all(p.category == ViolationCategory.ALARM_LANGUAGE for p in registry.alarm)
        assert all(p.category == ViolationCategory.UNGROUNDED_CLAIM for p in registry.ungrounded)

    def test_every_category_has_a_rule_entry(self, registry):
        for category in ViolationCategory:
            assert category in registry.rephrase_rules

    def test_boundary_violation_has_no_rules(self, registry):
        assert registry.rules_for(ViolationCategory.BOUNDARY_VIOLATION) == ()

    def test_patterns_are_case_insensitive(self, registry):
        pattern = registry.prescriptive[0]
        assert pattern.regex.search("YOU SHOULD STOP taking it")

    def test_pattern_ids_unique(self, registry):
        ids = [p["id"] for p in registry.describe()]
        assert len(ids) == len(set(ids))

    def test_counts(self, registry):
        assert registry.pattern_count == len(registry.describe())
        assert registry.rule_count > 0


class TestValidationFailures:
    """A bad table must stop construction, never yield a partial registry."""

    def test_malformed_pattern_raises(self):
        with pytest.raises(RegistryError, match="BAD_PATTERN"):
            PatternRegistry.build(diagnostic=(("BAD_PATTERN", r"you\s+have\s+(", "broken"),))

    def test_empty_group_raises(self):
        with pytest.raises(RegistryError):
            PatternRegistry.build(alarm=())

    def test_missing_rule_category_raises(self):
        rules = {k: v for k, v in REPHRASE_RULES.items()
                 if k != ViolationCategory.ALARM_LANGUAGE}
        with pytest.raises(RegistryError, match="alarm_language"):
            PatternRegistry.build(rephrase_rules=rules)

    def test_missing_boundary_entry_raises(self):
        rules = {k: v for k, v in REPHRASE_RULES.items()
                 if k != ViolationCategory.BOUNDARY_VIOLATION}
        with pytest.raises(RegistryError):
            PatternRegistry.build(rephrase_rules=rules)

    def test_template_with_undefined_group_raises(self):
        rules = dict(REPHRASE_RULES)
        rules[ViolationCategory.DIAGNOSTIC_LANGUAGE] = (
            ("RW_BROKEN", r"\byou\s+have\s+(?P<subject>\w+)", r"your documents mention \g<thing>"),
        )
        with pytest.raises(RegistryError, match="RW_BROKEN"):
            PatternRegistry.build(rephrase_rules=rules)

    def test_default_tables_untouched_by_failed_build(self):
        with pytest.raises(RegistryError):
            PatternRegistry.build(diagnostic=(("BAD", "(", "broken"),))
        assert len(PatternRegistry.build().diagnostic) == len(DIAGNOSTIC_PATTERNS)


class TestImmutability:

    def test_fields_are_frozen(self, registry):
        with pytest.raises(dataclasses.FrozenInstanceError):
            registry.diagnostic = ()

    def test_rule_map_is_read_only(self, registry):
        with pytest.raises(TypeError):
            registry.rephrase_rules[ViolationCategory.ALARM_LANGUAGE] = ()

    def test_groups_are_tuples(self, registry):
        assert isinstance(registry.diagnostic, tuple)
        assert isinstance(registry.grounded, tuple)
        assert isinstance(registry.injection, tuple)


class TestSharedInstance:

    def test_get_registry_returns_same_object(self):
        assert get_registry() is get_registry()

    def test_describe_never_exposes_regex_source(self):
        for entry in get_registry().describe():
            assert set(entry) == {"id", "group", "category", "description"}
