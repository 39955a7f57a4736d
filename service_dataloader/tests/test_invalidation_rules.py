"""
Unit tests for the invalidation rule table.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_dataloader.app.caching.invalidation_rules import (
    DEFAULT_INVALIDATION_RULES,
    ChangeType,
    InvalidationRuleTable,
    KeyPattern,
    PatternScope,
    default_rule_table,
    pattern_matches,
)
from shared.errors import RuleTableError, ValidationError


class TestPatternMatching:
    """Test cases for glob matching."""

    @pytest.mark.parametrize("pattern,key,expected", [
        ("user_properties_*", "user_properties_42", True),
        ("user_properties_*", "user_properties_", True),
        ("user_properties_*", "other_key", False),
        ("saved_properties_u1*", "saved_properties_u1_page2", True),
        ("property", "all_property_x", True),
        ("a.b", "axb", False),
        ("a+b", "a+b", True),
    ])
    def test_pattern_matches(self, pattern, key, expected):
        assert pattern_matches(pattern, key) is expected


class TestKeyPattern:
    """Test cases for KeyPattern."""

    def test_defaults_to_entity_scope(self):
        pattern = KeyPattern(pattern="property_*")

        assert pattern.scope is PatternScope.ENTITY
        assert pattern.has_wildcard is True
        assert pattern.for_entity("P1") == "property_P1"

    def test_literal_pattern_has_no_wildcard(self):
        assert KeyPattern(pattern="recent_properties").has_wildcard is False

    def test_rejects_empty_and_multi_wildcard(self):
        with pytest.raises(ValueError):
            KeyPattern(pattern="")
        with pytest.raises(ValueError):
            KeyPattern(pattern="a_*_*")


class TestInvalidationRuleTable:
    """Test cases for InvalidationRuleTable."""

    def test_accepts_strings_patterns_and_mappings(self):
        table = InvalidationRuleTable({
            ChangeType.PROPERTY_UPDATE: [
                "property_*",
                KeyPattern(pattern="all_properties_*", scope=PatternScope.FAMILY),
                {"pattern": "user_properties_*", "scope": "family"},
            ]
        })

        patterns = table.patterns_for("property_update")

        assert [p.pattern for p in patterns] == ["property_*", "all_properties_*", "user_properties_*"]
        assert [p.scope for p in patterns] == [PatternScope.ENTITY, PatternScope.FAMILY, PatternScope.FAMILY]

    def test_unknown_change_type_rejected_at_construction(self):
        with pytest.raises(RuleTableError) as exc_info:
            InvalidationRuleTable({"property_updte": ["property_*"]})

        assert exc_info.value.code == "RULE_TABLE_ERROR"
        assert isinstance(exc_info.value, ValidationError)
        assert exc_info.value.details["change_type"] == "property_updte"

    def test_bad_pattern_rejected_at_construction(self):
        with pytest.raises(RuleTableError):
            InvalidationRuleTable({"property_update": ["a*b*c"]})

        with pytest.raises(RuleTableError):
            InvalidationRuleTable({"property_update": [""]})

    def test_string_instead_of_list_rejected(self):
        with pytest.raises(RuleTableError):
            InvalidationRuleTable({"property_update": "property_*"})

    def test_unknown_lookup_returns_empty(self):
        table = default_rule_table()

        assert table.patterns_for("nope") == ()
        assert "nope" not in table
        assert ChangeType.PROPERTY_UPDATE in table

    def test_default_rules_cover_every_change_type(self):
        table = default_rule_table()

        assert set(table.change_types()) == set(ChangeType)
        assert set(DEFAULT_INVALIDATION_RULES) == set(ChangeType)

    def test_default_property_rules(self):
        table = default_rule_table()

        assert table.as_dict()["property_update"] == [
            "user_properties_*",
            "all_properties_*",
            "recent_properties",
            "property_*",
        ]
        scopes = {p.pattern: p.scope for p in table.patterns_for(ChangeType.PROPERTY_DELETE)}
        assert scopes["user_properties_*"] is PatternScope.FAMILY
        assert scopes["property_*"] is PatternScope.ENTITY
