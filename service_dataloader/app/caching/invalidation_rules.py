"""
Invalidation rules for the data layer cache.

A rule maps a change type (a category of write, e.g. "property updated") to
the key patterns whose cached reads that write makes stale.
"""

import re
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, field_validator

from shared.errors import RuleTableError


WILDCARD = "*"


class ChangeType(str, Enum):
    """Categories of writes that drive invalidation."""
    USER_PROPERTIES = "user_properties"
    PROPERTY_CREATE = "property_create"
    PROPERTY_UPDATE = "property_update"
    PROPERTY_DELETE = "property_delete"
    SAVED_PROPERTIES = "saved_properties"
    USER_UPDATE = "user_update"


class PatternScope(str, Enum):
    """How a wildcard pattern reacts to an entity id."""
    ENTITY = "entity"  # wildcard stands for the changed entity's id
    FAMILY = "family"  # always matched against every stored key


class KeyPattern(BaseModel):
    """A cache key pattern: a literal key or a glob with one wildcard."""

    model_config = ConfigDict(frozen=True)

    pattern: str
    scope: PatternScope = PatternScope.ENTITY

    @field_validator("pattern")
    @classmethod
    def _check_pattern(cls, value: str) -> str:
        if not value:
            raise ValueError("pattern must not be empty")
        if value.count(WILDCARD) > 1:
            raise ValueError("pattern may contain at most one wildcard")
        return value

    @property
    def has_wildcard(self) -> bool:
        return WILDCARD in self.pattern

    def for_entity(self, entity_id: str) -> str:
        """Substitute the entity id for the wildcard."""
        return self.pattern.replace(WILDCARD, entity_id, 1)


def compile_pattern(pattern: str) -> "re.Pattern[str]":
    """Compile a glob where ``*`` matches any substring.

    Every other character is literal. Matching is unanchored: use
    ``.search`` so a pattern matches wherever it occurs in a key.
    """
    parts = [re.escape(part) for part in pattern.split(WILDCARD)]
    return re.compile(".*".join(parts), re.DOTALL)


def pattern_matches(pattern: str, key: str) -> bool:
    """Check whether ``key`` matches ``pattern``."""
    return compile_pattern(pattern).search(key) is not None


RuleSpec = Union[str, KeyPattern, Mapping[str, str]]


class InvalidationRuleTable:
    """Static, validated mapping of change types to key patterns."""

    def __init__(self, rules: Mapping[Union[ChangeType, str], Sequence[RuleSpec]]):
        self._rules: Dict[ChangeType, Tuple[KeyPattern, ...]] = {}

        for change_type, patterns in rules.items():
            kind = self._parse_change_type(change_type)
            if isinstance(patterns, (str, bytes)):
                raise RuleTableError(
                    "Rule patterns must be a sequence, not a string",
                    {"change_type": kind.value},
                )
            self._rules[kind] = tuple(self._parse_pattern(kind, spec) for spec in patterns)

    @staticmethod
    def _parse_change_type(change_type: Union[ChangeType, str]) -> ChangeType:
        try:
            return ChangeType(change_type)
        except ValueError:
            raise RuleTableError(
                f"Unknown change type in rule table: {change_type!r}",
                {"change_type": str(change_type), "known": [c.value for c in ChangeType]},
            ) from None

    @staticmethod
    def _parse_pattern(kind: ChangeType, spec: RuleSpec) -> KeyPattern:
        try:
            if isinstance(spec, KeyPattern):
                return spec
            if isinstance(spec, str):
                return KeyPattern(pattern=spec)
            return KeyPattern(**spec)
        except (ValueError, TypeError) as exc:
            raise RuleTableError(
                f"Invalid pattern for {kind.value}: {spec!r}",
                {"change_type": kind.value, "error": str(exc)},
            ) from exc

    def patterns_for(self, change_type: Union[ChangeType, str]) -> Tuple[KeyPattern, ...]:
        """Get patterns for a change type; unknown change types have none."""
        try:
            kind = ChangeType(change_type)
        except ValueError:
            return ()
        return self._rules.get(kind, ())

    def __contains__(self, change_type: object) -> bool:
        try:
            return ChangeType(change_type) in self._rules
        except ValueError:
            return False

    def change_types(self) -> Iterable[ChangeType]:
        return self._rules.keys()

    def as_dict(self) -> Dict[str, list]:
        return {
            kind.value: [pattern.pattern for pattern in patterns]
            for kind, patterns in self._rules.items()
        }


def _family(pattern: str) -> KeyPattern:
    return KeyPattern(pattern=pattern, scope=PatternScope.FAMILY)


# Listing keys are keyed by user id or list size, never by property id, so a
# property write clears them as whole families.
DEFAULT_INVALIDATION_RULES: Dict[ChangeType, Tuple[KeyPattern, ...]] = {
    ChangeType.USER_PROPERTIES: (
        KeyPattern(pattern="user_properties_*"),
        _family("all_properties_*"),
        KeyPattern(pattern="recent_properties"),
    ),
    ChangeType.PROPERTY_CREATE: (
        _family("user_properties_*"),
        _family("all_properties_*"),
        KeyPattern(pattern="recent_properties"),
    ),
    ChangeType.PROPERTY_UPDATE: (
        _family("user_properties_*"),
        _family("all_properties_*"),
        KeyPattern(pattern="recent_properties"),
        KeyPattern(pattern="property_*"),
    ),
    ChangeType.PROPERTY_DELETE: (
        _family("user_properties_*"),
        _family("all_properties_*"),
        KeyPattern(pattern="recent_properties"),
        KeyPattern(pattern="property_*"),
    ),
    ChangeType.SAVED_PROPERTIES: (
        KeyPattern(pattern="saved_properties_*"),
    ),
    ChangeType.USER_UPDATE: (
        KeyPattern(pattern="user_profile_*"),
        KeyPattern(pattern="saved_properties_*"),
    ),
}


def default_rule_table() -> InvalidationRuleTable:
    """Build the rule table used by the listing client."""
    return InvalidationRuleTable(DEFAULT_INVALIDATION_RULES)
