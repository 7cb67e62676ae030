"""Custom grouping rule model."""

from __future__ import annotations

import random
import re
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from tabgroups.matching.patterns import normalize_pattern, validate_pattern

MAX_RULE_NAME_LENGTH = 50
MAX_PATTERNS_PER_RULE = 20
MIN_RULE_MINIMUM_TABS = 1
MAX_RULE_MINIMUM_TABS = 10

RULE_NAME_RE = re.compile(r"^[a-zA-Z0-9\s\-_()&.!?]+$")


class TabGroupColor(str, Enum):
    """Colors the browser supports for tab groups."""

    GREY = "grey"
    BLUE = "blue"
    RED = "red"
    YELLOW = "yellow"
    GREEN = "green"
    PINK = "pink"
    PURPLE = "purple"
    CYAN = "cyan"
    ORANGE = "orange"

    @classmethod
    def is_valid(cls, value: object) -> bool:
        """Check if a value names a palette color."""
        return isinstance(value, str) and value in cls._value2member_map_

    @classmethod
    def random(cls) -> TabGroupColor:
        """Pick a random palette color."""
        return random.choice(list(cls))


def generate_rule_id() -> str:
    """Generate a unique rule identifier."""
    return f"rule-{uuid.uuid4().hex[:12]}"


def validate_rule_name(name: object) -> str | None:
    """Check a rule name.

    Args:
        name: Candidate rule name.

    Returns:
        Error message, or None if the name is valid.
    """
    if not isinstance(name, str):
        return "Rule name must be a string"

    clean = name.strip()
    if not clean:
        return "Rule name cannot be empty"
    if len(clean) > MAX_RULE_NAME_LENGTH:
        return f"Rule name cannot exceed {MAX_RULE_NAME_LENGTH} characters"
    if not RULE_NAME_RE.match(clean):
        return "Rule name contains invalid characters"
    return None


def dedupe_patterns(patterns: list[str] | tuple[str, ...]) -> tuple[str, ...]:
    """Normalize patterns and drop duplicates, keeping declaration order."""
    seen: set[str] = set()
    result: list[str] = []
    for pattern in patterns:
        clean = normalize_pattern(pattern)
        if clean and clean not in seen:
            seen.add(clean)
            result.append(clean)
    return tuple(result)


@dataclass(frozen=True)
class Rule:
    """A user-defined classification rule mapping URL patterns to a named group."""

    name: str
    patterns: tuple[str, ...]
    color: TabGroupColor = TabGroupColor.BLUE
    enabled: bool = True
    priority: int = 1
    """Lower values are evaluated first."""

    minimum_tabs: int | None = None
    """Overrides the global minimum group size when set."""

    group_name_template: str | None = None
    """Title template with {variable} placeholders for segment extraction patterns."""

    id: str = field(default_factory=generate_rule_id)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        """Normalize and validate fields after initialization."""
        name_error = validate_rule_name(self.name)
        if name_error:
            raise ValueError(name_error)
        object.__setattr__(self, "name", self.name.strip())

        if isinstance(self.patterns, str):
            raise ValueError("Rule patterns must be a list of strings")
        patterns = dedupe_patterns(self.patterns)
        if not patterns:
            raise ValueError("At least one pattern is required")
        if len(patterns) > MAX_PATTERNS_PER_RULE:
            raise ValueError(f"Maximum {MAX_PATTERNS_PER_RULE} patterns per rule")
        for pattern in patterns:
            result = validate_pattern(pattern)
            if not result.is_valid:
                raise ValueError(f'Invalid pattern "{pattern}": {result.error}')
        object.__setattr__(self, "patterns", patterns)

        if not TabGroupColor.is_valid(self.color):
            raise ValueError(f"Unknown color: {self.color}")
        object.__setattr__(self, "color", TabGroupColor(self.color))

        if isinstance(self.priority, bool) or not isinstance(self.priority, int):
            raise ValueError("Rule priority must be a positive integer")
        if self.priority < 1:
            raise ValueError(f"Rule priority must be positive, got: {self.priority}")

        if self.minimum_tabs is not None and (
            isinstance(self.minimum_tabs, bool) or not isinstance(self.minimum_tabs, int)
        ):
            raise ValueError("Minimum tabs must be an integer")
        if self.minimum_tabs is not None and not (
            MIN_RULE_MINIMUM_TABS <= self.minimum_tabs <= MAX_RULE_MINIMUM_TABS
        ):
            raise ValueError(
                f"Minimum tabs must be between {MIN_RULE_MINIMUM_TABS} and "
                f"{MAX_RULE_MINIMUM_TABS}, got: {self.minimum_tabs}"
            )

        if self.group_name_template is not None and not self.group_name_template.strip():
            object.__setattr__(self, "group_name_template", None)

        if self.created_at.tzinfo is None:
            object.__setattr__(self, "created_at", self.created_at.replace(tzinfo=UTC))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Rule:
        """Create a Rule from persisted or imported data.

        Accepts both the persisted camelCase keys and snake_case keys, and both
        ``domains`` and ``patterns`` for the pattern list.

        Args:
            data: Rule dictionary.

        Returns:
            Rule instance.

        Raises:
            ValueError: If the data does not describe a valid rule.
        """
        patterns = data.get("patterns", data.get("domains"))
        if not isinstance(patterns, (list, tuple)):
            raise ValueError("Patterns must be a list")

        minimum_tabs = data.get("minimumTabs", data.get("minimum_tabs"))
        template = data.get("groupNameTemplate", data.get("group_name_template"))
        created_at = data.get("createdAt", data.get("created_at"))

        kwargs: dict[str, Any] = {
            "name": data.get("name", ""),
            "patterns": tuple(patterns),
            "color": data.get("color") or TabGroupColor.BLUE,
            "enabled": data.get("enabled", True) is not False,
            "priority": data.get("priority") or 1,
            "minimum_tabs": minimum_tabs,
            "group_name_template": template,
        }
        if data.get("id"):
            kwargs["id"] = str(data["id"])
        if isinstance(created_at, datetime):
            kwargs["created_at"] = created_at
        elif isinstance(created_at, str) and created_at:
            kwargs["created_at"] = datetime.fromisoformat(created_at)

        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the persisted export schema."""
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "domains": list(self.patterns),
            "color": self.color.value,
            "enabled": self.enabled,
            "priority": self.priority,
            "createdAt": self.created_at.isoformat(),
        }
        if self.minimum_tabs is not None:
            data["minimumTabs"] = self.minimum_tabs
        if self.group_name_template is not None:
            data["groupNameTemplate"] = self.group_name_template
        return data
