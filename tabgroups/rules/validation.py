"""Validation of raw rule data from the editor or an import file."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from tabgroups.matching.patterns import normalize_pattern, validate_pattern
from tabgroups.models.rule import (
    MAX_PATTERNS_PER_RULE,
    MAX_RULE_MINIMUM_TABS,
    MIN_RULE_MINIMUM_TABS,
    TabGroupColor,
    validate_rule_name,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from tabgroups.models.rule import Rule


class RuleValidationError(ValueError):
    """Raised when rule data fails validation."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__(f"Invalid rule: {', '.join(errors)}")


@dataclass
class RuleValidationResult:
    """Errors block saving a rule; warnings are informational."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {"isValid": self.is_valid, "errors": self.errors, "warnings": self.warnings}


def rule_patterns(data: dict[str, Any]) -> Any:
    """Return the pattern list of raw rule data, accepting ``domains`` or ``patterns``."""
    if "patterns" in data:
        return data["patterns"]
    return data.get("domains")


def validate_rule_data(
    data: dict[str, Any],
    existing_rules: Iterable[Rule] = (),
) -> RuleValidationResult:
    """Validate raw rule data against the rule constraints and existing rules.

    Args:
        data: Rule dictionary (``name``, ``domains``/``patterns``, ``color``,
            ``priority``, ``minimumTabs``). ``id`` marks the rule being edited
            so it is not compared with itself.
        existing_rules: Rules already saved.

    Returns:
        Validation result with all errors and warnings found.
    """
    result = RuleValidationResult()
    rule_id = data.get("id")
    others = [rule for rule in existing_rules if rule.id != rule_id]

    name = data.get("name")
    name_error = validate_rule_name(name)
    if name_error:
        result.errors.append(name_error)
    elif any(rule.name.strip().lower() == name.strip().lower() for rule in others):
        result.errors.append(f'A rule with the name "{name.strip()}" already exists')

    _validate_patterns(rule_patterns(data), others, result)

    color = data.get("color")
    if color and not TabGroupColor.is_valid(color):
        result.warnings.append(f'Unknown color "{color}", will use default')

    priority = data.get("priority")
    if priority is not None and (
        isinstance(priority, bool) or not isinstance(priority, int) or priority < 1
    ):
        result.errors.append("Priority must be a positive number")

    minimum_tabs = data.get("minimumTabs", data.get("minimum_tabs"))
    if minimum_tabs is not None and (
        isinstance(minimum_tabs, bool)
        or not isinstance(minimum_tabs, int)
        or not MIN_RULE_MINIMUM_TABS <= minimum_tabs <= MAX_RULE_MINIMUM_TABS
    ):
        result.errors.append(
            f"Minimum tabs must be a number between {MIN_RULE_MINIMUM_TABS} "
            f"and {MAX_RULE_MINIMUM_TABS}"
        )

    return result


def _validate_patterns(
    patterns: Any,
    others: list[Rule],
    result: RuleValidationResult,
) -> None:
    if not isinstance(patterns, (list, tuple)):
        result.errors.append("Patterns must be an array")
        return
    if not patterns:
        result.errors.append("At least one pattern is required")
        return
    if len(patterns) > MAX_PATTERNS_PER_RULE:
        result.errors.append(f"Maximum {MAX_PATTERNS_PER_RULE} patterns per rule")
        return

    valid: list[str] = []
    for pattern in patterns:
        if not isinstance(pattern, str) or not pattern.strip():
            result.errors.append("All patterns must be non-empty strings")
            return
        validation = validate_pattern(pattern)
        if validation.is_valid:
            valid.append(normalize_pattern(pattern))
        else:
            result.errors.append(f'Invalid pattern "{pattern}": {validation.error}')

    for rule in others:
        shared = [pattern for pattern in valid if pattern in rule.patterns]
        if shared:
            result.warnings.append(
                f'Pattern(s) {", ".join(shared)} already exist in rule "{rule.name}"'
            )
