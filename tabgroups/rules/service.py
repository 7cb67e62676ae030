"""Custom rule management: CRUD, statistics, import and export."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from tabgroups.models.rule import Rule, TabGroupColor, generate_rule_id
from tabgroups.rules.conflicts import PatternConflict, detect_conflicts
from tabgroups.rules.loader import RuleLoader, RuleLoaderError
from tabgroups.rules.resolver import RuleMatch, find_matching_rule
from tabgroups.rules.validation import RuleValidationError, rule_patterns, validate_rule_data
from tabgroups.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from tabgroups.state import TabGroupState

logger = get_logger("rules.service")


class RuleNotFoundError(KeyError):
    """Raised when a rule id does not exist."""

    def __init__(self, rule_id: str) -> None:
        self.rule_id = rule_id
        super().__init__(f"Rule with ID {rule_id} not found")

    def __str__(self) -> str:
        return str(self.args[0])


@dataclass
class ImportResult:
    """Outcome of a rules import."""

    success: bool
    imported: int = 0
    total: int = 0
    skipped: int = 0
    validation_errors: list[str] = field(default_factory=list)
    replaced_existing: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "imported": self.imported,
            "total": self.total,
            "skipped": self.skipped,
            "validationErrors": self.validation_errors,
            "replacedExisting": self.replaced_existing,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


class RulesService:
    """Manages the custom rule set held in a :class:`TabGroupState`.

    Every mutation calls ``on_change`` so the owner can persist state.
    """

    def __init__(
        self,
        state: TabGroupState,
        on_change: Callable[[], None] | None = None,
        loader: RuleLoader | None = None,
    ) -> None:
        self.state = state
        self._on_change = on_change
        self._loader = loader or RuleLoader()

    def list_rules(self) -> list[Rule]:
        return list(self.state.rules.values())

    def get_rule(self, rule_id: str) -> Rule:
        rule = self.state.rules.get(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        return rule

    def find_matching_rule(self, url: str) -> RuleMatch | None:
        """Return the rule that wins for a URL, if any."""
        return find_matching_rule(url, self.state.resolver_config())

    def add_rule(self, data: dict[str, Any]) -> Rule:
        """Validate and add a new rule.

        Args:
            data: Raw rule data from the editor.

        Returns:
            The stored rule, with a freshly generated id.

        Raises:
            RuleValidationError: If the data is invalid.
        """
        data = {key: value for key, value in data.items() if key != "id"}
        self._validate(data)

        rule = Rule.from_dict({**data, "id": generate_rule_id(), "color": _color_or(data)})
        self.state.add_rule(rule)
        self._changed()

        logger.info("Added rule", extra={"rule_id": rule.id, "rule_name": rule.name})
        return rule

    def update_rule(self, rule_id: str, data: dict[str, Any]) -> Rule:
        """Validate and apply changes to an existing rule.

        Fields missing from ``data`` keep their current values; an unknown
        color keeps the current color.

        Raises:
            RuleNotFoundError: If the rule does not exist.
            RuleValidationError: If the data is invalid.
        """
        existing = self.get_rule(rule_id)
        self._validate({**data, "id": rule_id})

        changes: dict[str, Any] = {
            "name": data["name"],
            "patterns": tuple(rule_patterns(data)),
            "color": _color_or(data, existing.color),
            "enabled": data.get("enabled", existing.enabled) is not False,
            "priority": data.get("priority") or existing.priority,
        }
        if "minimumTabs" in data or "minimum_tabs" in data:
            changes["minimum_tabs"] = data.get("minimumTabs", data.get("minimum_tabs"))
        if "groupNameTemplate" in data or "group_name_template" in data:
            changes["group_name_template"] = data.get(
                "groupNameTemplate", data.get("group_name_template")
            )

        rule = dataclasses.replace(existing, **changes)
        self.state.rules[rule_id] = rule
        self._changed()

        logger.info("Updated rule", extra={"rule_id": rule_id, "rule_name": rule.name})
        return rule

    def delete_rule(self, rule_id: str) -> None:
        """Delete a rule.

        Raises:
            RuleNotFoundError: If the rule does not exist.
        """
        if self.state.remove_rule(rule_id) is None:
            raise RuleNotFoundError(rule_id)
        self._changed()
        logger.info("Deleted rule", extra={"rule_id": rule_id})

    def set_rule_enabled(self, rule_id: str, enabled: bool) -> Rule:
        """Enable or disable a rule without touching its other fields."""
        rule = dataclasses.replace(self.get_rule(rule_id), enabled=enabled)
        self.state.rules[rule_id] = rule
        self._changed()
        return rule

    def conflicts_for(
        self,
        patterns: list[str],
        exclude_rule_id: str | None = None,
    ) -> list[PatternConflict]:
        """Report overlaps between candidate patterns and the saved rules."""
        return detect_conflicts(patterns, self.list_rules(), exclude_rule_id)

    def rules_stats(self) -> dict[str, int]:
        rules = self.list_rules()
        enabled = sum(1 for rule in rules if rule.enabled)
        return {
            "totalRules": len(rules),
            "enabledRules": enabled,
            "disabledRules": len(rules) - enabled,
            "totalPatterns": sum(len(rule.patterns) for rule in rules),
        }

    def export_rules(self) -> str:
        """Export all rules as a JSON document."""
        rules = self.list_rules()
        logger.info("Exporting rules", extra={"rule_count": len(rules)})
        return self._loader.dump(rules)

    def import_rules(self, text: str, replace: bool = False) -> ImportResult:
        """Import rules from a JSON document.

        In merge mode, rules whose id or name (case-insensitive) collides with
        a saved rule are skipped. In replace mode the saved rules are discarded
        first. Invalid rules are skipped and their errors collected.

        Args:
            text: JSON export document.
            replace: Discard existing rules before importing.

        Returns:
            Counts of imported and skipped rules, plus validation errors.
        """
        try:
            entries = self._loader.parse(text)
        except RuleLoaderError as e:
            logger.warning("Rules import failed", extra={"error": str(e)})
            return ImportResult(success=False, error=str(e))

        existing = [] if replace else self.list_rules()
        taken_ids = {rule.id for rule in existing}
        taken_names = {rule.name.strip().lower() for rule in existing}

        accepted: list[Rule] = []
        errors: list[str] = []
        for entry in entries:
            data = {key: value for key, value in entry.data.items() if key != "id"}
            name = str(data.get("name") or "").strip().lower()
            if not replace and (entry.key in taken_ids or name in taken_names):
                logger.debug("Skipping colliding rule", extra={"rule_name": entry.label})
                continue

            result = validate_rule_data(data, accepted)
            if not result.is_valid:
                errors.append(f'Rule "{entry.label}": {", ".join(result.errors)}')
                continue

            rule_id = entry.key if entry.key and entry.key not in taken_ids else generate_rule_id()
            try:
                rule = Rule.from_dict({**data, "id": rule_id, "color": _color_or(data)})
            except ValueError as e:
                errors.append(f'Rule "{entry.label}": {e}')
                continue

            accepted.append(rule)
            taken_ids.add(rule.id)
            taken_names.add(rule.name.lower())

        if not accepted and errors:
            message = f"No valid rules found. Errors: {'; '.join(errors)}"
            logger.warning("Rules import failed", extra={"error": message})
            return ImportResult(
                success=False,
                total=len(entries),
                skipped=len(entries),
                validation_errors=errors,
                error=message,
            )

        if replace:
            self.state.rules.clear()
        for rule in accepted:
            self.state.add_rule(rule)
        self._changed()

        result = ImportResult(
            success=True,
            imported=len(accepted),
            total=len(entries),
            skipped=len(entries) - len(accepted),
            validation_errors=errors,
            replaced_existing=replace,
        )
        logger.info(
            "Imported rules",
            extra={"imported": result.imported, "skipped": result.skipped, "replace": replace},
        )
        return result

    def _validate(self, data: dict[str, Any]) -> None:
        existing = [rule for rule in self.list_rules() if rule.id != data.get("id")]
        result = validate_rule_data(data, existing)
        if not result.is_valid:
            raise RuleValidationError(result.errors)
        for warning in result.warnings:
            logger.warning("Rule validation warning", extra={"warning": warning})

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()


def _color_or(data: dict[str, Any], fallback: TabGroupColor = TabGroupColor.BLUE) -> TabGroupColor:
    color = data.get("color")
    return TabGroupColor(color) if TabGroupColor.is_valid(color) else fallback
