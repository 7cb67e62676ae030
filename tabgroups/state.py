"""In-memory extension state: settings, custom rules and remembered group colors."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from tabgroups.models.config import Settings
from tabgroups.models.rule import Rule, TabGroupColor
from tabgroups.rules.resolver import ResolverConfig
from tabgroups.utils.logging import get_logger

logger = get_logger("state")


@dataclass
class TabGroupState:
    """Mutable state shared by the services.

    Rules are kept in insertion order, which is also creation order for the
    resolver's final tie-break.
    """

    settings: Settings = field(default_factory=Settings.default)
    rules: dict[str, Rule] = field(default_factory=dict)
    group_colors: dict[str, TabGroupColor] = field(default_factory=dict)
    """Last color seen per group title, used to restore colors."""

    def resolver_config(self) -> ResolverConfig:
        """Snapshot the current settings and rules for resolution."""
        return ResolverConfig.from_settings(self.settings, self.rules.values())

    def add_rule(self, rule: Rule) -> None:
        self.rules[rule.id] = rule

    def remove_rule(self, rule_id: str) -> Rule | None:
        return self.rules.pop(rule_id, None)

    def rule_by_name(self, name: str) -> Rule | None:
        """Find the first enabled rule whose name is the given group title."""
        for rule in self.rules.values():
            if rule.enabled and rule.name == name:
                return rule
        return None

    def saved_color(self, title: str) -> TabGroupColor | None:
        return self.group_colors.get(title)

    def remember_color(self, title: str, color: str | None) -> None:
        """Record the color of a group title; unknown colors are ignored."""
        if title and TabGroupColor.is_valid(color):
            self.group_colors[title] = TabGroupColor(color)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TabGroupState:
        """Load state from a persisted dictionary.

        Invalid rules and colors are skipped with a warning so that one bad
        entry does not discard the rest of the state.

        Raises:
            ValueError: If the settings are invalid.
        """
        settings = Settings.from_dict(data.get("settings") or {})
        state = cls(settings=settings)

        raw_rules = data.get("customRules") or []
        if isinstance(raw_rules, dict):
            raw_rules = [
                {"id": key, **value} if isinstance(value, dict) else value
                for key, value in raw_rules.items()
            ]
        for raw in raw_rules:
            if not isinstance(raw, dict):
                logger.warning(
                    "Skipping stored rule that is not a mapping",
                    extra={"rule_type": type(raw).__name__},
                )
                continue
            try:
                state.add_rule(Rule.from_dict(raw))
            except (TypeError, ValueError) as e:
                logger.warning(
                    "Skipping invalid stored rule",
                    extra={"rule_id": raw.get("id"), "error": str(e)},
                )

        for title, color in (data.get("groupColorMapping") or {}).items():
            state.remember_color(str(title), color)

        return state

    def to_dict(self) -> dict[str, Any]:
        return {
            "settings": self.settings.to_dict(),
            "customRules": [rule.to_dict() for rule in self.rules.values()],
            "groupColorMapping": {
                title: color.value for title, color in self.group_colors.items()
            },
        }
