"""Settings models for tabgroups."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

MIN_MINIMUM_TABS = 1
MAX_MINIMUM_TABS = 10
MAX_AUTO_COLLAPSE_DELAY_MS = 10_000

# Persisted camelCase key -> Settings attribute
SETTINGS_KEYS = {
    "autoGroupingEnabled": "auto_grouping_enabled",
    "groupNewTabs": "group_new_tabs",
    "groupByMode": "group_by_mode",
    "minimumTabsForGroup": "minimum_tabs_for_group",
    "autoCollapseEnabled": "auto_collapse_enabled",
    "autoCollapseDelayMs": "auto_collapse_delay_ms",
}


class GroupByMode(str, Enum):
    """How tabs without a matching rule are grouped."""

    DOMAIN = "domain"
    SUBDOMAIN = "subdomain"
    RULES_ONLY = "rules-only"


@dataclass
class Settings:
    """User settings that steer grouping."""

    auto_grouping_enabled: bool = True
    group_new_tabs: bool = True
    """Group browser-internal pages under "System"."""

    group_by_mode: GroupByMode = GroupByMode.DOMAIN
    minimum_tabs_for_group: int = 1
    auto_collapse_enabled: bool = False
    auto_collapse_delay_ms: int = 0

    def __post_init__(self) -> None:
        """Validate configuration values."""
        try:
            self.group_by_mode = GroupByMode(self.group_by_mode)
        except ValueError as e:
            valid = ", ".join(m.value for m in GroupByMode)
            raise ValueError(
                f"Unsupported group_by_mode: {self.group_by_mode}. Supported modes: {valid}"
            ) from e

        if isinstance(self.minimum_tabs_for_group, bool) or not isinstance(
            self.minimum_tabs_for_group, int
        ):
            raise ValueError("minimum_tabs_for_group must be an integer")
        if not MIN_MINIMUM_TABS <= self.minimum_tabs_for_group <= MAX_MINIMUM_TABS:
            raise ValueError(
                f"minimum_tabs_for_group must be between {MIN_MINIMUM_TABS} and "
                f"{MAX_MINIMUM_TABS}, got {self.minimum_tabs_for_group}"
            )

        if not 0 <= self.auto_collapse_delay_ms <= MAX_AUTO_COLLAPSE_DELAY_MS:
            raise ValueError(
                f"auto_collapse_delay_ms must be between 0 and {MAX_AUTO_COLLAPSE_DELAY_MS}, "
                f"got {self.auto_collapse_delay_ms}"
            )

    @property
    def include_subdomains(self) -> bool:
        """Whether domain fallback keeps the full hostname."""
        return self.group_by_mode == GroupByMode.SUBDOMAIN

    @property
    def rules_only(self) -> bool:
        """Whether only rule matches are grouped."""
        return self.group_by_mode == GroupByMode.RULES_ONLY

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> Settings:
        """Load settings from a persisted state dictionary.

        Both camelCase (persisted) and snake_case keys are accepted; unknown keys
        are ignored.

        Args:
            config: Settings dictionary.

        Returns:
            Settings instance.
        """
        kwargs: dict[str, Any] = {}
        for key, value in config.items():
            attr = SETTINGS_KEYS.get(key, key)
            if attr in SETTINGS_KEYS.values():
                kwargs[attr] = value
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        """Serialize using persisted camelCase keys."""
        return {
            "autoGroupingEnabled": self.auto_grouping_enabled,
            "groupNewTabs": self.group_new_tabs,
            "groupByMode": self.group_by_mode.value,
            "minimumTabsForGroup": self.minimum_tabs_for_group,
            "autoCollapseEnabled": self.auto_collapse_enabled,
            "autoCollapseDelayMs": self.auto_collapse_delay_ms,
        }

    @classmethod
    def default(cls) -> Settings:
        """Create default settings."""
        return cls()
