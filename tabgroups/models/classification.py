"""Classification result produced by the rule resolver."""

from dataclasses import dataclass
from enum import Enum

from tabgroups.models.rule import TabGroupColor  # noqa: TC001


class ClassificationSource(str, Enum):
    """Where a classification came from."""

    RULE = "rule"
    DOMAIN = "domain"


@dataclass(frozen=True)
class ClassificationResult:
    """Target group for one URL. Transient, never persisted."""

    group_name: str
    color: TabGroupColor | None
    minimum_tabs: int
    source: ClassificationSource
    rule_id: str | None = None

    @property
    def has_rule_color(self) -> bool:
        """Check if the color is an explicit rule color that must win over a group's color."""
        return self.source == ClassificationSource.RULE and self.color is not None

    def to_dict(self) -> dict[str, object]:
        """Serialize for message responses."""
        return {
            "groupName": self.group_name,
            "color": self.color.value if self.color else None,
            "minimumTabs": self.minimum_tabs,
            "source": self.source.value,
            "ruleId": self.rule_id,
        }
