"""Data models for tabgroups."""

from tabgroups.models.classification import ClassificationResult, ClassificationSource
from tabgroups.models.config import GroupByMode, Settings
from tabgroups.models.rule import Rule, TabGroupColor
from tabgroups.models.tab import TAB_GROUP_ID_NONE, Tab, TabGroup

__all__ = [
    "TAB_GROUP_ID_NONE",
    "ClassificationResult",
    "ClassificationSource",
    "GroupByMode",
    "Rule",
    "Settings",
    "Tab",
    "TabGroup",
    "TabGroupColor",
]
