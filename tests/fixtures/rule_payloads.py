"""Sample rule editor payloads and import documents for testing."""

import json
from typing import Any


def create_rule_data(
    name: str = "Work",
    domains: list[str] | None = None,
    color: str = "blue",
    enabled: bool = True,
    priority: int | None = None,
    minimum_tabs: int | None = None,
    group_name_template: str | None = None,
    rule_id: str | None = None,
) -> dict[str, Any]:
    """Create rule data as sent by the rule editor.

    Args:
        name: Rule name, also the group title.
        domains: Patterns; defaults to a single exact domain.
        color: Group color.
        enabled: Whether the rule participates in matching.
        priority: Optional priority (lower wins).
        minimum_tabs: Optional per-rule minimum group size.
        group_name_template: Optional title template for extraction patterns.
        rule_id: Optional id, as present in exported rules.

    Returns:
        Rule data dictionary using the editor's camelCase keys.
    """
    data: dict[str, Any] = {
        "name": name,
        "domains": domains if domains is not None else ["example.com"],
        "color": color,
        "enabled": enabled,
    }
    if priority is not None:
        data["priority"] = priority
    if minimum_tabs is not None:
        data["minimumTabs"] = minimum_tabs
    if group_name_template is not None:
        data["groupNameTemplate"] = group_name_template
    if rule_id is not None:
        data["id"] = rule_id
    return data


def create_export_document(
    rules: list[dict[str, Any]] | dict[str, dict[str, Any]],
    version: str = "1.0",
) -> str:
    """Create a rules import document.

    Args:
        rules: Rule list, or a mapping of rule id to rule data.
        version: Export format version.

    Returns:
        JSON document text.
    """
    total = len(rules)
    return json.dumps(
        {
            "version": version,
            "exportedAt": "2026-01-15T10:00:00+00:00",
            "totalRules": total,
            "rules": rules,
        }
    )
