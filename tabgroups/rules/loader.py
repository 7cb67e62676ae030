"""Rule import and export documents."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from tabgroups.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from tabgroups.models.rule import Rule

logger = get_logger("rules.loader")

EXPORT_FORMAT_VERSION = "1.0"


class RuleLoaderError(Exception):
    """Error raised when a rules document cannot be read."""

    pass


@dataclass(frozen=True)
class RuleEntry:
    """One raw rule from an import document, keyed by its original id if any."""

    key: str | None
    data: dict[str, Any]

    @property
    def label(self) -> str:
        """Name used when reporting problems with this entry."""
        name = self.data.get("name")
        if isinstance(name, str) and name.strip():
            return name.strip()
        return self.key or "unnamed"


class RuleLoader:
    """Reads and writes rule documents.

    An import document is a JSON object with a ``rules`` field holding either
    a list of rule objects or a mapping of rule id to rule object. A bare list
    of rule objects is accepted too.
    """

    def parse(self, text: str) -> list[RuleEntry]:
        """Parse an import document.

        Args:
            text: JSON document.

        Returns:
            Raw rule entries in document order.

        Raises:
            RuleLoaderError: If the document is not valid JSON or has no rules.
        """
        try:
            document = json.loads(text)
        except json.JSONDecodeError as e:
            raise RuleLoaderError(f"Invalid JSON: {e}") from e

        rules = document.get("rules") if isinstance(document, dict) else document
        entries = self._entries(rules)
        if not entries:
            raise RuleLoaderError("No rules found in import file")

        logger.debug("Parsed rules document", extra={"rule_count": len(entries)})
        return entries

    def load_from_file(self, path: Path) -> list[RuleEntry]:
        """Read and parse an import document from disk.

        Raises:
            RuleLoaderError: If the file cannot be read or parsed.
        """
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise RuleLoaderError(f"Failed to read rules file {path}: {e}") from e
        return self.parse(text)

    def dump(self, rules: Iterable[Rule], exported_at: datetime | None = None) -> str:
        """Serialize rules to an export document."""
        exported = [rule.to_dict() for rule in rules]
        document = {
            "version": EXPORT_FORMAT_VERSION,
            "exportedAt": (exported_at or datetime.now(UTC)).isoformat(),
            "totalRules": len(exported),
            "rules": exported,
        }
        return json.dumps(document, indent=2)

    def _entries(self, rules: Any) -> list[RuleEntry]:
        if isinstance(rules, list):
            entries = [
                RuleEntry(key=str(item["id"]) if item.get("id") else None, data=item)
                for item in rules
                if isinstance(item, dict)
            ]
            skipped = len(rules) - len(entries)
        elif isinstance(rules, dict):
            entries = [
                RuleEntry(key=str(key), data=item)
                for key, item in rules.items()
                if isinstance(item, dict)
            ]
            skipped = len(rules) - len(entries)
        else:
            raise RuleLoaderError("Invalid import file: Missing or invalid rules data")

        if skipped:
            logger.warning("Skipping non-object rule entries", extra={"skipped": skipped})
        return entries
