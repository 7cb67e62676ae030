"""Overlap detection between the patterns of different rules."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from tabgroups.matching.patterns import normalize_pattern

if TYPE_CHECKING:
    from collections.abc import Iterable

    from tabgroups.models.rule import Rule

_VARIABLE_RE = re.compile(r"\{[^}]+\}")


class ConflictType(str, Enum):
    """How two patterns overlap."""

    EXACT_DUPLICATE = "exact_duplicate"
    WILDCARD_SUBSUMES = "wildcard_subsumes"
    SUBSUMED_BY_WILDCARD = "subsumed_by_wildcard"
    TLD_WILDCARD_OVERLAP = "tld_wildcard_overlap"
    SEGMENT_OVERLAP = "segment_overlap"


@dataclass(frozen=True)
class PatternConflict:
    """A candidate pattern that overlaps a pattern of an existing rule."""

    source_pattern: str
    target_pattern: str
    target_rule_id: str
    target_rule_name: str
    conflict_type: ConflictType

    @property
    def description(self) -> str:
        src, tgt, name = self.source_pattern, self.target_pattern, self.target_rule_name
        match self.conflict_type:
            case ConflictType.EXACT_DUPLICATE:
                return f'"{src}" is already used in rule "{name}"'
            case ConflictType.WILDCARD_SUBSUMES:
                return f'"{src}" covers "{tgt}" in rule "{name}"'
            case ConflictType.SUBSUMED_BY_WILDCARD:
                return f'"{tgt}" in rule "{name}" already covers "{src}"'
            case ConflictType.TLD_WILDCARD_OVERLAP:
                return f'"{src}" and "{tgt}" in rule "{name}" match overlapping domains'
            case ConflictType.SEGMENT_OVERLAP:
                return f'"{src}" and "{tgt}" in rule "{name}" match the same subdomains'

    def to_dict(self) -> dict[str, Any]:
        return {
            "sourcePattern": self.source_pattern,
            "targetPattern": self.target_pattern,
            "targetRuleId": self.target_rule_id,
            "targetRuleName": self.target_rule_name,
            "conflictType": self.conflict_type.value,
            "description": self.description,
        }


def detect_conflicts(
    patterns: Iterable[str],
    existing_rules: Iterable[Rule],
    exclude_rule_id: str | None = None,
) -> list[PatternConflict]:
    """Find overlaps between candidate patterns and the patterns of existing rules.

    Disabled rules are checked too, since they can be enabled later.

    Args:
        patterns: Patterns of the rule being edited or imported.
        existing_rules: Saved rules to compare against.
        exclude_rule_id: Rule being edited, skipped.

    Returns:
        Conflicts in candidate pattern order, then rule order.
    """
    rules = [rule for rule in existing_rules if rule.id != exclude_rule_id]
    conflicts: list[PatternConflict] = []

    for source in patterns:
        for rule in rules:
            for target in rule.patterns:
                conflict_type = check_pattern_overlap(source, target)
                if conflict_type is not None:
                    conflicts.append(
                        PatternConflict(
                            source_pattern=source,
                            target_pattern=target,
                            target_rule_id=rule.id,
                            target_rule_name=rule.name,
                            conflict_type=conflict_type,
                        )
                    )

    return conflicts


def check_pattern_overlap(source: str, target: str) -> ConflictType | None:
    """Classify the overlap between two patterns, or return None if they are disjoint."""
    src = normalize_pattern(source)
    tgt = normalize_pattern(target)

    if src.lower() == tgt.lower():
        return ConflictType.EXACT_DUPLICATE

    src_segment = _is_segment(src)
    tgt_segment = _is_segment(tgt)
    if src_segment or tgt_segment:
        return _segment_overlap(src, tgt, src_segment, tgt_segment)

    if src.startswith("*.") and _is_subdomain_of(tgt, src[2:]):
        return ConflictType.WILDCARD_SUBSUMES
    if tgt.startswith("*.") and _is_subdomain_of(src, tgt[2:]):
        return ConflictType.SUBSUMED_BY_WILDCARD

    if _tld_wildcard_covers(src, tgt) or _tld_wildcard_covers(tgt, src):
        return ConflictType.TLD_WILDCARD_OVERLAP

    return None


def _is_segment(pattern: str) -> bool:
    return "{" in pattern and "}" in pattern


def _is_subdomain_of(pattern: str, base: str) -> bool:
    if pattern.startswith("*.") or "{" in pattern:
        return False
    return pattern.endswith(f".{base}") and len(pattern) > len(base) + 1


def _tld_wildcard_covers(wildcard: str, other: str) -> bool:
    if not wildcard.endswith(".**") or other.endswith(".**"):
        return False
    return other.startswith(f"{wildcard[:-3]}.")


def _segment_base(pattern: str) -> str:
    return _VARIABLE_RE.sub("", pattern).lstrip(".-")


def _segment_overlap(
    src: str,
    tgt: str,
    src_segment: bool,
    tgt_segment: bool,
) -> ConflictType | None:
    src_base = _segment_base(src) if src_segment else src
    tgt_base = _segment_base(tgt) if tgt_segment else tgt
    if not src_base or not tgt_base:
        return None

    if src_segment and tgt_segment:
        return ConflictType.SEGMENT_OVERLAP if src_base == tgt_base else None

    segment_base, other = (src_base, tgt) if src_segment else (tgt_base, src)
    if other.startswith("*."):
        return ConflictType.SEGMENT_OVERLAP if other[2:] == segment_base else None
    if other == segment_base or _is_subdomain_of(other, segment_base):
        return ConflictType.SEGMENT_OVERLAP
    return None
