"""Resolve a URL to its target group.

Resolution is a pure function of a URL and a :class:`ResolverConfig`
snapshot. Enabled rules are ranked by priority, then by the length of the
matching pattern (more specific wins), then by creation time and finally by
position in the rule list. When no rule matches, the group is derived from
the URL's domain.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime  # noqa: TC003
from functools import lru_cache
from typing import TYPE_CHECKING

from tabgroups.matching.domain import (
    SYSTEM_DOMAIN,
    domain_display_name,
    extract_domain,
)
from tabgroups.matching.matcher import MatchOptions, match_pattern
from tabgroups.matching.patterns import Pattern, PatternParseError, parse_pattern
from tabgroups.models.classification import ClassificationResult, ClassificationSource
from tabgroups.models.rule import Rule, TabGroupColor
from tabgroups.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from tabgroups.models.config import Settings

logger = get_logger("rules.resolver")

SYSTEM_GROUP_COLOR = TabGroupColor.GREY


@dataclass(frozen=True)
class ResolverConfig:
    """Immutable snapshot of everything resolution depends on."""

    rules: tuple[Rule, ...] = ()
    include_subdomains: bool = False
    default_minimum_tabs: int = 1
    auto_subdomain: bool = True
    """Let exact domain patterns also match subdomains of that domain."""

    @classmethod
    def from_settings(cls, settings: Settings, rules: Iterable[Rule]) -> ResolverConfig:
        """Build a snapshot from the current settings and rule set."""
        return cls(
            rules=tuple(rules),
            include_subdomains=settings.include_subdomains,
            default_minimum_tabs=settings.minimum_tabs_for_group,
        )


@dataclass(frozen=True)
class RuleMatch:
    """The winning rule for a URL."""

    rule: Rule
    pattern: str
    group_name: str
    extracted_values: dict[str, str] = field(default_factory=dict)


@lru_cache(maxsize=1024)
def compile_pattern(pattern: str) -> Pattern | None:
    """Parse a stored pattern, or return None if it is not valid."""
    try:
        return parse_pattern(pattern)
    except PatternParseError:
        return None


def find_matching_rule(url: str, config: ResolverConfig) -> RuleMatch | None:
    """Find the highest-ranked enabled rule matching a URL.

    Args:
        url: Full tab URL.
        config: Resolver snapshot.

    Returns:
        The winning match, or None if no enabled rule matches.
    """
    if not url:
        return None

    best: tuple[tuple[int, int, datetime, int], RuleMatch] | None = None
    for index, rule in enumerate(config.rules):
        if not rule.enabled:
            continue

        match = _first_matching_pattern(url, rule, config.auto_subdomain)
        if match is None:
            continue

        rank = (rule.priority, -len(match.pattern), rule.created_at, index)
        if best is None or rank < best[0]:
            best = (rank, match)

    return best[1] if best else None


def resolve(url: str, config: ResolverConfig) -> ClassificationResult | None:
    """Classify a URL into its target group.

    Never raises. Invalid patterns are skipped.

    Args:
        url: Full tab URL.
        config: Resolver snapshot.

    Returns:
        Classification, or None if the URL has no usable domain.
    """
    match = find_matching_rule(url, config)
    if match is not None:
        rule = match.rule
        logger.debug(
            "URL matched rule",
            extra={"rule_id": rule.id, "pattern": match.pattern, "group_name": match.group_name},
        )
        return ClassificationResult(
            group_name=match.group_name,
            color=rule.color,
            minimum_tabs=effective_minimum_tabs(rule, config.default_minimum_tabs),
            source=ClassificationSource.RULE,
            rule_id=rule.id,
        )

    domain = extract_domain(url, config.include_subdomains)
    if not domain:
        return None

    return ClassificationResult(
        group_name=domain_display_name(domain),
        color=SYSTEM_GROUP_COLOR if domain == SYSTEM_DOMAIN else None,
        minimum_tabs=config.default_minimum_tabs,
        source=ClassificationSource.DOMAIN,
    )


def effective_minimum_tabs(rule: Rule | None, default: int) -> int:
    """Return a rule's minimum group size, falling back to the global default."""
    if rule is not None and rule.minimum_tabs is not None:
        return rule.minimum_tabs
    return max(default, 1)


def minimum_tabs_for_title(title: str, config: ResolverConfig) -> int:
    """Return the minimum size for a live group with the given title.

    The override of the first enabled rule named like the group applies,
    otherwise the global default.
    """
    for rule in config.rules:
        if rule.enabled and rule.name == title:
            return effective_minimum_tabs(rule, config.default_minimum_tabs)
    return effective_minimum_tabs(None, config.default_minimum_tabs)


def _first_matching_pattern(url: str, rule: Rule, auto_subdomain: bool) -> RuleMatch | None:
    options = MatchOptions(
        rule_name=rule.name,
        group_name_template=rule.group_name_template,
        auto_subdomain=auto_subdomain,
    )
    for source in rule.patterns:
        pattern = compile_pattern(source)
        if pattern is None:
            continue
        result = match_pattern(url, pattern, options)
        if result.matched:
            return RuleMatch(
                rule=rule,
                pattern=source,
                group_name=result.group_name or rule.name,
                extracted_values=result.extracted_values,
            )
    return None
