"""URL classification primitives: domains and rule patterns."""

from tabgroups.matching.domain import (
    SYSTEM_DOMAIN,
    SYSTEM_GROUP_NAME,
    domain_display_name,
    extract_domain,
    is_new_tab_url,
    is_system_url,
)
from tabgroups.matching.matcher import MatchOptions, MatchResult, match_host, match_pattern
from tabgroups.matching.patterns import (
    Pattern,
    PatternKind,
    PatternParseError,
    PatternValidationResult,
    detect_pattern_kind,
    normalize_pattern,
    parse_pattern,
    validate_pattern,
)

__all__ = [
    "SYSTEM_DOMAIN",
    "SYSTEM_GROUP_NAME",
    "MatchOptions",
    "MatchResult",
    "Pattern",
    "PatternKind",
    "PatternParseError",
    "PatternValidationResult",
    "detect_pattern_kind",
    "domain_display_name",
    "extract_domain",
    "is_new_tab_url",
    "is_system_url",
    "match_host",
    "match_pattern",
    "normalize_pattern",
    "parse_pattern",
    "validate_pattern",
]
