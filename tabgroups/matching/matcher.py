"""Evaluate parsed rule patterns against URLs."""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import SplitResult, urlsplit

from tabgroups.matching.patterns import (
    LABEL_RE,
    ExactDomain,
    HostPattern,
    IPv4Pattern,
    LabelWildcard,
    PathScoped,
    Pattern,
    PatternParseError,
    RegexPattern,
    SegmentExtraction,
    SubdomainWildcard,
    TldWildcard,
    parse_pattern,
)

DEFAULT_EXTRACTED_GROUP_NAME = "Extracted Group"


@dataclass(frozen=True)
class MatchOptions:
    """Per-rule context for a match."""

    rule_name: str | None = None
    group_name_template: str | None = None
    auto_subdomain: bool = False
    """Let exact domain patterns also match their subdomains."""


@dataclass(frozen=True)
class MatchResult:
    """Outcome of matching one URL against one pattern."""

    matched: bool
    group_name: str | None = None
    extracted_values: dict[str, str] = field(default_factory=dict)


NO_MATCH = MatchResult(matched=False)


def match_pattern(
    url: str,
    pattern: str | Pattern,
    options: MatchOptions | None = None,
) -> MatchResult:
    """Match a URL against a pattern.

    Never raises: unparsable URLs and invalid pattern strings are a non-match.

    Args:
        url: Full tab URL.
        pattern: Pattern string or an already parsed pattern.
        options: Rule name, group name template and subdomain behaviour.

    Returns:
        Match result, with the group name the match implies.
    """
    if options is None:
        options = MatchOptions()
    if not url or not pattern:
        return NO_MATCH

    if isinstance(pattern, str):
        try:
            pattern = parse_pattern(pattern)
        except PatternParseError:
            return NO_MATCH

    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname or ""
    except ValueError:
        return NO_MATCH

    match pattern:
        case RegexPattern():
            return _match_regex(url.strip(), pattern, options)
        case SegmentExtraction():
            return _match_segment(hostname, parts, pattern, options)
        case PathScoped():
            if not match_host(hostname, pattern.host, options.auto_subdomain):
                return NO_MATCH
            path = parts.path.lower().strip("/")
            if not pattern.path_regex.search(path):
                return NO_MATCH
            return MatchResult(matched=True, group_name=options.rule_name)
        case _:
            if not match_host(hostname, pattern, options.auto_subdomain):
                return NO_MATCH
            return MatchResult(matched=True, group_name=options.rule_name)


def match_host(hostname: str, pattern: HostPattern, auto_subdomain: bool = False) -> bool:
    """Match a hostname against a host pattern.

    Args:
        hostname: Lower-cased hostname without port.
        pattern: Parsed host pattern.
        auto_subdomain: Let exact domains also match their subdomains.

    Returns:
        True if the hostname matches.
    """
    if not hostname:
        return False
    host = hostname.lower().rstrip(".")

    match pattern:
        case ExactDomain(domain=domain):
            return host == domain or (auto_subdomain and host.endswith(f".{domain}"))
        case SubdomainWildcard(base=base):
            return host == base or host.endswith(f".{base}")
        case TldWildcard(prefix=prefix):
            if not host.startswith(f"{prefix}."):
                return False
            suffix = host[len(prefix) + 1 :]
            return bool(suffix) and all(LABEL_RE.match(label) for label in suffix.split("."))
        case LabelWildcard(regex=regex):
            return regex.match(host) is not None
        case IPv4Pattern(octets=octets):
            return _match_ipv4(host, octets)
    return False


def _match_ipv4(host: str, octets: tuple[int | None, ...]) -> bool:
    parts = host.split(".")
    if len(parts) != 4 or not all(p.isdecimal() for p in parts):
        return False
    for part, expected in zip(parts, octets, strict=True):
        value = int(part)
        if value > 255:
            return False
        if expected is not None and value != expected:
            return False
    return True


def _match_segment(
    hostname: str,
    parts: SplitResult,
    pattern: SegmentExtraction,
    options: MatchOptions,
) -> MatchResult:
    if not hostname:
        return NO_MATCH

    target = hostname + parts.path if pattern.includes_path else hostname
    match = pattern.regex.match(target)
    if not match:
        return NO_MATCH

    extracted = {
        variable.name: match.group(index + 1)
        for index, variable in enumerate(pattern.variables)
    }

    if options.group_name_template:
        group_name = render_group_name(options.group_name_template, extracted)
    else:
        group_name = extracted[pattern.variables[0].name] or options.rule_name

    return MatchResult(
        matched=True,
        group_name=group_name or DEFAULT_EXTRACTED_GROUP_NAME,
        extracted_values=extracted,
    )


def _match_regex(url: str, pattern: RegexPattern, options: MatchOptions) -> MatchResult:
    match = pattern.regex.search(url)
    if not match:
        return NO_MATCH

    extracted = {
        f"group{index}": value
        for index, value in enumerate(match.groups(), start=1)
        if value is not None
    }

    if options.group_name_template:
        group_name = render_group_name(options.group_name_template, extracted)
    else:
        group_name = extracted.get("group1") or options.rule_name

    return MatchResult(matched=True, group_name=group_name, extracted_values=extracted)


def render_group_name(template: str, values: dict[str, str]) -> str:
    """Substitute ``{name}`` placeholders in a group name template.

    Placeholders without a captured value are left as written.
    """
    result = template
    for name, value in values.items():
        result = result.replace(f"{{{name}}}", value)
    return result.strip()
