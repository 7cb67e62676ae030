"""Rule pattern language: parsing and validation.

A rule pattern string is parsed once into one of the tagged pattern types
below, and the matcher dispatches on that type. Supported forms:

- ``example.com``: exact domain
- ``*.example.com``: the base domain and any subdomain
- ``google.**``: fixed label prefix followed by any domain suffix
- ``prefix-*.example.com``: ``*`` matches within a single label
- ``192.168.1.*``: IPv4 address, each octet exact or ``*``
- ``example.com/api``: any of the above plus a path prefix (``*`` matches
  within a path segment, ``**`` across segments)
- ``{sub}.example.com``: segment extraction, captured values feed group names
- ``/^jira\\./``: regular expression, matched against the full URL
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, TypeAlias

MAX_PATTERN_LENGTH = 253

LABEL_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]*[a-z0-9])?$")
_TLD_RE = re.compile(r"^[a-z]{2,}$")
_HOST_CHARS_RE = re.compile(r"^[a-z0-9.*-]+$")
_PATH_CHARS_RE = re.compile(r"^[a-z0-9._/*-]*$")
_SEGMENT_LITERAL_RE = re.compile(r"^[a-z0-9._/*-]*$")
_IPV4_SHAPE_RE = re.compile(r"^[0-9*]+(?:\.[0-9*]+){3}$")
_VARIABLE_NAME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9]*$")
_BRACED_RE = re.compile(r"(\{[^}]*\})")

SEGMENT_DELIMITERS = ("dash", "dot")


class PatternParseError(ValueError):
    """Raised when a pattern string is not valid pattern language."""

    pass


class PatternKind(str, Enum):
    """Kinds of rule pattern."""

    EXACT = "exact"
    SUBDOMAIN_WILDCARD = "subdomain_wildcard"
    TLD_WILDCARD = "tld_wildcard"
    LABEL_WILDCARD = "label_wildcard"
    IPV4 = "ipv4"
    PATH_SCOPED = "path_scoped"
    SEGMENT_EXTRACTION = "segment_extraction"
    REGEX = "regex"


@dataclass(frozen=True)
class ExactDomain:
    """``example.com``."""

    kind: ClassVar[PatternKind] = PatternKind.EXACT
    source: str
    domain: str


@dataclass(frozen=True)
class SubdomainWildcard:
    """``*.example.com``."""

    kind: ClassVar[PatternKind] = PatternKind.SUBDOMAIN_WILDCARD
    source: str
    base: str


@dataclass(frozen=True)
class TldWildcard:
    """``google.**``; ``prefix`` is ``google``."""

    kind: ClassVar[PatternKind] = PatternKind.TLD_WILDCARD
    source: str
    prefix: str


@dataclass(frozen=True)
class LabelWildcard:
    """``prefix-*.example.com``."""

    kind: ClassVar[PatternKind] = PatternKind.LABEL_WILDCARD
    source: str
    regex: re.Pattern[str]


@dataclass(frozen=True)
class IPv4Pattern:
    """``10.0.*.1``; ``None`` octets are wildcards."""

    kind: ClassVar[PatternKind] = PatternKind.IPV4
    source: str
    octets: tuple[int | None, ...]


HostPattern: TypeAlias = ExactDomain | SubdomainWildcard | TldWildcard | LabelWildcard | IPv4Pattern


@dataclass(frozen=True)
class PathScoped:
    """A host pattern plus a path prefix, e.g. ``google.**/forms``."""

    kind: ClassVar[PatternKind] = PatternKind.PATH_SCOPED
    source: str
    host: HostPattern
    path: str
    path_regex: re.Pattern[str]


@dataclass(frozen=True)
class SegmentVariable:
    """A ``{name}`` placeholder in a segment extraction pattern."""

    name: str
    delimiter: str | None = None


@dataclass(frozen=True)
class SegmentExtraction:
    """``{sub}.example.com`` or ``{org}.github.io/{repo}``."""

    kind: ClassVar[PatternKind] = PatternKind.SEGMENT_EXTRACTION
    source: str
    variables: tuple[SegmentVariable, ...]
    regex: re.Pattern[str]
    includes_path: bool


@dataclass(frozen=True)
class RegexPattern:
    """``/body/``; the body is searched in the full URL."""

    kind: ClassVar[PatternKind] = PatternKind.REGEX
    source: str
    regex: re.Pattern[str]


Pattern: TypeAlias = HostPattern | PathScoped | SegmentExtraction | RegexPattern


@dataclass(frozen=True)
class PatternValidationResult:
    """Outcome of validating a pattern string."""

    is_valid: bool
    error: str | None = None
    kind: PatternKind | None = None

    def to_dict(self) -> dict[str, object]:
        """Serialize for message responses."""
        return {
            "isValid": self.is_valid,
            "error": self.error,
            "type": self.kind.value if self.kind else None,
        }


def _is_regex_form(pattern: str) -> bool:
    return len(pattern) >= 2 and pattern.startswith("/") and pattern.endswith("/")


def normalize_pattern(pattern: str) -> str:
    """Trim a pattern and lower-case it.

    Regex bodies and ``{variable}`` specs keep their case; lower-casing them
    would change escapes like ``\\D`` and break template placeholders.
    """
    clean = pattern.strip()
    if _is_regex_form(clean):
        return clean
    parts = _BRACED_RE.split(clean)
    return "".join(part if part.startswith("{") else part.lower() for part in parts)


def parse_pattern(pattern: str) -> Pattern:
    """Parse a pattern string into its tagged pattern type.

    Args:
        pattern: Raw pattern string.

    Returns:
        The parsed pattern.

    Raises:
        PatternParseError: If the pattern is invalid.
    """
    if not isinstance(pattern, str):
        raise PatternParseError("Pattern must be a non-empty string")

    clean = normalize_pattern(pattern)
    if not clean:
        raise PatternParseError("Pattern cannot be empty")
    if len(clean) > MAX_PATTERN_LENGTH:
        raise PatternParseError(f"Pattern too long (max {MAX_PATTERN_LENGTH} characters)")

    if _is_regex_form(clean):
        return _parse_regex(clean)
    if "{" in clean or "}" in clean:
        return _parse_segment(clean)
    return _parse_simple(clean)


def detect_pattern_kind(pattern: str) -> PatternKind | None:
    """Classify a pattern string, or return None if it does not parse."""
    try:
        return parse_pattern(pattern).kind
    except PatternParseError:
        return None


def validate_pattern(pattern: str) -> PatternValidationResult:
    """Validate a pattern string without raising.

    Args:
        pattern: Raw pattern string.

    Returns:
        Validation result with the error message or the detected kind.
    """
    try:
        parsed = parse_pattern(pattern)
    except PatternParseError as e:
        return PatternValidationResult(is_valid=False, error=str(e))
    return PatternValidationResult(is_valid=True, kind=parsed.kind)


def _parse_regex(pattern: str) -> RegexPattern:
    body = pattern[1:-1]
    if not body:
        raise PatternParseError("Regex pattern cannot be empty")
    try:
        regex = re.compile(body, re.IGNORECASE)
    except re.error as e:
        raise PatternParseError(f"Invalid regex: {e}") from e
    return RegexPattern(source=pattern, regex=regex)


def _parse_simple(pattern: str) -> HostPattern | PathScoped:
    host_part, slash, path_part = pattern.partition("/")
    host = _parse_host(host_part, pattern if not slash else host_part)

    if not slash:
        return host

    if "//" in pattern:
        raise PatternParseError("Path pattern cannot contain consecutive slashes")
    if not _PATH_CHARS_RE.match(path_part):
        raise PatternParseError("Path pattern contains invalid characters")
    if path_part.count("**") > 1:
        raise PatternParseError("Invalid ** pattern in path. Use format: prefix/**/suffix")

    path = path_part.strip("/")
    if not path:
        # "example.com/" is the bare host pattern
        return _parse_host(host_part, pattern.rstrip("/"))

    return PathScoped(source=pattern, host=host, path=path, path_regex=_compile_path(path))


def _compile_path(path: str) -> re.Pattern[str]:
    def segment_glob(part: str) -> str:
        return "[^/]*".join(re.escape(piece) for piece in part.split("*"))

    if "**" in path:
        prefix, suffix = path.split("**", 1)
        return re.compile(f"^{segment_glob(prefix)}.*{segment_glob(suffix)}$")
    return re.compile(f"^{segment_glob(path)}")


def _parse_host(host: str, source: str) -> HostPattern:
    if not host:
        raise PatternParseError("Domain pattern cannot be empty")
    if "***" in host:
        raise PatternParseError("Invalid wildcard pattern (too many asterisks)")

    if _IPV4_SHAPE_RE.match(host):
        return IPv4Pattern(source=source, octets=_parse_ipv4_octets(host))

    if not _HOST_CHARS_RE.match(host):
        raise PatternParseError("Domain pattern contains invalid characters")

    if "**" in host:
        return _parse_tld_wildcard(host, source)

    if host.startswith("*."):
        base = host[2:]
        if not base or "." not in base:
            raise PatternParseError("Invalid * pattern. Use format: *.domain.com")
        if "*" in base:
            raise PatternParseError("Multiple wildcards not allowed in domain pattern")
        error = _domain_error(base)
        if error:
            raise PatternParseError(f"Invalid base domain in * pattern: {error}")
        return SubdomainWildcard(source=source, base=base)

    if "*" in host:
        if host.startswith("*"):
            raise PatternParseError("Invalid * pattern. Use format: *.domain.com")
        error = _domain_error(host.replace("*", "x"))
        if error:
            raise PatternParseError(error)
        regex = re.compile("^" + "[^.]*".join(re.escape(p) for p in host.split("*")) + "$")
        return LabelWildcard(source=source, regex=regex)

    error = _domain_error(host)
    if error:
        raise PatternParseError(error)
    return ExactDomain(source=source, domain=host)


def _parse_tld_wildcard(host: str, source: str) -> TldWildcard:
    if not host.endswith(".**") or host.count("**") > 1:
        raise PatternParseError("Invalid ** pattern. Use format: domain.**")
    prefix = host[:-3]
    if not prefix:
        raise PatternParseError("** pattern must have a domain prefix (e.g., google.**)")
    if "*" in prefix:
        raise PatternParseError("Combining * and ** in one domain pattern is not supported")
    if not all(LABEL_RE.match(label) for label in prefix.split(".")):
        raise PatternParseError("Invalid domain prefix in ** pattern")
    return TldWildcard(source=source, prefix=prefix)


def _parse_ipv4_octets(host: str) -> tuple[int | None, ...]:
    octets: list[int | None] = []
    for part in host.split("."):
        if part == "*":
            octets.append(None)
            continue
        if not part.isdigit():
            raise PatternParseError(f'Invalid IPv4 octet "{part}". Must be 0-255 or *')
        value = int(part)
        if value > 255:
            raise PatternParseError(f'IPv4 octet "{part}" must be between 0 and 255')
        if part != str(value):
            raise PatternParseError(f'IPv4 octet "{part}" cannot have leading zeros')
        octets.append(value)
    return tuple(octets)


def _domain_error(domain: str) -> str | None:
    if domain.startswith(".") or domain.endswith("."):
        return "Domain cannot start or end with a dot"
    if ".." in domain:
        return "Domain cannot contain consecutive dots"
    labels = domain.split(".")
    if len(labels) < 2 or not _TLD_RE.match(labels[-1]):
        return "Invalid domain format"
    for label in labels:
        if not LABEL_RE.match(label):
            if label.startswith("-") or label.endswith("-"):
                return "Domain labels cannot start or end with a hyphen"
            return "Invalid domain format"
    return None


def _parse_segment(pattern: str) -> SegmentExtraction:
    parts = _split_segment_pattern(pattern)
    variables = tuple(p for p in parts if isinstance(p, SegmentVariable))

    if not variables:
        raise PatternParseError("Pattern must contain at least one {variable}")
    names = [v.name for v in variables]
    if len(set(names)) != len(names):
        raise PatternParseError("Duplicate variable names in pattern")

    includes_path = "/" in pattern
    if "//" in pattern:
        raise PatternParseError("Path pattern cannot contain consecutive slashes")

    regex_parts = ["^"]
    for index, part in enumerate(parts):
        if isinstance(part, SegmentVariable):
            regex_parts.append("([^-./]+)" if part.delimiter == "dash" else "([^./]+)")
            continue
        if not _SEGMENT_LITERAL_RE.match(part):
            raise PatternParseError("Segment pattern contains invalid characters")
        if "**" in part:
            raise PatternParseError("Use a single * inside segment patterns")
        if index == len(parts) - 1 and includes_path:
            part = part.rstrip("/")
        regex_parts.append("[^./]*".join(re.escape(piece) for piece in part.split("*")))
    regex_parts.append("(?:/.*)?$" if includes_path else "$")

    return SegmentExtraction(
        source=pattern,
        variables=variables,
        regex=re.compile("".join(regex_parts), re.IGNORECASE),
        includes_path=includes_path,
    )


def _split_segment_pattern(pattern: str) -> list[str | SegmentVariable]:
    parts: list[str | SegmentVariable] = []
    literal: list[str] = []
    index = 0

    while index < len(pattern):
        char = pattern[index]
        if char == "{":
            end = pattern.find("}", index + 1)
            if end == -1 or "{" in pattern[index + 1 : end]:
                raise PatternParseError("Invalid segment pattern syntax: unclosed {")
            if literal:
                parts.append("".join(literal))
                literal = []
            parts.append(_parse_variable_spec(pattern[index + 1 : end]))
            index = end + 1
        elif char == "}":
            raise PatternParseError("Invalid segment pattern syntax: unmatched }")
        else:
            literal.append(char)
            index += 1

    if literal:
        parts.append("".join(literal))
    return parts


def _parse_variable_spec(spec: str) -> SegmentVariable:
    """Parse ``name``, ``name:segment`` or ``name:segment:dash``."""
    fields = spec.split(":")
    if len(fields) > 3:
        raise PatternParseError(f"Invalid variable spec: {spec}")

    name = fields[0]
    if not _VARIABLE_NAME_RE.match(name):
        raise PatternParseError(f"Invalid variable name: {name}")

    var_type = fields[1] if len(fields) > 1 else "segment"
    if var_type != "segment":
        raise PatternParseError(f"Unsupported variable type: {var_type}")

    delimiter = fields[2] if len(fields) > 2 else None
    if delimiter is not None and delimiter not in SEGMENT_DELIMITERS:
        raise PatternParseError(f"Unsupported delimiter: {delimiter}")

    return SegmentVariable(name=name, delimiter=delimiter)
