"""Domain extraction from tab URLs."""

from __future__ import annotations

import ipaddress
from urllib.parse import urlsplit

SYSTEM_DOMAIN = "system"
SYSTEM_GROUP_NAME = "System"

# Second-to-last labels that mark a compound suffix like co.uk or com.au
COMPOUND_TLD_MARKERS = frozenset({"co", "com", "org", "net", "ac", "gov", "edu"})

SYSTEM_SCHEMES = frozenset(
    {"chrome", "chrome-extension", "moz-extension", "about", "edge", "safari"}
)

NEW_TAB_URL_PREFIXES = (
    "chrome://newtab/",
    "chrome-extension://",
    "moz-extension://",
    "about:newtab",
    "about:home",
    "edge://newtab/",
    "about:blank",
)


def is_ip_address(host: str) -> bool:
    """Check if a hostname is a literal IPv4 or IPv6 address."""
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


def extract_domain(url: str, include_subdomains: bool = False) -> str:
    """Extract the canonical domain of a URL.

    Browser-internal pages and hosts without a dot (``localhost``) collapse to
    the ``system`` domain. IPv4 and IPv6 addresses are returned as-is.

    Args:
        url: Full tab URL.
        include_subdomains: Return the full hostname instead of the base domain.

    Returns:
        The domain, ``system``, or an empty string if the URL cannot be parsed.
    """
    if not isinstance(url, str) or not url.strip():
        return ""

    try:
        parts = urlsplit(url.strip())
        hostname = (parts.hostname or "").rstrip(".")
    except ValueError:
        return ""

    if not parts.scheme:
        return ""

    if parts.scheme.lower() in SYSTEM_SCHEMES or not hostname:
        return SYSTEM_DOMAIN

    if is_ip_address(hostname):
        return hostname

    if "." not in hostname:
        return SYSTEM_DOMAIN

    if include_subdomains:
        return hostname

    labels = hostname.split(".")
    if len(labels) >= 3 and labels[-2] in COMPOUND_TLD_MARKERS:
        return ".".join(labels[-3:])
    return ".".join(labels[-2:])


def domain_display_name(domain: str) -> str:
    """Turn a domain into a human readable group title.

    The TLD (or compound suffix) and a leading ``www`` are dropped and the
    first letter is capitalized: ``www.github.com`` becomes ``Github`` and
    ``bbc.co.uk`` becomes ``Bbc``.

    Args:
        domain: Domain as returned by :func:`extract_domain`.

    Returns:
        Display name, or the domain itself when nothing would remain.
    """
    if not domain:
        return ""
    if domain == SYSTEM_DOMAIN:
        return SYSTEM_GROUP_NAME
    if is_ip_address(domain):
        return domain

    labels = domain.split(".")
    if len(labels) == 1:
        return _capitalize(domain)

    display = labels[:-1]
    if len(display) >= 2 and display[-1] in COMPOUND_TLD_MARKERS:
        display = display[:-1]
    if len(display) > 1 and display[0] == "www":
        display = display[1:]

    name = ".".join(display)
    return _capitalize(name) if name else domain


def is_system_url(url: str) -> bool:
    """Check if a URL is a browser-internal page."""
    return extract_domain(url) == SYSTEM_DOMAIN


def is_new_tab_url(url: str) -> bool:
    """Check if a URL is a blank or new tab page."""
    if not isinstance(url, str) or not url:
        return False
    return url.startswith(NEW_TAB_URL_PREFIXES)


def _capitalize(name: str) -> str:
    return name[:1].upper() + name[1:]
