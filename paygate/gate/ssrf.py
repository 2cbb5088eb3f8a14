# paygate/gate/ssrf.py
"""
SSRF protection for outbound fetches.

The paid handler fetches URLs supplied by clients. Before any such fetch
(and before following any redirect), the target must pass is_fetch_allowed().

Host matching is lexical: the hostname string is compared against the
blocked patterns below. No DNS resolution is performed.
"""
import logging
from typing import Iterable, Tuple
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES: Tuple[str, ...] = ("http", "https")

# Pattern forms:
#   "name"      exact hostname
#   "prefix.*"  hostname starts with "prefix."
#   "*.suffix"  hostname ends with ".suffix"
BLOCKED_HOST_PATTERNS: Tuple[str, ...] = (
    "localhost",
    "0.0.0.0",
    "::1",
    "127.*",
    "10.*",
    "192.168.*",
    "172.*",
    "169.254.169.254",  # cloud metadata endpoint
    "*.local",
    "*.internal",
)


def host_matches(host: str, pattern: str) -> bool:
    """Check a lowercase hostname against a single blocked-host pattern."""
    if pattern.endswith(".*"):
        return host.startswith(pattern[:-1])
    if pattern.startswith("*."):
        return host.endswith(pattern[1:])
    return host == pattern


def is_fetch_allowed(
    url: str,
    allowed_schemes: Iterable[str] = ALLOWED_SCHEMES,
    blocked_host_patterns: Iterable[str] = BLOCKED_HOST_PATTERNS,
) -> bool:
    """
    Check whether a URL may be fetched on a client's behalf.

    Args:
        url: Absolute URL string
        allowed_schemes: Schemes that may be fetched
        blocked_host_patterns: Host patterns that must never be fetched

    Returns:
        True if the URL is safe to fetch
    """
    try:
        parts = urlsplit(url)
        host = parts.hostname
    except ValueError:
        return False

    if parts.scheme.lower() not in allowed_schemes:
        return False

    if not host:
        return False

    host = host.lower().rstrip(".")
    for pattern in blocked_host_patterns:
        if host_matches(host, pattern):
            logger.warning(f"Blocked outbound fetch to internal host: {host}")
            return False

    return True
