"""URL validation and normalization for outbound link fetching.

- validate_fetch_url(): strict validation before any request, raises
  InvalidRequestError on failure
- normalize_url_for_cache(): comparison key for "same link" checks

Key behaviors:
- Scheme must be http or https
- Length must be ≤ 2048 characters
- Host must be present and non-empty
- Userinfo (user:pass@host) is forbidden
- Localhost/private addresses are rejected (127.0.0.1, ::1, localhost, *.local)
  - Exception: with TEAK_ENV=test, localhost/127.0.0.1 are allowed
"""

import ipaddress
import os
import re
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from teak.errors import ApiErrorCode, InvalidRequestError

MAX_URL_LENGTH = 2048

ALLOWED_SCHEMES = {"http", "https"}

BLOCKED_HOSTNAMES = {
    "localhost",
}

BLOCKED_HOSTNAME_PATTERNS = [
    re.compile(r".*\.local$", re.IGNORECASE),
    re.compile(r".*\.internal$", re.IGNORECASE),
]

PRIVATE_IP_RANGES = [
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fe80::/10"),
    ipaddress.ip_network("fc00::/7"),
]

# Query parameters that never change what a link points at.
TRACKING_PARAM_PREFIXES = ("utm_",)
TRACKING_PARAMS = frozenset({"fbclid", "gclid", "mc_cid", "mc_eid", "ref", "ref_src", "igshid"})


def _is_test_environment() -> bool:
    return os.environ.get("TEAK_ENV", "").lower() == "test"


def _is_private_ip(hostname: str) -> bool:
    try:
        ip = ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return any(ip in network for network in PRIVATE_IP_RANGES)


def _is_blocked_hostname(hostname: str) -> bool:
    """Check if hostname is blocked.

    With TEAK_ENV=test, localhost and 127.0.0.1 are allowed so tests can
    point the fetcher at local fixtures.
    """
    hostname_lower = hostname.lower()

    if _is_test_environment() and hostname_lower in ("localhost", "127.0.0.1"):
        return False

    if hostname_lower in BLOCKED_HOSTNAMES:
        return True

    for pattern in BLOCKED_HOSTNAME_PATTERNS:
        if pattern.match(hostname_lower):
            return True

    return _is_private_ip(hostname)


def validate_fetch_url(url: str) -> None:
    """Validate a URL before fetching it.

    Raises:
        InvalidRequestError: If validation fails, with details about the failure.
    """
    if len(url) > MAX_URL_LENGTH:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST,
            f"URL exceeds maximum length of {MAX_URL_LENGTH} characters",
        )

    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
    except ValueError as e:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, f"Invalid URL format: {e}") from e

    scheme = parsed.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST,
            f"Invalid URL scheme '{parsed.scheme}'. Only http and https are allowed.",
        )

    if parsed.username or parsed.password:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST,
            "URLs with credentials (user:pass@host) are not allowed",
        )

    if not hostname:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "URL must have a valid hostname")

    if _is_blocked_hostname(hostname):
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST,
            f"URL hostname '{hostname}' is not allowed",
        )


def _is_tracking_param(name: str) -> bool:
    lowered = name.lower()
    return lowered in TRACKING_PARAMS or lowered.startswith(TRACKING_PARAM_PREFIXES)


def normalize_url_for_cache(url: str | None) -> str | None:
    """Normalize a URL into a key for "same link" comparisons.

    Normalization rules:
    - Lowercase scheme and host, drop a leading "www."
    - Drop default ports
    - Strip fragment (#...) and trailing slashes
    - Drop tracking query parameters, keep the rest in original order

    Returns:
        The key, or None for empty or unparsable input.
    """
    if not url or not url.strip():
        return None
    try:
        parsed = urlparse(url.strip())
        hostname = (parsed.hostname or "").lower()
        port = parsed.port
    except ValueError:
        return None
    if not hostname:
        return None

    scheme = parsed.scheme.lower() or "https"
    if hostname.startswith("www."):
        hostname = hostname[4:]
    if port and not ((scheme == "http" and port == 80) or (scheme == "https" and port == 443)):
        netloc = f"{hostname}:{port}"
    else:
        netloc = hostname

    query = urlencode(
        [
            (name, value)
            for name, value in parse_qsl(parsed.query, keep_blank_values=True)
            if not _is_tracking_param(name)
        ]
    )
    path = parsed.path.rstrip("/")

    return urlunparse((scheme, netloc, path, "", query, ""))
