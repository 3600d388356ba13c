"""
Affiliate destination validation
Only partner hosts on the allow-list ever end up in a Location header
"""
import logging
import urllib.parse
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")

# Query keys named after URI schemes that could be smuggled into a stored URL
DANGEROUS_PARAMS = {"javascript", "data", "vbscript", "file"}


class DestinationRejected(ValueError):
    """Stored affiliate URL is not a safe redirect target."""

    def __init__(self, reason: str, hostname: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.hostname = hostname


def is_allowed_host(hostname: Optional[str], allowed_domains: Iterable[str]) -> bool:
    """True when hostname equals, or is a subdomain of, an allow-list entry."""
    if not hostname:
        return False
    host = hostname.lower().rstrip(".")
    for domain in allowed_domains:
        domain = domain.lower().rstrip(".")
        if domain and (host == domain or host.endswith("." + domain)):
            return True
    return False


def validate_affiliate_url(raw: Optional[str], allowed_domains: Iterable[str]) -> str:
    """
    Validate a stored affiliate URL and return it normalized to HTTPS.

    Raises DestinationRejected when the value cannot be parsed, uses a
    non-web scheme, or points outside the partner allow-list.
    """
    if not raw or not isinstance(raw, str) or not raw.strip():
        raise DestinationRejected("empty affiliate url")

    try:
        parts = urllib.parse.urlsplit(raw.strip())
        hostname = parts.hostname
        port = parts.port
    except ValueError as e:
        logger.warning(f"Unparseable affiliate URL rejected: {e}")
        raise DestinationRejected("unparseable affiliate url") from e

    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        logger.warning(f"Blocked redirect with scheme {parts.scheme!r} (host: {hostname})")
        raise DestinationRejected("scheme not allowed", hostname)

    allowed = list(allowed_domains)
    if not is_allowed_host(hostname, allowed):
        logger.warning(f"Blocked redirect to unauthorized domain: {hostname}")
        raise DestinationRejected("host not in partner allow-list", hostname)

    # userinfo is dropped; only host[:port] survives
    netloc = hostname.rstrip(".")
    # an http URL's :80 means nothing once upgraded to https
    default_ports = (443, 80) if parts.scheme.lower() == "http" else (443,)
    if port and port not in default_ports:
        netloc = f"{netloc}:{port}"

    query = [
        (key, value)
        for key, value in urllib.parse.parse_qsl(parts.query, keep_blank_values=True)
        if key.lower() not in DANGEROUS_PARAMS
    ]

    return urllib.parse.urlunsplit((
        "https",
        netloc,
        parts.path or "/",
        urllib.parse.urlencode(query),
        parts.fragment,
    ))
