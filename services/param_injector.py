"""
Affiliate tracking parameter injection.

Every outbound partner URL carries:
  partner_id / tid   fixed partner identifiers
  utm_source         inbound value, else the site default
  utm_medium         inbound value, else "affiliate"
  utm_campaign       inbound value, else the link context
  utm_content        inbound value, else the tour slug
  utm_term           only when the inbound page supplied one
  click_id           fresh per call
  timestamp          epoch milliseconds

Keys we author replace any value already present in the stored URL.
"""
import secrets
import time
from enum import Enum
from typing import Dict, Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

UTM_KEYS = ("utm_source", "utm_medium", "utm_campaign", "utm_content", "utm_term")
MAX_UTM_LENGTH = 100

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


class LinkContext(str, Enum):
    tour_detail = "tour-detail"
    tour_card = "tour-card"
    featured = "featured"
    server_redirect = "server-redirect"


def _base36(n: int) -> str:
    out = ""
    while True:
        n, r = divmod(n, 36)
        out = _BASE36[r] + out
        if n == 0:
            return out


def generate_click_id() -> str:
    """Opaque per-click id: clk_<base36 ms>_<random hex>."""
    return f"clk_{_base36(int(time.time() * 1000))}_{secrets.token_hex(8)}"


def sanitize_utm(params: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Keep only non-empty utm_* values of sane length."""
    clean = {}
    for key in UTM_KEYS:
        value = (params or {}).get(key)
        if not isinstance(value, str):
            continue
        value = value.strip()
        if value and len(value) <= MAX_UTM_LENGTH:
            clean[key] = value
    return clean


def inject_tracking_params(
    url: str,
    *,
    slug: str,
    context: str,
    utm: Optional[Mapping[str, str]] = None,
    partner_id: str = "9",
    tracking_id: str = "albaniavisit",
    default_source: str = "albaniavisit",
    default_medium: str = "affiliate",
    click_id: Optional[str] = None,
) -> str:
    """Return url with affiliate + UTM + click tracking params set exactly once."""
    ctx = LinkContext(context)
    inbound = sanitize_utm(utm)

    ours = {
        "partner_id": partner_id,
        "tid": tracking_id,
        "utm_source": inbound.get("utm_source", default_source),
        "utm_medium": inbound.get("utm_medium", default_medium),
        "utm_campaign": inbound.get("utm_campaign", ctx.value),
        "utm_content": inbound.get("utm_content", slug),
    }
    if "utm_term" in inbound:
        ours["utm_term"] = inbound["utm_term"]
    ours["click_id"] = click_id or generate_click_id()
    ours["timestamp"] = str(int(time.time() * 1000))

    parts = urlsplit(url)
    kept = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key not in ours and key != "utm_term"
    ]
    query = urlencode(kept + list(ours.items()))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))
