"""
Outbound affiliate redirect decision.

lookup -> validate -> inject params. Anything that goes wrong lands on the
partner's search page for the slug instead of a dead end; the rejected
destination itself is never returned.
"""
import logging
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import quote, urlencode

from services.param_injector import LinkContext, generate_click_id, inject_tracking_params
from services.tour_repository import Tour, is_valid_slug
from services.url_validator import DestinationRejected, validate_affiliate_url

logger = logging.getLogger(__name__)

REASON_OK = "ok"
REASON_INVALID_SLUG = "invalid_slug"
REASON_NOT_FOUND = "not_found"
REASON_INVALID_DESTINATION = "invalid_destination"
REASON_LOOKUP_ERROR = "lookup_error"


@dataclass
class RedirectDecision:
    location: str
    reason: str
    tour: Optional[Tour] = None
    click_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.reason == REASON_OK


class RedirectService:
    def __init__(
        self,
        tours,
        *,
        allowed_domains,
        partner_id: str,
        tracking_id: str,
        search_url: str,
        default_source: str = "albaniavisit",
        default_medium: str = "affiliate",
    ):
        self.tours = tours
        self.allowed_domains = list(allowed_domains)
        self.partner_id = partner_id
        self.tracking_id = tracking_id
        self.search_url = search_url
        self.default_source = default_source
        self.default_medium = default_medium

    def fallback_url(self, slug: str) -> str:
        query = urlencode(
            {"search": slug, "partner_id": self.partner_id, "tid": self.tracking_id},
            quote_via=quote,
        )
        return f"{self.search_url}?{query}"

    def _fallback(self, slug: str, reason: str, tour: Optional[Tour] = None) -> RedirectDecision:
        return RedirectDecision(location=self.fallback_url(slug), reason=reason, tour=tour)

    async def build(
        self,
        slug: str,
        utm: Optional[Mapping[str, str]] = None,
        context: str = LinkContext.server_redirect.value,
    ) -> RedirectDecision:
        if not is_valid_slug(slug):
            logger.info(f"Rejected malformed tour slug: {slug[:100]!r}")
            return self._fallback(slug, REASON_INVALID_SLUG)

        try:
            tour = await self.tours.get_tour_by_slug(slug)
        except Exception as e:
            logger.error(f"Tour lookup failed for {slug}: {e}")
            return self._fallback(slug, REASON_LOOKUP_ERROR)

        if tour is None:
            logger.warning(f"Tour not found: {slug}")
            return self._fallback(slug, REASON_NOT_FOUND)

        try:
            destination = validate_affiliate_url(tour.affiliate_url, self.allowed_domains)
        except DestinationRejected as e:
            logger.error(f"Invalid affiliate URL for tour {slug}: {e.reason} (host: {e.hostname})")
            return self._fallback(slug, REASON_INVALID_DESTINATION, tour)

        click_id = generate_click_id()
        location = inject_tracking_params(
            destination,
            slug=tour.slug,
            context=context,
            utm=utm,
            partner_id=self.partner_id,
            tracking_id=self.tracking_id,
            default_source=self.default_source,
            default_medium=self.default_medium,
            click_id=click_id,
        )
        return RedirectDecision(location=location, reason=REASON_OK, tour=tour, click_id=click_id)
