from fastapi import APIRouter, Request, HTTPException
from fastapi.responses import RedirectResponse
import logging
from typing import Optional

from infra.privacy import anonymize_ip, client_ip, hash_user_agent
from infra.rate_limiter import limit_exceeded_response
from services.click_logger import ClickEvent
from services.param_injector import LinkContext, sanitize_utm

logger = logging.getLogger(__name__)

router = APIRouter(tags=["affiliate"])

REDIRECT_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "X-Robots-Tag": "noindex, nofollow",
    "Referrer-Policy": "no-referrer",
}

CONTEXTS = {c.value for c in LinkContext}


@router.get("/out")
@router.get("/out/")
async def missing_slug():
    raise HTTPException(status_code=400, detail="Tour slug is required")


# Public outbound link: rate limit, resolve destination, log in background, 302
@router.get("/out/{slug}")
async def affiliate_redirect(request: Request, slug: str, context: Optional[str] = None):
    state = request.app.state
    ip = client_ip(request)

    limiter = state.redirect_limiter
    limit_key = f"out:{ip}"
    if not await limiter.check_and_increment(limit_key):
        logger.warning(f"Redirect rate limit exceeded for IP: {anonymize_ip(ip)}")
        return await limit_exceeded_response(
            limiter, limit_key, "Too many redirect requests. Please wait before trying again."
        )

    utm = sanitize_utm(request.query_params)
    if context not in CONTEXTS:
        context = LinkContext.server_redirect.value

    decision = await state.redirects.build(slug, utm, context)
    attribution = state.cookies.resolve(request.cookies.get(state.cookies.name))

    if decision.ok:
        state.click_logger.submit(ClickEvent(
            click_id=decision.click_id,
            tour_id=decision.tour.id,
            tour_slug=decision.tour.slug,
            ip_anonymized=anonymize_ip(ip),
            user_agent_hash=hash_user_agent(request.headers.get("user-agent")),
            utm_source=utm.get("utm_source"),
            utm_medium=utm.get("utm_medium"),
            utm_campaign=utm.get("utm_campaign"),
            utm_content=utm.get("utm_content"),
            utm_term=utm.get("utm_term"),
            tracking_id=attribution.tracking_id,
            context=context,
            referrer=(request.headers.get("referer") or "")[:500] or None,
            redirect_url=decision.location,
        ))
        logger.info(f"Redirecting {slug} to partner (click {decision.click_id})")
    else:
        logger.info(f"Fallback redirect for {slug[:100]}: {decision.reason}")

    response = RedirectResponse(url=decision.location, status_code=302, headers=REDIRECT_HEADERS)
    state.cookies.apply(response, attribution)
    return response
