"""
Client-side click beacon
Booking buttons report clicks here before opening the partner site
"""
import logging
import time
from datetime import datetime, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Request, HTTPException
from pydantic import BaseModel, Field, field_validator

from infra.privacy import anonymize_ip, client_ip, hash_user_agent
from infra.rate_limiter import limit_exceeded_response
from services.click_logger import ClickEvent
from services.param_injector import generate_click_id
from services.tour_repository import SLUG_RE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["analytics"])


class UtmParams(BaseModel):
    utm_source: Optional[str] = Field(None, max_length=100)
    utm_medium: Optional[str] = Field(None, max_length=100)
    utm_campaign: Optional[str] = Field(None, max_length=100)
    utm_content: Optional[str] = Field(None, max_length=100)
    utm_term: Optional[str] = Field(None, max_length=100)


class TrackClickRequest(BaseModel):
    tour_id: str = Field(..., min_length=1, max_length=64)
    tour_slug: str = Field(..., pattern=SLUG_RE.pattern)
    tour_title: str = Field(..., min_length=1, max_length=200, pattern=r"^[a-zA-Z0-9\s\-&.,()!']+$")
    operator: str = Field(..., min_length=1, max_length=50, pattern=r"^[a-zA-Z0-9\s\-_.]+$")
    context: Literal["booking", "details", "search", "redirect"]
    timestamp: int = Field(..., gt=0)
    utm_params: Optional[UtmParams] = None

    @field_validator("timestamp")
    @classmethod
    def not_in_future(cls, v: int) -> int:
        # clients may drift, but not by more than a minute
        if v > int(time.time() * 1000) + 60_000:
            raise ValueError("Invalid timestamp")
        return v


@router.post("/track-click")
async def track_click(request: Request, body: TrackClickRequest):
    state = request.app.state
    ip = client_ip(request)

    limiter = state.track_limiter
    limit_key = f"track:{ip}"
    if not await limiter.check_and_increment(limit_key):
        return await limit_exceeded_response(limiter, limit_key)

    try:
        tour = await state.tours.get_tour_by_slug(body.tour_slug)
    except Exception as e:
        logger.error(f"Tour lookup failed for click on {body.tour_slug}: {e}")
        raise HTTPException(status_code=503, detail="Tour lookup unavailable")

    if tour is None:
        raise HTTPException(status_code=404, detail="Unknown tour")

    utm = body.utm_params or UtmParams()
    attribution = state.cookies.verify(request.cookies.get(state.cookies.name))
    state.click_logger.submit(ClickEvent(
        click_id=generate_click_id(),
        tour_id=tour.id,
        tour_slug=tour.slug,
        ip_anonymized=anonymize_ip(ip),
        user_agent_hash=hash_user_agent(request.headers.get("user-agent")),
        utm_source=utm.utm_source,
        utm_medium=utm.utm_medium,
        utm_campaign=utm.utm_campaign,
        utm_content=utm.utm_content,
        utm_term=utm.utm_term,
        tracking_id=attribution,
        context=body.context,
        clicked_at=datetime.fromtimestamp(body.timestamp / 1000, tz=timezone.utc),
    ))
    return {"success": True}
