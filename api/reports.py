from fastapi import APIRouter, Request, HTTPException, Header
from typing import Literal, Optional
import hmac
import logging

from services.click_reports import generate_report

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


def require_admin(request: Request, token: Optional[str]):
    expected = request.app.state.admin_token
    if not expected or not token or not hmac.compare_digest(
        token.encode("utf-8", "surrogateescape"), expected.encode("utf-8")
    ):
        logger.warning("Rejected analytics report request with bad admin token")
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.get("/report")
async def click_report(
    request: Request,
    period: Literal["weekly", "monthly"] = "weekly",
    x_admin_token: Optional[str] = Header(None),
):
    """Weekly/monthly click summary for the partner relationship."""
    require_admin(request, x_admin_token)

    sink = request.app.state.click_sink
    if sink is None or not hasattr(sink, "fetch_between"):
        raise HTTPException(status_code=503, detail="Click store not configured")

    return await generate_report(sink, period)
