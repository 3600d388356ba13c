"""
Signed attribution cookie
Correlates a browser across visits for affiliate crediting
"""
import hmac
import hashlib
import logging
import secrets
from dataclasses import dataclass
from typing import Optional

from starlette.responses import Response

logger = logging.getLogger(__name__)

COOKIE_NAME = "_aff_secure"
COOKIE_MAX_AGE = 30 * 24 * 60 * 60  # 30 days
TOKEN_BYTES = 32


@dataclass
class Attribution:
    """Tracking id for this browser and whether it must be (re)issued."""
    tracking_id: str
    issued: bool
    cookie_value: str


class AttributionCookies:
    def __init__(self, secret: str, name: str = COOKIE_NAME, max_age: int = COOKIE_MAX_AGE):
        if not secret:
            raise ValueError("Attribution cookie secret must not be empty")
        self.secret = secret.encode("utf-8")
        self.name = name
        self.max_age = max_age

    def sign(self, token: str) -> str:
        return hmac.new(self.secret, token.encode("utf-8"), hashlib.sha256).hexdigest()

    def encode(self, token: str) -> str:
        return f"{token}.{self.sign(token)}"

    def verify(self, value: Optional[str]) -> Optional[str]:
        """Return the token when value is <token>.<valid signature>, else None."""
        if not value or value.count(".") != 1:
            return None
        token, sig = value.split(".")
        if not token or not sig:
            return None
        # cookies arrive latin-1 decoded; compare bytes so non-ASCII input simply fails
        expected = self.sign(token).encode("ascii")
        if not hmac.compare_digest(expected, sig.encode("utf-8", "surrogateescape")):
            return None
        return token

    def resolve(self, raw: Optional[str]) -> Attribution:
        """Reuse a valid cookie, otherwise mint a fresh token to issue."""
        token = self.verify(raw)
        if token:
            return Attribution(tracking_id=token, issued=False, cookie_value=raw)

        if raw:
            logger.info("Attribution cookie failed verification - reissuing")
        token = secrets.token_hex(TOKEN_BYTES)
        return Attribution(tracking_id=token, issued=True, cookie_value=self.encode(token))

    def apply(self, response: Response, attribution: Attribution) -> None:
        if not attribution.issued:
            return
        response.set_cookie(
            key=self.name,
            value=attribution.cookie_value,
            max_age=self.max_age,
            path="/",
            secure=True,
            httponly=True,
            samesite="strict",
        )
