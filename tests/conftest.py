import asyncio
from pathlib import Path

import httpx
import pytest

from config.affiliate_config import AffiliateConfig
from infra.rate_limiter import FixedWindowRateLimiter
from main import create_app
from services.tour_repository import Tour

CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "affiliate.yaml"

COOKIE_SECRET = "test-cookie-secret"
ADMIN_TOKEN = "test-admin-token"

TOURS = {
    "blue-eye-spring": Tour(
        id="6f1c2a54-0c1e-4a53-9d2b-0d7a4c1b9e01",
        slug="blue-eye-spring",
        title="Blue Eye Spring Day Trip",
        affiliate_url="https://www.bnadventure.com/tours/blue-eye-spring",
        operator_name="BNAdventure",
    ),
    "phishy-tour": Tour(
        id="6f1c2a54-0c1e-4a53-9d2b-0d7a4c1b9e02",
        slug="phishy-tour",
        title="Too Good To Be True",
        affiliate_url="https://evil-phish.example.com/x",
        operator_name="Unknown",
    ),
    "no-link-tour": Tour(
        id="6f1c2a54-0c1e-4a53-9d2b-0d7a4c1b9e03",
        slug="no-link-tour",
        title="Tour Without Link",
        affiliate_url=None,
        operator_name="BNAdventure",
    ),
    "legacy-http-tour": Tour(
        id="6f1c2a54-0c1e-4a53-9d2b-0d7a4c1b9e04",
        slug="legacy-http-tour",
        title="Theth Valley Hike",
        affiliate_url="http://bnadventure.com/tours/theth?partner_id=1&tid=someone-else&javascript=alert(1)",
        operator_name="BNAdventure",
    ),
}


class FakeTours:
    def __init__(self, tours=None):
        self.tours = dict(TOURS if tours is None else tours)
        self.lookups = []

    async def get_tour_by_slug(self, slug):
        self.lookups.append(slug)
        return self.tours.get(slug)


class ExplodingTours:
    async def get_tour_by_slug(self, slug):
        raise ConnectionError("database unavailable")


class RecordingSink:
    def __init__(self, rows=None):
        self.events = []
        self.rows = rows or []
        self.fetch_calls = []

    async def insert(self, event):
        self.events.append(event)

    async def fetch_between(self, start, end):
        self.fetch_calls.append((start, end))
        return list(self.rows)


class FailingSink:
    def __init__(self):
        self.attempts = 0

    async def insert(self, event):
        self.attempts += 1
        raise RuntimeError("insert failed")


class SlowSink:
    def __init__(self, delay=10.0):
        self.delay = delay
        self.events = []

    async def insert(self, event):
        await asyncio.sleep(self.delay)
        self.events.append(event)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("PARTNER_ALLOWED_DOMAINS", "PARTNER_ID", "PARTNER_TRACKING_ID",
                "REDIRECT_RATE_LIMIT", "REDIRECT_RATE_WINDOW_SEC", "CLICK_LOG_TIMEOUT_SEC",
                "RATE_LIMIT_BACKEND", "ADMIN_TOKEN", "COOKIE_SECRET", "ENVIRONMENT"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def config():
    return AffiliateConfig(config_path=str(CONFIG_PATH), environment="test")


@pytest.fixture
def tours():
    return FakeTours()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def redirect_limiter(clock):
    return FixedWindowRateLimiter(max_requests=5, window_seconds=60, clock=clock)


@pytest.fixture
def app(config, tours, sink, redirect_limiter):
    return create_app(
        config,
        tours=tours,
        click_sink=sink,
        redirect_limiter=redirect_limiter,
        cookie_secret=COOKIE_SECRET,
        admin_token=ADMIN_TOKEN,
    )


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="https://tours.test") as c:
        yield c
