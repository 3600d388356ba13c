import json

from services.cache import JsonCache
from services.tour_repository import Tour, TourRepository, is_valid_slug

ROW = {
    "id": "6f1c2a54-0c1e-4a53-9d2b-0d7a4c1b9e01",
    "slug": "blue-eye-spring",
    "title": "Blue Eye Spring Day Trip",
    "affiliate_url": "https://www.bnadventure.com/tours/blue-eye-spring",
    "operator_name": "BNAdventure",
}


class FakeConnection:
    def __init__(self, pool):
        self.pool = pool

    async def fetchrow(self, query, slug):
        self.pool.queries.append(slug)
        return self.pool.rows.get(slug)


class FakeAcquire:
    def __init__(self, pool):
        self.pool = pool

    async def __aenter__(self):
        return FakeConnection(self.pool)

    async def __aexit__(self, *exc):
        return False


class FakePool:
    def __init__(self, rows):
        self.rows = rows
        self.queries = []

    def acquire(self):
        return FakeAcquire(self)


class FakeRedis:
    def __init__(self):
        self.store = {}
        self.ttls = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        self.ttls[key] = ex


class DownRedis:
    async def get(self, key):
        raise ConnectionError("redis down")

    async def set(self, key, value, ex=None):
        raise ConnectionError("redis down")


def test_slug_rules():
    assert is_valid_slug("blue-eye-spring")
    assert is_valid_slug("a" * 100)
    assert not is_valid_slug("a" * 101)
    assert not is_valid_slug("Blue-Eye")
    assert not is_valid_slug("blue_eye")
    assert not is_valid_slug("")
    assert not is_valid_slug(None)


async def test_lookup_without_cache():
    pool = FakePool({"blue-eye-spring": ROW})
    repo = TourRepository(pool)

    tour = await repo.get_tour_by_slug("blue-eye-spring")
    assert tour == Tour(**ROW)
    assert await repo.get_tour_by_slug("missing") is None
    assert pool.queries == ["blue-eye-spring", "missing"]


async def test_invalid_slug_never_queried():
    pool = FakePool({})
    repo = TourRepository(pool)
    assert await repo.get_tour_by_slug("DROP TABLE tours;--") is None
    assert pool.queries == []


async def test_cache_serves_repeat_lookups():
    pool = FakePool({"blue-eye-spring": ROW})
    redis = FakeRedis()
    repo = TourRepository(pool, cache=JsonCache(redis), ttl=120)

    first = await repo.get_tour_by_slug("blue-eye-spring")
    second = await repo.get_tour_by_slug("blue-eye-spring")

    assert first == second
    assert pool.queries == ["blue-eye-spring"]
    assert json.loads(redis.store["tours:detail:blue-eye-spring"])["slug"] == "blue-eye-spring"
    assert redis.ttls["tours:detail:blue-eye-spring"] == 120


async def test_missing_tours_not_cached():
    pool = FakePool({})
    redis = FakeRedis()
    repo = TourRepository(pool, cache=JsonCache(redis))
    assert await repo.get_tour_by_slug("gone") is None
    assert await repo.get_tour_by_slug("gone") is None
    assert redis.store == {}
    assert pool.queries == ["gone", "gone"]


async def test_cache_outage_falls_through_to_database():
    pool = FakePool({"blue-eye-spring": ROW})
    repo = TourRepository(pool, cache=JsonCache(DownRedis()))
    tour = await repo.get_tour_by_slug("blue-eye-spring")
    assert tour.affiliate_url == ROW["affiliate_url"]



async def test_json_cache_round_trip_and_soft_failure():
    cache = JsonCache(FakeRedis())
    assert await cache.set_json("tours:detail:x", {"a": 1}, ttl=5)
    assert await cache.get_json("tours:detail:x") == {"a": 1}
    assert await cache.get_json("tours:detail:missing") is None

    down = JsonCache(DownRedis())
    assert await down.set_json("k", {"a": 1}) is False
    assert await down.get_json("k") is None
