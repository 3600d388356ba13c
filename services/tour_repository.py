"""
Read-only tour lookup for the redirect path
Tours are owned by the catalog import; we only read them by slug
"""
import re
import logging
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any

import asyncpg

logger = logging.getLogger(__name__)

SLUG_RE = re.compile(r"^[a-z0-9-]{1,100}$")


def is_valid_slug(slug: Optional[str]) -> bool:
    return bool(slug) and bool(SLUG_RE.match(slug))


@dataclass
class Tour:
    """Subset of a catalog tour needed to build an outbound link."""
    id: str
    slug: str
    title: str
    affiliate_url: Optional[str] = None
    operator_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row) -> "Tour":
        return cls(
            id=str(row["id"]),
            slug=row["slug"],
            title=row["title"],
            affiliate_url=row["affiliate_url"],
            operator_name=row["operator_name"],
        )


class TourRepository:
    def __init__(self, pool: asyncpg.pool.Pool, cache=None, ttl: int = 600):
        self.pool = pool
        self.cache = cache
        self.ttl = ttl

    async def _load(self, slug: str) -> Optional[Dict[str, Any]]:
        async with self.pool.acquire() as con:
            row = await con.fetchrow("""
                SELECT t.id, t.slug, t.title, t.affiliate_url, o.name AS operator_name
                FROM affiliate_tours t
                LEFT JOIN tour_operators o ON o.id = t.operator_id
                WHERE t.slug = $1 AND t.is_active = TRUE
            """, slug)
        return Tour.from_row(row).to_dict() if row else None

    async def get_tour_by_slug(self, slug: str) -> Optional[Tour]:
        """Active tour for slug, or None. Invalid slugs never reach the database."""
        if not is_valid_slug(slug):
            return None

        if self.cache is not None:
            data = await self.cache.cached_call(f"tours:detail:{slug}", lambda: self._load(slug), self.ttl)
        else:
            data = await self._load(slug)
        return Tour(**data) if data else None
