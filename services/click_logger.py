"""
Best-effort click logging.

A redirect must never wait on, or fail because of, the analytics write:
events are handed to a background task, bounded by a timeout, and any
failure is logged and dropped at that boundary. No retries.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Set, List, Dict, Any

import asyncpg

logger = logging.getLogger(__name__)


@dataclass
class ClickEvent:
    """One outbound click. Written once, never mutated."""
    click_id: str
    tour_id: str
    tour_slug: str
    ip_anonymized: Optional[str] = None
    user_agent_hash: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_content: Optional[str] = None
    utm_term: Optional[str] = None
    tracking_id: Optional[str] = None
    context: Optional[str] = None
    referrer: Optional[str] = None
    redirect_url: Optional[str] = None
    clicked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class PostgresClickSink:
    """Insert-only writer for the affiliate_clicks table."""

    def __init__(self, pool: asyncpg.pool.Pool):
        self.pool = pool

    async def insert(self, event: ClickEvent):
        async with self.pool.acquire() as con:
            await con.execute("""
                INSERT INTO affiliate_clicks (
                    click_id, tour_id, tour_slug, tracking_id, context, redirect_url,
                    referrer, ip_address_anonymized, user_agent_hash,
                    utm_source, utm_medium, utm_campaign, utm_content, utm_term, clicked_at
                )
                VALUES ($1,$2,$3,$4,$5,$6,$7,$8,$9,$10,$11,$12,$13,$14,$15)
            """, event.click_id, event.tour_id, event.tour_slug, event.tracking_id,
                 event.context, event.redirect_url, event.referrer, event.ip_anonymized,
                 event.user_agent_hash, event.utm_source, event.utm_medium,
                 event.utm_campaign, event.utm_content, event.utm_term, event.clicked_at)

    async def fetch_between(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        """Rows needed for click reports, newest first."""
        async with self.pool.acquire() as con:
            rows = await con.fetch("""
                SELECT c.tour_slug, c.tracking_id, c.ip_address_anonymized,
                       c.utm_source, c.clicked_at,
                       t.title AS tour_title, o.name AS operator
                FROM affiliate_clicks c
                LEFT JOIN affiliate_tours t ON t.slug = c.tour_slug
                LEFT JOIN tour_operators o ON o.id = t.operator_id
                WHERE c.clicked_at >= $1 AND c.clicked_at <= $2
                ORDER BY c.clicked_at DESC
            """, start, end)
        return [dict(r) for r in rows]


class ClickLogger:
    def __init__(self, sink, timeout: float = 3.0):
        self.sink = sink
        self.timeout = timeout
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, event: ClickEvent) -> None:
        """Schedule the write and return immediately."""
        try:
            task = asyncio.get_running_loop().create_task(self._persist(event))
        except RuntimeError as e:
            logger.error(f"Click {event.click_id} dropped, no running loop: {e}")
            return
        # keep a strong reference until done, or the task may be collected mid-flight
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _persist(self, event: ClickEvent):
        try:
            await asyncio.wait_for(self.sink.insert(event), timeout=self.timeout)
            logger.debug(f"Logged click {event.click_id} for {event.tour_slug}")
        except asyncio.TimeoutError:
            logger.error(f"Click logging timed out after {self.timeout}s for {event.tour_slug}")
        except Exception as e:
            logger.error(f"Click logging error for {event.tour_slug}: {e}")

    async def drain(self):
        """Wait for in-flight writes (shutdown, tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
