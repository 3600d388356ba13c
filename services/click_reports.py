"""
Weekly / monthly affiliate click reports
"""
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Optional, Tuple

PERIOD_DAYS = {"weekly": 7, "monthly": 30}
TOP_TOURS = {"weekly": 10, "monthly": 20}

# Rough revenue model until partner payouts are reconciled
CONVERSION_RATE = 0.05
AVG_COMMISSION_EUR = 50


def period_bounds(period: str, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    if period not in PERIOD_DAYS:
        raise ValueError(f"Unknown report period: {period}")
    end = now or datetime.now(timezone.utc)
    return end - timedelta(days=PERIOD_DAYS[period]), end


def build_report(rows: Iterable[Dict[str, Any]], period: str,
                 start: datetime, end: datetime) -> Dict[str, Any]:
    """Aggregate click rows (tour_slug, tour_title, operator, tracking_id,
    ip_address_anonymized, utm_source, clicked_at) into a report dict."""
    rows = list(rows)
    total = len(rows)

    tours: Dict[str, Dict[str, Any]] = {}
    visitors = set()
    sources = Counter()
    operators = Counter()
    daily = Counter()

    for row in rows:
        slug = row["tour_slug"]
        entry = tours.setdefault(slug, {
            "tour_slug": slug,
            "tour_title": row.get("tour_title") or slug,
            "operator": row.get("operator") or "unknown",
            "total_clicks": 0,
            "_visitors": set(),
        })
        entry["total_clicks"] += 1

        visitor = row.get("tracking_id") or row.get("ip_address_anonymized")
        if visitor:
            visitors.add(visitor)
            entry["_visitors"].add(visitor)

        sources[row.get("utm_source") or "direct"] += 1
        operators[row.get("operator") or "unknown"] += 1
        clicked_at = row["clicked_at"]
        daily[clicked_at.date().isoformat() if isinstance(clicked_at, datetime) else str(clicked_at)[:10]] += 1

    top_tours = sorted(tours.values(), key=lambda t: (-t["total_clicks"], t["tour_slug"]))
    top_tours = [
        {
            "tour_slug": t["tour_slug"],
            "tour_title": t["tour_title"],
            "operator": t["operator"],
            "total_clicks": t["total_clicks"],
            "unique_visitors": len(t["_visitors"]),
            "conversion_potential": round(t["total_clicks"] * CONVERSION_RATE, 2),
        }
        for t in top_tours[:TOP_TOURS[period]]
    ]

    return {
        "period": {"type": period, "start": start.isoformat(), "end": end.isoformat()},
        "summary": {
            "total_clicks": total,
            "unique_tours_clicked": len(tours),
            "unique_visitors": len(visitors),
            "top_operator": operators.most_common(1)[0][0] if operators else "N/A",
            "estimated_revenue": round(total * CONVERSION_RATE * AVG_COMMISSION_EUR, 2),
        },
        "top_tours": top_tours,
        "traffic_sources": [
            {"source": source, "clicks": count, "percentage": round(count / total * 100, 1)}
            for source, count in sorted(sources.items(), key=lambda kv: (-kv[1], kv[0]))
        ],
        "daily_breakdown": [{"date": d, "clicks": daily[d]} for d in sorted(daily)],
    }


async def generate_report(sink, period: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    start, end = period_bounds(period, now)
    rows = await sink.fetch_between(start, end)
    return build_report(rows, period, start, end)
