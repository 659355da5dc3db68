"""Daily entry counters for the admin dashboard."""
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from .children import utc_today
from .schemas import DailyStats
from .supabase import SupabaseClient


def _parse_ts(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def summarize_sessions(rows: Iterable[Dict[str, Any]], day: date) -> DailyStats:
    stats = DailyStats(day=day)
    stay_minutes: List[float] = []
    for row in rows:
        stats.total_entries += 1
        if row.get("is_free"):
            stats.free_entries += 1
        else:
            stats.paid_entries += 1
        if row.get("has_disability"):
            stats.disability_entries += 1
        if row.get("is_active"):
            stats.active_entries += 1
        entry_time = _parse_ts(row.get("entry_time"))
        exit_time = _parse_ts(row.get("exit_time"))
        if exit_time is not None:
            stats.completed_entries += 1
            if entry_time is not None:
                stay_minutes.append((exit_time - entry_time).total_seconds() / 60)
    if stay_minutes:
        stats.average_stay_minutes = round(sum(stay_minutes) / len(stay_minutes), 1)
    return stats


def day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


async def fetch_daily_stats(supabase: SupabaseClient, day: Optional[date] = None) -> DailyStats:
    day = day or utc_today()
    start, end = day_bounds(day)
    rows = await supabase.select(
        "qr_sessions",
        params={
            "select": "id,is_active,is_free,has_disability,entry_time,exit_time,created_at",
            "and": f"(created_at.gte.{start.isoformat()},created_at.lt.{end.isoformat()})",
        },
    )
    return summarize_sessions(rows, day)
