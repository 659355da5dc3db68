from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..schemas import DailyStats
from ..stats import fetch_daily_stats
from ..supabase import AuthContext, require_admin

router = APIRouter(prefix="/api/v1", tags=["stats"])


@router.get("/admin/stats/daily", response_model=DailyStats)
async def daily_stats_endpoint(
    day: Optional[date] = Query(None, description="UTC day, defaults to today"),
    auth: AuthContext = Depends(require_admin),
) -> DailyStats:
    return await fetch_daily_stats(auth.supabase, day)
