"""
Analytics API Routes
Daily generation counters.
"""

from typing import Dict, List
from fastapi import APIRouter, Depends, Query

from studio.api.deps import get_analytics
from studio.services.analytics import DatabaseAnalyticsSink

router = APIRouter()


@router.get("/daily", response_model=List[Dict])
async def daily_analytics(
    days: int = Query(7, ge=1, le=365),
    sink: DatabaseAnalyticsSink = Depends(get_analytics),
):
    """Images and videos generated per day, oldest first."""
    return sink.summary(days)
