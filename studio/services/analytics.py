"""
Analytics Sink
Daily aggregate counters, incremented once per successful generation.
"""

import logging
from datetime import date, timedelta
from typing import Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from studio.core.database import SessionLocal
from studio.models.analytics import DailyAnalytics, METRIC_COLUMNS

logger = logging.getLogger(__name__)


class DatabaseAnalyticsSink:
    """Writes counters into the daily_analytics table."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory or SessionLocal

    async def increment_daily(self, metric: str, amount: int = 1, day: Optional[date] = None) -> None:
        if metric not in METRIC_COLUMNS:
            raise ValueError(f"Unknown metric: {metric}")
        self._increment(metric, amount, day or date.today())

    def _increment(self, metric: str, amount: int, day: date) -> None:
        column = METRIC_COLUMNS[metric]

        # Two tries: a concurrent writer may create today's row between our update and insert
        for _ in range(2):
            db = self.session_factory()
            try:
                result = db.execute(
                    update(DailyAnalytics)
                    .where(DailyAnalytics.date == day)
                    .values({column.key: column + amount})
                )
                if result.rowcount == 0:
                    db.add(DailyAnalytics(date=day, **{column.key: amount}))
                db.commit()
                return
            except IntegrityError:
                db.rollback()
            finally:
                db.close()

        raise RuntimeError(f"Could not increment {metric} for {day}")

    def summary(self, days: int = 7) -> List[Dict]:
        """Per-day counters for the last `days` days, oldest first, zero-filled."""
        today = date.today()
        start = today - timedelta(days=days - 1)

        db = self.session_factory()
        try:
            rows = {
                row.date: row
                for row in db.query(DailyAnalytics).filter(DailyAnalytics.date >= start).all()
            }
        finally:
            db.close()

        result = []
        for offset in range(days):
            day = start + timedelta(days=offset)
            row = rows.get(day)
            result.append({
                "date": day.isoformat(),
                "images_generated": row.images_generated if row else 0,
                "videos_generated": row.videos_generated if row else 0,
            })
        return result


__all__ = ["DatabaseAnalyticsSink"]
