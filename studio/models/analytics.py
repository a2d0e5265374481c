"""
Analytics Model
Daily aggregate generation counters.
"""

from datetime import datetime
from sqlalchemy import Column, Date, DateTime, Integer

from studio.core.database import Base


class DailyAnalytics(Base):
    """One row per calendar day."""

    __tablename__ = "daily_analytics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(Date, nullable=False, unique=True, index=True)
    images_generated = Column(Integer, nullable=False, default=0)
    videos_generated = Column(Integer, nullable=False, default=0)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# Metric names accepted by the sink map onto these columns
METRIC_COLUMNS = {
    "images_generated": DailyAnalytics.images_generated,
    "videos_generated": DailyAnalytics.videos_generated,
}
