"""
RSVP statistics, always computed from the RSVP records themselves
"""
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from core.config import (
    LONG_READ_TIMEOUT_SECONDS, TREND_DAYS,
    RSVP_ATTENDING, RSVP_NOT_ATTENDING, RSVP_MAYBE,
)
from core.database import storage_operation
from core.errors import ValidationError
from utils.helpers import parse_datetime, utc_now


def daily_trend(timestamps: Iterable, days: int = TREND_DAYS, now: Optional[datetime] = None) -> List[dict]:
    """
    Count submissions per UTC calendar day for the last `days` days (today
    included). Days without submissions are present with count 0 and the
    result is in chronological order.
    """
    if days < 1:
        raise ValidationError("days must be at least 1", field="days")
    now = now or utc_now()
    today = now.astimezone(timezone.utc).date()
    start = today - timedelta(days=days - 1)

    buckets = Counter()
    for value in timestamps:
        try:
            submitted = parse_datetime(value)
        except ValueError:
            continue
        if submitted is not None:
            buckets[submitted.date()] += 1

    trend = []
    for offset in range(days):
        day = start + timedelta(days=offset)
        trend.append({"date": day.isoformat(), "count": buckets.get(day, 0)})
    return trend


@storage_operation(LONG_READ_TIMEOUT_SECONDS)
async def compute_statistics(db, wedding_id: str, days: int = TREND_DAYS, now: Optional[datetime] = None) -> dict:
    """Totals by status, guest and plus-one sums, dietary histogram and daily trend"""
    stats = {
        "total_responses": 0,
        "attending": 0,
        "not_attending": 0,
        "maybe": 0,
        "total_guests": 0,
        "plus_ones_count": 0,
    }
    dietary = Counter()
    timestamps = []

    cursor = db.rsvps.find(
        {"wedding_id": wedding_id},
        {"_id": 0, "status": 1, "attendance_count": 1, "plus_one_count": 1,
         "plus_ones": 1, "dietary_selected": 1, "submitted_at": 1}
    )
    async for rsvp in cursor:
        stats["total_responses"] += 1
        status = rsvp.get("status")
        if status == RSVP_ATTENDING:
            stats["attending"] += 1
            stats["total_guests"] += rsvp.get("attendance_count", 1)
        elif status == RSVP_NOT_ATTENDING:
            stats["not_attending"] += 1
        elif status == RSVP_MAYBE:
            stats["maybe"] += 1

        plus_one_count = rsvp.get("plus_one_count")
        if plus_one_count is None:
            plus_one_count = len(rsvp.get("plus_ones") or [])
        stats["plus_ones_count"] += plus_one_count

        for option in rsvp.get("dietary_selected") or []:
            dietary[option] += 1
        timestamps.append(rsvp.get("submitted_at"))

    stats["dietary_counts"] = dict(dietary)
    stats["submission_trend"] = daily_trend(timestamps, days, now)
    return stats
