"""
Time helpers

Timestamps are stored as naive UTC. Promotion windows and delivery windows
are evaluated in the business timezone.
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from posflow.core.config import get_settings


def utcnow() -> datetime:
    """Current time as naive UTC"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_business_time(moment: datetime) -> datetime:
    """Convert a naive-UTC or aware datetime to the business timezone"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(get_settings().BUSINESS_TIMEZONE))


def to_naive_utc(moment: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values are assumed UTC"""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)
