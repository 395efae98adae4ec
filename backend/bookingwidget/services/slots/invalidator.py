# backend/bookingwidget/services/slots/invalidator.py
"""
Cache invalidation for activity slots.

Triggers:
✓ Activity widget_config changed → invalidate all dates
✓ Booking status changed → invalidate that booking's date

Booking writes also bump the capacity version, which already makes stale
entries unreachable; deleting them here only frees memory early.
"""

import logging
from datetime import date

from redis import Redis
from redis.exceptions import RedisError

from .redis_store import SlotsRedisStore

logger = logging.getLogger(__name__)


def invalidate_activity_cache(
    redis: Redis | None,
    activity_id: int,
    dates: list[date] | None = None,
) -> int:
    """
    Invalidate cached slots for an activity.

    Args:
        redis: Redis client (None = caching disabled, nothing to do)
        activity_id: Activity ID
        dates: Specific dates to invalidate, or None for every cached date

    Returns:
        Number of deleted cache keys
    """
    if redis is None:
        return 0

    try:
        deleted = SlotsRedisStore(redis).delete_day_slots(activity_id, dates)
    except RedisError as e:
        logger.warning(f"Slot cache invalidation failed for activity={activity_id}: {e}")
        return 0

    if deleted:
        logger.debug(f"Invalidated {deleted} slot cache keys for activity={activity_id}")
    return deleted
