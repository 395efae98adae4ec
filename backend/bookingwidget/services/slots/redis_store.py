# backend/bookingwidget/services/slots/redis_store.py
"""
Redis storage for computed day slots.

Key format: slots:day:{activity_id}:{date}:{version}:{fingerprint}
Value: JSON list of Slot dicts, before the advance-window filter.

The capacity version and the config fingerprint are part of the key, so a
booking write or a config edit simply makes old entries unreachable; they
expire on their own TTL. `delete_day_slots` exists for eager cleanup.

An empty list is stored as "[]" (calculated, zero slots), distinct from a miss.
"""

import hashlib
import json
from datetime import date

from redis import Redis

from .calculator import Slot


def config_fingerprint(raw_config: str | None) -> str:
    """Short stable hash of the stored widget_config text."""
    return hashlib.sha1((raw_config or "").encode()).hexdigest()[:12]


class SlotsRedisStore:
    """Redis storage wrapper for per-day slot lists."""

    KEY_PREFIX = "slots:day"

    def __init__(self, redis: Redis, ttl_seconds: int = 300):
        self.redis = redis
        self.ttl_seconds = ttl_seconds

    def _key(self, activity_id: int, dt: date, version: int, fingerprint: str) -> str:
        return f"{self.KEY_PREFIX}:{activity_id}:{dt.isoformat()}:{version}:{fingerprint}"

    # ── Write ────────────────────────────────────────────────────────────

    def store_day_slots(
        self,
        activity_id: int,
        dt: date,
        version: int,
        fingerprint: str,
        slots: list[Slot],
    ) -> None:
        key = self._key(activity_id, dt, version, fingerprint)
        payload = json.dumps([s.to_dict() for s in slots])
        self.redis.setex(key, self.ttl_seconds, payload)

    # ── Read ─────────────────────────────────────────────────────────────

    def get_day_slots(
        self,
        activity_id: int,
        dt: date,
        version: int,
        fingerprint: str,
    ) -> list[Slot] | None:
        """Cached slots, or None on cache miss."""
        raw = self.redis.get(self._key(activity_id, dt, version, fingerprint))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode()
        return [Slot.from_dict(item) for item in json.loads(raw)]

    # ── Delete ───────────────────────────────────────────────────────────

    def delete_day_slots(
        self,
        activity_id: int,
        dates: list[date] | None = None,
    ) -> int:
        """
        Delete cached slots for an activity.

        Args:
            activity_id: Activity ID
            dates: Specific dates, or None to delete every cached date.

        Returns:
            Number of deleted keys.
        """
        if dates:
            keys = []
            for dt in dates:
                keys.extend(self.redis.keys(f"{self.KEY_PREFIX}:{activity_id}:{dt.isoformat()}:*"))
        else:
            keys = self.redis.keys(f"{self.KEY_PREFIX}:{activity_id}:*")

        if not keys:
            return 0

        return self.redis.delete(*keys)
