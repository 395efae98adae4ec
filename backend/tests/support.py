"""
Shared fixtures: temp-file SQLite database, fixed embed keys, in-memory
stand-ins for the Redis client and the payment collaborator.
"""

import fnmatch
import json
import tempfile
import unittest
from pathlib import Path

from sqlalchemy.orm import sessionmaker

from bookingwidget.database import init_db, make_engine
from bookingwidget.models import Activities, Venues
from bookingwidget.services.payments import PaymentCollaborator, RefundResult

# Issued by the store in production; fixed here
VENUE_KEY = "emb_abc123def456"
OTHER_VENUE_KEY = "emb_0a1b2c3d4e5f"
UNKNOWN_KEY = "emb_zzzzzzzzzzzz"

BASE_CONFIG = {
    "operatingDays": ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"],
    "startTime": "10:00",
    "endTime": "14:00",
    "slotIntervalMinutes": 60,
    "minPlayers": 1,
    "maxPlayers": 4,
    "ticketTypes": [
        {"id": "adult", "name": "Adult", "pricePerUnit": 30},
        {"id": "child", "name": "Child", "pricePerUnit": 20},
    ],
}


class FakeRedis:
    """The handful of redis-py calls the service makes, kept in dicts."""

    def __init__(self):
        self.values: dict[str, str] = {}
        self.lists: dict[str, list[str]] = {}

    def get(self, key):
        return self.values.get(key)

    def setex(self, key, ttl, value):
        self.values[key] = value

    def keys(self, pattern):
        return [k for k in self.values if fnmatch.fnmatch(k, pattern)]

    def delete(self, *keys):
        deleted = 0
        for key in keys:
            if self.values.pop(key, None) is not None:
                deleted += 1
        return deleted

    def rpush(self, key, value):
        self.lists.setdefault(key, []).append(value)
        return len(self.lists[key])

    def ping(self):
        return True

    def events(self, queue="events:p2p") -> list[dict]:
        return [json.loads(v) for v in self.lists.get(queue, [])]


class FakePayments(PaymentCollaborator):
    """Answers refund calls from preset results and records every call."""

    def __init__(self, request_result: RefundResult, status_result: RefundResult | None = None):
        self.request_result = request_result
        self.status_result = status_result
        self.requests: list[dict] = []
        self.status_queries: list[str] = []

    def request_refund(self, booking_id, amount, reason=None, idempotency_key=None):
        self.requests.append({
            "booking_id": booking_id,
            "amount": amount,
            "reason": reason,
            "idempotency_key": idempotency_key,
        })
        return self.request_result

    def get_refund_status(self, refund_id):
        self.status_queries.append(refund_id)
        return self.status_result or self.request_result


class DatabaseTestCase(unittest.TestCase):
    """Fresh SQLite file per test with one venue and one activity."""

    config = BASE_CONFIG

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmp.name) / "widget.db"
        self.engine = make_engine(f"sqlite:///{self.db_path}")
        init_db(self.engine)
        self.Session = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)
        self.db = self.Session()

        self.venue = self.add_venue(VENUE_KEY, "Escape Room Central")
        self.activity = self.add_activity(self.venue, "The Vault", self.config)

    def tearDown(self):
        self.db.close()
        self.engine.dispose()
        self._tmp.cleanup()

    def add_venue(self, embed_key: str, name: str, is_active: int = 1) -> Venues:
        venue = Venues(name=name, embed_key=embed_key, slug="escape-room-central", is_active=is_active)
        self.db.add(venue)
        self.db.commit()
        self.db.refresh(venue)
        return venue

    def add_activity(self, venue: Venues, name: str, config: dict | str) -> Activities:
        raw = config if isinstance(config, str) else json.dumps(config)
        activity = Activities(venue_id=venue.id, name=name, widget_config=raw)
        self.db.add(activity)
        self.db.commit()
        self.db.refresh(activity)
        return activity
