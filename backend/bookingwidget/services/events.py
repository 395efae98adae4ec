"""
backend/bookingwidget/services/events.py

Event emitter: pushes booking events to Redis for the notification service.

Queue:
- events:p2p: instant delivery (booking_created, booking_cancelled, ...)

Without Redis configured events are only logged.
"""

import json
import time
import logging

from redis import Redis
from redis.exceptions import RedisError

from ..redis_client import redis_client

logger = logging.getLogger(__name__)

P2P_QUEUE = "events:p2p"


def emit_event(event_type: str, payload: dict, redis: Redis | None = None) -> None:
    """
    Emit a p2p event (instant delivery).

    Pushed to Redis list `events:p2p` for the consumer loop.
    A failed push is logged; the booking write it describes stands.
    """
    client = redis if redis is not None else redis_client
    event = {
        "type": event_type,
        **payload,
        "ts": int(time.time()),
    }
    if client is None:
        logger.info(f"Event {event_type} not queued (no Redis): {payload}")
        return
    try:
        client.rpush(P2P_QUEUE, json.dumps(event))
        logger.info(f"Event emitted: {event_type} → {P2P_QUEUE}")
    except RedisError as e:
        logger.error(f"Failed to emit event {event_type}: {e}")
