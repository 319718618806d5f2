"""
booking_engine/services/events.py

Notification sinks for booking lifecycle events.

RedisNotificationSink pushes to the `events:p2p` list consumed by the
delivery workers (email/SMS are out of scope here). Delivery is
fire-and-forget: failures are logged, never raised to the caller.
"""

import json
import logging
import time
from typing import Protocol

from redis import Redis

from ..schemas import Booking

logger = logging.getLogger(__name__)

P2P_QUEUE = "events:p2p"


class NotificationSink(Protocol):
    def notify(self, event: str, booking: Booking) -> None: ...


def booking_payload(event: str, booking: Booking) -> dict:
    return {
        "type": event,
        "booking_id": booking.id,
        "business_id": booking.business_id,
        "staff_member_id": booking.staff_member_id,
        "tenant_customer_id": booking.tenant_customer_id,
        "status": booking.status.value,
        "start_time": booking.start_time.isoformat(),
        "cancellation_reason": booking.cancellation_reason,
        "ts": int(time.time()),
    }


class RedisNotificationSink:
    def __init__(self, redis: Redis, queue: str = P2P_QUEUE):
        self.redis = redis
        self.queue = queue

    def notify(self, event: str, booking: Booking) -> None:
        try:
            self.redis.rpush(self.queue, json.dumps(booking_payload(event, booking)))
            logger.info(f"Event emitted: {event} → {self.queue} (booking {booking.id})")
        except Exception as e:
            logger.error(f"Failed to emit event {event} for booking {booking.id}: {e}")


class LoggingNotificationSink:
    """Used when no queue is configured; records the event in the log only."""

    def notify(self, event: str, booking: Booking) -> None:
        logger.info(f"Event {event} for booking {booking.id} (no queue configured)")
