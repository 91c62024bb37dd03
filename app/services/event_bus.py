"""Event bus routing domain events to queues by detail type."""

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import redis.asyncio as redis
import structlog

from app.config import settings
from app.schemas.appointments import COMPLETED_DETAIL_TYPE
from app.services.message_queue import BODY_FIELD

logger = structlog.get_logger(__name__)


@dataclass
class EventRule:
    """Routes events with a given source and detail type to a queue."""

    detail_type: str
    target_queue: str
    source: str | None = None

    def matches(self, source: str, detail_type: str) -> bool:
        """Check whether the rule applies to an event."""
        if self.source is not None and self.source != source:
            return False
        return self.detail_type == detail_type


def completion_rules() -> list[EventRule]:
    """Route completion events to the completion queue."""
    return [
        EventRule(
            detail_type=COMPLETED_DETAIL_TYPE,
            target_queue=settings.completion_queue_name,
            source=settings.event_source,
        )
    ]


class EventBus:
    """Puts events on the bus and delivers them to matching rule targets."""

    def __init__(
        self,
        redis_client: redis.Redis,
        bus_name: str,
        rules: list[EventRule],
        max_length: int = 100000,
    ):
        """Initialize bus with Redis client, bus name and routing rules."""
        self.redis = redis_client
        self.bus_name = bus_name
        self.rules = rules
        self.max_length = max_length

    def build_entry(self, source: str, detail_type: str, detail: dict[str, Any]) -> dict[str, str]:
        """Build the bus entry for an event."""
        return {
            "EventBusName": self.bus_name,
            "Source": source,
            "DetailType": detail_type,
            "Detail": json.dumps(detail, default=str),
        }

    async def put_event(self, source: str, detail_type: str, detail: dict[str, Any]) -> str:
        """
        Put one event on the bus.

        Args:
            source: Event source tag
            detail_type: Event detail type
            detail: Event detail payload

        Returns:
            Event id
        """
        entry = self.build_entry(source, detail_type, detail)
        event_id = str(uuid4())
        event = {
            "version": "0",
            "id": event_id,
            "detail-type": entry["DetailType"],
            "source": entry["Source"],
            "time": datetime.now(UTC).isoformat(),
            "detail": json.loads(entry["Detail"]),
        }

        targets = [rule.target_queue for rule in self.rules if rule.matches(source, detail_type)]
        if not targets:
            logger.warning("event_without_targets", bus=self.bus_name, detail_type=detail_type)
            return event_id

        body = json.dumps(event)
        pipe = self.redis.pipeline(transaction=True)
        for queue_name in targets:
            pipe.xadd(queue_name, {BODY_FIELD: body}, maxlen=self.max_length, approximate=True)
        await pipe.execute()

        logger.info(
            "event_published",
            bus=self.bus_name,
            event_id=event_id,
            detail_type=detail_type,
            queues=targets,
        )
        return event_id
