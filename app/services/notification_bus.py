"""Pub/sub fan-out of created appointments to country queues."""

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

import redis.asyncio as redis
import structlog

from app.config import settings
from app.schemas.appointments import AppointmentResponse, CountryISO
from app.services.message_queue import BODY_FIELD

logger = structlog.get_logger(__name__)


@dataclass
class Subscription:
    """A queue subscribed to the topic with a filter on message attributes."""

    queue_name: str
    filter_policy: dict[str, list[str]] = field(default_factory=dict)

    def matches(self, attributes: dict[str, str]) -> bool:
        """Check whether every filtered attribute has an accepted value."""
        return all(
            attributes.get(name) in accepted for name, accepted in self.filter_policy.items()
        )


def country_subscriptions() -> list[Subscription]:
    """One subscription per country, filtered on the countryISO attribute."""
    return [
        Subscription(
            queue_name=settings.country_queue_name(country.value),
            filter_policy={"countryISO": [country.value]},
        )
        for country in CountryISO
    ]


class NotificationBus:
    """Publishes appointments to every subscription whose filter matches."""

    def __init__(
        self,
        redis_client: redis.Redis,
        topic_name: str,
        subscriptions: list[Subscription],
        max_length: int = 100000,
    ):
        """Initialize bus with Redis client, topic and subscriptions."""
        self.redis = redis_client
        self.topic_name = topic_name
        self.subscriptions = subscriptions
        self.max_length = max_length

    async def publish(self, appointment: AppointmentResponse) -> str:
        """
        Publish an appointment tagged with its country.

        Args:
            appointment: Stored appointment record

        Returns:
            Message id of the published notification
        """
        message_id = str(uuid4())
        attributes = {"countryISO": appointment.country_iso.value}
        envelope = {
            "Type": "Notification",
            "MessageId": message_id,
            "TopicArn": self.topic_name,
            "Message": appointment.model_dump_json(by_alias=True),
            "Timestamp": datetime.now(UTC).isoformat(),
            "MessageAttributes": {
                name: {"Type": "String", "Value": value} for name, value in attributes.items()
            },
        }

        targets = [s.queue_name for s in self.subscriptions if s.matches(attributes)]
        if not targets:
            logger.warning(
                "notification_without_subscribers",
                appointment_id=appointment.id,
                attributes=attributes,
            )
            return message_id

        body = json.dumps(envelope)
        try:
            pipe = self.redis.pipeline(transaction=True)
            for queue_name in targets:
                pipe.xadd(queue_name, {BODY_FIELD: body}, maxlen=self.max_length, approximate=True)
            await pipe.execute()
        except Exception as e:
            logger.error(
                "notification_publish_failed",
                appointment_id=appointment.id,
                error=str(e),
            )
            raise

        logger.info(
            "notification_published",
            appointment_id=appointment.id,
            message_id=message_id,
            queues=targets,
        )
        return message_id
