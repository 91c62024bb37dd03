"""Durable at-least-once queue on top of Redis Streams consumer groups."""

import json
from dataclasses import dataclass
from typing import Any

import redis.asyncio as redis
import structlog

logger = structlog.get_logger(__name__)

BODY_FIELD = "body"


@dataclass
class QueueMessage:
    """A message received from a queue."""

    message_id: str
    body: Any
    receive_count: int = 1


def _decode(value: Any) -> Any:
    return value.decode("utf-8") if isinstance(value, bytes) else value


def _to_message(entry_id: Any, fields: dict | None, receive_count: int = 1) -> QueueMessage:
    fields = {_decode(k): v for k, v in (fields or {}).items()}
    return QueueMessage(
        message_id=_decode(entry_id),
        body=fields.get(BODY_FIELD),
        receive_count=receive_count,
    )


class MessageQueue:
    """
    Queue backed by one Redis stream and one consumer group.

    Received messages stay pending until deleted. Pending messages idle for
    longer than the visibility timeout are reclaimed and redelivered; a
    message received more than ``max_receive_count`` times is moved to the
    dead-letter stream ``<name>-dlq``.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        name: str,
        group: str,
        consumer: str,
        visibility_timeout_ms: int = 30000,
        max_receive_count: int = 5,
        max_length: int = 100000,
    ):
        """Initialize queue with Redis client and consumer identity."""
        self.redis = redis_client
        self.name = name
        self.group = group
        self.consumer = consumer
        self.visibility_timeout_ms = visibility_timeout_ms
        self.max_receive_count = max_receive_count
        self.max_length = max_length

    @property
    def dead_letter_name(self) -> str:
        """Name of the dead-letter stream."""
        return f"{self.name}-dlq"

    async def ensure_group(self) -> bool:
        """
        Create the consumer group if it doesn't exist.

        Returns:
            True if created, False if it already existed
        """
        try:
            await self.redis.xgroup_create(self.name, self.group, id="0", mkstream=True)
            logger.info("queue_group_created", queue=self.name, group=self.group)
            return True
        except redis.ResponseError as e:
            if "BUSYGROUP" in str(e):
                return False
            raise

    async def send(self, body: Any) -> str:
        """
        Append a message to the queue.

        Args:
            body: JSON-serializable payload or pre-encoded string

        Returns:
            Message id assigned by the stream
        """
        payload = body if isinstance(body, str) else json.dumps(body, default=str)
        message_id = await self.redis.xadd(
            self.name,
            {BODY_FIELD: payload},
            maxlen=self.max_length,
            approximate=True,
        )
        return _decode(message_id)

    async def receive(self, max_messages: int = 10, wait_time_ms: int = 5000) -> list[QueueMessage]:
        """
        Receive new messages for this consumer.

        Args:
            max_messages: Maximum number of messages to return
            wait_time_ms: Time to block waiting for messages

        Returns:
            Received messages, possibly empty
        """
        response = await self.redis.xreadgroup(
            groupname=self.group,
            consumername=self.consumer,
            streams={self.name: ">"},
            count=max_messages,
            block=wait_time_ms,
        )

        messages: list[QueueMessage] = []
        for _stream, entries in response or []:
            messages.extend(_to_message(entry_id, fields) for entry_id, fields in entries)
        return messages

    async def delete(self, message_ids: list[str]) -> int:
        """Acknowledge and remove processed messages."""
        if not message_ids:
            return 0
        acked = await self.redis.xack(self.name, self.group, *message_ids)
        await self.redis.xdel(self.name, *message_ids)
        return acked

    async def reclaim_expired(self, max_messages: int = 10) -> list[QueueMessage]:
        """
        Claim messages whose visibility timeout expired.

        Messages over the maximum receive count are dead-lettered instead of
        being returned.

        Returns:
            Messages to process again
        """
        result = await self.redis.xautoclaim(
            self.name,
            self.group,
            self.consumer,
            min_idle_time=self.visibility_timeout_ms,
            start_id="0-0",
            count=max_messages,
        )
        claimed = [(entry_id, fields) for entry_id, fields in result[1] if fields is not None]

        messages: list[QueueMessage] = []
        for entry_id, fields in claimed:
            receive_count = await self._receive_count(entry_id)
            message = _to_message(entry_id, fields, receive_count)
            if receive_count > self.max_receive_count:
                await self._dead_letter(message)
                continue
            messages.append(message)

        if messages:
            logger.info("queue_messages_reclaimed", queue=self.name, count=len(messages))
        return messages

    async def _receive_count(self, entry_id: Any) -> int:
        pending = await self.redis.xpending_range(
            self.name,
            self.group,
            min=entry_id,
            max=entry_id,
            count=1,
        )
        if not pending:
            return 1
        return int(pending[0]["times_delivered"])

    async def _dead_letter(self, message: QueueMessage) -> None:
        await self.redis.xadd(
            self.dead_letter_name,
            {
                BODY_FIELD: message.body,
                "source_message_id": message.message_id,
                "receive_count": str(message.receive_count),
            },
            maxlen=self.max_length,
            approximate=True,
        )
        await self.delete([message.message_id])
        logger.warning(
            "queue_message_dead_lettered",
            queue=self.name,
            message_id=message.message_id,
            receive_count=message.receive_count,
        )
