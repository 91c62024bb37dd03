"""Batch processing primitives shared by queue processors."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import structlog

from app.services.message_queue import QueueMessage

logger = structlog.get_logger(__name__)


@dataclass
class BatchResult:
    """Outcome of one batch: which messages may be acknowledged."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)


async def process_batch(
    messages: list[QueueMessage],
    handle: Callable[[QueueMessage], Awaitable[None]],
    processor: str,
) -> BatchResult:
    """
    Run ``handle`` over every message, isolating failures per message.

    A failed message is left unacknowledged so the queue redelivers it after
    its visibility timeout.
    """
    result = BatchResult()
    for message in messages:
        try:
            await handle(message)
        except Exception as e:
            logger.error(
                "record_processing_failed",
                processor=processor,
                message_id=message.message_id,
                receive_count=message.receive_count,
                error=str(e),
                error_type=e.__class__.__name__,
            )
            result.failed.append(message.message_id)
        else:
            result.succeeded.append(message.message_id)

    logger.info(
        "batch_processed",
        processor=processor,
        succeeded=len(result.succeeded),
        failed=len(result.failed),
    )
    return result
