"""Queue polling loop feeding batches to a processor."""

import asyncio
from typing import Protocol

import structlog

from app.processors.batch import BatchResult
from app.services.message_queue import MessageQueue, QueueMessage

logger = structlog.get_logger(__name__)


class BatchProcessor(Protocol):
    name: str

    async def handle_batch(self, messages: list[QueueMessage]) -> BatchResult: ...


class QueueWorker:
    """
    Polls a queue and acknowledges only the messages a processor handled.

    Unacknowledged messages are picked up again by ``reclaim_expired`` once
    their visibility timeout passes.
    """

    def __init__(
        self,
        queue: MessageQueue,
        processor: BatchProcessor,
        batch_size: int = 10,
        wait_time_ms: int = 5000,
    ):
        """Initialize worker with a queue and a processor."""
        self.queue = queue
        self.processor = processor
        self.batch_size = batch_size
        self.wait_time_ms = wait_time_ms

    async def poll_once(self) -> BatchResult:
        """
        Process one batch.

        Expired messages are retried before new ones are read.

        Returns:
            Result of the processed batch (empty when the queue was idle)
        """
        messages = await self.queue.reclaim_expired(self.batch_size)
        if not messages:
            messages = await self.queue.receive(self.batch_size, self.wait_time_ms)
        if not messages:
            return BatchResult()

        result = await self.processor.handle_batch(messages)
        if result.succeeded:
            await self.queue.delete(result.succeeded)
        return result

    async def run(self, stop_event: asyncio.Event) -> None:
        """Poll until ``stop_event`` is set."""
        await self.queue.ensure_group()
        logger.info("worker_started", processor=self.processor.name, queue=self.queue.name)

        while not stop_event.is_set():
            try:
                await self.poll_once()
            except Exception as e:
                # Queue transport errors: back off and keep polling
                logger.error(
                    "worker_poll_failed",
                    processor=self.processor.name,
                    queue=self.queue.name,
                    error=str(e),
                )
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=1.0)
                except TimeoutError:
                    pass

        logger.info("worker_stopped", processor=self.processor.name, queue=self.queue.name)
