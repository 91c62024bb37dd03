"""Worker entry point.

Usage:
    python -m app.workers country --country PE
    python -m app.workers notifications
"""

import argparse
import asyncio
import os
import signal
import socket

import structlog

from app.config import settings
from app.core.redis_client import close_redis_connection, get_redis_client
from app.database import AsyncSessionLocal, CountryDatabase, engine
from app.middleware.logging import configure_logging
from app.processors.country_processor import CountryProcessor
from app.processors.notification_processor import NotificationProcessor
from app.schemas.appointments import CountryISO
from app.services.appointment_detail_store import AppointmentDetailStore
from app.services.event_bus import EventBus, completion_rules
from app.services.message_queue import MessageQueue
from app.workers.runner import QueueWorker

logger = structlog.get_logger(__name__)


def build_queue(name: str) -> MessageQueue:
    """Create a queue consumer for this process."""
    return MessageQueue(
        get_redis_client(),
        name=name,
        group=settings.queue_consumer_group,
        consumer=f"{socket.gethostname()}-{os.getpid()}",
        visibility_timeout_ms=settings.queue_visibility_timeout_ms,
        max_receive_count=settings.queue_max_receive_count,
        max_length=settings.queue_max_length,
    )


async def _run_until_signalled(worker: QueueWorker) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)
    await worker.run(stop_event)


async def run_country_worker(country: CountryISO) -> None:
    """Consume one country's queue with a process-scoped database handle."""
    database = CountryDatabase(country.value, settings.country_database_url(country.value))
    if settings.should_connect_db:
        await database.initialize()
    else:
        logger.info("country_database_skipped", country=country.value)

    event_bus = EventBus(
        get_redis_client(),
        bus_name=settings.event_bus_name,
        rules=completion_rules(),
        max_length=settings.queue_max_length,
    )
    processor = CountryProcessor(country, AppointmentDetailStore(database), event_bus)
    worker = QueueWorker(
        build_queue(settings.country_queue_name(country.value)),
        processor,
        batch_size=settings.queue_batch_size,
        wait_time_ms=settings.queue_wait_time_ms,
    )

    try:
        await _run_until_signalled(worker)
    finally:
        await database.dispose()
        await close_redis_connection()


async def run_notification_worker() -> None:
    """Consume the completion queue."""
    worker = QueueWorker(
        build_queue(settings.completion_queue_name),
        NotificationProcessor(AsyncSessionLocal),
        batch_size=settings.queue_batch_size,
        wait_time_ms=settings.queue_wait_time_ms,
    )

    try:
        await _run_until_signalled(worker)
    finally:
        await engine.dispose()
        await close_redis_connection()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Appointment pipeline workers")
    subparsers = parser.add_subparsers(dest="worker", required=True)

    country_parser = subparsers.add_parser("country", help="Consume a country queue")
    country_parser.add_argument(
        "--country",
        required=True,
        choices=[country.value for country in CountryISO],
    )
    subparsers.add_parser("notifications", help="Consume the completion queue")

    args = parser.parse_args(argv)
    configure_logging(component=f"worker-{args.worker}")

    if args.worker == "country":
        asyncio.run(run_country_worker(CountryISO(args.country)))
    else:
        asyncio.run(run_notification_worker())


if __name__ == "__main__":
    main()
