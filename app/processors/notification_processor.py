"""Notification processor: completes appointments from completion events."""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.envelope import decode_payload, extract_appointment_id, unwrap_envelope
from app.core.exceptions import MissingAppointmentIdError
from app.processors.batch import BatchResult, process_batch
from app.services.appointment_store import AppointmentStore
from app.services.message_queue import QueueMessage

logger = structlog.get_logger(__name__)


class NotificationProcessor:
    """Consumes the completion queue and marks appointments completed."""

    name = "notification_processor"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def handle_batch(self, messages: list[QueueMessage]) -> BatchResult:
        """Process a batch; each message succeeds or fails on its own."""
        return await process_batch(messages, self.handle_message, self.name)

    async def handle_message(self, message: QueueMessage) -> None:
        """
        Mark the referenced appointment completed.

        An unknown appointment id is logged and treated as handled.

        Raises:
            MessageParseError: If the body cannot be decoded
            MissingAppointmentIdError: If the event carries no appointment id
        """
        payload = unwrap_envelope(decode_payload(message.body), max_depth=1)
        appointment_id = extract_appointment_id(payload)
        if appointment_id is None:
            raise MissingAppointmentIdError()

        async with self.session_factory() as session:
            appointment = await AppointmentStore(session).mark_completed(appointment_id)

        if appointment is None:
            logger.warning("appointment_not_found", appointment_id=appointment_id)
            return

        logger.info(
            "appointment_status_updated",
            appointment_id=appointment.id,
            status=appointment.status.value,
        )
