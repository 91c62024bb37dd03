"""Country processor: persists appointment details and emits completion events."""

from typing import Any

import structlog
from pydantic import ValidationError

from app.config import settings
from app.core.envelope import decode_payload, unwrap_envelope
from app.core.exceptions import CountryMismatchError, MessageParseError
from app.processors.batch import BatchResult, process_batch
from app.schemas.appointments import (
    COMPLETED_DETAIL_TYPE,
    AppointmentCompletedEvent,
    AppointmentMessage,
    CompletionDetail,
    CountryISO,
)
from app.services.appointment_detail_store import AppointmentDetailStore
from app.services.event_bus import EventBus
from app.services.message_queue import QueueMessage

logger = structlog.get_logger(__name__)


def parse_appointment_message(body: Any) -> AppointmentMessage:
    """
    Decode a country queue message into an appointment payload.

    Raises:
        MessageParseError: If the body is not a valid appointment
    """
    payload = unwrap_envelope(decode_payload(body), max_depth=2)
    try:
        return AppointmentMessage.model_validate(payload)
    except ValidationError as e:
        raise MessageParseError(f"Invalid appointment message: {e.error_count()} error(s)") from e


class CountryProcessor:
    """
    Consumes one country's queue.

    The same processor serves every country; the country and its database
    handle are chosen at startup.
    """

    def __init__(
        self,
        country: CountryISO,
        detail_store: AppointmentDetailStore,
        event_bus: EventBus,
        event_source: str | None = None,
    ):
        self.country = country
        self.detail_store = detail_store
        self.event_bus = event_bus
        self.event_source = event_source or settings.event_source
        self.name = f"country_processor_{country.value.lower()}"

    async def handle_batch(self, messages: list[QueueMessage]) -> BatchResult:
        """Process a batch; each message succeeds or fails on its own."""
        logger.info("processing_country_batch", country=self.country.value, size=len(messages))
        return await process_batch(messages, self.handle_message, self.name)

    async def handle_message(self, message: QueueMessage) -> None:
        """Persist the detail row, then emit the completion event."""
        appointment = parse_appointment_message(message.body)
        if appointment.country_iso != self.country:
            raise CountryMismatchError(self.country.value, appointment.country_iso.value)

        logger.info(
            "processing_appointment",
            country=self.country.value,
            appointment_id=appointment.id,
        )
        detail = await self.detail_store.save(appointment)

        event = AppointmentCompletedEvent(
            id=appointment.id,
            country_iso=self.country,
            detail=CompletionDetail(id=appointment.id, appointment_detail=detail),
        )
        # The detail row is already committed; an emit failure fails the
        # message without rolling it back.
        event_id = await self.event_bus.put_event(
            self.event_source,
            COMPLETED_DETAIL_TYPE,
            event.model_dump(mode="json", by_alias=True),
        )
        logger.info(
            "appointment_completion_emitted",
            country=self.country.value,
            appointment_id=appointment.id,
            event_id=event_id,
        )
