"""Appointment service for intake and query business logic."""

import re
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

import structlog
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BadRequestException
from app.schemas.appointments import (
    INSURED_ID_PATTERN,
    AppointmentCreate,
    AppointmentResponse,
    AppointmentStatus,
    CountryISO,
)
from app.services.appointment_store import AppointmentStore
from app.services.notification_bus import NotificationBus

logger = structlog.get_logger(__name__)

DEFAULT_COUNTRY = CountryISO.PE


def validate_insured_id(insured_id: str | None) -> str:
    """Reject insured ids that are not exactly five digits."""
    if not insured_id or not re.fullmatch(INSURED_ID_PATTERN, insured_id):
        raise BadRequestException("insuredId must be a 5 digit string")
    return insured_id


def build_appointment_request(
    payload: dict[str, Any],
    country_hint: str | None = None,
) -> AppointmentCreate:
    """
    Validate an intake payload and resolve its country.

    The country comes from the payload, then from the caller hint, then
    defaults to PE. The resolved value must be PE or CL.

    Raises:
        BadRequestException: If any field is missing or malformed
    """
    data = dict(payload)
    if not data.get("countryISO"):
        data["countryISO"] = country_hint or DEFAULT_COUNTRY.value

    try:
        return AppointmentCreate.model_validate(data)
    except ValidationError as e:
        details = [
            {"field": ".".join(str(loc) for loc in error["loc"]), "message": error["msg"]}
            for error in e.errors()
        ]
        logger.warning("appointment_validation_failed", details=details)
        raise BadRequestException("Invalid appointment request", details=details) from e


class AppointmentService:
    """Service for creating and querying appointments."""

    def __init__(self, db: AsyncSession, notification_bus: NotificationBus):
        """Initialize service with database session and notification bus."""
        self.store = AppointmentStore(db)
        self.notification_bus = notification_bus

    async def create_appointment(self, data: AppointmentCreate) -> AppointmentResponse:
        """
        Create a new appointment and publish it for country processing.

        The record is written before publishing. If publishing fails the
        error propagates and the record stays pending until the
        reconciliation sweep republishes it.

        Args:
            data: Validated appointment creation data

        Returns:
            Created appointment
        """
        now = datetime.now(UTC)
        appointment = AppointmentResponse(
            id=str(uuid4()),
            insured_id=data.insured_id,
            schedule_id=data.schedule_id,
            country_iso=data.country_iso,
            status=AppointmentStatus.PENDING,
            created_at=now,
            updated_at=now,
        )

        saved = await self.store.save(appointment)
        await self.notification_bus.publish(saved)

        logger.info(
            "appointment_created",
            appointment_id=saved.id,
            country=saved.country_iso.value,
        )
        return saved

    async def get_appointments_by_insured_id(self, insured_id: str) -> list[AppointmentResponse]:
        """
        List appointments of an insured party.

        Raises:
            BadRequestException: If the insured id is not 5 digits
        """
        validate_insured_id(insured_id)
        return await self.store.list_by_insured_id(insured_id)

    async def republish_stale_pending(self, older_than: timedelta, limit: int = 100) -> int:
        """
        Republish pending appointments whose publish may have been lost.

        Args:
            older_than: Minimum age of the last write
            limit: Maximum number of appointments handled in one sweep

        Returns:
            Number of appointments republished
        """
        cutoff = datetime.now(UTC) - older_than
        stale = await self.store.list_stale_pending(cutoff, limit=limit)

        republished = 0
        for appointment in stale:
            try:
                await self.notification_bus.publish(appointment)
                republished += 1
                # Leaves the sweep window until the threshold passes again
                await self.store.touch_pending(appointment.id)
            except Exception as e:
                logger.error(
                    "appointment_republish_failed",
                    appointment_id=appointment.id,
                    error=str(e),
                )

        logger.info("stale_pending_swept", found=len(stale), republished=republished)
        return republished
