"""Persistence of country-local appointment details."""

from datetime import UTC, datetime
from uuid import uuid4

import structlog
from sqlalchemy import insert

from app.database import CountryDatabase
from app.models.appointment_details import appointment_details
from app.schemas.appointments import AppointmentDetailResponse, AppointmentMessage

logger = structlog.get_logger(__name__)

DETAIL_COMPLETED_STATUS = "completed"


class AppointmentDetailStore:
    """Writes appointment details to one country's database."""

    def __init__(self, database: CountryDatabase):
        """Initialize store with a country database handle."""
        self.database = database

    async def save(self, message: AppointmentMessage) -> AppointmentDetailResponse:
        """
        Insert one detail row for a consumed appointment.

        Not idempotent: the row gets its own key, so a redelivered message
        produces a second row.

        Raises:
            ConnectionUnavailableError: If the country connection is not open
        """
        now = datetime.now(UTC)
        values = {
            "id": str(uuid4()),
            "insured_id": message.insured_id,
            "schedule_id": message.schedule_id,
            "country_iso": message.country_iso.value,
            "status": DETAIL_COMPLETED_STATUS,
            "created_at": now,
            "updated_at": now,
        }

        async with self.database.session() as session:
            await session.execute(insert(appointment_details).values(**values))
            await session.commit()

        logger.info(
            "appointment_detail_saved",
            country=self.database.country,
            appointment_id=message.id,
            detail_id=values["id"],
        )
        return AppointmentDetailResponse.model_validate(values)
