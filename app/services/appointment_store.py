"""Appointment store backed by the appointments table."""

from datetime import UTC, datetime

import structlog
from sqlalchemy import Row, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.appointments import appointments
from app.schemas.appointments import AppointmentResponse, AppointmentStatus

logger = structlog.get_logger(__name__)


def _to_response(row: Row) -> AppointmentResponse:
    return AppointmentResponse.model_validate(dict(row._mapping))


class AppointmentStore:
    """Point writes, secondary-index queries and conditional status updates."""

    def __init__(self, db: AsyncSession):
        """Initialize store with database session."""
        self.db = db

    async def save(self, appointment: AppointmentResponse) -> AppointmentResponse:
        """
        Persist a new appointment.

        Args:
            appointment: Fully built appointment record

        Returns:
            The stored appointment
        """
        values = {
            "id": appointment.id,
            "insured_id": appointment.insured_id,
            "schedule_id": appointment.schedule_id,
            "country_iso": appointment.country_iso.value,
            "status": appointment.status.value,
            "created_at": appointment.created_at,
            "updated_at": appointment.updated_at,
        }

        try:
            await self.db.execute(insert(appointments).values(**values))
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error("appointment_save_failed", appointment_id=appointment.id, error=str(e))
            raise

        logger.info("appointment_saved", appointment_id=appointment.id)
        return appointment

    async def get(self, appointment_id: str) -> AppointmentResponse | None:
        """Get an appointment by id."""
        stmt = select(appointments).where(appointments.c.id == appointment_id)
        result = await self.db.execute(stmt)
        row = result.fetchone()
        return _to_response(row) if row else None

    async def list_by_insured_id(self, insured_id: str) -> list[AppointmentResponse]:
        """
        Query appointments through the insured id index.

        Args:
            insured_id: Five digit insured party identifier

        Returns:
            All appointments of the insured party, oldest first
        """
        stmt = (
            select(appointments)
            .where(appointments.c.insured_id == insured_id)
            .order_by(appointments.c.created_at)
        )
        result = await self.db.execute(stmt)
        rows = result.fetchall()

        logger.info("appointments_queried", insured_id=insured_id, count=len(rows))
        return [_to_response(row) for row in rows]

    async def mark_completed(self, appointment_id: str) -> AppointmentResponse | None:
        """
        Move a pending appointment to completed.

        The update is conditional on the row existing and still being pending,
        so it never creates a record and never rewrites a completed one.

        Args:
            appointment_id: Appointment id

        Returns:
            The post-update record, the unchanged record if it was already
            completed, or None if no appointment has this id
        """
        stmt = (
            update(appointments)
            .where(
                appointments.c.id == appointment_id,
                appointments.c.status == AppointmentStatus.PENDING.value,
            )
            .values(
                status=AppointmentStatus.COMPLETED.value,
                updated_at=datetime.now(UTC),
            )
            .returning(appointments)
        )

        try:
            result = await self.db.execute(stmt)
            row = result.fetchone()
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        if row:
            return _to_response(row)

        existing = await self.get(appointment_id)
        if existing is not None:
            logger.info("appointment_already_completed", appointment_id=appointment_id)
        return existing

    async def touch_pending(self, appointment_id: str) -> bool:
        """
        Refresh the last write time of a pending appointment.

        Returns:
            True if a pending appointment was updated
        """
        stmt = (
            update(appointments)
            .where(
                appointments.c.id == appointment_id,
                appointments.c.status == AppointmentStatus.PENDING.value,
            )
            .values(updated_at=datetime.now(UTC))
        )

        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        return result.rowcount > 0

    async def list_stale_pending(
        self,
        older_than: datetime,
        limit: int = 100,
    ) -> list[AppointmentResponse]:
        """List pending appointments last written before ``older_than``."""
        stmt = (
            select(appointments)
            .where(
                appointments.c.status == AppointmentStatus.PENDING.value,
                appointments.c.updated_at < older_than,
            )
            .order_by(appointments.c.updated_at)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return [_to_response(row) for row in result.fetchall()]
