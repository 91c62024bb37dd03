"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.redis_client import get_redis_client
from app.database import get_db
from app.services.appointment_service import AppointmentService
from app.services.notification_bus import NotificationBus, country_subscriptions


def get_notification_bus() -> NotificationBus:
    """Build the notification bus on the shared Redis client."""
    return NotificationBus(
        get_redis_client(),
        topic_name=settings.notification_topic_name,
        subscriptions=country_subscriptions(),
        max_length=settings.queue_max_length,
    )


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
NotificationBusDep = Annotated[NotificationBus, Depends(get_notification_bus)]


def get_appointment_service(db: DatabaseSession, bus: NotificationBusDep) -> AppointmentService:
    """Build the appointment service for a request."""
    return AppointmentService(db, bus)


AppointmentServiceDep = Annotated[AppointmentService, Depends(get_appointment_service)]
