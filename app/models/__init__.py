"""Database models."""

from app.models.appointment_details import appointment_details
from app.models.appointments import appointments

__all__ = [
    "appointment_details",
    "appointments",
]
