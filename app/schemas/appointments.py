"""Appointment schemas for request/response validation and message payloads."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

INSURED_ID_PATTERN = r"^[0-9]{5}$"

COMPLETED_DETAIL_TYPE = "appointment.completed"


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    PENDING = "pending"
    COMPLETED = "completed"


class CountryISO(str, Enum):
    """Countries served by the pipeline."""

    PE = "PE"
    CL = "CL"


class AppointmentCreate(BaseModel):
    """Schema for creating a new appointment."""

    model_config = ConfigDict(populate_by_name=True)

    insured_id: str = Field(..., alias="insuredId", pattern=INSURED_ID_PATTERN)
    schedule_id: int = Field(..., alias="scheduleId", strict=True)
    country_iso: CountryISO = Field(..., alias="countryISO")


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: str
    insured_id: str = Field(..., alias="insuredId")
    schedule_id: int = Field(..., alias="scheduleId")
    country_iso: CountryISO = Field(..., alias="countryISO")
    status: AppointmentStatus
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")


class AppointmentMessage(BaseModel):
    """Appointment payload delivered to a country queue."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., min_length=1)
    insured_id: str = Field(..., alias="insuredId")
    schedule_id: int = Field(..., alias="scheduleId")
    country_iso: CountryISO = Field(..., alias="countryISO")


class AppointmentDetailResponse(BaseModel):
    """Country-local appointment detail row."""

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: str
    insured_id: str = Field(..., alias="insuredId")
    schedule_id: int = Field(..., alias="scheduleId")
    country_iso: str = Field(..., alias="countryISO")
    status: str
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")


class CompletionDetail(BaseModel):
    """Inner detail of a completion event."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    appointment_detail: AppointmentDetailResponse = Field(..., alias="appointmentDetail")


class AppointmentCompletedEvent(BaseModel):
    """Detail emitted on the event bus once a country persisted an appointment."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    country_iso: CountryISO = Field(..., alias="countryISO")
    detail: CompletionDetail
