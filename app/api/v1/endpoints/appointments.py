"""Appointment endpoints."""

import structlog
from fastapi import APIRouter, Query, Request, status

from app.core.envelope import decode_payload
from app.core.exceptions import BadRequestException, MessageParseError
from app.dependencies import AppointmentServiceDep
from app.schemas.appointments import AppointmentResponse
from app.services.appointment_service import build_appointment_request

router = APIRouter()
logger = structlog.get_logger(__name__)

REQUEST_FIELDS = ("insuredId", "scheduleId", "countryISO")


async def _read_payload(request: Request) -> dict:
    """Decode the request body, filling missing fields from query parameters."""
    raw = await request.body()
    payload: dict = {}
    if raw.strip():
        try:
            payload = decode_payload(raw)
        except MessageParseError as e:
            raise BadRequestException("Invalid JSON body format") from e

    for name in REQUEST_FIELDS:
        if name not in payload and name in request.query_params:
            payload[name] = _from_query(name, request.query_params[name])
    return payload


def _from_query(name: str, value: str) -> str | int:
    # Query strings carry scheduleId as text; the body must send a number.
    if name == "scheduleId" and value.isascii() and value.isdigit():
        return int(value)
    return value


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Schedule an appointment",
)
async def create_appointment(
    request: Request,
    service: AppointmentServiceDep,
    country: str | None = Query(None, description="Country hint used when countryISO is absent"),
) -> AppointmentResponse:
    """
    Schedule an appointment and queue it for country processing.

    Args:
        request: Raw request, body decoded manually to accept several shapes
        service: Appointment service
        country: Optional country hint, used only when the body has no
            countryISO; any value other than PE or CL is a bad request

    Returns:
        Created appointment in pending status
    """
    payload = await _read_payload(request)
    data = build_appointment_request(payload, country_hint=country)
    return await service.create_appointment(data)


@router.get(
    "/{insured_id}",
    response_model=list[AppointmentResponse],
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments of an insured party",
)
async def get_appointments_by_insured_id(
    insured_id: str,
    service: AppointmentServiceDep,
) -> list[AppointmentResponse]:
    """
    List every appointment of an insured party.

    Raises:
        BadRequestException: If the insured id is not 5 digits
    """
    logger.info("appointments_requested", insured_id=insured_id)
    return await service.get_appointments_by_insured_id(insured_id)
