"""Tests for the appointment service."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from app.core.exceptions import BadRequestException
from app.schemas.appointments import AppointmentStatus, CountryISO
from app.services.appointment_service import AppointmentService, build_appointment_request


def test_build_request_resolution_order():
    """Test countryISO comes from the body, then the hint, then PE."""
    payload = {"insuredId": "12345", "scheduleId": 1}
    assert build_appointment_request(payload).country_iso == CountryISO.PE
    assert (
        build_appointment_request({"insuredId": "12345", "scheduleId": 1}, "CL").country_iso
        == CountryISO.CL
    )
    assert (
        build_appointment_request(
            {"insuredId": "12345", "scheduleId": 1, "countryISO": "PE"}, "CL"
        ).country_iso
        == CountryISO.PE
    )


def test_build_request_reports_fields():
    """Test validation errors name the offending fields."""
    with pytest.raises(BadRequestException) as exc_info:
        build_appointment_request({"insuredId": "1", "countryISO": "AR"})

    fields = {detail["field"] for detail in exc_info.value.details}
    assert fields == {"insuredId", "scheduleId", "countryISO"}


@pytest.mark.asyncio
async def test_store_failure_prevents_publish(db_session, notification_bus):
    """Test nothing is published when the store write fails."""
    service = AppointmentService(db_session, notification_bus)
    service.store.save = AsyncMock(side_effect=ConnectionError("store down"))

    with pytest.raises(ConnectionError):
        await service.create_appointment(
            build_appointment_request({"insuredId": "12345", "scheduleId": 1})
        )

    notification_bus.publish.assert_not_awaited()


@pytest.mark.asyncio
async def test_query_rejects_before_store(db_session, notification_bus):
    """Test an invalid insured id never reaches the store."""
    service = AppointmentService(db_session, notification_bus)
    service.store.list_by_insured_id = AsyncMock()

    with pytest.raises(BadRequestException):
        await service.get_appointments_by_insured_id("12")

    service.store.list_by_insured_id.assert_not_awaited()


@pytest.mark.asyncio
async def test_republish_stale_pending(db_session, notification_bus, make_appointment):
    """Test the sweep republishes old pending appointments only."""
    await make_appointment("stale", age=timedelta(hours=1))
    await make_appointment("fresh", age=timedelta(seconds=1))
    await make_appointment("done", status="completed", age=timedelta(hours=1))
    service = AppointmentService(db_session, notification_bus)

    count = await service.republish_stale_pending(timedelta(minutes=15))

    assert count == 1
    republished = notification_bus.publish.await_args.args[0]
    assert republished.id == "stale"
    assert republished.status == AppointmentStatus.PENDING


@pytest.mark.asyncio
async def test_republish_continues_after_failure(
    db_session, notification_bus, make_appointment
):
    """Test one failed republish does not stop the sweep."""
    await make_appointment("first", age=timedelta(hours=2))
    await make_appointment("second", age=timedelta(hours=1))
    notification_bus.publish = AsyncMock(side_effect=[ConnectionError("down"), "message-2"])
    service = AppointmentService(db_session, notification_bus)

    count = await service.republish_stale_pending(timedelta(minutes=15))

    assert count == 1
    assert notification_bus.publish.await_count == 2


@pytest.mark.asyncio
async def test_republished_appointment_leaves_sweep_window(
    db_session, notification_bus, make_appointment
):
    """Test back-to-back sweeps publish a stale appointment only once."""
    await make_appointment("stale", age=timedelta(hours=1))
    service = AppointmentService(db_session, notification_bus)

    first = await service.republish_stale_pending(timedelta(minutes=15))
    second = await service.republish_stale_pending(timedelta(minutes=15))

    assert (first, second) == (1, 0)
    notification_bus.publish.assert_awaited_once()
    appointment = await service.store.get("stale")
    assert appointment.status == AppointmentStatus.PENDING
