"""Tests for the country processor."""

import json
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from app.core.exceptions import ConnectionUnavailableError
from app.database import CountryDatabase
from app.models.appointment_details import appointment_details
from app.processors.country_processor import CountryProcessor
from app.schemas.appointments import COMPLETED_DETAIL_TYPE, CountryISO
from app.services.appointment_detail_store import AppointmentDetailStore

APPOINTMENT = {"id": "A1", "insuredId": "12345", "scheduleId": 100, "countryISO": "PE"}


def wrapped(payload: dict) -> str:
    """Body as delivered by the notification bus."""
    return json.dumps({"Type": "Notification", "Message": json.dumps(payload)})


async def detail_rows(database: CountryDatabase) -> list:
    async with database.session() as session:
        result = await session.execute(select(appointment_details))
        return result.fetchall()


@pytest.fixture
def processor(country_database, event_bus) -> CountryProcessor:
    return CountryProcessor(CountryISO.PE, AppointmentDetailStore(country_database), event_bus)


@pytest.mark.asyncio
async def test_persists_detail_and_emits_completion(
    processor, country_database, event_bus, make_message
):
    """Test one message creates a completed detail row and one completion event."""
    result = await processor.handle_batch([make_message(wrapped(APPOINTMENT))])

    assert result.succeeded == ["1-0"]
    assert result.failed == []

    rows = await detail_rows(country_database)
    assert len(rows) == 1
    assert rows[0].status == "completed"
    assert rows[0].insured_id == "12345"
    assert rows[0].schedule_id == 100
    assert rows[0].country_iso == "PE"

    event_bus.put_event.assert_awaited_once()
    source, detail_type, detail = event_bus.put_event.await_args.args
    assert source == "appointment-service"
    assert detail_type == COMPLETED_DETAIL_TYPE
    assert detail["id"] == "A1"
    assert detail["countryISO"] == "PE"
    assert detail["detail"]["id"] == "A1"
    persisted = detail["detail"]["appointmentDetail"]
    assert persisted["id"] == rows[0].id
    assert persisted["status"] == "completed"
    assert persisted["insuredId"] == "12345"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        APPOINTMENT,
        json.dumps(APPOINTMENT),
        wrapped(APPOINTMENT),
        json.dumps({"Message": json.dumps({"Message": json.dumps(APPOINTMENT)})}),
    ],
)
async def test_accepts_every_envelope_shape(processor, country_database, make_message, body):
    """Test plain, single and double wrapped bodies are processed."""
    result = await processor.handle_batch([make_message(body)])

    assert result.succeeded == ["1-0"]
    assert len(await detail_rows(country_database)) == 1


@pytest.mark.asyncio
async def test_malformed_message_does_not_block_batch(
    processor, country_database, event_bus, make_message
):
    """Test a batch of N with one malformed message creates N-1 rows."""
    messages = [
        make_message(wrapped({**APPOINTMENT, "id": "A1"}), message_id="1-0"),
        make_message("{this is not json", message_id="2-0"),
        make_message(wrapped({**APPOINTMENT, "id": "A3"}), message_id="3-0"),
        make_message(wrapped({**APPOINTMENT, "id": "A4"}), message_id="4-0"),
    ]

    result = await processor.handle_batch(messages)

    assert result.succeeded == ["1-0", "3-0", "4-0"]
    assert result.failed == ["2-0"]
    assert len(await detail_rows(country_database)) == 3
    assert event_bus.put_event.await_count == 3


@pytest.mark.asyncio
async def test_incomplete_appointment_is_a_parse_failure(
    processor, country_database, make_message
):
    """Test a payload missing required fields fails without writing."""
    body = wrapped({"id": "A1", "countryISO": "PE"})

    result = await processor.handle_batch([make_message(body)])

    assert result.failed == ["1-0"]
    assert await detail_rows(country_database) == []


@pytest.mark.asyncio
async def test_other_country_message_is_rejected(
    processor, country_database, event_bus, make_message
):
    """Test the PE processor never writes a CL appointment."""
    body = wrapped({**APPOINTMENT, "countryISO": "CL"})

    result = await processor.handle_batch([make_message(body)])

    assert result.failed == ["1-0"]
    assert await detail_rows(country_database) == []
    event_bus.put_event.assert_not_awaited()


@pytest.mark.asyncio
async def test_never_initialized_connection_fails_message(tmp_path, event_bus, make_message):
    """Test a processor without a connection fails with a descriptive error."""
    database = CountryDatabase("CL", f"sqlite+aiosqlite:///{tmp_path}/cl.db")
    processor = CountryProcessor(CountryISO.CL, AppointmentDetailStore(database), event_bus)

    body = wrapped({**APPOINTMENT, "countryISO": "CL"})
    result = await processor.handle_batch([make_message(body)])

    assert result.failed == ["1-0"]
    event_bus.put_event.assert_not_awaited()
    reason = "CL is not available \\(never initialized\\)"
    with pytest.raises(ConnectionUnavailableError, match=reason):
        database.session()


@pytest.mark.asyncio
async def test_disposed_connection_fails_message(tmp_path, event_bus, make_message):
    """Test a closed connection is reported as not initialized."""
    database = CountryDatabase("PE", f"sqlite+aiosqlite:///{tmp_path}/pe.db")
    await database.initialize()
    await database.dispose()
    processor = CountryProcessor(CountryISO.PE, AppointmentDetailStore(database), event_bus)

    result = await processor.handle_batch([make_message(wrapped(APPOINTMENT))])

    assert result.failed == ["1-0"]
    reason = "PE is not available \\(not initialized\\)"
    with pytest.raises(ConnectionUnavailableError, match=reason):
        database.session()


@pytest.mark.asyncio
async def test_emit_failure_keeps_detail_row(
    processor, country_database, event_bus, make_message
):
    """Test an event bus failure fails only that message and keeps the committed row."""
    event_bus.put_event = AsyncMock(side_effect=[ConnectionError("bus down"), "event-2"])
    messages = [
        make_message(wrapped({**APPOINTMENT, "id": "A1"}), message_id="1-0"),
        make_message(wrapped({**APPOINTMENT, "id": "A2"}), message_id="2-0"),
    ]

    result = await processor.handle_batch(messages)

    assert result.failed == ["1-0"]
    assert result.succeeded == ["2-0"]
    assert len(await detail_rows(country_database)) == 2


@pytest.mark.asyncio
async def test_redelivery_duplicates_detail_and_event(
    processor, country_database, event_bus, make_message
):
    """Test redelivering a message creates a second row and a second event.

    Detail inserts are not keyed by appointment id, so duplicates are expected
    under at-least-once delivery.
    """
    body = wrapped(APPOINTMENT)

    await processor.handle_batch([make_message(body, message_id="1-0")])
    await processor.handle_batch([make_message(body, message_id="1-0", receive_count=2)])

    rows = await detail_rows(country_database)
    assert len(rows) == 2
    assert rows[0].id != rows[1].id
    assert event_bus.put_event.await_count == 2
    assert all(call.args[2]["id"] == "A1" for call in event_bus.put_event.await_args_list)


@pytest.mark.asyncio
async def test_initialize_is_idempotent(country_database):
    """Test repeated initialization keeps the same pool."""
    engine = country_database._engine

    await country_database.initialize()

    assert country_database._engine is engine
    assert country_database.is_initialized
