"""Tests for the room availability interval store."""

from datetime import date, datetime

import pytest

from app.config.database import Collections, db_config
from app.models.room_availability import RoomStatus
from app.services import room_availability_service as availability
from app.utils.exceptions import ConflictError, NotFoundError, ValidationError


def d(day: int) -> date:
    return date(2025, 6, day)


async def _records(room_id: str):
    cursor = db_config.get_collection(Collections.ROOM_AVAILABILITY).find(
        {"room_id": room_id}, sort=[("start_date", 1)]
    )
    return await cursor.to_list(length=None)


@pytest.mark.asyncio
async def test_empty_calendar_is_available(room) -> None:
    room_id = str(room["_id"])
    assert await availability.check_availability(room_id, d(10)) is True
    assert await availability.check_availability_for_range(room_id, d(10), d(20)) is True


@pytest.mark.asyncio
async def test_range_check_is_half_open(room) -> None:
    """Nights 10 and 11 are held; the check-out day 12 stays bookable."""
    room_id = str(room["_id"])
    await availability.bulk_update_status(room_id, d(10), d(11), RoomStatus.BOOKED)

    assert await availability.check_availability_for_range(room_id, d(11), d(13)) is False
    assert await availability.check_availability_for_range(room_id, d(9), d(11)) is False
    assert await availability.check_availability_for_range(room_id, d(12), d(14)) is True
    assert await availability.check_availability_for_range(room_id, d(8), d(10)) is True

    assert await availability.check_availability(room_id, d(11)) is False
    assert await availability.check_availability(room_id, d(12)) is True


@pytest.mark.asyncio
async def test_range_check_rejects_empty_range(room) -> None:
    with pytest.raises(ValidationError):
        await availability.check_availability_for_range(str(room["_id"]), d(10), d(10))


@pytest.mark.asyncio
async def test_bulk_update_creates_record_and_is_idempotent(room) -> None:
    room_id = str(room["_id"])

    assert await availability.bulk_update_status(room_id, d(10), d(12), RoomStatus.BOOKED) == 1
    assert await availability.bulk_update_status(room_id, d(10), d(12), RoomStatus.BOOKED) == 0

    records = await _records(room_id)
    assert len(records) == 1
    assert records[0]["status"] == "booked"
    assert records[0]["start_date"] == datetime(2025, 6, 10)
    assert records[0]["end_date"] == datetime(2025, 6, 12)


@pytest.mark.asyncio
async def test_bulk_update_rejects_reversed_range(room) -> None:
    with pytest.raises(ValidationError):
        await availability.bulk_update_status(str(room["_id"]), d(12), d(10), RoomStatus.BOOKED)


@pytest.mark.asyncio
async def test_bulk_update_splits_wider_record(room) -> None:
    room_id = str(room["_id"])
    await availability.generate_availability_for_room(room_id, d(1), d(30), price_override=900_000)

    await availability.bulk_update_status(room_id, d(10), d(12), RoomStatus.BOOKED)

    records = await _records(room_id)
    assert [(r["start_date"].day, r["end_date"].day, r["status"]) for r in records] == [
        (1, 9, "available"),
        (10, 12, "booked"),
        (13, 30, "available"),
    ]
    # Out-of-range parts keep their price
    assert records[0]["price_override"] == 900_000
    assert records[2]["price_override"] == 900_000


@pytest.mark.asyncio
async def test_bulk_update_fills_uncovered_days_for_blocking_status(room) -> None:
    room_id = str(room["_id"])
    await availability.bulk_update_status(room_id, d(10), d(11), RoomStatus.BOOKED)

    await availability.bulk_update_status(room_id, d(9), d(13), RoomStatus.MAINTENANCE)

    records = await _records(room_id)
    assert {r["status"] for r in records} == {"maintenance"}
    for day in range(9, 14):
        assert await availability.check_availability(room_id, d(day)) is False
    assert await availability.check_availability(room_id, d(14)) is True


@pytest.mark.asyncio
async def test_release_returns_nights_to_available(room) -> None:
    room_id = str(room["_id"])
    await availability.bulk_update_status(room_id, d(10), d(11), RoomStatus.BOOKED)

    await availability.bulk_update_status(room_id, d(10), d(11), RoomStatus.AVAILABLE)

    assert await availability.check_availability_for_range(room_id, d(10), d(12)) is True


@pytest.mark.asyncio
async def test_find_by_date_range_returns_overlapping_records(room) -> None:
    room_id = str(room["_id"])
    await availability.bulk_update_status(room_id, d(5), d(6), RoomStatus.BOOKED)
    await availability.bulk_update_status(room_id, d(10), d(11), RoomStatus.RESERVED)
    await availability.bulk_update_status(room_id, d(20), d(21), RoomStatus.MAINTENANCE)

    found = await availability.find_by_room_and_date_range(room_id, d(6), d(10))

    assert [r["status"] for r in found] == ["booked", "reserved"]


@pytest.mark.asyncio
async def test_generate_replaces_overlapping_records(room) -> None:
    room_id = str(room["_id"])
    await availability.bulk_update_status(room_id, d(10), d(11), RoomStatus.BOOKED)
    await availability.bulk_update_status(room_id, d(25), d(26), RoomStatus.MAINTENANCE)

    result = await availability.generate_availability_for_room(room_id, d(1), d(15))

    assert result["deleted_count"] == 1
    assert await availability.check_availability_for_range(room_id, d(1), d(16)) is True
    assert await availability.check_availability(room_id, d(25)) is False


@pytest.mark.asyncio
async def test_generate_rejects_empty_range(room) -> None:
    with pytest.raises(ValidationError):
        await availability.generate_availability_for_room(str(room["_id"]), d(10), d(10))


@pytest.mark.asyncio
async def test_create_refuses_block_over_block(room) -> None:
    room_id = str(room["_id"])
    await availability.bulk_update_status(room_id, d(10), d(11), RoomStatus.BOOKED)

    with pytest.raises(ConflictError):
        await availability.create_availability(room_id, d(11), d(14), RoomStatus.MAINTENANCE)


@pytest.mark.asyncio
async def test_prices_use_override_then_room_rate(room) -> None:
    room_id = str(room["_id"])
    await availability.create_availability(room_id, d(11), d(12), price_override=1_500_000)

    prices = list(await availability.get_prices_by_date(room_id, d(10), d(13)))

    assert prices == [
        (d(10), 1_000_000),
        (d(11), 1_500_000),
        (d(12), 1_500_000),
    ]


@pytest.mark.asyncio
async def test_get_and_list_availability(room) -> None:
    room_id = str(room["_id"])
    record = await availability.create_availability(room_id, d(1), d(5), RoomStatus.MAINTENANCE)

    fetched = await availability.get_availability(str(record["_id"]))
    page = await availability.list_availability(room_id=room_id, status=RoomStatus.MAINTENANCE)

    assert fetched["status"] == "maintenance"
    assert page["meta"]["total"] == 1

    with pytest.raises(NotFoundError):
        await availability.get_availability("65a000000000000000000000")


@pytest.mark.asyncio
async def test_invalid_room_id_is_rejected() -> None:
    with pytest.raises(ValidationError):
        await availability.check_availability("not-an-id", d(10))
