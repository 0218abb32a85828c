from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from app.models.room_availability import (
    BulkUpdateStatusRequest,
    GenerateAvailabilityRequest,
    RoomAvailabilityCreate,
    RoomStatus,
)
from app.services import room_availability_service as availability
from app.services.room_lock import room_lock
from app.utils.auth import get_current_user, require_admin
from app.utils.helpers import ok, serialize_doc, serialize_docs

router = APIRouter(prefix="/room-availability", tags=["Room Availability"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_availability(
    payload: RoomAvailabilityCreate,
    current_user: dict = Depends(require_admin)
):
    async with room_lock(payload.room_id):
        record = await availability.create_availability(
            payload.room_id, payload.start_date, payload.end_date, payload.status, payload.price_override
        )
    return ok(serialize_doc(record), "Room availability created successfully")


@router.post("/generate")
async def generate_availability(
    payload: GenerateAvailabilityRequest,
    current_user: dict = Depends(require_admin)
):
    """Replace every record overlapping the range with one fresh record"""
    async with room_lock(payload.room_id):
        result = await availability.generate_availability_for_room(
            payload.room_id, payload.start_date, payload.end_date, payload.status, payload.price_override
        )
    return ok({
        "deleted_count": result["deleted_count"],
        "record": serialize_doc(result["record"]),
    }, result["message"])


@router.post("/bulk-update-status")
async def bulk_update_status(
    payload: BulkUpdateStatusRequest,
    current_user: dict = Depends(require_admin)
):
    async with room_lock(payload.room_id):
        updated = await availability.bulk_update_status(
            payload.room_id, payload.start_date, payload.end_date, payload.status
        )
    return ok({"updated_count": updated}, f"Updated {updated} availability record(s)")


@router.get("")
async def list_availability(
    room_id: Optional[str] = None,
    status_filter: Optional[RoomStatus] = Query(None, alias="status"),
    current: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1, alias="pageSize"),
    current_user: dict = Depends(get_current_user)
):
    page = await availability.list_availability(room_id, status_filter, current, page_size)
    page["results"] = serialize_docs(page["results"])
    return ok(page, "Room availability retrieved successfully")


@router.get("/room/{room_id}/date-range")
async def find_by_date_range(
    room_id: str,
    start_date: date,
    end_date: date,
    current_user: dict = Depends(get_current_user)
):
    """Stored records overlapping [start_date, end_date]"""
    records = await availability.find_by_room_and_date_range(room_id, start_date, end_date)
    return ok(serialize_docs(records), "Room availability retrieved successfully")


@router.get("/check")
async def check_availability(
    room_id: str,
    day: date = Query(..., alias="date"),
    current_user: dict = Depends(get_current_user)
):
    available = await availability.check_availability(room_id, day)
    return ok({"room_id": room_id, "date": day.isoformat(), "available": available})


@router.get("/check-room-dates")
async def check_room_dates(
    room_id: str,
    check_in_date: date,
    check_out_date: date,
    current_user: dict = Depends(get_current_user)
):
    """Whether every night in [check_in_date, check_out_date) is free"""
    available = await availability.check_availability_for_range(room_id, check_in_date, check_out_date)
    return ok({
        "room_id": room_id,
        "check_in_date": check_in_date.isoformat(),
        "check_out_date": check_out_date.isoformat(),
        "available": available,
    })


@router.get("/prices")
async def get_prices(
    room_id: str,
    start_date: date,
    end_date: date,
    current_user: dict = Depends(get_current_user)
):
    """Nightly prices for [start_date, end_date)"""
    prices = await availability.get_prices_by_date(room_id, start_date, end_date)
    nights = [{"date": day.isoformat(), "price": price} for day, price in prices]
    return ok({
        "room_id": room_id,
        "nights": nights,
        "total": sum(night["price"] for night in nights),
    })


@router.get("/{availability_id}")
async def get_availability(
    availability_id: str,
    current_user: dict = Depends(get_current_user)
):
    record = await availability.get_availability(availability_id)
    return ok(serialize_doc(record), "Room availability retrieved successfully")
