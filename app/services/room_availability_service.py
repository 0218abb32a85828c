"""
Room availability store.

Availability is kept as interval records ``(room_id, start_date, end_date,
status, price_override)`` with both ends inclusive. Records are created only
when something claims or blocks a range; a day with no covering record is
AVAILABLE. Only the booking lifecycle, the sweeps and the administrative
endpoints mutate this collection, and always through ``bulk_update_status``
or ``generate_availability_for_room``.

Callers that check availability and then write a hold must do both inside
``room_lock`` for the room.
"""
import logging
from datetime import datetime, date
from typing import Dict, Iterator, List, Optional, Tuple, Union

from app.config.database import db_config, Collections
from app.database.db_operations import db_call, db_ops, to_object_id
from app.models.room_availability import RoomStatus, BLOCKING_STATUSES
from app.utils.exceptions import ConflictError, NotFoundError, ValidationError
from app.utils.helpers import ONE_DAY, iter_days, start_of_day, utc_now

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime]


def _collection():
    return db_config.get_collection(Collections.ROOM_AVAILABILITY)


def _room_key(room_id: str) -> str:
    """Validate a room id and return its canonical string form"""
    return str(to_object_id(room_id, "room ID"))


def _overlap_filter(room_id: str, start: datetime, end: datetime) -> Dict:
    # Closed intervals overlap when start1 <= end2 and start2 <= end1
    return {"room_id": room_id, "start_date": {"$lte": end}, "end_date": {"$gte": start}}


def _new_record(room_id: str, start: datetime, end: datetime, status: str,
                price_override: Optional[float] = None) -> Dict:
    now = utc_now()
    return {
        "room_id": room_id,
        "start_date": start,
        "end_date": end,
        "status": status,
        "price_override": price_override,
        "created_at": now,
        "updated_at": now,
    }


async def find_by_room_and_date_range(room_id: str, start: DateLike, end: DateLike) -> List[Dict]:
    """Stored intervals overlapping the closed range [start, end], oldest day first"""
    room_id = _room_key(room_id)
    cursor = _collection().find(
        _overlap_filter(room_id, start_of_day(start), start_of_day(end)),
        sort=[("start_date", 1)],
    )
    return await db_call(cursor.to_list(length=None))


async def check_availability(room_id: str, day: DateLike) -> bool:
    """True when no reserved, booked or maintenance interval covers ``day``"""
    room_id = _room_key(room_id)
    day = start_of_day(day)
    blocking = await db_call(_collection().find_one({
        **_overlap_filter(room_id, day, day),
        "status": {"$in": BLOCKING_STATUSES},
    }))
    return blocking is None


async def check_availability_for_range(room_id: str, start: DateLike, end: DateLike) -> bool:
    """
    True when every night in the half-open range [start, end) is available.

    Answered with one overlap query rather than a query per night.
    """
    room_id = _room_key(room_id)
    start, end = start_of_day(start), start_of_day(end)
    if end <= start:
        raise ValidationError("End date must be after start date")
    blocking = await db_call(_collection().find_one({
        **_overlap_filter(room_id, start, end - ONE_DAY),
        "status": {"$in": BLOCKING_STATUSES},
    }))
    return blocking is None


def _uncovered_spans(start: datetime, end: datetime, covered: List[Tuple[datetime, datetime]]):
    """Gaps inside [start, end] that none of the ``covered`` closed spans reach"""
    gaps = []
    cursor = start
    for span_start, span_end in sorted(covered):
        if span_start > cursor:
            gaps.append((cursor, min(span_start - ONE_DAY, end)))
        cursor = max(cursor, span_end + ONE_DAY)
        if cursor > end:
            break
    if cursor <= end:
        gaps.append((cursor, end))
    return gaps


async def bulk_update_status(room_id: str, start: DateLike, end: DateLike,
                             status: Union[RoomStatus, str]) -> int:
    """
    Move the closed range [start, end] of a room to ``status``.

    Idempotent: records already in ``status`` are left alone, so repeating a
    call changes nothing. With no overlapping record a single record for the
    range is created, which is how holds are materialized. A record reaching
    outside the range is split so only the in-range part changes, and for a
    non-available target any uncovered day of the range is filled.

    Does not check that the range was free beforehand; that is the caller's
    job, under ``room_lock``. Returns the number of records updated or created.
    """
    room_id = _room_key(room_id)
    status = RoomStatus(status).value
    start, end = start_of_day(start), start_of_day(end)
    if end < start:
        raise ValidationError("End date must not be before start date")

    collection = _collection()
    overlapping = await db_call(collection.find(_overlap_filter(room_id, start, end)).to_list(length=None))

    if not overlapping:
        await db_call(collection.insert_one(_new_record(room_id, start, end, status)))
        return 1

    touched = 0
    covered = []
    now = utc_now()
    for record in overlapping:
        clipped_start = max(record["start_date"], start)
        clipped_end = min(record["end_date"], end)
        covered.append((clipped_start, clipped_end))
        if record["status"] == status:
            continue

        # Keep the out-of-range parts in their previous state
        if record["start_date"] < start:
            await db_call(collection.insert_one(_new_record(
                room_id, record["start_date"], start - ONE_DAY,
                record["status"], record.get("price_override"),
            )))
            touched += 1
        if record["end_date"] > end:
            await db_call(collection.insert_one(_new_record(
                room_id, end + ONE_DAY, record["end_date"],
                record["status"], record.get("price_override"),
            )))
            touched += 1

        result = await db_call(collection.update_one(
            {"_id": record["_id"], "status": record["status"]},
            {"$set": {
                "start_date": clipped_start,
                "end_date": clipped_end,
                "status": status,
                "updated_at": now,
            }},
        ))
        touched += result.modified_count

    if status != RoomStatus.AVAILABLE.value:
        for gap_start, gap_end in _uncovered_spans(start, end, covered):
            await db_call(collection.insert_one(_new_record(room_id, gap_start, gap_end, status)))
            touched += 1

    logger.debug("Room %s %s..%s -> %s (%d record(s))", room_id, start.date(), end.date(), status, touched)
    return touched


async def generate_availability_for_room(room_id: str, start: DateLike, end: DateLike,
                                         status: Union[RoomStatus, str] = RoomStatus.AVAILABLE,
                                         price_override: Optional[float] = None) -> Dict:
    """
    Administrative reseed of [start, end]: every overlapping record is deleted
    and one fresh record is inserted. Adjacent records are not merged.
    """
    room_id = _room_key(room_id)
    status = RoomStatus(status).value
    start, end = start_of_day(start), start_of_day(end)
    if end <= start:
        raise ValidationError("End date must be after start date")

    collection = _collection()
    overlap = _overlap_filter(room_id, start, end)
    held = await db_call(collection.count_documents({**overlap, "status": {"$in": BLOCKING_STATUSES}}))
    if held:
        logger.warning("Regenerating room %s %s..%s discards %d blocking record(s)",
                       room_id, start.date(), end.date(), held)

    deleted = await db_call(collection.delete_many(overlap))
    record = _new_record(room_id, start, end, status, price_override)
    result = await db_call(collection.insert_one(record))
    record["_id"] = result.inserted_id

    return {
        "message": f"Generated availability for room, replaced {deleted.deleted_count} record(s)",
        "deleted_count": deleted.deleted_count,
        "record": record,
    }


async def create_availability(room_id: str, start: DateLike, end: DateLike,
                              status: Union[RoomStatus, str] = RoomStatus.AVAILABLE,
                              price_override: Optional[float] = None) -> Dict:
    """Insert a single interval record, refusing to overlap an existing block"""
    room_id = _room_key(room_id)
    status = RoomStatus(status).value
    start, end = start_of_day(start), start_of_day(end)
    if end <= start:
        raise ValidationError("End date must be after start date")

    collection = _collection()
    if status in BLOCKING_STATUSES:
        clash = await db_call(collection.find_one({
            **_overlap_filter(room_id, start, end),
            "status": {"$in": BLOCKING_STATUSES},
        }))
        if clash:
            raise ConflictError(
                "Availability record overlaps an existing reservation or block",
                {"conflicting_id": str(clash["_id"])},
            )

    record = _new_record(room_id, start, end, status, price_override)
    result = await db_call(collection.insert_one(record))
    record["_id"] = result.inserted_id
    return record


async def get_availability(record_id: str) -> Dict:
    to_object_id(record_id, "availability ID")
    record = await db_ops.get_by_id(Collections.ROOM_AVAILABILITY, record_id)
    if not record:
        raise NotFoundError(f"Availability with ID {record_id} not found")
    return record


async def list_availability(room_id: Optional[str] = None, status: Optional[RoomStatus] = None,
                            current: int = 1, page_size: int = None) -> Dict:
    filter_query: Dict = {}
    if room_id:
        filter_query["room_id"] = _room_key(room_id)
    if status:
        filter_query["status"] = RoomStatus(status).value
    return await db_ops.paginate(
        Collections.ROOM_AVAILABILITY, filter_query, current, page_size,
        sort=[("room_id", 1), ("start_date", 1)],
    )


def _iter_prices(intervals: List[Dict], start: datetime, end: datetime,
                 default_price: float) -> Iterator[Tuple[date, float]]:
    for day in iter_days(start, end):
        price = default_price
        for record in intervals:
            if record["start_date"] <= day <= record["end_date"] and record.get("price_override") is not None:
                price = record["price_override"]
                break
        yield day.date(), price


async def get_prices_by_date(room_id: str, start: DateLike, end: DateLike,
                             default_price: Optional[float] = None) -> Iterator[Tuple[date, float]]:
    """
    Nightly prices for [start, end) as a lazy ``(date, price)`` sequence.

    A covering interval's ``price_override`` wins; otherwise ``default_price``,
    or the room's ``price_per_night`` when no default is given.
    """
    room_key = _room_key(room_id)
    start, end = start_of_day(start), start_of_day(end)
    if end <= start:
        raise ValidationError("End date must be after start date")

    if default_price is None:
        room = await db_ops.get_by_id(Collections.ROOMS, room_key)
        if not room:
            raise NotFoundError("Room not found")
        default_price = room.get("price_per_night", 0)

    intervals = await find_by_room_and_date_range(room_key, start, end - ONE_DAY)
    return _iter_prices(intervals, start, end, default_price)
