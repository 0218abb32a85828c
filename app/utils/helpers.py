"""
Helper utility functions
"""
import uuid
from bson import ObjectId
from typing import Any, Dict, List, Iterator, Tuple, Union
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
import pytz

from app.config.settings import settings

DISPLAY_TZ = pytz.timezone(settings.DISPLAY_TIMEZONE)

# Calendar-date fields: stored as midnight UTC, rendered as YYYY-MM-DD
DATE_FIELDS = ("start_date", "end_date", "check_in_date", "check_out_date", "payment_due_date", "date")

ONE_DAY = timedelta(days=1)


def utc_now() -> datetime:
    """Current time as a naive UTC datetime (the storage convention)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def start_of_day(value: Union[date, datetime]) -> datetime:
    """Normalize a date or datetime to naive UTC midnight"""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return datetime(value.year, value.month, value.day)
    return datetime(value.year, value.month, value.day)


def iter_days(start: datetime, end: datetime) -> Iterator[datetime]:
    """Yield each midnight in the half-open range [start, end)"""
    current = start_of_day(start)
    end = start_of_day(end)
    while current < end:
        yield current
        current += ONE_DAY


def serialize_doc(doc: Dict) -> Dict:
    """Convert MongoDB document to JSON-serializable format"""
    if doc is None:
        return None

    if "_id" in doc and isinstance(doc["_id"], ObjectId):
        doc["_id"] = str(doc["_id"])

    # Convert any nested ObjectIds or datetimes
    for key, value in doc.items():
        if isinstance(value, ObjectId):
            doc[key] = str(value)
        elif isinstance(value, datetime):
            if key in DATE_FIELDS:
                doc[key] = value.date().isoformat()
            elif value.tzinfo is None:
                doc[key] = pytz.utc.localize(value).astimezone(DISPLAY_TZ).isoformat()
            else:
                doc[key] = value.astimezone(DISPLAY_TZ).isoformat()
        elif isinstance(value, date):
            doc[key] = value.isoformat()
        elif isinstance(value, list):
            doc[key] = [serialize_doc(item) if isinstance(item, dict) else item for item in value]
        elif isinstance(value, dict):
            doc[key] = serialize_doc(value)

    return doc

def serialize_docs(docs: List[Dict]) -> List[Dict]:
    """Convert list of MongoDB documents to JSON-serializable format"""
    return [serialize_doc(doc) for doc in docs]


def ok(data: Any = None, message: str = "OK") -> Dict:
    """Standard success envelope"""
    return {"success": True, "message": message, "data": data}


def generate_reference(prefix: str) -> str:
    """Human-readable id such as ``BK-1a2b3c4d``"""
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def _as_number(value: Decimal) -> Union[int, float]:
    return int(value) if value == value.to_integral_value() else float(value)


def split_deposit(total_amount: Union[int, float]) -> Tuple[Union[int, float], Union[int, float]]:
    """
    Split a booking total into (deposit, remaining).

    The deposit is DEPOSIT_RATE of the total rounded half-up to a whole unit;
    remaining is computed in Decimal so deposit + remaining == total exactly.
    """
    total = Decimal(str(total_amount))
    deposit = (total * Decimal(settings.DEPOSIT_RATE)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return _as_number(deposit), _as_number(total - deposit)
