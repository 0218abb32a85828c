from pydantic import BaseModel, BeforeValidator, Field, model_validator
from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Optional


class RoomStatus(str, Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    BOOKED = "booked"
    MAINTENANCE = "maintenance"


# Statuses that make a day unavailable for a new booking
BLOCKING_STATUSES = [RoomStatus.RESERVED.value, RoomStatus.BOOKED.value, RoomStatus.MAINTENANCE.value]


def parse_calendar_date(value):
    """Accept YYYY-MM-DD or a full ISO timestamp; keep only the UTC calendar date"""
    if isinstance(value, str) and "T" in value:
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


CalendarDate = Annotated[date, BeforeValidator(parse_calendar_date)]


class RoomAvailabilityCreate(BaseModel):
    room_id: str = Field(..., description="Room ID")
    start_date: CalendarDate
    end_date: CalendarDate
    status: RoomStatus = RoomStatus.AVAILABLE
    price_override: Optional[float] = Field(None, ge=0)


class GenerateAvailabilityRequest(BaseModel):
    room_id: str = Field(..., description="Room ID")
    start_date: CalendarDate
    end_date: CalendarDate
    status: RoomStatus = RoomStatus.AVAILABLE
    price_override: Optional[float] = Field(None, ge=0)


class BulkUpdateStatusRequest(BaseModel):
    room_id: str = Field(..., description="Room ID")
    start_date: CalendarDate
    end_date: CalendarDate
    status: RoomStatus

    @model_validator(mode="after")
    def check_order(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self
