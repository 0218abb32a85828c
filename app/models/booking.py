"""
Booking model and schemas
Handles hotel room bookings, their payment progress and cancellation
"""
from pydantic import BaseModel, Field
from datetime import date
from enum import Enum
from typing import Optional

from app.models.room_availability import CalendarDate


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"
    COMPLETED = "completed"
    EXPIRED = "expired"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    EXPIRED = "expired"


class DepositStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"


class CancellationPolicy(str, Enum):
    CANCELABLE = "cancelable"
    NON_CANCELABLE = "non-cancelable"


class PaymentMethod(str, Enum):
    WALLET = "wallet"
    GATEWAY = "gateway"
    CASH = "cash"


TERMINAL_STATUSES = [BookingStatus.CANCELED.value, BookingStatus.COMPLETED.value, BookingStatus.EXPIRED.value]
OPEN_STATUSES = [BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value]


class BookingCreate(BaseModel):
    hotel_id: str = Field(..., description="Hotel ID")
    room_id: str = Field(..., description="Room ID")
    check_in_date: CalendarDate
    check_out_date: CalendarDate

    # Computed from the room's nightly rate when omitted
    total_amount: Optional[float] = Field(None, ge=0)
    cancellation_policy: CancellationPolicy = CancellationPolicy.CANCELABLE
    payment_method: PaymentMethod = PaymentMethod.GATEWAY

    # Guest info (falls back to the booking user's profile)
    guest_name: Optional[str] = Field(None, max_length=200)
    guest_email: Optional[str] = Field(None, max_length=200)
    guest_phone: Optional[str] = Field(None, max_length=50)
    special_requests: Optional[str] = Field(None, max_length=1000)
    number_of_guests: int = Field(default=1, ge=1)


class BookingCancel(BaseModel):
    booking_id: str = Field(..., description="Booking storage id or BK- reference")
    cancellation_reason: Optional[str] = Field(None, max_length=500)


class BookingPaymentRequest(BaseModel):
    payment_method: PaymentMethod = PaymentMethod.WALLET
    redirect_url: Optional[str] = None


class BookingFilter(BaseModel):
    status: Optional[BookingStatus] = None
    payment_status: Optional[PaymentStatus] = None
    deposit_status: Optional[DepositStatus] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    search: Optional[str] = None
    user_id: Optional[str] = None
