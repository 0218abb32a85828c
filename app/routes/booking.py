from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from app.models.booking import (
    BookingCancel,
    BookingCreate,
    BookingFilter,
    BookingPaymentRequest,
    BookingStatus,
    DepositStatus,
    PaymentStatus,
)
from app.services import booking_scheduler, booking_service
from app.utils.auth import get_current_user, require_admin, scope_for
from app.utils.helpers import ok, serialize_doc, serialize_docs

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def _payment_response(result: dict) -> dict:
    return {
        "booking": serialize_doc(result["booking"]),
        "payment": serialize_doc(result["payment"]),
        "payment_url": result.get("payment_url"),
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking: BookingCreate,
    current_user: dict = Depends(get_current_user)
):
    """Create a booking and hold the room for its nights"""
    created = await booking_service.create_booking(current_user["_id"], booking)
    return ok(serialize_doc(created), "Booking created successfully")


@router.get("")
async def list_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    payment_status: Optional[PaymentStatus] = None,
    deposit_status: Optional[DepositStatus] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    search: Optional[str] = None,
    user_id: Optional[str] = None,
    current: int = Query(1, ge=1),
    page_size: int = Query(None, ge=1, alias="pageSize"),
    current_user: dict = Depends(get_current_user)
):
    """List bookings; users see their own, admins see all (optionally by user)"""
    filters = BookingFilter(
        status=status_filter,
        payment_status=payment_status,
        deposit_status=deposit_status,
        date_from=date_from,
        date_to=date_to,
        search=search,
        user_id=user_id,
    )
    page = await booking_service.list_bookings(scope_for(current_user), filters, current, page_size)
    page["results"] = serialize_docs(page["results"])
    return ok(page, "Bookings retrieved successfully")


@router.post("/check-completed")
async def check_completed(current_user: dict = Depends(require_admin)):
    """Run the completion sweep now"""
    result = await booking_scheduler.complete_finished_bookings()
    return ok(result, f"{result['processed']} booking(s) marked as completed")


@router.post("/cancel")
async def cancel_booking(
    payload: BookingCancel,
    current_user: dict = Depends(get_current_user)
):
    booking = await booking_service.cancel_booking(
        payload.booking_id, scope_for(current_user), payload.cancellation_reason
    )
    return ok(serialize_doc(booking), "Booking canceled successfully")


@router.get("/{booking_id}")
async def get_booking(
    booking_id: str,
    current_user: dict = Depends(get_current_user)
):
    booking = await booking_service.get_booking(booking_id, scope_for(current_user))
    return ok(serialize_doc(booking), "Booking retrieved successfully")


@router.post("/{booking_id}/pay-deposit")
async def pay_deposit(
    booking_id: str,
    payload: Optional[BookingPaymentRequest] = None,
    current_user: dict = Depends(get_current_user)
):
    """Pay the deposit from the wallet, or get a gateway link"""
    payload = payload or BookingPaymentRequest()
    result = await booking_service.pay_deposit(
        booking_id, current_user["_id"], scope_for(current_user),
        payload.payment_method, payload.redirect_url,
    )
    message = "Redirect to complete the deposit payment" if result["payment_url"] else "Deposit paid successfully"
    return ok(_payment_response(result), message)


@router.post("/{booking_id}/pay-remaining")
async def pay_remaining(
    booking_id: str,
    payload: Optional[BookingPaymentRequest] = None,
    current_user: dict = Depends(get_current_user)
):
    """Pay the remaining amount from the wallet, or get a gateway link"""
    payload = payload or BookingPaymentRequest()
    result = await booking_service.pay_remaining_amount(
        booking_id, current_user["_id"], scope_for(current_user),
        payload.payment_method, payload.redirect_url,
    )
    message = "Redirect to complete the payment" if result["payment_url"] else "Remaining amount paid successfully"
    return ok(_payment_response(result), message)
