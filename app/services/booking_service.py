"""
Booking lifecycle.

Owns booking documents and every transition of their three status fields
(``status``, ``payment_status``, ``deposit_status``). Each transition is a
conditional ``find_one_and_update`` whose filter restates the state it starts
from, so two racing writers (a payment and a sweep, a cancel and a payment)
cannot both win.

The room hold is claimed when the booking is created, under the room lock,
and released on cancellation or expiry. ``hold_released`` records whether the
release happened; releases that failed are retried by the expiry sweep.
"""
import logging
import re
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.config.database import db_config, Collections
from app.config.settings import settings
from app.database.db_operations import db_call, db_ops
from app.models.booking import (
    BookingCreate,
    BookingFilter,
    BookingStatus,
    CancellationPolicy,
    DepositStatus,
    OPEN_STATUSES,
    PaymentMethod,
    PaymentStatus,
    TERMINAL_STATUSES,
)
from app.models.notification import NotificationType
from app.models.payment import LedgerEntryType, PaymentRecordStatus, PaymentType
from app.models.room_availability import RoomStatus
from app.services import catalog_service, notification_service, payment_gateway
from app.services import room_availability_service as availability
from app.services import wallet_service
from app.services.room_lock import room_lock
from app.utils.auth import AccessScope
from app.utils.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from app.utils.helpers import ONE_DAY, generate_reference, iter_days, split_deposit, start_of_day, utc_now

logger = logging.getLogger(__name__)

BOOKING_ID_ATTEMPTS = 3

# payment type -> (state the booking must be in, fields set on success)
PAYMENT_TRANSITIONS = {
    PaymentType.DEPOSIT: (
        {"status": {"$in": OPEN_STATUSES}, "deposit_status": DepositStatus.UNPAID.value},
        {
            "deposit_status": DepositStatus.PAID.value,
            "payment_status": PaymentStatus.PARTIALLY_PAID.value,
            "status": BookingStatus.CONFIRMED.value,
        },
    ),
    PaymentType.REMAINING: (
        {
            "status": BookingStatus.CONFIRMED.value,
            "deposit_status": DepositStatus.PAID.value,
            "payment_status": PaymentStatus.PARTIALLY_PAID.value,
        },
        {"payment_status": PaymentStatus.PAID.value},
    ),
    PaymentType.FULL_PAYMENT: (
        {"status": {"$in": OPEN_STATUSES}, "deposit_status": DepositStatus.UNPAID.value},
        {
            "deposit_status": DepositStatus.PAID.value,
            "payment_status": PaymentStatus.PAID.value,
            "status": BookingStatus.CONFIRMED.value,
        },
    ),
}

PAYMENT_LABELS = {
    PaymentType.DEPOSIT: "Deposit",
    PaymentType.REMAINING: "Remaining payment",
    PaymentType.FULL_PAYMENT: "Full payment",
}


def _bookings():
    return db_config.get_collection(Collections.BOOKINGS)


async def _transition(booking_oid: ObjectId, guard: Dict, updates: Dict) -> Optional[Dict]:
    """Apply ``updates`` only if the booking still matches ``guard``"""
    return await db_call(_bookings().find_one_and_update(
        {"_id": booking_oid, **guard},
        {"$set": {**updates, "updated_at": utc_now()}},
        return_document=ReturnDocument.AFTER,
    ))


# ─── Queries ──────────────────────────────────────────────────────────────────

async def get_booking(reference: str, scope: AccessScope) -> Dict:
    """Look a booking up by storage id or ``BK-`` reference, within ``scope``"""
    if ObjectId.is_valid(reference):
        booking = await db_ops.get_by_id(Collections.BOOKINGS, reference)
    else:
        booking = await db_ops.get_one(Collections.BOOKINGS, {"booking_id": reference})

    if not booking:
        raise NotFoundError("Booking not found")
    if not scope.allows(booking["user_id"]):
        raise PermissionDeniedError("You do not have permission to access this booking")
    return booking


async def list_bookings(scope: AccessScope, filters: Optional[BookingFilter] = None,
                        current: int = 1, page_size: int = None) -> Dict:
    filters = filters or BookingFilter()
    if filters.date_from and filters.date_to and filters.date_to < filters.date_from:
        raise ValidationError("date_to must not be before date_from")
    query: Dict = {}

    if scope.is_all:
        if filters.user_id:
            query["user_id"] = filters.user_id
    else:
        scope.apply(query)

    if filters.status:
        query["status"] = filters.status.value
    if filters.payment_status:
        query["payment_status"] = filters.payment_status.value
    if filters.deposit_status:
        query["deposit_status"] = filters.deposit_status.value

    if filters.date_from or filters.date_to:
        check_in = {}
        if filters.date_from:
            check_in["$gte"] = start_of_day(filters.date_from)
        if filters.date_to:
            check_in["$lte"] = start_of_day(filters.date_to)
        query["check_in_date"] = check_in

    if filters.search:
        pattern = {"$regex": re.escape(filters.search.strip()), "$options": "i"}
        query["$or"] = [
            {"booking_id": pattern},
            {"guest_name": pattern},
            {"guest_email": pattern},
            {"guest_phone": pattern},
        ]

    return await db_ops.paginate(Collections.BOOKINGS, query, current, page_size, sort=[("created_at", -1)])


# ─── Create ───────────────────────────────────────────────────────────────────

async def _insert_booking(document: Dict) -> Dict:
    for attempt in range(BOOKING_ID_ATTEMPTS):
        document["booking_id"] = generate_reference(settings.BOOKING_ID_PREFIX)
        document.pop("_id", None)
        try:
            result = await db_call(_bookings().insert_one(document))
        except DuplicateKeyError:
            logger.warning("Booking id collision on %s (attempt %d)", document["booking_id"], attempt + 1)
            continue
        document["_id"] = result.inserted_id
        return document
    raise ConflictError("Could not allocate a booking id, please retry")


async def create_booking(user_id: str, data: BookingCreate, now: Optional[datetime] = None) -> Dict:
    """
    Validate the stay, price it, persist a PENDING booking and claim its nights.

    The availability check, the insert and the hold all happen under the
    room lock, so two requests for the same nights cannot both succeed.
    """
    now = now or utc_now()
    check_in = start_of_day(data.check_in_date)
    check_out = start_of_day(data.check_out_date)

    if check_in < start_of_day(now):
        raise ValidationError("Check-in date cannot be in the past")
    if check_out <= check_in:
        raise ValidationError("Check-out date must be after check-in date")

    room = await catalog_service.get_room(data.room_id)
    hotel = await catalog_service.get_hotel(data.hotel_id)
    if str(room.get("hotel_id")) != str(hotel["_id"]):
        raise ValidationError("Room does not belong to the specified hotel")

    nights = (check_out - check_in).days
    total_amount = data.total_amount
    if total_amount is None:
        total_amount = room.get("price_per_night", 0) * nights
    deposit_amount, remaining_amount = split_deposit(total_amount)

    profile = await catalog_service.get_user_profile(user_id) or {}

    document = {
        "user_id": str(user_id),
        "hotel_id": str(hotel["_id"]),
        "room_id": str(room["_id"]),
        "check_in_date": check_in,
        "check_out_date": check_out,
        "nights": nights,
        "total_amount": total_amount,
        "deposit_amount": deposit_amount,
        "remaining_amount": remaining_amount,
        "deposit_status": DepositStatus.UNPAID.value,
        "payment_status": PaymentStatus.PENDING.value,
        "status": BookingStatus.PENDING.value,
        "cancellation_policy": data.cancellation_policy.value,
        "payment_due_date": check_in - timedelta(days=settings.PAYMENT_DUE_DAYS_BEFORE_CHECK_IN),
        "payment_method": data.payment_method.value,
        "guest_name": data.guest_name or profile.get("name"),
        "guest_email": data.guest_email or profile.get("email"),
        "guest_phone": data.guest_phone or profile.get("phone"),
        "special_requests": data.special_requests,
        "number_of_guests": data.number_of_guests,
        "hold_released": False,
        "cancellation_reason": None,
        "cancelled_at": None,
        "created_at": now,
        "updated_at": now,
    }

    async with room_lock(document["room_id"]):
        if not await availability.check_availability_for_range(document["room_id"], check_in, check_out):
            raise ConflictError("Room is not available for the specified dates")

        booking = await _insert_booking(document)
        try:
            await availability.bulk_update_status(
                booking["room_id"], check_in, check_out - ONE_DAY, RoomStatus.BOOKED
            )
        except Exception:
            # The expiry sweep releases whatever part of the hold was written
            await _transition(booking["_id"], {}, {
                "status": BookingStatus.CANCELED.value,
                "cancellation_reason": "Room hold could not be recorded",
                "cancelled_at": utc_now(),
            })
            raise

    logger.info("Booking %s created for room %s (%s -> %s, total %s)",
                booking["booking_id"], booking["room_id"], check_in.date(), check_out.date(), total_amount)
    await notification_service.notify(user_id, NotificationType.BOOKING_CREATED, {
        "booking_id": booking["booking_id"],
        "hotel_name": hotel.get("name"),
    })
    return booking


# ─── Hold release and refunds ─────────────────────────────────────────────────

def _contiguous_spans(days: List[datetime]) -> List[Tuple[datetime, datetime]]:
    spans: List[Tuple[datetime, datetime]] = []
    for day in days:
        if spans and spans[-1][1] + ONE_DAY == day:
            spans[-1] = (spans[-1][0], day)
        else:
            spans.append((day, day))
    return spans


async def release_booking_hold(booking: Dict) -> None:
    """
    Return the booking's nights to AVAILABLE and record that it happened.

    Nights that another open booking holds in the meantime are left alone,
    which makes a late retry of this release safe.
    """
    async with room_lock(booking["room_id"]):
        others = await db_ops.get_all(Collections.BOOKINGS, {
            "_id": {"$ne": booking["_id"]},
            "room_id": booking["room_id"],
            "status": {"$in": OPEN_STATUSES},
            "check_in_date": {"$lt": booking["check_out_date"]},
            "check_out_date": {"$gt": booking["check_in_date"]},
        }, limit=0)
        taken = set()
        for other in others:
            taken.update(iter_days(other["check_in_date"], other["check_out_date"]))

        free = [day for day in iter_days(booking["check_in_date"], booking["check_out_date"]) if day not in taken]
        for first_night, last_night in _contiguous_spans(free):
            await availability.bulk_update_status(booking["room_id"], first_night, last_night, RoomStatus.AVAILABLE)
    await _transition(booking["_id"], {}, {"hold_released": True})


async def _release_or_defer(booking: Dict) -> None:
    """Release the hold now, or leave it to the expiry sweep's retry pass if that fails"""
    try:
        await release_booking_hold(booking)
    except Exception:
        logger.exception("Could not release hold of %s; the expiry sweep will retry", booking["booking_id"])


async def _process_refund(booking: Dict) -> Optional[Dict]:
    """
    Credit the paid deposit back to the booking owner's wallet.

    The booking is flipped to REFUNDED first so a concurrent caller cannot
    refund twice; if the credit fails the previous payment status is restored.
    The credit is keyed on the booking, so retrying after an unclear failure
    never pays the deposit back twice.
    """
    if booking.get("deposit_status") != DepositStatus.PAID.value:
        return None

    previous_status = booking["payment_status"]
    claimed = await _transition(
        booking["_id"],
        {"deposit_status": DepositStatus.PAID.value, "payment_status": {"$ne": PaymentStatus.REFUNDED.value}},
        {"payment_status": PaymentStatus.REFUNDED.value, "refunded_at": utc_now()},
    )
    if claimed is None:
        return None

    amount = booking["deposit_amount"]
    if amount <= 0:
        return None
    try:
        entry = await wallet_service.credit(
            booking["user_id"], amount,
            f"Refund for booking {booking['booking_id']}",
            reference_id=booking["booking_id"],
            entry_type=LedgerEntryType.REFUND,
            movement_key=f"{booking['booking_id']}:refund",
        )
    except Exception:
        await _transition(booking["_id"], {}, {"payment_status": previous_status})
        raise

    try:
        await payment_gateway.record_payment(
            booking["user_id"], booking["booking_id"], amount,
            PaymentType.REFUND, PaymentMethod.WALLET, PaymentRecordStatus.COMPLETED,
        )
    except Exception:
        # The ledger entry above is the record of the money movement
        logger.exception("Could not record refund payment for %s", booking["booking_id"])

    logger.info("Refunded %s to wallet of %s for %s", amount, booking["user_id"], booking["booking_id"])
    await notification_service.notify(booking["user_id"], NotificationType.REFUND_PROCESSED, {
        "booking_id": booking["booking_id"],
        "amount": amount,
    })
    return entry


def _check_cancellation_policy(booking: Dict, hotel: Dict, now: datetime) -> None:
    """Raise ConflictError when the booking may not be canceled by its guest"""
    if not hotel.get("accept_deposit", True):
        raise ConflictError("This hotel does not allow cancellation of bookings")
    if booking.get("cancellation_policy") == CancellationPolicy.NON_CANCELABLE.value:
        raise ConflictError("Booking cannot be canceled due to cancellation policy")

    check_in_at = booking["check_in_date"] + timedelta(hours=settings.CHECK_IN_HOUR)
    if check_in_at - now < timedelta(hours=settings.CANCELLATION_DEADLINE_HOURS):
        raise ConflictError(
            f"Bookings can only be canceled at least {settings.CANCELLATION_DEADLINE_HOURS} hours before check-in"
        )


async def _restore(snapshot: Dict) -> None:
    """Undo a cancellation whose refund failed, using the pre-cancel snapshot"""
    await _transition(snapshot["_id"], {"status": BookingStatus.CANCELED.value}, {
        "status": snapshot["status"],
        "cancellation_reason": snapshot.get("cancellation_reason"),
        "cancelled_at": snapshot.get("cancelled_at"),
        "hold_released": snapshot.get("hold_released", False),
    })


def _reject_terminal(booking: Dict) -> None:
    status = booking["status"]
    if status == BookingStatus.CANCELED.value:
        raise ConflictError("Booking is already canceled")
    if status == BookingStatus.COMPLETED.value:
        raise ConflictError("Cannot cancel a completed booking")
    if status == BookingStatus.EXPIRED.value:
        raise ConflictError("Cannot cancel an expired booking")


# ─── Cancel ───────────────────────────────────────────────────────────────────

async def cancel_booking(reference: str, scope: AccessScope, reason: Optional[str] = None,
                         now: Optional[datetime] = None) -> Dict:
    """Guest/admin cancellation: policy checks, refund of a paid deposit, release of the nights"""
    now = now or utc_now()
    booking = await get_booking(reference, scope)
    _reject_terminal(booking)

    hotel = await catalog_service.get_hotel(booking["hotel_id"])
    _check_cancellation_policy(booking, hotel, now)

    reason = reason or "Canceled by user"
    canceled = await _transition(
        booking["_id"],
        {"status": {"$in": OPEN_STATUSES}},
        {
            "status": BookingStatus.CANCELED.value,
            "cancellation_reason": reason,
            "cancelled_at": now,
            "hold_released": False,
        },
    )
    if canceled is None:
        raise ConflictError("Booking was modified concurrently, please retry")

    try:
        await _process_refund(canceled)
    except Exception:
        await _restore(booking)
        raise
    await _release_or_defer(canceled)

    logger.info("Booking %s canceled: %s", booking["booking_id"], reason)
    await notification_service.notify(booking["user_id"], NotificationType.BOOKING_CANCELED, {
        "booking_id": booking["booking_id"],
        "reason": reason,
    })
    return await get_booking(str(booking["_id"]), scope)


# ─── Payments ─────────────────────────────────────────────────────────────────

def _guard_payment(booking: Dict, payment_type: PaymentType) -> None:
    if booking["status"] in TERMINAL_STATUSES:
        raise ConflictError(f"Cannot pay for a {booking['status']} booking")

    deposit_paid = booking["deposit_status"] == DepositStatus.PAID.value
    if payment_type == PaymentType.DEPOSIT and deposit_paid:
        raise ConflictError("Deposit has already been paid")
    if payment_type == PaymentType.REMAINING:
        if not deposit_paid:
            raise ConflictError("Deposit must be paid before paying the remaining amount")
        if booking["payment_status"] == PaymentStatus.PAID.value:
            raise ConflictError("Payment has already been completed")
    if payment_type == PaymentType.FULL_PAYMENT and deposit_paid:
        raise ConflictError("Partial payment has already been made for this booking")


def amount_due(booking: Dict, payment_type: PaymentType):
    if payment_type == PaymentType.DEPOSIT:
        return booking["deposit_amount"]
    if payment_type == PaymentType.REMAINING:
        return booking["remaining_amount"]
    if payment_type == PaymentType.FULL_PAYMENT:
        return booking["total_amount"]
    raise ValidationError(f"Unsupported payment type for a booking: {payment_type}")


async def apply_payment(booking_id: str, payment_type: PaymentType,
                        transaction_id: Optional[str] = None) -> Optional[Dict]:
    """
    Record a successful payment of ``payment_type`` on the booking.

    Returns the updated booking, or None when the booking is no longer in a
    state that accepts this payment (already applied, canceled, expired).
    ``transaction_id`` is stamped on the booking so the outcome of an
    interrupted call can be read back with ``find_applied_payment``.
    """
    payment_type = PaymentType(payment_type)
    if payment_type not in PAYMENT_TRANSITIONS:
        raise ValidationError(f"Unsupported payment type for a booking: {payment_type.value}")
    guard, updates = PAYMENT_TRANSITIONS[payment_type]
    update = {"$set": {**updates, "updated_at": utc_now()}}
    if transaction_id:
        update["$push"] = {"applied_payments": transaction_id}
    return await db_call(_bookings().find_one_and_update(
        {"booking_id": booking_id, **guard},
        update,
        return_document=ReturnDocument.AFTER,
    ))


async def find_applied_payment(booking_id: str, transaction_id: str) -> Optional[Dict]:
    """The booking if payment ``transaction_id`` was applied to it, else None"""
    return await db_call(_bookings().find_one({"booking_id": booking_id, "applied_payments": transaction_id}))


def _debit_key(transaction_id: str) -> str:
    return f"{transaction_id}:debit"


async def _close_payment(transaction_id: str, status: PaymentRecordStatus, **fields) -> Optional[Dict]:
    """Move a pending payment record to ``status``; returns the stored record"""
    payments = db_config.get_collection(Collections.PAYMENTS)
    now = utc_now()
    updates = {"status": status.value, "updated_at": now, **fields}
    if status == PaymentRecordStatus.COMPLETED:
        updates["payment_date"] = now
    closed = await db_call(payments.find_one_and_update(
        {"transaction_id": transaction_id, "status": PaymentRecordStatus.PENDING.value},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    ))
    if closed is None:
        closed = await db_call(payments.find_one({"transaction_id": transaction_id}))
    return closed


async def reconcile_wallet_payment(payment: Dict) -> Optional[Dict]:
    """
    Settle a wallet payment whose outcome was not seen through.

    The booking is the source of truth: if it carries the payment, the record
    is completed and the booking returned. Otherwise any debit taken for the
    payment goes back to the wallet (once, keyed on the transaction), the
    record fails and None is returned.
    """
    transaction_id = payment["transaction_id"]
    booking = await find_applied_payment(payment["booking_id"], transaction_id)
    if booking is not None:
        await _close_payment(transaction_id, PaymentRecordStatus.COMPLETED)
        return booking

    if await wallet_service.has_movement(payment["user_id"], _debit_key(transaction_id)):
        try:
            await wallet_service.credit(
                payment["user_id"], payment["amount"],
                f"Reversal of payment {transaction_id} for booking {payment['booking_id']}",
                reference_id=payment["booking_id"],
                entry_type=LedgerEntryType.REVERSAL,
                movement_key=f"{transaction_id}:reversal",
            )
        except Exception:
            logger.critical("Could not reverse wallet debit of %s for %s (user %s)",
                            payment["amount"], payment["booking_id"], payment["user_id"])
            raise
    await _close_payment(transaction_id, PaymentRecordStatus.FAILED, error_message="Payment was not applied")
    return None


async def _settle_with_wallet(booking: Dict, payer_id: str, amount, payment_type: PaymentType) -> Dict:
    """
    Debit the wallet and move the booking forward as one unit.

    A pending payment record is written first and both the debit and the
    booking update are keyed on its transaction id. When anything fails the
    booking is read back: a payment that reached it stands, anything else is
    reversed. If even that read fails the record stays pending for the
    reconciliation sweep.
    """
    reason = f"{PAYMENT_LABELS[payment_type]} for booking {booking['booking_id']}"
    payment = await payment_gateway.record_payment(
        payer_id, booking["booking_id"], amount, payment_type,
        PaymentMethod.WALLET, PaymentRecordStatus.PENDING,
    )
    transaction_id = payment["transaction_id"]

    try:
        entry = await wallet_service.debit(
            payer_id, amount, reason,
            reference_id=booking["booking_id"], movement_key=_debit_key(transaction_id),
        )
        updated = await apply_payment(booking["booking_id"], payment_type, transaction_id)
        if updated is None:
            raise ConflictError("Booking can no longer accept this payment; the amount was returned to your wallet")
    except Exception:
        try:
            updated = await reconcile_wallet_payment(payment)
        except Exception:
            logger.critical("Wallet payment %s for %s left pending for reconciliation",
                            transaction_id, booking["booking_id"])
            raise
        if updated is None:
            raise
        logger.warning("Wallet payment %s reached %s despite an error; keeping it",
                       transaction_id, booking["booking_id"])
        payment = await _close_payment(transaction_id, PaymentRecordStatus.COMPLETED)
        return {"booking": updated, "payment": payment}

    payment = await _close_payment(transaction_id, PaymentRecordStatus.COMPLETED,
                                   ledger_entry_id=str(entry["_id"]))
    return {"booking": updated, "payment": payment}


async def notify_payment_applied(booking: Dict, amount, payment_type: PaymentType) -> None:
    await notification_service.notify(booking["user_id"], NotificationType.PAYMENT_RECEIVED, {
        "booking_id": booking["booking_id"],
        "amount": amount,
        "payment_type": PaymentType(payment_type).value,
    })
    if payment_type in (PaymentType.DEPOSIT, PaymentType.FULL_PAYMENT):
        await notification_service.notify(booking["user_id"], NotificationType.BOOKING_CONFIRMED, {
            "booking_id": booking["booking_id"],
        })


async def pay_booking(reference: str, payer_id: str, scope: AccessScope, payment_type: PaymentType,
                      method: PaymentMethod = PaymentMethod.WALLET,
                      redirect_url: Optional[str] = None) -> Dict:
    """
    Pay the deposit, the remainder or the whole booking.

    Wallet and cash settle immediately; the gateway returns a redirect and the
    booking moves only when the settlement callback arrives.
    Returns ``{"booking", "payment", "payment_url"}``.
    """
    payment_type = PaymentType(payment_type)
    method = PaymentMethod(method)
    booking = await get_booking(reference, scope)
    _guard_payment(booking, payment_type)
    amount = amount_due(booking, payment_type)

    if method == PaymentMethod.GATEWAY:
        handoff = await payment_gateway.create_payment_url(
            payer_id, booking["booking_id"], amount, payment_type, redirect_url
        )
        return {"booking": booking, "payment": handoff, "payment_url": handoff["payment_url"]}

    if method == PaymentMethod.CASH:
        if not scope.is_all:
            raise PermissionDeniedError("Cash payments are recorded by hotel staff only")
        updated = await apply_payment(booking["booking_id"], payment_type)
        if updated is None:
            raise ConflictError("Booking can no longer accept this payment")
        payment = await payment_gateway.record_payment(
            booking["user_id"], booking["booking_id"], amount, payment_type,
            PaymentMethod.CASH, PaymentRecordStatus.COMPLETED,
        )
        result = {"booking": updated, "payment": payment}
    elif amount <= 0:
        updated = await apply_payment(booking["booking_id"], payment_type)
        if updated is None:
            raise ConflictError("Booking can no longer accept this payment")
        result = {"booking": updated, "payment": None}
    else:
        result = await _settle_with_wallet(booking, payer_id, amount, payment_type)

    logger.info("%s of %s applied to %s via %s",
                PAYMENT_LABELS[payment_type], amount, booking["booking_id"], method.value)
    await notify_payment_applied(result["booking"], amount, payment_type)
    result["payment_url"] = None
    return result


async def pay_deposit(reference: str, payer_id: str, scope: AccessScope,
                      method: PaymentMethod = PaymentMethod.WALLET, redirect_url: Optional[str] = None) -> Dict:
    return await pay_booking(reference, payer_id, scope, PaymentType.DEPOSIT, method, redirect_url)


async def pay_remaining_amount(reference: str, payer_id: str, scope: AccessScope,
                               method: PaymentMethod = PaymentMethod.WALLET,
                               redirect_url: Optional[str] = None) -> Dict:
    return await pay_booking(reference, payer_id, scope, PaymentType.REMAINING, method, redirect_url)


# ─── Time-driven transitions (used by the scheduler) ──────────────────────────

async def mark_completed_bookings(now: Optional[datetime] = None) -> int:
    """Fully paid, confirmed bookings whose check-out cutoff has passed become COMPLETED"""
    now = now or utc_now()
    cutoff = now - timedelta(hours=settings.CHECK_OUT_CUTOFF_HOUR)
    result = await db_call(_bookings().update_many(
        {
            "status": BookingStatus.CONFIRMED.value,
            "payment_status": PaymentStatus.PAID.value,
            "check_out_date": {"$lte": cutoff},
        },
        {"$set": {"status": BookingStatus.COMPLETED.value, "completed_at": now, "updated_at": now}},
    ))
    return result.modified_count


async def expire_unpaid_booking(booking: Dict, now: datetime) -> bool:
    """PENDING -> EXPIRED for an unpaid booking; False when it changed in the meantime"""
    reason = f"Deposit not paid within {settings.UNPAID_GRACE_MINUTES} minutes"
    expired = await _transition(
        booking["_id"],
        {"status": BookingStatus.PENDING.value, "payment_status": PaymentStatus.PENDING.value},
        {
            "status": BookingStatus.EXPIRED.value,
            "payment_status": PaymentStatus.EXPIRED.value,
            "cancellation_reason": reason,
            "expired_at": now,
            "hold_released": False,
        },
    )
    if expired is None:
        return False

    await _release_or_defer(expired)
    await notification_service.notify(expired["user_id"], NotificationType.BOOKING_EXPIRED, {
        "booking_id": expired["booking_id"],
    })
    return True


async def cancel_for_incomplete_payment(booking: Dict, now: datetime) -> bool:
    """CONFIRMED with only the deposit paid, close to check-in -> CANCELED with deposit refund"""
    reason = "Remaining amount was not paid before check-in"
    canceled = await _transition(
        booking["_id"],
        {
            "status": BookingStatus.CONFIRMED.value,
            "deposit_status": DepositStatus.PAID.value,
            "payment_status": PaymentStatus.PARTIALLY_PAID.value,
        },
        {
            "status": BookingStatus.CANCELED.value,
            "cancellation_reason": reason,
            "cancelled_at": now,
            "hold_released": False,
        },
    )
    if canceled is None:
        return False

    try:
        await _process_refund(canceled)
    except Exception:
        await _restore(booking)
        raise
    await _release_or_defer(canceled)
    await notification_service.notify(canceled["user_id"], NotificationType.BOOKING_CANCELED, {
        "booking_id": canceled["booking_id"],
        "reason": reason,
    })
    return True
