"""
Booking Scheduler
Runs as background asyncio tasks on app startup.

Each sweep selects the bookings a time rule applies to and moves them one at
a time through ``booking_service``, so a failure on one booking is logged and
counted without stopping the rest. Every sweep is safe to re-run: transitions
are conditional and reminders are flagged once sent.

  * completion       CONFIRMED + PAID, check-out cutoff passed   -> COMPLETED
  * expiry           PENDING, unpaid past the grace period        -> EXPIRED
  * auto-cancel      deposit only, check-in within the lead days  -> CANCELED
  * check-in / payment-due reminders
  * reconciliation   wallet payment stuck in PENDING             -> COMPLETED or reversed
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional

from app.config.database import db_config, Collections
from app.config.settings import settings
from app.database.db_operations import db_call, db_ops
from app.models.booking import BookingStatus, DepositStatus, PaymentMethod, PaymentStatus
from app.models.notification import NotificationType
from app.models.payment import PaymentRecordStatus
from app.services import booking_service, notification_service
from app.utils.helpers import ONE_DAY, start_of_day, utc_now

logger = logging.getLogger(__name__)

Sweep = Callable[[Optional[datetime]], Awaitable[Dict[str, int]]]


def _result(matched: int = 0, processed: int = 0, failed: int = 0) -> Dict[str, int]:
    return {"matched": matched, "processed": processed, "failed": failed}


async def _for_each(name: str, bookings: List[Dict], action, now: datetime) -> Dict[str, int]:
    """Run ``action(booking, now)`` on each booking, isolating failures"""
    result = _result(matched=len(bookings))
    for booking in bookings:
        try:
            if await action(booking, now):
                result["processed"] += 1
        except Exception:
            result["failed"] += 1
            logger.exception("%s failed for booking %s", name, booking.get("booking_id"))
    return result


async def complete_finished_bookings(now: Optional[datetime] = None) -> Dict[str, int]:
    now = now or utc_now()
    completed = await booking_service.mark_completed_bookings(now)
    if completed:
        logger.info("Marked %d booking(s) as completed", completed)
    return _result(matched=completed, processed=completed)


async def _retry_hold_releases(now: datetime) -> Dict[str, int]:
    leaked = await db_ops.get_all(Collections.BOOKINGS, {
        "status": {"$in": [BookingStatus.EXPIRED.value, BookingStatus.CANCELED.value]},
        "hold_released": False,
    }, limit=0)

    async def release(booking, _now):
        await booking_service.release_booking_hold(booking)
        return True

    return await _for_each("Hold release", leaked, release, now)


async def expire_unpaid_bookings(now: Optional[datetime] = None) -> Dict[str, int]:
    now = now or utc_now()
    cutoff = now - timedelta(minutes=settings.UNPAID_GRACE_MINUTES)
    candidates = await db_ops.get_all(Collections.BOOKINGS, {
        "status": BookingStatus.PENDING.value,
        "payment_status": PaymentStatus.PENDING.value,
        "created_at": {"$lt": cutoff},
    }, limit=0)

    result = await _for_each("Expiry", candidates, booking_service.expire_unpaid_booking, now)
    releases = await _retry_hold_releases(now)
    result["released"] = releases["processed"]
    result["failed"] += releases["failed"]

    if result["processed"] or result["failed"]:
        logger.info("Expiry sweep: %s", result)
    return result


async def cancel_incomplete_payments(now: Optional[datetime] = None) -> Dict[str, int]:
    now = now or utc_now()
    limit = start_of_day(now) + timedelta(days=settings.AUTO_CANCEL_LEAD_DAYS)
    candidates = await db_ops.get_all(Collections.BOOKINGS, {
        "status": BookingStatus.CONFIRMED.value,
        "deposit_status": DepositStatus.PAID.value,
        "payment_status": PaymentStatus.PARTIALLY_PAID.value,
        "check_in_date": {"$lte": limit},
    }, limit=0)

    result = await _for_each("Auto-cancel", candidates, booking_service.cancel_for_incomplete_payment, now)
    if result["processed"] or result["failed"]:
        logger.info("Auto-cancel sweep: %s", result)
    return result


async def _remind_once(booking: Dict, flag: str, now: datetime) -> bool:
    """Set the reminder flag; True only for the caller that set it"""
    bookings = db_config.get_collection(Collections.BOOKINGS)
    updated = await db_call(bookings.update_one(
        {"_id": booking["_id"], flag: None},
        {"$set": {flag: now}},
    ))
    return updated.modified_count == 1


async def send_check_in_reminders(now: Optional[datetime] = None) -> Dict[str, int]:
    now = now or utc_now()
    tomorrow = start_of_day(now) + ONE_DAY
    candidates = await db_ops.get_all(Collections.BOOKINGS, {
        "status": BookingStatus.CONFIRMED.value,
        "check_in_date": tomorrow,
    }, limit=0)

    async def remind(booking, at):
        if not await _remind_once(booking, "check_in_reminder_sent_at", at):
            return False
        await notification_service.notify(booking["user_id"], NotificationType.CHECK_IN_REMINDER, {
            "booking_id": booking["booking_id"],
            "check_in_date": booking["check_in_date"].date().isoformat(),
        })
        return True

    return await _for_each("Check-in reminder", candidates, remind, now)


async def send_payment_due_reminders(now: Optional[datetime] = None) -> Dict[str, int]:
    now = now or utc_now()
    today = start_of_day(now)
    candidates = await db_ops.get_all(Collections.BOOKINGS, {
        "status": BookingStatus.CONFIRMED.value,
        "payment_status": PaymentStatus.PARTIALLY_PAID.value,
        "payment_due_date": {"$gte": today, "$lte": today + ONE_DAY},
    }, limit=0)

    async def remind(booking, at):
        if not await _remind_once(booking, "payment_reminder_sent_at", at):
            return False
        await notification_service.notify(booking["user_id"], NotificationType.PAYMENT_DUE, {
            "booking_id": booking["booking_id"],
            "amount": booking["remaining_amount"],
            "due_date": booking["payment_due_date"].date().isoformat(),
        })
        return True

    return await _for_each("Payment-due reminder", candidates, remind, now)


async def reconcile_wallet_payments(now: Optional[datetime] = None) -> Dict[str, int]:
    """Settle wallet payments left pending by a request that failed halfway"""
    now = now or utc_now()
    cutoff = now - timedelta(minutes=settings.WALLET_RECONCILE_AFTER_MINUTES)
    candidates = await db_ops.get_all(Collections.PAYMENTS, {
        "payment_method": PaymentMethod.WALLET.value,
        "status": PaymentRecordStatus.PENDING.value,
        "created_at": {"$lt": cutoff},
    }, limit=0)

    async def reconcile(payment, _now):
        await booking_service.reconcile_wallet_payment(payment)
        return True

    result = await _for_each("Wallet reconciliation", candidates, reconcile, now)
    if result["processed"] or result["failed"]:
        logger.info("Wallet reconciliation sweep: %s", result)
    return result


async def run_periodic(name: str, sweep: Sweep, interval_seconds: int) -> None:
    """
    Infinite loop that runs ``sweep`` every ``interval_seconds``.
    Runs once immediately so work that piled up while the service was down
    is picked up on startup.
    """
    logger.info("%s scheduler started (interval: %ss)", name, interval_seconds)
    while True:
        try:
            await sweep(None)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("%s sweep crashed", name)
        await asyncio.sleep(interval_seconds)


SWEEPS = (
    ("Completion", complete_finished_bookings, "COMPLETION_SWEEP_INTERVAL"),
    ("Expiry", expire_unpaid_bookings, "EXPIRY_SWEEP_INTERVAL"),
    ("Auto-cancel", cancel_incomplete_payments, "AUTO_CANCEL_SWEEP_INTERVAL"),
    ("Check-in reminder", send_check_in_reminders, "CHECK_IN_REMINDER_INTERVAL"),
    ("Payment-due reminder", send_payment_due_reminders, "PAYMENT_DUE_REMINDER_INTERVAL"),
    ("Wallet reconciliation", reconcile_wallet_payments, "WALLET_RECONCILE_INTERVAL"),
)


def start_booking_scheduler() -> List[asyncio.Task]:
    """Launch every sweep as a background task; the caller cancels them on shutdown"""
    return [
        asyncio.create_task(run_periodic(name, sweep, getattr(settings, interval)), name=f"sweep:{name}")
        for name, sweep, interval in SWEEPS
    ]
