"""
Payments: starting a payment for a booking, wallet top-ups, and the
settlement hook that applies gateway outcomes.

Settlement is idempotent. A payment record leaves PENDING exactly once
(conditional update), and only the caller that moved it acts on the booking
or wallet. Replayed callbacks are acknowledged without side effects. When
settling fails halfway the record is reopened for the gateway to retry; every
side effect is keyed on the transaction id (wallet movement keys, the
booking's ``applied_payments``), so the retry never repeats one that landed.
"""
import logging
from typing import Dict, Optional

from bson import ObjectId
from pymongo import ReturnDocument

from app.config.database import db_config, Collections
from app.database.db_operations import db_call, db_ops
from app.models.booking import PaymentMethod
from app.models.notification import NotificationType
from app.models.payment import (
    LedgerEntryType,
    PaymentCreate,
    PaymentOutcome,
    PaymentRecordStatus,
    PaymentType,
)
from app.services import booking_service, notification_service, payment_gateway, wallet_service
from app.utils.auth import AccessScope
from app.utils.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from app.utils.helpers import utc_now

logger = logging.getLogger(__name__)

BOOKING_PAYMENT_TYPES = (PaymentType.DEPOSIT, PaymentType.REMAINING, PaymentType.FULL_PAYMENT)


def _payments():
    return db_config.get_collection(Collections.PAYMENTS)


async def create_payment(payer_id: str, scope: AccessScope, data: PaymentCreate) -> Dict:
    """Pay part or all of a booking; see ``booking_service.pay_booking``"""
    if data.payment_type not in BOOKING_PAYMENT_TYPES:
        raise ValidationError(f"Payment type {data.payment_type.value} cannot be used for a booking")
    return await booking_service.pay_booking(
        data.booking_id, payer_id, scope, data.payment_type, data.payment_method, data.redirect_url
    )


async def deposit_to_wallet(user_id: str, amount: float, redirect_url: Optional[str] = None) -> Dict:
    """Start a wallet top-up through the gateway"""
    if amount <= 0:
        raise ValidationError("Deposit amount must be greater than 0")
    return await payment_gateway.create_payment_url(
        user_id, payment_gateway.WALLET_DEPOSIT_REFERENCE, amount, PaymentType.WALLET_DEPOSIT, redirect_url
    )


async def _finish(payment: Dict, status: PaymentRecordStatus, **fields) -> Optional[Dict]:
    """Move a payment out of PENDING; None if someone else already did"""
    now = utc_now()
    updates = {"status": status.value, "updated_at": now, **fields}
    if status == PaymentRecordStatus.COMPLETED:
        updates["payment_date"] = now
    return await db_call(_payments().find_one_and_update(
        {"_id": payment["_id"], "status": PaymentRecordStatus.PENDING.value},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    ))


async def _reopen(payment: Dict) -> None:
    await db_call(_payments().update_one(
        {"_id": payment["_id"]},
        {"$set": {"status": PaymentRecordStatus.PENDING.value, "payment_date": None, "updated_at": utc_now()}},
    ))


async def _mark_refunded(payment: Dict) -> None:
    await db_call(_payments().update_one(
        {"_id": payment["_id"]},
        {"$set": {"status": PaymentRecordStatus.REFUNDED.value,
                  "error_message": "Booking no longer accepts this payment; credited to wallet",
                  "updated_at": utc_now()}},
    ))


async def _settle(payment: Dict) -> Dict:
    """Apply a completed payment to the wallet or booking it was made for"""
    payment_type = PaymentType(payment["payment_type"])
    transaction_id = payment["transaction_id"]
    amount = payment["amount"]

    if payment_type == PaymentType.WALLET_DEPOSIT:
        await wallet_service.credit(
            payment["user_id"], amount, "Wallet top-up",
            reference_id=transaction_id, entry_type=LedgerEntryType.TOPUP,
            movement_key=f"{transaction_id}:topup",
        )
        await notification_service.notify(payment["user_id"], NotificationType.PAYMENT_RECEIVED, {
            "booking_id": payment_gateway.WALLET_DEPOSIT_REFERENCE,
            "amount": amount,
        })
        return {"applied": True, "booking": None}

    booking = await booking_service.apply_payment(payment["booking_id"], payment_type, transaction_id)
    if booking is None:
        # Applied by an earlier delivery of this outcome that failed later on
        booking = await booking_service.find_applied_payment(payment["booking_id"], transaction_id)
        if booking is not None:
            return {"applied": True, "booking": booking}

        # Booking canceled or expired, or already paid by other means
        await wallet_service.credit(
            payment["user_id"], amount,
            f"Payment {transaction_id} could not be applied to booking {payment['booking_id']}",
            reference_id=transaction_id, entry_type=LedgerEntryType.REFUND,
            movement_key=f"{transaction_id}:refund",
        )
        await _mark_refunded(payment)
        logger.warning("Payment %s arrived for %s which no longer accepts it; credited to wallet",
                       transaction_id, payment["booking_id"])
        await notification_service.notify(payment["user_id"], NotificationType.REFUND_PROCESSED, {
            "booking_id": payment["booking_id"],
            "amount": amount,
        })
        return {"applied": False, "booking": None}

    await booking_service.notify_payment_applied(booking, amount, payment_type)
    return {"applied": True, "booking": booking}


async def process_payment_result(outcome: PaymentOutcome) -> Dict:
    """
    Apply a gateway outcome for one transaction.

    Returns ``{"transaction_id", "status", "applied", "duplicate", "booking"}``.
    """
    payment = await db_ops.get_one(Collections.PAYMENTS, {"transaction_id": outcome.transaction_id})
    if not payment:
        raise NotFoundError("Payment not found")
    if outcome.booking_id and outcome.booking_id != payment["booking_id"]:
        raise ValidationError("Booking does not match the payment transaction")
    if payment.get("payment_method") != PaymentMethod.GATEWAY.value:
        raise ValidationError("Payment is not settled through the gateway")

    result = {
        "transaction_id": payment["transaction_id"],
        "status": payment["status"],
        "applied": False,
        "duplicate": False,
        "booking": None,
    }

    if not outcome.success:
        failed = await _finish(payment, PaymentRecordStatus.FAILED,
                               error_message=outcome.message or "Payment failed",
                               gateway_reference=outcome.gateway_reference)
        if failed is None:
            result["duplicate"] = True
            return result
        logger.info("Payment %s failed: %s", payment["transaction_id"], outcome.message)
        await notification_service.notify(payment["user_id"], NotificationType.PAYMENT_FAILED, {
            "transaction_id": payment["transaction_id"],
            "booking_id": payment["booking_id"],
        })
        result["status"] = failed["status"]
        return result

    completed = await _finish(payment, PaymentRecordStatus.COMPLETED,
                              gateway_reference=outcome.gateway_reference)
    if completed is None:
        logger.info("Ignoring replayed outcome for payment %s", payment["transaction_id"])
        result["duplicate"] = True
        return result

    try:
        settled = await _settle(completed)
    except Exception:
        # Let the gateway retry the notification
        await _reopen(completed)
        raise

    stored = await db_ops.get_one(Collections.PAYMENTS, {"_id": completed["_id"]})
    result.update(status=stored["status"], applied=settled["applied"], booking=settled["booking"])
    logger.info("Payment %s settled (%s, applied=%s)",
                payment["transaction_id"], payment["payment_type"], settled["applied"])
    return result


async def list_payments(scope: AccessScope, booking_id: Optional[str] = None,
                        status: Optional[PaymentRecordStatus] = None,
                        current: int = 1, page_size: int = None) -> Dict:
    query = scope.apply({})
    if booking_id:
        query["booking_id"] = booking_id
    if status:
        query["status"] = PaymentRecordStatus(status).value
    return await db_ops.paginate(Collections.PAYMENTS, query, current, page_size, sort=[("created_at", -1)])


async def get_payment(reference: str, scope: AccessScope) -> Dict:
    """Look a payment up by storage id or transaction id"""
    if ObjectId.is_valid(reference):
        payment = await db_ops.get_by_id(Collections.PAYMENTS, reference)
    else:
        payment = await db_ops.get_one(Collections.PAYMENTS, {"transaction_id": reference})
    if not payment:
        raise NotFoundError("Payment not found")
    if not scope.allows(payment["user_id"]):
        raise PermissionDeniedError("You do not have permission to access this payment")
    return payment


async def get_wallet_overview(user_id: str, limit: int = 10) -> Dict:
    wallet = await wallet_service.get_wallet(user_id)
    return {
        "balance": wallet["balance"] if wallet else 0,
        "currency": wallet.get("currency", wallet_service.DEFAULT_CURRENCY) if wallet else wallet_service.DEFAULT_CURRENCY,
        "transactions": await wallet_service.list_transactions(user_id, limit),
    }
