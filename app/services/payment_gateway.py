"""
Hand-off to the external card/bank payment gateway.

Only the redirect leg lives here: a pending payment record is stored and the
caller gets a URL to send the customer to. The outcome comes back later
through ``payment_service.process_payment_result``.
"""
import logging
from typing import Dict, Optional
from urllib.parse import urlencode

from app.config.database import db_config, Collections
from app.config.settings import settings
from app.database.db_operations import db_call
from app.models.booking import PaymentMethod
from app.models.payment import PaymentType, PaymentRecordStatus
from app.utils.helpers import generate_reference, utc_now

logger = logging.getLogger(__name__)

WALLET_DEPOSIT_REFERENCE = "wallet-deposit"


def transaction_prefix(payment_type: PaymentType) -> str:
    if payment_type == PaymentType.WALLET_DEPOSIT:
        return "WD"
    if payment_type == PaymentType.REFUND:
        return "RF"
    return "TP"


async def record_payment(user_id: str, booking_id: str, amount: float, payment_type: PaymentType,
                         method: PaymentMethod, status: PaymentRecordStatus,
                         redirect_url: Optional[str] = None, **extra) -> Dict:
    """Insert a payment record and return it"""
    now = utc_now()
    payment = {
        "transaction_id": generate_reference(transaction_prefix(payment_type)),
        "booking_id": booking_id,
        "user_id": str(user_id),
        "amount": amount,
        "payment_type": PaymentType(payment_type).value,
        "payment_method": PaymentMethod(method).value,
        "status": PaymentRecordStatus(status).value,
        "redirect_url": redirect_url,
        "payment_date": now if status == PaymentRecordStatus.COMPLETED else None,
        "created_at": now,
        "updated_at": now,
        **extra,
    }
    payments = db_config.get_collection(Collections.PAYMENTS)
    result = await db_call(payments.insert_one(payment))
    payment["_id"] = result.inserted_id
    return payment


def build_payment_url(transaction_id: str, amount: float, booking_id: str,
                      payment_type: PaymentType, redirect_url: Optional[str]) -> str:
    params = {
        "transaction_id": transaction_id,
        "amount": amount,
        "order": booking_id,
        "type": PaymentType(payment_type).value,
        "return_url": redirect_url or settings.PAYMENT_RETURN_URL,
    }
    return f"{settings.PAYMENT_GATEWAY_URL}?{urlencode(params)}"


async def create_payment_url(user_id: str, booking_id: str, amount: float,
                             payment_type: PaymentType, redirect_url: Optional[str] = None) -> Dict:
    """Store a pending gateway payment and return ``{transaction_id, payment_url, ...}``"""
    payment = await record_payment(
        user_id, booking_id, amount, payment_type,
        PaymentMethod.GATEWAY, PaymentRecordStatus.PENDING, redirect_url,
    )
    payment_url = build_payment_url(payment["transaction_id"], amount, booking_id, payment_type, redirect_url)
    logger.info("Gateway hand-off %s for %s (%s, %s)",
                payment["transaction_id"], booking_id, payment["payment_type"], amount)
    return {
        "transaction_id": payment["transaction_id"],
        "payment_url": payment_url,
        "amount": amount,
        "payment_type": payment["payment_type"],
    }
