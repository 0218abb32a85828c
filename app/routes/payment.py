"""
Payment API Routes: booking payments, wallet top-ups and the gateway callback
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from app.models.payment import PaymentCreate, PaymentOutcome, PaymentRecordStatus, WalletDepositRequest
from app.services import payment_service
from app.utils.auth import get_current_user, scope_for
from app.utils.helpers import ok, serialize_doc, serialize_docs

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_payment(
    payload: PaymentCreate,
    current_user: dict = Depends(get_current_user)
):
    result = await payment_service.create_payment(current_user["_id"], scope_for(current_user), payload)
    return ok({
        "booking": serialize_doc(result["booking"]),
        "payment": serialize_doc(result["payment"]),
        "payment_url": result["payment_url"],
    }, "Payment created successfully")


@router.post("/callback")
async def payment_callback(outcome: PaymentOutcome):
    """
    Settlement notification from the payment gateway.
    Safe to deliver more than once.
    """
    result = await payment_service.process_payment_result(outcome)
    result["booking"] = serialize_doc(result["booking"])
    message = "Payment already processed" if result["duplicate"] else "Payment processed"
    return ok(result, message)


@router.get("/wallet")
async def get_wallet(
    limit: int = Query(10, ge=1, le=100),
    current_user: dict = Depends(get_current_user)
):
    wallet = await payment_service.get_wallet_overview(current_user["_id"], limit)
    wallet["transactions"] = serialize_docs(wallet["transactions"])
    return ok(wallet, "Wallet retrieved successfully")


@router.post("/wallet/deposit", status_code=status.HTTP_201_CREATED)
async def deposit_to_wallet(
    payload: WalletDepositRequest,
    current_user: dict = Depends(get_current_user)
):
    """Start a wallet top-up; the balance changes once the gateway confirms"""
    handoff = await payment_service.deposit_to_wallet(current_user["_id"], payload.amount, payload.redirect_url)
    return ok(handoff, "Redirect to complete the wallet deposit")


@router.get("")
async def list_payments(
    booking_id: Optional[str] = None,
    status_filter: Optional[PaymentRecordStatus] = Query(None, alias="status"),
    current: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1, alias="pageSize"),
    current_user: dict = Depends(get_current_user)
):
    page = await payment_service.list_payments(
        scope_for(current_user), booking_id, status_filter, current, page_size
    )
    page["results"] = serialize_docs(page["results"])
    return ok(page, "Payments retrieved successfully")


@router.get("/{payment_id}")
async def get_payment(
    payment_id: str,
    current_user: dict = Depends(get_current_user)
):
    payment = await payment_service.get_payment(payment_id, scope_for(current_user))
    return ok(serialize_doc(payment), "Payment retrieved successfully")
