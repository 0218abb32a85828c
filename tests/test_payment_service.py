"""Tests for payment creation, wallet top-ups and gateway settlement."""

from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest

from app.config.database import Collections, db_config
from app.models.booking import PaymentMethod
from app.models.payment import PaymentCreate, PaymentOutcome, PaymentType
from app.services import booking_scheduler, booking_service, payment_service, wallet_service
from app.utils.auth import ALL_RECORDS, scope_for
from app.utils.exceptions import NotFoundError, PermissionDeniedError, StorageUnavailableError, ValidationError
from tests.conftest import fund, reload_booking


async def _gateway_deposit(booking, user):
    result = await booking_service.pay_deposit(
        booking["booking_id"], user["_id"], scope_for(user), method=PaymentMethod.GATEWAY
    )
    return result["payment"]["transaction_id"]


@pytest.mark.asyncio
async def test_successful_callback_confirms_booking(guest, book) -> None:
    booking = await book(guest)
    transaction_id = await _gateway_deposit(booking, guest)

    result = await payment_service.process_payment_result(
        PaymentOutcome(transaction_id=transaction_id, booking_id=booking["booking_id"], success=True)
    )

    assert result["applied"] is True
    assert result["duplicate"] is False
    assert result["status"] == "completed"
    stored = await reload_booking(booking)
    assert stored["status"] == "confirmed"
    assert stored["deposit_status"] == "paid"
    assert stored["payment_status"] == "partially_paid"


@pytest.mark.asyncio
async def test_replayed_callback_has_no_effect(guest, book) -> None:
    booking = await book(guest)
    transaction_id = await _gateway_deposit(booking, guest)
    outcome = PaymentOutcome(transaction_id=transaction_id, success=True)

    await payment_service.process_payment_result(outcome)
    replay = await payment_service.process_payment_result(outcome)

    assert replay["duplicate"] is True
    assert replay["applied"] is False
    assert await wallet_service.get_balance(guest["_id"]) == 0
    notifications = db_config.get_collection(Collections.NOTIFICATIONS)
    assert await notifications.count_documents({"type": "payment_received"}) == 1


@pytest.mark.asyncio
async def test_failed_callback_leaves_booking_pending(guest, book) -> None:
    booking = await book(guest)
    transaction_id = await _gateway_deposit(booking, guest)

    result = await payment_service.process_payment_result(
        PaymentOutcome(transaction_id=transaction_id, success=False, message="Card declined")
    )

    assert result["status"] == "failed"
    assert (await reload_booking(booking))["status"] == "pending"
    payment = await payment_service.get_payment(transaction_id, ALL_RECORDS)
    assert payment["error_message"] == "Card declined"


@pytest.mark.asyncio
async def test_late_payment_for_expired_booking_goes_to_wallet(guest, book) -> None:
    booking = await book(guest)
    transaction_id = await _gateway_deposit(booking, guest)
    await booking_scheduler.expire_unpaid_bookings(now=datetime(2025, 6, 1, 11, 0))

    result = await payment_service.process_payment_result(
        PaymentOutcome(transaction_id=transaction_id, success=True)
    )

    assert result["applied"] is False
    assert result["status"] == "refunded"
    assert (await reload_booking(booking))["status"] == "expired"
    assert await wallet_service.get_balance(guest["_id"]) == 500_000


@pytest.mark.asyncio
async def test_callback_with_mismatched_booking_is_rejected(guest, book) -> None:
    booking = await book(guest)
    transaction_id = await _gateway_deposit(booking, guest)

    with pytest.raises(ValidationError):
        await payment_service.process_payment_result(
            PaymentOutcome(transaction_id=transaction_id, booking_id="BK-00000000", success=True)
        )


@pytest.mark.asyncio
async def test_callback_for_unknown_transaction() -> None:
    with pytest.raises(NotFoundError):
        await payment_service.process_payment_result(PaymentOutcome(transaction_id="TP-unknown", success=True))


@pytest.mark.asyncio
async def test_wallet_top_up_is_credited_once(guest) -> None:
    handoff = await payment_service.deposit_to_wallet(guest["_id"], 300_000)
    assert handoff["transaction_id"].startswith("WD-")
    outcome = PaymentOutcome(transaction_id=handoff["transaction_id"], success=True)

    await payment_service.process_payment_result(outcome)
    await payment_service.process_payment_result(outcome)

    overview = await payment_service.get_wallet_overview(guest["_id"])
    assert overview["balance"] == 300_000
    assert overview["transactions"][0]["type"] == "topup"


@pytest.mark.asyncio
async def test_create_payment_rejects_non_booking_types(guest, book) -> None:
    booking = await book(guest)

    with pytest.raises(ValidationError):
        await payment_service.create_payment(
            guest["_id"], scope_for(guest),
            PaymentCreate(booking_id=booking["booking_id"], payment_type=PaymentType.WALLET_DEPOSIT),
        )


@pytest.mark.asyncio
async def test_create_payment_from_wallet(guest, book) -> None:
    booking = await book(guest)
    await fund(guest, 2_000_000)

    result = await payment_service.create_payment(
        guest["_id"], scope_for(guest),
        PaymentCreate(
            booking_id=booking["booking_id"],
            payment_type=PaymentType.FULL_PAYMENT,
            payment_method=PaymentMethod.WALLET,
        ),
    )

    assert result["booking"]["payment_status"] == "paid"
    assert await wallet_service.get_balance(guest["_id"]) == 0


@pytest.mark.asyncio
async def test_payments_are_scoped_to_owner(guest, other_guest, book) -> None:
    booking = await book(guest)
    transaction_id = await _gateway_deposit(booking, guest)

    mine = await payment_service.list_payments(scope_for(guest))
    theirs = await payment_service.list_payments(scope_for(other_guest))

    assert mine["meta"]["total"] == 1
    assert theirs["meta"]["total"] == 0
    with pytest.raises(PermissionDeniedError):
        await payment_service.get_payment(transaction_id, scope_for(other_guest))


@pytest.mark.asyncio
async def test_top_up_retried_after_partial_failure_credits_once(guest) -> None:
    handoff = await payment_service.deposit_to_wallet(guest["_id"], 300_000)
    outcome = PaymentOutcome(transaction_id=handoff["transaction_id"], success=True)
    real_credit = wallet_service.credit

    async def credited_then_timed_out(*args, **kwargs):
        await real_credit(*args, **kwargs)
        raise StorageUnavailableError("Storage operation timed out")

    with patch.object(wallet_service, "credit", new=credited_then_timed_out):
        with pytest.raises(StorageUnavailableError):
            await payment_service.process_payment_result(outcome)

    payment = await payment_service.get_payment(handoff["transaction_id"], ALL_RECORDS)
    assert payment["status"] == "pending"

    retried = await payment_service.process_payment_result(outcome)

    assert retried["status"] == "completed"
    assert await wallet_service.get_balance(guest["_id"]) == 300_000
    topups = await db_config.get_collection(Collections.TRANSACTIONS).count_documents({"type": "topup"})
    assert topups == 1


@pytest.mark.asyncio
async def test_late_payment_retried_after_partial_failure_is_credited_once(guest, book) -> None:
    booking = await book(guest)
    transaction_id = await _gateway_deposit(booking, guest)
    await booking_scheduler.expire_unpaid_bookings(now=datetime(2025, 6, 1, 11, 0))
    outcome = PaymentOutcome(transaction_id=transaction_id, success=True)

    down = AsyncMock(side_effect=StorageUnavailableError("down"))
    with patch.object(payment_service, "_mark_refunded", new=down):
        with pytest.raises(StorageUnavailableError):
            await payment_service.process_payment_result(outcome)
    assert await wallet_service.get_balance(guest["_id"]) == 500_000

    retried = await payment_service.process_payment_result(outcome)

    assert retried["status"] == "refunded"
    assert await wallet_service.get_balance(guest["_id"]) == 500_000


@pytest.mark.asyncio
async def test_gateway_retry_after_booking_was_updated_does_not_refund(guest, book) -> None:
    booking = await book(guest)
    transaction_id = await _gateway_deposit(booking, guest)
    outcome = PaymentOutcome(transaction_id=transaction_id, success=True)

    down = AsyncMock(side_effect=StorageUnavailableError("down"))
    with patch.object(booking_service, "notify_payment_applied", new=down):
        with pytest.raises(StorageUnavailableError):
            await payment_service.process_payment_result(outcome)

    retried = await payment_service.process_payment_result(outcome)

    assert retried["applied"] is True
    assert retried["status"] == "completed"
    assert (await reload_booking(booking))["status"] == "confirmed"
    assert await wallet_service.get_balance(guest["_id"]) == 0


@pytest.mark.asyncio
async def test_callback_cannot_settle_wallet_payments(guest, book) -> None:
    booking = await book(guest)
    await fund(guest, 500_000)
    result = await booking_service.pay_deposit(booking["booking_id"], guest["_id"], scope_for(guest))

    with pytest.raises(ValidationError):
        await payment_service.process_payment_result(
            PaymentOutcome(transaction_id=result["payment"]["transaction_id"], success=True)
        )


@pytest.mark.asyncio
async def test_credit_with_movement_key_moves_balance_once(guest) -> None:
    first = await wallet_service.credit(guest["_id"], 100_000, "Refund", movement_key="TP-12345678:refund")
    again = await wallet_service.credit(guest["_id"], 100_000, "Refund", movement_key="TP-12345678:refund")

    assert again["_id"] == first["_id"]
    assert await wallet_service.get_balance(guest["_id"]) == 100_000
    assert await wallet_service.has_movement(guest["_id"], "TP-12345678:refund") is True
