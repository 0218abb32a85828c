"""HTTP-level tests: envelopes, status codes and access control."""

from datetime import timedelta

import pytest

from tests.conftest import fund
from app.utils.helpers import utc_now


def _stay(days_ahead: int = 30, nights: int = 2):
    check_in = utc_now().date() + timedelta(days=days_ahead)
    return check_in.isoformat(), (check_in + timedelta(days=nights)).isoformat()


def _booking_body(hotel, room, **overrides):
    check_in, check_out = _stay()
    body = {
        "hotel_id": str(hotel["_id"]),
        "room_id": str(room["_id"]),
        "check_in_date": check_in,
        "check_out_date": check_out,
        "total_amount": 2_000_000,
    }
    body.update(overrides)
    return body


@pytest.mark.asyncio
async def test_health(client) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_create_booking_and_conflict(client, login, guest, other_guest, hotel, room) -> None:
    login(guest)
    response = await client.post("/api/bookings", json=_booking_body(hotel, room))

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["booking_id"].startswith("BK-")
    assert body["data"]["deposit_amount"] == 500_000
    assert body["data"]["check_in_date"] == _stay()[0]

    login(other_guest)
    response = await client.post("/api/bookings", json=_booking_body(hotel, room))

    assert response.status_code == 409
    assert response.json()["success"] is False
    assert response.json()["error"]["kind"] == "conflict"


@pytest.mark.asyncio
async def test_invalid_body_uses_error_envelope(client, login, guest, hotel, room) -> None:
    login(guest)
    response = await client.post("/api/bookings", json={"hotel_id": str(hotel["_id"])})

    assert response.status_code == 422
    assert response.json()["error"]["kind"] == "validation_error"


@pytest.mark.asyncio
async def test_reversed_dates_are_a_validation_error(client, login, guest, hotel, room) -> None:
    login(guest)
    check_in, check_out = _stay()
    response = await client.post(
        "/api/bookings", json=_booking_body(hotel, room, check_in_date=check_out, check_out_date=check_in)
    )

    assert response.status_code == 400
    assert response.json()["error"]["kind"] == "validation_error"


@pytest.mark.asyncio
async def test_pay_deposit_with_short_wallet(client, login, guest, hotel, room) -> None:
    login(guest)
    created = (await client.post("/api/bookings", json=_booking_body(hotel, room))).json()["data"]
    await fund(guest, 400_000)

    response = await client.post(f"/api/bookings/{created['booking_id']}/pay-deposit", json={"payment_method": "wallet"})

    assert response.status_code == 402
    error = response.json()["error"]
    assert error["kind"] == "insufficient_balance"
    assert error["details"] == {"balance": 400_000, "required": 500_000}


@pytest.mark.asyncio
async def test_pay_deposit_and_cancel(client, login, guest, hotel, room) -> None:
    login(guest)
    created = (await client.post("/api/bookings", json=_booking_body(hotel, room))).json()["data"]
    await fund(guest, 500_000)

    paid = await client.post(f"/api/bookings/{created['booking_id']}/pay-deposit")
    assert paid.status_code == 200
    assert paid.json()["data"]["booking"]["status"] == "confirmed"

    canceled = await client.post("/api/bookings/cancel", json={"booking_id": created["booking_id"]})
    assert canceled.status_code == 200
    assert canceled.json()["data"]["payment_status"] == "refunded"

    wallet = (await client.get("/api/payments/wallet")).json()["data"]
    assert wallet["balance"] == 500_000


@pytest.mark.asyncio
async def test_other_users_booking_is_forbidden(client, login, guest, other_guest, hotel, room) -> None:
    login(guest)
    created = (await client.post("/api/bookings", json=_booking_body(hotel, room))).json()["data"]

    login(other_guest)
    response = await client.get(f"/api/bookings/{created['booking_id']}")

    assert response.status_code == 403
    assert response.json()["error"]["kind"] == "forbidden"


@pytest.mark.asyncio
async def test_admin_only_routes(client, login, guest, admin, room) -> None:
    login(guest)
    response = await client.post("/api/bookings/check-completed")
    assert response.status_code == 403
    assert response.json()["error"]["kind"] == "forbidden"

    login(admin)
    check_in, check_out = _stay()
    response = await client.post("/api/room-availability/bulk-update-status", json={
        "room_id": str(room["_id"]),
        "start_date": check_in,
        "end_date": check_out,
        "status": "maintenance",
    })
    assert response.status_code == 200
    assert response.json()["data"]["updated_count"] == 1


@pytest.mark.asyncio
async def test_availability_queries(client, login, guest, hotel, room) -> None:
    login(guest)
    await client.post("/api/bookings", json=_booking_body(hotel, room))
    check_in, check_out = _stay()

    held = await client.get("/api/room-availability/check-room-dates", params={
        "room_id": str(room["_id"]), "check_in_date": check_in, "check_out_date": check_out,
    })
    after = await client.get("/api/room-availability/check", params={"room_id": str(room["_id"]), "date": check_out})
    prices = await client.get("/api/room-availability/prices", params={
        "room_id": str(room["_id"]), "start_date": check_in, "end_date": check_out,
    })

    assert held.json()["data"]["available"] is False
    assert after.json()["data"]["available"] is True
    assert prices.json()["data"]["total"] == 2_000_000


@pytest.mark.asyncio
async def test_gateway_callback_needs_no_auth(client, login, guest, hotel, room) -> None:
    login(guest)
    created = (await client.post("/api/bookings", json=_booking_body(hotel, room))).json()["data"]
    handoff = (await client.post(
        f"/api/bookings/{created['booking_id']}/pay-deposit", json={"payment_method": "gateway"}
    )).json()["data"]
    transaction_id = handoff["payment"]["transaction_id"]

    callback = {"transactionId": transaction_id, "bookingId": created["booking_id"], "success": True}
    first = await client.post("/api/payments/callback", json=callback)
    second = await client.post("/api/payments/callback", json=callback)

    assert first.json()["data"]["applied"] is True
    assert first.json()["data"]["booking"]["status"] == "confirmed"
    assert second.json()["data"]["duplicate"] is True

    notifications = (await client.get("/api/notifications")).json()["data"]
    assert notifications["meta"]["total"] >= 2
