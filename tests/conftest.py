"""Shared fixtures: an in-memory Mongo, a small catalog, users and an HTTP client."""

from datetime import date, datetime
from typing import Any, Dict, Optional

import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from app.config.database import Collections, db_config
from app.main import app
from app.models.booking import BookingCreate, CancellationPolicy
from app.models.payment import LedgerEntryType
from app.services import booking_service, wallet_service
from app.utils.auth import get_current_user

# Fixed clock for service-level tests
NOW = datetime(2025, 6, 1, 10, 0)
CHECK_IN = date(2025, 6, 10)
CHECK_OUT = date(2025, 6, 12)


@pytest.fixture(autouse=True)
async def db() -> Any:
    """Point the app at a fresh in-memory database for every test."""
    client = AsyncMongoMockClient()
    db_config.client = client
    db_config.database = client["hotel_booking_test"]
    await db_config.ensure_indexes()
    yield db_config.database
    db_config.client = None
    db_config.database = None


async def _insert(collection: str, document: Dict) -> Dict:
    result = await db_config.get_collection(collection).insert_one(document)
    document["_id"] = result.inserted_id
    return document


@pytest.fixture
async def hotel() -> Dict:
    return await _insert(Collections.HOTELS, {"name": "Riverside Hotel", "accept_deposit": True})


@pytest.fixture
async def room(hotel: Dict) -> Dict:
    return await _insert(Collections.ROOMS, {
        "hotel_id": str(hotel["_id"]),
        "room_number": "101",
        "price_per_night": 1_000_000,
    })


@pytest.fixture
async def second_room(hotel: Dict) -> Dict:
    return await _insert(Collections.ROOMS, {
        "hotel_id": str(hotel["_id"]),
        "room_number": "102",
        "price_per_night": 800_000,
    })


async def _user(role: str, name: str, email: str) -> Dict:
    user = await _insert(Collections.USERS, {
        "name": name,
        "email": email,
        "phone": "+84900000000",
        "role": role,
    })
    return {"_id": str(user["_id"]), "sub": str(user["_id"]), "role": role}


@pytest.fixture
async def guest() -> Dict:
    return await _user("USER", "Jane Guest", "jane@example.com")


@pytest.fixture
async def other_guest() -> Dict:
    return await _user("USER", "John Other", "john@example.com")


@pytest.fixture
async def admin() -> Dict:
    return await _user("ADMIN", "Front Desk", "desk@example.com")


async def fund(user: Dict, amount: float) -> None:
    await wallet_service.credit(user["_id"], amount, "Test top-up", entry_type=LedgerEntryType.TOPUP)


@pytest.fixture
def book(hotel: Dict, room: Dict):
    """Factory creating a booking through the service with the fixed clock."""

    async def _book(
        user: Dict,
        check_in: date = CHECK_IN,
        check_out: date = CHECK_OUT,
        total_amount: Optional[float] = 2_000_000,
        target_room: Optional[Dict] = None,
        now: datetime = NOW,
        **extra: Any,
    ) -> Dict:
        target_room = target_room or room
        data = BookingCreate(
            hotel_id=str(hotel["_id"]),
            room_id=str(target_room["_id"]),
            check_in_date=check_in,
            check_out_date=check_out,
            total_amount=total_amount,
            cancellation_policy=extra.pop("cancellation_policy", CancellationPolicy.CANCELABLE),
            **extra,
        )
        return await booking_service.create_booking(user["_id"], data, now=now)

    return _book


async def reload_booking(booking: Dict) -> Dict:
    return await db_config.get_collection(Collections.BOOKINGS).find_one({"_id": booking["_id"]})


@pytest.fixture
def login():
    """Authenticate HTTP requests as the given user."""

    def _login(user: Dict) -> None:
        app.dependency_overrides[get_current_user] = lambda: user

    yield _login
    app.dependency_overrides.clear()


@pytest.fixture
async def client() -> Any:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def new_id() -> str:
    return str(ObjectId())
