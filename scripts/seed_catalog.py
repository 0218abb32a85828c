"""
Seed a local database with a hotel, a few rooms, a guest user with a funded
wallet and an admin, then print bearer tokens for both.

    python scripts/seed_catalog.py
"""
import asyncio
import os
import sys

# Ensure usage of the project root for imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.config.database import db_config, Collections
from app.config.logging import setup_logging
from app.database.db_operations import db_ops
from app.models.payment import LedgerEntryType
from app.services import wallet_service
from app.utils.auth import create_access_token
from app.utils.helpers import utc_now

STARTING_BALANCE = 5_000_000

ROOMS = [
    {"room_number": "101", "room_type": "Standard", "price_per_night": 1_000_000, "capacity": 2},
    {"room_number": "102", "room_type": "Standard", "price_per_night": 1_000_000, "capacity": 2},
    {"room_number": "201", "room_type": "Deluxe", "price_per_night": 1_800_000, "capacity": 3},
]


async def _get_or_create(collection_name: str, lookup: dict, document: dict) -> str:
    existing = await db_ops.get_one(collection_name, lookup)
    if existing:
        print(f"⚠️ Already exists in {collection_name}: {lookup}")
        return str(existing["_id"])
    collection = db_config.get_collection(collection_name)
    result = await collection.insert_one({**document, "created_at": utc_now()})
    print(f"✅ Created in {collection_name}: {lookup}")
    return str(result.inserted_id)


async def seed_catalog():
    setup_logging()
    print("🌱 Starting database seeding...")

    try:
        await db_config.connect_db()
        await db_config.ensure_indexes()

        hotel_id = await _get_or_create(Collections.HOTELS, {"name": "Riverside Hotel"}, {
            "name": "Riverside Hotel",
            "city": "Ho Chi Minh City",
            "address": "12 Ton Duc Thang, District 1",
            "accept_deposit": True,
            "is_active": True,
        })

        room_ids = []
        for room in ROOMS:
            room_ids.append(await _get_or_create(
                Collections.ROOMS,
                {"hotel_id": hotel_id, "room_number": room["room_number"]},
                {**room, "hotel_id": hotel_id, "is_active": True},
            ))

        guest_id = await _get_or_create(Collections.USERS, {"email": "guest@example.com"}, {
            "name": "Demo Guest",
            "email": "guest@example.com",
            "phone": "+84900000001",
            "role": "USER",
        })
        admin_id = await _get_or_create(Collections.USERS, {"email": "admin@example.com"}, {
            "name": "Front Desk",
            "email": "admin@example.com",
            "role": "ADMIN",
        })

        if await wallet_service.get_wallet(guest_id) is None:
            await wallet_service.credit(guest_id, STARTING_BALANCE, "Seed balance",
                                        entry_type=LedgerEntryType.TOPUP)
            print(f"✅ Funded wallet of guest with {STARTING_BALANCE:,}")

        print("\n🎉 Seeding completed")
        print(f"Hotel: {hotel_id}")
        print(f"Rooms: {', '.join(room_ids)}")
        print(f"Guest token: {create_access_token({'sub': guest_id, 'role': 'USER'})}")
        print(f"Admin token: {create_access_token({'sub': admin_id, 'role': 'ADMIN'})}")
    except Exception as e:
        print(f"❌ Seeding failed: {e}")
        raise
    finally:
        await db_config.close_db()


if __name__ == "__main__":
    asyncio.run(seed_catalog())
