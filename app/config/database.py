"""
Database configuration and connection management for MongoDB
"""
import logging
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
from typing import Optional

from app.config.settings import settings

logger = logging.getLogger(__name__)


class DatabaseConfig:
    """MongoDB database configuration"""

    def __init__(self):
        self.MONGO_URI = settings.MONGO_URI
        self.DATABASE_NAME = settings.DATABASE_NAME
        self.client: Optional[AsyncIOMotorClient] = None
        self.database = None

    async def connect_db(self):
        """Connect to MongoDB"""
        try:
            self.client = AsyncIOMotorClient(
                self.MONGO_URI,
                serverSelectionTimeoutMS=settings.DB_SERVER_SELECTION_TIMEOUT_MS,
                socketTimeoutMS=settings.DB_SOCKET_TIMEOUT_MS,
            )
            self.database = self.client[self.DATABASE_NAME]
            # Test connection
            await self.client.admin.command('ping')
            logger.info("✅ Connected to MongoDB: %s", self.DATABASE_NAME)
        except Exception as e:
            logger.error("❌ Error connecting to MongoDB: %s", e)
            raise

    async def close_db(self):
        """Close MongoDB connection"""
        if self.client:
            self.client.close()
            logger.info("✅ MongoDB connection closed")

    def get_collection(self, collection_name: str):
        """Get a specific collection"""
        if self.database is None:
            raise Exception("Database not connected")
        return self.database[collection_name]

    async def ensure_indexes(self):
        """Create the indexes the booking core relies on (idempotent)"""
        bookings = self.get_collection(Collections.BOOKINGS)
        await bookings.create_index([("booking_id", ASCENDING)], unique=True)
        await bookings.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
        await bookings.create_index([("room_id", ASCENDING)])
        await bookings.create_index([("status", ASCENDING), ("payment_status", ASCENDING)])
        await bookings.create_index([("check_in_date", ASCENDING), ("check_out_date", ASCENDING)])

        availability = self.get_collection(Collections.ROOM_AVAILABILITY)
        await availability.create_index(
            [("room_id", ASCENDING), ("start_date", ASCENDING), ("end_date", ASCENDING)]
        )
        await availability.create_index([("room_id", ASCENDING), ("status", ASCENDING)])

        payments = self.get_collection(Collections.PAYMENTS)
        await payments.create_index([("transaction_id", ASCENDING)], unique=True)
        await payments.create_index([("booking_id", ASCENDING)])
        await payments.create_index([("user_id", ASCENDING)])

        wallets = self.get_collection(Collections.WALLETS)
        await wallets.create_index([("user_id", ASCENDING)], unique=True)

        transactions = self.get_collection(Collections.TRANSACTIONS)
        await transactions.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
        await transactions.create_index([("movement_key", ASCENDING)], unique=True, sparse=True)

        notifications = self.get_collection(Collections.NOTIFICATIONS)
        await notifications.create_index([("user_id", ASCENDING), ("read", ASCENDING)])

# Global database instance
db_config = DatabaseConfig()

# Collection names
class Collections:
    # Catalog (read-only for the booking core)
    HOTELS = "hotels"
    ROOMS = "rooms"
    USERS = "users"

    # Wallet and ledger
    WALLETS = "wallets"
    TRANSACTIONS = "transactions"

    # Booking core
    BOOKINGS = "bookings"
    ROOM_AVAILABILITY = "room_availability"
    ROOM_LOCKS = "room_locks"
    PAYMENTS = "payments"

    NOTIFICATIONS = "notifications"
