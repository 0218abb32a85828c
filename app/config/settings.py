"""
Application settings and configuration
"""
import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    # Application
    APP_NAME = "Hotel Booking Backend"
    VERSION = "1.0.0"
    DEBUG = os.getenv("DEBUG", "True") == "True"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Database
    MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    DATABASE_NAME = os.getenv("DATABASE_NAME", "hotel_booking_db")
    DB_SERVER_SELECTION_TIMEOUT_MS = int(os.getenv("DB_SERVER_SELECTION_TIMEOUT_MS", "5000"))
    DB_SOCKET_TIMEOUT_MS = int(os.getenv("DB_SOCKET_TIMEOUT_MS", "10000"))
    DB_OPERATION_TIMEOUT_SECONDS = float(os.getenv("DB_OPERATION_TIMEOUT_SECONDS", "10"))

    # Security
    SECRET_KEY = os.getenv("SECRET_KEY", "your-secret-key-change-in-production")
    ALGORITHM = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24  # 24 hours

    # CORS
    ALLOWED_ORIGINS = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
    ]

    # Responses render timestamps in this zone; calendar dates stay as-is
    DISPLAY_TIMEZONE = os.getenv("DISPLAY_TIMEZONE", "Asia/Ho_Chi_Minh")

    # Booking policy
    BOOKING_ID_PREFIX = "BK"
    DEPOSIT_RATE = "0.25"
    PAYMENT_DUE_DAYS_BEFORE_CHECK_IN = 2
    CANCELLATION_DEADLINE_HOURS = 24
    CHECK_IN_HOUR = 14
    CHECK_OUT_CUTOFF_HOUR = 12
    UNPAID_GRACE_MINUTES = int(os.getenv("UNPAID_GRACE_MINUTES", "10"))
    AUTO_CANCEL_LEAD_DAYS = int(os.getenv("AUTO_CANCEL_LEAD_DAYS", "3"))
    # Wallet payments still pending after this long are settled by the reconciler
    WALLET_RECONCILE_AFTER_MINUTES = 5

    # Scheduler (seconds between sweep passes)
    SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "True") == "True"
    COMPLETION_SWEEP_INTERVAL = 60 * 60
    EXPIRY_SWEEP_INTERVAL = 10 * 60
    AUTO_CANCEL_SWEEP_INTERVAL = 24 * 60 * 60
    CHECK_IN_REMINDER_INTERVAL = 24 * 60 * 60
    PAYMENT_DUE_REMINDER_INTERVAL = 24 * 60 * 60
    WALLET_RECONCILE_INTERVAL = 5 * 60

    # Wallet: recent movement keys kept per wallet for replay detection
    WALLET_MOVEMENT_KEYS_KEPT = 500

    # Per-room advisory lock
    ROOM_LOCK_TTL_SECONDS = 30  # renewed every third of this while held
    ROOM_LOCK_ACQUIRE_TIMEOUT_SECONDS = float(os.getenv("ROOM_LOCK_ACQUIRE_TIMEOUT_SECONDS", "5"))
    ROOM_LOCK_RETRY_INTERVAL_SECONDS = 0.05

    # Payment gateway
    PAYMENT_GATEWAY_URL = os.getenv("PAYMENT_GATEWAY_URL", "https://sandbox.gateway.example/pay")
    PAYMENT_RETURN_URL = os.getenv("PAYMENT_RETURN_URL", "http://localhost:3000/payment-result")

    # Pagination
    DEFAULT_PAGE_SIZE = 10
    MAX_PAGE_SIZE = 100

settings = Settings()
