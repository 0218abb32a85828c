from enum import Enum


class NotificationType(str, Enum):
    BOOKING_CREATED = "booking_created"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_CANCELED = "booking_canceled"
    BOOKING_EXPIRED = "booking_expired"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_DUE = "payment_due"
    REFUND_PROCESSED = "refund_processed"
    CHECK_IN_REMINDER = "check_in_reminder"
    SYSTEM = "system"
