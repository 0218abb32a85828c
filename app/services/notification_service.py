"""
Notification store.

``notify`` is fire-and-forget: it persists an in-app notification and never
raises, so a failing notification cannot fail a booking operation or a sweep.
Push/socket delivery reads from this collection and lives elsewhere.
"""
import logging
from typing import Any, Dict, Optional

from pymongo import ReturnDocument

from app.config.database import db_config, Collections
from app.database.db_operations import db_call, db_ops, to_object_id
from app.models.notification import NotificationType
from app.utils.exceptions import NotFoundError
from app.utils.helpers import utc_now

logger = logging.getLogger(__name__)

TEMPLATES = {
    NotificationType.BOOKING_CREATED: ("Booking created", "Your booking {booking_id} has been created. Please pay the deposit to confirm it."),
    NotificationType.BOOKING_CONFIRMED: ("Booking confirmed", "Your booking {booking_id} is confirmed."),
    NotificationType.BOOKING_CANCELED: ("Booking canceled", "Your booking {booking_id} was canceled. Reason: {reason}"),
    NotificationType.BOOKING_EXPIRED: ("Booking expired", "Your booking {booking_id} expired because the deposit was not paid in time."),
    NotificationType.PAYMENT_RECEIVED: ("Payment received", "We received {amount} for booking {booking_id}."),
    NotificationType.PAYMENT_FAILED: ("Payment failed", "Payment {transaction_id} for booking {booking_id} failed."),
    NotificationType.PAYMENT_DUE: ("Payment due", "The remaining {amount} for booking {booking_id} is due on {due_date}."),
    NotificationType.REFUND_PROCESSED: ("Refund processed", "{amount} was refunded to your wallet for booking {booking_id}."),
    NotificationType.CHECK_IN_REMINDER: ("Check-in reminder", "Your stay for booking {booking_id} starts on {check_in_date}."),
    NotificationType.SYSTEM: ("Notice", "{message}"),
}


class _Defaults(dict):
    def __missing__(self, key):
        return "-"


def _render(event_type: NotificationType, payload: Dict[str, Any]):
    title, template = TEMPLATES[event_type]
    return title, template.format_map(_Defaults(payload))


async def notify(user_id: str, event_type: NotificationType, payload: Optional[Dict[str, Any]] = None) -> bool:
    """Persist a notification for ``user_id``; returns False instead of raising"""
    payload = payload or {}
    try:
        event_type = NotificationType(event_type)
        title, message = _render(event_type, payload)
        collection = db_config.get_collection(Collections.NOTIFICATIONS)
        await db_call(collection.insert_one({
            "user_id": str(user_id),
            "type": event_type.value,
            "title": title,
            "message": message,
            "data": payload,
            "read": False,
            "read_at": None,
            "created_at": utc_now(),
        }))
        return True
    except Exception:
        logger.exception("Failed to store %s notification for user %s", event_type, user_id)
        return False


async def list_notifications(user_id: str, current: int = 1, page_size: int = None) -> Dict:
    return await db_ops.paginate(
        Collections.NOTIFICATIONS, {"user_id": str(user_id)}, current, page_size,
        sort=[("created_at", -1)],
    )


async def unread_count(user_id: str) -> int:
    return await db_ops.count(Collections.NOTIFICATIONS, {"user_id": str(user_id), "read": False})


async def mark_as_read(user_id: str, notification_id: str) -> Dict:
    oid = to_object_id(notification_id, "notification ID")
    collection = db_config.get_collection(Collections.NOTIFICATIONS)
    updated = await db_call(collection.find_one_and_update(
        {"_id": oid, "user_id": str(user_id)},
        {"$set": {"read": True, "read_at": utc_now()}},
        return_document=ReturnDocument.AFTER,
    ))
    if not updated:
        raise NotFoundError("Notification not found")
    return updated
