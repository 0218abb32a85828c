"""Tests for the in-app notification store."""

from unittest.mock import patch

import pytest

from app.models.notification import NotificationType
from app.services import notification_service
from app.utils.exceptions import NotFoundError


@pytest.mark.asyncio
async def test_notify_renders_template() -> None:
    assert await notification_service.notify("u1", NotificationType.BOOKING_CANCELED, {
        "booking_id": "BK-12345678",
        "reason": "Change of plans",
    })

    page = await notification_service.list_notifications("u1")
    notification = page["results"][0]
    assert notification["title"] == "Booking canceled"
    assert notification["message"] == "Your booking BK-12345678 was canceled. Reason: Change of plans"
    assert notification["read"] is False


@pytest.mark.asyncio
async def test_notify_tolerates_missing_payload_keys() -> None:
    assert await notification_service.notify("u1", NotificationType.PAYMENT_RECEIVED, {"booking_id": "BK-1"})

    page = await notification_service.list_notifications("u1")
    assert page["results"][0]["message"] == "We received - for booking BK-1."


@pytest.mark.asyncio
async def test_notify_never_raises() -> None:
    with patch.object(notification_service.db_config, "get_collection", side_effect=RuntimeError("down")):
        assert await notification_service.notify("u1", NotificationType.SYSTEM, {"message": "hi"}) is False


@pytest.mark.asyncio
async def test_mark_as_read_and_unread_count() -> None:
    await notification_service.notify("u1", NotificationType.SYSTEM, {"message": "one"})
    await notification_service.notify("u1", NotificationType.SYSTEM, {"message": "two"})
    await notification_service.notify("u2", NotificationType.SYSTEM, {"message": "other"})
    assert await notification_service.unread_count("u1") == 2

    page = await notification_service.list_notifications("u1")
    updated = await notification_service.mark_as_read("u1", str(page["results"][0]["_id"]))

    assert updated["read"] is True
    assert await notification_service.unread_count("u1") == 1


@pytest.mark.asyncio
async def test_mark_as_read_of_someone_else_is_not_found() -> None:
    await notification_service.notify("u2", NotificationType.SYSTEM, {"message": "private"})
    page = await notification_service.list_notifications("u2")

    with pytest.raises(NotFoundError):
        await notification_service.mark_as_read("u1", str(page["results"][0]["_id"]))
