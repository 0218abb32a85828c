from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.services import notification_service
from app.utils.auth import get_current_user
from app.utils.helpers import ok, serialize_doc, serialize_docs

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("")
async def list_notifications(
    current: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1, alias="pageSize"),
    current_user: dict = Depends(get_current_user)
):
    page = await notification_service.list_notifications(current_user["_id"], current, page_size)
    page["results"] = serialize_docs(page["results"])
    return ok(page, "Notifications retrieved successfully")


@router.get("/unread-count")
async def unread_count(current_user: dict = Depends(get_current_user)):
    count = await notification_service.unread_count(current_user["_id"])
    return ok({"count": count})


@router.patch("/{notification_id}/read")
async def mark_as_read(
    notification_id: str,
    current_user: dict = Depends(get_current_user)
):
    notification = await notification_service.mark_as_read(current_user["_id"], notification_id)
    return ok(serialize_doc(notification), "Notification marked as read")
