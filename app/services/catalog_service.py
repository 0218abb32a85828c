"""
Read-only access to the hotel/room catalog and user profiles
"""
from typing import Dict, Optional

from app.config.database import Collections
from app.database.db_operations import db_ops, to_object_id
from app.utils.exceptions import NotFoundError


async def get_room(room_id: str) -> Dict:
    to_object_id(room_id, "room ID")
    room = await db_ops.get_by_id(Collections.ROOMS, room_id)
    if not room:
        raise NotFoundError("Room not found")
    return room


async def get_hotel(hotel_id: str) -> Dict:
    to_object_id(hotel_id, "hotel ID")
    hotel = await db_ops.get_by_id(Collections.HOTELS, hotel_id)
    if not hotel:
        raise NotFoundError("Hotel not found")
    return hotel


async def get_user_profile(user_id: str) -> Optional[Dict]:
    """Profile used to prefill guest contact fields; None when unknown"""
    return await db_ops.get_by_id(Collections.USERS, user_id)
