"""
Per-room advisory lock backed by MongoDB.

One document per locked room lives in ``room_locks`` with ``_id`` equal to the
room id, so the primary-key uniqueness of the collection makes acquisition
atomic across API workers and the sweep scheduler. A lock whose holder died
is taken over once its ``expires_at`` has passed; a live holder keeps
pushing ``expires_at`` forward, so however long its block runs it is never
mistaken for a dead one.
"""
import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import timedelta

from pymongo.errors import DuplicateKeyError

from app.config.database import db_config, Collections
from app.config.settings import settings
from app.database.db_operations import db_call
from app.utils.exceptions import RoomBusyError
from app.utils.helpers import utc_now

logger = logging.getLogger(__name__)


async def _try_acquire(room_id: str, owner: str) -> bool:
    locks = db_config.get_collection(Collections.ROOM_LOCKS)
    now = utc_now()
    expires_at = now + timedelta(seconds=settings.ROOM_LOCK_TTL_SECONDS)
    try:
        await db_call(locks.insert_one({"_id": room_id, "owner": owner, "expires_at": expires_at}))
        return True
    except DuplicateKeyError:
        pass

    # Take over a lock left behind by a crashed holder
    stale = await db_call(locks.find_one_and_update(
        {"_id": room_id, "expires_at": {"$lt": now}},
        {"$set": {"owner": owner, "expires_at": expires_at}},
    ))
    if stale is not None:
        logger.warning("Took over expired lock on room %s from %s", room_id, stale.get("owner"))
        return True
    return False


async def _release(room_id: str, owner: str) -> None:
    locks = db_config.get_collection(Collections.ROOM_LOCKS)
    await db_call(locks.delete_one({"_id": room_id, "owner": owner}))


async def _keep_alive(room_id: str, owner: str) -> None:
    """Push ``expires_at`` forward while the block runs, so a slow holder is not taken over"""
    locks = db_config.get_collection(Collections.ROOM_LOCKS)
    ttl = settings.ROOM_LOCK_TTL_SECONDS
    while True:
        await asyncio.sleep(ttl / 3)
        try:
            renewed = await db_call(locks.update_one(
                {"_id": room_id, "owner": owner},
                {"$set": {"expires_at": utc_now() + timedelta(seconds=ttl)}},
            ))
        except Exception:
            logger.exception("Could not renew lock on room %s", room_id)
            continue
        if not renewed.matched_count:
            logger.warning("Lock on room %s was lost while held", room_id)
            return


@asynccontextmanager
async def room_lock(room_id: str, timeout: float = None):
    """
    Hold the advisory lock for ``room_id`` for the duration of the block.

    The lock is renewed in the background while held. Raises RoomBusyError
    when it cannot be obtained within ``timeout``.
    """
    room_id = str(room_id)
    owner = uuid.uuid4().hex
    timeout = settings.ROOM_LOCK_ACQUIRE_TIMEOUT_SECONDS if timeout is None else timeout
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    while not await _try_acquire(room_id, owner):
        if loop.time() >= deadline:
            raise RoomBusyError(
                "Room is being updated by another request, please retry",
                {"room_id": room_id},
            )
        await asyncio.sleep(settings.ROOM_LOCK_RETRY_INTERVAL_SECONDS)

    heartbeat = asyncio.create_task(_keep_alive(room_id, owner))
    try:
        yield
    finally:
        heartbeat.cancel()
        try:
            await heartbeat
        except asyncio.CancelledError:
            pass
        await _release(room_id, owner)
