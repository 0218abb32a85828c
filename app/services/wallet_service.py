"""
Wallet balances and the ledger of wallet movements.

Balances live in ``wallets`` (one per user) and every movement is appended to
``transactions``. A debit is a single conditional ``$inc``: it only matches
when the balance covers the amount, so an insufficient balance leaves the
wallet untouched.

A movement can carry a ``movement_key`` (derived from the payment it belongs
to). The key is pushed onto the wallet in the same update as the ``$inc`` and
the update only matches while the key is absent, so a retried debit or credit
moves the balance at most once.
"""
import logging
from typing import Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.config.database import db_config, Collections
from app.config.settings import settings
from app.database.db_operations import db_call
from app.models.payment import LedgerEntryType
from app.utils.exceptions import InsufficientBalanceError, ValidationError
from app.utils.helpers import utc_now

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "VND"


def _wallets():
    return db_config.get_collection(Collections.WALLETS)


def _transactions():
    return db_config.get_collection(Collections.TRANSACTIONS)


async def get_wallet(user_id: str) -> Optional[Dict]:
    return await db_call(_wallets().find_one({"user_id": str(user_id)}))


async def get_balance(user_id: str) -> float:
    wallet = await get_wallet(user_id)
    return wallet["balance"] if wallet else 0


async def has_movement(user_id: str, movement_key: str) -> bool:
    """Whether the movement identified by ``movement_key`` reached the balance"""
    wallet = await db_call(_wallets().find_one({"user_id": str(user_id), "movement_keys": movement_key}))
    return wallet is not None


def _move(user_id: str, amount: float, guard: Dict, movement_key: Optional[str]):
    query = {"user_id": str(user_id), **guard}
    update = {"$inc": {"balance": amount}, "$set": {"updated_at": utc_now()}}
    if movement_key:
        query["movement_keys"] = {"$ne": movement_key}
        update["$push"] = {"movement_keys": {"$each": [movement_key], "$slice": -settings.WALLET_MOVEMENT_KEYS_KEPT}}
    return _wallets().find_one_and_update(query, update, return_document=ReturnDocument.AFTER)


async def _append_ledger(user_id: str, amount: float, entry_type: LedgerEntryType, reason: str,
                         balance_after: float, reference_id: Optional[str],
                         movement_key: Optional[str] = None) -> Dict:
    entry = {
        "user_id": str(user_id),
        "amount": amount,
        "type": entry_type.value,
        "description": reason,
        "reference_id": reference_id,
        "balance_after": balance_after,
        "status": "completed",
        "created_at": utc_now(),
    }
    if movement_key:
        entry["movement_key"] = movement_key
    result = await db_call(_transactions().insert_one(entry))
    entry["_id"] = result.inserted_id
    return entry


async def _replayed(user_id: str, amount: float, entry_type: LedgerEntryType, reason: str,
                    reference_id: Optional[str], movement_key: str) -> Dict:
    """Ledger entry of a movement that already reached the balance, written now if it was lost"""
    logger.info("Wallet movement %s for %s already applied", movement_key, user_id)
    entry = await db_call(_transactions().find_one({"movement_key": movement_key}))
    if entry is not None:
        return entry
    try:
        return await _append_ledger(user_id, amount, entry_type, reason,
                                    await get_balance(user_id), reference_id, movement_key)
    except DuplicateKeyError:
        return await db_call(_transactions().find_one({"movement_key": movement_key}))


async def debit(user_id: str, amount: float, reason: str, reference_id: Optional[str] = None,
                movement_key: Optional[str] = None) -> Dict:
    """
    Take ``amount`` from the user's wallet and return the ledger entry.

    Raises InsufficientBalanceError, with the wallet unchanged, when the
    balance is short.
    """
    if amount <= 0:
        raise ValidationError("Debit amount must be greater than 0")

    wallet = await db_call(_move(user_id, -amount, {"balance": {"$gte": amount}}, movement_key))
    if wallet is None:
        if movement_key and await has_movement(user_id, movement_key):
            return await _replayed(user_id, -amount, LedgerEntryType.PAYMENT, reason, reference_id, movement_key)
        balance = await get_balance(user_id)
        raise InsufficientBalanceError(
            "Insufficient balance",
            {"balance": balance, "required": amount},
        )

    try:
        return await _append_ledger(user_id, -amount, LedgerEntryType.PAYMENT, reason,
                                    wallet["balance"], reference_id, movement_key)
    except Exception:
        # Ledger and balance move together
        undo = {"$inc": {"balance": amount}}
        if movement_key:
            undo["$pull"] = {"movement_keys": movement_key}
        await db_call(_wallets().update_one({"user_id": str(user_id)}, undo))
        raise


async def _open_wallet(user_id: str) -> None:
    now = utc_now()
    try:
        await db_call(_wallets().update_one(
            {"user_id": str(user_id)},
            {"$setOnInsert": {"balance": 0, "currency": DEFAULT_CURRENCY, "is_active": True,
                              "movement_keys": [], "created_at": now, "updated_at": now}},
            upsert=True,
        ))
    except DuplicateKeyError:
        pass


async def credit(user_id: str, amount: float, reason: str, reference_id: Optional[str] = None,
                 entry_type: LedgerEntryType = LedgerEntryType.REFUND,
                 movement_key: Optional[str] = None) -> Dict:
    """
    Add ``amount`` to the user's wallet (creating it if needed) and return the ledger entry.

    With a ``movement_key`` a repeated call returns the original entry and
    leaves the balance alone.
    """
    if amount <= 0:
        raise ValidationError("Credit amount must be greater than 0")

    await _open_wallet(user_id)
    wallet = await db_call(_move(user_id, amount, {}, movement_key))
    if wallet is None:
        return await _replayed(user_id, amount, entry_type, reason, reference_id, movement_key)
    return await _append_ledger(user_id, amount, entry_type, reason, wallet["balance"],
                                reference_id, movement_key)


async def list_transactions(user_id: str, limit: int = 10) -> List[Dict]:
    cursor = _transactions().find({"user_id": str(user_id)}, sort=[("created_at", -1)], limit=limit)
    return await db_call(cursor.to_list(length=limit))
