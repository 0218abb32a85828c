"""
Database operations - storage call guard and generic helpers for all collections
"""
import asyncio
from typing import List, Dict, Optional, Any, Awaitable
from bson import ObjectId
from pymongo.errors import ConnectionFailure, ExecutionTimeout, WTimeoutError
from app.config.database import db_config
from app.config.settings import settings
from app.utils.exceptions import StorageUnavailableError, ValidationError


async def db_call(awaitable: Awaitable, timeout: Optional[float] = None) -> Any:
    """
    Await one storage operation with a deadline.

    Driver connectivity failures and timeouts surface as StorageUnavailableError
    so callers can tell an infrastructure failure from a domain rejection.
    Every other driver error (duplicate keys included) propagates unchanged.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout or settings.DB_OPERATION_TIMEOUT_SECONDS)
    except asyncio.TimeoutError as exc:
        raise StorageUnavailableError("Storage operation timed out") from exc
    except (ConnectionFailure, ExecutionTimeout, WTimeoutError) as exc:
        raise StorageUnavailableError(f"Storage unavailable: {exc}") from exc


def to_object_id(value: str, label: str = "id") -> ObjectId:
    """Parse an ObjectId string or fail with a validation error"""
    if isinstance(value, ObjectId):
        return value
    if not value or not ObjectId.is_valid(value):
        raise ValidationError(f"Invalid {label}: {value!r}")
    return ObjectId(value)


class DBOperations:
    """Generic database operations for MongoDB collections"""

    @staticmethod
    async def get_all(collection_name: str, filter_query: Dict = None, skip: int = 0,
                      limit: int = 100, sort: Optional[List] = None) -> List[Dict]:
        """Get all documents from a collection with optional filtering"""
        collection = db_config.get_collection(collection_name)
        filter_query = filter_query or {}
        cursor = collection.find(filter_query, sort=sort, skip=skip, limit=limit)
        return await db_call(cursor.to_list(length=limit or None))

    @staticmethod
    async def get_by_id(collection_name: str, doc_id: str) -> Optional[Dict]:
        """Get a single document by ID; None for unknown or malformed ids"""
        if not ObjectId.is_valid(doc_id):
            return None
        collection = db_config.get_collection(collection_name)
        return await db_call(collection.find_one({"_id": ObjectId(doc_id)}))

    @staticmethod
    async def get_one(collection_name: str, filter_query: Dict) -> Optional[Dict]:
        """Get a single document by filter query"""
        collection = db_config.get_collection(collection_name)
        return await db_call(collection.find_one(filter_query))

    @staticmethod
    async def count(collection_name: str, filter_query: Dict = None) -> int:
        """Count documents in a collection"""
        collection = db_config.get_collection(collection_name)
        return await db_call(collection.count_documents(filter_query or {}))

    @staticmethod
    async def paginate(collection_name: str, filter_query: Dict, current: int = 1,
                       page_size: int = None, sort: Optional[List] = None) -> Dict:
        """Page through a collection, returning ``{meta, results}``"""
        page_size = page_size if page_size and page_size > 0 else settings.DEFAULT_PAGE_SIZE
        page_size = min(page_size, settings.MAX_PAGE_SIZE)
        current = current if current and current > 0 else 1

        total = await DBOperations.count(collection_name, filter_query)
        results = await DBOperations.get_all(
            collection_name, filter_query,
            skip=(current - 1) * page_size, limit=page_size, sort=sort,
        )
        return {
            "meta": {
                "current": current,
                "pageSize": page_size,
                "pages": (total + page_size - 1) // page_size,
                "total": total,
            },
            "results": results,
        }

db_ops = DBOperations()
