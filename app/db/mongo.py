"""Document store (MongoDB) client management."""

from functools import lru_cache

from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase

from app.config import get_settings


@lru_cache
def get_mongo_client() -> AsyncMongoClient:
    """Get the process-wide MongoDB client (connects lazily on first use)."""
    settings = get_settings()
    return AsyncMongoClient(settings.mongo_url, tz_aware=True)


def get_mongo_database() -> AsyncDatabase:
    """Database holding the chat aggregate collection."""
    return get_mongo_client()[get_settings().mongo_db]


async def close_mongo_client() -> None:
    """Close the client if it was ever created."""
    if get_mongo_client.cache_info().currsize:
        await get_mongo_client().close()
        get_mongo_client.cache_clear()
