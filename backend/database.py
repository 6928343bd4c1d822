"""
Document store lifecycle. One MongoClient per process: opened in the app lifespan,
kept on app.state, closed at shutdown. Handlers receive the collection via Depends.
"""
import logging

from fastapi import Request
from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from backend.config import ITEMS_COLLECTION, MONGO_DB, MONGO_TIMEOUT_MS, MONGO_URI

logger = logging.getLogger(__name__)


def connect(uri: str = MONGO_URI, db_name: str = MONGO_DB) -> tuple[MongoClient, Database]:
    """Connect and ping so a bad URI fails at startup, not on the first /admin call."""
    client = MongoClient(uri, serverSelectionTimeoutMS=MONGO_TIMEOUT_MS)
    try:
        client.admin.command("ping")
    except Exception:
        client.close()
        raise
    logger.info("Connected to document store %s (db=%s)", uri, db_name)
    return client, client[db_name]


def get_items_collection(request: Request) -> Collection:
    """Dependency: the items collection from the store opened at startup."""
    return request.app.state.db[ITEMS_COLLECTION]


def count_items(collection: Collection) -> int:
    return collection.count_documents({})
