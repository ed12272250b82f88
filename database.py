"""
Database helpers

A single MongoClient is created from settings. Routes receive the database
handle through the ``get_db`` dependency so it can be swapped out in tests.
"""
from datetime import datetime, timezone
from typing import Any, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import settings
from errors import ApiError

client = MongoClient(settings.database_url, serverSelectionTimeoutMS=5000)
db = client[settings.database_name]


def get_db() -> Database:
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def oid(id_str: Any) -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(str(id_str))
    except (InvalidId, TypeError):
        raise ApiError(400, "Invalid id")


def serialize_doc(value: Any) -> Any:
    """Recursively turn ObjectIds into strings so documents are JSON-safe."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: serialize_doc(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_doc(v) for v in value]
    return value


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    if isinstance(data, BaseModel):
        doc = data.model_dump(by_alias=True)
    else:
        doc = dict(data)
    now = utcnow()
    doc.setdefault("createdAt", now)
    doc["updatedAt"] = now
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(
    database: Database,
    collection_name: str,
    filter_dict: Optional[dict] = None,
    limit: Optional[int] = None,
    sort: Optional[list] = None,
) -> list:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return [serialize_doc(doc) for doc in cursor]


def ensure_indexes(database: Database) -> None:
    # concurrent upserts of a cart or guest user collapse onto one document
    database["cart"].create_index([("user", ASCENDING)], unique=True)
    database["user"].create_index([("sessionId", ASCENDING)], unique=True, sparse=True)
    database["order"].create_index([("orderNumber", ASCENDING)], unique=True)
    database["order"].create_index([("user", ASCENDING), ("createdAt", ASCENDING)])
