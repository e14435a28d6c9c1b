"""
MongoDB connection and small document helpers.

The module-level ``db`` is created from DATABASE_URL / DATABASE_NAME when both
are set. Request handlers never touch it directly; they receive it through the
``get_db`` dependency so tests can substitute an in-memory database.
"""
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from loguru import logger
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from errors import DatabaseUnavailableError

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

_client: Optional[MongoClient] = None
db: Optional[Database] = None

if DATABASE_URL and DATABASE_NAME:
    _client = MongoClient(DATABASE_URL, serverSelectionTimeoutMS=5000, tz_aware=True)
    db = _client[DATABASE_NAME]


def get_db() -> Database:
    if db is None:
        raise DatabaseUnavailableError()
    return db


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Union[str, ObjectId, None]) -> Optional[ObjectId]:
    """ObjectId for ``value``, or None when it is not a valid id."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def oid_to_str(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d and isinstance(d["_id"], ObjectId):
        d["id"] = str(d.pop("_id"))
    # convert nested ObjectIds if any
    for k, v in list(d.items()):
        if isinstance(v, ObjectId):
            d[k] = str(v)
    return d


def create_document(database: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]], timestamps=("created_at", "updated_at")) -> str:
    """Insert a document stamped with creation time(s) and return its id."""
    data_dict = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = now_utc()
    for field in timestamps:
        data_dict[field] = now
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def ensure_indexes(database: Database) -> None:
    database.product.create_index([("is_hot_product", ASCENDING), ("created_at", DESCENDING)])
    database.product.create_index([("tags", ASCENDING)])
    database.product.create_index([("created_at", DESCENDING)])
    database.banner.create_index([("created_at", DESCENDING)])
    database.adminuser.create_index([("email", ASCENDING)], unique=True)
    database.session.create_index([("token", ASCENDING)], unique=True)
    logger.info("Indexes ensured on '{}'", database.name)
