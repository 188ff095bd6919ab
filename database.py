"""
Database Helper Functions

One MongoDB client per process, opened at startup and closed at shutdown.
The helpers below take the database handle explicitly so the Storage
gateway (and the tests) decide which database they talk to.
"""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Union, Optional, Dict, Any, List

from bson.decimal128 import Decimal128
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.database import Database

import config

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None
db: Optional[Database] = None

COUNTERS = "counters"


def connect(database_url: Optional[str] = None, database_name: Optional[str] = None) -> Optional[Database]:
    global _client, db
    database_url = database_url or config.DATABASE_URL
    database_name = database_name or config.DATABASE_NAME
    if not (database_url and database_name):
        logger.warning("DATABASE_URL or DATABASE_NAME not set, running without a database")
        return None
    _client = MongoClient(database_url)
    db = _client[database_name]
    ensure_indexes(db)
    logger.info("Connected to database %s", database_name)
    return db


def close():
    global _client, db
    if _client is not None:
        _client.close()
        logger.info("Database connection closed")
    _client = None
    db = None


def _ensure_db():
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")


def get_db() -> Database:
    _ensure_db()
    return db


def ensure_indexes(database: Database):
    for name in ("user", "category", "product", "product_variant", "blackout_date", "cart_item", "booking"):
        database[name].create_index([("id", ASCENDING)], unique=True)
    database["user"].create_index([("email", ASCENDING)], unique=True, sparse=True)
    database["category"].create_index([("slug", ASCENDING)], unique=True)
    database["product"].create_index([("slug", ASCENDING)], unique=True)
    database["session"].create_index([("sid", ASCENDING)], unique=True)
    database["session"].create_index([("expire", ASCENDING)], expireAfterSeconds=0)
    database["cart_item"].create_index([("user_id", ASCENDING)])
    database["booking"].create_index([("user_id", ASCENDING)])


def next_id(database: Database, collection_name: str) -> int:
    counter = database[COUNTERS].find_one_and_update(
        {"_id": collection_name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return counter["seq"]


def _encode(value: Any) -> Any:
    # Money goes in as Decimal128 so the server can sum it; calendar dates
    # are kept as ISO strings so they still sort and compare.
    if isinstance(value, Decimal):
        return Decimal128(value)
    if isinstance(value, date) and not isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


def to_document(data: Union[BaseModel, dict], exclude_unset: bool = False) -> dict:
    if isinstance(data, BaseModel):
        return _encode(data.model_dump(exclude_unset=exclude_unset))
    return _encode(dict(data))


# CRUD helpers

def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict], track_updates: bool = True) -> dict:
    payload = to_document(data)
    if "id" not in payload:
        payload["id"] = next_id(database, collection_name)
    now = datetime.now(timezone.utc)
    payload["created_at"] = now
    if track_updates:
        payload["updated_at"] = now
    result = database[collection_name].insert_one(payload)
    return get_document(database, collection_name, {"_id": result.inserted_id})


def get_documents(database: Database, collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None, sort: Optional[list] = None) -> List[dict]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(int(limit))
    return [serialize_doc(doc) for doc in cursor]


def get_document(database: Database, collection_name: str, filter_dict: dict) -> Optional[dict]:
    return serialize_doc(database[collection_name].find_one(filter_dict))


def update_document(database: Database, collection_name: str, filter_dict: dict, update_data: Union[BaseModel, Dict[str, Any]], track_updates: bool = True) -> Optional[dict]:
    fields = to_document(update_data, exclude_unset=True)
    fields.pop("id", None)
    if track_updates:
        fields["updated_at"] = datetime.now(timezone.utc)
    if not fields:
        return get_document(database, collection_name, filter_dict)
    doc = database[collection_name].find_one_and_update(
        filter_dict,
        {"$set": fields},
        return_document=ReturnDocument.AFTER,
    )
    return serialize_doc(doc)


def delete_documents(database: Database, collection_name: str, filter_dict: dict) -> int:
    result = database[collection_name].delete_many(filter_dict)
    return result.deleted_count


# Utility

def _decode(value: Any) -> Any:
    if isinstance(value, Decimal128):
        return value.to_decimal()
    if isinstance(value, dict):
        return {k: _decode(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_decode(v) for v in value]
    return value


def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return None
    d = _decode(dict(doc))
    d.pop("_id", None)  # integer "id" is the public key
    return d
