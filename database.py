"""
MongoDB access for the Smart Parking API.

The client is created once at import time from environment variables. Routes
receive the database through the ``get_db`` dependency so tests can swap in
an in-memory store.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

from errors import UpstreamError, ValidationError

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "SmartParkingSystem")

_client: Optional[MongoClient] = None
db: Optional[Database] = None

if DATABASE_URL:
    _client = MongoClient(DATABASE_URL)
    db = _client[DATABASE_NAME]
    logger.info(f"MongoDB client created for database '{DATABASE_NAME}'")


def get_db() -> Database:
    if db is None:
        raise UpstreamError("Database not configured")
    return db


def create_document(database: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document and return its id as a string."""
    if isinstance(data, BaseModel):
        data = data.model_dump()
    result = database[collection_name].insert_one(dict(data))
    return str(result.inserted_id)


def get_documents(
    database: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[List[tuple]] = None,
    projection: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    cursor = database[collection_name].find(filter_dict or {}, projection)
    if sort:
        cursor = cursor.sort(sort)
    return [serialize_document(doc) for doc in cursor]


def parse_object_id(value: Optional[str], label: str = "id") -> ObjectId:
    """Convert a path/query id to an ObjectId or raise a 400."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid {label}")


def serialize_document(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = {k: v for k, v in doc.items() if k != "_id"}
    if "_id" in doc:
        out = {"id": str(doc["_id"]), **out}
    return out


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Union[str, datetime], label: str = "timestamp") -> datetime:
    """Accept a datetime or an ISO 8601 string (trailing ``Z`` allowed)."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            pass
    raise ValidationError(f"Invalid {label}")


def as_utc(value: Union[str, datetime, None], label: str = "timestamp") -> Optional[datetime]:
    if value is None:
        return None
    value = parse_timestamp(value, label)
    # pymongo hands back naive datetimes that are already UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
