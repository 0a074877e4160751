"""
MongoDB access helpers.

The database handle is built once by the app factory and stored on
app.state; request handlers receive it through the get_db dependency.
Collections are named after the schema classes, lowercased: user, session,
task, tag.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Request
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from config import Settings
from errors import ValidationError

logger = logging.getLogger(__name__)


def connect(settings: Settings) -> Database:
    client = MongoClient(settings.database_url, tz_aware=True)
    logger.info("Using database %s", settings.database_name)
    return client[settings.database_name]


def ensure_indexes(db: Database) -> None:
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["session"].create_index([("token", ASCENDING)], unique=True)
    db["tag"].create_index([("user_id", ASCENDING), ("name", ASCENDING)], unique=True)
    db["task"].create_index([("created_at", DESCENDING)])
    db["task"].create_index([("user_id", ASCENDING)])
    db["task"].create_index([("tag_ids", ASCENDING)])


def get_db(request: Request) -> Database:
    return request.app.state.db


# -----------------------------
# Ids and timestamps
# -----------------------------

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def oid(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise ValidationError("Invalid id")


def maybe_oid(value: str) -> Optional[ObjectId]:
    """Like oid() but returns None for malformed input, for path lookups."""
    if not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


def as_utc(value: datetime) -> datetime:
    # pymongo hands back naive datetimes unless the client is tz_aware
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 date or datetime string; None when absent or unparseable."""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


# -----------------------------
# Serialization
# -----------------------------

def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(p.capitalize() for p in rest)


def serialize(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a stored document to its JSON shape: id strings, ISO dates, camelCase keys."""
    if not doc:
        return doc
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    out: Dict[str, Any] = {}
    for k, v in d.items():
        if isinstance(v, datetime):
            v = as_utc(v).isoformat()
        elif isinstance(v, ObjectId):
            v = str(v)
        elif isinstance(v, list):
            v = [str(i) if isinstance(i, ObjectId) else i for i in v]
        out[_camel(k)] = v
    return out
