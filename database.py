"""
MongoDB access for the Fan Store API.

The connection is opened once at import time from DATABASE_URL and
DATABASE_NAME. When either is missing ``db`` stays ``None`` and the data
endpoints answer 500 instead of crashing the app at startup.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional, Type, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

import config
from errors import InternalError, NotFound

logger = logging.getLogger(__name__)

_client = None
db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    _client = MongoClient(config.DATABASE_URL)
    db = _client[config.DATABASE_NAME]


def get_db() -> Database:
    if db is None:
        raise InternalError("Database not available. Check DATABASE_URL and DATABASE_NAME.")
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict], session=None) -> str:
    """Insert a document with created/updated timestamps and return its id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()

    now = utcnow()
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now

    result = database[collection_name].insert_one(data_dict, session=session)
    return str(result.inserted_id)


def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    # Convert any nested ObjectIds if present
    for k, v in list(d.items()):
        if isinstance(v, ObjectId):
            d[k] = str(v)
    return d


def parse_id(value, not_found: Type[NotFound] = NotFound) -> ObjectId:
    """Turn a path/body id into an ObjectId; a malformed id names nothing."""
    if isinstance(value, ObjectId):
        return value
    if value is None or not ObjectId.is_valid(str(value)):
        raise not_found()
    return ObjectId(str(value))


def page_window(page: int, limit: int):
    page = max(page, 1)
    limit = max(limit, 1)
    return page, limit, (page - 1) * limit


def total_pages(total: int, limit: int) -> int:
    return (total + limit - 1) // limit


@contextmanager
def transaction(database: Database):
    """
    Yield a session with an open transaction, or ``None`` when the deployment
    has no transaction support (standalone server, DATABASE_TRANSACTIONS off).

    Callers pass the yielded value as ``session=`` to every statement, so the
    same code runs in both modes.
    """
    if not config.DATABASE_TRANSACTIONS:
        yield None
        return
    with database.client.start_session() as session:
        with session.start_transaction():
            yield session


def ensure_indexes(database: Database) -> None:
    database["cart"].create_index(
        [("user_id", ASCENDING), ("guest_id", ASCENDING), ("product_id", ASCENDING)],
        unique=True,
    )
    database["productreview"].create_index(
        [("product_id", ASCENDING), ("user_id", ASCENDING)],
        unique=True,
    )
    database["product"].create_index("name", unique=True)
    database["product"].create_index("sku", unique=True, sparse=True)
    database["user"].create_index("email", unique=True, sparse=True)
    database["user"].create_index("phone", unique=True, sparse=True)
    database["order"].create_index("checkout_key", unique=True, sparse=True)
    database["order"].create_index([("created_at", ASCENDING)])

    if config.GUEST_CART_TTL_DAYS > 0:
        database["cart"].create_index(
            "updated_at",
            name="guest_cart_ttl",
            expireAfterSeconds=config.GUEST_CART_TTL_DAYS * 24 * 60 * 60,
            partialFilterExpression={"guest_id": {"$type": "string"}},
        )
        logger.info("Guest carts expire after %s days of inactivity", config.GUEST_CART_TTL_DAYS)
