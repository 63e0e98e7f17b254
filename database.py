"""
Database Helper Functions

MongoDB connection and small helpers shared by the storage layer.
The connection is opened at import time when DATABASE_URL and DATABASE_NAME
are set; otherwise `db` stays None and the app runs on the in-memory store.
"""

import logging
from datetime import datetime, timezone
from typing import Union

from pydantic import BaseModel
from pymongo import MongoClient, ASCENDING

import config

logger = logging.getLogger(__name__)

client = None
db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    client = MongoClient(config.DATABASE_URL, tz_aware=True)
    db = client[config.DATABASE_NAME]


def _resolve(database):
    database = database if database is not None else db
    if database is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    return database


def create_document(collection_name: str, data: Union[BaseModel, dict], database=None, session=None) -> str:
    """Insert a single document, stamping created_at/updated_at if absent"""
    database = _resolve(database)
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = datetime.now(timezone.utc)
    data_dict.setdefault("created_at", now)
    data_dict.setdefault("updated_at", now)
    result = database[collection_name].insert_one(data_dict, session=session)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: dict = None, limit: int = None, sort=None, database=None):
    database = _resolve(database)
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes(database=None):
    database = _resolve(database)
    database["user"].create_index("email", unique=True)
    database["category"].create_index("name", unique=True)
    database["session"].create_index("token", unique=True)
    database["session"].create_index(
        "created_at", expireAfterSeconds=config.SESSION_TTL_HOURS * 3600
    )
    database["product"].create_index([("seller_id", ASCENDING)])
    database["cart"].create_index("user_id", unique=True)
    database["cart_item"].create_index(
        [("cart_id", ASCENDING), ("product_id", ASCENDING)], unique=True
    )
    database["purchase"].create_index([("buyer_id", ASCENDING), ("purchase_date", ASCENDING)])
    database["order"].create_index([("user_id", ASCENDING)])
    logger.info("Indexes ensured on %s", database.name)
