"""
Database helpers

MongoDB connection plus the small set of helpers the services use. The
connection is configured from DATABASE_URL / DATABASE_NAME; when either is
missing `db` stays None and every collection access fails with Internal.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from errors import Conflict, Internal
from schemas import RoleName

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

client: Optional[MongoClient] = None
db: Optional[Database] = None

if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def get_collection(name: str):
    if db is None:
        raise Internal("Database not configured")
    return db[name]


def now() -> datetime:
    return datetime.now(timezone.utc)


def parse_object_id(value: Any) -> Optional[ObjectId]:
    """Return an ObjectId for `value`, or None when it is not a valid id."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def create_document(collection_name: str, data: BaseModel) -> Dict[str, Any]:
    """Insert a schema instance and return the stored document (with _id).

    A unique index violation becomes Conflict, any other driver failure
    becomes Internal.
    """
    doc = data.model_dump()
    doc["created_at"] = now()
    doc["updated_at"] = now()
    try:
        result = get_collection(collection_name).insert_one(doc)
    except DuplicateKeyError:
        raise Conflict(f"{collection_name.capitalize()} already exists")
    except PyMongoError as e:
        logger.error("Insert into %s failed: %s", collection_name, e)
        raise Internal()
    doc["_id"] = result.inserted_id
    return doc


def ensure_indexes(database: Database) -> None:
    database["role"].create_index([("name", ASCENDING)], unique=True)
    database["user"].create_index([("username", ASCENDING)], unique=True)
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["project"].create_index([("name", ASCENDING)], unique=True)
    database["project"].create_index([("developers", ASCENDING)])
    database["document"].create_index([("storage_filename", ASCENDING)], unique=True)
    database["document"].create_index([("project", ASCENDING)])


def seed_roles(database: Database) -> None:
    for role in RoleName:
        database["role"].update_one(
            {"name": role.value},
            {"$setOnInsert": {"name": role.value, "created_at": now()}},
            upsert=True,
        )


def init_database(database: Optional[Database] = None) -> None:
    database = database if database is not None else db
    if database is None:
        logger.warning("DATABASE_URL/DATABASE_NAME not set, skipping database setup")
        return
    ensure_indexes(database)
    seed_roles(database)
    logger.info("Database ready: %s", database.name)
