"""
MongoDB connection and document helpers.

`db` is None when DATABASE_URL / DATABASE_NAME are not configured so the API can
still boot and report its status on /test.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

# Collection names
USERS = "user"
PROJECTS = "project"
REQUESTS = "request"
NOTIFICATIONS = "notification"
CHAT_MESSAGES = "chat_message"
ANNOUNCEMENTS = "announcement"
RESET_TOKENS = "reset_token"

db: Optional[Database] = None

if DATABASE_URL and DATABASE_NAME:
    try:
        _client = MongoClient(DATABASE_URL)
        db = _client[DATABASE_NAME]
    except Exception as e:
        logger.error("Could not configure MongoDB client: %s", e)
        db = None


def get_db() -> Database:
    if db is None:
        raise HTTPException(status_code=500, detail="Database unavailable")
    return db


def ensure_indexes(database: Database) -> None:
    database[USERS].create_index([("email", ASCENDING)], unique=True)
    # roll numbers are only unique among students; teachers have none
    database[USERS].create_index([("roll_number", ASCENDING)], unique=True, sparse=True)
    database[PROJECTS].create_index([("type", ASCENDING), ("deadline", ASCENDING)])
    database[REQUESTS].create_index([("project_id", ASCENDING), ("user_id", ASCENDING), ("status", ASCENDING)])
    database[NOTIFICATIONS].create_index([("user_id", ASCENDING), ("read", ASCENDING)])
    database[CHAT_MESSAGES].create_index([("project_id", ASCENDING), ("timestamp", ASCENDING)])
    database[ANNOUNCEMENTS].create_index([("is_active", ASCENDING), ("deadline", ASCENDING)])
    database[RESET_TOKENS].create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    """Insert a document, stamping created_at/updated_at, and return it with its _id."""
    database = get_db()
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = datetime.now(timezone.utc)
    doc.setdefault("created_at", now)
    doc.setdefault("updated_at", now)
    res = database[collection_name].insert_one(doc)
    doc["_id"] = res.inserted_id
    return doc
