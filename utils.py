from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException


def now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    # pymongo hands back naive datetimes that are already UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def query_time(dt: datetime) -> datetime:
    """Naive UTC, the form MongoDB hands back, for use inside query filters."""
    return as_utc(dt).replace(tzinfo=None)


def oid(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid id format")


def is_valid_oid(id_str: str) -> bool:
    return ObjectId.is_valid(id_str)


def _serialize_value(v: Any) -> Any:
    if isinstance(v, ObjectId):
        return str(v)
    if isinstance(v, datetime):
        return as_utc(v).isoformat()
    if isinstance(v, dict):
        return serialize_doc(v)
    if isinstance(v, list):
        return [_serialize_value(i) for i in v]
    return v


def serialize_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    if not doc:
        return doc
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    for k, v in list(d.items()):
        d[k] = _serialize_value(v)
    return d


def strip_private(user: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in user.items() if k != "password_hash"}


USER_SUMMARY_FIELDS = ("name", "email", "profile_image")


def user_summaries(db, user_ids: Iterable[str], fields: Iterable[str] = USER_SUMMARY_FIELDS) -> Dict[str, Dict[str, Any]]:
    """Fetch {id, <fields>} for every valid id, keyed by the string id."""
    ids = [ObjectId(u) for u in set(user_ids) if u and ObjectId.is_valid(u)]
    if not ids:
        return {}
    projection = {f: 1 for f in fields}
    return {
        str(u["_id"]): serialize_doc(u)
        for u in db["user"].find({"_id": {"$in": ids}}, projection)
    }


def expand_users(ids: List[str], summaries: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [summaries.get(i, {"id": i}) for i in ids]
