"""
Project chat: message persistence, history reads and new-message fan-out.

post_message is shared by the realtime channel; it raises HTTPException so the
REST and socket paths report the same errors.
"""
import logging
from typing import List, Tuple

from fastapi import APIRouter, Depends, HTTPException
from pymongo.database import Database

import membership
from database import CHAT_MESSAGES, PROJECTS, get_db
from fanout import fan_out
from schemas import ChatMessage
from security import get_current_user
from utils import now, oid, serialize_doc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

HISTORY_LIMIT = 100


def message_time():
    # MongoDB keeps millisecond precision; trim so the broadcast matches what is stored
    t = now()
    return t.replace(microsecond=(t.microsecond // 1000) * 1000)


def post_message(db: Database, project_id: str, user_id: str, user_name: str, text: str) -> Tuple[dict, List[str]]:
    """Persist one chat message and notify the other participants.

    Returns the stored message and the ids of the users that were notified.
    """
    if not project_id or not text or not user_id or not user_name:
        raise HTTPException(status_code=400, detail="Missing required fields")
    project = db[PROJECTS].find_one({"_id": oid(project_id)})
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    if not membership.is_participant(project, user_id):
        raise HTTPException(status_code=403, detail="Only project members can send messages")

    doc = ChatMessage(
        project_id=str(project["_id"]),
        user_id=str(user_id),
        user_name=user_name,
        message=text,
        timestamp=message_time(),
    ).model_dump()
    res = db[CHAT_MESSAGES].insert_one(doc)
    doc["_id"] = res.inserted_id

    notified = fan_out(
        db,
        membership.participants(project),
        "new_message",
        "New Message",
        f'{user_name} sent a message in "{project["title"]}"',
        project_id=str(project["_id"]),
        actor_id=str(user_id),
    )
    return doc, notified


def history(db: Database, project_id: str, limit: int = HISTORY_LIMIT) -> List[dict]:
    """The most recent `limit` messages, oldest first."""
    cursor = (
        db[CHAT_MESSAGES]
        .find({"project_id": project_id})
        .sort([("timestamp", -1), ("_id", -1)])
        .limit(limit)
    )
    return list(reversed(list(cursor)))


@router.get("/{project_id}")
def get_messages(project_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    project = db[PROJECTS].find_one({"_id": oid(project_id)})
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    if not membership.is_participant(project, current["_id"]):
        raise HTTPException(status_code=403, detail="Only project members can view chat")
    return [serialize_doc(m) for m in history(db, str(project["_id"]))]
