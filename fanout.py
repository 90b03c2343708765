"""
Notification fan-out.

One notification document per recipient, written synchronously by the handler
that triggered the event. Inserts are best effort: a failed insert is logged
and the remaining recipients are still notified.
"""
import logging
from typing import Iterable, List, Optional

from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import NOTIFICATIONS
from schemas import Notification
from utils import now

logger = logging.getLogger(__name__)


def notify(
    db: Database,
    recipient: str,
    type: str,
    title: str,
    message: str,
    project_id: Optional[str] = None,
    actor_id: Optional[str] = None,
) -> dict:
    doc = Notification(
        user_id=str(recipient),
        type=type,
        title=title,
        message=message,
        project_id=str(project_id) if project_id else None,
        actor_id=str(actor_id) if actor_id else None,
    ).model_dump()
    doc["created_at"] = now()
    res = db[NOTIFICATIONS].insert_one(doc)
    doc["_id"] = res.inserted_id
    return doc


def fan_out(
    db: Database,
    recipients: Iterable[str],
    type: str,
    title: str,
    message: str,
    project_id: Optional[str] = None,
    actor_id: Optional[str] = None,
) -> List[str]:
    """Notify every recipient except the actor; return who was notified."""
    notified = []
    seen = set()
    for recipient in recipients:
        recipient = str(recipient)
        if not recipient or recipient in seen:
            continue
        seen.add(recipient)
        if actor_id and recipient == str(actor_id):
            continue
        try:
            notify(db, recipient, type, title, message, project_id=project_id, actor_id=actor_id)
            notified.append(recipient)
        except PyMongoError:
            logger.exception("Failed to create %s notification for user %s", type, recipient)
    logger.info("Created %d %s notification(s) for project %s", len(notified), type, project_id)
    return notified


def clear_join_request(db: Database, admin_id: str, project_id: str, applicant_id: str) -> int:
    """Drop the admin's unread join_request notifications for one applicant."""
    res = db[NOTIFICATIONS].delete_many(
        {
            "user_id": str(admin_id),
            "type": "join_request",
            "project_id": str(project_id),
            "actor_id": str(applicant_id),
            "read": False,
        }
    )
    return res.deleted_count
