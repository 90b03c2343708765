import logging

from bson import ObjectId
from pymongo.database import Database

from database import USERS
from utils import now

logger = logging.getLogger(__name__)


def track_visit(db: Database, user_id) -> None:
    """Bump today's activity counter for a student; other roles are ignored."""
    _id = ObjectId(str(user_id))
    user = db[USERS].find_one({"_id": _id}, {"role": 1})
    if not user:
        logger.warning("User not found for visit tracking: %s", user_id)
        return
    if user.get("role") != "student":
        return
    today = now().strftime("%Y-%m-%d")
    res = db[USERS].update_one(
        {"_id": _id, "visits.date": today},
        {"$inc": {"visits.$.count": 1}},
    )
    if res.matched_count == 0:
        db[USERS].update_one(
            {"_id": _id, "visits.date": {"$ne": today}},
            {"$push": {"visits": {"date": today, "count": 1}}},
        )
