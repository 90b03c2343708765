from fastapi import APIRouter, Depends, HTTPException
from bson import ObjectId
from pymongo.database import Database

from database import NOTIFICATIONS, PROJECTS, get_db
from security import get_current_user
from utils import now, oid, serialize_doc

router = APIRouter(prefix="/notifications", tags=["notifications"])

LIST_LIMIT = 50


@router.get("")
def list_notifications(current=Depends(get_current_user), db: Database = Depends(get_db)):
    items = list(
        db[NOTIFICATIONS].find({"user_id": str(current["_id"])}).sort("created_at", -1).limit(LIST_LIMIT)
    )
    project_ids = [ObjectId(n["project_id"]) for n in items if n.get("project_id") and ObjectId.is_valid(n["project_id"])]
    titles = {}
    if project_ids:
        titles = {str(p["_id"]): p.get("title") for p in db[PROJECTS].find({"_id": {"$in": project_ids}}, {"title": 1})}
    out = []
    for n in items:
        d = serialize_doc(n)
        pid = n.get("project_id")
        d["project"] = {"id": pid, "title": titles.get(pid)} if pid else None
        out.append(d)
    return out


@router.get("/unread-count")
def unread_count(current=Depends(get_current_user), db: Database = Depends(get_db)):
    count = db[NOTIFICATIONS].count_documents({"user_id": str(current["_id"]), "read": False})
    return {"count": count}


@router.put("/read-all")
def mark_all_read(current=Depends(get_current_user), db: Database = Depends(get_db)):
    res = db[NOTIFICATIONS].update_many(
        {"user_id": str(current["_id"]), "read": False},
        {"$set": {"read": True, "updated_at": now()}},
    )
    return {"message": "All notifications marked as read", "updated": res.modified_count}


@router.put("/{notification_id}/read")
def mark_read(notification_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    notification = db[NOTIFICATIONS].find_one({"_id": oid(notification_id)})
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    if notification.get("user_id") != str(current["_id"]):
        raise HTTPException(status_code=403, detail="Unauthorized")
    db[NOTIFICATIONS].update_one({"_id": notification["_id"]}, {"$set": {"read": True, "updated_at": now()}})
    notification["read"] = True
    return serialize_doc(notification)
