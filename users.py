import logging
import re
from typing import List, Optional, Union

from bson import ObjectId
from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel
from pymongo.database import Database

import uploads
from database import USERS, get_db
from schemas import CompletedProject
from security import get_current_user
from side_effects import dispatch
from utils import now, serialize_doc, strip_private
from visits import track_visit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

SEARCH_LIMIT = 10


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    bio: Optional[str] = None
    skills: Optional[Union[List[str], str]] = None
    github_id: Optional[str] = None
    linkedin_id: Optional[str] = None


class CompletedProjectCreate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    learnings: Optional[str] = None
    github_link: Optional[str] = None
    hackathons: List[str] = []


def _public(user: dict) -> dict:
    return serialize_doc(strip_private(user))


@router.get("/me")
def me(background_tasks: BackgroundTasks, current=Depends(get_current_user), db: Database = Depends(get_db)):
    if current.get("role") == "student":
        dispatch(background_tasks, track_visit, db, current["_id"])
    return _public(current)


@router.put("/me")
def update_me(update: ProfileUpdate, current=Depends(get_current_user), db: Database = Depends(get_db)):
    data = {}
    if update.name:
        data["name"] = update.name.strip()
    for field in ("bio", "github_id", "linkedin_id"):
        value = getattr(update, field)
        if value is not None:
            data[field] = value
    if update.skills:
        data["skills"] = update.skills if isinstance(update.skills, list) else [update.skills]
    if not data:
        return _public(current)
    data["updated_at"] = now()
    db[USERS].update_one({"_id": current["_id"]}, {"$set": data})
    refreshed = db[USERS].find_one({"_id": current["_id"]})
    return _public(refreshed)


@router.get("/search")
def search_users(q: Optional[str] = None, current=Depends(get_current_user), db: Database = Depends(get_db)):
    if not q or len(q.strip()) < 2:
        return []
    projection = {"name": 1, "email": 1, "profile_image": 1, "role": 1, "course": 1, "department": 1}
    cursor = db[USERS].find({"name": {"$regex": re.escape(q.strip()), "$options": "i"}}, projection).limit(SEARCH_LIMIT)
    return [serialize_doc(u) for u in cursor]


@router.put("/avatar")
def upload_avatar(
    avatar: UploadFile = File(...),
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if not uploads.is_image(avatar):
        raise HTTPException(status_code=400, detail="Invalid file type. Only image files are allowed.")
    path = uploads.save_upload(
        avatar, "avatars", str(current["_id"]), uploads.IMAGE_EXTENSIONS, uploads.AVATAR_MAX_BYTES
    )
    res = db[USERS].update_one({"_id": current["_id"]}, {"$set": {"profile_image": path, "updated_at": now()}})
    if res.matched_count == 0:
        uploads.delete_upload(path)
        raise HTTPException(status_code=404, detail="User not found")
    uploads.delete_upload(current.get("profile_image"))
    logger.info("Avatar updated for user %s", current["_id"])
    return {
        "user": {"id": str(current["_id"]), "name": current.get("name"), "profile_image": path},
        "profile_image": path,
    }


@router.post("/completed-projects")
def add_completed_project(
    body: CompletedProjectCreate,
    background_tasks: BackgroundTasks,
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    entry = CompletedProject(**body.model_dump(), created_at=now()).model_dump()
    db[USERS].update_one(
        {"_id": current["_id"]},
        {"$push": {"completed_projects": entry}, "$set": {"updated_at": now()}},
    )
    dispatch(background_tasks, track_visit, db, current["_id"])
    refreshed = db[USERS].find_one({"_id": current["_id"]}, {"completed_projects": 1})
    return serialize_doc(refreshed).get("completed_projects", [])


@router.get("/{user_id}")
def get_user(user_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    if user_id == str(current["_id"]) or user_id == "me":
        raise HTTPException(status_code=400, detail="Use /users/me to get your own profile")
    if not ObjectId.is_valid(user_id):
        raise HTTPException(status_code=400, detail="Invalid user ID format")
    user = db[USERS].find_one({"_id": ObjectId(user_id)})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    result = _public(user)
    # only students have an activity calendar
    if user.get("role") != "student":
        result.pop("visits", None)
    return result
