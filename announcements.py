import json
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pymongo.database import Database

import uploads
from database import ANNOUNCEMENTS, create_document, get_db
from schemas import Announcement, Attachment
from security import get_current_user, require_role
from utils import as_utc, now, oid, query_time, serialize_doc, user_summaries

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/announcements", tags=["announcements"])

MAX_ATTACHMENTS = 5
ATTACHMENT_EXTENSIONS = uploads.IMAGE_EXTENSIONS | uploads.PDF_EXTENSIONS


def parse_deadline(value: Optional[str]) -> Optional[datetime]:
    if not value or not value.strip():
        return None
    try:
        return as_utc(datetime.fromisoformat(value.strip()))
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid deadline format")


def parse_links(value: Optional[str]) -> List[dict]:
    if not value:
        return []
    try:
        links = json.loads(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="links must be a JSON list")
    if not isinstance(links, list):
        raise HTTPException(status_code=400, detail="links must be a JSON list")
    out = []
    for link in links:
        url = (link.get("url") or "").strip() if isinstance(link, dict) else ""
        if url:
            out.append(Attachment(type="link", url=url, name=link.get("name") or url).model_dump())
    return out


def store_attachments(files: Optional[List[UploadFile]], owner_id: str) -> List[dict]:
    files = [f for f in (files or []) if f.filename]
    if len(files) > MAX_ATTACHMENTS:
        raise HTTPException(status_code=400, detail=f"At most {MAX_ATTACHMENTS} attachments are allowed")
    stored = []
    try:
        for f in files:
            url = uploads.save_upload(f, "announcements", owner_id, ATTACHMENT_EXTENSIONS, uploads.ATTACHMENT_MAX_BYTES)
            kind = "image" if uploads.is_image(f) else "pdf"
            stored.append(Attachment(type=kind, url=url, name=f.filename).model_dump())
    except HTTPException:
        for a in stored:
            uploads.delete_upload(a["url"])
        raise
    return stored


def present(db: Database, items: List[dict]) -> List[dict]:
    authors = user_summaries(db, [a["author"] for a in items], ("name", "email"))
    out = []
    for a in items:
        d = serialize_doc(a)
        d["author"] = authors.get(a["author"], {"id": a["author"]})
        out.append(d)
    return out


def load_own_announcement(db: Database, announcement_id: str, user: dict, action: str) -> dict:
    require_role(user, ["teacher"], f"Only teachers can {action} announcements")
    announcement = db[ANNOUNCEMENTS].find_one({"_id": oid(announcement_id)})
    if not announcement:
        raise HTTPException(status_code=404, detail="Announcement not found")
    if announcement.get("author") != str(user["_id"]):
        raise HTTPException(status_code=403, detail=f"You can only {action} your own announcements")
    return announcement


@router.get("")
def list_active(current=Depends(get_current_user), db: Database = Depends(get_db)):
    q = {
        "is_active": True,
        "$or": [{"deadline": None}, {"deadline": {"$gte": query_time(now())}}],
    }
    return present(db, list(db[ANNOUNCEMENTS].find(q).sort("created_at", -1)))


@router.get("/all")
def list_all(current=Depends(get_current_user), db: Database = Depends(get_db)):
    require_role(current, ["teacher"], "Only teachers can view all announcements")
    return present(db, list(db[ANNOUNCEMENTS].find().sort("created_at", -1)))


@router.post("", status_code=201)
def create_announcement(
    title: str = Form(...),
    content: str = Form(...),
    deadline: Optional[str] = Form(None),
    links: Optional[str] = Form(None),
    attachments: Optional[List[UploadFile]] = File(None),
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_role(current, ["teacher"], "Only teachers can create announcements")
    if not title.strip() or not content.strip():
        raise HTTPException(status_code=400, detail="Title and content are required")
    parsed_deadline = parse_deadline(deadline)
    link_items = parse_links(links)
    files = store_attachments(attachments, str(current["_id"]))

    announcement = Announcement(
        title=title.strip(),
        content=content.strip(),
        author=str(current["_id"]),
        attachments=files + link_items,
        deadline=parsed_deadline,
    )
    doc = create_document(ANNOUNCEMENTS, announcement)
    logger.info("Announcement %s created by %s", doc["_id"], current["_id"])
    return present(db, [doc])[0]


@router.put("/{announcement_id}")
def update_announcement(
    announcement_id: str,
    title: Optional[str] = Form(None),
    content: Optional[str] = Form(None),
    deadline: Optional[str] = Form(None),
    links: Optional[str] = Form(None),
    attachments: Optional[List[UploadFile]] = File(None),
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    announcement = load_own_announcement(db, announcement_id, current, "update")
    data = {}
    if title and title.strip():
        data["title"] = title.strip()
    if content and content.strip():
        data["content"] = content.strip()
    if deadline is not None:
        data["deadline"] = parse_deadline(deadline)
    new_items = parse_links(links)
    new_items = store_attachments(attachments, str(current["_id"])) + new_items

    update = {"$set": {**data, "updated_at": now()}}
    if new_items:
        update["$push"] = {"attachments": {"$each": new_items}}
    db[ANNOUNCEMENTS].update_one({"_id": announcement["_id"]}, update)
    refreshed = db[ANNOUNCEMENTS].find_one({"_id": announcement["_id"]})
    return present(db, [refreshed])[0]


@router.delete("/{announcement_id}")
def delete_announcement(announcement_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    announcement = load_own_announcement(db, announcement_id, current, "delete")
    for attachment in announcement.get("attachments", []):
        if attachment.get("type") in ("image", "pdf"):
            uploads.delete_upload(attachment.get("url"))
    db[ANNOUNCEMENTS].delete_one({"_id": announcement["_id"]})
    logger.info("Announcement %s deleted", announcement_id)
    return {"message": "Announcement deleted successfully"}


@router.put("/{announcement_id}/toggle")
def toggle_announcement(announcement_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    announcement = load_own_announcement(db, announcement_id, current, "toggle")
    db[ANNOUNCEMENTS].update_one(
        {"_id": announcement["_id"]},
        {"$set": {"is_active": not announcement.get("is_active", True), "updated_at": now()}},
    )
    refreshed = db[ANNOUNCEMENTS].find_one({"_id": announcement["_id"]})
    return present(db, [refreshed])[0]
