"""
Join-request workflow: Pending -> Accepted | Rejected, driven by the project admin.
"""
import logging
from typing import List

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from pymongo import ReturnDocument
from pymongo.database import Database

import membership
from database import PROJECTS, REQUESTS, create_document, get_db
from fanout import clear_join_request, notify
from schemas import Request as RequestSchema
from security import get_current_user
from utils import now, oid, serialize_doc, user_summaries

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/requests", tags=["requests"])

APPLICANT_FIELDS = ("name", "email", "profile_image", "roll_number", "course")


class SendRequest(BaseModel):
    project_id: str
    message: str


def _project_summaries(db: Database, project_ids: List[str], fields=("title",)) -> dict:
    ids = [ObjectId(p) for p in set(project_ids) if ObjectId.is_valid(p)]
    if not ids:
        return {}
    projection = {f: 1 for f in fields}
    return {str(p["_id"]): serialize_doc(p) for p in db[PROJECTS].find({"_id": {"$in": ids}}, projection)}


def present_requests(db: Database, requests: List[dict], project_fields=("title",), user_fields=None) -> List[dict]:
    projects = _project_summaries(db, [r["project_id"] for r in requests], project_fields)
    users = user_summaries(db, [r["user_id"] for r in requests], user_fields) if user_fields else {}
    out = []
    for r in requests:
        d = serialize_doc(r)
        d["project"] = projects.get(r["project_id"], {"id": r["project_id"]})
        if user_fields:
            d["user"] = users.get(r["user_id"], {"id": r["user_id"]})
        out.append(d)
    return out


def load_request_for_admin(db: Database, request_id: str, user: dict, action: str):
    req = db[REQUESTS].find_one({"_id": oid(request_id)})
    if not req:
        raise HTTPException(status_code=404, detail="Request not found")
    project = db[PROJECTS].find_one({"_id": oid(req["project_id"])})
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    if not membership.is_admin(project, user["_id"]):
        raise HTTPException(status_code=403, detail=f"Only project owner can {action} requests")
    if req.get("status") != "Pending":
        raise HTTPException(status_code=400, detail="Request already processed")
    return req, project


def add_member_within_capacity(db: Database, project: dict, user_id: str) -> bool:
    """Append user_id to members only while the project still has a free slot.

    The capacity check and the append are a single conditional update: the
    filter only matches while members has fewer than required_members entries.
    """
    required = int(project["required_members"])
    res = db[PROJECTS].update_one(
        {"_id": project["_id"], f"members.{required - 1}": {"$exists": False}},
        {"$addToSet": {"members": user_id}, "$set": {"updated_at": now()}},
    )
    return res.matched_count == 1


def claim_request(db: Database, req: dict, status: str) -> dict:
    """Move a Pending request to `status`; 400 if another decision got there first."""
    claimed = db[REQUESTS].find_one_and_update(
        {"_id": req["_id"], "status": "Pending"},
        {"$set": {"status": status, "updated_at": now()}},
        return_document=ReturnDocument.AFTER,
    )
    if claimed is None:
        raise HTTPException(status_code=400, detail="Request already processed")
    return claimed


def is_full(project: dict) -> bool:
    return len(project.get("members", [])) >= int(project["required_members"])


@router.post("/send", status_code=201)
def send_request(body: SendRequest, current=Depends(get_current_user), db: Database = Depends(get_db)):
    if not body.project_id or not body.message.strip():
        raise HTTPException(status_code=400, detail="Project ID and message are required")
    project = db[PROJECTS].find_one({"_id": oid(body.project_id)})
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    project_id = str(project["_id"])
    user_id = str(current["_id"])
    if membership.is_participant(project, user_id):
        raise HTTPException(status_code=400, detail="You are already a member")
    if db[REQUESTS].find_one({"project_id": project_id, "user_id": user_id, "status": "Pending"}):
        raise HTTPException(status_code=400, detail="Request already sent")

    doc = create_document(REQUESTS, RequestSchema(project_id=project_id, user_id=user_id, message=body.message))
    notify(
        db,
        project["admin"],
        "join_request",
        "New Join Request",
        f'{current.get("name")} requested to join "{project["title"]}"',
        project_id=project_id,
        actor_id=user_id,
    )
    logger.info("Join request %s from %s for project %s", doc["_id"], user_id, project_id)
    return present_requests(db, [doc], user_fields=("name", "email", "profile_image"))[0]


@router.get("/my")
def my_requests(current=Depends(get_current_user), db: Database = Depends(get_db)):
    reqs = list(db[REQUESTS].find({"user_id": str(current["_id"])}).sort("created_at", -1))
    return present_requests(db, reqs, project_fields=("title", "description", "admin", "members"))


@router.get("/received")
def received_requests(current=Depends(get_current_user), db: Database = Depends(get_db)):
    project_ids = [str(p["_id"]) for p in db[PROJECTS].find({"admin": str(current["_id"])}, {"_id": 1})]
    if not project_ids:
        return []
    reqs = list(
        db[REQUESTS].find({"project_id": {"$in": project_ids}, "status": "Pending"}).sort("created_at", -1)
    )
    return present_requests(db, reqs, user_fields=APPLICANT_FIELDS)


@router.put("/accept/{request_id}")
def accept_request(request_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    req, project = load_request_for_admin(db, request_id, current, "accept")
    applicant = req["user_id"]
    already_member = membership.is_member(project, applicant)
    if already_member and is_full(project):
        raise HTTPException(status_code=400, detail="Project is full")

    claimed = claim_request(db, req, "Accepted")
    if not already_member and not add_member_within_capacity(db, project, applicant):
        # undo the claim; the request stays decidable
        db[REQUESTS].update_one(
            {"_id": req["_id"], "status": "Accepted"},
            {"$set": {"status": "Pending", "updated_at": now()}},
        )
        raise HTTPException(status_code=400, detail="Project is full")

    clear_join_request(db, project["admin"], req["project_id"], applicant)
    notify(
        db,
        applicant,
        "request_accepted",
        "Request Accepted",
        f'Your request to join "{project["title"]}" has been accepted',
        project_id=req["project_id"],
        actor_id=current["_id"],
    )
    logger.info("Request %s accepted", request_id)
    return present_requests(db, [claimed])[0]


@router.put("/reject/{request_id}")
def reject_request(request_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    req, project = load_request_for_admin(db, request_id, current, "reject")
    applicant = req["user_id"]

    claimed = claim_request(db, req, "Rejected")
    clear_join_request(db, project["admin"], req["project_id"], applicant)
    notify(
        db,
        applicant,
        "request_rejected",
        "Request Rejected",
        f'Your request to join "{project["title"]}" was not accepted',
        project_id=req["project_id"],
        actor_id=current["_id"],
    )
    logger.info("Request %s rejected", request_id)
    return present_requests(db, [claimed])[0]
