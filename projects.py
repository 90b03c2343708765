import logging
import re
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from pymongo.database import Database

import membership
from database import PROJECTS, create_document, get_db
from fanout import notify
from schemas import Project, ProjectStatus, ProjectType
from security import get_current_user
from side_effects import dispatch
from utils import USER_SUMMARY_FIELDS, as_utc, expand_users, now, oid, query_time, serialize_doc, user_summaries
from visits import track_visit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["projects"])

HACKATHON = "Hackathon Team Requirement"
DETAIL_USER_FIELDS = ("name", "email", "profile_image", "roll_number", "course")


class ProjectCreate(BaseModel):
    title: str
    description: str
    tech_stack: List[str] = []
    type: ProjectType
    required_members: int = Field(..., ge=1)
    deadline: Optional[datetime] = None
    github_link: Optional[str] = None


class ProjectUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    tech_stack: Optional[List[str]] = None
    required_members: Optional[int] = Field(None, ge=1)
    deadline: Optional[datetime] = None
    github_link: Optional[str] = None
    status: Optional[ProjectStatus] = None


def present_projects(db: Database, projects: List[dict], fields=None) -> List[dict]:
    """Serialize projects with admin and members expanded to user summaries."""
    ids = []
    for p in projects:
        ids.extend(membership.participants(p))
    summaries = user_summaries(db, ids, fields or USER_SUMMARY_FIELDS)
    out = []
    for p in projects:
        d = serialize_doc(p)
        d["admin"] = summaries.get(str(p.get("admin")), {"id": str(p.get("admin"))})
        d["members"] = expand_users([str(m) for m in p.get("members", [])], summaries)
        out.append(d)
    return out


def load_project(db: Database, project_id: str) -> dict:
    project = db[PROJECTS].find_one({"_id": oid(project_id)})
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


def require_project_admin(project: dict, user: dict, action: str) -> None:
    if not membership.is_admin(project, user["_id"]):
        raise HTTPException(status_code=403, detail=f"Only project owner can {action}")


@router.post("", status_code=201)
def create_project(
    body: ProjectCreate,
    background_tasks: BackgroundTasks,
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if not body.title.strip() or not body.description.strip():
        raise HTTPException(status_code=400, detail="Please fill all required fields")
    admin_id = str(current["_id"])
    project = Project(
        title=body.title.strip(),
        description=body.description,
        tech_stack=body.tech_stack,
        type=body.type,
        required_members=body.required_members,
        admin=admin_id,
        members=[admin_id],
        deadline=as_utc(body.deadline) if body.deadline else None,
        github_link=body.github_link or None,
    )
    doc = create_document(PROJECTS, project)
    dispatch(background_tasks, track_visit, db, current["_id"])
    logger.info("Project %s created by %s", doc["_id"], admin_id)
    return present_projects(db, [doc])[0]


@router.get("")
def list_projects(
    project_type: Optional[str] = Query(None, alias="type"),
    search: Optional[str] = None,
    tech_stack: Optional[List[str]] = Query(None),
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    q = {}
    if project_type:
        q["type"] = project_type
        if project_type == HACKATHON:
            # expired hackathon calls are hidden
            q["deadline"] = {"$gte": query_time(now())}
    if search:
        pattern = re.escape(search)
        q["$or"] = [
            {"title": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]
    if tech_stack:
        q["tech_stack"] = {"$in": tech_stack}
    projects = list(db[PROJECTS].find(q).sort("created_at", -1))
    return present_projects(db, projects)


@router.get("/{project_id}")
def get_project(
    project_id: str,
    background_tasks: BackgroundTasks,
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    project = load_project(db, project_id)
    dispatch(background_tasks, track_visit, db, current["_id"])
    return present_projects(db, [project], DETAIL_USER_FIELDS)[0]


@router.put("/{project_id}")
def update_project(
    project_id: str,
    body: ProjectUpdate,
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    project = load_project(db, project_id)
    require_project_admin(project, current, "update")

    data = {}
    for field in ("title", "description", "required_members", "status"):
        value = getattr(body, field)
        if value:
            data[field] = value
    if body.tech_stack is not None:
        data["tech_stack"] = body.tech_stack
    fields_set = body.model_fields_set
    if "deadline" in fields_set:
        data["deadline"] = as_utc(body.deadline) if body.deadline else None
    if "github_link" in fields_set:
        data["github_link"] = body.github_link or None
    if data:
        data["updated_at"] = now()
        db[PROJECTS].update_one({"_id": project["_id"]}, {"$set": data})
    refreshed = db[PROJECTS].find_one({"_id": project["_id"]})
    return present_projects(db, [refreshed])[0]


@router.delete("/{project_id}")
def delete_project(project_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    project = load_project(db, project_id)
    require_project_admin(project, current, "delete")
    db[PROJECTS].delete_one({"_id": project["_id"]})
    # requests, chat history and notifications are retained
    logger.info("Project %s deleted; related requests, chat and notifications kept", project_id)
    return {"message": "Project deleted successfully"}


@router.delete("/{project_id}/members/{member_id}")
def remove_member(
    project_id: str,
    member_id: str,
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    project = load_project(db, project_id)
    require_project_admin(project, current, "remove members")
    if membership.is_admin(project, member_id):
        raise HTTPException(status_code=400, detail="Cannot remove project owner")
    if not membership.is_member(project, member_id):
        raise HTTPException(status_code=404, detail="Member not found in project")

    db[PROJECTS].update_one(
        {"_id": project["_id"]},
        {"$pull": {"members": member_id}, "$set": {"updated_at": now()}},
    )
    notify(
        db,
        member_id,
        "member_removed",
        "Removed from Project",
        f'You have been removed from "{project["title"]}"',
        project_id=project["_id"],
        actor_id=current["_id"],
    )
    refreshed = db[PROJECTS].find_one({"_id": project["_id"]})
    return present_projects(db, [refreshed])[0]
