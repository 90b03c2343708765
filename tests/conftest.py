import asyncio
from datetime import datetime, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import uploads
from security import create_token, hash_password

DOMAIN = "geetauniversity.edu.in"
PASSWORD = "secret123"
# hashed once; bcrypt is slow
PASSWORD_HASH = hash_password(PASSWORD)

_roll = iter(range(1000, 100000))


@pytest.fixture
def db(monkeypatch):
    mock_db = mongomock.MongoClient()["gu_collab_test"]
    monkeypatch.setattr(database, "db", mock_db)
    return mock_db


@pytest.fixture
def client(db, tmp_path, monkeypatch):
    monkeypatch.setattr(uploads, "UPLOAD_ROOT", str(tmp_path))
    import main

    return TestClient(main.app)


def make_user(db, name, role="student", email=None):
    doc = {
        "name": name,
        "email": email or f"{name.lower().replace(' ', '.')}@{DOMAIN}",
        "password_hash": PASSWORD_HASH,
        "role": role,
        "bio": "",
        "skills": [],
        "visits": [],
        "completed_projects": [],
        "created_at": datetime.now(timezone.utc),
    }
    if role == "student":
        doc["course"] = "B.Tech CSE"
        doc["roll_number"] = str(next(_roll))
    else:
        doc["department"] = "Computer Science"
    doc["_id"] = db["user"].insert_one(doc).inserted_id
    return doc


def make_project(db, admin, required_members=2, members=None, title="Campus Navigator", **extra):
    admin_id = str(admin["_id"])
    doc = {
        "title": title,
        "description": "Indoor maps for the campus",
        "tech_stack": ["python", "react"],
        "type": "Project",
        "required_members": required_members,
        "admin": admin_id,
        "members": [admin_id] + [str(m["_id"]) for m in (members or [])],
        "deadline": None,
        "github_link": None,
        "status": "Active",
        "created_at": datetime.now(timezone.utc),
    }
    doc.update(extra)
    doc["_id"] = db["project"].insert_one(doc).inserted_id
    return doc


def auth_header(user):
    return {"Authorization": f"Bearer {create_token(user)}"}


class EmitRecorder:
    """Stands in for AsyncServer.emit and records (to, event, data)."""

    def __init__(self):
        self.events = []

    async def __call__(self, event, data=None, to=None, **kwargs):
        self.events.append((to, event, data))

    def to(self, sid, event=None):
        return [d for t, e, d in self.events if t == sid and (event is None or e == event)]


def run(coro):
    return asyncio.run(coro)
