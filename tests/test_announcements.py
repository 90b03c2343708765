import json
import os
from datetime import timedelta

from conftest import auth_header, make_user
from utils import now


def post_announcement(client, user, files=None, **form):
    data = {"title": "Hackathon orientation", "content": "Auditorium, 10am"}
    data.update(form)
    return client.post("/api/announcements", data=data, files=files, headers=auth_header(user))


def test_teacher_creates_with_links_student_cannot(client, db):
    teacher = make_user(db, "Dr Mehta", role="teacher")
    student = make_user(db, "Priya")
    links = json.dumps([{"url": "https://forms.example.com/register", "name": "Register"}, {"url": " "}])

    res = post_announcement(client, teacher, links=links)
    assert res.status_code == 201
    body = res.json()
    assert body["author"]["name"] == "Dr Mehta"
    assert body["attachments"] == [
        {"type": "link", "url": "https://forms.example.com/register", "name": "Register"}
    ]
    assert body["is_active"] is True

    assert post_announcement(client, student).status_code == 403
    assert post_announcement(client, teacher, links="not json").status_code == 400
    assert post_announcement(client, teacher, deadline="tomorrow").status_code == 400
    assert db["announcement"].count_documents({}) == 1


def test_active_listing_respects_toggle_and_deadline(client, db):
    teacher = make_user(db, "Dr Mehta", role="teacher")
    student = make_user(db, "Priya")
    open_id = post_announcement(client, teacher, title="Open").json()["id"]
    past = (now() - timedelta(days=1)).isoformat()
    post_announcement(client, teacher, title="Expired", deadline=past)
    toggled_id = post_announcement(client, teacher, title="Paused").json()["id"]

    res = client.put(f"/api/announcements/{toggled_id}/toggle", headers=auth_header(teacher))
    assert res.json()["is_active"] is False

    active = client.get("/api/announcements", headers=auth_header(student)).json()
    assert [a["id"] for a in active] == [open_id]

    assert client.get("/api/announcements/all", headers=auth_header(student)).status_code == 403
    everything = client.get("/api/announcements/all", headers=auth_header(teacher)).json()
    assert len(everything) == 3


def test_only_author_can_manage(client, db):
    author = make_user(db, "Dr Mehta", role="teacher")
    colleague = make_user(db, "Dr Rao", role="teacher")
    student = make_user(db, "Priya")
    announcement_id = post_announcement(client, author).json()["id"]

    url = f"/api/announcements/{announcement_id}"
    assert client.put(f"{url}/toggle", headers=auth_header(colleague)).status_code == 403
    assert client.delete(url, headers=auth_header(student)).status_code == 403
    assert client.put(url, data={"title": "Changed"}, headers=auth_header(colleague)).status_code == 403

    res = client.put(url, data={"title": "Changed"}, headers=auth_header(author))
    assert res.status_code == 200
    assert res.json()["title"] == "Changed"
    assert res.json()["content"] == "Auditorium, 10am"


def test_attachment_upload_and_delete_removes_file(client, db, tmp_path):
    teacher = make_user(db, "Dr Mehta", role="teacher")
    files = [("attachments", ("poster.png", b"\x89PNG fake image bytes", "image/png"))]

    res = post_announcement(client, teacher, files=files)
    assert res.status_code == 201
    attachment = res.json()["attachments"][0]
    assert attachment["type"] == "image"
    assert attachment["url"].startswith("uploads/announcements/")
    stored = tmp_path / attachment["url"]
    assert stored.exists()

    res = client.delete(f"/api/announcements/{res.json()['id']}", headers=auth_header(teacher))
    assert res.status_code == 200
    assert not stored.exists()
    assert db["announcement"].count_documents({}) == 0


def test_rejects_unsupported_attachment_type(client, db, tmp_path):
    teacher = make_user(db, "Dr Mehta", role="teacher")
    files = [("attachments", ("notes.txt", b"plain text", "text/plain"))]

    res = post_announcement(client, teacher, files=files)

    assert res.status_code == 400
    assert db["announcement"].count_documents({}) == 0
    folder = tmp_path / "uploads" / "announcements"
    assert not folder.exists() or os.listdir(folder) == []
