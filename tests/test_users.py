from conftest import auth_header, make_user
from utils import now
from visits import track_visit


def test_track_visit_counts_per_day_for_students_only(db):
    student = make_user(db, "Priya")
    teacher = make_user(db, "Dr Mehta", role="teacher")

    track_visit(db, student["_id"])
    track_visit(db, student["_id"])
    track_visit(db, teacher["_id"])

    today = now().strftime("%Y-%m-%d")
    assert db["user"].find_one({"_id": student["_id"]})["visits"] == [{"date": today, "count": 2}]
    assert db["user"].find_one({"_id": teacher["_id"]})["visits"] == []


def test_update_profile_and_me(client, db):
    student = make_user(db, "Priya")

    res = client.put("/api/users/me", json={"bio": "ML enthusiast", "skills": "python"}, headers=auth_header(student))
    assert res.status_code == 200
    assert res.json()["skills"] == ["python"]
    assert "password_hash" not in res.json()

    me = client.get("/api/users/me", headers=auth_header(student)).json()
    assert me["bio"] == "ML enthusiast"


def test_search_requires_two_characters(client, db):
    student = make_user(db, "Priya")
    make_user(db, "Pranav")
    make_user(db, "Rahul")

    assert client.get("/api/users/search", params={"q": "p"}, headers=auth_header(student)).json() == []
    names = {u["name"] for u in client.get("/api/users/search", params={"q": "PR"}, headers=auth_header(student)).json()}
    assert names == {"Priya", "Pranav"}


def test_public_profile(client, db):
    student = make_user(db, "Priya")
    teacher = make_user(db, "Dr Mehta", role="teacher")

    assert client.get(f"/api/users/{student['_id']}", headers=auth_header(student)).status_code == 400
    assert client.get("/api/users/garbage", headers=auth_header(student)).status_code == 400

    profile = client.get(f"/api/users/{teacher['_id']}", headers=auth_header(student)).json()
    assert profile["department"] == "Computer Science"
    assert "visits" not in profile
    assert "password_hash" not in profile


def test_avatar_replaces_previous_file(client, db, tmp_path):
    student = make_user(db, "Priya")

    first = client.put(
        "/api/users/avatar",
        files={"avatar": ("me.png", b"png-one", "image/png")},
        headers=auth_header(student),
    ).json()["profile_image"]
    second = client.put(
        "/api/users/avatar",
        files={"avatar": ("me.jpg", b"jpg-two", "image/jpeg")},
        headers=auth_header(student),
    ).json()["profile_image"]

    assert not (tmp_path / first).exists()
    assert (tmp_path / second).read_bytes() == b"jpg-two"
    assert db["user"].find_one({"_id": student["_id"]})["profile_image"] == second

    res = client.put(
        "/api/users/avatar",
        files={"avatar": ("cv.pdf", b"%PDF", "application/pdf")},
        headers=auth_header(student),
    )
    assert res.status_code == 400


def test_completed_projects(client, db):
    student = make_user(db, "Priya")
    res = client.post(
        "/api/users/completed-projects",
        json={"title": "Attendance App", "learnings": "OpenCV", "hackathons": ["SIH"]},
        headers=auth_header(student),
    )
    assert res.status_code == 200
    assert [p["title"] for p in res.json()] == ["Attendance App"]
