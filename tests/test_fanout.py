from pymongo.errors import PyMongoError

import fanout


def test_fan_out_skips_actor_and_duplicates(db):
    notified = fanout.fan_out(db, ["a", "b", "c", "b"], "new_message", "New Message", "hi", project_id="p1", actor_id="a")

    assert notified == ["b", "c"]
    docs = list(db["notification"].find())
    assert sorted(d["user_id"] for d in docs) == ["b", "c"]
    assert all(d["read"] is False and d["actor_id"] == "a" for d in docs)


def test_fan_out_is_best_effort(db, monkeypatch):
    real_notify = fanout.notify

    def flaky_notify(database, recipient, *args, **kwargs):
        if recipient == "b":
            raise PyMongoError("write failed")
        return real_notify(database, recipient, *args, **kwargs)

    monkeypatch.setattr(fanout, "notify", flaky_notify)
    notified = fanout.fan_out(db, ["b", "c", "d"], "new_message", "New Message", "hi", actor_id="a")

    assert notified == ["c", "d"]
    assert db["notification"].count_documents({}) == 2


def test_clear_join_request_only_removes_unread_for_that_applicant(db):
    fanout.notify(db, "admin", "join_request", "t", "m", project_id="p1", actor_id="b")
    seen = fanout.notify(db, "admin", "join_request", "t", "m", project_id="p1", actor_id="b")
    db["notification"].update_one({"_id": seen["_id"]}, {"$set": {"read": True}})
    fanout.notify(db, "admin", "join_request", "t", "m", project_id="p1", actor_id="c")

    assert fanout.clear_join_request(db, "admin", "p1", "b") == 1
    left = list(db["notification"].find())
    assert len(left) == 2
    assert {(n["actor_id"], n["read"]) for n in left} == {("b", True), ("c", False)}
