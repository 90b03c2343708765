import pytest

from chat import HISTORY_LIMIT
from conftest import EmitRecorder, auth_header, make_project, make_user, run
from realtime import ChatChannel, room_name
from security import create_token


@pytest.fixture
def emit():
    return EmitRecorder()


@pytest.fixture
def channel(db, emit):
    return ChatChannel(emit, db_getter=lambda: db)


@pytest.fixture
def team(db):
    alice = make_user(db, "Alice")
    bob = make_user(db, "Bob")
    carol = make_user(db, "Carol")
    project = make_project(db, alice, required_members=3, members=[bob, carol])
    return alice, bob, carol, project


def payload(project, user, text="hello team"):
    return {
        "projectId": str(project["_id"]),
        "message": text,
        "userId": str(user["_id"]),
        "userName": user["name"],
    }


def test_member_message_is_persisted_broadcast_and_fanned_out(db, channel, emit, team):
    alice, bob, carol, project = team
    for sid in ("bob-tab-1", "bob-tab-2", "carol", "stranger"):
        run(channel.on_connect(sid))
    for sid in ("bob-tab-1", "bob-tab-2", "carol"):
        run(channel.on_join_room(sid, str(project["_id"])))

    run(channel.on_send_message("bob-tab-1", payload(project, bob)))

    stored = list(db["chat_message"].find())
    assert len(stored) == 1
    assert stored[0]["user_name"] == "Bob"

    for sid in ("bob-tab-1", "bob-tab-2", "carol"):
        received = emit.to(sid, "newMessage")
        assert len(received) == 1
        assert received[0]["id"] == str(stored[0]["_id"])
        assert received[0]["message"] == "hello team"
    assert emit.to("stranger") == []

    notes = list(db["notification"].find({"type": "new_message"}))
    assert sorted(n["user_id"] for n in notes) == sorted([str(alice["_id"]), str(carol["_id"])])


def test_non_member_cannot_send(db, channel, emit, team):
    _, _, _, project = team
    outsider = make_user(db, "Oscar")
    run(channel.on_connect("oscar"))
    run(channel.on_join_room("oscar", str(project["_id"])))

    run(channel.on_send_message("oscar", payload(project, outsider)))

    assert db["chat_message"].count_documents({}) == 0
    assert db["notification"].count_documents({}) == 0
    assert emit.to("oscar", "error") == [{"message": "Only project members can send messages"}]
    assert emit.to("oscar", "newMessage") == []


def test_missing_fields_and_unknown_project(db, channel, emit, team):
    _, bob, _, project = team
    run(channel.on_connect("bob"))

    incomplete = payload(project, bob)
    del incomplete["userName"]
    run(channel.on_send_message("bob", incomplete))
    unknown = dict(payload(project, bob), projectId="0123456789abcdef01234567")
    run(channel.on_send_message("bob", unknown))

    assert emit.to("bob", "error") == [{"message": "Missing required fields"}, {"message": "Project not found"}]
    assert db["chat_message"].count_documents({}) == 0


def test_authenticated_socket_cannot_impersonate(db, channel, emit, team):
    alice, bob, _, project = team
    run(channel.on_connect("bob", {"token": create_token(bob)}))

    run(channel.on_send_message("bob", payload(project, alice)))

    assert emit.to("bob", "error") == [{"message": "Cannot send messages as another user"}]
    assert db["chat_message"].count_documents({}) == 0


def test_recipients_with_live_sockets_get_notification_event(db, channel, emit, team):
    alice, bob, _, project = team
    run(channel.on_connect("alice", {"token": create_token(alice)}))
    run(channel.on_connect("bob"))

    run(channel.on_send_message("bob", payload(project, bob)))

    assert emit.to("alice", "notification") == [{"userId": str(alice["_id"])}]


def test_leave_and_disconnect_stop_broadcasts(db, channel, emit, team):
    _, bob, carol, project = team
    room = room_name(project["_id"])
    for sid in ("bob", "carol", "carol-2"):
        run(channel.on_connect(sid))
        run(channel.on_join_room(sid, str(project["_id"])))
    run(channel.on_leave_room("carol", str(project["_id"])))
    run(channel.on_disconnect("carol-2"))

    assert channel.registry.members(room) == ["bob"]
    assert len(channel.registry) == 2

    run(channel.on_send_message("bob", payload(project, bob)))
    assert emit.to("carol", "newMessage") == []
    assert emit.to("carol-2", "newMessage") == []


def test_sent_message_round_trips_through_history(client, db, channel, emit, team):
    alice, bob, _, project = team
    run(channel.on_connect("bob"))
    run(channel.on_join_room("bob", str(project["_id"])))
    run(channel.on_send_message("bob", payload(project, bob, "first")))
    run(channel.on_send_message("bob", payload(project, bob, "second")))
    broadcast = emit.to("bob", "newMessage")

    res = client.get(f"/api/chat/{project['_id']}", headers=auth_header(alice))

    assert res.status_code == 200
    history = res.json()
    assert [m["message"] for m in history] == ["first", "second"]
    for sent, read in zip(broadcast, history):
        assert read["id"] == sent["id"]
        assert read["timestamp"] == sent["timestamp"]
        assert read["user_id"] == str(bob["_id"])
        assert read["user_name"] == "Bob"


def test_history_is_membership_gated(client, db, team):
    _, _, _, project = team
    outsider = make_user(db, "Oscar")
    res = client.get(f"/api/chat/{project['_id']}", headers=auth_header(outsider))
    assert res.status_code == 403


def test_history_returns_latest_messages_oldest_first(client, db, team):
    alice, _, _, project = team
    from chat import post_message

    for i in range(HISTORY_LIMIT + 5):
        post_message(db, str(project["_id"]), str(alice["_id"]), "Alice", f"msg {i}")

    history = client.get(f"/api/chat/{project['_id']}", headers=auth_header(alice)).json()
    assert len(history) == HISTORY_LIMIT
    assert history[0]["message"] == "msg 5"
    assert history[-1]["message"] == f"msg {HISTORY_LIMIT + 4}"


def test_room_ignores_project_id_case(db, channel, emit, team):
    _, bob, carol, project = team
    run(channel.on_connect("bob"))
    run(channel.on_connect("carol"))
    run(channel.on_join_room("carol", str(project["_id"]).upper()))

    run(channel.on_send_message("bob", payload(project, bob)))

    assert room_name(str(project["_id"]).upper()) == room_name(project["_id"])
    assert len(emit.to("carol", "newMessage")) == 1
