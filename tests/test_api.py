from app import status_for
from conftest import headers_for
from errors import Forbidden, InvalidOperation, NotFound, OperationTimeout, StoreUnavailable, VersionConflict


def _create_room(client, user, title=None):
    response = client.post("/rooms/", json={"title": title}, headers=headers_for(user))
    assert response.status_code == 201
    return response.json()


def test_error_status_mapping():
    assert status_for(NotFound("x")) == 404
    assert status_for(Forbidden("x")) == 403
    assert status_for(VersionConflict("r1")) == 409
    assert status_for(InvalidOperation("x")) == 400
    assert status_for(OperationTimeout("x")) == 504
    assert status_for(StoreUnavailable("x")) == 503


def test_missing_identity_is_rejected(client):
    assert client.get("/rooms/").status_code == 401


def test_create_and_read_room(client, owner):
    created = _create_room(client, owner)

    response = client.get(f"/rooms/{created['id']}", headers=headers_for(owner))

    assert response.status_code == 200
    body = response.json()
    assert body["title"] == "Untitled"
    assert body["access_level"] == "OWNER"
    assert body["users_accesses"] == {owner.email: ["room:write"]}


def test_stranger_is_forbidden(client, owner, stranger):
    created = _create_room(client, owner)

    response = client.get(f"/rooms/{created['id']}", headers=headers_for(stranger))

    assert response.status_code == 403
    assert response.json()["error"] == "Forbidden"


def test_share_grants_access_and_notifies(client, owner, editor):
    room_id = _create_room(client, owner)["id"]

    response = client.put(
        f"/rooms/{room_id}/access",
        json={"email": editor.email, "user_type": "editor"},
        headers=headers_for(owner),
    )

    assert response.status_code == 200
    assert client.get(f"/rooms/{room_id}", headers=headers_for(editor)).json()["access_level"] == "WRITE"
    inbox = client.get("/notifications/", headers=headers_for(editor)).json()
    assert inbox[0]["kind"] == "$documentAccess"
    assert inbox[0]["payload"]["updatedBy"] == owner.name
    assert [r["id"] for r in client.get("/rooms/", headers=headers_for(editor)).json()] == [room_id]


def test_removing_owner_is_a_bad_request(client, owner):
    room_id = _create_room(client, owner)["id"]

    response = client.delete(f"/rooms/{room_id}/access/{owner.email}", headers=headers_for(owner))

    assert response.status_code == 400


def test_rename_and_delete(client, owner):
    room_id = _create_room(client, owner)["id"]

    renamed = client.patch(f"/rooms/{room_id}", json={"title": "Spec review"}, headers=headers_for(owner))
    assert renamed.json()["title"] == "Spec review"

    assert client.delete(f"/rooms/{room_id}", headers=headers_for(owner)).status_code == 204
    assert client.get(f"/rooms/{room_id}", headers=headers_for(owner)).status_code == 404


def test_chats_endpoints(client, owner):
    room_id = _create_room(client, owner)["id"]

    sent = client.post(f"/rooms/{room_id}/chats", json={"text": "hi all"}, headers=headers_for(owner))
    assert sent.status_code == 201
    assert sent.json()["author"] == owner.name

    chats = client.get(f"/rooms/{room_id}/chats", headers=headers_for(owner)).json()
    assert [c["text"] for c in chats["chats"]] == ["hi all"]


def test_tasks_endpoints(client, owner):
    room_id = _create_room(client, owner)["id"]

    created = client.post(
        f"/rooms/{room_id}/tasks",
        json={"title": "Write tests", "priority": "high", "dueDate": "2026-10-31", "assignee": "bob"},
        headers=headers_for(owner),
    )
    assert created.status_code == 201
    task = created.json()
    assert task["dueDate"] == "2026-10-31"
    assert task["completed"] is False

    toggled = client.post(f"/rooms/{room_id}/tasks/{task['id']}/toggle", headers=headers_for(owner))
    assert toggled.json()["completed"] is True

    missing = client.post(f"/rooms/{room_id}/tasks/nope/toggle", headers=headers_for(owner))
    assert missing.status_code == 404

    assert client.delete(f"/rooms/{room_id}/tasks/{task['id']}", headers=headers_for(owner)).status_code == 204
    assert client.get(f"/rooms/{room_id}/tasks", headers=headers_for(owner)).json()["tasks"] == []


def test_stale_replace_is_a_conflict(client, owner):
    room_id = _create_room(client, owner)["id"]
    snapshot = client.get(f"/rooms/{room_id}/tasks", headers=headers_for(owner)).json()
    client.post(f"/rooms/{room_id}/tasks", json={"title": "Someone else's"}, headers=headers_for(owner))

    response = client.put(
        f"/rooms/{room_id}/tasks",
        json={"tasks": [], "expected_version": snapshot["version"]},
        headers=headers_for(owner),
    )

    assert response.status_code == 409
    assert len(client.get(f"/rooms/{room_id}/tasks", headers=headers_for(owner)).json()["tasks"]) == 1


def test_viewer_cannot_write_collections(client, owner, editor):
    room_id = _create_room(client, owner)["id"]
    client.put(
        f"/rooms/{room_id}/access",
        json={"email": editor.email, "user_type": "viewer"},
        headers=headers_for(owner),
    )

    assert client.get(f"/rooms/{room_id}/chats", headers=headers_for(editor)).status_code == 200
    assert client.post(f"/rooms/{room_id}/chats", json={"text": "x"}, headers=headers_for(editor)).status_code == 403
