import json

import pytest
import redis

from backend import RedisBackend
from errors import InvalidOperation, NotFound, StoreUnavailable, VersionConflict


class DownRedis:
    """Client whose every call fails like a dropped connection."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise redis.ConnectionError("connection refused")

        return fail


def _create(backend, room_id="r1"):
    return backend.create_room(
        room_id,
        metadata={"creatorId": "u1", "email": "a@x.com", "title": "Untitled"},
        users_accesses={"a@x.com": ["room:write"]},
        default_accesses=[],
    )


def test_create_and_get_roundtrip(backend, redis_client):
    created = _create(backend)

    fetched = backend.get_room("r1")

    assert fetched == created
    assert fetched.version == 1
    raw = redis_client.hgetall("room:meta:r1")
    assert json.loads(raw["metadata"])["title"] == "Untitled"
    assert json.loads(raw["usersAccesses"]) == {"a@x.com": ["room:write"]}


def test_create_refuses_existing_id(backend):
    _create(backend)

    with pytest.raises(InvalidOperation):
        _create(backend)


def test_get_missing_room_raises_not_found(backend):
    with pytest.raises(NotFound):
        backend.get_room("nope")


def test_update_replaces_fields_and_bumps_version(backend):
    _create(backend)

    updated = backend.update_room("r1", metadata={"email": "a@x.com", "title": "New"}, expected_version=1)

    assert updated.version == 2
    assert backend.get_room("r1").metadata.title == "New"
    assert backend.get_room("r1").users_accesses == {"a@x.com": ["room:write"]}


def test_update_with_stale_version_writes_nothing(backend):
    _create(backend)
    backend.update_room("r1", metadata={"email": "a@x.com", "title": "First"})

    with pytest.raises(VersionConflict) as excinfo:
        backend.update_room("r1", metadata={"email": "a@x.com", "title": "Stale"}, expected_version=1)

    assert excinfo.value.actual == 2
    assert backend.get_room("r1").metadata.title == "First"


def test_none_access_entries_are_removed(backend):
    _create(backend)

    updated = backend.update_room("r1", users_accesses={"a@x.com": ["room:write"], "b@x.com": None})

    assert updated.users_accesses == {"a@x.com": ["room:write"]}
    assert backend.get_room("r1").users_accesses == {"a@x.com": ["room:write"]}


def test_update_missing_room_raises_not_found(backend):
    with pytest.raises(NotFound):
        backend.update_room("ghost", metadata={"title": "x"})


def test_malformed_record_is_reported(backend, redis_client):
    redis_client.hset("room:meta:bad", mapping={"metadata": json.dumps({"title": 123}), "version": "1"})

    with pytest.raises(InvalidOperation):
        backend.get_room("bad")


def test_transport_errors_become_store_unavailable():
    backend = RedisBackend(redis_client=DownRedis())

    with pytest.raises(StoreUnavailable):
        backend.get_room("r1")
    with pytest.raises(StoreUnavailable):
        backend.notify("a@x.com", "$documentAccess", {})


def test_notifications_are_capped_and_newest_first(backend, monkeypatch):
    monkeypatch.setattr("backend.INBOX_MAX_LENGTH", 3)
    for n in range(5):
        backend.notify("b@x.com", "$documentAccess", {"n": n}, room_id="r1")

    notifications = backend.get_notifications("b@x.com")

    assert [item.payload["n"] for item in notifications] == [4, 3, 2]


def test_invalidation_is_published_on_room_channel(backend, redis_client):
    pubsub = redis_client.pubsub()
    pubsub.subscribe(backend.get_room_channel_name("r1"))
    pubsub.get_message(timeout=1.0)  # subscribe confirmation

    backend.publish_invalidation("r1")

    message = pubsub.get_message(timeout=1.0)
    assert json.loads(message["data"])["type"] == "invalidate"
    assert json.loads(message["data"])["room_id"] == "r1"
    pubsub.close()
