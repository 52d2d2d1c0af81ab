"""Shared fixtures: an in-process Redis and the managers built on it."""

import fakeredis
import pytest
from fastapi.testclient import TestClient

from backend import RedisBackend
from room_lifecycle import RoomLifecycleManager
from schemas.entities import UserInfo


@pytest.fixture
def redis_client():
    server = fakeredis.FakeServer()
    return fakeredis.FakeRedis(server=server, decode_responses=True)


@pytest.fixture
def backend(redis_client):
    return RedisBackend(redis_client)


@pytest.fixture
def rooms(backend):
    return RoomLifecycleManager(backend)


@pytest.fixture
def owner():
    return UserInfo(email="a@x.com", id="user-a", name="Alice")


@pytest.fixture
def editor():
    return UserInfo(email="b@x.com", id="user-b", name="Bob")


@pytest.fixture
def stranger():
    return UserInfo(email="c@x.com", id="user-c", name="Carol")


@pytest.fixture
def room(rooms, owner):
    return rooms.create(owner.id, owner.email)


def headers_for(user: UserInfo) -> dict:
    return {"X-User-Email": user.email, "X-User-Id": user.id, "X-User-Name": user.name}


@pytest.fixture
def client(rooms):
    from app import app
    from dependencies import get_lifecycle

    app.dependency_overrides[get_lifecycle] = lambda: rooms
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
