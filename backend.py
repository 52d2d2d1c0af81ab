import functools
import json
from datetime import datetime
from typing import Any, Dict, List, Optional

import redis
from pydantic import ValidationError

from constants import INBOX_MAX_LENGTH, REDIS_DB, REDIS_HOST, REDIS_PASSWORD, REDIS_PORT, REDIS_SOCKET_TIMEOUT
from errors import InvalidOperation, NotFound, StoreUnavailable, VersionConflict
from logging_config import get_logger
from redis_keys import (
    REDIS_DELETED_ROOMS_KEY,
    REDIS_INBOX_KEY,
    REDIS_META_KEY,
    REDIS_ROOM_CHANNEL,
    REDIS_USER_CHANNEL,
    REDIS_USER_ROOMS_KEY,
)
from schemas.entities import Notification, Room, RoomMetadata

logger = get_logger(__name__)


def create_redis_client() -> redis.Redis:
    try:
        client = redis.Redis(
            host=REDIS_HOST,
            port=REDIS_PORT,
            password=REDIS_PASSWORD,
            db=REDIS_DB,
            socket_timeout=REDIS_SOCKET_TIMEOUT,
            socket_connect_timeout=REDIS_SOCKET_TIMEOUT,
            decode_responses=True,
        )
        # Test connection
        client.ping()
        logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
        return client
    except redis.RedisError as e:
        logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
        raise StoreUnavailable(f"Redis unavailable at {REDIS_HOST}:{REDIS_PORT}") from e


def store_call(func):
    """Translate transport failures from redis-py into StoreUnavailable."""

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except (redis.ConnectionError, redis.TimeoutError) as e:
            logger.error(f"Store call {func.__name__} failed: {e}")
            raise StoreUnavailable(str(e)) from e

    return wrapper


def _encode_hash(data: dict) -> Dict[str, str]:
    # Convert dict values to strings for Redis hash, skip None values
    encoded = {}
    for k, v in data.items():
        if v is None:
            continue
        if isinstance(v, (dict, list)):
            encoded[k] = json.dumps(v)
        else:
            encoded[k] = str(v)
    return encoded


def _decode_hash(data: dict) -> Dict[str, Any]:
    result = {}
    for k, v in data.items():
        try:
            result[k] = json.loads(v)
        except (json.JSONDecodeError, TypeError):
            result[k] = v
    return result


def _prune_accesses(users_accesses: dict) -> Dict[str, List[str]]:
    # A None scope list is a revocation and never reaches the store
    return {email: list(scopes) for email, scopes in users_accesses.items() if scopes is not None}


class RedisBackend:
    """Room-scoped metadata store over Redis hashes.

    The only write primitive is a whole-field replace of `metadata` and/or
    `usersAccesses`, guarded by the record's `version` counter.
    """

    def __init__(self, redis_client: Optional[redis.Redis] = None):
        self.redis_client = redis_client if redis_client is not None else create_redis_client()
        logger.info("Initializing RedisBackend")

    def _room_from_hash(self, room_id: str, data: dict) -> Room:
        fields = _decode_hash(data)
        try:
            return Room.model_validate({
                "id": room_id,
                "metadata": fields.get("metadata") or {},
                "usersAccesses": fields.get("usersAccesses") or {},
                "defaultAccesses": fields.get("defaultAccesses") or [],
                "version": int(fields.get("version", 0)),
                "created_at": fields.get("created_at"),
                "updated_at": fields.get("updated_at"),
            })
        except ValidationError as e:
            logger.error(f"Room {room_id} record is malformed: {e}")
            raise InvalidOperation(f"Room {room_id} record is malformed") from e

    @store_call
    def create_room(self, room_id: str, metadata: dict, users_accesses: dict, default_accesses: list) -> Room:
        logger.info(f"Creating room {room_id}")
        key = REDIS_META_KEY.format(slug=room_id)
        now = datetime.now().isoformat()
        users_accesses = _prune_accesses(users_accesses)
        record = {
            "metadata": metadata,
            "usersAccesses": users_accesses,
            "defaultAccesses": default_accesses,
            "created_at": now,
            "updated_at": now,
            "version": 1,
        }
        with self.redis_client.pipeline() as pipe:
            try:
                pipe.watch(key, REDIS_DELETED_ROOMS_KEY)
                if pipe.exists(key) or pipe.sismember(REDIS_DELETED_ROOMS_KEY, room_id):
                    logger.warning(f"Room id {room_id} already in use")
                    raise InvalidOperation(f"Room id {room_id} already in use")
                pipe.multi()
                pipe.hset(key, mapping=_encode_hash(record))
                for email in users_accesses:
                    pipe.sadd(REDIS_USER_ROOMS_KEY.format(identity=email), room_id)
                pipe.execute()
            except redis.WatchError as e:
                raise InvalidOperation(f"Room id {room_id} was claimed concurrently") from e
        logger.debug(f"Room {room_id} created successfully with key: {key}")
        return self._room_from_hash(room_id, _encode_hash(record))

    @store_call
    def get_room(self, room_id: str) -> Room:
        logger.debug(f"Fetching room {room_id}")
        key = REDIS_META_KEY.format(slug=room_id)
        room_data = self.redis_client.hgetall(key)
        if not room_data:
            logger.debug(f"Room {room_id} not found in Redis")
            raise NotFound(f"Room {room_id} not found")
        return self._room_from_hash(room_id, room_data)

    @store_call
    def update_room(
        self,
        room_id: str,
        metadata: Optional[dict] = None,
        users_accesses: Optional[dict] = None,
        expected_version: Optional[int] = None,
    ) -> Room:
        """Replace `metadata` and/or `usersAccesses` wholesale.

        Raises VersionConflict if `expected_version` does not match or the
        record changes between WATCH and EXEC. Nothing is written in that case.
        """
        key = REDIS_META_KEY.format(slug=room_id)
        with self.redis_client.pipeline() as pipe:
            try:
                pipe.watch(key)
                current = pipe.hgetall(key)
                if not current:
                    raise NotFound(f"Room {room_id} not found")
                room = self._room_from_hash(room_id, current)
                if expected_version is not None and room.version != expected_version:
                    logger.debug(f"Room {room_id} version mismatch: expected {expected_version}, found {room.version}")
                    raise VersionConflict(room_id, expected_version, room.version)

                changes = {"updated_at": datetime.now().isoformat()}
                if metadata is not None:
                    changes["metadata"] = metadata
                new_accesses = room.users_accesses
                if users_accesses is not None:
                    new_accesses = _prune_accesses(users_accesses)
                    changes["usersAccesses"] = new_accesses

                pipe.multi()
                pipe.hset(key, mapping=_encode_hash(changes))
                pipe.hincrby(key, "version", 1)
                for email in set(new_accesses) - set(room.users_accesses):
                    pipe.sadd(REDIS_USER_ROOMS_KEY.format(identity=email), room_id)
                for email in set(room.users_accesses) - set(new_accesses):
                    pipe.srem(REDIS_USER_ROOMS_KEY.format(identity=email), room_id)
                pipe.execute()
            except redis.WatchError as e:
                logger.debug(f"Room {room_id} changed during update")
                raise VersionConflict(room_id, expected_version) from e

        updated = room.model_copy(update={
            "metadata": room.metadata if metadata is None else RoomMetadata.model_validate(metadata),
            "users_accesses": new_accesses,
            "version": room.version + 1,
            "updated_at": changes["updated_at"],
        })
        logger.debug(f"Room {room_id} updated to version {updated.version}")
        return updated

    @store_call
    def delete_room(self, room_id: str) -> None:
        logger.info(f"Deleting room {room_id}")
        room = self.get_room(room_id)
        with self.redis_client.pipeline() as pipe:
            pipe.delete(REDIS_META_KEY.format(slug=room_id))
            pipe.sadd(REDIS_DELETED_ROOMS_KEY, room_id)
            for email in room.users_accesses:
                pipe.srem(REDIS_USER_ROOMS_KEY.format(identity=email), room_id)
            deleted = pipe.execute()[0]
        logger.debug(f"Room {room_id} deleted: meta_key={deleted}")

    @store_call
    def list_rooms(self, identity: str) -> List[Room]:
        """Rooms `identity` holds an explicit grant on, newest first."""
        index_key = REDIS_USER_ROOMS_KEY.format(identity=identity)
        room_ids = sorted(self.redis_client.smembers(index_key))
        if not room_ids:
            return []
        with self.redis_client.pipeline(transaction=False) as pipe:
            for room_id in room_ids:
                pipe.hgetall(REDIS_META_KEY.format(slug=room_id))
            records = pipe.execute()

        rooms = []
        stale = []
        for room_id, data in zip(room_ids, records):
            if not data:
                stale.append(room_id)
                continue
            rooms.append(self._room_from_hash(room_id, data))
        if stale:
            logger.debug(f"Dropping {len(stale)} stale room ids from index of {identity}")
            self.redis_client.srem(index_key, *stale)
        rooms.sort(key=lambda r: r.created_at or "", reverse=True)
        return rooms

    def get_room_channel_name(self, room_id: str) -> str:
        """Get the Redis pub/sub channel name for a room."""
        return REDIS_ROOM_CHANNEL.format(slug=room_id)

    @store_call
    def publish_invalidation(self, room_id: str) -> int:
        """Tell presentation layers that cached views of the room are stale."""
        channel = self.get_room_channel_name(room_id)
        message = {
            "type": "invalidate",
            "room_id": room_id,
            "timestamp": datetime.now().isoformat(),
        }
        subscribers = self.redis_client.publish(channel, json.dumps(message))
        logger.debug(f"Published invalidation for room {room_id} on {channel}, {subscribers} subscribers")
        return subscribers

    @store_call
    def notify(self, recipient: str, kind: str, payload: dict, room_id: Optional[str] = None) -> Notification:
        notification = Notification(
            recipient=recipient,
            kind=kind,
            room_id=room_id,
            payload=payload,
            created_at=datetime.now().isoformat(),
        )
        message_json = notification.model_dump_json()
        inbox_key = REDIS_INBOX_KEY.format(identity=recipient)
        with self.redis_client.pipeline() as pipe:
            pipe.lpush(inbox_key, message_json)
            pipe.ltrim(inbox_key, 0, INBOX_MAX_LENGTH - 1)
            pipe.publish(REDIS_USER_CHANNEL.format(identity=recipient), message_json)
            pipe.execute()
        logger.debug(f"Queued {kind} notification for {recipient}")
        return notification

    @store_call
    def get_notifications(self, identity: str, limit: int = 50) -> List[Notification]:
        raw = self.redis_client.lrange(REDIS_INBOX_KEY.format(identity=identity), 0, limit - 1)
        notifications = []
        for item in raw:
            try:
                notifications.append(Notification.model_validate_json(item))
            except ValidationError as e:
                logger.debug(f"Skipping unreadable notification for {identity}: {e}")
        return notifications


_backend: Optional[RedisBackend] = None


def get_backend() -> RedisBackend:
    """Process-wide backend, connected on first use."""
    global _backend
    if _backend is None:
        _backend = RedisBackend()
    return _backend
