import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type

from pydantic import BaseModel, ValidationError

import codec
from backend import RedisBackend
from constants import MERGE_MAX_RETRIES
from errors import InvalidOperation, OperationTimeout, StoreUnavailable, VersionConflict
from logging_config import get_logger
from schemas.entities import Room, RoomMetadata

logger = get_logger(__name__)


@dataclass
class RoomChange:
    """New values for the record fields a transform wants replaced. None leaves a field alone."""

    metadata: Optional[Dict[str, Any]] = None
    users_accesses: Optional[Dict[str, Optional[List[str]]]] = None


Transform = Callable[[Room], Optional[RoomChange]]


def merge_collection(room: Room, collection_name: str, new_entries: Sequence[BaseModel]) -> Dict[str, Any]:
    """Current metadata with only `collection_name` replaced by the encoded entries."""
    record = room.metadata.to_record()
    record[collection_name] = codec.encode(new_entries)
    return record


def merge_field(room: Room, field_name: str, value: Any) -> Dict[str, Any]:
    record = room.metadata.to_record()
    record[field_name] = value
    try:
        RoomMetadata.model_validate(record)
    except ValidationError as e:
        raise InvalidOperation(f"Invalid value for metadata field {field_name}") from e
    return record


def deadline_for(timeout: Optional[float]) -> Optional[float]:
    return None if timeout is None else time.monotonic() + timeout


def check_deadline(deadline: Optional[float], room_id: str) -> None:
    if deadline is not None and time.monotonic() >= deadline:
        logger.warning(f"Deadline passed before writing room {room_id}, nothing written")
        raise OperationTimeout(f"Timed out before writing room {room_id}")


class MergeEngine:
    """Read-merge-write over whole-record replace, with optimistic versioning.

    Every write carries the version it was computed from. If another writer
    got there first the store refuses the write, and the transform is run
    again on the fresh record. Two writers on the same room are therefore
    serialized by version, whatever fields they touch.
    """

    def __init__(self, backend: RedisBackend, max_retries: int = MERGE_MAX_RETRIES):
        self.backend = backend
        self.max_retries = max_retries

    def mutate(self, room_id: str, transform: Transform, timeout: Optional[float] = None) -> Room:
        deadline = deadline_for(timeout)
        for attempt in range(self.max_retries + 1):
            room = self.backend.get_room(room_id)
            change = transform(room)
            if change is None:
                return room
            check_deadline(deadline, room_id)
            try:
                updated = self.backend.update_room(
                    room_id,
                    metadata=change.metadata,
                    users_accesses=change.users_accesses,
                    expected_version=room.version,
                )
            except VersionConflict:
                logger.debug(f"Room {room_id} write lost the race at version {room.version} (attempt {attempt + 1})")
                # small jitter so retrying writers do not collide again
                time.sleep(random.uniform(0, 0.005 * (attempt + 1)))
                continue
            self.invalidate(room_id)
            return updated

        logger.warning(f"Giving up on room {room_id} after {self.max_retries + 1} conflicting writes")
        raise VersionConflict(room_id)

    def invalidate(self, room_id: str) -> None:
        try:
            self.backend.publish_invalidation(room_id)
        except StoreUnavailable as e:
            # the write is already durable; a missed signal only delays a refresh
            logger.warning(f"Could not publish invalidation for room {room_id}: {e}")

    def update_collection(
        self,
        room_id: str,
        collection_name: str,
        entity_type: Type[BaseModel],
        fn: Callable[[List[BaseModel]], List[BaseModel]],
        guard: Optional[Callable[[Room], Any]] = None,
        timeout: Optional[float] = None,
    ) -> Tuple[Room, List[BaseModel]]:
        """Apply `fn` to the freshest decoded collection and write it back.

        `guard` runs against the same record first and may raise to abort.
        """
        result: List[BaseModel] = []

        def transform(room: Room) -> RoomChange:
            nonlocal result
            if guard is not None:
                guard(room)
            current = codec.decode(room.metadata.to_record().get(collection_name), entity_type)
            result = fn(current)
            return RoomChange(metadata=merge_collection(room, collection_name, result))

        room = self.mutate(room_id, transform, timeout=timeout)
        return room, result

    def replace_collection(
        self,
        room_id: str,
        collection_name: str,
        entries: Sequence[BaseModel],
        expected_version: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Room:
        """Whole-collection replace as sent by a client.

        With `expected_version` the write is a single compare-and-swap against
        the version the client read, so a stale client gets VersionConflict.
        """
        if expected_version is None:
            return self.mutate(
                room_id,
                lambda room: RoomChange(metadata=merge_collection(room, collection_name, entries)),
                timeout=timeout,
            )

        deadline = deadline_for(timeout)
        room = self.backend.get_room(room_id)
        if room.version != expected_version:
            raise VersionConflict(room_id, expected_version, room.version)
        check_deadline(deadline, room_id)
        updated = self.backend.update_room(
            room_id,
            metadata=merge_collection(room, collection_name, entries),
            expected_version=expected_version,
        )
        self.invalidate(room_id)
        return updated

    def update_accesses(
        self,
        room_id: str,
        fn: Callable[[Room, Dict[str, List[str]]], Optional[Dict[str, Optional[List[str]]]]],
        timeout: Optional[float] = None,
    ) -> Room:
        def transform(room: Room) -> Optional[RoomChange]:
            accesses = fn(room, dict(room.users_accesses))
            if accesses is None:
                return None
            return RoomChange(users_accesses=accesses)

        return self.mutate(room_id, transform, timeout=timeout)
