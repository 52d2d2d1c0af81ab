from typing import Optional


class RoomError(Exception):
    """Base class for every failure the room core reports to its callers."""


class NotFound(RoomError):
    pass


class Forbidden(RoomError):
    pass


class InvalidOperation(RoomError):
    pass


class VersionConflict(InvalidOperation):
    """The record changed between read and write and the write was not applied."""

    def __init__(self, room_id: str, expected: Optional[int] = None, actual: Optional[int] = None):
        self.room_id = room_id
        self.expected = expected
        self.actual = actual
        super().__init__(f"Room {room_id} was modified concurrently (expected version {expected}, found {actual})")


class StoreUnavailable(RoomError):
    pass


class OperationTimeout(StoreUnavailable):
    """The deadline passed before the write was issued. Nothing was written."""
