"""Serialization of check-then-insert per room.

A process-local lock per room keeps concurrent requests in one worker from
interleaving; ``SELECT ... FOR UPDATE`` on the room row extends the same
exclusion across workers sharing the database. The bookings exclusion
constraint is the last line if both are bypassed.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session

from roombook.db.models import Room

_registry_lock = threading.Lock()
_room_locks: dict[str, threading.Lock] = {}


def _lock_for(room_id: str) -> threading.Lock:
    with _registry_lock:
        lock = _room_locks.get(room_id)
        if lock is None:
            lock = threading.Lock()
            _room_locks[room_id] = lock
        return lock


@contextmanager
def room_admission_lock(db: Session, room_id: str) -> Iterator[None]:
    lock = _lock_for(room_id)
    with lock:
        db.query(Room).filter(Room.id == room_id).with_for_update().first()
        yield
