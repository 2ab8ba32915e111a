"""In-memory room membership with one lock per room."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from rendezvous.config import settings

logger = logging.getLogger(__name__)


@dataclass
class Room:
    room_id: str
    # dict keeps insertion order, which is the join order
    members: Dict[str, None] = field(default_factory=dict)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    # set once the room has been removed from the registry; a joiner that
    # raced with the removal must look the room up again
    closed: bool = False


@dataclass(frozen=True)
class JoinResult:
    joined: bool
    others: List[str]


class RoomRegistry:
    def __init__(self, capacity: int = 2):
        self.capacity = capacity
        self._rooms: Dict[str, Room] = {}
        self._member_room: Dict[str, str] = {}

    def _get_or_create(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            room = self._rooms[room_id] = Room(room_id)
        return room

    def _discard(self, room: Room) -> None:
        room.closed = True
        if self._rooms.get(room.room_id) is room:
            del self._rooms[room.room_id]
            logger.info(f"🗑️  Room {room.room_id} is now empty")

    async def join(self, member_id: str, room_id: str) -> JoinResult:
        """Add ``member_id`` and return the other members, read under the same lock.

        A member already in another room leaves it first. When the room is at
        capacity the member is not added and ``joined`` is False.
        """
        current = self._member_room.get(member_id)
        if current is not None and current != room_id:
            await self.leave(member_id)

        while True:
            room = self._get_or_create(room_id)
            async with room.lock:
                if room.closed:
                    continue
                others = [m for m in room.members if m != member_id]
                if member_id not in room.members and len(room.members) >= self.capacity:
                    return JoinResult(joined=False, others=others)
                room.members[member_id] = None
                self._member_room[member_id] = room_id
                return JoinResult(joined=True, others=others)

    async def leave(self, member_id: str) -> Optional[tuple[str, List[str]]]:
        """Remove ``member_id`` from its room.

        Returns ``(room_id, remaining_members)`` or None if it was in no room.
        """
        room_id = self._member_room.pop(member_id, None)
        if room_id is None:
            return None
        room = self._rooms.get(room_id)
        if room is None:
            return None
        async with room.lock:
            room.members.pop(member_id, None)
            remaining = list(room.members)
            if not remaining:
                self._discard(room)
        return room_id, remaining

    async def others(self, member_id: str, room_id: str) -> Optional[List[str]]:
        """Other members of ``room_id``, or None when ``member_id`` is not in it."""
        room = self._rooms.get(room_id)
        if room is None:
            return None
        async with room.lock:
            if member_id not in room.members:
                return None
            return [m for m in room.members if m != member_id]

    def room_of(self, member_id: str) -> Optional[str]:
        return self._member_room.get(member_id)

    def members(self, room_id: str) -> Optional[List[str]]:
        room = self._rooms.get(room_id)
        if room is None:
            return None
        return list(room.members)

    async def prune(self, active: Iterable[str]) -> int:
        """Drop members whose connection is gone and any room left empty.

        Returns the number of rooms removed.
        """
        active = set(active)
        removed = 0
        for room in list(self._rooms.values()):
            async with room.lock:
                for member_id in [m for m in room.members if m not in active]:
                    del room.members[member_id]
                    if self._member_room.get(member_id) == room.room_id:
                        del self._member_room[member_id]
                    logger.warning(f"Pruned stale member {member_id} from room {room.room_id}")
                if not room.members and not room.closed:
                    self._discard(room)
                    removed += 1
        return removed

    def __len__(self) -> int:
        return len(self._rooms)


registry = RoomRegistry(capacity=settings.ROOM_CAPACITY)
