"""
Room Registry - in-memory authority over live rooms.
Owns passcode/room key allocation, the two-way index and timed expiry.
"""
import asyncio
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from utils.code_generator import (
    MAX_PASSCODE_ATTEMPTS,
    PasscodeSpaceExhausted,
    ensure_unique_passcode,
    generate_room_key,
)

logger = logging.getLogger(__name__)

ROOM_TTL = timedelta(minutes=40)
MAX_PARTICIPANTS = 2

__all__ = [
    "CapacityResult",
    "MAX_PARTICIPANTS",
    "PasscodeSpaceExhausted",
    "ROOM_TTL",
    "Room",
    "RoomRegistry",
    "mask_passcode",
]


def mask_passcode(passcode: str) -> str:
    return passcode[:2] + "****"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Room:
    """A live chat room. Never mutated; expiry removes it from the registry."""
    room_key: str
    passcode: str
    created_at: datetime
    expire_at: datetime

    @property
    def expire_at_ms(self) -> int:
        return int(self.expire_at.timestamp() * 1000)


class CapacityResult(enum.Enum):
    ALLOWED = "allowed"
    FULL = "full"


class RoomRegistry:
    """
    Single owner of room state.

    Two mappings index the same set of live rooms:
    passcode -> Room and room_key -> passcode. Both are always
    updated together without awaiting in between.

    The registry doesn't know about connections. Group membership is
    read through `members_of`, and `on_expire` is awaited once a room
    has been removed so the caller can notify and detach its members.
    """

    def __init__(
        self,
        members_of: Optional[Callable[[str], Iterable[str]]] = None,
        on_expire: Optional[Callable[[Room], Awaitable[None]]] = None,
        ttl: timedelta = ROOM_TTL,
        max_participants: int = MAX_PARTICIPANTS,
        max_passcode_attempts: int = MAX_PASSCODE_ATTEMPTS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._by_passcode: Dict[str, Room] = {}
        self._by_room_key: Dict[str, str] = {}
        self._expiry_tasks: Dict[str, asyncio.Task] = {}
        self.members_of = members_of or (lambda room_key: ())
        self.on_expire = on_expire
        self.ttl = ttl
        self.max_participants = max_participants
        self.max_passcode_attempts = max_passcode_attempts
        self.clock = clock

    def __len__(self) -> int:
        return len(self._by_passcode)

    def __contains__(self, passcode: object) -> bool:
        return passcode in self._by_passcode

    @property
    def live_rooms(self) -> List[Room]:
        return list(self._by_passcode.values())

    def create_room(self) -> Room:
        """
        Allocate a room with a fresh key and a passcode unique among live rooms,
        and schedule its expiry.

        Must be called from inside a running event loop.

        Raises:
            PasscodeSpaceExhausted: If no free passcode was found
        """
        passcode = ensure_unique_passcode(self._by_passcode, self.max_passcode_attempts)
        now = self.clock()
        room = Room(
            room_key=generate_room_key(),
            passcode=passcode,
            created_at=now,
            expire_at=now + self.ttl,
        )

        self._by_passcode[passcode] = room
        self._by_room_key[room.room_key] = passcode
        self._expiry_tasks[room.room_key] = asyncio.create_task(
            self._expire_later(passcode, self.ttl.total_seconds()),
            name=f"room-expiry-{room.room_key}",
        )

        logger.info(
            f"Room created: passcode={mask_passcode(passcode)}, "
            f"expires_at={room.expire_at.isoformat()}, live_rooms={len(self)}"
        )
        return room

    def lookup_by_passcode(self, passcode) -> Optional[Room]:
        """Return the live room for a passcode, None if unknown or expired."""
        if passcode is None:
            return None
        return self._by_passcode.get(str(passcode).strip())

    def lookup_by_room_key(self, room_key) -> Optional[Room]:
        """Resolve a room key through the reverse index."""
        if not room_key:
            return None
        passcode = self._by_room_key.get(str(room_key))
        if passcode is None:
            return None
        return self.lookup_by_passcode(passcode)

    def capacity_check(self, room_key: str, connection_id: str) -> CapacityResult:
        """Allow a join while the group has room, or when the candidate is already in it."""
        members = set(self.members_of(room_key))
        if connection_id in members or len(members) < self.max_participants:
            return CapacityResult.ALLOWED
        return CapacityResult.FULL

    async def expire_room(self, passcode: str) -> bool:
        """
        Remove a room and notify its members.

        Returns False without side effects if the room is already gone.
        """
        room = self._by_passcode.pop(passcode, None)
        if room is None:
            return False
        self._by_room_key.pop(room.room_key, None)
        task = self._expiry_tasks.pop(room.room_key, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

        logger.info(f"Room expired: passcode={mask_passcode(passcode)}, live_rooms={len(self)}")

        if self.on_expire is not None:
            await self.on_expire(room)
        return True

    async def _expire_later(self, passcode: str, delay: float):
        await asyncio.sleep(delay)
        try:
            await self.expire_room(passcode)
        except Exception:
            logger.exception(f"Expiry handling failed for passcode={mask_passcode(passcode)}")

    def cancel_expiry(self, room_key: str) -> bool:
        task = self._expiry_tasks.pop(room_key, None)
        if task is None:
            return False
        task.cancel()
        return True

    async def shutdown(self):
        """Cancel all pending expiry tasks."""
        tasks = list(self._expiry_tasks.values())
        for room_key in list(self._expiry_tasks):
            self.cancel_expiry(room_key)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Room registry shut down, {len(tasks)} expiry task(s) cancelled")
