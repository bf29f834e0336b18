"""
Room Manager — one in-process actor per room.

Each Room owns its live session and an asyncio.Lock; the WebSocket hub holds the
lock for the whole of an action (engine call, save, broadcast) so two actions for
the same room never interleave. Rooms share nothing.

A Room stays in memory only while connections hold it. The stored session is
loaded once, when the first connection opens the room. When the last one
releases it, an empty room is dropped straight away; a live one gets a cleanup
timer that clears the session after `settings.room_inactivity_seconds` unless
someone reconnects first. Read-only lookups never create a Room.
"""
import asyncio
import logging
from typing import Dict, Optional

from config import settings
from models.game import Session
from services.session_store import SessionStore, get_session_store

logger = logging.getLogger(__name__)


class Room:
    def __init__(self, room_id: str):
        self.id = room_id
        self.session: Optional[Session] = None
        self.lock = asyncio.Lock()
        self.loaded = False
        # Open WebSocket connections holding this room
        self.clients = 0


class RoomManager:

    def __init__(self, store: Optional[SessionStore] = None, inactivity_seconds: Optional[int] = None):
        self._store = store
        self._inactivity_seconds = inactivity_seconds
        self._rooms: Dict[str, Room] = {}
        # Cleanup timers, one per room with zero connections
        self._cleanup_tasks: Dict[str, asyncio.Task] = {}

    @property
    def store(self) -> SessionStore:
        return self._store or get_session_store()

    @property
    def inactivity_seconds(self) -> int:
        if self._inactivity_seconds is not None:
            return self._inactivity_seconds
        return settings.room_inactivity_seconds

    async def open_room(self, room_id: str) -> Room:
        """Claim the room for a connection, loading its persisted session the first time."""
        self.cancel_cleanup(room_id)
        room = self._rooms.get(room_id)
        if room is None:
            room = Room(room_id)
            self._rooms[room_id] = room
        room.clients += 1
        if not room.loaded:
            async with room.lock:
                if not room.loaded:
                    room.session = await self.store.load(room_id)
                    room.loaded = True
                    if room.session:
                        logger.info(f"[{room_id}] Session restored (phase {room.session.phase.value})")
        return room

    def release(self, room: Room) -> None:
        """A connection let go of the room. The last one out evicts or times it."""
        room.clients = max(0, room.clients - 1)
        if room.clients:
            return
        if room.session is None:
            self._evict(room)
        else:
            self.schedule_cleanup(room.id)

    async def read_session(self, room_id: str) -> Optional[Session]:
        """Current session without claiming the room (HTTP lookups)."""
        room = self._rooms.get(room_id)
        if room is not None and room.loaded:
            return room.session
        return await self.store.load(room_id)

    async def commit(self, room: Room, session: Optional[Session]) -> None:
        """Persist the new session; None tears the room down. Call with room.lock held."""
        if session is None:
            await self.store.delete(room.id)
            logger.info(f"[{room.id}] Room torn down")
        else:
            await self.store.save(room.id, session)
        room.session = session

    def _evict(self, room: Room) -> None:
        if room.clients == 0 and self._rooms.get(room.id) is room:
            del self._rooms[room.id]
            logger.debug(f"[{room.id}] Room evicted")

    # ── Inactivity cleanup ─────────────────────────────────────────────────────

    def schedule_cleanup(self, room_id: str) -> None:
        self.cancel_cleanup(room_id)
        self._cleanup_tasks[room_id] = asyncio.create_task(
            self._expire(room_id, self.inactivity_seconds)
        )
        logger.debug(f"[{room_id}] No connections, cleanup in {self.inactivity_seconds}s")

    def cancel_cleanup(self, room_id: str) -> None:
        task = self._cleanup_tasks.pop(room_id, None)
        if task and not task.done():
            task.cancel()

    async def _expire(self, room_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        self._cleanup_tasks.pop(room_id, None)
        room = self._rooms.get(room_id)
        if room is None:
            return
        async with room.lock:
            if room.session is not None:
                logger.info(f"[{room_id}] Inactivity timeout, clearing session")
                await self.commit(room, None)
        # A connection that arrived meanwhile keeps the room
        self._evict(room)


# Module-level singleton, imported by both routers
room_manager = RoomManager()
