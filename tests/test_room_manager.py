"""Tests for session persistence and the per-room actor."""
from __future__ import annotations

import asyncio

from models.game import Phase, Session, new_session
from services.room_manager import RoomManager
from services.session_store import MemorySessionStore


def _session(room_id: str) -> Session:
    session = new_session(room_id, 4)
    session.players = ["a1", "b2"]
    session.player_names = {"a1": "Ann", "b2": "Ben"}
    session.host_name = "Ann"
    session.vote_selection = {"a1": ["b2"]}
    return session


class TestMemorySessionStore:

    async def test_save_and_load(self) -> None:
        store = MemorySessionStore()
        session = _session("r1")
        await store.save("r1", session)
        loaded = await store.load("r1")
        assert loaded.model_dump() == session.model_dump()
        assert loaded is not session

    async def test_loaded_copy_is_independent(self) -> None:
        store = MemorySessionStore()
        await store.save("r1", _session("r1"))
        loaded = await store.load("r1")
        loaded.players.append("c3")
        again = await store.load("r1")
        assert again.players == ["a1", "b2"]

    async def test_stored_in_wire_form(self) -> None:
        store = MemorySessionStore()
        await store.save("r1", _session("r1"))
        assert "r1" in store
        assert store._blobs["r1"]["playerNames"] == {"a1": "Ann", "b2": "Ben"}
        assert store._blobs["r1"]["phase"] == "LOBBY"

    async def test_missing_and_delete(self) -> None:
        store = MemorySessionStore()
        assert await store.load("nope") is None
        await store.save("r1", _session("r1"))
        await store.delete("r1")
        assert await store.load("r1") is None
        await store.delete("r1")


class TestRoomManager:

    async def test_loads_once(self) -> None:
        store = MemorySessionStore()
        await store.save("r1", _session("r1"))
        manager = RoomManager(store=store)

        room = await manager.open_room("r1")
        assert room.session.host_name == "Ann"
        await store.delete("r1")
        again = await manager.open_room("r1")
        assert again is room
        assert again.session is not None

    async def test_unknown_room_has_no_session(self) -> None:
        manager = RoomManager(store=MemorySessionStore())
        room = await manager.open_room("empty")
        assert room.session is None

    async def test_commit_saves_and_deletes(self) -> None:
        store = MemorySessionStore()
        manager = RoomManager(store=store)
        room = await manager.open_room("r1")

        session = _session("r1")
        session.phase = Phase.DEAL
        async with room.lock:
            await manager.commit(room, session)
        assert room.session is session
        assert (await store.load("r1")).phase == Phase.DEAL

        async with room.lock:
            await manager.commit(room, None)
        assert room.session is None
        assert "r1" not in store

    async def test_inactivity_clears_session(self) -> None:
        store = MemorySessionStore()
        await store.save("r1", _session("r1"))
        manager = RoomManager(store=store, inactivity_seconds=0)
        room = await manager.open_room("r1")

        manager.schedule_cleanup("r1")
        await asyncio.sleep(0.05)
        assert room.session is None
        assert "r1" not in store

    async def test_cancelled_cleanup_keeps_session(self) -> None:
        store = MemorySessionStore()
        await store.save("r1", _session("r1"))
        manager = RoomManager(store=store, inactivity_seconds=0.01)
        room = await manager.open_room("r1")

        manager.schedule_cleanup("r1")
        manager.cancel_cleanup("r1")
        await asyncio.sleep(0.05)
        assert room.session is not None
        assert "r1" in store


class TestSessionView:
    """Per-seat client view of a session."""

    def test_other_selections_hidden(self) -> None:
        session = _session("r1")
        session.vote_selection = {"a1": ["b2"], "b2": ["a1"]}
        session.blank_vote_selection = {"b2": "a1"}
        view = session.view_for("a1")
        assert view["voteSelection"] == {"a1": ["b2"]}
        assert view["blankVoteSelection"] == {}

    def test_visitor_sees_no_selections(self) -> None:
        view = _session("r1").view_for(None)
        assert view["voteSelection"] == {}
        assert view["players"] == ["a1", "b2"]
        assert view["hostName"] == "Ann"

    def test_storage_round_trip_uses_aliases(self) -> None:
        session = _session("r1")
        data = session.to_storage()
        assert "hostName" in data
        assert "dealerVoteCount" in data["config"]
        assert Session.model_validate(data).model_dump() == session.model_dump()


class TestRoomLifetime:
    """Rooms live in memory only while connections hold them."""

    async def test_lookups_do_not_create_rooms(self) -> None:
        store = MemorySessionStore()
        await store.save("r1", _session("r1"))
        manager = RoomManager(store=store)

        for i in range(20):
            assert await manager.read_session(f"missing-{i}") is None
        assert (await manager.read_session("r1")).host_name == "Ann"
        assert manager._rooms == {}

    async def test_lookup_prefers_live_session(self) -> None:
        store = MemorySessionStore()
        manager = RoomManager(store=store)
        room = await manager.open_room("r1")
        async with room.lock:
            await manager.commit(room, _session("r1"))
        await store.delete("r1")
        assert (await manager.read_session("r1")).host_name == "Ann"

    async def test_last_release_drops_empty_room(self) -> None:
        manager = RoomManager(store=MemorySessionStore())
        room = await manager.open_room("empty")
        again = await manager.open_room("empty")
        assert again is room and room.clients == 2

        manager.release(room)
        assert "empty" in manager._rooms
        manager.release(room)
        assert "empty" not in manager._rooms
        assert manager._cleanup_tasks == {}

    async def test_expired_room_is_evicted(self) -> None:
        store = MemorySessionStore()
        await store.save("r1", _session("r1"))
        manager = RoomManager(store=store, inactivity_seconds=0)
        room = await manager.open_room("r1")

        manager.release(room)
        assert "r1" in manager._rooms
        await asyncio.sleep(0.05)
        assert room.session is None
        assert "r1" not in store
        assert "r1" not in manager._rooms

    async def test_reconnect_cancels_expiry(self) -> None:
        store = MemorySessionStore()
        await store.save("r1", _session("r1"))
        manager = RoomManager(store=store, inactivity_seconds=0.01)
        room = await manager.open_room("r1")

        manager.release(room)
        again = await manager.open_room("r1")
        await asyncio.sleep(0.05)
        assert again is room
        assert room.session is not None
        assert manager._rooms["r1"] is room
