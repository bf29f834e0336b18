"""End-to-end tests for the WebSocket hub and the read-only room endpoints."""
from __future__ import annotations

from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from routers import ws_router
from services.room_manager import RoomManager, room_manager
from services.session_store import MemorySessionStore, set_session_store
from tests.helpers import make_room


@pytest.fixture
def client():
    set_session_store(MemorySessionStore())
    from main import app

    with TestClient(app) as test_client:
        yield test_client
    set_session_store(None)


def send(ws, msg_type: str, **data: Any) -> None:
    ws.send_json({"type": msg_type, "data": data})


def expect(ws, msg_type: str) -> Dict[str, Any]:
    message = ws.receive_json()
    assert message["type"] == msg_type, message
    return message


def create(ws, name: str = "Ann", capacity: int = 4) -> str:
    """Create the room from a fresh socket. Returns the host seat id."""
    send(ws, "create", name=name, capacity=capacity)
    seat_id = expect(ws, "welcome")["seatId"]
    assert expect(ws, "state")["session"]["hostName"] == name
    return seat_id


def join(ws, name: str) -> str:
    """Join an existing room from a fresh socket (visitor state first). Returns the seat id."""
    expect(ws, "state")
    send(ws, "join", name=name)
    seat_id = expect(ws, "welcome")["seatId"]
    expect(ws, "state")
    return seat_id


class TestHttp:

    def test_health(self, client) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_missing_room(self, client, room_id) -> None:
        assert client.get(f"/api/rooms/{room_id}").status_code == 404
        assert client.get(f"/api/rooms/{room_id}/leaderboard").status_code == 404
        assert room_id not in room_manager._rooms

    def test_room_summary_and_leaderboard(self, client, room_id) -> None:
        with client.websocket_connect(f"/ws/{room_id}") as ws:
            seat = create(ws)
            summary = client.get(f"/api/rooms/{room_id}").json()
            assert summary == {
                "roomId": room_id,
                "phase": "LOBBY",
                "capacity": 4,
                "hostName": "Ann",
                "playerNames": ["Ann"],
                "roundNumber": 0,
            }
            board = client.get(f"/api/rooms/{room_id}/leaderboard").json()
            assert board == [{
                "seatId": seat, "name": "Ann", "totalScore": 0, "roundScore": 0, "rank": 1,
            }]


class TestProtocol:

    def test_ping_and_bad_messages(self, client, room_id) -> None:
        with client.websocket_connect(f"/ws/{room_id}") as ws:
            send(ws, "ping")
            expect(ws, "pong")

            ws.send_text("{not json")
            assert expect(ws, "error")["code"] == "parse_error"

            send(ws, "dance")
            assert expect(ws, "error")["code"] == "unknown"

            send(ws, "start")
            assert expect(ws, "error")["code"] == "not_found"

    def test_bad_capacity(self, client, room_id) -> None:
        with client.websocket_connect(f"/ws/{room_id}") as ws:
            send(ws, "create", name="Ann", capacity=2)
            error = expect(ws, "error")
            assert error["code"] == "invalid_config"
            assert error["details"]


class TestSeats:

    def test_join_is_broadcast(self, client, room_id) -> None:
        url = f"/ws/{room_id}"
        with client.websocket_connect(url) as host:
            create(host)
            with client.websocket_connect(url) as guest:
                guest_seat = join(guest, "Ben")
                state = expect(host, "state")
                assert state["session"]["players"][-1] == guest_seat
                assert state["session"]["playerNames"][guest_seat] == "Ben"

    def test_rejected_action_answers_sender(self, client, room_id) -> None:
        url = f"/ws/{room_id}"
        with client.websocket_connect(url) as host:
            create(host)
            with client.websocket_connect(url) as guest:
                join(guest, "Ben")
                expect(host, "state")
                send(guest, "start")
                assert expect(guest, "error")["code"] == "not_host"

    def test_malformed_join_answers_invalid(self, client, room_id) -> None:
        url = f"/ws/{room_id}"
        with client.websocket_connect(url) as host:
            create(host)
            with client.websocket_connect(url) as guest:
                expect(guest, "state")
                send(guest, "join", name=5)
                assert expect(guest, "error")["code"] == "invalid"
                send(guest, "join", name="Ben", id=7)
                assert expect(guest, "error")["code"] == "invalid"

    def test_same_name_takes_over_seat(self, client, room_id) -> None:
        url = f"/ws/{room_id}"
        with client.websocket_connect(url) as host:
            create(host)
            with client.websocket_connect(url) as old:
                seat = join(old, "Ben")
                expect(host, "state")
                with client.websocket_connect(url) as new:
                    assert join(new, "ben") == seat
                    with pytest.raises(WebSocketDisconnect) as exc:
                        old.receive_json()
                    assert exc.value.code == 4000

    def test_kick(self, client, room_id) -> None:
        url = f"/ws/{room_id}"
        with client.websocket_connect(url) as host:
            create(host)
            with client.websocket_connect(url) as guest:
                guest_seat = join(guest, "Ben")
                expect(host, "state")
                send(host, "kick", target=guest_seat)
                expect(guest, "kicked")
                with pytest.raises(WebSocketDisconnect):
                    guest.receive_json()
                state = expect(host, "state")
                assert guest_seat not in state["session"]["players"]

    def test_lobby_disconnect_leaves(self, client, room_id) -> None:
        url = f"/ws/{room_id}"
        with client.websocket_connect(url) as host:
            host_seat = create(host)
            with client.websocket_connect(url) as guest:
                join(guest, "Ben")
                expect(host, "state")
            state = expect(host, "state")
            assert state["session"]["players"] == [host_seat]

    def test_last_human_leaving_destroys_room(self, client, room_id) -> None:
        with client.websocket_connect(f"/ws/{room_id}") as host:
            create(host)
            send(host, "addBot")
            expect(host, "state")
            send(host, "leave")
            expect(host, "destroyed")
        assert client.get(f"/api/rooms/{room_id}").status_code == 404


class TestGameFlow:

    def test_one_human_with_bots(self, client, room_id) -> None:
        with client.websocket_connect(f"/ws/{room_id}") as ws:
            seat = create(ws)
            for _ in range(3):
                send(ws, "addBot")
                expect(ws, "state")

            send(ws, "start")
            session = expect(ws, "state")["session"]
            # Only human seat, so Ann deals and the bots finish DEAL
            assert session["phase"] == "PLAY"
            assert session["dealerId"] == seat

            send(ws, "advancePlay")
            session = expect(ws, "state")["session"]
            assert session["phase"] == "REVEAL"
            assert session["revealStartTime"] is not None

            send(ws, "advanceReveal")
            session = expect(ws, "state")["session"]
            assert session["phase"] == "VOTE"
            bots = [p for p in session["players"] if p != seat]
            assert all(b in session["votes"] for b in bots)
            # Bot selections are pending entries too and stay hidden
            assert session["voteSelection"] == {}

            for target in bots[:2]:
                send(ws, "selectVote", target=target)
            expect(ws, "state")
            session = expect(ws, "state")["session"]
            assert session["voteSelection"] == {seat: bots[:2]}

            send(ws, "confirmVote")
            session = expect(ws, "state")["session"]
            assert session["phase"] == "RESULT"
            assert session["dealerGuess"] == bots[0]

            board = client.get(f"/api/rooms/{room_id}/leaderboard").json()
            assert len(board) == 4
            assert board[0]["rank"] == 1

            send(ws, "startNextRound")
            session = expect(ws, "state")["session"]
            assert session["roundNumber"] == 2
            assert session["phase"] == "PLAY"


class _Socket:
    """Stand-in WebSocket recording what the hub sends; a broken one fails every send."""

    def __init__(self, broken: bool = False):
        self.broken = broken
        self.sent: List[Dict[str, Any]] = []

    async def accept(self) -> None:
        pass

    async def send_json(self, message: Dict[str, Any]) -> None:
        if self.broken:
            raise RuntimeError("connection reset")
        self.sent.append(message)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        pass


class TestConnectionManager:
    """Hub bookkeeping driven directly, without a transport."""

    @pytest.fixture
    def hub(self, monkeypatch) -> ws_router.ConnectionManager:
        hub = ws_router.ConnectionManager()
        monkeypatch.setattr(ws_router, "manager", hub)
        return hub

    @pytest.fixture
    def rooms(self, monkeypatch) -> RoomManager:
        rooms = RoomManager(store=MemorySessionStore(), inactivity_seconds=60)
        monkeypatch.setattr(ws_router, "room_manager", rooms)
        return rooms

    async def test_failed_send_keeps_binding(self, hub, rooms, engine, room_id) -> None:
        session, seats = make_room(engine, ["Ann", "Ben"], capacity=4)
        room = await rooms.open_room(room_id)
        await rooms.open_room(room_id)
        async with room.lock:
            await rooms.commit(room, session)

        ann_ws, ben_ws = _Socket(), _Socket(broken=True)
        await hub.connect(room_id, "c-ann", ann_ws)
        hub.bind(room_id, "c-ann", seats["Ann"])
        await hub.connect(room_id, "c-ben", ben_ws)
        hub.bind(room_id, "c-ben", seats["Ben"])

        await hub.broadcast_state(room_id, room.session)
        assert hub.seat_of(room_id, "c-ben") == seats["Ben"]
        assert hub.count(room_id) == 2

        # The receive loop ending is what removes the lobby seat
        await ws_router._on_disconnect(room, "c-ben")
        assert room.session.players == [seats["Ann"]]
        assert ann_ws.sent[-1]["type"] == "state"
        assert ann_ws.sent[-1]["session"]["players"] == [seats["Ann"]]
        assert room.clients == 1
        assert rooms._cleanup_tasks == {}

    async def test_last_disconnect_evicts_empty_room(self, hub, rooms, room_id) -> None:
        room = await rooms.open_room(room_id)
        await hub.connect(room_id, "c-1", _Socket())
        await ws_router._on_disconnect(room, "c-1")
        assert hub.count(room_id) == 0
        assert room_id not in rooms._rooms
