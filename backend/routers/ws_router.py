"""
WebSocket Hub — real-time room connections.

URL: /ws/{room_id}

Connection flow:
  1. Accept connection, cancel the room's inactivity cleanup
  2. Load the room (first connection only) and send the current state, if any
  3. Message loop: { "type": ..., "data": { ... } } → room action
  4. On disconnect: a LOBBY seat whose only connection dropped is removed;
     in later phases the seat is kept for reconnection. The last connection
     out releases the room (evicted when empty, else timed for cleanup)

Client → server message types:
  ping                      — keep-alive heartbeat → "pong"
  create / join / rejoin    — bind this connection to a seat ("welcome")
  leave / kick              — seat removal (LOBBY) or release of the binding;
                              a leaving connection stays open as a visitor
  updateConfig / addBot / start
  acknowledgeDeal / placeCard
  advancePlay / advanceReveal
  selectVote / selectBlankVote / confirmVote
  backToLobby / startNextRound

Server → client: welcome, state, error, kicked, destroyed, pong.

Every action runs under the room lock: engine call, save, then broadcast.
Rejected actions answer the sender only. Vote selections are echoed to the
sender only, and every state message is a per-seat view that hides other
seats' pending selections.
"""
import json
import logging
import uuid
from typing import Dict, List, Optional, Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from models.game import ErrorCode, GameActionError, Phase, Session
from agents.game_master import ActionResult, game_master
from services.room_manager import Room, room_manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


# ── Connection Manager ─────────────────────────────────────────────────────────

class Connection:
    def __init__(self, ws: WebSocket):
        self.ws = ws
        self.seat_id: Optional[str] = None


class ConnectionManager:
    """
    Tracks active WebSocket connections per room and the seat each is bound to.
    Safe for asyncio single-threaded event loop (no extra locking needed).
    """

    def __init__(self):
        # {room_id: {connection_id: Connection}}
        self._rooms: Dict[str, Dict[str, Connection]] = {}

    # ── Lifecycle ──────────────────────────────────────────────────────────────

    async def connect(self, room_id: str, conn_id: str, ws: WebSocket) -> None:
        await ws.accept()
        self._rooms.setdefault(room_id, {})[conn_id] = Connection(ws)
        logger.debug(f"[{room_id}] {conn_id} connected ({self.count(room_id)} total)")

    def disconnect(self, room_id: str, conn_id: str) -> Optional[str]:
        """Forget the connection. Returns the seat it was bound to, if any."""
        room_conns = self._rooms.get(room_id, {})
        conn = room_conns.pop(conn_id, None)
        if not room_conns:
            self._rooms.pop(room_id, None)
        return conn.seat_id if conn else None

    def count(self, room_id: str) -> int:
        return len(self._rooms.get(room_id, {}))

    def seat_of(self, room_id: str, conn_id: str) -> Optional[str]:
        conn = self._rooms.get(room_id, {}).get(conn_id)
        return conn.seat_id if conn else None

    def connections_for_seat(self, room_id: str, seat_id: str) -> List[str]:
        return [
            cid for cid, conn in self._rooms.get(room_id, {}).items()
            if conn.seat_id == seat_id
        ]

    def bind(self, room_id: str, conn_id: str, seat_id: str) -> List[WebSocket]:
        """
        Bind a connection to a seat. Any other connection holding the seat is
        dropped from the room and returned so the caller can close it.
        """
        room_conns = self._rooms.get(room_id, {})
        displaced = []
        for cid in self.connections_for_seat(room_id, seat_id):
            if cid != conn_id:
                displaced.append(room_conns.pop(cid).ws)
        conn = room_conns.get(conn_id)
        if conn:
            conn.seat_id = seat_id
        return displaced

    def unbind(self, room_id: str, conn_id: str) -> None:
        conn = self._rooms.get(room_id, {}).get(conn_id)
        if conn:
            conn.seat_id = None

    # ── Sending ────────────────────────────────────────────────────────────────

    async def _send(self, room_id: str, conn_id: str, ws: WebSocket, message: Dict) -> None:
        try:
            await ws.send_json(message)
        except Exception as exc:
            # The binding stays until the receive loop sees the disconnect
            logger.warning(f"[{room_id}] send to {conn_id} failed: {exc}")

    async def send_to(self, room_id: str, conn_id: str, message: Dict) -> None:
        """Send a private message to a single connection."""
        conn = self._rooms.get(room_id, {}).get(conn_id)
        if conn:
            await self._send(room_id, conn_id, conn.ws, message)

    async def broadcast(self, room_id: str, message: Dict) -> None:
        for cid, conn in list(self._rooms.get(room_id, {}).items()):
            await self._send(room_id, cid, conn.ws, message)

    async def send_state(self, room_id: str, conn_id: str, session: Session) -> None:
        conn = self._rooms.get(room_id, {}).get(conn_id)
        if conn:
            await self._send(room_id, conn_id, conn.ws, {
                "type": "state",
                "session": session.view_for(conn.seat_id),
            })

    async def broadcast_state(self, room_id: str, session: Session) -> None:
        """Each connection receives the view for its own seat."""
        for cid, conn in list(self._rooms.get(room_id, {}).items()):
            await self._send(room_id, cid, conn.ws, {
                "type": "state",
                "session": session.view_for(conn.seat_id),
            })

    async def kick_seat(self, room_id: str, seat_id: str) -> None:
        """Tell every connection bound to the seat it was removed, then close it."""
        room_conns = self._rooms.get(room_id, {})
        for cid in self.connections_for_seat(room_id, seat_id):
            conn = room_conns.pop(cid)
            await self._send(room_id, cid, conn.ws, {"type": "kicked"})
            await close_quietly(conn.ws, 1000, "Kicked")
        if not room_conns:
            self._rooms.pop(room_id, None)


async def close_quietly(ws: WebSocket, code: int, reason: str) -> None:
    try:
        await ws.close(code=code, reason=reason)
    except Exception as exc:
        logger.debug(f"close ({reason}) failed: {exc}")


# Module-level singleton
manager = ConnectionManager()


# ── WebSocket endpoint ─────────────────────────────────────────────────────────

@router.websocket("/ws/{room_id}")
async def websocket_endpoint(ws: WebSocket, room_id: str):
    conn_id = uuid.uuid4().hex
    await manager.connect(room_id, conn_id, ws)
    room = await room_manager.open_room(room_id)

    try:
        # Visitors see the join form (or the game in progress) straight away
        if room.session:
            await manager.send_state(room_id, conn_id, room.session)

        # ── Message loop ───────────────────────────────────────────────────────
        while True:
            raw = await ws.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                await manager.send_to(room_id, conn_id, {
                    "type": "error",
                    "message": "Invalid JSON",
                    "code": ErrorCode.PARSE_ERROR.value,
                })
                continue
            if not isinstance(data, dict):
                data = {}

            msg_type = str(data.get("type", ""))
            inner_data = data.get("data") if isinstance(data.get("data"), dict) else {}
            await _handle_message(room, conn_id, msg_type, inner_data)

    except WebSocketDisconnect:
        pass
    finally:
        await _on_disconnect(room, conn_id)


async def _on_disconnect(room: Room, conn_id: str) -> None:
    seat_id = manager.disconnect(room.id, conn_id)
    try:
        # Only the seat's current connection counts; a replaced one just goes away
        if seat_id and not manager.connections_for_seat(room.id, seat_id):
            async with room.lock:
                session = room.session
                if session and session.phase == Phase.LOBBY and session.is_member(seat_id):
                    logger.info(f"[{room.id}] {session.name_of(seat_id)} dropped in lobby, leaving")
                    result = game_master.leave(session, seat_id)
                    await _apply_result(room, conn_id, result)
    except Exception:
        logger.exception("[%s] Error while handling disconnect of %s", room.id, conn_id)
    finally:
        room_manager.release(room)


# ── Message dispatcher ─────────────────────────────────────────────────────────

async def _handle_message(room: Room, conn_id: str, msg_type: str, data: Dict[str, Any]) -> None:
    try:
        await _dispatch_message(room, conn_id, msg_type, data)
    except WebSocketDisconnect:
        raise
    except Exception:
        logger.exception("[%s] Unhandled error in _handle_message (type=%s)", room.id, msg_type)
        await manager.send_to(room.id, conn_id, {
            "type": "error",
            "message": "Internal server error",
            "code": ErrorCode.SERVER_ERROR.value,
        })


async def _dispatch_message(room: Room, conn_id: str, msg_type: str, data: Dict[str, Any]) -> None:
    if msg_type == "ping":
        await manager.send_to(room.id, conn_id, {"type": "pong"})
        return

    async with room.lock:
        seat_id = manager.seat_of(room.id, conn_id)
        try:
            result = game_master.handle(room.id, room.session, seat_id, msg_type, data)
        except GameActionError as exc:
            logger.debug(f"[{room.id}] {msg_type} rejected: {exc.code.value} {exc.message}")
            await manager.send_to(room.id, conn_id, exc.to_message())
            return
        await _apply_result(room, conn_id, result)


async def _apply_result(room: Room, conn_id: str, result: ActionResult) -> None:
    """Persist, fix up bindings, then tell the clients. Call with room.lock held."""
    if result.persist:
        await room_manager.commit(room, result.session)

    if result.seat_id:
        for old_ws in manager.bind(room.id, conn_id, result.seat_id):
            await close_quietly(old_ws, 4000, "Replaced by new connection")
        await manager.send_to(room.id, conn_id, {
            "type": "welcome",
            "seatId": result.seat_id,
            "roomId": room.id,
        })

    for seat in result.removed_seats:
        await manager.kick_seat(room.id, seat)

    if result.unbind_origin:
        manager.unbind(room.id, conn_id)

    if result.destroyed:
        await manager.broadcast(room.id, {"type": "destroyed"})
    elif result.broadcast:
        await manager.broadcast_state(room.id, room.session)
    else:
        await manager.send_state(room.id, conn_id, room.session)
