"""
Connection Binder — seat identity, membership and host transfer.

A seat outlives the network connection bound to it. Joining with a display name
that already owns a seat (case-insensitive, any phase) resumes that seat instead
of creating a new one; `rejoin` resumes by seat id. Seats are only removed while
the room is in LOBBY. The host is tracked by display name and handed to the first
remaining human seat when the host's seat goes; a room with no humans left is
torn down.

The binder edits the session it is handed. Which connection is bound to which
seat is transport state and lives in the WebSocket hub.
"""
import logging
from typing import List, Optional, Tuple

from models.game import (
    BOT_PREFIX, MAX_PLAYERS, MIN_PLAYERS,
    ErrorCode, GameActionError, Phase, Session,
    generate_id, is_bot, new_session,
)

logger = logging.getLogger(__name__)

BOT_NAMES: List[str] = ["Alex", "Sam", "Jordan", "Casey", "Riley", "Quinn", "Avery", "Morgan"]


def _display_name(name: Optional[str], seat_id: str) -> str:
    clean = (name or "").strip()
    return clean or f"Player {seat_id[:4]}"


class ConnectionBinder:

    def create(self, room_id: str, name: Optional[str], capacity) -> Tuple[Session, str]:
        """New room with the creator as sole seat and host."""
        if not isinstance(capacity, int) or isinstance(capacity, bool) or not (
            MIN_PLAYERS <= capacity <= MAX_PLAYERS
        ):
            raise GameActionError(
                ErrorCode.INVALID_CONFIG,
                f"Capacity must be between {MIN_PLAYERS} and {MAX_PLAYERS}",
                [f"capacity={capacity!r}"],
            )
        session = new_session(room_id, capacity)
        seat_id = generate_id()
        display = _display_name(name, seat_id)
        session.players = [seat_id]
        session.player_names = {seat_id: display}
        session.host_name = display
        logger.info(f"[{room_id}] Room created by {display} (capacity {capacity})")
        return session, seat_id

    def join(
        self, session: Session, name: Optional[str], existing_id: Optional[str] = None
    ) -> Tuple[str, bool]:
        """
        Resolve a join to a seat. Returns (seat_id, created).
        Known seat id or matching display name → existing seat, in any phase.
        Otherwise a new seat, LOBBY only and capacity permitting.
        """
        if existing_id and session.is_member(existing_id) and not is_bot(existing_id):
            return existing_id, False

        clean = (name or "").strip()
        if clean:
            match = session.find_seat_by_name(clean)
            if match is not None:
                if is_bot(match):
                    raise GameActionError(ErrorCode.DUPLICATE_NAME, "That name is already taken")
                logger.info(f"[{session.id}] {clean} resumed seat {match} by name")
                return match, False

        if session.phase != Phase.LOBBY:
            raise GameActionError(ErrorCode.INVALID, "Game already started")
        if len(session.players) >= session.config.capacity:
            raise GameActionError(ErrorCode.FULL, "Room is full")

        if existing_id and not existing_id.startswith(BOT_PREFIX) and not session.is_member(existing_id):
            seat_id = existing_id
        else:
            seat_id = generate_id()
        display = _display_name(clean, seat_id)
        if session.find_seat_by_name(display) is not None:
            raise GameActionError(ErrorCode.DUPLICATE_NAME, "That name is already taken")

        session.players.append(seat_id)
        session.player_names[seat_id] = display
        if session.host_name is None:
            session.host_name = display
        logger.info(f"[{session.id}] {display} joined as {seat_id} ({len(session.players)}/{session.config.capacity})")
        return seat_id, True

    def rejoin(self, session: Optional[Session], known_id: Optional[str]) -> str:
        if session is None:
            raise GameActionError(ErrorCode.NOT_FOUND, "Room not found")
        if not known_id or not session.is_member(known_id) or is_bot(known_id):
            raise GameActionError(ErrorCode.NOT_FOUND, "Player not in room")
        return known_id

    def add_bot(self, session: Session) -> str:
        if len(session.players) >= session.config.capacity:
            raise GameActionError(ErrorCode.FULL, "Room is full")
        bot_id = BOT_PREFIX + generate_id()[:6]
        taken = {n.lower() for n in session.player_names.values()}
        name = next(
            (n for n in BOT_NAMES if n.lower() not in taken),
            f"Bot{len(session.players)}",
        )
        session.players.append(bot_id)
        session.player_names[bot_id] = name
        logger.info(f"[{session.id}] Bot {name} added as {bot_id}")
        return bot_id

    def remove_seat(self, session: Session, seat_id: str) -> bool:
        """
        Remove a seat and transfer host if needed.
        Returns False when no human seat remains and the room must be torn down.
        """
        leaving_name = session.player_names.get(seat_id)
        session.remove_seat(seat_id)

        humans = session.human_seats()
        if not humans:
            logger.info(f"[{session.id}] Last human seat left, tearing room down")
            return False

        if leaving_name is not None and leaving_name == session.host_name:
            session.host_name = session.player_names.get(humans[0])
            logger.info(f"[{session.id}] Host transferred to {session.host_name}")
        return True

    def trim_to_capacity(self, session: Session, capacity: int) -> Tuple[List[str], bool]:
        """Drop trailing seats beyond capacity. Returns (removed seat ids, room alive)."""
        removed = session.players[capacity:]
        alive = True
        for seat in removed:
            alive = self.remove_seat(session, seat) and alive
        return removed, alive


# Module-level singleton
connection_binder = ConnectionBinder()
