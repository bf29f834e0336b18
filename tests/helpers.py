"""
Helpers for driving the game engine in tests.

Usage:
    from tests.helpers import act, make_room, play_to_vote
"""
from typing import Dict, List, Optional, Tuple

from agents.game_master import ActionResult, GameMaster
from models.game import Phase, Role, Session
from services.word_source import WordGroup

FIXED_NOW = 1_700_000_000.0

WORD_GROUPS = [
    WordGroup(id=1, words=["Ocean", "Lake", "River", "Pond"]),
    WordGroup(id=2, words=["Coffee", "Tea", "Cocoa"]),
]


def act(
    engine: GameMaster,
    session: Optional[Session],
    seat_id: Optional[str],
    action: str,
    data: Optional[Dict] = None,
) -> ActionResult:
    room_id = session.id if session else "room-1"
    return engine.handle(room_id, session, seat_id, action, data or {})


def make_room(
    engine: GameMaster,
    names: List[str],
    bots: int = 0,
    capacity: Optional[int] = None,
    config: Optional[Dict] = None,
) -> Tuple[Session, Dict[str, str]]:
    """LOBBY room: names[0] creates and hosts, the rest join, then the host adds bots."""
    capacity = capacity or len(names) + bots
    result = act(engine, None, None, "create", {"name": names[0], "capacity": capacity})
    session = result.session
    seats = {names[0]: result.seat_id}
    for name in names[1:]:
        result = act(engine, session, None, "join", {"name": name})
        session = result.session
        seats[name] = result.seat_id
    host = seats[names[0]]
    for _ in range(bots):
        session = act(engine, session, host, "addBot").session
    if config:
        session = act(engine, session, host, "updateConfig", {"config": config}).session
    return session, seats


def seats_with_role(session: Session, role: Role) -> List[str]:
    return [p for p in session.players if session.roles.get(p) == role]


def advancer(session: Session) -> str:
    if session.dealer_id:
        return session.dealer_id
    return next(p for p in session.players if session.is_host(p))


def play_to_vote(engine: GameMaster, session: Session) -> Session:
    """From DEAL: every required seat places its card, then the dealer/host advances twice."""
    assert session.phase in (Phase.DEAL, Phase.PLAY)
    for seat in session.human_seats():
        if session.phase != Phase.DEAL:
            break
        if seat != session.dealer_id:
            session = act(engine, session, seat, "placeCard").session
    assert session.phase == Phase.PLAY
    session = act(engine, session, advancer(session), "advancePlay").session
    session = act(engine, session, advancer(session), "advanceReveal").session
    return session
