"""
Room HTTP endpoints (read-only).

Routes:
  GET /api/rooms/{room_id}              — Public room summary (phase, seats, host)
  GET /api/rooms/{room_id}/leaderboard  — Ranked scores; includes the current round in RESULT

All mutations go through the WebSocket hub.
"""
import logging
from typing import List

from fastapi import APIRouter, HTTPException

from models.game import LeaderboardEntry, RoomSummary
from agents.vote_tally import leaderboard
from services.room_manager import room_manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["rooms"])


async def _load_session(room_id: str):
    session = await room_manager.read_session(room_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Room not found")
    return session


@router.get("/rooms/{room_id}", response_model=RoomSummary, response_model_by_alias=True)
async def get_room(room_id: str):
    """Enough for the enter-room screen; roles and words are never exposed here."""
    session = await _load_session(room_id)
    return RoomSummary(
        room_id=session.id,
        phase=session.phase,
        capacity=session.config.capacity,
        host_name=session.host_name,
        player_names=[session.name_of(p) for p in session.players],
        round_number=session.round_number,
    )


@router.get(
    "/rooms/{room_id}/leaderboard",
    response_model=List[LeaderboardEntry],
    response_model_by_alias=True,
)
async def get_leaderboard(room_id: str):
    session = await _load_session(room_id)
    return leaderboard(session)
