"""
Game Master — the room's phase engine. Pure deterministic Python, no I/O.

Responsibilities:
- Phase transitions (LOBBY → DEAL → PLAY → REVEAL → VOTE → RESULT, plus the
  host's reset actions back to LOBBY or straight into the next deal)
- Phase and permission checks for every inbound action
- Delegating to the Role Dealer, Vote Tally, Bot Player and Connection Binder
- Auto-transitions (all cards placed, all votes confirmed)

Every handler works on a deep copy of the session and returns it inside an
ActionResult; a rejected action raises GameActionError before anything is
returned, so the live session is never half-updated. Persistence and broadcast
are the caller's job.
"""
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from models.game import (
    MAX_PLAYERS, MIN_PLAYERS,
    ErrorCode, GameActionError, Phase, RoomConfig, Session, new_session,
)
from agents.bot_player import BotPlayer, bot_player
from agents.config_validator import validate_config
from agents.connection_binder import ConnectionBinder, connection_binder
from agents.role_dealer import RoleDealer, check_deal_complete, role_dealer
from agents import vote_tally

logger = logging.getLogger(__name__)


@dataclass
class ActionResult:
    """Outcome of one accepted action."""

    session: Optional[Session]          # None once the room is torn down
    seat_id: Optional[str] = None       # bind the acting connection to this seat (welcome)
    persist: bool = True                # session changed and must be saved
    broadcast: bool = True              # False: echo state to the acting connection only
    removed_seats: List[str] = field(default_factory=list)  # seats to notify with "kicked"
    unbind_origin: bool = False         # acting connection gives up its seat binding

    @property
    def destroyed(self) -> bool:
        return self.session is None


def can_advance_phase(session: Session, seat_id: Optional[str]) -> bool:
    """PLAY/REVEAL advance: the dealer seat if there is one, otherwise the host."""
    if session.dealer_id:
        return seat_id == session.dealer_id
    return session.is_host(seat_id)


def _camel_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    return {(to_camel(k) if "_" in k else k): v for k, v in data.items()}


class GameMaster:
    """
    Deterministic game logic engine.
    Randomness and wall-clock time are injected so rounds can be replayed.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
        dealer: Optional[RoleDealer] = None,
        bots: Optional[BotPlayer] = None,
        binder: Optional[ConnectionBinder] = None,
    ):
        self.rng = rng or random.Random()
        self.clock = clock
        self.dealer = dealer or role_dealer
        self.bots = bots or bot_player
        self.binder = binder or connection_binder
        self._handlers: Dict[str, Callable[..., ActionResult]] = {
            "join": self.join,
            "rejoin": self.rejoin,
            "leave": self.leave,
            "kick": self.kick,
            "updateConfig": self.update_config,
            "start": self.start,
            "addBot": self.add_bot,
            "acknowledgeDeal": self.acknowledge_deal,
            "placeCard": self.place_card,
            "advancePlay": self.advance_play,
            "advanceReveal": self.advance_reveal,
            "selectVote": self.select_vote,
            "selectBlankVote": self.select_blank_vote,
            "confirmVote": self.confirm_vote,
            "backToLobby": self.back_to_lobby,
            "startNextRound": self.start_next_round,
        }

    # ── Dispatch ───────────────────────────────────────────────────────────────

    def handle(
        self,
        room_id: str,
        session: Optional[Session],
        seat_id: Optional[str],
        action: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> ActionResult:
        data = data or {}
        if action == "create":
            return self.create(room_id, session, data)
        handler = self._handlers.get(action)
        if handler is None:
            raise GameActionError(ErrorCode.UNKNOWN, f"Unknown action: '{action}'")
        if session is None:
            raise GameActionError(ErrorCode.NOT_FOUND, "Room not found")
        return handler(session, seat_id, data)

    # ── Guards ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _require_phase(session: Session, phase: Phase) -> None:
        if session.phase != phase:
            raise GameActionError(ErrorCode.INVALID, f"Not in {phase.value} phase")

    @staticmethod
    def _require_member(session: Session, seat_id: Optional[str]) -> None:
        if not session.is_member(seat_id):
            raise GameActionError(ErrorCode.INVALID, "Player not in room")

    @staticmethod
    def _require_host(session: Session, seat_id: Optional[str], message: str) -> None:
        if not session.is_host(seat_id):
            raise GameActionError(ErrorCode.NOT_HOST, message)

    @staticmethod
    def _require_advancer(session: Session, seat_id: Optional[str]) -> None:
        if not can_advance_phase(session, seat_id):
            who = "dealer" if session.dealer_id else "host"
            raise GameActionError(ErrorCode.NOT_AUTHORIZED, f"Only the {who} can continue")

    @staticmethod
    def _require_unseated(session: Session, seat_id: Optional[str], bound: str) -> None:
        """A seated connection may only resume its own seat."""
        if session.is_member(seat_id) and bound != seat_id:
            raise GameActionError(ErrorCode.INVALID, "Already seated in this room, leave first")

    @staticmethod
    def _text_field(data: Dict, key: str) -> Optional[str]:
        value = data.get(key)
        if value is not None and not isinstance(value, str):
            raise GameActionError(ErrorCode.INVALID, f"Invalid {key}")
        return value

    # ── Identity & membership ──────────────────────────────────────────────────

    def create(self, room_id: str, session: Optional[Session], data: Dict) -> ActionResult:
        if session is not None:
            raise GameActionError(ErrorCode.INVALID, "Room already exists")
        name = self._text_field(data, "name")
        created, seat_id = self.binder.create(room_id, name, data.get("capacity"))
        return ActionResult(created, seat_id=seat_id)

    def join(self, session: Session, seat_id: Optional[str], data: Dict) -> ActionResult:
        name = self._text_field(data, "name")
        known_id = self._text_field(data, "id")
        s = session.model_copy(deep=True)
        bound, created = self.binder.join(s, name, known_id)
        self._require_unseated(session, seat_id, bound)
        if not created:
            return ActionResult(session, seat_id=bound, persist=False, broadcast=False)
        return ActionResult(s, seat_id=bound)

    def rejoin(self, session: Session, seat_id: Optional[str], data: Dict) -> ActionResult:
        bound = self.binder.rejoin(session, self._text_field(data, "id"))
        self._require_unseated(session, seat_id, bound)
        return ActionResult(session, seat_id=bound, persist=False, broadcast=False)

    def leave(self, session: Session, seat_id: Optional[str], data: Optional[Dict] = None) -> ActionResult:
        """
        LOBBY: the seat is removed. Later phases: only the connection lets go of
        the seat, which stays resumable by name or id.
        """
        self._require_member(session, seat_id)
        if session.phase != Phase.LOBBY:
            return ActionResult(session, persist=False, broadcast=False, unbind_origin=True)

        s = session.model_copy(deep=True)
        alive = self.binder.remove_seat(s, seat_id)
        return ActionResult(s if alive else None, unbind_origin=True)

    def kick(self, session: Session, seat_id: Optional[str], data: Dict) -> ActionResult:
        self._require_phase(session, Phase.LOBBY)
        self._require_host(session, seat_id, "Only the host can kick players")
        target = data.get("target")
        if not session.is_member(target) or target == seat_id:
            raise GameActionError(ErrorCode.INVALID, "Invalid kick target")

        s = session.model_copy(deep=True)
        alive = self.binder.remove_seat(s, target)
        logger.info(f"[{session.id}] {session.name_of(target)} kicked by host")
        return ActionResult(s if alive else None, removed_seats=[target])

    def add_bot(self, session: Session, seat_id: Optional[str], data: Dict) -> ActionResult:
        self._require_phase(session, Phase.LOBBY)
        self._require_host(session, seat_id, "Only the host can add bots")
        s = session.model_copy(deep=True)
        self.binder.add_bot(s)
        return ActionResult(s)

    # ── LOBBY ──────────────────────────────────────────────────────────────────

    def update_config(self, session: Session, seat_id: Optional[str], data: Dict) -> ActionResult:
        self._require_phase(session, Phase.LOBBY)
        self._require_host(session, seat_id, "Only the host can change the configuration")

        patch = data.get("config")
        if not isinstance(patch, dict):
            raise GameActionError(ErrorCode.INVALID_CONFIG, "Config must be an object")
        patch = _camel_keys(patch)
        merged = session.config.model_dump(by_alias=True)
        if isinstance(patch.get("scoring"), dict):
            patch["scoring"] = {**merged["scoring"], **_camel_keys(patch["scoring"])}
        merged.update(patch)

        try:
            config = RoomConfig.model_validate(merged)
        except ValidationError as exc:
            details = [f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()]
            raise GameActionError(ErrorCode.INVALID_CONFIG, "; ".join(details), details)

        errors = validate_config(config)
        if not MIN_PLAYERS <= config.capacity <= MAX_PLAYERS:
            errors.append(f"Capacity must be between {MIN_PLAYERS} and {MAX_PLAYERS}")
        if errors:
            raise GameActionError(ErrorCode.INVALID_CONFIG, "; ".join(errors), errors)

        s = session.model_copy(deep=True)
        s.config = config
        removed: List[str] = []
        alive = True
        if config.capacity < len(s.players):
            removed, alive = self.binder.trim_to_capacity(s, config.capacity)
            logger.info(f"[{session.id}] Capacity reduced to {config.capacity}; removed {removed}")
        return ActionResult(s if alive else None, removed_seats=removed)

    def start(self, session: Session, seat_id: Optional[str], data: Dict) -> ActionResult:
        self._require_phase(session, Phase.LOBBY)
        self._require_host(session, seat_id, "Only the host can start the game")
        capacity = session.config.capacity
        if len(session.players) != capacity:
            raise GameActionError(
                ErrorCode.INVALID, f"Need exactly {capacity} players (have {len(session.players)})"
            )
        errors = validate_config(session.config)
        if errors:
            raise GameActionError(ErrorCode.INVALID_CONFIG, "; ".join(errors), errors)

        s = session.model_copy(deep=True)
        self._deal(s)
        return ActionResult(s)

    def _deal(self, s: Session) -> None:
        self.dealer.deal(s, self.rng)
        # Bots progress DEAL at once; they may complete it unaided
        self.bots.act(s, self.rng)

    # ── DEAL ───────────────────────────────────────────────────────────────────

    def acknowledge_deal(self, session: Session, seat_id: Optional[str], data: Dict) -> ActionResult:
        self._require_phase(session, Phase.DEAL)
        self._require_member(session, seat_id)
        s = session.model_copy(deep=True)
        s.ready[seat_id] = True
        return ActionResult(s)

    def place_card(self, session: Session, seat_id: Optional[str], data: Dict) -> ActionResult:
        self._require_phase(session, Phase.DEAL)
        self._require_member(session, seat_id)
        s = session.model_copy(deep=True)
        s.card_placed[seat_id] = True
        check_deal_complete(s)
        return ActionResult(s)

    # ── PLAY / REVEAL ──────────────────────────────────────────────────────────

    def advance_play(self, session: Session, seat_id: Optional[str], data: Dict) -> ActionResult:
        self._require_phase(session, Phase.PLAY)
        self._require_advancer(session, seat_id)
        s = session.model_copy(deep=True)
        s.phase = Phase.REVEAL
        s.ready = {}
        s.card_placed = {}
        # Presentation anchor for the client countdown only
        s.reveal_start_time = int(self.clock() * 1000)
        logger.info(f"[{s.id}] Phase: PLAY → REVEAL")
        return ActionResult(s)

    def advance_reveal(self, session: Session, seat_id: Optional[str], data: Dict) -> ActionResult:
        self._require_phase(session, Phase.REVEAL)
        self._require_advancer(session, seat_id)
        s = session.model_copy(deep=True)
        s.phase = Phase.VOTE
        s.vote_selection = {}
        s.votes = {}
        s.blank_vote_selection = {}
        s.blank_votes = {}
        s.dealer_guess = None
        logger.info(f"[{s.id}] Phase: REVEAL → VOTE")
        self.bots.act(s, self.rng)
        return ActionResult(s)

    # ── VOTE ───────────────────────────────────────────────────────────────────

    def select_vote(self, session: Session, seat_id: Optional[str], data: Dict) -> ActionResult:
        self._require_phase(session, Phase.VOTE)
        self._require_member(session, seat_id)
        s = session.model_copy(deep=True)
        vote_tally.select_vote(s, seat_id, data.get("target"))
        # Pending selections stay with the voter until confirmed
        return ActionResult(s, broadcast=False)

    def select_blank_vote(self, session: Session, seat_id: Optional[str], data: Dict) -> ActionResult:
        self._require_phase(session, Phase.VOTE)
        self._require_member(session, seat_id)
        s = session.model_copy(deep=True)
        vote_tally.select_blank_vote(s, seat_id, data.get("target"))
        return ActionResult(s, broadcast=False)

    def confirm_vote(self, session: Session, seat_id: Optional[str], data: Dict) -> ActionResult:
        self._require_phase(session, Phase.VOTE)
        self._require_member(session, seat_id)
        s = session.model_copy(deep=True)
        vote_tally.confirm_vote(s, seat_id)
        vote_tally.check_vote_complete(s)
        return ActionResult(s)

    # ── RESULT / resets ────────────────────────────────────────────────────────

    def _carry_over(self, session: Session) -> Session:
        """Fresh round state that keeps seats, names, host and config."""
        reset = new_session(session.id, session.config.capacity)
        reset.players = list(session.players)
        reset.player_names = dict(session.player_names)
        reset.host_name = session.host_name
        reset.config = session.config.model_copy(deep=True)
        return reset

    def back_to_lobby(self, session: Session, seat_id: Optional[str], data: Dict) -> ActionResult:
        if session.phase == Phase.LOBBY:
            raise GameActionError(ErrorCode.INVALID, "Already in the lobby")
        self._require_host(session, seat_id, "Only the host can return to the lobby")

        reset = self._carry_over(session)
        if data.get("keepScores"):
            if session.phase == Phase.RESULT:
                reset.total_scores = vote_tally.fold_round_scores(session)
            else:
                reset.total_scores = dict(session.total_scores)
        logger.info(
            f"[{session.id}] Phase: {session.phase.value} → LOBBY "
            f"(scores {'kept' if reset.total_scores else 'cleared'})"
        )
        return ActionResult(reset)

    def start_next_round(self, session: Session, seat_id: Optional[str], data: Dict) -> ActionResult:
        self._require_phase(session, Phase.RESULT)
        self._require_host(session, seat_id, "Only the host can start the next round")

        reset = self._carry_over(session)
        reset.total_scores = vote_tally.fold_round_scores(session)
        reset.used_word_groups = list(session.used_word_groups)
        reset.round_number = session.round_number
        reset.dealer_history = list(session.dealer_history)
        self._deal(reset)
        return ActionResult(reset)


# Module-level singleton
game_master = GameMaster()
