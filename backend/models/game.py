from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any
from enum import Enum
import uuid


# Seat ids starting with this prefix are bot-controlled.
BOT_PREFIX = "bot-"
# Text shown to BLANK seats instead of a word.
BLANK_MARKER = "(blank)"

MIN_PLAYERS = 4
MAX_PLAYERS = 12
DEFAULT_CAPACITY = 6
DEFAULT_DEALER_VOTES = 2
DEFAULT_REVEAL_COUNTDOWN = 15


def generate_id() -> str:
    return uuid.uuid4().hex[:9]


def is_bot(seat_id: Optional[str]) -> bool:
    return bool(seat_id) and seat_id.startswith(BOT_PREFIX)


class Phase(str, Enum):
    LOBBY = "LOBBY"
    DEAL = "DEAL"
    PLAY = "PLAY"
    REVEAL = "REVEAL"
    VOTE = "VOTE"
    RESULT = "RESULT"

    @property
    def index(self) -> int:
        return PHASE_ORDER.index(self)


PHASE_ORDER: List[Phase] = [
    Phase.LOBBY,
    Phase.DEAL,
    Phase.PLAY,
    Phase.REVEAL,
    Phase.VOTE,
    Phase.RESULT,
]


class Role(str, Enum):
    DEALER = "DEALER"          # sees no word, guesses who holds the correct one
    CIVILIAN = "CIVILIAN"      # sees the correct word
    UNDERCOVER = "UNDERCOVER"  # sees a decoy word
    BLANK = "BLANK"            # sees the blank marker


class ErrorCode(str, Enum):
    INVALID = "invalid"
    NOT_AUTHORIZED = "not_authorized"
    NOT_HOST = "not_host"
    FULL = "full"
    DUPLICATE_NAME = "duplicate_name"
    NOT_FOUND = "not_found"
    INVALID_CONFIG = "invalid_config"
    SERVER_ERROR = "server_error"
    UNKNOWN = "unknown"
    PARSE_ERROR = "parse_error"


class GameActionError(Exception):
    """A rejected action. The session it was raised against is left untouched."""

    def __init__(self, code: ErrorCode, message: str, details: Optional[List[str]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or []

    def to_message(self) -> Dict[str, Any]:
        msg: Dict[str, Any] = {
            "type": "error",
            "code": self.code.value,
            "message": self.message,
        }
        if self.details:
            msg["details"] = self.details
        return msg


class _WireModel(BaseModel):
    """camelCase on the wire and in storage, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScoringRules(_WireModel):
    dealer_correct_civilian: int = 3   # dealer picked a civilian: dealer scores
    civilian_from_dealer: int = 1      # dealer picked a civilian: civilian scores
    undercover_from_dealer: int = 2    # dealer fooled into picking an undercover
    blank_from_dealer: int = 3         # dealer fooled into picking a blank
    player_correct_civilian: int = 1   # non-dealer picked a civilian
    received_vote: int = 1             # any non-dealer vote received
    dealer_correct_blank: int = 3
    player_correct_blank: int = 3
    blank_escape: int = 3              # blank nobody found


class RoomConfig(_WireModel):
    capacity: int = DEFAULT_CAPACITY
    dealer_count: int = 1
    civilian_count: int = 2
    undercover_count: int = DEFAULT_CAPACITY - 3
    blank_count: int = 0
    dealer_rotation: bool = False
    different_undercover_words: bool = False
    dealer_can_vote_blank: bool = False
    player_can_vote_blank: bool = False
    dealer_vote_count: int = DEFAULT_DEALER_VOTES
    reveal_countdown: int = DEFAULT_REVEAL_COUNTDOWN
    scoring: ScoringRules = Field(default_factory=ScoringRules)

    @classmethod
    def for_capacity(cls, capacity: int) -> "RoomConfig":
        """Default split: one dealer, two civilians, everyone else undercover."""
        return cls(
            capacity=capacity,
            dealer_count=1,
            civilian_count=2,
            undercover_count=max(0, capacity - 3),
            blank_count=0,
        )


class WordSelection(_WireModel):
    correct: str = ""
    wrong: List[str] = []
    group_index: int = -1


class Session(_WireModel):
    id: str
    phase: Phase = Phase.LOBBY
    players: List[str] = []
    player_names: Dict[str, str] = {}
    host_name: Optional[str] = None
    config: RoomConfig = Field(default_factory=RoomConfig)

    words: WordSelection = Field(default_factory=WordSelection)
    used_word_groups: List[int] = []

    roles: Dict[str, Role] = {}
    assignments: Dict[str, Optional[str]] = {}
    dealer_id: Optional[str] = None

    ready: Dict[str, bool] = {}
    card_placed: Dict[str, bool] = {}
    vote_selection: Dict[str, List[str]] = {}
    votes: Dict[str, List[str]] = {}
    blank_vote_selection: Dict[str, Optional[str]] = {}
    blank_votes: Dict[str, Optional[str]] = {}
    dealer_guess: Optional[str] = None
    reveal_start_time: Optional[int] = None

    round_number: int = 0
    dealer_history: List[str] = []
    total_scores: Dict[str, int] = {}

    # ── Seat queries ──────────────────────────────────────────────────────────

    def is_member(self, seat_id: Optional[str]) -> bool:
        return seat_id is not None and seat_id in self.players

    def is_host(self, seat_id: Optional[str]) -> bool:
        """Host is recognised by display name so it survives a seat id change."""
        if not self.host_name or not seat_id:
            return False
        return self.player_names.get(seat_id) == self.host_name

    def human_seats(self) -> List[str]:
        return [p for p in self.players if not is_bot(p)]

    def find_seat_by_name(self, name: str) -> Optional[str]:
        wanted = name.strip().lower()
        for seat in self.players:
            if self.player_names.get(seat, "").lower() == wanted:
                return seat
        return None

    def name_of(self, seat_id: str) -> str:
        return self.player_names.get(seat_id) or seat_id[:8]

    # ── Membership mutation ───────────────────────────────────────────────────

    def remove_seat(self, seat_id: str) -> None:
        """Drop a seat and every per-seat entry keyed by it."""
        self.players = [p for p in self.players if p != seat_id]
        for table in (
            self.player_names,
            self.roles,
            self.assignments,
            self.ready,
            self.card_placed,
            self.vote_selection,
            self.votes,
            self.blank_vote_selection,
            self.blank_votes,
            self.total_scores,
        ):
            table.pop(seat_id, None)
        if self.dealer_id == seat_id:
            self.dealer_id = None

    # ── Serialisation ─────────────────────────────────────────────────────────

    def to_storage(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def view_for(self, viewer_id: Optional[str]) -> Dict[str, Any]:
        """Client view: pending (unconfirmed) selections of other seats are hidden."""
        data = self.to_storage()
        for key in ("voteSelection", "blankVoteSelection"):
            pending = data.get(key) or {}
            data[key] = {viewer_id: pending[viewer_id]} if viewer_id in pending else {}
        return data


def new_session(room_id: str, capacity: int = DEFAULT_CAPACITY) -> Session:
    return Session(id=room_id, config=RoomConfig.for_capacity(capacity))


# ── HTTP response models ──────────────────────────────────────────────────────

class LeaderboardEntry(_WireModel):
    seat_id: str
    name: str
    total_score: int
    round_score: int = 0
    rank: int = 1


class RoomSummary(_WireModel):
    room_id: str
    phase: Phase
    capacity: int
    host_name: Optional[str] = None
    player_names: List[str] = []
    round_number: int = 0
