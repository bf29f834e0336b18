"""
Role Dealer — deterministic role/word dealing for a new round.

Responsibilities:
- Select the round's word group, avoiding groups already used in this room
- Pick the dealer from human seats (rotation or random)
- Shuffle the remaining seats and hand out civilian, undercover and blank cards
- Reset the DEAL phase progress flags and advance round bookkeeping

Called by the Game Master on `start` and `startNextRound`. The bot pass that
follows a deal is run by the Game Master right after.
"""
import logging
import random
from typing import List, Optional

from models.game import (
    BLANK_MARKER, ErrorCode, GameActionError, Phase, Role, Session,
)
from services.word_source import WordSource, get_word_source

logger = logging.getLogger(__name__)


def required_card_seats(session: Session) -> List[str]:
    """Seats that must place a card before play: everyone except the dealer."""
    if session.dealer_id:
        return [p for p in session.players if p != session.dealer_id]
    return list(session.players)


def check_deal_complete(session: Session) -> bool:
    """DEAL → PLAY once every required seat has placed its card. Returns True on transition."""
    if session.phase != Phase.DEAL:
        return False
    if all(session.card_placed.get(p) for p in required_card_seats(session)):
        session.phase = Phase.PLAY
        logger.info(f"[{session.id}] Phase: DEAL → PLAY (round {session.round_number})")
        return True
    return False


class RoleDealer:
    """
    Deals one round. Works on the session it is given; the Game Master passes
    a private copy so a failed deal never leaks into the live session.
    """

    def __init__(self, word_source: Optional[WordSource] = None):
        self._word_source = word_source

    @property
    def word_source(self) -> WordSource:
        return self._word_source or get_word_source()

    def pick_dealer(self, session: Session, rng: random.Random) -> Optional[str]:
        """Dealer is always a human seat. Rotation follows seat order after the last dealer."""
        config = session.config
        if config.dealer_count != 1:
            return None

        humans = session.human_seats()
        if not humans:
            raise GameActionError(ErrorCode.INVALID, "No human seat can be the dealer")

        if config.dealer_rotation and session.dealer_history:
            last_dealer = session.dealer_history[-1]
            if last_dealer in humans:
                return humans[(humans.index(last_dealer) + 1) % len(humans)]
            return humans[0]
        return rng.choice(humans)

    def deal(self, session: Session, rng: random.Random) -> None:
        config = session.config
        selection = self.word_source.select_group(session.used_word_groups, rng)

        dealer_id = self.pick_dealer(session, rng)
        roles = {}
        assignments = {}
        if dealer_id:
            roles[dealer_id] = Role.DEALER
            assignments[dealer_id] = None

        # Shuffled independently of dealer selection
        seats = [p for p in session.players if p != dealer_id]
        rng.shuffle(seats)
        needed = config.civilian_count + config.undercover_count + config.blank_count
        if len(seats) != needed:
            raise GameActionError(
                ErrorCode.INVALID,
                f"Role counts need {needed} non-dealer seats, room has {len(seats)}",
            )

        civilians = seats[:config.civilian_count]
        undercovers = seats[config.civilian_count:config.civilian_count + config.undercover_count]
        blanks = seats[config.civilian_count + config.undercover_count:]

        for seat in civilians:
            roles[seat] = Role.CIVILIAN
            assignments[seat] = selection.correct

        undercover_words = self.word_source.undercover_words(
            selection.wrong, len(undercovers), config.different_undercover_words, rng
        )
        for seat, word in zip(undercovers, undercover_words):
            roles[seat] = Role.UNDERCOVER
            assignments[seat] = word

        for seat in blanks:
            roles[seat] = Role.BLANK
            assignments[seat] = BLANK_MARKER

        session.phase = Phase.DEAL
        session.dealer_id = dealer_id
        session.words = selection
        session.used_word_groups = session.used_word_groups + [selection.group_index]
        session.roles = roles
        session.assignments = assignments
        session.ready = {}
        session.card_placed = {}
        session.round_number += 1
        if dealer_id:
            session.dealer_history = session.dealer_history + [dealer_id]

        logger.info(
            "[%s] Round %d dealt (group %d): dealer=%s civilians=%d undercover=%d blank=%d",
            session.id, session.round_number, selection.group_index, dealer_id,
            len(civilians), len(undercovers), len(blanks),
        )


# Module-level singleton
role_dealer = RoleDealer()
