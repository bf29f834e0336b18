"""
Bot Player — fills in actions for bot seats so one human plus bots can play.

Runs at DEAL entry (bots acknowledge and place their cards) and at VOTE entry
(bots pick random targets and confirm at once). Bots never start a game or
advance PLAY/REVEAL; those always need a human in the authorized seat.
"""
import logging
import random

from models.game import Phase, Session, is_bot
from agents.role_dealer import check_deal_complete
from agents.vote_tally import can_vote_blank, check_vote_complete, vote_cap

logger = logging.getLogger(__name__)


class BotPlayer:

    def act(self, session: Session, rng: random.Random) -> None:
        """Apply every pending bot action for the current phase, then re-check auto-transitions."""
        bots = [p for p in session.players if is_bot(p)]
        if not bots:
            return

        if session.phase == Phase.DEAL:
            self._place_cards(session, bots)
            check_deal_complete(session)

        if session.phase == Phase.VOTE:
            self._cast_votes(session, bots, rng)
            check_vote_complete(session)

    def _place_cards(self, session: Session, bots) -> None:
        for bot in bots:
            if bot == session.dealer_id:
                continue
            session.ready[bot] = True
            session.card_placed[bot] = True

    def _cast_votes(self, session: Session, bots, rng: random.Random) -> None:
        dealer_id = session.dealer_id
        for bot in bots:
            if session.votes.get(bot) is not None:
                continue

            if bot == dealer_id:
                candidates = [p for p in session.players if p != dealer_id]
            else:
                candidates = [p for p in session.players if p != bot and p != dealer_id]
            cap = vote_cap(session, bot)
            if len(candidates) < cap:
                logger.warning(
                    "[%s] Bot %s has %d eligible target(s) for %d vote(s), skipping",
                    session.id, bot, len(candidates), cap,
                )
                continue

            picks = rng.sample(candidates, cap)
            session.vote_selection[bot] = picks
            session.votes[bot] = list(picks)
            if bot == dealer_id:
                session.dealer_guess = picks[0]

            if can_vote_blank(session, bot):
                blank_pick = rng.choice(candidates)
                session.blank_vote_selection[bot] = blank_pick
                session.blank_votes[bot] = blank_pick

        logger.debug("[%s] Bot votes cast", session.id)


# Module-level singleton
bot_player = BotPlayer()
