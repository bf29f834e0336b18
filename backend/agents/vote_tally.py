"""
Vote Tally & Scorer — VOTE phase bookkeeping and round scoring.

A vote names the seat(s) the voter believes hold the correct word. The dealer
gets `config.dealer_vote_count` picks, everyone else one. When blank cards are in
play a second, single-target "who is blank" vote may be required per role.

Selections stay private to the voter until `confirm_vote` copies them into the
confirmed maps. `calculate_round_scores` is pure and may be called any number of
times (authoritative scoring and leaderboard previews share it).
"""
import logging
from typing import Dict, List

from models.game import (
    ErrorCode, GameActionError, LeaderboardEntry, Phase, Role, Session,
)

logger = logging.getLogger(__name__)


def vote_cap(session: Session, seat_id: str) -> int:
    if session.dealer_id and seat_id == session.dealer_id:
        return session.config.dealer_vote_count
    return 1


def can_vote_blank(session: Session, seat_id: str) -> bool:
    config = session.config
    if config.blank_count <= 0:
        return False
    if session.dealer_id and seat_id == session.dealer_id:
        return config.dealer_can_vote_blank
    return config.player_can_vote_blank


def has_confirmed(session: Session, seat_id: str) -> bool:
    return session.votes.get(seat_id) is not None


def _check_target(session: Session, seat_id: str, target_id) -> None:
    if not target_id or not session.is_member(target_id):
        raise GameActionError(ErrorCode.INVALID, "Invalid vote target")
    if target_id == seat_id:
        raise GameActionError(ErrorCode.INVALID, "You cannot vote for yourself")
    # The dealer holds no word, so the dealer seat is never a target
    if session.dealer_id and target_id == session.dealer_id:
        raise GameActionError(ErrorCode.INVALID, "You cannot vote for the dealer")
    if has_confirmed(session, seat_id):
        raise GameActionError(ErrorCode.INVALID, "Your vote is already confirmed")


def select_vote(session: Session, seat_id: str, target_id: str) -> None:
    """
    Toggle target in the seat's pending selection.
    Cap 1: a new target replaces the old one. Larger caps accumulate until full;
    a full selection must drop a target before adding another.
    """
    _check_target(session, seat_id, target_id)

    current = list(session.vote_selection.get(seat_id, []))
    cap = vote_cap(session, seat_id)
    if target_id in current:
        current.remove(target_id)
    elif cap == 1:
        current = [target_id]
    elif len(current) < cap:
        current.append(target_id)

    session.vote_selection[seat_id] = current


def select_blank_vote(session: Session, seat_id: str, target_id: str) -> None:
    """Single-target toggle: same target clears, a different one switches."""
    if not can_vote_blank(session, seat_id):
        raise GameActionError(ErrorCode.INVALID, "Blank voting is not enabled for you")
    _check_target(session, seat_id, target_id)

    current = session.blank_vote_selection.get(seat_id)
    session.blank_vote_selection[seat_id] = None if current == target_id else target_id


def confirm_vote(session: Session, seat_id: str) -> None:
    if has_confirmed(session, seat_id):
        raise GameActionError(ErrorCode.INVALID, "Your vote is already confirmed")

    selection = session.vote_selection.get(seat_id) or []
    cap = vote_cap(session, seat_id)
    if len(selection) != cap:
        raise GameActionError(
            ErrorCode.INVALID, f"Select exactly {cap} player(s) before confirming"
        )

    needs_blank = can_vote_blank(session, seat_id)
    blank_selection = session.blank_vote_selection.get(seat_id)
    if needs_blank and blank_selection is None:
        raise GameActionError(ErrorCode.INVALID, "You must also pick who is blank")

    session.votes[seat_id] = list(selection)
    if needs_blank:
        session.blank_votes[seat_id] = blank_selection
    if seat_id == session.dealer_id:
        session.dealer_guess = selection[0]


def voting_complete(session: Session) -> bool:
    for seat in session.players:
        if session.votes.get(seat) is None:
            return False
        if can_vote_blank(session, seat) and session.blank_votes.get(seat) is None:
            return False
    return True


def check_vote_complete(session: Session) -> bool:
    """VOTE → RESULT once every seat (and every required blank vote) is confirmed."""
    if session.phase != Phase.VOTE:
        return False
    if voting_complete(session):
        session.phase = Phase.RESULT
        logger.info(f"[{session.id}] Phase: VOTE → RESULT (round {session.round_number})")
        return True
    return False


# ── Scoring ───────────────────────────────────────────────────────────────────

def calculate_round_scores(session: Session) -> Dict[str, int]:
    scoring = session.config.scoring
    dealer_id = session.dealer_id
    roles = session.roles
    scores: Dict[str, int] = {p: 0 for p in session.players}

    def award(seat: str, points: int) -> None:
        scores[seat] = scores.get(seat, 0) + points

    for voter, picks in session.votes.items():
        if not picks:
            continue
        voter_is_dealer = voter == dealer_id
        for target in picks:
            target_role = roles.get(target)
            if voter_is_dealer:
                if target_role == Role.CIVILIAN:
                    award(voter, scoring.dealer_correct_civilian)
                    award(target, scoring.civilian_from_dealer)
                elif target_role == Role.UNDERCOVER:
                    award(target, scoring.undercover_from_dealer)
                elif target_role == Role.BLANK:
                    award(target, scoring.blank_from_dealer)
            else:
                if target_role == Role.CIVILIAN:
                    award(voter, scoring.player_correct_civilian)
                award(target, scoring.received_vote)

    found_blanks = set()
    for voter, target in session.blank_votes.items():
        if target is None or roles.get(target) != Role.BLANK:
            continue
        found_blanks.add(target)
        if voter == dealer_id:
            award(voter, scoring.dealer_correct_blank)
        else:
            award(voter, scoring.player_correct_blank)

    # Escape bonus only counts when somebody actually cast a blank vote
    if any(t is not None for t in session.blank_votes.values()):
        for seat in session.players:
            if roles.get(seat) == Role.BLANK and seat not in found_blanks:
                award(seat, scoring.blank_escape)

    return scores


def fold_round_scores(session: Session) -> Dict[str, int]:
    """Previous totals plus this round's scores, for every current seat."""
    round_scores = calculate_round_scores(session)
    totals = dict(session.total_scores)
    for seat, points in round_scores.items():
        totals[seat] = totals.get(seat, 0) + points
    return totals


def leaderboard(session: Session) -> List[LeaderboardEntry]:
    """
    Ranked standings. In RESULT the current round is included as a preview;
    ties share a rank and the next distinct score skips ahead (1, 1, 3).
    """
    if session.phase == Phase.RESULT:
        round_scores = calculate_round_scores(session)
    else:
        round_scores = {}

    entries = [
        LeaderboardEntry(
            seat_id=seat,
            name=session.name_of(seat),
            round_score=round_scores.get(seat, 0),
            total_score=session.total_scores.get(seat, 0) + round_scores.get(seat, 0),
        )
        for seat in session.players
    ]
    entries.sort(key=lambda e: e.total_score, reverse=True)

    rank = 1
    for i, entry in enumerate(entries):
        if i > 0 and entry.total_score < entries[i - 1].total_score:
            rank = i + 1
        entry.rank = rank
    return entries
