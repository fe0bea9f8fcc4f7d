from __future__ import annotations

import logging
import random
from dataclasses import replace
from typing import Iterable, Optional, Sequence

from ..domain import Assignment, Game, Participant
from ..errors import InsufficientParticipants, InvalidAssignments, NoValidSwap


logger = logging.getLogger(__name__)

MIN_PARTICIPANTS = 3
MAX_PARTIAL_ATTEMPTS = 100


def _rng(rng: Optional[random.Random]) -> random.Random:
    return rng if rng is not None else random.Random()


def generate_assignments(
    participants: Sequence[Participant],
    rng: Optional[random.Random] = None,
) -> list[Assignment]:
    """
    Shuffle the participants and let each one give to the next in line.
    The result is a single n-cycle, so nobody draws themselves.
    """
    if len(participants) < MIN_PARTICIPANTS:
        raise InsufficientParticipants()

    order = [p.id for p in participants]
    _rng(rng).shuffle(order)
    n = len(order)
    return [Assignment(giver_id=order[i], receiver_id=order[(i + 1) % n]) for i in range(n)]


def _swap_candidates(participant_id: str, current: Assignment, assignments: Iterable[Assignment]) -> list[Assignment]:
    out = []
    for a in assignments:
        if a.giver_id == participant_id:
            continue
        # requester would end up giving to themselves
        if a.receiver_id == participant_id:
            continue
        # same receiver, nothing would change
        if a.receiver_id == current.receiver_id:
            continue
        # partner would end up giving to themselves
        if a.giver_id == current.receiver_id:
            continue
        out.append(a)
    return out


def reassign_one(
    participant_id: str,
    assignments: Sequence[Assignment],
    participants: Sequence[Participant],
    rng: Optional[random.Random] = None,
) -> list[Assignment]:
    """
    Give `participant_id` a new receiver by exchanging receivers with one
    other giver. Givers who have not confirmed yet are disturbed first.

    Raises NoValidSwap when no giver can take part in the exchange.
    """
    current = next((a for a in assignments if a.giver_id == participant_id), None)
    if current is None:
        logger.warning("No assignment for giver %s; leaving assignments unchanged", participant_id)
        return list(assignments)

    candidates = _swap_candidates(participant_id, current, assignments)
    if not candidates:
        raise NoValidSwap()

    confirmed = {p.id for p in participants if p.has_confirmed_assignment}
    unconfirmed = [a for a in candidates if a.giver_id not in confirmed]
    partner = _rng(rng).choice(unconfirmed or candidates)

    swapped = []
    for a in assignments:
        if a.giver_id == participant_id:
            swapped.append(Assignment(giver_id=a.giver_id, receiver_id=partner.receiver_id))
        elif a.giver_id == partner.giver_id:
            swapped.append(Assignment(giver_id=a.giver_id, receiver_id=current.receiver_id))
        else:
            swapped.append(a)
    return swapped


def _pair_unlocked(
    givers: list[str],
    receivers: list[str],
    rng: random.Random,
    max_attempts: int,
) -> Optional[list[Assignment]]:
    rng.shuffle(givers)
    for _ in range(max_attempts):
        rng.shuffle(receivers)
        if all(g != r for g, r in zip(givers, receivers)):
            return [Assignment(giver_id=g, receiver_id=r) for g, r in zip(givers, receivers)]
    return None


def reassign_all(
    game: Game,
    rng: Optional[random.Random] = None,
    max_attempts: int = MAX_PARTIAL_ATTEMPTS,
) -> Game:
    """
    Reassign everyone who has not confirmed yet.

    If nobody or everybody has confirmed, the whole set is regenerated and all
    confirmations are dropped. Otherwise confirmed givers keep their exact
    assignment and the rest are reshuffled over the receivers nobody locked.
    If that reshuffle keeps producing self-assignments, fall back to a full
    regeneration instead of failing.
    """
    rng = _rng(rng)
    participants = list(game.participants)
    if len(participants) < MIN_PARTICIPANTS:
        raise InsufficientParticipants()

    ids = {p.id for p in participants}
    confirmed = {p.id for p in participants if p.has_confirmed_assignment}

    assignments = None
    kept: set[str] = set()
    if confirmed and len(confirmed) < len(participants):
        locked = [
            a for a in game.assignments
            if a.giver_id in confirmed and a.receiver_id in ids and a.receiver_id != a.giver_id
        ]
        locked_givers = {a.giver_id for a in locked}
        locked_receivers = {a.receiver_id for a in locked}
        givers = [p.id for p in participants if p.id not in locked_givers]
        receivers = [p.id for p in participants if p.id not in locked_receivers]

        reshuffled = _pair_unlocked(givers, receivers, rng, max_attempts)
        if reshuffled is None:
            logger.warning(
                "Game %s: no self-free reshuffle of %d unlocked givers after %d attempts; regenerating all",
                game.code, len(givers), max_attempts,
            )
        else:
            assignments = locked + reshuffled
            kept = locked_givers

    if assignments is None:
        assignments = generate_assignments(participants, rng)

    updated = [
        _reset_flags(p, keep_confirmation=p.id in kept)
        for p in participants
    ]
    return game.evolve(participants=updated, assignments=assignments, reassignment_requests=())


def _reset_flags(p: Participant, keep_confirmation: bool) -> Participant:
    return replace(
        p,
        has_pending_reassignment_request=False,
        has_confirmed_assignment=p.has_confirmed_assignment and keep_confirmation,
    )


def changed_givers(before: Iterable[Assignment], after: Iterable[Assignment]) -> set[str]:
    """Giver ids whose receiver differs between two assignment sets."""
    old = {a.giver_id: a.receiver_id for a in before}
    return {a.giver_id for a in after if old.get(a.giver_id) != a.receiver_id}


def validate_assignments(participants: Sequence[Participant], assignments: Sequence[Assignment]) -> None:
    """Raise InvalidAssignments unless `assignments` is a permutation without fixed points."""
    participant_ids = {p.id for p in participants}
    giver_ids = [a.giver_id for a in assignments]
    receiver_ids = [a.receiver_id for a in assignments]

    issues = []

    missing_givers = participant_ids - set(giver_ids)
    if missing_givers:
        issues.append(f"Missing givers: {sorted(missing_givers)}")

    missing_receivers = participant_ids - set(receiver_ids)
    if missing_receivers:
        issues.append(f"Missing receivers: {sorted(missing_receivers)}")

    if len(giver_ids) != len(set(giver_ids)):
        issues.append("Duplicate givers detected")

    if len(receiver_ids) != len(set(receiver_ids)):
        issues.append("Duplicate receivers detected")

    unknown = (set(giver_ids) | set(receiver_ids)) - participant_ids
    if unknown:
        issues.append(f"Unknown participants: {sorted(unknown)}")

    selfies = sorted(a.giver_id for a in assignments if a.giver_id == a.receiver_id)
    if selfies:
        issues.append(f"Self-assignments: {selfies}")

    if issues:
        raise InvalidAssignments(issues)
