"""
Game-state operations.

Every function takes a Game snapshot and returns a new one; the input is
never modified and nothing is returned when an error is raised. Callers
persist the result through services.storage.
"""
from __future__ import annotations

import logging
import random
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional, Sequence

from ..domain import Game, Participant, ReassignmentRequest
from ..errors import (
    AccessDenied,
    DuplicateEmail,
    DuplicateName,
    InsufficientParticipants,
    InvalidGameDetails,
    MinimumParticipants,
    NoPendingReassignment,
    NoValidSwap,
    ParticipantNotFound,
    ReassignmentAlreadyRequested,
    ReassignmentNotAllowed,
)
from ..security import generate_game_code, generate_id, generate_token, tokens_match
from .assignments import MIN_PARTICIPANTS, changed_givers, generate_assignments, reassign_one
from .dates import parse_event_date, validate_event_time


logger = logging.getLogger(__name__)

GAME_DETAIL_FIELDS = ("name", "amount", "currency", "date", "time", "location", "general_notes", "allow_reassignment")


def _clean(value: Optional[str]) -> str:
    return "" if value is None else str(value).strip()


def _clean_email(value: Optional[str]) -> Optional[str]:
    return _clean(value) or None


def _require_participant(game: Game, participant_id: str) -> Participant:
    p = game.participant(participant_id)
    if p is None:
        raise ParticipantNotFound()
    return p


def _check_unique(
    participants: Iterable[Participant],
    name: Optional[str],
    email: Optional[str],
    exclude_id: Optional[str] = None,
) -> None:
    others = [p for p in participants if p.id != exclude_id]
    if name is not None and any(p.name.lower() == name.lower() for p in others):
        raise DuplicateName()
    if email and any(p.email and p.email.lower() == email.lower() for p in others):
        raise DuplicateEmail()


def _replace_participant(game: Game, participant: Participant) -> Game:
    return game.evolve(participants=[participant if p.id == participant.id else p for p in game.participants])


def _validate_details(details: Mapping[str, object]) -> None:
    if "name" in details and not _clean(details["name"]):
        raise InvalidGameDetails("Game name is required.")
    if details.get("date"):
        parse_event_date(details["date"])
    if details.get("time"):
        validate_event_time(details["time"])


def _with_regenerated_assignments(
    game: Game,
    participants: Sequence[Participant],
    requests: Sequence[ReassignmentRequest],
    rng: Optional[random.Random],
) -> Game:
    # A fresh set replaces every receiver, so no confirmation survives it.
    pending = {r.participant_id for r in requests}
    participants = [
        replace(p, has_confirmed_assignment=False, has_pending_reassignment_request=p.id in pending)
        for p in participants
    ]
    return game.evolve(
        participants=participants,
        assignments=generate_assignments(participants, rng),
        reassignment_requests=requests,
    )


def create_game(
    name: str,
    participants: Sequence[Mapping[str, Optional[str]]],
    *,
    amount: str = "",
    currency: str = "",
    date: str = "",
    time: Optional[str] = None,
    location: str = "",
    allow_reassignment: bool = True,
    is_protected: bool = False,
    general_notes: str = "",
    organizer_email: Optional[str] = None,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> Game:
    """Build a new game from participant entries (`name`, optional `email`, `desired_gift`, `wish`)."""
    _validate_details({"name": name, "date": date, "time": time})
    if len(participants) < MIN_PARTICIPANTS:
        raise InsufficientParticipants()

    people: list[Participant] = []
    for entry in participants:
        p_name = _clean(entry.get("name"))
        if not p_name:
            raise InvalidGameDetails("Participant name is required.")
        p_email = _clean_email(entry.get("email"))
        _check_unique(people, p_name, p_email)
        people.append(Participant(
            id=generate_id(),
            name=p_name,
            email=p_email,
            desired_gift=_clean(entry.get("desired_gift")),
            wish=_clean(entry.get("wish")),
            token=generate_token() if is_protected else None,
        ))

    game = Game(
        id=generate_id(),
        code=generate_game_code(),
        name=_clean(name),
        organizer_token=generate_token(),
        participants=tuple(people),
        assignments=tuple(generate_assignments(people, rng)),
        amount=_clean(amount),
        currency=_clean(currency),
        date=_clean(date),
        time=_clean(time) or None,
        location=_clean(location),
        allow_reassignment=bool(allow_reassignment),
        is_protected=bool(is_protected),
        general_notes=_clean(general_notes),
        organizer_email=_clean_email(organizer_email),
        invitation_token=generate_token(),
        created_at=now or datetime.now(timezone.utc),
    )
    logger.info("Game %s created with %d participants", game.code, len(people))
    return game


def update_game_details(game: Game, **details) -> Game:
    unknown = set(details) - set(GAME_DETAIL_FIELDS)
    if unknown:
        raise InvalidGameDetails(f"Unknown game fields: {sorted(unknown)}")
    details = {k: v for k, v in details.items() if v is not None}
    _validate_details(details)

    changes = {}
    for key, value in details.items():
        if key == "allow_reassignment":
            changes[key] = bool(value)
        elif key == "time":
            changes[key] = _clean(value) or None
        else:
            changes[key] = _clean(value)

    logger.info("Game %s details updated: %s", game.code, sorted(changes))
    return game.evolve(**changes)


def add_participant(
    game: Game,
    name: str,
    email: Optional[str] = None,
    *,
    desired_gift: str = "",
    wish: str = "",
    participant_id: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> Game:
    """
    Append a participant and draw a completely new set of assignments.
    Pending reassignment requests refer to the old draw and are dropped.
    """
    name = _clean(name)
    email = _clean_email(email)
    if not name:
        raise InvalidGameDetails("Participant name is required.")
    _check_unique(game.participants, name, email)

    newcomer = Participant(
        id=participant_id or generate_id(),
        name=name,
        email=email,
        desired_gift=_clean(desired_gift),
        wish=_clean(wish),
        token=generate_token() if game.is_protected else None,
    )
    updated = _with_regenerated_assignments(game, list(game.participants) + [newcomer], [], rng)
    logger.info("Participant '%s' added to game %s", name, game.code)
    return updated


def join_invitation(
    game: Game,
    invitation_token: str,
    name: str,
    email: Optional[str] = None,
    desired_gift: str = "",
    wish: str = "",
    rng: Optional[random.Random] = None,
) -> tuple[Game, str]:
    """Add a participant arriving through the invitation link. Returns the game and the new id."""
    if not tokens_match(invitation_token, game.invitation_token):
        raise AccessDenied("Invalid invitation token.")

    participant_id = generate_id()
    updated = add_participant(
        game, name, email,
        desired_gift=desired_gift, wish=wish,
        participant_id=participant_id, rng=rng,
    )
    logger.info("Participant '%s' joined game %s via invitation", _clean(name), game.code)
    return updated, participant_id


def remove_participant(game: Game, participant_id: str, rng: Optional[random.Random] = None) -> Game:
    removed = _require_participant(game, participant_id)
    if len(game.participants) - 1 < MIN_PARTICIPANTS:
        raise MinimumParticipants()

    remaining = [p for p in game.participants if p.id != participant_id]
    requests = [r for r in game.reassignment_requests if r.participant_id != participant_id]
    updated = _with_regenerated_assignments(game, remaining, requests, rng)
    logger.info("Participant '%s' removed from game %s", removed.name, game.code)
    return updated


def update_participant_details(
    game: Game,
    participant_id: str,
    *,
    name: Optional[str] = None,
    email: Optional[str] = None,
    desired_gift: Optional[str] = None,
    wish: Optional[str] = None,
    has_confirmed_assignment: Optional[bool] = None,
) -> Game:
    """Organizer edit. Arguments left as None are not touched; an empty email clears it."""
    p = _require_participant(game, participant_id)
    changes = {}
    if name is not None:
        name = _clean(name)
        if not name:
            raise InvalidGameDetails("Participant name cannot be empty.")
        _check_unique(game.participants, name, None, exclude_id=participant_id)
        changes["name"] = name
    if email is not None:
        email = _clean_email(email)
        _check_unique(game.participants, None, email, exclude_id=participant_id)
        changes["email"] = email
    if desired_gift is not None:
        changes["desired_gift"] = _clean(desired_gift)
    if wish is not None:
        changes["wish"] = _clean(wish)
    if has_confirmed_assignment is not None:
        changes["has_confirmed_assignment"] = bool(has_confirmed_assignment)

    updated = replace(p, **changes)
    game = _replace_participant(game, updated)
    if "name" in changes:
        # Keep the name shown on a pending request in step.
        game = game.evolve(reassignment_requests=[
            replace(r, participant_name=updated.name) if r.participant_id == participant_id else r
            for r in game.reassignment_requests
        ])
    logger.info("Participant '%s' details updated in game %s", updated.name, game.code)
    return game


def update_participant_email(game: Game, participant_id: str, email: Optional[str]) -> Game:
    p = _require_participant(game, participant_id)
    email = _clean_email(email)
    _check_unique(game.participants, None, email, exclude_id=participant_id)
    logger.info("Email updated for participant '%s' in game %s", p.name, game.code)
    return _replace_participant(game, replace(p, email=email))


def update_wish(game: Game, participant_id: str, wish: Optional[str]) -> Game:
    p = _require_participant(game, participant_id)
    logger.info("Wish updated for participant '%s' in game %s", p.name, game.code)
    return _replace_participant(game, replace(p, wish=_clean(wish)))


def confirm_assignment(game: Game, participant_id: str) -> Game:
    p = _require_participant(game, participant_id)
    logger.info("Assignment confirmed by participant '%s' in game %s", p.name, game.code)
    return _replace_participant(game, replace(p, has_confirmed_assignment=True))


def regenerate_participant_token(game: Game, participant_id: str) -> Game:
    p = _require_participant(game, participant_id)
    logger.info("Token regenerated for participant '%s' in game %s", p.name, game.code)
    return _replace_participant(game, replace(p, token=generate_token()))


def regenerate_organizer_token(game: Game) -> Game:
    # The new link can only reach the organizer by email.
    if not game.organizer_email:
        raise InvalidGameDetails("No organizer email configured. Cannot send new access link.")
    logger.info("Organizer token regenerated for game %s", game.code)
    return game.evolve(organizer_token=generate_token())


# --- Reassignment requests ---

def request_reassignment(game: Game, participant_id: str, now: Optional[datetime] = None) -> Game:
    p = _require_participant(game, participant_id)
    if not game.allow_reassignment:
        raise ReassignmentNotAllowed()
    if p.has_pending_reassignment_request or game.pending_request(participant_id):
        raise ReassignmentAlreadyRequested()

    request = ReassignmentRequest(
        participant_id=p.id,
        participant_name=p.name,
        requested_at=now or datetime.now(timezone.utc),
    )
    game = _replace_participant(game, replace(p, has_pending_reassignment_request=True))
    logger.info("Reassignment request submitted for participant '%s' in game %s", p.name, game.code)
    return game.evolve(reassignment_requests=list(game.reassignment_requests) + [request])


def cancel_reassignment_request(game: Game, participant_id: str) -> Game:
    p = _require_participant(game, participant_id)
    game = _replace_participant(game, replace(p, has_pending_reassignment_request=False))
    logger.info("Reassignment request cancelled for participant '%s' in game %s", p.name, game.code)
    return game.evolve(reassignment_requests=[
        r for r in game.reassignment_requests if r.participant_id != participant_id
    ])


def _swap(game: Game, participant_id: str, rng: Optional[random.Random]) -> Game:
    """Swap receivers for one giver and drop the confirmation of everyone whose receiver changed."""
    assignments = reassign_one(participant_id, game.assignments, game.participants, rng)
    stale = changed_givers(game.assignments, assignments)
    participants = [
        replace(p, has_confirmed_assignment=False) if p.id in stale else p
        for p in game.participants
    ]
    return game.evolve(participants=participants, assignments=assignments)


def _resolve_request(game: Game, participant_id: str) -> Game:
    participants = [
        replace(p, has_pending_reassignment_request=False) if p.id == participant_id else p
        for p in game.participants
    ]
    return game.evolve(
        participants=participants,
        reassignment_requests=[r for r in game.reassignment_requests if r.participant_id != participant_id],
    )


def approve_reassignment(game: Game, participant_id: str, rng: Optional[random.Random] = None) -> Game:
    p = _require_participant(game, participant_id)
    if game.pending_request(participant_id) is None:
        raise NoPendingReassignment("No pending reassignment request for this participant.")

    game = _resolve_request(_swap(game, participant_id, rng), participant_id)
    logger.info("Reassignment approved for participant '%s' in game %s", p.name, game.code)
    return game


def approve_all_reassignments(game: Game, rng: Optional[random.Random] = None) -> Game:
    """
    Approve pending requests in the order they arrived. A request whose swap
    is impossible stays pending; if none can be approved, NoValidSwap.
    """
    if not game.reassignment_requests:
        raise NoPendingReassignment("No pending reassignment requests.")

    approved = failed = 0
    for request in list(game.reassignment_requests):
        if game.participant(request.participant_id) is None:
            continue
        try:
            game = _resolve_request(_swap(game, request.participant_id, rng), request.participant_id)
            approved += 1
        except NoValidSwap:
            failed += 1

    if approved == 0 and failed > 0:
        raise NoValidSwap("Could not approve any reassignments. Try regenerating all assignments.")

    logger.info("Game %s: approved %d reassignment requests, %d could not be processed", game.code, approved, failed)
    return game


def force_reassign_participant(game: Game, participant_id: str, rng: Optional[random.Random] = None) -> Game:
    """Organizer-driven swap for one giver, whether or not they asked for it."""
    p = _require_participant(game, participant_id)
    if game.assignment_for(participant_id) is None:
        raise NoValidSwap("Participant has no assignment to change.")
    game = _swap(game, participant_id, rng)
    logger.info("Participant '%s' force-reassigned in game %s", p.name, game.code)
    return game
