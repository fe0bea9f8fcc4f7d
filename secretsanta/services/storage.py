"""
Load and save whole Game snapshots.

A snapshot is read together with the game's row version and may only be
written back over that same version. Two requests racing on one game both
read version N; the first save moves it to N+1 and the second raises
StaleGame without writing anything.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm.exc import StaleDataError

from ..domain import Assignment, Game, Participant, ReassignmentRequest
from ..errors import GameNotFound, StaleGame
from ..extensions import db
from ..models import GameRecord, ParticipantRecord, ReassignmentRequestRecord
from ..security import decrypt_assignment_recipient, encrypt_assignment_recipient, generate_game_code
from .assignments import validate_assignments


logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 10


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops the offset; everything is stored in UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_game(record: GameRecord) -> Game:
    participants = []
    assignments = []
    for row in record.participants:
        participants.append(Participant(
            id=row.participant_id,
            name=row.name,
            email=row.email,
            desired_gift=row.desired_gift or "",
            wish=row.wish or "",
            has_confirmed_assignment=row.has_confirmed_assignment,
            has_pending_reassignment_request=row.has_pending_reassignment_request,
            token=row.token,
        ))
        if row.assigned_to_ciphertext:
            receiver_id = decrypt_assignment_recipient(row.assigned_to_ciphertext)
            assignments.append(Assignment(giver_id=row.participant_id, receiver_id=receiver_id))

    requests = [
        ReassignmentRequest(
            participant_id=r.participant_id,
            participant_name=r.participant_name,
            requested_at=_as_utc(r.requested_at),
        )
        for r in record.reassignment_requests
    ]

    return Game(
        id=record.id,
        code=record.code,
        name=record.name,
        organizer_token=record.organizer_token,
        participants=tuple(participants),
        assignments=tuple(assignments),
        reassignment_requests=tuple(requests),
        amount=record.amount,
        currency=record.currency,
        date=record.event_date,
        time=record.event_time,
        location=record.location,
        allow_reassignment=record.allow_reassignment,
        is_protected=record.is_protected,
        general_notes=record.general_notes,
        organizer_email=record.organizer_email,
        invitation_token=record.invitation_token,
        created_at=_as_utc(record.created_at),
        version=record.version,
    )


def _apply(record: GameRecord, game: Game) -> None:
    record.name = game.name
    record.amount = game.amount
    record.currency = game.currency
    record.event_date = game.date
    record.event_time = game.time
    record.location = game.location
    record.general_notes = game.general_notes
    record.allow_reassignment = game.allow_reassignment
    record.is_protected = game.is_protected
    record.organizer_token = game.organizer_token
    record.organizer_email = game.organizer_email
    record.invitation_token = game.invitation_token
    # Always touch the row so the version check runs even if only children changed.
    record.updated_at = datetime.now(timezone.utc)

    receivers = {a.giver_id: a.receiver_id for a in game.assignments}
    existing = {row.participant_id: row for row in record.participants}
    rows = []
    for position, p in enumerate(game.participants):
        row = existing.get(p.id) or ParticipantRecord(game_id=game.id, participant_id=p.id)
        row.position = position
        row.name = p.name
        row.email = p.email
        row.desired_gift = p.desired_gift
        row.wish = p.wish
        row.token = p.token
        row.has_confirmed_assignment = p.has_confirmed_assignment
        row.has_pending_reassignment_request = p.has_pending_reassignment_request
        receiver_id = receivers.get(p.id)
        row.assigned_to_ciphertext = encrypt_assignment_recipient(receiver_id) if receiver_id else None
        rows.append(row)
    record.participants = rows

    existing_requests = {r.participant_id: r for r in record.reassignment_requests}
    request_rows = []
    for r in game.reassignment_requests:
        row = existing_requests.get(r.participant_id) or ReassignmentRequestRecord(
            game_id=game.id, participant_id=r.participant_id
        )
        row.participant_name = r.participant_name
        row.requested_at = r.requested_at
        request_rows.append(row)
    record.reassignment_requests = request_rows


def _check(game: Game) -> None:
    if game.assignments or len(game.participants) >= 3:
        validate_assignments(game.participants, game.assignments)


def get_game(code: str) -> Optional[Game]:
    record = GameRecord.query.filter_by(code=code).first()
    return _to_game(record) if record else None


def require_game(code: str) -> Game:
    game = get_game(code)
    if game is None:
        raise GameNotFound()
    return game


def insert_game(game: Game) -> Game:
    """Persist a new game, drawing another code if the generated one is taken."""
    _check(game)
    for _ in range(MAX_CODE_ATTEMPTS):
        if not GameRecord.query.filter_by(code=game.code).first():
            break
        game = game.evolve(code=generate_game_code())
    else:
        raise RuntimeError("Could not allocate a unique game code.")

    record = GameRecord(id=game.id, code=game.code, created_at=game.created_at or datetime.now(timezone.utc))
    _apply(record, game)
    db.session.add(record)
    db.session.commit()
    logger.info("Game %s stored", game.code)
    return game.evolve(version=record.version)


def save_game(game: Game) -> Game:
    """Write `game` back over the version it was read from. Returns the snapshot with its new version."""
    _check(game)
    record = db.session.get(GameRecord, game.id)
    if record is None:
        raise GameNotFound()
    if record.version != game.version:
        raise StaleGame()

    _apply(record, game)
    try:
        db.session.commit()
    except StaleDataError as e:
        db.session.rollback()
        raise StaleGame() from e
    return game.evolve(version=record.version)


def delete_game(code: str) -> None:
    record = GameRecord.query.filter_by(code=code).first()
    if record is None:
        raise GameNotFound()
    db.session.delete(record)
    db.session.commit()
    logger.info("Game %s deleted", code)


def delete_expired_games(today: Optional[date] = None, grace_days: int = 3) -> int:
    """Delete games whose event date is at least `grace_days` in the past. Returns how many."""
    today = today or datetime.now(timezone.utc).date()
    cutoff = (today - timedelta(days=grace_days)).isoformat()

    expired = GameRecord.query.filter(GameRecord.event_date != "", GameRecord.event_date <= cutoff).all()
    for record in expired:
        logger.info("Deleting expired game %s (event date %s)", record.code, record.event_date)
        db.session.delete(record)
    db.session.commit()
    return len(expired)
