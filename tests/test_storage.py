"""Tests for game persistence."""

from datetime import date, datetime, timezone

import pytest

from secretsanta import create_app
from secretsanta.domain import Assignment
from secretsanta.errors import GameNotFound, InvalidAssignments, StaleGame
from secretsanta.extensions import db
from secretsanta.models import ParticipantRecord, ReassignmentRequestRecord
from secretsanta.security import decrypt_assignment_recipient
from secretsanta.services import games, storage

from helpers import as_map


def _new_game(rng, **kwargs):
    entries = [{"name": n, "email": f"{n.lower()}@example.com"} for n in ("Alice", "Bob", "Charlie", "Dave")]
    return storage.insert_game(games.create_game("Office party", entries, rng=rng, **kwargs))


def test_saved_game_loads_back(app, rng):
    game = _new_game(rng)
    game = games.confirm_assignment(game, game.participants[0].id)
    game = games.request_reassignment(game, game.participants[1].id)
    saved = storage.save_game(game)

    loaded = storage.get_game(game.code)

    assert loaded.version == saved.version == game.version + 1
    assert loaded.participants == game.participants
    assert as_map(loaded.assignments) == as_map(game.assignments)
    assert [r.participant_id for r in loaded.reassignment_requests] == [game.participants[1].id]
    assert loaded.organizer_token == game.organizer_token
    assert loaded.invitation_token == game.invitation_token


def test_receivers_are_encrypted_at_rest(app, rng):
    game = _new_game(rng)
    receivers = {a.giver_id: a.receiver_id for a in game.assignments}

    for row in ParticipantRecord.query.filter_by(game_id=game.id):
        assert receivers[row.participant_id] not in row.assigned_to_ciphertext
        assert decrypt_assignment_recipient(row.assigned_to_ciphertext) == receivers[row.participant_id]


def test_stale_snapshot_is_rejected(app, rng):
    game = _new_game(rng)
    first = storage.save_game(games.update_wish(game, game.participants[0].id, "socks"))

    with pytest.raises(StaleGame):
        storage.save_game(games.update_wish(game, game.participants[0].id, "a scarf"))

    assert storage.get_game(game.code).participants[0].wish == "socks"
    assert storage.get_game(game.code).version == first.version


def test_invalid_assignments_are_never_written(app, rng):
    game = _new_game(rng)
    broken = game.evolve(assignments=[Assignment(a.giver_id, a.giver_id) for a in game.assignments])

    with pytest.raises(InvalidAssignments):
        storage.save_game(broken)

    assert as_map(storage.get_game(game.code).assignments) == as_map(game.assignments)


def test_removed_participant_rows_are_deleted(app, rng):
    game = _new_game(rng)
    bob = game.participants[1]
    game = games.request_reassignment(game, bob.id)
    game = storage.save_game(game)

    storage.save_game(games.remove_participant(game, bob.id, rng=rng))

    assert ParticipantRecord.query.filter_by(game_id=game.id).count() == 3
    assert ReassignmentRequestRecord.query.count() == 0
    loaded = storage.get_game(game.code)
    assert bob.id not in {a.receiver_id for a in loaded.assignments}


def test_delete_game(app, rng):
    game = _new_game(rng)
    storage.delete_game(game.code)

    assert storage.get_game(game.code) is None
    assert ParticipantRecord.query.count() == 0
    with pytest.raises(GameNotFound):
        storage.delete_game(game.code)


def test_delete_expired_games(app, rng):
    old = _new_game(rng, date="2024-12-20")
    recent = _new_game(rng, date="2024-12-22")
    undated = _new_game(rng)

    deleted = storage.delete_expired_games(today=date(2024, 12, 24), grace_days=3)

    assert deleted == 1
    assert storage.get_game(old.code) is None
    assert storage.get_game(recent.code) is not None
    assert storage.get_game(undated.code) is not None


def test_timestamps_load_back_in_utc(app, rng):
    game = _new_game(rng)
    bob = game.participants[1]
    requested = datetime(2024, 12, 1, tzinfo=timezone.utc)
    storage.save_game(games.request_reassignment(game, bob.id, now=requested))

    loaded = storage.get_game(game.code)

    assert loaded.created_at.tzinfo is not None
    assert loaded.reassignment_requests[0].requested_at == requested


def test_concurrent_commit_raises_stale_game(tmp_path, rng):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'santa.db'}",
    })
    with app.app_context():
        db.create_all()
        game = _new_game(rng)

    with app.app_context():
        mine = storage.get_game(game.code)

        with app.app_context():
            theirs = storage.get_game(game.code)
            storage.save_game(games.update_wish(theirs, theirs.participants[0].id, "socks"))

        with pytest.raises(StaleGame):
            storage.save_game(games.update_wish(mine, mine.participants[0].id, "a scarf"))

    with app.app_context():
        assert storage.get_game(game.code).participants[0].wish == "socks"
        db.session.remove()
        db.engine.dispose()
