from datetime import datetime, timezone

from .extensions import db


def _utcnow():
    return datetime.now(timezone.utc)


class GameRecord(db.Model):
    __tablename__ = "games"

    id = db.Column(db.String(32), primary_key=True)
    code = db.Column(db.String(6), unique=True, nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)

    amount = db.Column(db.String(32), nullable=False, default="")
    currency = db.Column(db.String(8), nullable=False, default="")
    # YYYY-MM-DD, compared as text by the expiry cleanup
    event_date = db.Column(db.String(10), nullable=False, default="")
    event_time = db.Column(db.String(5), nullable=True)
    location = db.Column(db.String(255), nullable=False, default="")
    general_notes = db.Column(db.Text, nullable=False, default="")

    allow_reassignment = db.Column(db.Boolean, default=True, nullable=False)
    is_protected = db.Column(db.Boolean, default=False, nullable=False)

    organizer_token = db.Column(db.String(64), nullable=False)
    organizer_email = db.Column(db.String(255), nullable=True)
    invitation_token = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)

    # Bumped on every UPDATE; a writer holding an older version gets StaleDataError.
    version = db.Column(db.Integer, nullable=False)

    participants = db.relationship(
        "ParticipantRecord",
        order_by="ParticipantRecord.position",
        cascade="all, delete-orphan",
    )
    reassignment_requests = db.relationship(
        "ReassignmentRequestRecord",
        order_by="ReassignmentRequestRecord.requested_at",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}


class ParticipantRecord(db.Model):
    """
    Keyed by (game_id, participant_id) so that rewriting a game's participant
    list turns into in-place UPDATEs for the people who stayed.
    """
    __tablename__ = "participants"

    game_id = db.Column(db.String(32), db.ForeignKey("games.id", ondelete="CASCADE"), primary_key=True)
    participant_id = db.Column(db.String(32), primary_key=True)
    position = db.Column(db.Integer, nullable=False)

    name = db.Column(db.String(64), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    desired_gift = db.Column(db.Text, nullable=False, default="")
    wish = db.Column(db.Text, nullable=False, default="")
    token = db.Column(db.String(64), nullable=True)

    has_confirmed_assignment = db.Column(db.Boolean, default=False, nullable=False)
    has_pending_reassignment_request = db.Column(db.Boolean, default=False, nullable=False)

    # Encrypted receiver participant_id (Fernet token string).
    assigned_to_ciphertext = db.Column(db.Text, nullable=True)


class ReassignmentRequestRecord(db.Model):
    __tablename__ = "reassignment_requests"

    game_id = db.Column(db.String(32), db.ForeignKey("games.id", ondelete="CASCADE"), primary_key=True)
    participant_id = db.Column(db.String(32), primary_key=True)
    participant_name = db.Column(db.String(64), nullable=False)
    requested_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
