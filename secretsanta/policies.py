from __future__ import annotations

from typing import Optional

from flask import g, request
from flask.views import MethodView

from .domain import Game
from .errors import AccessDenied, ParticipantNotFound
from .security import tokens_match
from .services.storage import require_game


def request_credential(header: str, field: str) -> Optional[str]:
    """Token from the header, else the JSON body, else the query string."""
    value = request.headers.get(header)
    if not value:
        body = request.get_json(silent=True)
        if isinstance(body, dict):
            value = body.get(field)
    if not value:
        value = request.args.get(field)
    return (value or "").strip() or None


def organizer_token() -> Optional[str]:
    return request_credential("X-Organizer-Token", "organizer_token")


def participant_token() -> Optional[str]:
    return request_credential("X-Participant-Token", "participant_token")


def is_organizer(game: Game) -> bool:
    return tokens_match(organizer_token(), game.organizer_token)


def can_act_as(game: Game, participant_id: str) -> bool:
    """Unprotected games trust the participant id; protected ones need that participant's token."""
    participant = game.participant(participant_id)
    if participant is None:
        raise ParticipantNotFound()
    if not game.is_protected or is_organizer(game):
        return True
    return tokens_match(participant_token(), participant.token)


# --------- Class-based view Mixins ----------

class GameRequiredMixin(MethodView):
    """
    Loads the game named by the `code` URL argument into g.game (404 if missing).

    The game is read fresh on every request; g outlives a single request
    when several requests run inside one app context.
    """
    def dispatch_request(self, *args, **kwargs):
        g.game = require_game(kwargs["code"])
        self.check_access(g.game, **kwargs)
        return super().dispatch_request(*args, **kwargs)

    def check_access(self, game: Game, **kwargs) -> None:
        pass


class OrganizerRequiredMixin(GameRequiredMixin):
    def check_access(self, game: Game, **kwargs) -> None:
        if not is_organizer(game):
            raise AccessDenied("Invalid organizer token.")


class ParticipantRequiredMixin(GameRequiredMixin):
    """
    Participant self-service endpoints (`participant_id` URL argument).
    The organizer may act on a participant's behalf.
    """
    def check_access(self, game: Game, **kwargs) -> None:
        if not can_act_as(game, kwargs["participant_id"]):
            raise AccessDenied("Invalid participant token.")
