"""
Fire-and-forget notifications.

Views call the helpers below after a mutation has been saved. Delivery is
delegated to the notifier installed under SANTA_NOTIFIER (anything with a
`send(notification)` method); the default one only logs. A failing
notifier never fails the request.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from flask import current_app

from ..domain import Game, Participant


logger = logging.getLogger(__name__)

NOTIFIED_DETAIL_FIELDS = ("date", "time", "location", "general_notes")


@dataclass(frozen=True)
class Notification:
    event: str
    game_code: str
    recipients: tuple[str, ...]
    context: dict = field(default_factory=dict)


class LogNotifier:
    def send(self, notification: Notification) -> None:
        logger.info(
            "Notification '%s' for game %s to %d recipient(s)",
            notification.event, notification.game_code, len(notification.recipients),
        )


_default_notifier = LogNotifier()


def get_notifier():
    return current_app.config.get("SANTA_NOTIFIER") or _default_notifier


def notify(event: str, game: Game, recipients: Iterable[Optional[str]], **context) -> bool:
    recipients = tuple(r for r in recipients if r)
    if not recipients:
        return False
    try:
        get_notifier().send(Notification(event=event, game_code=game.code, recipients=recipients, context=context))
    except Exception as e:
        logger.warning("Failed to send '%s' notification for game %s: %s", event, game.code, e)
        return False
    return True


def event_changes(before: Game, after: Game) -> dict[str, dict[str, object]]:
    return {
        key: {"old": getattr(before, key), "new": getattr(after, key)}
        for key in NOTIFIED_DETAIL_FIELDS
        if getattr(before, key) != getattr(after, key)
    }


# --- Events ---

def participant_invited(game: Game, participant: Participant) -> bool:
    return notify("participant_invited", game, [participant.email], participant_id=participant.id)


def participant_confirmed(game: Game, participant: Participant) -> bool:
    return notify("participant_confirmed", game, [game.organizer_email], participant_name=participant.name)


def reassignment_requested(game: Game, participant: Participant) -> bool:
    return notify("reassignment_requested", game, [game.organizer_email], participant_name=participant.name)


def reassignment_result(game: Game, participant: Participant, approved: bool) -> bool:
    return notify("reassignment_result", game, [participant.email], approved=approved)


def wish_updated(game: Game, participant: Participant) -> bool:
    giver = game.giver_of(participant.id)
    if giver is None:
        return False
    return notify("wish_updated", game, [giver.email], receiver_name=participant.name)


def event_details_changed(before: Game, after: Game) -> bool:
    changes = event_changes(before, after)
    if not changes:
        return False
    return notify("event_details_changed", after, [p.email for p in after.participants], changes=changes)


def full_reassignment(game: Game, previously_confirmed: Iterable[Participant]) -> bool:
    return notify("full_reassignment", game, [p.email for p in previously_confirmed])


def new_organizer_link(game: Game) -> bool:
    return notify("new_organizer_link", game, [game.organizer_email])
