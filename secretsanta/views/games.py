from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request
from flask.views import MethodView

from ..domain import Game, Participant
from ..errors import AccessDenied, InvalidGameDetails, ParticipantNotFound, SantaError
from ..policies import (
    GameRequiredMixin,
    OrganizerRequiredMixin,
    ParticipantRequiredMixin,
    is_organizer,
    participant_token,
)
from ..security import tokens_match
from ..services import games, notifications, storage
from ..services.assignments import reassign_all


games_bp = Blueprint("games", __name__, url_prefix="/api/games")


@games_bp.app_errorhandler(SantaError)
def handle_santa_error(error: SantaError):
    return jsonify({"error": error.message, "code": error.code}), error.status_code


def _body() -> dict:
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise InvalidGameDetails("Expected a JSON object.")
    return body


def _flag(body: dict, key: str, default=None):
    """A JSON boolean from the body; strings like "false" are rejected rather than coerced."""
    value = body.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise InvalidGameDetails(f"{key} must be true or false.")
    return value


# --------- Serialization ----------

def participant_json(p: Participant, *, private: bool = True) -> dict:
    data = {
        "id": p.id,
        "name": p.name,
        "desired_gift": p.desired_gift,
        "wish": p.wish,
        "has_confirmed_assignment": p.has_confirmed_assignment,
        "has_pending_reassignment_request": p.has_pending_reassignment_request,
    }
    if private:
        data["email"] = p.email
        data["token"] = p.token
    return data


def _details_json(game: Game) -> dict:
    return {
        "id": game.id,
        "code": game.code,
        "name": game.name,
        "amount": game.amount,
        "currency": game.currency,
        "date": game.date,
        "time": game.time,
        "location": game.location,
        "general_notes": game.general_notes,
        "allow_reassignment": game.allow_reassignment,
        "is_protected": game.is_protected,
        "created_at": game.created_at.isoformat() if game.created_at else None,
        "version": game.version,
    }


def organizer_game_json(game: Game) -> dict:
    data = _details_json(game)
    data.update(
        organizer_token=game.organizer_token,
        organizer_email=game.organizer_email,
        invitation_token=game.invitation_token,
        participants=[participant_json(p) for p in game.participants],
        assignments=[{"giver_id": a.giver_id, "receiver_id": a.receiver_id} for a in game.assignments],
        reassignment_requests=[
            {
                "participant_id": r.participant_id,
                "participant_name": r.participant_name,
                "requested_at": r.requested_at.isoformat(),
            }
            for r in game.reassignment_requests
        ],
    )
    return data


def participant_game_json(game: Game, viewer: Participant) -> dict:
    """Everything one participant may see: their own assignment and nobody else's secrets."""
    data = _details_json(game)
    own = game.assignment_for(viewer.id)
    giver = game.giver_of(viewer.id)
    data.update(
        participants=[participant_json(p, private=p.id == viewer.id) for p in game.participants],
        assignments=[{"giver_id": own.giver_id, "receiver_id": own.receiver_id}] if own else [],
        authenticated_participant_id=viewer.id,
        giver_has_confirmed=bool(giver and giver.has_confirmed_assignment),
    )
    return data


def public_game_json(game: Game) -> dict:
    data = _details_json(game)
    data["participants"] = [participant_json(p, private=False) for p in game.participants]
    return data


def _max_attempts() -> int:
    return int(current_app.config.get("SANTA_REASSIGN_MAX_ATTEMPTS", 100))


# --------- Game ----------

class GamesView(MethodView):
    def post(self):
        body = _body()
        participants = body.get("participants")
        if not isinstance(participants, list) or not all(isinstance(p, dict) for p in participants):
            raise InvalidGameDetails("participants must be a list of objects.")
        send_emails = _flag(body, "send_emails", True)

        game = games.create_game(
            body.get("name"),
            participants,
            amount=body.get("amount") or "",
            currency=body.get("currency") or "USD",
            date=body.get("date") or "",
            time=body.get("time"),
            location=body.get("location") or "",
            allow_reassignment=_flag(body, "allow_reassignment", True),
            is_protected=_flag(body, "is_protected", True),
            general_notes=body.get("general_notes") or "",
            organizer_email=body.get("organizer_email"),
        )
        game = storage.insert_game(game)

        if send_emails:
            notifications.notify("game_created", game, [game.organizer_email])
            for p in game.participants:
                notifications.participant_invited(game, p)

        return jsonify(organizer_game_json(game)), 201


class GameView(GameRequiredMixin):
    def get(self, code: str):
        game = g.game
        if is_organizer(game):
            return jsonify(organizer_game_json(game))

        if game.is_protected:
            token = participant_token()
            if not token:
                return jsonify({"code": game.code, "name": game.name, "is_protected": True, "requires_token": True})
            viewer = next((p for p in game.participants if tokens_match(token, p.token)), None)
            if viewer is None:
                raise AccessDenied("Invalid participant token.")
            return jsonify(participant_game_json(game, viewer))

        participant_id = request.args.get("participant_id")
        if participant_id:
            viewer = game.participant(participant_id)
            if viewer is None:
                raise ParticipantNotFound()
            return jsonify(participant_game_json(game, viewer))
        return jsonify(public_game_json(game))


class GameAdminView(OrganizerRequiredMixin):
    def patch(self, code: str):
        body = _body()
        before = g.game
        details = {k: body[k] for k in games.GAME_DETAIL_FIELDS if k in body}
        if "allow_reassignment" in details:
            details["allow_reassignment"] = _flag(body, "allow_reassignment")
        game = storage.save_game(games.update_game_details(before, **details))
        notifications.event_details_changed(before, game)
        return jsonify(organizer_game_json(game))

    def delete(self, code: str):
        storage.delete_game(code)
        current_app.logger.info("Game %s deleted by organizer", code)
        return jsonify({"deleted": True})


class OrganizerTokenView(OrganizerRequiredMixin):
    def post(self, code: str):
        before = g.game
        game = storage.save_game(games.regenerate_organizer_token(before))
        if not notifications.new_organizer_link(game):
            # The organizer could never learn the new token; put the old one back.
            storage.save_game(game.evolve(organizer_token=before.organizer_token))
            return jsonify({"error": "Failed to send email with new link.", "code": "NOTIFICATION_FAILED"}), 500
        return jsonify({"success": True, "email_sent": True})


# --------- Participants (organizer) ----------

class ParticipantsView(OrganizerRequiredMixin):
    def post(self, code: str):
        body = _body()
        game = games.add_participant(g.game, body.get("name"), body.get("email"))
        game = storage.save_game(game)
        notifications.participant_invited(game, game.participants[-1])
        return jsonify(organizer_game_json(game)), 201


class ParticipantAdminView(OrganizerRequiredMixin):
    def patch(self, code: str, participant_id: str):
        body = _body()
        game = games.update_participant_details(
            g.game,
            participant_id,
            name=body.get("name"),
            email=body.get("email"),
            desired_gift=body.get("desired_gift"),
            wish=body.get("wish"),
            has_confirmed_assignment=_flag(body, "has_confirmed_assignment"),
        )
        return jsonify(organizer_game_json(storage.save_game(game)))

    def delete(self, code: str, participant_id: str):
        game = games.remove_participant(g.game, participant_id)
        return jsonify(organizer_game_json(storage.save_game(game)))


class ParticipantTokenView(OrganizerRequiredMixin):
    def post(self, code: str, participant_id: str):
        game = games.regenerate_participant_token(g.game, participant_id)
        return jsonify(organizer_game_json(storage.save_game(game)))


class ForceReassignView(OrganizerRequiredMixin):
    def post(self, code: str, participant_id: str):
        game = games.force_reassign_participant(g.game, participant_id)
        return jsonify(organizer_game_json(storage.save_game(game)))


# --------- Reassignment (organizer) ----------

class ReassignAllView(OrganizerRequiredMixin):
    def post(self, code: str):
        before = g.game
        previously_confirmed = [p for p in before.participants if p.has_confirmed_assignment]
        game = storage.save_game(reassign_all(before, max_attempts=_max_attempts()))
        notifications.full_reassignment(
            game, [p for p in previously_confirmed if not game.participant(p.id).has_confirmed_assignment]
        )
        current_app.logger.info("All assignments regenerated for game %s", code)
        return jsonify(organizer_game_json(game))


class ApproveReassignmentView(OrganizerRequiredMixin):
    def post(self, code: str, participant_id: str):
        game = storage.save_game(games.approve_reassignment(g.game, participant_id))
        notifications.reassignment_result(game, game.participant(participant_id), approved=True)
        return jsonify(organizer_game_json(game))

    def delete(self, code: str, participant_id: str):
        game = storage.save_game(games.cancel_reassignment_request(g.game, participant_id))
        notifications.reassignment_result(game, game.participant(participant_id), approved=False)
        return jsonify(organizer_game_json(game))


class ApproveAllReassignmentsView(OrganizerRequiredMixin):
    def post(self, code: str):
        before = g.game
        game = storage.save_game(games.approve_all_reassignments(before))
        still_pending = {r.participant_id for r in game.reassignment_requests}
        for r in before.reassignment_requests:
            if r.participant_id not in still_pending and game.participant(r.participant_id):
                notifications.reassignment_result(game, game.participant(r.participant_id), approved=True)
        return jsonify(organizer_game_json(game))


# --------- Participant self-service ----------

def _participant_response(game: Game, participant_id: str):
    if is_organizer(game):
        return jsonify(organizer_game_json(game))
    return jsonify(participant_game_json(game, game.participant(participant_id)))


class ConfirmAssignmentView(ParticipantRequiredMixin):
    def post(self, code: str, participant_id: str):
        game = storage.save_game(games.confirm_assignment(g.game, participant_id))
        notifications.participant_confirmed(game, game.participant(participant_id))
        return _participant_response(game, participant_id)


class ReassignmentRequestView(ParticipantRequiredMixin):
    def post(self, code: str, participant_id: str):
        game = storage.save_game(games.request_reassignment(g.game, participant_id))
        notifications.reassignment_requested(game, game.participant(participant_id))
        return _participant_response(game, participant_id), 201


class WishView(ParticipantRequiredMixin):
    def put(self, code: str, participant_id: str):
        before = g.game
        game = storage.save_game(games.update_wish(before, participant_id, _body().get("wish")))
        participant = game.participant(participant_id)
        if participant.wish != before.participant(participant_id).wish:
            notifications.wish_updated(game, participant)
        return _participant_response(game, participant_id)


class EmailView(ParticipantRequiredMixin):
    def put(self, code: str, participant_id: str):
        game = games.update_participant_email(g.game, participant_id, _body().get("email"))
        return _participant_response(storage.save_game(game), participant_id)


# --------- Invitation ----------

class JoinInvitationView(GameRequiredMixin):
    def post(self, code: str):
        body = _body()
        game, participant_id = games.join_invitation(
            g.game,
            body.get("invitation_token") or "",
            body.get("name"),
            body.get("email"),
            desired_gift=body.get("desired_gift") or "",
            wish=body.get("wish") or "",
        )
        game = storage.save_game(game)
        participant = game.participant(participant_id)
        notifications.participant_invited(game, participant)
        return jsonify(participant_game_json(game, participant)), 201


# Register routes
games_bp.add_url_rule("", view_func=GamesView.as_view("create"), methods=["POST"])
games_bp.add_url_rule("/<code>", view_func=GameView.as_view("detail"), methods=["GET"])
games_bp.add_url_rule("/<code>", view_func=GameAdminView.as_view("admin"), methods=["PATCH", "DELETE"])
games_bp.add_url_rule("/<code>/organizer-token", view_func=OrganizerTokenView.as_view("organizer_token"), methods=["POST"])
games_bp.add_url_rule("/<code>/join", view_func=JoinInvitationView.as_view("join"), methods=["POST"])

games_bp.add_url_rule("/<code>/participants", view_func=ParticipantsView.as_view("participants"), methods=["POST"])
games_bp.add_url_rule(
    "/<code>/participants/<participant_id>",
    view_func=ParticipantAdminView.as_view("participant"),
    methods=["PATCH", "DELETE"],
)
games_bp.add_url_rule(
    "/<code>/participants/<participant_id>/token",
    view_func=ParticipantTokenView.as_view("participant_token"),
    methods=["POST"],
)
games_bp.add_url_rule(
    "/<code>/participants/<participant_id>/force-reassign",
    view_func=ForceReassignView.as_view("force_reassign"),
    methods=["POST"],
)
games_bp.add_url_rule(
    "/<code>/participants/<participant_id>/confirm",
    view_func=ConfirmAssignmentView.as_view("confirm"),
    methods=["POST"],
)
games_bp.add_url_rule(
    "/<code>/participants/<participant_id>/reassignment-request",
    view_func=ReassignmentRequestView.as_view("reassignment_request"),
    methods=["POST"],
)
games_bp.add_url_rule("/<code>/participants/<participant_id>/wish", view_func=WishView.as_view("wish"), methods=["PUT"])
games_bp.add_url_rule("/<code>/participants/<participant_id>/email", view_func=EmailView.as_view("email"), methods=["PUT"])

games_bp.add_url_rule("/<code>/reassign-all", view_func=ReassignAllView.as_view("reassign_all"), methods=["POST"])
games_bp.add_url_rule(
    "/<code>/reassignments/approve-all",
    view_func=ApproveAllReassignmentsView.as_view("approve_all"),
    methods=["POST"],
)
games_bp.add_url_rule(
    "/<code>/reassignments/<participant_id>",
    view_func=ApproveReassignmentView.as_view("reassignment"),
    methods=["DELETE"],
)
games_bp.add_url_rule(
    "/<code>/reassignments/<participant_id>/approve",
    view_func=ApproveReassignmentView.as_view("approve"),
    methods=["POST"],
)
