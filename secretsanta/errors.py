from __future__ import annotations


class SantaError(RuntimeError):
    """Base for every error the services raise. `code` is stable for API clients."""
    code = "SANTA_ERROR"
    status_code = 400
    default_message = "Request could not be completed."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


# --- Assignment engine ---

class AssignmentError(SantaError):
    code = "ASSIGNMENT_ERROR"


class InsufficientParticipants(AssignmentError):
    code = "INSUFFICIENT_PARTICIPANTS"
    default_message = "Need at least 3 participants to generate assignments."


class NoValidSwap(AssignmentError):
    code = "NO_VALID_SWAP"
    default_message = "Cannot reassign: no valid swap available. Try regenerating all assignments."


class InvalidAssignments(AssignmentError):
    code = "INVALID_ASSIGNMENTS"
    status_code = 500

    def __init__(self, issues: list[str]):
        self.issues = list(issues)
        super().__init__("Assignment verification failed; " + "; ".join(self.issues))


# --- Participant set ---

class ParticipantError(SantaError):
    code = "PARTICIPANT_ERROR"


class DuplicateName(ParticipantError):
    code = "DUPLICATE_NAME"
    default_message = "Participant name already exists."


class DuplicateEmail(ParticipantError):
    code = "DUPLICATE_EMAIL"
    default_message = "Participant email already exists."


class MinimumParticipants(ParticipantError):
    code = "MINIMUM_PARTICIPANTS"
    default_message = "Cannot remove participant: minimum 3 participants required."


class ParticipantNotFound(ParticipantError):
    code = "PARTICIPANT_NOT_FOUND"
    status_code = 404
    default_message = "Participant not found."


# --- Reassignment requests ---

class ReassignmentNotAllowed(SantaError):
    code = "REASSIGNMENT_NOT_ALLOWED"
    default_message = "Reassignment not allowed for this game."


class ReassignmentAlreadyRequested(SantaError):
    code = "REASSIGNMENT_ALREADY_REQUESTED"
    default_message = "Reassignment already requested."


class NoPendingReassignment(SantaError):
    code = "NO_PENDING_REASSIGNMENT"
    default_message = "No pending reassignment request."


# --- Game ---

class InvalidGameDetails(SantaError):
    code = "INVALID_GAME_DETAILS"
    default_message = "Invalid game details."


class GameNotFound(SantaError):
    code = "GAME_NOT_FOUND"
    status_code = 404
    default_message = "Game not found."


class AccessDenied(SantaError):
    code = "ACCESS_DENIED"
    status_code = 403
    default_message = "Not authorized."


class StaleGame(SantaError):
    code = "STALE_GAME"
    status_code = 409
    default_message = "Game was changed by another request. Reload and try again."
