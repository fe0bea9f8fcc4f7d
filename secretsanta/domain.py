from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class Participant:
    id: str
    name: str
    email: Optional[str] = None
    desired_gift: str = ""
    wish: str = ""
    has_confirmed_assignment: bool = False
    has_pending_reassignment_request: bool = False
    # Only issued for protected games.
    token: Optional[str] = None


@dataclass(frozen=True)
class Assignment:
    giver_id: str
    receiver_id: str


@dataclass(frozen=True)
class ReassignmentRequest:
    participant_id: str
    participant_name: str
    requested_at: datetime


@dataclass(frozen=True)
class Game:
    """
    Snapshot of one exchange: participants, assignments and pending requests
    are always replaced together. `version` is the stored revision the
    snapshot was read from and is checked again on save.
    """
    id: str
    code: str
    name: str
    organizer_token: str
    participants: tuple[Participant, ...] = ()
    assignments: tuple[Assignment, ...] = ()
    reassignment_requests: tuple[ReassignmentRequest, ...] = ()
    amount: str = ""
    currency: str = ""
    date: str = ""
    time: Optional[str] = None
    location: str = ""
    allow_reassignment: bool = True
    is_protected: bool = False
    general_notes: str = ""
    organizer_email: Optional[str] = None
    invitation_token: Optional[str] = None
    created_at: Optional[datetime] = None
    version: int = field(default=0, compare=False)

    def participant(self, participant_id: str) -> Optional[Participant]:
        return next((p for p in self.participants if p.id == participant_id), None)

    def assignment_for(self, giver_id: str) -> Optional[Assignment]:
        return next((a for a in self.assignments if a.giver_id == giver_id), None)

    def giver_of(self, receiver_id: str) -> Optional[Participant]:
        a = next((a for a in self.assignments if a.receiver_id == receiver_id), None)
        return self.participant(a.giver_id) if a else None

    def pending_request(self, participant_id: str) -> Optional[ReassignmentRequest]:
        return next((r for r in self.reassignment_requests if r.participant_id == participant_id), None)

    def evolve(self, **changes) -> "Game":
        for key in ("participants", "assignments", "reassignment_requests"):
            if key in changes:
                changes[key] = tuple(changes[key])
        return replace(self, **changes)
