from secretsanta.domain import Assignment, Game, Participant


def people(*names, confirmed=()):
    return [
        Participant(id=n.lower(), name=n, has_confirmed_assignment=n in confirmed)
        for n in names
    ]


def cycle(*ids):
    """Assignments for the cycle ids[0] -> ids[1] -> ... -> ids[0]."""
    return [Assignment(giver_id=g, receiver_id=ids[(i + 1) % len(ids)]) for i, g in enumerate(ids)]


def as_map(assignments):
    return {a.giver_id: a.receiver_id for a in assignments}


def make_game(names, assignments=None, confirmed=(), **kwargs):
    participants = people(*names, confirmed=confirmed)
    if assignments is None:
        assignments = cycle(*[p.id for p in participants])
    return Game(
        id="game-1",
        code="123456",
        name="Office party",
        organizer_token="org-token",
        participants=tuple(participants),
        assignments=tuple(assignments),
        **kwargs,
    )
