"""Intervention lifecycle state machine.

    CANDIDATE -> PENDING_APPROVAL | SCHEDULED | CANCELED
    PENDING_APPROVAL -> SCHEDULED | FAILED | CANCELED
    SCHEDULED -> SENT | FAILED | CANCELED
    SENT -> DELIVERED | FAILED | CANCELED

DELIVERED, FAILED and CANCELED are terminal. Every status change in the
engine goes through ``transition`` so illegal edges fail loudly.
"""

from .models import InterventionStatus as S

TRANSITIONS: dict[S, frozenset[S]] = {
    S.CANDIDATE: frozenset({S.PENDING_APPROVAL, S.SCHEDULED, S.CANCELED}),
    S.PENDING_APPROVAL: frozenset({S.SCHEDULED, S.FAILED, S.CANCELED}),
    S.SCHEDULED: frozenset({S.SENT, S.FAILED, S.CANCELED}),
    S.SENT: frozenset({S.DELIVERED, S.FAILED, S.CANCELED}),
    S.DELIVERED: frozenset(),
    S.FAILED: frozenset(),
    S.CANCELED: frozenset(),
}

TERMINAL_STATUSES: frozenset[S] = frozenset(s for s, targets in TRANSITIONS.items() if not targets)


class InvalidTransitionError(ValueError):
    """Raised for a status change the state machine does not allow."""

    def __init__(self, current: S, target: S) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot transition intervention from {current} to {target}")


def is_terminal(status: S | str) -> bool:
    return S(status) in TERMINAL_STATUSES


def can_transition(current: S | str, target: S | str) -> bool:
    return S(target) in TRANSITIONS[S(current)]


def transition(current: S | str, target: S | str) -> S:
    """Validate a status change and return the target status."""
    current, target = S(current), S(target)
    if target not in TRANSITIONS[current]:
        raise InvalidTransitionError(current, target)
    return target
