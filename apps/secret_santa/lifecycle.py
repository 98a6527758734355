"""
Event lifecycle controller.

Owns the event status state machine and the table of which operations are
legal in which status. Services call ``ensure_allowed`` before mutating
anything and ``transition`` to move an event to its next status; no other
module compares status values on its own.

    PENDING ──draw──> DRAWN ──first reveal──> IN_PROGRESS
                        │                          │
                        └────────mark complete─────┴──> COMPLETED (terminal)
"""

import logging
from enum import Enum

from django.utils import timezone

from .models import Event, EventStatus, ParticipantStatus
from .derangement import MIN_PARTICIPANTS
from .exceptions import AlreadyDrawnError, InvalidStateError

logger = logging.getLogger(__name__)


class Operation(Enum):
    UPDATE_EVENT = 'update the event'
    INVITE = 'invite participants'
    RESPOND = 'respond to the invitation'
    REMOVE_PARTICIPANT = 'remove participants'
    MANAGE_EXCLUSIONS = 'change exclusion rules'
    DRAW = 'draw names'
    REDRAW = 'redraw names'
    REVEAL = 'reveal assignments'
    MARK_GIFT_DONE = 'mark gifts as done'
    MARK_COMPLETE = 'complete the event'


_ROSTER_OPEN = frozenset({EventStatus.PENDING})
_DRAWN = frozenset({EventStatus.DRAWN, EventStatus.IN_PROGRESS})

LEGAL_STATES = {
    Operation.UPDATE_EVENT: _ROSTER_OPEN,
    Operation.INVITE: _ROSTER_OPEN,
    Operation.RESPOND: _ROSTER_OPEN,
    Operation.REMOVE_PARTICIPANT: _ROSTER_OPEN,
    Operation.MANAGE_EXCLUSIONS: _ROSTER_OPEN,
    Operation.DRAW: _ROSTER_OPEN,
    Operation.REDRAW: frozenset({EventStatus.DRAWN}),
    # Completed events stay readable; reveal writes nothing there.
    Operation.REVEAL: _DRAWN | {EventStatus.COMPLETED},
    Operation.MARK_GIFT_DONE: _DRAWN,
    Operation.MARK_COMPLETE: _DRAWN,
}

TRANSITIONS = {
    EventStatus.PENDING: frozenset({EventStatus.DRAWN}),
    EventStatus.DRAWN: frozenset({EventStatus.IN_PROGRESS, EventStatus.COMPLETED}),
    EventStatus.IN_PROGRESS: frozenset({EventStatus.COMPLETED}),
    EventStatus.COMPLETED: frozenset(),
}


def _state_message(operation, status):
    if status == EventStatus.PENDING:
        return f"Cannot {operation.value} before names have been drawn"
    if status == EventStatus.COMPLETED:
        return f"Cannot {operation.value} after the event has been completed"
    if operation is Operation.REDRAW:
        return "Cannot redraw names once a participant has revealed their assignment"
    return f"Cannot {operation.value} after names have been drawn"


def ensure_allowed(event: Event, operation: Operation) -> None:
    """
    Raise if ``operation`` is not legal in the event's current status.

    Raises:
        AlreadyDrawnError: Draw requested on an event that is DRAWN or IN_PROGRESS
        InvalidStateError: Any other operation outside its legal statuses
    """
    status = EventStatus(event.status)
    if status in LEGAL_STATES[operation]:
        return

    if operation is Operation.DRAW and status in _DRAWN:
        raise AlreadyDrawnError("Names have already been drawn")

    raise InvalidStateError(_state_message(operation, status))


def can_transition(current: str, target: str) -> bool:
    return EventStatus(target) in TRANSITIONS[EventStatus(current)]


def transition(event: Event, target: EventStatus) -> Event:
    """
    Move the event to ``target`` and persist the status.

    Callers hold the event row lock (``select_for_update``) when they call
    this inside their transaction.

    Raises:
        InvalidStateError: If the transition is not in the table
    """
    if not can_transition(event.status, target):
        raise InvalidStateError(
            f"Cannot move event from {event.status} to {target}"
        )

    previous = event.status
    event.status = target
    event.save(update_fields=['status', 'updated_at'])
    logger.info("Secret Santa event %s moved %s -> %s", event.id, previous, target)
    return event


def mark_in_progress(event: Event) -> bool:
    """
    DRAWN -> IN_PROGRESS as a conditional update.

    Concurrent first reveals race on this; only one of them sees the row
    still DRAWN. Returns True for that one.
    """
    moved = (
        Event.objects
        .filter(pk=event.pk, status=EventStatus.DRAWN)
        .update(status=EventStatus.IN_PROGRESS, updated_at=timezone.now())
    )
    if moved:
        event.status = EventStatus.IN_PROGRESS
        logger.info("Secret Santa event %s moved DRAWN -> IN_PROGRESS", event.id)
    return bool(moved)


def accepted_count(event: Event) -> int:
    """Number of participants whose invitation response is ACCEPTED."""
    return event.participants.filter(status=ParticipantStatus.ACCEPTED).count()


def can_draw_names(event: Event, user) -> bool:
    """
    Authoritative draw eligibility: organizer, PENDING, enough accepted
    participants and no assignment set yet.
    """
    return (
        event.is_organizer(user)
        and event.status == EventStatus.PENDING
        and accepted_count(event) >= MIN_PARTICIPANTS
        and not event.assignments.exists()
    )
