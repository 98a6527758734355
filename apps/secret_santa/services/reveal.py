"""
Reveal service.

Each giver sees only their own assignment. The receiver stays hidden until
the giver reveals it; the first reveal of the event moves it from DRAWN to
IN_PROGRESS.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from apps.accounts.models import User
from apps.secret_santa import lifecycle
from apps.secret_santa.lifecycle import Operation
from apps.secret_santa.models import ActivityKind, Assignment, Event, EventStatus
from apps.secret_santa.exceptions import InvalidStateError, NoAssignmentError

from .activity import record_activity
from .lookups import ensure_can_view, load_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RevealResult:
    assignment: Assignment
    receiver: User
    first_reveal: bool


def _own_assignment(event: Event, user: User) -> Assignment:
    try:
        return (
            Assignment.objects
            .select_related('receiver')
            .get(event=event, giver=user)
        )
    except Assignment.DoesNotExist:
        raise NoAssignmentError("Assignment not found")


@transaction.atomic
def reveal_assignment(*, event_id: UUID, user: User) -> RevealResult:
    """
    Reveal the caller's receiver.

    Only the first call writes: it stamps ``revealed_at`` with a conditional
    update, so concurrent requests from the same giver record one reveal.
    The event row is locked first, which orders reveals after any running
    redraw or completion. On a COMPLETED event the reveal is stored but the
    status and activity log are left alone.

    Args:
        event_id: UUID of the event
        user: Giver asking for their receiver

    Returns:
        RevealResult with the receiver and whether this call revealed it

    Raises:
        EventNotFoundError: If event doesn't exist
        InvalidStateError: If names have not been drawn yet
        NoAssignmentError: If the caller is not a giver in this event
    """
    event = load_event(event_id, for_update=True)
    lifecycle.ensure_allowed(event, Operation.REVEAL)

    assignment = _own_assignment(event, user)

    now = timezone.now()
    first_reveal = bool(
        Assignment.objects
        .filter(pk=assignment.pk, revealed_at__isnull=True)
        .update(revealed=True, revealed_at=now)
    )

    if not first_reveal:
        assignment.refresh_from_db(fields=['revealed', 'revealed_at'])
        return RevealResult(assignment=assignment, receiver=assignment.receiver, first_reveal=False)

    assignment.revealed = True
    assignment.revealed_at = now

    # COMPLETED is terminal: no status move, no activity row
    if event.status != EventStatus.COMPLETED:
        lifecycle.mark_in_progress(event)
        record_activity(
            event=event,
            kind=ActivityKind.ASSIGNMENT_REVEALED,
            actor=user,
            subject=user,
        )
    logger.info("User %s revealed their assignment in Secret Santa event %s", user.pk, event.id)

    return RevealResult(assignment=assignment, receiver=assignment.receiver, first_reveal=first_reveal)


def get_my_assignment(*, event_id: UUID, user: User) -> Optional[Assignment]:
    """
    Get the caller's own assignment row.

    Returns None while names have not been drawn. Serializers hide the
    receiver until ``revealed`` is set.

    Raises:
        EventNotFoundError: If event doesn't exist
        ForbiddenError: If the caller is neither organizer nor participant
        NoAssignmentError: If the caller is not a giver in this event
    """
    event = load_event(event_id)
    ensure_can_view(event, user)
    if event.status == EventStatus.PENDING:
        return None
    return _own_assignment(event, user)


@transaction.atomic
def mark_gift_done(*, event_id: UUID, user: User) -> Assignment:
    """
    Record that the giver has their gift ready. Repeated calls are no-ops.

    Raises:
        EventNotFoundError: If event doesn't exist
        InvalidStateError: If the event is not DRAWN/IN_PROGRESS or the
            assignment has not been revealed yet
        NoAssignmentError: If the caller is not a giver in this event
    """
    event = load_event(event_id, for_update=True)
    lifecycle.ensure_allowed(event, Operation.MARK_GIFT_DONE)

    try:
        assignment = (
            Assignment.objects
            .select_for_update()
            .get(event=event, giver=user)
        )
    except Assignment.DoesNotExist:
        raise NoAssignmentError("Assignment not found")

    if not assignment.revealed:
        raise InvalidStateError("Reveal your assignment before marking the gift as done")

    if assignment.gift_done:
        return assignment

    assignment.gift_done = True
    assignment.gift_done_at = timezone.now()
    assignment.save(update_fields=['gift_done', 'gift_done_at'])

    record_activity(event=event, kind=ActivityKind.GIFT_MARKED_DONE, actor=user, subject=user)
    return assignment
