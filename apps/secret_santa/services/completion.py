"""
Completion tracking service.
"""

from dataclasses import dataclass
from uuid import UUID

from django.db import transaction
from django.db.models import Count, Q

from apps.accounts.models import User
from apps.secret_santa import lifecycle
from apps.secret_santa.lifecycle import Operation
from apps.secret_santa.models import ActivityKind, Assignment, Event, EventStatus

from .activity import record_activity
from .lookups import ensure_can_view, ensure_organizer, load_event


@dataclass(frozen=True)
class Progress:
    status: str
    total_participants: int
    assignments_total: int
    assignments_revealed: int
    gifts_done: int


def get_progress(*, event_id: UUID, user: User) -> Progress:
    """
    Aggregate counts for an event. Never exposes who drew whom.

    Raises:
        EventNotFoundError: If event doesn't exist
        ForbiddenError: If user is neither organizer nor participant
    """
    event = load_event(event_id)
    ensure_can_view(event, user)

    counts = Assignment.objects.filter(event=event).aggregate(
        total=Count('id'),
        revealed=Count('id', filter=Q(revealed=True)),
        done=Count('id', filter=Q(gift_done=True)),
    )

    return Progress(
        status=event.status,
        total_participants=lifecycle.accepted_count(event),
        assignments_total=counts['total'],
        assignments_revealed=counts['revealed'],
        gifts_done=counts['done'],
    )


@transaction.atomic
def mark_complete(*, event_id: UUID, user: User) -> Event:
    """
    Close the event (organizer only).

    Raises:
        EventNotFoundError: If event doesn't exist
        ForbiddenError: If user is not the organizer
        InvalidStateError: If names have not been drawn or the event is
            already completed
    """
    event = load_event(event_id, for_update=True)
    ensure_organizer(event, user, "Only the organizer can mark the event as completed")
    lifecycle.ensure_allowed(event, Operation.MARK_COMPLETE)

    lifecycle.transition(event, EventStatus.COMPLETED)
    record_activity(event=event, kind=ActivityKind.EVENT_COMPLETED, actor=user)
    return event
