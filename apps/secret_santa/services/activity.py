"""
Activity log service.

Records domain events (invited, responded, drawn, revealed, ...) in the
same transaction as the change they describe and announces them through
the ``activity_recorded`` signal after commit.
"""

import logging
from typing import Optional
from uuid import UUID

from django.db import transaction
from django.db.models import QuerySet

from apps.accounts.models import User
from apps.secret_santa.models import ActivityKind, Event, EventActivity
from apps.secret_santa.signals import activity_recorded

from .lookups import ensure_can_view, load_event

logger = logging.getLogger(__name__)


def record_activity(
    *,
    event: Event,
    kind: ActivityKind,
    actor: Optional[User],
    subject: Optional[User] = None,
    payload: Optional[dict] = None,
) -> EventActivity:
    """
    Append an activity row for ``event``.

    Payloads must never carry a receiver identity.
    """
    activity = EventActivity.objects.create(
        event=event,
        kind=kind,
        actor=actor,
        subject=subject,
        payload=payload or {},
    )
    logger.debug("Recorded %s for Secret Santa event %s", kind, event.id)

    transaction.on_commit(
        lambda: activity_recorded.send(sender=EventActivity, activity=activity)
    )
    return activity


def get_event_activity(*, event_id: UUID, user: User) -> QuerySet[EventActivity]:
    """
    Get an event's activity log, oldest first.

    Raises:
        EventNotFoundError: If event doesn't exist
        ForbiddenError: If user is neither organizer nor participant
    """
    event = load_event(event_id)
    ensure_can_view(event, user)

    return (
        EventActivity.objects
        .filter(event=event)
        .select_related('actor', 'subject')
        .order_by('created_at')
    )
