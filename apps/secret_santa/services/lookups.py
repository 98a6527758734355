"""
Shared lookups for the Secret Santa services.

Every service resolves its event through ``load_event`` so missing events
raise the same domain error everywhere.
"""

from uuid import UUID

from django.core.exceptions import ValidationError

from apps.secret_santa.models import Event, Participant
from apps.secret_santa.exceptions import (
    EventNotFoundError,
    ForbiddenError,
    ParticipantNotFoundError,
)


def load_event(event_id: UUID, *, for_update: bool = False) -> Event:
    """
    Fetch an event, optionally taking its row lock.

    ``for_update`` must only be used inside ``transaction.atomic``.

    Raises:
        EventNotFoundError: If the event doesn't exist
    """
    queryset = Event.objects.select_related('organizer')
    if for_update:
        queryset = Event.objects.select_for_update()
    try:
        return queryset.get(id=event_id)
    except (Event.DoesNotExist, ValidationError, ValueError):
        raise EventNotFoundError(f"Secret Santa event {event_id} not found")


def ensure_organizer(event: Event, user, message: str) -> None:
    if not event.is_organizer(user):
        raise ForbiddenError(message)


def ensure_can_view(event: Event, user) -> None:
    """Organizer or any participant may read the event."""
    if not event.can_view(user):
        raise ForbiddenError("You don't have access to this event")


def load_participant(event: Event, user_id, *, for_update: bool = False) -> Participant:
    """
    Raises:
        ParticipantNotFoundError: If the user has no participant record
    """
    queryset = Participant.objects.filter(event=event)
    if for_update:
        queryset = queryset.select_for_update()
    try:
        return queryset.get(user_id=user_id)
    except (Participant.DoesNotExist, ValidationError, ValueError):
        raise ParticipantNotFoundError("User is not a participant of this event")
