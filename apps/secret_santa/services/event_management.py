"""
Event management service.

Handles Secret Santa event CRUD. Creating an event also creates the
organizer's own participant record (already ACCEPTED) and the initial
invitations, all in one transaction.
"""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional
from uuid import UUID

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Prefetch, Q, QuerySet
from django.utils import timezone

from apps.accounts.models import User
from apps.secret_santa import lifecycle
from apps.secret_santa.lifecycle import Operation
from apps.secret_santa.models import (
    ActivityKind,
    Event,
    Participant,
    ParticipantStatus,
)
from apps.secret_santa.exceptions import (
    InvalidEventDataError,
    UserNotFoundError,
)

from .activity import record_activity
from .lookups import ensure_can_view, ensure_organizer, load_event

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 100
MAX_BUDGET = Decimal('100000')

_CURRENCY_RE = re.compile(r'^[A-Z]{3}$')


def validate_event_data(
    *,
    title: str,
    draw_date,
    exchange_date,
    budget=None,
    currency: Optional[str] = None,
) -> None:
    """
    Check event fields against the business rules.

    Raises:
        InvalidEventDataError: On the first rule that fails
    """
    if not title or not title.strip():
        raise InvalidEventDataError("Title is required")
    if len(title) > MAX_TITLE_LENGTH:
        raise InvalidEventDataError(f"Title must be at most {MAX_TITLE_LENGTH} characters")

    if draw_date is None or exchange_date is None:
        raise InvalidEventDataError("Draw date and exchange date are required")
    if draw_date >= exchange_date:
        raise InvalidEventDataError("Draw date must be before exchange date")

    if budget is not None:
        try:
            amount = Decimal(budget)
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidEventDataError("Budget must be a number")
        if amount < 0 or amount > MAX_BUDGET:
            raise InvalidEventDataError(f"Budget must be between 0 and {MAX_BUDGET}")

    if currency is not None and not _CURRENCY_RE.match(currency):
        raise InvalidEventDataError("Currency must be a 3-letter ISO code such as USD")


def _resolve_invitees(organizer: User, participant_ids: Iterable) -> list:
    wanted = []
    for raw_id in participant_ids:
        try:
            user_id = raw_id if isinstance(raw_id, UUID) else UUID(str(raw_id))
        except ValueError:
            raise UserNotFoundError(f"User {raw_id} not found")
        if user_id != organizer.pk and user_id not in wanted:
            wanted.append(user_id)
    if not wanted:
        return []

    users = {user.pk: user for user in User.objects.filter(pk__in=wanted, is_active=True)}

    missing = [str(user_id) for user_id in wanted if user_id not in users]
    if missing:
        raise UserNotFoundError(f"Users not found: {', '.join(missing)}")

    return [users[user_id] for user_id in wanted]


@transaction.atomic
def create_event(
    *,
    organizer: User,
    title: str,
    draw_date,
    exchange_date,
    budget: Optional[Decimal] = None,
    currency: Optional[str] = None,
    participant_ids: Iterable[UUID] = (),
) -> Event:
    """
    Create an event with the organizer as its first participant.

    Args:
        organizer: User creating the event
        title: Event title
        draw_date: When names are expected to be drawn
        exchange_date: When gifts are exchanged (after draw_date)
        budget: Optional spending limit
        currency: ISO currency code (defaults to SECRET_SANTA['DEFAULT_CURRENCY'])
        participant_ids: Users to invite right away

    Returns:
        Created Event instance

    Raises:
        InvalidEventDataError: If dates, budget or currency are invalid
        UserNotFoundError: If an invited user doesn't exist
    """
    currency = currency or settings.SECRET_SANTA['DEFAULT_CURRENCY']
    validate_event_data(
        title=title,
        draw_date=draw_date,
        exchange_date=exchange_date,
        budget=budget,
        currency=currency,
    )
    invitees = _resolve_invitees(organizer, participant_ids)

    event = Event.objects.create(
        title=title.strip(),
        organizer=organizer,
        draw_date=draw_date,
        exchange_date=exchange_date,
        budget=budget,
        currency=currency,
    )

    Participant.objects.create(
        event=event,
        user=organizer,
        status=ParticipantStatus.ACCEPTED,
        is_organizer=True,
        responded_at=timezone.now(),
    )
    Participant.objects.bulk_create([
        Participant(event=event, user=invitee, status=ParticipantStatus.INVITED)
        for invitee in invitees
    ])

    record_activity(event=event, kind=ActivityKind.EVENT_CREATED, actor=organizer)
    for invitee in invitees:
        record_activity(
            event=event,
            kind=ActivityKind.PARTICIPANT_INVITED,
            actor=organizer,
            subject=invitee,
        )

    logger.info(
        "Secret Santa event %s created by %s with %d invitations",
        event.id, organizer.pk, len(invitees),
    )
    return event


def get_event(*, event_id: UUID, user: User) -> Event:
    """
    Get an event with its participants.

    Raises:
        EventNotFoundError: If event doesn't exist
        ForbiddenError: If user is neither organizer nor participant
    """
    event = load_event(event_id)
    ensure_can_view(event, user)

    return (
        Event.objects
        .select_related('organizer')
        .prefetch_related(
            Prefetch('participants', queryset=Participant.objects.select_related('user'))
        )
        .get(id=event.id)
    )


def list_events_for_user(*, user: User) -> QuerySet[Event]:
    """Events the user organizes or participates in, newest first."""
    return (
        Event.objects
        .filter(
            Q(organizer=user)
            | Q(id__in=Participant.objects.filter(user=user).values('event_id'))
        )
        .select_related('organizer')
        .prefetch_related(
            Prefetch('participants', queryset=Participant.objects.select_related('user'))
        )
        .annotate(
            accepted_total=Count(
                'participants',
                filter=Q(participants__status=ParticipantStatus.ACCEPTED),
                distinct=True,
            ),
        )
        .order_by('-created_at')
    )


@transaction.atomic
def update_event(
    *,
    event_id: UUID,
    user: User,
    title: Optional[str] = None,
    draw_date=None,
    exchange_date=None,
    budget: Optional[Decimal] = None,
    currency: Optional[str] = None,
    clear_budget: bool = False,
) -> Event:
    """
    Update event details (organizer only, before the draw).

    Fields left as None keep their current value; ``clear_budget`` removes
    the budget.

    Raises:
        EventNotFoundError: If event doesn't exist
        ForbiddenError: If user is not the organizer
        InvalidStateError: If names have already been drawn
        InvalidEventDataError: If the resulting event breaks a rule
    """
    event = load_event(event_id, for_update=True)
    ensure_organizer(event, user, "Only the organizer can update this event")
    lifecycle.ensure_allowed(event, Operation.UPDATE_EVENT)

    changes = {}
    if title is not None:
        changes['title'] = title.strip()
    if draw_date is not None:
        changes['draw_date'] = draw_date
    if exchange_date is not None:
        changes['exchange_date'] = exchange_date
    if clear_budget:
        changes['budget'] = None
    elif budget is not None:
        changes['budget'] = budget
    if currency is not None:
        changes['currency'] = currency

    merged = {
        'title': changes.get('title', event.title),
        'draw_date': changes.get('draw_date', event.draw_date),
        'exchange_date': changes.get('exchange_date', event.exchange_date),
        'budget': changes.get('budget', event.budget),
        'currency': changes.get('currency', event.currency),
    }
    validate_event_data(**merged)

    if not changes:
        return event

    for field, value in changes.items():
        setattr(event, field, value)
    event.save(update_fields=[*changes, 'updated_at'])

    record_activity(
        event=event,
        kind=ActivityKind.EVENT_UPDATED,
        actor=user,
        payload={'fields': sorted(changes)},
    )
    return event


@transaction.atomic
def delete_event(*, event_id: UUID, user: User) -> None:
    """
    Delete an event and everything attached to it (organizer only).

    Allowed in every status.

    Raises:
        EventNotFoundError: If event doesn't exist
        ForbiddenError: If user is not the organizer
    """
    event = load_event(event_id, for_update=True)
    ensure_organizer(event, user, "Only the organizer can delete this event")

    event.delete()
    logger.info("Secret Santa event %s deleted by %s", event_id, user.pk)
