"""
Assignment generator service.

Persists the name draw. The event row lock serializes concurrent draw
requests and the unique (event, giver) constraint backs it up, so an
event gets exactly one assignment set and never a partial one.
"""

import logging
import random
from typing import Dict, Optional
from uuid import UUID

from django.conf import settings
from django.db import transaction, IntegrityError

from apps.accounts.models import User
from apps.secret_santa import lifecycle
from apps.secret_santa.derangement import MIN_PARTICIPANTS, build_derangement, is_derangement
from apps.secret_santa.lifecycle import Operation
from apps.secret_santa.models import (
    ActivityKind,
    Assignment,
    Event,
    EventStatus,
    Participant,
    ParticipantStatus,
)
from apps.secret_santa.exceptions import (
    AlreadyDrawnError,
    InsufficientParticipantsError,
    InvalidStateError,
)

from .activity import record_activity
from .exclusions import forbidden_predicate
from .lookups import ensure_organizer, load_event

logger = logging.getLogger(__name__)


def _accepted_user_ids(event: Event) -> list:
    return list(
        Participant.objects
        .filter(event=event, status=ParticipantStatus.ACCEPTED)
        .order_by('invited_at', 'id')
        .values_list('user_id', flat=True)
    )


def _generate(event: Event, rng: Optional[random.Random]) -> Dict[UUID, UUID]:
    user_ids = _accepted_user_ids(event)
    if len(user_ids) < MIN_PARTICIPANTS:
        raise InsufficientParticipantsError(
            f"Need at least {MIN_PARTICIPANTS} accepted participants to draw names"
        )

    mapping = build_derangement(
        user_ids,
        rng=rng,
        forbidden=forbidden_predicate(event),
        max_attempts=settings.SECRET_SANTA['DRAW_MAX_ATTEMPTS'],
    )
    if not is_derangement(mapping, user_ids):
        raise RuntimeError("Generated assignments are not a valid derangement")
    return mapping


def _write(event: Event, mapping: Dict[UUID, UUID]) -> None:
    try:
        with transaction.atomic():
            Assignment.objects.bulk_create([
                Assignment(event=event, giver_id=giver_id, receiver_id=receiver_id)
                for giver_id, receiver_id in mapping.items()
            ])
    except IntegrityError:
        raise AlreadyDrawnError("Names have already been drawn")


@transaction.atomic
def draw_names(*, event_id: UUID, user: User, rng: Optional[random.Random] = None) -> Event:
    """
    Draw names for an event (organizer only, once).

    Pairs every accepted participant with another one so that nobody draws
    themselves, writes all pairs in one statement and moves the event from
    PENDING to DRAWN.

    Args:
        event_id: UUID of the event
        user: Organizer
        rng: Random generator override (tests pass a seeded one)

    Returns:
        The event, now DRAWN

    Raises:
        EventNotFoundError: If event doesn't exist
        ForbiddenError: If user is not the organizer
        InvalidStateError: If the event is completed
        AlreadyDrawnError: If names have already been drawn
        InsufficientParticipantsError: If fewer than 3 participants accepted
        UnsatisfiableConstraintsError: If exclusion rules leave no valid pairing
    """
    event = load_event(event_id, for_update=True)
    ensure_organizer(event, user, "Only the organizer can draw names")
    lifecycle.ensure_allowed(event, Operation.DRAW)

    if Assignment.objects.filter(event=event).exists():
        raise AlreadyDrawnError("Names have already been drawn")

    mapping = _generate(event, rng)
    _write(event, mapping)
    lifecycle.transition(event, EventStatus.DRAWN)

    record_activity(
        event=event,
        kind=ActivityKind.NAMES_DRAWN,
        actor=user,
        payload={'participants': len(mapping)},
    )
    logger.info("Names drawn for Secret Santa event %s (%d participants)", event.id, len(mapping))
    return event


@transaction.atomic
def redraw_names(*, event_id: UUID, user: User, rng: Optional[random.Random] = None) -> Event:
    """
    Replace the whole assignment set (organizer only).

    Only possible while the event is DRAWN, i.e. before anyone revealed
    their assignment. The old set is deleted and the new one written in the
    same transaction; the status stays DRAWN.

    Raises:
        EventNotFoundError: If event doesn't exist
        ForbiddenError: If user is not the organizer
        InvalidStateError: If the event is not DRAWN or a reveal happened
        InsufficientParticipantsError: If fewer than 3 participants accepted
        UnsatisfiableConstraintsError: If exclusion rules leave no valid pairing
    """
    event = load_event(event_id, for_update=True)
    ensure_organizer(event, user, "Only the organizer can redraw names")
    lifecycle.ensure_allowed(event, Operation.REDRAW)

    assignments = Assignment.objects.filter(event=event)
    if assignments.filter(revealed=True).exists():
        raise InvalidStateError(
            "Cannot redraw names once a participant has revealed their assignment"
        )

    mapping = _generate(event, rng)
    assignments.delete()
    _write(event, mapping)

    record_activity(
        event=event,
        kind=ActivityKind.NAMES_REDRAWN,
        actor=user,
        payload={'participants': len(mapping)},
    )
    logger.info("Names redrawn for Secret Santa event %s", event.id)
    return event
