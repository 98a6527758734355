"""
Exclusion rules service.

An exclusion rule says "giver must not draw receiver" (partners, people in
the same household, last year's pairing). The rules of an event become the
``forbidden`` predicate of the name draw.
"""

from typing import List, Optional
from uuid import UUID

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import QuerySet

from apps.accounts.models import User
from apps.secret_santa import lifecycle
from apps.secret_santa.derangement import Forbidden
from apps.secret_santa.lifecycle import Operation
from apps.secret_santa.models import Event, ExclusionRule
from apps.secret_santa.exceptions import (
    InvalidEventDataError,
    SecretSantaNotFoundError,
)

from .lookups import ensure_organizer, load_event, load_participant


@transaction.atomic
def add_exclusion(
    *,
    event_id: UUID,
    user: User,
    giver_id: UUID,
    receiver_id: UUID,
    symmetric: bool = False,
) -> List[ExclusionRule]:
    """
    Forbid ``giver`` from drawing ``receiver`` (organizer only, before the draw).

    Adding a rule that already exists keeps the existing one.

    Args:
        event_id: UUID of the event
        user: Organizer
        giver_id: Participant who must not draw receiver
        receiver_id: Participant who must not be drawn by giver
        symmetric: Also forbid receiver -> giver

    Returns:
        The rules covering the requested pair(s)

    Raises:
        EventNotFoundError: If event doesn't exist
        ForbiddenError: If user is not the organizer
        InvalidStateError: If names have already been drawn
        InvalidEventDataError: If giver and receiver are the same user
        ParticipantNotFoundError: If either user is not a participant
    """
    event = load_event(event_id, for_update=True)
    ensure_organizer(event, user, "Only the organizer can manage exclusion rules")
    lifecycle.ensure_allowed(event, Operation.MANAGE_EXCLUSIONS)

    giver = load_participant(event, giver_id).user
    receiver = load_participant(event, receiver_id).user
    if giver.pk == receiver.pk:
        raise InvalidEventDataError("A participant cannot be excluded from themselves")

    pairs = [(giver, receiver)]
    if symmetric:
        pairs.append((receiver, giver))

    rules = []
    for rule_giver, rule_receiver in pairs:
        rule, _ = ExclusionRule.objects.get_or_create(
            event=event,
            giver=rule_giver,
            receiver=rule_receiver,
        )
        rules.append(rule)
    return rules


@transaction.atomic
def remove_exclusion(*, event_id: UUID, user: User, exclusion_id: UUID) -> None:
    """
    Delete one exclusion rule (organizer only, before the draw).

    Raises:
        EventNotFoundError: If event doesn't exist
        ForbiddenError: If user is not the organizer
        InvalidStateError: If names have already been drawn
        SecretSantaNotFoundError: If the rule doesn't belong to the event
    """
    event = load_event(event_id, for_update=True)
    ensure_organizer(event, user, "Only the organizer can manage exclusion rules")
    lifecycle.ensure_allowed(event, Operation.MANAGE_EXCLUSIONS)

    try:
        deleted, _ = ExclusionRule.objects.filter(event=event, id=exclusion_id).delete()
    except (ValidationError, ValueError):
        deleted = 0
    if not deleted:
        raise SecretSantaNotFoundError("Exclusion rule not found")


def list_exclusions(*, event_id: UUID, user: User) -> QuerySet[ExclusionRule]:
    """
    Raises:
        EventNotFoundError: If event doesn't exist
        ForbiddenError: If user is not the organizer
    """
    event = load_event(event_id)
    ensure_organizer(event, user, "Only the organizer can view exclusion rules")

    return (
        ExclusionRule.objects
        .filter(event=event)
        .select_related('giver', 'receiver')
        .order_by('created_at')
    )


def forbidden_predicate(event: Event) -> Optional[Forbidden]:
    """
    Build the draw's ``forbidden(giver_id, receiver_id)`` predicate.

    Returns None when the event has no rules so the draw takes its
    unconstrained path.
    """
    pairs = set(
        ExclusionRule.objects
        .filter(event=event)
        .values_list('giver_id', 'receiver_id')
    )
    if not pairs:
        return None

    def forbidden(giver_id, receiver_id) -> bool:
        return (giver_id, receiver_id) in pairs

    return forbidden
