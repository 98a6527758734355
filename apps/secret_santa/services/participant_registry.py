"""
Participant registry service.

Invitation protocol for an event's roster:

    (none) ──invite──> INVITED ──accept──> ACCEPTED
                          │                    │
                          └──decline──> DECLINED <──decline──┘
                                           │
                                           └──re-invite──> INVITED

All roster changes are legal only while the event is PENDING.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from django.core.exceptions import ValidationError
from django.db import transaction, IntegrityError
from django.db.models import QuerySet
from django.utils import timezone

from apps.accounts.models import User
from apps.secret_santa import lifecycle
from apps.secret_santa.lifecycle import Operation
from apps.secret_santa.models import (
    ActivityKind,
    Event,
    ExclusionRule,
    Participant,
    ParticipantStatus,
)
from apps.secret_santa.exceptions import (
    AlreadyInvitedError,
    CannotRemoveOrganizerError,
    NotInvitedError,
    UserNotFoundError,
)

from .activity import record_activity
from .lookups import ensure_can_view, ensure_organizer, load_event, load_participant

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResponseResult:
    participant: Participant
    changed: bool


@transaction.atomic
def invite_participant(*, event_id: UUID, user: User, invitee_id: UUID) -> Participant:
    """
    Invite a user to an event (organizer only).

    A user who declined earlier is invited again; this is the only way for
    them to accept later.

    Args:
        event_id: UUID of the event
        user: User sending the invitation (must be organizer)
        invitee_id: UUID of the user to invite

    Returns:
        Participant in INVITED status

    Raises:
        EventNotFoundError: If event doesn't exist
        ForbiddenError: If user is not the organizer
        InvalidStateError: If names have already been drawn
        UserNotFoundError: If the invitee doesn't exist
        AlreadyInvitedError: If the invitee is already invited or accepted
    """
    event = load_event(event_id, for_update=True)
    ensure_organizer(event, user, "Only the organizer can invite participants")
    lifecycle.ensure_allowed(event, Operation.INVITE)

    try:
        invitee = User.objects.get(pk=invitee_id, is_active=True)
    except (User.DoesNotExist, ValidationError, ValueError):
        raise UserNotFoundError(f"User {invitee_id} not found")

    existing = (
        Participant.objects
        .select_for_update()
        .filter(event=event, user=invitee)
        .first()
    )

    if existing is not None:
        if existing.status != ParticipantStatus.DECLINED:
            raise AlreadyInvitedError("User is already a participant")

        existing.status = ParticipantStatus.INVITED
        existing.invited_at = timezone.now()
        existing.responded_at = None
        existing.save(update_fields=['status', 'invited_at', 'responded_at'])
        participant = existing
    else:
        try:
            # Savepoint keeps the outer transaction usable after a collision
            with transaction.atomic():
                participant = Participant.objects.create(
                    event=event,
                    user=invitee,
                    status=ParticipantStatus.INVITED,
                )
        except IntegrityError:
            raise AlreadyInvitedError("User is already a participant")

    record_activity(
        event=event,
        kind=ActivityKind.PARTICIPANT_INVITED,
        actor=user,
        subject=invitee,
    )
    logger.info("User %s invited to Secret Santa event %s", invitee.pk, event.id)
    return participant


@transaction.atomic
def respond_to_invitation(*, event_id: UUID, user: User, accept: bool) -> ResponseResult:
    """
    Accept or decline the caller's own invitation.

    Repeating a decision already on record changes nothing. An accepted
    participant may still decline while the event is PENDING; a declined
    one needs a new invitation before accepting.

    Args:
        event_id: UUID of the event
        user: Invited user
        accept: True to accept, False to decline

    Returns:
        ResponseResult with the participant and whether its status changed

    Raises:
        EventNotFoundError: If event doesn't exist
        InvalidStateError: If names have already been drawn
        NotInvitedError: If the user has no invitation to answer
        CannotRemoveOrganizerError: If the organizer tries to decline
    """
    event = load_event(event_id, for_update=True)
    lifecycle.ensure_allowed(event, Operation.RESPOND)

    participant = (
        Participant.objects
        .select_for_update()
        .filter(event=event, user=user)
        .first()
    )
    if participant is None:
        raise NotInvitedError("Invitation not found")

    target = ParticipantStatus.ACCEPTED if accept else ParticipantStatus.DECLINED

    if participant.status == target:
        return ResponseResult(participant=participant, changed=False)

    if participant.is_organizer:
        raise CannotRemoveOrganizerError("The organizer cannot decline their own event")

    if accept and participant.status == ParticipantStatus.DECLINED:
        raise NotInvitedError(
            "You declined this invitation; ask the organizer to invite you again"
        )

    participant.status = target
    participant.responded_at = timezone.now()
    participant.save(update_fields=['status', 'responded_at'])

    record_activity(
        event=event,
        kind=ActivityKind.PARTICIPANT_RESPONDED,
        actor=user,
        subject=user,
        payload={'status': target.value},
    )
    logger.info(
        "User %s %s Secret Santa event %s",
        user.pk, 'accepted' if accept else 'declined', event.id,
    )
    return ResponseResult(participant=participant, changed=True)


@transaction.atomic
def remove_participant(*, event_id: UUID, user: User, participant_user_id: UUID) -> None:
    """
    Remove a participant from the roster (organizer only).

    Exclusion rules that mention the removed user go with them.

    Raises:
        EventNotFoundError: If event doesn't exist
        ForbiddenError: If user is not the organizer
        InvalidStateError: If names have already been drawn
        CannotRemoveOrganizerError: If the target is the organizer
        ParticipantNotFoundError: If the target is not a participant
    """
    event = load_event(event_id, for_update=True)
    ensure_organizer(event, user, "Only the organizer can remove participants")
    lifecycle.ensure_allowed(event, Operation.REMOVE_PARTICIPANT)

    participant = load_participant(event, participant_user_id, for_update=True)
    if participant.is_organizer or participant.user_id == event.organizer_id:
        raise CannotRemoveOrganizerError("Organizer cannot remove themselves")

    removed_user = participant.user
    participant.delete()

    ExclusionRule.objects.filter(event=event, giver=removed_user).delete()
    ExclusionRule.objects.filter(event=event, receiver=removed_user).delete()

    record_activity(
        event=event,
        kind=ActivityKind.PARTICIPANT_REMOVED,
        actor=user,
        subject=removed_user,
    )
    logger.info("User %s removed from Secret Santa event %s", removed_user.pk, event.id)


def get_participants(*, event_id: UUID, user: User) -> QuerySet[Participant]:
    """
    Get an event's roster, organizer first.

    Raises:
        EventNotFoundError: If event doesn't exist
        ForbiddenError: If user is neither organizer nor participant
    """
    event = load_event(event_id)
    ensure_can_view(event, user)

    return (
        Participant.objects
        .filter(event=event)
        .select_related('user')
        .order_by('-is_organizer', 'invited_at')
    )


def count_accepted(event: Event) -> int:
    return lifecycle.accepted_count(event)


def get_pending_invitations_count(*, user: User) -> int:
    """Open invitations of the user on events that still accept responses."""
    return Participant.objects.filter(
        user=user,
        status=ParticipantStatus.INVITED,
        event__status__in=lifecycle.LEGAL_STATES[Operation.RESPOND],
    ).count()
