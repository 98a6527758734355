"""
Secret Santa services layer.

Services contain the business logic of the gift exchange. State-changing
operations run in a transaction, lock the rows they check, and validate the
event status through ``apps.secret_santa.lifecycle``.
"""

from apps.secret_santa.exceptions import (
    SecretSantaServiceError,
    InvalidStateError,
    AlreadyDrawnError,
    AlreadyInvitedError,
    NotInvitedError,
    ForbiddenError,
    CannotRemoveOrganizerError,
    InsufficientParticipantsError,
    UnsatisfiableConstraintsError,
    InvalidEventDataError,
    SecretSantaNotFoundError,
    EventNotFoundError,
    ParticipantNotFoundError,
    NoAssignmentError,
    UserNotFoundError,
)

from .activity import (
    record_activity,
    get_event_activity,
)

from .event_management import (
    create_event,
    update_event,
    delete_event,
    get_event,
    list_events_for_user,
    validate_event_data,
)

from .participant_registry import (
    ResponseResult,
    invite_participant,
    respond_to_invitation,
    remove_participant,
    get_participants,
    count_accepted,
    get_pending_invitations_count,
)

from .exclusions import (
    add_exclusion,
    remove_exclusion,
    list_exclusions,
    forbidden_predicate,
)

from .assignment_generator import (
    draw_names,
    redraw_names,
)

from .reveal import (
    RevealResult,
    reveal_assignment,
    get_my_assignment,
    mark_gift_done,
)

from .completion import (
    Progress,
    get_progress,
    mark_complete,
)


__all__ = [
    # Exceptions
    'SecretSantaServiceError',
    'InvalidStateError',
    'AlreadyDrawnError',
    'AlreadyInvitedError',
    'NotInvitedError',
    'ForbiddenError',
    'CannotRemoveOrganizerError',
    'InsufficientParticipantsError',
    'UnsatisfiableConstraintsError',
    'InvalidEventDataError',
    'SecretSantaNotFoundError',
    'EventNotFoundError',
    'ParticipantNotFoundError',
    'NoAssignmentError',
    'UserNotFoundError',

    # Activity log
    'record_activity',
    'get_event_activity',

    # Event management
    'create_event',
    'update_event',
    'delete_event',
    'get_event',
    'list_events_for_user',
    'validate_event_data',

    # Participant registry
    'ResponseResult',
    'invite_participant',
    'respond_to_invitation',
    'remove_participant',
    'get_participants',
    'count_accepted',
    'get_pending_invitations_count',

    # Exclusion rules
    'add_exclusion',
    'remove_exclusion',
    'list_exclusions',
    'forbidden_predicate',

    # Assignment generator
    'draw_names',
    'redraw_names',

    # Reveal gate
    'RevealResult',
    'reveal_assignment',
    'get_my_assignment',
    'mark_gift_done',

    # Completion tracker
    'Progress',
    'get_progress',
    'mark_complete',
]
