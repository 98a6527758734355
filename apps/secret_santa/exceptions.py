"""
Domain exceptions for the Secret Santa engine.

These exceptions represent business rule violations and are caught in
views, where they are converted to HTTP responses. They are grouped by kind
so callers can handle a whole family at once:

Exception Hierarchy:
    SecretSantaServiceError (base)
    ├── InvalidStateError
    │   ├── AlreadyDrawnError
    │   ├── AlreadyInvitedError
    │   └── NotInvitedError
    ├── ForbiddenError
    │   └── CannotRemoveOrganizerError
    ├── InsufficientParticipantsError
    ├── UnsatisfiableConstraintsError
    ├── InvalidEventDataError
    └── SecretSantaNotFoundError
        ├── EventNotFoundError
        ├── ParticipantNotFoundError
        ├── NoAssignmentError
        └── UserNotFoundError
"""


class SecretSantaServiceError(Exception):
    """Base exception for all Secret Santa service errors."""

    code = 'secret_santa_error'


# --- State errors ---

class InvalidStateError(SecretSantaServiceError):
    """Raised when an operation is not legal in the event's current status."""

    code = 'invalid_state'


class AlreadyDrawnError(InvalidStateError):
    """Raised when names have already been drawn for the event."""

    code = 'already_drawn'


class AlreadyInvitedError(InvalidStateError):
    """Raised when the user already holds an open or accepted invitation."""

    code = 'already_invited'


class NotInvitedError(InvalidStateError):
    """Raised when a user responds without a pending invitation."""

    code = 'not_invited'


# --- Authorization errors ---

class ForbiddenError(SecretSantaServiceError):
    """Raised when the caller lacks the role required for an action."""

    code = 'forbidden'


class CannotRemoveOrganizerError(ForbiddenError):
    """Raised when trying to remove the organizer or make them decline."""

    code = 'cannot_remove_organizer'


# --- Precondition and constraint errors ---

class InsufficientParticipantsError(SecretSantaServiceError):
    """Raised when fewer than the minimum number of participants accepted."""

    code = 'insufficient_participants'


class UnsatisfiableConstraintsError(SecretSantaServiceError):
    """Raised when no pairing satisfies the event's exclusion rules."""

    code = 'unsatisfiable_constraints'


class InvalidEventDataError(SecretSantaServiceError):
    """Raised when event fields break a business rule (dates, budget, pairs)."""

    code = 'invalid_event_data'


# --- Not-found errors ---

class SecretSantaNotFoundError(SecretSantaServiceError):
    """Base for references to records that do not exist."""

    code = 'not_found'


class EventNotFoundError(SecretSantaNotFoundError):
    """Raised when an event does not exist."""

    code = 'event_not_found'


class ParticipantNotFoundError(SecretSantaNotFoundError):
    """Raised when a user is not a participant of the event."""

    code = 'participant_not_found'


class NoAssignmentError(SecretSantaNotFoundError):
    """Raised when the caller has no assignment in the event."""

    code = 'no_assignment'


class UserNotFoundError(SecretSantaNotFoundError):
    """Raised when a referenced user does not exist."""

    code = 'user_not_found'
