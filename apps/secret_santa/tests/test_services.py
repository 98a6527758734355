"""
Service layer unit tests for the Secret Santa app.

Tests cover:
- Event lifecycle and invitation protocol
- Name draw (derangement, exactly once, exclusions)
- Reveal isolation
- Completion tracking
- Concurrency protection (row locks)
"""

import random
import threading
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import pytest
from django.db import connection
from django.test import TransactionTestCase
from django.utils import timezone

from apps.secret_santa.derangement import is_derangement
from apps.secret_santa.models import (
    ActivityKind,
    Assignment,
    Event,
    EventActivity,
    EventStatus,
    ExclusionRule,
    Participant,
    ParticipantStatus,
)
from apps.secret_santa.services import (
    create_event,
    update_event,
    delete_event,
    get_event,
    list_events_for_user,
    invite_participant,
    respond_to_invitation,
    remove_participant,
    get_participants,
    count_accepted,
    get_pending_invitations_count,
    draw_names,
    redraw_names,
    reveal_assignment,
    get_my_assignment,
    mark_gift_done,
    get_progress,
    mark_complete,
    add_exclusion,
    remove_exclusion,
    list_exclusions,
    get_event_activity,
)
from apps.secret_santa.services.lookups import load_event
from apps.secret_santa.exceptions import (
    AlreadyDrawnError,
    AlreadyInvitedError,
    CannotRemoveOrganizerError,
    EventNotFoundError,
    ForbiddenError,
    InsufficientParticipantsError,
    InvalidEventDataError,
    InvalidStateError,
    NoAssignmentError,
    NotInvitedError,
    ParticipantNotFoundError,
    SecretSantaNotFoundError,
    UnsatisfiableConstraintsError,
    UserNotFoundError,
)
from apps.secret_santa.signals import activity_recorded

from .conftest import accept, make_user


# =============================================================================
# Event Management Service Tests
# =============================================================================

@pytest.mark.django_db
class TestEventManagement:
    """Tests for event_management.py service functions."""

    def test_create_event_adds_organizer_as_accepted(self, organizer, dates):
        draw_date, exchange_date = dates
        event = create_event(
            organizer=organizer,
            title='Family',
            draw_date=draw_date,
            exchange_date=exchange_date,
        )

        assert event.status == EventStatus.PENDING
        assert event.currency == 'USD'
        participant = Participant.objects.get(event=event)
        assert participant.user == organizer
        assert participant.is_organizer
        assert participant.status == ParticipantStatus.ACCEPTED

    def test_create_event_invites_participants(self, event, alice, bob):
        statuses = dict(
            Participant.objects.filter(event=event, is_organizer=False)
            .values_list('user_id', 'status')
        )
        assert statuses == {alice.id: ParticipantStatus.INVITED, bob.id: ParticipantStatus.INVITED}

    def test_create_event_ignores_organizer_and_duplicates_in_invite_list(self, organizer, alice, dates):
        draw_date, exchange_date = dates
        event = create_event(
            organizer=organizer,
            title='Dupes',
            draw_date=draw_date,
            exchange_date=exchange_date,
            participant_ids=[organizer.id, alice.id, alice.id],
        )
        assert Participant.objects.filter(event=event).count() == 2

    def test_create_event_draw_after_exchange(self, organizer, dates):
        draw_date, exchange_date = dates
        with pytest.raises(InvalidEventDataError, match='Draw date must be before exchange date'):
            create_event(
                organizer=organizer,
                title='Backwards',
                draw_date=exchange_date,
                exchange_date=draw_date,
            )
        assert not Event.objects.exists()

    def test_create_event_same_dates_rejected(self, organizer, dates):
        draw_date, _ = dates
        with pytest.raises(InvalidEventDataError):
            create_event(organizer=organizer, title='Same', draw_date=draw_date, exchange_date=draw_date)

    @pytest.mark.parametrize('budget,currency', [
        (Decimal('-1'), 'USD'),
        (Decimal('100000.01'), 'USD'),
        (Decimal('10'), 'usd'),
        (Decimal('10'), 'EURO'),
    ])
    def test_create_event_invalid_budget_or_currency(self, organizer, dates, budget, currency):
        draw_date, exchange_date = dates
        with pytest.raises(InvalidEventDataError):
            create_event(
                organizer=organizer,
                title='Money',
                draw_date=draw_date,
                exchange_date=exchange_date,
                budget=budget,
                currency=currency,
            )

    def test_create_event_unknown_invitee(self, organizer, dates):
        draw_date, exchange_date = dates
        with pytest.raises(UserNotFoundError):
            create_event(
                organizer=organizer,
                title='Ghosts',
                draw_date=draw_date,
                exchange_date=exchange_date,
                participant_ids=[uuid4()],
            )
        assert not Event.objects.exists()

    def test_get_event_for_participant(self, event, alice):
        assert get_event(event_id=event.id, user=alice) == event

    def test_get_event_outsider_forbidden(self, event, outsider):
        with pytest.raises(ForbiddenError):
            get_event(event_id=event.id, user=outsider)

    def test_get_event_not_found(self, organizer):
        with pytest.raises(EventNotFoundError):
            get_event(event_id=uuid4(), user=organizer)

    def test_list_events_for_user(self, event, organizer, alice, outsider, dates):
        draw_date, exchange_date = dates
        other = create_event(
            organizer=alice,
            title='Alice party',
            draw_date=draw_date,
            exchange_date=exchange_date,
        )

        assert list(list_events_for_user(user=organizer)) == [event]
        assert list(list_events_for_user(user=alice)) == [other, event]
        assert list(list_events_for_user(user=outsider)) == []

    def test_list_events_counts_all_accepted(self, ready_event, alice):
        listed = list_events_for_user(user=alice).get(id=ready_event.id)
        assert listed.accepted_total == 3

    def test_update_event(self, event, organizer):
        updated = update_event(event_id=event.id, user=organizer, title='Renamed', budget=Decimal('50'))

        assert updated.title == 'Renamed'
        assert updated.budget == Decimal('50')
        assert EventActivity.objects.filter(event=event, kind=ActivityKind.EVENT_UPDATED).exists()

    def test_update_event_clear_budget(self, event, organizer):
        update_event(event_id=event.id, user=organizer, clear_budget=True)
        event.refresh_from_db()
        assert event.budget is None

    def test_update_event_validates_merged_dates(self, event, organizer):
        with pytest.raises(InvalidEventDataError):
            update_event(
                event_id=event.id,
                user=organizer,
                draw_date=event.exchange_date + timedelta(days=1),
            )

    def test_update_event_non_organizer(self, event, alice):
        with pytest.raises(ForbiddenError):
            update_event(event_id=event.id, user=alice, title='Mine now')

    def test_update_event_after_draw(self, drawn_event, organizer):
        with pytest.raises(InvalidStateError):
            update_event(event_id=drawn_event.id, user=organizer, title='Too late')

    def test_delete_event_cascades(self, drawn_event, organizer):
        delete_event(event_id=drawn_event.id, user=organizer)

        assert not Event.objects.filter(id=drawn_event.id).exists()
        assert not Participant.objects.filter(event_id=drawn_event.id).exists()
        assert not Assignment.objects.filter(event_id=drawn_event.id).exists()
        assert not EventActivity.objects.filter(event_id=drawn_event.id).exists()

    def test_delete_event_non_organizer(self, event, alice):
        with pytest.raises(ForbiddenError):
            delete_event(event_id=event.id, user=alice)
        assert Event.objects.filter(id=event.id).exists()


# =============================================================================
# Participant Registry Service Tests
# =============================================================================

@pytest.mark.django_db
class TestParticipantRegistry:
    """Tests for participant_registry.py service functions."""

    def test_invite_participant(self, event, organizer, carol):
        participant = invite_participant(event_id=event.id, user=organizer, invitee_id=carol.id)

        assert participant.status == ParticipantStatus.INVITED
        assert not participant.is_organizer

    def test_invite_non_organizer(self, event, alice, carol):
        with pytest.raises(ForbiddenError):
            invite_participant(event_id=event.id, user=alice, invitee_id=carol.id)

    def test_invite_unknown_user(self, event, organizer):
        with pytest.raises(UserNotFoundError):
            invite_participant(event_id=event.id, user=organizer, invitee_id=uuid4())

    @pytest.mark.parametrize('accepted', [False, True])
    def test_invite_existing_participant(self, event, organizer, alice, accepted):
        if accepted:
            accept(event, alice)
        with pytest.raises(AlreadyInvitedError):
            invite_participant(event_id=event.id, user=organizer, invitee_id=alice.id)

    def test_invite_after_draw(self, drawn_event, organizer, carol):
        with pytest.raises(InvalidStateError):
            invite_participant(event_id=drawn_event.id, user=organizer, invitee_id=carol.id)

    def test_reinvite_after_decline(self, event, organizer, alice):
        respond_to_invitation(event_id=event.id, user=alice, accept=False)

        participant = invite_participant(event_id=event.id, user=organizer, invitee_id=alice.id)
        assert participant.status == ParticipantStatus.INVITED
        assert participant.responded_at is None

        result = respond_to_invitation(event_id=event.id, user=alice, accept=True)
        assert result.participant.status == ParticipantStatus.ACCEPTED

    def test_accept_invitation(self, event, alice):
        result = respond_to_invitation(event_id=event.id, user=alice, accept=True)

        assert result.changed
        assert result.participant.status == ParticipantStatus.ACCEPTED
        assert result.participant.responded_at is not None

    def test_repeated_response_is_noop(self, event, alice):
        respond_to_invitation(event_id=event.id, user=alice, accept=True)
        responded_at = Participant.objects.get(event=event, user=alice).responded_at
        activity_before = EventActivity.objects.filter(event=event).count()

        result = respond_to_invitation(event_id=event.id, user=alice, accept=True)

        assert not result.changed
        assert result.participant.responded_at == responded_at
        assert EventActivity.objects.filter(event=event).count() == activity_before

    def test_accepted_may_still_decline(self, event, alice):
        respond_to_invitation(event_id=event.id, user=alice, accept=True)
        result = respond_to_invitation(event_id=event.id, user=alice, accept=False)

        assert result.changed
        assert result.participant.status == ParticipantStatus.DECLINED

    def test_declined_cannot_accept_without_reinvite(self, event, alice):
        respond_to_invitation(event_id=event.id, user=alice, accept=False)
        with pytest.raises(NotInvitedError):
            respond_to_invitation(event_id=event.id, user=alice, accept=True)

    def test_respond_without_invitation(self, event, outsider):
        with pytest.raises(NotInvitedError):
            respond_to_invitation(event_id=event.id, user=outsider, accept=True)

    def test_organizer_cannot_decline(self, event, organizer):
        with pytest.raises(CannotRemoveOrganizerError):
            respond_to_invitation(event_id=event.id, user=organizer, accept=False)

    def test_organizer_accept_is_noop(self, event, organizer):
        result = respond_to_invitation(event_id=event.id, user=organizer, accept=True)
        assert not result.changed

    def test_respond_after_draw(self, drawn_event, carol, organizer):
        with pytest.raises(InvalidStateError):
            respond_to_invitation(event_id=drawn_event.id, user=carol, accept=True)

    def test_remove_participant(self, event, organizer, alice, bob):
        add_exclusion(event_id=event.id, user=organizer, giver_id=alice.id, receiver_id=bob.id, symmetric=True)

        remove_participant(event_id=event.id, user=organizer, participant_user_id=alice.id)

        assert not Participant.objects.filter(event=event, user=alice).exists()
        assert not ExclusionRule.objects.filter(event=event).exists()

    def test_remove_organizer_rejected(self, event, organizer):
        with pytest.raises(CannotRemoveOrganizerError):
            remove_participant(event_id=event.id, user=organizer, participant_user_id=organizer.id)

    def test_remove_non_participant(self, event, organizer, outsider):
        with pytest.raises(ParticipantNotFoundError):
            remove_participant(event_id=event.id, user=organizer, participant_user_id=outsider.id)

    def test_remove_by_non_organizer(self, event, alice, bob):
        with pytest.raises(ForbiddenError):
            remove_participant(event_id=event.id, user=alice, participant_user_id=bob.id)

    def test_remove_after_draw(self, drawn_event, organizer, alice):
        with pytest.raises(InvalidStateError):
            remove_participant(event_id=drawn_event.id, user=organizer, participant_user_id=alice.id)

    def test_get_participants_organizer_first(self, event, organizer, alice):
        roster = list(get_participants(event_id=event.id, user=alice))
        assert roster[0].user == organizer
        assert len(roster) == 3

    def test_get_participants_outsider(self, event, outsider):
        with pytest.raises(ForbiddenError):
            get_participants(event_id=event.id, user=outsider)

    def test_count_accepted(self, event, ready_event, bob):
        assert count_accepted(ready_event) == 3
        respond_to_invitation(event_id=event.id, user=bob, accept=False)
        assert count_accepted(event) == 2

    def test_pending_invitations_count(self, event, alice, organizer):
        assert get_pending_invitations_count(user=alice) == 1
        assert get_pending_invitations_count(user=organizer) == 0

        respond_to_invitation(event_id=event.id, user=alice, accept=True)
        assert get_pending_invitations_count(user=alice) == 0


# =============================================================================
# Assignment Generator Service Tests
# =============================================================================

@pytest.mark.django_db
class TestDrawNames:
    """Tests for assignment_generator.py service functions."""

    def test_draw_creates_derangement(self, ready_event, organizer, alice, bob, rng):
        event = draw_names(event_id=ready_event.id, user=organizer, rng=rng)

        assert event.status == EventStatus.DRAWN
        mapping = dict(Assignment.objects.filter(event=event).values_list('giver_id', 'receiver_id'))
        assert is_derangement(mapping, [organizer.id, alice.id, bob.id])
        assert not Assignment.objects.filter(event=event, revealed=True).exists()

    def test_draw_only_uses_accepted_participants(self, event, organizer, alice, bob, carol, rng):
        invite_participant(event_id=event.id, user=organizer, invitee_id=carol.id)
        accept(event, alice, carol)
        respond_to_invitation(event_id=event.id, user=bob, accept=False)

        draw_names(event_id=event.id, user=organizer, rng=rng)

        givers = set(Assignment.objects.filter(event=event).values_list('giver_id', flat=True))
        assert givers == {organizer.id, alice.id, carol.id}

    def test_draw_exactly_once(self, drawn_event, organizer):
        before = set(Assignment.objects.filter(event=drawn_event).values_list('giver_id', 'receiver_id'))

        with pytest.raises(AlreadyDrawnError):
            draw_names(event_id=drawn_event.id, user=organizer)

        after = set(Assignment.objects.filter(event=drawn_event).values_list('giver_id', 'receiver_id'))
        assert before == after

    def test_draw_with_existing_assignments_but_pending_status(self, drawn_event, organizer):
        Event.objects.filter(id=drawn_event.id).update(status=EventStatus.PENDING)

        with pytest.raises(AlreadyDrawnError):
            draw_names(event_id=drawn_event.id, user=organizer)
        assert Assignment.objects.filter(event=drawn_event).count() == 3

    def test_draw_non_organizer(self, ready_event, alice):
        with pytest.raises(ForbiddenError):
            draw_names(event_id=ready_event.id, user=alice)
        assert not Assignment.objects.exists()

    def test_draw_insufficient_participants(self, event, organizer, alice):
        accept(event, alice)
        with pytest.raises(InsufficientParticipantsError, match='at least 3'):
            draw_names(event_id=event.id, user=organizer)

        event.refresh_from_db()
        assert event.status == EventStatus.PENDING
        assert not Assignment.objects.exists()

    def test_draw_on_completed_event(self, drawn_event, organizer):
        mark_complete(event_id=drawn_event.id, user=organizer)
        with pytest.raises(InvalidStateError) as exc_info:
            draw_names(event_id=drawn_event.id, user=organizer)
        assert not isinstance(exc_info.value, AlreadyDrawnError)

    def test_draw_write_failure_leaves_nothing(self, ready_event, organizer):
        with patch(
            'apps.secret_santa.services.assignment_generator.lifecycle.transition',
            side_effect=RuntimeError('boom'),
        ):
            with pytest.raises(RuntimeError):
                draw_names(event_id=ready_event.id, user=organizer)

        ready_event.refresh_from_db()
        assert ready_event.status == EventStatus.PENDING
        assert not Assignment.objects.filter(event=ready_event).exists()

    def test_draw_respects_exclusions(self, ready_event, organizer, alice, bob, carol):
        invite_participant(event_id=ready_event.id, user=organizer, invitee_id=carol.id)
        accept(ready_event, carol)
        add_exclusion(event_id=ready_event.id, user=organizer, giver_id=alice.id, receiver_id=bob.id, symmetric=True)

        draw_names(event_id=ready_event.id, user=organizer, rng=random.Random(1))

        pairs = set(Assignment.objects.filter(event=ready_event).values_list('giver_id', 'receiver_id'))
        assert (alice.id, bob.id) not in pairs
        assert (bob.id, alice.id) not in pairs

    def test_draw_unsatisfiable_exclusions(self, ready_event, organizer, alice, bob):
        add_exclusion(event_id=ready_event.id, user=organizer, giver_id=alice.id, receiver_id=bob.id)
        add_exclusion(event_id=ready_event.id, user=organizer, giver_id=alice.id, receiver_id=organizer.id)

        with pytest.raises(UnsatisfiableConstraintsError):
            draw_names(event_id=ready_event.id, user=organizer)

        ready_event.refresh_from_db()
        assert ready_event.status == EventStatus.PENDING
        assert not Assignment.objects.exists()

    def test_redraw_replaces_set(self, drawn_event, organizer, alice, bob):
        old_ids = set(Assignment.objects.filter(event=drawn_event).values_list('id', flat=True))

        event = redraw_names(event_id=drawn_event.id, user=organizer, rng=random.Random(99))

        assert event.status == EventStatus.DRAWN
        rows = Assignment.objects.filter(event=drawn_event)
        assert not set(rows.values_list('id', flat=True)) & old_ids
        assert is_derangement(
            dict(rows.values_list('giver_id', 'receiver_id')),
            [organizer.id, alice.id, bob.id],
        )

    def test_redraw_after_reveal_rejected(self, drawn_event, organizer, alice):
        reveal_assignment(event_id=drawn_event.id, user=alice)
        with pytest.raises(InvalidStateError):
            redraw_names(event_id=drawn_event.id, user=organizer)

    def test_redraw_before_draw_rejected(self, ready_event, organizer):
        with pytest.raises(InvalidStateError):
            redraw_names(event_id=ready_event.id, user=organizer)

    def test_draw_records_activity_without_receivers(self, drawn_event):
        activity = EventActivity.objects.get(event=drawn_event, kind=ActivityKind.NAMES_DRAWN)
        assert activity.payload == {'participants': 3}


# =============================================================================
# Reveal Service Tests
# =============================================================================

@pytest.mark.django_db
class TestReveal:
    """Tests for reveal.py service functions."""

    def test_my_assignment_before_draw_is_none(self, ready_event, alice):
        assert get_my_assignment(event_id=ready_event.id, user=alice) is None

    def test_my_assignment_is_own_row(self, drawn_event, alice):
        assignment = get_my_assignment(event_id=drawn_event.id, user=alice)

        assert assignment.giver == alice
        assert not assignment.revealed

    def test_first_reveal_moves_event_in_progress(self, drawn_event, alice):
        result = reveal_assignment(event_id=drawn_event.id, user=alice)

        assert result.first_reveal
        assert result.assignment.revealed
        assert result.assignment.revealed_at is not None
        assert result.receiver == Assignment.objects.get(event=drawn_event, giver=alice).receiver
        drawn_event.refresh_from_db()
        assert drawn_event.status == EventStatus.IN_PROGRESS

    def test_reveal_is_idempotent(self, drawn_event, alice, bob):
        first = reveal_assignment(event_id=drawn_event.id, user=alice)
        reveal_assignment(event_id=drawn_event.id, user=bob)
        again = reveal_assignment(event_id=drawn_event.id, user=alice)

        assert not again.first_reveal
        assert again.receiver == first.receiver
        assert again.assignment.revealed_at == first.assignment.revealed_at
        assert EventActivity.objects.filter(
            event=drawn_event, kind=ActivityKind.ASSIGNMENT_REVEALED
        ).count() == 2

    def test_reveal_before_draw(self, ready_event, alice):
        with pytest.raises(InvalidStateError):
            reveal_assignment(event_id=ready_event.id, user=alice)

    def test_reveal_non_giver(self, drawn_event, outsider):
        with pytest.raises(NoAssignmentError):
            reveal_assignment(event_id=drawn_event.id, user=outsider)

    def test_reveal_after_completion_is_stored(self, drawn_event, organizer, alice):
        mark_complete(event_id=drawn_event.id, user=organizer)

        result = reveal_assignment(event_id=drawn_event.id, user=alice)

        assert result.first_reveal
        assert result.receiver is not None
        stored = Assignment.objects.get(event=drawn_event, giver=alice)
        assert stored.revealed
        assert stored.revealed_at == result.assignment.revealed_at
        drawn_event.refresh_from_db()
        assert drawn_event.status == EventStatus.COMPLETED
        assert not EventActivity.objects.filter(
            event=drawn_event, kind=ActivityKind.ASSIGNMENT_REVEALED
        ).exists()

        again = reveal_assignment(event_id=drawn_event.id, user=alice)
        assert not again.first_reveal
        assert again.assignment.revealed_at == stored.revealed_at

    def test_reveal_after_completion_counts_in_progress(self, drawn_event, organizer, alice):
        mark_complete(event_id=drawn_event.id, user=organizer)
        reveal_assignment(event_id=drawn_event.id, user=alice)

        progress = get_progress(event_id=drawn_event.id, user=organizer)

        assert progress.assignments_revealed == 1

    @pytest.mark.parametrize('call', [reveal_assignment, mark_gift_done])
    def test_locks_event_row(self, drawn_event, alice, call):
        """Status checks run under the event lock so they serialize with redraw and completion."""
        reveal_assignment(event_id=drawn_event.id, user=alice)

        with patch('apps.secret_santa.services.reveal.load_event', wraps=load_event) as mock_load:
            call(event_id=drawn_event.id, user=alice)

        mock_load.assert_called_once_with(drawn_event.id, for_update=True)

    def test_my_assignment_outsider_before_draw(self, ready_event, outsider):
        with pytest.raises(ForbiddenError):
            get_my_assignment(event_id=ready_event.id, user=outsider)

    def test_my_assignment_outsider_after_draw(self, drawn_event, outsider):
        with pytest.raises(ForbiddenError):
            get_my_assignment(event_id=drawn_event.id, user=outsider)

    def test_isolation(self, drawn_event, organizer, alice, bob):
        """Each giver only ever gets their own row."""
        for user in (organizer, alice, bob):
            assignment = get_my_assignment(event_id=drawn_event.id, user=user)
            result = reveal_assignment(event_id=drawn_event.id, user=user)
            assert assignment.giver_id == user.id
            assert result.assignment.giver_id == user.id
            assert result.assignment.pk == assignment.pk

    def test_mark_gift_done(self, drawn_event, alice):
        reveal_assignment(event_id=drawn_event.id, user=alice)

        assignment = mark_gift_done(event_id=drawn_event.id, user=alice)
        assert assignment.gift_done
        done_at = assignment.gift_done_at

        again = mark_gift_done(event_id=drawn_event.id, user=alice)
        assert again.gift_done_at == done_at

    def test_mark_gift_done_requires_reveal(self, drawn_event, alice):
        with pytest.raises(InvalidStateError):
            mark_gift_done(event_id=drawn_event.id, user=alice)

    def test_mark_gift_done_non_giver(self, drawn_event, outsider):
        with pytest.raises(NoAssignmentError):
            mark_gift_done(event_id=drawn_event.id, user=outsider)


# =============================================================================
# Completion Service Tests
# =============================================================================

@pytest.mark.django_db
class TestCompletion:
    """Tests for completion.py service functions."""

    def test_progress_counts(self, drawn_event, organizer, alice):
        reveal_assignment(event_id=drawn_event.id, user=alice)
        mark_gift_done(event_id=drawn_event.id, user=alice)

        progress = get_progress(event_id=drawn_event.id, user=organizer)

        assert progress.status == EventStatus.IN_PROGRESS
        assert progress.total_participants == 3
        assert progress.assignments_total == 3
        assert progress.assignments_revealed == 1
        assert progress.gifts_done == 1

    def test_progress_outsider(self, drawn_event, outsider):
        with pytest.raises(ForbiddenError):
            get_progress(event_id=drawn_event.id, user=outsider)

    @pytest.mark.parametrize('reveal_first', [False, True])
    def test_mark_complete(self, drawn_event, organizer, alice, reveal_first):
        if reveal_first:
            reveal_assignment(event_id=drawn_event.id, user=alice)

        event = mark_complete(event_id=drawn_event.id, user=organizer)

        assert event.status == EventStatus.COMPLETED
        event.refresh_from_db()
        assert event.status == EventStatus.COMPLETED

    def test_mark_complete_non_organizer(self, drawn_event, alice):
        with pytest.raises(ForbiddenError):
            mark_complete(event_id=drawn_event.id, user=alice)

    def test_mark_complete_pending(self, ready_event, organizer):
        with pytest.raises(InvalidStateError):
            mark_complete(event_id=ready_event.id, user=organizer)

    def test_mark_complete_twice(self, drawn_event, organizer):
        mark_complete(event_id=drawn_event.id, user=organizer)
        with pytest.raises(InvalidStateError):
            mark_complete(event_id=drawn_event.id, user=organizer)

    def test_completed_event_rejects_mutations(self, drawn_event, organizer, alice, carol):
        mark_complete(event_id=drawn_event.id, user=organizer)

        with pytest.raises(InvalidStateError):
            invite_participant(event_id=drawn_event.id, user=organizer, invitee_id=carol.id)
        with pytest.raises(InvalidStateError):
            mark_gift_done(event_id=drawn_event.id, user=alice)
        with pytest.raises(InvalidStateError):
            redraw_names(event_id=drawn_event.id, user=organizer)


# =============================================================================
# Exclusion Rules Service Tests
# =============================================================================

@pytest.mark.django_db
class TestExclusions:
    """Tests for exclusions.py service functions."""

    def test_add_symmetric_exclusion(self, event, organizer, alice, bob):
        rules = add_exclusion(event_id=event.id, user=organizer, giver_id=alice.id, receiver_id=bob.id, symmetric=True)

        assert len(rules) == 2
        assert set(ExclusionRule.objects.values_list('giver_id', 'receiver_id')) == {
            (alice.id, bob.id),
            (bob.id, alice.id),
        }

    def test_add_exclusion_is_idempotent(self, event, organizer, alice, bob):
        first = add_exclusion(event_id=event.id, user=organizer, giver_id=alice.id, receiver_id=bob.id)
        second = add_exclusion(event_id=event.id, user=organizer, giver_id=alice.id, receiver_id=bob.id)

        assert first[0].pk == second[0].pk
        assert ExclusionRule.objects.count() == 1

    def test_add_exclusion_self(self, event, organizer, alice):
        with pytest.raises(InvalidEventDataError):
            add_exclusion(event_id=event.id, user=organizer, giver_id=alice.id, receiver_id=alice.id)

    def test_add_exclusion_non_participant(self, event, organizer, alice, outsider):
        with pytest.raises(ParticipantNotFoundError):
            add_exclusion(event_id=event.id, user=organizer, giver_id=alice.id, receiver_id=outsider.id)

    def test_add_exclusion_non_organizer(self, event, alice, bob):
        with pytest.raises(ForbiddenError):
            add_exclusion(event_id=event.id, user=alice, giver_id=alice.id, receiver_id=bob.id)

    def test_add_exclusion_after_draw(self, drawn_event, organizer, alice, bob):
        with pytest.raises(InvalidStateError):
            add_exclusion(event_id=drawn_event.id, user=organizer, giver_id=alice.id, receiver_id=bob.id)

    def test_remove_and_list_exclusions(self, event, organizer, alice, bob):
        rule = add_exclusion(event_id=event.id, user=organizer, giver_id=alice.id, receiver_id=bob.id)[0]
        assert list(list_exclusions(event_id=event.id, user=organizer)) == [rule]

        remove_exclusion(event_id=event.id, user=organizer, exclusion_id=rule.id)
        assert not list_exclusions(event_id=event.id, user=organizer).exists()

    def test_remove_unknown_exclusion(self, event, organizer):
        with pytest.raises(SecretSantaNotFoundError):
            remove_exclusion(event_id=event.id, user=organizer, exclusion_id=uuid4())

    def test_list_exclusions_participant_forbidden(self, event, alice):
        with pytest.raises(ForbiddenError):
            list_exclusions(event_id=event.id, user=alice)


# =============================================================================
# Activity Log Tests
# =============================================================================

@pytest.mark.django_db
class TestActivity:

    def test_activity_trail(self, drawn_event, alice):
        reveal_assignment(event_id=drawn_event.id, user=alice)

        kinds = list(get_event_activity(event_id=drawn_event.id, user=alice).values_list('kind', flat=True))
        assert ActivityKind.EVENT_CREATED in kinds
        assert ActivityKind.NAMES_DRAWN in kinds
        assert kinds[-1] == ActivityKind.ASSIGNMENT_REVEALED

    def test_activity_outsider(self, event, outsider):
        with pytest.raises(ForbiddenError):
            get_event_activity(event_id=event.id, user=outsider)

    def test_signal_sent_on_commit(self, event, organizer, carol, django_capture_on_commit_callbacks):
        received = []

        def receiver(sender, activity, **kwargs):
            received.append(activity.kind)

        activity_recorded.connect(receiver)
        try:
            with django_capture_on_commit_callbacks(execute=True):
                invite_participant(event_id=event.id, user=organizer, invitee_id=carol.id)
        finally:
            activity_recorded.disconnect(receiver)

        assert received == [ActivityKind.PARTICIPANT_INVITED]

    def test_no_payload_mentions_a_receiver(self, drawn_event, organizer, alice, bob):
        for user in (organizer, alice, bob):
            reveal_assignment(event_id=drawn_event.id, user=user)

        receiver_ids = {
            str(pk) for pk in Assignment.objects.filter(event=drawn_event).values_list('receiver_id', flat=True)
        }
        for activity in EventActivity.objects.filter(event=drawn_event):
            assert not receiver_ids & {str(value) for value in activity.payload.values()}


# =============================================================================
# Scenario
# =============================================================================

@pytest.mark.django_db
class TestServiceIntegration:
    """End-to-end flows across services."""

    def test_full_event_lifecycle(self, organizer, alice, bob, dates, rng):
        draw_date, exchange_date = dates
        event = create_event(
            organizer=organizer,
            title='Holiday Exchange',
            draw_date=draw_date,
            exchange_date=exchange_date,
            budget=Decimal('30'),
            currency='EUR',
            participant_ids=[alice.id, bob.id],
        )

        # Not enough accepted participants yet
        with pytest.raises(InsufficientParticipantsError):
            draw_names(event_id=event.id, user=organizer, rng=rng)

        respond_to_invitation(event_id=event.id, user=alice, accept=True)
        respond_to_invitation(event_id=event.id, user=bob, accept=True)

        draw_names(event_id=event.id, user=organizer, rng=rng)
        with pytest.raises(AlreadyDrawnError):
            draw_names(event_id=event.id, user=organizer, rng=rng)

        receivers = {}
        for user in (alice, bob, organizer):
            result = reveal_assignment(event_id=event.id, user=user)
            assert result.receiver != user
            receivers[user.id] = result.receiver.id

        assert set(receivers.values()) == {organizer.id, alice.id, bob.id}

        event.refresh_from_db()
        assert event.status == EventStatus.IN_PROGRESS

        mark_complete(event_id=event.id, user=organizer)
        event.refresh_from_db()
        assert event.status == EventStatus.COMPLETED


# =============================================================================
# Concurrency Tests (Race Conditions)
# =============================================================================

@pytest.mark.skipif(connection.vendor == 'sqlite', reason='SQLite has no row-level locks')
class TestConcurrency(TransactionTestCase):
    """
    Tests for concurrency protection using TransactionTestCase.

    Note: TransactionTestCase is required for testing actual database
    transactions and concurrency. Run against PostgreSQL with
    TEST_DATABASE_URL set.
    """

    def setUp(self):
        """Create test fixtures."""
        self.organizer = make_user('olivia')
        self.others = [make_user(name) for name in ('alice', 'bob', 'carol')]
        now = timezone.now()

        self.event = create_event(
            organizer=self.organizer,
            title='Race',
            draw_date=now + timedelta(days=1),
            exchange_date=now + timedelta(days=2),
            participant_ids=[user.id for user in self.others],
        )
        Participant.objects.filter(event=self.event).update(status=ParticipantStatus.ACCEPTED)

    def _run_threads(self, target, count):
        return self._run_all(*[target] * count)

    def _run_all(self, *targets):
        results = []
        errors = []

        def run(target):
            try:
                results.append(target())
            except Exception as e:
                errors.append(e)
            finally:
                connection.close()

        threads = [threading.Thread(target=run, args=(target,)) for target in targets]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return results, errors

    def test_concurrent_draws_produce_one_set(self):
        """Only one of several simultaneous draws wins."""
        results, errors = self._run_threads(
            lambda: draw_names(event_id=self.event.id, user=self.organizer),
            count=5,
        )

        assert len(results) == 1, f"Expected 1 successful draw, got {len(results)}"
        assert all(isinstance(e, AlreadyDrawnError) for e in errors), errors
        assert Assignment.objects.filter(event=self.event).count() == 4

    def test_concurrent_reveals_record_once(self):
        draw_names(event_id=self.event.id, user=self.organizer)
        alice = self.others[0]

        results, errors = self._run_threads(
            lambda: reveal_assignment(event_id=self.event.id, user=alice),
            count=5,
        )

        assert not errors, errors
        assert sum(1 for r in results if r.first_reveal) == 1
        assert len({r.receiver.id for r in results}) == 1
        assert EventActivity.objects.filter(
            event=self.event, kind=ActivityKind.ASSIGNMENT_REVEALED
        ).count() == 1

    def test_reveal_racing_redraw(self):
        """A reveal either sees the old draw and blocks the redraw, or waits and sees the new one."""
        draw_names(event_id=self.event.id, user=self.organizer)
        alice = self.others[0]

        results, errors = self._run_all(
            lambda: redraw_names(event_id=self.event.id, user=self.organizer),
            lambda: reveal_assignment(event_id=self.event.id, user=alice),
        )

        assert all(isinstance(e, InvalidStateError) for e in errors), errors
        assert Assignment.objects.filter(event=self.event).count() == 4
        revealed = Assignment.objects.get(event=self.event, giver=alice)
        assert revealed.revealed
        self.event.refresh_from_db()
        assert self.event.status == EventStatus.IN_PROGRESS

    def test_gift_done_racing_complete(self):
        """Completion and gift-done serialize; no write lands after the event is closed."""
        draw_names(event_id=self.event.id, user=self.organizer)
        alice = self.others[0]
        reveal_assignment(event_id=self.event.id, user=alice)

        results, errors = self._run_all(
            lambda: mark_complete(event_id=self.event.id, user=self.organizer),
            lambda: mark_gift_done(event_id=self.event.id, user=alice),
        )

        assert all(isinstance(e, InvalidStateError) for e in errors), errors
        self.event.refresh_from_db()
        assert self.event.status == EventStatus.COMPLETED
        assignment = Assignment.objects.get(event=self.event, giver=alice)
        completed_at = EventActivity.objects.get(
            event=self.event, kind=ActivityKind.EVENT_COMPLETED
        ).created_at
        if assignment.gift_done:
            assert assignment.gift_done_at <= completed_at
        else:
            assert len(errors) == 1
