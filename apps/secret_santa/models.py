# ==========================================
# apps/secret_santa/models.py
# ==========================================

from decimal import Decimal
import uuid

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models


class EventStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    DRAWN = 'DRAWN', 'Drawn'
    IN_PROGRESS = 'IN_PROGRESS', 'In progress'
    COMPLETED = 'COMPLETED', 'Completed'


class ParticipantStatus(models.TextChoices):
    INVITED = 'INVITED', 'Invited'
    ACCEPTED = 'ACCEPTED', 'Accepted'
    DECLINED = 'DECLINED', 'Declined'


class ActivityKind(models.TextChoices):
    EVENT_CREATED = 'EVENT_CREATED', 'Event created'
    EVENT_UPDATED = 'EVENT_UPDATED', 'Event updated'
    PARTICIPANT_INVITED = 'PARTICIPANT_INVITED', 'Participant invited'
    PARTICIPANT_RESPONDED = 'PARTICIPANT_RESPONDED', 'Participant responded'
    PARTICIPANT_REMOVED = 'PARTICIPANT_REMOVED', 'Participant removed'
    NAMES_DRAWN = 'NAMES_DRAWN', 'Names drawn'
    NAMES_REDRAWN = 'NAMES_REDRAWN', 'Names redrawn'
    ASSIGNMENT_REVEALED = 'ASSIGNMENT_REVEALED', 'Assignment revealed'
    GIFT_MARKED_DONE = 'GIFT_MARKED_DONE', 'Gift marked done'
    EVENT_COMPLETED = 'EVENT_COMPLETED', 'Event completed'


def default_currency():
    return settings.SECRET_SANTA['DEFAULT_CURRENCY']


class Event(models.Model):
    """A Secret Santa gift exchange organised by one user."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=100)
    organizer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='organized_secret_santa_events',
    )
    draw_date = models.DateTimeField()
    exchange_date = models.DateTimeField()
    budget = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('100000'))],
    )
    currency = models.CharField(max_length=3, default=default_currency)
    status = models.CharField(max_length=20, choices=EventStatus.choices, default=EventStatus.PENDING)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'secret_santa_events'
        indexes = [
            models.Index(fields=['organizer', 'created_at'], name='ss_event_organizer_idx'),
            models.Index(fields=['status'], name='ss_event_status_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(draw_date__lt=models.F('exchange_date')),
                name='ss_event_draw_before_exchange',
            ),
            models.CheckConstraint(
                condition=models.Q(budget__isnull=True) | models.Q(budget__gte=0),
                name='ss_event_budget_non_negative',
            ),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return self.title

    def is_organizer(self, user):
        return self.organizer_id == user.pk

    def has_participant(self, user):
        return self.participants.filter(user=user).exists()

    def can_view(self, user):
        return self.is_organizer(user) or self.has_participant(user)


class Participant(models.Model):
    """A user's invitation to an event and their response to it."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name='participants')
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='secret_santa_participations',
    )
    status = models.CharField(max_length=20, choices=ParticipantStatus.choices, default=ParticipantStatus.INVITED)
    is_organizer = models.BooleanField(default=False)
    invited_at = models.DateTimeField(auto_now_add=True)
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'secret_santa_participants'
        constraints = [
            models.UniqueConstraint(fields=['event', 'user'], name='ss_participant_unique_user'),
        ]
        indexes = [
            models.Index(fields=['event', 'status'], name='ss_participant_status_idx'),
            models.Index(fields=['user', 'status'], name='ss_participant_user_idx'),
        ]
        ordering = ['-is_organizer', 'invited_at']

    def __str__(self):
        return f"{self.user.get_display_name()} in {self.event.title} ({self.status})"


class Assignment(models.Model):
    """
    One giver -> receiver pair of a draw.

    The pair itself never changes after creation; only the reveal and
    gift-done markers are updated.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name='assignments')
    giver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='secret_santa_given',
    )
    receiver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='secret_santa_received',
    )
    revealed = models.BooleanField(default=False)
    revealed_at = models.DateTimeField(null=True, blank=True)
    gift_done = models.BooleanField(default=False)
    gift_done_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'secret_santa_assignments'
        constraints = [
            models.UniqueConstraint(fields=['event', 'giver'], name='ss_assignment_unique_giver'),
            models.UniqueConstraint(fields=['event', 'receiver'], name='ss_assignment_unique_receiver'),
            models.CheckConstraint(
                condition=~models.Q(giver=models.F('receiver')),
                name='ss_assignment_no_self_gift',
            ),
        ]

    def __str__(self):
        # The receiver is never rendered.
        return f"Assignment for {self.giver} in {self.event.title}"


class ExclusionRule(models.Model):
    """Directed restriction: ``giver`` must not draw ``receiver`` in this event."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name='exclusions')
    giver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='+',
    )
    receiver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='+',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'secret_santa_exclusions'
        constraints = [
            models.UniqueConstraint(fields=['event', 'giver', 'receiver'], name='ss_exclusion_unique_pair'),
            models.CheckConstraint(
                condition=~models.Q(giver=models.F('receiver')),
                name='ss_exclusion_distinct_users',
            ),
        ]
        ordering = ['created_at']

    def __str__(self):
        return f"{self.giver} -/-> {self.receiver} ({self.event.title})"


class EventActivity(models.Model):
    """Append-only log of state changes, consumed by notification delivery."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name='activity')
    kind = models.CharField(max_length=40, choices=ActivityKind.choices)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='+',
    )
    subject = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    payload = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'secret_santa_activity'
        indexes = [
            models.Index(fields=['event', 'created_at'], name='ss_activity_event_idx'),
        ]
        ordering = ['created_at']

    def __str__(self):
        return f"{self.kind} on {self.event_id}"
