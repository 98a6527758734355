from rest_framework import serializers

from apps.accounts.models import User

from . import lifecycle
from .models import Assignment, Event, EventActivity, ExclusionRule, Participant, ParticipantStatus


class UserMinimalSerializer(serializers.ModelSerializer):
    """Minimal user info for nested serialization."""

    display_name = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'email', 'display_name', 'avatar_url']
        read_only_fields = fields

    def get_display_name(self, obj):
        return obj.get_display_name()


class ParticipantSerializer(serializers.ModelSerializer):
    """Roster entry of an event."""

    user = UserMinimalSerializer(read_only=True)

    class Meta:
        model = Participant
        fields = ['id', 'user', 'status', 'is_organizer', 'invited_at', 'responded_at']
        read_only_fields = fields


class EventSerializer(serializers.ModelSerializer):
    """
    Full event representation.

    ``can_draw_names`` is a display hint for clients; the draw endpoint
    re-checks every condition.
    """

    organizer = UserMinimalSerializer(read_only=True)
    participants = ParticipantSerializer(many=True, read_only=True)
    participant_count = serializers.SerializerMethodField()
    accepted_count = serializers.SerializerMethodField()
    is_organizer = serializers.SerializerMethodField()
    my_participant_status = serializers.SerializerMethodField()
    can_draw_names = serializers.SerializerMethodField()

    class Meta:
        model = Event
        fields = [
            'id',
            'title',
            'organizer',
            'draw_date',
            'exchange_date',
            'budget',
            'currency',
            'status',
            'participants',
            'participant_count',
            'accepted_count',
            'is_organizer',
            'my_participant_status',
            'can_draw_names',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def _user(self):
        request = self.context.get('request')
        if request and request.user.is_authenticated:
            return request.user
        return None

    def get_participant_count(self, obj):
        return len(obj.participants.all())

    def get_accepted_count(self, obj):
        return sum(1 for p in obj.participants.all() if p.status == ParticipantStatus.ACCEPTED)

    def get_is_organizer(self, obj):
        user = self._user()
        return bool(user and obj.is_organizer(user))

    def get_my_participant_status(self, obj):
        user = self._user()
        if user is None:
            return None
        for participant in obj.participants.all():
            if participant.user_id == user.pk:
                return participant.status
        return None

    def get_can_draw_names(self, obj):
        user = self._user()
        return bool(user and lifecycle.can_draw_names(obj, user))


class EventListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for list views."""

    organizer = UserMinimalSerializer(read_only=True)
    participant_count = serializers.SerializerMethodField()
    accepted_count = serializers.IntegerField(source='accepted_total', read_only=True)
    is_organizer = serializers.SerializerMethodField()

    class Meta:
        model = Event
        fields = [
            'id',
            'title',
            'organizer',
            'draw_date',
            'exchange_date',
            'budget',
            'currency',
            'status',
            'participant_count',
            'accepted_count',
            'is_organizer',
            'created_at',
        ]
        read_only_fields = fields

    def get_participant_count(self, obj):
        return len(obj.participants.all())

    def get_is_organizer(self, obj):
        request = self.context.get('request')
        return bool(request and obj.is_organizer(request.user))


class EventCreateSerializer(serializers.Serializer):
    """Input for creating an event. Business rules are checked by the service."""

    title = serializers.CharField(max_length=100)
    draw_date = serializers.DateTimeField()
    exchange_date = serializers.DateTimeField()
    budget = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, allow_null=True)
    currency = serializers.CharField(max_length=3, required=False)
    participant_ids = serializers.ListField(
        child=serializers.UUIDField(),
        required=False,
        default=list,
    )


class EventUpdateSerializer(serializers.Serializer):
    """Partial update input; sending ``budget: null`` clears the budget."""

    title = serializers.CharField(max_length=100, required=False)
    draw_date = serializers.DateTimeField(required=False)
    exchange_date = serializers.DateTimeField(required=False)
    budget = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, allow_null=True)
    currency = serializers.CharField(max_length=3, required=False)


class InviteSerializer(serializers.Serializer):
    user_id = serializers.UUIDField()


class AssignmentSerializer(serializers.ModelSerializer):
    """
    The caller's own assignment.

    ``receiver`` is null until the giver has revealed it.
    """

    receiver = serializers.SerializerMethodField()

    class Meta:
        model = Assignment
        fields = ['id', 'event', 'receiver', 'revealed', 'revealed_at', 'gift_done', 'gift_done_at']
        read_only_fields = fields

    def get_receiver(self, obj):
        if not obj.revealed:
            return None
        return UserMinimalSerializer(obj.receiver).data


class RevealSerializer(serializers.Serializer):
    assignment = AssignmentSerializer(read_only=True)
    receiver = UserMinimalSerializer(read_only=True)
    first_reveal = serializers.BooleanField(read_only=True)


class ProgressSerializer(serializers.Serializer):
    status = serializers.CharField(read_only=True)
    total_participants = serializers.IntegerField(read_only=True)
    assignments_total = serializers.IntegerField(read_only=True)
    assignments_revealed = serializers.IntegerField(read_only=True)
    gifts_done = serializers.IntegerField(read_only=True)


class ExclusionRuleSerializer(serializers.ModelSerializer):
    giver = UserMinimalSerializer(read_only=True)
    receiver = UserMinimalSerializer(read_only=True)

    class Meta:
        model = ExclusionRule
        fields = ['id', 'giver', 'receiver', 'created_at']
        read_only_fields = fields


class ExclusionCreateSerializer(serializers.Serializer):
    giver_id = serializers.UUIDField()
    receiver_id = serializers.UUIDField()
    symmetric = serializers.BooleanField(required=False, default=False)


class EventActivitySerializer(serializers.ModelSerializer):
    actor = UserMinimalSerializer(read_only=True)
    subject = UserMinimalSerializer(read_only=True)

    class Meta:
        model = EventActivity
        fields = ['id', 'kind', 'actor', 'subject', 'payload', 'created_at']
        read_only_fields = fields


class PendingInvitationsSerializer(serializers.Serializer):
    count = serializers.IntegerField(read_only=True)
