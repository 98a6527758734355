# ==========================================
# apps/secret_santa/admin.py
# ==========================================

from django.contrib import admin
from apps.secret_santa.models import Event, EventActivity, ExclusionRule, Participant, Assignment


class ReadOnlyInline(admin.TabularInline):
    """Event children change only through the services, which check the event status."""
    extra = 0
    can_delete = False

    def get_readonly_fields(self, request, obj=None):
        return self.fields

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class ParticipantInline(ReadOnlyInline):
    """Inline admin for the event roster."""
    model = Participant
    fields = ['user', 'status', 'is_organizer', 'invited_at', 'responded_at']


class AssignmentInline(ReadOnlyInline):
    """Draw progress per giver. Receivers are not shown."""
    model = Assignment
    fields = ['giver', 'revealed', 'revealed_at', 'gift_done', 'gift_done_at']


class ExclusionRuleInline(ReadOnlyInline):
    model = ExclusionRule
    fields = ['giver', 'receiver', 'created_at']


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    """Admin interface for Secret Santa events."""

    list_display = [
        'title',
        'organizer',
        'status',
        'participant_count',
        'draw_date',
        'exchange_date',
        'created_at',
    ]
    list_filter = ['status', 'created_at']
    search_fields = ['title', 'organizer__email']
    # Status only moves through the service layer
    readonly_fields = ['status', 'created_at', 'updated_at']
    inlines = [ParticipantInline, ExclusionRuleInline, AssignmentInline]
    date_hierarchy = 'created_at'
    ordering = ['-created_at']

    fieldsets = (
        ('Basic Information', {
            'fields': ('title', 'organizer', 'status')
        }),
        ('Dates', {
            'fields': ('draw_date', 'exchange_date')
        }),
        ('Budget', {
            'fields': ('budget', 'currency')
        }),
        ('Metadata', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def participant_count(self, obj):
        """Show number of participants."""
        return obj.participants.count()
    participant_count.short_description = 'Participants'


@admin.register(EventActivity)
class EventActivityAdmin(admin.ModelAdmin):
    """Read-only view of the activity log."""

    list_display = ['kind', 'event', 'actor', 'subject', 'created_at']
    list_filter = ['kind', 'created_at']
    search_fields = ['event__title', 'actor__email']
    readonly_fields = ['event', 'kind', 'actor', 'subject', 'payload', 'created_at']
    date_hierarchy = 'created_at'
    ordering = ['-created_at']

    def has_add_permission(self, request):
        return False

    def get_queryset(self, request):
        """Optimize query."""
        qs = super().get_queryset(request)
        return qs.select_related('event', 'actor', 'subject')
