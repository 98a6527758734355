from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

app_name = 'secret_santa'

# Router for ViewSets
router = DefaultRouter()
router.register(r'events', views.EventViewSet, basename='event')

urlpatterns = [
    # Event ViewSet routes
    # GET    /api/secret-santa/events/              - List user's events
    # POST   /api/secret-santa/events/              - Create event
    # GET    /api/secret-santa/events/{id}/         - Event details
    # PATCH  /api/secret-santa/events/{id}/         - Update event (organizer)
    # DELETE /api/secret-santa/events/{id}/         - Delete event (organizer)

    # Custom event actions
    # GET    /api/secret-santa/events/{id}/participants/             - Roster
    # DELETE /api/secret-santa/events/{id}/participants/{user_id}/   - Remove participant (organizer)
    # POST   /api/secret-santa/events/{id}/invite/                   - Invite user (organizer)
    # POST   /api/secret-santa/events/{id}/accept/                   - Accept invitation
    # POST   /api/secret-santa/events/{id}/decline/                  - Decline invitation
    # POST   /api/secret-santa/events/{id}/draw/                     - Draw names (organizer)
    # POST   /api/secret-santa/events/{id}/redraw/                   - Redraw names (organizer)
    # GET    /api/secret-santa/events/{id}/assignment/               - My assignment
    # POST   /api/secret-santa/events/{id}/assignment/reveal/        - Reveal my receiver
    # POST   /api/secret-santa/events/{id}/assignment/done/          - Mark my gift done
    # GET    /api/secret-santa/events/{id}/progress/                 - Progress counts
    # POST   /api/secret-santa/events/{id}/complete/                 - Complete event (organizer)
    # GET    /api/secret-santa/events/{id}/exclusions/               - List exclusions (organizer)
    # POST   /api/secret-santa/events/{id}/exclusions/               - Add exclusion (organizer)
    # DELETE /api/secret-santa/events/{id}/exclusions/{rule_id}/     - Remove exclusion (organizer)
    # GET    /api/secret-santa/events/{id}/activity/                 - Activity log

    # Additional endpoints
    path(
        'invitations/pending/count/',
        views.pending_invitations_count,
        name='pending-invitations-count',
    ),

    # Include router URLs
    path('', include(router.urls)),
]
