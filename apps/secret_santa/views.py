from rest_framework import viewsets, status
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.pagination import PageNumberPagination
from drf_spectacular.utils import extend_schema

from .serializers import (
    AssignmentSerializer,
    EventActivitySerializer,
    EventCreateSerializer,
    EventListSerializer,
    EventSerializer,
    EventUpdateSerializer,
    ExclusionCreateSerializer,
    ExclusionRuleSerializer,
    InviteSerializer,
    ParticipantSerializer,
    PendingInvitationsSerializer,
    ProgressSerializer,
    RevealSerializer,
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
    # Exceptions
    SecretSantaServiceError,
    SecretSantaNotFoundError,
    ForbiddenError,
)


def service_error_response(error: SecretSantaServiceError) -> Response:
    """Convert a domain exception to an HTTP error response."""
    if isinstance(error, SecretSantaNotFoundError):
        http_status = status.HTTP_404_NOT_FOUND
    elif isinstance(error, ForbiddenError):
        http_status = status.HTTP_403_FORBIDDEN
    else:
        http_status = status.HTTP_400_BAD_REQUEST
    return Response({'error': str(error), 'code': error.code}, status=http_status)


class EventPagination(PageNumberPagination):
    """Custom pagination for events."""
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


class EventViewSet(viewsets.ModelViewSet):
    """
    ViewSet for Secret Santa events.

    All business logic is handled by services.
    Views are thin HTTP handlers only.

    list: Events the user organizes or participates in
    create: Create an event (caller becomes organizer)
    retrieve: Event details (organizer or participant)
    partial_update: Update event details (organizer, before the draw)
    destroy: Delete the event (organizer)
    """

    serializer_class = EventSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = EventPagination
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']

    def get_queryset(self):
        """Return only events the user organizes or participates in."""
        return list_events_for_user(user=self.request.user)

    def get_serializer_class(self):
        """Use different serializers for different actions."""
        if self.action == 'list':
            return EventListSerializer
        elif self.action == 'create':
            return EventCreateSerializer
        elif self.action == 'partial_update':
            return EventUpdateSerializer
        return EventSerializer

    def _event_response(self, event, http_status=status.HTTP_200_OK):
        event = get_event(event_id=event.id, user=self.request.user)
        serializer = EventSerializer(event, context={'request': self.request})
        return Response(serializer.data, status=http_status)

    def create(self, request, *args, **kwargs):
        """Create a new event."""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            event = create_event(
                organizer=request.user,
                title=data['title'],
                draw_date=data['draw_date'],
                exchange_date=data['exchange_date'],
                budget=data.get('budget'),
                currency=data.get('currency'),
                participant_ids=data.get('participant_ids', []),
            )
        except SecretSantaServiceError as e:
            return service_error_response(e)

        return self._event_response(event, status.HTTP_201_CREATED)

    def retrieve(self, request, *args, **kwargs):
        """Get event details."""
        try:
            event = get_event(event_id=self.kwargs['pk'], user=request.user)
        except SecretSantaServiceError as e:
            return service_error_response(e)

        serializer = EventSerializer(event, context={'request': request})
        return Response(serializer.data)

    def partial_update(self, request, *args, **kwargs):
        """Update event details (organizer only)."""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            event = update_event(
                event_id=self.kwargs['pk'],
                user=request.user,
                title=data.get('title'),
                draw_date=data.get('draw_date'),
                exchange_date=data.get('exchange_date'),
                budget=data.get('budget'),
                currency=data.get('currency'),
                clear_budget='budget' in data and data['budget'] is None,
            )
        except SecretSantaServiceError as e:
            return service_error_response(e)

        return self._event_response(event)

    def destroy(self, request, *args, **kwargs):
        """Delete an event."""
        try:
            delete_event(event_id=self.kwargs['pk'], user=request.user)
            return Response(status=status.HTTP_204_NO_CONTENT)
        except SecretSantaServiceError as e:
            return service_error_response(e)

    # --- Participants ---

    @action(detail=True, methods=['get'])
    def participants(self, request, pk=None):
        """Get the event's roster."""
        try:
            roster = get_participants(event_id=pk, user=request.user)
        except SecretSantaServiceError as e:
            return service_error_response(e)

        serializer = ParticipantSerializer(roster, many=True)
        return Response(serializer.data)

    @action(detail=True, methods=['post'])
    def invite(self, request, pk=None):
        """Invite a user (organizer only)."""
        serializer = InviteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            participant = invite_participant(
                event_id=pk,
                user=request.user,
                invitee_id=serializer.validated_data['user_id'],
            )
        except SecretSantaServiceError as e:
            return service_error_response(e)

        output_serializer = ParticipantSerializer(participant)
        return Response(output_serializer.data, status=status.HTTP_201_CREATED)

    def _respond(self, request, pk, accept):
        try:
            result = respond_to_invitation(event_id=pk, user=request.user, accept=accept)
        except SecretSantaServiceError as e:
            return service_error_response(e)

        data = ParticipantSerializer(result.participant).data
        data['changed'] = result.changed
        return Response(data)

    @action(detail=True, methods=['post'])
    def accept(self, request, pk=None):
        """Accept the caller's invitation."""
        return self._respond(request, pk, accept=True)

    @action(detail=True, methods=['post'])
    def decline(self, request, pk=None):
        """Decline the caller's invitation."""
        return self._respond(request, pk, accept=False)

    @action(
        detail=True,
        methods=['delete'],
        url_path=r'participants/(?P<user_id>[^/.]+)',
        url_name='remove-participant',
    )
    def delete_participant(self, request, pk=None, user_id=None):
        """Remove a participant (organizer only)."""
        try:
            remove_participant(event_id=pk, user=request.user, participant_user_id=user_id)
            return Response(status=status.HTTP_204_NO_CONTENT)
        except SecretSantaServiceError as e:
            return service_error_response(e)

    # --- Draw ---

    @action(detail=True, methods=['post'])
    def draw(self, request, pk=None):
        """Draw names (organizer only, once)."""
        try:
            event = draw_names(event_id=pk, user=request.user)
        except SecretSantaServiceError as e:
            return service_error_response(e)

        return self._event_response(event)

    @action(detail=True, methods=['post'])
    def redraw(self, request, pk=None):
        """Replace the draw before anyone revealed (organizer only)."""
        try:
            event = redraw_names(event_id=pk, user=request.user)
        except SecretSantaServiceError as e:
            return service_error_response(e)

        return self._event_response(event)

    # --- Assignment ---

    @action(detail=True, methods=['get'])
    def assignment(self, request, pk=None):
        """Get the caller's own assignment; receiver hidden until revealed."""
        try:
            assignment = get_my_assignment(event_id=pk, user=request.user)
        except SecretSantaServiceError as e:
            return service_error_response(e)

        if assignment is None:
            return Response({'assignment': None})
        return Response({'assignment': AssignmentSerializer(assignment).data})

    @action(detail=True, methods=['post'], url_path='assignment/reveal', url_name='reveal')
    def reveal(self, request, pk=None):
        """Reveal the caller's receiver."""
        try:
            result = reveal_assignment(event_id=pk, user=request.user)
        except SecretSantaServiceError as e:
            return service_error_response(e)

        return Response(RevealSerializer(result).data)

    @action(detail=True, methods=['post'], url_path='assignment/done', url_name='gift-done')
    def gift_done(self, request, pk=None):
        """Mark the caller's gift as done."""
        try:
            assignment = mark_gift_done(event_id=pk, user=request.user)
        except SecretSantaServiceError as e:
            return service_error_response(e)

        return Response(AssignmentSerializer(assignment).data)

    # --- Completion ---

    @action(detail=True, methods=['get'])
    def progress(self, request, pk=None):
        """Aggregate reveal and gift counts."""
        try:
            progress = get_progress(event_id=pk, user=request.user)
        except SecretSantaServiceError as e:
            return service_error_response(e)

        return Response(ProgressSerializer(progress).data)

    @action(detail=True, methods=['post'])
    def complete(self, request, pk=None):
        """Mark the event as completed (organizer only)."""
        try:
            event = mark_complete(event_id=pk, user=request.user)
        except SecretSantaServiceError as e:
            return service_error_response(e)

        return self._event_response(event)

    # --- Exclusions ---

    @action(detail=True, methods=['get', 'post'])
    def exclusions(self, request, pk=None):
        """List or add exclusion rules (organizer only)."""
        if request.method == 'GET':
            try:
                rules = list_exclusions(event_id=pk, user=request.user)
            except SecretSantaServiceError as e:
                return service_error_response(e)
            return Response(ExclusionRuleSerializer(rules, many=True).data)

        serializer = ExclusionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            rules = add_exclusion(
                event_id=pk,
                user=request.user,
                giver_id=serializer.validated_data['giver_id'],
                receiver_id=serializer.validated_data['receiver_id'],
                symmetric=serializer.validated_data['symmetric'],
            )
        except SecretSantaServiceError as e:
            return service_error_response(e)

        return Response(
            ExclusionRuleSerializer(rules, many=True).data,
            status=status.HTTP_201_CREATED,
        )

    @action(
        detail=True,
        methods=['delete'],
        url_path=r'exclusions/(?P<exclusion_id>[^/.]+)',
        url_name='remove-exclusion',
    )
    def delete_exclusion(self, request, pk=None, exclusion_id=None):
        """Delete an exclusion rule (organizer only)."""
        try:
            remove_exclusion(event_id=pk, user=request.user, exclusion_id=exclusion_id)
            return Response(status=status.HTTP_204_NO_CONTENT)
        except SecretSantaServiceError as e:
            return service_error_response(e)

    # --- Activity ---

    @action(detail=True, methods=['get'])
    def activity(self, request, pk=None):
        """Event activity log, oldest first."""
        try:
            entries = get_event_activity(event_id=pk, user=request.user)
        except SecretSantaServiceError as e:
            return service_error_response(e)

        return Response(EventActivitySerializer(entries, many=True).data)


@extend_schema(
    responses={200: PendingInvitationsSerializer},
    description="Number of invitations the current user has not answered yet.",
    tags=['secret-santa'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def pending_invitations_count(request):
    """Get the number of open invitations of the current user."""
    count = get_pending_invitations_count(user=request.user)
    return Response({'count': count})
