import random
from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from apps.accounts.models import User
from apps.secret_santa.models import Participant, ParticipantStatus
from apps.secret_santa.services import create_event, draw_names


def client_for(user):
    """Return an API client authenticated as ``user``."""
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client


def make_user(name):
    return User.objects.create_user(
        email=f'{name}@example.com',
        external_id=f'idp|{name}',
        display_name=name.title(),
    )


@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


@pytest.fixture
def rng():
    """Seeded generator so draws are reproducible."""
    return random.Random(20241224)


@pytest.fixture
def organizer(db):
    return make_user('olivia')


@pytest.fixture
def alice(db):
    return make_user('alice')


@pytest.fixture
def bob(db):
    return make_user('bob')


@pytest.fixture
def carol(db):
    return make_user('carol')


@pytest.fixture
def outsider(db):
    """User with no relation to any event."""
    return make_user('oscar')


@pytest.fixture
def organizer_client(organizer):
    return client_for(organizer)


@pytest.fixture
def alice_client(alice):
    return client_for(alice)


@pytest.fixture
def bob_client(bob):
    return client_for(bob)


@pytest.fixture
def outsider_client(outsider):
    return client_for(outsider)


@pytest.fixture
def dates():
    """Draw date one week out, exchange two weeks out."""
    now = timezone.now()
    return now + timedelta(days=7), now + timedelta(days=14)


@pytest.fixture
def event(organizer, alice, bob, dates):
    """PENDING event with alice and bob invited."""
    draw_date, exchange_date = dates
    return create_event(
        organizer=organizer,
        title='Office Party',
        draw_date=draw_date,
        exchange_date=exchange_date,
        budget=Decimal('25.00'),
        participant_ids=[alice.id, bob.id],
    )


def accept(event, *users):
    Participant.objects.filter(event=event, user__in=users).update(
        status=ParticipantStatus.ACCEPTED,
        responded_at=timezone.now(),
    )


@pytest.fixture
def ready_event(event, alice, bob):
    """PENDING event with three accepted participants (organizer, alice, bob)."""
    accept(event, alice, bob)
    return event


@pytest.fixture
def drawn_event(ready_event, organizer, rng):
    """Event with names drawn."""
    return draw_names(event_id=ready_event.id, user=organizer, rng=rng)
