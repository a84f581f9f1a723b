import itertools
import uuid
from datetime import timedelta

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from apps.ledger.models import Transaction, TransactionKind, SplitMethod, REPAYMENT_KINDS
from apps.spaces.models import Space, Participant


@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


# =============================================================================
# Users
# =============================================================================

@pytest.fixture
def user(db):
    """Create the account that talks to the API."""
    return get_user_model().objects.create_user(
        username='ledger_user',
        email='ledger_user@example.com',
        password='TestPass123!',
    )


@pytest.fixture
def authenticated_client(api_client, user):
    """Return API client authenticated as user."""
    refresh = RefreshToken.for_user(user)
    api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return api_client


# =============================================================================
# Participants & Spaces
# =============================================================================

@pytest.fixture
def me(db):
    """The primary participant (seeded by migration)."""
    participant, _ = Participant.objects.get_or_create(id='me', defaults={'name': 'You'})
    return participant


@pytest.fixture
def alice(db):
    return Participant.objects.create(id='alice', name='Alice')


@pytest.fixture
def bob(db):
    return Participant.objects.create(id='bob', name='Bob')


@pytest.fixture
def carol(db):
    return Participant.objects.create(id='carol', name='Carol')


@pytest.fixture
def personal_space(db):
    """The default space (seeded by migration)."""
    space, _ = Space.objects.get_or_create(id='personal', defaults={'name': 'Personal'})
    return space


@pytest.fixture
def trip_space(db):
    return Space.objects.create(id='trip', name='Trip')


# =============================================================================
# Unsaved transactions
# =============================================================================

@pytest.fixture
def link_to():
    """Return a builder for link entries pointing at a parent."""
    def build(parent, allocated_amount):
        return {'parent_id': str(parent.id), 'allocated_amount': allocated_amount}
    return build


@pytest.fixture
def make_txn():
    """
    Return a factory for unsaved transactions.

    The ledger engine is pure, so these never touch the database. Each
    call gets a timestamp one minute after the previous one.
    """
    clock = itertools.count()
    start = timezone.now() - timedelta(days=1)

    def factory(kind=TransactionKind.EXPENSE, amount=0, payer='me', splits=None,
                participants=None, links=None, **extra):
        splits = dict(splits or {})
        if participants is None:
            participants = [uid for uid in splits if uid != 'me']

        extra.setdefault('name', f"{kind} {amount}")
        extra.setdefault('timestamp', start + timedelta(minutes=next(clock)))
        extra.setdefault(
            'split_method',
            SplitMethod.NONE if kind in REPAYMENT_KINDS or kind == TransactionKind.INCOME
            else SplitMethod.EQUAL
        )

        return Transaction(
            id=uuid.uuid4(),
            space_id='personal',
            kind=kind,
            amount=amount,
            payer_id=payer,
            splits=splits,
            participants=list(participants),
            links=list(links or []),
            **extra,
        )

    return factory
