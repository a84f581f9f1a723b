import pytest

from apps.ledger.models import TransactionKind, SplitMethod
from apps.ledger.services import create_transaction


@pytest.fixture
def record(personal_space, me, alice, bob):
    """Return a factory that saves a transaction in the personal space."""
    def factory(**fields):
        fields.setdefault('kind', TransactionKind.EXPENSE)
        fields.setdefault('name', f"{fields['kind']} {fields.get('amount', 0)}")
        fields.setdefault('payer', 'me')
        if fields['kind'] in (TransactionKind.SETTLEMENT, TransactionKind.FORGIVENESS):
            fields.setdefault('split_method', SplitMethod.NONE)
        return create_transaction(space=personal_space, fields=fields)
    return factory


@pytest.fixture
def group_dinner(record):
    """9000 paid by me, split three ways with alice and bob."""
    return record(
        name='Group dinner',
        amount=9000,
        splits={'me': 3000, 'alice': 3000, 'bob': 3000},
        participants=['alice', 'bob'],
        category='Food',
        payment_mode='Card',
    )
