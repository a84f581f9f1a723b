import pytest

from apps.ledger.models import TransactionKind, SplitMethod
from apps.ledger.services import create_transaction


@pytest.fixture
def save_txn(personal_space, me, alice, bob):
    """Return a factory that writes transactions through the store."""
    def factory(space=None, **fields):
        fields.setdefault('kind', TransactionKind.EXPENSE)
        fields.setdefault('name', f"{fields['kind']} {fields.get('amount', 0)}")
        fields.setdefault('payer', 'me')
        if fields['kind'] in (TransactionKind.SETTLEMENT, TransactionKind.FORGIVENESS):
            fields.setdefault('split_method', SplitMethod.NONE)
        return create_transaction(space=space or personal_space, fields=fields)
    return factory


@pytest.fixture
def lunch(save_txn):
    """10000 paid by me, split evenly with alice."""
    return save_txn(
        name='Lunch',
        amount=10000,
        splits={'me': 5000, 'alice': 5000},
        participants=['alice'],
        category='Food',
        payment_mode='Card',
    )


@pytest.fixture
def lunch_refund(save_txn, lunch):
    """3000 of the lunch refunded, split evenly."""
    return save_txn(
        kind=TransactionKind.PRODUCT_REFUND,
        name='Refund: Lunch',
        amount=-3000,
        splits={'me': -1500, 'alice': -1500},
        participants=['alice'],
        links=[{'parent_id': str(lunch.id), 'allocated_amount': -3000}],
    )
