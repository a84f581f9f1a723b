"""
Balance aggregation tests.

Tests cover:
- Expenses paid by the primary user and by others
- Settlements and forgiveness in both directions
- Product refunds reducing what is owed
- Totals, category breakdown and monthly income
- Agreement between the primary user's view and everyone's positions
"""

from datetime import datetime, timezone as dt_timezone

import pytest

from apps.analytics.balances import compute_balances, participant_positions, positions_from_balances
from apps.ledger.models import TransactionKind


NOW = datetime(2024, 5, 15, 12, 0, tzinfo=dt_timezone.utc)


@pytest.fixture
def lunch(make_txn):
    return make_txn(amount=10000, splits={'me': 5000, 'alice': 5000}, category='Food')


class TestExpenses:
    """Expenses and who paid them."""

    def test_paid_by_me(self, lunch):
        data = compute_balances([lunch], now=NOW)

        assert data['net_balance'] == {'alice': 5000}
        assert data['net_position'] == 5000
        assert data['total_paid_by_me'] == 10000
        assert data['total_my_share'] == 5000

    def test_paid_by_someone_else(self, make_txn):
        taxi = make_txn(amount=6000, payer='alice', splits={'me': 3000, 'alice': 3000}, category='Travel')

        data = compute_balances([taxi], now=NOW)

        assert data['net_balance'] == {'alice': -3000}
        assert data['paid_by_others'] == 3000
        assert data['total_my_share'] == 3000
        assert data['total_paid_by_me'] == 0

    def test_others_share_between_themselves_ignored(self, make_txn):
        cab = make_txn(amount=4000, payer='alice', splits={'alice': 2000, 'bob': 2000})

        data = compute_balances([cab], now=NOW)

        assert data['net_balance'] == {}

    def test_known_participants_listed_at_zero(self, lunch):
        data = compute_balances([lunch], participants=['me', 'alice', 'bob'], now=NOW)

        assert data['net_balance'] == {'alice': 5000, 'bob': 0}

    def test_deleted_skipped(self, lunch):
        lunch.is_deleted = True

        data = compute_balances([lunch], now=NOW)

        assert data['net_balance'] == {}
        assert data['total_paid_by_me'] == 0


class TestRepayments:
    """Settlements and forgiveness."""

    def test_settlement_received(self, make_txn, lunch):
        paid = make_txn(TransactionKind.SETTLEMENT, amount=5000, payer='alice', participants=['me'])

        data = compute_balances([lunch, paid], now=NOW)

        assert data['net_balance'] == {'alice': 0}
        assert data['total_expenditure'] == 5000

    def test_settlement_paid_by_me(self, make_txn):
        taxi = make_txn(amount=6000, payer='alice', splits={'me': 3000, 'alice': 3000})
        paid = make_txn(TransactionKind.SETTLEMENT, amount=3000, payer='me', participants=['alice'])

        data = compute_balances([taxi, paid], now=NOW)

        assert data['net_balance'] == {'alice': 0}
        assert data['total_paid_by_me'] == 3000

    def test_forgiving_a_debt_owed_to_me(self, make_txn, lunch):
        forgiven = make_txn(TransactionKind.FORGIVENESS, amount=2000, payer='me', participants=['alice'])

        data = compute_balances([lunch, forgiven], now=NOW)

        assert data['net_balance'] == {'alice': 3000}
        assert data['total_paid_by_me'] == 10000

    def test_debt_forgiven_by_someone_else(self, make_txn):
        taxi = make_txn(amount=6000, payer='alice', splits={'me': 3000, 'alice': 3000})
        forgiven = make_txn(TransactionKind.FORGIVENESS, amount=3000, payer='alice', participants=['me'])

        data = compute_balances([taxi, forgiven], now=NOW)

        assert data['net_balance'] == {'alice': 0}

    def test_repayment_between_others_ignored(self, make_txn):
        paid = make_txn(TransactionKind.SETTLEMENT, amount=500, payer='alice', participants=['bob'])

        data = compute_balances([paid], now=NOW)

        assert data['net_balance'] == {}


class TestRefunds:
    """Product refunds carry negative amounts and shares."""

    def test_refund_on_my_expense(self, make_txn, link_to, lunch):
        refund = make_txn(
            TransactionKind.PRODUCT_REFUND, amount=-3000,
            splits={'me': -1500, 'alice': -1500}, links=[link_to(lunch, -3000)], category='Food',
        )

        data = compute_balances([lunch, refund], now=NOW)

        assert data['net_balance'] == {'alice': 3500}
        assert data['total_paid_by_me'] == 7000
        assert data['total_my_share'] == 3500
        assert data['category_totals'] == {'Food': 3500}

    def test_refund_on_someone_elses_expense(self, make_txn, link_to):
        taxi = make_txn(amount=10000, payer='alice', splits={'me': 5000, 'alice': 5000})
        refund = make_txn(
            TransactionKind.PRODUCT_REFUND, amount=-3000, payer='alice',
            splits={'me': -1500, 'alice': -1500}, links=[link_to(taxi, -3000)],
        )

        data = compute_balances([taxi, refund], now=NOW)

        assert data['net_balance'] == {'alice': -3500}
        assert data['paid_by_others'] == 3500


class TestTotals:
    """Category breakdown and income."""

    def test_category_chart_largest_first(self, make_txn, lunch):
        books = make_txn(amount=4000, splits={'me': 4000}, category='Books')
        misc = make_txn(amount=1000, splits={'me': 1000})

        data = compute_balances([lunch, books, misc], now=NOW)

        assert data['category_chart'] == [
            {'label': 'Food', 'value': 5000},
            {'label': 'Books', 'value': 4000},
            {'label': 'Uncategorized', 'value': 1000},
        ]

    def test_monthly_income_current_month_only(self, make_txn):
        may = make_txn(TransactionKind.INCOME, amount=50000, timestamp=datetime(2024, 5, 1, tzinfo=dt_timezone.utc))
        april = make_txn(TransactionKind.INCOME, amount=40000, timestamp=datetime(2024, 4, 30, tzinfo=dt_timezone.utc))

        data = compute_balances([may, april], now=NOW)

        assert data['monthly_income'] == 50000
        assert data['net_balance'] == {}


class TestPositions:
    """Everyone's positions."""

    def test_positions_sum_to_zero(self, make_txn, lunch):
        cab = make_txn(amount=4000, payer='alice', splits={'alice': 2000, 'bob': 2000})
        paid = make_txn(TransactionKind.SETTLEMENT, amount=1000, payer='bob', participants=['alice'])

        positions = participant_positions([lunch, cab, paid])

        assert positions == {'me': 5000, 'alice': -4000, 'bob': -1000}
        assert sum(positions.values()) == 0

    def test_my_view_matches_everyones_positions(self, make_txn, link_to, lunch):
        taxi = make_txn(amount=6000, payer='bob', splits={'me': 3000, 'bob': 3000})
        refund = make_txn(
            TransactionKind.PRODUCT_REFUND, amount=-3000,
            splits={'me': -1500, 'alice': -1500}, links=[link_to(lunch, -3000)],
        )
        transactions = [lunch, taxi, refund]

        balances = compute_balances(transactions, now=NOW)

        assert positions_from_balances(balances['net_balance']) == participant_positions(transactions)
