"""
Unit tests for the debt link resolver.

Every test builds an in-memory snapshot of unsaved transactions; nothing
here touches the database.
"""

import pytest

from apps.ledger.models import TransactionKind
from apps.ledger.services import (
    children_of,
    outstanding,
    settlement_remaining,
    net_debt_with,
    describe_parent,
    eligible_parents,
    OWED_TO_ME,
    OWED_BY_ME,
)


@pytest.fixture
def dinner(make_txn):
    """20000 paid by me, split evenly with alice."""
    return make_txn(amount=20000, payer='me', splits={'me': 10000, 'alice': 10000}, name='Dinner')


@pytest.fixture
def partial_settlement(make_txn, link_to, dinner):
    """alice pays 6000 of her 10000 share."""
    return make_txn(
        kind=TransactionKind.SETTLEMENT,
        amount=6000,
        payer='alice',
        participants=['me'],
        links=[link_to(dinner, 6000)],
    )


@pytest.fixture
def overpayment(make_txn, link_to, dinner):
    """alice then pays another 5000 against the same dinner."""
    return make_txn(
        kind=TransactionKind.SETTLEMENT,
        amount=5000,
        payer='alice',
        participants=['me'],
        links=[link_to(dinner, 5000)],
    )


class TestChildrenOf:
    """Tests for children_of()."""

    def test_child_with_repeated_link_counted_once(self, make_txn, link_to, dinner):
        child = make_txn(
            kind=TransactionKind.SETTLEMENT, amount=100, payer='alice', participants=['me'],
            links=[link_to(dinner, 50), link_to(dinner, 50)],
        )

        assert children_of(dinner.id, [dinner, child]) == [child]

    def test_deleted_children_skipped(self, partial_settlement, dinner):
        partial_settlement.is_deleted = True

        assert children_of(dinner.id, [dinner, partial_settlement]) == []

    def test_excluded_record_skipped(self, partial_settlement, dinner):
        snapshot = [dinner, partial_settlement]

        assert children_of(dinner.id, snapshot, exclude_id=partial_settlement.id) == []

    def test_legacy_parent_reference(self, make_txn, dinner):
        legacy = make_txn(
            kind=TransactionKind.SETTLEMENT, amount=100, payer='alice', participants=['me'],
            legacy_parent_id=dinner.id,
        )

        assert children_of(str(dinner.id), [dinner, legacy]) == [legacy]


class TestOutstanding:
    """Tests for outstanding()."""

    def test_split_share_with_no_children(self, dinner):
        assert outstanding(dinner, 'alice', [dinner]) == 10000

    def test_partial_settlement_reduces_debt(self, dinner, partial_settlement):
        assert outstanding(dinner, 'alice', [dinner, partial_settlement]) == 4000

    def test_overpayment_is_a_credit(self, dinner, partial_settlement, overpayment):
        """A negative result is a valid credit and is not clamped."""
        snapshot = [dinner, partial_settlement, overpayment]

        assert outstanding(dinner, 'alice', snapshot) == -1000

    def test_unrelated_debtor_unaffected(self, dinner, partial_settlement):
        assert outstanding(dinner, 'bob', [dinner, partial_settlement]) == 0

    def test_forgiveness_reduces_debt(self, make_txn, link_to, dinner):
        forgiven = make_txn(
            kind=TransactionKind.FORGIVENESS, amount=2500, payer='me', participants=['alice'],
            links=[link_to(dinner, 2500)],
        )

        assert outstanding(dinner, 'alice', [dinner, forgiven]) == 7500

    def test_legacy_settlement_uses_whole_amount(self, make_txn, dinner):
        legacy = make_txn(
            kind=TransactionKind.SETTLEMENT, amount=3000, payer='alice', participants=['me'],
            legacy_parent_id=dinner.id,
        )

        assert outstanding(dinner, 'alice', [dinner, legacy]) == 7000

    def test_product_refund_reduces_by_refund_share(self, make_txn, link_to):
        """A 3000 refund split evenly leaves alice owing 3500 of 5000."""
        lunch = make_txn(amount=10000, payer='me', splits={'me': 5000, 'alice': 5000})
        refund = make_txn(
            kind=TransactionKind.PRODUCT_REFUND, amount=-3000, payer='me',
            splits={'me': -1500, 'alice': -1500}, links=[link_to(lunch, -3000)],
        )

        assert outstanding(lunch, 'alice', [lunch, refund]) == 3500

    def test_repeated_calls_return_same_value(self, dinner, partial_settlement):
        snapshot = [dinner, partial_settlement]

        first = outstanding(dinner, 'alice', snapshot)
        second = outstanding(dinner, 'alice', snapshot)

        assert first == second == 4000


class TestSettlementRemaining:
    """Tests for settlement_remaining()."""

    def test_remaining_after_partial_settlement(self, dinner, partial_settlement):
        assert settlement_remaining(partial_settlement, [dinner, partial_settlement]) == 4000

    def test_credit_reported_negative(self, dinner, partial_settlement, overpayment):
        snapshot = [dinner, partial_settlement, overpayment]

        assert settlement_remaining(overpayment, snapshot) == -1000

    def test_credit_consumed_by_child(self, make_txn, link_to, dinner, partial_settlement, overpayment):
        payback = make_txn(
            kind=TransactionKind.SETTLEMENT, amount=1000, payer='me', participants=['alice'],
            links=[link_to(overpayment, 1000)],
        )
        snapshot = [dinner, partial_settlement, overpayment, payback]

        assert settlement_remaining(overpayment, snapshot) == 0

    def test_partial_consumption(self, make_txn, link_to, dinner, partial_settlement, overpayment):
        payback = make_txn(
            kind=TransactionKind.SETTLEMENT, amount=400, payer='me', participants=['alice'],
            links=[link_to(overpayment, 400)],
        )
        snapshot = [dinner, partial_settlement, overpayment, payback]

        assert settlement_remaining(overpayment, snapshot) == -600

    def test_consumption_never_exceeds_credit(self, make_txn, link_to, dinner, partial_settlement, overpayment):
        """Spending more than the credit stops at zero."""
        payback = make_txn(
            kind=TransactionKind.SETTLEMENT, amount=1500, payer='me', participants=['alice'],
            links=[link_to(overpayment, 1500)],
        )
        snapshot = [dinner, partial_settlement, overpayment, payback]

        remaining = settlement_remaining(overpayment, snapshot)

        assert remaining == 0
        assert abs(remaining) <= 1000

    def test_credit_shared_by_sibling_settlements(self, make_txn, link_to, dinner, partial_settlement, overpayment):
        """Paying back the credit through one settlement clears it on the other too."""
        payback = make_txn(
            kind=TransactionKind.SETTLEMENT, amount=1000, payer='me', participants=['alice'],
            links=[link_to(overpayment, 1000)],
        )
        snapshot = [dinner, partial_settlement, overpayment, payback]

        assert settlement_remaining(partial_settlement, snapshot) == 0
        assert settlement_remaining(overpayment, snapshot) == 0

    def test_other_counterpart_not_a_sibling(self, make_txn, link_to):
        trip = make_txn(amount=30000, payer='me', splits={'me': 10000, 'alice': 10000, 'bob': 10000})
        alice_paid = make_txn(
            kind=TransactionKind.SETTLEMENT, amount=11000, payer='alice', participants=['me'],
            links=[link_to(trip, 11000)],
        )
        bob_paid = make_txn(
            kind=TransactionKind.SETTLEMENT, amount=12000, payer='bob', participants=['me'],
            links=[link_to(trip, 12000)],
        )
        payback = make_txn(
            kind=TransactionKind.SETTLEMENT, amount=2000, payer='me', participants=['bob'],
            links=[link_to(bob_paid, 2000)],
        )
        snapshot = [trip, alice_paid, bob_paid, payback]

        assert settlement_remaining(alice_paid, snapshot) == -1000
        assert settlement_remaining(bob_paid, snapshot) == 0

    def test_missing_parent_contributes_zero(self, make_txn):
        orphan = make_txn(
            kind=TransactionKind.SETTLEMENT, amount=500, payer='alice', participants=['me'],
            links=[{'parent_id': '00000000-0000-0000-0000-000000000001', 'allocated_amount': 500}],
        )

        assert settlement_remaining(orphan, [orphan]) == 0


class TestNetDebtWith:
    """Tests for net_debt_with()."""

    def test_they_owe_me_is_negative(self, dinner, partial_settlement):
        assert net_debt_with('alice', [dinner, partial_settlement]) == -4000

    def test_i_owe_them_is_positive(self, make_txn):
        taxi = make_txn(amount=6000, payer='alice', splits={'me': 3000, 'alice': 3000})

        assert net_debt_with('alice', [taxi]) == 3000

    def test_primary_user_is_zero(self, dinner):
        assert net_debt_with('me', [dinner]) == 0


class TestDescribeParent:
    """Tests for describe_parent()."""

    def test_expense_paid_by_me(self, dinner):
        candidate = describe_parent(dinner, [dinner])

        assert candidate.counterpart == 'alice'
        assert candidate.relation == OWED_TO_ME
        assert candidate.outstanding == 10000

    def test_expense_paid_by_other(self, make_txn):
        taxi = make_txn(amount=6000, payer='alice', splits={'me': 3000, 'alice': 3000})

        candidate = describe_parent(taxi, [taxi])

        assert candidate.counterpart == 'alice'
        assert candidate.relation == OWED_BY_ME
        assert candidate.outstanding == 3000

    def test_settlement_is_continuation(self, dinner, partial_settlement):
        candidate = describe_parent(partial_settlement, [dinner, partial_settlement])

        assert candidate.is_continuation
        assert candidate.counterpart == 'alice'
        assert candidate.outstanding == 4000

    def test_expense_without_debtors(self, make_txn):
        solo = make_txn(amount=500, payer='me', splits={'me': 500})

        assert describe_parent(solo, [solo]) is None


class TestEligibleParents:
    """Tests for eligible_parents()."""

    def test_open_debt_listed(self, dinner):
        candidates = eligible_parents(TransactionKind.SETTLEMENT, [dinner])

        assert [c.parent_id for c in candidates] == [str(dinner.id)]

    def test_settled_debt_hidden(self, make_txn, link_to, dinner):
        paid = make_txn(
            kind=TransactionKind.SETTLEMENT, amount=10000, payer='alice', participants=['me'],
            links=[link_to(dinner, 10000)],
        )

        assert eligible_parents(TransactionKind.SETTLEMENT, [dinner, paid]) == []

    def test_within_tolerance_hidden(self, make_txn, link_to, dinner):
        nearly = make_txn(
            kind=TransactionKind.SETTLEMENT, amount=9999, payer='alice', participants=['me'],
            links=[link_to(dinner, 9999)],
        )

        assert eligible_parents(TransactionKind.SETTLEMENT, [dinner, nearly]) == []

    def test_covered_parent_replaced_by_continuation(self, dinner, partial_settlement):
        candidates = eligible_parents(TransactionKind.SETTLEMENT, [dinner, partial_settlement])

        assert len(candidates) == 1
        assert candidates[0].parent_id == str(partial_settlement.id)
        assert candidates[0].is_continuation

    def test_counterpart_filter(self, make_txn, dinner):
        taxi = make_txn(amount=6000, payer='bob', splits={'me': 3000, 'bob': 3000})

        candidates = eligible_parents(TransactionKind.SETTLEMENT, [dinner, taxi], counterpart='bob')

        assert [c.parent_id for c in candidates] == [str(taxi.id)]

    def test_already_linked_excluded(self, dinner):
        candidates = eligible_parents(TransactionKind.SETTLEMENT, [dinner], exclude_ids=[dinner.id])

        assert candidates == []

    def test_newest_first(self, make_txn, dinner):
        later = make_txn(amount=4000, payer='me', splits={'me': 2000, 'alice': 2000})

        candidates = eligible_parents(TransactionKind.SETTLEMENT, [dinner, later])

        assert [c.parent_id for c in candidates] == [str(later.id), str(dinner.id)]

    def test_consumed_credit_hidden_on_every_sibling(self, make_txn, link_to, dinner, partial_settlement,
                                                     overpayment):
        payback = make_txn(
            kind=TransactionKind.SETTLEMENT, amount=1000, payer='me', participants=['alice'],
            links=[link_to(overpayment, 1000)],
        )
        snapshot = [dinner, partial_settlement, overpayment, payback]

        assert eligible_parents(TransactionKind.SETTLEMENT, snapshot) == []

    def test_refund_lists_refundable_expenses(self, make_txn, dinner):
        refunded = make_txn(amount=3000, payer='me', splits={'me': 3000}, cached_net_amount=0)

        candidates = eligible_parents(TransactionKind.PRODUCT_REFUND, [dinner, refunded])

        assert [c.parent_id for c in candidates] == [str(dinner.id)]
        assert candidates[0].outstanding == 20000
