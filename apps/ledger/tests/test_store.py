"""
Store adapter tests.

Tests cover:
- Validation before any write
- Cached parent summaries kept in step with refunds
- Soft delete, restore and moves between spaces
- Drift detection and repair
"""

import logging
import uuid
from io import StringIO

import pytest
from django.core.management import call_command

from apps.ledger.models import Transaction, TransactionLink, TransactionKind
from apps.ledger.services import (
    get_transaction_by_id,
    load_snapshot,
    load_transactions_by_ids,
    query_by_parent,
    update_transaction,
    delete_transaction,
    restore_transaction,
    move_transaction_to_space,
    recompute_parent_summary,
    repair_parent_summaries,
    find_unresolved_parents,
    LedgerValidationError,
    SplitValidationError,
    TransactionNotFoundError,
    ActiveChildrenError,
)


def refresh(txn):
    txn.refresh_from_db()
    return txn


@pytest.mark.django_db
class TestCreateTransaction:
    """Tests for create_transaction()."""

    def test_create_expense(self, lunch):
        saved = Transaction.objects.get(id=lunch.id)

        assert saved.amount == 10000
        assert saved.payer_id == 'me'
        assert saved.space_id == 'personal'
        assert saved.cached_net_amount is None

    def test_refund_updates_parent_summary(self, lunch, lunch_refund):
        lunch = refresh(lunch)

        assert lunch.cached_net_amount == 7000
        assert lunch.cached_has_refunds is True
        assert lunch.last_refund_at == lunch_refund.timestamp

    def test_link_index_written(self, lunch, lunch_refund):
        rows = TransactionLink.objects.filter(child=lunch_refund)

        assert rows.count() == 1
        assert rows.first().parent_id == lunch.id
        assert rows.first().allocated_amount == -3000

    def test_positive_refund_rejected(self, save_txn, lunch):
        count = Transaction.objects.count()

        with pytest.raises(LedgerValidationError) as exc_info:
            save_txn(
                kind=TransactionKind.PRODUCT_REFUND,
                amount=3000,
                splits={'me': 1500, 'alice': 1500},
                links=[{'parent_id': str(lunch.id), 'allocated_amount': 3000}],
            )

        assert exc_info.value.field == 'amount'
        assert Transaction.objects.count() == count

    def test_negative_expense_rejected(self, save_txn):
        with pytest.raises(LedgerValidationError):
            save_txn(amount=-100, splits={'me': -100})

    def test_unknown_payer_rejected(self, save_txn):
        with pytest.raises(LedgerValidationError) as exc_info:
            save_txn(amount=100, payer='nobody', splits={'me': 100})

        assert exc_info.value.field == 'payer'

    def test_split_mismatch_rejected(self, save_txn):
        with pytest.raises(SplitValidationError):
            save_txn(amount=10000, splits={'me': 5000, 'alice': 4000})

    def test_missing_splits_rejected(self, save_txn):
        count = Transaction.objects.count()

        with pytest.raises(SplitValidationError):
            save_txn(amount=10000, split_method='equal', splits={}, participants=['alice'])

        assert Transaction.objects.count() == count

    def test_settlement_needs_one_counterpart(self, save_txn):
        with pytest.raises(LedgerValidationError) as exc_info:
            save_txn(kind=TransactionKind.SETTLEMENT, amount=100, payer='alice', participants=['me', 'bob'])

        assert exc_info.value.field == 'participants'

    def test_malformed_link_rejected(self, save_txn):
        with pytest.raises(LedgerValidationError) as exc_info:
            save_txn(
                kind=TransactionKind.SETTLEMENT, amount=100, payer='alice', participants=['me'],
                links=[{'parent_id': 'not-a-uuid', 'allocated_amount': 100}],
            )

        assert exc_info.value.field == 'links'

    def test_unknown_field_rejected(self, save_txn):
        with pytest.raises(LedgerValidationError):
            save_txn(amount=100, splits={'me': 100}, cached_net_amount=5)

    def test_missing_parent_saved_and_logged(self, save_txn, caplog):
        missing = str(uuid.uuid4())

        with caplog.at_level(logging.WARNING, logger='apps.ledger.services.store'):
            txn = save_txn(
                kind=TransactionKind.SETTLEMENT, amount=100, payer='alice', participants=['me'],
                links=[{'parent_id': missing, 'allocated_amount': 100}],
            )

        assert Transaction.objects.filter(id=txn.id).exists()
        assert missing in caplog.text
        assert [e.parent_id for e in find_unresolved_parents(txn)] == [missing]


@pytest.mark.django_db
class TestUpdateTransaction:
    """Tests for update_transaction()."""

    def test_update_keeps_id(self, lunch):
        updated = update_transaction(transaction_id=lunch.id, fields={'name': 'Brunch'})

        assert updated.id == lunch.id
        assert refresh(lunch).name == 'Brunch'

    def test_moving_refund_recomputes_both_parents(self, save_txn, lunch, lunch_refund):
        dinner = save_txn(name='Dinner', amount=8000, splits={'me': 4000, 'alice': 4000})

        update_transaction(
            transaction_id=lunch_refund.id,
            fields={'links': [{'parent_id': str(dinner.id), 'allocated_amount': -3000}]},
        )

        assert refresh(lunch).cached_net_amount == 10000
        assert refresh(lunch).cached_has_refunds is False
        assert refresh(dinner).cached_net_amount == 5000

    def test_parent_amount_change_refreshes_own_summary(self, lunch, lunch_refund):
        update_transaction(
            transaction_id=lunch.id,
            fields={'amount': 12000, 'splits': {'me': 6000, 'alice': 6000}},
        )

        assert refresh(lunch).cached_net_amount == 9000

    def test_self_link_rejected(self, lunch):
        with pytest.raises(LedgerValidationError):
            update_transaction(
                transaction_id=lunch.id,
                fields={'links': [{'parent_id': str(lunch.id), 'allocated_amount': 1}]},
            )

    def test_unknown_transaction(self):
        with pytest.raises(TransactionNotFoundError):
            update_transaction(transaction_id=uuid.uuid4(), fields={'name': 'x'})


@pytest.mark.django_db
class TestDeleteRestore:
    """Tests for delete_transaction() and restore_transaction()."""

    def test_parent_with_active_child_refused(self, lunch, lunch_refund):
        with pytest.raises(ActiveChildrenError):
            delete_transaction(transaction_id=lunch.id)

        assert refresh(lunch).is_deleted is False

    def test_deleting_refund_restores_parent_net(self, lunch, lunch_refund):
        delete_transaction(transaction_id=lunch_refund.id)

        assert refresh(lunch_refund).is_deleted is True
        assert refresh(lunch_refund).deleted_at is not None
        assert refresh(lunch).cached_net_amount == 10000

    def test_parent_deletable_once_children_gone(self, lunch, lunch_refund):
        delete_transaction(transaction_id=lunch_refund.id)
        delete_transaction(transaction_id=lunch.id)

        assert refresh(lunch).is_deleted is True

    def test_delete_is_idempotent(self, lunch):
        first = delete_transaction(transaction_id=lunch.id)
        second = delete_transaction(transaction_id=lunch.id)

        assert first.deleted_at == second.deleted_at

    def test_deleted_records_left_out_of_snapshot(self, lunch, lunch_refund):
        delete_transaction(transaction_id=lunch_refund.id)

        assert [t.id for t in load_snapshot()] == [lunch.id]

    def test_restore(self, lunch, lunch_refund):
        delete_transaction(transaction_id=lunch_refund.id)

        restore_transaction(transaction_id=lunch_refund.id)

        assert refresh(lunch_refund).is_deleted is False
        assert refresh(lunch).cached_net_amount == 7000


@pytest.mark.django_db
class TestQueries:
    """Tests for lookups."""

    def test_malformed_id_not_found(self):
        with pytest.raises(TransactionNotFoundError):
            get_transaction_by_id(transaction_id='nope')

    def test_load_by_ids_spans_spaces_and_deleted(self, save_txn, lunch, trip_space):
        other = save_txn(space=trip_space, name='Hotel', amount=500, splits={'me': 500})
        delete_transaction(transaction_id=other.id)

        found = load_transactions_by_ids([str(lunch.id), other.id, 'nope', str(uuid.uuid4())])

        assert {t.id for t in found} == {lunch.id, other.id}

    def test_query_by_parent_includes_legacy_reference(self, save_txn, lunch, lunch_refund):
        legacy = save_txn(
            kind=TransactionKind.SETTLEMENT, amount=500, payer='alice', participants=['me'],
            legacy_parent_id=str(lunch.id),
        )

        children = set(query_by_parent(lunch.id).values_list('id', flat=True))

        assert children == {lunch_refund.id, legacy.id}

    def test_move_takes_children_along(self, lunch, lunch_refund, trip_space):
        move_transaction_to_space(transaction_id=lunch.id, space=trip_space)

        assert refresh(lunch).space_id == 'trip'
        assert refresh(lunch_refund).space_id == 'trip'


@pytest.mark.django_db
class TestSummaryRepair:
    """Tests for drift detection and repair."""

    def test_recompute_missing_parent_skipped(self):
        assert recompute_parent_summary(uuid.uuid4()) is None

    def test_drift_detected_and_fixed(self, lunch, lunch_refund):
        Transaction.objects.filter(id=lunch.id).update(cached_net_amount=1)

        drifts = repair_parent_summaries()

        assert [(d.transaction_id, d.stored, d.expected) for d in drifts] == [(str(lunch.id), 1, 7000)]
        assert refresh(lunch).cached_net_amount == 7000

    def test_dry_run_changes_nothing(self, lunch, lunch_refund):
        Transaction.objects.filter(id=lunch.id).update(cached_net_amount=1)

        drifts = repair_parent_summaries(dry_run=True)

        assert len(drifts) == 1
        assert refresh(lunch).cached_net_amount == 1

    def test_command_dry_run(self, lunch, lunch_refund):
        Transaction.objects.filter(id=lunch.id).update(cached_net_amount=1)
        out = StringIO()

        call_command('recompute_parent_summaries', '--dry-run', stdout=out)

        assert str(lunch.id) in out.getvalue()
        assert 'No changes made' in out.getvalue()
        assert refresh(lunch).cached_net_amount == 1

    def test_command_fixes(self, lunch, lunch_refund):
        Transaction.objects.filter(id=lunch.id).update(cached_net_amount=1)
        out = StringIO()

        call_command('recompute_parent_summaries', '--space', 'personal', stdout=out)

        assert 'Successfully fixed 1' in out.getvalue()
        assert refresh(lunch).cached_net_amount == 7000

    def test_command_clean_ledger(self, lunch):
        out = StringIO()

        call_command('recompute_parent_summaries', stdout=out)

        assert 'All good' in out.getvalue()
