"""
Transaction store adapter.

Every write to a transaction goes through this module. Besides persisting
the record it keeps two derived structures in step with it:

- the ``TransactionLink`` index used to answer "which records link to X"
- the cached net summary on every parent the record links to

Validation always happens before the first write; a record that fails it
is never partially saved. Links to parents that cannot be found are not an
error: the record is saved and the dangling reference is logged.
"""

import logging
import uuid
from typing import Dict, List, Optional

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from apps.ledger.models import (
    Transaction,
    TransactionLink,
    TransactionKind,
    SUMMARY_KINDS,
)
from apps.spaces.models import Participant

from .exceptions import (
    LedgerValidationError,
    UnresolvedParentError,
    TransactionNotFoundError,
    ActiveChildrenError,
    ConsistencyWarning,
)
from .splits import ensure_split_sum


logger = logging.getLogger(__name__)


WRITABLE_FIELDS = (
    'kind',
    'name',
    'amount',
    'payer',
    'split_method',
    'splits',
    'participants',
    'links',
    'legacy_parent_id',
    'category',
    'payment_mode',
    'description',
    'timestamp',
)


def _coerce_uuid(value) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


# ==========================================
# Reads
# ==========================================

def get_transaction_by_id(*, transaction_id, for_update: bool = False) -> Transaction:
    """
    Get a transaction by id (deleted ones included).

    Raises:
        TransactionNotFoundError: If the id is malformed or unknown
    """
    pk = _coerce_uuid(transaction_id)
    if pk is None:
        raise TransactionNotFoundError(f"Transaction {transaction_id} not found")

    queryset = Transaction.objects.all()
    if for_update:
        queryset = queryset.select_for_update()

    try:
        return queryset.get(id=pk)
    except Transaction.DoesNotExist:
        raise TransactionNotFoundError(f"Transaction {transaction_id} not found")


def list_transactions(
    *,
    space=None,
    kind: Optional[str] = None,
    date_from=None,
    date_to=None,
    include_deleted: bool = False
):
    """Return transactions filtered the way the history screen needs them."""
    queryset = Transaction.objects.select_related('payer', 'space')

    if space is not None:
        queryset = queryset.filter(space=space)
    if kind:
        queryset = queryset.filter(kind=kind)
    if date_from:
        queryset = queryset.filter(timestamp__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(timestamp__date__lte=date_to)
    if not include_deleted:
        queryset = queryset.filter(is_deleted=False)

    return queryset


def load_snapshot(*, space=None) -> List[Transaction]:
    """
    Load every non-deleted transaction of a space (or of all spaces).

    The result is the in-memory snapshot the resolver, planner and
    aggregator work on.
    """
    queryset = Transaction.objects.filter(is_deleted=False)
    if space is not None:
        queryset = queryset.filter(space=space)
    return list(queryset.order_by('timestamp', 'created_at'))


def load_transactions_by_ids(ids) -> List[Transaction]:
    """
    Load the records with the given ids from any space, deleted ones included.

    Malformed and unknown ids are skipped.
    """
    pks = [pk for pk in (_coerce_uuid(value) for value in ids) if pk is not None]
    if not pks:
        return []
    return list(Transaction.objects.filter(id__in=pks))


def query_by_parent(parent_id, include_deleted: bool = False):
    """
    Return records that reference ``parent_id``.

    Both the link index and the single legacy parent reference are
    searched. Each child appears once.
    """
    pk = _coerce_uuid(parent_id)
    if pk is None:
        return Transaction.objects.none()

    queryset = Transaction.objects.filter(
        Q(link_rows__parent_id=pk) | Q(legacy_parent_id=pk)
    ).exclude(id=pk).distinct()

    if not include_deleted:
        queryset = queryset.filter(is_deleted=False)

    return queryset


# ==========================================
# Cached parent summary
# ==========================================

def compute_net_summary(parent: Transaction, children) -> Dict:
    """
    Compute the cached summary of a parent from its children.

    ``net_amount`` is the parent's amount plus the allocation of every
    product refund linking to it (refunds are negative). Settlements and
    forgiveness move debt between people and leave the net cost alone.

    Returns:
        dict with ``net_amount``, ``has_refunds`` and ``last_refund_at``
    """
    parent_id = str(parent.id)
    total_refunds = 0
    last_refund_at = None
    seen = set()

    for child in children:
        child_id = str(child.id)
        if child.is_deleted or child_id in seen or child_id == parent_id:
            continue
        seen.add(child_id)

        if child.kind != TransactionKind.PRODUCT_REFUND:
            continue

        link = child.get_link(parent_id)
        total_refunds += link['allocated_amount'] if link else child.amount

        if child.timestamp and (last_refund_at is None or child.timestamp > last_refund_at):
            last_refund_at = child.timestamp

    return {
        'net_amount': parent.amount + total_refunds,
        'has_refunds': total_refunds != 0,
        'last_refund_at': last_refund_at,
    }


def recompute_parent_summary(parent_id) -> Optional[Transaction]:
    """
    Re-read the children of a parent and persist its cached summary.

    Unknown parent ids are logged and skipped. Parents of a kind that
    carries no summary are returned untouched.
    """
    try:
        parent = get_transaction_by_id(transaction_id=parent_id, for_update=True)
    except TransactionNotFoundError:
        logger.warning("Skipping summary recompute for missing parent %s", parent_id)
        return None

    if parent.kind not in SUMMARY_KINDS:
        return parent

    summary = compute_net_summary(parent, query_by_parent(parent.id))

    parent.cached_net_amount = summary['net_amount']
    parent.cached_has_refunds = summary['has_refunds']
    parent.last_refund_at = summary['last_refund_at']
    parent.save(update_fields=[
        'cached_net_amount',
        'cached_has_refunds',
        'last_refund_at',
        'updated_at',
    ])

    logger.debug("Recomputed summary for %s: net=%s", parent.id, summary['net_amount'])
    return parent


def find_summary_drift(parent: Transaction, children) -> Optional[ConsistencyWarning]:
    """
    Compare a parent's cached net amount with a fresh computation.

    A parent that was never cached and has no refunds is not drift.
    """
    if parent.kind not in SUMMARY_KINDS:
        return None

    summary = compute_net_summary(parent, children)
    stored = parent.cached_net_amount

    if stored is None and not summary['has_refunds']:
        return None
    if stored == summary['net_amount']:
        return None

    return ConsistencyWarning(parent.id, stored, summary['net_amount'])


@transaction.atomic
def repair_parent_summaries(*, space=None, dry_run: bool = False) -> List[ConsistencyWarning]:
    """
    Find cached summaries that drifted from their children and fix them.

    Args:
        space: Limit the scan to one space
        dry_run: Only report, don't write

    Returns:
        List of ConsistencyWarning, one per drifted parent
    """
    parents = Transaction.objects.filter(kind__in=SUMMARY_KINDS, is_deleted=False)
    if space is not None:
        parents = parents.filter(space=space)

    drifts = []
    for parent in parents:
        warning = find_summary_drift(parent, query_by_parent(parent.id))
        if warning is None:
            continue

        logger.warning("%s", warning)
        drifts.append(warning)

        if not dry_run:
            recompute_parent_summary(parent.id)

    return drifts


# ==========================================
# Writes
# ==========================================

def _normalize_links(txn: Transaction, links) -> List[Dict]:
    if links is None:
        return []
    if not isinstance(links, (list, tuple)):
        raise LedgerValidationError('links', "Links must be a list")

    normalized = []
    for link in links:
        if not isinstance(link, dict):
            raise LedgerValidationError('links', "Each link needs parent_id and allocated_amount")

        parent_id = _coerce_uuid(link.get('parent_id'))
        if parent_id is None:
            raise LedgerValidationError('links', f"Invalid parent id {link.get('parent_id')!r}")
        if parent_id == txn.id:
            raise LedgerValidationError('links', "A transaction cannot link to itself")

        allocated = link.get('allocated_amount', 0)
        if not isinstance(allocated, int) or isinstance(allocated, bool):
            raise LedgerValidationError('links', "Allocated amounts must be integers")

        normalized.append({'parent_id': str(parent_id), 'allocated_amount': allocated})

    return normalized


def _apply_fields(txn: Transaction, fields: Dict) -> None:
    for key, value in fields.items():
        if key not in WRITABLE_FIELDS:
            raise LedgerValidationError(key, f"Unknown field '{key}'")

        if key == 'payer':
            txn.payer_id = getattr(value, 'pk', value)
        elif key == 'links':
            txn.links = _normalize_links(txn, value)
        elif key == 'legacy_parent_id':
            if value in (None, ''):
                txn.legacy_parent_id = None
                continue
            parent_id = _coerce_uuid(value)
            if parent_id is None:
                raise LedgerValidationError(key, f"Invalid parent id {value!r}")
            if parent_id == txn.id:
                raise LedgerValidationError(key, "A transaction cannot link to itself")
            txn.legacy_parent_id = parent_id
        else:
            setattr(txn, key, value)


def _validate_record(txn: Transaction) -> None:
    if txn.kind not in TransactionKind.values:
        raise LedgerValidationError('kind', f"Unknown kind '{txn.kind}'")

    if not txn.name:
        raise LedgerValidationError('name', "Name is required")

    if not isinstance(txn.amount, int) or isinstance(txn.amount, bool):
        raise LedgerValidationError('amount', "Amount must be an integer in minor units")

    if txn.kind == TransactionKind.PRODUCT_REFUND:
        if txn.amount >= 0:
            raise LedgerValidationError('amount', "Product refunds are stored as negative amounts")
    elif txn.amount < 0:
        raise LedgerValidationError('amount', "Amount must not be negative")

    if not txn.payer_id or not Participant.objects.filter(id=txn.payer_id).exists():
        raise LedgerValidationError('payer', f"Unknown payer '{txn.payer_id}'")

    if not isinstance(txn.splits, dict):
        raise LedgerValidationError('splits', "Splits must be a mapping")
    if not isinstance(txn.participants, list):
        raise LedgerValidationError('participants', "Participants must be a list")

    if txn.is_repayment:
        if len(txn.participants) != 1:
            raise LedgerValidationError(
                'participants', "Settlements need exactly one counterpart"
            )
        if txn.counterpart == txn.payer_id:
            raise LedgerValidationError(
                'participants', "Payer and counterpart must differ"
            )

    ensure_split_sum(txn.kind, txn.amount, txn.splits, txn.split_method)


def _sync_link_index(txn: Transaction) -> None:
    TransactionLink.objects.filter(child=txn).delete()
    TransactionLink.objects.bulk_create([
        TransactionLink(
            child=txn,
            parent_id=link['parent_id'],
            allocated_amount=link['allocated_amount'],
            position=position,
        )
        for position, link in enumerate(txn.links or [])
    ])


def find_unresolved_parents(txn: Transaction) -> List[UnresolvedParentError]:
    """Return one UnresolvedParentError per parent id the store cannot find."""
    parent_ids = txn.parent_ids
    if not parent_ids:
        return []

    found = {
        str(pk) for pk in
        Transaction.objects.filter(id__in=parent_ids).values_list('id', flat=True)
    }
    return [
        UnresolvedParentError(txn.id, parent_id)
        for parent_id in parent_ids
        if parent_id not in found
    ]


def _log_unresolved_parents(txn: Transaction) -> None:
    for error in find_unresolved_parents(txn):
        logger.warning("%s", error)


@transaction.atomic
def create_transaction(*, space, fields: Dict) -> Transaction:
    """
    Create a transaction and refresh the summaries of its parents.

    Args:
        space: Space the record belongs to
        fields: Transaction field values; ``payer`` is a participant id

    Returns:
        The saved Transaction

    Raises:
        LedgerValidationError: If the record is invalid (nothing is written)
    """
    txn = Transaction(space=space)
    _apply_fields(txn, fields)
    _validate_record(txn)

    txn.save()
    _sync_link_index(txn)
    _log_unresolved_parents(txn)

    for parent_id in txn.parent_ids:
        recompute_parent_summary(parent_id)

    logger.info("Created %s %s (%s) in space %s", txn.kind, txn.id, txn.amount, txn.space_id)
    return txn


@transaction.atomic
def update_transaction(*, transaction_id, fields: Dict) -> Transaction:
    """
    Update a transaction in place (id preserved).

    Summaries are refreshed for every parent the record links to now and
    for every parent it linked to before the edit.

    Raises:
        TransactionNotFoundError: If the transaction doesn't exist
        LedgerValidationError: If the updated record is invalid
    """
    txn = get_transaction_by_id(transaction_id=transaction_id, for_update=True)
    previous_parents = txn.parent_ids

    _apply_fields(txn, fields)
    _validate_record(txn)

    txn.save()
    _sync_link_index(txn)
    _log_unresolved_parents(txn)

    affected = list(txn.parent_ids)
    affected.extend(pid for pid in previous_parents if pid not in affected)
    for parent_id in affected:
        recompute_parent_summary(parent_id)

    # The record may itself be a parent whose amount just changed
    if txn.cached_net_amount is not None:
        txn = recompute_parent_summary(txn.id)

    logger.info("Updated %s %s", txn.kind, txn.id)
    return txn


@transaction.atomic
def delete_transaction(*, transaction_id) -> Transaction:
    """
    Soft delete a transaction.

    Raises:
        TransactionNotFoundError: If the transaction doesn't exist
        ActiveChildrenError: If non-deleted records still link to it
    """
    txn = get_transaction_by_id(transaction_id=transaction_id, for_update=True)
    if txn.is_deleted:
        return txn

    if query_by_parent(txn.id).exists():
        raise ActiveChildrenError(
            "Cannot delete: active linked refunds or repayments exist."
        )

    txn.is_deleted = True
    txn.deleted_at = timezone.now()
    txn.save(update_fields=['is_deleted', 'deleted_at', 'updated_at'])

    for parent_id in txn.parent_ids:
        recompute_parent_summary(parent_id)

    logger.info("Deleted %s %s", txn.kind, txn.id)
    return txn


@transaction.atomic
def restore_transaction(*, transaction_id) -> Transaction:
    """Undo a soft delete and refresh the summaries of its parents."""
    txn = get_transaction_by_id(transaction_id=transaction_id, for_update=True)
    if not txn.is_deleted:
        return txn

    txn.is_deleted = False
    txn.deleted_at = None
    txn.save(update_fields=['is_deleted', 'deleted_at', 'updated_at'])

    for parent_id in txn.parent_ids:
        recompute_parent_summary(parent_id)

    logger.info("Restored %s %s", txn.kind, txn.id)
    return txn


@transaction.atomic
def move_transaction_to_space(*, transaction_id, space) -> Transaction:
    """
    Move a transaction and its direct children to another space.

    Returns:
        The moved Transaction
    """
    txn = get_transaction_by_id(transaction_id=transaction_id, for_update=True)

    child_ids = list(query_by_parent(txn.id, include_deleted=True).values_list('id', flat=True))
    Transaction.objects.filter(id__in=[txn.id] + child_ids).update(
        space=space,
        updated_at=timezone.now(),
    )

    logger.info(
        "Moved %s and %d children to space %s",
        txn.id, len(child_ids), getattr(space, 'pk', space),
    )
    txn.refresh_from_db()
    return txn
