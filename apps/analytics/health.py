"""
Data-health scanner.

Read-only report over a space's transactions. Flags records that still
count toward balances but look wrong: dangling parent references, missing
categorisation, splits that don't add up and cached summaries that
drifted. Nothing is modified.
"""

from typing import Dict, Iterable

from django.conf import settings

from apps.ledger.models import TransactionKind, SUMMARY_KINDS
from apps.ledger.services.resolver import children_of
from apps.ledger.services.store import find_summary_drift
from apps.spaces.models import PRIMARY_PARTICIPANT_ID


ISSUE_KEYS = (
    'orphaned_links',
    'missing_category',
    'missing_payment_mode',
    'negative_net_amounts',
    'unknown_participants',
    'split_mismatches',
    'stale_summaries',
)


def _entry(txn, **extra) -> Dict:
    entry = {'id': str(txn.id), 'name': txn.name}
    entry.update(extra)
    return entry


def scan_data_health(transactions: Iterable, participants: Iterable = ()) -> Dict:
    """
    Scan transactions for integrity problems.

    Args:
        transactions: Every transaction of the space, deleted ones included
            (a link to a deleted parent still resolves)
        participants: Known participants (or ids)

    Returns:
        dict with one list per issue kind (see ``ISSUE_KEYS``) and ``total``
    """
    transactions = list(transactions)
    tolerance = settings.LEDGER_SETTLED_TOLERANCE

    known_ids = {str(txn.id) for txn in transactions}
    participant_ids = {getattr(p, 'id', p) for p in participants}
    participant_ids.add(PRIMARY_PARTICIPANT_ID)

    issues = {key: [] for key in ISSUE_KEYS}

    for txn in transactions:
        if txn.is_deleted:
            continue

        for parent_id in txn.parent_ids:
            if parent_id not in known_ids:
                issues['orphaned_links'].append(
                    _entry(txn, issue=f"Missing parent: {parent_id}")
                )

        if txn.kind == TransactionKind.EXPENSE:
            if not txn.category:
                issues['missing_category'].append(_entry(txn))
            if not txn.payment_mode:
                issues['missing_payment_mode'].append(_entry(txn))
            if txn.cached_net_amount is not None and txn.cached_net_amount < 0:
                issues['negative_net_amounts'].append(
                    _entry(txn, net_amount=txn.cached_net_amount)
                )

        unknown = [
            pid for pid in [txn.payer_id] + list(txn.participants or [])
            if pid not in participant_ids
        ]
        if unknown:
            issues['unknown_participants'].append(
                _entry(txn, issue=f"Unknown participants: {', '.join(sorted(set(unknown)))}")
            )

        splits = txn.splits or {}
        if not txn.is_repayment and txn.kind != TransactionKind.INCOME and splits:
            split_sum = sum(splits.values())
            if abs(abs(split_sum) - abs(txn.amount)) > tolerance:
                issues['split_mismatches'].append(
                    _entry(txn, amount=txn.amount, split_sum=split_sum)
                )

        if txn.kind in SUMMARY_KINDS:
            drift = find_summary_drift(txn, children_of(txn.id, transactions))
            if drift is not None:
                issues['stale_summaries'].append(
                    _entry(txn, stored=drift.stored, expected=drift.expected)
                )

    issues['total'] = sum(len(issues[key]) for key in ISSUE_KEYS)
    return issues
