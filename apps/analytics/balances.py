"""
Balance aggregation.

Folds a list of transactions into "who owes whom" from the primary user's
point of view. Pure functions of their inputs: nothing here reads the
database, so they are safe to recompute on every request.

Sign convention for ``net_balance``:
    > 0  the participant owes the primary user
    < 0  the primary user owes the participant
"""

from collections import defaultdict
from typing import Dict, Iterable, Optional

from django.utils import timezone

from apps.ledger.models import TransactionKind
from apps.spaces.models import PRIMARY_PARTICIPANT_ID


ME = PRIMARY_PARTICIPANT_ID
UNCATEGORIZED = 'Uncategorized'


def _participant_id(participant):
    return getattr(participant, 'id', participant)


def _in_month(timestamp, now) -> bool:
    if timestamp is None:
        return False
    if timezone.is_aware(timestamp) and timezone.is_aware(now):
        timestamp = timezone.localtime(timestamp)
        now = timezone.localtime(now)
    return timestamp.year == now.year and timestamp.month == now.month


def compute_balances(transactions: Iterable, participants: Iterable = (), now=None) -> Dict:
    """
    Aggregate transactions into per-participant net balances.

    Args:
        transactions: Transaction instances (deleted ones are skipped)
        participants: Participants (or ids) to report even at zero
        now: Reference time for the monthly income bucket

    Returns:
        dict: A dictionary containing:
            - net_balance (dict): participant id -> signed balance
            - net_position (int): sum of all balances
            - total_paid_by_me (int): expenses and repayments paid by the primary user
            - total_my_share (int): the primary user's share of expenses
            - paid_by_others (int): the primary user's share paid by someone else
            - total_expenditure (int): paid by me minus repayments made to me
            - category_totals (dict): category -> the primary user's share
            - category_chart (list): category totals, largest first
            - monthly_income (int): income recorded in the current month
    """
    now = now or timezone.now()

    net_balance = {}
    for participant in participants:
        participant_id = _participant_id(participant)
        if participant_id != ME:
            net_balance[participant_id] = 0

    total_paid_by_me = 0
    total_repaid_to_me = 0
    total_my_share = 0
    paid_by_others = 0
    monthly_income = 0
    category_totals = defaultdict(int)

    def add(participant_id, value):
        net_balance[participant_id] = net_balance.get(participant_id, 0) + value

    for txn in transactions:
        if txn.is_deleted:
            continue

        payer = txn.payer_id or ME
        amount = txn.amount
        splits = txn.splits or {}

        if txn.kind == TransactionKind.INCOME:
            if _in_month(txn.timestamp, now):
                monthly_income += amount
            continue

        if txn.kind == TransactionKind.SETTLEMENT:
            counterpart = txn.counterpart
            if not counterpart:
                continue
            if payer == ME and counterpart != ME:
                add(counterpart, amount)
                total_paid_by_me += amount
            elif payer != ME and counterpart == ME:
                add(payer, -amount)
                total_repaid_to_me += amount
            continue

        if txn.kind == TransactionKind.FORGIVENESS:
            # Sign-inverted settlement: no money moves, a debt is written off
            counterpart = txn.counterpart
            if not counterpart:
                continue
            if payer == ME and counterpart != ME:
                add(counterpart, -amount)
            elif payer != ME and counterpart == ME:
                add(payer, amount)
            continue

        # Expenses and product refunds (refund amounts and shares are negative)
        category = txn.category or UNCATEGORIZED
        if payer == ME:
            total_paid_by_me += amount
            for participant_id, share in splits.items():
                if participant_id == ME:
                    total_my_share += share
                    category_totals[category] += share
                else:
                    add(participant_id, share)
        else:
            my_share = splits.get(ME) or 0
            is_refund = txn.kind == TransactionKind.PRODUCT_REFUND
            if my_share > 0 or (is_refund and my_share):
                add(payer, -my_share)
                total_my_share += my_share
                paid_by_others += my_share
                category_totals[category] += my_share

    category_chart = sorted(
        ({'label': label, 'value': value} for label, value in category_totals.items()),
        key=lambda item: item['value'],
        reverse=True,
    )

    return {
        'net_balance': net_balance,
        'net_position': sum(net_balance.values()),
        'total_paid_by_me': total_paid_by_me,
        'total_my_share': total_my_share,
        'paid_by_others': paid_by_others,
        'total_expenditure': total_paid_by_me - total_repaid_to_me,
        'category_totals': dict(category_totals),
        'category_chart': category_chart,
        'monthly_income': monthly_income,
    }


def participant_positions(transactions: Iterable) -> Dict[str, int]:
    """
    Everyone's net position across the ledger, not only the primary user's.

    Positive means the participant is owed money, negative that they owe.
    Positions always sum to zero.
    """
    positions = defaultdict(int)

    for txn in transactions:
        if txn.is_deleted or txn.kind == TransactionKind.INCOME:
            continue

        payer = txn.payer_id

        if txn.kind == TransactionKind.SETTLEMENT:
            if txn.counterpart:
                positions[payer] += txn.amount
                positions[txn.counterpart] -= txn.amount
            continue

        if txn.kind == TransactionKind.FORGIVENESS:
            if txn.counterpart:
                positions[payer] -= txn.amount
                positions[txn.counterpart] += txn.amount
            continue

        splits = txn.splits or {}
        if not splits:
            continue
        positions[payer] += txn.amount
        for participant_id, share in splits.items():
            positions[participant_id] -= share

    return {pid: value for pid, value in positions.items() if value != 0}


def positions_from_balances(net_balance: Dict[str, int], me: Optional[str] = ME) -> Dict[str, int]:
    """
    Convert the primary user's balance map into net positions.

    A participant who owes the primary user has a negative position; the
    primary user's position is the sum of what everyone owes them.
    """
    positions = {pid: -value for pid, value in net_balance.items() if value}
    total = sum(net_balance.values())
    if total:
        positions[me] = total
    return positions
