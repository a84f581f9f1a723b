"""
Debt link resolver.

Works out how much of an original expense a given debtor still owes once
refunds, settlements and forgiveness records have been linked to it. Every
function here is pure: it takes the snapshot of transactions it needs and
never touches the database. Outstanding amounts are always recomputed from
the raw records; the cached summary on a parent is never trusted here.

A negative outstanding amount is a credit (the debtor over-paid) and is a
valid result, never clamped.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from django.conf import settings

from apps.ledger.models import Transaction, TransactionKind
from apps.spaces.models import PRIMARY_PARTICIPANT_ID


ME = PRIMARY_PARTICIPANT_ID

OWED_TO_ME = 'owed_to_me'
OWED_BY_ME = 'owed_by_me'
PRODUCT_REFUND = 'product_refund'


def settled_tolerance() -> int:
    """Amounts within this many minor units of zero count as settled."""
    return settings.LEDGER_SETTLED_TOLERANCE


@dataclass
class LinkCandidate:
    """A parent a new record could link to, seen from one counterpart."""

    parent: Transaction
    counterpart: Optional[str]
    relation: str
    outstanding: int
    is_continuation: bool = False

    @property
    def parent_id(self) -> str:
        return str(self.parent.id)

    @property
    def is_credit(self) -> bool:
        return self.outstanding < 0


def _active(transactions: Iterable[Transaction], exclude_id=None) -> List[Transaction]:
    exclude_id = str(exclude_id) if exclude_id else None
    return [
        t for t in transactions
        if not t.is_deleted and str(t.id) != exclude_id
    ]


def _index(transactions: Iterable[Transaction]) -> Dict[str, Transaction]:
    return {str(t.id): t for t in transactions if not t.is_deleted}


def other_party(txn: Transaction) -> Optional[str]:
    """The participant other than the primary user on a repayment record."""
    if txn.payer_id == ME:
        return txn.counterpart
    return txn.payer_id


def children_of(parent_id, transactions: Iterable[Transaction], exclude_id=None) -> List[Transaction]:
    """
    Return non-deleted records that reference ``parent_id``.

    A child referencing the parent through several link entries appears
    only once. ``exclude_id`` drops the record currently being edited.
    """
    parent_id = str(parent_id)
    seen = set()
    children = []

    for txn in _active(transactions, exclude_id):
        txn_id = str(txn.id)
        if txn_id == parent_id or txn_id in seen:
            continue
        if parent_id in txn.parent_ids:
            seen.add(txn_id)
            children.append(txn)

    return children


def outstanding(parent: Transaction, debtor_id: str, transactions: Iterable[Transaction],
                exclude_id=None) -> int:
    """
    Signed amount ``debtor_id`` still owes on ``parent``.

    Starts from the debtor's split on the parent, then walks every child:

    - a settlement or forgiveness involving the debtor (as payer or as the
      counterpart) reduces the debt by its allocation to this parent; when
      the parent is itself a settlement the allocation moves the credit
      back toward zero instead
    - an unlinked legacy settlement paid by the debtor reduces the debt by
      its whole amount
    - a product refund adds the debtor's (negative) refund share

    Returns:
        Positive while still owed, negative for a credit.
    """
    debt = (parent.splits or {}).get(debtor_id) or 0
    parent_id = str(parent.id)

    for child in children_of(parent_id, transactions, exclude_id):
        if child.is_repayment:
            if child.links:
                link = child.get_link(parent_id)
                involved = child.payer_id == debtor_id or debtor_id in (child.participants or [])
                if link is not None and involved:
                    allocated = abs(link['allocated_amount'])
                    if parent.is_repayment:
                        debt += allocated
                    else:
                        debt -= allocated
            elif child.payer_id == debtor_id:
                debt -= abs(child.amount)
        elif child.kind == TransactionKind.PRODUCT_REFUND:
            debt += (child.splits or {}).get(debtor_id) or 0

    return debt


def _expense_parents(settlement: Transaction, index: Dict[str, Transaction]) -> List[Transaction]:
    parents = []
    for parent_id in settlement.parent_ids:
        parent = index.get(parent_id)
        if parent is not None and not parent.is_repayment:
            parents.append(parent)
    return parents


def _siblings(settlement: Transaction, transactions: Iterable[Transaction], index: Dict[str, Transaction],
              exclude_id=None) -> List[Transaction]:
    # Repayments with the same counterpart on a shared expense draw on one credit
    party = other_party(settlement)
    parent_ids = {str(p.id) for p in _expense_parents(settlement, index)}
    siblings = [settlement]
    for txn in _active(transactions, exclude_id):
        if str(txn.id) == str(settlement.id) or not txn.is_repayment or other_party(txn) != party:
            continue
        if parent_ids.intersection(txn.parent_ids):
            siblings.append(txn)
    return siblings


def _consumed_credit(settlement: Transaction, transactions: Iterable[Transaction],
                     index: Dict[str, Transaction], exclude_id=None) -> int:
    siblings = _siblings(settlement, transactions, index, exclude_id)
    sibling_ids = {str(s.id) for s in siblings}
    seen = set()
    consumed = 0
    for sibling in siblings:
        for child in children_of(sibling.id, transactions, exclude_id):
            child_id = str(child.id)
            if child_id in seen:
                continue
            seen.add(child_id)
            allocations = [
                abs(link['allocated_amount']) for link in (child.links or [])
                if str(link['parent_id']) in sibling_ids
            ]
            consumed += sum(allocations) if allocations else abs(child.amount)
    return consumed


def settlement_remaining(settlement: Transaction, transactions: Iterable[Transaction],
                         exclude_id=None) -> int:
    """
    Remaining debt (or credit) behind a partial settlement.

    Sums the counterpart's outstanding amount on every expense the
    settlement links to. Parents that are themselves settlements, and
    parents that cannot be found, contribute nothing.

    When the result is a credit, records linking to the settlement spend
    it down. Repayments with the same counterpart sharing one of its
    expenses draw on the same credit, so their children count too.
    Spending stops at zero.
    """
    transactions = list(transactions)
    index = _index(transactions)
    counterpart = other_party(settlement)

    remaining = 0
    for parent in _expense_parents(settlement, index):
        debtor_id = counterpart if parent.payer_id == ME else ME
        remaining += outstanding(parent, debtor_id, transactions, exclude_id)

    if remaining < 0:
        remaining = min(remaining + _consumed_credit(settlement, transactions, index, exclude_id), 0)

    return remaining


def net_debt_with(participant_id: str, transactions: Iterable[Transaction]) -> int:
    """
    Net outstanding debt between the primary user and ``participant_id``.

    Positive means the primary user owes them, negative that they owe the
    primary user.
    """
    if not participant_id or participant_id == ME:
        return 0

    transactions = list(transactions)
    i_owe_them = 0
    they_owe_me = 0

    for txn in _active(transactions):
        if txn.is_repayment or txn.kind != TransactionKind.EXPENSE:
            continue
        splits = txn.splits or {}
        if txn.payer_id == participant_id and (splits.get(ME) or 0) > 0:
            i_owe_them += outstanding(txn, ME, transactions)
        if txn.payer_id == ME and (splits.get(participant_id) or 0) > 0:
            they_owe_me += outstanding(txn, participant_id, transactions)

    return i_owe_them - they_owe_me


def _debtors_of(expense: Transaction) -> List[str]:
    splits = expense.splits or {}
    return [uid for uid, share in splits.items() if uid != ME and (share or 0) > 0]


def describe_parent(parent: Transaction, transactions: Iterable[Transaction],
                    counterpart: Optional[str] = None, exclude_id=None) -> Optional[LinkCandidate]:
    """
    Describe ``parent`` as a link target for a settlement or forgiveness.

    For an expense paid by the primary user ``counterpart`` picks the
    debtor (the first one with a positive split when not given). For a
    settlement the result is a continuation carrying the settlement's
    total remaining amount.

    Returns:
        LinkCandidate, or None when the parent involves no counterpart.
    """
    transactions = list(transactions)

    if parent.is_repayment:
        index = _index(transactions)
        expense_parents = _expense_parents(parent, index)
        party = other_party(parent)
        if not expense_parents or not party or party == ME:
            return None
        relation = OWED_TO_ME if expense_parents[0].payer_id == ME else OWED_BY_ME
        return LinkCandidate(
            parent=parent,
            counterpart=party,
            relation=relation,
            outstanding=settlement_remaining(parent, transactions, exclude_id),
            is_continuation=True,
        )

    if parent.payer_id != ME:
        return LinkCandidate(
            parent=parent,
            counterpart=parent.payer_id,
            relation=OWED_BY_ME,
            outstanding=outstanding(parent, ME, transactions, exclude_id),
        )

    if counterpart is None:
        debtors = _debtors_of(parent)
        if not debtors:
            return None
        counterpart = debtors[0]

    return LinkCandidate(
        parent=parent,
        counterpart=counterpart,
        relation=OWED_TO_ME,
        outstanding=outstanding(parent, counterpart, transactions, exclude_id),
    )


def _refund_candidates(transactions: List[Transaction], exclude_ids) -> List[LinkCandidate]:
    candidates = []
    for txn in transactions:
        if txn.kind != TransactionKind.EXPENSE or txn.amount <= 0:
            continue
        if str(txn.id) in exclude_ids:
            continue
        remaining = txn.cached_net_amount if txn.cached_net_amount is not None else txn.amount
        if remaining > 0:
            candidates.append(LinkCandidate(
                parent=txn,
                counterpart=txn.payer_id,
                relation=PRODUCT_REFUND,
                outstanding=remaining,
            ))
    return candidates


def _debt_candidates(transactions: List[Transaction], snapshot: List[Transaction],
                     exclude_id) -> List[LinkCandidate]:
    candidates = []
    for txn in transactions:
        if txn.kind != TransactionKind.EXPENSE:
            continue
        splits = txn.splits or {}

        if txn.payer_id != ME:
            if (splits.get(ME) or 0) > 0:
                candidates.append(describe_parent(txn, snapshot, exclude_id=exclude_id))
            continue

        debtors = _debtors_of(txn)
        if debtors:
            for uid in debtors:
                candidates.append(describe_parent(txn, snapshot, counterpart=uid, exclude_id=exclude_id))
            continue

        # Records without splits: assume an equal share per participant
        others = [uid for uid in (txn.participants or []) if uid != ME]
        if others and txn.amount > 0:
            equal_share = round(txn.amount / len(others))
            for uid in others:
                candidates.append(LinkCandidate(
                    parent=txn,
                    counterpart=uid,
                    relation=OWED_TO_ME,
                    outstanding=equal_share,
                ))

    return candidates


def eligible_parents(role: str, transactions: Iterable[Transaction], counterpart: Optional[str] = None,
                     exclude_ids: Iterable = (), exclude_id=None) -> List[LinkCandidate]:
    """
    List the parents a new record of kind ``role`` can link to.

    Product refunds can link to any expense with refundable amount left.
    Settlements and forgiveness can link to debts in either direction and
    to partial settlements that still carry a remainder or a credit. An
    expense already covered by such a continuation is hidden so the user
    continues the settlement instead.

    Args:
        role: 'settlement', 'forgiveness' or 'product_refund'
        transactions: Snapshot of the space
        counterpart: Only keep candidates involving this participant
        exclude_ids: Parents already linked on the draft
        exclude_id: The record being edited

    Returns:
        List of LinkCandidate, newest parent first.
    """
    snapshot = list(transactions)
    active = _active(snapshot, exclude_id)
    exclude_ids = {str(pid) for pid in exclude_ids}
    tolerance = settled_tolerance()

    if role == TransactionKind.PRODUCT_REFUND:
        candidates = _refund_candidates(active, exclude_ids)
        return sorted(candidates, key=lambda c: c.parent.timestamp, reverse=True)

    continuations = []
    for txn in active:
        if not txn.is_repayment or not txn.parent_ids:
            continue
        candidate = describe_parent(txn, snapshot, exclude_id=exclude_id)
        if candidate is not None and abs(candidate.outstanding) > tolerance:
            continuations.append(candidate)

    covered = set()
    for candidate in continuations:
        covered.update(candidate.parent.parent_ids)

    debts = [
        c for c in _debt_candidates(active, snapshot, exclude_id)
        if c is not None and c.outstanding > tolerance and c.parent_id not in covered
    ]

    candidates = debts + continuations
    if counterpart and counterpart != ME:
        candidates = [c for c in candidates if c.counterpart == counterpart]

    unique = {}
    for candidate in candidates:
        if candidate.parent_id in exclude_ids or abs(candidate.outstanding) <= tolerance:
            continue
        unique[(candidate.parent_id, candidate.counterpart)] = candidate

    return sorted(unique.values(), key=lambda c: c.parent.timestamp, reverse=True)
