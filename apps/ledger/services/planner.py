"""
Link allocation planner.

Turns a user's unsaved draft into a valid record. When the user links a
parent debt to a settlement, forgiveness or product refund, the planner
decides how much of the parent the new record resolves and which way the
money flows. Changes are returned as an immutable ``DraftPatch`` and
applied to the draft in one step, so a direction flip is never observed
half done.

Drafts hold the amount as a positive magnitude. Signs are applied by
``finalize_draft`` when the draft becomes a set of Transaction fields.
"""

import dataclasses
import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from fractions import Fraction
from typing import Dict, List, Optional, Tuple

from apps.ledger.models import Transaction, TransactionKind, SplitMethod, REPAYMENT_KINDS
from apps.spaces.models import PRIMARY_PARTICIPANT_ID

from .exceptions import LedgerValidationError, AllocationExceededError, SplitValidationError
from .resolver import (
    describe_parent,
    OWED_BY_ME,
    PRODUCT_REFUND,
)
from .splits import split_equally, split_by_percentage, validate_split_input


ME = PRIMARY_PARTICIPANT_ID

SMART_NAME_PREFIXES = ('Refund:', 'Settlement:', 'Repayment:', 'Forgiven:')
FORGIVEN_PREFIX = 'Debt Forgiven:'
PERCENT_PLACES = Decimal('0.0001')


@dataclass(frozen=True)
class DraftLink:
    """One parent linked on a draft, with its signed allocation."""

    parent_id: str
    allocated_amount: int
    basis: int = 0
    max_allocatable: Optional[int] = None
    relation: str = ''
    parent_name: str = ''

    def negated(self) -> 'DraftLink':
        return dataclasses.replace(
            self,
            allocated_amount=-self.allocated_amount,
            basis=-self.basis,
        )


@dataclass(frozen=True)
class DraftPatch:
    """
    A set of changes to apply to a draft at once.

    Fields left as None are unchanged. ``flipped`` tells the caller that
    payer and counterpart were swapped.
    """

    amount: Optional[int] = None
    links: Optional[Tuple[DraftLink, ...]] = None
    payer: Optional[str] = None
    participants: Optional[Tuple[str, ...]] = None
    split_method: Optional[str] = None
    split_shares: Optional[Dict[str, object]] = None
    include_me: Optional[bool] = None
    include_payer: Optional[bool] = None
    name: Optional[str] = None
    flipped: bool = False


@dataclass
class TransactionDraft:
    """Unsaved, mutable record as the user is editing it."""

    kind: str = TransactionKind.EXPENSE
    name: str = ''
    amount: int = 0
    payer: str = ME
    participants: List[str] = field(default_factory=list)
    split_method: str = SplitMethod.EQUAL
    split_shares: Dict[str, object] = field(default_factory=dict)
    include_me: bool = True
    include_payer: bool = False
    links: List[DraftLink] = field(default_factory=list)
    category: str = ''
    payment_mode: str = ''
    description: str = ''
    timestamp: Optional[datetime] = None
    space_id: Optional[str] = None
    transaction_id: Optional[str] = None

    @property
    def is_repayment(self) -> bool:
        return self.kind in REPAYMENT_KINDS

    @property
    def counterpart(self) -> Optional[str]:
        return self.participants[0] if self.participants else None

    @property
    def linked_total(self) -> int:
        return sum(link.allocated_amount for link in self.links)

    @property
    def linked_parent_ids(self) -> List[str]:
        return [link.parent_id for link in self.links]

    def get_link(self, parent_id) -> Optional[DraftLink]:
        parent_id = str(parent_id)
        for link in self.links:
            if link.parent_id == parent_id:
                return link
        return None

    def split_participants(self) -> List[str]:
        """Participants an equal split is divided among, in order."""
        ids = []
        if self.include_me:
            ids.append(ME)
        if self.payer != ME and self.include_payer and self.payer not in self.participants:
            ids.append(self.payer)
        for uid in self.participants:
            if uid != ME and uid not in ids:
                ids.append(uid)
        return ids

    def apply(self, patch: DraftPatch) -> 'TransactionDraft':
        """Apply every field the patch sets. Returns the draft itself."""
        for patch_field in dataclasses.fields(patch):
            if patch_field.name == 'flipped':
                continue
            value = getattr(patch, patch_field.name)
            if value is None:
                continue
            if isinstance(value, tuple):
                value = list(value)
            elif isinstance(value, dict):
                value = dict(value)
            setattr(self, patch_field.name, value)
        return self

    def copy(self) -> 'TransactionDraft':
        return dataclasses.replace(
            self,
            participants=list(self.participants),
            split_shares=dict(self.split_shares),
            links=list(self.links),
        )

    @classmethod
    def from_transaction(cls, txn: Transaction) -> 'TransactionDraft':
        """Build an edit-mode draft from a saved transaction."""
        is_refund = txn.kind == TransactionKind.PRODUCT_REFUND
        magnitude = abs(txn.amount)
        splits = txn.splits or {}

        if txn.is_repayment:
            participants = list(txn.participants or [])
        else:
            participants = [uid for uid in (txn.participants or []) if uid != ME]

        split_method = txn.split_method
        split_shares = {}
        if txn.is_repayment or txn.kind == TransactionKind.INCOME:
            split_method = SplitMethod.EQUAL
        elif split_method == SplitMethod.PERCENTAGE and magnitude:
            split_shares = {
                uid: _percent_of(abs(share), magnitude)
                for uid, share in splits.items()
            }
        elif split_method == SplitMethod.DYNAMIC:
            split_shares = {uid: abs(share) for uid, share in splits.items()}

        links = []
        for link in txn.links or []:
            allocated = link['allocated_amount']
            if is_refund:
                allocated = abs(allocated)
            links.append(DraftLink(
                parent_id=str(link['parent_id']),
                allocated_amount=allocated,
                basis=allocated,
            ))

        description = txn.description or ''
        if txn.kind == TransactionKind.FORGIVENESS and description.startswith(FORGIVEN_PREFIX):
            description = description[len(FORGIVEN_PREFIX):].strip()

        return cls(
            kind=txn.kind,
            name=txn.name,
            amount=magnitude,
            payer=txn.payer_id,
            participants=participants,
            split_method=split_method,
            split_shares=split_shares,
            include_me=ME in splits if splits else True,
            include_payer=txn.payer_id != ME and txn.payer_id in splits,
            links=links,
            category=txn.category,
            payment_mode=txn.payment_mode,
            description=description,
            timestamp=txn.timestamp,
            space_id=txn.space_id,
            transaction_id=str(txn.id),
        )


def _percent_of(share: int, total: int) -> Decimal:
    return (Decimal(share) / Decimal(total) * 100).quantize(PERCENT_PLACES)


def _round_half_up(value: Fraction) -> int:
    return math.floor(value + Fraction(1, 2))


def _smart_name(draft: TransactionDraft, links, role: str) -> Optional[str]:
    if draft.name and not draft.name.startswith(SMART_NAME_PREFIXES):
        return None
    if not links:
        return None

    if role == TransactionKind.SETTLEMENT:
        prefix = 'Settlement'
    elif role == TransactionKind.FORGIVENESS:
        prefix = 'Forgiven'
    else:
        prefix = 'Refund'

    return f"{prefix}: " + ', '.join(link.parent_name or link.parent_id for link in links)


def _signed_allocation(role: str, payer_is_me: bool, is_my_debt: bool, amount: int) -> int:
    """
    Sign an outstanding amount for a new repayment link.

    Settlement: paying off a debt counts positive for whoever owes it.
    Forgiveness: giving up a debt counts positive for whoever is owed.
    """
    if role == TransactionKind.FORGIVENESS:
        if payer_is_me:
            return -amount if is_my_debt else amount
        return amount if is_my_debt else -amount

    if payer_is_me:
        return amount if is_my_debt else -amount
    return -amount if is_my_debt else amount


def _total_patch(links: List[DraftLink], payer: str,
              participants: List[str], **extra) -> DraftPatch:
    """
    Re-derive a repayment's total from its links.

    A negative total swaps payer and counterpart and negates every link.

    Raises:
        LedgerValidationError: The total went negative with no counterpart
            to swap to
    """
    total = sum(link.allocated_amount for link in links)

    if total < 0 and (not participants or participants[0] == payer):
        raise LedgerValidationError(
            'participants', "Choose who the money goes to before the total can change direction"
        )

    if total >= 0:
        return DraftPatch(
            amount=abs(total),
            links=tuple(links),
            payer=payer,
            participants=tuple(participants),
            **extra,
        )

    return DraftPatch(
        amount=abs(total),
        links=tuple(link.negated() for link in links),
        payer=participants[0],
        participants=(payer,),
        flipped=True,
        **extra,
    )


def _attach_refund(draft: TransactionDraft, parent: Transaction) -> DraftPatch:
    remaining = parent.cached_net_amount if parent.cached_net_amount is not None else parent.amount
    parent_splits = parent.splits or {}
    involved = list(parent_splits)

    if parent.split_method == SplitMethod.EQUAL:
        split_method = SplitMethod.EQUAL
        split_shares = {}
    else:
        total_parent = abs(parent.amount)
        split_method = SplitMethod.PERCENTAGE
        split_shares = {
            uid: _percent_of(abs(share), total_parent) if total_parent else Decimal(0)
            for uid, share in parent_splits.items()
        }

    link = DraftLink(
        parent_id=str(parent.id),
        allocated_amount=remaining,
        basis=remaining,
        max_allocatable=remaining,
        relation=PRODUCT_REFUND,
        parent_name=parent.name,
    )

    return DraftPatch(
        amount=remaining,
        links=(link,),
        payer=parent.payer_id,
        participants=tuple(uid for uid in involved if uid != ME),
        split_method=split_method,
        split_shares=split_shares,
        include_me=ME in involved if involved else True,
        include_payer=parent.payer_id != ME and parent.payer_id in involved,
        name=_smart_name(draft, [link], TransactionKind.PRODUCT_REFUND),
    )


def _attach_repayment(draft: TransactionDraft, parent: Transaction, role: str,
                      transactions, exclude_id) -> DraftPatch:
    parent_id = str(parent.id)
    if draft.get_link(parent_id) is not None:
        raise LedgerValidationError('links', f"Transaction {parent_id} is already linked")

    lookup = draft.counterpart if draft.payer == ME else draft.payer
    if lookup == ME:
        lookup = None
    candidate = describe_parent(parent, transactions, counterpart=lookup, exclude_id=exclude_id)
    if candidate is None:
        raise LedgerValidationError('links', f"Transaction {parent_id} carries no debt to settle")

    participants = list(draft.participants)
    if not participants:
        participants = [candidate.counterpart] if draft.payer == ME else [ME]

    allocated = _signed_allocation(
        role,
        payer_is_me=draft.payer == ME,
        is_my_debt=candidate.relation == OWED_BY_ME,
        amount=candidate.outstanding,
    )

    new_link = DraftLink(
        parent_id=parent_id,
        allocated_amount=allocated,
        basis=allocated,
        max_allocatable=candidate.outstanding,
        relation=candidate.relation,
        parent_name=parent.name,
    )
    links = list(draft.links) + [new_link]

    return _total_patch(
        links,
        payer=draft.payer,
        participants=participants,
        name=_smart_name(draft, links, role),
    )


def attach_link(draft: TransactionDraft, parent: Transaction, role: str,
                transactions, exclude_id=None) -> DraftPatch:
    """
    Plan linking ``parent`` to the draft.

    Product refund: the whole remaining refundable amount of the parent is
    allocated, the payer becomes the parent's payer and the parent's split
    is copied (as percentages, so a partial refund scales). The link
    replaces any previous one.

    Settlement / forgiveness: the counterpart's outstanding amount on the
    parent is signed by who pays and who owes, appended to the existing
    links, and the total re-derived. If the total goes negative the
    direction flips.

    Args:
        draft: The draft being edited (not modified)
        parent: Parent transaction to link
        role: 'settlement', 'forgiveness' or 'product_refund'
        transactions: Snapshot used to resolve outstanding debt
        exclude_id: Record being edited, ignored when resolving

    Returns:
        DraftPatch to apply to the draft
    """
    if exclude_id is None:
        exclude_id = draft.transaction_id

    if role == TransactionKind.PRODUCT_REFUND:
        return _attach_refund(draft, parent)

    if role in REPAYMENT_KINDS:
        return _attach_repayment(draft, parent, role, transactions, exclude_id)

    raise LedgerValidationError('kind', f"Cannot link a parent to a record of kind '{role}'")


def reallocate(draft: TransactionDraft, new_total: int) -> DraftPatch:
    """
    Spread a manually edited total over the existing links.

    Each link gets ``basis * new_total / sum(basis)`` rounded half up,
    except the last link, which takes whatever is left so the links add up
    to ``new_total`` exactly.

    Raises:
        LedgerValidationError: If the links carry no basis to scale by
    """
    if not isinstance(new_total, int) or new_total < 0:
        raise LedgerValidationError('amount', "Amount must be a positive integer")

    if not draft.links:
        return DraftPatch(amount=new_total)

    bases = [link.basis or link.allocated_amount for link in draft.links]
    basis_total = sum(bases)
    if basis_total == 0:
        raise LedgerValidationError('amount', "Linked amounts cancel out; set allocations manually")

    ratio = Fraction(new_total, basis_total)
    running = 0
    links = []
    for position, (link, basis) in enumerate(zip(draft.links, bases)):
        if position == len(draft.links) - 1:
            allocated = new_total - running
        else:
            allocated = _round_half_up(basis * ratio)
            running += allocated
        links.append(dataclasses.replace(link, allocated_amount=allocated))

    return DraftPatch(amount=new_total, links=tuple(links))


def _after_link_change(draft: TransactionDraft, links: List[DraftLink]) -> DraftPatch:
    role = draft.kind
    if draft.is_repayment:
        participants = list(draft.participants)
        return _total_patch(
            links,
            payer=draft.payer,
            participants=participants,
            name=_smart_name(draft, links, role),
        )

    return DraftPatch(
        amount=sum(link.allocated_amount for link in links) if links else None,
        links=tuple(links),
        name=_smart_name(draft, links, role),
    )


def update_allocation(draft: TransactionDraft, parent_id, value: int) -> DraftPatch:
    """Set one link's allocation by hand and re-derive the total."""
    parent_id = str(parent_id)
    if draft.get_link(parent_id) is None:
        raise LedgerValidationError('links', f"Transaction {parent_id} is not linked")
    if not isinstance(value, int) or isinstance(value, bool):
        raise LedgerValidationError('links', "Allocated amounts must be integers")

    links = [
        dataclasses.replace(link, allocated_amount=value) if link.parent_id == parent_id else link
        for link in draft.links
    ]
    return _after_link_change(draft, links)


def remove_link(draft: TransactionDraft, parent_id) -> DraftPatch:
    """Drop a link and re-derive the total."""
    parent_id = str(parent_id)
    links = [link for link in draft.links if link.parent_id != parent_id]
    if len(links) == len(draft.links):
        raise LedgerValidationError('links', f"Transaction {parent_id} is not linked")
    patch = _after_link_change(draft, links)
    if not draft.is_repayment:
        patch = dataclasses.replace(patch, amount=None)
    return patch


def swap_direction(draft: TransactionDraft) -> DraftPatch:
    """Swap payer and counterpart by hand, negating every link."""
    if not draft.is_repayment:
        raise LedgerValidationError('kind', "Only settlements and forgiveness have a direction")
    if not draft.counterpart or draft.counterpart == draft.payer:
        raise LedgerValidationError('participants', "Choose who the money goes to first")

    return DraftPatch(
        links=tuple(link.negated() for link in draft.links),
        payer=draft.counterpart,
        participants=(draft.payer,),
        flipped=True,
    )


def cap_refund_links(draft: TransactionDraft, transactions) -> DraftPatch:
    """
    Recompute the refundable cap of every refund link.

    ``transactions`` must hold the linked parents whatever their space,
    deleted ones included. When editing, the record's own previous
    allocation is added back to the parent's remaining amount. A deleted
    parent has nothing left to refund; parents that don't exist at all
    keep no cap.
    """
    if draft.kind != TransactionKind.PRODUCT_REFUND or not draft.links:
        return DraftPatch()

    index = {str(t.id): t for t in transactions}
    editing = index.get(str(draft.transaction_id)) if draft.transaction_id else None

    links = []
    for link in draft.links:
        parent = index.get(link.parent_id)
        if parent is None:
            links.append(dataclasses.replace(link, max_allocatable=None))
            continue
        if parent.is_deleted:
            links.append(dataclasses.replace(
                link, max_allocatable=0, parent_name=link.parent_name or parent.name,
            ))
            continue

        remaining = parent.cached_net_amount if parent.cached_net_amount is not None else parent.amount
        if editing is not None and not editing.is_deleted:
            previous = editing.get_link(link.parent_id)
            if previous is not None:
                remaining += abs(previous['allocated_amount'])

        links.append(dataclasses.replace(
            link,
            max_allocatable=remaining,
            parent_name=link.parent_name or parent.name,
        ))

    return DraftPatch(links=tuple(links))


def validate_draft(draft: TransactionDraft) -> None:
    """
    Check a draft before it is saved.

    Raises:
        LedgerValidationError: First problem found, naming the field
        AllocationExceededError: A refund link allocates more than its
            parent's remaining refundable amount
        SplitValidationError: Split input doesn't add up
    """
    if draft.kind not in TransactionKind.values:
        raise LedgerValidationError('kind', f"Unknown kind '{draft.kind}'")

    if not (draft.name or '').strip():
        raise LedgerValidationError('name', "Name is required")

    if not isinstance(draft.amount, int) or isinstance(draft.amount, bool) or draft.amount <= 0:
        raise LedgerValidationError('amount', "Amount must be greater than zero")

    if not draft.payer:
        raise LedgerValidationError('payer', "Payer is required")

    if draft.is_repayment:
        if len(draft.participants) != 1:
            raise LedgerValidationError('participants', "Choose exactly one counterpart")
        if draft.counterpart == draft.payer:
            raise LedgerValidationError('participants', "Payer and counterpart must differ")

    parent_ids = draft.linked_parent_ids
    if len(parent_ids) != len(set(parent_ids)):
        raise LedgerValidationError('links', "A parent can only be linked once")

    if draft.kind == TransactionKind.PRODUCT_REFUND:
        for link in draft.links:
            if link.max_allocatable is not None and link.allocated_amount > link.max_allocatable:
                raise AllocationExceededError(link.parent_id, link.allocated_amount, link.max_allocatable)

    if draft.kind in (TransactionKind.EXPENSE, TransactionKind.PRODUCT_REFUND):
        if draft.split_method == SplitMethod.EQUAL:
            if not draft.split_participants():
                raise SplitValidationError("At least one participant required")
        elif draft.split_method == SplitMethod.NONE:
            raise SplitValidationError("Choose how to split the amount", field='split_method')
        else:
            validate_split_input(draft.amount, draft.split_shares, draft.split_method)


def _final_splits(draft: TransactionDraft, signed_amount: int, multiplier: int) -> Dict[str, int]:
    if draft.split_method == SplitMethod.EQUAL:
        return split_equally(signed_amount, draft.split_participants())
    if draft.split_method == SplitMethod.PERCENTAGE:
        return split_by_percentage(signed_amount, draft.split_shares)
    return {uid: int(share) * multiplier for uid, share in draft.split_shares.items()}


def finalize_draft(draft: TransactionDraft) -> Dict:
    """
    Turn a draft into the Transaction fields the store writes.

    Links that no longer add up to the amount are spread proportionally
    first. Product refunds get a negative amount, negative splits and
    negative link allocations.

    Raises:
        LedgerValidationError: If the draft is invalid
    """
    if draft.links and draft.linked_total != draft.amount:
        draft = draft.copy().apply(reallocate(draft, draft.amount))

    validate_draft(draft)

    multiplier = -1 if draft.kind == TransactionKind.PRODUCT_REFUND else 1
    amount = draft.amount * multiplier

    fields = {
        'kind': draft.kind,
        'name': draft.name.strip(),
        'amount': amount,
        'payer': draft.payer,
        'category': draft.category,
        'payment_mode': draft.payment_mode,
        'description': draft.description,
        'links': [
            {'parent_id': link.parent_id, 'allocated_amount': link.allocated_amount * multiplier}
            for link in draft.links
        ],
    }

    if draft.kind == TransactionKind.INCOME:
        fields.update(payer=ME, participants=[], split_method=SplitMethod.NONE, splits={})
    elif draft.is_repayment:
        fields.update(participants=[draft.counterpart], split_method=SplitMethod.NONE, splits={})
        if draft.kind == TransactionKind.FORGIVENESS:
            fields['description'] = f"{FORGIVEN_PREFIX} {draft.description}".strip()
    else:
        participants = [uid for uid in draft.participants if uid != ME]
        if draft.payer != ME and draft.include_payer and draft.payer not in participants:
            participants.append(draft.payer)
        fields.update(
            participants=participants,
            split_method=draft.split_method,
            splits=_final_splits(draft, amount, multiplier),
        )

    if draft.timestamp is not None:
        fields['timestamp'] = draft.timestamp

    return fields
