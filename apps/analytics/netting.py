"""
Settlement netting suggestions.

Greedy matching of debtors to creditors. The result is a short list of
direct payments that clears as much debt as possible; it is not guaranteed
to be the minimum number of payments. Suggestions are never applied: the
caller turns one into a real settlement by hand.
"""

from dataclasses import dataclass, asdict
from typing import Dict, List, Optional

from django.conf import settings


@dataclass(frozen=True)
class SuggestedTransfer:
    from_id: str
    to_id: str
    amount: int

    def as_dict(self):
        return asdict(self)


def suggest_settlements(positions: Dict[str, int], threshold: Optional[int] = None) -> List[SuggestedTransfer]:
    """
    Suggest payments that net out outstanding positions.

    Algorithm:
        1. Creditors: position above ``threshold``; debtors: below
           ``-threshold`` (by magnitude)
        2. Sort both lists largest first (ties by id)
        3. For each debtor, walk the creditors in order and transfer
           ``min(debt, credit)`` to each creditor with credit left, until
           the debtor is cleared or creditors run out

    Args:
        positions: participant id -> position (positive = is owed)
        threshold: Ignore positions within this many minor units of zero.
            Defaults to the ``LEDGER_NETTING_THRESHOLD`` setting.

    Returns:
        list[SuggestedTransfer]

    Example:
        >>> suggest_settlements({'alice': 3000, 'bob': -2000, 'carol': -1500})
        [SuggestedTransfer(from_id='bob', to_id='alice', amount=2000),
         SuggestedTransfer(from_id='carol', to_id='alice', amount=1000)]
    """
    if threshold is None:
        threshold = settings.LEDGER_NETTING_THRESHOLD

    creditors = [[pid, amount] for pid, amount in positions.items() if amount > threshold]
    debtors = [[pid, -amount] for pid, amount in positions.items() if amount < -threshold]

    creditors.sort(key=lambda entry: (-entry[1], entry[0]))
    debtors.sort(key=lambda entry: (-entry[1], entry[0]))

    transfers = []
    for debtor in debtors:
        for creditor in creditors:
            if debtor[1] == 0:
                break
            if creditor[1] == 0:
                continue

            amount = min(debtor[1], creditor[1])
            transfers.append(SuggestedTransfer(from_id=debtor[0], to_id=creditor[0], amount=amount))
            debtor[1] -= amount
            creditor[1] -= amount

    return transfers


def unmatched_positions(positions: Dict[str, int], transfers: List[SuggestedTransfer]) -> Dict[str, int]:
    """Positions left over once every suggested transfer is paid."""
    remaining = dict(positions)
    for transfer in transfers:
        remaining[transfer.from_id] = remaining.get(transfer.from_id, 0) + transfer.amount
        remaining[transfer.to_id] = remaining.get(transfer.to_id, 0) - transfer.amount
    return {pid: value for pid, value in remaining.items() if value}
